"""
Extraction Orchestrator Module.

Runs the extraction strategies as an ordered fallback chain:

    Idle -> LanguageResolved -> StrategyAttempt(i) -> Accepted
                                      |                  ^
                                      v                  |
                                 NextStrategy ------------
                                      |
                                      v
                                  Exhausted

The first strategy whose best bill reaches the acceptance threshold
wins. When every strategy falls short, the best partial result is
returned. The whole call runs on a worker thread under a hard timeout
and never raises: failures come back as unsuccessful results carrying
the error message and type.

Author: ML Engineering Team
"""

import time
from concurrent.futures import ThreadPoolExecutor, TimeoutError as FutureTimeoutError
from enum import Enum
from typing import Any, Dict, List, Mapping, Optional, Sequence

from config import get_config
from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.exceptions import BillExtractionError, ExtractionTimeoutError
from bill_extraction.language import LanguageProcessor, detect_language, load_processors
from bill_extraction.patterns.registry import PatternRegistry
from bill_extraction.patterns.loader import load_default_registry
from bill_extraction.matching.confidence import ConfidenceScorer
from bill_extraction.input_handler.raw_scanner import RawTextScanner
from .extraction_result import ExtractionContext, ExtractionResult
from .strategies import (
    ExtractionStrategy,
    StrategyResult,
    StemPositionalStrategy,
    PatternStrategy,
    RawRegexStrategy,
)

# Initialize module logger
logger = get_logger(__name__)


class OrchestratorState(Enum):
    """States of one extraction call."""
    IDLE = "idle"
    LANGUAGE_RESOLVED = "language_resolved"
    STRATEGY_ATTEMPT = "strategy_attempt"
    ACCEPTED = "accepted"
    NEXT_STRATEGY = "next_strategy"
    EXHAUSTED = "exhausted"
    FAILED = "failed"


class ExtractionOrchestrator:
    """
    Multi-strategy bill extractor.

    Attributes:
        registry: Pattern registry shared by the strategies
        processors: Language processors keyed by code
        strategies: Strategies in fallback order
        threshold: Acceptance confidence
        timeout: Hard time budget of one call, in seconds

    Example:
        >>> orchestrator = build_orchestrator()
        >>> result = orchestrator.extract_text(bill_text)
        >>> result.success, result.bills[0].amount
        (True, 6364.0)
    """

    def __init__(
        self,
        registry: PatternRegistry,
        processors: Mapping[str, LanguageProcessor],
        strategies: Optional[Sequence[ExtractionStrategy]] = None,
        scorer: Optional[ConfidenceScorer] = None,
        threshold: Optional[float] = None,
        timeout: Optional[float] = None,
        max_workers: Optional[int] = None
    ) -> None:
        """
        Initialize the orchestrator.

        Args:
            registry: Pattern registry built at startup.
            processors: Language processors keyed by code.
            strategies: Strategies in fallback order. If None, the
                        stem-positional, pattern and raw-regex chain.
            scorer: Confidence scorer shared by the default strategies.
            threshold: Acceptance confidence. If None, uses config.
            timeout: Seconds per call. If None, uses config.
            max_workers: Worker threads. If None, uses config.
        """
        self.registry = registry
        self.processors = dict(processors)
        self.scorer = scorer or ConfidenceScorer()

        if strategies is None:
            strategies = [
                StemPositionalStrategy(registry, self.scorer),
                PatternStrategy(registry, self.scorer),
                RawRegexStrategy(registry, self.scorer),
            ]
        self.strategies = list(strategies)

        self.threshold = threshold if threshold is not None else get_config(
            "extraction.confidence_threshold", 0.2
        )
        self.timeout = timeout if timeout is not None else get_config(
            "extraction.timeout_seconds", 10
        )
        self.max_workers = max_workers or get_config("extraction.max_workers", 4)
        self.default_language = get_config("languages.default", "en")
        self._scanner = RawTextScanner()
        self._executor = ThreadPoolExecutor(
            max_workers=self.max_workers, thread_name_prefix="bill-extraction"
        )

        logger.info(
            f"ExtractionOrchestrator ready: languages={list(self.processors)}, "
            f"strategies={[s.name for s in self.strategies]}, threshold={self.threshold}"
        )

    # ------------------------------------------------------------------
    # Public entry points
    # ------------------------------------------------------------------

    def extract(self, context: ExtractionContext) -> ExtractionResult:
        """
        Extract bills from one input.

        Args:
            context: Extraction input.

        Returns:
            ExtractionResult; failures (including timeouts) are reported
            in the result, never raised.
        """
        start_time = time.time()
        try:
            future = self._executor.submit(self._run, context)
        except RuntimeError as e:
            logger.error(f"Extraction could not be scheduled: {e}")
            return ExtractionResult.failure(str(e), type(e).__name__, context.language)

        try:
            result = future.result(timeout=self.timeout)
        except FutureTimeoutError:
            future.cancel()
            error = ExtractionTimeoutError(self.timeout)
            logger.error(f"{error} ({context.file_name or 'text input'})")
            return ExtractionResult.failure(
                str(error), type(error).__name__, context.language,
                debug={'final_state': OrchestratorState.FAILED.value, 'stages': []}
            )
        except Exception as e:
            logger.error(f"Extraction failed: {e}", exc_info=True)
            return ExtractionResult.failure(
                str(e), type(e).__name__, context.language,
                debug={'final_state': OrchestratorState.FAILED.value, 'stages': []}
            )

        elapsed = time.time() - start_time
        if result.debug is not None:
            result.debug['elapsed_seconds'] = round(elapsed, 4)
        logger.info(
            f"Extraction finished in {elapsed:.2f}s: {result!r}"
        )
        return result

    def extract_text(
        self,
        text: str,
        language: Optional[str] = None,
        subject: Optional[str] = None,
        file_name: Optional[str] = None
    ) -> ExtractionResult:
        """Convenience wrapper for plain text input."""
        return self.extract(ExtractionContext(
            text=text, language=language, subject=subject, file_name=file_name
        ))

    def resolve_language(self, context: ExtractionContext) -> str:
        """
        Language of an input: the hint when supported, else detection.

        Text recovered from the raw bytes is used for detection when the
        decoded text is empty.
        """
        hint = (context.language or "").lower() or None
        if hint in self.processors:
            return hint
        if hint:
            logger.warning(f"Language hint '{hint}' not supported, detecting instead")

        sample = context.text
        if not sample.strip() and context.raw_bytes:
            sample = self._scanner.scan(context.raw_bytes)
        default = self.default_language if self.default_language in self.processors else None
        return detect_language(sample, self.processors, default=default)

    def close(self) -> None:
        """Stop the worker threads."""
        self._executor.shutdown(wait=False)

    def __enter__(self) -> 'ExtractionOrchestrator':
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    # ------------------------------------------------------------------
    # State machine
    # ------------------------------------------------------------------

    def _run(self, context: ExtractionContext) -> ExtractionResult:
        state = OrchestratorState.IDLE
        trace: Dict[str, Any] = {'stages': []}

        language = self.resolve_language(context)
        processor = self.processors[language]
        text = processor.normalize(context.text)
        state = OrchestratorState.LANGUAGE_RESOLVED
        trace['language'] = language
        logger.info(f"Language resolved: {language} ({len(text)} chars)")

        best: Optional[StrategyResult] = None
        for index, strategy in enumerate(self.strategies):
            state = OrchestratorState.STRATEGY_ATTEMPT
            previous = best.confidence if best else 0.0
            stage: Dict[str, Any] = {'index': index, 'strategy': strategy.name}

            try:
                outcome = strategy.extract(context, processor, text)
            except BillExtractionError as e:
                logger.info(f"Strategy {strategy.name} gave no result: {e.message}")
                stage.update(confidence=0.0, delta=0.0, outcome='error', error=e.message)
                trace['stages'].append(stage)
                state = OrchestratorState.NEXT_STRATEGY
                continue

            stage.update(
                confidence=round(outcome.confidence, 4),
                delta=round(outcome.confidence - previous, 4),
                bills=len(outcome.bills),
                details=outcome.details
            )
            if best is None or outcome.confidence > best.confidence:
                best = outcome

            if outcome.bills and outcome.confidence >= self.threshold:
                state = OrchestratorState.ACCEPTED
                stage['outcome'] = 'accepted'
                trace['stages'].append(stage)
                logger.info(
                    f"Strategy {strategy.name} accepted "
                    f"({len(outcome.bills)} bills, confidence {outcome.confidence:.2f})"
                )
                break

            state = OrchestratorState.NEXT_STRATEGY
            stage['outcome'] = 'insufficient'
            trace['stages'].append(stage)
            logger.info(
                f"Strategy {strategy.name} below threshold "
                f"(confidence {outcome.confidence:.2f} < {self.threshold})"
            )
        else:
            state = OrchestratorState.EXHAUSTED

        trace['final_state'] = state.value
        trace['strategy'] = best.strategy if best and best.bills else None

        if best is None or not best.bills:
            logger.info("No bill data found")
            return ExtractionResult(
                success=False,
                error="No bill data found",
                language=language,
                debug=trace,
                threshold=self.threshold
            )

        return ExtractionResult.from_bills(
            best.bills, language=language, debug=trace, threshold=self.threshold
        )


def build_orchestrator(
    languages: Optional[List[str]] = None,
    extra_pattern_directories: Optional[List[str]] = None,
    **kwargs
) -> ExtractionOrchestrator:
    """
    Build an orchestrator from configuration.

    Loads the language processors, then the pattern registry with each
    language's value shapes.

    Args:
        languages: Language codes. If None, uses config.
        extra_pattern_directories: Additional pattern directories.
                                   If None, uses config.
        **kwargs: Passed to ExtractionOrchestrator.

    Returns:
        Ready ExtractionOrchestrator.
    """
    processors = load_processors(languages)
    shapes = {code: processor.resources.shapes for code, processor in processors.items()}
    registry = load_default_registry(shapes, extra_pattern_directories)
    return ExtractionOrchestrator(registry, processors, **kwargs)
