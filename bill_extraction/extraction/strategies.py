"""
Extraction Strategies Module.

The three ways the orchestrator tries to read bills out of a document,
strongest first:

    - StemPositionalStrategy ("stem-positional"): label/value pairs found
      through the 2-D layout and stem-aware label lines
    - PatternStrategy ("pattern"): the registry's declarative patterns
    - RawRegexStrategy ("raw-regex"): the language's last-resort rules
      over text recovered from the raw document bytes

Every strategy turns its captures into BillRecords the same way: typed
conversion, vendor hint, confidence scoring and category inference.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from typing import AbstractSet, Any, Dict, List, Mapping, Optional, Tuple

from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.exceptions import NoPatternMatchError
from bill_extraction.language.base import LanguageProcessor
from bill_extraction.language.resources import first_group, first_group_span
from bill_extraction.patterns.bill_pattern import BillPattern, FieldCapture, FieldName, VendorHint
from bill_extraction.patterns.registry import PatternRegistry
from bill_extraction.matching.field_matcher import FieldMatcher
from bill_extraction.matching.positional_matcher import PositionalMatcher
from bill_extraction.matching.confidence import ConfidenceScorer, EvidenceKind
from bill_extraction.postprocessor.processor import FieldPostProcessor
from bill_extraction.input_handler.raw_scanner import RawTextScanner
from .extraction_result import BillRecord, ExtractionContext, Source, SourceKind

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class StrategyResult:
    """
    What one strategy produced.

    Attributes:
        strategy: Strategy name
        bills: Candidate records in document order
        confidence: Best record confidence (0 without records)
        details: Strategy specific trace data
    """
    strategy: str
    bills: List[BillRecord] = field(default_factory=list)
    confidence: float = 0.0
    details: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def of(cls, strategy: str, bills: List[BillRecord], **details) -> 'StrategyResult':
        confidence = max((bill.confidence or 0.0 for bill in bills), default=0.0)
        return cls(strategy=strategy, bills=bills, confidence=confidence, details=details)


class ExtractionStrategy:
    """
    Base class of the extraction strategies.

    Attributes:
        name: Strategy name reported as the records' extraction_method
        registry: Pattern registry
        scorer: Confidence scorer
        post_processor: Field conversion and validation
        matcher: Rule matcher used for pattern gating
    """

    name = "base"

    def __init__(
        self,
        registry: PatternRegistry,
        scorer: Optional[ConfidenceScorer] = None,
        post_processor: Optional[FieldPostProcessor] = None,
        matcher: Optional[FieldMatcher] = None
    ) -> None:
        self.registry = registry
        self.scorer = scorer or ConfidenceScorer()
        self.post_processor = post_processor or FieldPostProcessor()
        self.matcher = matcher or FieldMatcher()

    def extract(
        self,
        context: ExtractionContext,
        processor: LanguageProcessor,
        text: str
    ) -> StrategyResult:
        """
        Extract candidate bills.

        Args:
            context: The extraction input.
            processor: Processor of the resolved language.
            text: Normalized document text.

        Returns:
            StrategyResult with zero or more records.
        """
        raise NotImplementedError

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self.name!r})"

    # ------------------------------------------------------------------
    # Shared record building
    # ------------------------------------------------------------------

    def build_record(
        self,
        captures: Mapping[FieldName, FieldCapture],
        evidence: Mapping[FieldName, EvidenceKind],
        processor: LanguageProcessor,
        text: str,
        source: Source,
        keyword_ratio: Optional[float] = None,
        hint: Optional[VendorHint] = None,
        pattern_id: Optional[str] = None,
        custom: Optional[Mapping[str, FieldCapture]] = None,
        custom_kind: EvidenceKind = EvidenceKind.PATTERN
    ) -> Tuple[Optional[BillRecord], Dict[str, Any]]:
        """
        Turn raw captures into a scored record.

        Fields failing conversion are dropped together with their
        evidence. A missing vendor is taken from the hint.

        Returns:
            (record or None when no valid amount remains, confidence breakdown).
        """
        processed = self.post_processor.process(captures, processor)
        if not processed.has_amount:
            logger.debug(f"{self.name}: candidate dropped, no valid amount ({processed.rejected})")
            return None, {}

        fields = dict(processed.fields)
        scored = {
            name.value: kind for name, kind in evidence.items()
            if name.value in fields
        }

        if FieldName.VENDOR.value not in fields and hint and hint.name:
            fields[FieldName.VENDOR.value] = hint.name
            scored[FieldName.VENDOR.value] = EvidenceKind.HINT

        custom_fields = {}
        if custom:
            custom_processed = self.post_processor.process(custom, processor)
            for name, value in custom_processed.fields.items():
                custom_fields[name] = str(value)
                scored[f"custom:{name}"] = custom_kind

        if keyword_ratio is None:
            keyword_ratio = processor.keyword_ratio(text)
        breakdown = self.scorer.breakdown(scored, keyword_ratio)
        category = FieldPostProcessor.infer_category(
            hint.category if hint else None,
            fields.get(FieldName.VENDOR.value),
            text,
            processor
        )

        record = BillRecord(
            id=BillRecord.new_id(),
            fields=fields,
            confidence=breakdown.total,
            extraction_method=self.name,
            language=processor.code,
            source=source,
            vendor_category=category,
            pattern_id=pattern_id,
            custom_fields=custom_fields
        )
        logger.debug(f"{self.name}: built {record!r}")
        return record, breakdown.to_dict()

    def vendor_hint(
        self,
        text: str,
        processor: LanguageProcessor,
        subject: Optional[str] = None
    ) -> Optional[BillPattern]:
        """
        Pattern whose vendor hint applies to the document.

        Among the firing patterns of the language, the first one naming
        a vendor wins, else the first one carrying any hint.
        """
        fallback = None
        for pattern in self.registry.get_by_language(processor.code):
            if pattern.vendor is None or not self.matcher.fires(text, pattern, subject):
                continue
            if pattern.vendor.name:
                return pattern
            if fallback is None:
                fallback = pattern
        return fallback


class StemPositionalStrategy(ExtractionStrategy):
    """
    Label-driven extraction.

    When the document carries a layout, the PositionalMatcher pairs
    labels with nearby values. Remaining fields are read from label
    lines: highlighted summary labels first, then lines whose stem
    ratio marks them as a field's label (literal cue hits first, then
    best ratio, then earliest line). The value is taken from the rest of the label line, or from
    the next line when the label stands alone.

    Several highlighted amount labels with distinct values split the
    text into one bill each.

    Example:
        >>> strategy = StemPositionalStrategy(registry)
        >>> result = strategy.extract(context, HungarianProcessor(), text)
        >>> result.bills[0].amount
        6364.0
    """

    name = "stem-positional"

    LINE_FIELDS = tuple(FieldName)
    # One label line names at most one of these
    ID_FIELDS = (FieldName.INVOICE_NUMBER, FieldName.ACCOUNT_NUMBER)

    def __init__(
        self,
        registry: PatternRegistry,
        scorer: Optional[ConfidenceScorer] = None,
        post_processor: Optional[FieldPostProcessor] = None,
        matcher: Optional[FieldMatcher] = None,
        stem_threshold: Optional[float] = None
    ) -> None:
        super().__init__(registry, scorer, post_processor, matcher)
        self.stem_threshold = stem_threshold
        self._positional: Dict[str, PositionalMatcher] = {}

    def _positional_matcher(self, processor: LanguageProcessor) -> PositionalMatcher:
        if processor.code not in self._positional:
            self._positional[processor.code] = PositionalMatcher(
                processor, stem_threshold=self.stem_threshold
            )
        return self._positional[processor.code]

    def extract(
        self,
        context: ExtractionContext,
        processor: LanguageProcessor,
        text: str
    ) -> StrategyResult:
        matcher = self._positional_matcher(processor)
        threshold = matcher.stem_threshold

        hint_pattern = self.vendor_hint(text, processor, context.subject)
        hint = hint_pattern.vendor if hint_pattern else None
        pattern_id = hint_pattern.id if hint_pattern else None
        keyword_ratio = processor.keyword_ratio(text)

        segments = self.segment(text, processor)
        bills = []
        breakdowns = []
        for start, end in segments:
            segment = text[start:end]
            captures: Dict[FieldName, FieldCapture] = {}
            evidence: Dict[FieldName, EvidenceKind] = {}

            if context.has_positions and len(segments) == 1:
                for name, capture in matcher.match(context.position_items).items():
                    captures[name] = capture
                    evidence[name] = EvidenceKind.HIGHLIGHTED if capture.highlighted else EvidenceKind.POSITIONAL

            for name, capture in self.match_lines(segment, processor, threshold).items():
                if name in captures:
                    continue
                captures[name] = capture
                evidence[name] = EvidenceKind.HIGHLIGHTED if capture.highlighted else EvidenceKind.STEM_LINE

            custom = self.matcher.match_custom(segment, hint_pattern) if hint_pattern else None
            record, breakdown = self.build_record(
                captures, evidence, processor, segment, context.source,
                keyword_ratio=keyword_ratio, hint=hint, pattern_id=pattern_id,
                custom=custom
            )
            if record:
                bills.append(record)
                breakdowns.append(breakdown)

        logger.info(f"stem-positional: {len(bills)} bills from {len(segments)} segments")
        return StrategyResult.of(
            self.name, bills,
            segments=len(segments),
            positional=context.has_positions,
            vendor_hint=pattern_id,
            scores=breakdowns
        )

    # ------------------------------------------------------------------
    # Label lines
    # ------------------------------------------------------------------

    @staticmethod
    def _filter(text: str, field_name: FieldName, processor: LanguageProcessor) -> Optional[str]:
        value_filter = processor.resources.value_filters.get(field_name.value)
        if value_filter is None:
            stripped = text.strip(" :")
            return stripped or None
        return first_group(value_filter.search(text))

    def _value_at(
        self,
        lines: List[str],
        index: int,
        remainder: str,
        field_name: FieldName,
        processor: LanguageProcessor
    ) -> Optional[str]:
        value = self._filter(remainder, field_name, processor) if remainder else None
        if value:
            return value
        if remainder.strip(" :\t") or index + 1 >= len(lines):
            return None
        # Label alone on its line: the value sits on the next one
        return self._filter(lines[index + 1], field_name, processor)

    @staticmethod
    def _offsets(lines: List[str]) -> List[int]:
        offsets, position = [], 0
        for line in lines:
            offsets.append(position)
            position += len(line) + 1
        return offsets

    def match_lines(
        self,
        text: str,
        processor: LanguageProcessor,
        threshold: float = 0.5
    ) -> Dict[FieldName, FieldCapture]:
        """
        Read field values from label lines.

        Args:
            text: Normalized text (one bill).
            processor: Language processor.
            threshold: Stem ratio that makes a line a label.

        Returns:
            Field to capture; highlighted-label captures are flagged.
        """
        lines = text.split('\n')
        offsets = self._offsets(lines)
        resources = processor.resources
        captures = {}
        id_lines = set()

        for field_name in self.LINE_FIELDS:
            capture = None

            for index, line in enumerate(lines):
                for label in resources.highlighted_labels:
                    if label.field != field_name.value:
                        continue
                    m = label.regex.search(line)
                    if not m:
                        continue
                    value = self._value_at(lines, index, line[m.end():], field_name, processor)
                    if value:
                        capture = FieldCapture(
                            value=value, start=offsets[index],
                            end=offsets[index] + len(line), highlighted=True
                        )
                        break
                if capture:
                    break

            if capture is None:
                skip = id_lines if field_name in self.ID_FIELDS else frozenset()
                capture = self._label_line_capture(lines, offsets, field_name, processor, threshold, skip)

            if capture:
                logger.debug(
                    f"Line {field_name.value} <- '{capture.value}'"
                    f"{' (highlighted)' if capture.highlighted else ''}"
                )
                captures[field_name] = capture
                if field_name in self.ID_FIELDS:
                    id_lines.add(offsets.index(capture.start))
        return captures

    def _label_line_capture(
        self,
        lines: List[str],
        offsets: List[int],
        field_name: FieldName,
        processor: LanguageProcessor,
        threshold: float,
        skip: AbstractSet[int] = frozenset()
    ) -> Optional[FieldCapture]:
        cue = processor.resources.label_cues.get(field_name.value)
        if cue is None:
            return None

        ranked = []
        for index, line in enumerate(lines):
            if index in skip or not line.strip():
                continue
            if processor.is_label(line, field_name.value, threshold):
                m = cue.regex.search(line) if cue.regex else None
                ranked.append((m is None, -processor.label_ratio(line, field_name.value), index, m))
        ranked.sort(key=lambda item: item[:3])

        for _, _, index, m in ranked:
            line = lines[index]
            if m:
                remainder = line[m.end():]
            elif ':' in line:
                remainder = line.split(':', 1)[1]
            elif field_name == FieldName.VENDOR:
                remainder = ""
            else:
                remainder = line
            value = self._value_at(lines, index, remainder, field_name, processor)
            if value:
                return FieldCapture(value=value, start=offsets[index], end=offsets[index] + len(line))
        return None

    # ------------------------------------------------------------------
    # Multiple bills
    # ------------------------------------------------------------------

    def segment(self, text: str, processor: LanguageProcessor) -> List[Tuple[int, int]]:
        """
        Split text on highlighted amount labels with distinct values.

        Returns:
            (start, end) spans; the whole text when it holds one bill.
        """
        lines = text.split('\n')
        offsets = self._offsets(lines)
        amount_labels = [
            label for label in processor.resources.highlighted_labels
            if label.field == FieldName.AMOUNT.value
        ]

        # The first label present in the text decides
        anchors: List[Tuple[int, float]] = []
        for label in amount_labels:
            for index, line in enumerate(lines):
                m = label.regex.search(line)
                if not m:
                    continue
                value = self._value_at(lines, index, line[m.end():], FieldName.AMOUNT, processor)
                if value:
                    amount = processor.clean_amount(value)
                    if not anchors or anchors[-1][1] != amount:
                        anchors.append((index, amount))
            if anchors:
                break

        if len(anchors) < 2:
            return [(0, len(text))]

        anchors = anchors[:self.matcher.max_bills]
        bounds = [0]
        for (previous, _), (following, _) in zip(anchors, anchors[1:]):
            after = offsets[previous] + len(lines[previous])
            bounds.append(FieldMatcher.boundary(text, after, offsets[following]))
        bounds.append(len(text))
        logger.info(f"Highlighted amounts split text into {len(anchors)} bills")
        return list(zip(bounds, bounds[1:]))


class PatternStrategy(ExtractionStrategy):
    """
    Declarative pattern extraction.

    Every firing pattern of the language is matched (per bill segment);
    the candidates are then selected greedily by confidence, with
    registration order and document position as tie-breaks. A candidate
    overlapping an already selected bill (overlapping amount span or the
    same amount) is skipped.

    Raises:
        NoPatternMatchError: When no pattern of the language fires.
    """

    name = "pattern"

    def extract(
        self,
        context: ExtractionContext,
        processor: LanguageProcessor,
        text: str
    ) -> StrategyResult:
        patterns = self.registry.get_by_language(processor.code)
        fired = [p for p in patterns if self.matcher.fires(text, p, context.subject)]
        if not fired:
            raise NoPatternMatchError(processor.code, len(patterns))
        logger.info(f"pattern: {len(fired)}/{len(patterns)} patterns fired ({', '.join(p.id for p in fired)})")

        keyword_ratio = processor.keyword_ratio(text)
        candidates = []
        for pattern in fired:
            order = self.registry.order_of(pattern)
            for match in self.matcher.match_bills(text, pattern):
                if match.amount is None:
                    continue
                evidence = {name: EvidenceKind.PATTERN for name in match.fields}
                record, breakdown = self.build_record(
                    match.fields, evidence, processor, text[match.start:match.end],
                    context.source, keyword_ratio=keyword_ratio, hint=pattern.vendor,
                    pattern_id=pattern.id, custom=match.custom
                )
                if record:
                    candidates.append((record, order, match.amount, breakdown))

        chosen = self.select(candidates)
        return StrategyResult.of(
            self.name,
            [record for record, _, _, _ in chosen],
            fired=[p.id for p in fired],
            candidates=len(candidates),
            scores=[breakdown for _, _, _, breakdown in chosen]
        )

    @staticmethod
    def _overlaps(first: tuple, second: tuple) -> bool:
        record_a, _, span_a, _ = first
        record_b, _, span_b, _ = second
        if span_a.start < span_b.end and span_b.start < span_a.end:
            return True
        return record_a.amount == record_b.amount

    def select(self, candidates: List[tuple]) -> List[tuple]:
        """
        Greedy non-overlapping selection.

        Args:
            candidates: (record, registration order, amount capture, breakdown).

        Returns:
            Selected candidates in document order.
        """
        ranked = sorted(
            candidates,
            key=lambda c: (-(c[0].confidence or 0.0), c[1], c[2].start)
        )
        chosen = []
        for candidate in ranked:
            if any(self._overlaps(candidate, kept) for kept in chosen):
                continue
            chosen.append(candidate)
        return sorted(chosen, key=lambda c: c[2].start)


class RawRegexStrategy(ExtractionStrategy):
    """
    Last-resort extraction with the language's fallback rules.

    Runs over the text the RawTextScanner recovers from the document
    bytes and, when that yields no amount, over the context text.
    """

    name = "raw-regex"

    def __init__(
        self,
        registry: PatternRegistry,
        scorer: Optional[ConfidenceScorer] = None,
        post_processor: Optional[FieldPostProcessor] = None,
        matcher: Optional[FieldMatcher] = None,
        scanner: Optional[RawTextScanner] = None
    ) -> None:
        super().__init__(registry, scorer, post_processor, matcher)
        self.scanner = scanner or RawTextScanner()

    def extract(
        self,
        context: ExtractionContext,
        processor: LanguageProcessor,
        text: str
    ) -> StrategyResult:
        sources = []
        if context.raw_bytes:
            scanned = processor.normalize(self.scanner.scan(context.raw_bytes))
            if scanned:
                sources.append((scanned, Source(SourceKind.RAW_SCAN, context.file_name)))
        if text:
            sources.append((text, context.source))

        for candidate_text, source in sources:
            captures = self.match_fallbacks(candidate_text, processor)
            if FieldName.AMOUNT not in captures:
                continue
            evidence = {name: EvidenceKind.RAW for name in captures}
            record, breakdown = self.build_record(
                captures, evidence, processor, candidate_text, source,
                keyword_ratio=processor.keyword_ratio(candidate_text)
            )
            if record:
                return StrategyResult.of(
                    self.name, [record], source=source.kind.value, scores=[breakdown]
                )

        return StrategyResult.of(self.name, [], sources=[s.kind.value for _, s in sources])

    @staticmethod
    def match_fallbacks(text: str, processor: LanguageProcessor) -> Dict[FieldName, FieldCapture]:
        """First fallback rule hit per field."""
        captures = {}
        for name, regexes in processor.resources.fallback_patterns.items():
            try:
                field_name = FieldName(name)
            except ValueError:
                logger.warning(f"Unknown field in {processor.code} fallback patterns: {name}")
                continue
            for regex in regexes:
                m = regex.search(text)
                value = first_group(m)
                if value:
                    start, end = first_group_span(m)
                    captures[field_name] = FieldCapture(value=value.strip(), start=start, end=end)
                    break
        return captures
