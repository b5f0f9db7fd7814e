"""
Language Detection Module.

Scores each loaded language by the share of its detection keywords
present in the text, plus a bonus when enough language-specific
characters (Hungarian accented letters) appear. A non-default language
must reach the keyword threshold and beat the default to win.

Author: ML Engineering Team
"""

from typing import Dict, Mapping, Optional

from config import get_config
from bill_extraction.utils.logger import get_logger
from .base import LanguageProcessor

# Initialize module logger
logger = get_logger(__name__)


def language_scores(
    text: str,
    processors: Mapping[str, LanguageProcessor],
    charset_bonus: Optional[float] = None,
    charset_min_hits: Optional[int] = None
) -> Dict[str, float]:
    """
    Detection score per language code.

    Args:
        text: Text to score.
        processors: Loaded processors keyed by code.
        charset_bonus: Bonus for characteristic letters. If None, uses config.
        charset_min_hits: Letters needed for the bonus. If None, uses config.

    Returns:
        Mapping of language code to score.
    """
    if charset_bonus is None:
        charset_bonus = get_config("languages.detection.charset_bonus", 0.1)
    if charset_min_hits is None:
        charset_min_hits = get_config("languages.detection.charset_min_hits", 3)

    scores = {}
    for code, processor in processors.items():
        score = processor.detection_score(text)
        if processor.charset_hits(text) >= charset_min_hits:
            score += charset_bonus
        scores[code] = score
    return scores


def detect_language(
    text: str,
    processors: Mapping[str, LanguageProcessor],
    default: Optional[str] = None,
    threshold: Optional[float] = None
) -> str:
    """
    Guess the language of a document.

    Args:
        text: Document text.
        processors: Loaded processors keyed by code.
        default: Language returned when nothing else qualifies.
                 If None, uses config (languages.default).
        threshold: Minimum score for a non-default language.
                   If None, uses config.

    Returns:
        Language code.

    Example:
        >>> detect_language("Fizetendő összeg: 6.364 Ft", processors)
        'hu'
    """
    default = default or get_config("languages.default", "en")
    if threshold is None:
        threshold = get_config("languages.detection.keyword_threshold", 0.15)

    if default not in processors and processors:
        default = next(iter(processors))

    if not text or not text.strip():
        return default

    scores = language_scores(text, processors)
    default_score = scores.get(default, 0.0)

    best_code, best_score = default, default_score
    for code, score in scores.items():
        if code == default:
            continue
        if score >= threshold and score > default_score and score > best_score:
            best_code, best_score = code, score

    logger.debug(
        "Language scores: "
        + ", ".join(f"{code}={score:.2f}" for code, score in scores.items())
        + f" -> {best_code}"
    )
    return best_code
