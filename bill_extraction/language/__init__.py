"""
Language Module for the Bill Extraction System.

Per-language normalization, stemming and locale parsing, driven by the
rule tables in language/data, plus language detection.
"""

from typing import Dict, Iterable, Optional

from config import get_config
from bill_extraction.utils.exceptions import UnsupportedLanguageError
from .resources import LanguageResources, LabelCue, HighlightedLabel, first_group, first_group_span
from .stemming import StemIndex, tokenize
from .base import LanguageProcessor
from .hungarian import HungarianProcessor
from .english import EnglishProcessor
from .detection import detect_language, language_scores

PROCESSOR_CLASSES = {
    'hu': HungarianProcessor,
    'en': EnglishProcessor,
}


def get_processor(code: str) -> LanguageProcessor:
    """
    Build the processor for a language code.

    Raises:
        UnsupportedLanguageError: If no processor exists for the code.
    """
    processor_class = PROCESSOR_CLASSES.get(code)
    if processor_class is None:
        raise UnsupportedLanguageError(code, sorted(PROCESSOR_CLASSES))
    return processor_class()


def load_processors(codes: Optional[Iterable[str]] = None) -> Dict[str, LanguageProcessor]:
    """
    Build processors for the given codes (configured languages by default).

    Returns:
        Mapping of language code to processor, in the given order.
    """
    if codes is None:
        codes = get_config("languages.supported", list(PROCESSOR_CLASSES))
    return {code: get_processor(code) for code in codes}


__all__ = [
    'LanguageResources',
    'LabelCue',
    'HighlightedLabel',
    'first_group',
    'first_group_span',
    'StemIndex',
    'tokenize',
    'LanguageProcessor',
    'HungarianProcessor',
    'EnglishProcessor',
    'PROCESSOR_CLASSES',
    'get_processor',
    'load_processors',
    'detect_language',
    'language_scores',
]
