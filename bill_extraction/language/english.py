"""
English Language Processor.

Month-first numeric dates, comma thousands separators and decimal dots.
Ordinal day suffixes ("May 5th") are dropped during normalization so
date shapes stay simple.
"""

import re

from .base import LanguageProcessor

ORDINAL_SUFFIX = re.compile(r'\b(\d{1,2})(?:st|nd|rd|th)\b', re.IGNORECASE)


class EnglishProcessor(LanguageProcessor):
    """Processor for English ("en") documents."""

    code = "en"

    def normalize(self, text: str) -> str:
        text = super().normalize(text)
        return ORDINAL_SUFFIX.sub(r'\1', text)
