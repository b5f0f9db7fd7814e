"""
Hungarian Language Processor.

Hungarian bills print amounts as "6.364 Ft" or "175 945 Ft", dates as
"2025.05.05." or "2025. május 5.", and decline every label noun, so the
rule table carries most of the work. This module only handles the
currency glued to the number ("6364Ft") that some PDF generators emit.
"""

import re

from .base import LanguageProcessor

GLUED_CURRENCY = re.compile(r'(\d)(Ft|HUF)\b')


class HungarianProcessor(LanguageProcessor):
    """Processor for Hungarian ("hu") documents."""

    code = "hu"

    def normalize(self, text: str) -> str:
        text = super().normalize(text)
        return GLUED_CURRENCY.sub(r'\1 \2', text)
