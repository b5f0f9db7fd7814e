"""
Language Processor Module.

Locale-aware text handling shared by every language: normalization,
amount and date parsing, and the stem-based keyword detection that the
extraction strategies and the confidence scorer build on. Behaviour is
driven entirely by the language's rule table; subclasses only add the
few quirks a table cannot express.

Author: ML Engineering Team
"""

import math
import re
from datetime import date
from pathlib import Path
from typing import Optional, Sequence, Pattern, Union

from dateutil import parser as date_parser

from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.helpers import fold_accents
from .resources import LanguageResources
from .stemming import StemIndex

# Initialize module logger
logger = get_logger(__name__)


# Characters collapsed to a plain space / hyphen by normalize()
SPACE_CHARS = re.compile(r"[\u00a0\u2007\u2009\u202f\t\f\v]")
DASH_CHARS = re.compile(r"[\u2010-\u2015\u2212]")
MULTI_SPACE = re.compile(r' {2,}')
BLANK_LINES = re.compile(r'\n{3,}')

# Amount cleaning
AMOUNT_JUNK = re.compile(r'[^\d.,\s]')
SHORT_INTEGER = re.compile(r'\d{1,4}')
DOT_THOUSANDS = re.compile(r'\d+(?:\.\d{3})+')
SPACE_THOUSANDS = re.compile(r'\d\s+\d{3}(?!\d)')
DECIMAL_COMMA_TAIL = re.compile(r',(\d{1,2})$')

# Date forms
YEAR_FIRST = re.compile(r'(?<!\d)(\d{4})\s*[./-]\s*(\d{1,2})\s*[./-]\s*(\d{1,2})(?!\d)')
YEAR_LAST = re.compile(r'(?<!\d)(\d{1,2})\s*[./-]\s*(\d{1,2})\s*[./-]\s*(\d{4})(?!\d)')
HAS_YEAR = re.compile(r'(?<!\d)\d{4}(?!\d)')


class LanguageProcessor:
    """
    Table-driven processor for one language.

    Attributes:
        code: ISO language code
        resources: Parsed rule table
        stem_index: Immutable stem lookup built from the table

    Example:
        >>> processor = HungarianProcessor()
        >>> processor.clean_amount("6.364 Ft")
        6364.0
        >>> processor.parse_date("2025.05.05")
        datetime.date(2025, 5, 5)
    """

    code: str = ""

    def __init__(
        self,
        resources: Optional[LanguageResources] = None,
        data_dir: Optional[Union[str, Path]] = None
    ) -> None:
        """
        Initialize the processor.

        Args:
            resources: Pre-loaded rule table. If None, the bundled table
                       for the class's language code is loaded.
            data_dir: Alternative directory holding <code>.yaml tables.
        """
        self.resources = resources or LanguageResources.load(self.code, data_dir)
        self.code = self.resources.code
        self.stem_index = StemIndex(self.resources.stems)

        self._month_abbr_regex = self._build_month_abbr_regex()
        self._month_names = self._build_month_alternation()
        self._keyword_regexes = [
            re.compile(rf'(?<!\w){re.escape(fold_accents(keyword))}')
            for keyword in self.resources.detection_keywords
        ]

        logger.debug(
            f"{type(self).__name__} initialized ({len(self.stem_index)} stems, "
            f"{len(self.resources.months)} month names)"
        )

    def __repr__(self) -> str:
        return f"{type(self).__name__}(code={self.code!r})"

    def _build_month_abbr_regex(self) -> Optional[Pattern]:
        forms = sorted(self.resources.month_abbreviations, key=len, reverse=True)
        if not forms:
            return None
        body = '|'.join(re.escape(form) for form in forms)
        if self.resources.abbreviation_requires_dot:
            return re.compile(rf'\b({body})\.', re.IGNORECASE)
        return re.compile(rf'\b({body})\b\.?', re.IGNORECASE)

    def _build_month_alternation(self) -> str:
        names = set(self.resources.months) | set(self.resources.month_abbreviations)
        return '|'.join(re.escape(n) for n in sorted(names, key=len, reverse=True))

    # ------------------------------------------------------------------
    # Normalization
    # ------------------------------------------------------------------

    def normalize(self, text: str) -> str:
        """
        Normalize text before matching.

        Unifies whitespace and dashes, expands abbreviations and month
        abbreviations, and collapses blank lines. Line structure is kept
        because field rules and bill segmentation work line by line.

        Args:
            text: Raw decoded text.

        Returns:
            Normalized text.
        """
        if not text:
            return ""

        text = text.replace('\r\n', '\n').replace('\r', '\n')
        text = SPACE_CHARS.sub(' ', text)
        text = DASH_CHARS.sub('-', text)

        for pattern, replacement in self.resources.abbreviations:
            text = pattern.sub(replacement, text)

        if self._month_abbr_regex is not None:
            text = self._month_abbr_regex.sub(self._expand_month, text)

        lines = [MULTI_SPACE.sub(' ', line).strip() for line in text.split('\n')]
        return BLANK_LINES.sub('\n\n', '\n'.join(lines)).strip()

    def _expand_month(self, match) -> str:
        abbreviation = match.group(1)
        full = self.resources.month_abbreviations.get(abbreviation.lower(), abbreviation)
        if abbreviation[:1].isupper():
            return full[:1].upper() + full[1:]
        return full

    # ------------------------------------------------------------------
    # Amounts
    # ------------------------------------------------------------------

    def clean_amount(self, raw: Union[str, int, float, None]) -> float:
        """
        Convert a captured amount string to a number.

        Never raises; unparseable input yields 0.0.

        Rules, in order:
            1. Drop everything except digits, '.', ',' and whitespace,
               then any trailing separator.
            2. A bare 1-4 digit run is an integer.
            3. digits followed by one or more '.ddd' groups and nothing
               else: the dots are thousands separators (only for
               languages with thousands_dot).
            4. Otherwise digit groups separated by spaces are joined.
            5. A trailing ',d' or ',dd' is a decimal comma (only for
               languages with decimal_comma); other commas are
               thousands separators.
            6. Parse as float; NaN and infinity become 0.0.

        Example:
            >>> hu.clean_amount("6.364")
            6364.0
            >>> hu.clean_amount("175 945 Ft")
            175945.0
            >>> hu.clean_amount("123,45")
            123.45
        """
        if raw is None:
            return 0.0
        if isinstance(raw, (int, float)):
            value = float(raw)
            return value if math.isfinite(value) else 0.0

        cleaned = AMOUNT_JUNK.sub('', str(raw)).strip().rstrip('.,').rstrip()
        if not cleaned:
            return 0.0

        if SHORT_INTEGER.fullmatch(cleaned):
            return float(int(cleaned))

        if self.resources.thousands_dot and DOT_THOUSANDS.fullmatch(cleaned):
            cleaned = cleaned.replace('.', '')
        elif SPACE_THOUSANDS.search(cleaned):
            cleaned = re.sub(r'\s+', '', cleaned)

        tail = DECIMAL_COMMA_TAIL.search(cleaned) if self.resources.decimal_comma else None
        if tail:
            head = cleaned[:tail.start()].replace('.', '').replace(',', '')
            cleaned = f"{head}.{tail.group(1)}"
        else:
            cleaned = cleaned.replace(',', '')

        try:
            value = float(cleaned)
        except ValueError:
            logger.debug(f"Could not parse amount: {raw!r}")
            return 0.0

        return value if math.isfinite(value) else 0.0

    # ------------------------------------------------------------------
    # Dates
    # ------------------------------------------------------------------

    def parse_date(self, raw: Optional[str]) -> Optional[date]:
        """
        Parse a captured date string.

        Tries year-first numeric dates, then year-last numeric dates
        (day-first unless the language is month-first), then dates with
        month names, then python-dateutil as a last resort.

        Args:
            raw: Captured date text.

        Returns:
            The calendar date, or None when nothing valid is found.
        """
        if not raw:
            return None
        text = ' '.join(str(raw).split())

        match = YEAR_FIRST.search(text)
        if match:
            year, month, day = (int(g) for g in match.groups())
            return self._make_date(year, month, day)

        match = YEAR_LAST.search(text)
        if match:
            first, second, year = (int(g) for g in match.groups())
            if self.resources.month_first:
                first, second = second, first
            # Ambiguous forms like 13/05/2025 in a month-first language
            return self._make_date(year, second, first) or self._make_date(year, first, second)

        parsed = self._parse_month_name(text)
        if parsed:
            return parsed

        if not HAS_YEAR.search(text):
            return None
        try:
            return date_parser.parse(
                text, dayfirst=not self.resources.month_first, fuzzy=True
            ).date()
        except (ValueError, OverflowError) as e:
            logger.debug(f"Could not parse date {raw!r}: {e}")
            return None

    def _parse_month_name(self, text: str) -> Optional[date]:
        if not self._month_names:
            return None
        months = self._month_names
        forms = (
            # 2025. május 5.
            (rf'(?<!\d)(\d{{4}})\.?\s*({months})\w*\.?\s*(\d{{1,2}})(?!\d)', ('y', 'm', 'd')),
            # May 5, 2025
            (rf'\b({months})\w*\.?\s+(\d{{1,2}})(?:st|nd|rd|th)?,?\s+(\d{{4}})(?!\d)', ('m', 'd', 'y')),
            # 5 May 2025
            (rf'(?<!\d)(\d{{1,2}})(?:st|nd|rd|th)?\.?\s+({months})\w*\.?,?\s+(\d{{4}})(?!\d)', ('d', 'm', 'y')),
        )
        for source, order in forms:
            match = re.search(source, text, re.IGNORECASE)
            if not match:
                continue
            parts = dict(zip(order, match.groups()))
            month = self._month_number(parts['m'])
            if month:
                return self._make_date(int(parts['y']), month, int(parts['d']))
        return None

    def _month_number(self, token: str) -> Optional[int]:
        token = token.lower()
        if token in self.resources.months:
            return self.resources.months[token]
        full = self.resources.month_abbreviations.get(token)
        if full:
            return self.resources.months.get(full.lower())
        return None

    @staticmethod
    def _make_date(year: int, month: int, day: int) -> Optional[date]:
        try:
            return date(year, month, day)
        except ValueError:
            return None

    # ------------------------------------------------------------------
    # Stems and keywords
    # ------------------------------------------------------------------

    def detect_keywords_by_stems(self, text: str, stems: Sequence[str]) -> float:
        """Fraction of the given stems found in text (0.0 to 1.0)."""
        return self.stem_index.match_ratio(text, stems)

    def stem_pattern(self, stems: Sequence[str]) -> Pattern:
        """Compiled alternation of every surface form of the stems."""
        return self.stem_index.pattern(stems)

    def keyword_ratio(self, text: str) -> float:
        """Stem ratio of the language's bill keywords, fed to the scorer."""
        return self.detect_keywords_by_stems(text, self.resources.keyword_stems)

    def detection_score(self, text: str) -> float:
        """Fraction of the language's detection keywords present in text."""
        if not self._keyword_regexes or not text:
            return 0.0
        folded = fold_accents(text)
        hits = sum(1 for regex in self._keyword_regexes if regex.search(folded))
        return hits / len(self._keyword_regexes)

    def charset_hits(self, text: str) -> int:
        """Number of language-specific characters in text."""
        charset = self.resources.charset
        if not charset or not text:
            return 0
        return sum(1 for ch in text if ch in charset)

    def label_ratio(self, line: str, field_name: str) -> float:
        """Fraction of the field's label stems present in a line."""
        cue = self.resources.label_cues.get(field_name)
        if cue is None or not cue.stems:
            return 0.0
        return self.detect_keywords_by_stems(line, cue.stems)

    def is_label(self, line: str, field_name: str, threshold: float = 0.5) -> bool:
        """
        Whether a line (or position item) reads as the label of a field.

        True when the stem ratio reaches the threshold or the cue's
        literal regex matches.
        """
        cue = self.resources.label_cues.get(field_name)
        if cue is None:
            return False
        if cue.stems and self.label_ratio(line, field_name) >= threshold:
            return True
        return bool(cue.regex and cue.regex.search(line))
