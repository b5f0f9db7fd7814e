"""
Field Matcher Module.

Applies a BillPattern's per-field rules to normalized text. For each
field the rules are tried in order and the first one that captures a
non-empty value wins; fields nobody captures are simply absent.

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field, replace
from functools import lru_cache
from typing import Dict, List, Optional, Pattern, Tuple

from config import get_config
from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.helpers import fold_accents, truncate
from bill_extraction.patterns.bill_pattern import BillPattern, FieldCapture, FieldName, FieldRule

# Initialize module logger
logger = get_logger(__name__)

# Failures of a single rule are treated as "no match"
RULE_ERRORS = (IndexError, ValueError, re.error, RecursionError)

# Keywords this short must match a whole word
SHORT_KEYWORD_LENGTH = 4


@lru_cache(maxsize=1024)
def keyword_regex(keyword: str) -> Pattern:
    """
    Accent-folded regex for a confirmation keyword.

    The keyword must start a word. Short keywords must also end one,
    while longer ones may carry a suffix ("biztosítás" matches
    "biztosításról", "kár" does not match "kártya").
    """
    folded = re.escape(fold_accents(keyword))
    end = r'(?!\w)' if len(keyword) <= SHORT_KEYWORD_LENGTH else ''
    return re.compile(rf'(?<!\w){folded}{end}')


@dataclass
class PatternMatch:
    """
    Captures of one pattern over one text segment.

    Attributes:
        pattern: Pattern that produced the captures
        fields: Captures per standard field (offsets relative to the full text)
        custom: Captures per custom field
        start: Segment start offset
        end: Segment end offset
    """
    pattern: BillPattern
    fields: Dict[FieldName, FieldCapture] = field(default_factory=dict)
    custom: Dict[str, FieldCapture] = field(default_factory=dict)
    start: int = 0
    end: int = 0

    @property
    def amount(self) -> Optional[FieldCapture]:
        return self.fields.get(FieldName.AMOUNT)


class FieldMatcher:
    """
    Rule-by-rule field capture with pattern gating and bill segmentation.

    Example:
        >>> matcher = FieldMatcher()
        >>> if matcher.fires(text, pattern):
        ...     captures = matcher.match(text, pattern)
        >>> captures[FieldName.AMOUNT].value
        '6.364'
    """

    def __init__(self, max_bills: Optional[int] = None) -> None:
        """
        Initialize the matcher.

        Args:
            max_bills: Upper bound on bills split out of one text.
                       If None, uses config.
        """
        self.max_bills = max_bills or get_config("extraction.max_bills", 10)

    # ------------------------------------------------------------------
    # Gating
    # ------------------------------------------------------------------

    def fires(self, text: str, pattern: BillPattern, subject: Optional[str] = None) -> bool:
        """
        Whether a pattern applies to a document.

        A matching subject rule fires the pattern when a subject is
        given. Otherwise at least one confirmation keyword must occur in
        the text as a word (case- and accent-insensitively, see
        keyword_regex); a pattern without confirmation keywords is not
        gated.
        """
        if subject and pattern.subject_patterns:
            for subject_pattern in pattern.subject_patterns:
                if subject_pattern.search(subject):
                    logger.debug(f"Pattern {pattern.id} fired on subject")
                    return True

        if not pattern.confirmation_keywords:
            return True

        folded = fold_accents(text or "")
        for keyword in pattern.confirmation_keywords:
            if keyword_regex(keyword).search(folded):
                logger.debug(f"Pattern {pattern.id} confirmed by '{keyword}'")
                return True
        return False

    # ------------------------------------------------------------------
    # Capturing
    # ------------------------------------------------------------------

    def _first_capture(
        self,
        text: str,
        rules: Tuple[FieldRule, ...],
        label: str,
        pattern_id: str
    ) -> Optional[FieldCapture]:
        for index, rule in enumerate(rules):
            try:
                capture = rule.search(text, index)
            except RULE_ERRORS as e:
                logger.warning(f"Rule {index} of {pattern_id}.{label} failed: {e}")
                continue
            if capture:
                logger.debug(
                    f"{pattern_id}.{label} <- '{truncate(capture.value, 40)}' (rule {index})"
                )
                return capture
        return None

    def match(self, text: str, pattern: BillPattern) -> Dict[FieldName, FieldCapture]:
        """
        Capture every standard field of a pattern.

        Args:
            text: Normalized text.
            pattern: Pattern whose rules to apply.

        Returns:
            Field to capture; unmatched fields are absent.
        """
        captures = {}
        if not text:
            return captures
        for field_name, rules in pattern.content_patterns.items():
            capture = self._first_capture(text, rules, field_name.value, pattern.id)
            if capture:
                captures[field_name] = capture
        return captures

    def match_custom(self, text: str, pattern: BillPattern) -> Dict[str, FieldCapture]:
        """Capture the pattern's custom fields."""
        captures = {}
        if not text:
            return captures
        for name, rules in pattern.custom_patterns.items():
            capture = self._first_capture(text, rules, name, pattern.id)
            if capture:
                captures[name] = capture
        return captures

    # ------------------------------------------------------------------
    # Multiple bills
    # ------------------------------------------------------------------

    def segment(self, text: str, pattern: BillPattern) -> List[Tuple[int, int]]:
        """
        Split text into one span per bill.

        The first amount rule that matches at all decides: when it
        matches at least twice with distinct values its matches anchor
        the split; consecutive repeats of the same value
        belong to the same bill. Boundaries fall on the last blank line
        between two anchors, else at the start of the next anchor's line.

        Returns:
            (start, end) spans covering the text; a single span when the
            text holds one bill.
        """
        whole = [(0, len(text))]
        for index, rule in enumerate(pattern.rules_for(FieldName.AMOUNT)):
            try:
                anchors = list(rule.finditer(text, index))
            except RULE_ERRORS as e:
                logger.warning(f"Amount rule {index} of {pattern.id} failed: {e}")
                continue
            if not anchors:
                continue

            distinct = [anchors[0]]
            for anchor in anchors[1:]:
                if anchor.value != distinct[-1].value and anchor.start >= distinct[-1].end:
                    distinct.append(anchor)
            if len(distinct) < 2:
                return whole

            distinct = distinct[:self.max_bills]
            bounds = [0]
            for previous, following in zip(distinct, distinct[1:]):
                bounds.append(self.boundary(text, previous.end, following.start))
            bounds.append(len(text))
            logger.info(f"Pattern {pattern.id} splits text into {len(distinct)} bills")
            return list(zip(bounds, bounds[1:]))
        return whole

    @staticmethod
    def boundary(text: str, after: int, before: int) -> int:
        blank = text.rfind('\n\n', after, before)
        if blank >= 0:
            return blank + 1
        line_start = text.rfind('\n', after, before)
        return line_start + 1 if line_start >= 0 else after

    def match_bills(self, text: str, pattern: BillPattern) -> List[PatternMatch]:
        """
        Capture fields once per bill found in the text.

        Returns:
            One PatternMatch per segment, in document order, with
            capture offsets relative to the full text.
        """
        matches = []
        for start, end in self.segment(text, pattern):
            segment = text[start:end]
            fields = {
                name: replace(capture, start=capture.start + start, end=capture.end + start)
                for name, capture in self.match(segment, pattern).items()
            }
            matches.append(PatternMatch(
                pattern=pattern,
                fields=fields,
                custom=self.match_custom(segment, pattern),
                start=start,
                end=end
            ))
        return matches
