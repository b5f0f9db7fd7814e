"""
Bill Pattern Data Classes.

A BillPattern is the declarative description of one bill category (or
one vendor's layout) in one language: when it applies, and which
regexes capture each field. Patterns are plain data loaded from YAML;
adding a bill type never needs new code.

Classes:
    FieldName: Closed set of extractable fields
    VendorHint: Vendor name/category known in advance
    FieldRule: One capture regex for a field
    FieldCapture: A raw captured value with its position
    BillPattern: The pattern record itself

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterator, Mapping, Optional, Pattern, Tuple

from bill_extraction.utils.helpers import strip_accents
from bill_extraction.utils.exceptions import PatternDefinitionError
from bill_extraction.language.resources import first_group_span

SUPPORTED_LANGUAGES = ('en', 'hu')


class FieldName(Enum):
    """Fields a bill pattern can extract."""
    AMOUNT = "amount"
    DUE_DATE = "due_date"
    VENDOR = "vendor"
    INVOICE_NUMBER = "invoice_number"
    ACCOUNT_NUMBER = "account_number"
    INVOICE_DATE = "invoice_date"
    BILLING_PERIOD = "billing_period"

    @classmethod
    def parse(cls, name: str) -> 'FieldName':
        """
        Look up a field by its value.

        Raises:
            ValueError: If the name is not a known field.
        """
        return cls(name)

    @classmethod
    def values(cls) -> Tuple[str, ...]:
        return tuple(member.value for member in cls)


DATE_FIELDS = (FieldName.DUE_DATE, FieldName.INVOICE_DATE)


@dataclass(frozen=True)
class VendorHint:
    """Vendor known from the pattern itself (e.g. an MVM-specific layout)."""
    name: Optional[str] = None
    category: Optional[str] = None


@dataclass(frozen=True)
class FieldCapture:
    """
    A raw value captured from text.

    Attributes:
        value: Captured string, untouched
        start: Start offset in the searched text
        end: End offset in the searched text
        rule_index: Position of the rule that produced it
        highlighted: Captured from a highlighted summary label
    """
    value: str
    start: int = -1
    end: int = -1
    rule_index: int = 0
    highlighted: bool = False


@dataclass(frozen=True)
class FieldRule:
    """
    One capture rule of a field.

    The accent-folded variant of the regex is tried against the
    accent-stripped text when the accented regex finds nothing, so a
    rule written with "határidő" still matches text that lost its
    accents. Offsets are shared because stripping keeps text length.

    Attributes:
        regex: Compiled regex
        source: Expanded regex source
        group: Capture group; None takes the first non-empty group
        remove_spaces: Strip spaces from the captured value
        folded_regex: Accent-free variant (None when identical)
    """
    regex: Pattern
    source: str = ""
    group: Optional[int] = None
    remove_spaces: bool = False
    folded_regex: Optional[Pattern] = None

    @classmethod
    def compile(
        cls,
        source: str,
        flags: int = re.IGNORECASE | re.MULTILINE,
        group: Optional[int] = None,
        remove_spaces: bool = False
    ) -> 'FieldRule':
        """
        Compile a rule from an (already shape-expanded) regex source.

        Raises:
            re.error: If the source is not a valid regex.
        """
        folded_source = strip_accents(source)
        return cls(
            regex=re.compile(source, flags),
            source=source,
            group=group,
            remove_spaces=remove_spaces,
            folded_regex=re.compile(folded_source, flags) if folded_source != source else None,
        )

    def _capture(self, match, text: str, rule_index: int) -> Optional[FieldCapture]:
        if self.group is None:
            span = first_group_span(match)
        else:
            span = match.span(self.group)
        if span is None or span[0] < 0:
            return None
        value = text[span[0]:span[1]].strip()
        if self.remove_spaces:
            value = re.sub(r'\s+', '', value)
        if not value:
            return None
        return FieldCapture(value=value, start=span[0], end=span[1], rule_index=rule_index)

    def search(self, text: str, rule_index: int = 0) -> Optional[FieldCapture]:
        """
        First capture of the rule in text, or None.

        Raises:
            IndexError: If the rule names a group the regex does not have.
        """
        match = self.regex.search(text)
        if match:
            capture = self._capture(match, text, rule_index)
            if capture:
                return capture
        if self.folded_regex is not None:
            match = self.folded_regex.search(strip_accents(text))
            if match:
                return self._capture(match, text, rule_index)
        return None

    def finditer(self, text: str, rule_index: int = 0) -> Iterator[FieldCapture]:
        """Every capture of the rule in text, in document order."""
        found = False
        for match in self.regex.finditer(text):
            capture = self._capture(match, text, rule_index)
            if capture:
                found = True
                yield capture
        if not found and self.folded_regex is not None:
            for match in self.folded_regex.finditer(strip_accents(text)):
                capture = self._capture(match, text, rule_index)
                if capture:
                    yield capture


@dataclass(frozen=True)
class BillPattern:
    """
    Declarative description of one bill category in one language.

    Attributes:
        id: Identifier, unique within its language
        name: Human readable name
        language: Language code
        vendor: Optional vendor hint
        subject_patterns: Rules matched against a subject/title
        content_patterns: Ordered rules per field
        custom_patterns: Ordered rules per free-form custom field
        confirmation_keywords: Terms that corroborate the pattern
        source: Where the pattern was defined

    Raises:
        PatternDefinitionError: On an unsupported language or when no
            amount rule is defined.
    """
    id: str
    name: str
    language: str
    vendor: Optional[VendorHint] = None
    subject_patterns: Tuple[Pattern, ...] = ()
    content_patterns: Mapping[FieldName, Tuple[FieldRule, ...]] = field(default_factory=dict)
    custom_patterns: Mapping[str, Tuple[FieldRule, ...]] = field(default_factory=dict)
    confirmation_keywords: Tuple[str, ...] = ()
    source: Optional[str] = None

    def __post_init__(self):
        if not self.id:
            raise PatternDefinitionError("<unnamed>", "pattern id is empty", self.source)
        if self.language not in SUPPORTED_LANGUAGES:
            raise PatternDefinitionError(
                self.id, f"unsupported language '{self.language}'", self.source
            )
        if not self.content_patterns.get(FieldName.AMOUNT):
            raise PatternDefinitionError(self.id, "no amount rule defined", self.source)

    @property
    def fields(self) -> Tuple[FieldName, ...]:
        """Fields this pattern has rules for, amount first."""
        return tuple(self.content_patterns)

    def rules_for(self, field_name: FieldName) -> Tuple[FieldRule, ...]:
        return self.content_patterns.get(field_name, ())

    def to_dict(self) -> Dict[str, object]:
        """Summary used in debug traces and listings."""
        return {
            'id': self.id,
            'name': self.name,
            'language': self.language,
            'vendor': {
                'name': self.vendor.name,
                'category': self.vendor.category
            } if self.vendor else None,
            'fields': [f.value for f in self.fields],
            'custom_fields': list(self.custom_patterns),
            'subject_patterns': len(self.subject_patterns),
            'confirmation_keywords': list(self.confirmation_keywords)
        }

    def __repr__(self) -> str:
        return f"BillPattern(id={self.id!r}, language={self.language!r})"
