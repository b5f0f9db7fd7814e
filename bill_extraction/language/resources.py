"""
Language Resources Module.

Loads the per-language rule tables (language/data/<code>.yaml) that drive
normalization, stemming, label detection and value filtering. All
languages share one table layout, so adding a language means adding a
YAML file rather than new matching code.

Author: ML Engineering Team
"""

import re
from dataclasses import dataclass, field
from pathlib import Path
from string import Template
from typing import Dict, List, Optional, Tuple, Pattern, Any, Mapping

import yaml

from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.exceptions import UnsupportedLanguageError

# Initialize module logger
logger = get_logger(__name__)

DATA_DIR = Path(__file__).parent / "data"

REGEX_FLAGS = re.IGNORECASE | re.MULTILINE


def expand_shapes(source: str, shapes: Mapping[str, str]) -> str:
    """
    Substitute ${shape} references in a regex source.

    Unknown references and bare "$" anchors are left untouched.

    Example:
        >>> expand_shapes(r'fizetend[őo]\\s+${amount}', {'amount': r'(\\d+)'})
        'fizetend[őo]\\\\s+(\\\\d+)'
    """
    return Template(source).safe_substitute(shapes)


def compile_rule(source: str, shapes: Mapping[str, str], flags: int = REGEX_FLAGS) -> Pattern:
    """Expand shapes and compile a rule regex."""
    return re.compile(expand_shapes(source, shapes), flags)


@dataclass(frozen=True)
class LabelCue:
    """
    How a field label is recognised.

    Attributes:
        field: Field the label introduces
        stems: Stems whose presence ratio marks a label line
        regex: Literal label regex, matched in addition to the stems
    """
    field: str
    stems: Tuple[str, ...] = ()
    regex: Optional[Pattern] = None


@dataclass(frozen=True)
class HighlightedLabel:
    """A label printed in a bill's highlighted summary box."""
    field: str
    regex: Pattern


@dataclass
class LanguageResources:
    """
    Parsed rule table of one language.

    Attributes:
        code: ISO language code
        name: Display name
        charset: Letters characteristic of the language
        thousands_dot: Whether "6.364" means six thousand
        decimal_comma: Whether "123,45" carries a decimal comma
        month_first: Whether NN/NN/YYYY dates are month-first
        shapes: Named regex fragments
        abbreviations: (regex, replacement) pairs applied by normalize
        month_abbreviations: Abbreviation to full month name
        abbreviation_requires_dot: Only expand abbreviations followed by "."
        months: Full month name (lowercase) to month number
        detection_keywords: Keywords for language detection
        keyword_stems: Stems feeding the confidence keyword bonus
        stems: Stem to surface forms dictionary
        label_cues: Field to LabelCue
        highlighted_labels: Summary box labels
        value_filters: Field to compiled value regex
        vendor_stop_labels: Labels that terminate a vendor name
        fallback_patterns: Field to last-resort regexes
        service_types: Service type to indicative keywords
    """
    code: str
    name: str = ""
    charset: str = ""
    thousands_dot: bool = False
    decimal_comma: bool = False
    month_first: bool = False
    shapes: Dict[str, str] = field(default_factory=dict)
    abbreviations: List[Tuple[Pattern, str]] = field(default_factory=list)
    month_abbreviations: Dict[str, str] = field(default_factory=dict)
    abbreviation_requires_dot: bool = False
    months: Dict[str, int] = field(default_factory=dict)
    detection_keywords: List[str] = field(default_factory=list)
    keyword_stems: List[str] = field(default_factory=list)
    stems: Dict[str, List[str]] = field(default_factory=dict)
    label_cues: Dict[str, LabelCue] = field(default_factory=dict)
    highlighted_labels: List[HighlightedLabel] = field(default_factory=list)
    value_filters: Dict[str, Pattern] = field(default_factory=dict)
    vendor_stop_labels: List[str] = field(default_factory=list)
    fallback_patterns: Dict[str, List[Pattern]] = field(default_factory=dict)
    service_types: Dict[str, List[str]] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any], source: str = "<dict>") -> 'LanguageResources':
        """
        Build resources from a parsed YAML document.

        Raises:
            ValueError: If the table has no language code.
            re.error: If one of its regexes does not compile.
        """
        code = data.get('code')
        if not code:
            raise ValueError(f"Language table without 'code': {source}")

        shapes = {k: str(v) for k, v in (data.get('shapes') or {}).items()}
        numbers = data.get('numbers') or {}
        dates = data.get('dates') or {}
        month_abbr = data.get('month_abbreviations') or {}

        label_cues = {}
        for field_name, cue in (data.get('label_cues') or {}).items():
            regex = cue.get('regex')
            label_cues[field_name] = LabelCue(
                field=field_name,
                stems=tuple(cue.get('stems') or ()),
                regex=compile_rule(regex, shapes) if regex else None
            )

        return cls(
            code=code,
            name=data.get('name', code),
            charset=data.get('charset') or "",
            thousands_dot=bool(numbers.get('thousands_dot', False)),
            decimal_comma=bool(numbers.get('decimal_comma', False)),
            month_first=bool(dates.get('month_first', False)),
            shapes=shapes,
            abbreviations=[
                (re.compile(pattern), replacement)
                for pattern, replacement in data.get('abbreviations') or []
            ],
            month_abbreviations={
                str(k).lower(): str(v) for k, v in (month_abbr.get('forms') or {}).items()
            },
            abbreviation_requires_dot=bool(month_abbr.get('requires_dot', False)),
            months={str(k).lower(): int(v) for k, v in (data.get('months') or {}).items()},
            detection_keywords=[str(k).lower() for k in data.get('detection_keywords') or []],
            keyword_stems=list(data.get('keyword_stems') or []),
            stems={str(k): [str(f) for f in v] for k, v in (data.get('stems') or {}).items()},
            label_cues=label_cues,
            highlighted_labels=[
                HighlightedLabel(field=entry['field'], regex=compile_rule(entry['regex'], shapes))
                for entry in data.get('highlighted_labels') or []
            ],
            value_filters={
                field_name: compile_rule(regex, shapes)
                for field_name, regex in (data.get('value_filters') or {}).items()
            },
            vendor_stop_labels=list(data.get('vendor_stop_labels') or []),
            fallback_patterns={
                field_name: [compile_rule(regex, shapes) for regex in regexes]
                for field_name, regexes in (data.get('fallback_patterns') or {}).items()
            },
            service_types={
                service: [str(k).lower() for k in keywords]
                for service, keywords in (data.get('service_types') or {}).items()
            },
        )

    @classmethod
    def load(cls, code: str, data_dir: Optional[Path] = None) -> 'LanguageResources':
        """
        Load the rule table for a language code.

        Args:
            code: Language code, e.g. "hu".
            data_dir: Directory holding <code>.yaml; bundled tables by default.

        Raises:
            UnsupportedLanguageError: If no table exists for the code.
        """
        data_dir = Path(data_dir) if data_dir else DATA_DIR
        path = data_dir / f"{code}.yaml"
        if not path.exists():
            available = sorted(p.stem for p in data_dir.glob("*.yaml"))
            raise UnsupportedLanguageError(code, available)

        with open(path, 'r', encoding='utf-8') as f:
            data = yaml.safe_load(f) or {}

        resources = cls.from_dict(data, source=str(path))
        logger.debug(
            f"Loaded language table '{code}': {len(resources.stems)} stems, "
            f"{len(resources.label_cues)} label cues"
        )
        return resources


def first_group(match) -> Optional[str]:
    """
    Return the first non-empty capture group of a match.

    Falls back to the whole match for regexes without groups.
    """
    if match is None:
        return None
    if match.re.groups == 0:
        value = match.group(0)
        return value if value and value.strip() else None
    for value in match.groups():
        if value and value.strip():
            return value
    return None


def first_group_span(match) -> Optional[Tuple[int, int]]:
    """Span of the group returned by first_group()."""
    if match is None:
        return None
    if match.re.groups == 0:
        return match.span(0)
    for index, value in enumerate(match.groups(), start=1):
        if value and value.strip():
            return match.span(index)
    return None
