"""
Pattern Loader Module.

Reads BillPattern records from YAML files. A file declares its language
once and lists patterns:

    language: hu
    patterns:
      - id: mvm-bill-hu
        name: MVM Electricity Bill
        vendor: {name: MVM, category: electricity}
        subject: ['mvm', 'villanyszámla']
        confirmation_keywords: [mvm, áram]
        fields:
          amount:
            - 'fizetend[őo]\\s+[öo]sszeg\\W{0,3}${amount}\\s*${currency}'
          account_number:
            - {regex: 'ügyfélszám\\W{0,3}([\\d ]+)', remove_spaces: true}
        custom:
          meter_id: ['mérő\\s*azonosító\\W{0,3}(\\w+)']

"${name}" references are replaced by the language's value shapes
(language/data/<code>.yaml) before compiling.

Author: ML Engineering Team
"""

import re
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Union

import yaml

from config import get_config
from bill_extraction.utils.logger import get_logger
from bill_extraction.utils.exceptions import PatternDefinitionError
from bill_extraction.language.resources import LanguageResources, expand_shapes, REGEX_FLAGS
from .bill_pattern import BillPattern, FieldName, FieldRule, VendorHint
from .registry import PatternRegistry

# Initialize module logger
logger = get_logger(__name__)

DATA_DIR = Path(__file__).parent / "data"


def _shapes_for(
    language: str,
    shapes_by_language: Optional[Mapping[str, Mapping[str, str]]]
) -> Mapping[str, str]:
    if shapes_by_language is not None and language in shapes_by_language:
        return shapes_by_language[language]
    return LanguageResources.load(language).shapes


def _compile_rules(
    pattern_id: str,
    field_name: str,
    entries: Any,
    shapes: Mapping[str, str],
    source: str
) -> tuple:
    if isinstance(entries, (str, dict)):
        entries = [entries]

    rules = []
    for entry in entries or []:
        if isinstance(entry, str):
            entry = {'regex': entry}
        if not isinstance(entry, dict) or 'regex' not in entry:
            raise PatternDefinitionError(
                pattern_id, f"rule for '{field_name}' has no regex", source
            )
        try:
            rules.append(FieldRule.compile(
                expand_shapes(str(entry['regex']), shapes),
                group=entry.get('group'),
                remove_spaces=bool(entry.get('remove_spaces', False))
            ))
        except re.error as e:
            raise PatternDefinitionError(
                pattern_id, f"invalid regex for '{field_name}': {e}", source
            )
    return tuple(rules)


def build_pattern(
    data: Dict[str, Any],
    language: str,
    shapes: Mapping[str, str],
    source: str = "<dict>"
) -> BillPattern:
    """
    Build one BillPattern from its parsed YAML record.

    Raises:
        PatternDefinitionError: On unknown fields, bad regexes or a
            missing amount rule.
    """
    pattern_id = str(data.get('id') or '')
    if not pattern_id:
        raise PatternDefinitionError("<unnamed>", "pattern id is missing", source)

    language = data.get('language', language)

    content = {}
    for field_name, entries in (data.get('fields') or {}).items():
        try:
            key = FieldName.parse(field_name)
        except ValueError:
            raise PatternDefinitionError(
                pattern_id,
                f"unknown field '{field_name}' (declare it under 'custom')",
                source
            )
        content[key] = _compile_rules(pattern_id, field_name, entries, shapes, source)

    custom = {
        str(name): _compile_rules(pattern_id, name, entries, shapes, source)
        for name, entries in (data.get('custom') or {}).items()
    }

    try:
        subject = tuple(
            re.compile(expand_shapes(str(s), shapes), REGEX_FLAGS)
            for s in data.get('subject') or []
        )
    except re.error as e:
        raise PatternDefinitionError(pattern_id, f"invalid subject regex: {e}", source)

    vendor = data.get('vendor')
    vendor_hint = VendorHint(name=vendor.get('name'), category=vendor.get('category')) if vendor else None

    return BillPattern(
        id=pattern_id,
        name=str(data.get('name', pattern_id)),
        language=language,
        vendor=vendor_hint,
        subject_patterns=subject,
        content_patterns=content,
        custom_patterns=custom,
        confirmation_keywords=tuple(str(k) for k in data.get('confirmation_keywords') or []),
        source=source
    )


def load_pattern_file(
    path: Union[str, Path],
    shapes_by_language: Optional[Mapping[str, Mapping[str, str]]] = None
) -> List[BillPattern]:
    """
    Load every pattern of one YAML file.

    Args:
        path: Pattern file.
        shapes_by_language: Value shapes per language. If None, the
                            bundled language tables are used.

    Returns:
        Patterns in file order.

    Raises:
        PatternDefinitionError: If the file or one of its patterns is invalid.
    """
    path = Path(path)
    with open(path, 'r', encoding='utf-8') as f:
        try:
            data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise PatternDefinitionError("<file>", f"invalid YAML: {e}", str(path))

    language = data.get('language')
    if not language:
        raise PatternDefinitionError("<file>", "file declares no language", str(path))

    shapes = _shapes_for(language, shapes_by_language)
    patterns = [
        build_pattern(record, language, shapes, source=str(path))
        for record in data.get('patterns') or []
    ]
    logger.debug(f"Parsed {len(patterns)} patterns from {path}")
    return patterns


def load_default_registry(
    shapes_by_language: Optional[Mapping[str, Mapping[str, str]]] = None,
    extra_directories: Optional[List[Union[str, Path]]] = None
) -> PatternRegistry:
    """
    Registry with the bundled patterns plus any configured extra directories.

    Args:
        shapes_by_language: Value shapes per language.
        extra_directories: Additional pattern directories. If None, uses
                           config (patterns.extra_directories).

    Returns:
        Populated PatternRegistry.
    """
    if extra_directories is None:
        extra_directories = get_config("patterns.extra_directories", []) or []

    registry = PatternRegistry.from_directory(DATA_DIR, shapes_by_language)
    for directory in extra_directories:
        PatternRegistry.from_directory(directory, shapes_by_language, registry=registry)

    logger.info(f"Pattern registry ready: {registry!r}")
    return registry
