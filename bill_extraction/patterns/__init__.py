"""
Patterns Module for the Bill Extraction System.

Declarative bill patterns, the registry that holds them and the YAML
loader that builds them.
"""

from .bill_pattern import (
    FieldName,
    DATE_FIELDS,
    SUPPORTED_LANGUAGES,
    VendorHint,
    FieldRule,
    FieldCapture,
    BillPattern,
)
from .registry import PatternRegistry
from .loader import build_pattern, load_pattern_file, load_default_registry

__all__ = [
    'FieldName',
    'DATE_FIELDS',
    'SUPPORTED_LANGUAGES',
    'VendorHint',
    'FieldRule',
    'FieldCapture',
    'BillPattern',
    'PatternRegistry',
    'build_pattern',
    'load_pattern_file',
    'load_default_registry',
]
