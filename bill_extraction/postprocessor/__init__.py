"""
Post-Processor Module for the Bill Extraction System.

Typed conversion, cleaning and validation of captured field values.
"""

from .processor import FieldPostProcessor, ProcessedFields, SERVICE_CATEGORIES
from .validators import DateValidator, AmountValidator

__all__ = [
    'FieldPostProcessor',
    'ProcessedFields',
    'SERVICE_CATEGORIES',
    'DateValidator',
    'AmountValidator',
]
