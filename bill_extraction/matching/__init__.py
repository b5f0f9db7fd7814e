"""
Matching Module for the Bill Extraction System.

Rule-based field capture, 2-D positional label/value association and
confidence scoring.
"""

from .field_matcher import FieldMatcher, PatternMatch
from .positional_matcher import PositionalMatcher
from .confidence import ConfidenceScorer, ConfidenceBreakdown, EvidenceKind

__all__ = [
    'FieldMatcher',
    'PatternMatch',
    'PositionalMatcher',
    'ConfidenceScorer',
    'ConfidenceBreakdown',
    'EvidenceKind',
]
