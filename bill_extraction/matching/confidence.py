"""
Confidence Scorer Module.

Turns per-field match evidence into one confidence value in [0, 1].
The score is additive: a bonus when the language's bill keywords are
well represented, plus one increment per matched field equal to the
field's weight times a multiplier for the kind of evidence that found
it. Adding a field never lowers the score.

Author: ML Engineering Team
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Mapping, Optional, Union

from config import get_config
from bill_extraction.utils.logger import get_logger
from bill_extraction.patterns.bill_pattern import FieldName

# Initialize module logger
logger = get_logger(__name__)


class EvidenceKind(Enum):
    """How a field value was found."""
    HIGHLIGHTED = "highlighted"
    PATTERN = "pattern"
    STEM_LINE = "stem_line"
    POSITIONAL = "positional"
    RAW = "raw"
    HINT = "hint"


DEFAULT_FIELD_WEIGHTS = {
    'amount': 0.3,
    'due_date': 0.25,
    'vendor': 0.15,
    'invoice_number': 0.15,
    'account_number': 0.1,
    'invoice_date': 0.05,
    'billing_period': 0.05,
    'custom': 0.02,
}

DEFAULT_EVIDENCE_MULTIPLIERS = {
    'highlighted': 1.2,
    'pattern': 1.0,
    'stem_line': 0.9,
    'positional': 0.8,
    'raw': 0.6,
    'hint': 0.5,
}


@dataclass
class ConfidenceBreakdown:
    """Score with its individual contributions, for debug traces."""
    total: float = 0.0
    keyword_bonus: float = 0.0
    contributions: Dict[str, float] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, object]:
        return {
            'total': round(self.total, 4),
            'keyword_bonus': self.keyword_bonus,
            'contributions': {k: round(v, 4) for k, v in self.contributions.items()}
        }


class ConfidenceScorer:
    """
    Additive confidence model.

    Attributes:
        keyword_ratio_threshold: Keyword ratio above which the bonus applies
        keyword_bonus: Bonus for a keyword-rich document
        field_weights: Importance of each field
        evidence_multipliers: Strength of each kind of evidence

    Example:
        >>> scorer = ConfidenceScorer()
        >>> scorer.score({'amount': EvidenceKind.PATTERN}, keyword_ratio=1.0)
        0.4
    """

    def __init__(
        self,
        keyword_ratio_threshold: Optional[float] = None,
        keyword_bonus: Optional[float] = None,
        field_weights: Optional[Mapping[str, float]] = None,
        evidence_multipliers: Optional[Mapping[str, float]] = None
    ) -> None:
        if keyword_ratio_threshold is None:
            keyword_ratio_threshold = get_config("confidence.keyword_ratio_threshold", 0.5)
        if keyword_bonus is None:
            keyword_bonus = get_config("confidence.keyword_bonus", 0.1)

        self.keyword_ratio_threshold = float(keyword_ratio_threshold)
        self.keyword_bonus = float(keyword_bonus)
        self.field_weights = dict(DEFAULT_FIELD_WEIGHTS)
        self.field_weights.update(
            field_weights if field_weights is not None
            else get_config("confidence.field_weights", {}) or {}
        )
        self.evidence_multipliers = dict(DEFAULT_EVIDENCE_MULTIPLIERS)
        self.evidence_multipliers.update(
            evidence_multipliers if evidence_multipliers is not None
            else get_config("confidence.evidence_multipliers", {}) or {}
        )

    def field_increment(self, field_name: Union[str, FieldName], kind: EvidenceKind) -> float:
        """Contribution of one matched field (unknown fields count as custom)."""
        key = field_name.value if isinstance(field_name, FieldName) else str(field_name)
        weight = self.field_weights.get(key, self.field_weights.get('custom', 0.0))
        return max(weight, 0.0) * max(self.evidence_multipliers.get(kind.value, 1.0), 0.0)

    def breakdown(
        self,
        evidence: Mapping[Union[str, FieldName], EvidenceKind],
        keyword_ratio: float = 0.0
    ) -> ConfidenceBreakdown:
        """Score plus per-field contributions."""
        result = ConfidenceBreakdown()
        if keyword_ratio > self.keyword_ratio_threshold:
            result.keyword_bonus = self.keyword_bonus

        total = result.keyword_bonus
        for field_name, kind in evidence.items():
            key = field_name.value if isinstance(field_name, FieldName) else str(field_name)
            increment = self.field_increment(key, kind)
            result.contributions[key] = increment
            total += increment

        result.total = min(max(total, 0.0), 1.0)
        return result

    def score(
        self,
        evidence: Mapping[Union[str, FieldName], EvidenceKind],
        keyword_ratio: float = 0.0
    ) -> float:
        """
        Confidence of one candidate bill.

        Args:
            evidence: Matched field to the kind of evidence behind it.
            keyword_ratio: Fraction of the language's bill keywords found.

        Returns:
            Confidence clamped to [0, 1].
        """
        return self.breakdown(evidence, keyword_ratio).total
