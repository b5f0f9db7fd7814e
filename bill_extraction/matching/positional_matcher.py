"""
Positional Matcher Module.

Associates a field label with its value using the 2-D layout of the
decoded page. Bills put values either to the right of their label or
below it; the matcher looks inside a rectangular window around each
label item, keeps the items whose text has the field's value shape and
picks the best placed one.

Every distance, bonus and window size comes from the "positional"
configuration section.

Author: ML Engineering Team
"""

import math
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from config import get_config
from bill_extraction.utils.logger import get_logger
from bill_extraction.input_handler.document import PositionItem
from bill_extraction.language.base import LanguageProcessor
from bill_extraction.language.resources import first_group
from bill_extraction.patterns.bill_pattern import FieldCapture, FieldName

# Initialize module logger
logger = get_logger(__name__)


@dataclass
class Candidate:
    """A value item considered for a label."""
    value: str
    score: float
    order: int
    item: PositionItem


@dataclass
class LabelHit:
    """A label item and the text following its cue."""
    item: PositionItem
    order: int
    remainder: str
    highlighted: bool


class PositionalMatcher:
    """
    2-D proximity matcher for label/value pairs.

    Attributes:
        processor: Language processor providing label cues and value filters
        window: (x, y) search window around a label
        highlighted_window: Window used for highlighted summary labels
        right_bonus: Score for values right of the label
        below_bonus: Score for values below the label
        distance_weight: Penalty per unit of distance

    Example:
        >>> matcher = PositionalMatcher(HungarianProcessor())
        >>> captures = matcher.match(document.position_items)
        >>> captures[FieldName.AMOUNT].value
        '6.364'
    """

    TARGET_FIELDS = (
        FieldName.AMOUNT,
        FieldName.DUE_DATE,
        FieldName.INVOICE_NUMBER,
        FieldName.ACCOUNT_NUMBER,
    )

    def __init__(
        self,
        processor: LanguageProcessor,
        window: Optional[Tuple[float, float]] = None,
        highlighted_window: Optional[Tuple[float, float]] = None,
        right_bonus: Optional[float] = None,
        below_bonus: Optional[float] = None,
        distance_weight: Optional[float] = None,
        y_axis: Optional[str] = None,
        stem_threshold: Optional[float] = None
    ) -> None:
        self.processor = processor
        self.window = window or (
            get_config("positional.window.x", 300),
            get_config("positional.window.y", 30)
        )
        self.highlighted_window = highlighted_window or (
            get_config("positional.highlighted_window.x", 250),
            get_config("positional.highlighted_window.y", 60)
        )
        self.right_bonus = right_bonus if right_bonus is not None else get_config(
            "positional.bonus.right", 10
        )
        self.below_bonus = below_bonus if below_bonus is not None else get_config(
            "positional.bonus.below", 5
        )
        self.distance_weight = distance_weight if distance_weight is not None else get_config(
            "positional.distance_weight", 0.01
        )
        y_axis = y_axis or get_config("positional.y_axis", "down")
        self.y_sign = -1 if str(y_axis).lower() == "up" else 1
        self.stem_threshold = stem_threshold if stem_threshold is not None else get_config(
            "extraction.stem_match_threshold", 0.5
        )

    def match(
        self,
        items: Sequence[PositionItem],
        fields: Optional[Iterable[FieldName]] = None
    ) -> Dict[FieldName, FieldCapture]:
        """
        Find values for the target fields.

        Args:
            items: Position items in document order.
            fields: Fields to look for (TARGET_FIELDS by default).

        Returns:
            Field to capture; highlighted-label matches are flagged.
        """
        captures = {}
        if not items:
            return captures

        for field_name in fields or self.TARGET_FIELDS:
            capture = self.match_field(items, field_name)
            if capture:
                captures[field_name] = capture
        return captures

    def match_field(
        self,
        items: Sequence[PositionItem],
        field_name: FieldName
    ) -> Optional[FieldCapture]:
        """Best value for one field, highlighted labels first."""
        highlighted = self._labels(items, field_name, highlighted=True)
        best = self._best_for_labels(items, highlighted, field_name, self.highlighted_window)
        if best:
            logger.debug(f"Positional {field_name.value} <- '{best.value}' (highlighted)")
            return FieldCapture(value=best.value, highlighted=True)

        labels = self._labels(items, field_name, highlighted=False)
        best = self._best_for_labels(items, labels, field_name, self.window)
        if best:
            logger.debug(f"Positional {field_name.value} <- '{best.value}' (score {best.score:.2f})")
            return FieldCapture(value=best.value)
        return None

    def _labels(
        self,
        items: Sequence[PositionItem],
        field_name: FieldName,
        highlighted: bool
    ) -> List[LabelHit]:
        resources = self.processor.resources
        hits = []
        for order, item in enumerate(items):
            if highlighted:
                for label in resources.highlighted_labels:
                    if label.field != field_name.value:
                        continue
                    m = label.regex.search(item.text)
                    if m:
                        hits.append(LabelHit(item, order, item.text[m.end():], True))
                        break
                continue

            if not self.processor.is_label(item.text, field_name.value, self.stem_threshold):
                continue
            cue = resources.label_cues.get(field_name.value)
            m = cue.regex.search(item.text) if cue and cue.regex else None
            if m:
                remainder = item.text[m.end():]
            elif ':' in item.text:
                remainder = item.text.split(':', 1)[1]
            else:
                remainder = ""
            hits.append(LabelHit(item, order, remainder, False))
        return hits

    def _filter(self, text: str, field_name: FieldName) -> Optional[str]:
        value_filter = self.processor.resources.value_filters.get(field_name.value)
        if value_filter is None:
            stripped = text.strip(" :")
            return stripped or None
        return first_group(value_filter.search(text))

    def _best_for_labels(
        self,
        items: Sequence[PositionItem],
        labels: List[LabelHit],
        field_name: FieldName,
        window: Tuple[float, float]
    ) -> Optional[Candidate]:
        best: Optional[Candidate] = None
        for label in labels:
            for candidate in self._candidates(items, label, field_name, window):
                if best is None or (candidate.score, -candidate.order) > (best.score, -best.order):
                    best = candidate
        return best

    def _candidates(
        self,
        items: Sequence[PositionItem],
        label: LabelHit,
        field_name: FieldName,
        window: Tuple[float, float]
    ) -> List[Candidate]:
        candidates = []
        anchor = label.item

        # The label item may carry its own value ("Összesen: 6.364 Ft")
        own_value = self._filter(label.remainder, field_name) if label.remainder else None
        if own_value:
            candidates.append(Candidate(own_value, self.right_bonus, label.order, anchor))

        window_x, window_y = window
        tolerance = max(anchor.height / 2.0, 1.0)

        for order, item in enumerate(items):
            if order == label.order or item.page != anchor.page:
                continue
            dx = item.x - anchor.x
            dy = (item.y - anchor.y) * self.y_sign
            if abs(dx) > window_x or abs(dy) > window_y:
                continue

            value = self._filter(item.text, field_name)
            if not value:
                continue

            score = -self.distance_weight * math.hypot(dx, dy)
            if item.x >= anchor.right - tolerance:
                score += self.right_bonus
            if dy > tolerance:
                score += self.below_bonus
            candidates.append(Candidate(value, score, order, item))
        return candidates
