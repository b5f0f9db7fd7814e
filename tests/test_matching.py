"""
Unit tests for positional matching, confidence scoring and field
post-processing.
"""

from datetime import date

import pytest

from bill_extraction.input_handler.document import PositionItem
from bill_extraction.patterns import FieldName
from bill_extraction.matching import PositionalMatcher, ConfidenceScorer, EvidenceKind
from bill_extraction.postprocessor import FieldPostProcessor, AmountValidator, DateValidator


class TestPositionalMatcher:
    """Test label/value pairing on laid-out items."""

    def test_highlighted_summary_box(self, hu):
        """Values right of highlighted labels are flagged as highlighted."""
        items = [
            PositionItem("Fizetendő összeg:", x=40, y=100, width=90, height=10),
            PositionItem("6.364 Ft", x=150, y=100, width=40, height=10),
            PositionItem("Fizetési határidő:", x=40, y=120, width=90, height=10),
            PositionItem("2025.05.05.", x=150, y=120, width=50, height=10),
        ]
        captures = PositionalMatcher(hu).match(items)

        assert captures[FieldName.AMOUNT].value == "6.364"
        assert captures[FieldName.AMOUNT].highlighted
        assert captures[FieldName.DUE_DATE].value == "2025.05.05."
        assert FieldName.INVOICE_NUMBER not in captures

    def test_value_below_label(self, hu):
        items = [
            PositionItem("Számla sorszáma:", x=40, y=200, width=80, height=10),
            PositionItem("845602160521", x=40, y=215, width=70, height=10),
        ]
        capture = PositionalMatcher(hu).match_field(items, FieldName.INVOICE_NUMBER)

        assert capture.value == "845602160521"
        assert not capture.highlighted

    def test_nearest_value_wins(self, hu):
        items = [
            PositionItem("Számla sorszáma:", x=40, y=200, width=80, height=10),
            PositionItem("111122223333", x=300, y=200, width=70, height=10),
            PositionItem("845602160521", x=130, y=200, width=70, height=10),
        ]
        capture = PositionalMatcher(hu).match_field(items, FieldName.INVOICE_NUMBER)

        assert capture.value == "845602160521"

    def test_outside_window_ignored(self, hu):
        items = [
            PositionItem("Számla sorszáma:", x=40, y=200, width=80, height=10),
            PositionItem("845602160521", x=40, y=400, width=70, height=10),
        ]
        assert PositionalMatcher(hu).match(items) == {}

    def test_no_items(self, hu):
        assert PositionalMatcher(hu).match([]) == {}


class TestConfidenceScorer:
    """Test the additive confidence model."""

    def test_single_field_with_keyword_bonus(self):
        scorer = ConfidenceScorer()
        assert scorer.score({'amount': EvidenceKind.PATTERN}, keyword_ratio=1.0) == pytest.approx(0.4)

    def test_bonus_needs_ratio_above_threshold(self):
        scorer = ConfidenceScorer()
        assert scorer.score({'amount': EvidenceKind.PATTERN}, keyword_ratio=0.5) == pytest.approx(0.3)

    def test_adding_fields_never_lowers(self):
        scorer = ConfidenceScorer()
        evidence = {}
        previous = scorer.score(evidence)
        for name, kind in [
            (FieldName.AMOUNT, EvidenceKind.RAW),
            (FieldName.DUE_DATE, EvidenceKind.HINT),
            (FieldName.VENDOR, EvidenceKind.POSITIONAL),
            ("custom:pod", EvidenceKind.PATTERN),
        ]:
            evidence[name] = kind
            current = scorer.score(evidence)
            assert current >= previous
            previous = current

    def test_clamped_to_one(self):
        scorer = ConfidenceScorer()
        evidence = {name: EvidenceKind.HIGHLIGHTED for name in FieldName}
        assert scorer.score(evidence, keyword_ratio=1.0) == 1.0

    def test_empty_evidence(self):
        assert ConfidenceScorer().score({}) == 0.0

    def test_evidence_strength_order(self):
        scorer = ConfidenceScorer()
        increments = [
            scorer.field_increment(FieldName.AMOUNT, kind)
            for kind in (EvidenceKind.HIGHLIGHTED, EvidenceKind.PATTERN,
                         EvidenceKind.STEM_LINE, EvidenceKind.POSITIONAL,
                         EvidenceKind.RAW, EvidenceKind.HINT)
        ]
        assert increments == sorted(increments, reverse=True)

    def test_unknown_field_counts_as_custom(self):
        scorer = ConfidenceScorer()
        assert scorer.field_increment("custom:pod", EvidenceKind.PATTERN) == pytest.approx(0.02)

    def test_breakdown(self):
        breakdown = ConfidenceScorer(keyword_bonus=0.2).breakdown(
            {FieldName.AMOUNT: EvidenceKind.PATTERN}, keyword_ratio=0.9
        )
        assert breakdown.keyword_bonus == 0.2
        assert breakdown.to_dict()['contributions'] == {'amount': 0.3}


class TestFieldPostProcessor:
    """Test typed conversion and validation of captures."""

    def test_typed_values(self, hu):
        result = FieldPostProcessor().process({
            FieldName.AMOUNT: "6.364",
            FieldName.DUE_DATE: "2025.05.05.",
            FieldName.INVOICE_NUMBER: "845602160521.",
            "billing_period": "2025.03.01  -  2025.03.31",
        }, hu)

        assert result.fields == {
            'amount': 6364.0,
            'due_date': date(2025, 5, 5),
            'invoice_number': '845602160521',
            'billing_period': '2025.03.01 - 2025.03.31',
        }
        assert result.rejected == {}

    def test_invalid_values_are_dropped(self, hu):
        result = FieldPostProcessor().process({
            FieldName.AMOUNT: "0",
            FieldName.DUE_DATE: "1850.01.01",
            FieldName.INVOICE_NUMBER: "ABCDE",
        }, hu)

        assert result.fields == {}
        assert not result.has_amount
        assert result.rejected['due_date'] == "Year 1850 is too old"
        assert set(result.rejected) == {'amount', 'due_date', 'invoice_number'}

    def test_clean_vendor(self, hu):
        assert FieldPostProcessor.clean_vendor("MVM Next Zrt. Címe: Budapest", hu) == "MVM Next Zrt."
        assert FieldPostProcessor.clean_vendor(" - DIGI Kft. ,", hu) == "DIGI Kft."
        assert FieldPostProcessor.clean_vendor("X", hu) is None

    def test_infer_category(self, hu, en):
        assert FieldPostProcessor.infer_category("electricity", None, "", hu) == "electricity"
        assert FieldPostProcessor.infer_category(None, None, "Villamos energia fogyasztás", hu) == "electricity"
        assert FieldPostProcessor.infer_category("utilities", "City Water Dept", "", en) == "water"
        assert FieldPostProcessor.infer_category("utilities", None, "nothing here", en) == "utilities"


class TestValidators:
    """Test amount and date validators."""

    def test_amounts(self):
        validator = AmountValidator()

        assert validator.is_valid(6364.0)
        assert validator.validate(-100.0) == (False, 'Amount must be positive')
        assert not validator.is_valid(float('nan'))
        assert not validator.is_valid(None)
        assert not AmountValidator(max_value=100).is_valid(101.0)

    def test_dates(self):
        validator = DateValidator()

        assert validator.is_valid(date(2025, 5, 5))
        assert validator.validate(date(1850, 1, 1)) == (False, 'Year 1850 is too old')
        assert not validator.is_valid(date(2150, 1, 1))
        assert validator.is_due_after_invoice(date(2025, 4, 15), date(2025, 5, 5))[0]
        assert not validator.is_due_after_invoice(date(2025, 5, 5), date(2025, 4, 15))[0]
