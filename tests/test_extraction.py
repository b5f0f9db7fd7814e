"""
Tests for the extraction strategies and the orchestrator.
"""

import time
from datetime import date

import pytest

from bill_extraction.extraction import (
    BillRecord,
    ExtractionContext,
    ExtractionOrchestrator,
    ExtractionResult,
    ExtractionStrategy,
    PatternStrategy,
    RawRegexStrategy,
    SourceKind,
    StemPositionalStrategy,
    StrategyResult,
)
from bill_extraction.utils.exceptions import NoPatternMatchError


class SlowStrategy(ExtractionStrategy):
    """Strategy that outlives any reasonable timeout."""

    name = "slow"

    def extract(self, context, processor, text):
        time.sleep(0.5)
        return StrategyResult.of(self.name, [])


class TestOrchestrator:
    """End-to-end extraction through the strategy chain."""

    def test_mvm_bill(self, orchestrator, mvm_text):
        """A Hungarian MVM bill is read by the stem-positional strategy."""
        result = orchestrator.extract_text(mvm_text)

        assert result.success
        assert result.language == "hu"
        assert len(result.bills) == 1

        bill = result.bills[0]
        assert bill.amount == 6364.0
        assert bill.due_date == date(2025, 5, 5)
        assert bill.vendor == "MVM Next Energiakereskedelmi Zrt."
        assert bill.invoice_number == "845602160521"
        assert bill.account_number == "3000123456"
        assert bill.fields['invoice_date'] == date(2025, 4, 15)
        assert bill.extraction_method == "stem-positional"
        assert bill.vendor_category == "electricity"
        assert bill.pattern_id == "mvm-bill-hu"
        assert bill.confidence == pytest.approx(1.0)
        assert result.confidence == bill.confidence
        assert not result.is_low_confidence

    def test_debug_trace(self, orchestrator, mvm_text):
        result = orchestrator.extract_text(mvm_text, language="hu")
        trace = result.debug

        assert trace['final_state'] == "accepted"
        assert trace['strategy'] == "stem-positional"
        assert [stage['strategy'] for stage in trace['stages']] == ["stem-positional"]
        assert trace['stages'][0]['outcome'] == "accepted"
        assert 'elapsed_seconds' in trace

    def test_unrelated_text(self, orchestrator, unrelated_text):
        """Text without bill data yields an unsuccessful, empty result."""
        result = orchestrator.extract_text(unrelated_text)

        assert not result.success
        assert result.bills == []
        assert result.confidence == 0.0
        assert result.error == "No bill data found"
        assert result.debug['final_state'] == "exhausted"
        outcomes = [stage['outcome'] for stage in result.debug['stages']]
        assert outcomes == ["insufficient", "error", "insufficient"]

    @pytest.mark.parametrize("text", [
        "Lorem ipsum dolor sit amet 12345 consectetur",
        "Meeting moved. Total attendees: 45.",
        "Order 12345 ships tomorrow, sum of parts 300",
        "Payment of respect to the 1998 team",
    ])
    def test_prose_with_numbers(self, orchestrator, text):
        """Numbers near amount words are not amounts without a currency."""
        result = orchestrator.extract_text(text)

        assert not result.success
        assert result.bills == []
        assert result.confidence == 0.0
        assert result.debug['final_state'] == "exhausted"

    def test_custom_fields_reach_the_record(self, orchestrator, mvm_text):
        """Custom rules of the vendor pattern are applied by the accepted strategy."""
        result = orchestrator.extract_text(mvm_text + "\nPOD: HU000120F11S00000123")

        bill = result.bills[0]
        assert bill.extraction_method == "stem-positional"
        assert dict(bill.custom_fields) == {'pod': "HU000120F11S00000123"}

    def test_empty_text(self, orchestrator):
        result = orchestrator.extract_text("")

        assert not result.success
        assert result.bills == []

    def test_two_bills(self, orchestrator, two_bills_text):
        result = orchestrator.extract_text(two_bills_text, language="hu")

        assert result.success
        assert [bill.amount for bill in result.bills] == [12500.0, 8200.0]
        assert [bill.due_date for bill in result.bills] == [date(2025, 6, 10), date(2025, 7, 10)]
        assert len({bill.id for bill in result.bills}) == 2

    def test_partial_result_from_raw_bytes(self, orchestrator):
        """With nothing decoded, the raw scan still yields a low-confidence bill."""
        context = ExtractionContext(
            text="",
            language="en",
            file_name="broken.pdf",
            raw_bytes=b"%PDF-1.4 BT (Amount due: $45.00) Tj ET",
            source_kind=SourceKind.PDF
        )
        result = orchestrator.extract(context)

        assert result.success
        assert result.is_low_confidence
        assert result.bills[0].amount == 45.0
        assert result.bills[0].extraction_method == "raw-regex"
        assert result.bills[0].source.kind == SourceKind.RAW_SCAN
        assert result.debug['final_state'] == "exhausted"

    def test_unsupported_language_hint(self, orchestrator, mvm_text):
        """An unsupported hint falls back to detection."""
        context = ExtractionContext(text=mvm_text, language="de")
        assert orchestrator.resolve_language(context) == "hu"

    def test_timeout(self, registry, processors):
        """A strategy running past the time budget fails the call."""
        with ExtractionOrchestrator(
            registry, processors, strategies=[SlowStrategy(registry)], timeout=0.05
        ) as orchestrator:
            result = orchestrator.extract_text("Fizetendő összeg: 6.364 Ft", language="hu")

        assert not result.success
        assert result.error_type == "ExtractionTimeoutError"
        assert result.debug['final_state'] == "failed"

    def test_strategy_exception_is_reported(self, registry, processors):
        class BrokenStrategy(ExtractionStrategy):
            name = "broken"

            def extract(self, context, processor, text):
                raise RuntimeError("boom")

        with ExtractionOrchestrator(registry, processors, strategies=[BrokenStrategy(registry)]) as orchestrator:
            result = orchestrator.extract_text("anything", language="en")

        assert not result.success
        assert result.error == "boom"
        assert result.error_type == "RuntimeError"


class TestStrategies:
    """Test the strategies in isolation."""

    def test_pattern_strategy_selects_most_specific(self, registry, hu, mvm_text):
        """Overlapping candidates keep the most confident pattern."""
        text = hu.normalize(mvm_text)
        result = PatternStrategy(registry).extract(ExtractionContext(text=text), hu, text)

        assert len(result.bills) == 1
        bill = result.bills[0]
        assert bill.pattern_id == "mvm-bill-hu"
        assert bill.extraction_method == "pattern"
        assert bill.vendor == "MVM Next Energiakereskedelmi Zrt."
        assert bill.fields['billing_period'] == "2025.03.01 - 2025.03.31"
        assert "utility-bill-hu" in result.details['fired']

    def test_pattern_strategy_without_firing_pattern(self, registry, en, unrelated_text):
        with pytest.raises(NoPatternMatchError):
            PatternStrategy(registry).extract(ExtractionContext(text=unrelated_text), en, unrelated_text)

    def test_pattern_strategy_vendor_hint(self, registry, en):
        text = "Netflix\nTotal: $15.49\nNext billing date: June 1, 2025"
        result = PatternStrategy(registry).extract(ExtractionContext(text=text), en, text)

        bill = result.bills[0]
        assert bill.amount == 15.49
        assert bill.vendor == "Netflix"
        assert bill.vendor_category == "subscriptions"
        assert bill.due_date == date(2025, 6, 1)

    def test_label_on_its_own_line(self, registry, hu):
        """A label standing alone takes its value from the next line."""
        text = "Fizetendő összeg:\n6.364 Ft\nFizetési határidő:\n2025.05.05."
        captures = StemPositionalStrategy(registry).match_lines(text, hu)

        values = {name.value: capture.value for name, capture in captures.items()}
        assert values['amount'] == "6.364"
        assert values['due_date'] == "2025.05.05."

    def test_account_line_is_not_an_invoice_number(self, registry, en):
        text = "Account number: 55512345\nAmount due: $80.00\nDue date: 05/06/2025"
        captures = StemPositionalStrategy(registry).match_lines(text, en)

        values = {name.value: capture.value for name, capture in captures.items()}
        assert values['account_number'] == "55512345"
        assert 'invoice_number' not in values

    def test_invoice_line_is_not_an_account_number(self, registry, en):
        text = "Invoice number: INV-20250412\nTotal due: $80.00"
        captures = StemPositionalStrategy(registry).match_lines(text, en)

        values = {name.value: capture.value for name, capture in captures.items()}
        assert values['invoice_number'] == "INV-20250412"
        assert 'account_number' not in values

    def test_one_line_fills_one_id_field(self, registry, en):
        """A line claimed as the invoice number is not reused for the account."""
        text = "Customer invoice number: 12345\nTotal due: $80.00"
        captures = StemPositionalStrategy(registry).match_lines(text, en)

        values = {name.value: capture.value for name, capture in captures.items()}
        assert values['invoice_number'] == "12345"
        assert 'account_number' not in values

    def test_raw_regex_on_text(self, registry, en):
        text = "Payment received. Balance: $1,234.50"
        result = RawRegexStrategy(registry).extract(ExtractionContext(text=text), en, text)

        assert result.bills[0].amount == 1234.5
        assert result.bills[0].source.kind == SourceKind.TEXT
        assert result.confidence < 0.3


class TestRecords:
    """Test BillRecord and ExtractionResult invariants."""

    def test_record_is_immutable(self):
        record = BillRecord(id="x", fields={'amount': 1.0})

        with pytest.raises(TypeError):
            record.fields['amount'] = 2.0

    def test_to_dict_renders_dates(self):
        record = BillRecord(id="x", fields={'amount': 1.0, 'due_date': date(2025, 5, 5)}, confidence=0.5)
        assert record.to_dict()['fields'] == {'amount': 1.0, 'due_date': '2025-05-05'}

    def test_bills_without_amount_are_dropped(self):
        bills = [
            BillRecord(id="a", fields={'vendor': 'X'}, confidence=0.9),
            BillRecord(id="b", fields={'amount': 10.0}, confidence=0.3),
        ]
        result = ExtractionResult.from_bills(bills, language="en")

        assert result.success
        assert [bill.id for bill in result.bills] == ["b"]
        assert result.confidence == 0.3

    def test_no_bills_is_not_success(self):
        result = ExtractionResult.from_bills([])

        assert not result.success
        assert result.confidence == 0.0
        assert result.best_bill is None

    def test_result_to_dict(self):
        bills = [BillRecord(id="b", fields={'amount': 10.0}, confidence=0.1)]
        data = ExtractionResult.from_bills(bills, language="en").to_dict()

        assert data['success']
        assert data['low_confidence']
        assert data['bills'][0]['fields'] == {'amount': 10.0}
        assert 'error' not in data
