"""
Unit tests for bill pattern loading, the registry and field matching.
"""

import pytest

from bill_extraction.patterns import (
    FieldName,
    PatternRegistry,
    build_pattern,
    load_pattern_file,
)
from bill_extraction.matching import FieldMatcher
from bill_extraction.utils.exceptions import DuplicatePatternError, PatternDefinitionError


def water_pattern(hu, pattern_id="water-hu"):
    return build_pattern({
        'id': pattern_id,
        'name': 'Water Bill',
        'vendor': {'name': 'Vízmű Zrt.', 'category': 'water'},
        'confirmation_keywords': ['vízmű'],
        'fields': {
            'amount': ['fizetendő\\s+összeg\\s*:?\\s*${amount}\\s*${currency}'],
            'due_date': [{'regex': 'határidő\\s*:?\\s*${date}'}],
            'account_number': [{'regex': 'ügyfélszám\\s*:?\\s*([\\d ]+\\d)', 'remove_spaces': True}],
        },
        'custom': {'meter_id': ['mérő\\s*:?\\s*(\\w+)']},
    }, 'hu', hu.resources.shapes)


class TestPatternLoading:
    """Test building patterns from records and files."""

    def test_build_pattern(self, hu):
        pattern = water_pattern(hu)

        assert pattern.id == "water-hu"
        assert pattern.language == "hu"
        assert pattern.vendor.category == "water"
        assert pattern.fields[0] == FieldName.AMOUNT
        assert "meter_id" in pattern.custom_patterns

    def test_unknown_field(self, hu):
        """Fields outside the closed set must be declared as custom."""
        with pytest.raises(PatternDefinitionError):
            build_pattern({
                'id': 'bad',
                'fields': {'amount': ['(\\d+) Ft'], 'meter_id': ['(\\w+)']},
            }, 'hu', hu.resources.shapes)

    def test_missing_amount_rule(self, hu):
        with pytest.raises(PatternDefinitionError):
            build_pattern({'id': 'bad', 'fields': {'due_date': ['${date}']}}, 'hu', hu.resources.shapes)

    def test_invalid_regex(self, hu):
        with pytest.raises(PatternDefinitionError):
            build_pattern({'id': 'bad', 'fields': {'amount': ['(unclosed']}}, 'hu', hu.resources.shapes)

    def test_unsupported_language(self, hu):
        with pytest.raises(PatternDefinitionError):
            build_pattern({'id': 'bad', 'fields': {'amount': ['(\\d+)']}}, 'de', hu.resources.shapes)

    def test_load_pattern_file(self, tmp_path, hu):
        """A YAML file declares its language once."""
        path = tmp_path / "extra.yaml"
        path.write_text(
            "language: hu\n"
            "patterns:\n"
            "  - id: gas-hu\n"
            "    confirmation_keywords: [földgáz]\n"
            "    fields:\n"
            "      amount: ['fizetendő\\s*:?\\s*${amount}\\s*${currency}']\n",
            encoding="utf-8"
        )

        patterns = load_pattern_file(path, {"hu": hu.resources.shapes})

        assert [p.id for p in patterns] == ["gas-hu"]
        assert patterns[0].source == str(path)

    def test_file_without_language(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("patterns: []\n", encoding="utf-8")

        with pytest.raises(PatternDefinitionError):
            load_pattern_file(path)


class TestPatternRegistry:
    """Test PatternRegistry ordering and uniqueness."""

    def test_duplicate_id(self, hu):
        registry = PatternRegistry([water_pattern(hu)])

        with pytest.raises(DuplicatePatternError):
            registry.register(water_pattern(hu))

    def test_registration_order(self, hu):
        registry = PatternRegistry()
        registry.register_all([water_pattern(hu, "first"), water_pattern(hu, "second")])

        assert [p.id for p in registry.get_by_language("hu")] == ["first", "second"]
        assert registry.order_of(registry.get("hu", "second")) == 1
        assert registry.get_by_language("en") == ()

    def test_bundled_registry(self, registry):
        """The bundled tables cover both languages."""
        assert set(registry.languages()) == {"hu", "en"}
        assert registry.get("hu", "mvm-bill-hu") is not None
        assert ("en", "netflix-bill") in registry
        assert registry.order_of(registry.get_by_language("hu")[0]) == 0

    def test_from_directory_extends(self, tmp_path, hu, registry):
        path = tmp_path / "extra.yaml"
        path.write_text(
            "language: hu\n"
            "patterns:\n"
            "  - id: gas-hu\n"
            "    fields:\n"
            "      amount: ['${amount}\\s*${currency}']\n",
            encoding="utf-8"
        )
        extended = PatternRegistry(registry.get_all())
        PatternRegistry.from_directory(tmp_path, {"hu": hu.resources.shapes}, registry=extended)

        assert len(extended) == len(registry) + 1
        assert extended.get_by_language("hu")[-1].id == "gas-hu"


class TestFieldMatcher:
    """Test rule application, gating and segmentation."""

    def test_fires_on_confirmation_keyword(self, registry, mvm_text, unrelated_text):
        matcher = FieldMatcher()
        mvm = registry.get("hu", "mvm-bill-hu")

        assert matcher.fires(mvm_text, mvm)
        assert not matcher.fires(unrelated_text, mvm)

    def test_fires_on_subject(self, registry):
        matcher = FieldMatcher()
        mvm = registry.get("hu", "mvm-bill-hu")

        assert matcher.fires("semmi", mvm, subject="Villanyszámla 2025")

    def test_fires_accent_insensitive(self, hu):
        assert FieldMatcher().fires("VIZMU ERTESITO", water_pattern(hu))

    def test_keywords_match_words(self, registry):
        """Keywords do not fire inside unrelated longer words."""
        matcher = FieldMatcher()
        insurance = registry.get("hu", "insurance-bill-hu")
        digi = registry.get("hu", "digi-bill-hu")

        assert not matcher.fires("Kártya értesítő", insurance)
        assert not matcher.fires("Digitális átállás", digi)
        assert matcher.fires("DIGI Kft. értesítő", digi)
        assert matcher.fires("Tájékoztató a biztosításról", insurance)

    def test_match(self, registry, hu, mvm_text):
        captures = FieldMatcher().match(hu.normalize(mvm_text), registry.get("hu", "mvm-bill-hu"))

        assert captures[FieldName.AMOUNT].value == "6.364"
        assert captures[FieldName.DUE_DATE].value == "2025.05.05."
        assert captures[FieldName.INVOICE_NUMBER].value == "845602160521"
        assert captures[FieldName.BILLING_PERIOD].value == "2025.03.01 - 2025.03.31"

    def test_remove_spaces_and_custom(self, hu):
        text = "Vízmű\nÜgyfélszám: 12 345 678\nMérő: A1234\nFizetendő összeg: 4.100 Ft"
        pattern = water_pattern(hu)
        matcher = FieldMatcher()

        assert matcher.match(text, pattern)[FieldName.ACCOUNT_NUMBER].value == "12345678"
        assert matcher.match_custom(text, pattern)["meter_id"].value == "A1234"

    def test_accentless_text(self, hu):
        """Accented rules still match text that lost its accents."""
        text = "Fizetendo osszeg: 4.100 Ft"
        capture = FieldMatcher().match(text, water_pattern(hu))[FieldName.AMOUNT]

        assert capture.value == "4.100"
        assert text[capture.start:capture.end] == "4.100"

    def test_segment_two_bills(self, registry, two_bills_text):
        matcher = FieldMatcher()
        utility = registry.get("hu", "utility-bill-hu")

        spans = matcher.segment(two_bills_text, utility)
        matches = matcher.match_bills(two_bills_text, utility)

        assert len(spans) == 2
        assert spans[0][0] == 0 and spans[-1][1] == len(two_bills_text)
        assert [m.amount.value for m in matches] == ["12.500", "8.200"]
        assert two_bills_text[matches[1].amount.start:matches[1].amount.end] == "8.200"

    def test_repeated_amount_is_one_bill(self, registry):
        text = "Fizetendő összeg: 6.364 Ft\nÖsszesítő\nFizetendő összeg: 6.364 Ft"
        spans = FieldMatcher().segment(text, registry.get("hu", "utility-bill-hu"))

        assert spans == [(0, len(text))]
