"""
Tests for the rule field table and operator legality.
"""

import pytest

from bookview.rules.fields import (
    BASE_OPERATORS,
    COMPARISON_OPERATORS,
    FIELD_SPECS,
    MULTI_VALUE_OPERATORS,
    OPERATOR_LABELS,
    TEXT_OPERATORS,
    FieldKind,
    RuleField,
    RuleOperator,
    is_legal,
    operators_for,
    resolve_field,
    resolve_operator,
)


class TestFieldTable:
    """Every field is declared exactly once with a sensible kind."""

    def test_every_field_has_a_spec(self):
        assert set(FIELD_SPECS) == set(RuleField)

    def test_every_operator_has_a_label(self):
        assert set(OPERATOR_LABELS) == set(RuleOperator)

    @pytest.mark.parametrize("field,kind", [
        ("publishedDate", FieldKind.DATE),
        ("dateFinished", FieldKind.DATE),
        ("pageCount", FieldKind.NUMBER),
        ("fileSize", FieldKind.NUMBER),
        ("amazonRating", FieldKind.DECIMAL),
        ("metadataScore", FieldKind.DECIMAL),
        ("title", None),
        ("readStatus", None),
    ])
    def test_field_kinds(self, field, kind):
        assert resolve_field(field).kind == kind

    def test_rating_maxima(self):
        assert resolve_field("personalRating").max == 10
        assert resolve_field("amazonRating").max == 5
        assert resolve_field("metadataScore").max == 100

    def test_resolve_unknown_names(self):
        assert resolve_field("colour") is None
        assert resolve_field(None) is None
        assert resolve_operator("roughly") is None
        assert resolve_operator("") is None


class TestOperatorLegality:
    """Which operators a rule author may pick for each field."""

    def test_base_operators_are_legal_everywhere(self):
        for spec in FIELD_SPECS.values():
            for op in BASE_OPERATORS:
                assert spec.allows(op), f"{op} should be legal for {spec.field}"

    def test_comparison_operators_only_on_ordered_fields(self):
        for spec in FIELD_SPECS.values():
            for op in COMPARISON_OPERATORS:
                assert spec.allows(op) == spec.is_ordered

    def test_text_operators_not_on_categorical_fields(self):
        for name in ("library", "readStatus", "fileType"):
            spec = resolve_field(name)
            assert not any(spec.allows(op) for op in TEXT_OPERATORS)

    def test_text_operators_on_text_fields(self):
        for name in ("title", "authors", "publisher", "seriesName", "language"):
            spec = resolve_field(name)
            assert all(spec.allows(op) for op in TEXT_OPERATORS)

    def test_ordered_fields_get_no_text_operators(self):
        assert not is_legal("pageCount", "contains")
        assert not is_legal("publishedDate", "starts_with")

    @pytest.mark.parametrize("field", [
        "library", "authors", "categories", "readStatus", "fileType",
        "language", "title", "subtitle", "publisher", "seriesName",
    ])
    def test_multi_value_fields(self, field):
        for op in MULTI_VALUE_OPERATORS:
            assert is_legal(field, op.value)

    def test_numeric_fields_are_not_multi_value(self):
        assert not is_legal("pageCount", "includes_any")
        assert not is_legal("amazonRating", "includes_all")

    def test_unknown_pairs_are_illegal(self):
        assert not is_legal("colour", "equals")
        assert not is_legal("title", "roughly")
        assert not is_legal(None, None)


class TestOperatorsFor:

    def test_no_field_offers_base_and_multi_value(self):
        assert operators_for(None) == BASE_OPERATORS + MULTI_VALUE_OPERATORS

    def test_unknown_field_offers_nothing(self):
        assert operators_for("colour") == ()

    def test_date_field(self):
        ops = operators_for("publishedDate")
        assert RuleOperator.IN_BETWEEN in ops
        assert RuleOperator.CONTAINS not in ops
        assert RuleOperator.INCLUDES_ANY not in ops
