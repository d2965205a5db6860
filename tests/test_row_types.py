"""Tests for row contracts and coercion rules."""
from datetime import date, datetime
from decimal import Decimal

import pytest

from propertysheet import (
    CallbackDelegate,
    CoercionFailed,
    InteractionKind,
    InterpreterConfig,
    PropertyRow,
    RowContract,
    RowType,
    RowTypeRegistry,
    set_interpreter_config,
)


@pytest.fixture
def registry():
    return RowTypeRegistry()


class TestContracts:
    """Test the built-in contract table."""

    def test_action_is_not_persisted(self, registry):
        contract = registry.contract_for(RowType.ACTION)
        assert contract.is_persisted is False
        assert contract.interaction_kind is InteractionKind.ACTION

    @pytest.mark.parametrize("row_type", [RowType.MULTI_LEVEL, RowType.PROPERTY_LIST])
    def test_recursive_types(self, registry, row_type):
        contract = registry.contract_for(row_type)
        assert contract.recurses_to_child_schema is True
        assert contract.interaction_kind is InteractionKind.NAVIGATE

    @pytest.mark.parametrize("row_type", [
        RowType.CHOICE, RowType.MULTI_VALUE, RowType.PICKER_LIST, RowType.PICKER_VIEW,
    ])
    def test_selection_types(self, registry, row_type):
        assert registry.contract_for(row_type).interaction_kind is InteractionKind.SELECT

    def test_every_type_has_a_contract(self, registry):
        for row_type in RowType:
            assert registry.contract_for(row_type) is not None

    def test_contract_for_accepts_names(self, registry):
        assert registry.contract_for("boolean").interaction_kind is InteractionKind.TOGGLE

    def test_register_override_is_per_registry(self, registry):
        upper = RowContract(InteractionKind.EDIT_TEXT, lambda raw: str(raw).upper())
        registry.register(RowType.STRING, upper)

        row = PropertyRow(name="n", type=RowType.STRING, identifier="n")
        assert registry.coerce(row, "abc") == "ABC"
        assert RowTypeRegistry().coerce(row, "abc") == "abc"

    def test_delegate_replaces_custom_contract(self, registry):
        slider = RowContract(InteractionKind.CUSTOM, float, row_height=88.0)
        delegate = CallbackDelegate(
            initial_values=dict,
            contract_for_custom_row=lambda row: slider if row.has_flag("slider") else None,
        )
        slider_row = PropertyRow(name="Volume", type=RowType.CUSTOM, identifier="vol", flags="slider")
        plain_row = PropertyRow(name="Other", type=RowType.CUSTOM, identifier="other")

        assert registry.contract_for_row(slider_row, delegate) is slider
        assert registry.contract_for_row(plain_row, delegate) is registry.contract_for(RowType.CUSTOM)
        assert registry.coerce(slider_row, "0.5", delegate) == 0.5


class TestIntegerCoercion:
    """Test integer coercion."""

    def test_accepts_integers_and_literals(self, registry):
        coerce = registry.contract_for(RowType.INTEGER).coerce
        assert coerce(5) == 5
        assert coerce(" 42 ") == 42
        assert coerce(3.0) == 3
        assert coerce(Decimal("7")) == 7
        assert coerce(None) is None

    @pytest.mark.parametrize("raw", ["abc", "4.5", 4.5, True, [1], float("nan")])
    def test_rejects(self, registry, raw):
        with pytest.raises(CoercionFailed):
            registry.contract_for(RowType.INTEGER).coerce(raw)


class TestDecimalCoercion:
    """Test decimal coercion."""

    def test_accepts_numbers_and_literals(self, registry):
        coerce = registry.contract_for(RowType.DECIMAL).coerce
        assert coerce("1.25") == Decimal("1.25")
        assert coerce(0.1) == Decimal("0.1")
        assert coerce(2) == Decimal(2)

    @pytest.mark.parametrize("raw", ["one", "NaN", "Infinity", False, {}])
    def test_rejects(self, registry, raw):
        with pytest.raises(CoercionFailed):
            registry.contract_for(RowType.DECIMAL).coerce(raw)


class TestBooleanCoercion:
    """Test boolean coercion."""

    def test_accepts_literals(self, registry):
        coerce = registry.contract_for(RowType.BOOLEAN).coerce
        assert coerce(True) is True
        assert coerce("YES") is True
        assert coerce("off") is False
        assert coerce(0) is False
        assert coerce(1) is True

    @pytest.mark.parametrize("raw", ["maybe", 2, 1.0, []])
    def test_rejects(self, registry, raw):
        with pytest.raises(CoercionFailed):
            registry.contract_for(RowType.BOOLEAN).coerce(raw)

    def test_configured_literals(self, registry):
        set_interpreter_config(InterpreterConfig(boolean_true_strings=("ja",), boolean_false_strings=("nein",)))
        coerce = registry.contract_for(RowType.BOOLEAN).coerce

        assert coerce("Ja") is True
        assert coerce("nein") is False
        with pytest.raises(CoercionFailed):
            coerce("yes")


class TestDateCoercion:
    """Test date coercion."""

    def test_accepts_dates_and_iso_strings(self, registry):
        coerce = registry.contract_for(RowType.DATE).coerce
        assert coerce(date(2024, 2, 29)) == date(2024, 2, 29)
        assert coerce("2024-02-29") == date(2024, 2, 29)
        assert coerce("2024-02-29T10:30:00") == datetime(2024, 2, 29, 10, 30)

    def test_configured_formats(self, registry):
        coerce = registry.contract_for(RowType.DATE).coerce
        assert coerce("19.01.2014") == date(2014, 1, 19)
        assert coerce("01/19/2014") == date(2014, 1, 19)

    @pytest.mark.parametrize("raw", ["yesterday", "2024-02-30", 20240229])
    def test_rejects(self, registry, raw):
        with pytest.raises(CoercionFailed):
            registry.contract_for(RowType.DATE).coerce(raw)


class TestOtherCoercions:
    """Test text, list, mapping and action coercion."""

    def test_text(self, registry):
        coerce = registry.contract_for(RowType.STRING).coerce
        assert coerce(12) == "12"
        assert coerce(b"caf\xc3\xa9") == "café"
        with pytest.raises(CoercionFailed):
            coerce(["a"])

    def test_text_strips_whitespace_by_default(self, registry):
        assert registry.contract_for(RowType.STRING).coerce("  ada  ") == "ada"
        assert registry.contract_for(RowType.MULTILINE_TEXT).coerce(b" note\n") == "note"

    def test_text_keeps_whitespace_when_configured(self, registry):
        set_interpreter_config(InterpreterConfig(strip_text=False))
        assert registry.contract_for(RowType.STRING).coerce("  ada  ") == "  ada  "

    def test_boolean_and_date_follow_strip_setting(self, registry):
        boolean = registry.contract_for(RowType.BOOLEAN).coerce
        to_date = registry.contract_for(RowType.DATE).coerce
        assert boolean(" yes ") is True
        assert to_date(" 2024-02-29 ") == date(2024, 2, 29)

        set_interpreter_config(InterpreterConfig(strip_text=False))
        with pytest.raises(CoercionFailed):
            boolean(" yes ")
        with pytest.raises(CoercionFailed):
            to_date(" 2024-02-29 ")

    def test_simple_list(self, registry):
        coerce = registry.contract_for(RowType.SIMPLE_LIST).coerce
        assert coerce(("a", "b")) == ["a", "b"]
        with pytest.raises(CoercionFailed):
            coerce("ab")

    def test_nested_rows_take_mappings(self, registry):
        coerce = registry.contract_for(RowType.MULTI_LEVEL).coerce
        assert coerce({"a": 1}) == {"a": 1}
        with pytest.raises(CoercionFailed):
            coerce([("a", 1)])

    def test_action_carries_no_value(self, registry):
        with pytest.raises(CoercionFailed):
            registry.contract_for(RowType.ACTION).coerce("anything")
