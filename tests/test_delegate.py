"""Tests for the delegate protocol and CallbackDelegate."""
import logging

import pytest

from propertysheet import CallbackDelegate, PropertyRow, RowType, SettingsDelegate
from propertysheet.delegate import notify_best_effort


class TestSettingsDelegate:
    """Test the base protocol."""

    def test_initial_values_is_required(self):
        with pytest.raises(TypeError):
            SettingsDelegate()

    def test_optional_hooks_are_noops(self):
        class Minimal(SettingsDelegate):
            def initial_values(self):
                return {"a": 1}

        delegate = Minimal()
        row = PropertyRow(name="Custom", type=RowType.CUSTOM, identifier="c")

        assert delegate.default_values() == {}
        assert delegate.rows_for_child(row) is None
        assert delegate.values_for_child(row) is None
        assert delegate.refresh_schema(()) is None
        assert delegate.contract_for_custom_row(row) is None
        assert delegate.custom_row_height(row) is None
        assert delegate.custom_did_select(row, None) is False


class TestCallbackDelegate:
    """Test delegates built from callables."""

    def test_hooks_replace_defaults(self):
        changes = []
        delegate = CallbackDelegate(
            initial_values=lambda: {"name": "Ada"},
            default_values=lambda: {"name": "?"},
            on_row_changed=lambda value, row: changes.append((row.identifier, value)),
        )
        row = PropertyRow(name="Name", type=RowType.STRING, identifier="name")
        delegate.on_row_changed("Grace", row)

        assert delegate.initial_values() == {"name": "Ada"}
        assert delegate.default_values() == {"name": "?"}
        assert changes == [("name", "Grace")]

    def test_missing_hooks_keep_defaults(self):
        delegate = CallbackDelegate(initial_values=dict)
        assert delegate.refresh_schema(()) is None
        assert delegate.default_values() == {}

    def test_unknown_hook_rejected(self):
        with pytest.raises(TypeError):
            CallbackDelegate(initial_values=dict, on_changed=print)

    def test_hooks_are_per_instance(self):
        CallbackDelegate(initial_values=dict, default_values=lambda: {"x": 1})
        assert CallbackDelegate(initial_values=dict).default_values() == {}


class TestNotifyBestEffort:
    """Test notification firing."""

    def test_passes_arguments(self):
        received = []
        notify_best_effort(lambda *args: received.append(args), 1, "two")
        assert received == [(1, "two")]

    def test_failure_is_logged(self, caplog):
        def on_row_changed(value, row):
            raise ValueError("boom")

        with caplog.at_level(logging.WARNING, logger="propertysheet.delegate"):
            notify_best_effort(on_row_changed, 1, None)

        assert "on_row_changed" in caplog.text
        assert "boom" in caplog.text
