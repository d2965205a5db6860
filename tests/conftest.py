"""Pytest configuration and shared fixtures."""
import pytest

from propertysheet import (
    RowType,
    SettingsDelegate,
    p_multivalue,
    p_row,
    p_section,
    reset_interpreter_config,
)


class RecordingDelegate(SettingsDelegate):
    """Test delegate that records every hook call in order."""

    def __init__(self, values_in=None, values_default=None):
        self.values_in = dict(values_in or {})
        self.values_default = dict(values_default or {})
        self.calls = []
        self.changes = []
        self.refreshed_groups = None

    def initial_values(self):
        self.calls.append("initial_values")
        return self.values_in

    def default_values(self):
        self.calls.append("default_values")
        return self.values_default

    def on_row_changed(self, value, row):
        self.calls.append("on_row_changed")
        self.changes.append((row.identifier, value))

    def refresh_schema(self, current_groups):
        self.calls.append("refresh_schema")
        return self.refreshed_groups

    def will_dismiss(self, session):
        self.calls.append(("will_dismiss", session.nesting_level))

    def did_dismiss(self, session):
        self.calls.append(("did_dismiss", session.nesting_level))

    def perform_action(self, row, session):
        self.calls.append(("perform_action", row.name))


@pytest.fixture(autouse=True)
def reset_config():
    """Restore the default interpreter configuration around each test."""
    reset_interpreter_config()
    yield
    reset_interpreter_config()


@pytest.fixture
def account_schema():
    """Two top-level groups, a multiValue row and a nested multiLevel row."""
    return [
        p_section("Account", header="Your account", footer="Stored locally", rows=[
            p_row("User name", RowType.STRING, "guest", identifier="username"),
            p_row("Age", RowType.INTEGER, 0, identifier="age"),
            p_row("Newsletter", RowType.BOOLEAN, False, identifier="newsletter"),
        ]),
        p_section("Appearance", rows=[
            p_row("Background", RowType.MULTI_VALUE, [
                p_multivalue("White", 0),
                p_multivalue("Yellow", 1),
                p_multivalue("Green", 2),
                p_multivalue("Blue", 3),
            ], identifier="background"),
            p_row("Advanced", RowType.MULTI_LEVEL, [
                p_section("Network", key="network", rows=[
                    p_row("a", RowType.INTEGER, identifier="a"),
                    p_row("b", RowType.INTEGER, identifier="b"),
                    p_row("User name", RowType.STRING, identifier="username"),
                ]),
            ], identifier="K"),
            p_row("Reset", RowType.ACTION),
        ]),
    ]


@pytest.fixture
def delegate():
    return RecordingDelegate()


@pytest.fixture
def make_delegate():
    """Factory for delegates with specific input/default values."""
    return RecordingDelegate
