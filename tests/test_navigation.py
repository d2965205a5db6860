"""Tests for the parent/child session stack and child edit merging."""
import logging

import pytest

from propertysheet import (
    CallbackDelegate,
    NavigationError,
    PropertyRow,
    RowType,
    SessionController,
    SessionState,
    build_schema,
    child_key_for,
    p_row,
    p_section,
)


@pytest.fixture
def controller(account_schema, delegate):
    return SessionController(account_schema, delegate)


@pytest.fixture
def root(controller):
    return controller.begin()


class TestChildKey:
    """Test the key a nested row's edits are stored under."""

    def test_identifier_wins(self):
        row = PropertyRow.from_dict(p_row("Advanced", RowType.MULTI_LEVEL, [
            p_section("Network", key="network", rows=[]),
        ], identifier="K"))
        assert child_key_for(row) == "K"

    def test_keyed_group_without_identifier(self):
        row = PropertyRow.from_dict(p_row("Advanced", RowType.PROPERTY_LIST, [
            p_section("Plain", rows=[]),
            p_section("Network", key="network", rows=[]),
        ]))
        assert child_key_for(row) == "network"

    def test_name_as_last_resort(self):
        row = PropertyRow.from_dict(p_row("Advanced", RowType.PROPERTY_LIST, [p_section("Plain", rows=[])]))
        assert child_key_for(row) == "Advanced"


class TestSessionStates:
    """Test the session state machine."""

    def test_root_is_active_after_begin(self, controller, root):
        assert root.state is SessionState.ACTIVE
        assert controller.navigation.depth == 1
        assert controller.current is root

    def test_push_and_pop_transitions(self, controller, root):
        child = root.activate("K")

        assert child.state is SessionState.ACTIVE
        assert child.nesting_level == 1
        assert child.parent is root
        assert root.state is SessionState.CHILD_ACTIVE
        assert root.active_child is child
        assert controller.current is child

        child.dismiss()

        assert child.state is SessionState.DISMISSED
        assert root.state is SessionState.ACTIVE
        assert root.active_child is None
        assert controller.current is root

    def test_dismissed_session_rejects_edits(self, root):
        child = root.activate("K")
        child.commit("a", 1)
        child.dismiss()

        with pytest.raises(NavigationError):
            child.commit("a", 2)
        with pytest.raises(NavigationError):
            child.dismiss()
        # Edits stay readable after dismissal
        assert child.diff() == {"a": 1}

    def test_root_dismiss_ends_controller(self, controller, root):
        root.commit("age", 41)
        output = root.dismiss()

        assert output == {"age": 41}
        assert controller.is_finished
        assert controller.current is None
        assert controller.output() == {"age": 41}
        with pytest.raises(NavigationError):
            controller.dismiss()

    def test_begin_twice(self, controller, root):
        with pytest.raises(NavigationError):
            controller.begin()

    def test_parent_cannot_dismiss_before_child(self, root):
        root.activate("K")
        with pytest.raises(NavigationError):
            root.dismiss()


class TestSingleActiveChild:
    """Test that a parent holds at most one active child."""

    def test_second_push_rejected(self, controller, root):
        child = root.activate("K")

        with pytest.raises(NavigationError):
            root.activate("K")
        with pytest.raises(NavigationError):
            controller.navigation.push(root, root.row_for("K"), build_schema([], 1), {})

        assert controller.navigation.depth == 2
        assert root.active_child is child

    def test_push_allowed_after_dismissal(self, root):
        first = root.activate("K")
        first.dismiss()

        second = root.activate("K")
        assert second is not first
        assert second.state is SessionState.ACTIVE

    def test_parent_edits_blocked_while_child_active(self, root):
        root.activate("K")
        with pytest.raises(NavigationError):
            root.commit("age", 3)

    def test_push_child_requires_nested_row(self, root):
        with pytest.raises(NavigationError):
            root.push_child("age")


class TestChildMerge:
    """Test installation of child edits in the parent."""

    def test_child_edits_merged_under_key(self, controller, root):
        child = root.activate("K")
        child.commit("a", 1)
        child.commit("b", 2)
        child.dismiss()

        assert root.effective_value("K") == {"a": 1, "b": 2}
        assert controller.output() == {"K": {"a": 1, "b": 2}}

    def test_second_cycle_replaces_nested_value(self, controller, root):
        child = root.activate("K")
        child.commit("a", 1)
        child.commit("b", 2)
        child.dismiss()

        child = root.activate("K")
        assert child.effective_value("a") == 1
        child.commit("a", 3)
        child.dismiss()

        assert controller.output()["K"] == {"a": 3}

    def test_child_without_edits_leaves_parent_untouched(self, root):
        child = root.activate("K")
        child.dismiss()

        assert root.diff() == {}
        assert not root.store.is_dirty("K")

    def test_unchanged_second_cycle_keeps_earlier_merge(self, controller, root):
        child = root.activate("K")
        child.commit("a", 1)
        child.commit("b", 2)
        child.dismiss()

        child = root.activate("K")
        assert child.commit("a", 1) is False
        child.dismiss()

        assert controller.output()["K"] == {"a": 1, "b": 2}

    def test_child_input_from_parent_value(self, account_schema, make_delegate):
        delegate = make_delegate(values_in={"K": {"a": 5}}, values_default={"K": {"b": 9}})
        root = SessionController(account_schema, delegate).begin()
        child = root.activate("K")

        assert child.effective_value("a") == 5
        assert child.effective_value("b") == 9

    def test_child_identifiers_are_a_separate_namespace(self, root):
        root.commit("username", "root user")
        child = root.activate("K")
        child.commit("username", "child user")
        child.dismiss()

        assert root.effective_value("username") == "root user"
        assert root.effective_value("K") == {"username": "child user"}

    def test_child_edit_in_progress_discarded(self, root):
        child = root.activate("K")
        child.begin_edit("a")
        child.dismiss()

        assert child.selected_row is None
        assert root.diff() == {}

    def test_parent_observers_see_merge(self, root):
        seen = []
        root.on_values_changed(lambda identifier, value: seen.append((identifier, value)))

        child = root.activate("K")
        child.commit("b", 4)
        child.dismiss()

        assert seen == [("K", {"b": 4})]

    def test_grandchild_edits_nest(self, make_delegate):
        schema = [p_section("Top", rows=[
            p_row("Outer", RowType.MULTI_LEVEL, [
                p_section("Middle", rows=[
                    p_row("Inner", RowType.PROPERTY_LIST, [
                        p_section("Leaf", rows=[p_row("x", RowType.INTEGER, identifier="x")]),
                    ], identifier="inner"),
                ]),
            ], identifier="outer"),
        ])]
        controller = SessionController(schema, make_delegate())
        root = controller.begin()

        middle = root.activate("outer")
        leaf = middle.activate("inner")
        assert leaf.nesting_level == 2
        leaf.commit("x", "7")
        leaf.dismiss()
        middle.dismiss()

        assert controller.output() == {"outer": {"inner": {"x": 7}}}


class TestDismissNotifications:
    """Test will_dismiss/did_dismiss ordering."""

    def test_child_then_root(self, root, delegate):
        child = root.activate("K")
        child.commit("a", 1)
        child.dismiss()
        root.dismiss()

        dismiss_calls = [call for call in delegate.calls if isinstance(call, tuple) and "dismiss" in call[0]]
        assert dismiss_calls == [
            ("will_dismiss", 1),
            ("did_dismiss", 1),
            ("will_dismiss", 0),
            ("did_dismiss", 0),
        ]

    def test_merge_visible_in_did_dismiss(self, account_schema):
        seen = []
        delegate = CallbackDelegate(
            initial_values=dict,
            did_dismiss=lambda session: seen.append(
                session.parent.effective_value("K") if session.parent else None
            ),
        )
        root = SessionController(account_schema, delegate).begin()
        child = root.activate("K")
        child.commit("a", 2)
        child.dismiss()

        assert seen == [{"a": 2}]

    def test_failing_notification_does_not_abort_pop(self, account_schema, caplog):
        def explode(session):
            raise RuntimeError("host bug")

        delegate = CallbackDelegate(initial_values=dict, will_dismiss=explode)
        root = SessionController(account_schema, delegate).begin()
        child = root.activate("K")
        child.commit("a", 1)

        with caplog.at_level(logging.WARNING):
            child.dismiss()

        assert child.state is SessionState.DISMISSED
        assert root.effective_value("K") == {"a": 1}
        assert "host bug" in caplog.text
