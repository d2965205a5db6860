"""
Navigation stack: parent/child editing sessions for nested rows.

Activating a multiLevel or propertyList row pushes a child session one
nesting level deeper. Dismissing the child pops it and installs its edits in
the parent's value store under the child key. A parent has at most one
active child; pushing a second one is rejected, not queued.

Session state machine:
    CREATED -> ACTIVE -> (CHILD_ACTIVE -> ACTIVE)* -> DISMISSING -> DISMISSED
DISMISSED is terminal.
"""
from enum import Enum
import logging
from typing import Any, Dict, List, Mapping, Optional, Tuple, TYPE_CHECKING

from propertysheet.delegate import SettingsDelegate, notify_best_effort
from propertysheet.errors import NavigationError
from propertysheet.schema_model import PropertyRow, ValidatedSchema, child_key_for

if TYPE_CHECKING:
    from propertysheet.session import Session

logger = logging.getLogger(__name__)


class SessionState(Enum):
    CREATED = "created"
    ACTIVE = "active"
    CHILD_ACTIVE = "child_active"
    DISMISSING = "dismissing"
    DISMISSED = "dismissed"


class NavigationStack:
    """Stack of live sessions, root at the bottom, focused session on top."""

    def __init__(self, delegate: SettingsDelegate):
        self._delegate = delegate
        self._sessions: List['Session'] = []

    @property
    def sessions(self) -> Tuple['Session', ...]:
        return tuple(self._sessions)

    @property
    def depth(self) -> int:
        return len(self._sessions)

    @property
    def root(self) -> Optional['Session']:
        return self._sessions[0] if self._sessions else None

    @property
    def top(self) -> Optional['Session']:
        return self._sessions[-1] if self._sessions else None

    def push_root(self, session: 'Session') -> None:
        if self._sessions:
            raise NavigationError("Navigation stack already has a root session")
        if session.state is not SessionState.CREATED:
            raise NavigationError(f"Cannot start a session in state {session.state.value}")
        self._sessions.append(session)
        session.state = SessionState.ACTIVE
        logger.debug("Pushed root session")

    def push(
        self,
        parent: 'Session',
        row: PropertyRow,
        child_schema: ValidatedSchema,
        child_values_in: Optional[Mapping[str, Any]],
        child_values_default: Optional[Mapping[str, Any]] = None,
    ) -> 'Session':
        """Open a child session for a nested row of parent.

        Raises:
            NavigationError: If parent is dismissed, already has an active
                child, or is not the focused session
        """
        if parent.state is SessionState.DISMISSED:
            raise NavigationError("Cannot push from a dismissed session")
        if parent.state is SessionState.CHILD_ACTIVE or parent.active_child is not None:
            raise NavigationError(
                f"Session at level {parent.nesting_level} already has an active child; dismiss it first"
            )
        if parent is not self.top or parent.state is not SessionState.ACTIVE:
            raise NavigationError(f"Cannot push from a session in state {parent.state.value} that is not focused")

        merge_key = child_key_for(row)
        child = parent.create_child(row, child_schema, child_values_in, child_values_default, merge_key)

        parent.active_child = child
        parent.selected_row = row
        parent.editing_identifier = None
        parent.state = SessionState.CHILD_ACTIVE
        self._sessions.append(child)
        child.state = SessionState.ACTIVE
        logger.debug(f"Pushed child session {merge_key!r} at level {child.nesting_level}")
        return child

    def pop(self, child: 'Session') -> Tuple['Session', str]:
        """Dismiss a child session and merge its edits into the parent.

        Any edit in progress in the child is discarded. A child with edits
        replaces the parent's nested value for the child key wholesale. A
        child whose diff is empty is not merged at all, so the parent keeps
        whatever nested value it had, including one merged by an earlier
        child. Commits that only repeat inherited values leave the diff empty.

        Returns:
            (parent, merged_key)

        Raises:
            NavigationError: If child is dismissed, is a root session, or is
                not the focused session
        """
        if child.state in (SessionState.DISMISSING, SessionState.DISMISSED):
            raise NavigationError("Session is already dismissed")
        if child.parent is None:
            raise NavigationError("Root session is dismissed with dismiss_root()")
        if child is not self.top:
            raise NavigationError("Only the focused session can be dismissed")

        parent = child.parent
        merge_key = child.merge_key
        notify_best_effort(self._delegate.will_dismiss, child)

        child.state = SessionState.DISMISSING
        child.selected_row = None
        child.editing_identifier = None
        child_diff = child.diff()
        if child_diff:
            parent.store.merge_child(merge_key, child_diff)

        self._sessions.pop()
        parent.active_child = None
        parent.selected_row = None
        parent.state = SessionState.ACTIVE
        child.state = SessionState.DISMISSED
        logger.debug(f"Popped child session {merge_key!r} ({len(child_diff)} edits)")

        notify_best_effort(self._delegate.did_dismiss, child)
        if child_diff:
            parent.notify_values_changed(merge_key)
        return parent, merge_key

    def dismiss_root(self, root: 'Session') -> Dict[str, Any]:
        """Dismiss the root session and return its accumulated edits.

        Raises:
            NavigationError: If root is not the root, a child is still active,
                or it was already dismissed
        """
        if root.state in (SessionState.DISMISSING, SessionState.DISMISSED):
            raise NavigationError("Session is already dismissed")
        if root is not self.root:
            raise NavigationError("Session is not the root of this stack")
        if root is not self.top:
            raise NavigationError("Dismiss the active child session before the root")

        notify_best_effort(self._delegate.will_dismiss, root)
        root.state = SessionState.DISMISSING
        root.selected_row = None
        root.editing_identifier = None
        output = root.diff()
        self._sessions.pop()
        root.state = SessionState.DISMISSED
        logger.debug(f"Dismissed root session ({len(output)} edits)")
        notify_best_effort(self._delegate.did_dismiss, root)
        return output
