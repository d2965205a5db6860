"""
Delegate bridge: the protocol between the interpreter and its host.

initial_values() is the only required method. Every other hook has a no-op
default, so the interpreter calls them unconditionally and hosts override
only what they need.

Hooks that return data (schema refresh, child rows, custom contracts)
propagate host exceptions. Pure notifications are fired through
notify_best_effort(): a failing notification is logged and does not abort
the interpreter operation that triggered it.
"""
from abc import ABC, abstractmethod
import logging
from typing import Any, Callable, Mapping, Optional, Sequence, TYPE_CHECKING

from propertysheet.schema_model import GroupLike, PropertyRow, RowLike

if TYPE_CHECKING:
    from propertysheet.row_types import RowContract
    from propertysheet.session import Session

logger = logging.getLogger(__name__)


class SettingsDelegate(ABC):
    """Base class for hosts driving a property sheet session."""

    @abstractmethod
    def initial_values(self) -> Mapping[str, Any]:
        """Supply the input values of the root session."""

    def default_values(self) -> Mapping[str, Any]:
        """Supply fallback values used when neither output nor input has one."""
        return {}

    def rows_for_child(self, row: PropertyRow) -> Optional[Sequence[RowLike]]:
        """Supply the rows of a nested row's child session lazily.

        Returns None to use the nested groups declared inline on the row.
        """
        return None

    def values_for_child(self, row: PropertyRow) -> Optional[Mapping[str, Any]]:
        """Supply the input values of a child session.

        Returns None to use the parent's effective value for the child key.
        """
        return None

    def on_row_changed(self, value: Any, row: PropertyRow) -> None:
        """Called after every commit that changed a value."""

    def refresh_schema(self, current_groups: Sequence[GroupLike]) -> Optional[Sequence[GroupLike]]:
        """Return an updated group list after an edit, or None if unchanged."""
        return None

    def will_dismiss(self, session: 'Session') -> None:
        """Called before a session's edits are handed back."""

    def did_dismiss(self, session: 'Session') -> None:
        """Called once a session is dismissed."""

    def perform_action(self, row: PropertyRow, session: 'Session') -> None:
        """Called when an action row is activated."""

    # === Custom row hooks ===

    def contract_for_custom_row(self, row: PropertyRow) -> Optional['RowContract']:
        return None

    def custom_row_height(self, row: PropertyRow) -> Optional[float]:
        return None

    def custom_did_select(self, row: PropertyRow, session: 'Session') -> bool:
        """Return True if the host handled the selection itself."""
        return False

    def custom_commit_delete(self, row: PropertyRow, session: 'Session') -> None:
        pass

    def custom_did_layout(self, row: PropertyRow) -> None:
        pass

    def custom_touched(self, row: PropertyRow) -> None:
        pass


class CallbackDelegate(SettingsDelegate):
    """Delegate assembled from plain callables.

    Example:
        delegate = CallbackDelegate(
            initial_values=lambda: {"name": "Ada"},
            on_row_changed=lambda value, row: print(row.identifier, value),
        )

    Any hook not passed keeps the no-op default of SettingsDelegate.
    """

    _HOOKS = (
        "default_values", "rows_for_child", "values_for_child", "on_row_changed",
        "refresh_schema", "will_dismiss", "did_dismiss", "perform_action",
        "contract_for_custom_row", "custom_row_height", "custom_did_select",
        "custom_commit_delete", "custom_did_layout", "custom_touched",
    )

    def __init__(self, initial_values: Callable[[], Mapping[str, Any]], **hooks: Callable[..., Any]):
        unknown = set(hooks) - set(self._HOOKS)
        if unknown:
            raise TypeError(f"Unknown delegate hooks: {sorted(unknown)}")
        self._initial_values = initial_values
        # Instance attributes shadow the no-op methods of the base class
        for name, hook in hooks.items():
            setattr(self, name, hook)

    def initial_values(self) -> Mapping[str, Any]:
        return self._initial_values()


def notify_best_effort(hook: Callable[..., Any], *args: Any) -> None:
    """Fire a host notification, logging instead of raising on failure."""
    try:
        hook(*args)
    except Exception as e:
        hook_name = getattr(hook, '__name__', repr(hook))
        logger.warning(f"Error in delegate notification {hook_name}: {e}")
