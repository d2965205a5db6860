"""
Session and SessionController: the operations a presentation layer drives.

A Session owns one validated schema, one value store and its place in the
navigation stack. The presentation layer asks it for row descriptors and
forwards user input to it; it never renders anything itself.

Every commit runs strictly in sequence:
    value store commit -> delegate.on_row_changed -> delegate.refresh_schema
    -> rows/values observers

At most one row per session is active (being edited, or the origin of the
active child). That single slot lives on the session, so separate sessions
never interfere.
"""
from dataclasses import replace
import logging
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Set, Tuple, Union

from propertysheet.config import get_interpreter_config
from propertysheet.delegate import SettingsDelegate, notify_best_effort
from propertysheet.descriptor_model import GroupDescriptor, RowDescriptor
from propertysheet.errors import NavigationError, RowNotEditableError
from propertysheet.navigation import NavigationStack, SessionState
from propertysheet.row_types import InteractionKind, RowContract, RowTypeRegistry
from propertysheet.schema_model import (
    GroupLike,
    MultiValueEntry,
    PropertyRow,
    RowType,
    ValidatedSchema,
    build_schema,
    child_key_for,
)
from propertysheet.value_store import ValueStore

logger = logging.getLogger(__name__)

# A row is addressed by identifier, by (group_index, row_index), or directly
RowTarget = Union[str, Tuple[int, int], PropertyRow]

_INLINE_EDIT_KINDS = frozenset({
    InteractionKind.DISPLAY,
    InteractionKind.EDIT_TEXT,
    InteractionKind.EDIT_MULTILINE,
    InteractionKind.EDIT_RICH_TEXT,
    InteractionKind.EDIT_NUMBER,
    InteractionKind.PICK_DATE,
    InteractionKind.EDIT_LIST,
    InteractionKind.SELECT,
    InteractionKind.TOGGLE,
    InteractionKind.CUSTOM,
})


class Session:
    """Editing session for one nesting level."""

    def __init__(
        self,
        controller: 'SessionController',
        schema: ValidatedSchema,
        values_in: Optional[Mapping[str, Any]] = None,
        values_default: Optional[Mapping[str, Any]] = None,
        parent: Optional['Session'] = None,
        merge_key: Optional[str] = None,
        origin_row: Optional[PropertyRow] = None,
    ):
        self._controller = controller
        self.schema = schema
        self.nesting_level = schema.nesting_level
        self.parent = parent
        self.merge_key = merge_key
        self.origin_row = origin_row
        self.store = ValueStore(
            values_in,
            values_default,
            row_resolver=schema.row_for,
            registry=controller.registry,
            delegate=controller.delegate,
        )

        self.state = SessionState.CREATED
        self.selected_row: Optional[PropertyRow] = None
        self.editing_identifier: Optional[str] = None
        self.active_child: Optional['Session'] = None

        self._on_rows_changed_callbacks: List[Callable[[Set[int]], None]] = []
        self._on_values_changed_callbacks: List[Callable[[str, Any], None]] = []

    def __repr__(self) -> str:
        return (
            f"Session(level={self.nesting_level}, key={self.merge_key!r}, "
            f"state={self.state.value}, dirty={len(self.store.dirty_identifiers)})"
        )

    @property
    def delegate(self) -> SettingsDelegate:
        return self._controller.delegate

    @property
    def registry(self) -> RowTypeRegistry:
        return self._controller.registry

    def create_child(
        self,
        row: PropertyRow,
        schema: ValidatedSchema,
        values_in: Optional[Mapping[str, Any]],
        values_default: Optional[Mapping[str, Any]],
        merge_key: str,
    ) -> 'Session':
        """Construct (but do not push) a child session for a nested row."""
        return Session(
            self._controller,
            schema,
            values_in=values_in,
            values_default=values_default,
            parent=self,
            merge_key=merge_key,
            origin_row=row,
        )

    # === Observers ===

    def on_rows_changed(self, callback: Callable[[Set[int]], None]) -> None:
        """Subscribe to schema changes. The callback receives changed group indices."""
        if callback not in self._on_rows_changed_callbacks:
            self._on_rows_changed_callbacks.append(callback)

    def off_rows_changed(self, callback: Callable[[Set[int]], None]) -> None:
        if callback in self._on_rows_changed_callbacks:
            self._on_rows_changed_callbacks.remove(callback)

    def on_values_changed(self, callback: Callable[[str, Any], None]) -> None:
        """Subscribe to value changes. The callback receives (identifier, effective value)."""
        if callback not in self._on_values_changed_callbacks:
            self._on_values_changed_callbacks.append(callback)

    def off_values_changed(self, callback: Callable[[str, Any], None]) -> None:
        if callback in self._on_values_changed_callbacks:
            self._on_values_changed_callbacks.remove(callback)

    def notify_values_changed(self, identifier: str) -> None:
        value = self.store.effective_value(identifier)
        for callback in list(self._on_values_changed_callbacks):
            try:
                callback(identifier, value)
            except Exception as e:
                logger.warning(f"Error in values_changed callback: {e}")

    def _notify_rows_changed(self, changed_groups: Set[int]) -> None:
        for callback in list(self._on_rows_changed_callbacks):
            try:
                callback(changed_groups)
            except Exception as e:
                logger.warning(f"Error in rows_changed callback: {e}")

    # === State guards ===

    def _ensure_alive(self) -> None:
        if self.state is SessionState.DISMISSED:
            raise NavigationError("Session has been dismissed")

    def _ensure_focused(self) -> None:
        self._ensure_alive()
        if self.state is SessionState.CHILD_ACTIVE:
            raise NavigationError(
                f"Session at level {self.nesting_level} has an active child; dismiss it first"
            )
        if self.state is not SessionState.ACTIVE:
            raise NavigationError(f"Session is not active (state={self.state.value})")

    # === Lookup ===

    @property
    def group_count(self) -> int:
        self._ensure_alive()
        return self.schema.group_count

    def row_count(self, group_index: int) -> int:
        self._ensure_alive()
        return self.schema.row_count(group_index)

    def group_at(self, group_index: int):
        self._ensure_alive()
        return self.schema.group_at(group_index)

    def row_at(self, group_index: int, row_index: int) -> PropertyRow:
        self._ensure_alive()
        return self.schema.row_at(group_index, row_index)

    def row_for(self, identifier: str) -> Optional[PropertyRow]:
        """Row declaring identifier (or the base row of an indexed key), or None."""
        self._ensure_alive()
        return self.store.row_for(identifier)

    def effective_value(self, identifier: str) -> Any:
        self._ensure_alive()
        return self.store.effective_value(identifier)

    def contract_for(self, target: RowTarget) -> RowContract:
        return self.registry.contract_for_row(self._resolve(target), self.delegate)

    def _resolve(self, target: RowTarget) -> PropertyRow:
        """Resolve a row target.

        Raises:
            KeyError: For an identifier no row declares
            IndexError: For a position outside the schema
        """
        self._ensure_alive()
        if isinstance(target, PropertyRow):
            return target
        if isinstance(target, tuple):
            group_index, row_index = target
            return self.schema.row_at(group_index, row_index)
        row = self.store.row_for(target)
        if row is None:
            row = self.schema.find_row(target)
        if row is None:
            raise KeyError(f"No row for {target!r}")
        return row

    def _row_value(self, row: PropertyRow) -> Any:
        if row.type is RowType.ACTION:
            return row.value
        key = child_key_for(row) if row.recurses else row.identifier
        if not key:
            return row.value
        return self.store.effective_value(key)

    def descriptor_at(self, group_index: int, row_index: int) -> RowDescriptor:
        self._ensure_alive()
        row = self.schema.row_at(group_index, row_index)
        return self._describe(row, group_index, row_index)

    def _describe(self, row: PropertyRow, group_index: int, row_index: int) -> RowDescriptor:
        contract = self.registry.contract_for_row(row, self.delegate)
        storage_key = child_key_for(row) if row.recurses else row.identifier
        return RowDescriptor(
            group_index=group_index,
            row_index=row_index,
            identifier=row.identifier,
            name=row.name,
            type=row.type,
            interaction_kind=contract.interaction_kind,
            value=self._row_value(row),
            editable=row.editable,
            keyboard_hint=row.keyboard_hint,
            flags=row.flags,
            nesting_level=self.nesting_level,
            is_selected=row is self.selected_row,
            is_dirty=bool(storage_key) and self.store.is_dirty(storage_key),
            has_children=contract.recurses_to_child_schema,
            choices=row.choices,
        )

    def descriptors(self) -> List[GroupDescriptor]:
        """Descriptors for every group and row, in schema order."""
        self._ensure_alive()
        result = []
        for group_index, group in enumerate(self.schema.groups):
            rows = tuple(
                self._describe(row, group_index, row_index)
                for row_index, row in enumerate(group.rows)
            )
            result.append(GroupDescriptor(
                index=group_index,
                title=group.title,
                key=group.key,
                header=group.header,
                footer=group.footer,
                rows=rows,
            ))
        return result

    # === Editing ===

    def begin_edit(self, target: RowTarget) -> RowDescriptor:
        """Make a row the session's active row.

        An uncommitted edit of a previously active row is discarded.

        Raises:
            RowNotEditableError: If the row is read-only, carries no value or
                is edited through a child session
            NavigationError: If a child session is active
        """
        self._ensure_focused()
        row = self._resolve(target)
        contract = self.registry.contract_for_row(row, self.delegate)
        if not row.editable or not contract.is_persisted or contract.recurses_to_child_schema:
            raise RowNotEditableError(row.identifier or row.name)
        if self.selected_row is not None and self.selected_row is not row:
            logger.debug(f"Discarding uncommitted edit of {self.editing_identifier!r}")
        self.selected_row = row
        if isinstance(target, str) and self.store.row_for(target) is row:
            # May be an indexed key editing one instance of its base row
            self.editing_identifier = target
        else:
            self.editing_identifier = row.identifier
        position = self.schema.position_of(row.identifier) if row.identifier else None
        group_index, row_index = position if position is not None else (-1, -1)
        return self._describe(row, group_index, row_index)

    def cancel_edit(self) -> None:
        """Leave the active row without committing."""
        self._ensure_alive()
        self.selected_row = None
        self.editing_identifier = None

    def commit_edit(self, value: Any) -> bool:
        """Commit value to the active row and release it.

        On a CoercionError the row stays active so the edit can be corrected.

        Raises:
            NavigationError: If no row is being edited
        """
        self._ensure_focused()
        if self.selected_row is None or self.editing_identifier is None:
            raise NavigationError("No row is being edited")
        changed = self.commit(self.editing_identifier, value)
        self.selected_row = None
        self.editing_identifier = None
        return changed

    def commit(self, identifier: str, value: Any) -> bool:
        """Commit a value for identifier.

        Returns:
            True if the value changed; the delegate and observers are only
            notified in that case

        Raises:
            KeyError: If no row declares identifier
            RowNotEditableError: If the row is declared read-only
            CoercionError: If value cannot be converted to the row's type
            NavigationError: If the session is dismissed or has an active child
        """
        self._ensure_focused()
        row = self.store.row_for(identifier)
        if row is None:
            raise KeyError(f"No row declares identifier {identifier!r}")
        if not row.editable:
            raise RowNotEditableError(identifier)

        if not self.store.commit(identifier, value):
            return False

        if row.identifier != identifier:
            # Indexed instance of a repeated row
            row = replace(row, identifier=identifier)
        notify_best_effort(self.delegate.on_row_changed, self.store.effective_value(identifier), row)
        self.refresh_schema()
        self.notify_values_changed(identifier)
        return True

    def refresh_schema(self) -> Set[int]:
        """Ask the delegate for an updated schema and adopt it.

        Returns:
            Indices of the groups that changed

        Raises:
            SchemaValidationError: If the updated schema is invalid; the
                current schema is kept
        """
        self._ensure_alive()
        updated = self.delegate.refresh_schema(self.schema.groups)
        if updated is None:
            return set()
        changed = self.schema.apply_groups(updated)
        if not changed:
            return changed

        if self.selected_row is not None:
            identifier = self.selected_row.identifier
            self.selected_row = self.schema.row_for(identifier) if identifier else None
            if self.selected_row is None:
                self.editing_identifier = None
        logger.debug(f"Schema refreshed at level {self.nesting_level}: groups {sorted(changed)}")
        self._notify_rows_changed(changed)
        return changed

    # === Selection rows ===

    def choices_for(self, identifier: str) -> Tuple[MultiValueEntry, ...]:
        row = self.row_for(identifier)
        return row.choices if row is not None else ()

    def choice_rows(self, identifier: str) -> Tuple[PropertyRow, ...]:
        """Leaf rows of a choice set, one per entry, for list presentation."""
        row = self.row_for(identifier)
        if row is None:
            return ()
        return tuple(
            PropertyRow(
                name=entry.name,
                type=RowType.CHOICE,
                identifier=identifier,
                value=entry.value,
                editable=row.editable,
            )
            for entry in row.choices
        )

    def select_choice(self, identifier: str, index: int) -> bool:
        """Commit the value of the index-th entry of a row's choice set.

        Raises:
            IndexError: If index is outside the choice set
        """
        choices = self.choices_for(identifier)
        if not 0 <= index < len(choices):
            raise IndexError(f"Choice {index} out of range for {identifier!r} ({len(choices)} choices)")
        return self.commit(identifier, choices[index].value)

    # === Activation and navigation ===

    def activate(self, target: RowTarget) -> Optional['Session']:
        """Handle a tap/enter on a row according to its contract.

        Navigate rows push and return a child session. Action rows run the
        delegate's action. Toggle rows flip their value. Custom rows go to
        the contract's or the delegate's selection hook. Any other editable
        row becomes the active row.
        """
        self._ensure_focused()
        row = self._resolve(target)
        contract = self.registry.contract_for_row(row, self.delegate)
        kind = contract.interaction_kind

        if row.type is RowType.CHOICE and row.identifier:
            # Leaf row from choice_rows(): picking it commits its value
            owner = self.store.row_for(row.identifier)
            if owner is not None and owner.has_choice_set:
                self.commit(row.identifier, row.value)
                return None
        if contract.recurses_to_child_schema:
            return self.push_child(row)
        if kind is InteractionKind.ACTION:
            logger.debug(f"Performing action {row.name!r}")
            self.delegate.perform_action(row, self)
            return None
        if kind is InteractionKind.TOGGLE and row.editable:
            self.commit(row.identifier, not bool(self.store.effective_value(row.identifier)))
            return None
        if kind is InteractionKind.CUSTOM:
            if contract.on_select is not None:
                contract.on_select(row)
                return None
            if self.delegate.custom_did_select(row, self):
                return None
        if kind in _INLINE_EDIT_KINDS and row.editable and contract.is_persisted:
            self.begin_edit(row)
        return None

    def push_child(self, target: RowTarget) -> 'Session':
        """Open the child session of a multiLevel/propertyList row.

        The child schema comes from the delegate's rows_for_child() or, when
        that returns None, from the row's inline nested groups. The child's
        input values come from values_for_child() or the parent's effective
        value for the child key.

        Raises:
            NavigationError: If the row does not recurse or a child is already active
        """
        self._ensure_focused()
        row = self._resolve(target)
        contract = self.registry.contract_for_row(row, self.delegate)
        if not contract.recurses_to_child_schema:
            raise NavigationError(f"Row {row.name!r} ({row.type.value}) has no child schema")

        key = child_key_for(row)
        child_rows = self.delegate.rows_for_child(row)
        groups: Iterable[GroupLike]
        if child_rows is not None:
            groups = [{"title": row.name, "key": key, "rows": list(child_rows)}]
        else:
            groups = row.children
        child_schema = build_schema(groups, nesting_level=self.nesting_level + 1)

        values_in = self.delegate.values_for_child(row)
        if values_in is None:
            nested = self.store.effective_value(key)
            values_in = nested if isinstance(nested, Mapping) else {}
        nested_default = self.store.values_default.get(key)
        values_default = nested_default if isinstance(nested_default, Mapping) else {}

        return self._controller.navigation.push(self, row, child_schema, values_in, values_default)

    def dismiss(self) -> Dict[str, Any]:
        """Dismiss this session and return the edits it hands back."""
        self._ensure_alive()
        if self.parent is None:
            return self._controller.navigation.dismiss_root(self)
        self._controller.navigation.pop(self)
        return self.diff()

    def diff(self) -> Dict[str, Any]:
        """Accumulated edits. Remains readable after dismissal."""
        return self.store.diff()

    # === Custom row hooks ===

    def row_height(self, target: RowTarget) -> float:
        row = self._resolve(target)
        default_height = get_interpreter_config().default_row_height
        if row.type is not RowType.CUSTOM:
            return default_height
        contract = self.registry.contract_for_row(row, self.delegate)
        if contract.row_height is not None:
            return contract.row_height
        height = self.delegate.custom_row_height(row)
        return height if height is not None else default_height

    def delete_row(self, target: RowTarget) -> None:
        """Commit a delete gesture on a custom row.

        Raises:
            ValueError: If the row is not a custom row
        """
        self._ensure_focused()
        row = self._resolve(target)
        if row.type is not RowType.CUSTOM:
            raise ValueError(f"Row {row.name!r} ({row.type.value}) does not support delete")
        contract = self.registry.contract_for_row(row, self.delegate)
        if contract.on_commit_delete is not None:
            contract.on_commit_delete(row)
        else:
            self.delegate.custom_commit_delete(row, self)

    def touch(self, target: RowTarget) -> None:
        row = self._resolve(target)
        if row.type is RowType.CUSTOM:
            notify_best_effort(self.delegate.custom_touched, row)

    def did_layout(self, target: RowTarget) -> None:
        row = self._resolve(target)
        if row.type is RowType.CUSTOM:
            notify_best_effort(self.delegate.custom_did_layout, row)


class SessionController:
    """Entry point for a host: validates the schema and runs the session stack.

    Example:
        controller = SessionController(groups, delegate)
        root = controller.begin()
        root.commit("username", "ada")
        output = root.dismiss()
    """

    def __init__(
        self,
        schema: Union[ValidatedSchema, Iterable[GroupLike]],
        delegate: SettingsDelegate,
        registry: Optional[RowTypeRegistry] = None,
    ):
        """
        Raises:
            SchemaValidationError: If the schema is malformed; no session starts
        """
        self.schema = schema if isinstance(schema, ValidatedSchema) else build_schema(schema)
        self.delegate = delegate
        self.registry = registry if registry is not None else RowTypeRegistry()
        self.navigation = NavigationStack(delegate)
        self._root: Optional[Session] = None

    def begin(self) -> Session:
        """Create and activate the root session from the delegate's values."""
        if self._root is not None:
            raise NavigationError("Controller has already started a session")
        root = Session(
            self,
            self.schema,
            values_in=self.delegate.initial_values(),
            values_default=self.delegate.default_values(),
        )
        self.navigation.push_root(root)
        self._root = root
        logger.debug(f"Began session with {self.schema.group_count} groups")
        return root

    @property
    def root(self) -> Optional[Session]:
        return self._root

    @property
    def is_finished(self) -> bool:
        return self._root is not None and self._root.state is SessionState.DISMISSED

    @property
    def current(self) -> Optional[Session]:
        """Focused session (top of the navigation stack)."""
        return self.navigation.top

    def commit(self, identifier: str, value: Any) -> bool:
        return self._require_current().commit(identifier, value)

    def activate(self, target: RowTarget) -> Optional[Session]:
        return self._require_current().activate(target)

    def dismiss(self) -> Dict[str, Any]:
        """Dismiss the focused session. Dismissing the root ends the controller."""
        return self._require_current().dismiss()

    def output(self) -> Optional[Dict[str, Any]]:
        """Session output: the root's accumulated edits, nested rows as mappings."""
        return self._root.diff() if self._root is not None else None

    def _require_current(self) -> Session:
        session = self.navigation.top
        if session is None:
            raise NavigationError("No active session")
        return session
