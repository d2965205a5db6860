"""
Row and group descriptors handed to the presentation layer.

The interpreter never renders anything. For every row it emits an immutable
descriptor carrying the row type, its interaction kind and its effective
value; the presentation layer owns every widget decision.
"""
from dataclasses import dataclass
from typing import Any, Dict, Optional, Tuple

from propertysheet.row_types import InteractionKind
from propertysheet.schema_model import MultiValueEntry, RowType


@dataclass(frozen=True)
class RowDescriptor:
    """Immutable rendering descriptor of a single row."""
    group_index: int
    row_index: int
    identifier: Optional[str]
    name: str
    type: RowType
    interaction_kind: InteractionKind
    value: Any
    editable: bool
    keyboard_hint: Any
    flags: str
    nesting_level: int
    is_selected: bool = False
    is_dirty: bool = False
    has_children: bool = False
    choices: Tuple[MultiValueEntry, ...] = ()

    @property
    def selected_choice(self) -> Optional[MultiValueEntry]:
        """Choice entry matching the current value, for selection rows."""
        for entry in self.choices:
            if entry.value == self.value:
                return entry
        return None

    def to_dict(self) -> Dict[str, Any]:
        """Export to a plain dict (e.g. for a web or test presentation layer)."""
        return {
            'group_index': self.group_index,
            'row_index': self.row_index,
            'identifier': self.identifier,
            'name': self.name,
            'type': self.type.value,
            'interaction_kind': self.interaction_kind.value,
            'value': self.value,
            'editable': self.editable,
            'keyboard_hint': self.keyboard_hint,
            'flags': self.flags,
            'nesting_level': self.nesting_level,
            'is_selected': self.is_selected,
            'is_dirty': self.is_dirty,
            'has_children': self.has_children,
            'choices': [entry.to_dict() for entry in self.choices],
        }


@dataclass(frozen=True)
class GroupDescriptor:
    """Immutable rendering descriptor of a group and its rows."""
    index: int
    title: str
    key: Optional[str]
    header: Optional[str]
    footer: Optional[str]
    rows: Tuple[RowDescriptor, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {
            'index': self.index,
            'title': self.title,
            'key': self.key,
            'header': self.header,
            'footer': self.footer,
            'rows': [row.to_dict() for row in self.rows],
        }
