"""
Schema model: typed property groups and rows, validation and indexing.

The host authors a schema as an ordered sequence of group dictionaries:

    {"title": ..., "key": ..., "header": ..., "footer": ..., "rows": [...]}

and each row as:

    {"name": ..., "type": ..., "value": ..., "edit": ..., "keyboardHint": ...,
     "flags": ..., "identifier": ...}

A multiValue/pickerList/pickerView row carries its choice set in "value" as a
sequence of {"name", "value"} pairs. A multiLevel/propertyList row carries its
nested group list in "value" (or supplies it lazily through the delegate).

build_schema() parses these dictionaries into frozen PropertyGroup/PropertyRow
objects, validates the whole tree depth-first and indexes it. Identifiers are
scoped to a nesting level: rows nested under a multiLevel/propertyList row
form their own namespace one level deeper.
"""
from dataclasses import dataclass, field, replace
from enum import Enum
import logging
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Set, Tuple, Union

from propertysheet.config import get_interpreter_config
from propertysheet.errors import SchemaValidationError

logger = logging.getLogger(__name__)


class RowType(str, Enum):
    """Closed set of row types. Each carries a distinct editing contract."""
    DEFAULT = "default"
    STRING = "string"
    INTEGER = "integer"
    DECIMAL = "decimal"
    BOOLEAN = "boolean"
    DATE = "date"
    MULTILINE_TEXT = "multilineText"
    RICH_TEXT = "richText"
    SIMPLE_LIST = "simpleList"
    CUSTOM = "custom"
    CHOICE = "choice"
    MULTI_LEVEL = "multiLevel"
    MULTI_VALUE = "multiValue"
    PICKER_LIST = "pickerList"
    PICKER_VIEW = "pickerView"
    PROPERTY_LIST = "propertyList"
    ACTION = "action"

    @classmethod
    def parse(cls, raw: Any) -> 'RowType':
        """Parse a row type from its name, enum member or legacy integer code.

        Raises:
            ValueError: If raw names no row type
        """
        if isinstance(raw, cls):
            return raw
        if isinstance(raw, int) and not isinstance(raw, bool):
            if raw in LEGACY_TYPE_CODES:
                return LEGACY_TYPE_CODES[raw]
            raise ValueError(f"Unknown legacy row type code: {raw}")
        if isinstance(raw, str):
            for member in cls:
                if raw == member.value or raw.upper() == member.name:
                    return member
        raise ValueError(f"Unknown row type: {raw!r}")


# Integer codes used by the first revision of the schema format
LEGACY_TYPE_CODES: Dict[int, RowType] = {
    0: RowType.DEFAULT,
    1: RowType.STRING,
    2: RowType.INTEGER,
    3: RowType.BOOLEAN,
    4: RowType.SIMPLE_LIST,
    5: RowType.CHOICE,
    10: RowType.MULTI_LEVEL,
    11: RowType.MULTI_VALUE,
    12: RowType.PROPERTY_LIST,
    13: RowType.ACTION,
}

RECURSIVE_TYPES = frozenset({RowType.MULTI_LEVEL, RowType.PROPERTY_LIST})
CHOICE_SET_TYPES = frozenset({RowType.MULTI_VALUE, RowType.PICKER_LIST, RowType.PICKER_VIEW})
# Rows of these types may omit an identifier
IDENTIFIER_EXEMPT_TYPES = frozenset({RowType.ACTION}) | RECURSIVE_TYPES

_GROUP_FIELDS = frozenset({"title", "key", "header", "footer", "rows", "type"})
_ROW_FIELDS = frozenset({
    "name", "type", "value", "edit", "keyboardHint", "kbType", "flags", "identifier", "choices",
})


@dataclass(frozen=True)
class MultiValueEntry:
    """One selectable entry of a choice set: display name and committed value."""
    name: str
    value: Any

    @classmethod
    def from_dict(cls, data: Any, path: str = "") -> 'MultiValueEntry':
        if isinstance(data, MultiValueEntry):
            return data
        if not isinstance(data, Mapping):
            raise SchemaValidationError(f"choice entry must be a mapping, got {type(data).__name__}", path)
        for required in ("name", "value"):
            if required not in data:
                raise SchemaValidationError(f"choice entry missing required field '{required}'", path)
        return cls(name=data["name"], value=data["value"])

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "value": self.value}


@dataclass(frozen=True)
class PropertyRow:
    """One editable or actionable entry of a group.

    identifier is the storage key in the value sets; name is the display
    label. choices is only populated for choice-set rows and children only
    for recursive rows; for both the declared value is None.
    """
    name: str
    type: RowType
    identifier: Optional[str] = None
    value: Any = None
    editable: bool = True
    keyboard_hint: Any = 0
    flags: str = ""
    choices: Tuple[MultiValueEntry, ...] = ()
    children: Tuple['PropertyGroup', ...] = ()

    @property
    def recurses(self) -> bool:
        return self.type in RECURSIVE_TYPES

    @property
    def has_choice_set(self) -> bool:
        return self.type in CHOICE_SET_TYPES

    @property
    def flag_set(self) -> frozenset:
        """Individual tokens of the flags string."""
        tokens = [self.flags or ""]
        for separator in get_interpreter_config().flag_separators:
            tokens = [part for token in tokens for part in token.split(separator)]
        return frozenset(token for token in tokens if token)

    def has_flag(self, flag: str) -> bool:
        return flag in self.flag_set

    def choice_for_value(self, value: Any) -> Optional[MultiValueEntry]:
        """Return the choice entry whose value equals value, or None."""
        for entry in self.choices:
            if entry.value == value:
                return entry
        return None

    @classmethod
    def from_dict(cls, data: Any, path: str = "") -> 'PropertyRow':
        """Parse a row dictionary.

        Raises:
            SchemaValidationError: On a missing required field or unknown type
        """
        if isinstance(data, PropertyRow):
            return data
        if not isinstance(data, Mapping):
            raise SchemaValidationError(f"row must be a mapping, got {type(data).__name__}", path)
        for required in ("name", "type"):
            if required not in data:
                raise SchemaValidationError(f"row missing required field '{required}'", path)

        unknown = set(data.keys()) - _ROW_FIELDS
        if unknown:
            logger.debug(f"Ignoring unknown row fields at {path}: {sorted(unknown)}")

        try:
            row_type = RowType.parse(data["type"])
        except ValueError as e:
            raise SchemaValidationError(str(e), path) from e

        value = data.get("value")
        choices: Tuple[MultiValueEntry, ...] = ()
        children: Tuple[PropertyGroup, ...] = ()

        if row_type in CHOICE_SET_TYPES:
            raw_choices = data["choices"] if "choices" in data else value
            if "choices" not in data:
                value = None
            if raw_choices is None:
                raw_choices = ()
            if isinstance(raw_choices, (str, bytes)) or not isinstance(raw_choices, Iterable):
                raise SchemaValidationError("choice set must be a sequence of {name, value} pairs", path)
            choices = tuple(
                MultiValueEntry.from_dict(entry, f"{path}.choices[{i}]")
                for i, entry in enumerate(raw_choices)
            )
        elif row_type in RECURSIVE_TYPES:
            if value is not None:
                if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, Iterable):
                    raise SchemaValidationError("nested schema must be a sequence of groups", path)
                children = tuple(
                    PropertyGroup.from_dict(group, f"{path}.value[{i}]")
                    for i, group in enumerate(value)
                )
            value = None

        keyboard_hint = data.get("keyboardHint", data.get("kbType", 0))

        return cls(
            name=data["name"],
            type=row_type,
            identifier=data.get("identifier"),
            value=value,
            editable=bool(data.get("edit", True)),
            keyboard_hint=keyboard_hint,
            flags=data.get("flags") or "",
            choices=choices,
            children=children,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Export to the schema definition format."""
        if self.type in CHOICE_SET_TYPES:
            value: Any = [entry.to_dict() for entry in self.choices]
        elif self.type in RECURSIVE_TYPES:
            value = [group.to_dict() for group in self.children] if self.children else None
        else:
            value = self.value
        return {
            "name": self.name,
            "type": self.type.value,
            "value": value,
            "edit": self.editable,
            "keyboardHint": self.keyboard_hint,
            "flags": self.flags,
            "identifier": self.identifier,
        }


@dataclass(frozen=True)
class PropertyGroup:
    """One section: a titled, ordered collection of rows.

    key, when present, is the identifier under which a nested group's merged
    output is stored in the parent's value set.
    """
    title: str
    rows: Tuple[PropertyRow, ...] = field(default_factory=tuple)
    key: Optional[str] = None
    header: Optional[str] = None
    footer: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Any, path: str = "") -> 'PropertyGroup':
        if isinstance(data, PropertyGroup):
            return data
        if not isinstance(data, Mapping):
            raise SchemaValidationError(f"group must be a mapping, got {type(data).__name__}", path)
        for required in ("title", "rows"):
            if required not in data:
                raise SchemaValidationError(f"group missing required field '{required}'", path)

        unknown = set(data.keys()) - _GROUP_FIELDS
        if unknown:
            logger.debug(f"Ignoring unknown group fields at {path}: {sorted(unknown)}")

        raw_rows = data["rows"]
        if isinstance(raw_rows, (str, bytes, Mapping)) or not isinstance(raw_rows, Iterable):
            raise SchemaValidationError("group rows must be a sequence", path)
        rows = tuple(PropertyRow.from_dict(row, f"{path}.rows[{i}]") for i, row in enumerate(raw_rows))
        return cls(
            title=data["title"],
            rows=rows,
            key=data.get("key"),
            header=data.get("header"),
            footer=data.get("footer"),
        )

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"title": self.title, "rows": [row.to_dict() for row in self.rows]}
        for name in ("key", "header", "footer"):
            value = getattr(self, name)
            if value is not None:
                data[name] = value
        return data


GroupLike = Union[PropertyGroup, Mapping[str, Any]]
RowLike = Union[PropertyRow, Mapping[str, Any]]


def child_key_for(row: PropertyRow) -> str:
    """Key under which a nested row's child edits are stored in the parent.

    The row's identifier, else the key of its first keyed nested group,
    else its display name.
    """
    if row.identifier:
        return row.identifier
    for group in row.children:
        if group.key:
            return group.key
    return row.name


def _validate_row(row: PropertyRow, path: str, nesting_level: int) -> None:
    """Validate one row's own fields and, recursively, its nested groups."""
    if not isinstance(row.name, str) or not row.name:
        raise SchemaValidationError("row name must be a non-empty string", path)
    if not isinstance(row.type, RowType):
        raise SchemaValidationError(f"row type must be a RowType, got {row.type!r}", path)
    if row.type not in IDENTIFIER_EXEMPT_TYPES:
        if not isinstance(row.identifier, str) or not row.identifier:
            raise SchemaValidationError(
                f"row {row.name!r} of type {row.type.value} requires an identifier", path
            )
    if row.type in CHOICE_SET_TYPES and not row.choices:
        raise SchemaValidationError(f"{row.type.value} row {row.name!r} has an empty choice set", path)
    if row.children:
        # Nested rows form their own namespace one level deeper
        _validate_groups(row.children, f"{path}.value", nesting_level + 1)


def _validate_rows(
    rows: Sequence[PropertyRow],
    path: str,
    nesting_level: int,
    taken: Set[str],
) -> Set[str]:
    """Validate a group's rows against keys already taken at this level.

    A nested row without an identifier still stores its child edits under
    child_key_for(row), so that key takes part in the duplicate check.

    Returns:
        Value keys declared by these rows
    """
    declared: Set[str] = set()
    for row_index, row in enumerate(rows):
        row_path = f"{path}.rows[{row_index}]"
        _validate_row(row, row_path, nesting_level)
        key = child_key_for(row) if row.recurses else row.identifier
        if not key:
            continue
        if key in declared or key in taken:
            raise SchemaValidationError(
                f"duplicate identifier {key!r} at nesting level {nesting_level}", row_path
            )
        declared.add(key)
    return declared


def _validate_groups(groups: Sequence[PropertyGroup], path: str, nesting_level: int) -> List[Set[str]]:
    taken: Set[str] = set()
    per_group: List[Set[str]] = []
    for group_index, group in enumerate(groups):
        group_path = f"{path}[{group_index}]" if path else f"groups[{group_index}]"
        if not isinstance(group.title, str):
            raise SchemaValidationError("group title must be a string", group_path)
        declared = _validate_rows(group.rows, group_path, nesting_level, taken)
        taken |= declared
        per_group.append(declared)
    return per_group


def _parse_groups(groups: Iterable[GroupLike], path: str = "groups") -> List[PropertyGroup]:
    if isinstance(groups, (str, bytes, Mapping)) or not isinstance(groups, Iterable):
        raise SchemaValidationError("schema must be a sequence of groups", path)
    return [PropertyGroup.from_dict(group, f"{path}[{i}]") for i, group in enumerate(groups)]


def _parse_rows(rows: Iterable[RowLike], path: str) -> Tuple[PropertyRow, ...]:
    if isinstance(rows, (str, bytes, Mapping)) or not isinstance(rows, Iterable):
        raise SchemaValidationError("rows must be a sequence", path)
    return tuple(PropertyRow.from_dict(row, f"{path}.rows[{i}]") for i, row in enumerate(rows))


class ValidatedSchema:
    """A validated, indexed group list for one nesting level.

    Provides position <-> identifier lookup. Mutation through replace_rows()
    and apply_groups() re-validates and re-indexes only what changed.
    """

    def __init__(self, groups: Sequence[PropertyGroup], nesting_level: int = 0):
        """Build from already-parsed groups. Use build_schema() for raw input.

        Raises:
            SchemaValidationError: If the groups fail validation
        """
        self.nesting_level = nesting_level
        self._groups: List[PropertyGroup] = list(groups)
        self._group_identifiers: List[Set[str]] = _validate_groups(self._groups, "", nesting_level)
        self._index: Dict[str, Tuple[int, int]] = {}
        for group_index in range(len(self._groups)):
            self._index_group(group_index)

    def _index_group(self, group_index: int) -> None:
        for row_index, row in enumerate(self._groups[group_index].rows):
            if row.identifier:
                self._index[row.identifier] = (group_index, row_index)

    # === Lookup ===

    @property
    def groups(self) -> Tuple[PropertyGroup, ...]:
        return tuple(self._groups)

    @property
    def group_count(self) -> int:
        return len(self._groups)

    @property
    def identifiers(self) -> Set[str]:
        return set(self._index.keys())

    def row_count(self, group_index: int) -> int:
        return len(self._groups[group_index].rows)

    def group_at(self, group_index: int) -> PropertyGroup:
        return self._groups[group_index]

    def row_at(self, group_index: int, row_index: int) -> PropertyRow:
        """Return the row at a position.

        Raises:
            IndexError: If the position is outside the schema
        """
        if group_index < 0 or row_index < 0:
            raise IndexError(f"Negative position ({group_index}, {row_index})")
        return self._groups[group_index].rows[row_index]

    def row_for(self, identifier: str) -> Optional[PropertyRow]:
        """Return the row declaring identifier, or None if absent."""
        position = self._index.get(identifier)
        if position is None:
            return None
        group_index, row_index = position
        return self._groups[group_index].rows[row_index]

    def position_of(self, identifier: str) -> Optional[Tuple[int, int]]:
        return self._index.get(identifier)

    def group_index_for(self, group_key: Union[str, int]) -> Optional[int]:
        """Resolve a group key (or a plain index) to a group index."""
        if isinstance(group_key, int) and not isinstance(group_key, bool):
            return group_key if 0 <= group_key < len(self._groups) else None
        for group_index, group in enumerate(self._groups):
            if group.key == group_key:
                return group_index
        return None

    def find_row(self, name: str) -> Optional[PropertyRow]:
        """Return the first row with a display name, including identifier-less rows."""
        for group in self._groups:
            for row in group.rows:
                if row.name == name:
                    return row
        return None

    # === Mutation ===

    def replace_rows(self, group_key: Union[str, int], new_rows: Iterable[RowLike]) -> None:
        """Replace the rows of one group, re-validating and re-indexing it only.

        Args:
            group_key: The group's key, or its index
            new_rows: PropertyRow objects or row dictionaries

        Raises:
            KeyError: If no group matches group_key
            SchemaValidationError: If the new rows fail validation; the schema
                is left unchanged
        """
        group_index = self.group_index_for(group_key)
        if group_index is None:
            raise KeyError(f"No group with key {group_key!r}")
        group_path = f"groups[{group_index}]"
        rows = _parse_rows(new_rows, group_path)
        self._replace_group(group_index, replace(self._groups[group_index], rows=rows))

    def _replace_group(self, group_index: int, group: PropertyGroup) -> None:
        taken: Set[str] = set()
        for other_index, identifiers in enumerate(self._group_identifiers):
            if other_index != group_index:
                taken |= identifiers
        declared = _validate_rows(group.rows, f"groups[{group_index}]", self.nesting_level, taken)

        for identifier in self._group_identifiers[group_index]:
            self._index.pop(identifier, None)
        self._groups[group_index] = group
        self._group_identifiers[group_index] = declared
        self._index_group(group_index)
        logger.debug(
            f"Re-indexed group {group_index} ({group.title!r}) at level {self.nesting_level}: "
            f"{len(group.rows)} rows"
        )

    def apply_groups(self, groups: Iterable[GroupLike]) -> Set[int]:
        """Adopt an updated group list, touching only the groups that changed.

        Returns:
            Indices of the groups that changed. A change in group count
            re-indexes everything and reports every new index.
        """
        parsed = _parse_groups(groups)
        if len(parsed) != len(self._groups):
            rebuilt = ValidatedSchema(parsed, self.nesting_level)
            self._groups = rebuilt._groups
            self._group_identifiers = rebuilt._group_identifiers
            self._index = rebuilt._index
            logger.debug(f"Rebuilt schema at level {self.nesting_level}: {len(parsed)} groups")
            return set(range(len(parsed)))

        changed = {i for i, group in enumerate(parsed) if group != self._groups[i]}
        if not changed:
            return changed
        # Identifiers may move between changed groups, so validate the whole
        # level first and then swap the changed groups in
        trial = ValidatedSchema(parsed, self.nesting_level)
        for group_index in changed:
            for identifier in self._group_identifiers[group_index]:
                self._index.pop(identifier, None)
        for group_index in sorted(changed):
            self._groups[group_index] = trial._groups[group_index]
            self._group_identifiers[group_index] = trial._group_identifiers[group_index]
            self._index_group(group_index)
        logger.debug(f"Applied schema update at level {self.nesting_level}: groups {sorted(changed)} changed")
        return changed


def build_schema(groups: Iterable[GroupLike], nesting_level: int = 0) -> ValidatedSchema:
    """Parse, validate and index a schema definition.

    Args:
        groups: PropertyGroup objects or group dictionaries
        nesting_level: Nesting level of the session that will own the schema

    Raises:
        SchemaValidationError: If any group or row, at any depth, is malformed
    """
    parsed = _parse_groups(groups)
    schema = ValidatedSchema(parsed, nesting_level)
    logger.debug(
        f"Built schema at level {nesting_level}: {schema.group_count} groups, "
        f"{len(schema.identifiers)} identifiers"
    )
    return schema
