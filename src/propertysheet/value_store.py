"""
Value store: layered value sets for one session.

Three mappings from identifier to value:
- values_in: supplied by the host (or parent session), read-only
- values_default: fallback supplied by the host, read-only
- values_out: edits accumulated in this session, the only mutable set

Effective value = values_out, else values_in, else values_default, else the
row's declared value. diff() is values_out alone: it is what a session hands
back to its parent or host on dismissal.

Indexed identifiers let one declared row stand for a repeated field:
encode_indexed_identifier("phone", 1) == "phone1". An undeclared indexed key
is typed by its base row.
"""
import copy
import logging
import re
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Set, Tuple, TYPE_CHECKING

from propertysheet.errors import CoercionError
from propertysheet.row_types import CoercionFailed, RowTypeRegistry
from propertysheet.schema_model import PropertyRow

if TYPE_CHECKING:
    from propertysheet.delegate import SettingsDelegate

logger = logging.getLogger(__name__)

# Canonical decimal index (no leading zeros) after a name ending in a non-digit
_INDEXED_RE = re.compile(r'^(?P<name>.*[^0-9])(?P<index>0|[1-9][0-9]*)$')


def encode_indexed_identifier(name: str, index: int) -> str:
    """Derive the key of the index-th instance of a repeated field.

    Raises:
        ValueError: If name is empty or ends with a digit (the key would not
            decode back), or index is negative
    """
    if not isinstance(name, str) or not name:
        raise ValueError("Indexed identifier name must be a non-empty string")
    if name[-1] in "0123456789":
        raise ValueError(f"Indexed identifier name must not end with a digit: {name!r}")
    if isinstance(index, bool) or not isinstance(index, int) or index < 0:
        raise ValueError(f"Index must be a non-negative integer, got {index!r}")
    return f"{name}{index}"


def decode_indexed_identifier(key: str) -> Optional[Tuple[str, int]]:
    """Split a key produced by encode_indexed_identifier() into (name, index).

    Returns None for keys that are not in canonical indexed form.
    """
    if not isinstance(key, str):
        return None
    match = _INDEXED_RE.match(key)
    if match is None:
        return None
    return match.group('name'), int(match.group('index'))


class ValueStore:
    """Input/default/output value sets of one session with typed commits."""

    def __init__(
        self,
        values_in: Optional[Mapping[str, Any]],
        values_default: Optional[Mapping[str, Any]],
        row_resolver: Callable[[str], Optional[PropertyRow]],
        registry: RowTypeRegistry,
        delegate: Optional['SettingsDelegate'] = None,
    ):
        """
        Args:
            values_in: Input values; snapshotted, later host mutations are not seen
            values_default: Fallback values; snapshotted
            row_resolver: Looks up the declared row for an identifier
            registry: Supplies coercion rules
            delegate: Consulted for custom row contracts
        """
        self._values_in: Dict[str, Any] = copy.deepcopy(dict(values_in or {}))
        self._values_default: Dict[str, Any] = copy.deepcopy(dict(values_default or {}))
        self._values_out: Dict[str, Any] = {}
        self._row_resolver = row_resolver
        self._registry = registry
        self._delegate = delegate

    @property
    def values_in(self) -> Mapping[str, Any]:
        return MappingProxyType(self._values_in)

    @property
    def values_default(self) -> Mapping[str, Any]:
        return MappingProxyType(self._values_default)

    @property
    def values_out(self) -> Mapping[str, Any]:
        return MappingProxyType(self._values_out)

    def row_for(self, identifier: str) -> Optional[PropertyRow]:
        """Declared row for identifier, falling back to the base row of an indexed key."""
        row = self._row_resolver(identifier)
        if row is not None:
            return row
        decoded = decode_indexed_identifier(identifier)
        if decoded is not None:
            return self._row_resolver(decoded[0])
        return None

    def has_value(self, identifier: str) -> bool:
        """True if any of the three value sets holds identifier."""
        return (
            identifier in self._values_out
            or identifier in self._values_in
            or identifier in self._values_default
        )

    def effective_value(self, identifier: str) -> Any:
        """Resolve identifier through output, input, default, then declared value.

        Unknown identifiers resolve to None.
        """
        if identifier in self._values_out:
            return self._values_out[identifier]
        if identifier in self._values_in:
            return self._values_in[identifier]
        if identifier in self._values_default:
            return self._values_default[identifier]
        row = self.row_for(identifier)
        return row.value if row is not None else None

    def commit(self, identifier: str, value: Any) -> bool:
        """Coerce value to the row's type and record it as an edit.

        Returns:
            True if values_out changed, False if the coerced value already
            was the effective value

        Raises:
            KeyError: If no row declares identifier
            CoercionError: If value cannot be converted to the row's type or
                is not one of its choices; nothing is written
        """
        row = self.row_for(identifier)
        if row is None:
            raise KeyError(f"No row declares identifier {identifier!r}")

        contract = self._registry.contract_for_row(row, self._delegate)
        if not contract.is_persisted:
            raise CoercionError(identifier, row.type, value, "row carries no persisted value")
        try:
            coerced = contract.coerce(value)
        except CoercionFailed as e:
            raise CoercionError(identifier, row.type, value, str(e)) from e

        if row.has_choice_set and coerced is not None and row.choice_for_value(coerced) is None:
            raise CoercionError(identifier, row.type, value, "not one of the row's choices")

        if self.effective_value(identifier) == coerced:
            return False

        self._values_out[identifier] = coerced
        logger.debug(f"Committed {identifier}={coerced!r}")
        return True

    def discard(self, identifier: str) -> bool:
        """Drop the accumulated edit for identifier. Returns True if one existed."""
        if identifier in self._values_out:
            del self._values_out[identifier]
            return True
        return False

    def diff(self) -> Dict[str, Any]:
        """Accumulated edits only, as a deep copy."""
        return copy.deepcopy(self._values_out)

    @property
    def dirty_identifiers(self) -> Set[str]:
        return set(self._values_out.keys())

    def is_dirty(self, identifier: str) -> bool:
        return identifier in self._values_out

    def merge_child(self, child_key: str, child_diff: Mapping[str, Any]) -> None:
        """Install a child session's edits as the nested value at child_key.

        Replaces any previous nested value for child_key; keys edited in an
        earlier child session are not carried over.
        """
        self._values_out[child_key] = copy.deepcopy(dict(child_diff))
        logger.debug(f"Merged child edits into {child_key}: {sorted(child_diff.keys())}")

    # === Indexed identifiers ===

    def indexed_values(self, name: str) -> List[Tuple[int, Any]]:
        """Effective values of every instance of a repeated field, by index."""
        indices: Set[int] = set()
        for values in (self._values_out, self._values_in, self._values_default):
            for key in values:
                decoded = decode_indexed_identifier(key)
                if decoded is not None and decoded[0] == name:
                    indices.add(decoded[1])
        return [
            (index, self.effective_value(encode_indexed_identifier(name, index)))
            for index in sorted(indices)
        ]

    def next_index(self, name: str) -> int:
        """First index after every instance currently present."""
        existing = self.indexed_values(name)
        return existing[-1][0] + 1 if existing else 0
