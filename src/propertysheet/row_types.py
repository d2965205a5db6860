"""
Row type registry: the editing contract of every row type.

A contract tells the interpreter how a row is interacted with, whether
activating it recurses into a child schema, whether its value is persisted,
and how a raw incoming value is coerced to the row's declared type.

Each SessionController owns its own RowTypeRegistry; there is no global
registry. Hosts override contracts with register(), and supply replacement
contracts for custom rows through the delegate.
"""
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
import logging
import math
from typing import Any, Callable, Dict, Mapping, Optional, TYPE_CHECKING

from propertysheet.config import get_interpreter_config
from propertysheet.schema_model import PropertyRow, RowType

if TYPE_CHECKING:
    from propertysheet.delegate import SettingsDelegate

logger = logging.getLogger(__name__)


class InteractionKind(Enum):
    """How the presentation layer lets the user interact with a row."""
    DISPLAY = "display"
    EDIT_TEXT = "edit_text"
    EDIT_MULTILINE = "edit_multiline"
    EDIT_RICH_TEXT = "edit_rich_text"
    EDIT_NUMBER = "edit_number"
    TOGGLE = "toggle"
    PICK_DATE = "pick_date"
    EDIT_LIST = "edit_list"
    SELECT = "select"
    NAVIGATE = "navigate"
    ACTION = "action"
    CUSTOM = "custom"


class CoercionFailed(ValueError):
    """Raised by coercion functions. The value store turns it into a CoercionError."""


@dataclass(frozen=True)
class RowContract:
    """Editing contract for one row type.

    row_height, on_select and on_commit_delete are only meaningful for custom
    rows; None means the interpreter default applies.
    """
    interaction_kind: InteractionKind
    coerce: Callable[[Any], Any]
    recurses_to_child_schema: bool = False
    is_persisted: bool = True
    row_height: Optional[float] = None
    on_select: Optional[Callable[[PropertyRow], Any]] = None
    on_commit_delete: Optional[Callable[[PropertyRow], Any]] = None


# === Coercion rules ===

def coerce_identity(raw: Any) -> Any:
    return raw


def _strip_configured(text: str) -> str:
    return text.strip() if get_interpreter_config().strip_text else text


def coerce_text(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, (bytes, bytearray)):
        try:
            text = bytes(raw).decode("utf-8")
        except UnicodeDecodeError as e:
            raise CoercionFailed(f"not valid UTF-8 text: {e}") from e
    elif isinstance(raw, (list, tuple, dict, set)):
        raise CoercionFailed(f"expected text, got {type(raw).__name__}")
    else:
        text = str(raw)
    return _strip_configured(text)


def coerce_integer(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise CoercionFailed("booleans are not integers")
    if isinstance(raw, int):
        return raw
    if isinstance(raw, (float, Decimal)):
        finite = raw.is_finite() if isinstance(raw, Decimal) else math.isfinite(raw)
        if not finite:
            raise CoercionFailed("not a finite number")
        if int(raw) != raw:
            raise CoercionFailed("not an integral number")
        return int(raw)
    if isinstance(raw, str):
        text = _strip_configured(raw)
        try:
            return int(text, 10)
        except ValueError as e:
            raise CoercionFailed("not an integer literal") from e
    raise CoercionFailed(f"cannot convert {type(raw).__name__} to integer")


def coerce_decimal(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, bool):
        raise CoercionFailed("booleans are not decimals")
    if isinstance(raw, Decimal):
        value = raw
    elif isinstance(raw, int):
        value = Decimal(raw)
    elif isinstance(raw, float):
        value = Decimal(str(raw))
    elif isinstance(raw, str):
        text = _strip_configured(raw)
        try:
            value = Decimal(text)
        except InvalidOperation as e:
            raise CoercionFailed("not a decimal literal") from e
    else:
        raise CoercionFailed(f"cannot convert {type(raw).__name__} to decimal")
    if not value.is_finite():
        raise CoercionFailed("not a finite number")
    return value


def coerce_boolean(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, bool):
        return raw
    if isinstance(raw, int):
        if raw in (0, 1):
            return bool(raw)
        raise CoercionFailed("only 0 and 1 convert to booleans")
    if isinstance(raw, str):
        config = get_interpreter_config()
        text = _strip_configured(raw).lower()
        if text in config.boolean_true_strings:
            return True
        if text in config.boolean_false_strings:
            return False
        raise CoercionFailed("not a boolean literal")
    raise CoercionFailed(f"cannot convert {type(raw).__name__} to boolean")


def coerce_date(raw: Any) -> Any:
    if raw is None:
        return None
    # datetime is a subclass of date and passes through unchanged
    if isinstance(raw, date):
        return raw
    if isinstance(raw, str):
        text = _strip_configured(raw)
        try:
            if "T" in text or " " in text:
                return datetime.fromisoformat(text)
            return date.fromisoformat(text)
        except ValueError:
            pass
        for fmt in get_interpreter_config().date_formats:
            try:
                return datetime.strptime(text, fmt).date()
            except ValueError:
                continue
        raise CoercionFailed("not a recognised date")
    raise CoercionFailed(f"cannot convert {type(raw).__name__} to date")


def coerce_list(raw: Any) -> Any:
    if raw is None:
        return None
    if isinstance(raw, (str, bytes, Mapping)):
        raise CoercionFailed(f"expected a list, got {type(raw).__name__}")
    try:
        return list(raw)
    except TypeError as e:
        raise CoercionFailed(f"expected a list, got {type(raw).__name__}") from e


def coerce_mapping(raw: Any) -> Any:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise CoercionFailed(f"expected a mapping, got {type(raw).__name__}")
    return dict(raw)


def coerce_nothing(raw: Any) -> Any:
    raise CoercionFailed("row carries no persisted value")


_DEFAULT_CONTRACTS: Dict[RowType, RowContract] = {
    RowType.DEFAULT: RowContract(InteractionKind.DISPLAY, coerce_identity),
    RowType.STRING: RowContract(InteractionKind.EDIT_TEXT, coerce_text),
    RowType.INTEGER: RowContract(InteractionKind.EDIT_NUMBER, coerce_integer),
    RowType.DECIMAL: RowContract(InteractionKind.EDIT_NUMBER, coerce_decimal),
    RowType.BOOLEAN: RowContract(InteractionKind.TOGGLE, coerce_boolean),
    RowType.DATE: RowContract(InteractionKind.PICK_DATE, coerce_date),
    RowType.MULTILINE_TEXT: RowContract(InteractionKind.EDIT_MULTILINE, coerce_text),
    RowType.RICH_TEXT: RowContract(InteractionKind.EDIT_RICH_TEXT, coerce_text),
    RowType.SIMPLE_LIST: RowContract(InteractionKind.EDIT_LIST, coerce_list),
    RowType.CUSTOM: RowContract(InteractionKind.CUSTOM, coerce_identity),
    RowType.CHOICE: RowContract(InteractionKind.SELECT, coerce_identity),
    RowType.MULTI_VALUE: RowContract(InteractionKind.SELECT, coerce_identity),
    RowType.PICKER_LIST: RowContract(InteractionKind.SELECT, coerce_identity),
    RowType.PICKER_VIEW: RowContract(InteractionKind.SELECT, coerce_identity),
    RowType.MULTI_LEVEL: RowContract(InteractionKind.NAVIGATE, coerce_mapping, recurses_to_child_schema=True),
    RowType.PROPERTY_LIST: RowContract(InteractionKind.NAVIGATE, coerce_mapping, recurses_to_child_schema=True),
    RowType.ACTION: RowContract(InteractionKind.ACTION, coerce_nothing, is_persisted=False),
}


class RowTypeRegistry:
    """Maps each RowType to its RowContract.

    Starts from the built-in contracts; register() overrides one type for
    this registry only.
    """

    def __init__(self, overrides: Optional[Mapping[RowType, RowContract]] = None):
        self._contracts: Dict[RowType, RowContract] = dict(_DEFAULT_CONTRACTS)
        if overrides:
            for row_type, contract in overrides.items():
                self.register(row_type, contract)

    def register(self, row_type: RowType, contract: RowContract) -> None:
        """Override the contract for a row type."""
        row_type = RowType.parse(row_type)
        self._contracts[row_type] = contract
        logger.debug(f"Registered contract for {row_type.value}: {contract.interaction_kind.value}")

    def contract_for(self, row_type: RowType) -> RowContract:
        return self._contracts[RowType.parse(row_type)]

    def contract_for_row(self, row: PropertyRow, delegate: Optional['SettingsDelegate'] = None) -> RowContract:
        """Resolve a row's contract, letting the delegate replace it for custom rows."""
        if row.type is RowType.CUSTOM and delegate is not None:
            replacement = delegate.contract_for_custom_row(row)
            if replacement is not None:
                return replacement
        return self.contract_for(row.type)

    def coerce(self, row: PropertyRow, raw: Any, delegate: Optional['SettingsDelegate'] = None) -> Any:
        """Coerce raw to the row's type.

        Raises:
            CoercionFailed: If raw cannot be represented as the row's type
        """
        return self.contract_for_row(row, delegate).coerce(raw)
