"""
Helpers for authoring schema definitions in code.

Each helper returns a plain dictionary in the schema definition format, so
schemas written with them can be stored, diffed and fed to build_schema()
unchanged.

Example:
    schema = [
        p_section("Account", rows=[
            p_row("User name", RowType.STRING, "", identifier="username"),
            p_row("Color", RowType.MULTI_VALUE, [
                p_multivalue("White", 0),
                p_multivalue("Yellow", 1),
            ], identifier="color"),
        ]),
    ]
"""
from typing import Any, Dict, Optional, Sequence, Union

from propertysheet.schema_model import RowType


def p_section(
    title: str,
    rows: Sequence[Dict[str, Any]],
    header: Optional[str] = None,
    footer: Optional[str] = None,
    key: Optional[str] = None,
) -> Dict[str, Any]:
    """Group dictionary. Optional fields are only emitted when given."""
    section: Dict[str, Any] = {"title": title, "rows": list(rows)}
    if key is not None:
        section["key"] = key
    if header is not None:
        section["header"] = header
    if footer is not None:
        section["footer"] = footer
    return section


def p_row(
    name: str,
    row_type: Union[RowType, str, int],
    value: Any = None,
    edit: bool = True,
    keyboard_hint: Any = 0,
    flags: str = "",
    identifier: Optional[str] = None,
) -> Dict[str, Any]:
    """Row dictionary. row_type is stored by name."""
    return {
        "name": name,
        "type": RowType.parse(row_type).value,
        "value": value,
        "edit": edit,
        "keyboardHint": keyboard_hint,
        "flags": flags,
        "identifier": identifier,
    }


def p_multivalue(name: str, value: Any) -> Dict[str, Any]:
    """Choice entry of a multiValue/pickerList/pickerView row."""
    return {"name": name, "value": value}
