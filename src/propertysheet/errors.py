"""
Error taxonomy for the property sheet interpreter.

All errors are raised synchronously at the point of the call. Lookup misses
(unknown identifiers, out-of-schema queries) are not errors: they resolve to
None and are handled by the caller.
"""
from typing import Any, Optional


class PropertySheetError(Exception):
    """Base class for all interpreter errors."""


class SchemaValidationError(PropertySheetError):
    """Raised when a group or row of the schema is malformed.

    Fatal to schema construction: a session cannot start on a schema that
    fails validation.

    Attributes:
        path: Location of the offending node, e.g. "groups[0].rows[2]"
    """

    def __init__(self, message: str, path: Optional[str] = None):
        self.path = path
        if path:
            message = f"{path}: {message}"
        super().__init__(message)


class CoercionError(PropertySheetError):
    """Raised when a committed value cannot be converted to the row's type.

    The commit is rejected and the prior effective value is retained.
    """

    def __init__(self, identifier: str, row_type: Any, raw_value: Any, reason: str = ""):
        self.identifier = identifier
        self.row_type = row_type
        self.raw_value = raw_value
        type_name = getattr(row_type, 'value', row_type)
        message = f"Cannot commit {raw_value!r} to {identifier!r} ({type_name})"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)


class NavigationError(PropertySheetError):
    """Raised on a navigation contract violation.

    Pushing a second child while one is active, popping a session that is not
    on top of the stack, or operating on a dismissed session.
    """


class RowNotEditableError(PropertySheetError):
    """Raised when an edit targets a row declared with ``edit: False``."""

    def __init__(self, identifier: str):
        self.identifier = identifier
        super().__init__(f"Row {identifier!r} is not editable")
