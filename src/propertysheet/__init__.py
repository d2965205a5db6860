"""
Declarative settings sheets interpreted into editing sessions.

A host describes its settings surface as a nested schema of groups and typed
rows. The interpreter validates and indexes that schema, tracks layered
values (input, defaults, accumulated edits), recurses into child sessions for
nested rows and reports every change back through a delegate.

Quick Start:
    >>> from propertysheet import SessionController, CallbackDelegate, p_section, p_row, RowType
    >>>
    >>> schema = [
    ...     p_section("General", rows=[
    ...         p_row("Name", RowType.STRING, identifier="name"),
    ...         p_row("Retries", RowType.INTEGER, 3, identifier="retries"),
    ...     ]),
    ... ]
    >>> delegate = CallbackDelegate(initial_values=lambda: {"name": "Ada"})
    >>> root = SessionController(schema, delegate).begin()
    >>> root.commit("retries", "5")
    True
    >>> root.dismiss()
    {'retries': 5}

Architecture:
    Value resolution for an identifier:
        accumulated edits -> input values -> default values -> declared value

    Nested rows (multiLevel, propertyList) push a child session one nesting
    level deeper; dismissing it installs its edits in the parent under the
    row's key.

Modules:
    - schema_model: Row/group types, validation and indexing
    - row_types: Editing contract and coercion rule per row type
    - value_store: Layered value sets and indexed identifiers
    - navigation: Parent/child session stack
    - delegate: Host protocol with no-op defaults
    - session: Session operations and the SessionController entry point
    - descriptor_model: Immutable row descriptors for presentation layers
    - builders: Schema authoring helpers
    - config: Interpreter configuration
"""

from propertysheet.errors import (
    PropertySheetError,
    SchemaValidationError,
    CoercionError,
    NavigationError,
    RowNotEditableError,
)

from propertysheet.config import (
    InterpreterConfig,
    set_interpreter_config,
    get_interpreter_config,
    reset_interpreter_config,
)

from propertysheet.schema_model import (
    RowType,
    MultiValueEntry,
    PropertyRow,
    PropertyGroup,
    ValidatedSchema,
    build_schema,
    child_key_for,
)

from propertysheet.row_types import (
    InteractionKind,
    RowContract,
    RowTypeRegistry,
    CoercionFailed,
)

from propertysheet.value_store import (
    ValueStore,
    encode_indexed_identifier,
    decode_indexed_identifier,
)

from propertysheet.delegate import SettingsDelegate, CallbackDelegate

from propertysheet.navigation import NavigationStack, SessionState

from propertysheet.descriptor_model import RowDescriptor, GroupDescriptor

from propertysheet.session import Session, SessionController

from propertysheet.builders import p_section, p_row, p_multivalue

__all__ = [
    # Errors
    'PropertySheetError',
    'SchemaValidationError',
    'CoercionError',
    'NavigationError',
    'RowNotEditableError',
    # Configuration
    'InterpreterConfig',
    'set_interpreter_config',
    'get_interpreter_config',
    'reset_interpreter_config',
    # Schema
    'RowType',
    'MultiValueEntry',
    'PropertyRow',
    'PropertyGroup',
    'ValidatedSchema',
    'build_schema',
    'child_key_for',
    # Row types
    'InteractionKind',
    'RowContract',
    'RowTypeRegistry',
    'CoercionFailed',
    # Values
    'ValueStore',
    'encode_indexed_identifier',
    'decode_indexed_identifier',
    # Delegate
    'SettingsDelegate',
    'CallbackDelegate',
    # Navigation
    'NavigationStack',
    'SessionState',
    # Descriptors
    'RowDescriptor',
    'GroupDescriptor',
    # Session
    'Session',
    'SessionController',
    # Builders
    'p_section',
    'p_row',
    'p_multivalue',
]

__version__ = '1.0.0'
__description__ = 'Declarative settings sheets interpreted into editing sessions'
