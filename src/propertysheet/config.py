"""
Interpreter configuration.

A single module-level configuration instance is used by sessions that are not
handed an explicit one. Tests and hosts replace it with
set_interpreter_config() and restore it with reset_interpreter_config().
"""
from dataclasses import dataclass, field
from typing import Tuple


@dataclass(frozen=True)
class InterpreterConfig:
    """Tunable behavior of coercion and presentation defaults."""
    boolean_true_strings: Tuple[str, ...] = ("true", "yes", "on", "1")
    boolean_false_strings: Tuple[str, ...] = ("false", "no", "off", "0")
    # Tried in order after ISO 8601
    date_formats: Tuple[str, ...] = ("%d.%m.%Y", "%m/%d/%Y")
    strip_text: bool = True
    default_row_height: float = 44.0
    flag_separators: Tuple[str, ...] = field(default=(",", " "))


_DEFAULT_CONFIG = InterpreterConfig()
_interpreter_config: InterpreterConfig = _DEFAULT_CONFIG


def set_interpreter_config(config: InterpreterConfig) -> None:
    """Set the configuration used by sessions created without an explicit one."""
    global _interpreter_config
    _interpreter_config = config


def get_interpreter_config() -> InterpreterConfig:
    """Get the current module-level configuration."""
    return _interpreter_config


def reset_interpreter_config() -> None:
    """Restore the built-in default configuration."""
    global _interpreter_config
    _interpreter_config = _DEFAULT_CONFIG
