"""
Domain-specific exceptions for the tool bridge.

Compile-time errors describe rules that cannot be translated into a
validator. Runtime errors describe payloads rejected by a compiled
validator. Both are mapped onto JSON-RPC error codes for the tool-calling
protocol layer.
"""

from typing import Any


class ToolBridgeError(Exception):
    """Base exception for all tool bridge errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(self.message)


# ============================================================================
# Compile-time errors
# ============================================================================


class SchemaCompileError(ToolBridgeError):
    """
    Raised when a rule cannot be compiled into a validator.

    Fatal to the field (or root value) that triggered it. Whether the rest of
    the schema keeps compiling is decided by the compiler's isolation policy.
    """

    pass


class MalformedRuleError(SchemaCompileError):
    """
    Raised when a rule is syntactically invalid.

    Examples:
    - Empty shorthand string or empty modifier segment
    - Unknown modifier for the declared type
    - Modifier value of the wrong kind (e.g. ``min:abc`` on a string)
    """

    pass


class UnknownTypeError(SchemaCompileError):
    """
    Raised when a rule declares a type tag outside the closed set.

    Examples:
    - ``{"type": "strnig"}``
    - ``"custom|min:3"``
    """

    pass


class InvalidDefaultError(SchemaCompileError):
    """
    Raised when a default value disagrees with the declared type.

    Examples:
    - ``{"type": "number", "default": "ten"}``
    - ``{"type": "array", "items": "string", "default": "a"}``
    """

    pass


class RegexCompilationError(SchemaCompileError):
    """
    Raised when a pattern cannot be compiled.

    Examples:
    - ``{"type": "string", "pattern": "(unclosed"}``
    - Currency ``customRegex`` with a syntax error
    """

    pass


class UnsupportedRuleShapeError(SchemaCompileError):
    """
    Raised when a composite rule lacks its required sub-rule.

    Examples:
    - ``array`` without ``items``
    - ``object`` without ``props``
    - ``multi`` with an empty ``rules`` list
    """

    pass


class EmptyPipelineError(SchemaCompileError):
    """
    Raised when a type converter produced no stages.

    This is a defect in the converter table, never a user error.
    """

    pass


class PipelineOrderError(SchemaCompileError):
    """
    Raised when a converter emits stages out of the fixed evaluation order.

    Like EmptyPipelineError this is a converter defect.
    """

    pass


class IncompleteSchemaError(SchemaCompileError):
    """
    Raised when a schema with failed fields is asked to validate a payload.

    A schema missing a field validator must never be used as if it were
    complete.
    """

    pass


# ============================================================================
# Runtime errors
# ============================================================================


class PayloadValidationError(ToolBridgeError):
    """
    Raised when a value is rejected by a composed validator.

    Attributes:
        path: Location of the rejected value inside the payload
        stage: Stage category that rejected the value
        check: Name of the failing check (e.g. ``string.min``)
    """

    def __init__(
        self,
        message: str,
        *,
        path: tuple[str | int, ...] = (),
        stage: str | None = None,
        check: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        self.path = tuple(path)
        self.stage = stage
        self.check = check
        merged = {"path": format_path(self.path), "stage": stage, "check": check}
        merged.update(details or {})
        super().__init__(message, merged)

    def at(self, key: str | int) -> "PayloadValidationError":
        """Return a copy of this error located one level deeper under ``key``."""
        extra = {k: v for k, v in self.details.items() if k not in ("path", "stage", "check")}
        return PayloadValidationError(
            self.message,
            path=(key, *self.path),
            stage=self.stage,
            check=self.check,
            details=extra,
        )

    def __str__(self) -> str:
        if self.path:
            return f"{format_path(self.path)}: {self.message}"
        return self.message


class ToolNotFoundError(ToolBridgeError):
    """Raised when arguments are submitted for a tool that is not registered."""

    pass


def format_path(path: tuple[str | int, ...]) -> str:
    """Render a value path as ``$.items[2].id``."""
    rendered = "$"
    for part in path:
        if isinstance(part, int):
            rendered += f"[{part}]"
        else:
            rendered += f".{part}"
    return rendered


# JSON-RPC error code mapping
ERROR_CODE_MAP = {
    PayloadValidationError: -32602,
    ToolNotFoundError: -32601,
    SchemaCompileError: -32603,
}


def get_error_code(error: Exception) -> int:
    """
    Get the JSON-RPC error code for a given exception.

    Subclasses inherit the code of their nearest mapped ancestor.

    Args:
        error: The exception instance

    Returns:
        JSON-RPC error code (defaults to -32603 internal error)
    """
    for cls in type(error).__mro__:
        if cls in ERROR_CODE_MAP:
            return ERROR_CODE_MAP[cls]
    return -32603
