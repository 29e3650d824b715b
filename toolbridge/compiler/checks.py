"""
Stateless helpers shared by the type converters.

Everything here is either a pure function or a cached, read-only object
(compiled patterns, pydantic ``TypeAdapter`` instances), so compiles running
side by side can share them freely.
"""

import re
from collections.abc import Callable, Iterable
from datetime import datetime
from functools import lru_cache
from typing import Any
from uuid import UUID

from pydantic import ConfigDict, EmailStr, HttpUrl, InstanceOf, TypeAdapter, ValidationError

from toolbridge.core.errors import RegexCompilationError

# ============================================================================
# Regular expressions
# ============================================================================

_PATTERN_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    # JavaScript-only flags with no Python counterpart for a single match
    "g": 0,
    "u": 0,
    "y": 0,
}

# Character-class modifiers of the string rule: name -> (pattern, message)
CHARSET_PATTERNS: dict[str, tuple[str, str]] = {
    "alpha": (r"^[A-Za-z]+$", "Value must contain only alphabetic characters"),
    "numeric": (r"^[0-9]+$", "Value must contain only numeric characters"),
    "alphanum": (r"^[A-Za-z0-9]+$", "Value must contain only alphanumeric characters"),
    "alphadash": (
        r"^[A-Za-z0-9_-]+$",
        "Value must contain only alphanumeric characters, dashes or underscores",
    ),
    "hex": (r"^[0-9a-fA-F]+$", "Value must be a valid hexadecimal string"),
    "single_line": (r"^[^\r\n]*$", "Value must be a single line string"),
    "base64": (
        r"^(?:[A-Za-z0-9+/]{4})*(?:[A-Za-z0-9+/]{2}==|[A-Za-z0-9+/]{3}=)?$",
        "Value must be a valid base64 string",
    ),
}

# Colon or dash separated pairs, or dot separated quads
MAC_PATTERN = (
    r"^((([a-fA-F0-9][a-fA-F0-9]+[-]){5}|([a-fA-F0-9][a-fA-F0-9]+[:]){5})([a-fA-F0-9][a-fA-F0-9])$)"
    r"|(^([a-fA-F0-9][a-fA-F0-9][a-fA-F0-9][a-fA-F0-9]+[.]){2}"
    r"([a-fA-F0-9][a-fA-F0-9][a-fA-F0-9][a-fA-F0-9]))$"
)

_CURRENCY_TEMPLATE = r"(?=.*\d)^(-?~1|~1-?)(([0-9]\d{0,2}(~2\d{3})*)|0)?(~3\d{1,2})?$"


def compile_pattern(
    pattern: str | re.Pattern, flags: str | None = None, path: str = "$"
) -> re.Pattern:
    """
    Compile a rule pattern, translating rule-language flag letters.

    Args:
        pattern: Pattern source or an already-compiled pattern
        flags: Flag letters such as ``"im"``
        path: Location of the rule (for error reporting)

    Raises:
        RegexCompilationError: If the pattern or a flag letter is invalid
    """
    if isinstance(pattern, re.Pattern) and not flags:
        return pattern

    source = pattern.pattern if isinstance(pattern, re.Pattern) else pattern
    compiled_flags = pattern.flags if isinstance(pattern, re.Pattern) else 0
    for letter in flags or "":
        if letter not in _PATTERN_FLAGS:
            raise RegexCompilationError(
                f"Unsupported pattern flag '{letter}' at {path}",
                details={"path": path, "pattern": source, "flags": flags},
            )
        compiled_flags |= _PATTERN_FLAGS[letter]

    try:
        return _compile_cached(source, compiled_flags)
    except re.error as exc:
        raise RegexCompilationError(
            f"Invalid pattern at {path}: {exc}",
            details={"path": path, "pattern": source, "error": str(exc)},
        ) from exc


@lru_cache(maxsize=512)
def _compile_cached(source: str, flags: int) -> re.Pattern:
    return re.compile(source, flags)


def enum_pattern(values: Iterable[str]) -> str:
    """Anchored alternation matching exactly one of ``values``."""
    return "^(?:" + "|".join(re.escape(value) for value in values) + ")$"


def currency_pattern(
    symbol: str | None,
    symbol_optional: bool = False,
    thousand_separator: str = ",",
    decimal_separator: str = ".",
) -> str:
    """
    Build the currency amount pattern.

    The symbol and both separators are escaped before substitution. A
    multi-character symbol is grouped so ``symbolOptional`` applies to the
    whole symbol rather than its last character.

    Example:
        >>> bool(re.match(currency_pattern("$"), "$12,345.67"))
        True
    """
    if symbol:
        escaped = re.escape(symbol)
        if len(symbol) > 1:
            escaped = f"(?:{escaped})"
        symbol_part = escaped + ("?" if symbol_optional else "")
    else:
        symbol_part = ""

    return (
        _CURRENCY_TEMPLATE.replace("~1", symbol_part)
        .replace("~2", re.escape(thousand_separator))
        .replace("~3", re.escape(decimal_separator))
    )


# ============================================================================
# Checksums and comparisons
# ============================================================================

_LUHN_DOUBLED = (0, 2, 4, 6, 8, 1, 3, 5, 7, 9)
_NON_DIGITS = re.compile(r"\D+")


def luhn_valid(value: str) -> bool:
    """
    Luhn checksum over the digits of ``value``.

    Non-digit characters are ignored, so ``"4539 1488 0343 6467"`` and
    ``"4539148803436467"`` are equivalent. A value without digits fails.
    """
    digits = _NON_DIGITS.sub("", value)
    total = 0
    for position, digit in enumerate(reversed(digits)):
        number = int(digit)
        total += _LUHN_DOUBLED[number] if position % 2 else number
    return total % 10 == 0 and total > 0


def _is_number(value: Any) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def strict_equals(left: Any, right: Any) -> bool:
    """Equal and of the same kind; booleans never equal numbers."""
    if isinstance(left, bool) or isinstance(right, bool):
        return isinstance(left, bool) and isinstance(right, bool) and left == right
    if _is_number(left) and _is_number(right):
        return left == right
    return type(left) is type(right) and left == right


def loose_equals(left: Any, right: Any) -> bool:
    """Strict equality, plus numbers equal their numeric text (``1 == "1.0"``)."""
    if strict_equals(left, right):
        return True
    if _is_number(left) and isinstance(right, str):
        return _numeric_text_equals(right, left)
    if _is_number(right) and isinstance(left, str):
        return _numeric_text_equals(left, right)
    return False


def _numeric_text_equals(text: str, number: int | float) -> bool:
    try:
        return float(text.strip()) == number
    except ValueError:
        return False


def contains_strict(values: Iterable[Any], target: Any) -> bool:
    return any(strict_equals(value, target) for value in values)


def all_unique(values: list[Any]) -> bool:
    """Whether no two elements are strictly equal (works for unhashable items)."""
    for index, value in enumerate(values):
        if contains_strict(values[:index], value):
            return False
    return True


# ============================================================================
# Padding
# ============================================================================


def pad_start(value: str, width: int, fill: str = " ") -> str:
    """Left-pad to ``width``, repeating ``fill`` and truncating its last copy."""
    return _padding(value, width, fill) + value


def pad_end(value: str, width: int, fill: str = " ") -> str:
    """Right-pad to ``width``, repeating ``fill`` and truncating its last copy."""
    return value + _padding(value, width, fill)


def _padding(value: str, width: int, fill: str) -> str:
    missing = width - len(value)
    if missing <= 0 or not fill:
        return ""
    return (fill * (missing // len(fill) + 1))[:missing]


# ============================================================================
# Base type adapters
# ============================================================================


@lru_cache(maxsize=None)
def string_adapter(lax: bool) -> TypeAdapter:
    return TypeAdapter(str, config=ConfigDict(strict=not lax, coerce_numbers_to_str=lax))


@lru_cache(maxsize=None)
def number_adapter(lax: bool) -> TypeAdapter:
    return TypeAdapter(int | float, config=ConfigDict(strict=not lax, allow_inf_nan=False))


@lru_cache(maxsize=None)
def boolean_adapter(lax: bool) -> TypeAdapter:
    return TypeAdapter(bool, config=ConfigDict(strict=not lax))


@lru_cache(maxsize=None)
def datetime_adapter(lax: bool) -> TypeAdapter:
    return TypeAdapter(datetime, config=ConfigDict(strict=not lax))


@lru_cache(maxsize=None)
def callable_adapter() -> TypeAdapter:
    return TypeAdapter(Callable[..., Any])


@lru_cache(maxsize=256)
def instance_adapter(cls: type) -> TypeAdapter:
    return TypeAdapter(InstanceOf[cls])


# Format checkers: the value is checked, the original string is kept.


@lru_cache(maxsize=None)
def email_adapter() -> TypeAdapter:
    return TypeAdapter(EmailStr)


@lru_cache(maxsize=None)
def url_adapter() -> TypeAdapter:
    return TypeAdapter(HttpUrl)


@lru_cache(maxsize=None)
def uuid_adapter() -> TypeAdapter:
    return TypeAdapter(UUID)


def first_error_message(exc: ValidationError) -> str:
    """The first pydantic error message, which is all a short-circuit failure reports."""
    errors = exc.errors(include_url=False)
    if not errors:
        return str(exc)
    return errors[0]["msg"]
