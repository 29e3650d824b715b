"""
Rule normalization - raw rule input to canonical rule descriptors.

Accepts every spelling the rule language allows for one parameter:

- shorthand strings: ``"number|integer|positive"``, ``"string[]|min:1"``
- lists of rules, read as a union (``multi``) of the listed rules
- rule mappings with a ``type`` key
- object shorthand mappings with a ``$$type`` key
- already-built descriptors, returned unchanged

The normalizer is pure: it never touches compiler state and never sees the
root pragmas, which only the compiler façade understands.
"""

import re
from collections.abc import Mapping
from typing import Any

from pydantic import ValidationError

from toolbridge.compiler.rules import RULE_MODELS, AnyRule, BaseRule, StringRule
from toolbridge.core.errors import MalformedRuleError, UnknownTypeError, UnsupportedRuleShapeError
from toolbridge.domain.enums import RuleType

PRAGMA_PREFIX = "$$"
OBJECT_SHORTHAND_KEY = "$$type"
ARRAY_SUFFIX = "[]"

_INT_RE = re.compile(r"^-?\d+$")
_FLOAT_RE = re.compile(r"^-?(\d+\.\d*|\.\d+|\d+)([eE][-+]?\d+)?$")


def parse_shorthand(shorthand: str, path: str = "$") -> dict[str, Any]:
    """
    Expand a shorthand rule string into a raw rule mapping.

    ``type[|modifier[:value]]*`` - a bare modifier sets the flag to True,
    ``no-<flag>`` sets it to False, ``name:value`` carries a value that is
    read as a boolean, an int, a float or left as text. ``type[]`` declares
    an array of ``type``; the modifiers then apply to the array itself.

    Args:
        shorthand: Rule string, e.g. ``"string|min:3|max:10|optional"``
        path: Location of the rule (for error reporting)

    Returns:
        Raw rule mapping with a ``type`` key

    Raises:
        MalformedRuleError: On an empty string, empty segment or empty modifier name

    Example:
        >>> parse_shorthand("number|integer|no-convert|min:1")
        {'type': 'number', 'integer': True, 'convert': False, 'min': 1}
    """
    segments = [segment.strip() for segment in shorthand.split("|")]
    type_name = segments[0]
    if not type_name:
        raise MalformedRuleError(
            f"Empty rule type at {path}", details={"path": path, "rule": shorthand}
        )

    if type_name.endswith(ARRAY_SUFFIX):
        item_type = type_name[: -len(ARRAY_SUFFIX)]
        if not item_type:
            raise MalformedRuleError(
                f"Array shorthand without an item type at {path}",
                details={"path": path, "rule": shorthand},
            )
        rule: dict[str, Any] = {"type": RuleType.ARRAY.value, "items": item_type}
    else:
        rule = {"type": type_name}

    for segment in segments[1:]:
        if not segment:
            raise MalformedRuleError(
                f"Empty modifier in rule '{shorthand}' at {path}",
                details={"path": path, "rule": shorthand},
            )

        name, sep, raw_value = segment.partition(":")
        name = name.strip()
        if not name:
            raise MalformedRuleError(
                f"Modifier without a name in rule '{shorthand}' at {path}",
                details={"path": path, "rule": shorthand, "modifier": segment},
            )

        if sep:
            rule[name] = _parse_modifier_value(raw_value.strip())
        elif name.startswith("no-") and len(name) > 3:
            rule[name[3:]] = False
        else:
            rule[name] = True

    return rule


def _parse_modifier_value(value: str) -> Any:
    if value == "true":
        return True
    if value == "false":
        return False
    if _INT_RE.match(value):
        return int(value)
    if _FLOAT_RE.match(value):
        return float(value)
    return value


def normalize_rule(raw: Any, path: str = "$") -> BaseRule:
    """
    Normalize any accepted rule spelling into a canonical descriptor.

    Child rules of composite types are normalized first, so the returned
    descriptor is a complete tree of typed models.

    Args:
        raw: Shorthand string, list of rules, rule mapping or descriptor
        path: Location of the rule (for error reporting)

    Returns:
        Frozen rule descriptor for the declared type

    Raises:
        MalformedRuleError: Bad grammar, unknown modifier or bad modifier value
        UnknownTypeError: Type tag outside the closed set
        UnsupportedRuleShapeError: Composite rule missing its sub-rule
    """
    if isinstance(raw, BaseRule):
        return raw

    if isinstance(raw, str):
        return _normalize_mapping(parse_shorthand(raw, path), path)

    if isinstance(raw, list):
        return _normalize_union(raw, path)

    if isinstance(raw, Mapping):
        if OBJECT_SHORTHAND_KEY in raw:
            return _normalize_object_shorthand(raw, path)
        return _normalize_mapping(raw, path)

    raise MalformedRuleError(
        f"Rule at {path} must be a string, a list or a mapping, got {type(raw).__name__}",
        details={"path": path, "rule_kind": type(raw).__name__},
    )


def _normalize_union(raw: list, path: str) -> BaseRule:
    if not raw:
        raise UnsupportedRuleShapeError(
            f"Union rule at {path} has no branches", details={"path": path, "rule_type": "multi"}
        )
    branches = [normalize_rule(branch, f"{path}[{i}]") for i, branch in enumerate(raw)]
    return _build(
        RuleType.MULTI,
        {"rules": branches, "optional": all(branch.optional for branch in branches)},
        path,
    )


def _normalize_object_shorthand(raw: Mapping, path: str) -> BaseRule:
    own = raw[OBJECT_SHORTHAND_KEY]
    if not isinstance(own, str):
        raise MalformedRuleError(
            f"'{OBJECT_SHORTHAND_KEY}' at {path} must be a shorthand string",
            details={"path": path},
        )

    rule = parse_shorthand(own, path)
    if rule["type"] != RuleType.OBJECT.value:
        raise MalformedRuleError(
            f"'{OBJECT_SHORTHAND_KEY}' at {path} must declare an object, got '{rule['type']}'",
            details={"path": path, "rule_type": rule["type"]},
        )
    rule["props"] = {
        key: value for key, value in raw.items() if not str(key).startswith(PRAGMA_PREFIX)
    }
    return _normalize_mapping(rule, path)


def _normalize_mapping(raw: Mapping, path: str) -> BaseRule:
    if "type" not in raw:
        raise MalformedRuleError(
            f"Rule at {path} has no 'type'", details={"path": path, "keys": sorted(map(str, raw))}
        )

    rule_type = _resolve_type(raw["type"], path)
    data = {key: value for key, value in raw.items() if key != "type"}

    if rule_type == RuleType.ARRAY:
        data["items"] = normalize_rule(_require(data, "items", rule_type, path), f"{path}[]")

    elif rule_type == RuleType.OBJECT:
        data.pop("properties", None)
        props = raw.get("props", raw.get("properties"))
        if props is None:
            raise UnsupportedRuleShapeError(
                f"Object rule at {path} has no 'props'",
                details={"path": path, "rule_type": rule_type.value},
            )
        if not isinstance(props, Mapping):
            raise MalformedRuleError(
                f"'props' at {path} must be a mapping of property rules",
                details={"path": path, "rule_type": rule_type.value},
            )
        data["props"] = {
            name: normalize_rule(prop, f"{path}.{name}") for name, prop in props.items()
        }

    elif rule_type == RuleType.MULTI:
        branches = _require(data, "rules", rule_type, path)
        if not isinstance(branches, list):
            raise MalformedRuleError(
                f"'rules' at {path} must be a list", details={"path": path, "rule_type": "multi"}
            )
        if not branches:
            raise UnsupportedRuleShapeError(
                f"Multi rule at {path} has an empty 'rules' list",
                details={"path": path, "rule_type": rule_type.value},
            )
        data["rules"] = [
            normalize_rule(branch, f"{path}[{i}]") for i, branch in enumerate(branches)
        ]

    elif rule_type == RuleType.TUPLE:
        slots = _require(data, "items", rule_type, path)
        if not isinstance(slots, list):
            raise MalformedRuleError(
                f"Tuple 'items' at {path} must be a list",
                details={"path": path, "rule_type": "tuple"},
            )
        data["items"] = [normalize_rule(slot, f"{path}[{i}]") for i, slot in enumerate(slots)]

    elif rule_type == RuleType.RECORD:
        key = data.get("key")
        value = data.get("value")
        data["key"] = StringRule() if key is None else normalize_rule(key, f"{path}<key>")
        data["value"] = AnyRule() if value is None else normalize_rule(value, f"{path}<value>")

    return _build(rule_type, data, path)


def _resolve_type(tag: Any, path: str) -> RuleType:
    if isinstance(tag, RuleType):
        return tag
    if not isinstance(tag, str):
        raise MalformedRuleError(
            f"Rule type at {path} must be a string", details={"path": path, "type": repr(tag)}
        )
    try:
        return RuleType(tag)
    except ValueError:
        raise UnknownTypeError(
            f"Unknown rule type '{tag}' at {path}",
            details={"path": path, "rule_type": tag, "allowed": [t.value for t in RuleType]},
        )


def _require(data: dict, field: str, rule_type: RuleType, path: str) -> Any:
    value = data.get(field)
    if value is None:
        raise UnsupportedRuleShapeError(
            f"{rule_type.value.capitalize()} rule at {path} has no '{field}'",
            details={"path": path, "rule_type": rule_type.value, "field": field},
        )
    return value


def _build(rule_type: RuleType, data: dict[str, Any], path: str) -> BaseRule:
    model = RULE_MODELS[rule_type]
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        problems = [
            {"loc": ".".join(str(part) for part in err["loc"]), "msg": err["msg"]}
            for err in exc.errors()
        ]
        summary = "; ".join(f"{p['loc'] or 'rule'}: {p['msg']}" for p in problems)
        raise MalformedRuleError(
            f"Invalid {rule_type.value} rule at {path}: {summary}",
            details={"path": path, "rule_type": rule_type.value, "errors": problems},
        ) from exc
