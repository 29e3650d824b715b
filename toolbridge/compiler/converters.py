"""
Type converters - one strategy per rule type.

Each converter receives a normalized rule descriptor, the inherited
strictness context and the compiler (for recursion into child rules), and
returns the ordered stage list for that rule:

    SHAPE -> PRE_PROCESS -> VALIDATE -> REFINE -> MANIPULATE

Stages with nothing to do are left out. ``CONVERTERS`` covers every
``RuleType``; ``get_converter`` raises for anything else.
"""

import copy
import re
from collections.abc import Callable, Mapping
from typing import TYPE_CHECKING, Any

from pydantic import ValidationError
from pydantic_core import PydanticSerializationError, to_jsonable_python

from toolbridge.compiler import checks
from toolbridge.compiler.pipeline import (
    UNDEFINED,
    Check,
    Stage,
    StageFailure,
    StrictnessContext,
    check_stage,
    transform_stage,
    validate_properties,
)
from toolbridge.compiler.rules import (
    AnyRule,
    ArrayRule,
    BaseRule,
    BooleanRule,
    ClassRule,
    CurrencyRule,
    DateRule,
    EmailRule,
    EnumRule,
    EqualRule,
    ForbiddenRule,
    FunctionRule,
    LuhnRule,
    MacRule,
    MultiRule,
    NumberRule,
    ObjectIdRule,
    ObjectRule,
    RecordRule,
    StringRule,
    TupleRule,
    UrlRule,
    UuidRule,
)
from toolbridge.core.errors import (
    InvalidDefaultError,
    MalformedRuleError,
    PayloadValidationError,
    UnknownTypeError,
)
from toolbridge.domain.enums import RuleType, StageKind, UnknownKeys

if TYPE_CHECKING:
    from toolbridge.compiler.compiler import SchemaCompiler

Converter = Callable[..., list[Stage]]
ValueCheck = Callable[[Any], Any]


# ============================================================================
# Shape
# ============================================================================


def adapter_check(adapter, check_name: str, keep_input: bool = False) -> ValueCheck:
    """
    Wrap a pydantic ``TypeAdapter`` as a shape check.

    With ``keep_input`` the adapter only decides validity and the original
    value is returned (format checks on strings).
    """

    def check(value: Any) -> Any:
        try:
            result = adapter.validate_python(value)
        except ValidationError as exc:
            raise StageFailure(checks.first_error_message(exc), check=check_name) from exc
        return value if keep_input else result

    return check


def chain(*steps: ValueCheck) -> ValueCheck:
    def check(value: Any) -> Any:
        for step in steps:
            value = step(value)
        return value

    return check


def is_generator_default(rule: BaseRule) -> bool:
    """Callable defaults are generators, except where the callable is the value itself."""
    default = rule.default
    if not callable(default):
        return False
    if rule.type == RuleType.FUNCTION:
        return False
    if isinstance(rule, ClassRule) and isinstance(default, rule.instance_of):
        return False
    return True


def resolve_default(rule: BaseRule) -> Any:
    """A fresh default value for one evaluation."""
    if is_generator_default(rule):
        return rule.default()
    if rule.type in (RuleType.FUNCTION, RuleType.CLASS, RuleType.OBJECT_ID):
        return rule.default
    return copy.deepcopy(rule.default)


def nullable_schema(schema: dict[str, Any]) -> dict[str, Any]:
    kind = schema.get("type")
    if isinstance(kind, str):
        return {**schema, "type": [kind, "null"]}
    if isinstance(kind, list):
        return schema if "null" in kind else {**schema, "type": [*kind, "null"]}
    if "anyOf" in schema:
        return {**schema, "anyOf": [*schema["anyOf"], {"type": "null"}]}
    if not schema:
        return schema
    return {"anyOf": [schema, {"type": "null"}]}


def jsonable_default(rule: BaseRule) -> tuple[bool, Any]:
    """``(True, value)`` when the default can be advertised in a JSON Schema."""
    if not rule.has_default or callable(rule.default):
        return False, None
    try:
        return True, to_jsonable_python(rule.default)
    except PydanticSerializationError:
        return False, None


def shape_stage(
    rule: BaseRule,
    path: str,
    check: ValueCheck,
    schema: Mapping[str, Any],
    name: str | None = None,
) -> Stage:
    """
    Build the SHAPE stage: absent/null/default resolution, then the base check.

    Order: an absent value takes the default (generators are called, other
    defaults are deep-copied), otherwise passes through when optional and
    fails when required. ``None`` passes only for nullable rules. Any other
    value, substituted defaults included, goes through ``check``.

    Raises:
        InvalidDefaultError: A static default is rejected by ``check``
    """
    tag = rule.type.value
    if rule.has_default and not is_generator_default(rule):
        try:
            check(resolve_default(rule))
        except (StageFailure, PayloadValidationError) as exc:
            raise InvalidDefaultError(
                f"Default value for {tag} rule at {path} does not match the declared type: "
                f"{exc.message}",
                details={"path": path, "rule_type": tag, "default": repr(rule.default)},
            ) from exc

    def run(value: Any) -> Any:
        if value is UNDEFINED and rule.has_default:
            value = resolve_default(rule)
        if value is UNDEFINED:
            if rule.optional:
                return UNDEFINED
            raise StageFailure("Value is required", check="required")
        if value is None:
            if rule.nullable:
                return None
            raise StageFailure("Value must not be null", check="nullable")
        return check(value)

    json_schema = dict(schema)
    if rule.nullable:
        json_schema = nullable_schema(json_schema)
    has_default, default = jsonable_default(rule)
    if has_default:
        json_schema["default"] = default

    return Stage(
        kind=StageKind.SHAPE, name=name or f"{tag}.shape", run=run, json_schema=json_schema
    )


def _string_shape(rule: BaseRule, path: str, schema: Mapping[str, Any] | None = None) -> Stage:
    check = adapter_check(checks.string_adapter(rule.convert), f"{rule.type.value}.type")
    return shape_stage(rule, path, check, schema or {"type": "string"})


def _any_shape(rule: BaseRule, path: str) -> Stage:
    return shape_stage(rule, path, lambda value: value, {})


def not_blank(tag: str) -> Check:
    return Check(
        f"{tag}.empty", lambda v: v.strip() != "", "Value must not be empty", {"minLength": 1}
    )


def _length_checks(rule: BaseRule, tag: str) -> list[Check]:
    found: list[Check] = []
    if rule.empty is False:
        found.append(not_blank(tag))
    if rule.min is not None:
        found.append(
            Check(
                f"{tag}.min",
                lambda v, n=rule.min: len(v) >= n,
                f"Value must be at least {rule.min} characters long",
                {"minLength": rule.min},
            )
        )
    if rule.max is not None:
        found.append(
            Check(
                f"{tag}.max",
                lambda v, n=rule.max: len(v) <= n,
                f"Value must be at most {rule.max} characters long",
                {"maxLength": rule.max},
            )
        )
    return found


# ============================================================================
# Primitives
# ============================================================================


def convert_string(rule: StringRule, context, compiler, path: str) -> list[Stage]:
    stages = [_string_shape(rule, path)]

    transforms: list[ValueCheck] = []
    if rule.trim:
        transforms.append(str.strip)
    else:
        if rule.trim_left:
            transforms.append(str.lstrip)
        if rule.trim_right:
            transforms.append(str.rstrip)
    if rule.lowercase:
        transforms.append(str.lower)
    elif rule.uppercase:
        transforms.append(str.upper)
    if transforms:
        stages.append(transform_stage(StageKind.PRE_PROCESS, "string.normalize", transforms))

    found = _length_checks(rule, "string")
    if rule.length is not None:
        found.append(
            Check(
                "string.length",
                lambda v, n=rule.length: len(v) == n,
                f"Value must be exactly {rule.length} characters long",
                {"minLength": rule.length, "maxLength": rule.length},
            )
        )
    if rule.pattern is not None:
        pattern = checks.compile_pattern(rule.pattern, rule.pattern_flags, path)
        found.append(
            Check(
                "string.pattern",
                lambda v, p=pattern: p.search(v) is not None,
                f"Value must match the pattern {pattern.pattern}",
                {"pattern": pattern.pattern},
            )
        )
    if rule.contains is not None:
        found.append(
            Check(
                "string.contains",
                lambda v, s=rule.contains: s in v,
                f"Value must contain '{rule.contains}'",
                {"pattern": re.escape(rule.contains)},
            )
        )
    for flag, (source, message) in checks.CHARSET_PATTERNS.items():
        if getattr(rule, flag):
            pattern = checks.compile_pattern(source, path=path)
            found.append(
                Check(
                    f"string.{flag}",
                    lambda v, p=pattern: p.match(v) is not None,
                    message,
                    {"pattern": source},
                )
            )
    if rule.enum:
        allowed = tuple(rule.enum)
        pattern = checks.compile_pattern(checks.enum_pattern(allowed), path=path)
        found.append(
            Check(
                "string.enum",
                lambda v, p=pattern: p.fullmatch(v) is not None,
                f"Value must be one of: {', '.join(allowed)}",
                {"enum": list(allowed)},
            )
        )
    if found:
        stages.append(check_stage(StageKind.VALIDATE, "string.constraints", found))

    pads: list[ValueCheck] = []
    if rule.pad_start:
        pads.append(lambda v: checks.pad_start(v, rule.pad_start, rule.pad_char))
    if rule.pad_end:
        pads.append(lambda v: checks.pad_end(v, rule.pad_end, rule.pad_char))
    if pads:
        stages.append(transform_stage(StageKind.MANIPULATE, "string.pad", pads))

    return stages


def convert_number(rule: NumberRule, context, compiler, path: str) -> list[Stage]:
    check = adapter_check(checks.number_adapter(rule.convert), "number.type")
    stages = [
        shape_stage(rule, path, check, {"type": "integer" if rule.integer else "number"})
    ]

    found: list[Check] = []
    if rule.equal is not None:
        found.append(
            Check(
                "number.equal",
                lambda v: v == rule.equal,
                f"Value must be equal to {rule.equal}",
                {"const": rule.equal},
            )
        )
    else:
        if rule.min is not None:
            found.append(
                Check(
                    "number.min",
                    lambda v: v >= rule.min,
                    f"Value must be greater than or equal to {rule.min}",
                    {"minimum": rule.min},
                )
            )
        if rule.max is not None:
            found.append(
                Check(
                    "number.max",
                    lambda v: v <= rule.max,
                    f"Value must be less than or equal to {rule.max}",
                    {"maximum": rule.max},
                )
            )
    if rule.integer:
        found.append(
            Check("number.integer", lambda v: float(v).is_integer(), "Value must be an integer")
        )
    if rule.positive:
        found.append(
            Check(
                "number.positive",
                lambda v: v > 0,
                "Value must be positive",
                {"exclusiveMinimum": 0},
            )
        )
    if rule.negative:
        found.append(
            Check(
                "number.negative",
                lambda v: v < 0,
                "Value must be negative",
                {"exclusiveMaximum": 0},
            )
        )
    if found:
        stages.append(check_stage(StageKind.VALIDATE, "number.constraints", found))

    if rule.not_equal is not None:
        stages.append(
            check_stage(
                StageKind.REFINE,
                "number.refine",
                [
                    Check(
                        "number.not_equal",
                        lambda v: v != rule.not_equal,
                        f"Value cannot be equal to {rule.not_equal}",
                        {"not": {"const": rule.not_equal}},
                    )
                ],
            )
        )
    return stages


def convert_boolean(rule: BooleanRule, context, compiler, path: str) -> list[Stage]:
    check = adapter_check(checks.boolean_adapter(rule.convert), "boolean.type")
    return [shape_stage(rule, path, check, {"type": "boolean"})]


def convert_date(rule: DateRule, context, compiler, path: str) -> list[Stage]:
    # Lax parsing rejects unparseable text and out-of-range timestamps in the
    # same step that converts them.
    check = adapter_check(checks.datetime_adapter(rule.convert), "date.type")
    # Without convert only datetime objects pass, and JSON has no such value.
    if rule.convert:
        schema = {"type": ["string", "number"], "format": "date-time"}
    else:
        schema = {"not": {}}
    return [shape_stage(rule, path, check, schema)]


def convert_any(rule: AnyRule, context, compiler, path: str) -> list[Stage]:
    return [_any_shape(rule, path)]


# ============================================================================
# Advanced
# ============================================================================


def _bare_email(normalize: bool) -> ValueCheck:
    """
    Accept a bare address only.

    ``EmailStr`` also parses the display-name form (``"Name <addr>"``) and
    returns just the address, so the parsed address must match the input.
    Case is ignored, and so is outer whitespace when the rule normalizes.
    """
    parse = adapter_check(checks.email_adapter(), "email.format")

    def check(value: str) -> str:
        address = parse(value)
        expected = value.strip() if normalize else value
        if address.lower() != expected.lower():
            raise StageFailure("Value must be a bare email address", check="email.format")
        return value

    return check


def convert_email(rule: EmailRule, context, compiler, path: str) -> list[Stage]:
    check = chain(
        adapter_check(checks.string_adapter(rule.convert), "email.type"),
        _bare_email(rule.normalize),
    )
    stages = [shape_stage(rule, path, check, {"type": "string", "format": "email"})]

    if rule.normalize:
        stages.append(
            transform_stage(StageKind.PRE_PROCESS, "email.normalize", [str.strip, str.lower])
        )

    found = _length_checks(rule, "email")
    if found:
        stages.append(check_stage(StageKind.VALIDATE, "email.constraints", found))
    return stages


def convert_currency(rule: CurrencyRule, context, compiler, path: str) -> list[Stage]:
    stages = [_string_shape(rule, path)]

    if rule.custom_regex is not None:
        pattern = checks.compile_pattern(rule.custom_regex, path=path)
        message = "The value does not match the custom currency pattern"
    else:
        source = checks.currency_pattern(
            rule.currency_symbol,
            rule.symbol_optional,
            rule.thousand_separator,
            rule.decimal_separator,
        )
        pattern = checks.compile_pattern(source, path=path)
        message = "The value does not match the currency pattern"

    stages.append(
        check_stage(
            StageKind.VALIDATE,
            "currency.constraints",
            [
                Check(
                    "currency.pattern",
                    lambda v: pattern.search(v) is not None,
                    message,
                    {"pattern": pattern.pattern},
                )
            ],
        )
    )
    return stages


def convert_class(rule: ClassRule, context, compiler, path: str) -> list[Stage]:
    check = adapter_check(checks.instance_adapter(rule.instance_of), "class.instance")
    return [shape_stage(rule, path, check, {})]


def convert_enum(rule: EnumRule, context, compiler, path: str) -> list[Stage]:
    values = tuple(rule.values)
    try:
        schema = {"enum": to_jsonable_python(list(values))}
    except PydanticSerializationError:
        schema = {}
    return [
        _any_shape(rule, path),
        check_stage(
            StageKind.REFINE,
            "enum.refine",
            [
                Check(
                    "enum.values",
                    lambda v: checks.contains_strict(values, v),
                    f"Value must be one of: {', '.join(map(repr, values))}",
                    schema,
                )
            ],
        ),
    ]


def convert_equal(rule: EqualRule, context, compiler, path: str) -> list[Stage]:
    compare = checks.strict_equals if rule.strict else checks.loose_equals
    try:
        schema = {"const": to_jsonable_python(rule.value)}
    except PydanticSerializationError:
        schema = {}
    return [
        _any_shape(rule, path),
        check_stage(
            StageKind.REFINE,
            "equal.refine",
            [
                Check(
                    "equal.value",
                    lambda v: compare(v, rule.value),
                    f"Value must be equal to {rule.value!r}",
                    schema,
                )
            ],
        ),
    ]


def convert_forbidden(rule: ForbiddenRule, context, compiler, path: str) -> list[Stage]:
    # null counts as absent for a forbidden field
    def run(value: Any) -> Any:
        return UNDEFINED if value is None else value

    stages = [
        Stage(
            kind=StageKind.SHAPE,
            name="forbidden.shape",
            run=run,
            json_schema={} if rule.remove else {"not": {}},
        )
    ]
    if rule.remove:
        stages.append(
            transform_stage(StageKind.MANIPULATE, "forbidden.remove", [lambda v: UNDEFINED])
        )
    else:
        stages.append(
            check_stage(
                StageKind.REFINE,
                "forbidden.refine",
                [Check("forbidden.present", lambda v: v is UNDEFINED, "Value is forbidden")],
            )
        )
    return stages


def convert_function(rule: FunctionRule, context, compiler, path: str) -> list[Stage]:
    check = adapter_check(checks.callable_adapter(), "function.type")
    return [shape_stage(rule, path, check, {})]


def convert_luhn(rule: LuhnRule, context, compiler, path: str) -> list[Stage]:
    return [
        _string_shape(rule, path),
        check_stage(
            StageKind.REFINE,
            "luhn.refine",
            [Check("luhn.checksum", checks.luhn_valid, "Value fails the Luhn checksum")],
        ),
    ]


def convert_mac(rule: MacRule, context, compiler, path: str) -> list[Stage]:
    pattern = checks.compile_pattern(checks.MAC_PATTERN, path=path)
    return [
        _string_shape(rule, path),
        check_stage(
            StageKind.VALIDATE,
            "mac.constraints",
            [
                Check(
                    "mac.pattern",
                    lambda v: pattern.match(v) is not None,
                    "Invalid MAC address provided",
                    {"pattern": checks.MAC_PATTERN},
                )
            ],
        ),
    ]


def _formatted_string(
    rule: BaseRule, path: str, format_check: ValueCheck, fmt: str
) -> list[Stage]:
    tag = rule.type.value
    to_string = adapter_check(checks.string_adapter(rule.convert), f"{tag}.type")

    def check(value: Any) -> Any:
        value = to_string(value)
        if value == "" and rule.empty is True:
            return value
        return format_check(value)

    stages = [shape_stage(rule, path, check, {"type": "string", "format": fmt})]
    if rule.empty is False:
        stages.append(
            check_stage(
                StageKind.VALIDATE,
                f"{tag}.constraints",
                [not_blank(tag)],
            )
        )
    return stages


def convert_url(rule: UrlRule, context, compiler, path: str) -> list[Stage]:
    format_check = adapter_check(checks.url_adapter(), "url.format", keep_input=True)
    return _formatted_string(rule, path, format_check, "uri")


def _canonical_uuid(value: str) -> str:
    # UUID parsing also accepts bare hex, braced and urn:uuid: spellings
    parsed = adapter_check(checks.uuid_adapter(), "uuid.format")(value)
    if str(parsed) != value.lower():
        raise StageFailure("Value must be a hyphenated 8-4-4-4-12 UUID", check="uuid.format")
    return value


def convert_uuid(rule: UuidRule, context, compiler, path: str) -> list[Stage]:
    return _formatted_string(rule, path, _canonical_uuid, "uuid")


def convert_object_id(rule: ObjectIdRule, context, compiler, path: str) -> list[Stage]:
    identity = rule.object_id
    is_valid = getattr(identity, "is_valid", None)
    if not callable(is_valid):
        raise MalformedRuleError(
            f"ObjectID class {identity.__name__} at {path} has no is_valid() predicate",
            details={"path": path, "rule_type": rule.type.value},
        )

    def check(value: Any) -> Any:
        if isinstance(value, (str, identity)):
            return value
        raise StageFailure(
            f"Value must be a string or a {identity.__name__} instance", check="objectID.type"
        )

    stages = [
        shape_stage(rule, path, check, {"type": "string"}),
        check_stage(
            StageKind.REFINE,
            "objectID.refine",
            [Check("objectID.valid", lambda v: bool(is_valid(v)), "Value is not a valid ObjectID")],
        ),
    ]

    if rule.convert == "hexString":
        stages.append(transform_stage(StageKind.MANIPULATE, "objectID.convert", [str]))
    elif rule.convert is True:
        stages.append(
            transform_stage(
                StageKind.MANIPULATE,
                "objectID.convert",
                [lambda v: v if isinstance(v, identity) else identity(v)],
            )
        )
    return stages


# ============================================================================
# Composite
# ============================================================================


def convert_array(
    rule: ArrayRule, context: StrictnessContext, compiler: "SchemaCompiler", path: str
) -> list[Stage]:
    items = compiler.convert(rule.items, context, f"{path}[]")

    def check(value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            if not rule.convert:
                raise StageFailure("Value must be an array", check="array.type")
            value = [value]
        result = []
        for index, item in enumerate(value):
            try:
                output = items.validate(item)
            except PayloadValidationError as exc:
                raise exc.at(index) from exc
            if output is not UNDEFINED:
                result.append(output)
        return result

    stages = [shape_stage(rule, path, check, {"type": "array", "items": items.json_schema()})]

    found: list[Check] = []
    if rule.empty is not True:
        found.append(
            Check("array.empty", lambda v: len(v) > 0, "Value must not be empty", {"minItems": 1})
        )
    if rule.length is not None:
        found.append(
            Check(
                "array.length",
                lambda v: len(v) == rule.length,
                f"Value must contain exactly {rule.length} items",
                {"minItems": rule.length, "maxItems": rule.length},
            )
        )
    if rule.min is not None:
        found.append(
            Check(
                "array.min",
                lambda v: len(v) >= rule.min,
                f"Value must contain at least {rule.min} items",
                {"minItems": rule.min},
            )
        )
    if rule.max is not None:
        found.append(
            Check(
                "array.max",
                lambda v: len(v) <= rule.max,
                f"Value must contain at most {rule.max} items",
                {"maxItems": rule.max},
            )
        )
    if found:
        stages.append(check_stage(StageKind.VALIDATE, "array.constraints", found))

    refinements: list[Check] = []
    if isinstance(rule.contains, list):
        wanted = tuple(rule.contains)
        refinements.append(
            Check(
                "array.contains",
                lambda v: all(checks.contains_strict(v, x) for x in wanted),
                f"Value must contain all of: {', '.join(map(repr, wanted))}",
                _json_or_empty(lambda: {"allOf": [{"contains": {"const": x}} for x in wanted]}),
            )
        )
    elif rule.contains is not None:
        refinements.append(
            Check(
                "array.contains",
                lambda v: checks.contains_strict(v, rule.contains),
                f"Value must contain {rule.contains!r}",
                _json_or_empty(lambda: {"contains": {"const": rule.contains}}),
            )
        )
    if rule.unique:
        refinements.append(
            Check(
                "array.unique",
                checks.all_unique,
                "Value must contain unique elements",
                {"uniqueItems": True},
            )
        )
    if rule.enum is not None:
        allowed = tuple(rule.enum)
        refinements.append(
            Check(
                "array.enum",
                lambda v: all(checks.contains_strict(allowed, x) for x in v),
                f"Value must only contain: {', '.join(map(repr, allowed))}",
                _json_or_empty(lambda: {"items": {"enum": list(allowed)}}),
            )
        )
    if refinements:
        stages.append(check_stage(StageKind.REFINE, "array.refine", refinements))
    return stages


def _json_or_empty(build: Callable[[], dict[str, Any]]) -> dict[str, Any]:
    try:
        return to_jsonable_python(build())
    except PydanticSerializationError:
        return {}


def convert_object(
    rule: ObjectRule, context: StrictnessContext, compiler: "SchemaCompiler", path: str
) -> list[Stage]:
    effective = context.override(rule.strict)
    properties = {
        name: compiler.convert(prop, effective, f"{path}.{name}")
        for name, prop in rule.props.items()
    }
    mode = effective.mode

    def check(value: Any) -> Any:
        if not isinstance(value, Mapping):
            raise StageFailure("Value must be an object", check="object.type")
        return validate_properties(value, properties, mode)

    schema: dict[str, Any] = {
        "type": "object",
        "properties": {name: v.json_schema() for name, v in properties.items()},
    }
    required = sorted(name for name, v in properties.items() if v.required)
    if required:
        schema["required"] = required
    if mode == UnknownKeys.REJECT:
        schema["additionalProperties"] = False

    stages = [shape_stage(rule, path, check, schema)]

    found: list[Check] = []
    if rule.min_props is not None:
        found.append(
            Check(
                "object.min_props",
                lambda v: len(v) >= rule.min_props,
                f"The object must contain at least {rule.min_props} properties",
                {"minProperties": rule.min_props},
            )
        )
    if rule.max_props is not None:
        found.append(
            Check(
                "object.max_props",
                lambda v: len(v) <= rule.max_props,
                f"The object must contain at most {rule.max_props} properties",
                {"maxProperties": rule.max_props},
            )
        )
    if found:
        stages.append(check_stage(StageKind.REFINE, "object.refine", found))
    return stages


def convert_multi(
    rule: MultiRule, context: StrictnessContext, compiler: "SchemaCompiler", path: str
) -> list[Stage]:
    branches = [
        compiler.convert(branch, context, f"{path}|{index}")
        for index, branch in enumerate(rule.rules)
    ]

    def check(value: Any) -> Any:
        failures = []
        for branch in branches:
            try:
                return branch.validate(value)
            except PayloadValidationError as exc:
                failures.append(str(exc))
        raise StageFailure(
            f"Value does not match any of the {len(branches)} allowed rules: {'; '.join(failures)}",
            check="multi.union",
            details={"branches": failures},
        )

    schema = {"anyOf": [branch.json_schema() for branch in branches]}
    return [shape_stage(rule, path, check, schema)]


def convert_tuple(
    rule: TupleRule, context: StrictnessContext, compiler: "SchemaCompiler", path: str
) -> list[Stage]:
    slots = [
        compiler.convert(item, context, f"{path}[{index}]") for index, item in enumerate(rule.items)
    ]
    size = len(slots)

    def check(value: Any) -> Any:
        if not isinstance(value, (list, tuple)):
            raise StageFailure("Value must be an array", check="tuple.type")
        if len(value) != size:
            raise StageFailure(
                f"Value must contain exactly {size} items, got {len(value)}", check="tuple.length"
            )
        result = []
        for index, (slot, item) in enumerate(zip(slots, value)):
            try:
                result.append(slot.validate(item))
            except PayloadValidationError as exc:
                raise exc.at(index) from exc
        return result

    schema = {
        "type": "array",
        "prefixItems": [slot.json_schema() for slot in slots],
        "items": False,
        "minItems": size,
        "maxItems": size,
    }
    return [shape_stage(rule, path, check, schema)]


def convert_record(
    rule: RecordRule, context: StrictnessContext, compiler: "SchemaCompiler", path: str
) -> list[Stage]:
    keys = compiler.convert(rule.key, context, f"{path}<key>")
    values = compiler.convert(rule.value, context, f"{path}<value>")

    def check(value: Any) -> Any:
        if not isinstance(value, Mapping):
            raise StageFailure("Value must be an object", check="record.type")
        result = {}
        for key, item in value.items():
            try:
                new_key = keys.validate(key)
                new_value = values.validate(item)
            except PayloadValidationError as exc:
                raise exc.at(key) from exc
            if new_value is not UNDEFINED:
                result[new_key] = new_value
        return result

    schema = {
        "type": "object",
        "additionalProperties": values.json_schema(),
        "propertyNames": keys.json_schema(),
    }
    return [shape_stage(rule, path, check, schema)]


# ============================================================================
# Dispatch
# ============================================================================

CONVERTERS: dict[RuleType, Converter] = {
    RuleType.STRING: convert_string,
    RuleType.NUMBER: convert_number,
    RuleType.BOOLEAN: convert_boolean,
    RuleType.DATE: convert_date,
    RuleType.ANY: convert_any,
    RuleType.EMAIL: convert_email,
    RuleType.CURRENCY: convert_currency,
    RuleType.CLASS: convert_class,
    RuleType.ENUM: convert_enum,
    RuleType.EQUAL: convert_equal,
    RuleType.FORBIDDEN: convert_forbidden,
    RuleType.FUNCTION: convert_function,
    RuleType.LUHN: convert_luhn,
    RuleType.MAC: convert_mac,
    RuleType.URL: convert_url,
    RuleType.UUID: convert_uuid,
    RuleType.OBJECT_ID: convert_object_id,
    RuleType.ARRAY: convert_array,
    RuleType.OBJECT: convert_object,
    RuleType.MULTI: convert_multi,
    RuleType.TUPLE: convert_tuple,
    RuleType.RECORD: convert_record,
}


def get_converter(
    rule_type: RuleType | str, converters: Mapping[RuleType, Converter] = CONVERTERS
) -> Converter:
    """
    Look up the converter for a rule type.

    Raises:
        UnknownTypeError: No converter is registered for the tag
    """
    try:
        return converters[RuleType(rule_type)]
    except (KeyError, ValueError):
        raise UnknownTypeError(
            f"No converter for rule type '{getattr(rule_type, 'value', rule_type)}'",
            details={"rule_type": str(getattr(rule_type, "value", rule_type))},
        )
