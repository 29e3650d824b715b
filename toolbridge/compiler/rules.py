"""
Rule descriptors - the canonical form of one parameter rule.

Each type tag has its own frozen pydantic model carrying only the fields
that tag understands; ``extra="forbid"`` turns an unknown modifier into a
validation failure, which the normalizer reports as ``MalformedRuleError``.
Field names follow Python conventions, aliases accept the camelCase names
used in the rule language.

Composite models hold already-normalized child descriptors; the normalizer
builds trees bottom-up so the models never see raw shorthand.
"""

import re
from typing import Any, Literal, Type

from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from toolbridge.domain.enums import RuleType


class BaseRule(BaseModel):
    """Fields shared by every rule type."""

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
        populate_by_name=True,
        arbitrary_types_allowed=True,
    )

    type: RuleType
    optional: bool = False
    nullable: bool = False
    convert: bool = False
    default: Any = None
    description: str | None = None

    @property
    def has_default(self) -> bool:
        return self.default is not None

    @property
    def is_required(self) -> bool:
        """Whether an absent value must be rejected."""
        return not (self.optional or self.has_default)


# ============================================================================
# Primitives
# ============================================================================


class StringRule(BaseRule):
    type: Literal[RuleType.STRING] = RuleType.STRING

    empty: bool | None = None
    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)
    length: int | None = Field(default=None, ge=0)
    pattern: str | re.Pattern | None = None
    pattern_flags: str | None = Field(default=None, alias="patternFlags")
    contains: str | None = None
    enum: list[str] | None = None
    alpha: bool = False
    numeric: bool = False
    alphanum: bool = False
    alphadash: bool = False
    hex: bool = False
    single_line: bool = Field(default=False, alias="singleLine")
    base64: bool = False

    trim: bool = False
    trim_left: bool = Field(default=False, alias="trimLeft")
    trim_right: bool = Field(default=False, alias="trimRight")
    lowercase: bool = False
    uppercase: bool = False

    pad_start: int | None = Field(default=None, alias="padStart")
    pad_end: int | None = Field(default=None, alias="padEnd")
    pad_char: str = Field(default=" ", alias="padChar", min_length=1)


class NumberRule(BaseRule):
    type: Literal[RuleType.NUMBER] = RuleType.NUMBER

    min: int | float | None = None
    max: int | float | None = None
    equal: int | float | None = None
    not_equal: int | float | None = Field(default=None, alias="notEqual")
    integer: bool = False
    positive: bool = False
    negative: bool = False


class BooleanRule(BaseRule):
    type: Literal[RuleType.BOOLEAN] = RuleType.BOOLEAN


class DateRule(BaseRule):
    type: Literal[RuleType.DATE] = RuleType.DATE


class AnyRule(BaseRule):
    type: Literal[RuleType.ANY] = RuleType.ANY


# ============================================================================
# Advanced
# ============================================================================


class EmailRule(BaseRule):
    type: Literal[RuleType.EMAIL] = RuleType.EMAIL

    empty: bool | None = None
    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)
    normalize: bool = False


class CurrencyRule(BaseRule):
    type: Literal[RuleType.CURRENCY] = RuleType.CURRENCY

    currency_symbol: str | None = Field(default=None, alias="currencySymbol")
    symbol_optional: bool = Field(default=False, alias="symbolOptional")
    thousand_separator: str = Field(default=",", alias="thousandSeparator", min_length=1)
    decimal_separator: str = Field(default=".", alias="decimalSeparator", min_length=1)
    custom_regex: str | re.Pattern | None = Field(default=None, alias="customRegex")


class ClassRule(BaseRule):
    type: Literal[RuleType.CLASS] = RuleType.CLASS

    instance_of: Type[Any] = Field(alias="instanceOf")


class EnumRule(BaseRule):
    type: Literal[RuleType.ENUM] = RuleType.ENUM

    values: list[Any] = Field(min_length=1)


class EqualRule(BaseRule):
    type: Literal[RuleType.EQUAL] = RuleType.EQUAL

    value: Any
    strict: bool = False


class ForbiddenRule(BaseRule):
    type: Literal[RuleType.FORBIDDEN] = RuleType.FORBIDDEN

    remove: bool = False

    @property
    def is_required(self) -> bool:
        return False


class FunctionRule(BaseRule):
    type: Literal[RuleType.FUNCTION] = RuleType.FUNCTION


class LuhnRule(BaseRule):
    type: Literal[RuleType.LUHN] = RuleType.LUHN


class MacRule(BaseRule):
    type: Literal[RuleType.MAC] = RuleType.MAC


class UrlRule(BaseRule):
    type: Literal[RuleType.URL] = RuleType.URL

    empty: bool | None = None


class UuidRule(BaseRule):
    type: Literal[RuleType.UUID] = RuleType.UUID

    empty: bool | None = None


class ObjectIdRule(BaseRule):
    type: Literal[RuleType.OBJECT_ID] = RuleType.OBJECT_ID

    object_id: Type[Any] = Field(alias="ObjectID")
    convert: bool | Literal["hexString"] = False


# ============================================================================
# Composite
# ============================================================================


class ArrayRule(BaseRule):
    type: Literal[RuleType.ARRAY] = RuleType.ARRAY

    items: BaseRule
    empty: bool | None = None
    min: int | None = Field(default=None, ge=0)
    max: int | None = Field(default=None, ge=0)
    length: int | None = Field(default=None, ge=0)
    contains: Any = None
    unique: bool = False
    enum: list[Any] | None = None


class ObjectRule(BaseRule):
    type: Literal[RuleType.OBJECT] = RuleType.OBJECT

    props: dict[str, BaseRule] = Field(validation_alias=AliasChoices("props", "properties"))
    strict: bool | Literal["remove"] | None = None
    min_props: int | None = Field(default=None, alias="minProps", ge=0)
    max_props: int | None = Field(default=None, alias="maxProps", ge=0)


class MultiRule(BaseRule):
    type: Literal[RuleType.MULTI] = RuleType.MULTI

    rules: list[BaseRule] = Field(min_length=1)


class TupleRule(BaseRule):
    type: Literal[RuleType.TUPLE] = RuleType.TUPLE

    items: list[BaseRule]


class RecordRule(BaseRule):
    type: Literal[RuleType.RECORD] = RuleType.RECORD

    key: BaseRule
    value: BaseRule


RULE_MODELS: dict[RuleType, type[BaseRule]] = {
    RuleType.STRING: StringRule,
    RuleType.NUMBER: NumberRule,
    RuleType.BOOLEAN: BooleanRule,
    RuleType.DATE: DateRule,
    RuleType.ANY: AnyRule,
    RuleType.EMAIL: EmailRule,
    RuleType.CURRENCY: CurrencyRule,
    RuleType.CLASS: ClassRule,
    RuleType.ENUM: EnumRule,
    RuleType.EQUAL: EqualRule,
    RuleType.FORBIDDEN: ForbiddenRule,
    RuleType.FUNCTION: FunctionRule,
    RuleType.LUHN: LuhnRule,
    RuleType.MAC: MacRule,
    RuleType.URL: UrlRule,
    RuleType.UUID: UuidRule,
    RuleType.OBJECT_ID: ObjectIdRule,
    RuleType.ARRAY: ArrayRule,
    RuleType.OBJECT: ObjectRule,
    RuleType.MULTI: MultiRule,
    RuleType.TUPLE: TupleRule,
    RuleType.RECORD: RecordRule,
}
