"""
Closed enumerations shared by the rule compiler.

These enums are the single source of truth for the rule type tags accepted
by the normalizer, the pipeline stage categories and the strictness modes
applied to object-typed values.
"""

from enum import Enum


class RuleType(str, Enum):
    """Type tag of a parameter rule - the closed set the compiler dispatches on."""

    # Primitives
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    DATE = "date"
    ANY = "any"

    # Advanced
    EMAIL = "email"
    CURRENCY = "currency"
    CLASS = "class"
    ENUM = "enum"
    EQUAL = "equal"
    FORBIDDEN = "forbidden"
    FUNCTION = "function"
    LUHN = "luhn"
    MAC = "mac"
    URL = "url"
    UUID = "uuid"
    OBJECT_ID = "objectID"

    # Composite (own nested rules)
    ARRAY = "array"
    OBJECT = "object"
    MULTI = "multi"
    TUPLE = "tuple"
    RECORD = "record"


COMPOSITE_RULE_TYPES = frozenset(
    {RuleType.ARRAY, RuleType.OBJECT, RuleType.MULTI, RuleType.TUPLE, RuleType.RECORD}
)


class StageKind(str, Enum):
    """
    Category of a pipeline stage.

    Declaration order is evaluation order: a composed validator always runs
    SHAPE, then PRE_PROCESS, VALIDATE, REFINE and MANIPULATE.
    """

    SHAPE = "shape"
    PRE_PROCESS = "pre_process"
    VALIDATE = "validate"
    REFINE = "refine"
    MANIPULATE = "manipulate"

    @property
    def rank(self) -> int:
        """Position of this category in the fixed evaluation order."""
        return _STAGE_ORDER.index(self)


_STAGE_ORDER = tuple(StageKind)


class UnknownKeys(str, Enum):
    """What an object-typed value does with keys it has no rule for."""

    PASSTHROUGH = "passthrough"
    REJECT = "reject"
    REMOVE = "remove"
