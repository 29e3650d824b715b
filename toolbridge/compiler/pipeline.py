"""
Pipeline building blocks: stages, checks and the composed validator.

A converter emits an ordered list of ``Stage`` objects for one rule;
``compose_pipeline`` folds them into an immutable ``ComposedValidator``.
Evaluation is an explicit left fold: every stage receives the value the
previous stage returned, and the first failure stops the run.
"""

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any, Literal

from toolbridge.core.errors import (
    EmptyPipelineError,
    PayloadValidationError,
    PipelineOrderError,
)
from toolbridge.domain.enums import RuleType, StageKind, UnknownKeys

logger = logging.getLogger(__name__)


class _Undefined:
    """Marker for an absent value; distinct from ``None``, which is a present null."""

    _instance = None

    def __new__(cls):
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "UNDEFINED"

    def __bool__(self) -> bool:
        return False

    def __copy__(self):
        return self

    def __deepcopy__(self, memo):
        return self


UNDEFINED: Any = _Undefined()


# ============================================================================
# Strictness context
# ============================================================================


@dataclass(frozen=True)
class StrictnessContext:
    """
    Unknown-key policy inherited by every nested conversion.

    When both flags are set, removing unknown keys wins: there is nothing
    left to reject once they are dropped.
    """

    strict: bool = False
    remove_unknown: bool = False

    @property
    def mode(self) -> UnknownKeys:
        if self.remove_unknown:
            return UnknownKeys.REMOVE
        if self.strict:
            return UnknownKeys.REJECT
        return UnknownKeys.PASSTHROUGH

    @classmethod
    def from_mode(cls, mode: UnknownKeys) -> "StrictnessContext":
        return cls(strict=mode == UnknownKeys.REJECT, remove_unknown=mode == UnknownKeys.REMOVE)

    def override(self, strict: bool | Literal["remove"] | None) -> "StrictnessContext":
        """Apply a locally declared ``strict`` value; ``None`` keeps the inherited context."""
        if strict is None:
            return self
        if strict == "remove":
            return StrictnessContext(strict=False, remove_unknown=True)
        return StrictnessContext(strict=bool(strict), remove_unknown=False)


# ============================================================================
# Stages
# ============================================================================


class StageFailure(Exception):
    """
    A stage rejected its input.

    Raised inside stage functions; the composed validator turns it into a
    ``PayloadValidationError`` tagged with the stage kind.
    """

    def __init__(self, message: str, check: str, details: dict[str, Any] | None = None):
        self.message = message
        self.check = check
        self.details = details or {}
        super().__init__(message)


@dataclass(frozen=True)
class Check:
    """A named pass/fail predicate and the JSON Schema keywords it implies."""

    name: str
    predicate: Callable[[Any], bool]
    message: str
    schema: Mapping[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class Stage:
    """One step of a pipeline: a function from a value to a value, or a failure."""

    kind: StageKind
    name: str
    run: Callable[[Any], Any]
    json_schema: Mapping[str, Any] = field(default_factory=dict)


def check_stage(kind: StageKind, name: str, checks: list[Check]) -> Stage:
    """Stage that runs ``checks`` in order and returns the value unchanged."""
    frozen_checks = tuple(checks)

    def run(value: Any) -> Any:
        for check in frozen_checks:
            if not check.predicate(value):
                raise StageFailure(check.message, check=check.name)
        return value

    schema: dict[str, Any] = {}
    for check in frozen_checks:
        merge_schema(schema, check.schema)
    return Stage(kind=kind, name=name, run=run, json_schema=schema)


def transform_stage(
    kind: StageKind,
    name: str,
    transforms: list[Callable[[Any], Any]],
    schema: Mapping[str, Any] | None = None,
) -> Stage:
    """Stage that applies ``transforms`` left to right."""
    frozen = tuple(transforms)

    def run(value: Any) -> Any:
        for transform in frozen:
            value = transform(value)
        return value

    return Stage(kind=kind, name=name, run=run, json_schema=dict(schema or {}))


def merge_schema(target: dict[str, Any], fragment: Mapping[str, Any]) -> dict[str, Any]:
    """
    Merge JSON Schema keywords into ``target`` in place.

    A keyword already present with a different value is kept, and the new
    one is added under ``allOf`` so both constraints still apply.
    """
    for key, value in fragment.items():
        if key not in target:
            target[key] = value
        elif target[key] != value:
            target.setdefault("allOf", []).append({key: value})
    return target


# ============================================================================
# Composed validator
# ============================================================================


@dataclass(frozen=True)
class ComposedValidator:
    """
    Immutable, ordered chain of stages for one rule.

    ``description`` is metadata only: it shows up in the exported schema and
    never affects evaluation.
    """

    rule_type: RuleType
    stages: tuple[Stage, ...]
    description: str | None = None
    required: bool = True

    def validate(self, value: Any = UNDEFINED) -> Any:
        """
        Run every stage in order on ``value``.

        Returns:
            The transformed value, or ``UNDEFINED`` for an absent optional value

        Raises:
            PayloadValidationError: On the first failing stage
        """
        for stage in self.stages:
            try:
                value = stage.run(value)
            except StageFailure as failure:
                raise PayloadValidationError(
                    failure.message,
                    stage=stage.kind.value,
                    check=failure.check,
                    details={"rule_type": self.rule_type.value, **failure.details},
                ) from failure

            if stage.kind == StageKind.SHAPE and (value is UNDEFINED or value is None):
                return value
        return value

    def is_valid(self, value: Any = UNDEFINED) -> bool:
        try:
            self.validate(value)
        except PayloadValidationError:
            return False
        return True

    def json_schema(self) -> dict[str, Any]:
        """JSON Schema keywords contributed by every stage, in stage order."""
        schema: dict[str, Any] = {}
        for stage in self.stages:
            merge_schema(schema, stage.json_schema)
        if self.description:
            schema["description"] = self.description
        return schema


def compose_pipeline(
    stages: list[Stage],
    *,
    rule_type: RuleType,
    description: str | None = None,
    required: bool = True,
) -> ComposedValidator:
    """
    Fold a converter's stage list into one composed validator.

    The list must be non-empty, open with a SHAPE stage and never step back
    in the fixed stage order. Anything else is a converter defect.

    Raises:
        EmptyPipelineError: The converter produced no stages
        PipelineOrderError: Stages are out of order or the shape stage is missing
    """
    if not stages:
        raise EmptyPipelineError(
            f"Converter for '{rule_type.value}' produced no stages",
            details={"rule_type": rule_type.value},
        )

    if stages[0].kind != StageKind.SHAPE:
        raise PipelineOrderError(
            f"Pipeline for '{rule_type.value}' must start with a shape stage, "
            f"got '{stages[0].kind.value}'",
            details={"rule_type": rule_type.value, "stages": [s.name for s in stages]},
        )

    for previous, current in zip(stages, stages[1:]):
        if current.kind.rank < previous.kind.rank:
            raise PipelineOrderError(
                f"Stage '{current.name}' ({current.kind.value}) runs after "
                f"'{previous.name}' ({previous.kind.value}) in the '{rule_type.value}' pipeline",
                details={"rule_type": rule_type.value, "stages": [s.name for s in stages]},
            )

    return ComposedValidator(
        rule_type=rule_type,
        stages=tuple(stages),
        description=description,
        required=required,
    )


# ============================================================================
# Property walker
# ============================================================================


def validate_properties(
    value: Mapping[str, Any],
    validators: Mapping[str, ComposedValidator],
    mode: UnknownKeys,
) -> dict[str, Any]:
    """
    Validate a mapping property by property under an unknown-key policy.

    Declared properties come first in declaration order; passed-through
    unknown keys follow in input order. Absent optional properties are left
    out of the result.

    Raises:
        StageFailure: Unknown keys under ``UnknownKeys.REJECT``
        PayloadValidationError: A property failed, with its path prefixed
    """
    unknown = [key for key in value if key not in validators]
    if unknown and mode == UnknownKeys.REJECT:
        raise StageFailure(
            f"Unknown properties are not allowed: {', '.join(map(str, unknown))}",
            check="object.strict",
            details={"unknown": unknown},
        )

    result: dict[str, Any] = {}
    for name, validator in validators.items():
        try:
            output = validator.validate(value.get(name, UNDEFINED))
        except PayloadValidationError as exc:
            raise exc.at(name) from exc
        if output is not UNDEFINED:
            result[name] = output

    if mode == UnknownKeys.PASSTHROUGH:
        for key in unknown:
            result[key] = value[key]
    elif unknown:
        logger.debug("Dropped %d unknown properties", len(unknown))

    return result
