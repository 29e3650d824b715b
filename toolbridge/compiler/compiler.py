"""
Schema compiler façade.

Compiles the parameter rules of one operation into a ``SchemaTree``:

- a field map (``{"name": "string|min:3", "age": "number|optional"}``) is
  compiled field by field into a mapping of composed validators
- a root-wrapped rule (``{"$$root": True, "type": "string"}``) is compiled
  once into a single validator for the whole payload

The façade is the only component that reads root pragmas (``$$root``,
``$$strict``). Every other ``$$``-prefixed key is skipped.

Isolation policy: a field whose rule fails to compile is recorded in
``SchemaTree.errors`` and the remaining fields still compile; a tree with
errors refuses to validate payloads. ``fail_fast=True`` instead aborts the
whole compile on the first failing field.
"""

import logging
import time
from collections.abc import Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from toolbridge.compiler.converters import (
    CONVERTERS,
    Converter,
    get_converter,
    is_generator_default,
)
from toolbridge.compiler.normalizer import PRAGMA_PREFIX, normalize_rule
from toolbridge.compiler.pipeline import (
    UNDEFINED,
    ComposedValidator,
    StageFailure,
    StrictnessContext,
    compose_pipeline,
    validate_properties,
)
from toolbridge.core.config import settings
from toolbridge.core.errors import (
    IncompleteSchemaError,
    InvalidDefaultError,
    MalformedRuleError,
    PayloadValidationError,
    SchemaCompileError,
    UnknownTypeError,
)
from toolbridge.core.observability import Metrics, metrics as default_metrics
from toolbridge.domain.enums import StageKind, UnknownKeys

logger = logging.getLogger(__name__)

ROOT_PRAGMA = "$$root"
STRICT_PRAGMA = "$$strict"
ROOT_FIELD = "$$root"


@dataclass(frozen=True)
class FieldCompileError:
    """A field (or the root value) that failed to compile."""

    field: str
    error_type: str
    message: str
    details: Mapping[str, Any] = field(default_factory=dict)

    @classmethod
    def from_exception(cls, field_name: str, exc: SchemaCompileError) -> "FieldCompileError":
        return cls(
            field=field_name,
            error_type=type(exc).__name__,
            message=exc.message,
            details=dict(exc.details),
        )


@dataclass(frozen=True)
class SchemaTree:
    """
    Compiled schema of one operation.

    Exactly one of ``fields`` (field map) and ``root`` (root-wrapped value)
    carries validators. ``context`` is the strictness context applied to
    the top-level field map and inherited by nested objects.
    """

    fields: Mapping[str, ComposedValidator] = field(default_factory=lambda: MappingProxyType({}))
    root: ComposedValidator | None = None
    context: StrictnessContext = StrictnessContext()
    errors: tuple[FieldCompileError, ...] = ()

    @property
    def is_root(self) -> bool:
        return self.root is not None or any(e.field == ROOT_FIELD for e in self.errors)

    @property
    def ok(self) -> bool:
        return not self.errors

    def validate(self, payload: Any) -> Any:
        """
        Validate a call payload against the compiled schema.

        Returns:
            The validated (and possibly transformed) payload

        Raises:
            IncompleteSchemaError: The schema has fields that failed to compile
            PayloadValidationError: The payload was rejected
        """
        if self.errors:
            raise IncompleteSchemaError(
                f"Schema has {len(self.errors)} field(s) that failed to compile",
                details={"fields": [e.field for e in self.errors]},
            )

        if self.root is not None:
            return self.root.validate(payload)

        if not isinstance(payload, Mapping):
            raise PayloadValidationError(
                "Payload must be an object", stage=StageKind.SHAPE.value, check="object.type"
            )
        try:
            return validate_properties(payload, self.fields, self.context.mode)
        except StageFailure as failure:
            raise PayloadValidationError(
                failure.message,
                stage=StageKind.SHAPE.value,
                check=failure.check,
                details=failure.details,
            ) from failure


class SchemaCompiler:
    """
    Compiles parameter rule maps into schema trees.

    Args:
        fail_fast: Abort on the first failing field (defaults to settings)
        unknown_keys: Root strictness when no context is inherited (defaults to settings)
        metrics: Metrics sink; ``None`` disables recording
        converters: Converter table keyed by rule type
    """

    def __init__(
        self,
        *,
        fail_fast: bool | None = None,
        unknown_keys: UnknownKeys | None = None,
        metrics: Metrics | None = default_metrics,
        converters: Mapping[Any, Converter] = CONVERTERS,
    ):
        self.fail_fast = settings.schema_compile_fail_fast if fail_fast is None else fail_fast
        self.default_context = StrictnessContext.from_mode(
            settings.schema_unknown_keys if unknown_keys is None else unknown_keys
        )
        self.metrics = metrics if settings.metrics_enabled else None
        self.converters = converters

    def compile(
        self, rule_map: Mapping[str, Any], inherited: StrictnessContext | None = None
    ) -> SchemaTree:
        """
        Compile a rule map into a schema tree.

        Args:
            rule_map: Field map, or a root-wrapped rule carrying ``$$root: true``
            inherited: Strictness context from the caller; the compiler default otherwise

        Returns:
            SchemaTree with one validator per compiled field, or a root validator

        Raises:
            MalformedRuleError: The rule map itself is not a mapping or has a bad pragma
            SchemaCompileError: Any field error when ``fail_fast`` is set
        """
        if not isinstance(rule_map, Mapping):
            raise MalformedRuleError(
                "Parameter rules must be a mapping",
                details={"rule_kind": type(rule_map).__name__},
            )

        start = time.perf_counter()
        context = (inherited or self.default_context).override(self._strict_pragma(rule_map))

        try:
            if rule_map.get(ROOT_PRAGMA) is True:
                tree = self._compile_root(rule_map, context)
            else:
                tree = self._compile_fields(rule_map, context)
        except SchemaCompileError as exc:
            self._record_metrics("error", time.perf_counter() - start, 0, [exc])
            logger.warning("Schema compile aborted: %s: %s", type(exc).__name__, exc.message)
            raise

        duration = time.perf_counter() - start
        status = "success" if tree.ok else "partial"
        self._record_metrics(status, duration, len(tree.fields), tree.errors)
        logger.info(
            "Compiled schema: root=%s, fields=%d, errors=%d, mode=%s, duration=%.4fs",
            tree.is_root,
            len(tree.fields),
            len(tree.errors),
            context.mode.value,
            duration,
        )
        return tree

    def convert(self, rule: Any, context: StrictnessContext, path: str = "$") -> ComposedValidator:
        """
        Normalize one rule and fold its converter's stages into a validator.

        Composite converters call back into this method for child rules,
        passing the context they were given (or, for objects, their
        effective context).
        """
        descriptor = normalize_rule(rule, path)
        converter = get_converter(descriptor.type, self.converters)
        stages = converter(descriptor, context, self, path)
        validator = compose_pipeline(
            stages,
            rule_type=descriptor.type,
            description=descriptor.description,
            required=descriptor.is_required,
        )
        if descriptor.has_default and not is_generator_default(descriptor):
            self._check_default(validator, descriptor, path)
        return validator

    @staticmethod
    def _check_default(validator: ComposedValidator, descriptor: Any, path: str) -> None:
        # A substituted default runs through every stage, not only Shape.
        try:
            validator.validate(UNDEFINED)
        except PayloadValidationError as exc:
            tag = descriptor.type.value
            raise InvalidDefaultError(
                f"Default value for {tag} rule at {path} fails its own rule: {exc}",
                details={
                    "path": path,
                    "rule_type": tag,
                    "default": repr(descriptor.default),
                    "check": exc.check,
                },
            ) from exc

    def _compile_root(self, rule_map: Mapping[str, Any], context: StrictnessContext) -> SchemaTree:
        raw = {k: v for k, v in rule_map.items() if not str(k).startswith(PRAGMA_PREFIX)}
        try:
            root = self.convert(raw, context, "$")
        except SchemaCompileError as exc:
            if self.fail_fast:
                raise
            self._log_field_error(ROOT_FIELD, exc)
            return SchemaTree(
                context=context, errors=(FieldCompileError.from_exception(ROOT_FIELD, exc),)
            )
        return SchemaTree(root=root, context=context)

    def _compile_fields(
        self, rule_map: Mapping[str, Any], context: StrictnessContext
    ) -> SchemaTree:
        fields: dict[str, ComposedValidator] = {}
        errors: list[FieldCompileError] = []

        for name, rule in rule_map.items():
            if str(name).startswith(PRAGMA_PREFIX):
                continue
            try:
                fields[name] = self.convert(rule, context, f"$.{name}")
            except SchemaCompileError as exc:
                if self.fail_fast:
                    raise
                self._log_field_error(name, exc)
                errors.append(FieldCompileError.from_exception(name, exc))

        return SchemaTree(fields=MappingProxyType(fields), context=context, errors=tuple(errors))

    @staticmethod
    def _strict_pragma(rule_map: Mapping[str, Any]) -> bool | str | None:
        value = rule_map.get(STRICT_PRAGMA)
        if value is None or isinstance(value, bool) or value == "remove":
            return value
        raise MalformedRuleError(
            f"'{STRICT_PRAGMA}' must be true, false or \"remove\", got {value!r}",
            details={"pragma": STRICT_PRAGMA, "value": repr(value)},
        )

    @staticmethod
    def _log_field_error(name: str, exc: SchemaCompileError) -> None:
        logger.warning(
            "Field '%s' failed to compile: %s: %s",
            name,
            type(exc).__name__,
            exc.message,
            extra={"field": name, "error_type": type(exc).__name__},
        )

    def _record_metrics(self, status: str, duration: float, field_count: int, errors) -> None:
        """
        Record compile metrics.

        Metric failures are logged and never break compilation.
        """
        if self.metrics is None:
            return
        try:
            self.metrics.schema_compilations_total.labels(status=status).inc()
            self.metrics.schema_compile_duration_seconds.observe(duration)
            if status != "error":
                self.metrics.schema_fields_compiled.observe(field_count)
            for error in errors:
                error_type = getattr(error, "error_type", None) or type(error).__name__
                self.metrics.schema_field_errors_total.labels(error_type=error_type).inc()
        except Exception:
            logger.debug("Failed to record compile metrics", exc_info=True)


def compile_schema(
    rule_map: Mapping[str, Any], inherited: StrictnessContext | None = None, **options: Any
) -> SchemaTree:
    """
    Compile a rule map with a one-off compiler.

    Example:
        >>> tree = compile_schema({"name": "string|min:3"})
        >>> tree.validate({"name": "Ada"})
        {'name': 'Ada'}
    """
    return SchemaCompiler(**options).compile(rule_map, inherited)


# Source rule languages the bridge can compile
PARSERS: dict[str, type[SchemaCompiler]] = {
    "fastest-validator": SchemaCompiler,
}


def get_parser(name: str, **options: Any) -> SchemaCompiler:
    """
    Return a compiler for the named source rule language.

    Raises:
        UnknownTypeError: No compiler is registered under ``name``
    """
    try:
        parser_cls = PARSERS[name]
    except KeyError:
        raise UnknownTypeError(
            f"Unknown validator language '{name}'",
            details={"parser": name, "allowed": sorted(PARSERS)},
        )
    return parser_cls(**options)
