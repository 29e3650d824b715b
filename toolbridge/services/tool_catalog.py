"""
Tool Catalog Service

Registers compiled operations as tools and validates tool-call arguments.

Each rebuild compiles every operation independently: an operation whose
parameter rules do not compile completely is left out of the catalog and
reported, while every other operation is still registered. The catalog is
replaced wholesale on each rebuild, never patched in place.

Deciding which operations exist or are exposed, naming them and carrying
protocol messages belong to the caller.
"""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any

from toolbridge.compiler.compiler import ROOT_FIELD, SchemaCompiler, SchemaTree
from toolbridge.compiler.exporter import (
    ToolDescription,
    build_tool_description,
    schema_fingerprint,
    wraps_root,
)
from toolbridge.compiler.pipeline import UNDEFINED
from toolbridge.core.errors import (
    PayloadValidationError,
    SchemaCompileError,
    ToolBridgeError,
    ToolNotFoundError,
    get_error_code,
)
from toolbridge.core.observability import Metrics, compiling_operation
from toolbridge.core.observability import metrics as default_metrics

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OperationSpec:
    """An operation offered for registration, with its parameter rules."""

    name: str
    params: Mapping[str, Any] = field(default_factory=dict)
    tool_name: str | None = None
    title: str | None = None
    description: str | None = None

    @property
    def exposed_name(self) -> str:
        return self.tool_name or self.name


@dataclass(frozen=True)
class RegisteredTool:
    """A compiled operation exposed as a tool."""

    operation: str
    description: ToolDescription
    tree: SchemaTree
    fingerprint: str

    @property
    def name(self) -> str:
        return self.description.name


@dataclass(frozen=True)
class OperationFailure:
    """An operation left out of the catalog, and why."""

    operation: str
    field: str | None
    error_type: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "operation": self.operation,
            "field": self.field,
            "error_type": self.error_type,
            "message": self.message,
        }


@dataclass(frozen=True)
class CatalogBuildResult:
    """Outcome of one rebuild."""

    registered: tuple[str, ...]
    failures: tuple[OperationFailure, ...]
    changed: tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return not self.failures


class ToolCatalog:
    """
    Catalog of tools built from operation specs.

    Args:
        compiler: Schema compiler (a default one is created when omitted)
        metrics: Metrics sink; ``None`` disables recording
    """

    def __init__(
        self,
        compiler: SchemaCompiler | None = None,
        metrics: Metrics | None = default_metrics,
    ):
        self.compiler = compiler or SchemaCompiler()
        self.metrics = metrics
        self._tools: Mapping[str, RegisteredTool] = MappingProxyType({})

    def __len__(self) -> int:
        return len(self._tools)

    def __contains__(self, name: object) -> bool:
        return name in self._tools

    def rebuild(self, operations: Iterable[OperationSpec]) -> CatalogBuildResult:
        """
        Compile every operation and replace the catalog.

        Args:
            operations: Operations to expose

        Returns:
            CatalogBuildResult listing registered tools, failures and the
            tools whose input schema changed since the previous build
        """
        previous = self._tools
        tools: dict[str, RegisteredTool] = {}
        failures: list[OperationFailure] = []

        for spec in operations:
            with compiling_operation(spec.name):
                if spec.exposed_name in tools:
                    failures.append(
                        OperationFailure(
                            operation=spec.name,
                            field=None,
                            error_type="DuplicateToolName",
                            message=f"Tool name '{spec.exposed_name}' is already registered",
                        )
                    )
                    logger.warning("Skipping operation with duplicate tool name")
                    continue

                tool, errors = self._compile_operation(spec)
                if tool is None:
                    failures.extend(errors)
                    logger.warning(
                        "Operation not registered: %d field error(s)",
                        len(errors),
                        extra={"errors": [e.to_dict() for e in errors]},
                    )
                    continue
                tools[tool.name] = tool

        changed = tuple(
            sorted(
                name
                for name, tool in tools.items()
                if name not in previous or previous[name].fingerprint != tool.fingerprint
            )
        )
        self._tools = MappingProxyType(tools)

        logger.info(
            "Rebuilt tool catalog: %d registered, %d failed, %d changed",
            len(tools),
            len(failures),
            len(changed),
        )
        self._set_tool_gauge(len(tools))
        return CatalogBuildResult(
            registered=tuple(tools), failures=tuple(failures), changed=changed
        )

    def _compile_operation(
        self, spec: OperationSpec
    ) -> tuple[RegisteredTool | None, list[OperationFailure]]:
        try:
            tree = self.compiler.compile(spec.params)
        except SchemaCompileError as exc:
            return None, [
                OperationFailure(
                    operation=spec.name,
                    field=exc.details.get("path"),
                    error_type=type(exc).__name__,
                    message=exc.message,
                )
            ]

        if tree.errors:
            return None, [
                OperationFailure(
                    operation=spec.name,
                    field=error.field,
                    error_type=error.error_type,
                    message=error.message,
                )
                for error in tree.errors
            ]

        description = build_tool_description(
            spec.exposed_name, tree, title=spec.title, description=spec.description
        )
        tool = RegisteredTool(
            operation=spec.name,
            description=description,
            tree=tree,
            fingerprint=schema_fingerprint(description.to_protocol()),
        )
        return tool, []

    def get(self, name: str) -> RegisteredTool:
        """
        Look up a registered tool.

        Raises:
            ToolNotFoundError: No tool is registered under ``name``
        """
        try:
            return self._tools[name]
        except KeyError:
            raise ToolNotFoundError(f"Unknown tool '{name}'", details={"tool": name})

    def list_tools(self) -> list[dict[str, Any]]:
        """Protocol tool descriptions, sorted by name."""
        return [self._tools[name].description.to_protocol() for name in sorted(self._tools)]

    def validate_arguments(self, name: str, arguments: Mapping[str, Any] | None) -> Any:
        """
        Validate tool-call arguments against the tool's compiled schema.

        Root-wrapped schemas receive their payload under ``$$root``; the
        unwrapped, validated payload is returned.

        Raises:
            ToolNotFoundError: No tool is registered under ``name``
            PayloadValidationError: The arguments were rejected
        """
        tool = self.get(name)
        arguments = {} if arguments is None else arguments

        try:
            if wraps_root(tool.tree):
                result = tool.tree.validate(self._unwrap_root(arguments))
            else:
                result = tool.tree.validate(arguments)
        except PayloadValidationError as exc:
            self._count_validation("invalid")
            logger.info(
                "Rejected arguments for tool %s at %s (%s)",
                name,
                exc.details.get("path"),
                exc.check,
            )
            raise

        self._count_validation("valid")
        return None if result is UNDEFINED else result

    @staticmethod
    def _unwrap_root(arguments: Mapping[str, Any]) -> Any:
        if not isinstance(arguments, Mapping):
            raise PayloadValidationError(
                "Arguments must be an object", stage="shape", check="object.type"
            )
        unknown = sorted(str(key) for key in arguments if key != ROOT_FIELD)
        if unknown:
            raise PayloadValidationError(
                f"Unknown properties are not allowed: {', '.join(unknown)}",
                stage="shape",
                check="object.strict",
            )
        return arguments.get(ROOT_FIELD, UNDEFINED)

    @staticmethod
    def error_payload(exc: Exception) -> dict[str, Any]:
        """
        Render an exception as a JSON-RPC error object.

        Example:
            >>> ToolCatalog.error_payload(ToolNotFoundError("Unknown tool 'x'"))
            {'code': -32601, 'message': "Unknown tool 'x'"}
        """
        payload: dict[str, Any] = {"code": get_error_code(exc)}
        if isinstance(exc, ToolBridgeError):
            payload["message"] = str(exc)
            if exc.details:
                payload["data"] = exc.details
        else:
            payload["message"] = "Internal error"
        return payload

    def _set_tool_gauge(self, count: int) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.tool_catalog_tools.set(count)
        except Exception:
            logger.debug("Failed to record catalog metrics", exc_info=True)

    def _count_validation(self, status: str) -> None:
        if self.metrics is None:
            return
        try:
            self.metrics.tool_argument_validations_total.labels(status=status).inc()
        except Exception:
            logger.debug("Failed to record validation metrics", exc_info=True)
