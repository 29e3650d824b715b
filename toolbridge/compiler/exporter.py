"""
Tool-description exporter.

Serializes a compiled ``SchemaTree`` into the JSON Schema a tool-calling
client reads from a tool listing:

    {
        "name": "users_create",
        "title": "Create user",
        "description": "Create a user account",
        "inputSchema": {
            "type": "object",
            "properties": {"email": {"type": "string", "format": "email"}},
            "required": ["email"]
        }
    }

Tool input schemas must describe an object, so a root-wrapped schema of any
other type is exported as the single property ``$$root``.

Every exported document has its keys sorted, so a catalog rebuild from
unchanged rules yields byte-identical JSON and an unchanged fingerprint.
"""

import hashlib
import json
import logging
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from toolbridge.compiler.compiler import ROOT_FIELD, SchemaTree
from toolbridge.core.errors import IncompleteSchemaError
from toolbridge.domain.enums import UnknownKeys

logger = logging.getLogger(__name__)


def sort_keys_deep(value: Any) -> Any:
    """
    Copy of a JSON value with mapping keys sorted at every depth.

    List order is kept: ``required`` is already sorted and the order of
    ``anyOf`` or ``prefixItems`` carries meaning. Tuples come back as lists.
    """
    if isinstance(value, dict):
        return {key: sort_keys_deep(value[key]) for key in sorted(value)}
    if isinstance(value, (list, tuple)):
        return list(map(sort_keys_deep, value))
    return value


def dump_json(value: Any, *, indent: int | None = None) -> str:
    """Key-sorted JSON text, compact unless ``indent`` is given."""
    separators = (",", ":") if indent is None else (",", ": ")
    return json.dumps(
        sort_keys_deep(value), indent=indent, separators=separators, ensure_ascii=False
    )


def schema_fingerprint(value: Any) -> str:
    """``sha256:<hex>`` digest of the compact key-sorted JSON."""
    return "sha256:" + hashlib.sha256(dump_json(value).encode("utf-8")).hexdigest()


class ToolDescription(BaseModel):
    """One advertised tool, as sent in a tool listing."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str = Field(min_length=1)
    title: str | None = None
    description: str | None = None
    input_schema: dict[str, Any] = Field(alias="inputSchema")

    def to_protocol(self) -> dict[str, Any]:
        """Protocol dict with camelCase keys, empty fields omitted, keys sorted."""
        return sort_keys_deep(self.model_dump(by_alias=True, exclude_none=True))


def schema_to_json_schema(tree: SchemaTree) -> dict[str, Any]:
    """
    Export a schema tree as JSON Schema.

    Field maps become an object schema; ``required`` lists the fields that
    are neither optional nor defaulted, sorted by name. Root trees export
    their root validator's schema as is.

    Raises:
        IncompleteSchemaError: The tree has fields that failed to compile
    """
    if tree.errors:
        raise IncompleteSchemaError(
            "Cannot export a schema with fields that failed to compile",
            details={"fields": [e.field for e in tree.errors]},
        )

    if tree.root is not None:
        return tree.root.json_schema()

    schema: dict[str, Any] = {
        "type": "object",
        "properties": {name: validator.json_schema() for name, validator in tree.fields.items()},
    }
    required = sorted(name for name, validator in tree.fields.items() if validator.required)
    if required:
        schema["required"] = required
    if tree.context.mode == UnknownKeys.REJECT:
        schema["additionalProperties"] = False
    return schema


def wraps_root(tree: SchemaTree) -> bool:
    """Whether the tree's input schema nests the payload under ``$$root``."""
    return tree.root is not None and tree.root.json_schema().get("type") != "object"


def to_input_schema(tree: SchemaTree) -> dict[str, Any]:
    """JSON Schema for a tool's ``inputSchema``, always of type object."""
    schema = schema_to_json_schema(tree)
    if not wraps_root(tree):
        return schema

    wrapped: dict[str, Any] = {
        "type": "object",
        "properties": {ROOT_FIELD: schema},
        "additionalProperties": False,
    }
    if tree.root.required:
        wrapped["required"] = [ROOT_FIELD]
    return wrapped


def build_tool_description(
    name: str,
    tree: SchemaTree,
    *,
    title: str | None = None,
    description: str | None = None,
) -> ToolDescription:
    """
    Build the tool description advertised for one compiled operation.

    Args:
        name: Tool name as exposed to clients
        tree: Compiled parameter schema
        title: Human-readable title
        description: What the tool does

    Returns:
        ToolDescription with a key-sorted input schema
    """
    input_schema = sort_keys_deep(to_input_schema(tree))
    logger.debug(
        "Exported tool %s with %d properties", name, len(input_schema.get("properties", {}))
    )
    return ToolDescription(
        name=name, title=title, description=description, input_schema=input_schema
    )
