"""
Unit tests for the tool catalog.

Tests cover:
- Operation-level isolation on rebuild
- Wholesale replacement and change detection
- Argument validation (field maps and $$root-wrapped schemas)
- JSON-RPC error payloads
- Catalog metrics and compile-context logging
"""

import logging

import pytest

from toolbridge.core.errors import (
    IncompleteSchemaError,
    PayloadValidationError,
    ToolNotFoundError,
)
from toolbridge.services.tool_catalog import OperationSpec, ToolCatalog


@pytest.fixture
def catalog(compiler, metrics) -> ToolCatalog:
    return ToolCatalog(compiler=compiler, metrics=metrics)


def _operations() -> list[OperationSpec]:
    return [
        OperationSpec(
            name="users.create",
            tool_name="users_create",
            title="Create user",
            params={"email": "email", "age": "number|integer|optional"},
        ),
        OperationSpec(name="users.count", params={}),
        OperationSpec(name="echo", params={"$$root": True, "type": "string"}),
    ]


class TestRebuild:
    """Tests for catalog rebuilds."""

    def test_registers_every_operation(self, catalog):
        result = catalog.rebuild(_operations())

        assert result.ok
        assert result.registered == ("users_create", "users.count", "echo")
        assert len(catalog) == 3
        assert "users_create" in catalog
        assert "users.create" not in catalog

    def test_broken_operation_does_not_block_others(self, catalog):
        operations = [
            *_operations(),
            OperationSpec(name="orders.list", params={"limit": "numbr", "page": "number"}),
        ]

        result = catalog.rebuild(operations)

        assert not result.ok
        assert "orders.list" not in catalog
        assert len(catalog) == 3
        assert [f.to_dict() for f in result.failures] == [
            {
                "operation": "orders.list",
                "field": "limit",
                "error_type": "UnknownTypeError",
                "message": "Unknown rule type 'numbr' at $.limit",
            }
        ]

    def test_operation_level_compile_error(self, catalog):
        result = catalog.rebuild([OperationSpec(name="bad", params={"$$strict": "yes"})])

        assert result.failures[0].operation == "bad"
        assert result.failures[0].field is None
        assert result.failures[0].error_type == "MalformedRuleError"

    def test_duplicate_tool_name(self, catalog):
        result = catalog.rebuild(
            [OperationSpec(name="a", tool_name="same"), OperationSpec(name="b", tool_name="same")]
        )

        assert result.registered == ("same",)
        assert catalog.get("same").operation == "a"
        assert result.failures[0].operation == "b"
        assert result.failures[0].error_type == "DuplicateToolName"

    def test_rebuild_replaces_the_catalog(self, catalog):
        catalog.rebuild(_operations())
        catalog.rebuild([OperationSpec(name="echo", params={"$$root": True, "type": "string"})])

        assert len(catalog) == 1
        with pytest.raises(ToolNotFoundError):
            catalog.get("users_create")

    def test_changed_tools(self, catalog):
        first = catalog.rebuild(_operations())
        assert first.changed == ("echo", "users.count", "users_create")

        operations = _operations()
        operations[1] = OperationSpec(name="users.count", params={"active": "boolean|optional"})
        second = catalog.rebuild(operations)

        assert second.changed == ("users.count",)

    def test_tool_gauge(self, catalog, metrics):
        catalog.rebuild(_operations())
        assert metrics.registry.get_sample_value("tool_catalog_tools") == 3

    def test_failure_logs_carry_operation(self, catalog, caplog):
        with caplog.at_level(logging.WARNING, logger="toolbridge.services.tool_catalog"):
            catalog.rebuild([OperationSpec(name="orders.list", params={"limit": "numbr"})])

        record = next(r for r in caplog.records if r.name == "toolbridge.services.tool_catalog")
        assert record.getMessage() == "Operation not registered: 1 field error(s)"
        assert record.errors[0]["field"] == "limit"


class TestListTools:
    def test_sorted_protocol_descriptions(self, catalog):
        catalog.rebuild(_operations())

        tools = catalog.list_tools()

        assert [t["name"] for t in tools] == ["echo", "users.count", "users_create"]
        assert tools[2]["title"] == "Create user"
        assert tools[2]["inputSchema"]["required"] == ["email"]
        assert tools[0]["inputSchema"]["properties"] == {"$$root": {"type": "string"}}

    def test_fingerprint_matches_description(self, catalog):
        catalog.rebuild(_operations())
        assert catalog.get("echo").fingerprint.startswith("sha256:")


class TestValidateArguments:
    """Tests for tool-call argument validation."""

    def test_valid_arguments(self, catalog):
        catalog.rebuild(_operations())

        result = catalog.validate_arguments(
            "users_create", {"email": "jane.doe@company.io", "age": 30}
        )
        assert result == {"email": "jane.doe@company.io", "age": 30}

    def test_missing_arguments_mean_empty_object(self, catalog):
        catalog.rebuild(_operations())
        assert catalog.validate_arguments("users.count", None) == {}

    def test_invalid_arguments(self, catalog, metrics):
        catalog.rebuild(_operations())

        with pytest.raises(PayloadValidationError) as exc_info:
            catalog.validate_arguments("users_create", {"email": "jane.doe@company.io", "age": 1.5})

        assert exc_info.value.details["path"] == "$.age"
        assert (
            metrics.registry.get_sample_value(
                "tool_argument_validations_total", {"status": "invalid"}
            )
            == 1
        )

    def test_root_payload_is_unwrapped(self, catalog, metrics):
        catalog.rebuild(_operations())

        assert catalog.validate_arguments("echo", {"$$root": "hi"}) == "hi"
        assert (
            metrics.registry.get_sample_value(
                "tool_argument_validations_total", {"status": "valid"}
            )
            == 1
        )

    def test_root_payload_missing(self, catalog):
        catalog.rebuild(_operations())

        with pytest.raises(PayloadValidationError) as exc_info:
            catalog.validate_arguments("echo", {})
        assert exc_info.value.check == "required"

    def test_root_wrapper_rejects_other_keys(self, catalog):
        catalog.rebuild(_operations())

        with pytest.raises(PayloadValidationError) as exc_info:
            catalog.validate_arguments("echo", {"$$root": "hi", "extra": 1})
        assert exc_info.value.check == "object.strict"

    def test_absent_optional_root_returns_none(self, catalog):
        params = {"$$root": True, "type": "number", "optional": True}
        catalog.rebuild([OperationSpec(name="maybe", params=params)])
        assert catalog.validate_arguments("maybe", {}) is None

    def test_unknown_tool(self, catalog):
        with pytest.raises(ToolNotFoundError) as exc_info:
            catalog.validate_arguments("nope", {})
        assert exc_info.value.details == {"tool": "nope"}


class TestErrorPayload:
    """Tests for JSON-RPC error rendering."""

    def test_payload_validation_error(self):
        exc = PayloadValidationError(
            "Value must be an integer", path=("age",), stage="validate", check="number.integer"
        )

        payload = ToolCatalog.error_payload(exc)

        assert payload["code"] == -32602
        assert payload["message"] == "$.age: Value must be an integer"
        assert payload["data"]["check"] == "number.integer"

    def test_unknown_tool(self):
        payload = ToolCatalog.error_payload(ToolNotFoundError("Unknown tool 'x'"))
        assert payload == {"code": -32601, "message": "Unknown tool 'x'"}

    def test_compile_error(self):
        payload = ToolCatalog.error_payload(IncompleteSchemaError("Schema incomplete"))
        assert payload["code"] == -32603

    def test_unexpected_error_hides_details(self):
        payload = ToolCatalog.error_payload(RuntimeError("db password is hunter2"))
        assert payload == {"code": -32603, "message": "Internal error"}
