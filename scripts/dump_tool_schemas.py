#!/usr/bin/env python3
"""
Compile operation parameter rules and dump the resulting tool descriptions.

The input file is a JSON list of operations:

    [
      {"name": "users.create", "title": "Create user",
       "params": {"email": "email", "age": "number|integer|optional"}}
    ]

Usage:
  python scripts/dump_tool_schemas.py operations.json
  python scripts/dump_tool_schemas.py operations.json -o docs/tools.json
"""

import argparse
import json
import sys
from pathlib import Path

from toolbridge.compiler.exporter import dump_json
from toolbridge.core.config import settings
from toolbridge.core.observability import configure_structured_logging
from toolbridge.services.tool_catalog import OperationSpec, ToolCatalog


def load_operations(path: Path) -> list[OperationSpec]:
    """Read operation specs from a JSON file."""
    with open(path, encoding="utf-8") as f:
        raw = json.load(f)

    if not isinstance(raw, list):
        raise SystemExit(f"[ERROR] {path}: expected a JSON list of operations")

    return [
        OperationSpec(
            name=item["name"],
            params=item.get("params", {}),
            tool_name=item.get("tool_name"),
            title=item.get("title"),
            description=item.get("description"),
        )
        for item in raw
    ]


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("operations", type=Path, help="JSON file listing operations")
    parser.add_argument("-o", "--output", type=Path, help="Write tool descriptions here")
    args = parser.parse_args(argv)

    if settings.observability_structured_logs:
        configure_structured_logging(settings.app_log_level)

    catalog = ToolCatalog()
    result = catalog.rebuild(load_operations(args.operations))
    output = dump_json({"tools": catalog.list_tools()}, indent=2)

    if args.output:
        args.output.parent.mkdir(parents=True, exist_ok=True)
        args.output.write_text(output + "\n", encoding="utf-8")
        print(f"[OK] Wrote {len(result.registered)} tool(s) to {args.output}")
    else:
        print(output)

    for failure in result.failures:
        print(
            f"[FAIL] {failure.operation} field={failure.field} "
            f"{failure.error_type}: {failure.message}",
            file=sys.stderr,
        )

    return 0 if result.ok else 1


if __name__ == "__main__":
    sys.exit(main())
