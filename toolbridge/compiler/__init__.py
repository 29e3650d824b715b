"""
Parameter rule compiler.

Translates parameter-validation rules into composed validators and
exports them as tool input schemas.

Key Components:
- normalizer: Expands shorthand and structured rules into typed descriptors
- converters: One stage-list strategy per rule type
- pipeline: Stage composition and evaluation
- compiler: Façade compiling rule maps into schema trees
- exporter: Schema tree to JSON Schema / tool description, key-sorted JSON

Design Principles:
- Closed type set: an unknown tag is a compile error, never a silent skip
- Fixed stage order: shape, pre-process, validate, refine, manipulate
- Immutability: compiled trees are rebuilt, never mutated
"""

from toolbridge.compiler.compiler import SchemaCompiler, SchemaTree, compile_schema, get_parser
from toolbridge.compiler.exporter import build_tool_description, to_input_schema
from toolbridge.compiler.normalizer import normalize_rule

__all__ = [
    "SchemaCompiler",
    "SchemaTree",
    "compile_schema",
    "get_parser",
    "build_tool_description",
    "to_input_schema",
    "normalize_rule",
]
