"""
Pytest configuration and shared fixtures for the tool bridge tests.

Provides:
- metrics: Metrics bound to a throwaway Prometheus registry
- compiler: SchemaCompiler with field isolation and passthrough strictness
- convert: Compile a single rule into a ComposedValidator
- DocumentId: Opaque identity class for objectID rules
"""

from __future__ import annotations

import re
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]

# Add the project root to path for imports
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import pytest  # noqa: E402 (import after path setup)
from prometheus_client import CollectorRegistry  # noqa: E402 (import after path setup)

from toolbridge.compiler.compiler import SchemaCompiler  # noqa: E402
from toolbridge.compiler.pipeline import StrictnessContext  # noqa: E402
from toolbridge.core.observability import Metrics  # noqa: E402
from toolbridge.domain.enums import UnknownKeys  # noqa: E402


class DocumentId:
    """Identity of a stored document: 24 hexadecimal characters."""

    _PATTERN = re.compile(r"^[0-9a-fA-F]{24}$")

    def __init__(self, value: str):
        if not self._PATTERN.match(value):
            raise ValueError(f"Invalid document id: {value!r}")
        self.value = value.lower()

    @classmethod
    def is_valid(cls, value: object) -> bool:
        if isinstance(value, cls):
            return True
        return isinstance(value, str) and bool(cls._PATTERN.match(value))

    def __str__(self) -> str:
        return self.value

    def __eq__(self, other: object) -> bool:
        return isinstance(other, DocumentId) and other.value == self.value

    def __hash__(self) -> int:
        return hash(self.value)


VALID_DOCUMENT_ID = "5f2b6c1e9d3a4b7c8e0f1a2b"


@pytest.fixture
def metrics() -> Metrics:
    """Metrics on a fresh registry so counts never leak between tests."""
    return Metrics(CollectorRegistry())


@pytest.fixture
def compiler(metrics: Metrics) -> SchemaCompiler:
    return SchemaCompiler(fail_fast=False, unknown_keys=UnknownKeys.PASSTHROUGH, metrics=metrics)


@pytest.fixture
def convert(compiler: SchemaCompiler):
    """Compile one rule under a given (default: passthrough) strictness context."""

    def _convert(rule, context: StrictnessContext | None = None):
        return compiler.convert(rule, context or StrictnessContext())

    return _convert


@pytest.fixture
def document_id_cls() -> type[DocumentId]:
    return DocumentId


@pytest.fixture
def document_id() -> str:
    """A well-formed document id string."""
    return VALID_DOCUMENT_ID
