"""CLI wrapper: Format sources with ruff; pass --check to only report."""

from __future__ import annotations

import sys

from cli._runner import SOURCE_PATHS, run


def main() -> None:
    run([sys.executable, "-m", "ruff", "format", *SOURCE_PATHS, *sys.argv[1:]])
