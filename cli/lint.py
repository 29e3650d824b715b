"""CLI wrapper: Lint sources with ruff (extra arguments such as --fix are forwarded)."""

from __future__ import annotations

import sys

from cli._runner import SOURCE_PATHS, run


def main() -> None:
    run([sys.executable, "-m", "ruff", "check", *SOURCE_PATHS, *sys.argv[1:]])
