"""
Shared CLI runner helper.

Every developer command shells out to a tool in the current interpreter's
environment and exits with that tool's status.
"""

from __future__ import annotations

import subprocess
from collections.abc import Sequence

# Trees covered by lint and format
SOURCE_PATHS = ("toolbridge", "cli", "scripts", "tests")


def run(cmd: Sequence[str]) -> None:
    """
    Run a command and propagate its exit code.

    Args:
        cmd: Command and arguments to execute

    Example:
        >>> run([sys.executable, "-m", "pytest", "-q"])
    """
    result = subprocess.run(cmd)
    raise SystemExit(result.returncode)
