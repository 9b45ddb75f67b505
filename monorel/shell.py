"""Shell and git utilities.

Provides a thin wrapper around subprocess for git operations, plus the
output helpers used to report progress in the terminal.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path


def git(*args: str, check: bool = True, cwd: Path | None = None) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "log", "--reverse").
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., tag lookup).
        cwd: Directory to run in; the current directory if omitted.

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(
        ["git", *args], capture_output=True, text=True, check=check, cwd=cwd
    )
    return result.stdout.strip()


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of a release run in terminal output.
    Goes to stderr so command results on stdout stay machine-readable.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}", file=sys.stderr)


def info(msg: str) -> None:
    print(f"  {msg}", file=sys.stderr)


def warn(msg: str) -> None:
    print(f"Warning: {msg}", file=sys.stderr)


def fatal(msg: str) -> None:
    """Print an error message and exit with code 1.

    Use for unrecoverable errors that should halt the run.
    """
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)
