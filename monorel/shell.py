"""Shell and git utilities.

Provides simple wrappers around subprocess calls for running shell commands
and git operations, plus output formatting helpers.
"""

from __future__ import annotations

import subprocess
import sys
from pathlib import Path
from typing import NoReturn


def git(*args: str, cwd: Path | None = None, check: bool = True) -> str:
    """Run a git command and return stdout.

    Args:
        *args: Arguments to pass to git (e.g., "status", "--short").
        cwd: Directory to run in; defaults to the current directory.
        check: If True (default), raise on non-zero exit. Set to False
               for commands that may legitimately fail (e.g., tag lookup).

    Returns:
        Stripped stdout from the git command.
    """
    result = subprocess.run(
        ["git", *args], cwd=cwd, capture_output=True, text=True, check=check
    )
    return result.stdout.strip()


def git_result(*args: str, cwd: Path | None = None) -> subprocess.CompletedProcess[str]:
    """Run a git command without raising, returning the full result.

    Used where the caller needs stderr or the exit status to build a
    precise error (commit, tag, push).
    """
    return subprocess.run(["git", *args], cwd=cwd, capture_output=True, text=True)


def run(
    *args: str, cwd: Path | None = None, check: bool = True
) -> subprocess.CompletedProcess[bytes]:
    """Run an arbitrary shell command.

    Unlike git(), this doesn't capture output - it streams directly to
    the terminal so users can see build progress, etc. The environment
    is inherited.

    Args:
        *args: Command and arguments (e.g., "uv", "build", "pkg/").
        cwd: Working directory for the command.
        check: If True (default), raise on non-zero exit.

    Returns:
        CompletedProcess with returncode for checking success.
    """
    return subprocess.run(args, cwd=cwd, check=check)


def step(msg: str) -> None:
    """Print a visually distinct step header.

    Used to separate major phases of the release pipeline in terminal output.
    """
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def warn(msg: str) -> None:
    """Print a non-fatal warning to stderr."""
    print(f"WARNING: {msg}", file=sys.stderr)


def fatal(msg: str) -> NoReturn:
    """Print an error message and exit with code 1.

    Only the CLI calls this; library code raises MonorelError instead.
    """
    print(f"ERROR: {msg}", file=sys.stderr)
    sys.exit(1)
