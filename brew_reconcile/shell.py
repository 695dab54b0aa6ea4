"""Shell and terminal output utilities.

Provides a thin wrapper around subprocess for calling the ``brew``
executable, plus the Homebrew-style output helpers (``==>`` headers,
warnings and errors) used throughout the install and upgrade passes.
"""

from __future__ import annotations

import os
import subprocess
import sys
from collections.abc import Mapping


def brew(
    executable: str,
    *args: str,
    env: Mapping[str, str] | None = None,
    check: bool = False,
) -> subprocess.CompletedProcess[str]:
    """Run a brew command, capturing its output.

    Args:
        executable: Path to the brew executable (usually just "brew").
        *args: Arguments to pass to brew (e.g., "upgrade", "--formula", "wget").
        env: Extra environment variables, added to the current environment.
        check: If True, raise on non-zero exit. Defaults to False since
               callers map the exit status onto their own error types.

    Returns:
        CompletedProcess with text stdout/stderr.
    """
    return subprocess.run(
        [executable, *args],
        capture_output=True,
        text=True,
        check=check,
        env={**os.environ, **env} if env else None,
    )


def step(msg: str) -> None:
    """Print a visually distinct step header."""
    print(f"\n{'─' * 60}\n{msg}\n{'─' * 60}")


def ohai(msg: str) -> None:
    """Print an informational header: ``==> msg``."""
    print(f"==> {msg}")


def oh1(msg: str) -> None:
    """Print a top-level header, used once per formula being processed."""
    print(f"==> {msg}")


def opoo(msg: str) -> None:
    """Print a warning to stderr."""
    print(f"Warning: {msg}", file=sys.stderr)


def onoe(msg: str) -> None:
    """Print an error to stderr without exiting."""
    print(f"Error: {msg}", file=sys.stderr)


def pluralize(word: str, count: int, *, plural: str = "s", include_count: bool = False) -> str:
    """Pluralize a word for a count.

    Examples:
        pluralize("dependent", 1) → "dependent"
        pluralize("formula", 2, plural="e") → "formulae"
        pluralize("dependent", 3, include_count=True) → "3 dependents"
    """
    text = word if count == 1 else f"{word}{plural}"
    return f"{count} {text}" if include_count else text
