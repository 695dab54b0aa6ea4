"""Formula actions backed by the brew executable.

Each action shells out to ``brew`` for a single formula. Failures are
mapped onto the error types in :mod:`brew_reconcile.errors` by inspecting
brew's output, so the install loop can decide whether to carry on.
"""

from __future__ import annotations

import json
import subprocess
from collections.abc import Iterable

from .config import EnvConfig
from .errors import (
    BuildError,
    CannotInstallFormulaError,
    ChecksumMismatchError,
    DownloadError,
    FormulaError,
    InvalidIndexError,
    UnsatisfiedRequirements,
)
from .index import FormulaIndex, formula_from_info
from .installer import InstallOptions
from .models import Formula
from .shell import brew

# Keep brew from running its own dependents pass; we run ours afterwards.
CHILD_ENV = {"HOMEBREW_NO_INSTALLED_DEPENDENTS_CHECK": "1"}

# Install flags that brew fetch also understands
FETCH_FLAGS = ("--build-from-source", "--force-bottle", "--force")

# (marker in brew output, error type), first match wins
FAILURE_MARKERS: list[tuple[str, type[FormulaError]]] = [
    ("SHA256 mismatch", ChecksumMismatchError),
    ("Checksum mismatch", ChecksumMismatchError),
    ("Download failed", DownloadError),
    ("curl: (", DownloadError),
    ("Unsatisfied requirements", UnsatisfiedRequirements),
    ("An unsatisfied requirement", UnsatisfiedRequirements),
    ("BuildError", BuildError),
    ("Failed executing:", BuildError),
    ("make: ***", BuildError),
]


def classify_failure(name: str, result: subprocess.CompletedProcess[str]) -> FormulaError:
    """Map a failed brew invocation onto an error type.

    Anything unrecognised becomes a :class:`CannotInstallFormulaError`
    carrying brew's last error line.
    """
    output = "\n".join(filter(None, [result.stdout, result.stderr]))
    for marker, error_type in FAILURE_MARKERS:
        if marker in output:
            if error_type is BuildError:
                return BuildError(name, output=output)
            return error_type(name, _last_error_line(output) or marker)
    detail = _last_error_line(output) or f"brew exited with status {result.returncode}"
    return CannotInstallFormulaError(name, f"{name}: {detail}")


def _last_error_line(output: str) -> str:
    lines = [line.strip() for line in output.splitlines() if line.strip()]
    errors = [line for line in lines if line.startswith("Error:")]
    if errors:
        return errors[-1].removeprefix("Error:").strip()
    return lines[-1] if lines else ""


class BrewActions:
    """Formula actions that run ``brew`` subcommands."""

    def __init__(self, config: EnvConfig | None = None) -> None:
        self.config = config or EnvConfig()

    def _brew(self, formula: Formula, *args: str) -> None:
        result = brew(self.config.brew_file, *args, formula.full_name, env=CHILD_ENV)
        if result.returncode != 0:
            raise classify_failure(formula.full_name, result)

    def fetch(self, formula: Formula, options: InstallOptions) -> None:
        flags = [f for f in options.flags(formula) if f in FETCH_FLAGS]
        self._brew(formula, "fetch", "--formula", *flags)

    def install(self, formula: Formula, options: InstallOptions) -> None:
        self._brew(formula, "install", "--formula", *options.flags(formula))

    def upgrade(self, formula: Formula, options: InstallOptions) -> None:
        self._brew(formula, "upgrade", "--formula", *options.flags(formula))

    def reinstall(self, formula: Formula, options: InstallOptions) -> None:
        self._brew(formula, "reinstall", "--formula", *options.flags(formula))

    def bottled(self, formula: Formula) -> bool:
        return formula.bottled

    def broken_linkage(self, formula: Formula) -> bool:
        """Run ``brew linkage --test``; a non-zero exit means broken linkage."""
        result = brew(self.config.brew_file, "linkage", "--test", formula.full_name)
        return result.returncode != 0


def load_brew_index(config: EnvConfig | None = None, names: Iterable[str] = ()) -> FormulaIndex:
    """Build an index from ``brew info --json=v2``.

    Covers all installed formulae plus any extra ``names`` (which may not be
    installed yet). Installed records win over duplicates.

    Raises:
        InvalidIndexError: If brew fails or prints something unparseable.
    """
    config = config or EnvConfig()
    infos: dict[str, dict] = {}
    for args in (["--installed"], list(names)):
        if not args:
            continue
        result = brew(config.brew_file, "info", "--json=v2", "--formula", *args)
        if result.returncode != 0:
            raise InvalidIndexError(f"brew info failed: {result.stderr.strip()}")
        try:
            payload = json.loads(result.stdout)
        except json.JSONDecodeError as exc:
            raise InvalidIndexError(f"brew info printed invalid JSON: {exc}") from exc
        for info in payload.get("formulae", []):
            infos.setdefault(info["full_name"], info)
    return FormulaIndex(formula_from_info(info) for info in infos.values())
