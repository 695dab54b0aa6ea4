"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest

from brew_reconcile.errors import FormulaError
from brew_reconcile.index import FormulaIndex
from brew_reconcile.installer import InstallOptions
from brew_reconcile.models import Formula


class FakeActions:
    """In-memory formula actions that apply installs to the index.

    Attributes:
        calls: (action, full name) pairs in call order, fetches included.
        options: Options each formula was last installed with.
        fail: Full name → error raised by install, upgrade or reinstall.
        fetch_fail: Full name → error raised by fetch.
        broken: Full names reported as having broken linkage.
        mutate: Whether successful actions update the index. Off, the index
                stays as loaded, like a static snapshot.
    """

    def __init__(
        self,
        index: FormulaIndex,
        *,
        fail: dict[str, FormulaError] | None = None,
        fetch_fail: dict[str, FormulaError] | None = None,
        broken: set[str] | None = None,
        mutate: bool = True,
    ) -> None:
        self.index = index
        self.fail = fail or {}
        self.fetch_fail = fetch_fail or {}
        self.broken = broken or set()
        self.mutate = mutate
        self.calls: list[tuple[str, str]] = []
        self.options: dict[str, InstallOptions] = {}

    def names(self, action: str) -> list[str]:
        return [name for kind, name in self.calls if kind == action]

    def fetch(self, formula: Formula, options: InstallOptions) -> None:
        self.calls.append(("fetch", formula.full_name))
        if formula.full_name in self.fetch_fail:
            raise self.fetch_fail[formula.full_name]

    def _apply(self, action: str, formula: Formula, options: InstallOptions) -> None:
        self.calls.append((action, formula.full_name))
        self.options[formula.full_name] = options
        if formula.full_name in self.fail:
            raise self.fail[formula.full_name]
        self.broken.discard(formula.full_name)
        if not self.mutate:
            return
        self.index.update(
            formula.full_name,
            installed_version=formula.version,
            any_version_installed=True,
            outdated=False,
            linked=True,
        )

    def install(self, formula: Formula, options: InstallOptions) -> None:
        self._apply("install", formula, options)

    def upgrade(self, formula: Formula, options: InstallOptions) -> None:
        self._apply("upgrade", formula, options)

    def reinstall(self, formula: Formula, options: InstallOptions) -> None:
        self._apply("reinstall", formula, options)

    def bottled(self, formula: Formula) -> bool:
        return formula.bottled

    def broken_linkage(self, formula: Formula) -> bool:
        return formula.full_name in self.broken


@pytest.fixture
def make_index() -> Callable[[dict[str, dict[str, Any]]], FormulaIndex]:
    """Build an index from {full_name: fields}."""

    def build(records: dict[str, dict[str, Any]]) -> FormulaIndex:
        return FormulaIndex(
            Formula(full_name=name, **fields) for name, fields in records.items()
        )

    return build


@pytest.fixture
def make_actions() -> Callable[..., FakeActions]:
    return FakeActions


@pytest.fixture
def outdated() -> dict[str, Any]:
    """Fields for an installed, linked, bottled formula with a newer version out."""
    return {
        "version": "2.0",
        "installed_version": "1.0",
        "linked": True,
        "bottled": True,
    }


@pytest.fixture
def current() -> dict[str, Any]:
    """Fields for an installed, linked, bottled, up-to-date formula."""
    return {
        "version": "2.0",
        "installed_version": "2.0",
        "linked": True,
        "bottled": True,
    }


@pytest.fixture
def tmp_index(tmp_path: Path) -> Path:
    """Create a temporary index file."""
    content = """\
# Snapshot of the local formula state
[formula.openssl]
version = "3.3.1"
installed_version = "3.3.0"
keg_only = true
bottled = true

[formula.wget]
aliases = ["gnu-wget"]
dependencies = ["openssl"]
version = "1.24.5"
installed_version = "1.24.5"
linked = true
bottled = true

[formula."user/repo/tool"]
dependencies = ["wget"]
version = "0.3"
installed_version = "0.2"
linked = true
"""
    path = tmp_path / "index.toml"
    path.write_text(content)
    return path
