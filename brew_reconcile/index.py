"""Formula index: name resolution and dependents lookup.

The index is the authoritative, read-only view of formula metadata for one
run. It can be loaded from a TOML snapshot (see :mod:`brew_reconcile.toml`)
or from ``brew info --json=v2`` output. Name lookups accept full names,
short names, old names and aliases.
"""

from __future__ import annotations

from collections.abc import Iterable, Iterator
from pathlib import Path
from typing import Any

import tomlkit
from pydantic import ValidationError

from .errors import (
    AmbiguousFormulaError,
    DuplicateFormulaError,
    FormulaUnavailableError,
    InvalidIndexError,
)
from .models import Formula
from .toml import get_formula_tables, load_toml, save_toml, set_formula_table


def presort_key(formula: Formula) -> tuple[bool, str]:
    """Sort key putting core formulae before tap formulae, then by full name."""
    return (not formula.core, formula.full_name)


class FormulaIndex:
    """Lookup table of formulae keyed by canonical full name."""

    def __init__(self, formulae: Iterable[Formula] = ()) -> None:
        self._formulae: dict[str, Formula] = {}
        for formula in formulae:
            if formula.full_name in self._formulae:
                raise DuplicateFormulaError(formula.full_name)
            self._formulae[formula.full_name] = formula
        self._rebuild()

    def _rebuild(self) -> None:
        self._by_name: dict[str, list[str]] = {}
        for full_name, formula in self._formulae.items():
            self._by_name.setdefault(formula.name, []).append(full_name)

        # Old names and aliases, also reachable as "tap/alias" for tap formulae
        targets: dict[str, set[str]] = {}
        for full_name, formula in self._formulae.items():
            for other in [*formula.oldnames, *formula.aliases]:
                keys = [other]
                if formula.tap:
                    keys.append(f"{formula.tap}/{other}")
                for key in keys:
                    targets.setdefault(key, set()).add(full_name)
        self._aliases: dict[str, str] = {}
        for key, names in targets.items():
            if len(names) > 1:
                raise AmbiguousFormulaError(key, list(names))
            self._aliases[key] = next(iter(names))

        self._reverse: dict[str, set[str]] | None = None

    def __len__(self) -> int:
        return len(self._formulae)

    def __iter__(self) -> Iterator[Formula]:
        return iter(self.all())

    def __contains__(self, name: object) -> bool:
        return isinstance(name, str) and self.resolve(name) is not None

    def __getitem__(self, name: str) -> Formula:
        formula = self.lookup(name)
        if formula is None:
            raise FormulaUnavailableError(name)
        return formula

    def resolve(self, name: str) -> str | None:
        """Resolve any accepted form of a name to the canonical full name.

        Short names prefer the core formula; a short name shared only by
        several tap formulae is ambiguous.

        Raises:
            AmbiguousFormulaError: If a short name matches several tap formulae.
        """
        if name in self._formulae:
            return name
        candidates = self._by_name.get(name, [])
        if len(candidates) == 1:
            return candidates[0]
        if len(candidates) > 1:
            raise AmbiguousFormulaError(name, candidates)
        return self._aliases.get(name)

    def lookup(self, name: str) -> Formula | None:
        """Return the formula for a name, or None if nothing matches."""
        full_name = self.resolve(name)
        return self._formulae[full_name] if full_name else None

    def all(self) -> list[Formula]:
        """All formulae, core first, then by full name."""
        return sorted(self._formulae.values(), key=presort_key)

    def installed(self) -> list[Formula]:
        return [f for f in self.all() if f.any_version_installed]

    def update(self, name: str, **changes: Any) -> Formula:
        """Replace a formula's record with a copy carrying ``changes``.

        Used to reflect the effect of an install on the snapshot.
        """
        current = self[name]
        data = current.model_dump()
        if {"version", "installed_version"} & changes.keys() and "outdated" not in changes:
            # Re-derive from the new versions
            del data["outdated"]
        data.update(changes)
        formula = Formula.model_validate(data)
        self._formulae[current.full_name] = formula
        self._rebuild()
        return formula

    def dependencies_of(self, formula: Formula) -> list[Formula]:
        """Declared dependencies that exist in the index, in declaration order.

        Names with no match are dropped.
        """
        deps: dict[str, Formula] = {}
        for dep_name in formula.dependencies:
            dep = self.lookup(dep_name)
            if dep is not None:
                deps.setdefault(dep.full_name, dep)
        return list(deps.values())

    def _reverse_map(self) -> dict[str, set[str]]:
        # installed dependency full name → installed dependents' full names
        if self._reverse is None:
            reverse: dict[str, set[str]] = {}
            for formula in self.installed():
                for dep_name in formula.installed_dependencies:
                    dep = self.lookup(dep_name)
                    if dep is None or dep.full_name == formula.full_name:
                        continue
                    reverse.setdefault(dep.full_name, set()).add(formula.full_name)
            self._reverse = reverse
        return self._reverse

    def dependents_of(self, formula: Formula) -> list[Formula]:
        """Installed formulae depending on ``formula``, transitively.

        Returns:
            Dependents sorted by full name, excluding ``formula`` itself.
        """
        reverse = self._reverse_map()
        seen: set[str] = set()
        queue = [formula.full_name]
        while queue:
            node = queue.pop(0)
            for dependent in sorted(reverse.get(node, ())):
                if dependent not in seen:
                    seen.add(dependent)
                    queue.append(dependent)
        seen.discard(formula.full_name)
        return [self._formulae[name] for name in sorted(seen)]


def load_index(path: Path) -> FormulaIndex:
    """Load a formula index from a TOML snapshot.

    Raises:
        InvalidIndexError: If the file or any record is invalid.
    """
    doc = load_toml(path)
    formulae: list[Formula] = []
    for full_name, data in get_formula_tables(doc).items():
        try:
            formulae.append(Formula.model_validate(data))
        except ValidationError as exc:
            raise InvalidIndexError(f"formula {full_name}: {exc}") from exc
    return FormulaIndex(formulae)


def dump_index(index: FormulaIndex, path: Path) -> None:
    """Write the index to a TOML snapshot, updating an existing file in place."""
    doc = load_toml(path) if path.exists() else tomlkit.document()
    for formula in index.all():
        data = formula.model_dump(exclude_defaults=True)
        if data.get("name") == formula.full_name.rsplit("/", 1)[-1]:
            del data["name"]
        set_formula_table(doc, formula.full_name, data)
    save_toml(path, doc)


def formula_from_info(info: dict[str, Any]) -> Formula:
    """Convert one formula entry of ``brew info --json=v2`` to a Formula.

    The installed keg's tab supplies runtime dependencies and the
    installed-on-request/as-dependency flags; the newest installed keg wins.
    """
    installed = info.get("installed") or []
    keg = installed[-1] if installed else {}
    stable = (info.get("versions") or {}).get("stable")
    revision = info.get("revision") or 0
    version = f"{stable}_{revision}" if stable and revision else stable
    runtime = [
        dep["full_name"]
        for dep in keg.get("runtime_dependencies") or []
        if dep.get("full_name")
    ]
    data: dict[str, Any] = {
        "full_name": info["full_name"],
        "name": info.get("name", ""),
        "aliases": info.get("aliases") or [],
        "oldnames": info.get("oldnames") or [],
        "dependencies": info.get("dependencies") or [],
        "build_dependencies": info.get("build_dependencies") or [],
        "runtime_dependencies": runtime,
        "version": version,
        "installed_version": keg.get("version"),
        "any_version_installed": bool(installed),
        "pinned": bool(info.get("pinned")),
        "keg_only": bool(info.get("keg_only")),
        "linked": info.get("linked_keg") is not None,
        "bottled": bool((info.get("versions") or {}).get("bottle")),
        "installed_as_dependency": bool(keg.get("installed_as_dependency")),
        "installed_on_request": bool(keg.get("installed_on_request")),
    }
    if "outdated" in info:
        data["outdated"] = bool(info["outdated"])
    return Formula.model_validate(data)
