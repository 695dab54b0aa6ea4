"""Installation state tracking for a single command run.

The installed/outdated/pinned name sets are snapshots taken from the index
the first time they are needed. They are NOT refreshed automatically: call
:meth:`InstallationState.invalidate` at phase boundaries (e.g. after a batch of
upgrades, before scanning dependents) or the next pass will reconcile
against stale data.
"""

from __future__ import annotations

from collections.abc import Collection

from .index import FormulaIndex
from .models import Formula


class InstallationState:
    """Cached view of what is installed, outdated and pinned.

    Also records per-run events: formulae installed during this run and
    formulae whose installation was already attempted, so the same formula
    is not processed twice when it shows up in several dependency trees.
    """

    def __init__(self, index: FormulaIndex) -> None:
        self.index = index
        self.reset()

    def reset(self) -> None:
        """Drop all cached name sets and per-run events."""
        self._installed: set[str] | None = None
        self._outdated: set[str] | None = None
        self._pinned: set[str] | None = None
        self.installed_this_run: list[str] = []
        self._attempted: set[str] = set()

    def reload(self, index: FormulaIndex) -> None:
        """Switch to a freshly loaded index and reset."""
        self.index = index
        self.reset()

    def invalidate(self, index: FormulaIndex | None = None) -> None:
        """Drop the cached name sets but keep this run's events.

        Called between passes of one run, optionally with a re-read index.
        """
        if index is not None:
            self.index = index
        self._installed = self._outdated = self._pinned = None

    @property
    def installed_names(self) -> set[str]:
        if self._installed is None:
            self._installed = {f.full_name for f in self.index.installed()}
            self._installed.update(self.installed_this_run)
        return self._installed

    @property
    def outdated_names(self) -> set[str]:
        if self._outdated is None:
            self._outdated = {f.full_name for f in self.index.installed() if f.outdated}
            self._outdated.difference_update(self.installed_this_run)
        return self._outdated

    @property
    def pinned_names(self) -> set[str]:
        if self._pinned is None:
            self._pinned = {f.full_name for f in self.index.installed() if f.pinned}
        return self._pinned

    @property
    def upgradable_names(self) -> set[str]:
        return self.outdated_names - self.pinned_names

    def contains(self, name: str, names: Collection[str]) -> bool:
        """Whether ``name`` is in ``names`` under any of its accepted forms.

        Checks the name as given, its short form, then the canonical full
        name it resolves to (through old names and aliases).
        """
        if name in names or name.rsplit("/", 1)[-1] in names:
            return True
        formula = self.index.lookup(name)
        if formula is None:
            return False
        return formula.full_name in names or formula.name in names

    def is_installed(self, name: str) -> bool:
        return self.contains(name, self.installed_names)

    def is_upgradable(self, name: str) -> bool:
        # The cached set first, then the authoritative record
        if not self.contains(name, self.upgradable_names):
            return False
        formula = self.index.lookup(name)
        return formula is not None and formula.outdated

    def installed_and_up_to_date(
        self, name: str, *, no_upgrade: bool = False, upgrade_names: Collection[str] = ()
    ) -> bool:
        """True if nothing needs doing for ``name``.

        With ``no_upgrade``, installed formulae count as up to date unless
        explicitly listed in ``upgrade_names``.
        """
        if not self.is_installed(name):
            return False
        if no_upgrade and name not in upgrade_names:
            return True
        return not self.is_upgradable(name)

    def record_installed(self, formula: Formula) -> None:
        """Note a successful install so later passes see it as installed and current."""
        if formula.full_name not in self.installed_this_run:
            self.installed_this_run.append(formula.full_name)
        if self._installed is not None:
            self._installed.add(formula.full_name)
        if self._outdated is not None:
            self._outdated.discard(formula.full_name)

    def mark_attempted(self, formula: Formula) -> bool:
        """Mark an install attempt; False if it was already attempted this run."""
        if formula.full_name in self._attempted:
            return False
        self._attempted.add(formula.full_name)
        return True

    def already_attempted(self, formula: Formula) -> bool:
        return formula.full_name in self._attempted
