"""Upgrade reconciliation: upgrade → dependents → broken linkage → reinstall.

This module orchestrates a batch upgrade in phases:
1. Upgrade the requested formulae in dependency order
2. Scan the installed dependents of everything that was upgraded
3. Upgrade outdated dependents that can be poured from bottles
4. Scan those dependents again for broken library linkage
5. Reinstall broken dependents from source

Failures of individual formulae are reported and the run carries on; only a
dependency cycle stops the run.
"""

from __future__ import annotations

from collections.abc import Callable, Iterable

from .config import EnvConfig
from .graph import sort_formulae
from .index import FormulaIndex
from .installer import Action, FormulaActions, InstallOptions, install_formula, install_formulae
from .models import (
    BatchReport,
    Dependents,
    Formula,
    InstallResult,
    InstallStatus,
    UpgradePhase,
)
from .shell import oh1, ohai, onoe, opoo, pluralize, step
from .state import InstallationState


class Upgrader:
    """Runs one batch upgrade and the dependents passes that follow it.

    Args:
        index: Formula index for this run.
        actions: External install/upgrade/reinstall operations.
        state: Installation state; a fresh one is created if omitted.
        config: Environment switches.
        options: Options passed to every install.
        reload: Re-reads the index at phase boundaries. Without it, the
                current index object is reused and only caches are dropped.
    """

    def __init__(
        self,
        index: FormulaIndex,
        actions: FormulaActions,
        *,
        state: InstallationState | None = None,
        config: EnvConfig | None = None,
        options: InstallOptions | None = None,
        reload: Callable[[], FormulaIndex] | None = None,
    ) -> None:
        self.index = index
        self.actions = actions
        self.state = state or InstallationState(index)
        self.config = config or EnvConfig()
        self.options = options or InstallOptions()
        self.report = BatchReport()
        self._reload = reload
        self._hint_shown = False

    @property
    def dry_run(self) -> bool:
        return self.options.dry_run

    def refresh(self) -> None:
        """Phase boundary: re-read the index and drop cached name sets."""
        if self._reload is not None:
            self.index = self._reload()
        self.state.invalidate(self.index)

    def current(self, formula: Formula) -> Formula:
        """The up-to-date record for a formula held from an earlier phase."""
        return self.index.lookup(formula.full_name) or formula

    def disable_hint(self) -> None:
        """Print, once per run, how to turn off the dependents check."""
        if self.config.no_env_hints or self._hint_shown:
            return
        print("Disable this behaviour by setting HOMEBREW_NO_INSTALLED_DEPENDENTS_CHECK.")
        print("Hide these hints with HOMEBREW_NO_ENV_HINTS (see `man brew`).")
        self._hint_shown = True

    def order(self, formulae: Iterable[Formula]) -> list[Formula]:
        """Sort formulae for upgrading: keg-only first, then dependency order.

        Raises:
            CyclicDependencyError: If the formulae depend on each other in a
                loop. Nothing is upgraded in that case.
        """
        return sort_formulae(formulae, self.index, keg_only_first=True)

    def dependency_sorted(self, formulae: Iterable[Formula]) -> list[Formula]:
        """Order formulae so every dependency comes before its dependents.

        Dependencies are resolved through the index, so a tap formula named
        by its short name or an alias still counts.
        """
        return sort_formulae(formulae, self.index)

    def upgrade_formulae(self, formulae: Iterable[Formula]) -> list[InstallResult]:
        """Upgrade formulae one at a time in dependency order."""
        self.report.enter(UpgradePhase.INSTALLING)
        return install_formulae(
            self.order(formulae),
            self.actions,
            self.state,
            self.options,
            self.report,
            Action.UPGRADE,
        )

    def bottle_safe(self, formula: Formula) -> bool:
        """Whether the formula and all its dependencies have bottles."""
        if not self.actions.bottled(formula):
            return False
        return all(self.actions.bottled(dep) for dep in self.index.dependencies_of(formula))

    def installed_dependents(self, formulae: Iterable[Formula]) -> list[Formula]:
        """Union of the installed runtime dependents of ``formulae``."""
        seen: dict[str, Formula] = {}
        for formula in formulae:
            for dependent in self.index.dependents_of(formula):
                seen.setdefault(dependent.full_name, dependent)
        return list(seen.values())

    def check_broken_dependents(self, formulae: Iterable[Formula]) -> list[Formula]:
        """Installed dependents of ``formulae`` with broken library linkage."""
        return [
            dependent
            for dependent in self.installed_dependents(formulae)
            if dependent.any_version_installed and self.actions.broken_linkage(dependent)
        ]

    def dependents(self, formulae: Iterable[Formula]) -> Dependents | None:
        """Partition the outdated dependents of upgraded formulae.

        Dependents missing a bottle (for themselves or a dependency) are
        skipped, since upgrading them would mean building from source as a
        side effect of another formula's upgrade. The rest are split into
        pinned and upgradeable, each with dependencies before dependents.

        Returns:
            None if the dependents check is disabled or there is nothing to
            check; otherwise the partition, possibly empty.
        """
        if self.config.no_installed_dependents_check:
            if not self.config.no_env_hints:
                opoo(
                    "HOMEBREW_NO_INSTALLED_DEPENDENTS_CHECK is set: not checking for outdated\n"
                    "dependents or dependents with broken linkage!"
                )
            return None

        # Versioned core formulae are never upgraded to a different formula
        formulae = [f for f in formulae if not (f.core and f.versioned)]
        if not formulae:
            return None

        self.report.enter(UpgradePhase.DEPENDENTS_SCAN)
        outdated = [
            d
            for d in self.installed_dependents(formulae)
            if d.full_name in self.state.outdated_names
        ]
        if self.dry_run:
            requested = {f.full_name for f in formulae}
            outdated = [d for d in outdated if d.full_name not in requested]

        safe = [d for d in outdated if self.bottle_safe(d)]
        skipped = [d for d in outdated if not self.bottle_safe(d)]
        pinned_names = self.state.pinned_names
        return Dependents(
            upgradeable=self.dependency_sorted(d for d in safe if d.full_name not in pinned_names),
            pinned=self.dependency_sorted(d for d in safe if d.full_name in pinned_names),
            skipped=skipped,
        )

    def upgrade_dependents(self, deps: Dependents | None, formulae: list[Formula]) -> None:
        """Upgrade outdated dependents, then reinstall any with broken linkage."""
        if deps is None:
            return

        self.report.enter(UpgradePhase.DEPENDENTS_UPGRADE)
        if deps.pinned:
            opoo(f"Not upgrading {len(deps.pinned)} pinned {pluralize('dependent', len(deps.pinned))}:")
            print(", ".join(f.describe_upgrade() for f in deps.pinned))
        if deps.skipped:
            opoo(
                "The following dependents of upgraded formulae are outdated but will not\n"
                "be upgraded because they are not bottled:\n  "
                + "\n  ".join(f.full_name for f in deps.skipped)
            )

        upgradeable = deps.upgradeable
        if not upgradeable:
            if not self.dry_run:
                ohai("No outdated dependents to upgrade!")
        else:
            upgraded = formulae if self.dry_run else self.state.installed_this_run
            verb = "Would upgrade" if self.dry_run else "Upgrading"
            ohai(
                f"{verb} {pluralize('dependent', len(upgradeable), include_count=True)} "
                f"of upgraded {pluralize('formula', len(upgraded), plural='e')}:"
            )
            self.disable_hint()
            print(", ".join(f.describe_upgrade() for f in upgradeable))

        upgradeable = [f for f in upgradeable if not self.state.already_attempted(f)]
        if upgradeable and not self.dry_run:
            install_formulae(
                self.order(upgradeable),
                self.actions,
                self.state,
                self.options,
                self.report,
                Action.UPGRADE,
            )

        self.reinstall_broken_dependents(formulae)

    def reinstall_broken_dependents(self, formulae: list[Formula]) -> None:
        """Find dependents with broken linkage and rebuild them from source."""
        self.report.enter(UpgradePhase.BROKEN_LINKAGE_SCAN)
        self.refresh()
        if self.dry_run:
            installed = [self.current(f) for f in formulae]
        else:
            oh1("Checking for dependents of upgraded formulae...")
            self.disable_hint()
            installed = [f for f in map(self.index.lookup, self.state.installed_this_run) if f]

        broken = self.check_broken_dependents(installed)
        if not broken:
            if self.dry_run:
                ohai("No currently broken dependents found!")
                opoo("If they are broken by the upgrade they will also be upgraded or reinstalled.")
            else:
                ohai("No broken dependents found!")
            return

        pinned_names = self.state.pinned_names
        outdated_names = self.state.outdated_names
        reinstallable = self.dependency_sorted(
            f for f in broken if f.full_name not in outdated_names and f.full_name not in pinned_names
        )
        outdated_pinned = self.dependency_sorted(
            f for f in broken if f.full_name in outdated_names and f.full_name in pinned_names
        )

        if outdated_pinned:
            count = len(outdated_pinned)
            onoe(
                f"Not reinstalling {count} broken and outdated, but pinned "
                f"{pluralize('dependent', count)}:\n"
                + ", ".join(f.describe_upgrade() for f in outdated_pinned)
            )

        if not reinstallable:
            ohai("No broken dependents to reinstall!")
            return
        ohai(
            f"Reinstalling {pluralize('dependent', len(reinstallable), include_count=True)} "
            "with broken linkage from source:"
        )
        self.disable_hint()
        print(", ".join(f.full_name for f in reinstallable))

        if self.dry_run:
            return
        self.report.enter(UpgradePhase.REINSTALL_PASS)
        for formula in reinstallable:
            install_formula(
                formula,
                self.actions,
                self.state,
                self.options.with_source_build(formula),
                self.report,
                Action.REINSTALL,
            )

    def select(self, names: Iterable[str] | None) -> list[Formula]:
        """Resolve requested names to the formulae that need upgrading.

        With no names, every outdated, unpinned installed formula is selected.
        """
        self.report.enter(UpgradePhase.REQUESTED)
        if names is None:
            upgradable = self.state.upgradable_names
            return [f for f in self.index.installed() if f.full_name in upgradable]

        selected: list[Formula] = []
        for name in names:
            formula = self.index.lookup(name)
            if formula is None or not formula.any_version_installed:
                reason = "not found" if formula is None else "not installed"
                onoe(f"{name} is {reason}")
                self.report.record(
                    InstallResult(name=name, status=InstallStatus.FAILED, reason=reason)
                )
            elif formula.full_name not in self.state.outdated_names:
                installed = " ".join(filter(None, [formula.full_name, formula.installed_version]))
                opoo(f"{installed} already installed")
                self.report.record(
                    InstallResult(
                        name=formula.full_name,
                        status=InstallStatus.SKIPPED,
                        reason="already up-to-date",
                    )
                )
            elif formula.full_name in self.state.pinned_names:
                opoo(f"{formula.full_name} is pinned. You must unpin it to upgrade it.")
                self.report.record(
                    InstallResult(name=formula.full_name, status=InstallStatus.SKIPPED, reason="pinned")
                )
            elif formula.full_name not in {f.full_name for f in selected}:
                selected.append(formula)
        return selected

    def run(self, names: Iterable[str] | None = None) -> BatchReport:
        """Upgrade the named formulae (or all outdated ones) and their dependents.

        Returns:
            The report for the whole run.

        Raises:
            CyclicDependencyError: If the formulae to upgrade, or their
                outdated dependents, depend on each other in a loop.
        """
        selected = self.select(list(names) if names is not None else None)
        if not selected:
            ohai("No formulae to upgrade.")
        else:
            verb = "Would upgrade" if self.dry_run else "Upgrading"
            step(f"{verb} {pluralize('outdated formula', len(selected), plural='e', include_count=True)}")
            print("\n".join(f.describe_upgrade() for f in selected))
            self.upgrade_formulae(selected)

        if self.dry_run:
            upgraded = selected
        else:
            upgraded = [f for f in selected if f.full_name in self.state.installed_this_run]
        if upgraded:
            self.refresh()
            upgraded = [self.current(f) for f in upgraded]
            self.upgrade_dependents(self.dependents(upgraded), upgraded)

        self.report.enter(UpgradePhase.DONE)
        print_summary(self.report)
        return self.report


def upgrade(
    names: Iterable[str] | None,
    index: FormulaIndex,
    actions: FormulaActions,
    **kwargs,
) -> BatchReport:
    """Run one batch upgrade; keyword arguments go to :class:`Upgrader`."""
    return Upgrader(index, actions, **kwargs).run(names)


def print_summary(report: BatchReport) -> None:
    """Print which formulae succeeded and which failed, and why."""
    if report.installed:
        count = len(report.installed)
        ohai(f"{pluralize('formula', count, plural='e', include_count=True)} done: {', '.join(report.installed)}")
    for name, reason in report.failures.items():
        onoe(f"{name}: {reason}")
