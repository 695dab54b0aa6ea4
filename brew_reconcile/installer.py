"""Per-formula install step and the batch install loop.

Formulae are installed strictly one at a time, in the order given (callers
sort them first), because a later formula's build or link step may need an
earlier dependency on disk. A failure affects only the formula it belongs
to; the loop reports it and carries on with the rest of the batch.
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from enum import Enum
from typing import Protocol

from pydantic import BaseModel, Field

from .config import EnvConfig
from .errors import (
    BuildError,
    CannotInstallFormulaError,
    ChecksumMismatchError,
    DownloadError,
    FormulaError,
    UnsatisfiedRequirements,
)
from .graph import sort_formulae
from .index import FormulaIndex
from .models import BatchReport, Formula, InstallResult, InstallStatus
from .shell import oh1, ohai, onoe, opoo, pluralize
from .state import InstallationState

# Errors that exclude a formula from the batch
RECOVERABLE_ERRORS = (
    CannotInstallFormulaError,
    UnsatisfiedRequirements,
    DownloadError,
    ChecksumMismatchError,
)


class InstallOptions(BaseModel):
    """Options passed through to every install, upgrade or reinstall."""

    force: bool = False
    force_bottle: bool = False
    build_from_source: list[str] = Field(default_factory=list)
    dry_run: bool = False
    verbose: bool = False
    quiet: bool = False
    debug: bool = False
    keep_tmp: bool = False

    def with_source_build(self, formula: Formula) -> InstallOptions:
        """Copy of these options that also builds ``formula`` from source."""
        names = [*self.build_from_source, formula.full_name]
        return self.model_copy(update={"build_from_source": list(dict.fromkeys(names))})

    def flags(self, formula: Formula) -> list[str]:
        """brew command-line flags for this formula."""
        flags: list[str] = []
        if formula.full_name in self.build_from_source or formula.name in self.build_from_source:
            flags.append("--build-from-source")
        elif self.force_bottle:
            flags.append("--force-bottle")
        for name in ("force", "verbose", "quiet", "debug", "keep_tmp"):
            if getattr(self, name):
                flags.append("--" + name.replace("_", "-"))
        return flags


class FormulaActions(Protocol):
    """External operations on formulae.

    ``fetch``, ``install``, ``upgrade`` and ``reinstall`` raise a
    :class:`~brew_reconcile.errors.FormulaError` subclass on failure.
    """

    def fetch(self, formula: Formula, options: InstallOptions) -> None: ...

    def install(self, formula: Formula, options: InstallOptions) -> None: ...

    def upgrade(self, formula: Formula, options: InstallOptions) -> None: ...

    def reinstall(self, formula: Formula, options: InstallOptions) -> None: ...

    def bottled(self, formula: Formula) -> bool: ...

    def broken_linkage(self, formula: Formula) -> bool: ...


class Action(str, Enum):
    INSTALL = "install"
    UPGRADE = "upgrade"
    REINSTALL = "reinstall"
    SKIP = "skip"


def install_decision(
    formula: Formula,
    state: InstallationState,
    config: EnvConfig,
    *,
    force: bool = False,
    quiet: bool = False,
) -> Action:
    """Decide what to do with a formula requested for install.

    Already-installed formulae are upgraded if outdated and allowed to be,
    otherwise skipped with a message explaining how to proceed. Installed,
    outdated and pinned are read from ``state``.
    """
    name = formula.full_name
    if not state.is_installed(name):
        return Action.INSTALL

    installed = formula.installed_version or "?"
    message = f"{name} {installed} is already installed"
    if state.contains(name, state.outdated_names):
        if not state.installed_and_up_to_date(name, no_upgrade=config.no_install_upgrade):
            print(f"{message} but outdated (so it will be upgraded).")
            return Action.UPGRADE
        pinned = state.contains(name, state.pinned_names)
        unpin = f"brew unpin {name} && " if pinned else ""
        onoe(
            f"{message}\n"
            f"To upgrade to {formula.version}, run:\n"
            f"  {unpin}brew upgrade {formula.full_name}"
        )
        return Action.SKIP
    if force:
        return Action.REINSTALL
    if not formula.linked and not formula.keg_only:
        opoo(
            f"{message}, it's just not linked.\n"
            "To link this version, run:\n"
            f"  brew link {formula.full_name}"
        )
    elif not quiet:
        opoo(
            f"{message} and up-to-date.\n"
            f"To reinstall {installed}, run:\n"
            f"  brew reinstall {formula.name}"
        )
    return Action.SKIP


def install_formula(
    formula: Formula,
    actions: FormulaActions,
    state: InstallationState,
    options: InstallOptions,
    report: BatchReport,
    action: Action = Action.INSTALL,
) -> InstallResult:
    """Install, upgrade or reinstall a single formula.

    A formula already attempted earlier in this run (e.g. as part of another
    formula's dependency tree) is skipped without reporting an error.

    Returns:
        The recorded result.
    """
    if not state.mark_attempted(formula):
        return report.record(
            InstallResult(
                name=formula.full_name,
                status=InstallStatus.SKIPPED,
                reason="already attempted",
            )
        )

    if action is Action.UPGRADE:
        oh1(f"Upgrading {formula.full_name}")
        print(f"  {formula.version_change()} {' '.join(options.flags(formula))}".rstrip())
        run = actions.upgrade
    elif action is Action.REINSTALL:
        oh1(f"Reinstalling {formula.full_name} {' '.join(options.flags(formula))}".rstrip())
        run = actions.reinstall
    else:
        oh1(f"Installing {formula.full_name} {' '.join(options.flags(formula))}".rstrip())
        run = actions.install

    try:
        run(formula, options)
    except BuildError as exc:
        print(exc.dump(verbose=options.verbose))
        print()
        report.build_failed = True
        return report.record(_failure(formula, exc))
    except RECOVERABLE_ERRORS as exc:
        onoe(exc.report())
        return report.record(_failure(formula, exc))

    state.record_installed(formula)
    return report.record(InstallResult(name=formula.full_name, status=InstallStatus.INSTALLED))


def _failure(formula: Formula, exc: FormulaError) -> InstallResult:
    return InstallResult(
        name=formula.full_name,
        status=InstallStatus.FAILED,
        reason=str(exc),
        error=type(exc).__name__,
    )


def install_formulae(
    formulae: Iterable[Formula],
    actions: FormulaActions,
    state: InstallationState,
    options: InstallOptions,
    report: BatchReport,
    action: Action = Action.INSTALL,
    plan: Mapping[str, Action] | None = None,
) -> list[InstallResult]:
    """Fetch, then install formulae in the given order.

    Formulae whose fetch fails are reported and excluded; the rest proceed.
    In dry-run mode nothing is fetched or installed. ``plan`` overrides
    ``action`` per full name.

    Returns:
        Results for this batch, in processing order.
    """
    formulae = list(formulae)
    if not formulae:
        return []

    if options.dry_run:
        verb = "Would upgrade" if action is Action.UPGRADE else "Would install"
        ohai(f"{verb} {pluralize('formula', len(formulae), plural='e', include_count=True)}:")
        print(" ".join(f.full_name for f in formulae))
        return []

    results: list[InstallResult] = []
    fetched: list[Formula] = []
    for formula in formulae:
        try:
            actions.fetch(formula, options)
        except RECOVERABLE_ERRORS as exc:
            onoe(exc.report())
            results.append(report.record(_failure(formula, exc)))
            continue
        fetched.append(formula)

    for formula in fetched:
        step = (plan or {}).get(formula.full_name, action)
        results.append(install_formula(formula, actions, state, options, report, step))
    return results


def install(
    names: Iterable[str],
    index: FormulaIndex,
    actions: FormulaActions,
    *,
    state: InstallationState | None = None,
    config: EnvConfig | None = None,
    options: InstallOptions | None = None,
) -> BatchReport:
    """Install the named formulae, upgrading outdated ones where allowed.

    Formulae are processed in dependency order. Each is installed, upgraded,
    reinstalled or skipped as decided by :func:`install_decision`.

    Raises:
        CyclicDependencyError: If the requested formulae form a dependency loop.
    """
    state = state or InstallationState(index)
    config = config or EnvConfig()
    options = options or InstallOptions()
    report = BatchReport()

    requested: list[Formula] = []
    for name in names:
        formula = index.lookup(name)
        if formula is None:
            onoe(f"No available formula with the name \"{name}\".")
            report.record(
                InstallResult(name=name, status=InstallStatus.FAILED, reason="not found")
            )
            continue
        requested.append(formula)

    decisions: dict[str, Action] = {}
    ordered: list[Formula] = []
    for formula in sort_formulae(requested, index):
        decision = install_decision(
            formula, state, config, force=options.force, quiet=options.quiet
        )
        if decision is Action.SKIP:
            report.record(
                InstallResult(
                    name=formula.full_name,
                    status=InstallStatus.SKIPPED,
                    reason="already installed",
                )
            )
            continue
        decisions[formula.full_name] = decision
        ordered.append(formula)

    install_formulae(ordered, actions, state, options, report, plan=decisions)
    return report
