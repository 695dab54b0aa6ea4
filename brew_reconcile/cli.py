"""CLI entry point for brew-reconcile."""

from __future__ import annotations

from collections.abc import Callable
from functools import partial
from pathlib import Path

import click

from .actions import BrewActions, load_brew_index
from .config import EnvConfig
from .errors import BrewReconcileError
from .graph import sort_formulae
from .index import FormulaIndex, dump_index, load_index
from .installer import InstallOptions, install
from .models import BatchReport
from .shell import pluralize
from .upgrade import Upgrader, upgrade

index_option = click.option(
    "--index",
    "index_path",
    type=click.Path(exists=True, dir_okay=False, path_type=Path),
    envvar="BREW_RECONCILE_INDEX",
    default=None,
    help="TOML formula snapshot to use instead of asking brew.",
)


def _load(
    index_path: Path | None, config: EnvConfig, names: tuple[str, ...] = ()
) -> tuple[FormulaIndex, Callable[[], FormulaIndex] | None]:
    """Load the index and a way to re-read it between passes.

    A TOML snapshot is static, so there is nothing to re-read.
    """
    try:
        if index_path is not None:
            return load_index(index_path), None
        return load_brew_index(config, names), partial(load_brew_index, config, names)
    except BrewReconcileError as exc:
        raise click.ClickException(str(exc)) from exc


def _exit_for(report: BatchReport) -> None:
    if report.failed:
        raise SystemExit(1)


@click.group()
@click.version_option(package_name="brew-reconcile")
def cli() -> None:
    """Order, upgrade and reconcile Homebrew formulae and their dependents."""


@cli.command()
@index_option
@click.argument("names", nargs=-1)
def order(index_path: Path | None, names: tuple[str, ...]) -> None:
    """Print formulae in install order (all installed if none given)."""
    config = EnvConfig.from_env()
    index, _ = _load(index_path, config, names)
    try:
        formulae = [index[name] for name in names] if names else index.installed()
        for formula in sort_formulae(formulae, index):
            click.echo(formula.full_name)
    except BrewReconcileError as exc:
        raise click.ClickException(str(exc)) from exc


@cli.command()
@index_option
@click.argument("names", nargs=-1, required=True)
def dependents(index_path: Path | None, names: tuple[str, ...]) -> None:
    """Show which outdated dependents of NAMES would be upgraded."""
    config = EnvConfig.from_env()
    index, _ = _load(index_path, config, names)
    try:
        formulae = [index[name] for name in names]
        deps = Upgrader(index, BrewActions(config), config=config).dependents(formulae)
    except BrewReconcileError as exc:
        raise click.ClickException(str(exc)) from exc
    if deps is None:
        return
    if deps.empty():
        click.echo("No outdated dependents to upgrade!")
        return
    for label, group in (
        ("upgradeable", deps.upgradeable),
        ("pinned", deps.pinned),
        ("skipped", deps.skipped),
    ):
        click.echo(f"{label}: {', '.join(f.full_name for f in group) or '-'}")


def _install_options(
    names: tuple[str, ...],
    *,
    build_from_source: bool,
    **flags: bool,
) -> InstallOptions:
    return InstallOptions(build_from_source=list(names) if build_from_source else [], **flags)


def install_flags(command: Callable) -> Callable:
    for option in reversed(
        [
            click.option("-n", "--dry-run", is_flag=True, help="Show what would be done."),
            click.option("-f", "--force", is_flag=True, help="Install even if already installed."),
            click.option("-s", "--build-from-source", is_flag=True, help="Build NAMES from source."),
            click.option("--force-bottle", is_flag=True, help="Pour bottles even if unsupported."),
            click.option("-v", "--verbose", is_flag=True, help="Show build output."),
            click.option("-q", "--quiet", is_flag=True, help="Print fewer warnings."),
        ]
    ):
        command = option(command)
    return command


@cli.command("install")
@index_option
@install_flags
@click.argument("names", nargs=-1, required=True)
def install_cmd(index_path: Path | None, names: tuple[str, ...], **flags: bool) -> None:
    """Install NAMES in dependency order, upgrading outdated ones."""
    config = EnvConfig.from_env()
    index, _ = _load(index_path, config, names)
    options = _install_options(names, **flags)
    try:
        report = install(names, index, BrewActions(config), config=config, options=options)
    except BrewReconcileError as exc:
        raise click.ClickException(str(exc)) from exc
    _exit_for(report)


@cli.command("upgrade")
@index_option
@install_flags
@click.argument("names", nargs=-1)
def upgrade_cmd(index_path: Path | None, names: tuple[str, ...], **flags: bool) -> None:
    """Upgrade NAMES (or all outdated formulae) and their dependents."""
    config = EnvConfig.from_env()
    index, reload = _load(index_path, config, names)
    options = _install_options(names, **flags)
    try:
        report = upgrade(
            names or None,
            index,
            BrewActions(config),
            config=config,
            options=options,
            reload=reload,
        )
    except BrewReconcileError as exc:
        raise click.ClickException(str(exc)) from exc
    _exit_for(report)


@cli.command()
@click.argument("output", type=click.Path(dir_okay=False, path_type=Path))
@click.argument("names", nargs=-1)
def snapshot(output: Path, names: tuple[str, ...]) -> None:
    """Write what brew reports (installed formulae plus NAMES) to OUTPUT.

    The file can be passed back with --index. An existing file is updated
    in place, keeping its comments.
    """
    config = EnvConfig.from_env()
    index, _ = _load(None, config, names)
    try:
        dump_index(index, output)
    except BrewReconcileError as exc:
        raise click.ClickException(str(exc)) from exc
    click.echo(f"Wrote {pluralize('formula', len(index), plural='e', include_count=True)} to {output}")


if __name__ == "__main__":
    cli()
