"""Tests for brew_reconcile.upgrade."""

from __future__ import annotations

from typing import Any

import pytest

from brew_reconcile.config import EnvConfig
from brew_reconcile.errors import CannotInstallFormulaError, CyclicDependencyError
from brew_reconcile.index import FormulaIndex
from brew_reconcile.installer import InstallOptions
from brew_reconcile.models import Dependents, InstallStatus, UpgradePhase
from brew_reconcile.upgrade import Upgrader, upgrade


class TestDependencySorted:
    def test_dependency_first(self, make_index, make_actions) -> None:
        index = make_index({"zlib": {}, "app": {"dependencies": ["zlib"]}})
        upgrader = Upgrader(index, make_actions(index))
        ordered = upgrader.dependency_sorted([index["app"], index["zlib"]])
        assert [f.full_name for f in ordered] == ["zlib", "app"]

    def test_tap_dependency_by_short_name(self, make_index, make_actions) -> None:
        index = make_index({"user/repo/lib": {}, "app": {"dependencies": ["lib"]}})
        upgrader = Upgrader(index, make_actions(index))
        ordered = upgrader.dependency_sorted([index["app"], index["user/repo/lib"]])
        assert [f.full_name for f in ordered] == ["user/repo/lib", "app"]

    def test_indirect_dependency_first(self, make_index, make_actions, current) -> None:
        index = make_index(
            {
                "p": current,
                "a": {**current, "dependencies": ["p", "c"]},
                "b": {**current, "dependencies": ["p"]},
                "c": {**current, "dependencies": ["p"]},
            }
        )
        upgrader = Upgrader(index, make_actions(index))
        ordered = upgrader.dependency_sorted([index["a"], index["b"], index["c"]])
        assert [f.full_name for f in ordered] == ["c", "a", "b"]


@pytest.fixture
def chain(make_index, outdated) -> FormulaIndex:
    """p is outdated, q depends on p and is outdated too."""
    return make_index({"p": outdated, "q": {**outdated, "dependencies": ["p"]}})


class TestRun:
    def test_dependent_upgraded_in_second_pass(self, chain: FormulaIndex, make_actions) -> None:
        actions = make_actions(chain)

        report = upgrade(["p"], chain, actions)

        assert actions.names("upgrade") == ["p", "q"]
        assert report.installed == ["p", "q"]
        assert not report.failed
        assert report.phases == [
            UpgradePhase.REQUESTED,
            UpgradePhase.INSTALLING,
            UpgradePhase.DEPENDENTS_SCAN,
            UpgradePhase.DEPENDENTS_UPGRADE,
            UpgradePhase.BROKEN_LINKAGE_SCAN,
            UpgradePhase.DONE,
        ]

    def test_all_outdated_in_dependency_order(self, make_index, make_actions, outdated) -> None:
        index = make_index(
            {
                "app": {**outdated, "dependencies": ["zlib"]},
                "zlib": outdated,
                "held": {**outdated, "pinned": True},
            }
        )
        actions = make_actions(index)

        upgrade(None, index, actions)

        assert actions.names("upgrade") == ["zlib", "app"]

    def test_keg_only_upgraded_first(self, make_index, make_actions, outdated) -> None:
        index = make_index({"a": outdated, "b": {**outdated, "keg_only": True}})
        actions = make_actions(index)
        upgrade(None, index, actions)
        assert actions.names("upgrade") == ["b", "a"]

    def test_one_failure_does_not_stop_batch(self, make_index, make_actions, outdated) -> None:
        index = make_index({"a": outdated, "b": outdated, "c": outdated})
        actions = make_actions(index, fail={"b": CannotInstallFormulaError("b", "b: nope")})

        report = upgrade(["a", "b", "c"], index, actions)

        assert actions.names("upgrade") == ["a", "b", "c"]
        assert report.failures == {"b": "b: nope"}
        assert report.installed == ["a", "c"]

    def test_select_reports_unusable_names(self, make_index, make_actions, outdated, current, capsys) -> None:
        index = make_index(
            {
                "held": {**outdated, "pinned": True},
                "fresh": current,
                "absent": {"version": "1.0"},
            }
        )
        actions = make_actions(index)

        report = upgrade(["held", "fresh", "absent", "nope"], index, actions)

        assert actions.calls == []
        assert {r.name: r.reason for r in report.results} == {
            "held": "pinned",
            "fresh": "already up-to-date",
            "absent": "not installed",
            "nope": "not found",
        }
        err = capsys.readouterr().err
        assert "held is pinned. You must unpin it to upgrade it." in err
        assert "fresh 2.0 already installed" in err

    def test_dry_run_changes_nothing(self, chain: FormulaIndex, make_actions, capsys) -> None:
        actions = make_actions(chain)

        report = upgrade(["p"], chain, actions, options=InstallOptions(dry_run=True))

        assert actions.names("upgrade") == []
        assert chain["p"].outdated
        out = capsys.readouterr().out
        assert "Would upgrade 1 outdated formula" in out
        assert "Would upgrade 1 dependent of upgraded formula:" in out
        assert "q 1.0 -> 2.0" in out
        assert not report.failed

    def test_cycle_halts_batch(self, make_index, make_actions, outdated) -> None:
        index = make_index(
            {"x": {**outdated, "dependencies": ["y"]}, "y": {**outdated, "dependencies": ["x"]}}
        )
        actions = make_actions(index)

        with pytest.raises(CyclicDependencyError) as exc_info:
            upgrade(["x", "y"], index, actions)

        assert set(exc_info.value.cycle) == {"x", "y"}
        assert "brew uninstall --ignore-dependencies --force" in str(exc_info.value)
        assert actions.names("upgrade") == []
        assert index["x"].outdated

    def test_cycle_among_dependents_halts_batch(self, make_index, make_actions, outdated) -> None:
        index = make_index(
            {
                "p": outdated,
                "x": {**outdated, "dependencies": ["p", "y"]},
                "y": {**outdated, "dependencies": ["p", "x"]},
            }
        )
        actions = make_actions(index)

        with pytest.raises(CyclicDependencyError):
            upgrade(["p"], index, actions)

        assert actions.names("upgrade") == ["p"]

    def test_reload_called_at_phase_boundaries(self, chain: FormulaIndex, make_actions) -> None:
        calls: list[int] = []

        def reload() -> FormulaIndex:
            calls.append(1)
            return chain

        Upgrader(chain, make_actions(chain), reload=reload).run(["p"])

        assert len(calls) == 2

    def test_upgraded_formula_not_rescanned_as_dependent(
        self, make_index, make_actions, outdated, capsys
    ) -> None:
        index = make_index(
            {"a": outdated, "b": {**outdated, "bottled": False, "dependencies": ["a"]}}
        )
        actions = make_actions(index, mutate=False)

        report = upgrade(["a", "b"], index, actions)

        assert actions.names("upgrade") == ["a", "b"]
        assert report.installed == ["a", "b"]
        captured = capsys.readouterr()
        assert "not bottled" not in captured.err
        assert "No outdated dependents to upgrade!" in captured.out

    def test_failed_formula_not_retried_as_dependent(self, chain: FormulaIndex, make_actions) -> None:
        actions = make_actions(chain, fail={"q": CannotInstallFormulaError("q", "q: broken tap")})

        report = upgrade(["p", "q"], chain, actions)

        assert actions.names("fetch") == ["p", "q"]
        assert actions.names("upgrade") == ["p", "q"]
        assert report.skipped == []
        assert report.failures == {"q": "q: broken tap"}


class TestDependents:
    @pytest.fixture
    def index(self, make_index, outdated, current) -> FormulaIndex:
        fields: dict[str, dict[str, Any]] = {
            "p": current,
            "up": {**outdated, "dependencies": ["p"]},
            "held": {**outdated, "pinned": True, "dependencies": ["p"]},
            "source": {**outdated, "bottled": False, "dependencies": ["p"]},
            "fine": {**current, "dependencies": ["p"]},
            "stranger": outdated,
        }
        return make_index(fields)

    def test_partitions(self, index: FormulaIndex, make_actions) -> None:
        deps = Upgrader(index, make_actions(index)).dependents([index["p"]])

        assert deps is not None
        assert [f.full_name for f in deps.upgradeable] == ["up"]
        assert [f.full_name for f in deps.pinned] == ["held"]
        assert [f.full_name for f in deps.skipped] == ["source"]

    def test_unbottled_dependency_skips_dependent(self, make_index, make_actions, outdated, current) -> None:
        index = make_index(
            {
                "p": current,
                "lib": {**current, "bottled": False},
                "app": {**outdated, "dependencies": ["p", "lib"]},
            }
        )
        deps = Upgrader(index, make_actions(index)).dependents([index["p"]])
        assert deps is not None
        assert [f.full_name for f in deps.skipped] == ["app"]
        assert deps.upgradeable == []

    def test_upgradeable_in_dependency_order(self, make_index, make_actions, outdated, current) -> None:
        index = make_index(
            {
                "p": current,
                "a": {**outdated, "dependencies": ["p", "b"]},
                "b": {**outdated, "dependencies": ["p"]},
            }
        )
        deps = Upgrader(index, make_actions(index)).dependents([index["p"]])
        assert deps is not None
        assert [f.full_name for f in deps.upgradeable] == ["b", "a"]

    def test_disabled_check(self, index: FormulaIndex, make_actions, capsys) -> None:
        config = EnvConfig(no_installed_dependents_check=True)
        assert Upgrader(index, make_actions(index), config=config).dependents([index["p"]]) is None
        assert "HOMEBREW_NO_INSTALLED_DEPENDENTS_CHECK is set" in capsys.readouterr().err

    def test_versioned_core_formula_ignored(self, make_index, make_actions, current, outdated) -> None:
        index = make_index(
            {
                "python@3.12": current,
                "tool": {**outdated, "dependencies": ["python@3.12"]},
            }
        )
        deps = Upgrader(index, make_actions(index)).dependents([index["python@3.12"]])
        assert deps is None

    def test_no_outdated_dependents(self, make_index, make_actions, current, capsys) -> None:
        index = make_index({"p": current, "fine": {**current, "dependencies": ["p"]}})
        upgrader = Upgrader(index, make_actions(index))

        deps = upgrader.dependents([index["p"]])
        assert deps == Dependents()

        upgrader.upgrade_dependents(deps, [index["p"]])
        out = capsys.readouterr().out
        assert "No outdated dependents to upgrade!" in out
        assert "No broken dependents found!" in out

    def test_pinned_dependents_reported(self, index: FormulaIndex, make_actions, capsys) -> None:
        upgrader = Upgrader(index, make_actions(index))
        upgrader.upgrade_dependents(upgrader.dependents([index["p"]]), [index["p"]])
        captured = capsys.readouterr()
        assert "Not upgrading 1 pinned dependent:" in captured.err
        assert "held 1.0 -> 2.0" in captured.out
        assert "because they are not bottled:\n  source" in captured.err


class TestBrokenLinkage:
    def test_broken_dependent_reinstalled_from_source(self, make_index, make_actions, outdated, current) -> None:
        index = make_index({"p": outdated, "q": {**current, "dependencies": ["p"]}})
        actions = make_actions(index, broken={"q"})

        report = upgrade(["p"], index, actions)

        assert actions.names("upgrade") == ["p"]
        assert actions.names("reinstall") == ["q"]
        assert actions.options["q"].build_from_source == ["q"]
        assert UpgradePhase.REINSTALL_PASS in report.phases
        assert report.installed == ["p", "q"]

    def test_broken_dependents_reinstalled_after_their_dependencies(
        self, make_index, make_actions, outdated, current
    ) -> None:
        index = make_index(
            {
                "p": outdated,
                "a": {**current, "dependencies": ["p", "c"]},
                "b": {**current, "dependencies": ["p"]},
                "c": {**current, "dependencies": ["p"]},
            }
        )
        actions = make_actions(index, broken={"a", "b", "c"})

        upgrade(["p"], index, actions)

        assert actions.names("reinstall") == ["c", "a", "b"]

    def test_broken_pinned_outdated_not_reinstalled(self, make_index, make_actions, outdated, capsys) -> None:
        index = make_index(
            {
                "p": outdated,
                "q": {**outdated, "pinned": True, "dependencies": ["p"]},
            }
        )
        actions = make_actions(index, broken={"q"})

        upgrade(["p"], index, actions)

        assert actions.names("reinstall") == []
        err = capsys.readouterr().err
        assert "Not reinstalling 1 broken and outdated, but pinned dependent:" in err

    def test_hint_printed_once(self, make_index, make_actions, outdated, current, capsys) -> None:
        index = make_index(
            {
                "p": outdated,
                "q": {**outdated, "dependencies": ["p"]},
                "r": {**current, "dependencies": ["p"]},
            }
        )
        upgrade(["p"], index, make_actions(index, broken={"r"}))
        out = capsys.readouterr().out
        assert out.count("Disable this behaviour by setting") == 1

    def test_hints_hidden(self, chain: FormulaIndex, make_actions, capsys) -> None:
        upgrade(["p"], chain, make_actions(chain), config=EnvConfig(no_env_hints=True))
        assert "HOMEBREW_NO_ENV_HINTS" not in capsys.readouterr().out


class TestSummary:
    def test_failures_listed(self, make_index, make_actions, outdated, capsys) -> None:
        index = make_index({"a": outdated})
        report = upgrade(
            ["a"],
            index,
            make_actions(index, fail={"a": CannotInstallFormulaError("a", "a: broken tap")}),
        )
        assert report.results[-1].status is InstallStatus.FAILED
        assert capsys.readouterr().err.count("a: broken tap") == 2
