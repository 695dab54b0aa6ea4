"""Tests for brew_reconcile.config."""

from __future__ import annotations

import pytest

from brew_reconcile.config import EnvConfig


class TestFromEnv:
    def test_defaults(self) -> None:
        config = EnvConfig.from_env({})
        assert config == EnvConfig()
        assert config.brew_file == "brew"

    def test_reads_switches(self) -> None:
        config = EnvConfig.from_env(
            {
                "HOMEBREW_NO_INSTALLED_DEPENDENTS_CHECK": "1",
                "HOMEBREW_NO_INSTALL_UPGRADE": "true",
                "HOMEBREW_BREW_FILE": "/opt/homebrew/bin/brew",
            }
        )
        assert config.no_installed_dependents_check
        assert config.no_install_upgrade
        assert not config.no_env_hints
        assert config.brew_file == "/opt/homebrew/bin/brew"

    @pytest.mark.parametrize("value", ["", "0", "false", "No", " off ", "nil"])
    def test_falsy_values(self, value: str) -> None:
        assert not EnvConfig.from_env({"HOMEBREW_NO_ENV_HINTS": value}).no_env_hints

    def test_reads_process_environment(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOMEBREW_NO_INSTALL_UPGRADE", "1")
        assert EnvConfig.from_env().no_install_upgrade
