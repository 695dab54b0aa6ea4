"""Configuration read from HOMEBREW_* environment variables."""

from __future__ import annotations

import os
from collections.abc import Mapping

from pydantic import BaseModel

# Values Homebrew treats as "unset" for boolean variables
FALSY_VALUES = {"", "0", "false", "no", "off", "nil"}

BOOLEAN_VARIABLES = {
    "no_installed_dependents_check": "HOMEBREW_NO_INSTALLED_DEPENDENTS_CHECK",
    "no_env_hints": "HOMEBREW_NO_ENV_HINTS",
    "no_install_upgrade": "HOMEBREW_NO_INSTALL_UPGRADE",
}


class EnvConfig(BaseModel):
    """Runtime switches.

    Attributes:
        no_installed_dependents_check: Skip the dependents and broken
            linkage passes after an upgrade.
        no_env_hints: Don't print hints about these variables.
        no_install_upgrade: Don't upgrade already-installed, outdated
            formulae when they are requested for install.
        brew_file: The brew executable to shell out to.
    """

    no_installed_dependents_check: bool = False
    no_env_hints: bool = False
    no_install_upgrade: bool = False
    brew_file: str = "brew"

    @classmethod
    def from_env(cls, environ: Mapping[str, str] | None = None) -> EnvConfig:
        env = os.environ if environ is None else environ
        values: dict[str, object] = {
            field: env.get(var, "").strip().lower() not in FALSY_VALUES
            for field, var in BOOLEAN_VARIABLES.items()
        }
        if env.get("HOMEBREW_BREW_FILE"):
            values["brew_file"] = env["HOMEBREW_BREW_FILE"]
        return cls.model_validate(values)
