"""Data models for brew-reconcile.

These Pydantic models represent the formula records read from the index
and the results produced by the install and upgrade passes.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .versions import is_outdated


class Formula(BaseModel):
    """A single installable formula, as recorded in the index.

    Attributes:
        full_name: Canonical name, namespaced for tap formulae
                   (e.g. "user/repo/name"); core formulae have no "/".
        name: Short name; the last "/"-separated segment of full_name.
        aliases: Other names the formula can be requested by.
        oldnames: Names the formula was previously known as.
        dependencies: Declared runtime dependency names, in declaration order.
        build_dependencies: Names only needed while building from source.
        runtime_dependencies: Full names recorded in the installed keg's tab.
                              Empty if the formula is not installed.
        version: Latest available package version ("1.2.3_1").
        installed_version: Version of the installed keg, if any.
        bottled: A prebuilt bottle exists for the current platform.
    """

    model_config = ConfigDict(extra="forbid")

    full_name: str
    name: str = ""
    aliases: list[str] = Field(default_factory=list)
    oldnames: list[str] = Field(default_factory=list)
    dependencies: list[str] = Field(default_factory=list)
    build_dependencies: list[str] = Field(default_factory=list)
    runtime_dependencies: list[str] = Field(default_factory=list)
    version: str | None = None
    installed_version: str | None = None
    any_version_installed: bool = False
    pinned: bool = False
    outdated: bool = False
    keg_only: bool = False
    linked: bool = False
    bottled: bool = False
    installed_as_dependency: bool = False
    installed_on_request: bool = False

    @model_validator(mode="before")
    @classmethod
    def _derive_install_flags(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        data = dict(data)
        installed = data.get("installed_version")
        if installed and "any_version_installed" not in data:
            data["any_version_installed"] = True
        latest = data.get("version")
        if "outdated" not in data and installed and latest:
            data["outdated"] = is_outdated(str(installed), str(latest))
        return data

    @field_validator("full_name")
    @classmethod
    def _check_full_name(cls, value: str) -> str:
        value = value.strip()
        if not value or any(not part for part in value.split("/")):
            raise ValueError(f"invalid formula name: {value!r}")
        return value

    @field_validator(
        "aliases", "oldnames", "dependencies", "build_dependencies", "runtime_dependencies"
    )
    @classmethod
    def _dedupe(cls, value: list[str]) -> list[str]:
        # Keep first occurrence so declaration order survives
        return list(dict.fromkeys(value))

    @model_validator(mode="after")
    def _default_name(self) -> Formula:
        if not self.name:
            self.name = self.full_name.rsplit("/", 1)[-1]
        return self

    @property
    def tap(self) -> str | None:
        """Namespace of a tap formula ("user/repo"), None for core formulae."""
        if "/" not in self.full_name:
            return None
        return self.full_name.rpartition("/")[0]

    @property
    def core(self) -> bool:
        return "/" not in self.full_name

    @property
    def versioned(self) -> bool:
        """Versioned formulae such as "python@3.12"."""
        return "@" in self.name

    @property
    def installed_dependencies(self) -> list[str]:
        """Runtime dependencies of the installed keg, falling back to declared ones."""
        return self.runtime_dependencies or self.dependencies

    def version_change(self) -> str:
        """Format "old -> new" for a linked formula, "-> new" otherwise."""
        new = self.version or "?"
        if self.linked and self.installed_version:
            return f"{self.installed_version} -> {new}"
        return f"-> {new}"

    def describe_upgrade(self) -> str:
        """Format "name old -> new" for a linked formula, or "name new"."""
        if self.linked and self.installed_version:
            return f"{self.full_name} {self.version_change()}"
        return f"{self.full_name} {self.version or ''}".rstrip()


class InstallStatus(str, Enum):
    INSTALLED = "installed"
    SKIPPED = "skipped"
    FAILED = "failed"


class InstallResult(BaseModel):
    """Outcome of a single install, upgrade or reinstall attempt.

    Attributes:
        name: Full name of the formula.
        status: What happened.
        reason: Human-readable explanation for skipped or failed formulae.
        error: Name of the error kind for failures (e.g. "BuildError").
    """

    name: str
    status: InstallStatus
    reason: str = ""
    error: str = ""


class UpgradePhase(str, Enum):
    REQUESTED = "requested"
    INSTALLING = "installing"
    DEPENDENTS_SCAN = "dependents-scan"
    DEPENDENTS_UPGRADE = "dependents-upgrade"
    BROKEN_LINKAGE_SCAN = "broken-linkage-scan"
    REINSTALL_PASS = "reinstall-pass"
    DONE = "done"


class Dependents(BaseModel):
    """Outdated dependents of a set of upgraded formulae, partitioned.

    Attributes:
        upgradeable: Unpinned and safely bottle-upgradeable.
        pinned: Pinned; reported but never upgraded automatically.
        skipped: Missing a bottle for itself or a dependency; upgrading
                 would force a source build, so they are left alone.
    """

    upgradeable: list[Formula] = Field(default_factory=list)
    pinned: list[Formula] = Field(default_factory=list)
    skipped: list[Formula] = Field(default_factory=list)

    def empty(self) -> bool:
        return not (self.upgradeable or self.pinned or self.skipped)


class BatchReport(BaseModel):
    """Accumulated results of a batch install or upgrade run."""

    results: list[InstallResult] = Field(default_factory=list)
    phases: list[UpgradePhase] = Field(default_factory=list)
    build_failed: bool = False

    def record(self, result: InstallResult) -> InstallResult:
        self.results.append(result)
        return result

    def enter(self, phase: UpgradePhase) -> None:
        self.phases.append(phase)

    def names(self, status: InstallStatus) -> list[str]:
        return [r.name for r in self.results if r.status is status]

    @property
    def installed(self) -> list[str]:
        return self.names(InstallStatus.INSTALLED)

    @property
    def skipped(self) -> list[str]:
        return self.names(InstallStatus.SKIPPED)

    @property
    def failures(self) -> dict[str, str]:
        return {
            r.name: r.reason for r in self.results if r.status is InstallStatus.FAILED
        }

    @property
    def failed(self) -> bool:
        """True if the run should exit non-zero."""
        return self.build_failed or bool(self.failures)
