"""Error types raised while ordering, installing and upgrading formulae.

Per-formula errors (everything deriving from :class:`FormulaError`) are
recoverable at the batch level: the install loop reports them and moves on
to the next formula. :class:`CyclicDependencyError` is the one structural
error; no install order exists when it is raised.
"""

from __future__ import annotations


class BrewReconcileError(Exception):
    """Base class for all errors raised by brew-reconcile."""


class FormulaUnavailableError(BrewReconcileError):
    """No formula with this name, alias or old name exists in the index."""

    def __init__(self, name: str) -> None:
        self.name = name
        super().__init__(f"No available formula with the name \"{name}\".")


class InvalidIndexError(BrewReconcileError):
    """The formula index file is malformed."""


class DuplicateFormulaError(InvalidIndexError):
    """Two index records share a full name."""

    def __init__(self, full_name: str) -> None:
        self.full_name = full_name
        super().__init__(f"Formula {full_name} is defined more than once.")


class AmbiguousFormulaError(InvalidIndexError):
    """An alias or old name points at more than one formula."""

    def __init__(self, name: str, targets: list[str]) -> None:
        self.name = name
        self.targets = sorted(targets)
        super().__init__(
            f"{name} refers to more than one formula: {', '.join(self.targets)}"
        )


class CyclicDependencyError(BrewReconcileError):
    """The dependency graph contains a cycle, so no install order exists.

    Attributes:
        cycle: Formula names forming the loop, in edge order. The first name
               depends on the second, and so on; the last depends on the first.
        adjacency: Outgoing edges of each cycle member, for diagnostics.
    """

    def __init__(self, cycle: list[str], adjacency: dict[str, list[str]]) -> None:
        self.cycle = list(cycle)
        self.adjacency = {name: list(adjacency.get(name, [])) for name in cycle}
        super().__init__(self._message())

    @property
    def first(self) -> str:
        return self.cycle[0]

    @property
    def last(self) -> str:
        return self.cycle[-1]

    @property
    def remediation(self) -> str:
        names = " ".join(self.cycle)
        return (
            "Please run the following commands and try again:\n"
            "  brew update\n"
            f"  brew uninstall --ignore-dependencies --force {names}\n"
            f"  brew install {names}"
        )

    def _message(self) -> str:
        lines = [
            "Formulae dependency graph sorting failed "
            "(likely due to a circular dependency):"
        ]
        for name in self.cycle:
            lines.append(f"{name}: {self.adjacency[name]}")
        lines.append(self.remediation)
        return "\n".join(lines)


class FormulaError(BrewReconcileError):
    """An error tied to a single formula; the batch carries on without it."""

    def __init__(self, formula: str, message: str = "") -> None:
        self.formula = formula
        super().__init__(message or formula)

    def report(self) -> str:
        return f"{self.formula}: {self}"


class CannotInstallFormulaError(FormulaError):
    """The formula cannot be installed (conflicts, missing bottle, ...)."""

    def report(self) -> str:
        # The message already names the formula.
        return str(self)


class UnsatisfiedRequirements(FormulaError):
    """A system requirement of the formula is not met."""


class DownloadError(FormulaError):
    """Fetching the bottle or source archive failed."""


class ChecksumMismatchError(FormulaError):
    """A downloaded file did not match its expected checksum."""


class BuildError(FormulaError):
    """Building or pouring the formula failed.

    Attributes:
        output: Captured build output, shown in verbose dumps.
    """

    def __init__(self, formula: str, message: str = "", output: str = "") -> None:
        self.output = output
        super().__init__(formula, message or f"Failed to build {formula}")

    def dump(self, *, verbose: bool = False) -> str:
        """Render the failure for the terminal; full output only when verbose."""
        lines = [f"Error: {self.formula}: {self}"]
        if verbose and self.output:
            lines.append(self.output.rstrip())
        elif self.output:
            lines.append("Run again with --verbose to see the build output.")
        return "\n".join(lines)
