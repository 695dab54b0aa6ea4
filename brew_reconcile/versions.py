"""Version parsing and comparison utilities.

Homebrew package versions have the form ``<version>[_<revision>]``, e.g.
``3.2.1_1``. Versions are compared as semver where possible (padding
incomplete versions like "1.2" to "1.2.0"), falling back to PEP 440 and
finally to plain string comparison for formats neither understands
(e.g. "2024a").
"""

from __future__ import annotations

from typing import Any

import semver
from packaging.version import InvalidVersion, Version


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3" → "1.2.3"

    Only the first 3 components are used (major.minor.patch).

    Raises:
        ValueError: If the components are not numeric.
    """
    parts = version_str.split(".")
    # Pad with zeros to ensure we have at least 3 parts
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts[:3]))


def split_revision(pkg_version: str) -> tuple[str, int]:
    """Split a package version into its version and revision.

    Examples:
        "1.2.3_1" → ("1.2.3", 1)
        "1.2.3" → ("1.2.3", 0)
    """
    version, sep, revision = pkg_version.rpartition("_")
    if sep and revision.isdigit():
        return version, int(revision)
    return pkg_version, 0


def _version_key(version_str: str) -> tuple[int, Any]:
    # Keys only need to be comparable with keys of the same kind.
    try:
        v = parse_version(version_str)
        if len(version_str.split(".")) <= 3:
            return (0, v)
    except ValueError:
        pass
    try:
        return (1, Version(version_str))
    except InvalidVersion:
        return (2, version_str)


def compare_versions(a: str, b: str) -> int:
    """Compare two package versions, returning -1, 0 or 1."""
    a_version, a_revision = split_revision(a)
    b_version, b_revision = split_revision(b)
    a_key, b_key = _version_key(a_version), _version_key(b_version)
    if a_key[0] != b_key[0]:
        # Mixed formats: PEP 440 if both parse, else strings
        try:
            a_key, b_key = (1, Version(a_version)), (1, Version(b_version))
        except InvalidVersion:
            a_key, b_key = (2, a_version), (2, b_version)
    if a_key[1] != b_key[1]:
        return -1 if a_key[1] < b_key[1] else 1
    if a_revision != b_revision:
        return -1 if a_revision < b_revision else 1
    return 0


def is_outdated(installed: str, latest: str) -> bool:
    """Return True if the installed package version is older than latest."""
    return compare_versions(installed, latest) < 0
