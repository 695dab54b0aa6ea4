"""TOML reading and writing utilities for formula index files.

Uses tomlkit so that hand-edited index files keep their formatting and
comments when written back. An index file holds one table per formula:

    [formula.wget]
    dependencies = ["openssl@3", "libidn2"]
    installed_version = "1.24.5"
    version = "1.25.0"
    bottled = true

    [formula."user/repo/tool"]
    dependencies = ["wget"]
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from tomlkit.exceptions import ParseError

from .errors import InvalidIndexError


def load_toml(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a TOML file.

    Returns a TOMLDocument that preserves formatting when modified and saved.
    """
    try:
        return tomlkit.parse(path.read_text())
    except ParseError as exc:
        raise InvalidIndexError(f"{path}: {exc}") from exc


def save_toml(path: Path, doc: tomlkit.TOMLDocument) -> None:
    """Save a TOMLDocument back to disk, preserving original formatting."""
    path.write_text(tomlkit.dumps(doc))


def get_formula_tables(doc: tomlkit.TOMLDocument) -> dict[str, dict[str, Any]]:
    """Extract the [formula.*] tables as plain dicts keyed by full name.

    The full name comes from the table key; a ``full_name`` entry inside the
    table, if present, must agree with it.

    Raises:
        InvalidIndexError: If a table is not a table or names disagree.
    """
    formulae = doc.get("formula", {})
    tables: dict[str, dict[str, Any]] = {}
    for key, table in formulae.items():
        if not isinstance(table, dict):
            raise InvalidIndexError(f"formula.{key} must be a table")
        data = table.unwrap() if hasattr(table, "unwrap") else dict(table)
        full_name = data.setdefault("full_name", key)
        if full_name != key:
            raise InvalidIndexError(
                f"formula.{key} declares a different full_name: {full_name}"
            )
        tables[key] = data
    return tables


def set_formula_table(doc: tomlkit.TOMLDocument, full_name: str, data: dict[str, Any]) -> None:
    """Write one formula's fields into [formula."<full_name>"].

    Existing keys are updated in place so comments around them survive.
    """
    if "formula" not in doc:
        doc["formula"] = tomlkit.table(is_super_table=True)
    formulae = doc["formula"]
    if full_name not in formulae:
        formulae[full_name] = tomlkit.table()
    table = formulae[full_name]
    for key, value in data.items():
        if key == "full_name":
            continue
        table[key] = value
