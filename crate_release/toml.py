"""TOML reading and writing utilities.

Uses tomlkit to preserve formatting and comments when modifying
manifests. Two workspace flavours are understood: Cargo workspaces
(Cargo.toml with a [workspace] table) and uv workspaces (pyproject.toml
with [tool.uv.workspace]).
"""

from __future__ import annotations

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any

import tomlkit
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from .errors import ConfigError

CARGO_MANIFEST = "Cargo.toml"
PYPROJECT_MANIFEST = "pyproject.toml"

# Dependency kind → Cargo table name
CARGO_DEPENDENCY_TABLES = {
    "normal": "dependencies",
    "build": "build-dependencies",
    "development": "dev-dependencies",
}
ALL_DEPENDENCY_KINDS = list(CARGO_DEPENDENCY_TABLES)


def load_manifest(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a manifest file.

    Returns a TOMLDocument that preserves formatting when modified and saved.
    """
    return tomlkit.parse(path.read_text())


def save_manifest(path: Path, doc: tomlkit.TOMLDocument) -> None:
    """Save a TOMLDocument back to disk, preserving original formatting."""
    path.write_text(tomlkit.dumps(doc))


def is_cargo_manifest(path: Path | str) -> bool:
    return Path(path).name == CARGO_MANIFEST


def find_root_manifest(root: Path) -> Path:
    """Locate the workspace root manifest, preferring Cargo.toml.

    Raises:
        ConfigError: If neither manifest exists in ``root``.
    """
    for name in (CARGO_MANIFEST, PYPROJECT_MANIFEST):
        candidate = root / name
        if candidate.exists():
            return candidate
    raise ConfigError(f"No {CARGO_MANIFEST} or {PYPROJECT_MANIFEST} found in {root}")


def get_workspace_member_globs(doc: Mapping[str, Any], cargo: bool) -> list[str]:
    """Extract workspace member glob patterns.

    Reads [workspace].members for Cargo and [tool.uv.workspace].members
    for pyproject.toml. These patterns (e.g., "crates/*") define which
    directories contain workspace members.

    Raises:
        ConfigError: If no workspace members are defined.
    """
    if cargo:
        members = doc.get("workspace", {}).get("members")
        where = "[workspace]"
    else:
        members = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("members")
        where = "[tool.uv.workspace]"
    if not members:
        raise ConfigError(f"No {where} members defined in root manifest")
    return [str(m) for m in members]


def get_workspace_excludes(doc: Mapping[str, Any], cargo: bool) -> list[str]:
    if cargo:
        excludes = doc.get("workspace", {}).get("exclude", [])
    else:
        excludes = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("exclude", [])
    return [str(e) for e in excludes]


def get_release_settings(doc: Mapping[str, Any], cargo: bool) -> dict[str, Any]:
    """Raw release settings from the root manifest (empty when absent)."""
    if cargo:
        table = doc.get("workspace", {}).get("metadata", {}).get("release", {})
    else:
        table = doc.get("tool", {}).get("crate-release", {})
    return dict(table)


# -- pyproject.toml -----------------------------------------------------------


def get_project_name(doc: Mapping[str, Any], fallback: str) -> str:
    """Extract the canonical package name from [project].name.

    Names are normalized per PEP 503 (lowercase, hyphens instead of
    underscores) for consistent comparison.

    Args:
        doc: Parsed pyproject.toml document.
        fallback: Value to return if name is not specified.
    """
    return canonicalize_name(doc.get("project", {}).get("name", fallback))


def get_project_version(doc: Mapping[str, Any]) -> str:
    """Extract version from [project].version, defaulting to '0.0.0'."""
    return str(doc.get("project", {}).get("version", "0.0.0"))


def get_all_dependency_strings(
    doc: Mapping[str, Any], kinds: Iterable[str] = ("normal", "development"),
    exclude_optional: bool = False,
) -> list[str]:
    """Collect dependency strings from a pyproject.toml.

    Gathers dependencies from three locations:
    - [project].dependencies (main runtime deps)
    - [project].optional-dependencies.* (extras like [dev], [test])
    - [dependency-groups].* (PEP 735 groups, counted as development deps)

    Returns raw PEP 508 strings like "requests>=2.0" or "pkg[extra]~=1.0".
    """
    kinds = set(kinds)
    project = doc.get("project", {})
    deps: list[str] = []
    if "normal" in kinds:
        deps.extend(project.get("dependencies", []))
        if not exclude_optional:
            for group_deps in project.get("optional-dependencies", {}).values():
                deps.extend(group_deps)
    if "development" in kinds:
        for group_deps in doc.get("dependency-groups", {}).values():
            # Skip {include-group = "..."} entries
            deps.extend(d for d in group_deps if isinstance(d, str))
    return [str(d) for d in deps]


def pyproject_dependency_names(dep_strings: Iterable[str]) -> list[str]:
    """Canonical names of PEP 508 dependency strings, skipping invalid ones."""
    names: list[str] = []
    for dep_str in dep_strings:
        try:
            names.append(canonicalize_name(Requirement(dep_str).name))
        except InvalidRequirement:
            continue
    return names


# -- Cargo.toml ---------------------------------------------------------------


def get_package_name(doc: Mapping[str, Any], fallback: str) -> str:
    """Extract [package].name from a Cargo manifest."""
    return str(doc.get("package", {}).get("name", fallback))


def get_package_version(
    doc: Mapping[str, Any], workspace_doc: Mapping[str, Any] | None = None
) -> str:
    """Extract [package].version, following ``version.workspace = true``.

    Defaults to '0.0.0' when no version is declared.
    """
    version = doc.get("package", {}).get("version", "0.0.0")
    if isinstance(version, Mapping) and version.get("workspace"):
        version = (workspace_doc or {}).get("workspace", {}).get("package", {}).get(
            "version", "0.0.0"
        )
    return str(version)


def _dependency_tables(
    doc: Mapping[str, Any], kinds: Iterable[str]
) -> list[Mapping[str, Any]]:
    table_names = [CARGO_DEPENDENCY_TABLES[k] for k in kinds]
    tables = [doc[t] for t in table_names if isinstance(doc.get(t), Mapping)]
    for target in doc.get("target", {}).values():
        if isinstance(target, Mapping):
            tables.extend(target[t] for t in table_names if isinstance(target.get(t), Mapping))
    return tables


def get_cargo_dependencies(
    doc: Mapping[str, Any],
    kinds: Iterable[str] = ("normal", "build"),
    exclude_optional: bool = False,
) -> list[str]:
    """Names of the crates a Cargo manifest depends on.

    Renamed dependencies (``foo = { package = "bar" }``) are reported
    under their real package name.
    """
    names: list[str] = []
    for table in _dependency_tables(doc, list(kinds)):
        for key, entry in table.items():
            if isinstance(entry, Mapping):
                if exclude_optional and entry.get("optional"):
                    continue
                names.append(str(entry.get("package", key)))
            else:
                names.append(str(key))
    return names
