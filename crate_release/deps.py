"""Manifest rewriting.

Applies the manifest part of a release plan: sets a crate's new version
and points its internal dependencies at the versions being released.
Both Cargo.toml and pyproject.toml manifests are supported; tomlkit keeps
formatting and comments intact.
"""

from __future__ import annotations

from collections.abc import Mapping, MutableMapping
from pathlib import Path
from typing import Any, cast

from packaging.requirements import Requirement
from packaging.utils import canonicalize_name

from .toml import CARGO_DEPENDENCY_TABLES, is_cargo_manifest, load_manifest, save_manifest


def dep_canonical_name(dep_str: str) -> str:
    """Extract the canonical package name from a PEP 508 dependency string.

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"
    """
    return canonicalize_name(Requirement(dep_str).name)


def pin_dep(dep_str: str, version: str) -> str:
    """Pin a PEP 508 dependency to an exact version.

    Preserves any extras and environment markers from the original
    dependency string, but replaces the version specifier with an exact pin.

    Examples:
        pin_dep("requests>=2.0", "2.31.0") → "requests==2.31.0"
        pin_dep("pkg[b,a]~=1.0", "1.5.0") → "pkg[a,b]==1.5.0"
    """
    req = Requirement(dep_str)
    # Sort extras alphabetically for consistent output
    extras = f"[{','.join(sorted(req.extras))}]" if req.extras else ""
    marker = f"; {req.marker}" if req.marker else ""
    return f"{req.name}{extras}=={version}{marker}"


def _pin_dep_list(deps: list, versions: Mapping[str, str]) -> None:
    """Pin internal dependencies in a list, modifying in place."""
    for i, dep_str in enumerate(deps):
        if not isinstance(dep_str, str):
            continue
        name = dep_canonical_name(str(dep_str))
        if name in versions:
            deps[i] = pin_dep(str(dep_str), versions[name])


def rewrite_pyproject(
    pyproject_path: Path,
    new_version: str | None,
    internal_dep_versions: Mapping[str, str],
) -> None:
    """Update a package's version and pin its internal dependencies.

    A ``new_version`` of None leaves [project].version untouched.

    Internal deps are pinned in all locations:
    - [project].dependencies
    - [project].optional-dependencies.*
    - [dependency-groups].*
    """
    doc = load_manifest(pyproject_path)
    # Cast needed because tomlkit types are complex unions
    project = cast(dict[str, Any], doc["project"])
    if new_version is not None:
        project["version"] = new_version

    if internal_dep_versions:
        deps = project.get("dependencies")
        if isinstance(deps, list):
            _pin_dep_list(deps, internal_dep_versions)

        opt_deps = project.get("optional-dependencies")
        if isinstance(opt_deps, dict):
            for group in opt_deps.values():
                if isinstance(group, list):
                    _pin_dep_list(group, internal_dep_versions)

        dep_groups = doc.get("dependency-groups")
        if isinstance(dep_groups, dict):
            for group in dep_groups.values():
                if isinstance(group, list):
                    _pin_dep_list(group, internal_dep_versions)

    save_manifest(pyproject_path, doc)


def set_cargo_dependency_versions(
    table: MutableMapping[str, Any], versions: Mapping[str, str]
) -> list[str]:
    """Rewrite version requirements of matching entries in a dependency table.

    Entries without a version (path-only or ``workspace = true``) are left
    alone. Returns the names that were rewritten.
    """
    updated: list[str] = []
    for key in list(table.keys()):
        entry = table[key]
        if isinstance(entry, Mapping):
            name = str(entry.get("package", key))
            if name in versions and "version" in entry:
                cast(MutableMapping[str, Any], entry)["version"] = versions[name]
                updated.append(name)
        elif str(key) in versions:
            table[key] = versions[str(key)]
            updated.append(str(key))
    return updated


def rewrite_cargo_manifest(
    manifest_path: Path,
    new_version: str | None,
    internal_dep_versions: Mapping[str, str],
) -> None:
    """Update a crate's version and its internal dependency requirements.

    Dependencies are rewritten in [dependencies], [build-dependencies],
    [dev-dependencies] and their [target.*] variants. An inherited
    ``version.workspace = true`` is replaced by the explicit new version.
    """
    doc = load_manifest(manifest_path)
    if new_version is not None:
        package = cast(dict[str, Any], doc["package"])
        package["version"] = new_version

    if internal_dep_versions:
        tables: list[Any] = [doc.get(t) for t in CARGO_DEPENDENCY_TABLES.values()]
        for target in doc.get("target", {}).values():
            if isinstance(target, Mapping):
                tables.extend(target.get(t) for t in CARGO_DEPENDENCY_TABLES.values())
        for table in tables:
            if isinstance(table, MutableMapping):
                set_cargo_dependency_versions(table, internal_dep_versions)

    save_manifest(manifest_path, doc)


def rewrite_workspace_dependencies(
    root_manifest: Path, versions: Mapping[str, str]
) -> list[str]:
    """Update released crates listed in the root [workspace.dependencies].

    Returns the names that were rewritten; the file is only written when
    something changed.
    """
    if not is_cargo_manifest(root_manifest):
        return []
    doc = load_manifest(root_manifest)
    table = doc.get("workspace", {}).get("dependencies")
    if not isinstance(table, MutableMapping):
        return []
    updated = set_cargo_dependency_versions(table, versions)
    if updated:
        save_manifest(root_manifest, doc)
    return updated


def rewrite_manifest(
    manifest_path: Path, new_version: str | None, internal_dep_versions: Mapping[str, str]
) -> None:
    """Dispatch to the Cargo or pyproject rewriter based on the file name."""
    if is_cargo_manifest(manifest_path):
        rewrite_cargo_manifest(manifest_path, new_version, internal_dep_versions)
    else:
        rewrite_pyproject(manifest_path, new_version, internal_dep_versions)
