"""Release plan emission.

Turns the selected candidates into an ordered list of manifest edits,
changelog edits and tag names. Emission performs no I/O, so the same
inputs always give the same plan and a plan can be inspected (dry run)
before anything is written.
"""

from __future__ import annotations

from collections.abc import Mapping
from pathlib import PurePosixPath

from .changelog import format_workspace_release
from .graph import DependencyGraph
from .models import (
    ChangelogEdit,
    ChangelogState,
    CrateInfo,
    ManifestEdit,
    PlanEntry,
    ReleaseCandidate,
    ReleasePlan,
    VersionBump,
    WorkspaceChangelogEdit,
)
from .versions import develop_version, parse_version

RELEASE_TAG_PREFIX = "release-"


def crate_tag(name: str, version: str) -> str:
    """Per-crate tag name: ``<crate>-v<version>``."""
    return f"{name}-v{version}"


def release_title(name: str, version: str) -> str:
    """Title of a crate release in the workspace changelog."""
    return f"{name}-{version}"


def _released_requirements(
    crate: CrateInfo, graph: DependencyGraph, new_versions: Mapping[str, str]
) -> dict[str, str]:
    """New versions of the released crates a manifest refers to, in any table."""
    names = dict.fromkeys([*graph.dependencies_of(crate.name), *crate.manifest_deps])
    return {dep: new_versions[dep] for dep in names if dep in new_versions and dep != crate.name}


def emit_plan(
    candidates: list[ReleaseCandidate],
    graph: DependencyGraph,
    *,
    release_name: str,
    date: str,
    states: Mapping[str, ChangelogState] | None = None,
    changelog_name: str = "CHANGELOG.md",
) -> ReleasePlan:
    """Build the release plan for a set of candidates.

    Entries follow the graph's topological order, so a crate's entry never
    precedes the entry of a dependency that is also being released.

    Crates that are not released but refer to a released crate (for
    example through dev-dependencies) get a requirement-only manifest edit,
    so every manifest in the workspace points at the new versions.

    Args:
        candidates: Selected crates with their next versions.
        graph: Workspace dependency graph (used for ordering).
        release_name: Name of the workspace release (e.g. "20240131.120000").
        date: Release date written into changelog headings.
        states: Changelog states, for the unreleased content to promote.
        changelog_name: File name of each changelog.

    Returns:
        The release plan. It has no entries and no workspace changelog edit
        when there are no candidates.
    """
    states = states or {}
    by_name = {c.name: c for c in candidates}
    new_versions = {c.name: c.next_version for c in candidates}

    entries: list[PlanEntry] = []
    for name in graph.topological_order():
        candidate = by_name.get(name)
        if candidate is None:
            continue
        crate = candidate.crate
        version = candidate.next_version
        content = states[name].unreleased_content if name in states else ""
        entries.append(
            PlanEntry(
                crate=name,
                path=crate.path,
                bump=VersionBump(old=crate.version, new=version),
                reasons=list(candidate.reasons),
                manifest=ManifestEdit(
                    path=crate.manifest,
                    version=version,
                    dependencies=_released_requirements(crate, graph, new_versions),
                ),
                changelog=ChangelogEdit(
                    path=str(PurePosixPath(crate.path, changelog_name)),
                    heading=f"{version} - {date}",
                    content=content,
                ),
                tag=crate_tag(name, version),
            )
        )

    requirement_edits: list[ManifestEdit] = []
    for name in graph.topological_order():
        if name in by_name:
            continue
        crate = graph.crate(name)
        dependencies = _released_requirements(crate, graph, new_versions)
        if dependencies:
            requirement_edits.append(ManifestEdit(path=crate.manifest, dependencies=dependencies))

    workspace_changelog = None
    if entries:
        releases = [(release_title(e.crate, e.bump.new), e.changelog.content) for e in entries]
        workspace_changelog = WorkspaceChangelogEdit(
            path=changelog_name,
            title=release_name,
            releases=[title for title, _ in releases],
            content=format_workspace_release(releases),
        )

    return ReleasePlan(
        release_name=release_name,
        workspace_tag=f"{RELEASE_TAG_PREFIX}{release_name}",
        date=date,
        entries=entries,
        workspace_changelog=workspace_changelog,
        requirement_edits=requirement_edits,
    )


def commit_message(plan: ReleasePlan) -> str:
    """Commit message summarizing which crates are part of the release."""
    lines = "\n".join(f"- {release_title(e.crate, e.bump.new)}" for e in plan.entries)
    return f"{plan.workspace_tag}\n\nthe following crates are part of this release:\n\n{lines}\n"


def develop_versions(plan: ReleasePlan) -> dict[str, VersionBump]:
    """Post-release development versions for the next cycle.

    After releasing 1.2.3, crates move to 1.2.4-dev.0 so the next release
    has a higher version. Prerelease releases are left as they are.
    """
    bumped: dict[str, VersionBump] = {}
    for entry in plan.entries:
        if parse_version(entry.bump.new).prerelease:
            continue
        bumped[entry.crate] = VersionBump(old=entry.bump.new, new=develop_version(entry.bump.new))
    return bumped
