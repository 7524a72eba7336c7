"""Release pipeline: discover → inspect → select → plan → apply.

This module wires the pure release engine to the filesystem and git:
1. Discover all crates in the workspace and build the dependency graph
2. Read and inspect each crate's changelog
3. Select release candidates and resolve their next versions
4. Emit the release plan
5. Apply the plan: rewrite manifests and changelogs
6. Commit and tag locally, optionally moving to development versions

Nothing is pushed; publishing and pull requests are left to other tools.
"""

from __future__ import annotations

import glob
from collections.abc import Mapping
from datetime import datetime, timezone
from pathlib import Path

from .changelog import inspect_changelogs, promote_unreleased, prepend_workspace_release
from .config import ReleaseConfig, build_config
from .errors import ConfigError
from .deps import rewrite_manifest, rewrite_workspace_dependencies
from .graph import build_graph
from .models import CrateInfo, ReleaseOutcome, ReleasePlan, VersionBump
from .plan import commit_message, develop_versions, emit_plan
from .selection import select_candidates
from .shell import git, step
from .toml import (
    ALL_DEPENDENCY_KINDS,
    find_root_manifest,
    get_all_dependency_strings,
    get_cargo_dependencies,
    get_package_name,
    get_package_version,
    get_project_name,
    get_project_version,
    get_release_settings,
    get_workspace_excludes,
    get_workspace_member_globs,
    is_cargo_manifest,
    load_manifest,
    pyproject_dependency_names,
)
from .versions import parse_version


def default_release_name(now: datetime | None = None) -> str:
    """Time-derived workspace release name, e.g. "20240131.120000"."""
    return (now or datetime.now(timezone.utc)).strftime("%Y%m%d.%H%M%S")


def today(now: datetime | None = None) -> str:
    return (now or datetime.now(timezone.utc)).strftime("%Y-%m-%d")


def load_config(root: Path) -> ReleaseConfig:
    """Read release settings from the workspace root manifest."""
    manifest = find_root_manifest(root)
    doc = load_manifest(manifest).unwrap()
    return build_config(get_release_settings(doc, is_cargo_manifest(manifest)))


def _member_dirs(root: Path, doc: Mapping, cargo: bool) -> list[Path]:
    manifest_name = "Cargo.toml" if cargo else "pyproject.toml"
    excluded: set[Path] = set()
    for pattern in get_workspace_excludes(doc, cargo):
        excluded.update(Path(m).resolve() for m in glob.glob(str(root / pattern)))

    member_dirs: list[Path] = []
    for pattern in get_workspace_member_globs(doc, cargo):
        for match in sorted(glob.glob(str(root / pattern))):
            p = Path(match)
            if p.resolve() in excluded or p in member_dirs:
                continue
            if (p / manifest_name).exists():
                member_dirs.append(p)
    return member_dirs


def discover_crates(root: Path, config: ReleaseConfig | None = None) -> list[CrateInfo]:
    """Scan the workspace and describe every member crate.

    Reads the member globs from the root manifest, then extracts name,
    version and internal deps from each member manifest. Duplicate names
    are kept so the graph builder can reject them.

    Returns:
        CrateInfo per member, in member-glob order.
    """
    step("Discovering workspace crates")
    config = config or ReleaseConfig()
    kinds = [k.value for k in config.dependency_kinds]

    root_manifest = find_root_manifest(root)
    cargo = is_cargo_manifest(root_manifest)
    root_doc = load_manifest(root_manifest).unwrap()

    # First pass: collect basic info and raw dependency names
    crates: list[CrateInfo] = []
    raw_deps: list[list[str]] = []
    raw_refs: list[list[str]] = []
    for d in _member_dirs(root, root_doc, cargo):
        manifest = d / root_manifest.name
        doc = load_manifest(manifest).unwrap()
        if cargo:
            name = get_package_name(doc, d.name)
            version = get_package_version(doc, root_doc)
            deps = get_cargo_dependencies(doc, kinds, config.exclude_optional_deps)
            refs = get_cargo_dependencies(doc, ALL_DEPENDENCY_KINDS)
        else:
            name = get_project_name(doc, d.name)
            version = get_project_version(doc)
            deps = pyproject_dependency_names(
                get_all_dependency_strings(doc, kinds, config.exclude_optional_deps)
            )
            refs = pyproject_dependency_names(
                get_all_dependency_strings(doc, ALL_DEPENDENCY_KINDS)
            )
        try:
            parse_version(version)
        except ValueError as exc:
            raise ConfigError(
                f"[{name}] version {version!r} in {manifest.relative_to(root).as_posix()} "
                "is not a semantic version"
            ) from exc
        crates.append(
            CrateInfo(
                name=name,
                path=d.relative_to(root).as_posix(),
                manifest=manifest.relative_to(root).as_posix(),
                version=version,
            )
        )
        raw_deps.append(deps)
        raw_refs.append(refs)

    # Second pass: keep only internal deps, ignoring external packages
    workspace_names = {c.name for c in crates}
    for info, deps, refs in zip(crates, raw_deps, raw_refs):
        for dep in deps:
            if dep in workspace_names and dep not in info.deps and dep != info.name:
                info.deps.append(dep)
        for ref in refs:
            if ref in workspace_names and ref not in info.manifest_deps and ref != info.name:
                info.manifest_deps.append(ref)

    for info in crates:
        deps = f" → [{', '.join(info.deps)}]" if info.deps else ""
        print(f"  {info.name} {info.version} ({info.path}){deps}")

    return crates


def read_changelogs(
    root: Path, crates: list[CrateInfo], changelog_name: str = "CHANGELOG.md"
) -> dict[str, str | None]:
    """Raw changelog text per crate; None when the file does not exist."""
    texts: dict[str, str | None] = {}
    for info in crates:
        path = root / info.path / changelog_name
        texts[info.name] = path.read_text() if path.exists() else None
    return texts


def compute_release(
    root: Path,
    config: ReleaseConfig | None = None,
    *,
    release_name: str | None = None,
    date: str | None = None,
) -> ReleaseOutcome:
    """Compute the release plan for a workspace without changing anything.

    The dependency graph is validated before any changelog is read, so
    cycles and duplicate crates fail fast.

    Args:
        root: Workspace root directory.
        config: Release settings; read from the root manifest if omitted.
        release_name: Workspace release name; time-derived if omitted.
        date: Date for changelog headings; today (UTC) if omitted.

    Raises:
        ReleaseError: On any fatal condition. No plan is returned then.
    """
    config = config or load_config(root)
    release_name = release_name or default_release_name()
    date = date or today()

    crates = discover_crates(root, config)
    graph = build_graph(crates)

    step("Inspecting changelogs")
    texts = read_changelogs(root, crates, config.changelog_name)
    states, diagnostics = inspect_changelogs(
        texts,
        abort_on_malformed=config.abort_on_malformed_changelog,
        max_workers=config.max_workers,
    )
    for name in graph.topological_order():
        state = states[name]
        flags = []
        if state.unreleasable:
            flags.append("unreleasable")
        if state.has_unreleased_entries:
            flags.append("unreleased entries")
        if not state.releases:
            flags.append("never released")
        print(f"  {name}: {', '.join(flags) or 'up to date'}")

    step("Selecting release candidates")
    candidates, selection_diagnostics = select_candidates(graph, states, config)
    diagnostics.extend(selection_diagnostics)
    for candidate in candidates:
        reasons = ", ".join(r.value for r in candidate.reasons)
        print(f"  {candidate.name}: {candidate.crate.version} → {candidate.next_version} ({reasons})")
    if not candidates:
        print("  Nothing to release")

    plan = emit_plan(
        candidates,
        graph,
        release_name=release_name,
        date=date,
        states=states,
        changelog_name=config.changelog_name,
    )
    return ReleaseOutcome(plan=plan, candidates=candidates, diagnostics=diagnostics)


def apply_plan(root: Path, plan: ReleasePlan) -> list[Path]:
    """Write the plan's manifest and changelog edits.

    Returns:
        Paths of every file written, for staging.
    """
    step(f"Applying release plan for {len(plan.entries)} crates")
    written: list[Path] = []

    for entry in plan.entries:
        manifest = root / entry.manifest.path
        rewrite_manifest(manifest, entry.manifest.version, entry.manifest.dependencies)
        written.append(manifest)

        changelog = root / entry.changelog.path
        text = changelog.read_text() if changelog.exists() else ""
        changelog.write_text(promote_unreleased(text, entry.changelog.heading, entry.crate))
        written.append(changelog)
        print(f"  {entry.crate}: {entry.bump.old} → {entry.bump.new}")

    for edit in plan.requirement_edits:
        manifest = root / edit.path
        rewrite_manifest(manifest, None, edit.dependencies)
        written.append(manifest)

    root_manifest = find_root_manifest(root)
    if rewrite_workspace_dependencies(root_manifest, plan.versions):
        written.append(root_manifest)

    if plan.workspace_changelog is not None:
        ws = plan.workspace_changelog
        path = root / ws.path
        text = path.read_text() if path.exists() else ""
        path.write_text(prepend_workspace_release(text, ws.title, ws.content))
        written.append(path)

    return list(dict.fromkeys(written))


def apply_develop_versions(root: Path, plan: ReleasePlan) -> tuple[dict[str, VersionBump], list[Path]]:
    """Move released crates to their next development version.

    Dependents, including unreleased crates that refer to a released
    crate, are repointed at the development versions as well.
    """
    step("Bumping versions for next development cycle")
    bumped = develop_versions(plan)
    new_versions = {name: b.new for name, b in bumped.items()}
    written: list[Path] = []

    for entry in plan.entries:
        if entry.crate not in bumped:
            continue
        deps = {d: new_versions[d] for d in entry.manifest.dependencies if d in new_versions}
        manifest = root / entry.manifest.path
        rewrite_manifest(manifest, bumped[entry.crate].new, deps)
        written.append(manifest)
        print(f"  {entry.crate}: {bumped[entry.crate].old} → {bumped[entry.crate].new}")

    for edit in plan.requirement_edits:
        deps = {d: new_versions[d] for d in edit.dependencies if d in new_versions}
        if deps:
            manifest = root / edit.path
            rewrite_manifest(manifest, None, deps)
            written.append(manifest)

    root_manifest = find_root_manifest(root)
    if rewrite_workspace_dependencies(root_manifest, new_versions):
        written.append(root_manifest)
    return bumped, written


def commit_release(root: Path, paths: list[Path], message: str) -> None:
    """Stage the given files and commit them."""
    for path in paths:
        git("add", str(path.relative_to(root)), cwd=root)

    staged = git("diff", "--cached", "--name-only", cwd=root, check=False)
    if not staged:
        print("  Nothing to commit")
        return
    git("commit", "-m", message, cwd=root)
    print("  Committed")


def tag_release(root: Path, plan: ReleasePlan) -> list[str]:
    """Create local per-crate tags plus the workspace release tag."""
    step("Creating release tags")
    tags = [*plan.tags, plan.workspace_tag]
    for tag in tags:
        git("tag", tag, cwd=root)
        print(f"  {tag}")
    return tags


def run_release(
    root: Path,
    config: ReleaseConfig | None = None,
    *,
    release_name: str | None = None,
    date: str | None = None,
    commit: bool = False,
    tag: bool = False,
    develop_bump: bool = False,
) -> ReleaseOutcome:
    """Execute the local release pipeline.

    Args:
        root: Workspace root directory.
        config: Release settings; read from the root manifest if omitted.
        release_name: Workspace release name; time-derived if omitted.
        date: Date for changelog headings; today (UTC) if omitted.
        commit: Commit the release edits.
        tag: Create per-crate and workspace tags (after the commit).
        develop_bump: Afterwards move released crates to development
            versions (committed too when ``commit`` is set).

    Raises:
        ConfigError: If ``tag`` is requested without ``commit``.
    """
    if tag and not commit:
        raise ConfigError("tagging requires committing the release first")
    outcome = compute_release(root, config, release_name=release_name, date=date)
    plan = outcome.plan
    if not plan.entries:
        return outcome

    written = apply_plan(root, plan)
    if commit:
        step("Committing release")
        commit_release(root, written, commit_message(plan))
    if tag:
        tag_release(root, plan)
    if develop_bump:
        bumped, written = apply_develop_versions(root, plan)
        if commit and bumped:
            summary = "\n".join(f"  {n}: {b.old} → {b.new}" for n, b in bumped.items())
            commit_release(
                root,
                written,
                f"chore: set develop versions to conclude '{plan.workspace_tag}'\n\n{summary}\n",
            )

    print(f"\n{'=' * 60}\nDone!\n{'=' * 60}")
    return outcome
