"""Release candidate selection.

Selection is a two-phase pure function over already-read inputs:

1. Direct eligibility: a releasable crate with unreleased changelog
   entries, or one that was never released, whose next version resolves
   under its constraint.
2. Closure propagation: every crate that transitively depends on a
   direct candidate must be released too, so that its manifest can
   reference the new dependency version. A dependent that cannot be
   released fails the whole run.

Blockers listed in ``allowed-blockers`` are waived in both phases and
reported as diagnostics instead.
"""

from __future__ import annotations

from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor

from .config import BlockerKind, ReleaseConfig
from .errors import BlockedDependent, NoAllowedVersion
from .graph import DependencyGraph
from .models import (
    ChangelogState,
    Diagnostic,
    IncrementKind,
    ReleaseCandidate,
    SelectionReason,
    VersionConstraint,
)
from .versions import infer_increment, parse_version, resolve_next_version


def _resolve(
    name: str,
    graph: DependencyGraph,
    state: ChangelogState,
    config: ReleaseConfig,
) -> tuple[str, IncrementKind, list[Diagnostic]]:
    preferred = config.preferred_for(name) or infer_increment(
        state.unreleased_content, config.markers
    )
    current = graph.crate(name).version
    constraint = config.constraint_for(name)
    try:
        version, kind = resolve_next_version(
            name, current, constraint, preferred=preferred, default=config.default_increment
        )
    except NoAllowedVersion as exc:
        if not config.allows(name, BlockerKind.VERSION_CONSTRAINT):
            raise
        # Requirements are dropped; channel and fixed increment still apply
        relaxed = VersionConstraint(
            prerelease_channel=constraint.prerelease_channel, increment=constraint.increment
        )
        version, kind = resolve_next_version(
            name, current, relaxed, preferred=preferred, default=config.default_increment
        )
        waived = Diagnostic(
            crate=name, message=f"{exc.detail}; constraint waived by allowed-blockers"
        )
        return version, kind, [waived]
    return version, kind, []


def _unreleasable_waived(name: str) -> Diagnostic:
    return Diagnostic(
        crate=name, message="marked unreleasable, released anyway by allowed-blockers"
    )


def direct_reasons(
    state: ChangelogState, ignore_unreleasable: bool = False
) -> list[SelectionReason]:
    """Positive indicators for releasing a crate on its own merits."""
    if state.excluded_reason or (state.unreleasable and not ignore_unreleasable):
        return []
    reasons: list[SelectionReason] = []
    if state.has_unreleased_entries:
        reasons.append(SelectionReason.CHANGED)
    if not state.releases:
        reasons.append(SelectionReason.NEVER_RELEASED)
    return reasons


def _release_history_warnings(
    graph: DependencyGraph, states: Mapping[str, ChangelogState]
) -> list[Diagnostic]:
    diagnostics: list[Diagnostic] = []
    for name in sorted(states):
        latest = states[name].latest_release
        if latest is None or name not in graph:
            continue
        current = graph.crate(name).version
        try:
            newer = parse_version(latest.version) > parse_version(current)
        except ValueError:
            continue
        if newer:
            diagnostics.append(
                Diagnostic(
                    crate=name,
                    message=f"changelog documents release {latest.version}, "
                    f"newer than manifest version {current}",
                )
            )
    return diagnostics


def select_candidates(
    graph: DependencyGraph,
    states: Mapping[str, ChangelogState],
    config: ReleaseConfig | None = None,
) -> tuple[list[ReleaseCandidate], list[Diagnostic]]:
    """Compute the release set and each crate's next version.

    Args:
        graph: Validated workspace dependency graph.
        states: Changelog state for every crate in the graph; crates
                missing from the map are treated as having an empty
                changelog.
        config: Release settings (constraints, filter, markers,
                allowed blockers).

    Returns:
        Tuple of (candidates in topological order, diagnostics).

    Raises:
        BlockedDependent: If a crate required by dependency closure was
            excluded, is unreleasable or has no allowed version, and the
            blocker is not waived by ``allowed-blockers``.
    """
    config = config or ReleaseConfig()
    names = graph.topological_order()
    states = {name: states.get(name, ChangelogState()) for name in names}
    diagnostics = _release_history_warnings(graph, states)

    # Phase 1: direct eligibility, one task per crate
    def _assess(
        name: str,
    ) -> tuple[ReleaseCandidate, list[Diagnostic]] | NoAllowedVersion | None:
        state = states[name]
        waive = state.unreleasable and config.allows(name, BlockerKind.UNRELEASABLE)
        reasons = direct_reasons(state, ignore_unreleasable=waive)
        if not reasons or not config.selects(name):
            return None
        try:
            version, kind, diags = _resolve(name, graph, state, config)
        except NoAllowedVersion as exc:
            return exc
        if waive:
            diags.insert(0, _unreleasable_waived(name))
        candidate = ReleaseCandidate(
            crate=graph.crate(name), next_version=version, increment=kind, reasons=reasons
        )
        return candidate, diags

    with ThreadPoolExecutor(max_workers=config.max_workers) as pool:
        assessed = dict(zip(names, pool.map(_assess, names)))

    selected: dict[str, ReleaseCandidate] = {}
    for name in names:
        result = assessed[name]
        if isinstance(result, NoAllowedVersion):
            diagnostics.append(Diagnostic(crate=name, message=f"not released, {result.detail}"))
        elif result is not None:
            selected[name], diags = result
            diagnostics.extend(diags)

    # Phase 2: closure propagation over dependents of direct candidates
    pulled_in: dict[str, list[str]] = {}
    for name in list(selected):
        for dependent in graph.dependents_of(name):
            pulled_in.setdefault(dependent, []).append(name)

    for name in names:
        if name not in pulled_in:
            continue
        sources = sorted(pulled_in[name])
        if name in selected:
            selected[name].reasons.append(SelectionReason.DEPENDENCY)
            selected[name].pulled_in_by = sources
            continue
        state = states[name]
        if state.excluded_reason:
            raise BlockedDependent(name, sources[0], state.excluded_reason)
        if state.unreleasable:
            if not config.allows(name, BlockerKind.UNRELEASABLE):
                raise BlockedDependent(name, sources[0], "marked unreleasable in its changelog")
            diagnostics.append(_unreleasable_waived(name))
        try:
            version, kind, diags = _resolve(name, graph, state, config)
        except NoAllowedVersion as exc:
            raise BlockedDependent(name, sources[0], exc.detail) from exc
        diagnostics.extend(diags)
        selected[name] = ReleaseCandidate(
            crate=graph.crate(name),
            next_version=version,
            increment=kind,
            reasons=[SelectionReason.DEPENDENCY],
            pulled_in_by=sources,
        )

    return [selected[n] for n in names if n in selected], diagnostics
