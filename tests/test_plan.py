"""Tests for crate_release.plan."""

from __future__ import annotations

import pytest

from crate_release.graph import build_graph
from crate_release.models import (
    ChangelogState,
    CrateInfo,
    IncrementKind,
    ReleaseCandidate,
    SelectionReason,
)
from crate_release.plan import commit_message, crate_tag, develop_versions, emit_plan

RELEASE = "20240201.120000"
DATE = "2024-02-01"


def _crate(name: str, version: str, deps: tuple[str, ...] = ()) -> CrateInfo:
    return CrateInfo(
        name=name,
        path=f"crates/{name}",
        manifest=f"crates/{name}/Cargo.toml",
        version=version,
        deps=list(deps),
    )


@pytest.fixture
def graph():
    return build_graph(
        [
            _crate("app", "2.0.0", ("core", "util")),
            _crate("core", "1.0.0"),
            _crate("util", "0.3.0"),
        ]
    )


@pytest.fixture
def candidates(graph):
    # Deliberately out of dependency order
    return [
        ReleaseCandidate(
            crate=graph.crate("app"),
            next_version="2.0.1",
            increment=IncrementKind.PATCH,
            reasons=[SelectionReason.DEPENDENCY],
            pulled_in_by=["core"],
        ),
        ReleaseCandidate(
            crate=graph.crate("core"),
            next_version="1.0.1",
            increment=IncrementKind.PATCH,
            reasons=[SelectionReason.CHANGED],
        ),
    ]


@pytest.fixture
def states():
    return {"core": ChangelogState(has_unreleased_entries=True, unreleased_content="- fix")}


def _plan(candidates, graph, states=None):
    return emit_plan(candidates, graph, release_name=RELEASE, date=DATE, states=states)


class TestEmitPlan:
    def test_entries_follow_dependency_order(self, graph, candidates, states) -> None:
        plan = _plan(candidates, graph, states)
        assert [e.crate for e in plan.entries] == ["core", "app"]
        assert plan.tags == ["core-v1.0.1", "app-v2.0.1"]
        assert plan.versions == {"core": "1.0.1", "app": "2.0.1"}

    def test_manifest_edits(self, graph, candidates, states) -> None:
        plan = _plan(candidates, graph, states)
        core, app = plan.entries

        assert core.manifest.path == "crates/core/Cargo.toml"
        assert core.manifest.version == "1.0.1"
        assert core.manifest.dependencies == {}
        # util is not released, so its requirement stays as it is
        assert app.manifest.dependencies == {"core": "1.0.1"}
        assert app.bump.old == "2.0.0"
        assert app.bump.new == "2.0.1"
        assert app.reasons == [SelectionReason.DEPENDENCY]

    def test_no_requirement_edits_without_references(self, graph, candidates, states) -> None:
        assert _plan(candidates, graph, states).requirement_edits == []

    def test_requirement_edits_for_unreleased_referrers(self) -> None:
        tool = _crate("tool", "0.1.0")
        tool.manifest_deps = ["core", "util"]
        bench = _crate("bench", "0.1.0")
        bench.manifest_deps = ["core"]
        graph = build_graph([bench, _crate("core", "1.0.0"), tool, _crate("util", "0.3.0")])
        candidate = ReleaseCandidate(
            crate=graph.crate("core"),
            next_version="2.0.0",
            increment=IncrementKind.MAJOR,
            reasons=[SelectionReason.CHANGED],
        )

        plan = _plan([candidate], graph)

        assert [e.crate for e in plan.entries] == ["core"]
        assert [e.path for e in plan.requirement_edits] == [
            "crates/bench/Cargo.toml",
            "crates/tool/Cargo.toml",
        ]
        assert all(e.version is None for e in plan.requirement_edits)
        assert all(e.dependencies == {"core": "2.0.0"} for e in plan.requirement_edits)

    def test_changelog_edits(self, graph, candidates, states) -> None:
        plan = _plan(candidates, graph, states)
        core, app = plan.entries

        assert core.changelog.path == "crates/core/CHANGELOG.md"
        assert core.changelog.heading == "1.0.1 - 2024-02-01"
        assert core.changelog.content == "- fix"
        assert app.changelog.path == "crates/app/CHANGELOG.md"
        assert app.changelog.heading == "2.0.1 - 2024-02-01"
        assert app.changelog.content == ""

    def test_workspace_release(self, graph, candidates, states) -> None:
        plan = _plan(candidates, graph, states)

        assert plan.release_name == RELEASE
        assert plan.workspace_tag == "release-20240201.120000"
        assert plan.date == DATE
        ws = plan.workspace_changelog
        assert ws is not None
        assert ws.path == "CHANGELOG.md"
        assert ws.title == RELEASE
        assert ws.releases == ["core-1.0.1", "app-2.0.1"]
        assert ws.content == "### core-1.0.1\n\n- fix\n\n### app-2.0.1"

    def test_custom_changelog_name(self, graph, candidates) -> None:
        plan = emit_plan(
            candidates, graph, release_name=RELEASE, date=DATE, changelog_name="CHANGES.md"
        )
        assert plan.entries[0].changelog.path == "crates/core/CHANGES.md"
        assert plan.workspace_changelog.path == "CHANGES.md"

    def test_empty_selection(self, graph) -> None:
        plan = _plan([], graph)
        assert plan.entries == []
        assert plan.workspace_changelog is None
        assert plan.workspace_tag == "release-20240201.120000"

    def test_emission_is_deterministic(self, graph, candidates, states) -> None:
        first = _plan(candidates, graph, states)
        second = _plan(list(reversed(candidates)), graph, states)
        assert first.model_dump() == second.model_dump()


def test_crate_tag() -> None:
    assert crate_tag("core", "1.0.1") == "core-v1.0.1"


def test_commit_message(graph, candidates) -> None:
    message = commit_message(_plan(candidates, graph))
    assert message == (
        "release-20240201.120000\n\n"
        "the following crates are part of this release:\n\n"
        "- core-1.0.1\n"
        "- app-2.0.1\n"
    )


class TestDevelopVersions:
    def test_patch_plus_one_dev(self, graph, candidates) -> None:
        bumped = develop_versions(_plan(candidates, graph))
        assert bumped["core"].old == "1.0.1"
        assert bumped["core"].new == "1.0.2-dev.0"
        assert bumped["app"].new == "2.0.2-dev.0"

    def test_prereleases_are_left_alone(self, graph) -> None:
        candidate = ReleaseCandidate(
            crate=graph.crate("core"),
            next_version="1.0.1-beta.1",
            increment=IncrementKind.PRERELEASE,
            reasons=[SelectionReason.CHANGED],
        )
        assert develop_versions(_plan([candidate], graph)) == {}
