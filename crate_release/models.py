"""Data models for crate-release.

These Pydantic models represent the core data structures passed between
the stages of the release engine: workspace discovery, changelog
inspection, candidate selection and plan emission. None of them touch
the filesystem.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

from pydantic import BaseModel, Field


class IncrementKind(str, Enum):
    """Kinds of version increment, from least to most significant."""

    PRERELEASE = "prerelease"
    PATCH = "patch"
    MINOR = "minor"
    MAJOR = "major"


class SelectionReason(str, Enum):
    """Why a crate ended up in the release set."""

    CHANGED = "changed"
    NEVER_RELEASED = "never-released"
    DEPENDENCY = "dependency"


class CrateInfo(BaseModel):
    """Metadata for a single crate in the workspace.

    Attributes:
        name: Crate identifier, unique within the workspace.
        path: Relative path from workspace root to the crate directory.
        manifest: Relative path from workspace root to the crate manifest.
        version: Current version string from the manifest.
        deps: Direct internal (workspace) dependency names that form graph
              edges. External deps are not tracked since only internal
              versions are managed.
        manifest_deps: Internal crates named in any dependency table of the
              manifest, whatever its kind. Their requirements are rewritten
              when they are released, even when they are not graph edges.
    """

    name: str
    path: str
    manifest: str
    version: str
    deps: list[str] = Field(default_factory=list)
    manifest_deps: list[str] = Field(default_factory=list)


class ReleaseRecord(BaseModel):
    """A past release documented in a changelog."""

    version: str
    date: str | None = None


class ChangelogBlock(BaseModel):
    """One level-2 section of a changelog body.

    Attributes:
        heading: Heading text without the leading ``## ``.
        version: Release version when the heading names one, else None.
        date: Release date following the version, if any.
        body: Raw text between this heading and the next one.
        unreleased: True for the ``Unreleased`` marker heading.
    """

    heading: str
    version: str | None = None
    date: str | None = None
    body: str = ""
    unreleased: bool = False


class ParsedChangelog(BaseModel):
    """A changelog split into front matter, preamble and body blocks."""

    front_matter: str | None = None
    flags: dict[str, Any] = Field(default_factory=dict)
    preamble: str = ""
    blocks: list[ChangelogBlock] = Field(default_factory=list)

    @property
    def releases(self) -> list[ReleaseRecord]:
        return [
            ReleaseRecord(version=b.version, date=b.date)
            for b in self.blocks
            if b.version is not None
        ]

    @property
    def untagged(self) -> list[ChangelogBlock]:
        return [b for b in self.blocks if b.version is None]


class ChangelogState(BaseModel):
    """Selection-relevant facts extracted from a crate's changelog.

    Attributes:
        unreleasable: Front matter flag; such a crate is never selected.
        has_unreleased_entries: Whether any content is not yet attributed
            to a released version.
        releases: Past release records, newest first as documented.
        unreleased_content: The unreleased text, used for increment
            inference and for promotion into the new release heading.
        excluded_reason: Set when the changelog could not be read and the
            crate was excluded from the release instead of aborting.
    """

    unreleasable: bool = False
    has_unreleased_entries: bool = False
    releases: list[ReleaseRecord] = Field(default_factory=list)
    unreleased_content: str = ""
    excluded_reason: str | None = None

    @property
    def latest_release(self) -> ReleaseRecord | None:
        return self.releases[0] if self.releases else None


class VersionConstraint(BaseModel):
    """Predicate over candidate next versions.

    Attributes:
        requirements: Comma-separated semver comparisons that must all hold.
        disallowed: Comparisons of which none may match.
        prerelease_channel: Required prerelease token (e.g. "beta").
        increment: The only increment kind allowed.
    """

    requirements: list[str] = Field(default_factory=list)
    disallowed: list[str] = Field(default_factory=list)
    prerelease_channel: str | None = None
    increment: IncrementKind | None = None

    @property
    def is_empty(self) -> bool:
        return not (
            self.requirements
            or self.disallowed
            or self.prerelease_channel
            or self.increment
        )


class ReleaseCandidate(BaseModel):
    """A crate selected for release together with its next version."""

    crate: CrateInfo
    next_version: str
    increment: IncrementKind
    reasons: list[SelectionReason] = Field(default_factory=list)
    pulled_in_by: list[str] = Field(default_factory=list)

    @property
    def name(self) -> str:
        return self.crate.name


class VersionBump(BaseModel):
    """Records a version change for a crate.

    Attributes:
        old: The version before bumping.
        new: The version after bumping.
    """

    old: str
    new: str


class ManifestEdit(BaseModel):
    """New version for a manifest plus the dependency versions to rewrite.

    ``version`` is None for crates that are not released themselves but
    whose manifest refers to a released crate.
    """

    path: str
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)


class ChangelogEdit(BaseModel):
    """A new release heading and the unreleased content promoted under it."""

    path: str
    heading: str
    content: str = ""


class PlanEntry(BaseModel):
    """All actions needed to release one crate."""

    crate: str
    path: str
    bump: VersionBump
    reasons: list[SelectionReason] = Field(default_factory=list)
    manifest: ManifestEdit
    changelog: ChangelogEdit
    tag: str


class WorkspaceChangelogEdit(BaseModel):
    """Summary section added to the workspace changelog."""

    path: str
    title: str
    releases: list[str] = Field(default_factory=list)
    content: str = ""


class ReleasePlan(BaseModel):
    """Ordered, dependency-first set of release actions.

    Entries never precede an entry for a crate they depend on.
    ``requirement_edits`` update manifests of unreleased crates (typically
    dev-dependents) that refer to a released crate.
    """

    release_name: str
    workspace_tag: str
    date: str
    entries: list[PlanEntry] = Field(default_factory=list)
    workspace_changelog: WorkspaceChangelogEdit | None = None
    requirement_edits: list[ManifestEdit] = Field(default_factory=list)

    @property
    def tags(self) -> list[str]:
        return [e.tag for e in self.entries]

    @property
    def versions(self) -> dict[str, str]:
        return {e.crate: e.bump.new for e in self.entries}


class Diagnostic(BaseModel):
    """A non-fatal warning surfaced to the operator."""

    crate: str | None = None
    message: str

    def __str__(self) -> str:
        return f"[{self.crate}] {self.message}" if self.crate else self.message


class ReleaseOutcome(BaseModel):
    """Everything a single run computes: the plan and how it was reached."""

    plan: ReleasePlan
    candidates: list[ReleaseCandidate] = Field(default_factory=list)
    diagnostics: list[Diagnostic] = Field(default_factory=list)
