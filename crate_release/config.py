"""Release configuration.

Settings live in the workspace root manifest, under
``[workspace.metadata.release]`` in Cargo.toml or ``[tool.crate-release]``
in pyproject.toml:

    [workspace.metadata.release]
    selection-filter = "^holo"
    default-increment = "patch"

    [workspace.metadata.release.markers]
    major = ["BREAKING"]

    [workspace.metadata.release.crates.core]
    constraint = ">=1.2.0, <2.0.0"
    prerelease-channel = "beta"
    allowed-blockers = ["version-constraint"]

Command-line flags are applied on top with ``with_overrides``.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from .errors import ConfigError
from .models import IncrementKind, VersionConstraint
from .versions import parse_requirement


def _kebab(name: str) -> str:
    return name.replace("_", "-")


class DependencyKind(str, Enum):
    """Manifest dependency tables that contribute graph edges."""

    NORMAL = "normal"
    BUILD = "build"
    DEVELOPMENT = "development"


class BlockerKind(str, Enum):
    """Conditions that normally keep a crate out of a release.

    Listing a kind under ``allowed-blockers`` releases matching crates
    anyway, with a diagnostic, whether they were selected directly or
    pulled in by a dependency.
    """

    UNRELEASABLE = "unreleasable"
    VERSION_CONSTRAINT = "version-constraint"


def _default_markers() -> dict[IncrementKind, list[str]]:
    return {
        IncrementKind.MAJOR: ["BREAKING"],
        IncrementKind.MINOR: ["### Added"],
    }


def _check_requirements(values: list[str]) -> list[str]:
    for value in values:
        parse_requirement(value)
    return values


class CrateConfig(BaseModel):
    """Per-crate version constraint settings."""

    model_config = ConfigDict(alias_generator=_kebab, populate_by_name=True, extra="forbid")

    constraint: str | None = None
    disallowed: list[str] = Field(default_factory=list)
    prerelease_channel: str | None = None
    increment: IncrementKind | None = None
    preferred_increment: IncrementKind | None = None
    allowed_blockers: list[BlockerKind] = Field(default_factory=list)

    @field_validator("constraint")
    @classmethod
    def _valid_constraint(cls, value: str | None) -> str | None:
        if value is not None:
            parse_requirement(value)
        return value

    @field_validator("disallowed")
    @classmethod
    def _valid_disallowed(cls, value: list[str]) -> list[str]:
        return _check_requirements(value)


class ReleaseConfig(BaseModel):
    """Workspace-wide release settings."""

    model_config = ConfigDict(alias_generator=_kebab, populate_by_name=True, extra="forbid")

    selection_filter: str = ".*"
    enforced_version_reqs: list[str] = Field(default_factory=list)
    disallowed_version_reqs: list[str] = Field(default_factory=list)
    dependency_kinds: list[DependencyKind] = Field(
        default_factory=lambda: [DependencyKind.NORMAL, DependencyKind.BUILD]
    )
    exclude_optional_deps: bool = False
    abort_on_malformed_changelog: bool = True
    default_increment: IncrementKind = IncrementKind.PATCH
    preferred_increment: IncrementKind | None = None
    markers: dict[IncrementKind, list[str]] = Field(default_factory=_default_markers)
    changelog_name: str = "CHANGELOG.md"
    max_workers: int | None = None
    allowed_blockers: list[BlockerKind] = Field(default_factory=list)
    crates: dict[str, CrateConfig] = Field(default_factory=dict)

    @field_validator("selection_filter")
    @classmethod
    def _valid_regex(cls, value: str) -> str:
        try:
            re.compile(value)
        except re.error as exc:
            raise ValueError(f"invalid selection filter {value!r}: {exc}") from exc
        return value

    @field_validator("enforced_version_reqs", "disallowed_version_reqs")
    @classmethod
    def _valid_reqs(cls, value: list[str]) -> list[str]:
        return _check_requirements(value)

    def selects(self, name: str) -> bool:
        """Whether the selection filter admits a crate as a direct candidate."""
        return re.search(self.selection_filter, name) is not None

    def constraint_for(self, name: str) -> VersionConstraint:
        """Merge inherited workspace requirements with the crate's own."""
        crate = self.crates.get(name, CrateConfig())
        requirements = list(self.enforced_version_reqs)
        if crate.constraint:
            requirements.append(crate.constraint)
        return VersionConstraint(
            requirements=requirements,
            disallowed=[*self.disallowed_version_reqs, *crate.disallowed],
            prerelease_channel=crate.prerelease_channel,
            increment=crate.increment,
        )

    def allows(self, name: str, blocker: BlockerKind) -> bool:
        """Whether a blocker is waived for a crate, workspace-wide or per crate."""
        crate = self.crates.get(name)
        return blocker in self.allowed_blockers or (
            crate is not None and blocker in crate.allowed_blockers
        )

    def preferred_for(self, name: str) -> IncrementKind | None:
        """Explicit increment preference: per-crate first, then workspace."""
        crate = self.crates.get(name)
        if crate is not None and crate.preferred_increment is not None:
            return crate.preferred_increment
        return self.preferred_increment

    def with_overrides(self, **overrides: Any) -> ReleaseConfig:
        """Return a copy with command-line values applied.

        None values and empty lists are ignored; list values extend the
        configured lists rather than replacing them.
        """
        data = self.model_dump()
        for key, value in overrides.items():
            if value is None or value == [] or value == ():
                continue
            if isinstance(data.get(key), list):
                data[key] = [*data[key], *value]
            else:
                data[key] = value
        return build_config(data)


def build_config(data: Mapping[str, Any] | None) -> ReleaseConfig:
    """Validate raw settings into a ReleaseConfig.

    Raises:
        ConfigError: If any setting is invalid.
    """
    try:
        return ReleaseConfig.model_validate(dict(data or {}))
    except ValidationError as exc:
        raise ConfigError(f"Invalid release configuration:\n{exc}") from exc
