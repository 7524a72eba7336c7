"""Error types raised by the release engine.

All fatal conditions derive from ReleaseError so callers (the CLI) can
turn them into a single user-facing failure. No plan is ever produced
once one of these has been raised.
"""

from __future__ import annotations


class ReleaseError(Exception):
    """Base class for every fatal release condition."""


class ConfigError(ReleaseError):
    """The release configuration could not be loaded or validated."""


class CyclicDependency(ReleaseError):
    """The workspace dependency graph contains a cycle."""

    def __init__(self, crates: set[str] | list[str]) -> None:
        self.crates = sorted(crates)
        super().__init__(
            f"Dependency cycle detected involving: {', '.join(self.crates)}"
        )


class DuplicateCrate(ReleaseError):
    """Two manifests declare the same crate name."""

    def __init__(self, name: str, paths: list[str]) -> None:
        self.name = name
        self.paths = paths
        super().__init__(
            f"Crate '{name}' is declared by more than one manifest: "
            + ", ".join(paths)
        )


class MalformedChangelog(ReleaseError):
    """A changelog cannot be split into front matter and body."""

    def __init__(self, crate: str, reason: str) -> None:
        self.crate = crate
        self.reason = reason
        super().__init__(f"[{crate}] malformed changelog: {reason}")


class NoAllowedVersion(ReleaseError):
    """No increment of the current version satisfies the constraint."""

    def __init__(self, crate: str, current: str, tried: list[str]) -> None:
        self.crate = crate
        self.current = current
        self.tried = tried
        super().__init__(f"[{crate}] {self.detail}")

    @property
    def detail(self) -> str:
        attempted = ", ".join(self.tried) if self.tried else "<none>"
        return f"no allowed version after {self.current} (tried: {attempted})"


class BlockedDependent(ReleaseError):
    """A crate pulled in by dependency closure cannot be released."""

    def __init__(self, crate: str, dependency: str, reason: str) -> None:
        self.crate = crate
        self.dependency = dependency
        self.reason = reason
        super().__init__(
            f"[{crate}] must be released because it depends on '{dependency}', "
            f"but it is blocked: {reason}"
        )
