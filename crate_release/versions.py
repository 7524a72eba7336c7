"""Version parsing, bumping and constraint resolution.

Handles conversion between version strings and semver objects, with
special handling for incomplete version strings (e.g., "1.0" → "1.0.0"),
and decides the next version of a crate under its constraint.
"""

from __future__ import annotations

import re
from collections.abc import Mapping

import semver

from .errors import NoAllowedVersion
from .models import IncrementKind, VersionConstraint

# Least to most significant; prerelease only takes part with a channel
INCREMENT_ORDER = [
    IncrementKind.PRERELEASE,
    IncrementKind.PATCH,
    IncrementKind.MINOR,
    IncrementKind.MAJOR,
]

_CLAUSE = re.compile(r"^(>=|<=|==|!=|>|<|=)?\s*(\S+)$")


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-rc.1+build.5" → "1.2.3-rc.1+build.5"

    Only the first 3 numeric components are used; prerelease and build
    metadata are preserved.
    """
    version_str = version_str.strip().removeprefix("v")
    cut = len(version_str)
    for sep in ("-", "+"):
        idx = version_str.find(sep)
        if idx != -1:
            cut = min(cut, idx)
    core, suffix = version_str[:cut], version_str[cut:]
    parts = core.split(".")
    # Pad with zeros to ensure we have at least 3 parts
    while len(parts) < 3:
        parts.append("0")
    return semver.Version.parse(".".join(parts[:3]) + suffix)


def bump_patch(version_str: str) -> str:
    """Increment the patch version and return as a string.

    Examples:
        "1.2.3" → "1.2.4"
        "1.0" → "1.0.1"
        "2" → "2.0.1"
    """
    return str(parse_version(version_str).bump_patch())


def develop_version(version_str: str) -> str:
    """Next development version after a release: "1.2.3" → "1.2.4-dev.0"."""
    return f"{bump_patch(version_str)}-dev.0"


def prerelease_token(version: semver.Version) -> str | None:
    """First prerelease identifier ("1.0.0-beta.2" → "beta")."""
    if not version.prerelease:
        return None
    return version.prerelease.split(".")[0]


def bump(
    version: semver.Version, kind: IncrementKind, channel: str | None = None
) -> semver.Version:
    """Apply one increment kind, optionally landing on a prerelease channel.

    Plain increments follow semver's next_version rules, so a prerelease
    is finalized by the smallest matching increment ("1.1.0-rc.1" + minor
    → "1.1.0"). With a channel the result is the first prerelease of that
    channel on the incremented version ("1.0.0" + minor, "beta" →
    "1.1.0-beta.1").
    """
    if kind is IncrementKind.PRERELEASE:
        token = channel or prerelease_token(version) or "rc"
        if prerelease_token(version) == token:
            return version.bump_prerelease(token).replace(build=None)
        if version.prerelease:
            switched = version.replace(prerelease=f"{token}.1", build=None)
            if switched > version:
                return switched
        return version.bump_patch().replace(prerelease=f"{token}.1")

    nxt = version.next_version(kind.value)
    if channel:
        return nxt.replace(prerelease=f"{channel}.1", build=None)
    return nxt


def parse_requirement(expr: str) -> list[str]:
    """Split a requirement like ">=1.2, <2" into semver match clauses.

    Each clause is normalized to an operator plus a full version
    (">=1.2.0", "<2.0.0"); a bare version means equality.

    Raises:
        ValueError: If a clause cannot be parsed.
    """
    clauses: list[str] = []
    for raw in expr.split(","):
        raw = raw.strip()
        if not raw:
            continue
        m = _CLAUSE.match(raw)
        if not m:
            raise ValueError(f"invalid version requirement: {raw!r}")
        op = m.group(1) or "=="
        if op == "=":
            op = "=="
        try:
            version = parse_version(m.group(2))
        except ValueError as exc:
            raise ValueError(f"invalid version requirement: {raw!r}") from exc
        clauses.append(f"{op}{version}")
    if not clauses:
        raise ValueError(f"empty version requirement: {expr!r}")
    return clauses


def _matches(version: semver.Version, expr: str) -> bool:
    return all(version.match(clause) for clause in parse_requirement(expr))


def satisfies(version: semver.Version, constraint: VersionConstraint) -> bool:
    """Check a candidate version against every part of a constraint."""
    if constraint.is_empty:
        return True
    if not all(_matches(version, req) for req in constraint.requirements):
        return False
    if any(_matches(version, req) for req in constraint.disallowed):
        return False
    if constraint.prerelease_channel:
        return prerelease_token(version) == constraint.prerelease_channel
    return True


def infer_increment(
    content: str, markers: Mapping[IncrementKind, list[str]]
) -> IncrementKind | None:
    """Pick the most significant increment whose marker appears in content.

    Returns None when no configured marker is present, leaving the choice
    to the caller's default.
    """
    for kind in reversed(INCREMENT_ORDER):
        if any(marker and marker in content for marker in markers.get(kind, [])):
            return kind
    return None


def candidate_kinds(
    constraint: VersionConstraint,
    preferred: IncrementKind | None,
    default: IncrementKind = IncrementKind.PATCH,
) -> list[IncrementKind]:
    """Increment kinds to try, in order.

    A constraint's required increment is the only option. Otherwise the
    walk starts at the preferred kind (or the default, or prerelease when
    a channel is set) and climbs towards major.
    """
    if constraint.increment is not None:
        return [constraint.increment]
    if preferred is not None:
        start = preferred
    elif constraint.prerelease_channel:
        start = IncrementKind.PRERELEASE
    else:
        start = default
    return INCREMENT_ORDER[INCREMENT_ORDER.index(start) :]


def resolve_next_version(
    crate: str,
    current: str,
    constraint: VersionConstraint | None = None,
    preferred: IncrementKind | None = None,
    default: IncrementKind = IncrementKind.PATCH,
) -> tuple[str, IncrementKind]:
    """Choose the next version of a crate.

    Tries each candidate increment kind in order and returns the first
    version that is strictly greater than ``current`` and satisfies the
    constraint.

    Args:
        crate: Crate name, used for error reporting.
        current: Current manifest version.
        constraint: Optional constraint; None allows any increment.
        preferred: Increment kind from an override or changelog markers.
        default: Increment kind used when nothing is preferred.

    Returns:
        Tuple of (next version string, increment kind used).

    Raises:
        NoAllowedVersion: If no candidate satisfies the constraint.
    """
    constraint = constraint or VersionConstraint()
    cur = parse_version(current)
    tried: list[str] = []
    for kind in candidate_kinds(constraint, preferred, default):
        candidate = bump(cur, kind, constraint.prerelease_channel)
        tried.append(str(candidate))
        if candidate > cur and satisfies(candidate, constraint):
            return str(candidate), kind
    raise NoAllowedVersion(crate, current, tried)
