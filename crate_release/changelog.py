"""Changelog parsing and rendering.

A crate changelog is a Markdown document with an optional YAML front
matter block followed by level-2 sections:

    ---
    unreleasable: true
    ---
    # Changelog

    ## Unreleased
    - something new

    ## 0.1.0 - 2024-01-31
    - first release

Sections whose heading names a version are past releases; everything
else is unreleased content. Parsing is pure: callers pass text in and
get models or new text back.
"""

from __future__ import annotations

import re
from collections.abc import Mapping
from concurrent.futures import ThreadPoolExecutor

import yaml

from .errors import MalformedChangelog
from .models import ChangelogBlock, ChangelogState, Diagnostic, ParsedChangelog
from .versions import parse_version

FRONT_MATTER_DELIMITER = "---"
DEFAULT_PREAMBLE = "# Changelog\n\n"

_HEADING = re.compile(r"^## (?!#)(.*?)\s*$")
_FENCE = re.compile(r"^\s*(```|~~~)")
_UNRELEASED = re.compile(r"^\[?unreleased\]?$", re.IGNORECASE)
_VERSION_HEADING = re.compile(
    r"^\[?v?(?P<version>\d[^\]\s]*)\]?(?:\s+-\s+(?P<date>.+))?$"
)


def split_front_matter(crate: str, text: str) -> tuple[str | None, str]:
    """Separate the front matter block from the document body.

    Returns:
        Tuple of (raw front matter or None, body text).

    Raises:
        MalformedChangelog: If the opening delimiter is never closed.
    """
    lines = text.splitlines(keepends=True)
    if not lines or lines[0].strip() != FRONT_MATTER_DELIMITER:
        return None, text
    for i in range(1, len(lines)):
        if lines[i].strip() == FRONT_MATTER_DELIMITER:
            return "".join(lines[1:i]), "".join(lines[i + 1 :])
    raise MalformedChangelog(crate, "unterminated front matter block")


def parse_front_matter(crate: str, raw: str) -> tuple[dict, list[Diagnostic]]:
    """Load front matter flags, degrading to no flags on bad input."""
    try:
        data = yaml.safe_load(raw)
    except yaml.YAMLError as exc:
        problem = str(exc).splitlines()[0]
        return {}, [Diagnostic(crate=crate, message=f"unparsable front matter ignored: {problem}")]
    if data is None:
        return {}, []
    if not isinstance(data, Mapping):
        return {}, [Diagnostic(crate=crate, message="front matter is not a mapping, ignored")]
    return {str(k): v for k, v in data.items()}, []


def _parse_heading(heading: str) -> ChangelogBlock:
    if _UNRELEASED.match(heading):
        return ChangelogBlock(heading=heading, unreleased=True)
    m = _VERSION_HEADING.match(heading)
    if m:
        try:
            version = str(parse_version(m.group("version")))
        except ValueError:
            return ChangelogBlock(heading=heading)
        return ChangelogBlock(heading=heading, version=version, date=m.group("date"))
    return ChangelogBlock(heading=heading)


def parse_changelog(crate: str, text: str) -> tuple[ParsedChangelog, list[Diagnostic]]:
    """Parse a changelog into front matter flags, preamble and blocks.

    Headings inside fenced code blocks are treated as body text.

    Raises:
        MalformedChangelog: If the front matter block is unterminated.
    """
    raw, body = split_front_matter(crate, text)
    flags, diagnostics = parse_front_matter(crate, raw) if raw is not None else ({}, [])

    preamble: list[str] = []
    blocks: list[ChangelogBlock] = []
    current: list[str] = preamble
    in_fence = False
    for line in body.splitlines(keepends=True):
        if _FENCE.match(line):
            in_fence = not in_fence
        m = None if in_fence else _HEADING.match(line)
        if m:
            if blocks:
                blocks[-1].body = "".join(current)
            blocks.append(_parse_heading(m.group(1)))
            current = []
        else:
            current.append(line)
    if blocks:
        blocks[-1].body = "".join(current)

    parsed = ParsedChangelog(
        front_matter=raw,
        flags=flags,
        preamble="".join(preamble),
        blocks=blocks,
    )
    return parsed, diagnostics


def unreleased_content(parsed: ParsedChangelog) -> str:
    """Collect all content not attributed to a released version.

    The body of an ``Unreleased`` section is taken as is; any other
    untagged section keeps its heading, demoted one level.
    """
    parts: list[str] = []
    for block in parsed.untagged:
        body = block.body.strip("\n")
        if block.unreleased:
            if body.strip():
                parts.append(body)
        else:
            parts.append(f"### {block.heading}\n\n{body}" if body.strip() else f"### {block.heading}")
    return "\n\n".join(parts)


def inspect_changelog(crate: str, text: str) -> tuple[ChangelogState, list[Diagnostic]]:
    """Extract the selection-relevant state of one crate's changelog.

    Raises:
        MalformedChangelog: If the front matter block is unterminated.
    """
    parsed, diagnostics = parse_changelog(crate, text)

    unreleasable = parsed.flags.get("unreleasable", False)
    if not isinstance(unreleasable, bool):
        diagnostics.append(
            Diagnostic(
                crate=crate,
                message=f"'unreleasable' must be a boolean, got {unreleasable!r}; "
                "treating as releasable",
            )
        )
        unreleasable = False

    content = unreleased_content(parsed)
    state = ChangelogState(
        unreleasable=unreleasable,
        has_unreleased_entries=bool(content.strip()),
        releases=parsed.releases,
        unreleased_content=content,
    )
    return state, diagnostics


def inspect_changelogs(
    texts: Mapping[str, str | None],
    *,
    abort_on_malformed: bool = True,
    max_workers: int | None = None,
) -> tuple[dict[str, ChangelogState], list[Diagnostic]]:
    """Inspect every crate's changelog, one task per crate.

    A missing changelog (None) is treated as an empty document. When
    ``abort_on_malformed`` is False a malformed changelog excludes only
    its crate, which is then reported as unreleasable with the reason
    recorded in ``excluded_reason``.

    Returns:
        Tuple of (crate name → ChangelogState, diagnostics in crate order).

    Raises:
        MalformedChangelog: For the first malformed changelog, by crate
            name, when ``abort_on_malformed`` is True.
    """
    names = sorted(texts)

    def _inspect(name: str) -> tuple[ChangelogState, list[Diagnostic]]:
        text = texts[name]
        if text is None:
            state, diags = inspect_changelog(name, "")
            return state, [Diagnostic(crate=name, message="no changelog found"), *diags]
        try:
            return inspect_changelog(name, text)
        except MalformedChangelog as exc:
            if abort_on_malformed:
                raise
            excluded = ChangelogState(
                unreleasable=True, excluded_reason=f"malformed changelog: {exc.reason}"
            )
            return excluded, [
                Diagnostic(crate=name, message=f"{exc.reason}; excluded from release")
            ]

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        results = list(pool.map(_inspect, names))

    states: dict[str, ChangelogState] = {}
    diagnostics: list[Diagnostic] = []
    for name, (state, diags) in zip(names, results):
        states[name] = state
        diagnostics.extend(diags)
    return states, diagnostics


def render_changelog(parsed: ParsedChangelog) -> str:
    """Serialize a parsed changelog back to Markdown."""
    out: list[str] = []
    if parsed.front_matter is not None:
        out.append(f"{FRONT_MATTER_DELIMITER}\n{parsed.front_matter}{FRONT_MATTER_DELIMITER}\n")
    out.append(parsed.preamble)
    for block in parsed.blocks:
        out.append(f"## {block.heading}\n{block.body}")
    return "".join(out)


def _ensure_preamble(parsed: ParsedChangelog) -> None:
    if not parsed.preamble.strip() and not parsed.blocks:
        parsed.preamble = DEFAULT_PREAMBLE
    elif parsed.preamble.strip() and not parsed.preamble.endswith("\n\n"):
        parsed.preamble = parsed.preamble.rstrip("\n") + "\n\n"


def _section_body(content: str) -> str:
    return f"\n{content.strip()}\n\n" if content.strip() else "\n"


def promote_unreleased(text: str, heading: str, crate: str = "") -> str:
    """Move all unreleased content under a new release heading.

    An empty ``Unreleased`` section stays on top, followed by the new
    release section and then the previously released sections.
    """
    parsed, _ = parse_changelog(crate, text)
    content = unreleased_content(parsed)
    marker = next((b.heading for b in parsed.blocks if b.unreleased), "Unreleased")
    released = [b for b in parsed.blocks if b.version is not None]
    if released and not released[-1].body.endswith("\n"):
        released[-1].body += "\n"

    _ensure_preamble(parsed)
    parsed.blocks = [
        ChangelogBlock(heading=marker, unreleased=True, body="\n"),
        ChangelogBlock(heading=heading, body=_section_body(content)),
        *released,
    ]
    return render_changelog(parsed)


def format_workspace_release(releases: list[tuple[str, str]]) -> str:
    """Render the per-crate subsections of a workspace release section.

    Args:
        releases: (title, content) pairs, e.g. ("core-1.0.1", "- fix").
    """
    sections: list[str] = []
    for title, content in releases:
        section = f"### {title}"
        if content.strip():
            section += f"\n\n{content.strip()}"
        sections.append(section)
    return "\n\n".join(sections)


def prepend_workspace_release(text: str, title: str, content: str) -> str:
    """Insert a workspace release section above all earlier releases."""
    parsed, _ = parse_changelog("workspace", text)
    _ensure_preamble(parsed)
    if parsed.blocks and not parsed.blocks[-1].body.endswith("\n"):
        parsed.blocks[-1].body += "\n"
    idx = 0
    while idx < len(parsed.blocks) and parsed.blocks[idx].unreleased:
        idx += 1
    parsed.blocks.insert(idx, ChangelogBlock(heading=title, body=_section_body(content)))
    return render_changelog(parsed)
