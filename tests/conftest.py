"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest
import tomlkit


def _changelog(
    unreleased: str = "",
    releases: tuple[str, ...] = ("1.0.0",),
    front_matter: str | None = None,
) -> str:
    parts: list[str] = []
    if front_matter is not None:
        parts.append(f"---\n{front_matter}---\n")
    parts.append("# Changelog\n\n## Unreleased\n\n")
    if unreleased:
        parts.append(f"{unreleased}\n\n")
    for version in releases:
        parts.append(f"## {version} - 2024-01-01\n\n- released {version}\n\n")
    return "".join(parts)


@pytest.fixture
def make_changelog() -> Callable[..., str]:
    """Build changelog text with an Unreleased section and past releases."""
    return _changelog


@pytest.fixture
def cargo_workspace(tmp_path: Path) -> Path:
    """Create an empty Cargo workspace with members under crates/."""
    (tmp_path / "Cargo.toml").write_text('[workspace]\nmembers = ["crates/*"]\n')
    return tmp_path


@pytest.fixture
def add_crate(cargo_workspace: Path) -> Callable[..., Path]:
    """Add a crate (manifest and optional changelog) to the workspace."""

    def _add(
        name: str,
        version: str = "1.0.0",
        deps: dict[str, str] | None = None,
        changelog: str | None = None,
    ) -> Path:
        crate_dir = cargo_workspace / "crates" / name
        crate_dir.mkdir(parents=True)
        lines = ["[package]", f'name = "{name}"', f'version = "{version}"', 'edition = "2021"']
        if deps:
            lines += ["", "[dependencies]"]
            lines += [
                f'{dep} = {{ path = "../{dep}", version = "{dep_version}" }}'
                for dep, dep_version in deps.items()
            ]
        lines += ["", "[dependencies.serde]", 'version = "1.0"']
        (crate_dir / "Cargo.toml").write_text("\n".join(lines) + "\n")
        if changelog is not None:
            (crate_dir / "CHANGELOG.md").write_text(changelog)
        return crate_dir

    return _add


@pytest.fixture
def tmp_pyproject(tmp_path: Path) -> Path:
    """Create a temporary pyproject.toml file."""
    content = """\
[project]
name = "test-package"
version = "1.0.0"
dependencies = [
    "requests>=2.0",
    "internal-dep>=1.0",
]

[project.optional-dependencies]
dev = ["pytest>=8.0", "another-internal>=0.5"]

[dependency-groups]
test = ["pytest>=8.0", "group-internal>=0.1"]
"""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(content)
    return pyproject


@pytest.fixture
def sample_cargo_doc() -> tomlkit.TOMLDocument:
    """Create a sample Cargo manifest document."""
    content = """\
[package]
name = "my-crate"
version = "2.0.0"

[dependencies]
serde = "1.0"
core-lib = { path = "../core-lib", version = "1.0.0" }
renamed = { package = "util", path = "../util", version = "0.3.0" }
maybe = { path = "../maybe", version = "0.1.0", optional = true }

[build-dependencies]
codegen = { path = "../codegen", version = "0.2.0" }

[dev-dependencies]
testkit = { path = "../testkit", version = "0.1.0" }

[target.'cfg(unix)'.dependencies]
unix-only = { path = "../unix-only", version = "0.5.0" }
"""
    return tomlkit.parse(content)
