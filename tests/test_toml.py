"""Tests for crate_release.toml."""

from __future__ import annotations

from pathlib import Path

import pytest
import tomlkit

from crate_release.errors import ConfigError
from crate_release.toml import (
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
    save_manifest,
)


class TestLoadSaveManifest:
    def test_load(self, tmp_pyproject: Path) -> None:
        doc = load_manifest(tmp_pyproject)
        assert get_project_name(doc, "") == "test-package"

    def test_save_preserves_content(self, tmp_path: Path) -> None:
        manifest = tmp_path / "Cargo.toml"
        manifest.write_text('# keep me\n[package]\nname = "core"\nversion = "1.0.0"\n')
        doc = load_manifest(manifest)
        doc["package"]["version"] = "1.0.1"
        save_manifest(manifest, doc)

        assert manifest.read_text() == (
            '# keep me\n[package]\nname = "core"\nversion = "1.0.1"\n'
        )


class TestFindRootManifest:
    def test_prefers_cargo(self, tmp_path: Path) -> None:
        (tmp_path / "Cargo.toml").write_text("[workspace]\n")
        (tmp_path / "pyproject.toml").write_text("[project]\n")
        assert find_root_manifest(tmp_path) == tmp_path / "Cargo.toml"

    def test_falls_back_to_pyproject(self, tmp_path: Path) -> None:
        (tmp_path / "pyproject.toml").write_text("[project]\n")
        assert find_root_manifest(tmp_path) == tmp_path / "pyproject.toml"

    def test_missing(self, tmp_path: Path) -> None:
        with pytest.raises(ConfigError, match="No Cargo.toml or pyproject.toml"):
            find_root_manifest(tmp_path)


def test_is_cargo_manifest() -> None:
    assert is_cargo_manifest("crates/core/Cargo.toml")
    assert not is_cargo_manifest(Path("packages/a/pyproject.toml"))


class TestWorkspaceTables:
    def test_cargo_members(self) -> None:
        doc = tomlkit.parse('[workspace]\nmembers = ["crates/*", "tools/cli"]\n')
        assert get_workspace_member_globs(doc, cargo=True) == ["crates/*", "tools/cli"]

    def test_uv_members(self) -> None:
        doc = tomlkit.parse('[tool.uv.workspace]\nmembers = ["packages/*"]\n')
        assert get_workspace_member_globs(doc, cargo=False) == ["packages/*"]

    def test_no_members(self) -> None:
        with pytest.raises(ConfigError, match=r"\[workspace\]"):
            get_workspace_member_globs(tomlkit.parse("[workspace]\n"), cargo=True)

    def test_excludes(self) -> None:
        doc = tomlkit.parse('[workspace]\nmembers = ["crates/*"]\nexclude = ["crates/old"]\n')
        assert get_workspace_excludes(doc, cargo=True) == ["crates/old"]
        assert get_workspace_excludes(doc, cargo=False) == []

    def test_cargo_release_settings(self) -> None:
        doc = tomlkit.parse('[workspace.metadata.release]\nselection-filter = "^holo"\n')
        assert get_release_settings(doc, cargo=True) == {"selection-filter": "^holo"}

    def test_pyproject_release_settings(self) -> None:
        doc = tomlkit.parse('[tool.crate-release]\ndefault-increment = "minor"\n')
        assert get_release_settings(doc, cargo=False) == {"default-increment": "minor"}

    def test_release_settings_absent(self) -> None:
        assert get_release_settings(tomlkit.parse(""), cargo=True) == {}


class TestPyprojectFields:
    def test_normalizes_name(self) -> None:
        doc = tomlkit.parse('[project]\nname = "My_Package"')
        assert get_project_name(doc, "fallback") == "my-package"

    def test_name_fallback(self) -> None:
        assert get_project_name(tomlkit.parse(""), "fallback") == "fallback"

    def test_version_default(self) -> None:
        assert get_project_version(tomlkit.parse("[project]")) == "0.0.0"

    def test_all_dependency_strings(self, tmp_pyproject: Path) -> None:
        deps = get_all_dependency_strings(load_manifest(tmp_pyproject))
        assert deps == [
            "requests>=2.0",
            "internal-dep>=1.0",
            "pytest>=8.0",
            "another-internal>=0.5",
            "pytest>=8.0",
            "group-internal>=0.1",
        ]

    def test_normal_only_without_optional(self, tmp_pyproject: Path) -> None:
        deps = get_all_dependency_strings(
            load_manifest(tmp_pyproject), kinds=["normal"], exclude_optional=True
        )
        assert deps == ["requests>=2.0", "internal-dep>=1.0"]

    def test_include_group_entries_skipped(self) -> None:
        doc = tomlkit.parse(
            '[dependency-groups]\ndev = ["a>=1", {include-group = "test"}]\ntest = ["b"]\n'
        )
        assert get_all_dependency_strings(doc) == ["a>=1", "b"]

    def test_dependency_names(self) -> None:
        names = pyproject_dependency_names(["My_Lib[extra]>=1.0", "not a requirement!", "b"])
        assert names == ["my-lib", "b"]


class TestCargoFields:
    def test_package_name(self, sample_cargo_doc: tomlkit.TOMLDocument) -> None:
        assert get_package_name(sample_cargo_doc, "fallback") == "my-crate"

    def test_package_version(self, sample_cargo_doc: tomlkit.TOMLDocument) -> None:
        assert get_package_version(sample_cargo_doc) == "2.0.0"

    def test_inherited_version(self) -> None:
        doc = tomlkit.parse('[package]\nname = "a"\nversion.workspace = true\n')
        root = tomlkit.parse('[workspace.package]\nversion = "0.4.2"\n')
        assert get_package_version(doc, root) == "0.4.2"

    def test_missing_version(self) -> None:
        assert get_package_version(tomlkit.parse('[package]\nname = "a"\n')) == "0.0.0"

    def test_normal_and_build_dependencies(
        self, sample_cargo_doc: tomlkit.TOMLDocument
    ) -> None:
        assert get_cargo_dependencies(sample_cargo_doc) == [
            "serde",
            "core-lib",
            "util",
            "maybe",
            "codegen",
            "unix-only",
        ]

    def test_exclude_optional(self, sample_cargo_doc: tomlkit.TOMLDocument) -> None:
        deps = get_cargo_dependencies(sample_cargo_doc, exclude_optional=True)
        assert "maybe" not in deps
        assert "core-lib" in deps

    def test_development_dependencies(
        self, sample_cargo_doc: tomlkit.TOMLDocument
    ) -> None:
        assert get_cargo_dependencies(sample_cargo_doc, kinds=["development"]) == ["testkit"]
