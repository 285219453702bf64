"""Tests for monorel.toml."""

from __future__ import annotations

from pathlib import Path

import pytest
import tomlkit

from monorel.errors import ConfigError
from monorel.toml import (
    dependency_lists,
    get_all_dependency_strings,
    get_project_name,
    get_project_version,
    get_tool_config,
    get_uv_sources,
    get_workspace_exclude_globs,
    get_workspace_member_globs,
    is_path_source,
    is_private,
    load_pyproject,
)


class TestLoadPyproject:
    def test_load(self, tmp_pyproject: Path) -> None:
        doc = load_pyproject(tmp_pyproject)
        assert get_project_name(doc, "") == "test-package"

    def test_dumps_preserves_content(self, tmp_pyproject: Path) -> None:
        doc = load_pyproject(tmp_pyproject)
        doc["project"]["version"] = "9.9.9"  # type: ignore[index]

        reloaded = tomlkit.parse(tomlkit.dumps(doc))
        assert get_project_version(reloaded) == "9.9.9"
        assert get_project_name(reloaded, "") == "test-package"

    def test_invalid_toml_raises_config_error(self, tmp_path: Path) -> None:
        path = tmp_path / "pyproject.toml"
        path.write_text("[project\nname = ")
        with pytest.raises(ConfigError, match="unable to parse"):
            load_pyproject(path)


class TestGetProjectName:
    def test_normalizes_name(self) -> None:
        doc = tomlkit.parse('[project]\nname = "My_Package"')
        assert get_project_name(doc, "fallback") == "my-package"

    def test_returns_fallback_when_no_project(self) -> None:
        assert get_project_name(tomlkit.parse(""), "fallback") == "fallback"


class TestGetProjectVersion:
    def test_returns_version(self, sample_toml_doc: tomlkit.TOMLDocument) -> None:
        assert get_project_version(sample_toml_doc) == "2.0.0"

    def test_returns_default_when_missing(self) -> None:
        assert get_project_version(tomlkit.parse("[project]")) == "0.0.0"


class TestIsPrivate:
    def test_private_classifier(self) -> None:
        doc = tomlkit.parse('[project]\nclassifiers = ["Private :: Do Not Upload"]')
        assert is_private(doc)

    def test_public(self, sample_toml_doc: tomlkit.TOMLDocument) -> None:
        assert not is_private(sample_toml_doc)


class TestDependencyLists:
    def test_kinds(self, tmp_pyproject: Path) -> None:
        doc = load_pyproject(tmp_pyproject)
        kinds = [kind for kind, _ in dependency_lists(doc)]
        assert kinds == ["normal", "normal", "dev", "build"]

    def test_uv_dev_dependencies(self) -> None:
        doc = tomlkit.parse('[tool.uv]\ndev-dependencies = ["pkg-x"]')
        assert get_all_dependency_strings(doc) == [("dev", "pkg-x")]

    def test_skips_include_group_tables(self) -> None:
        doc = tomlkit.parse(
            '[dependency-groups]\ntest = ["pytest"]\nall = [{include-group = "test"}, "rich"]'
        )
        assert get_all_dependency_strings(doc) == [
            ("dev", "pytest"),
            ("dev", "rich"),
        ]

    def test_empty_when_no_deps(self) -> None:
        assert get_all_dependency_strings(tomlkit.parse("[project]\nname = 'foo'")) == []


class TestUvSources:
    def test_keys_are_canonical(self, sample_toml_doc: tomlkit.TOMLDocument) -> None:
        assert set(get_uv_sources(sample_toml_doc)) == {"my-lib", "remote"}

    def test_path_sources(self, sample_toml_doc: tomlkit.TOMLDocument) -> None:
        sources = get_uv_sources(sample_toml_doc)
        assert is_path_source(sources["my-lib"])
        assert not is_path_source(sources["remote"])

    def test_path_key_and_lists(self) -> None:
        assert is_path_source({"path": "../lib", "editable": True})
        assert is_path_source([{"index": "internal"}, {"workspace": True}])
        assert not is_path_source(None)


class TestToolConfig:
    def test_missing_table_is_empty(self) -> None:
        assert get_tool_config(tomlkit.parse(""), "monorel") == {}

    def test_returns_plain_data(self) -> None:
        doc = tomlkit.parse('[tool.monorel]\nexclude = ["legacy/*"]')
        assert get_tool_config(doc, "monorel") == {"exclude": ["legacy/*"]}


class TestWorkspaceGlobs:
    def test_returns_members(self, sample_toml_doc: tomlkit.TOMLDocument) -> None:
        assert get_workspace_member_globs(sample_toml_doc) == ["packages/*", "libs/*"]

    def test_returns_excludes(self, sample_toml_doc: tomlkit.TOMLDocument) -> None:
        assert get_workspace_exclude_globs(sample_toml_doc) == ["packages/legacy"]

    def test_missing_members_raises(self) -> None:
        with pytest.raises(ConfigError, match="members"):
            get_workspace_member_globs(tomlkit.parse("[project]\nname = 'x'"))
