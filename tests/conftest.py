"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path
from typing import Any

import pytest
import tomlkit
from fakes import FakeClock


def _package_manifest(
    name: str,
    version: str,
    deps: list[str],
    *,
    private: bool = False,
    independent: bool = False,
    dev: list[str] | None = None,
) -> str:
    lines = ["[project]", f'name = "{name}"', f'version = "{version}"']
    if private:
        lines.append('classifiers = ["Private :: Do Not Upload"]')
    lines.append("dependencies = [" + ", ".join(f'"{d}"' for d in deps) + "]")
    if dev:
        lines += ["", "[dependency-groups]", "dev = [" + ", ".join(f'"{d}"' for d in dev) + "]"]
    if independent:
        lines += ["", "[tool.monorel]", "independent = true"]
    return "\n".join(lines) + "\n"


WorkspaceFactory = Callable[..., Path]


@pytest.fixture
def make_workspace(tmp_path: Path) -> WorkspaceFactory:
    """Build a uv workspace under tmp_path.

    ``packages`` maps a package name to a dict with optional keys
    ``version``, ``deps``, ``dev``, ``private``, ``independent`` and
    ``path``. Every package is declared as a workspace source in the
    root manifest; ``root_extra`` is appended to the root manifest.
    """

    def _make(packages: dict[str, dict[str, Any]], root_extra: str = "") -> Path:
        root_lines = ["[tool.uv.workspace]", 'members = ["packages/*"]', "", "[tool.uv.sources]"]
        root_lines += [f"{name} = {{ workspace = true }}" for name in packages]
        (tmp_path / "pyproject.toml").write_text("\n".join(root_lines) + "\n" + root_extra)

        for name, spec in packages.items():
            pkg_dir = tmp_path / spec.get("path", f"packages/{name}")
            pkg_dir.mkdir(parents=True, exist_ok=True)
            (pkg_dir / "pyproject.toml").write_text(
                _package_manifest(
                    name,
                    spec.get("version", "0.1.0"),
                    spec.get("deps", []),
                    private=spec.get("private", False),
                    independent=spec.get("independent", False),
                    dev=spec.get("dev"),
                )
            )
        return tmp_path

    return _make


@pytest.fixture
def abc_workspace(make_workspace: WorkspaceFactory) -> Path:
    """Independent ``a``, plus ``b`` and ``c`` in the default unit; c depends on b."""
    return make_workspace(
        {
            "a": {"version": "1.0.0", "independent": True},
            "b": {"version": "0.1.0"},
            "c": {"version": "0.1.0", "deps": ["b>=0.1.0,<0.2.0"]},
        }
    )


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

[build-system]
requires = ["hatchling", "build-internal"]
"""
    pyproject = tmp_path / "pyproject.toml"
    pyproject.write_text(content)
    return pyproject


@pytest.fixture
def sample_toml_doc() -> tomlkit.TOMLDocument:
    """Create a sample TOML document."""
    content = """\
[project]
name = "my-package"
version = "2.0.0"
dependencies = ["click>=8.0", "pydantic>=2.0"]

[project.optional-dependencies]
dev = ["pytest>=8.0"]
docs = ["sphinx>=7.0"]

[dependency-groups]
test = ["hypothesis>=6.0"]

[tool.uv.workspace]
members = ["packages/*", "libs/*"]
exclude = ["packages/legacy"]

[tool.uv.sources]
My_Lib = { workspace = true }
remote = { git = "https://example.com/remote.git" }
"""
    return tomlkit.parse(content)


@pytest.fixture
def fake_clock() -> FakeClock:
    return FakeClock()
