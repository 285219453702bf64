"""TOML reading and writing utilities.

Uses tomlkit to preserve formatting and comments when modifying pyproject.toml
files. This is important for maintaining readable, diff-friendly files.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import tomlkit
from packaging.utils import canonicalize_name
from tomlkit.exceptions import ParseError

from .errors import ConfigError

PRIVATE_CLASSIFIER = "Private :: Do Not Upload"


def load_pyproject(path: Path) -> tomlkit.TOMLDocument:
    """Load and parse a pyproject.toml file.

    Returns a TOMLDocument that preserves formatting when modified and saved.
    """
    try:
        return tomlkit.parse(path.read_text())
    except ParseError as exc:
        raise ConfigError(f"unable to parse {path}: {exc}") from exc


def get_project_name(doc: tomlkit.TOMLDocument, fallback: str) -> str:
    """Extract the canonical package name from [project].name.

    Names are normalized per PEP 503 (lowercase, hyphens instead of
    underscores) for consistent comparison.

    Args:
        doc: Parsed pyproject.toml document.
        fallback: Value to return if name is not specified.
    """
    return canonicalize_name(doc.get("project", {}).get("name", fallback))


def get_project_version(doc: tomlkit.TOMLDocument) -> str:
    """Extract version from [project].version, defaulting to '0.0.0'."""
    return str(doc.get("project", {}).get("version", "0.0.0"))


def has_project(doc: tomlkit.TOMLDocument) -> bool:
    return "name" in doc.get("project", {})


def is_private(doc: tomlkit.TOMLDocument) -> bool:
    """True when the trove classifiers forbid uploading to an index."""
    classifiers = doc.get("project", {}).get("classifiers", [])
    return PRIVATE_CLASSIFIER in [str(c) for c in classifiers]


def dependency_lists(doc: tomlkit.TOMLDocument) -> list[tuple[str, list[Any]]]:
    """Return every list of PEP 508 strings in the document with its kind.

    Kinds:
    - "normal": [project].dependencies and [project].optional-dependencies.*
    - "dev": [dependency-groups].* and [tool.uv].dev-dependencies
    - "build": [build-system].requires

    The lists are the live tomlkit arrays, so callers may edit them in place.
    """
    lists: list[tuple[str, list[Any]]] = []
    project = doc.get("project", {})

    deps = project.get("dependencies")
    if isinstance(deps, list):
        lists.append(("normal", deps))
    # Collect optional dependency groups (e.g., [project.optional-dependencies.dev])
    opt_deps = project.get("optional-dependencies")
    if isinstance(opt_deps, dict):
        for group in opt_deps.values():
            if isinstance(group, list):
                lists.append(("normal", group))
    # Collect PEP 735 dependency groups (e.g., [dependency-groups.test])
    dep_groups = doc.get("dependency-groups")
    if isinstance(dep_groups, dict):
        for group in dep_groups.values():
            if isinstance(group, list):
                lists.append(("dev", group))
    uv_dev = doc.get("tool", {}).get("uv", {}).get("dev-dependencies")
    if isinstance(uv_dev, list):
        lists.append(("dev", uv_dev))
    build = doc.get("build-system", {}).get("requires")
    if isinstance(build, list):
        lists.append(("build", build))
    return lists


def get_all_dependency_strings(doc: tomlkit.TOMLDocument) -> list[tuple[str, str]]:
    """Collect (kind, dependency string) pairs from a pyproject.toml.

    PEP 735 include-group tables are skipped; only strings are returned.
    """
    return [
        (kind, str(dep))
        for kind, deps in dependency_lists(doc)
        for dep in deps
        if isinstance(dep, str)
    ]


def get_uv_sources(doc: tomlkit.TOMLDocument) -> dict[str, Any]:
    """Return [tool.uv.sources] keyed by canonical package name."""
    sources = doc.get("tool", {}).get("uv", {}).get("sources", {})
    return {canonicalize_name(name): value for name, value in sources.items()}


def is_path_source(source: Any) -> bool:
    """True for a uv source that resolves to a sibling directory."""
    if isinstance(source, list):
        return any(is_path_source(s) for s in source)
    if not isinstance(source, dict):
        return False
    return bool(source.get("workspace")) or "path" in source


def get_tool_config(doc: tomlkit.TOMLDocument, key: str) -> dict[str, Any]:
    """Return the [tool.<key>] table as plain Python data (empty if missing)."""
    table = doc.get("tool", {}).get(key, {})
    return table.unwrap() if hasattr(table, "unwrap") else dict(table)


def get_workspace_member_globs(doc: tomlkit.TOMLDocument) -> list[str]:
    """Extract workspace member glob patterns from [tool.uv.workspace].

    These patterns (e.g., "packages/*", "libs/*") define which directories
    contain workspace packages.

    Raises:
        ConfigError: If no workspace members are defined.
    """
    members = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("members")
    if not members:
        raise ConfigError("No [tool.uv.workspace] members defined in root pyproject.toml")
    return [str(m) for m in members]


def get_workspace_exclude_globs(doc: tomlkit.TOMLDocument) -> list[str]:
    """Extract [tool.uv.workspace].exclude patterns (directories uv ignores)."""
    excluded = doc.get("tool", {}).get("uv", {}).get("workspace", {}).get("exclude", [])
    return [str(e) for e in excluded]
