"""Rename workspace packages.

Either one package gets an explicit new name, or every selected package
gets a name built from a template containing ``{name}``. Manifests are
rendered in memory first and written together, like a version run.
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from pathlib import Path

import tomlkit
from packaging.utils import canonicalize_name

from .deps import dep_canonical_name, rename_dep
from .errors import ConfigError
from .interrupt import CancelToken
from .models import Workspace
from .resolver import AppliedPlan, write_manifests
from .shell import step
from .toml import dependency_lists, load_pyproject


def rename_map(
    workspace: Workspace,
    to: str,
    *,
    from_name: str | None = None,
    ignore: str | None = None,
    groups: list[str] | None = None,
    all: bool = False,
) -> dict[str, str]:
    """Old canonical name → new name for every package being renamed.

    Raises:
        ConfigError: If ``from_name`` is unknown, the template lacks
            ``{name}``, or two packages would end up with the same name.
    """
    if from_name is not None:
        if ignore or all:
            raise ConfigError("from_name cannot be combined with ignore or all")
        old = canonicalize_name(from_name)
        if old not in workspace.packages:
            raise ConfigError(f"package {from_name} not found in workspace")
        mapping = {old: to}
    else:
        if "{name}" not in to:
            raise ConfigError("the new name must contain '{name}' when renaming many packages")
        mapping = {}
        for name, info in sorted(workspace.packages.items()):
            if info.excluded or (info.private and not all):
                continue
            if ignore and fnmatchcase(name, ignore):
                continue
            if groups and info.group not in groups:
                continue
            mapping[name] = to.replace("{name}", name)

    taken = set(workspace.packages) - set(mapping)
    seen: set[str] = set()
    for new in mapping.values():
        key = canonicalize_name(new)
        if key in taken or key in seen:
            raise ConfigError(f"rename would create duplicate package {new}")
        seen.add(key)
    return mapping


def rename_document(doc: tomlkit.TOMLDocument, mapping: dict[str, str]) -> bool:
    """Apply ``mapping`` to one manifest in place. Returns True if it changed."""
    changed = False

    project = doc.get("project")
    if project is not None and "name" in project:
        old = canonicalize_name(str(project["name"]))
        if old in mapping:
            project["name"] = mapping[old]
            changed = True

    for _kind, deps in dependency_lists(doc):
        for i, dep_str in enumerate(deps):
            if not isinstance(dep_str, str):
                continue
            name = dep_canonical_name(str(dep_str))
            if name in mapping:
                deps[i] = rename_dep(str(dep_str), mapping[name])
                changed = True

    sources = doc.get("tool", {}).get("uv", {}).get("sources")
    if sources is not None:
        for key in list(sources.keys()):
            old = canonicalize_name(key)
            if old in mapping:
                value = sources[key]
                del sources[key]
                sources[mapping[old]] = value
                changed = True

    return changed


def rename_packages(
    workspace: Workspace,
    to: str,
    *,
    from_name: str | None = None,
    ignore: str | None = None,
    groups: list[str] | None = None,
    all: bool = False,
    token: CancelToken | None = None,
) -> AppliedPlan:
    """Rename packages across every manifest in the workspace.

    Raises:
        ConfigError: On an invalid selection (see ``rename_map``).
    """
    step("Renaming packages")

    mapping = rename_map(
        workspace, to, from_name=from_name, ignore=ignore, groups=groups, all=all
    )
    if not mapping:
        print("  nothing to rename")
        return AppliedPlan({})
    for old, new in sorted(mapping.items()):
        print(f"  {old} → {new}")

    root = workspace.root
    manifests = {root / "pyproject.toml"} | {
        root / info.manifest for info in workspace.packages.values()
    }
    rendered: dict[Path, tuple[str, str]] = {}
    for path in sorted(manifests):
        original = path.read_text()
        doc = load_pyproject(path)
        if rename_document(doc, mapping):
            rendered[path] = (original, tomlkit.dumps(doc))

    token = token or CancelToken()
    token.raise_if_cancelled()
    applied = write_manifests(rendered, token)
    for path in applied.paths:
        print(f"  wrote {path.relative_to(root).as_posix()}")
    return applied
