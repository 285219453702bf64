"""Workspace discovery and release-unit assignment.

Reads the uv workspace declared in the root pyproject.toml, builds a
PackageInfo for every member, then sorts packages into release units:

- excluded packages (``[tool.monorel].exclude``) belong to no unit
- independent packages each get their own unit
- packages matched by a ``[[tool.monorel.group]]`` share the group's unit
- everything else shares the ``default`` unit

All configuration invariants are checked here, before anything else runs.
"""

from __future__ import annotations

import glob
from fnmatch import fnmatchcase
from pathlib import Path

from .config import TOOL_KEY, WorkspaceConfig, read_package_config, read_workspace_config
from .deps import dep_canonical_name
from .errors import ConfigError
from .models import (
    DEFAULT_GROUP,
    EXCLUDED_GROUP,
    RESERVED_GROUP_NAMES,
    DependencyKind,
    DependencyRef,
    Group,
    PackageInfo,
    ReleaseUnit,
    UnitKind,
    Workspace,
)
from .shell import step, warn
from .toml import (
    get_all_dependency_strings,
    get_project_name,
    get_project_version,
    get_tool_config,
    get_uv_sources,
    get_workspace_exclude_globs,
    get_workspace_member_globs,
    has_project,
    is_path_source,
    is_private,
    load_pyproject,
)


def _member_dirs(root: Path, member_globs: list[str], exclude_globs: list[str]) -> list[Path]:
    # Expand globs to find all package directories
    dirs: list[Path] = []
    for pattern in member_globs:
        for match in sorted(glob.glob(str(root / pattern))):
            p = Path(match)
            rel = p.relative_to(root).as_posix()
            if any(fnmatchcase(rel, ex) for ex in exclude_globs):
                continue
            if (p / "pyproject.toml").exists() and p not in dirs:
                dirs.append(p)
    return dirs


def discover_packages(root: Path) -> tuple[dict[str, PackageInfo], WorkspaceConfig]:
    """Scan the workspace and discover all packages.

    Reads [tool.uv.workspace].members from root pyproject.toml to find
    package directories, then extracts name, version, flags and internal
    deps from each package's pyproject.toml.

    Returns:
        Tuple of (map of package name to PackageInfo, workspace config).

    Raises:
        ConfigError: On a missing member list, an empty workspace, a name
            collision or an invalid [tool.monorel] table.
    """
    root_doc = load_pyproject(root / "pyproject.toml")
    config = read_workspace_config(get_tool_config(root_doc, TOOL_KEY))
    member_dirs = _member_dirs(
        root, get_workspace_member_globs(root_doc), get_workspace_exclude_globs(root_doc)
    )
    if has_project(root_doc) and root not in member_dirs:
        member_dirs.insert(0, root)

    if not member_dirs:
        raise ConfigError("No packages found matching workspace members")

    root_sources = get_uv_sources(root_doc)

    # First pass: collect basic info from each package
    packages: dict[str, PackageInfo] = {}
    raw_deps: dict[str, list[tuple[str, str]]] = {}
    sources: dict[str, dict] = {}

    for d in member_dirs:
        doc = root_doc if d == root else load_pyproject(d / "pyproject.toml")
        rel = d.relative_to(root).as_posix() or "."
        name = get_project_name(doc, d.name)
        if name in packages:
            raise ConfigError(
                f"package name {name} is used by both {packages[name].path} and {rel}"
            )
        pkg_config = read_package_config(
            get_tool_config(doc, TOOL_KEY), f"{rel}/pyproject.toml"
        )
        packages[name] = PackageInfo(
            name=name,
            path=rel,
            version=get_project_version(doc),
            private=is_private(doc),
            independent=pkg_config.independent,
        )
        raw_deps[name] = get_all_dependency_strings(doc)
        sources[name] = root_sources | get_uv_sources(doc)

    # Second pass: identify which deps are internal (within workspace)
    workspace_names = set(packages.keys())
    for name, deps in raw_deps.items():
        for kind, dep_str in deps:
            dep_name = dep_canonical_name(dep_str)
            # Only track internal deps, ignore external packages
            if dep_name not in workspace_names:
                continue
            packages[name].deps.append(
                DependencyRef(
                    name=dep_name,
                    requirement=dep_str,
                    path=is_path_source(sources[name].get(dep_name)),
                    kind=DependencyKind(kind),
                )
            )

    return packages, config


def _validate_group_name(name: str, packages: dict[str, PackageInfo]) -> None:
    if name in RESERVED_GROUP_NAMES:
        raise ConfigError(f"the group `{name}` is a reserved group name")
    for ch in (":", " "):
        if ch in name:
            raise ConfigError(f"invalid character `{ch}` in group name: `{name}`")
    if name in packages:
        raise ConfigError(f"the group `{name}` has the same name as a package")


def assign_groups(
    packages: dict[str, PackageInfo], config: WorkspaceConfig
) -> dict[str, Group]:
    """Match exclusion and group patterns against package paths.

    Sets ``group`` on every PackageInfo. Patterns that match nothing only
    produce a warning.

    Raises:
        ConfigError: On reserved, invalid, duplicate or empty groups, a
            package matched by several groups, or an independent package
            matched by a group.
    """
    groups: dict[str, Group] = {}
    for group_config in config.group:
        _validate_group_name(group_config.name, packages)
        if group_config.name in groups:
            raise ConfigError(f"the group `{group_config.name}` is defined multiple times")
        if not group_config.members:
            raise ConfigError(f"the group `{group_config.name}` has no members")
        groups[group_config.name] = Group(
            name=group_config.name, patterns=list(group_config.members)
        )

    used_patterns: set[tuple[str, str]] = set()
    used_excludes: set[str] = set()

    for name in sorted(packages):
        info = packages[name]
        excluded_by = [p for p in config.exclude if fnmatchcase(info.path, p)]
        if excluded_by:
            used_excludes.update(excluded_by)
            info.group = EXCLUDED_GROUP
            continue

        matched: list[str] = []
        for group in groups.values():
            hits = [p for p in group.patterns if fnmatchcase(info.path, p)]
            if hits:
                matched.append(group.name)
                used_patterns.update((group.name, p) for p in hits)

        if len(matched) > 1:
            raise ConfigError(
                f"the package `{name}` ({info.path}) was matched in multiple groups: "
                + ", ".join(f"`{g}`" for g in matched)
            )
        if matched and info.independent:
            raise ConfigError(
                f"the package `{name}` ({info.path}) is independent but was matched "
                f"in group `{matched[0]}`"
            )
        if matched:
            info.group = matched[0]
            groups[matched[0]].members.append(name)
        else:
            info.group = DEFAULT_GROUP

    for group in groups.values():
        unmatched = [p for p in group.patterns if (group.name, p) not in used_patterns]
        if unmatched:
            warn(
                f"group `{group.name}` member patterns matched no packages: "
                + ", ".join(f"`{p}`" for p in unmatched)
            )
    unmatched_excludes = [p for p in config.exclude if p not in used_excludes]
    if unmatched_excludes:
        warn(
            "excluded member patterns matched no packages: "
            + ", ".join(f"`{p}`" for p in unmatched_excludes)
        )

    return groups


def build_units(
    packages: dict[str, PackageInfo], groups: dict[str, Group]
) -> dict[str, ReleaseUnit]:
    """Derive release units from group assignment and independence flags."""
    units: dict[str, ReleaseUnit] = {}
    default_members: list[str] = []

    for name in sorted(packages):
        info = packages[name]
        if info.excluded:
            continue
        if info.independent:
            if name in RESERVED_GROUP_NAMES:
                raise ConfigError(
                    f"independent package `{name}` uses a reserved release unit name"
                )
            units[name] = ReleaseUnit(key=name, kind=UnitKind.INDEPENDENT, members=[name])
        elif info.group == DEFAULT_GROUP:
            default_members.append(name)

    if default_members:
        units[DEFAULT_GROUP] = ReleaseUnit(
            key=DEFAULT_GROUP, kind=UnitKind.DEFAULT, members=default_members
        )
    for group in groups.values():
        if group.members:
            units[group.name] = ReleaseUnit(
                key=group.name, kind=UnitKind.GROUP, members=sorted(group.members)
            )
    return units


def load_workspace(root: Path) -> Workspace:
    """Load, validate and print the workspace rooted at ``root``.

    Raises:
        ConfigError: If any workspace invariant is violated.
    """
    step("Discovering workspace packages")

    root = root.resolve()
    packages, config = discover_packages(root)
    groups = assign_groups(packages, config)
    units = build_units(packages, groups)

    # Print discovered packages for user feedback
    for name, info in sorted(packages.items()):
        deps = f" → [{', '.join(info.path_deps())}]" if info.path_deps() else ""
        flags = [f for f, on in (("private", info.private), ("independent", info.independent)) if on]
        group = "" if info.group == DEFAULT_GROUP else f" [{info.group}]"
        extra = f" ({', '.join(flags)})" if flags else ""
        print(f"  {name} {info.version} ({info.path}){group}{extra}{deps}")

    return Workspace(root=root, packages=packages, groups=groups, units=units, config=config)
