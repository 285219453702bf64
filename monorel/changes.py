"""Change detection: which release units moved since their last release.

A package is "dirty" when:
1. It has never been released (no matching tag)
2. A file it owns changed since its unit's reference point
3. Its name matches the force glob
4. Any package it depends on is dirty (transitive dirtiness)

A release unit is changed when any member is dirty. Adding changed files
can only ever add dirty packages, never remove them.
"""

from __future__ import annotations

from fnmatch import fnmatchcase
from pathlib import Path

from .config import ChangeOptions, GitOptions
from .graph import DependencyGraph
from .models import (
    ChangeEvidence,
    ChangeSet,
    EvidenceKind,
    ReleaseUnit,
    UnitChange,
    UnitKind,
    Workspace,
)
from .shell import git, step


def unit_tag_pattern(unit: ReleaseUnit, git_options: GitOptions) -> str:
    """Glob matching the tags a unit is released under."""
    if unit.kind is UnitKind.DEFAULT:
        return f"{git_options.tag_prefix}*"
    return f"{git_options.individual_prefix(unit.key)}*"


def find_last_tag(
    root: Path, pattern: str | list[str], include_merged_tags: bool
) -> str | None:
    """Most recent tag matching ``pattern`` (or any of several) reachable from HEAD.

    Without include_merged_tags only the first-parent history is walked,
    so tags made on merged-in branches are ignored.
    """
    patterns = [pattern] if isinstance(pattern, str) else pattern
    args = ["describe", "--tags", "--abbrev=0"]
    for p in patterns:
        args += ["--match", p]
    if not include_merged_tags:
        args.append("--first-parent")
    tag = git(*args, cwd=root, check=False)
    return tag or None


def release_tag_patterns(workspace: Workspace, git_options: GitOptions) -> list[str]:
    """Globs matching every tag a release of this workspace can create."""
    patterns = [f"{git_options.tag_prefix}*"]
    for key, unit in sorted(workspace.units.items()):
        names = [key, *unit.members] if unit.kind is not UnitKind.DEFAULT else unit.members
        for name in names:
            pattern = f"{git_options.individual_prefix(name)}*"
            if pattern not in patterns:
                patterns.append(pattern)
    return patterns


def is_ancestor(root: Path, ref: str, of: str) -> bool:
    """True when ``ref`` is ``of`` or one of its ancestors."""
    out = git("rev-list", "--count", f"{of}..{ref}", cwd=root, check=False)
    return out == "0"


def commits_since(root: Path, ref: str) -> int:
    """Number of commits on HEAD that ``ref`` does not contain."""
    out = git("rev-list", "--count", f"{ref}..HEAD", cwd=root, check=False)
    return int(out) if out.isdigit() else 0


def changed_files(root: Path, ref: str) -> list[str]:
    """Files that differ between ``ref`` and the working tree (root-relative)."""
    out = git("diff", "--name-only", "--relative", ref, cwd=root)
    return [line for line in out.splitlines() if line]


def filter_ignored(files: list[str], ignore: str | None) -> list[str]:
    """Drop files matched by the ignore glob."""
    if not ignore:
        return list(files)
    return [f for f in files if not fnmatchcase(f, ignore)]


def directly_changed(
    workspace: Workspace, files: list[str], candidates: list[str]
) -> dict[str, ChangeEvidence]:
    """Map surviving diff files to their owning packages among ``candidates``."""
    owned: dict[str, list[str]] = {}
    for f in files:
        owner = workspace.owner_of(f)
        # Files outside every package are ignored
        if owner is not None and owner in candidates:
            owned.setdefault(owner, []).append(f)
    return {
        name: ChangeEvidence(kind=EvidenceKind.FILES, files=sorted(found))
        for name, found in owned.items()
    }


def resolve_references(
    workspace: Workspace, options: ChangeOptions, git_options: GitOptions
) -> dict[str, str | None]:
    """Reference point per release unit.

    An explicit ``since`` wins for every unit. Otherwise each unit uses its
    own most recent tag, falling back to the global tag, then to None
    (never released). A release commit newer than that tag replaces it:
    every unit changed at that commit was released there, so whatever the
    release rewrote in the other units' manifests is not a change of theirs.
    """
    if options.since:
        return {key: options.since for key in workspace.units}

    global_pattern = f"{git_options.tag_prefix}*"
    global_tag: str | None = None
    global_looked_up = False
    latest = find_last_tag(
        workspace.root,
        release_tag_patterns(workspace, git_options),
        options.include_merged_tags,
    )
    refs: dict[str, str | None] = {}

    for key, unit in sorted(workspace.units.items()):
        pattern = unit_tag_pattern(unit, git_options)
        tag = find_last_tag(workspace.root, pattern, options.include_merged_tags)
        if tag is None and pattern != global_pattern:
            if not global_looked_up:
                global_tag = find_last_tag(
                    workspace.root, global_pattern, options.include_merged_tags
                )
                global_looked_up = True
            tag = global_tag
        if tag is not None and latest is not None and tag != latest:
            if is_ancestor(workspace.root, tag, latest) and not is_ancestor(
                workspace.root, latest, tag
            ):
                tag = latest
        refs[key] = tag
    return refs


def detect_changes(
    workspace: Workspace,
    graph: DependencyGraph,
    options: ChangeOptions,
    git_options: GitOptions,
) -> ChangeSet:
    """Determine which release units changed.

    Args:
        workspace: Loaded workspace.
        graph: Path-dependency graph (dev deps excluded).
        options: Reference override, ignore and force globs.
        git_options: Tag naming, used to find each unit's last release.

    Returns:
        ChangeSet with evidence for every dirty member of every unit.
    """
    step("Detecting changes")

    refs = resolve_references(workspace, options, git_options)
    diffs: dict[str, list[str]] = {}
    dirty: dict[str, ChangeEvidence] = {}

    for key, unit in sorted(workspace.units.items()):
        ref = refs[key]
        print(f"  {unit.label}: since {ref or '<never released>'}")
        if ref is None:
            for name in unit.members:
                dirty[name] = ChangeEvidence(kind=EvidenceKind.UNRELEASED)
            continue
        if not options.since and commits_since(workspace.root, ref) == 0:
            print(f"  {unit.label}: HEAD is already released")
            continue
        if ref not in diffs:
            diffs[ref] = filter_ignored(
                changed_files(workspace.root, ref), options.ignore_changes
            )
        for name, evidence in directly_changed(workspace, diffs[ref], unit.members).items():
            dirty.setdefault(name, evidence)

    if options.force:
        for unit in workspace.units.values():
            for name in unit.members:
                if name not in dirty and fnmatchcase(name, options.force):
                    dirty[name] = ChangeEvidence(kind=EvidenceKind.FORCED)

    # Propagate dirtiness to dependents (if B is dirty, anything
    # depending on B must also be released)
    for dependent, via in graph.dependents_closure(dirty).items():
        if dependent not in dirty:
            dirty[dependent] = ChangeEvidence(kind=EvidenceKind.PROPAGATED, dependency=via)

    changes = ChangeSet()
    for key, unit in sorted(workspace.units.items()):
        evidence = {name: dirty[name] for name in unit.members if name in dirty}
        changes.units[key] = UnitChange(key=key, reference=refs[key], evidence=evidence)
        for name, ev in sorted(evidence.items()):
            print(f"  {name}: {ev}")

    return changes
