"""Release pipeline: discover → detect → plan → write → commit/tag → publish → push.

This module wires the components together for each CLI operation:

- ``run_changed``: report which release units changed, touching nothing.
- ``run_version``: plan new versions, write manifests, commit, tag, push.
- ``run_publish``: publish in dependency order with visibility
  confirmation, either right after a version run or from the versions
  already committed.
- ``run_rename``: rename packages across every manifest.

Every run builds its own Workspace, graph and options; nothing is shared
between runs.
"""

from __future__ import annotations

import json
import sys
from collections.abc import Callable
from contextlib import redirect_stdout
from dataclasses import dataclass
from pathlib import Path

from .changes import detect_changes
from .config import ChangeOptions, GitOptions, PublishOptions, VersionOptions
from .errors import ConfigError, VcsError
from .graph import DependencyGraph
from .interrupt import CancelToken, shielded
from .models import ChangeSet, PublishRecord, ReleasePlan, Workspace
from .prompt import Prompter
from .publish import publish_packages
from .registry import PyPIRegistry, Registry, check_index_version
from .rename import rename_packages
from .resolver import apply_plan, confirm_plan, plan_release, print_plan
from .shell import step
from .vcs import (
    check_tag_names,
    commit_release,
    push_release,
    tag_release,
    unfinished_release,
    validate_git,
)
from .workspace import load_workspace


def load_graph(root: Path) -> tuple[Workspace, DependencyGraph]:
    """Load the workspace and its acyclic path-dependency graph.

    Raises:
        ConfigError: On an invalid workspace.
        GraphError: If path dependencies form a cycle.
    """
    workspace = load_workspace(root)
    graph = DependencyGraph.from_packages(workspace.packages)
    graph.check_acyclic()
    return workspace, graph


def changes_as_dict(workspace: Workspace, changes: ChangeSet) -> dict:
    return {
        key: {
            "label": workspace.units[key].label,
            "reference": unit.reference,
            "packages": {name: str(ev) for name, ev in sorted(unit.evidence.items())},
        }
        for key, unit in sorted(changes.units.items())
        if unit.changed
    }


def run_changed(
    root: Path,
    options: ChangeOptions,
    git_options: GitOptions,
    *,
    as_json: bool = False,
) -> ChangeSet:
    """Detect and report changed release units without mutating anything.

    With ``as_json`` the progress output goes to stderr, so stdout holds
    only the JSON document.
    """
    if as_json:
        with redirect_stdout(sys.stderr):
            workspace, graph = load_graph(root)
            changes = detect_changes(workspace, graph, options, git_options)
        print(json.dumps(changes_as_dict(workspace, changes), indent=2))
        return changes

    workspace, graph = load_graph(root)
    changes = detect_changes(workspace, graph, options, git_options)

    step("Changed release units")
    changed = changes.changed_units()
    if not changed:
        print("  nothing changed")
    for key in changed:
        unit = workspace.units[key]
        members = ", ".join(sorted(changes.units[key].evidence))
        print(f"  {unit.label}: {members}")
    return changes


@dataclass
class VersionOutcome:
    """What a version run produced, for the steps that follow it."""

    workspace: Workspace
    graph: DependencyGraph
    plan: ReleasePlan | None
    branch: str | None


def check_publishable(workspace: Workspace, plan: ReleasePlan) -> None:
    """Refuse a plan whose public versions an index would misread.

    Raises:
        ConfigError: Before anything is written.
    """
    for name, version in sorted(plan.new_versions().items()):
        if workspace.packages[name].private:
            continue
        try:
            check_index_version(version)
        except ValueError as exc:
            raise ConfigError(f"cannot publish {name}: {exc}") from exc


def version_release(
    root: Path,
    options: VersionOptions,
    prompter: Prompter | None,
    token: CancelToken,
    *,
    publishing: bool = False,
) -> VersionOutcome:
    """Everything up to (not including) the push.

    A release commit at HEAD that is missing tags is finished rather than
    released again.

    Raises:
        ConfigError, GraphError: Before anything is written.
        VcsError: On a failed precondition, or a failed commit (manifests
            restored) or tag (commit kept).
        UserAbort: If the user declines or interrupts.
    """
    workspace, graph = load_graph(root)
    branch = validate_git(workspace.root, options.git, workspace.config)

    unfinished = unfinished_release(workspace.root, workspace, options.git)
    if unfinished is not None:
        step("Finishing the release at HEAD")
        with shielded(token):
            tag_release(workspace.root, unfinished, workspace, options.git)
        token.raise_if_cancelled()
        return VersionOutcome(workspace, graph, unfinished, branch)

    changes = detect_changes(workspace, graph, options.change, options.git)

    if not changes.changed_units():
        print("\n  nothing changed since the last release")
        return VersionOutcome(workspace, graph, None, branch)

    plan = plan_release(workspace, changes, options, prompter)
    check_tag_names(workspace.root, plan, workspace, options.git)
    if publishing:
        check_publishable(workspace, plan)
    step("Release plan")
    print_plan(plan)
    confirm_plan(options, prompter)

    applied = apply_plan(workspace, plan, token)
    token.raise_if_cancelled()

    with shielded(token):
        if not options.git.no_git_commit:
            try:
                commit_release(workspace.root, plan, options.git)
            except VcsError:
                applied.restore()
                raise
        tag_release(workspace.root, plan, workspace, options.git)
    token.raise_if_cancelled()

    return VersionOutcome(workspace, graph, plan, branch)


def run_version(
    root: Path,
    options: VersionOptions,
    prompter: Prompter | None = None,
    token: CancelToken | None = None,
) -> ReleasePlan | None:
    """Run the version flow and push the result.

    Returns:
        The applied plan, or None when nothing changed.

    Raises:
        PushError: If the push fails; commit and tags stay in place.
    """
    token = token or CancelToken()
    outcome = version_release(root, options, prompter, token)
    if outcome.plan is not None and outcome.branch is not None:
        push_release(outcome.workspace.root, outcome.branch, options.git)
    return outcome.plan


def run_publish(
    root: Path,
    options: PublishOptions,
    prompter: Prompter | None = None,
    registry: Registry | None = None,
    token: CancelToken | None = None,
    sleep: Callable[[float], None] | None = None,
    clock: Callable[[], float] | None = None,
) -> dict[str, PublishRecord]:
    """Publish public packages, versioning first unless ``from_git``.

    Returns:
        Map of package name → PublishRecord.

    Raises:
        PublishError: At the first failed upload or visibility timeout.
        PushError: If the final push fails (versioning mode only).
    """
    token = token or CancelToken()

    if options.from_git:
        workspace, graph = load_graph(root)
        versions = {
            name: info.version
            for name, info in workspace.packages.items()
            if not info.excluded
        }
        branch = None
    else:
        outcome = version_release(root, options.version, prompter, token, publishing=True)
        if outcome.plan is None:
            return {}
        workspace, graph, branch = outcome.workspace, outcome.graph, outcome.branch
        versions = outcome.plan.new_versions()

    owned = PyPIRegistry(workspace.root, options.registry_url) if registry is None else None
    try:
        records = publish_packages(
            workspace,
            graph,
            versions,
            registry or owned,
            options,
            token=token,
            sleep=sleep,
            clock=clock,
        )
    finally:
        if owned is not None:
            owned.close()

    if branch is not None:
        push_release(workspace.root, branch, options.version.git)
    return records


def run_rename(
    root: Path,
    to: str,
    *,
    from_name: str | None = None,
    ignore: str | None = None,
    groups: list[str] | None = None,
    all: bool = False,
    token: CancelToken | None = None,
) -> list[Path]:
    """Rename packages; returns the manifests written."""
    workspace = load_workspace(root)
    applied = rename_packages(
        workspace, to, from_name=from_name, ignore=ignore, groups=groups, all=all, token=token
    )
    return applied.paths
