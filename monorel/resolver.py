"""Version resolution: from a change set to written manifests.

Two passes, both in memory:
1. Pick a new version for every changed release unit (bump keyword,
   custom version, or an interactive choice) and give it to every member.
2. Find every manifest whose dependency strings name a bumped package and
   compute the new constraint, whether or not that manifest's own unit
   changed.

Nothing is written until the whole plan exists and every manifest has been
rendered; then all files are written inside one interrupt-shielded block.
"""

from __future__ import annotations

from pathlib import Path

import tomlkit

from .config import VersionOptions
from .deps import constrain_dep, update_document
from .errors import ConfigError, UserAbort
from .interrupt import CancelToken, shielded
from .models import (
    ChangeSet,
    EvidenceKind,
    ManifestEdit,
    ReleasePlan,
    ReleaseUnit,
    VersionBump,
    Workspace,
)
from .prompt import BumpChoice, Prompter
from .shell import step
from .toml import load_pyproject
from .versions import bump_version


def _reason(unit: ReleaseUnit, changes: ChangeSet) -> str:
    evidence = changes.units[unit.key].evidence
    if all(ev.kind is EvidenceKind.PROPAGATED for ev in evidence.values()):
        deps = sorted({ev.dependency for ev in evidence.values() if ev.dependency})
        return f"dependency changed: {', '.join(deps)}"
    return f"changed: {', '.join(sorted(evidence))}"


def check_version_skew(workspace: Workspace) -> dict[str, str]:
    """Current version of every release unit.

    Raises:
        ConfigError: If any non-independent unit has members that disagree.
    """
    return {
        key: unit.current_version(workspace.packages)
        for key, unit in sorted(workspace.units.items())
    }


def choose_version(
    unit: ReleaseUnit,
    current: str,
    changes: ChangeSet,
    options: VersionOptions,
    prompter: Prompter | None,
) -> str:
    """New version for one unit, prompting only when no bump was given.

    An unparsable current version is a ConfigError on both paths; the
    prompt previews fail on it before asking anything.
    """
    try:
        if options.bump is not None:
            choice = BumpChoice(kind=options.bump, custom=options.custom)
        elif prompter is not None:
            choice = prompter.select_bump(
                unit.label, current, options.pre_id, _reason(unit, changes)
            )
        else:
            raise ConfigError(f"no bump given for {unit.label} and prompting is disabled")
        return bump_version(current, choice.kind, pre_id=options.pre_id, custom=choice.custom)
    except ValueError as exc:
        raise ConfigError(f"cannot bump {unit.label} from {current}: {exc}") from exc


def plan_release(
    workspace: Workspace,
    changes: ChangeSet,
    options: VersionOptions,
    prompter: Prompter | None = None,
) -> ReleasePlan:
    """Build the full release plan without touching the filesystem.

    Raises:
        ConfigError: On version skew inside a unit or an unparsable version.
        UserAbort: If a prompt is cancelled.
    """
    step("Resolving versions")

    current = check_version_skew(workspace)
    plan = ReleasePlan(exact=options.exact)

    for key in changes.changed_units():
        unit = workspace.units[key]
        new = choose_version(unit, current[key], changes, options, prompter)
        plan.units[key] = VersionBump(old=current[key], new=new)
        for name in unit.members:
            plan.bumps[name] = VersionBump(old=workspace.packages[name].version, new=new)

    # Second pass: every manifest naming a bumped package gets rewritten,
    # even if its own unit did not change
    for name, info in sorted(workspace.packages.items()):
        dep_versions = {
            dep.name: plan.bumps[dep.name].new for dep in info.deps if dep.name in plan.bumps
        }
        new_version = plan.bumps[name].new if name in plan.bumps else None
        if new_version is None and not dep_versions:
            continue
        plan.edits.append(
            ManifestEdit(
                package=name,
                manifest=info.manifest,
                version=new_version,
                dependencies=dep_versions,
            )
        )

    return plan


def print_plan(plan: ReleasePlan) -> None:
    for name, bump in sorted(plan.bumps.items()):
        print(f"  {name}: {bump.old} → {bump.new}")
    rewritten = [e.package for e in plan.edits if e.version is None]
    if rewritten:
        print(f"  constraints only: {', '.join(rewritten)}")


def render_plan(workspace: Workspace, plan: ReleasePlan) -> dict[Path, tuple[str, str]]:
    """Render every edited manifest in memory.

    Returns:
        Map of manifest path → (original text, new text).
    """
    rendered: dict[Path, tuple[str, str]] = {}
    for edit in plan.edits:
        path = workspace.root / edit.manifest
        original = path.read_text()
        doc = load_pyproject(path)
        update_document(doc, edit.version, edit.dependencies, exact=plan.exact)
        rendered[path] = (original, tomlkit.dumps(doc))
    return rendered


class AppliedPlan:
    """Manifests written for a plan, with the text needed to undo them."""

    def __init__(self, originals: dict[Path, str]) -> None:
        self.originals = originals

    @property
    def paths(self) -> list[Path]:
        return list(self.originals)

    def restore(self) -> None:
        """Write the pre-run text back to every manifest."""
        for path, text in self.originals.items():
            path.write_text(text)


def write_manifests(
    rendered: dict[Path, tuple[str, str]], token: CancelToken
) -> AppliedPlan:
    """Write rendered manifests as one unit.

    An interrupt during the block is deferred; a write failure restores
    every file already written before re-raising.
    """
    written: dict[Path, str] = {}
    with shielded(token):
        try:
            for path, (original, text) in rendered.items():
                written[path] = original
                path.write_text(text)
        except OSError:
            AppliedPlan(written).restore()
            raise
    return AppliedPlan(written)


def apply_plan(
    workspace: Workspace, plan: ReleasePlan, token: CancelToken | None = None
) -> AppliedPlan:
    """Render then write every manifest in the plan, updating the in-memory packages."""
    step("Writing manifests")
    token = token or CancelToken()
    rendered = render_plan(workspace, plan)
    token.raise_if_cancelled()
    applied = write_manifests(rendered, token)

    for edit in plan.edits:
        info = workspace.packages[edit.package]
        if edit.version is not None:
            info.version = edit.version
        for dep in info.deps:
            if dep.name in edit.dependencies:
                dep.requirement = constrain_dep(
                    dep.requirement, edit.dependencies[dep.name], exact=plan.exact
                )
        print(f"  wrote {edit.manifest}")
    return applied


def confirm_plan(options: VersionOptions, prompter: Prompter | None) -> None:
    """Ask before writing anything unless ``yes`` was given.

    Raises:
        UserAbort: If the user declines.
    """
    if options.yes:
        return
    if prompter is None:
        raise ConfigError("confirmation needed but prompting is disabled (pass yes)")
    if not prompter.confirm("Are you sure you want to create these versions?"):
        raise UserAbort("aborted, no manifests were changed")
