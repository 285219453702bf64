"""Git side of a release: preconditions, commit, tags, push.

Every check runs before anything is written. The commit and tag steps
are the last local mutations; the push is the only remote one and the
only one whose failure leaves local state in place.
"""

from __future__ import annotations

import re
from fnmatch import fnmatchcase
from pathlib import Path

from .config import GitOptions, WorkspaceConfig
from .errors import PushError, VcsError
from .models import ReleasePlan, UnitKind, VersionBump, Workspace
from .shell import git, git_result, step

INDEPENDENT_LABEL = "independent packages"
RELEASE_LINE = re.compile(r"^- (?P<name>[^@\s]+)@(?P<version>\S+)$")


def branch_allowed(branch: str, pattern: str) -> bool:
    """Glob match, with ``main`` standing in for ``master``."""
    if fnmatchcase(branch, pattern):
        return True
    return pattern == "master" and branch == "main"


def validate_git(
    root: Path, options: GitOptions, config: WorkspaceConfig
) -> str | None:
    """Check every git precondition for a versioning run.

    Returns:
        The current branch name, or None when committing is disabled.

    Raises:
        VcsError: On the first failed precondition.
    """
    if options.no_git_commit:
        return None

    step("Checking git state")

    if git("rev-list", "--count", "--all", "--max-count=1", cwd=root, check=False) in ("", "0"):
        raise VcsError("no commits in this repository yet")

    branch = git("rev-parse", "--abbrev-ref", "HEAD", cwd=root, check=False)
    if not branch or branch == "HEAD":
        raise VcsError("detached HEAD state, check out a branch first")

    pattern = options.allowed_branch(config)
    if not branch_allowed(branch, pattern):
        raise VcsError(f"branch '{branch}' is not allowed to release (allowed: {pattern})")

    if not options.allow_dirty:
        dirty = git("status", "--porcelain", "--untracked-files=no", cwd=root, check=False)
        if dirty:
            raise VcsError(f"working tree has uncommitted changes:\n{dirty}")

    if not options.no_git_push:
        remote_ref = f"refs/remotes/{options.git_remote}/{branch}"
        if git_result("show-ref", "--verify", "--quiet", remote_ref, cwd=root).returncode != 0:
            raise VcsError(
                f"branch '{branch}' has no upstream on '{options.git_remote}' "
                "(push it first or disable pushing)"
            )
        git_result("remote", "update", options.git_remote, cwd=root)
        behind = git(
            "rev-list",
            "--left-only",
            "--count",
            f"{options.git_remote}/{branch}...{branch}",
            cwd=root,
            check=False,
        )
        if behind and behind != "0":
            raise VcsError(
                f"local branch '{branch}' is behind '{options.git_remote}/{branch}' "
                f"by {behind} commit(s), pull first"
            )

    print(f"  on {branch}, ok")
    return branch


def release_label(plan: ReleasePlan) -> str:
    return plan.default_version or INDEPENDENT_LABEL


def commit_message(plan: ReleasePlan, options: GitOptions) -> tuple[str, str]:
    """Subject and body of the release commit."""
    template = options.message or "Release {version}"
    subject = template.replace("{version}", release_label(plan))
    body = "\n".join(f"- {name}@{bump.new}" for name, bump in sorted(plan.bumps.items()))
    return subject, body


def commit_release(root: Path, plan: ReleasePlan, options: GitOptions) -> bool:
    """Stage and commit every manifest the plan touched.

    Returns:
        False when nothing was staged (the commit already exists).

    Raises:
        VcsError: If staging or committing fails.
    """
    step("Committing release")

    for manifest in plan.manifests():
        result = git_result("add", "--", manifest, cwd=root)
        if result.returncode != 0:
            raise VcsError(f"git add {manifest} failed: {result.stderr.strip()}")

    staged = git("diff", "--cached", "--name-only", cwd=root, check=False)
    if not staged:
        print("  nothing to commit, skipping")
        return False

    if options.amend:
        args = ["commit", "--amend", "--no-edit"]
    else:
        subject, body = commit_message(plan, options)
        args = ["commit", "-m", subject, "-m", body]
    result = git_result(*args, cwd=root)
    if result.returncode != 0:
        raise VcsError(f"git commit failed: {result.stderr.strip()}")
    print(f"  committed {len(staged.splitlines())} manifest(s)")
    return True


def planned_tags(
    plan: ReleasePlan, workspace: Workspace, options: GitOptions
) -> list[tuple[str, str]]:
    """(tag name, annotation) pairs for everything this release should tag."""
    tags: list[tuple[str, str]] = []

    if not options.no_global_tag:
        for key, bump in sorted(plan.units.items()):
            unit = workspace.units[key]
            if unit.kind is UnitKind.DEFAULT:
                name = f"{options.tag_prefix}{bump.new}"
            elif unit.kind is UnitKind.GROUP:
                name = f"{options.individual_prefix(key)}{bump.new}"
            else:
                continue
            msg = options.tag_msg.replace("{version}", bump.new) if options.tag_msg else name
            tags.append((name, msg))

    if not (options.no_individual_tags or workspace.config.no_individual_tags):
        for name, bump in sorted(plan.bumps.items()):
            info = workspace.packages[name]
            if info.private and not options.tag_private:
                continue
            tag = f"{options.individual_prefix(name)}{bump.new}"
            msg = tag
            if options.individual_tag_msg:
                msg = options.individual_tag_msg.replace("{name}", name).replace("{version}", bump.new)
            tags.append((tag, msg))

    return tags


def tags_enabled(options: GitOptions) -> bool:
    """Whether this run creates tags at all."""
    return not (options.no_git_tag or (options.no_git_commit and not options.tag_existing))


def check_tag_names(
    root: Path, plan: ReleasePlan, workspace: Workspace, options: GitOptions
) -> None:
    """Reject planned tag names git would refuse, before any manifest is written.

    Raises:
        VcsError: On the first invalid tag name.
    """
    if not tags_enabled(options):
        return
    for tag, _ in planned_tags(plan, workspace, options):
        if git_result("check-ref-format", f"refs/tags/{tag}", cwd=root).returncode != 0:
            raise VcsError(f"'{tag}' is not a valid tag name, check the tag prefixes")


def head_release(root: Path, workspace: Workspace) -> dict[str, str]:
    """Package versions listed by the release commit at HEAD.

    Empty unless HEAD's body is a release body ("- name@version" lines)
    whose versions all match the manifests.
    """
    body = git("log", "-1", "--format=%b", cwd=root, check=False)
    versions: dict[str, str] = {}
    for line in body.splitlines():
        if not line.strip():
            continue
        match = RELEASE_LINE.match(line.strip())
        if match is None:
            return {}
        info = workspace.packages.get(match["name"])
        if info is None or info.version != match["version"]:
            return {}
        versions[info.name] = info.version
    return versions


def unfinished_release(
    root: Path, workspace: Workspace, options: GitOptions
) -> ReleasePlan | None:
    """The plan of a release commit at HEAD that is missing some of its tags.

    A failed tag step keeps the release commit; a rerun finishes its tags
    from this plan instead of releasing again.
    """
    if options.no_git_commit or not tags_enabled(options):
        return None
    versions = head_release(root, workspace)
    if not versions:
        return None

    plan = ReleasePlan()
    for name, version in sorted(versions.items()):
        plan.bumps[name] = VersionBump(old=version, new=version)
    for key, unit in sorted(workspace.units.items()):
        released = {versions.get(name) for name in unit.members}
        if len(released) == 1 and None not in released:
            version = released.pop()
            plan.units[key] = VersionBump(old=version, new=version)

    existing = existing_tags(root)
    if all(tag in existing for tag, _ in planned_tags(plan, workspace, options)):
        return None
    return plan


def existing_tags(root: Path) -> set[str]:
    return set(git("tag", "--list", cwd=root, check=False).splitlines())


def tag_release(
    root: Path, plan: ReleasePlan, workspace: Workspace, options: GitOptions
) -> list[str]:
    """Create annotated tags for the release, skipping ones that exist.

    Without a commit of its own the run only tags when ``tag_existing``
    is set, and then tags whatever HEAD is.

    Returns:
        Names of the tags created by this call.

    Raises:
        VcsError: If creating a tag fails.
    """
    if not tags_enabled(options):
        return []

    step("Creating tags")

    existing = existing_tags(root)
    created: list[str] = []
    for tag, msg in planned_tags(plan, workspace, options):
        if tag in existing:
            print(f"  {tag} exists, skipping")
            continue
        result = git_result("tag", "-a", tag, "-m", msg, cwd=root)
        if result.returncode != 0:
            raise VcsError(f"git tag {tag} failed: {result.stderr.strip()}")
        created.append(tag)
        print(f"  {tag}")
    return created


def push_release(root: Path, branch: str, options: GitOptions) -> None:
    """Push the branch and its tags.

    Raises:
        PushError: If the push fails. The local commit and tags are kept.
    """
    if options.no_git_push:
        return

    step(f"Pushing to {options.git_remote}")
    result = git_result("push", "--follow-tags", options.git_remote, branch, cwd=root)
    if result.returncode != 0:
        raise PushError(
            f"git push to {options.git_remote} failed: {result.stderr.strip()}"
        )
    print(f"  pushed {branch}")
