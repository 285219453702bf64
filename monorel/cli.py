"""CLI entry point for monorel."""

from __future__ import annotations

import argparse
import sys
from importlib.metadata import version as pkg_version
from pathlib import Path

from pydantic import ValidationError

from .config import BackoffPolicy, ChangeOptions, GitOptions, PublishOptions, VersionOptions
from .errors import MonorelError, PublishError, PushError, UserAbort
from .pipeline import run_changed, run_publish, run_rename, run_version
from .prompt import RichPrompter
from .shell import fatal
from .versions import BumpKind

__version__ = pkg_version("monorel")


def _change_options(args: argparse.Namespace) -> ChangeOptions:
    return ChangeOptions(
        since=args.since,
        ignore_changes=args.ignore_changes,
        force=args.force,
        include_merged_tags=args.include_merged_tags,
    )


def _git_options(args: argparse.Namespace) -> GitOptions:
    return GitOptions(
        no_git_commit=args.no_git_commit,
        allow_branch=args.allow_branch,
        allow_dirty=args.allow_dirty,
        amend=args.amend,
        message=args.message,
        no_git_tag=args.no_git_tag,
        tag_existing=args.tag_existing,
        no_individual_tags=args.no_individual_tags,
        no_global_tag=args.no_global_tag,
        tag_private=args.tag_private,
        tag_prefix=args.tag_prefix,
        individual_tag_prefix=args.individual_tag_prefix,
        tag_msg=args.tag_msg,
        individual_tag_msg=args.individual_tag_msg,
        no_git_push=args.no_git_push,
        git_remote=args.git_remote,
    )


def _version_options(args: argparse.Namespace) -> VersionOptions:
    return VersionOptions(
        bump=BumpKind(args.bump) if args.bump else None,
        custom=args.custom,
        pre_id=args.pre_id,
        exact=args.exact,
        yes=args.yes,
        change=_change_options(args),
        git=_git_options(args),
    )


def cmd_changed(args: argparse.Namespace) -> None:
    """List the release units that changed since their last release."""
    git_options = GitOptions(
        tag_prefix=args.tag_prefix, individual_tag_prefix=args.individual_tag_prefix
    )
    run_changed(Path.cwd(), _change_options(args), git_options, as_json=args.json)


def cmd_version(args: argparse.Namespace) -> None:
    """Bump versions of changed release units, then commit, tag and push."""
    run_version(Path.cwd(), _version_options(args), RichPrompter())


def cmd_publish(args: argparse.Namespace) -> None:
    """Publish public packages in dependency order."""
    options = PublishOptions(
        from_git=args.from_git,
        no_verify=args.no_verify,
        token=args.token,
        publish_url=args.publish_url,
        registry_url=args.registry_url,
        dist_dir=args.dist_dir,
        backoff=BackoffPolicy(max_total=args.max_wait),
        version=_version_options(args),
    )
    records = run_publish(Path.cwd(), options, RichPrompter())
    skipped = sorted(name for name, r in records.items() if r.skipped)
    if skipped:
        print(f"\n  already published: {', '.join(skipped)}")


def cmd_rename(args: argparse.Namespace) -> None:
    """Rename workspace packages."""
    groups = [g.strip() for entry in args.groups or [] for g in entry.split(",") if g.strip()]
    run_rename(
        Path.cwd(),
        args.to,
        from_name=args.from_name,
        ignore=args.ignore,
        groups=groups,
        all=args.all,
    )


def _add_change_args(parser: argparse.ArgumentParser) -> None:
    group = parser.add_argument_group("change detection")
    group.add_argument(
        "--since", default=None, help="Git reference to diff against instead of the last tag."
    )
    group.add_argument(
        "--ignore-changes", default=None, metavar="PATTERN", help="Ignore changed files matching glob."
    )
    group.add_argument(
        "--force", default=None, metavar="PATTERN", help="Always treat packages matching glob as changed."
    )
    group.add_argument(
        "--include-merged-tags",
        action="store_true",
        help="Also look for tags on merged branches.",
    )


def _add_tag_prefix_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "--tag-prefix", default="v", help="Prefix of the global tag. (default: %(default)s)"
    )
    parser.add_argument(
        "--individual-tag-prefix",
        default="{name}@",
        help="Prefix of individual tags, must contain {name}. (default: %(default)s)",
    )


def _add_version_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "bump",
        nargs="?",
        choices=[k.value for k in BumpKind],
        help="Bump every changed unit this way instead of prompting.",
    )
    parser.add_argument("--custom", default=None, help="Version to use with a custom bump.")
    parser.add_argument("--pre-id", default=None, help="Prerelease identifier, e.g. beta.")
    parser.add_argument(
        "--exact", action="store_true", help="Pin internal dependencies with == instead of a range."
    )
    parser.add_argument("-y", "--yes", action="store_true", help="Skip the confirmation prompt.")
    _add_change_args(parser)
    _add_tag_prefix_args(parser)

    git = parser.add_argument_group("git")
    git.add_argument("--no-git-commit", action="store_true", help="Do not commit version changes.")
    git.add_argument(
        "--allow-branch", default=None, metavar="PATTERN", help="Branches allowed to release. (default: master)"
    )
    git.add_argument("--allow-dirty", action="store_true", help="Allow uncommitted changes.")
    git.add_argument("--amend", action="store_true", help="Amend the previous commit.")
    git.add_argument(
        "-m", "--message", default=None, help="Commit message template, may contain {version}."
    )
    git.add_argument("--no-git-tag", action="store_true", help="Do not create tags.")
    git.add_argument(
        "--tag-existing", action="store_true", help="Tag HEAD even when no commit is created."
    )
    git.add_argument(
        "--no-individual-tags", action="store_true", help="Do not tag individual packages."
    )
    git.add_argument("--no-global-tag", action="store_true", help="Do not create release-unit tags.")
    git.add_argument("--tag-private", action="store_true", help="Also tag private packages.")
    git.add_argument("--tag-msg", default=None, help="Global tag message, may contain {version}.")
    git.add_argument(
        "--individual-tag-msg",
        default=None,
        help="Individual tag message, may contain {name} and {version}.",
    )
    git.add_argument("--no-git-push", action="store_true", help="Do not push commit and tags.")
    git.add_argument(
        "--git-remote", default="origin", help="Remote to push to. (default: %(default)s)"
    )


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="monorel",
        description="Version and publish the packages of a uv workspace.",
    )
    parser.add_argument(
        "--version", action="version", version=f"%(prog)s {__version__}"
    )

    subparsers = parser.add_subparsers(dest="command", required=True)

    # changed subcommand
    changed_parser = subparsers.add_parser(
        "changed", help="List release units changed since their last release."
    )
    _add_change_args(changed_parser)
    _add_tag_prefix_args(changed_parser)
    changed_parser.add_argument("--json", action="store_true", help="Print JSON.")
    changed_parser.set_defaults(func=cmd_changed)

    # version subcommand
    version_parser = subparsers.add_parser(
        "version", help="Bump versions of changed packages, commit, tag and push."
    )
    _add_version_args(version_parser)
    version_parser.set_defaults(func=cmd_version)

    # publish subcommand
    publish_parser = subparsers.add_parser(
        "publish", help="Publish packages in dependency order."
    )
    _add_version_args(publish_parser)
    registry = publish_parser.add_argument_group("registry")
    registry.add_argument(
        "--from-git", action="store_true", help="Publish committed versions without versioning."
    )
    registry.add_argument(
        "--no-verify", action="store_true", help="Build sdist and wheel straight from the tree."
    )
    registry.add_argument("--token", default=None, help="Token for uv publish.")
    registry.add_argument("--publish-url", default=None, help="Upload URL for uv publish.")
    registry.add_argument(
        "--registry-url",
        default="https://pypi.org",
        help="Index checked for visibility. (default: %(default)s)",
    )
    registry.add_argument(
        "--dist-dir", default="dist", help="Where distributions are built. (default: %(default)s)"
    )
    registry.add_argument(
        "--max-wait",
        type=float,
        default=300.0,
        help="Seconds to wait for each package to show up. (default: %(default)s)",
    )
    publish_parser.set_defaults(func=cmd_publish)

    # rename subcommand
    rename_parser = subparsers.add_parser("rename", help="Rename workspace packages.")
    rename_parser.add_argument("to", help="New name, or a template containing {name}.")
    rename_parser.add_argument(
        "-f", "--from", dest="from_name", default=None, help="Rename only this package."
    )
    rename_parser.add_argument("-a", "--all", action="store_true", help="Rename private packages too.")
    rename_parser.add_argument(
        "--ignore", default=None, metavar="PATTERN", help="Skip packages matching glob."
    )
    rename_parser.add_argument(
        "--groups", action="append", help="Comma separated groups to rename (repeatable)."
    )
    rename_parser.set_defaults(func=cmd_rename)

    return parser


def cli(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    args = _build_parser().parse_args(argv)
    try:
        args.func(args)
    except (UserAbort, KeyboardInterrupt) as exc:
        print(f"\n  {str(exc) or 'interrupted'}")
        sys.exit(0)
    except ValidationError as exc:
        fatal(f"invalid options:\n{exc}")
    except PushError as exc:
        fatal(
            f"{exc}\n"
            "The release commit and tags are still in the local repository; "
            "push them with `git push --follow-tags` once the remote is reachable."
        )
    except PublishError as exc:
        lines = [str(exc)]
        if exc.confirmed:
            lines.append(f"confirmed: {', '.join(exc.confirmed)}")
        if exc.uploaded:
            lines.append(f"uploaded, not yet visible: {', '.join(exc.uploaded)}")
        if exc.not_attempted:
            lines.append(f"not attempted: {', '.join(exc.not_attempted)}")
        lines.append("Rerun `monorel publish --from-git` to resume.")
        fatal("\n".join(lines))
    except MonorelError as exc:
        fatal(str(exc))
