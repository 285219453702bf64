"""Configuration models.

Two kinds of configuration live here:

- Workspace and package settings read from ``[tool.monorel]`` tables.
- Per-run options (what the CLI collects) for change detection, git,
  versioning and publishing.

Both are plain Pydantic models built once per run and handed to each
component explicitly, so two runs in the same process never share state.
"""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator, model_validator

from .errors import ConfigError
from .versions import BumpKind

TOOL_KEY = "monorel"
DEFAULT_ALLOW_BRANCH = "master"


class GroupConfig(BaseModel):
    """A ``[[tool.monorel.group]]`` entry: a name plus member path globs."""

    model_config = ConfigDict(extra="forbid")

    name: str
    members: list[str] = Field(default_factory=list)


class WorkspaceConfig(BaseModel):
    """Settings from the root manifest's ``[tool.monorel]`` table."""

    model_config = ConfigDict(extra="forbid")

    allow_branch: str | None = None
    exclude: list[str] = Field(default_factory=list)
    no_individual_tags: bool = False
    group: list[GroupConfig] = Field(default_factory=list)


class PackageConfig(BaseModel):
    """Settings from a package manifest's ``[tool.monorel]`` table."""

    model_config = ConfigDict(extra="forbid")

    independent: bool = False


def _validate(model: type[BaseModel], data: Any, where: str) -> Any:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ConfigError(f"invalid [tool.{TOOL_KEY}] in {where}:\n{exc}") from exc


def read_workspace_config(table: Any, where: str = "pyproject.toml") -> WorkspaceConfig:
    """Validate the root ``[tool.monorel]`` table (may be empty)."""
    return _validate(WorkspaceConfig, dict(table or {}), where)


def read_package_config(table: Any, where: str) -> PackageConfig:
    """Validate a package-level ``[tool.monorel]`` table (may be empty)."""
    return _validate(PackageConfig, dict(table or {}), where)


class ChangeOptions(BaseModel):
    """How to decide what changed.

    Attributes:
        since: Use this git reference for every unit instead of its last tag.
        ignore_changes: Glob over file paths to leave out of the diff.
        force: Glob over package names to always treat as changed.
        include_merged_tags: Also consider tags reachable through merges.
    """

    since: str | None = None
    ignore_changes: str | None = None
    force: str | None = None
    include_merged_tags: bool = False

    @model_validator(mode="after")
    def _since_excludes_merged_tags(self) -> ChangeOptions:
        if self.since and self.include_merged_tags:
            raise ValueError("since cannot be combined with include_merged_tags")
        return self


class GitOptions(BaseModel):
    """Commit, tag and push behaviour."""

    no_git_commit: bool = False
    allow_branch: str | None = None
    allow_dirty: bool = False
    amend: bool = False
    message: str | None = None
    no_git_tag: bool = False
    tag_existing: bool = False
    no_individual_tags: bool = False
    no_global_tag: bool = False
    tag_private: bool = False
    tag_prefix: str = "v"
    individual_tag_prefix: str = "{name}@"
    tag_msg: str | None = None
    individual_tag_msg: str | None = None
    no_git_push: bool = False
    git_remote: str = "origin"

    @field_validator("individual_tag_prefix")
    @classmethod
    def _must_contain_name(cls, value: str) -> str:
        if "{name}" not in value:
            raise ValueError("individual_tag_prefix must contain '{name}'")
        return value

    @model_validator(mode="after")
    def _check_conflicts(self) -> GitOptions:
        if self.amend and self.message:
            raise ValueError("amend cannot be combined with message")
        if self.no_git_tag and self.tag_existing:
            raise ValueError("no_git_tag cannot be combined with tag_existing")
        return self

    def individual_prefix(self, name: str) -> str:
        return self.individual_tag_prefix.replace("{name}", name)

    def allowed_branch(self, config: WorkspaceConfig) -> str:
        return self.allow_branch or config.allow_branch or DEFAULT_ALLOW_BRANCH


class VersionOptions(BaseModel):
    """Everything the version flow needs besides the workspace itself.

    Attributes:
        bump: Bump keyword applied to every changed unit; prompt when None.
        custom: Version used with ``BumpKind.CUSTOM``.
        pre_id: Prerelease identifier (e.g. ``beta``) for pre* bumps.
        exact: Pin rewritten dependency constraints with ``==``.
        yes: Skip the final confirmation prompt.
    """

    bump: BumpKind | None = None
    custom: str | None = None
    pre_id: str | None = None
    exact: bool = False
    yes: bool = False
    change: ChangeOptions = Field(default_factory=ChangeOptions)
    git: GitOptions = Field(default_factory=GitOptions)

    @model_validator(mode="after")
    def _custom_needs_version(self) -> VersionOptions:
        if self.bump is BumpKind.CUSTOM and not self.custom:
            raise ValueError("a custom bump needs a custom version")
        if self.custom and self.bump not in (None, BumpKind.CUSTOM):
            raise ValueError("custom version conflicts with bump keyword")
        if self.custom and self.bump is None:
            self.bump = BumpKind.CUSTOM
        return self


class BackoffPolicy(BaseModel):
    """Exponential backoff between registry visibility polls (seconds)."""

    initial_delay: float = Field(default=1.0, gt=0)
    multiplier: float = Field(default=2.0, ge=1)
    max_delay: float = Field(default=30.0, gt=0)
    max_total: float = Field(default=300.0, ge=0)

    def delay(self, attempt: int) -> float:
        """Delay before poll number ``attempt + 1`` (attempt counts from 0)."""
        return min(self.initial_delay * self.multiplier**attempt, self.max_delay)


class PublishOptions(BaseModel):
    """Registry publication settings.

    Attributes:
        from_git: Publish committed versions without running the version flow.
        no_verify: Build sdist and wheel straight from the source tree.
        token: Token handed to ``uv publish``.
        publish_url: Upload endpoint handed to ``uv publish``.
        registry_url: Base URL of the index JSON API used for visibility checks.
        dist_dir: Where built distributions go, one subdirectory per package.
    """

    from_git: bool = False
    no_verify: bool = False
    token: str | None = None
    publish_url: str | None = None
    registry_url: str = "https://pypi.org"
    dist_dir: str = "dist"
    backoff: BackoffPolicy = Field(default_factory=BackoffPolicy)
    version: VersionOptions = Field(default_factory=VersionOptions)
