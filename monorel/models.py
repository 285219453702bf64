"""Data models for monorel.

These Pydantic models represent the core data structures used throughout
the release pipeline: the workspace as loaded from disk, the change set
computed from git, the release plan, and publish bookkeeping.
"""

from __future__ import annotations

from enum import Enum
from pathlib import Path

from pydantic import BaseModel, Field

from .config import WorkspaceConfig
from .errors import ConfigError

DEFAULT_GROUP = "default"
EXCLUDED_GROUP = "excluded"
RESERVED_GROUP_NAMES = frozenset({DEFAULT_GROUP, EXCLUDED_GROUP})


class DependencyKind(str, Enum):
    NORMAL = "normal"
    DEV = "dev"
    BUILD = "build"


class DependencyRef(BaseModel):
    """A reference from one workspace package to another.

    Attributes:
        name: Canonical name of the target package.
        requirement: The PEP 508 string as written in the manifest.
        path: True when uv resolves the target from the workspace, not an index.
        kind: Which table the reference came from.
    """

    name: str
    requirement: str
    path: bool = False
    kind: DependencyKind = DependencyKind.NORMAL


class PackageInfo(BaseModel):
    """Metadata for a single package in the monorepo workspace.

    Attributes:
        name: Canonical package name.
        path: Relative posix path from workspace root ("." for the root).
        version: Current version string from pyproject.toml.
        deps: Internal (workspace) dependency references. External deps
              are not tracked here since we only manage internal constraints.
        private: Carries the "Private :: Do Not Upload" classifier.
        independent: Versioned on its own rather than with a cohort.
        group: Declared group name, or "default" / "excluded".
    """

    name: str
    path: str
    version: str
    deps: list[DependencyRef] = Field(default_factory=list)
    private: bool = False
    independent: bool = False
    group: str = DEFAULT_GROUP

    @property
    def manifest(self) -> str:
        """Manifest path relative to the workspace root."""
        return "pyproject.toml" if self.path == "." else f"{self.path}/pyproject.toml"

    @property
    def excluded(self) -> bool:
        return self.group == EXCLUDED_GROUP

    def path_deps(self, *, include_dev: bool = False) -> list[str]:
        """Names of path dependencies, deduplicated, in manifest order."""
        names: list[str] = []
        for dep in self.deps:
            if not dep.path or (dep.kind is DependencyKind.DEV and not include_dev):
                continue
            if dep.name != self.name and dep.name not in names:
                names.append(dep.name)
        return names


class Group(BaseModel):
    """A declared group: its member patterns and the packages they matched."""

    name: str
    patterns: list[str] = Field(default_factory=list)
    members: list[str] = Field(default_factory=list)


class UnitKind(str, Enum):
    DEFAULT = "default"
    GROUP = "group"
    INDEPENDENT = "independent"


class ReleaseUnit(BaseModel):
    """The granularity at which a version number is shared.

    Keys are "default" for the fixed cohort, the group name for a group,
    and the package name for an independent package.
    """

    key: str
    kind: UnitKind
    members: list[str] = Field(default_factory=list)

    @property
    def label(self) -> str:
        if self.kind is UnitKind.GROUP:
            return f"[{self.key}]"
        return self.key

    def current_version(self, packages: dict[str, PackageInfo]) -> str:
        """The version every member shares.

        Raises:
            ConfigError: If members disagree (version skew).
        """
        versions = {name: packages[name].version for name in self.members}
        distinct = sorted(set(versions.values()))
        if len(distinct) > 1:
            detail = ", ".join(f"{n}={v}" for n, v in sorted(versions.items()))
            raise ConfigError(
                f"release unit {self.label} has mismatched versions: {detail}"
            )
        if not distinct:
            raise ConfigError(f"release unit {self.label} has no members")
        return distinct[0]


class Workspace(BaseModel):
    """Everything loaded from the manifest tree for one run."""

    root: Path
    packages: dict[str, PackageInfo]
    groups: dict[str, Group] = Field(default_factory=dict)
    units: dict[str, ReleaseUnit] = Field(default_factory=dict)
    config: WorkspaceConfig = Field(default_factory=WorkspaceConfig)

    def unit_of(self, name: str) -> ReleaseUnit | None:
        """The release unit a package belongs to; None when excluded."""
        for unit in self.units.values():
            if name in unit.members:
                return unit
        return None

    def owner_of(self, file: str) -> str | None:
        """Package owning a root-relative file, by longest path prefix."""
        best: str | None = None
        best_len = -1
        for name, info in self.packages.items():
            if info.path == ".":
                prefix = ""
            else:
                prefix = info.path.rstrip("/") + "/"
                if not file.startswith(prefix):
                    continue
            if len(prefix) > best_len:
                best, best_len = name, len(prefix)
        return best


class EvidenceKind(str, Enum):
    FILES = "files"
    FORCED = "forced"
    PROPAGATED = "propagated"
    UNRELEASED = "unreleased"


class ChangeEvidence(BaseModel):
    """Why a package counts as changed."""

    kind: EvidenceKind
    files: list[str] = Field(default_factory=list)
    dependency: str | None = None

    def __str__(self) -> str:
        if self.kind is EvidenceKind.FILES:
            more = f" (+{len(self.files) - 1} more)" if len(self.files) > 1 else ""
            return f"changed: {self.files[0]}{more}"
        if self.kind is EvidenceKind.PROPAGATED:
            return f"dirty (depends on {self.dependency})"
        if self.kind is EvidenceKind.FORCED:
            return "forced"
        return "never released"


class UnitChange(BaseModel):
    """Change detection result for one release unit."""

    key: str
    reference: str | None = None
    evidence: dict[str, ChangeEvidence] = Field(default_factory=dict)

    @property
    def changed(self) -> bool:
        return bool(self.evidence)


class ChangeSet(BaseModel):
    """Per-unit change flags for one run. Never persisted."""

    units: dict[str, UnitChange] = Field(default_factory=dict)

    def changed_units(self) -> list[str]:
        return sorted(key for key, unit in self.units.items() if unit.changed)

    def changed_packages(self) -> set[str]:
        return {name for unit in self.units.values() for name in unit.evidence}


class VersionBump(BaseModel):
    """Records a version change for a package or release unit.

    Attributes:
        old: The version before bumping.
        new: The version after bumping.
    """

    old: str
    new: str


class ManifestEdit(BaseModel):
    """Pending rewrite of one manifest.

    Attributes:
        package: Owning package name.
        manifest: Manifest path relative to the workspace root.
        version: New [project].version, or None to leave it alone.
        dependencies: Dependency name → version its constraint must admit.
    """

    package: str
    manifest: str
    version: str | None = None
    dependencies: dict[str, str] = Field(default_factory=dict)


class ReleasePlan(BaseModel):
    """New versions for every changed unit and the manifest edits they imply.

    Built completely before any file is touched.
    """

    units: dict[str, VersionBump] = Field(default_factory=dict)
    bumps: dict[str, VersionBump] = Field(default_factory=dict)
    edits: list[ManifestEdit] = Field(default_factory=list)
    exact: bool = False

    @property
    def default_version(self) -> str | None:
        bump = self.units.get(DEFAULT_GROUP)
        return bump.new if bump else None

    def manifests(self) -> list[str]:
        return [edit.manifest for edit in self.edits]

    def new_versions(self) -> dict[str, str]:
        return {name: bump.new for name, bump in self.bumps.items()}


class PublishState(str, Enum):
    PENDING = "pending"
    IN_FLIGHT = "in-flight"
    CONFIRMED = "confirmed"
    FAILED = "failed"


class PublishRecord(BaseModel):
    """Publish outcome for one package/version."""

    name: str
    version: str
    state: PublishState = PublishState.PENDING
    skipped: bool = False
    uploaded: bool = False
    error: str | None = None
