"""Tests for monorel.models."""

from __future__ import annotations

from pathlib import Path

import pytest

from monorel.errors import ConfigError
from monorel.models import (
    ChangeEvidence,
    DependencyKind,
    DependencyRef,
    EvidenceKind,
    ManifestEdit,
    PackageInfo,
    ReleasePlan,
    ReleaseUnit,
    UnitKind,
    VersionBump,
    Workspace,
)


class TestPackageInfo:
    def test_manifest_path(self) -> None:
        assert PackageInfo(name="a", path="packages/a", version="1.0.0").manifest == (
            "packages/a/pyproject.toml"
        )
        assert PackageInfo(name="root", path=".", version="1.0.0").manifest == "pyproject.toml"

    def test_path_deps_skip_index_and_dev(self) -> None:
        info = PackageInfo(
            name="a",
            path="a",
            version="1.0.0",
            deps=[
                DependencyRef(name="b", requirement="b", path=True),
                DependencyRef(name="b", requirement="b[x]", path=True),
                DependencyRef(name="c", requirement="c>=1", path=False),
                DependencyRef(name="d", requirement="d", path=True, kind=DependencyKind.DEV),
            ],
        )
        assert info.path_deps() == ["b"]
        assert info.path_deps(include_dev=True) == ["b", "d"]


class TestReleaseUnit:
    @pytest.fixture
    def packages(self) -> dict[str, PackageInfo]:
        return {
            "u1": PackageInfo(name="u1", path="u1", version="1.0.0"),
            "u2": PackageInfo(name="u2", path="u2", version="1.0.1"),
        }

    def test_label(self) -> None:
        assert ReleaseUnit(key="utils", kind=UnitKind.GROUP).label == "[utils]"
        assert ReleaseUnit(key="a", kind=UnitKind.INDEPENDENT).label == "a"

    def test_version_skew_raises(self, packages: dict[str, PackageInfo]) -> None:
        unit = ReleaseUnit(key="utils", kind=UnitKind.GROUP, members=["u1", "u2"])
        with pytest.raises(ConfigError, match=r"\[utils\] has mismatched versions: u1=1.0.0, u2=1.0.1"):
            unit.current_version(packages)

    def test_shared_version(self, packages: dict[str, PackageInfo]) -> None:
        unit = ReleaseUnit(key="u1", kind=UnitKind.INDEPENDENT, members=["u1"])
        assert unit.current_version(packages) == "1.0.0"


class TestWorkspaceOwnerOf:
    def test_longest_prefix_wins(self) -> None:
        ws = Workspace(
            root=Path("/repo"),
            packages={
                "outer": PackageInfo(name="outer", path="libs/outer", version="1.0.0"),
                "inner": PackageInfo(name="inner", path="libs/outer/inner", version="1.0.0"),
            },
        )
        assert ws.owner_of("libs/outer/src/x.py") == "outer"
        assert ws.owner_of("libs/outer/inner/src/x.py") == "inner"
        assert ws.owner_of("libs/outer-two/x.py") is None
        assert ws.owner_of("README.md") is None

    def test_root_package_owns_the_rest(self) -> None:
        ws = Workspace(
            root=Path("/repo"),
            packages={
                "root": PackageInfo(name="root", path=".", version="1.0.0"),
                "a": PackageInfo(name="a", path="packages/a", version="1.0.0"),
            },
        )
        assert ws.owner_of("README.md") == "root"
        assert ws.owner_of("packages/a/x.py") == "a"


class TestChangeEvidence:
    def test_describes_files(self) -> None:
        ev = ChangeEvidence(kind=EvidenceKind.FILES, files=["a/x.py", "a/y.py"])
        assert str(ev) == "changed: a/x.py (+1 more)"

    def test_describes_propagation(self) -> None:
        ev = ChangeEvidence(kind=EvidenceKind.PROPAGATED, dependency="b")
        assert str(ev) == "dirty (depends on b)"

    def test_describes_unreleased(self) -> None:
        assert str(ChangeEvidence(kind=EvidenceKind.UNRELEASED)) == "never released"


class TestReleasePlan:
    def test_helpers(self) -> None:
        plan = ReleasePlan(
            units={"default": VersionBump(old="0.1.0", new="0.2.0")},
            bumps={"b": VersionBump(old="0.1.0", new="0.2.0")},
            edits=[ManifestEdit(package="b", manifest="packages/b/pyproject.toml", version="0.2.0")],
        )
        assert plan.default_version == "0.2.0"
        assert plan.manifests() == ["packages/b/pyproject.toml"]
        assert plan.new_versions() == {"b": "0.2.0"}

    def test_no_default_unit(self) -> None:
        assert ReleasePlan().default_version is None
