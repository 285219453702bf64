"""Tests for monorel.deps."""

from __future__ import annotations

from pathlib import Path

import tomlkit

from monorel.deps import (
    constrain_dep,
    dep_canonical_name,
    rename_dep,
    update_document,
)
from monorel.toml import load_pyproject


class TestDepCanonicalName:
    def test_simple_name(self) -> None:
        assert dep_canonical_name("requests") == "requests"

    def test_with_version_bound(self) -> None:
        assert dep_canonical_name("requests>=2.0,<3.0") == "requests"

    def test_with_extras(self) -> None:
        assert dep_canonical_name("requests[security]>=2.0") == "requests"

    def test_normalizes_underscores_and_case(self) -> None:
        assert dep_canonical_name("My_Package>=1.0") == "my-package"

    def test_semver_prerelease_constraint(self) -> None:
        """Falls back to the name pattern when PEP 440 cannot parse the version."""
        assert dep_canonical_name("My_Pkg==1.0.0-alpha.x.1") == "my-pkg"


class TestConstrainDep:
    def test_replaces_range(self) -> None:
        assert constrain_dep("pkg-b>=0.1.0,<0.2.0", "0.2.0") == "pkg-b>=0.2.0,<0.3.0"

    def test_bare_dependency_gains_range(self) -> None:
        assert constrain_dep("pkg-b", "1.4.0") == "pkg-b>=1.4.0,<2.0.0"

    def test_exact(self) -> None:
        assert constrain_dep("pkg-b>=0.1.0", "0.2.0", exact=True) == "pkg-b==0.2.0"

    def test_preserves_marker(self) -> None:
        result = constrain_dep("pkg-b>=0.1; python_version >= '3.10'", "0.2.0")
        assert result == 'pkg-b>=0.2.0,<0.3.0; python_version >= "3.10"'

    def test_preserves_multiple_extras_sorted(self) -> None:
        assert constrain_dep("pkg[z,a,m]>=1.0", "3.0.0") == "pkg[a,m,z]>=3.0.0,<4.0.0"


class TestRenameDep:
    def test_keeps_everything_but_the_name(self) -> None:
        assert rename_dep("old-name[x]>=1.0; os_name == 'nt'", "new-name") == (
            "new-name[x]>=1.0; os_name == 'nt'"
        )

    def test_leading_whitespace(self) -> None:
        assert rename_dep("  old>=1", "new") == "  new>=1"


class TestUpdateDocument:
    def test_updates_version(self, tmp_pyproject: Path) -> None:
        doc = load_pyproject(tmp_pyproject)
        update_document(doc, "2.0.0", {})
        assert 'version = "2.0.0"' in tomlkit.dumps(doc)

    def test_version_none_leaves_version(self, tmp_pyproject: Path) -> None:
        doc = load_pyproject(tmp_pyproject)
        update_document(doc, None, {"internal-dep": "1.5.0"})
        text = tomlkit.dumps(doc)
        assert 'version = "1.0.0"' in text
        assert "internal-dep>=1.5.0,<2.0.0" in text

    def test_constrains_every_dependency_kind(self, tmp_pyproject: Path) -> None:
        doc = load_pyproject(tmp_pyproject)
        update_document(
            doc,
            None,
            {
                "another-internal": "0.8.0",
                "group-internal": "0.2.0",
                "build-internal": "3.1.0",
            },
        )
        text = tomlkit.dumps(doc)
        assert "another-internal>=0.8.0,<0.9.0" in text
        assert "group-internal>=0.2.0,<0.3.0" in text
        assert "build-internal>=3.1.0,<4.0.0" in text

    def test_exact_pins(self, tmp_pyproject: Path) -> None:
        doc = load_pyproject(tmp_pyproject)
        update_document(doc, None, {"internal-dep": "1.5.0"}, exact=True)
        assert "internal-dep==1.5.0" in tomlkit.dumps(doc)

    def test_preserves_external_deps_and_layout(self, tmp_pyproject: Path) -> None:
        original = tmp_pyproject.read_text()
        doc = load_pyproject(tmp_pyproject)
        update_document(doc, "1.0.0", {"internal-dep": "1.0.0"})
        text = tomlkit.dumps(doc)
        assert '"requests>=2.0",' in text
        assert text.replace("internal-dep>=1.0.0,<2.0.0", "internal-dep>=1.0") == original
