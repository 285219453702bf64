"""Dependency handling utilities.

Provides functions for parsing PEP 508 dependency strings and rewriting
pyproject.toml files so internal workspace dependencies admit the versions
being released.
"""

from __future__ import annotations

import re
from typing import Any

import tomlkit
from packaging.requirements import InvalidRequirement, Requirement
from packaging.utils import canonicalize_name

from .toml import dependency_lists
from .versions import version_specifier

# PEP 508 name plus optional extras; used when the version part is a semver
# string that PEP 440 cannot parse (e.g. "1.0.0-alpha.x.1").
_NAME_RE = re.compile(r"^\s*(?P<name>[A-Za-z0-9](?:[A-Za-z0-9._-]*[A-Za-z0-9])?)\s*(?:\[(?P<extras>[^\]]*)\])?")


def _split(dep_str: str) -> tuple[str, list[str], str]:
    """Return (name, sorted extras, marker) of a dependency string."""
    try:
        req = Requirement(dep_str)
    except InvalidRequirement:
        match = _NAME_RE.match(dep_str)
        if match is None:
            raise
        extras = [e.strip() for e in (match.group("extras") or "").split(",") if e.strip()]
        marker = dep_str.split(";", 1)[1].strip() if ";" in dep_str else ""
        return match.group("name"), sorted(extras), marker
    marker = str(req.marker) if req.marker else ""
    return req.name, sorted(req.extras), marker


def dep_canonical_name(dep_str: str) -> str:
    """Extract the canonical package name from a PEP 508 dependency string.

    Handles version specifiers, extras, and normalizes the name per PEP 503
    (lowercase, hyphens instead of underscores).

    Examples:
        "requests>=2.0" → "requests"
        "My_Package[extra]~=1.0" → "my-package"
    """
    return canonicalize_name(_split(dep_str)[0])


def _format(name: str, extras: list[str], spec: str, marker: str) -> str:
    # Sort extras alphabetically for consistent output
    extras_part = f"[{','.join(extras)}]" if extras else ""
    marker_part = f"; {marker}" if marker else ""
    return f"{name}{extras_part}{spec}{marker_part}"


def constrain_dep(dep_str: str, version: str, *, exact: bool = False) -> str:
    """Replace the version specifier of a dependency string.

    Preserves extras and environment markers; the new specifier is the
    caret-style range for ``version`` (or ``==version`` when exact).

    Examples:
        constrain_dep("pkg-b>=0.1.0", "0.2.0") → "pkg-b>=0.2.0,<0.3.0"
        constrain_dep("pkg-b; python_version>='3.10'", "1.0.0", exact=True)
            → 'pkg-b==1.0.0; python_version >= "3.10"'
    """
    name, extras, marker = _split(dep_str)
    return _format(name, extras, version_specifier(version, exact=exact), marker)


def rename_dep(dep_str: str, new_name: str) -> str:
    """Swap the package name of a dependency string, keeping the rest verbatim."""
    match = _NAME_RE.match(dep_str)
    if match is None:
        return dep_str
    return dep_str[: match.start("name")] + new_name + dep_str[match.end("name") :]


def _constrain_dep_list(deps: list[Any], versions: dict[str, str], exact: bool) -> None:
    """Constrain internal dependencies in a list, modifying in place.

    Iterates through a list of PEP 508 dependency strings and replaces
    any that match internal packages with the new constraint.

    Args:
        deps: List of dependency strings (modified in place).
        versions: Map of canonical package name → version to admit.
        exact: Pin with == instead of a caret-style range.
    """
    for i, dep_str in enumerate(deps):
        if not isinstance(dep_str, str):
            continue
        name = dep_canonical_name(str(dep_str))
        if name in versions:
            deps[i] = constrain_dep(str(dep_str), versions[name], exact=exact)


def update_document(
    doc: tomlkit.TOMLDocument,
    new_version: str | None,
    internal_dep_versions: dict[str, str],
    *,
    exact: bool = False,
) -> None:
    """Update a package's version and constrain its internal dependencies.

    This function:
    1. Updates [project].version to new_version (when given)
    2. Rewrites every internal dep so it admits the released version

    Internal deps are rewritten in all locations:
    - [project].dependencies
    - [project].optional-dependencies.*
    - [dependency-groups].* and [tool.uv].dev-dependencies
    - [build-system].requires

    Args:
        doc: Parsed pyproject.toml, edited in place.
        new_version: New version string to set, or None.
        internal_dep_versions: Map of package name → version for internal deps.
        exact: Pin with == instead of a caret-style range.
    """
    if new_version is not None:
        doc["project"]["version"] = new_version  # type: ignore[index]

    if internal_dep_versions:
        for _kind, deps in dependency_lists(doc):
            _constrain_dep_list(deps, internal_dep_versions, exact)
