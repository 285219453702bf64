"""Version parsing and bumping utilities.

Handles conversion between version strings and semver objects, with
special handling for incomplete version strings (e.g., "1.0" → "1.0.0"),
plus the increment rules and the dependency ranges written back into
manifests.
"""

from __future__ import annotations

from enum import Enum

import semver


class BumpKind(str, Enum):
    """How a release unit's version moves."""

    MAJOR = "major"
    MINOR = "minor"
    PATCH = "patch"
    PREMAJOR = "premajor"
    PREMINOR = "preminor"
    PREPATCH = "prepatch"
    PRERELEASE = "prerelease"
    CUSTOM = "custom"


def parse_version(version_str: str) -> semver.Version:
    """Parse a version string into a semver.Version object.

    Handles incomplete versions by padding with zeros:
    - "1" → "1.0.0"
    - "1.2" → "1.2.0"
    - "1.2.3-beta.1" → "1.2.3-beta.1"

    Raises:
        ValueError: If the string is not a semantic version.
    """
    return semver.Version.parse(version_str.strip(), optional_minor_and_patch=True)


def _pre_label(pre_id: str | None, n: int) -> str:
    return f"{pre_id}.{n}" if pre_id else str(n)


def _next_prerelease(current: semver.Version, pre_id: str | None) -> semver.Version:
    if current.prerelease is None:
        return current.bump_patch().replace(prerelease=_pre_label(pre_id, 0))

    parts = current.prerelease.split(".")
    if pre_id and parts[0] != pre_id:
        return current.replace(prerelease=_pre_label(pre_id, 0), build=None)
    if parts[-1].isdigit():
        parts[-1] = str(int(parts[-1]) + 1)
    else:
        parts.append("0")
    return current.replace(prerelease=".".join(parts), build=None)


def bump_version(
    version_str: str,
    kind: BumpKind,
    *,
    pre_id: str | None = None,
    custom: str | None = None,
) -> str:
    """Apply a bump to a version string.

    Examples:
        ("1.2.3", PATCH) → "1.2.4"
        ("1.2.3", PREMAJOR) → "2.0.0-0"
        ("1.2.3", PRERELEASE, pre_id="beta") → "1.2.4-beta.0"
        ("1.2.4-beta.0", PRERELEASE) → "1.2.4-beta.1"
    """
    if kind is BumpKind.CUSTOM:
        if not custom:
            raise ValueError("custom bump needs a version")
        return str(parse_version(custom))

    current = parse_version(version_str)
    if kind is BumpKind.MAJOR:
        return str(current.bump_major())
    if kind is BumpKind.MINOR:
        return str(current.bump_minor())
    if kind is BumpKind.PATCH:
        return str(current.bump_patch())
    if kind is BumpKind.PREMAJOR:
        return str(current.bump_major().replace(prerelease=_pre_label(pre_id, 0)))
    if kind is BumpKind.PREMINOR:
        return str(current.bump_minor().replace(prerelease=_pre_label(pre_id, 0)))
    if kind is BumpKind.PREPATCH:
        return str(current.bump_patch().replace(prerelease=_pre_label(pre_id, 0)))
    return str(_next_prerelease(current, pre_id))


def next_breaking(version_str: str) -> str:
    """First version that is not caret-compatible with ``version_str``.

    Examples:
        "1.2.3" → "2.0.0"
        "0.2.0" → "0.3.0"
        "0.0.4" → "0.0.5"
    """
    v = parse_version(version_str)
    if v.major > 0:
        return f"{v.major + 1}.0.0"
    if v.minor > 0:
        return f"0.{v.minor + 1}.0"
    return f"0.0.{v.patch + 1}"


def version_specifier(version_str: str, *, exact: bool = False) -> str:
    """Render the constraint a dependent should carry for ``version_str``.

    Examples:
        ("0.2.0") → ">=0.2.0,<0.3.0"
        ("0.2.0", exact=True) → "==0.2.0"
    """
    if exact:
        return f"=={version_str}"
    return f">={version_str},<{next_breaking(version_str)}"
