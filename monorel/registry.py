"""Registry access: publishing through uv and confirming visibility.

Indexes are eventually consistent, so "uv publish exited 0" does not mean
the next package's build can already resolve the version. After each
upload the scheduler runs a VisibilityWait, a small state machine that
polls the index's JSON API with exponential backoff:

    pending → polling → confirmed
                      → timed_out

The wait takes its sleep and clock as arguments so tests can drive it
without real delays.
"""

from __future__ import annotations

import time
from collections.abc import Callable
from enum import Enum
from pathlib import Path
from typing import Protocol

import httpx
from packaging.utils import (
    InvalidSdistFilename,
    InvalidWheelFilename,
    canonicalize_name,
    parse_sdist_filename,
    parse_wheel_filename,
)
from packaging.version import InvalidVersion, Version

from .config import BackoffPolicy, PublishOptions
from .errors import PublishError
from .models import PackageInfo
from .shell import run


class Registry(Protocol):
    def publish(self, package: PackageInfo, options: PublishOptions) -> None: ...

    def is_published(self, name: str, version: str) -> bool: ...


def index_version(version: str) -> str:
    """The version as an index stores it (PEP 440 normal form when possible).

    Examples:
        "1.2.4-beta.0" → "1.2.4b0"
        "1.0.0-foo.1" → "1.0.0-foo.1"
    """
    try:
        return str(Version(version))
    except InvalidVersion:
        return version


def check_index_version(version: str) -> str:
    """PEP 440 form of a version about to be published.

    A semver prerelease made only of numbers ("2.0.0-0") reads as a
    post-release in PEP 440: a final version that sorts above "2.0.0"
    and that installers pick by default.

    Raises:
        ValueError: If the version has no PEP 440 form, or if a semver
            prerelease would reach the index as a final release.
    """
    try:
        parsed = Version(version)
    except InvalidVersion as exc:
        raise ValueError(f"{version} is not a valid PEP 440 version") from exc
    if "-" in version and not parsed.is_prerelease:
        raise ValueError(
            f"prerelease {version} would be published as the final release {parsed}, "
            "use a prerelease id such as beta"
        )
    return str(parsed)


def distributions(out_dir: Path, name: str, version: str) -> list[Path]:
    """Wheels and sdists in ``out_dir`` built for exactly ``name`` ``version``."""
    wanted = (canonicalize_name(name), Version(version))
    found: list[Path] = []
    for path in sorted(out_dir.glob("*")):
        try:
            if path.name.endswith(".whl"):
                dist_name, dist_version, _, _ = parse_wheel_filename(path.name)
            elif path.name.endswith(".tar.gz"):
                dist_name, dist_version = parse_sdist_filename(path.name)
            else:
                continue
        except (InvalidWheelFilename, InvalidSdistFilename):
            continue
        if (dist_name, dist_version) == wanted:
            found.append(path)
    return found


class PyPIRegistry:
    """A PyPI-compatible index: uploads with uv, checks the JSON API."""

    def __init__(
        self,
        root: Path,
        registry_url: str = "https://pypi.org",
        client: httpx.Client | None = None,
    ) -> None:
        self.root = root
        self.registry_url = registry_url.rstrip("/")
        self.client = client or httpx.Client(timeout=httpx.Timeout(10.0), follow_redirects=True)

    def is_published(self, name: str, version: str) -> bool:
        """True once ``name==version`` resolves on the index.

        Transport errors and non-200 answers count as "not visible yet";
        the caller's backoff ceiling bounds how long that can last.
        """
        url = f"{self.registry_url}/pypi/{name}/{index_version(version)}/json"
        try:
            response = self.client.get(url)
        except httpx.HTTPError:
            return False
        return response.status_code == 200

    def publish(self, package: PackageInfo, options: PublishOptions) -> None:
        """Build and upload one package.

        Raises:
            PublishError: If the version cannot go to an index as is, or
                if the build (verification) or upload fails.
        """
        try:
            check_index_version(package.version)
        except ValueError as exc:
            raise PublishError(
                f"cannot publish {package.name}: {exc}", package=package.name
            ) from exc

        out_dir = self.root / options.dist_dir / package.name
        build = ["uv", "build", package.path, "--out-dir", str(out_dir)]
        if options.no_verify:
            # Build both straight from the tree instead of wheel-from-sdist
            build += ["--sdist", "--wheel"]
        if run(*build, cwd=self.root, check=False).returncode != 0:
            raise PublishError(f"unable to verify package {package.name}", package=package.name)

        files = [str(p) for p in distributions(out_dir, package.name, package.version)]
        if not files:
            raise PublishError(
                f"no distributions for {package.name} {package.version} in {out_dir}",
                package=package.name,
            )
        upload = ["uv", "publish", *files]
        if options.publish_url:
            upload += ["--publish-url", options.publish_url]
        if options.token:
            upload += ["--token", options.token]
        if run(*upload, cwd=self.root, check=False).returncode != 0:
            raise PublishError(f"unable to publish package {package.name}", package=package.name)

    def close(self) -> None:
        self.client.close()


class WaitState(str, Enum):
    PENDING = "pending"
    POLLING = "polling"
    CONFIRMED = "confirmed"
    TIMED_OUT = "timed_out"


class VisibilityWait:
    """Poll a registry until a package version is visible or time runs out."""

    def __init__(
        self,
        registry: Registry,
        name: str,
        version: str,
        policy: BackoffPolicy,
        *,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.registry = registry
        self.name = name
        self.version = version
        self.policy = policy
        self.sleep = sleep
        self.clock = clock
        self.state = WaitState.PENDING
        self.attempts = 0
        self._started = 0.0

    @property
    def done(self) -> bool:
        return self.state in (WaitState.CONFIRMED, WaitState.TIMED_OUT)

    def elapsed(self) -> float:
        return self.clock() - self._started

    def advance(self) -> WaitState:
        """Run one transition and return the new state."""
        if self.done:
            return self.state

        if self.state is WaitState.PENDING:
            self._started = self.clock()
            self.state = WaitState.POLLING
        else:
            remaining = self.policy.max_total - self.elapsed()
            if remaining <= 0:
                self.state = WaitState.TIMED_OUT
                return self.state
            self.sleep(min(self.policy.delay(self.attempts - 1), remaining))

        self.attempts += 1
        if self.registry.is_published(self.name, self.version):
            self.state = WaitState.CONFIRMED
        elif self.elapsed() >= self.policy.max_total:
            self.state = WaitState.TIMED_OUT
        return self.state

    def run(self) -> WaitState:
        while not self.done:
            self.advance()
        return self.state
