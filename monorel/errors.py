"""Error types raised by the release pipeline.

Library code raises these; only the CLI turns them into exit codes. Each
class maps to one stage of the release so callers can tell a bad
configuration apart from a registry that never caught up.
"""

from __future__ import annotations


class MonorelError(Exception):
    """Base class for every error the pipeline raises on purpose."""

    #: Whether rerunning (or finishing by hand) can complete the release.
    recoverable: bool = False


class ConfigError(MonorelError):
    """Invalid workspace, group or exclusion configuration, or version skew."""


class GraphError(MonorelError):
    """The path-dependency graph contains a cycle."""

    def __init__(self, cycle: list[str]) -> None:
        self.cycle = cycle
        super().__init__(f"dependency cycle detected: {' → '.join(cycle)}")


class VcsError(MonorelError):
    """A git precondition failed or a git mutation did not go through."""


class PushError(VcsError):
    """Pushing to the remote failed; the local commit and tags are intact."""

    recoverable = True


class PublishError(MonorelError):
    """Publishing halted at ``package``.

    Attributes:
        package: The package the run stopped at.
        confirmed: Packages confirmed visible in the registry before the halt.
        not_attempted: Packages never submitted because of the halt.
        uploaded: Packages whose upload went through but were never confirmed.
    """

    recoverable = True

    def __init__(
        self,
        message: str,
        *,
        package: str,
        confirmed: list[str] | None = None,
        not_attempted: list[str] | None = None,
        uploaded: list[str] | None = None,
    ) -> None:
        self.package = package
        self.confirmed = list(confirmed or [])
        self.not_attempted = list(not_attempted or [])
        self.uploaded = list(uploaded or [])
        super().__init__(message)


class UserAbort(MonorelError):
    """The user declined a confirmation or interrupted the run."""
