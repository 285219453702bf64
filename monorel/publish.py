"""Publish scheduling: registry uploads in dependency order.

Only public packages are published. They go out layer by layer from the
path-dependency graph, one at a time, and a package is only submitted once
every package it depends on is confirmed visible in the registry. The first
failure stops the whole run; the error lists what is already confirmed so
a rerun can pick up where this one stopped (confirmed versions are skipped).
"""

from __future__ import annotations

from collections.abc import Callable

from .config import PublishOptions
from .errors import PublishError
from .graph import DependencyGraph
from .interrupt import CancelToken
from .models import PublishRecord, PublishState, Workspace
from .registry import Registry, VisibilityWait, WaitState
from .shell import step


def publish_schedule(
    workspace: Workspace, graph: DependencyGraph, versions: dict[str, str]
) -> list[list[str]]:
    """Topological layers of the public packages in ``versions``."""
    public = [
        name
        for name in versions
        if name in workspace.packages and not workspace.packages[name].private
    ]
    return graph.subgraph(public).layers()


def _halt(
    records: dict[str, PublishRecord], order: list[str], name: str, message: str
) -> PublishError:
    records[name].state = PublishState.FAILED
    records[name].error = message
    confirmed = [n for n in order if records[n].state is PublishState.CONFIRMED]
    not_attempted = [n for n in order if records[n].state is PublishState.PENDING]
    uploaded = [
        n for n in order if records[n].uploaded and records[n].state is not PublishState.CONFIRMED
    ]
    return PublishError(
        message,
        package=name,
        confirmed=confirmed,
        not_attempted=not_attempted,
        uploaded=uploaded,
    )


def publish_packages(
    workspace: Workspace,
    graph: DependencyGraph,
    versions: dict[str, str],
    registry: Registry,
    options: PublishOptions,
    *,
    token: CancelToken | None = None,
    sleep: Callable[[float], None] | None = None,
    clock: Callable[[], float] | None = None,
) -> dict[str, PublishRecord]:
    """Publish every public package in ``versions`` (name → version to publish).

    Returns:
        Map of package name → PublishRecord, all CONFIRMED on success.

    Raises:
        PublishError: On the first rejected upload or visibility timeout.
        GraphError: If the restricted graph has a cycle.
    """
    step("Publishing packages")

    token = token or CancelToken()
    layers = publish_schedule(workspace, graph, versions)
    order = [name for layer in layers for name in layer]
    records = {name: PublishRecord(name=name, version=versions[name]) for name in order}
    restricted = graph.subgraph(order)
    wait_kwargs = {k: v for k, v in (("sleep", sleep), ("clock", clock)) if v is not None}

    for depth, layer in enumerate(layers):
        print(f"  layer {depth}: {', '.join(layer)}")
        for name in layer:
            token.raise_if_cancelled()
            record = records[name]
            name_ver = f"{name} {record.version}"

            blocked = [
                dep
                for dep in restricted.dependencies(name)
                if records[dep].state is not PublishState.CONFIRMED
            ]
            if blocked:
                raise _halt(records, order, name, f"{name_ver} is waiting on unconfirmed {blocked}")

            if registry.is_published(name, record.version):
                record.state = PublishState.CONFIRMED
                record.skipped = True
                print(f"  already published {name_ver}")
                continue

            record.state = PublishState.IN_FLIGHT
            try:
                registry.publish(workspace.packages[name], options)
            except PublishError as exc:
                raise _halt(records, order, name, str(exc)) from exc
            record.uploaded = True

            wait = VisibilityWait(registry, name, record.version, options.backoff, **wait_kwargs)
            if wait.run() is not WaitState.CONFIRMED:
                raise _halt(
                    records,
                    order,
                    name,
                    f"publishing has timed out: {name_ver} not visible after "
                    f"{wait.attempts} checks",
                )
            record.state = PublishState.CONFIRMED
            print(f"  published {name_ver}")

    return records
