"""Tests for monorel.graph."""

from __future__ import annotations

import pytest

from monorel.errors import GraphError
from monorel.graph import DependencyGraph
from monorel.models import DependencyKind, DependencyRef, PackageInfo


def _pkg(name: str, *deps: str, dev: tuple[str, ...] = ()) -> PackageInfo:
    refs = [DependencyRef(name=d, requirement=d, path=True) for d in deps]
    refs += [DependencyRef(name=d, requirement=d, path=True, kind=DependencyKind.DEV) for d in dev]
    return PackageInfo(name=name, path=name, version="1.0.0", deps=refs)


def _packages(*infos: PackageInfo) -> dict[str, PackageInfo]:
    return {info.name: info for info in infos}


class TestBuildOrder:
    def test_no_deps(self) -> None:
        graph = DependencyGraph.from_packages(_packages(_pkg("c"), _pkg("a"), _pkg("b")))
        assert graph.layers() == [["a", "b", "c"]]

    def test_linear_deps(self) -> None:
        graph = DependencyGraph.from_packages(_packages(_pkg("a", "b"), _pkg("b", "c"), _pkg("c")))
        assert graph.layers() == [["c"], ["b"], ["a"]]

    def test_diamond_deps(self) -> None:
        packages = _packages(
            _pkg("top", "left", "right"),
            _pkg("left", "bottom"),
            _pkg("right", "bottom"),
            _pkg("bottom"),
        )
        assert DependencyGraph.from_packages(packages).layers() == [
            ["bottom"],
            ["left", "right"],
            ["top"],
        ]

    def test_empty_packages(self) -> None:
        assert DependencyGraph.from_packages({}).layers() == []

    def test_external_deps_ignored(self) -> None:
        """Dependencies outside the package set are already resolvable."""
        graph = DependencyGraph.from_packages(_packages(_pkg("a", "external"), _pkg("b", "a")))
        assert graph.layers() == [["a"], ["b"]]

    def test_dev_deps_do_not_order(self) -> None:
        """A dev-only cycle is not a publish cycle."""
        graph = DependencyGraph.from_packages(_packages(_pkg("a", "b"), _pkg("b", dev=("a",))))
        assert graph.layers() == [["b"], ["a"]]

    def test_index_deps_do_not_order(self) -> None:
        packages = _packages(
            PackageInfo(
                name="a",
                path="a",
                version="1.0.0",
                deps=[DependencyRef(name="b", requirement="b>=1", path=False)],
            ),
            _pkg("b", "a"),
        )
        assert DependencyGraph.from_packages(packages).layers() == [["a"], ["b"]]


class TestCycles:
    def test_two_way_cycle_reports_path(self) -> None:
        graph = DependencyGraph.from_packages(_packages(_pkg("a", "b"), _pkg("b", "a")))
        assert graph.find_cycle() == ["a", "b", "a"]

    def test_three_way_cycle_reports_path(self) -> None:
        graph = DependencyGraph.from_packages(
            _packages(_pkg("a", "b"), _pkg("b", "c"), _pkg("c", "a"), _pkg("d", "a"))
        )
        with pytest.raises(GraphError, match="a → b → c → a") as exc_info:
            graph.check_acyclic()
        assert exc_info.value.cycle == ["a", "b", "c", "a"]

    def test_layers_raise_on_cycle(self) -> None:
        graph = DependencyGraph.from_packages(_packages(_pkg("a", "b"), _pkg("b", "a")))
        with pytest.raises(GraphError):
            graph.layers()

    def test_acyclic(self) -> None:
        graph = DependencyGraph.from_packages(_packages(_pkg("a", "b"), _pkg("b")))
        assert graph.find_cycle() is None


class TestLayers:
    def test_layers(self) -> None:
        graph = DependencyGraph.from_packages(
            _packages(_pkg("app", "lib", "util"), _pkg("lib", "util"), _pkg("util"), _pkg("cli"))
        )
        assert graph.layers() == [["cli", "util"], ["lib"], ["app"]]

    def test_every_dependency_in_an_earlier_layer(self) -> None:
        packages = _packages(
            _pkg("e", "d", "a"), _pkg("d", "b", "c"), _pkg("c", "a"), _pkg("b", "a"), _pkg("a")
        )
        graph = DependencyGraph.from_packages(packages)
        depth = {name: i for i, layer in enumerate(graph.layers()) for name in layer}
        for src, dst in graph.edges():
            assert depth[dst] < depth[src]

    def test_deterministic(self) -> None:
        first = DependencyGraph.from_packages(_packages(_pkg("b"), _pkg("a"), _pkg("c", "a")))
        second = DependencyGraph.from_packages(_packages(_pkg("c", "a"), _pkg("a"), _pkg("b")))
        assert first.layers() == second.layers() == [["a", "b"], ["c"]]

    def test_subgraph_drops_outside_edges(self) -> None:
        graph = DependencyGraph.from_packages(_packages(_pkg("a", "b"), _pkg("b", "c"), _pkg("c")))
        sub = graph.subgraph(["a", "c"])
        assert len(sub) == 2
        assert sub.edges() == []
        assert "b" not in sub


class TestDependentsClosure:
    def test_transitive(self) -> None:
        graph = DependencyGraph.from_packages(
            _packages(_pkg("a", "b"), _pkg("b", "c"), _pkg("c"), _pkg("d"))
        )
        assert graph.dependents_closure(["c"]) == {"b": "c", "a": "b"}

    def test_seeds_not_included(self) -> None:
        graph = DependencyGraph.from_packages(_packages(_pkg("a", "b"), _pkg("b")))
        assert graph.dependents_closure(["a", "b"]) == {}

    def test_unknown_seed_ignored(self) -> None:
        graph = DependencyGraph.from_packages(_packages(_pkg("a")))
        assert graph.dependents_closure(["zzz"]) == {}
