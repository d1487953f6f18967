"""Tests for contextree.graph and contextree.navigate."""

from __future__ import annotations

import pytest

from contextree.graph import KnowledgeGraph
from contextree.navigate import navigate, walk_frontiers
from contextree.snapshot import Node, NodeKind, Snapshot

KB = "docs/knowledge"


def _index(*links: str) -> Node:
    return Node(f"{KB}/README.md", NodeKind.INDEX, outbound_links=links)


def _readme(module: str, *links: str) -> Node:
    return Node(f"{KB}/{module}/README.md", NodeKind.MODULE_README,
                outbound_links=links, module_id=module)


def _arch(module: str, *links: str) -> Node:
    return Node(f"{KB}/{module}/ARCHITECTURE.md", NodeKind.ARCHITECTURE,
                outbound_links=links, module_id=module)


def _graph(*nodes: Node) -> KnowledgeGraph:
    return KnowledgeGraph(Snapshot(root="/proj", knowledge_root=KB, nodes=nodes))


@pytest.fixture
def chain() -> KnowledgeGraph:
    """INDEX -> a -> b -> c -> d, each module linking only to the next."""
    return _graph(
        _index("a/README.md"),
        _readme("a", "../b/README.md"),
        _readme("b", "../c/README.md"),
        _readme("c", "../d/README.md"),
        _readme("d"),
    )


class TestKnowledgeGraph:
    def test_edges_resolved_and_deduplicated(self) -> None:
        graph = _graph(
            _index("a/README.md", "./a/README.md", "b/README.md"),
            _readme("a"),
            _readme("b"),
        )
        assert graph.neighbors(f"{KB}/README.md") == (f"{KB}/a/README.md", f"{KB}/b/README.md")
        assert graph.root == f"{KB}/README.md"
        assert len(graph) == 3

    def test_dangling_links_recorded(self) -> None:
        graph = _graph(_index("a/README.md"), _readme("a", "../ghost/README.md"))
        assert len(graph.dangling_links) == 1
        dangling = graph.dangling_links[0]
        assert dangling.source == f"{KB}/a/README.md"
        assert dangling.resolved == f"{KB}/ghost/README.md"
        assert graph.neighbors(f"{KB}/a/README.md") == ()

    def test_link_escaping_root_is_dangling(self) -> None:
        graph = _graph(_index("../../../../outside.md"))
        assert graph.dangling_links[0].resolved is None

    def test_progress_files_are_not_nodes(self) -> None:
        progress = Node(f"{KB}/a/_progress.md", NodeKind.PROGRESS, module_id="a")
        graph = _graph(_index("a/_progress.md"), progress)
        assert progress.path not in graph
        assert graph.dangling_links == ()
        assert graph.neighbors(f"{KB}/README.md") == ()

    def test_reachable_from(self, chain: KnowledgeGraph) -> None:
        assert len(chain.reachable_from(chain.root)) == 5
        assert chain.reachable_from(f"{KB}/c/README.md") == {
            f"{KB}/c/README.md", f"{KB}/d/README.md",
        }
        assert chain.reachable_from("nope.md") == set()


class TestWalkFrontiers:
    def test_levels(self, chain: KnowledgeGraph) -> None:
        hops = list(walk_frontiers(chain, chain.root, 2))
        assert [h.depth for h in hops] == [0, 1, 2]
        assert hops[2].nodes == (f"{KB}/b/README.md",)

    def test_negative_hops_rejected(self, chain: KnowledgeGraph) -> None:
        with pytest.raises(ValueError):
            list(walk_frontiers(chain, chain.root, -1))

    def test_lazy(self, chain: KnowledgeGraph) -> None:
        frontiers = walk_frontiers(chain, chain.root, 10)
        assert next(frontiers).nodes == (chain.root,)


class TestNavigate:
    def test_found_path_is_shortest_chain(self, chain: KnowledgeGraph) -> None:
        result = navigate(chain, None, "c", max_hops=4)
        assert result.found
        assert result.hops == 3
        assert result.paths == [
            f"{KB}/README.md", f"{KB}/a/README.md", f"{KB}/b/README.md", f"{KB}/c/README.md",
        ]

    def test_target_at_exact_budget(self, chain: KnowledgeGraph) -> None:
        result = navigate(chain, None, "d", max_hops=4)
        assert result.found
        assert len(result.visited_path) == 5

    def test_beyond_budget_not_found(self, chain: KnowledgeGraph) -> None:
        result = navigate(chain, None, "d", max_hops=3)
        assert not result.found
        assert len(result.visited_path) <= 4
        assert result.paths[-1] == f"{KB}/c/README.md"

    def test_zero_hops_only_start(self, chain: KnowledgeGraph) -> None:
        result = navigate(chain, None, "a", max_hops=0)
        assert not result.found
        assert result.paths == [f"{KB}/README.md"]

    def test_cycle_terminates(self) -> None:
        graph = _graph(
            _index("a/README.md"),
            _readme("a", "../b/README.md"),
            _readme("b", "../a/README.md"),
        )
        result = navigate(graph, None, "missing", max_hops=50)
        assert not result.found
        assert sorted(result.paths) == sorted([
            f"{KB}/README.md", f"{KB}/a/README.md", f"{KB}/b/README.md",
        ])
        assert len(result.paths) == len(set(result.paths))

    def test_prefers_readme_at_same_depth(self) -> None:
        graph = _graph(
            _index("pay/ARCHITECTURE.md", "pay/README.md"),
            _readme("pay"),
            _arch("pay"),
        )
        result = navigate(graph, None, "pay", max_hops=4)
        assert result.visited_path[-1].kind is NodeKind.MODULE_README

    def test_shallower_architecture_beats_deeper_readme(self) -> None:
        graph = _graph(
            _index("pay/ARCHITECTURE.md", "hub/README.md"),
            _readme("hub", "../pay/README.md"),
            _readme("pay"),
            _arch("pay"),
        )
        result = navigate(graph, None, "pay", max_hops=4)
        assert result.hops == 1
        assert result.visited_path[-1].kind is NodeKind.ARCHITECTURE

    def test_not_found_returns_chain_to_last_visited(self) -> None:
        graph = _graph(
            _index("a/README.md", "b/README.md"),
            _readme("a", "../c/README.md"),
            _readme("b"),
            _readme("c"),
        )
        result = navigate(graph, None, "zzz", max_hops=4)
        assert result.paths == [f"{KB}/README.md", f"{KB}/a/README.md", f"{KB}/c/README.md"]
        assert result.hops == 2
        assert result.explored == 4

    @pytest.mark.parametrize("max_hops", [0, 1, 2, 3, 10])
    def test_miss_on_branching_cycle_stays_within_hop_bound(self, max_hops: int) -> None:
        graph = _graph(
            _index("a/README.md", "b/README.md", "c/README.md"),
            _readme("a", "../b/README.md", "../d/README.md"),
            _readme("b", "../a/README.md", "../e/README.md"),
            _readme("c", "../a/README.md"),
            _readme("d", "../c/README.md"),
            _readme("e", "../b/README.md"),
        )
        result = navigate(graph, None, "ghost", max_hops=max_hops)
        assert not result.found
        assert len(result.visited_path) <= max_hops + 1
        assert result.paths[0] == f"{KB}/README.md"

    def test_miss_counts_every_explored_node(self) -> None:
        graph = _graph(
            _index("a/README.md", "b/README.md", "c/README.md"),
            _readme("a", "../b/README.md"),
            _readme("b", "../a/README.md"),
            _readme("c"),
        )
        result = navigate(graph, None, "ghost", max_hops=1)
        assert result.paths == [f"{KB}/README.md", f"{KB}/c/README.md"]
        assert result.explored == 4

    def test_explicit_start(self, chain: KnowledgeGraph) -> None:
        result = navigate(chain, f"{KB}/b/README.md", "d", max_hops=2)
        assert result.found
        assert result.paths[0] == f"{KB}/b/README.md"

    def test_start_is_target(self, chain: KnowledgeGraph) -> None:
        result = navigate(chain, f"{KB}/a/README.md", "a", max_hops=0)
        assert result.found
        assert result.hops == 0

    def test_unknown_start(self, chain: KnowledgeGraph) -> None:
        result = navigate(chain, "nowhere.md", "a", max_hops=4)
        assert not result.found
        assert result.visited_path == ()

    def test_no_index(self) -> None:
        graph = _graph(_readme("a"))
        result = navigate(graph, None, "a", max_hops=4)
        assert not result.found
        assert result.visited_path == ()

    def test_negative_hops_rejected(self, chain: KnowledgeGraph) -> None:
        with pytest.raises(ValueError, match="max_hops"):
            navigate(chain, None, "a", max_hops=-1)
