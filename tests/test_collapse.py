"""Tests for the collapse projection."""

from __future__ import annotations

import pytest

from conceptmap.collapse import get_descendants, hidden_node_ids, project

from conftest import make_edge, make_node


def _hidden(nodes):
    return sorted(n.id for n in nodes if n.hidden)


def _chain(collapsed: set[str]):
    nodes = [make_node(i, collapsed=i in collapsed) for i in "ABCD"]
    edges = [make_edge("ab", "A", "B"), make_edge("bc", "B", "C"), make_edge("cd", "C", "D")]
    return nodes, edges


class TestProject:
    def test_nothing_collapsed_hides_nothing(self):
        nodes, edges = _chain(set())
        out_nodes, out_edges = project(nodes, edges)
        assert not any(n.hidden for n in out_nodes)
        assert not any(e.hidden for e in out_edges)

    def test_collapsed_leaf_hides_nothing(self):
        nodes, edges = _chain({"D"})
        out_nodes, out_edges = project(nodes, edges)
        assert _hidden(out_nodes) == []
        assert not any(e.hidden for e in out_edges)

    def test_chain_collapse_hides_downstream(self):
        nodes, edges = _chain({"B"})
        out_nodes, out_edges = project(nodes, edges)

        assert _hidden(out_nodes) == ["C", "D"]
        assert sorted(e.id for e in out_edges if e.hidden) == ["bc", "cd"]
        by_id = {e.id: e for e in out_edges}
        assert by_id["ab"].hidden is False
        assert next(n for n in out_nodes if n.id == "B").hidden is False

    def test_sibling_branch_stays_visible(self):
        nodes = [make_node("A"), make_node("B", collapsed=True), make_node("C"), make_node("D")]
        edges = [make_edge("e1", "A", "B"), make_edge("e2", "B", "C"), make_edge("e3", "A", "D")]

        out_nodes, out_edges = project(nodes, edges)

        assert _hidden(out_nodes) == ["C"]
        assert [e.id for e in out_edges if e.hidden] == ["e2"]

    def test_collapsed_root_hides_subtree(self):
        nodes = [make_node("A", collapsed=True), make_node("B"), make_node("C")]
        edges = [make_edge("e1", "A", "B"), make_edge("e2", "B", "C")]

        out_nodes, _ = project(nodes, edges)

        assert _hidden(out_nodes) == ["B", "C"]

    @pytest.mark.parametrize("order", [("X", "Y"), ("Y", "X")])
    def test_overlapping_collapses_union(self, order):
        # X -> S1 -> shared, Y -> S2 -> shared -> tail
        ids = ["X", "Y", "S1", "S2", "shared", "tail"]
        edges = [
            make_edge("1", "X", "S1"),
            make_edge("2", "S1", "shared"),
            make_edge("3", "Y", "S2"),
            make_edge("4", "S2", "shared"),
            make_edge("5", "shared", "tail"),
        ]
        nodes = [make_node(i, collapsed=i in ("X", "Y")) for i in (*order, *ids[2:])]

        out_nodes, _ = project(nodes, edges)

        x_only = get_descendants("X", edges)
        y_only = get_descendants("Y", edges)
        assert set(_hidden(out_nodes)) == x_only | y_only == {"S1", "S2", "shared", "tail"}

    def test_collapsed_node_hidden_by_collapsed_ancestor(self):
        nodes = [make_node("A", collapsed=True), make_node("B", collapsed=True), make_node("C")]
        edges = [make_edge("e1", "A", "B"), make_edge("e2", "B", "C")]

        out_nodes, _ = project(nodes, edges)

        assert _hidden(out_nodes) == ["B", "C"]


class TestMalformedInput:
    def test_cycle_terminates_and_keeps_collapsed_node_visible(self):
        nodes = [make_node("A", collapsed=True), make_node("B"), make_node("C")]
        edges = [make_edge("1", "A", "B"), make_edge("2", "B", "C"), make_edge("3", "C", "A")]

        out_nodes, out_edges = project(nodes, edges)

        assert _hidden(out_nodes) == ["B", "C"]
        # The edge back into A touches hidden C, so it is hidden too
        assert sorted(e.id for e in out_edges if e.hidden) == ["1", "2", "3"]

    def test_self_loop(self):
        nodes = [make_node("A", collapsed=True)]
        edges = [make_edge("loop", "A", "A")]

        out_nodes, out_edges = project(nodes, edges)

        assert _hidden(out_nodes) == []
        assert out_edges[0].hidden is False

    def test_dangling_endpoints_do_not_raise(self):
        nodes = [make_node("A", collapsed=True), make_node("B")]
        edges = [make_edge("1", "A", "ghost"), make_edge("2", "ghost", "B"), make_edge("3", "nowhere", "A")]

        out_nodes, out_edges = project(nodes, edges)

        # ghost is reachable from A and leads on to B
        assert _hidden(out_nodes) == ["B"]
        by_id = {e.id: e for e in out_edges}
        assert by_id["1"].hidden is True
        assert by_id["3"].hidden is False

    def test_large_cycle_without_recursion_limit(self):
        count = 5000
        nodes = [make_node(str(i), collapsed=(i == 0)) for i in range(count)]
        edges = [make_edge(f"e{i}", str(i), str((i + 1) % count)) for i in range(count)]

        hidden = hidden_node_ids(nodes, edges)

        assert len(hidden) == count - 1
        assert "0" not in hidden


class TestPurity:
    def test_inputs_are_not_mutated(self):
        nodes, edges = _chain({"A"})
        before_nodes = [n.model_dump() for n in nodes]
        before_edges = [e.model_dump() for e in edges]

        out_nodes, out_edges = project(nodes, edges)

        assert [n.model_dump() for n in nodes] == before_nodes
        assert [e.model_dump() for e in edges] == before_edges
        assert all(a is not b for a, b in zip(nodes, out_nodes))
        assert all(a is not b for a, b in zip(edges, out_edges))

    def test_stale_hidden_flag_is_recomputed(self):
        nodes = [make_node("A", hidden=True)]
        out_nodes, _ = project(nodes, [])
        assert out_nodes[0].hidden is False
