"""Tests for HistoryStack and graph cloning."""

from __future__ import annotations

import pytest

from conceptmap.clone import clone_graph
from conceptmap.history import HistoryStack
from conceptmap.models import GraphSnapshot

from conftest import make_edge, make_node


def _snap(tag: str) -> GraphSnapshot:
    return GraphSnapshot(nodes=[make_node(tag)], edges=[])


class TestHistoryStack:
    def test_empty_stack_is_noop(self):
        history = HistoryStack()
        assert history.undo(_snap("now")) is None
        assert history.redo(_snap("now")) is None
        assert history.past == ()
        assert history.future == ()

    def test_undo_moves_current_to_future(self):
        history = HistoryStack()
        history.record(_snap("a"))

        restored = history.undo(_snap("b"))

        assert restored.nodes[0].id == "a"
        assert [s.nodes[0].id for s in history.future] == ["b"]
        assert not history.can_undo
        assert history.can_redo

    def test_redo_takes_earliest_future(self):
        history = HistoryStack()
        history.record(_snap("a"))
        history.record(_snap("b"))
        history.undo(_snap("c"))
        history.undo(_snap("b"))

        following = history.redo(_snap("a"))

        assert following.nodes[0].id == "b"
        assert [s.nodes[0].id for s in history.past] == ["a"]

    def test_record_clears_future(self):
        history = HistoryStack()
        history.record(_snap("a"))
        history.undo(_snap("b"))

        history.record(_snap("x"))

        assert history.future == ()

    def test_capacity_evicts_oldest(self):
        history = HistoryStack(limit=3)
        for tag in "abcde":
            history.record(_snap(tag))

        assert [s.nodes[0].id for s in history.past] == ["c", "d", "e"]

    def test_redo_at_capacity(self):
        history = HistoryStack(limit=2)
        history.record(_snap("a"))
        history.record(_snap("b"))
        history.undo(_snap("c"))

        history.redo(_snap("b"))

        assert [s.nodes[0].id for s in history.past] == ["a", "b"]
        assert len(history) == 2

    def test_invalid_limit(self):
        with pytest.raises(ValueError):
            HistoryStack(limit=0)


class TestCloneGraph:
    def test_snapshot_shares_no_objects(self):
        nodes = [make_node("A", x=1, y=2)]
        edges = [make_edge("e", "A", "A")]

        snapshot = clone_graph(nodes, edges)

        original, copy = nodes[0], snapshot.nodes[0]
        assert copy == original
        assert copy is not original
        assert copy.position is not original.position
        assert copy.data is not original.data
        assert copy.data.style is not original.data.style
        assert snapshot.edges[0] == edges[0]
        assert snapshot.edges[0] is not edges[0]

    def test_mutating_live_graph_leaves_snapshot_intact(self):
        nodes = [make_node("A", x=1, y=2)]
        snapshot = clone_graph(nodes, [])

        nodes[0].position.x = 99
        nodes[0].data.style.bg_color = "#000000"
        nodes.append(make_node("B"))

        assert snapshot.nodes[0].position.x == 1
        assert snapshot.nodes[0].data.style.bg_color == "#ffffff"
        assert len(snapshot.nodes) == 1
