"""Tests for lineage module."""
import pytest

from board_builder.board_entities import Board, CutRecord, Dimensions
from board_builder.cad_common import PartNotFoundError, PartStateError
from board_builder.cut_planner import CutSpec
from board_builder.lineage import LineageTracker


@pytest.fixture
def tree(store, board):
    """board -> (left, right); right -> (a, b); a -> (a1, a2)."""
    left, right = store.cut_part(board, CutSpec("rip", 0.25))
    a, b = store.cut_part(right, CutSpec("cross", 0.5))
    a1, a2 = store.cut_part(a, CutSpec("rip", 0.3))
    return {"board": board, "left": left, "right": right, "a": a, "b": b, "a1": a1, "a2": a2}


class TestLinking:
    """Test link_split on a bare registry."""

    def test_link_split(self):
        parent, c1, c2 = Board(), Board(), Board()
        tracker = LineageTracker({p.id: p for p in (parent, c1, c2)})
        tracker.link_split(parent, [c1, c2])
        assert parent.child_ids == (c1.id, c2.id)
        assert c1.parent_id == parent.id

    def test_failed_link_restores_everything(self):
        parent, c1, stranger = Board(), Board(), Board()
        tracker = LineageTracker({parent.id: parent, c1.id: c1})
        with pytest.raises(PartNotFoundError):
            tracker.link_split(parent, [c1, stranger])
        assert parent.child_ids == ()
        assert c1.parent_id is None

    def test_child_with_other_parent(self):
        parent, other, child = Board(), Board(), Board(parent_id="part_other")
        tracker = LineageTracker({p.id: p for p in (parent, other, child)})
        with pytest.raises(PartStateError):
            tracker.link_split(parent, [child])
        assert child.parent_id == "part_other"

    def test_self_link(self):
        parent = Board()
        tracker = LineageTracker({parent.id: parent})
        with pytest.raises(PartStateError):
            tracker.link_split(parent, [parent])


class TestTraversal:
    """Test ancestry queries over a cut tree."""

    def test_parent_and_children(self, store, tree):
        lineage = store.lineage
        assert lineage.get_parent(tree["a"].id) is tree["right"]
        assert lineage.get_parent(tree["board"].id) is None
        assert lineage.get_children(tree["right"].id) == [tree["a"], tree["b"]]

    def test_ancestors_nearest_first(self, store, tree):
        ancestors = store.lineage.get_ancestors(tree["a1"].id)
        assert ancestors == [tree["a"], tree["right"], tree["board"]]

    def test_descendants_breadth_first(self, store, tree):
        ids = [p.id for p in store.lineage.get_descendants(tree["board"].id)]
        expected = [tree[k].id for k in ("left", "right", "a", "b", "a1", "a2")]
        assert ids == expected

    def test_root_and_leaves(self, store, tree):
        assert store.lineage.get_root(tree["a2"].id) is tree["board"]
        leaves = {p.id for p in store.lineage.get_leaves(tree["board"].id)}
        assert leaves == {tree[k].id for k in ("left", "b", "a1", "a2")}

    def test_unknown_id(self, store):
        with pytest.raises(PartNotFoundError):
            store.lineage.get_parent("part_missing")

    def test_removed_piece_traversal(self, store, tree):
        # A piece listed in its parent's cut history is removed
        store.remove_part(tree["a1"])
        lineage = store.lineage
        assert lineage.get_ancestors(tree["a1"].id) == [tree["a"], tree["right"], tree["board"]]
        assert tree["a1"] in lineage.get_descendants(tree["board"].id)
        assert tree["a1"] not in lineage.get_descendants(tree["board"].id, include_removed=False)
        assert tree["a1"] not in lineage.get_leaves(tree["board"].id, include_removed=False)
        assert lineage.find_dangling_references() == []


class TestConservation:
    """Test dimensional reconstruction from leaves plus kerfs."""

    def test_single_cut(self, store, board):
        store.cut_part(board, CutSpec("cross", 0.5))
        assert store.lineage.reconstruct_dimension(board.id, "width") == pytest.approx(6.0)
        assert store.lineage.check_conservation(board.id)

    def test_mixed_tree(self, store, tree):
        lineage = store.lineage
        assert lineage.reconstruct_dimension(tree["board"].id, "length") == pytest.approx(96.0)
        assert lineage.reconstruct_dimension(tree["board"].id, "width") == pytest.approx(6.0)
        assert lineage.check_conservation(tree["board"].id)

    def test_survives_planing_and_removal(self, store, tree):
        store.plane_part(tree["b"], 0.5)
        store.remove_part(tree["a2"])
        assert store.lineage.check_conservation(tree["board"].id)

    def test_detects_tampering(self, store, tree):
        # Bypass the store to corrupt a leaf
        tree["left"].dimensions = Dimensions(20, 6, 0.75)
        errors = store.lineage.conservation_errors(tree["board"].id)
        assert errors
        assert not store.lineage.check_conservation(tree["board"].id)

    def test_split_without_history(self):
        parent, child = Board(child_ids=("part_c",)), Board(id="part_c")
        tracker = LineageTracker({parent.id: parent, child.id: child})
        with pytest.raises(PartStateError):
            tracker.reconstruct_dimension(parent.id, "width")

    def test_split_record_matches_children(self, store, board):
        piece1, piece2 = store.cut_part(board, CutSpec("cross", 0.5))
        record = store.lineage.split_record(board)
        assert isinstance(record, CutRecord)
        assert set(record.resulting_part_ids) == {piece1.id, piece2.id}


class TestIntegrity:

    def test_dangling_references(self):
        parent = Board(child_ids=("part_gone",), parent_id="part_lost")
        tracker = LineageTracker({parent.id: parent})
        dangling = tracker.find_dangling_references()
        assert (parent.id, "part_lost") in dangling
        assert (parent.id, "part_gone") in dangling
