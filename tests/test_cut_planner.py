"""Tests for cut_planner module."""
import math

import pytest

from board_builder.board_entities import Board, Dimensions, Fastener, Vector3
from board_builder.cad_common import InvalidCutError, InvalidDimensionError, PartStateError
from board_builder.cut_planner import (
    CutAxis, CutSpec, SeparationMode, plan_cut, plan_plane, build_cut_record_data,
)


@pytest.fixture
def stock():
    return Board(dimensions=Dimensions(96, 6, 0.75))


class TestCutSpec:
    """Test cut description parsing and validation."""

    def test_defaults(self):
        spec = CutSpec("cross", 0.5)
        assert spec.axis is CutAxis.CROSS
        # Unset kerf falls back to the shop default
        assert spec.kerf_width is None
        assert spec.separation is SeparationMode.KERF
        assert spec.material_loss == pytest.approx(0.125)
        assert spec.extra_separation == 0.0

    @pytest.mark.parametrize("position", [0.0, 1.0, -0.1, 1.5, float("nan")])
    def test_position_out_of_range(self, position):
        with pytest.raises(InvalidCutError):
            CutSpec("cross", position)

    def test_kerf_must_be_positive(self):
        with pytest.raises(InvalidCutError):
            CutSpec("rip", 0.5, kerf_width=0)

    def test_unknown_axis(self):
        with pytest.raises(InvalidCutError):
            CutSpec("diagonal", 0.5)

    def test_from_dict(self):
        spec = CutSpec.from_dict({"axis": "RIP", "position": 0.3, "kerfWidth": 0.09})
        assert spec.axis is CutAxis.RIP
        assert spec.kerf_width == pytest.approx(0.09)

    def test_from_dict_missing_key(self):
        with pytest.raises(InvalidCutError):
            CutSpec.from_dict({"axis": "cross"})

    def test_with_default_kerf(self):
        assert CutSpec("cross", 0.5).with_default_kerf(0.25).kerf_width == pytest.approx(0.25)
        # An explicit kerf is kept
        assert CutSpec("cross", 0.5, kerf_width=0.09).with_default_kerf(0.25).kerf_width == pytest.approx(0.09)

    def test_plan_resolves_default_kerf(self, stock):
        plan = plan_cut(stock, CutSpec("cross", 0.5))
        assert plan.spec.kerf_width == pytest.approx(0.125)
        assert plan.kerf_loss == pytest.approx(0.125)

    def test_fixed_gap_has_no_loss(self):
        spec = CutSpec("cross", 0.5, separation="fixed_gap")
        assert spec.material_loss == 0.0
        assert spec.extra_separation == pytest.approx(2.0)


class TestKerfCuts:
    """Test the kerf-based split."""

    def test_cross_cut_half(self, stock):
        plan = plan_cut(stock, CutSpec("cross", 0.5, kerf_width=0.125))
        assert plan.piece1.dimensions.width == pytest.approx(2.9375)
        assert plan.piece2.dimensions.width == pytest.approx(2.9375)
        assert plan.piece1.dimensions.length == pytest.approx(96)
        assert plan.piece2.dimensions.thickness == pytest.approx(0.75)

    def test_rip_cut_quarter(self, stock):
        plan = plan_cut(stock, CutSpec("rip", 0.25))
        assert plan.piece1.dimensions.length == pytest.approx(23.9375)
        assert plan.piece2.dimensions.length == pytest.approx(71.9375)
        assert plan.piece1.dimensions.width == pytest.approx(6)

    @pytest.mark.parametrize("axis,dim", [("cross", "width"), ("rip", "length")])
    @pytest.mark.parametrize("position", [0.1, 0.37, 0.5, 0.9])
    def test_conservation(self, stock, axis, dim, position):
        plan = plan_cut(stock, CutSpec(axis, position))
        total = plan.piece1.dimensions.get(dim) + plan.piece2.dimensions.get(dim) + plan.kerf_loss
        assert total == pytest.approx(stock.dimensions.get(dim), abs=1e-9)

    def test_cross_cut_positions_along_local_x(self, stock):
        plan = plan_cut(stock, CutSpec("cross", 0.5))
        p1, p2 = plan.piece1.position, plan.piece2.position
        assert p1.x == pytest.approx(-3 + 2.9375 / 2)
        assert p2.x == pytest.approx(3 - 2.9375 / 2)
        # Pieces are kerf apart
        gap = (p2.x - 2.9375 / 2) - (p1.x + 2.9375 / 2)
        assert gap == pytest.approx(0.125)
        assert p1.z == pytest.approx(0.0)

    def test_rip_cut_positions_along_local_z(self, stock):
        plan = plan_cut(stock, CutSpec("rip", 0.25))
        assert plan.piece1.position.z == pytest.approx(-48 + 23.9375 / 2)
        assert plan.piece2.position.z == pytest.approx(48 - 71.9375 / 2)
        assert plan.piece1.position.x == pytest.approx(0.0)

    def test_rotated_parent_offsets_in_world(self):
        # Quarter turn about Y maps local X onto world -Z
        board = Board(dimensions=Dimensions(96, 6, 0.75), position=Vector3(10, 0, 0),
                      rotation=Vector3(0, math.pi / 2, 0))
        plan = plan_cut(board, CutSpec("cross", 0.5))
        offset = -3 + 2.9375 / 2
        assert plan.piece1.position.x == pytest.approx(10.0)
        assert plan.piece1.position.z == pytest.approx(-offset)

    def test_position_at_edge_fails(self, stock):
        with pytest.raises(InvalidCutError):
            plan_cut(stock, CutSpec.from_dict({"axis": "cross", "position": 0.01, "kerfWidth": 0.125}))

    def test_kerf_wider_than_board(self, stock):
        with pytest.raises(InvalidCutError):
            plan_cut(stock, CutSpec("cross", 0.5, kerf_width=7))

    def test_non_board_rejected(self):
        with pytest.raises(PartStateError):
            plan_cut(Fastener(), CutSpec("cross", 0.5))

    def test_parent_untouched(self, stock):
        before = stock.to_dict()
        plan_cut(stock, CutSpec("rip", 0.5))
        assert stock.to_dict() == before


class TestFixedGapCuts:
    """Test the no-loss variant."""

    def test_sizes_and_spacing(self, stock):
        plan = plan_cut(stock, CutSpec("cross", 0.5, separation="fixed_gap", gap=2.0))
        assert plan.kerf_loss == 0.0
        assert plan.piece1.dimensions.width == pytest.approx(3.0)
        assert plan.piece2.dimensions.width == pytest.approx(3.0)
        assert plan.piece1.position.x == pytest.approx(-2.5)
        assert plan.piece2.position.x == pytest.approx(2.5)

    def test_centroid_is_parent_centre(self, stock):
        plan = plan_cut(stock, CutSpec("rip", 0.25, separation="fixed_gap"))
        low = plan.piece1.position.z - plan.piece1.dimensions.length / 2
        high = plan.piece2.position.z + plan.piece2.dimensions.length / 2
        assert (low + high) / 2 == pytest.approx(0.0)

    def test_record_data(self, stock):
        plan = plan_cut(stock, CutSpec("cross", 0.5, separation="fixed_gap", gap=1.5))
        data = build_cut_record_data(plan, ("part_a", "part_b"))
        assert data["kerf_width"] == 0.0
        assert data["gap"] == pytest.approx(1.5)
        assert data["separation"] == "fixed_gap"
        assert data["resulting_part_ids"] == ("part_a", "part_b")


class TestPlanePlan:

    def test_plane_moves_centre_down(self, stock):
        plan = plan_plane(stock, 0.5)
        assert plan.removed == pytest.approx(0.25)
        assert plan.dimensions.thickness == pytest.approx(0.5)
        assert plan.position.y == pytest.approx(-0.125)

    @pytest.mark.parametrize("thickness", [0.75, 1.0, 0.1, 0.0])
    def test_invalid_thickness(self, stock, thickness):
        with pytest.raises(InvalidDimensionError):
            plan_plane(stock, thickness)

    def test_non_board_rejected(self):
        with pytest.raises(PartStateError):
            plan_plane(Fastener(), 0.1)
