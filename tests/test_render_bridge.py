"""Tests for render_bridge module."""
import math

import pytest

from board_builder.board_entities import Board, Dimensions, Vector3
from board_builder.board_materials import Material
from board_builder.render_bridge import SceneSnapshotRenderer, from_render_position, to_render_units


class TestUnitConversion:

    def test_to_render_units(self):
        board = Board(dimensions=Dimensions(96, 6, 0.75), position=Vector3(1, 2, 3),
                      rotation=Vector3(0, 0.5, 0), material=Material("oak", "Red Oak", color="166,128,102"))
        mesh = to_render_units(board)
        assert mesh.width == pytest.approx(6 * 2.54)
        assert mesh.height == pytest.approx(0.75 * 2.54)
        assert mesh.depth == pytest.approx(96 * 2.54)
        assert mesh.position == pytest.approx((2.54, 5.08, 7.62))
        # Angles are not scaled
        assert mesh.rotation == (0.0, 0.5, 0.0)
        assert mesh.material_id == "oak"
        assert mesh.color == "166,128,102"

    def test_from_render_position(self):
        assert from_render_position((2.54, 5.08, 0.0)) == pytest.approx((1.0, 2.0, 0.0))


class TestSceneSnapshotRenderer:
    """Test the headless render layer."""

    def test_handles_are_unique(self):
        renderer = SceneSnapshotRenderer()
        h1 = renderer.create_mesh(Board())
        h2 = renderer.create_mesh(Board())
        assert h1 != h2
        assert len(renderer.list_meshes()) == 2

    def test_update_and_dispose(self):
        renderer = SceneSnapshotRenderer(scale=1.0)
        board = Board()
        handle = renderer.create_mesh(board)
        board.set_position(5, 0, 0)
        renderer.update_mesh_geometry(board, handle)
        assert renderer.get_mesh(handle).position == (5.0, 0.0, 0.0)
        renderer.dispose_mesh(handle)
        assert renderer.get_mesh(handle) is None

    def test_scene_bounds(self):
        renderer = SceneSnapshotRenderer(scale=1.0)
        renderer.create_mesh(Board(dimensions=Dimensions(96, 6, 0.75)))
        renderer.create_mesh(Board(dimensions=Dimensions(10, 2, 0.75), position=Vector3(20, 0, 0)))
        bounds = renderer.scene_bounds()
        assert bounds.min_x == pytest.approx(-3.0)
        assert bounds.max_x == pytest.approx(21.0)
        assert bounds.size[2] == pytest.approx(96.0)

    def test_scene_bounds_rotated(self):
        renderer = SceneSnapshotRenderer(scale=1.0)
        renderer.create_mesh(Board(dimensions=Dimensions(96, 6, 0.75), rotation=Vector3(0, math.pi / 2, 0)))
        assert renderer.scene_bounds().size == pytest.approx((96.0, 0.75, 6.0))

    def test_empty_scene(self):
        assert not SceneSnapshotRenderer().scene_bounds().is_valid()

    def test_to_dict(self):
        renderer = SceneSnapshotRenderer()
        board = Board()
        renderer.create_mesh(board)
        data = renderer.to_dict()
        assert data["scale"] == pytest.approx(2.54)
        assert data["meshes"][0]["part_id"] == board.id
