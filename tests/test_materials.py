"""Tests for board_materials module."""
import json

import pytest

from board_builder.board_materials import Material, MaterialCatalog
from board_builder.cad_common import MaterialNotFoundError, PersistenceError


class TestMaterial:

    def test_optional_fields_omitted(self):
        assert Material("pine", "Pine").to_dict() == {"id": "pine", "name": "Pine"}

    def test_round_trip(self):
        material = Material("oak", "Red Oak", texture="oak.jpg", color="166,128,102")
        assert Material.from_dict(material.to_dict()) == material

    def test_name_defaults_to_id(self):
        assert Material.from_dict({"id": "ash"}).name == "ash"

    def test_missing_id(self):
        with pytest.raises(MaterialNotFoundError):
            Material.from_dict({"name": "Mystery"})


class TestCatalog:
    """Test material resolution."""

    def test_defaults(self, catalog):
        assert len(catalog) == 5
        assert "walnut" in catalog
        assert [m.id for m in catalog.list_materials()] == ["cherry", "maple", "oak", "pine", "walnut"]

    @pytest.mark.parametrize("ref", ["oak", {"id": "oak"}, Material("oak", "Other name")])
    def test_resolve(self, catalog, ref):
        assert catalog.resolve(ref) is catalog.get("oak")

    @pytest.mark.parametrize("ref", ["teak", {"name": "no id"}, None])
    def test_resolve_unknown(self, catalog, ref):
        with pytest.raises(MaterialNotFoundError):
            catalog.resolve(ref)

    def test_add_replaces(self, catalog):
        catalog.add(Material("pine", "Eastern White Pine"))
        assert catalog.get("pine").name == "Eastern White Pine"
        assert len(catalog) == 5


class TestCatalogFile:

    def test_list_file(self, tmp_path):
        path = tmp_path / "materials.json"
        path.write_text(json.dumps([{"id": "ash", "name": "White Ash"}]), encoding="utf-8")
        catalog = MaterialCatalog.from_json_file(str(path))
        assert len(catalog) == 1
        assert catalog.get("ash").name == "White Ash"

    def test_object_file(self, tmp_path):
        path = tmp_path / "materials.json"
        path.write_text(json.dumps({"materials": [{"id": "ash"}, {"id": "elm"}]}), encoding="utf-8")
        assert len(MaterialCatalog.from_json_file(str(path))) == 2

    def test_missing_file(self, tmp_path):
        with pytest.raises(PersistenceError):
            MaterialCatalog.from_json_file(str(tmp_path / "none.json"))

    def test_malformed_file(self, tmp_path):
        path = tmp_path / "materials.json"
        path.write_text("[", encoding="utf-8")
        with pytest.raises(PersistenceError):
            MaterialCatalog.from_json_file(str(path))
