"""
board_materials.py

Defines the Material descriptor attached to every Part and the MaterialCatalog
that resolves material ids at part creation time. A catalog can be built from
the bundled defaults or loaded from a JSON materials file.
"""

import os
import json
import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Iterable, Union

from .cad_common import MaterialNotFoundError, PersistenceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Material:
    """Material descriptor as stored on a Part."""
    id: str
    name: str
    texture: Optional[str] = None
    color: Optional[str] = None # RGB string, e.g. "217,191,153"

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"id": self.id, "name": self.name}
        if self.texture is not None:
            data["texture"] = self.texture
        if self.color is not None:
            data["color"] = self.color
        return data

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'Material':
        material_id = data.get("id")
        if not material_id:
            raise MaterialNotFoundError(f"Material record has no id: {data}")
        return Material(
            id=str(material_id),
            name=str(data.get("name") or material_id),
            texture=data.get("texture"),
            color=data.get("color")
        )


# Default wood species. Colors follow the workshop's default wood tints.
DEFAULT_MATERIALS: List[Material] = [
    Material("pine", "Pine", color="217,191,153"),
    Material("oak", "Red Oak", color="166,128,102"),
    Material("walnut", "Black Walnut", color="102,77,51"),
    Material("maple", "Hard Maple", color="230,217,179"),
    Material("cherry", "Cherry", color="179,102,77"),
]


class MaterialCatalog:
    """Registry of known materials keyed by material id."""

    def __init__(self, materials: Optional[Iterable[Material]] = None):
        self._materials: Dict[str, Material] = {}
        for material in (materials if materials is not None else DEFAULT_MATERIALS):
            self.add(material)

    def __contains__(self, material_id: str) -> bool:
        return material_id in self._materials

    def __len__(self) -> int:
        return len(self._materials)

    def add(self, material: Material) -> Material:
        """Adds or replaces a material in the catalog."""
        if material.id in self._materials:
            logger.info(f"Replacing material '{material.id}' in catalog")
        self._materials[material.id] = material
        return material

    def get(self, material_id: str) -> Optional[Material]:
        return self._materials.get(material_id)

    def list_materials(self) -> List[Material]:
        return [self._materials[mid] for mid in sorted(self._materials)]

    def resolve(self, material: Union[str, Material, Dict[str, Any], None]) -> Material:
        """
        Resolves a material id, Material or material record against the catalog.
        The catalog entry wins over any name/texture/color passed in.
        """
        if material is None:
            raise MaterialNotFoundError("No material given")
        if isinstance(material, Material):
            material_id = material.id
        elif isinstance(material, dict):
            material_id = material.get("id")
        else:
            material_id = str(material)

        found = self._materials.get(material_id) if material_id else None
        if found is None:
            logger.error(f"Material '{material_id}' not found in catalog")
            raise MaterialNotFoundError(f"Material '{material_id}' not found in catalog")
        return found

    # --- Loading ---

    @staticmethod
    def from_json_file(file_path: str) -> 'MaterialCatalog':
        """
        Loads a catalog from a JSON file holding either a list of material records
        or an object with a "materials" list.
        """
        if not os.path.exists(file_path):
            logger.error(f"Materials file not found: {file_path}")
            raise PersistenceError(f"Materials file not found: {file_path}")
        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading materials file {file_path}: {e}")
            raise PersistenceError(f"Could not read materials file {file_path}: {e}") from e

        records = data.get("materials", []) if isinstance(data, dict) else data
        if not isinstance(records, list):
            raise PersistenceError(f"Materials file {file_path} has no material list")
        catalog = MaterialCatalog(Material.from_dict(r) for r in records)
        logger.info(f"Loaded {len(catalog)} materials from {file_path}")
        return catalog
