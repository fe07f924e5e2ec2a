"""
render_bridge.py

Boundary between the part model and the render layer.
Defines the RenderLayer protocol the store calls into, the conversion of part
data (inches) into render units (centimetres), and a headless renderer that
keeps one mesh description per handle. Render layers only ever receive part
snapshots and hand back opaque handles; they never hold or mutate a Part.
"""

import logging
from dataclasses import dataclass, asdict
from typing import Any, Dict, List, Optional, Tuple, Protocol

from .cad_common import BoundingBox, INCHES_TO_RENDER_UNITS
from .cad_transformations import oriented_box_world_points
from .board_entities import Part

logger = logging.getLogger(__name__)


class RenderLayer(Protocol):
    """Interface consumed from the render layer."""

    def create_mesh(self, part: Part) -> Any:
        ...

    def update_mesh_geometry(self, part: Part, mesh_handle: Any) -> None:
        ...

    def dispose_mesh(self, mesh_handle: Any) -> None:
        ...


@dataclass(frozen=True)
class MeshSpec:
    """Box mesh description in render units."""
    part_id: str
    width: float   # X, from part width
    height: float  # Y, from part thickness
    depth: float   # Z, from part length
    position: Tuple[float, float, float]
    rotation: Tuple[float, float, float] # radians, unscaled
    material_id: str
    color: Optional[str] = None
    texture: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def to_render_units(part: Part, scale: float = INCHES_TO_RENDER_UNITS) -> MeshSpec:
    """The only place inches are converted for display."""
    d = part.dimensions
    p = part.position
    return MeshSpec(
        part_id=part.id,
        width=d.width * scale,
        height=d.thickness * scale,
        depth=d.length * scale,
        position=(p.x * scale, p.y * scale, p.z * scale),
        rotation=part.rotation.as_tuple(),
        material_id=part.material.id,
        color=part.material.color,
        texture=part.material.texture
    )


def from_render_position(position: Tuple[float, float, float],
                         scale: float = INCHES_TO_RENDER_UNITS) -> Tuple[float, float, float]:
    """Converts a render-space position (e.g. from a drag gizmo) back to inches."""
    return (position[0] / scale, position[1] / scale, position[2] / scale)


class SceneSnapshotRenderer:
    """
    Headless RenderLayer. Keeps the latest MeshSpec per integer handle, which is
    enough for previews, exports and tests without a graphics stack.
    """

    def __init__(self, scale: float = INCHES_TO_RENDER_UNITS):
        self.scale = scale
        self._meshes: Dict[int, MeshSpec] = {}
        self._next_handle: int = 1

    def create_mesh(self, part: Part) -> int:
        handle = self._next_handle
        self._next_handle += 1
        self._meshes[handle] = to_render_units(part, self.scale)
        logger.debug(f"Created mesh {handle} for part {part.id}")
        return handle

    def update_mesh_geometry(self, part: Part, mesh_handle: int) -> None:
        if mesh_handle not in self._meshes:
            logger.warning(f"Mesh handle {mesh_handle} unknown; creating geometry for {part.id} anyway")
        self._meshes[mesh_handle] = to_render_units(part, self.scale)

    def dispose_mesh(self, mesh_handle: int) -> None:
        if self._meshes.pop(mesh_handle, None) is None:
            logger.warning(f"Dispose requested for unknown mesh handle {mesh_handle}")

    # --- Queries ---

    def get_mesh(self, mesh_handle: int) -> Optional[MeshSpec]:
        return self._meshes.get(mesh_handle)

    def list_meshes(self) -> List[MeshSpec]:
        return [self._meshes[h] for h in sorted(self._meshes)]

    def scene_bounds(self) -> BoundingBox:
        """Bounding box of every mesh, in render units."""
        bounds = BoundingBox()
        for mesh in self._meshes.values():
            half = (mesh.width / 2, mesh.height / 2, mesh.depth / 2)
            corners = oriented_box_world_points(mesh.position, half, mesh.rotation)
            bounds = bounds.union(BoundingBox.from_points(corners))
        return bounds

    def to_dict(self) -> Dict[str, Any]:
        return {"scale": self.scale, "meshes": [m.to_dict() for m in self.list_meshes()]}
