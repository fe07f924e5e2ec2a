"""
board_entities.py

Defines the core entity classes (Part, Board, Fastener, Hardware) and the small
immutable value types they are built from (Vector3, Dimensions, CutRecord,
RoutedEdge).
Entities primarily hold their intrinsic attributes (dimensions, placement,
material, history). Lineage links are written by the LineageTracker and every
mutation is committed through the owning PartStore.
"""

import math
import uuid
import weakref
import logging
from dataclasses import dataclass, field, fields, replace
from typing import List, Dict, Tuple, Optional, Any, Type, TYPE_CHECKING

from .cad_common import (
    BoundingBox, InvalidDimensionError, PartStateError, now_ms,
    BOARD_THICKNESS_FLOOR, DEFAULT_BOARD_DIMENSIONS, DEFAULT_MATERIAL_ID,
    DEFAULT_GRADE, DEFAULT_GRAIN
)
from .cad_transformations import oriented_box_world_points
from .board_materials import Material, MaterialCatalog

# Type hint for the store class without circular import
if TYPE_CHECKING:
    from .part_store import PartStore

logger = logging.getLogger(__name__)

GRAIN_DIRECTIONS = ("vertical", "horizontal")


def check_grain(grain: str) -> str:
    """Returns grain if it is a known grain direction; raises ValueError otherwise."""
    if grain not in GRAIN_DIRECTIONS:
        logger.error(f"Unknown grain '{grain}' (expected one of {GRAIN_DIRECTIONS})")
        raise ValueError(f"Unknown grain '{grain}'; expected one of {', '.join(GRAIN_DIRECTIONS)}")
    return grain


def generate_part_id() -> str:
    """Returns a fresh, globally unique part id."""
    return f"part_{uuid.uuid4().hex}"


# --- Value Types ---

@dataclass(frozen=True)
class Vector3:
    """World-space triple (inches for positions, radians for rotations)."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __post_init__(self):
        for name in ("x", "y", "z"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise ValueError(f"Vector component {name} must be a finite number, got {value!r}")
            object.__setattr__(self, name, float(value))

    def as_tuple(self) -> Tuple[float, float, float]:
        return (self.x, self.y, self.z)

    def offset(self, dx: float, dy: float, dz: float) -> 'Vector3':
        return Vector3(self.x + dx, self.y + dy, self.z + dz)

    def to_dict(self) -> Dict[str, float]:
        return {"x": self.x, "y": self.y, "z": self.z}

    @staticmethod
    def from_dict(data: Optional[Dict[str, Any]]) -> 'Vector3':
        if not data:
            return Vector3()
        return Vector3(data.get("x", 0.0), data.get("y", 0.0), data.get("z", 0.0))


@dataclass(frozen=True)
class Dimensions:
    """
    Physical size of a part in inches.
    Local axes: width along X, thickness along Y, length along Z.
    """
    length: float
    width: float
    thickness: float

    def __post_init__(self):
        for name in ("length", "width", "thickness"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidDimensionError(f"Dimension {name} must be a finite number, got {value!r}")
            if value <= 0:
                raise InvalidDimensionError(f"Dimension {name} must be > 0, got {value}")
            object.__setattr__(self, name, float(value))

    def get(self, name: str) -> float:
        if name not in ("length", "width", "thickness"):
            raise KeyError(name)
        return getattr(self, name)

    def with_value(self, name: str, value: float) -> 'Dimensions':
        """Returns a copy with one dimension replaced (validated)."""
        return replace(self, **{name: value})

    def local_half_extents(self) -> Tuple[float, float, float]:
        return (self.width / 2, self.thickness / 2, self.length / 2)

    def to_dict(self) -> Dict[str, float]:
        return {"length": self.length, "width": self.width, "thickness": self.thickness}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'Dimensions':
        try:
            return Dimensions(data["length"], data["width"], data["thickness"])
        except (KeyError, TypeError) as e:
            raise InvalidDimensionError(f"Incomplete dimensions record: {data!r}") from e


@dataclass(frozen=True)
class CutRecord:
    """One entry of a board's append-only cut history."""
    timestamp: int
    cut_type: str
    cut_position: float
    kerf_width: float
    resulting_part_ids: Tuple[str, ...]
    separation: str = "kerf"
    gap: float = 0.0

    def to_dict(self) -> Dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "cutType": self.cut_type,
            "cutPosition": self.cut_position,
            "kerfWidth": self.kerf_width,
            "resultingPartIds": list(self.resulting_part_ids),
            "separation": self.separation,
            "gap": self.gap
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'CutRecord':
        return CutRecord(
            timestamp=int(data["timestamp"]),
            cut_type=str(data["cutType"]),
            cut_position=float(data["cutPosition"]),
            kerf_width=float(data["kerfWidth"]),
            resulting_part_ids=tuple(data.get("resultingPartIds", [])),
            separation=str(data.get("separation", "kerf")),
            gap=float(data.get("gap", 0.0))
        )


@dataclass(frozen=True)
class RoutedEdge:
    """An edge profile applied on the router table."""
    edge: str
    bit: str
    depth: float
    timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {"edge": self.edge, "bit": self.bit, "depth": self.depth, "timestamp": self.timestamp}

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'RoutedEdge':
        return RoutedEdge(
            edge=str(data["edge"]),
            bit=str(data["bit"]),
            depth=float(data["depth"]),
            timestamp=int(data["timestamp"])
        )


# --- Part Entity ---

@dataclass
class Part:
    """
    One physical piece of stock.
    The id never changes; every other attribute is mutated through the owning
    PartStore (directly, or via the setters below which route through it).
    """
    id: str = field(default_factory=generate_part_id)
    type: str = "part"
    dimensions: Dimensions = field(default_factory=lambda: Dimensions(*DEFAULT_BOARD_DIMENSIONS))
    position: Vector3 = field(default_factory=Vector3)
    rotation: Vector3 = field(default_factory=Vector3)
    material: Material = field(default_factory=lambda: Material(DEFAULT_MATERIAL_ID, "Pine"))
    modifications: Tuple[Dict[str, Any], ...] = ()
    parent_id: Optional[str] = None
    child_ids: Tuple[str, ...] = ()
    created: int = field(default_factory=now_ms)
    modified: int = field(default_factory=now_ms)
    removed: bool = False

    # Reference back to the store (transient, never serialized)
    _store_ref: Optional[weakref.ReferenceType] = field(default=None, init=False, repr=False, compare=False)

    # --- Lineage State ---
    @property
    def is_split(self) -> bool:
        """A part with children is a tombstone: kept for history, not pickable."""
        return len(self.child_ids) > 0

    @property
    def is_active(self) -> bool:
        return not self.is_split and not self.removed

    @property
    def is_board(self) -> bool:
        return False

    # --- Store Context ---
    def get_store(self) -> Optional["PartStore"]:
        """Returns the owning store, if linked."""
        if self._store_ref:
            return self._store_ref()
        return None

    def set_store_link(self, store: Optional["PartStore"]):
        """Sets the weak reference to the owning store."""
        self._store_ref = weakref.ref(store) if store is not None else None

    # --- Validation ---
    @classmethod
    def validate_dimensions(cls, dimensions: Dimensions) -> None:
        """Hook for type-specific dimension rules. Positivity is enforced by Dimensions itself."""
        pass

    def ensure_mutable(self) -> None:
        if self.removed:
            raise PartStateError(f"Part {self.id} has been removed")
        if self.is_split:
            raise PartStateError(f"Part {self.id} has been split and is read-only")

    # --- Mutation ---
    def set_position(self, x: float, y: float, z: float) -> None:
        self._apply_change({"position": Vector3(x, y, z)})

    def set_rotation(self, x: float, y: float, z: float) -> None:
        self._apply_change({"rotation": Vector3(x, y, z)})

    def set_dimensions(self, length: float, width: float, thickness: float) -> None:
        dimensions = Dimensions(length, width, thickness)
        self.validate_dimensions(dimensions)
        self._apply_change({"dimensions": dimensions})

    def _apply_change(self, changes: Dict[str, Any]) -> None:
        self.ensure_mutable()
        store = self.get_store()
        if store is not None:
            # The store snapshots, persists, resyncs the mesh and rolls back on failure
            store.commit_part_change(self, changes)
        else:
            self.apply_fields(changes)

    def apply_fields(self, changes: Dict[str, Any]) -> None:
        """Writes attribute changes and stamps the modification time."""
        for name, value in changes.items():
            setattr(self, name, value)
        self.modified = max(now_ms(), self.modified)

    def snapshot(self) -> Dict[str, Any]:
        """Captures the field state. Field values are immutable, so a shallow copy suffices."""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.init}

    def restore(self, state: Dict[str, Any]) -> None:
        for name, value in state.items():
            setattr(self, name, value)

    def delete(self) -> None:
        """Removes the part through its store, or flags it when unlinked."""
        store = self.get_store()
        if store is not None:
            store.remove_part(self.id)
        else:
            logger.warning(f"Part {self.id} is not linked to a store; flagging as removed only.")
            self.apply_fields({"removed": True})

    # --- Geometry ---
    def get_world_bounding_box(self) -> BoundingBox:
        """World bounding box computed from the part data, never from a mesh."""
        corners = oriented_box_world_points(
            self.position.as_tuple(), self.dimensions.local_half_extents(), self.rotation.as_tuple()
        )
        return BoundingBox.from_points(corners)

    # --- Serialization ---
    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "id": self.id,
            "type": self.type,
            "dimensions": self.dimensions.to_dict(),
            "position": self.position.to_dict(),
            "rotation": self.rotation.to_dict(),
            "material": self.material.to_dict(),
            "modifications": [dict(m) for m in self.modifications],
            "parentId": self.parent_id,
            "childIds": list(self.child_ids),
            "created": self.created,
            "modified": self.modified
        }
        if self.removed:
            data["removed"] = True
        return data

    def _extra_fields_from_dict(self, data: Dict[str, Any]) -> None:
        """Hook for subclasses to read their own fields."""
        pass

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> 'Part':
        """Rebuilds a part (of the right variant) from its record."""
        try:
            part_id = str(data["id"])
            part_type = str(data["type"])
            dimensions = Dimensions.from_dict(data["dimensions"])
        except KeyError as e:
            raise InvalidDimensionError(f"Part record is missing {e}: {data!r}") from e

        cls = part_class_for(part_type)
        part = cls(
            id=part_id,
            dimensions=dimensions,
            position=Vector3.from_dict(data.get("position")),
            rotation=Vector3.from_dict(data.get("rotation")),
            material=Material.from_dict(data.get("material") or {"id": DEFAULT_MATERIAL_ID}),
            modifications=tuple(dict(m) for m in data.get("modifications", [])),
            parent_id=data.get("parentId"),
            child_ids=tuple(data.get("childIds", [])),
            created=int(data.get("created", 0)),
            modified=int(data.get("modified", 0)),
            removed=bool(data.get("removed", False))
        )
        # Unknown types keep their type string on a generic Part
        part.type = part_type
        part._extra_fields_from_dict(data)
        return part

    @staticmethod
    def create(data: Optional[Dict[str, Any]] = None, catalog: Optional[MaterialCatalog] = None) -> 'Part':
        """
        Builds a fresh part from a record-shaped dict, filling defaults for omitted fields.
        The material is resolved against the catalog when one is given.
        """
        data = dict(data or {})
        part_type = str(data.get("type") or "board")
        cls = part_class_for(part_type)

        default_length, default_width, default_thickness = DEFAULT_BOARD_DIMENSIONS
        dims = data.get("dimensions") or {}
        dimensions = Dimensions(
            dims.get("length", default_length),
            dims.get("width", default_width),
            dims.get("thickness", default_thickness)
        )
        cls.validate_dimensions(dimensions)

        material_data = data.get("material", DEFAULT_MATERIAL_ID)
        if catalog is not None:
            material = catalog.resolve(material_data)
        elif isinstance(material_data, Material):
            material = material_data
        elif isinstance(material_data, dict):
            material = Material.from_dict(material_data)
        else:
            material = Material(str(material_data), str(material_data).title())

        timestamp = now_ms()
        part = cls(
            id=str(data.get("id") or generate_part_id()),
            dimensions=dimensions,
            position=Vector3.from_dict(data.get("position")),
            rotation=Vector3.from_dict(data.get("rotation")),
            material=material,
            created=int(data.get("created") or timestamp),
            modified=int(data.get("modified") or timestamp)
        )
        part.type = part_type
        part._extra_fields_from_create(data)
        return part

    def _extra_fields_from_create(self, data: Dict[str, Any]) -> None:
        """Hook for subclasses to read their own creation fields."""
        pass


# --- Concrete Part Types ---

@dataclass
class Board(Part):
    """Lumber stock. The only type that can be cut, planed and routed."""
    type: str = "board"
    grain: str = DEFAULT_GRAIN
    grade: str = DEFAULT_GRADE
    routed_edges: Tuple[RoutedEdge, ...] = ()
    cut_history: Tuple[CutRecord, ...] = ()

    def __post_init__(self):
        check_grain(self.grain)

    @property
    def is_board(self) -> bool:
        return True

    @property
    def board_feet(self) -> float:
        """Volume in board feet (144 cubic inches)."""
        d = self.dimensions
        return d.length * d.width * d.thickness / 144.0

    @classmethod
    def validate_dimensions(cls, dimensions: Dimensions) -> None:
        if dimensions.thickness < BOARD_THICKNESS_FLOOR:
            raise InvalidDimensionError(
                f"Board thickness {dimensions.thickness} is below the {BOARD_THICKNESS_FLOOR} in floor"
            )

    def to_dict(self) -> Dict[str, Any]:
        data = super().to_dict()
        data["grain"] = self.grain
        data["grade"] = self.grade
        data["routedEdges"] = [e.to_dict() for e in self.routed_edges]
        data["cutHistory"] = [c.to_dict() for c in self.cut_history]
        return data

    def _extra_fields_from_dict(self, data: Dict[str, Any]) -> None:
        self.grain = check_grain(str(data.get("grain", DEFAULT_GRAIN)))
        self.grade = str(data.get("grade", DEFAULT_GRADE))
        self.routed_edges = tuple(RoutedEdge.from_dict(e) for e in data.get("routedEdges", []))
        self.cut_history = tuple(CutRecord.from_dict(c) for c in data.get("cutHistory", []))

    def _extra_fields_from_create(self, data: Dict[str, Any]) -> None:
        self.grain = check_grain(str(data.get("grain") or DEFAULT_GRAIN))
        self.grade = str(data.get("grade") or DEFAULT_GRADE)


@dataclass
class Fastener(Part):
    """Screws, nails, dowels and the like. Tracked but never cut."""
    type: str = "fastener"


@dataclass
class Hardware(Part):
    """Hinges, slides, brackets."""
    type: str = "hardware"


PART_TYPES: Dict[str, Type[Part]] = {
    "board": Board,
    "fastener": Fastener,
    "hardware": Hardware,
}


def part_class_for(part_type: str) -> Type[Part]:
    """Returns the entity class for a type string (generic Part for unknown types)."""
    return PART_TYPES.get(part_type, Part)


def list_part_types() -> List[str]:
    return sorted(PART_TYPES)
