"""
part_store.py

Defines the PartStore class, the central manager and single source of truth for
every piece of stock in a project.
It holds the registry of all part records (active, split tombstones and
removed-flagged records), owns the LineageTracker that links them, and mediates
every creation, mutation, cut and removal. Each mutating call ends with a
full-store save through the injected persistence gateway; if any step fails the
store is rolled back to its state before the call.

Render layers and UI listeners are injected too; the store keeps the
mesh-handle <-> part-id table so the render side never holds a Part.
"""

import logging
from contextlib import contextmanager
from dataclasses import dataclass, field, replace
from typing import (
    Any, Callable, Dict, Iterator, List, NamedTuple, Optional, Set, Tuple, Union, TYPE_CHECKING
)

from .cad_common import (
    BoardBuilderError, InvalidDimensionError, PartNotFoundError, PartStateError, now_ms
)
from .board_entities import Part, Board, CutRecord, Dimensions, RoutedEdge, Vector3, generate_part_id
from .board_materials import MaterialCatalog
from .cut_planner import CutSpec, CutPlan, PiecePlan, plan_cut, plan_plane, build_cut_record_data
from .lineage import LineageTracker
from . import config

if TYPE_CHECKING:
    from .persistence import PersistenceGateway
    from .render_bridge import RenderLayer

logger = logging.getLogger(__name__)

# Type for identifiers (part id string or the part object itself)
Identifiable = Union[str, Part]

# Fields commit_part_change may overwrite, and the value type each must carry
MUTABLE_FIELDS: Dict[str, type] = {
    "position": Vector3,
    "rotation": Vector3,
    "dimensions": Dimensions,
}
# History tuples; a new value must keep the current one as its prefix
APPEND_ONLY_FIELDS = ("modifications", "routed_edges")


@dataclass(frozen=True)
class PartEvent:
    """Change notification sent to subscribers after a committed operation."""
    kind: str # "created" | "modified" | "cut" | "removed"
    part_ids: Tuple[str, ...]
    timestamp: int = field(default_factory=now_ms)


PartListener = Callable[[PartEvent], None]


class CutResult(NamedTuple):
    piece1: Part
    piece2: Part


class PartStore:
    """
    Manages all parts and their lineage within a project.
    Acts as the central registry and source of truth.
    """
    def __init__(self, catalog: Optional[MaterialCatalog] = None,
                 gateway: Optional["PersistenceGateway"] = None,
                 renderer: Optional["RenderLayer"] = None,
                 project_id: str = config.DEFAULT_PROJECT_ID,
                 default_kerf_width: float = config.KERF_WIDTH):
        self.project_id: str = project_id
        self.catalog: MaterialCatalog = catalog if catalog is not None else MaterialCatalog()
        self.default_kerf_width: float = default_kerf_width
        self.last_modified: int = now_ms()
        self._gateway = gateway
        self._renderer = renderer

        # --- Registries ---
        # Every record keyed by id, in creation order
        self._parts: Dict[str, Part] = {}
        # Ids that left the registry (hard deletes, rolled-back pieces); never reallocated
        self._retired_ids: Set[str] = set()

        # --- Render Handle Table ---
        self._mesh_handles: Dict[str, Any] = {} # Part id -> mesh handle
        self._mesh_owners: Dict[Any, str] = {}  # Mesh handle -> part id

        self._listeners: List[PartListener] = []
        self.lineage = LineageTracker(self._parts)

        logger.info(f"Initialized PartStore: {self.project_id}")

    def __len__(self) -> int:
        return len(self.get_all_parts())

    def __contains__(self, identifier: Identifiable) -> bool:
        return self._resolve_identifier(identifier) is not None

    # --- Internal Helper: Identifier Resolution ---
    def _resolve_identifier(self, identifier: Optional[Identifiable]) -> Optional[str]:
        """Resolves a part id or part object to a registered id."""
        if identifier is None:
            return None
        part_id = identifier.id if isinstance(identifier, Part) else str(identifier)
        if part_id not in self._parts:
            logger.debug(f"Identifier '{part_id}' not found in registry.")
            return None
        return part_id

    def _require_part(self, identifier: Identifiable) -> Part:
        part_id = self._resolve_identifier(identifier)
        if part_id is None:
            ident = identifier.id if isinstance(identifier, Part) else identifier
            logger.error(f"Part '{ident}' not found.")
            raise PartNotFoundError(f"Part '{ident}' not found")
        return self._parts[part_id]

    # --- Internal Helper: Registration ---
    def _allocate_id(self) -> str:
        while True:
            part_id = generate_part_id()
            if part_id not in self._parts and part_id not in self._retired_ids:
                return part_id

    def _register(self, part: Part) -> None:
        if part.id in self._parts or part.id in self._retired_ids:
            logger.error(f"Part id {part.id} is already in use or retired.")
            raise PartStateError(f"Part id {part.id} is already in use or retired")
        self._parts[part.id] = part
        part.set_store_link(self)
        logger.debug(f"Registered {type(part).__name__} {part.id}")

    def _unregister(self, part_id: str) -> Part:
        part = self._parts.pop(part_id)
        part.set_store_link(None)
        self._retired_ids.add(part_id)
        logger.debug(f"Unregistered {type(part).__name__} {part_id}")
        return part

    # --- Internal Helper: Transactions ---
    @contextmanager
    def _rollback_on_failure(self, *touched: Part) -> Iterator[None]:
        """
        Snapshots the registry and the touched parts; restores both if the body raises.
        Parts registered inside the body are dropped and their ids retired.
        """
        saved_registry = dict(self._parts)
        saved_retired = set(self._retired_ids)
        saved_states = {p.id: p.snapshot() for p in touched}
        saved_last_modified = self.last_modified
        try:
            yield
        except Exception:
            added = [p for pid, p in self._parts.items() if pid not in saved_registry]
            self._parts.clear()
            self._parts.update(saved_registry)
            self._retired_ids = saved_retired | {p.id for p in added}
            for part in added:
                part.set_store_link(None)
            for part in touched:
                part.restore(saved_states[part.id])
                if part.id in self._parts:
                    part.set_store_link(self)
            self.last_modified = saved_last_modified
            logger.warning(f"Operation rolled back ({len(added)} new parts discarded)")
            raise

    def set_gateway(self, gateway: Optional["PersistenceGateway"]) -> None:
        """Attaches the gateway used for the save at the end of every mutation."""
        self._gateway = gateway

    def _persist(self) -> None:
        """Full-store save. PersistenceError propagates to the caller."""
        self.last_modified = now_ms()
        if self._gateway is None:
            return
        self._gateway.save(self)

    # --- Internal Helper: Render Layer ---
    def _attach_mesh(self, part: Part) -> None:
        if self._renderer is None:
            return
        try:
            handle = self._renderer.create_mesh(part)
        except Exception:
            logger.exception(f"Render layer failed to create mesh for {part.id}")
            return
        self._mesh_handles[part.id] = handle
        self._mesh_owners[handle] = part.id

    def _sync_mesh(self, part: Part) -> None:
        handle = self._mesh_handles.get(part.id)
        if self._renderer is None or handle is None:
            return
        try:
            self._renderer.update_mesh_geometry(part, handle)
        except Exception:
            logger.exception(f"Render layer failed to update mesh for {part.id}")

    def _detach_mesh(self, part_id: str) -> None:
        handle = self._mesh_handles.pop(part_id, None)
        if handle is None:
            return
        self._mesh_owners.pop(handle, None)
        if self._renderer is None:
            return
        try:
            self._renderer.dispose_mesh(handle)
        except Exception:
            logger.exception(f"Render layer failed to dispose mesh for {part_id}")

    def attach_renderer(self, renderer: Optional["RenderLayer"]) -> None:
        """Swaps the render layer and builds meshes for every active part."""
        for part_id in list(self._mesh_handles):
            self._detach_mesh(part_id)
        self._renderer = renderer
        for part in self.get_all_parts():
            self._attach_mesh(part)

    def mesh_for(self, identifier: Identifiable) -> Optional[Any]:
        part_id = self._resolve_identifier(identifier)
        return self._mesh_handles.get(part_id) if part_id else None

    def part_for_mesh(self, mesh_handle: Any) -> Optional[Part]:
        """Mesh-to-part lookup for picking; the render layer never stores the Part itself."""
        part_id = self._mesh_owners.get(mesh_handle)
        return self._parts.get(part_id) if part_id else None

    # --- Change Notifications ---
    def subscribe(self, listener: PartListener) -> PartListener:
        self._listeners.append(listener)
        return listener

    def unsubscribe(self, listener: PartListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def _notify(self, kind: str, *part_ids: str) -> None:
        event = PartEvent(kind, tuple(part_ids))
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception(f"Listener {listener!r} failed handling '{kind}' event")

    # --- Public API: Getters ---

    def get_part(self, identifier: Identifiable) -> Optional[Part]:
        """Gets any part record (active, split or removed) by id."""
        part_id = self._resolve_identifier(identifier)
        return self._parts.get(part_id) if part_id else None

    def get_all_parts(self) -> List[Part]:
        """Active parts: not split and not removed."""
        return [p for p in self._parts.values() if p.is_active]

    def get_parts_by_type(self, part_type: str) -> List[Part]:
        return [p for p in self.get_all_parts() if p.type == part_type]

    def get_tombstones(self) -> List[Part]:
        """Parts that have been split; kept for lineage and history."""
        return [p for p in self._parts.values() if p.is_split]

    def get_removed_parts(self) -> List[Part]:
        return [p for p in self._parts.values() if p.removed]

    def list_records(self) -> List[Part]:
        """Every record in creation order, as persisted."""
        return list(self._parts.values())

    def is_retired(self, part_id: str) -> bool:
        return part_id in self._retired_ids

    # --- Public API: Creation ---

    def create_part(self, data: Optional[Dict[str, Any]] = None) -> Part:
        """
        Creates a part from a record-shaped dict (defaults fill omitted fields),
        registers it, persists the store and builds its mesh.
        """
        data = dict(data or {})
        if data.get("id"):
            logger.warning(f"Ignoring caller-supplied id '{data['id']}'; the store allocates ids.")
        data["id"] = self._allocate_id()

        part = Part.create(data, catalog=self.catalog)

        with self._rollback_on_failure():
            self._register(part)
            self._persist()

        self._attach_mesh(part)
        self._notify("created", part.id)
        d = part.dimensions
        logger.info(f"Added {part.type} {part.id} ({d.length}x{d.width}x{d.thickness} {part.material.id})")
        return part

    def add_board(self, length: float, width: float, thickness: float, material: str = "pine",
                  position: Tuple[float, float, float] = (0.0, 0.0, 0.0),
                  rotation: Tuple[float, float, float] = (0.0, 0.0, 0.0),
                  grain: Optional[str] = None, grade: Optional[str] = None) -> Board:
        """Convenience wrapper around create_part for fresh boards."""
        data: Dict[str, Any] = {
            "type": "board",
            "dimensions": {"length": length, "width": width, "thickness": thickness},
            "position": dict(zip("xyz", position)),
            "rotation": dict(zip("xyz", rotation)),
            "material": material,
            "grain": grain,
            "grade": grade
        }
        return self.create_part(data) # type: ignore

    # --- Public API: Mutation ---

    def _check_changes(self, part: Part, changes: Dict[str, Any]) -> None:
        """
        Rejects changes to identity, lineage and cut history, and any rewrite of
        an append-only history. Lineage and cut history only change through cut_part.
        """
        for name, value in changes.items():
            if name in MUTABLE_FIELDS:
                expected = MUTABLE_FIELDS[name]
                if not isinstance(value, expected):
                    logger.error(f"Change to {part.id}.{name} must be a {expected.__name__}, got {value!r}")
                    raise PartStateError(f"Field '{name}' must be a {expected.__name__}")
                if name == "dimensions":
                    part.validate_dimensions(value)
            elif name in APPEND_ONLY_FIELDS and hasattr(part, name):
                current = getattr(part, name)
                if not isinstance(value, tuple) or value[:len(current)] != current:
                    logger.error(f"Change to {part.id}.{name} would rewrite its append-only history")
                    raise PartStateError(f"Field '{name}' is append-only")
            else:
                logger.error(f"Field '{name}' of {part.id} cannot be changed through commit_part_change")
                raise PartStateError(f"Field '{name}' cannot be changed on part {part.id}")

    def commit_part_change(self, part: Part, changes: Dict[str, Any]) -> None:
        """
        Applies attribute changes to a registered part, persists, and resyncs its mesh.
        Only placement, dimensions and appends to modifications/routed_edges are accepted.
        The part is restored if the save fails.
        """
        if self._parts.get(part.id) is not part:
            logger.error(f"Part {part.id} does not belong to store {self.project_id}.")
            raise PartNotFoundError(f"Part {part.id} does not belong to this store")
        part.ensure_mutable()
        self._check_changes(part, changes)

        with self._rollback_on_failure(part):
            part.apply_fields(changes)
            self._persist()

        self._sync_mesh(part)
        self._notify("modified", part.id)
        logger.debug(f"Updated {part.id}: {sorted(changes)}")

    def move_part(self, identifier: Identifiable, x: float, y: float, z: float) -> Part:
        part = self._require_part(identifier)
        part.set_position(x, y, z)
        return part

    def rotate_part(self, identifier: Identifiable, x: float, y: float, z: float) -> Part:
        part = self._require_part(identifier)
        part.set_rotation(x, y, z)
        return part

    def resize_part(self, identifier: Identifiable, length: float, width: float, thickness: float) -> Part:
        part = self._require_part(identifier)
        part.set_dimensions(length, width, thickness)
        return part

    def plane_part(self, identifier: Identifiable, new_thickness: float) -> Part:
        """Planes a board down to new_thickness, removing stock from the top face."""
        part = self._require_part(identifier)
        part.ensure_mutable()
        plan = plan_plane(part, new_thickness)
        entry = {
            "operation": "plane",
            "timestamp": now_ms(),
            "removed": plan.removed,
            "fromThickness": part.dimensions.thickness,
            "toThickness": plan.dimensions.thickness
        }
        self.commit_part_change(part, {
            "dimensions": plan.dimensions,
            "position": plan.position,
            "modifications": part.modifications + (entry,)
        })
        logger.info(f"Planed {part.id}: {entry['fromThickness']} -> {entry['toThickness']} in")
        return part

    def route_edge(self, identifier: Identifiable, edge: str, bit: str, depth: float) -> Part:
        """Records an edge profile routed on a board."""
        part = self._require_part(identifier)
        part.ensure_mutable()
        if not isinstance(part, Board):
            raise PartStateError(f"Only boards can be routed; part {part.id} is a {part.type}")
        if not edge:
            raise ValueError("Edge name must not be empty")
        if not 0 < depth < part.dimensions.thickness:
            raise InvalidDimensionError(
                f"Route depth {depth} must be > 0 and less than the thickness {part.dimensions.thickness}"
            )
        entry = RoutedEdge(edge=str(edge), bit=str(bit), depth=float(depth), timestamp=now_ms())
        self.commit_part_change(part, {"routed_edges": part.routed_edges + (entry,)})
        logger.info(f"Routed edge '{edge}' of {part.id} with {bit} at {depth} in")
        return part

    # --- Public API: Cutting ---

    def _derive_piece(self, parent: Part, piece: PiecePlan) -> Part:
        timestamp = now_ms()
        changes: Dict[str, Any] = dict(
            id=self._allocate_id(),
            dimensions=piece.dimensions,
            position=piece.position,
            modifications=(),
            parent_id=None,
            child_ids=(),
            created=timestamp,
            modified=timestamp,
            removed=False
        )
        if isinstance(parent, Board):
            changes.update(routed_edges=(), cut_history=())
        # Inherits type, rotation, material, grain and grade
        return replace(parent, **changes)

    def cut_part(self, identifier: Identifiable, cut_spec: Union[CutSpec, Dict[str, Any]]) -> CutResult:
        """
        Splits an active board into two pieces.
        The parent becomes a tombstone holding the cut record; both pieces become active.
        Nothing changes if planning, linking or saving fails.
        """
        parent = self._require_part(identifier)
        parent.ensure_mutable()
        spec = cut_spec if isinstance(cut_spec, CutSpec) else CutSpec.from_dict(cut_spec)
        spec = spec.with_default_kerf(self.default_kerf_width)
        plan: CutPlan = plan_cut(parent, spec)

        piece1 = self._derive_piece(parent, plan.piece1)
        piece2 = self._derive_piece(parent, plan.piece2)

        with self._rollback_on_failure(parent):
            self._register(piece1)
            self._register(piece2)
            self.lineage.link_split(parent, [piece1, piece2])
            record = CutRecord(**build_cut_record_data(plan, (piece1.id, piece2.id)))
            parent.apply_fields({"cut_history": parent.cut_history + (record,)}) # type: ignore
            self._persist()

        self._detach_mesh(parent.id)
        self._attach_mesh(piece1)
        self._attach_mesh(piece2)
        self._notify("cut", parent.id, piece1.id, piece2.id)
        logger.info(f"Cut {parent.id} ({spec.axis.value} at {spec.position}) into {piece1.id} and {piece2.id}")
        return CutResult(piece1, piece2)

    # --- Public API: Removal ---

    def remove_part(self, identifier: Identifiable) -> None:
        """
        Removes an active part from the active collection.
        Parts with no lineage are deleted outright; pieces cut from a parent stay on
        record flagged as removed so the parent's child_ids and history still resolve.
        """
        part = self._require_part(identifier)
        if part.removed:
            raise PartStateError(f"Part {part.id} has already been removed")
        if part.is_split:
            logger.error(f"Cannot remove split part {part.id}; remove its pieces instead.")
            raise PartStateError(f"Part {part.id} has been split; remove its pieces instead")

        hard_delete = part.parent_id is None
        with self._rollback_on_failure(part):
            if hard_delete:
                self._unregister(part.id)
            else:
                part.apply_fields({"removed": True})
            self._persist()

        self._detach_mesh(part.id)
        self._notify("removed", part.id)
        logger.info(f"Removed part {part.id} ({'deleted' if hard_delete else 'flagged, lineage kept'})")

    # --- Bulk Loading ---

    def load_records(self, parts: List[Part], last_modified: Optional[int] = None) -> None:
        """Inserts already-persisted records without saving (used by gateways on load)."""
        if self._parts:
            raise BoardBuilderError("load_records requires an empty store")
        for part in parts:
            self._register(part)
        if last_modified is not None:
            self.last_modified = last_modified
        for part in self.get_all_parts():
            self._attach_mesh(part)
        logger.info(f"Loaded {len(parts)} records ({len(self.get_all_parts())} active) into {self.project_id}")

    # --- Integrity ---

    def find_lineage_roots(self) -> List[Part]:
        return [p for p in self._parts.values() if p.parent_id is None and p.is_split]

    def verify_conservation(self, tolerance: float = 1e-9) -> bool:
        """Runs the lineage conservation check over every cut tree."""
        return all(self.lineage.check_conservation(root.id, tolerance) for root in self.find_lineage_roots())
