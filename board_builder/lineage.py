"""
lineage.py

Defines the LineageTracker, which owns the parent/child links between parts.
It works directly on the store's record registry (active parts, tombstones and
removed-flagged records alike), so lineage queries keep working after a part is
split or removed.
"""

import math
import logging
from collections import deque
from typing import Dict, List, Optional, Sequence, Tuple

from .cad_common import PartNotFoundError, PartStateError
from .board_entities import Part, CutRecord

logger = logging.getLogger(__name__)

CUT_DIMENSION = {"cross": "width", "rip": "length"}


class LineageTracker:
    """Maintains parent.child_ids / child.parent_id and answers ancestry queries."""

    def __init__(self, registry: Dict[str, Part]):
        # Shared with the store; never copied
        self._registry = registry

    def _require(self, part_id: str) -> Part:
        part = self._registry.get(part_id)
        if part is None:
            raise PartNotFoundError(f"Part '{part_id}' not found in lineage registry")
        return part

    # --- Linking ---

    def link_split(self, parent: Part, children: Sequence[Part]) -> None:
        """
        Records that children were split from parent.
        Either every link is written or none is.
        """
        touched = [parent] + list(children)
        saved: Dict[str, Tuple[Optional[str], Tuple[str, ...]]] = {
            p.id: (p.parent_id, p.child_ids) for p in touched
        }
        try:
            for child in children:
                if child.id == parent.id:
                    raise PartStateError(f"Cannot link part {parent.id} to itself")
                if child.parent_id is not None and child.parent_id != parent.id:
                    raise PartStateError(f"Part {child.id} already has parent {child.parent_id}")
                if child.id not in self._registry:
                    raise PartNotFoundError(f"Child part {child.id} is not registered")
                child.parent_id = parent.id
            new_ids = tuple(c.id for c in children if c.id not in parent.child_ids)
            parent.child_ids = parent.child_ids + new_ids
        except Exception:
            for part in touched:
                part.parent_id, part.child_ids = saved[part.id]
            logger.error(f"Linking split of {parent.id} failed; lineage restored")
            raise
        logger.debug(f"Linked {parent.id} -> {[c.id for c in children]}")

    # --- Queries ---

    def get_parent(self, part_id: str) -> Optional[Part]:
        part = self._require(part_id)
        if part.parent_id is None:
            return None
        parent = self._registry.get(part.parent_id)
        if parent is None:
            logger.warning(f"Parent {part.parent_id} of {part_id} is missing from the registry")
        return parent

    def get_children(self, part_id: str) -> List[Part]:
        part = self._require(part_id)
        children = []
        for child_id in part.child_ids:
            child = self._registry.get(child_id)
            if child is None:
                logger.warning(f"Child {child_id} of {part_id} is missing from the registry")
                continue
            children.append(child)
        return children

    def get_ancestors(self, part_id: str) -> List[Part]:
        """Ancestors nearest first, ending at the root."""
        ancestors: List[Part] = []
        seen = {part_id}
        current = self.get_parent(part_id)
        while current is not None:
            if current.id in seen:
                logger.error(f"Lineage cycle detected at {current.id}")
                break
            seen.add(current.id)
            ancestors.append(current)
            current = self.get_parent(current.id)
        return ancestors

    def get_descendants(self, part_id: str, include_removed: bool = True) -> List[Part]:
        """All descendants, breadth first."""
        result: List[Part] = []
        seen = {part_id}
        queue = deque(self.get_children(part_id))
        while queue:
            part = queue.popleft()
            if part.id in seen:
                continue
            seen.add(part.id)
            if include_removed or not part.removed:
                result.append(part)
            queue.extend(self.get_children(part.id))
        return result

    def get_root(self, part_id: str) -> Part:
        ancestors = self.get_ancestors(part_id)
        return ancestors[-1] if ancestors else self._require(part_id)

    def get_leaves(self, part_id: str, include_removed: bool = True) -> List[Part]:
        part = self._require(part_id)
        if not part.is_split:
            return [part] if include_removed or not part.removed else []
        return [p for p in self.get_descendants(part_id, include_removed) if not p.is_split]

    # --- Conservation ---

    def split_record(self, part: Part) -> Optional[CutRecord]:
        """The cut history entry that produced part's current children."""
        history: Tuple[CutRecord, ...] = getattr(part, "cut_history", ())
        for record in reversed(history):
            if set(record.resulting_part_ids) == set(part.child_ids):
                return record
        return history[-1] if history else None

    def reconstruct_dimension(self, part_id: str, dimension: str) -> float:
        """Rebuilds a part's dimension from its leaves plus the kerfs along the way."""
        return self._reconstruct(self._require(part_id), dimension, 0.0, [])

    def conservation_errors(self, root_id: str, tolerance: float = 1e-9) -> List[str]:
        errors: List[str] = []
        root = self._require(root_id)
        # Thickness is never a cut axis; planing a piece legitimately changes it
        for dimension in ("length", "width"):
            rebuilt = self._reconstruct(root, dimension, tolerance, errors)
            original = root.dimensions.get(dimension)
            if not math.isclose(rebuilt, original, rel_tol=0.0, abs_tol=tolerance):
                errors.append(f"{root_id}: {dimension} rebuilds to {rebuilt}, expected {original}")
        return errors

    def check_conservation(self, root_id: str, tolerance: float = 1e-9) -> bool:
        """True when leaves plus kerfs reconstruct the root along every axis."""
        errors = self.conservation_errors(root_id, tolerance)
        for error in errors:
            logger.warning(f"Conservation violated: {error}")
        return not errors

    def _reconstruct(self, part: Part, dimension: str, tolerance: float, errors: List[str]) -> float:
        own = part.dimensions.get(dimension)
        if not part.is_split:
            return own
        children = [self._require(cid) for cid in part.child_ids]
        values = [self._reconstruct(child, dimension, tolerance, errors) for child in children]
        record = self.split_record(part)
        if record is None:
            raise PartStateError(f"Part {part.id} has children but no cut history")

        if CUT_DIMENSION.get(record.cut_type) == dimension:
            total = sum(values) + record.kerf_width
            if not math.isclose(total, own, rel_tol=0.0, abs_tol=tolerance):
                errors.append(f"{part.id}: pieces + kerf = {total}, {dimension} is {own}")
            return total

        # Perpendicular to the cut every piece keeps the parent's size
        for child, value in zip(children, values):
            if not math.isclose(value, own, rel_tol=0.0, abs_tol=tolerance):
                errors.append(f"{child.id}: {dimension} {value} differs from parent {part.id} ({own})")
        return own

    # --- Integrity ---

    def find_dangling_references(self) -> List[Tuple[str, str]]:
        """(holder_id, missing_id) pairs for every lineage or history reference that does not resolve."""
        dangling: List[Tuple[str, str]] = []
        for part in self._registry.values():
            if part.parent_id is not None and part.parent_id not in self._registry:
                dangling.append((part.id, part.parent_id))
            for child_id in part.child_ids:
                if child_id not in self._registry:
                    dangling.append((part.id, child_id))
            for record in getattr(part, "cut_history", ()):
                for result_id in record.resulting_part_ids:
                    if result_id not in self._registry and (part.id, result_id) not in dangling:
                        dangling.append((part.id, result_id))
        return dangling
