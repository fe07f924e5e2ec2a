"""
cut_planner.py

Pure cut and planing geometry. Given a parent part and a cut description, computes
the dimensions and world positions of the two resulting pieces and the material
lost to the blade. Nothing here mutates a part; the PartStore commits the plan.

Two separation variants are supported behind the same interface:
- SeparationMode.KERF: the blade removes kerf_width of stock, centred on the cut
  line; the pieces stay where they were, kerf_width apart (default).
- SeparationMode.FIXED_GAP: no material loss; the pieces are pushed apart by a
  fixed gap around the cut line.
In both cases the centroid of the combined extents stays at the parent centre.
"""

import math
import logging
from enum import Enum
from dataclasses import dataclass, replace
from typing import Any, Dict, Optional, Tuple, Union

from .cad_common import (
    InvalidCutError, InvalidDimensionError, PartStateError, now_ms,
    DEFAULT_FIXED_GAP, BOARD_THICKNESS_FLOOR
)
from .cad_transformations import local_offset_to_world
from .board_entities import Part, Dimensions, Vector3
from . import config

logger = logging.getLogger(__name__)


class CutAxis(str, Enum):
    """Which dimension a cut divides."""
    CROSS = "cross" # across the width
    RIP = "rip"     # along the length

    @property
    def dimension(self) -> str:
        return "width" if self is CutAxis.CROSS else "length"

    @property
    def local_axis(self) -> Tuple[float, float, float]:
        # width lies along local X, length along local Z
        return (1.0, 0.0, 0.0) if self is CutAxis.CROSS else (0.0, 0.0, 1.0)

    @staticmethod
    def parse(value: Union[str, 'CutAxis']) -> 'CutAxis':
        if isinstance(value, CutAxis):
            return value
        try:
            return CutAxis(str(value).lower())
        except ValueError as e:
            raise InvalidCutError(f"Unknown cut axis '{value}' (expected 'cross' or 'rip')") from e


class SeparationMode(str, Enum):
    KERF = "kerf"
    FIXED_GAP = "fixed_gap"

    @staticmethod
    def parse(value: Union[str, 'SeparationMode']) -> 'SeparationMode':
        if isinstance(value, SeparationMode):
            return value
        try:
            return SeparationMode(str(value).lower())
        except ValueError as e:
            raise InvalidCutError(f"Unknown separation mode '{value}'") from e


@dataclass(frozen=True)
class CutSpec:
    """
    Describes one straight cut; position is the fraction of the cut dimension from the low edge.
    A kerf_width of None means "the shop default": the owning store's default_kerf_width
    when committed through PartStore.cut_part, config.KERF_WIDTH otherwise.
    """
    axis: CutAxis
    position: float
    kerf_width: Optional[float] = None
    separation: SeparationMode = SeparationMode.KERF
    gap: float = DEFAULT_FIXED_GAP

    def __post_init__(self):
        object.__setattr__(self, "axis", CutAxis.parse(self.axis))
        object.__setattr__(self, "separation", SeparationMode.parse(self.separation))
        for name in ("position", "kerf_width", "gap"):
            value = getattr(self, name)
            if value is None and name == "kerf_width":
                continue
            if isinstance(value, bool) or not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidCutError(f"Cut {name} must be a finite number, got {value!r}")
        if not 0.0 < self.position < 1.0:
            raise InvalidCutError(f"Cut position must be strictly between 0 and 1, got {self.position}")
        if self.kerf_width is not None and self.kerf_width <= 0:
            raise InvalidCutError(f"Kerf width must be > 0, got {self.kerf_width}")
        if self.gap < 0:
            raise InvalidCutError(f"Gap must be >= 0, got {self.gap}")

    def with_default_kerf(self, kerf_width: float) -> 'CutSpec':
        """Returns this spec with kerf_width filled in, if it was left unset."""
        if self.kerf_width is not None:
            return self
        return replace(self, kerf_width=kerf_width)

    @property
    def material_loss(self) -> float:
        """Stock consumed by the cut along the cut dimension."""
        if self.separation is not SeparationMode.KERF:
            return 0.0
        return self.kerf_width if self.kerf_width is not None else config.KERF_WIDTH

    @property
    def extra_separation(self) -> float:
        """Space added between the pieces beyond the parent's own extent."""
        return self.gap if self.separation is SeparationMode.FIXED_GAP else 0.0

    @staticmethod
    def from_dict(data: Dict[str, Any], default_kerf: Optional[float] = None) -> 'CutSpec':
        """Builds a CutSpec from UI/tool event data ({axis, position, kerfWidth?, separation?, gap?})."""
        try:
            return CutSpec(
                axis=data["axis"],
                position=data["position"],
                kerf_width=data.get("kerfWidth", default_kerf),
                separation=data.get("separation", SeparationMode.KERF),
                gap=data.get("gap", DEFAULT_FIXED_GAP)
            )
        except KeyError as e:
            raise InvalidCutError(f"Cut description is missing {e}") from e


@dataclass(frozen=True)
class PiecePlan:
    dimensions: Dimensions
    position: Vector3


@dataclass(frozen=True)
class CutPlan:
    """Result of planning a cut; piece1 is on the low side of the cut line."""
    spec: CutSpec
    cut_position_inches: float
    piece1: PiecePlan
    piece2: PiecePlan

    @property
    def kerf_loss(self) -> float:
        return self.spec.material_loss


@dataclass(frozen=True)
class PlanePlan:
    removed: float
    dimensions: Dimensions
    position: Vector3


def plan_cut(parent: Part, spec: CutSpec) -> CutPlan:
    """
    Computes the two pieces produced by cutting parent according to spec.
    Raises InvalidCutError when either piece would be non-positive.
    """
    if not parent.is_board:
        raise PartStateError(f"Only boards can be cut; part {parent.id} is a {parent.type}")
    spec = spec.with_default_kerf(config.KERF_WIDTH)

    dim_name = spec.axis.dimension
    total = parent.dimensions.get(dim_name)
    loss = spec.material_loss

    if loss >= total:
        logger.error(f"Kerf {loss} is not smaller than {dim_name} {total} of part {parent.id}")
        raise InvalidCutError(f"Kerf {loss} in must be smaller than the {dim_name} ({total} in)")

    cut_in = spec.position * total
    size1 = cut_in - loss / 2
    size2 = total - cut_in - loss / 2
    if size1 <= 0 or size2 <= 0:
        logger.error(f"Cut at {spec.position} on part {parent.id} leaves pieces {size1} / {size2}")
        raise InvalidCutError(
            f"Cut at {cut_in:.4f} in with kerf {loss} leaves a non-positive piece ({size1:.4f} / {size2:.4f})"
        )

    try:
        dims1 = parent.dimensions.with_value(dim_name, size1)
        dims2 = parent.dimensions.with_value(dim_name, size2)
    except InvalidDimensionError as e:
        raise InvalidCutError(str(e)) from e

    # Offsets of each piece centre from the parent centre along the cut axis
    extra = spec.extra_separation
    offset1 = -total / 2 - extra / 2 + size1 / 2
    offset2 = total / 2 + extra / 2 - size2 / 2

    position1 = _shift_along(parent, spec.axis.local_axis, offset1)
    position2 = _shift_along(parent, spec.axis.local_axis, offset2)

    logger.debug(f"Planned {spec.axis.value} cut of {parent.id}: {dim_name} {total} -> {size1} + {size2} (+{loss} kerf)")
    return CutPlan(
        spec=spec,
        cut_position_inches=cut_in,
        piece1=PiecePlan(dims1, position1),
        piece2=PiecePlan(dims2, position2)
    )


def plan_plane(part: Part, new_thickness: float) -> PlanePlan:
    """
    Computes the result of planing a board down to new_thickness.
    Material comes off the top face, so the centre drops by half the removed amount.
    """
    if not part.is_board:
        raise PartStateError(f"Only boards can be planed; part {part.id} is a {part.type}")
    current = part.dimensions.thickness
    if isinstance(new_thickness, bool) or not isinstance(new_thickness, (int, float)) or not math.isfinite(new_thickness):
        raise InvalidDimensionError(f"Thickness must be a finite number, got {new_thickness!r}")
    if new_thickness < BOARD_THICKNESS_FLOOR:
        raise InvalidDimensionError(f"Cannot plane below {BOARD_THICKNESS_FLOOR} in (requested {new_thickness})")
    if new_thickness >= current:
        raise InvalidDimensionError(f"Planed thickness {new_thickness} must be less than the current {current}")

    removed = current - new_thickness
    return PlanePlan(
        removed=removed,
        dimensions=part.dimensions.with_value("thickness", float(new_thickness)),
        position=_shift_along(part, (0.0, 1.0, 0.0), -removed / 2)
    )


def build_cut_record_data(plan: CutPlan, piece_ids: Tuple[str, str]) -> Dict[str, Any]:
    """Keyword arguments for the parent's CutRecord."""
    return {
        "timestamp": now_ms(),
        "cut_type": plan.spec.axis.value,
        "cut_position": plan.spec.position,
        "kerf_width": plan.kerf_loss,
        "resulting_part_ids": tuple(piece_ids),
        "separation": plan.spec.separation.value,
        "gap": plan.spec.extra_separation
    }


def _shift_along(part: Part, local_axis: Tuple[float, float, float], distance: float) -> Vector3:
    local = (local_axis[0] * distance, local_axis[1] * distance, local_axis[2] * distance)
    dx, dy, dz = local_offset_to_world(local, part.rotation.as_tuple())
    return part.position.offset(dx, dy, dz)
