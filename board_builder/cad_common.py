"""
cad_common.py

Common utilities and constants for the board framework.
Provides the canonical unit constants, the 3D bounding box helper, the timestamp
helper and the exception hierarchy shared across the package.
"""

import time
import logging
from dataclasses import dataclass
from typing import Tuple, Sequence

logger = logging.getLogger(__name__)

# CONSTANTS
# All Part-layer arithmetic is done in inches.
DEFAULT_KERF_WIDTH: float = 0.125
BOARD_THICKNESS_FLOOR: float = 0.125
DEFAULT_FIXED_GAP: float = 2.0
DEFAULT_BOARD_DIMENSIONS: Tuple[float, float, float] = (96.0, 6.0, 0.75) # length, width, thickness
DEFAULT_MATERIAL_ID: str = "pine"
DEFAULT_GRADE: str = "select"
DEFAULT_GRAIN: str = "vertical"
# Render layer works in centimetres; only render_bridge may use this.
INCHES_TO_RENDER_UNITS: float = 2.54


def now_ms() -> int:
    """Current wall clock time as integer epoch milliseconds."""
    return int(time.time() * 1000)


@dataclass(frozen=True)
class BoundingBox:
    """Represents an axis-aligned 3D bounding box (inches)."""
    min_x: float = float('inf')
    min_y: float = float('inf')
    min_z: float = float('inf')
    max_x: float = float('-inf')
    max_y: float = float('-inf')
    max_z: float = float('-inf')

    @property
    def size(self) -> Tuple[float, float, float]:
        if not self.is_valid():
            return (0.0, 0.0, 0.0)
        return (self.max_x - self.min_x, self.max_y - self.min_y, self.max_z - self.min_z)

    @property
    def center(self) -> Tuple[float, float, float]:
        if self.is_valid():
            return ((self.min_x + self.max_x) / 2,
                    (self.min_y + self.max_y) / 2,
                    (self.min_z + self.max_z) / 2)
        logger.warning("Calculating center of an invalid BoundingBox.")
        return (0.0, 0.0, 0.0)

    def is_valid(self) -> bool:
        return self.min_x <= self.max_x and self.min_y <= self.max_y and self.min_z <= self.max_z

    def union(self, other: 'BoundingBox') -> 'BoundingBox':
        if not other.is_valid():
            return self
        if not self.is_valid():
            return other
        return BoundingBox(
            min_x=min(self.min_x, other.min_x),
            min_y=min(self.min_y, other.min_y),
            min_z=min(self.min_z, other.min_z),
            max_x=max(self.max_x, other.max_x),
            max_y=max(self.max_y, other.max_y),
            max_z=max(self.max_z, other.max_z)
        )

    @staticmethod
    def from_points(points: Sequence[Sequence[float]]) -> 'BoundingBox':
        if len(points) == 0:
            return BoundingBox()
        return BoundingBox(
            min_x=min(p[0] for p in points),
            min_y=min(p[1] for p in points),
            min_z=min(p[2] for p in points),
            max_x=max(p[0] for p in points),
            max_y=max(p[1] for p in points),
            max_z=max(p[2] for p in points)
        )


# Custom Exceptions
class BoardBuilderError(Exception):
    """Base exception for board framework errors."""
    pass

class InvalidDimensionError(BoardBuilderError):
    """A dimension would become non-positive or fall below the board thickness floor."""
    pass

class InvalidCutError(BoardBuilderError):
    """A cut description would produce a non-positive piece or is malformed."""
    pass

class PartNotFoundError(BoardBuilderError):
    """An operation referenced an unknown part id."""
    pass

class MaterialNotFoundError(BoardBuilderError):
    """A material id does not resolve in the material catalog."""
    pass

class PersistenceError(BoardBuilderError):
    """The durable project record could not be written or read."""
    pass

class PartStateError(BoardBuilderError):
    """The operation is not valid for the part in its current state."""
    pass
