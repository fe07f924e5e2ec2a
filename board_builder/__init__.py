"""
Board-Builder Framework

This framework models woodworking stock as persistent parts and decomposes it
through cross cuts, rip cuts, planing and routing while tracking lineage.

Main entry point:
- PartStore: the central registry that owns every part and commits every operation.
"""

# Import the main store class from the part_store module
from .part_store import PartStore, PartEvent, CutResult
from .board_entities import Part, Board, Fastener, Hardware, Dimensions, Vector3
from .board_materials import Material, MaterialCatalog
from .cut_planner import CutSpec, CutAxis, SeparationMode
from .persistence import JsonPersistenceGateway, InMemoryPersistenceGateway
from .render_bridge import SceneSnapshotRenderer
from .cad_common import (
    BoardBuilderError, InvalidDimensionError, InvalidCutError, PartNotFoundError,
    MaterialNotFoundError, PersistenceError, PartStateError
)

# Create a shorter alias for the main store class
BBStore = PartStore

# Current package version
__version__ = "0.1.0"
