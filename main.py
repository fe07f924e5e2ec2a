"""
main.py

Demonstrates usage of the board_builder framework: a PartStore backed by a JSON
project file, decomposed through cuts, planing and routing, then reloaded.
"""

import logging
import sys # For basic logging setup

from board_builder import PartStore, CutSpec, JsonPersistenceGateway, SceneSnapshotRenderer
from board_builder.board_materials import MaterialCatalog
from board_builder import config

# --- Basic Logging Setup ---
logging.basicConfig(
    level=logging.DEBUG, # Set to DEBUG to see detailed logs
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
    stream=sys.stdout # Log to console
)

logger = logging.getLogger(__name__)


def load_catalog() -> MaterialCatalog:
    if config.MATERIALS_PATH:
        return MaterialCatalog.from_json_file(config.MATERIALS_PATH)
    return MaterialCatalog()


def run_demo_1():
    """Cuts a board into a small tree of pieces and saves the project."""
    logger.info("--- Starting Demo 1 ---")
    catalog = load_catalog()
    gateway = JsonPersistenceGateway(config.project_file("demo_shelf"), project_id="demo_shelf")
    renderer = SceneSnapshotRenderer()
    store = PartStore(catalog=catalog, gateway=gateway, renderer=renderer, project_id="demo_shelf")

    store.subscribe(lambda event: logger.debug(f"Event {event.kind}: {event.part_ids}"))

    # --- Stock ---
    board = store.add_board(96, 6, 0.75, material="oak", grade="FAS")
    logger.info(f"Stock board {board.id}: {board.board_feet:.3f} board feet")

    # --- Cuts ---
    # Rip the board into a short and a long length
    short, long_piece = store.cut_part(board.id, CutSpec("rip", 0.25))
    # Cross cut the long length into two strips
    strip_a, strip_b = store.cut_part(long_piece, {"axis": "cross", "position": 0.5})
    for piece in (short, strip_a, strip_b):
        d = piece.dimensions
        logger.info(f"Piece {piece.id}: {d.length} x {d.width} x {d.thickness}")

    # --- Shaping ---
    store.plane_part(strip_a, 0.5)
    store.route_edge(strip_b, "top-front", "roundover", 0.25)
    store.move_part(short, 0, 0, 30)

    # --- Cleanup ---
    store.remove_part(short)
    logger.info(f"Active parts: {len(store.get_all_parts())}, tombstones: {len(store.get_tombstones())}")
    logger.info(f"Scene bounds (cm): {renderer.scene_bounds()}")

    if not store.verify_conservation():
        logger.error("Conservation check failed after demo cuts.")

    logger.info("--- Demo 1 Finished ---")
    return gateway


def run_demo_2(gateway: JsonPersistenceGateway):
    """Reloads the saved project and walks the lineage of every active part."""
    logger.info("--- Starting Demo 2 ---")
    store = gateway.load(catalog=load_catalog(), renderer=SceneSnapshotRenderer())

    for part in store.get_all_parts():
        ancestors = [p.id for p in store.lineage.get_ancestors(part.id)]
        print(f"{part.id} <- {ancestors}")

    for root in store.find_lineage_roots():
        ok = store.lineage.check_conservation(root.id)
        print(f"Root {root.id}: conservation {'ok' if ok else 'VIOLATED'}")

    logger.info("--- Demo 2 Finished ---")


if __name__ == '__main__':
    saved_gateway = run_demo_1()
    print("\n" + "="*60 + "\n") # Separator
    run_demo_2(saved_gateway)
