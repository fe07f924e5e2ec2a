"""
Shared test fixtures for the board_builder part model and cut engine.
"""
import sys
from pathlib import Path

import pytest

# Add the repo root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from board_builder.board_materials import MaterialCatalog
from board_builder.cad_common import PersistenceError
from board_builder.part_store import PartStore
from board_builder.persistence import InMemoryPersistenceGateway
from board_builder.render_bridge import SceneSnapshotRenderer


class FailingGateway(InMemoryPersistenceGateway):
    """In-memory gateway whose saves can be switched to fail."""

    def __init__(self):
        super().__init__()
        self.fail = False

    def save(self, store):
        if self.fail:
            raise PersistenceError("disk full")
        super().save(store)


@pytest.fixture
def catalog():
    """The bundled default wood species."""
    return MaterialCatalog()


@pytest.fixture
def gateway():
    return FailingGateway()


@pytest.fixture
def renderer():
    return SceneSnapshotRenderer()


@pytest.fixture
def store(catalog, gateway, renderer):
    """A store wired to an in-memory gateway and a headless renderer."""
    return PartStore(catalog=catalog, gateway=gateway, renderer=renderer, project_id="test_project")


@pytest.fixture
def board(store):
    """A 96 x 6 x 0.75 pine board at the origin."""
    return store.add_board(96, 6, 0.75)
