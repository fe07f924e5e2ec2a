"""
persistence.py

Serializes a PartStore to its durable project record and rebuilds a store from it.

Record layout:
    {projectId, lastModified, parts: [part records...]}
Every record is written (active parts, split tombstones and removed-flagged
pieces) so that lineage and cut history resolve after a reload.
"""

import os
import copy
import json
import logging
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, Union, TYPE_CHECKING

from .cad_common import BoardBuilderError, PersistenceError
from .board_entities import Part
from .board_materials import MaterialCatalog
from .part_store import PartStore
from . import config

if TYPE_CHECKING:
    from .render_bridge import RenderLayer

logger = logging.getLogger(__name__)


def build_project_record(store: PartStore) -> Dict[str, Any]:
    return {
        "projectId": store.project_id,
        "lastModified": store.last_modified,
        "parts": [part.to_dict() for part in store.list_records()]
    }


def restore_store(record: Dict[str, Any], catalog: Optional[MaterialCatalog] = None,
                  renderer: Optional["RenderLayer"] = None,
                  gateway: Optional["PersistenceGateway"] = None,
                  project_id: Optional[str] = None) -> PartStore:
    """Builds a PartStore from a project record. Malformed records raise PersistenceError."""
    if not isinstance(record, dict) or not isinstance(record.get("parts", []), list):
        raise PersistenceError("Project record must be an object with a 'parts' list")

    store = PartStore(
        catalog=catalog,
        project_id=str(record.get("projectId") or project_id or config.DEFAULT_PROJECT_ID)
    )

    parts: List[Part] = []
    seen = set()
    for index, data in enumerate(record.get("parts", [])):
        try:
            part = Part.from_dict(data)
        except (BoardBuilderError, ValueError, TypeError, AttributeError) as e:
            logger.error(f"Part record {index} is invalid: {e}")
            raise PersistenceError(f"Part record {index} is invalid: {e}") from e
        if part.id in seen:
            logger.error(f"Duplicate part id {part.id} in project record")
            raise PersistenceError(f"Duplicate part id {part.id} in project record")
        seen.add(part.id)
        parts.append(part)

    store.load_records(parts, last_modified=record.get("lastModified"))

    for holder, missing in store.lineage.find_dangling_references():
        logger.warning(f"Part {holder} references missing part {missing}")

    # Gateway and renderer are attached last so loading neither saves nor double-builds meshes
    store.set_gateway(gateway)
    if renderer is not None:
        store.attach_renderer(renderer)
    return store


class PersistenceGateway:
    """Base gateway. Subclasses implement save() and load()."""

    def __init__(self, project_id: str = config.DEFAULT_PROJECT_ID):
        self.project_id = project_id
        self.save_count: int = 0

    def save(self, store: PartStore) -> None:
        raise NotImplementedError

    def load(self, catalog: Optional[MaterialCatalog] = None,
             renderer: Optional["RenderLayer"] = None) -> PartStore:
        raise NotImplementedError


class JsonPersistenceGateway(PersistenceGateway):
    """Writes the project record as a JSON file, replacing it atomically on every save."""

    def __init__(self, path: Union[str, Path], project_id: str = config.DEFAULT_PROJECT_ID, indent: int = 2):
        super().__init__(project_id)
        self.path = Path(path)
        self.indent = indent

    def save(self, store: PartStore) -> None:
        record = build_project_record(store)
        tmp_path = None
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_path = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(record, f, indent=self.indent, allow_nan=False)
            os.replace(tmp_path, self.path)
            tmp_path = None
        except (OSError, TypeError, ValueError) as e:
            logger.error(f"Error saving project '{store.project_id}' to {self.path}: {e}")
            raise PersistenceError(f"Could not save project to {self.path}: {e}") from e
        finally:
            if tmp_path is not None and os.path.exists(tmp_path):
                os.remove(tmp_path)
        self.save_count += 1
        logger.info(f"Project '{store.project_id}' saved to {self.path} ({len(record['parts'])} records)")

    def load(self, catalog: Optional[MaterialCatalog] = None,
             renderer: Optional["RenderLayer"] = None) -> PartStore:
        if not self.path.exists():
            logger.info(f"No project file at {self.path}; starting an empty project '{self.project_id}'")
            store = PartStore(catalog=catalog, gateway=self, renderer=renderer, project_id=self.project_id)
            return store
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                record = json.load(f)
        except (OSError, ValueError) as e:
            logger.error(f"Error reading project file {self.path}: {e}")
            raise PersistenceError(f"Could not read project file {self.path}: {e}") from e

        store = restore_store(record, catalog=catalog, renderer=renderer, gateway=self, project_id=self.project_id)
        logger.info(f"Loaded project '{store.project_id}' from {self.path}")
        return store


class InMemoryPersistenceGateway(PersistenceGateway):
    """Keeps a deep copy of the last saved record; for sessions without a file."""

    def __init__(self, project_id: str = config.DEFAULT_PROJECT_ID):
        super().__init__(project_id)
        self.record: Optional[Dict[str, Any]] = None

    def save(self, store: PartStore) -> None:
        self.record = copy.deepcopy(build_project_record(store))
        self.save_count += 1
        logger.debug(f"Project '{store.project_id}' saved in memory ({len(self.record['parts'])} records)")

    def load(self, catalog: Optional[MaterialCatalog] = None,
             renderer: Optional["RenderLayer"] = None) -> PartStore:
        if self.record is None:
            return PartStore(catalog=catalog, gateway=self, renderer=renderer, project_id=self.project_id)
        return restore_store(copy.deepcopy(self.record), catalog=catalog, renderer=renderer,
                             gateway=self, project_id=self.project_id)
