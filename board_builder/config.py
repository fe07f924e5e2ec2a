"""
board_builder.config - Centralised configuration.

Deployment tunables read from the environment. Domain constants (kerf, thickness
floor, default board size) live in cad_common; per-store choices are constructor
arguments.
"""

from __future__ import annotations
import os
from pathlib import Path

from .cad_common import DEFAULT_KERF_WIDTH


# ── Paths ──────────────────────────────────────────────────────────────
DATA_DIR        = Path(os.environ.get("BOARD_BUILDER_DATA_DIR", Path.cwd() / "data"))
MATERIALS_PATH  = os.environ.get("BOARD_BUILDER_MATERIALS", "")   # empty → bundled defaults

# ── Project ────────────────────────────────────────────────────────────
DEFAULT_PROJECT_ID = os.environ.get("BOARD_BUILDER_PROJECT_ID", "workshop")

# ── Shop defaults ──────────────────────────────────────────────────────
KERF_WIDTH = float(os.environ.get("BOARD_BUILDER_KERF", DEFAULT_KERF_WIDTH))


def project_file(project_id: str = DEFAULT_PROJECT_ID) -> Path:
    """Location of a project's JSON record."""
    return DATA_DIR / f"{project_id}.json"
