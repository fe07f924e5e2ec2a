"""
cad_transformations.py

3D Transformation Helpers using NumPy.
Provides functions to create 4x4 homogeneous transformation matrices (identity,
translation, axis rotations, Euler rotation) and to apply them to point and
vector data. Parts use these to map local offsets (cut and planing shifts) into
world space and to compute world bounding boxes from their own data.
"""

import numpy as np
import math
import logging
from typing import Tuple, List, Sequence, Union

logger = logging.getLogger(__name__)

Point3 = Tuple[float, float, float]

# --- Matrix Creation Functions ---

def identity_matrix() -> np.ndarray:
    """Return a 4x4 identity matrix."""
    return np.identity(4, dtype=float)

def translation_matrix(dx: float, dy: float, dz: float) -> np.ndarray:
    """Return a 4x4 translation matrix for translating by (dx, dy, dz)."""
    mat = np.identity(4, dtype=float)
    mat[0, 3] = dx
    mat[1, 3] = dy
    mat[2, 3] = dz
    return mat

def rotation_matrix_x(angle_rad: float) -> np.ndarray:
    """Return a 4x4 matrix rotating by angle_rad about the X axis."""
    c, s = math.cos(angle_rad), math.sin(angle_rad)
    mat = np.identity(4, dtype=float)
    mat[1:3, 1:3] = [[c, -s], [s, c]]
    return mat

def rotation_matrix_y(angle_rad: float) -> np.ndarray:
    """Return a 4x4 matrix rotating by angle_rad about the Y axis."""
    c, s = math.cos(angle_rad), math.sin(angle_rad)
    mat = np.identity(4, dtype=float)
    mat[0, 0], mat[0, 2] = c, s
    mat[2, 0], mat[2, 2] = -s, c
    return mat

def rotation_matrix_z(angle_rad: float) -> np.ndarray:
    """Return a 4x4 matrix rotating by angle_rad about the Z axis."""
    c, s = math.cos(angle_rad), math.sin(angle_rad)
    mat = np.identity(4, dtype=float)
    mat[0:2, 0:2] = [[c, -s], [s, c]]
    return mat

def euler_rotation_matrix(rx: float, ry: float, rz: float) -> np.ndarray:
    """
    Return the 4x4 rotation for Euler angles (radians).
    Yaw (Y), then pitch (X), then roll (Z), matching the render layer's convention:
    R = Ry @ Rx @ Rz for column vectors.
    """
    if math.isclose(rx, 0.0) and math.isclose(ry, 0.0) and math.isclose(rz, 0.0):
        return identity_matrix()
    return rotation_matrix_y(ry) @ rotation_matrix_x(rx) @ rotation_matrix_z(rz)

def world_matrix(position: Point3, rotation: Point3) -> np.ndarray:
    """Return the local-to-world matrix for a part centred at position with the given rotation."""
    return translation_matrix(*position) @ euler_rotation_matrix(*rotation)

def combine_transformations(*matrices: np.ndarray) -> np.ndarray:
    """
    Combine multiple 4x4 transformation matrices.
    Transformations are applied in the order given (left to right multiplication).
    """
    result = identity_matrix()
    for m in matrices:
        result = result @ m
    return result

# --- Application Functions ---

def apply_transform(points: Sequence[Union[Point3, np.ndarray]], matrix: np.ndarray) -> List[Point3]:
    """
    Apply a 4x4 transformation matrix to a sequence of 3D points.
    Points are assumed to be given as (x, y, z) triples.
    """
    if len(points) == 0:
        return []
    pts = np.ones((len(points), 4), dtype=float)
    for i, p in enumerate(points):
        pts[i, 0], pts[i, 1], pts[i, 2] = p[0], p[1], p[2]
    transformed = (matrix @ pts.T).T
    result = []
    for row in transformed:
        w = row[3]
        if math.isclose(w, 0.0):
            logger.error("Transformation produced a point at infinity (w=0); skipping.")
            continue
        result.append((float(row[0] / w), float(row[1] / w), float(row[2] / w)))
    return result

def get_transformed_point(point: Point3, matrix: np.ndarray) -> Point3:
    """Apply a 4x4 transformation matrix to a single 3D point."""
    res = apply_transform([point], matrix)
    if not res:
        raise ValueError(f"Invalid transformation for point: {point}")
    return res[0]

def transform_vector(vector: Point3, matrix: np.ndarray) -> Point3:
    """Apply only the linear part of a 4x4 matrix to a direction/offset vector."""
    v = matrix[0:3, 0:3] @ np.asarray(vector, dtype=float)
    return (float(v[0]), float(v[1]), float(v[2]))

def local_offset_to_world(offset: Point3, rotation: Point3) -> Point3:
    """Rotate an offset expressed in a part's local axes into world axes."""
    return transform_vector(offset, euler_rotation_matrix(*rotation))

# --- Box Helpers ---

def box_corners(half_extents: Point3) -> np.ndarray:
    """Return the 8 corners (8x3 array) of a box centred at the origin."""
    hx, hy, hz = half_extents
    signs = np.array([[sx, sy, sz] for sx in (-1, 1) for sy in (-1, 1) for sz in (-1, 1)], dtype=float)
    return signs * np.array([hx, hy, hz], dtype=float)

def oriented_box_world_points(center: Point3, half_extents: Point3, rotation: Point3) -> List[Point3]:
    """Return the world-space corners of a box centred at center with the given rotation."""
    return apply_transform(box_corners(half_extents), world_matrix(center, rotation))
