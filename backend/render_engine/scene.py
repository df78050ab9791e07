"""
Scene normalization math.

Generated assets come in arbitrary units and positions. Normalization scales
the bounding box so its largest side is 1.8 units, moves its center to the
origin, and derives a camera distance that frames it.
"""

from dataclasses import dataclass
from typing import Any, Sequence

import numpy as np
from trimesh import transformations

NORMALIZED_SIZE = 1.8
CAMERA_DISTANCE_FLOOR = 1.0
CAMERA_DISTANCE_FACTOR = 1.5
CAMERA_ELEVATION_RATIO = 0.6


def normalization_scale(max_dimension: float) -> float:
    """1.8 / max_dimension, or 1.0 for degenerate (zero-size) boxes."""
    return NORMALIZED_SIZE / max_dimension if max_dimension > 0 else 1.0


def camera_distance(diagonal: float, scale: float) -> float:
    return max(diagonal * scale, CAMERA_DISTANCE_FLOOR) * CAMERA_DISTANCE_FACTOR


def camera_position(distance: float) -> np.ndarray:
    """Diagonal viewpoint above the model."""
    return np.array([distance, distance * CAMERA_ELEVATION_RATIO, distance])


def look_at(eye: Sequence[float], target: Sequence[float] = (0.0, 0.0, 0.0),
            up: Sequence[float] = (0.0, 1.0, 0.0)) -> np.ndarray:
    """
    Camera-to-world pose for a camera at `eye` looking at `target`.

    OpenGL convention: the camera looks down its local -Z axis with +Y up.
    """
    eye = np.asarray(eye, dtype=float)
    target = np.asarray(target, dtype=float)
    up = np.asarray(up, dtype=float)

    z_axis = eye - target
    norm = np.linalg.norm(z_axis)
    if norm < 1e-12:
        return transformations.translation_matrix(eye)
    z_axis /= norm

    x_axis = np.cross(up, z_axis)
    if np.linalg.norm(x_axis) < 1e-9:
        # looking straight along the up vector
        x_axis = np.cross(np.array([0.0, 0.0, 1.0]), z_axis)
    x_axis /= np.linalg.norm(x_axis)
    y_axis = np.cross(z_axis, x_axis)

    pose = np.eye(4)
    pose[:3, 0] = x_axis
    pose[:3, 1] = y_axis
    pose[:3, 2] = z_axis
    pose[:3, 3] = eye
    return pose


@dataclass(frozen=True)
class Normalization:
    bounds: np.ndarray
    size: np.ndarray
    center: np.ndarray
    max_dimension: float
    diagonal: float
    scale: float
    camera_distance: float

    @property
    def translation(self) -> np.ndarray:
        """Offset applied after scaling so the scaled center lands on the origin."""
        return -self.center * self.scale

    @property
    def root_matrix(self) -> np.ndarray:
        # scale first, then translate
        return transformations.translation_matrix(self.translation) @ transformations.scale_matrix(self.scale)

    @property
    def camera_position(self) -> np.ndarray:
        return camera_position(self.camera_distance)


def normalize_bounds(bounds: Sequence[Sequence[float]]) -> Normalization:
    """Compute normalization for an axis-aligned box given as [min, max] corners."""
    bounds = np.asarray(bounds, dtype=float).reshape(2, 3)
    size = bounds[1] - bounds[0]
    center = (bounds[0] + bounds[1]) / 2.0
    max_dimension = float(size.max())
    diagonal = float(np.linalg.norm(size))
    scale = normalization_scale(max_dimension)

    return Normalization(
        bounds=bounds,
        size=size,
        center=center,
        max_dimension=max_dimension,
        diagonal=diagonal,
        scale=scale,
        camera_distance=camera_distance(diagonal, scale),
    )


@dataclass
class SceneGraph:
    """Normalized model root owned by the viewer for one render loop."""
    root: Any
    normalization: Normalization
    mesh_count: int

    @property
    def scale(self) -> float:
        return self.normalization.scale
