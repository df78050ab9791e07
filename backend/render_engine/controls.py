"""
Orbit navigation controller.

Rotates and zooms a camera around a fixed target. With damping enabled,
rotation input is accumulated and bled off a fraction per `update()` call,
so `update()` must run every rendered frame.
"""

import math
from typing import Sequence

import numpy as np

from render_engine.scene import look_at

_EPS = 1e-6


class OrbitControls:
    """Spherical-coordinate orbit controller around `target`."""

    def __init__(
        self,
        position: Sequence[float],
        target: Sequence[float] = (0.0, 0.0, 0.0),
        enable_damping: bool = True,
        damping_factor: float = 0.05,
        rotate_speed: float = 1.0,
        zoom_speed: float = 1.0,
        min_distance: float = 0.05,
        max_distance: float = 500.0,
    ):
        if enable_damping and not 0.0 < damping_factor <= 1.0:
            raise ValueError("damping_factor must be in (0, 1]")

        self.target = np.asarray(target, dtype=float)
        self.enable_damping = enable_damping
        self.damping_factor = damping_factor
        self.rotate_speed = rotate_speed
        self.zoom_speed = zoom_speed
        self.min_distance = min_distance
        self.max_distance = max_distance

        offset = np.asarray(position, dtype=float) - self.target
        self.radius = float(np.linalg.norm(offset)) or 1.0
        self.theta = math.atan2(offset[0], offset[2])
        self.phi = math.acos(max(-1.0, min(1.0, offset[1] / self.radius)))

        self._delta_theta = 0.0
        self._delta_phi = 0.0
        self._zoom_scale = 1.0

    @property
    def position(self) -> np.ndarray:
        sin_phi = math.sin(self.phi)
        offset = np.array([
            self.radius * sin_phi * math.sin(self.theta),
            self.radius * math.cos(self.phi),
            self.radius * sin_phi * math.cos(self.theta),
        ])
        return self.target + offset

    def pose(self) -> np.ndarray:
        return look_at(self.position, self.target)

    def rotate(self, dx: float, dy: float, surface_height: int) -> None:
        """Drag by (dx, dy) pixels; a drag of the full surface height is one full turn."""
        height = max(int(surface_height), 1)
        self._delta_theta -= 2 * math.pi * dx / height * self.rotate_speed
        self._delta_phi -= 2 * math.pi * dy / height * self.rotate_speed

    def zoom(self, delta: float) -> None:
        """Wheel input: negative delta moves closer, positive moves away."""
        if delta == 0:
            return
        step = 0.95 ** self.zoom_speed
        if delta < 0:
            self._zoom_scale *= step
        else:
            self._zoom_scale /= step

    def update(self) -> bool:
        """Advance damping and apply pending input. Returns True if the camera moved."""
        before = self.position

        if self.enable_damping:
            self.theta += self._delta_theta * self.damping_factor
            self.phi += self._delta_phi * self.damping_factor
            self._delta_theta *= 1 - self.damping_factor
            self._delta_phi *= 1 - self.damping_factor
        else:
            self.theta += self._delta_theta
            self.phi += self._delta_phi
            self._delta_theta = self._delta_phi = 0.0

        self.phi = max(_EPS, min(math.pi - _EPS, self.phi))
        self.radius = max(self.min_distance, min(self.max_distance, self.radius * self._zoom_scale))
        self._zoom_scale = 1.0

        return bool(np.linalg.norm(self.position - before) > _EPS)
