"""
Geometry primitives for the mission planner.

The planner only needs positions and distances: agent positions come from
beacons, task positions come from the mission catalogs. No coordinate frame
is implied; all points share whatever frame the mission configuration uses.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, List, Sequence

import numpy as np


@dataclass
class Vector3:
    """3D vector representation."""
    x: float = 0.0
    y: float = 0.0
    z: float = 0.0

    def __post_init__(self):
        """Convert to float if needed."""
        self.x = float(self.x)
        self.y = float(self.y)
        self.z = float(self.z)

    def to_array(self) -> np.ndarray:
        """Convert to numpy array."""
        return np.array([self.x, self.y, self.z])

    def to_list(self) -> List[float]:
        return [self.x, self.y, self.z]

    @classmethod
    def from_array(cls, arr: np.ndarray) -> Vector3:
        """Create from numpy array."""
        return cls(x=arr[0], y=arr[1], z=arr[2])

    @classmethod
    def from_list(cls, lst: Sequence[float]) -> Vector3:
        """Create from a 2 or 3 element sequence (z defaults to 0)."""
        if len(lst) == 2:
            return cls(x=lst[0], y=lst[1])
        return cls(x=lst[0], y=lst[1], z=lst[2])

    def __add__(self, other: Vector3) -> Vector3:
        return Vector3(self.x + other.x, self.y + other.y, self.z + other.z)

    def __sub__(self, other: Vector3) -> Vector3:
        return Vector3(self.x - other.x, self.y - other.y, self.z - other.z)

    def __mul__(self, scalar: float) -> Vector3:
        return Vector3(self.x * scalar, self.y * scalar, self.z * scalar)

    def __rmul__(self, scalar: float) -> Vector3:
        return self.__mul__(scalar)

    def norm(self) -> float:
        """Compute Euclidean norm."""
        return float(np.sqrt(self.x**2 + self.y**2 + self.z**2))

    def distance_to(self, other: Vector3) -> float:
        """Euclidean distance to another point."""
        return (self - other).norm()


def route_length(points: Iterable[Vector3]) -> float:
    """
    Length of the polyline through the given points, in order.

    Args:
        points: Ordered points (fewer than two gives zero length)

    Returns:
        Sum of the segment lengths
    """
    coords = np.array([p.to_array() for p in points])
    if len(coords) < 2:
        return 0.0

    return float(np.linalg.norm(np.diff(coords, axis=0), axis=1).sum())


def nearest(origin: Vector3, candidates: dict) -> str:
    """Return the key of the candidate position closest to origin."""
    return min(
        sorted(candidates),
        key=lambda name: candidates[name].distance_to(origin)
    )
