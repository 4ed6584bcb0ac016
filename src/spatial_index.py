"""
Nearest-neighbour query contract and the default KD-tree implementation.

Break detection and thickness estimation only depend on SpatialIndex;
anything with a compatible ``nearest_neighbours`` method can be passed in.
"""
from dataclasses import dataclass
from typing import List, Protocol

import numpy as np
from scipy.spatial import cKDTree


@dataclass(frozen=True)
class Neighbour:
    """One query hit, ordered nearest first."""
    index: int                  # row in the indexed point array
    point: np.ndarray           # (3,)
    squared_distance: float


class SpatialIndex(Protocol):
    def __len__(self) -> int: ...

    def nearest_neighbours(self, point: np.ndarray, k: int) -> List[Neighbour]: ...


class KDTreeIndex:
    """SpatialIndex over a fixed (N, 3) point array, backed by cKDTree."""

    def __init__(self, points: np.ndarray):
        self.points = np.asarray(points, dtype=float).reshape(-1, 3)
        if len(self.points) == 0:
            raise ValueError("Cannot build a spatial index over zero points")
        self._tree = cKDTree(self.points)

    def __len__(self) -> int:
        return len(self.points)

    def nearest_neighbours(self, point: np.ndarray, k: int) -> List[Neighbour]:
        k = max(1, min(int(k), len(self.points)))
        dists, idx = self._tree.query(np.asarray(point, dtype=float), k=k)
        # cKDTree returns scalars for k == 1
        dists = np.atleast_1d(dists)
        idx = np.atleast_1d(idx)
        return [
            Neighbour(
                index=int(i),
                point=self.points[i],
                squared_distance=float(d) ** 2,
            )
            for d, i in zip(dists, idx)
        ]
