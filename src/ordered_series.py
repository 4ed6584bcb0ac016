"""
Merge the traced points of one region into a single series ordered along
the principal axis of the combined scatter.
"""
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np

from structure_errors import InsufficientDataError

logger = logging.getLogger(__name__)

# Sampled normals shorter than this are treated as "not computed".
_ZERO_NORMAL_TOL = 1e-6


@dataclass(frozen=True)
class Sample:
    position: np.ndarray
    normal: Optional[np.ndarray]
    index: int          # position in the region's original point order


@dataclass
class OrderedSeries:
    """Points sorted by projection onto ``axis``.

    ``original_index[i]`` is the original position of sorted sample ``i``.
    """
    positions: np.ndarray               # (N, 3), sorted
    normals: Optional[np.ndarray]       # (N, 3), sorted, or None
    original_index: np.ndarray          # (N,) int
    axis: np.ndarray                    # (3,) unit principal axis
    projection: np.ndarray              # (N,) ascending sort keys
    original_size: int = 0              # points before non-finite ones were dropped

    def __post_init__(self):
        if self.original_size < len(self.positions):
            self.original_size = len(self.positions)

    def __len__(self) -> int:
        return len(self.positions)

    @property
    def has_normals(self) -> bool:
        return self.normals is not None

    def sample(self, i: int) -> Sample:
        normal = None if self.normals is None else self.normals[i].copy()
        return Sample(
            position=self.positions[i].copy(),
            normal=normal,
            index=int(self.original_index[i]),
        )

    def to_original_order(self, values: np.ndarray, fill=np.nan) -> np.ndarray:
        """Scatter per-sample values (sorted order) back to original order.

        Points that were dropped while building the series get ``fill``.
        """
        values = np.asarray(values)
        out = np.full((self.original_size,) + values.shape[1:], fill, dtype=values.dtype)
        out[self.original_index] = values
        return out


def principal_axis(points: np.ndarray) -> np.ndarray:
    """Unit eigenvector of the largest eigenvalue of the point covariance.

    Raises InsufficientDataError when the scatter does not span 3D.
    """
    centred = points - points.mean(axis=0)
    if len(points) < 3 or np.linalg.matrix_rank(centred) < 3:
        raise InsufficientDataError(
            "Could not compute eigensystem: points do not span three dimensions"
        )
    cov = centred.T @ centred / len(points)
    eigvals, eigvecs = np.linalg.eigh(cov)
    axis = eigvecs[:, int(np.argmax(eigvals))]
    return axis / np.linalg.norm(axis)


def build_ordered_series(
    positions: np.ndarray,
    normals: Optional[np.ndarray] = None,
    min_size: int = 5,
) -> OrderedSeries:
    """Sort one region's points along its principal axis.

    Args:
        positions: (N, 3) points gathered from every trace of the region.
        normals: optional (N, 3) sampled outcrop normals. Dropped when all
            of them are zero (normals were never computed).
        min_size: smallest usable window; regions with fewer finite points
            are rejected.

    Returns:
        OrderedSeries with the original-index mapping.

    Raises:
        InsufficientDataError: too few points, or degenerate scatter.
    """
    positions = np.asarray(positions, dtype=float).reshape(-1, 3)
    if normals is not None:
        normals = np.asarray(normals, dtype=float).reshape(-1, 3)
        if len(normals) != len(positions):
            raise ValueError("positions and normals must have the same length")

    finite = np.all(np.isfinite(positions), axis=1)
    if normals is not None:
        finite &= np.all(np.isfinite(normals), axis=1)
    index = np.flatnonzero(finite)

    if len(index) < min_size:
        raise InsufficientDataError(
            f"Region has {len(index)} usable points, fewer than min_size={min_size}"
        )

    pts = positions[index]
    axis = principal_axis(pts)
    keys = pts @ axis
    order = np.argsort(keys, kind="stable")

    sorted_normals = None
    if normals is not None:
        candidate = normals[index][order]
        if np.all(np.linalg.norm(candidate, axis=1) <= _ZERO_NORMAL_TOL):
            logger.warning(
                "Sampled normals are all zero; outcrop-bias correction disabled"
            )
        else:
            sorted_normals = candidate

    return OrderedSeries(
        positions=pts[order],
        normals=sorted_normals,
        original_index=index[order],
        axis=axis,
        projection=keys[order],
        original_size=len(positions),
    )
