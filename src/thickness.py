"""
Perpendicular distance between the lower and upper surface of a unit.

For each point of one surface, the nearest point of the opposite surface
is measured against the plane through the point with its estimated
structure normal. The normal is flipped to face the opposite surface so
both surfaces end up with consistent orientations.
"""
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Tuple

import numpy as np

from map_tracker import SurfaceEstimate
from spatial_index import KDTreeIndex, SpatialIndex
from structure_config import THICKNESS_SENTINEL, StructureNormalConfig
from structure_errors import EstimationCancelled

logger = logging.getLogger(__name__)


@dataclass
class ThicknessResult:
    """Per-sample thickness for one surface, in sorted order."""
    thickness: np.ndarray       # (N,) sentinel 1.0 when out of range, NaN without a normal
    normals: np.ndarray         # (N, 3) normals flipped toward the opposite surface
    matched: np.ndarray         # (N,) bool, a correspondence was found within the cutoff

    @property
    def matched_count(self) -> int:
        return int(self.matched.sum())


def estimate_thickness(
    surface: SurfaceEstimate,
    opposite_points: np.ndarray,
    cutoff_distance: float,
    k: int = 10,
    index: Optional[SpatialIndex] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> ThicknessResult:
    """Measure every point of ``surface`` against ``opposite_points``.

    Args:
        surface: finalised estimate of the surface being measured.
        opposite_points: (M, 3) points of the other surface.
        cutoff_distance: correspondences further than this get the sentinel.
        k: neighbours requested from the index; the nearest one is used.
        index: spatial index over ``opposite_points``. Built on demand.
        should_cancel: polled once per point.

    Raises:
        EstimationCancelled: when ``should_cancel`` returns True.
    """
    positions = surface.series.positions
    normals = surface.normals.copy()
    n = len(positions)
    thickness = np.full(n, THICKNESS_SENTINEL)
    matched = np.zeros(n, dtype=bool)

    if index is None:
        index = KDTreeIndex(opposite_points)
    cutoff_sq = float(cutoff_distance) ** 2
    has_normal = surface.estimated

    for i in range(n):
        if should_cancel is not None and should_cancel():
            raise EstimationCancelled(f"Thickness cancelled at point {i} of {n}")

        hits = index.nearest_neighbours(positions[i], k)
        if not hits or hits[0].squared_distance > cutoff_sq:
            continue
        if not has_normal[i]:
            thickness[i] = np.nan
            continue

        # Signed distance of the opposite point from the plane through p
        d = float(np.dot(normals[i], hits[0].point - positions[i]))
        thickness[i] = abs(d)
        matched[i] = True
        if d < 0.0:
            normals[i] = -normals[i]

    logger.debug(
        "Thickness: %d of %d points matched within %.3f",
        int(matched.sum()), n, cutoff_distance,
    )
    return ThicknessResult(thickness=thickness, normals=normals, matched=matched)


def estimate_pair_thickness(
    lower: SurfaceEstimate,
    upper: SurfaceEstimate,
    config: StructureNormalConfig,
    should_cancel: Optional[Callable[[], bool]] = None,
) -> Tuple[ThicknessResult, ThicknessResult]:
    """Thickness of both surfaces of a unit, each measured against the other."""
    lower_index = KDTreeIndex(lower.series.positions)
    upper_index = KDTreeIndex(upper.series.positions)
    lower_result = estimate_thickness(
        lower, upper.series.positions, config.cutoff_distance,
        k=config.thickness_neighbours, index=upper_index,
        should_cancel=should_cancel,
    )
    upper_result = estimate_thickness(
        upper, lower.series.positions, config.cutoff_distance,
        k=config.thickness_neighbours, index=lower_index,
        should_cancel=should_cancel,
    )
    return lower_result, upper_result
