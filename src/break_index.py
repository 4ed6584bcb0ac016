"""
Flag series positions that no candidate window may span.

A pinch node marks a true discontinuity between two surfaces; the series
sample nearest to it becomes a break so a fitted plane never straddles it.
"""
import logging
from typing import Optional

import numpy as np

from ordered_series import OrderedSeries
from spatial_index import KDTreeIndex, SpatialIndex

logger = logging.getLogger(__name__)


def build_break_index(
    series: OrderedSeries,
    markers: Optional[np.ndarray],
    index: Optional[SpatialIndex] = None,
) -> np.ndarray:
    """Return a boolean array over sorted positions, True at breaks.

    Args:
        series: the ordered series.
        markers: (K, 3) pinch-node positions (may be empty or None).
        index: spatial index over ``series.positions``. Built on demand.
    """
    breaks = np.zeros(len(series), dtype=bool)
    if markers is None:
        return breaks
    markers = np.asarray(markers, dtype=float).reshape(-1, 3)
    if len(markers) == 0:
        return breaks

    if index is None:
        index = KDTreeIndex(series.positions)

    for marker in markers:
        hits = index.nearest_neighbours(marker, 1)
        if hits:
            breaks[hits[0].index] = True

    logger.debug(
        "Flagged %d break positions from %d pinch nodes",
        int(breaks.sum()), len(markers),
    )
    return breaks
