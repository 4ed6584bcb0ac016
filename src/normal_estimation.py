"""
Sliding-window sweep estimating the structure normal at every sample.

For every contiguous window of an ordered series with a length between
``min_size`` and ``max_size`` (and no break inside), fit a plane and score
it; each sample keeps the best-scoring plane among the windows containing
it.
"""
import logging
from typing import Callable, Optional

import numpy as np

from map_tracker import MapTracker, SurfaceEstimate
from ordered_series import OrderedSeries
from segment_scorer import SegmentScorer
from structure_config import StructureNormalConfig
from structure_errors import (
    DegenerateWindowError,
    EstimationCancelled,
    NoValidWindowError,
)

logger = logging.getLogger(__name__)


class NormalEstimationEngine:
    """Drives SegmentScorer and MapTracker over one series at a time.

    Args:
        config: run configuration (validated here).
        should_cancel: polled once per outer step; returning True abandons
            the current series.
        progress: called with the completed fraction (0-1) of outer steps.
    """

    def __init__(
        self,
        config: Optional[StructureNormalConfig] = None,
        should_cancel: Optional[Callable[[], bool]] = None,
        progress: Optional[Callable[[float], None]] = None,
    ):
        if config is None:
            config = StructureNormalConfig()
        config.validate()
        self.config = config
        self.should_cancel = should_cancel
        self.progress = progress

    def estimate(
        self,
        series: OrderedSeries,
        breaks: Optional[np.ndarray] = None,
    ) -> SurfaceEstimate:
        """Run the sweep over ``series``.

        Raises:
            NoValidWindowError: not a single window could be scored.
            EstimationCancelled: ``should_cancel`` returned True; nothing
                from this series is returned.
        """
        n = len(series)
        min_size = self.config.min_size
        max_size = self.config.max_size
        scorer = SegmentScorer(series, breaks, self.config)
        tracker = MapTracker(n)

        scored = 0
        degenerate = 0
        last_lo = n - min_size
        for lo in range(0, last_lo + 1):
            for hi in range(lo + min_size, min(n, lo + max_size) + 1):
                if scorer.contains_break(lo, hi):
                    # Every longer window from this lo contains it too.
                    break
                try:
                    window = scorer.score(lo, hi)
                except DegenerateWindowError:
                    degenerate += 1
                    continue
                if window is None:
                    continue
                scored += 1
                tracker.update(window)

            if self.progress is not None:
                self.progress((lo + 1) / (last_lo + 1))
            if self.should_cancel is not None and self.should_cancel():
                logger.info("Normal estimation cancelled at window start %d of %d", lo, n)
                raise EstimationCancelled(
                    f"Cancelled after {lo + 1} of {last_lo + 1} window starts"
                )

        if scored == 0:
            raise NoValidWindowError(
                f"No valid window among {n} samples "
                f"(min_size={min_size}, {int(scorer.breaks.sum())} breaks, "
                f"{degenerate} degenerate windows)"
            )

        logger.debug(
            "Scored %d windows over %d samples (%d degenerate skipped)",
            scored, n, degenerate,
        )
        return tracker.finalize(series, windows_scored=scored, windows_degenerate=degenerate)
