"""
Per-sample maximum-a-posteriori bookkeeping for the window sweep.
"""
from dataclasses import dataclass

import numpy as np

from ordered_series import OrderedSeries
from segment_scorer import WindowScore


@dataclass
class SurfaceEstimate:
    """Finalised estimates for one series, in sorted order.

    Samples no valid window covered (e.g. break positions) keep a zero
    normal, a log weight of -inf and bounds of -1.
    """
    series: OrderedSeries
    normals: np.ndarray         # (N, 3)
    log_weight: np.ndarray      # (N,) best log posterior
    start: np.ndarray           # (N,) winning window lo
    end: np.ndarray             # (N,) winning window hi (exclusive)
    segment_id: np.ndarray      # (N,) hi * N + lo of the winning window
    trend: np.ndarray           # (N,) radians
    plunge: np.ndarray          # (N,) radians
    windows_scored: int = 0
    windows_degenerate: int = 0

    def __len__(self) -> int:
        return len(self.normals)

    @property
    def estimated(self) -> np.ndarray:
        """Mask of samples that received an estimate."""
        return self.segment_id >= 0


class MapTracker:
    """Keeps, for every sample, the best-scoring window seen so far."""

    def __init__(self, size: int):
        self.size = int(size)
        self.best_log_score = np.full(self.size, -np.inf)
        self.normals = np.zeros((self.size, 3))
        self.start = np.full(self.size, -1, dtype=np.int64)
        self.end = np.full(self.size, -1, dtype=np.int64)
        self.segment_id = np.full(self.size, -1, dtype=np.int64)
        self.trend = np.full(self.size, np.nan)
        self.plunge = np.full(self.size, np.nan)

    def update(self, window: WindowScore) -> int:
        """Record ``window`` for every sample it beats. Returns that count."""
        sl = slice(window.lo, window.hi)
        better = window.log_score > self.best_log_score[sl]
        if not better.any():
            return 0
        idx = np.arange(window.lo, window.hi)[better]
        self.best_log_score[idx] = window.log_score
        self.normals[idx] = window.normal
        self.start[idx] = window.lo
        self.end[idx] = window.hi
        self.segment_id[idx] = window.hi * self.size + window.lo
        self.trend[idx] = window.trend
        self.plunge[idx] = window.plunge
        return int(better.sum())

    def finalize(
        self,
        series: OrderedSeries,
        windows_scored: int = 0,
        windows_degenerate: int = 0,
    ) -> SurfaceEstimate:
        if len(series) != self.size:
            raise ValueError("series length does not match tracker size")
        return SurfaceEstimate(
            series=series,
            normals=self.normals.copy(),
            log_weight=self.best_log_score.copy(),
            start=self.start.copy(),
            end=self.end.copy(),
            segment_id=self.segment_id.copy(),
            trend=self.trend.copy(),
            plunge=self.plunge.copy(),
            windows_scored=windows_scored,
            windows_degenerate=windows_degenerate,
        )
