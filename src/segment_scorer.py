"""
Score one candidate window of an ordered series.

Geometry (centroid, scatter, eigensystem) -> orientation (trend, plunge,
alpha of the best-fit plane) -> log posterior (Wishart likelihood, plus
the outcrop-bias prior when sampled normals are available).
"""
import math
from dataclasses import dataclass
from typing import Optional

import numpy as np

from orientation import wrap_angle
from ordered_series import OrderedSeries
from structure_config import StructureNormalConfig
from structure_errors import DegenerateWindowError
from wishart import (
    log_orientation_prior,
    log_wishart,
    log_wishart_marginal_alpha,
    log_wishart_scale_factor,
)

_MIN_COS_PLUNGE = 1e-12
_MIN_NORMAL_LENGTH = 1e-12


@dataclass(frozen=True)
class WindowScore:
    """Result of scoring the half-open window [lo, hi)."""
    lo: int
    hi: int
    log_score: float
    normal: np.ndarray          # (3,) least-variance eigenvector
    trend: float                # phi, [0, 2pi)
    plunge: float               # theta, [0, pi/2]
    alpha: float                # [0, pi)
    eigenvalues: np.ndarray     # (3,) descending
    eigenvectors: np.ndarray    # (3, 3) columns match eigenvalues
    centroid: np.ndarray

    @property
    def length(self) -> int:
        return self.hi - self.lo


def sorted_eigensystem(cov: np.ndarray):
    """Eigenvalues in descending order with matching eigenvector columns."""
    eigvals, eigvecs = np.linalg.eigh(cov)
    order = np.argsort(eigvals)[::-1]
    return eigvals[order], eigvecs[:, order]


def plane_angles(eigenvectors: np.ndarray):
    """Trend, plunge and alpha of a descending-sorted eigensystem.

    Raises:
        DegenerateWindowError: the normal is vertical enough that alpha is
            undefined.
    """
    normal = eigenvectors[:, 2]
    phi = math.atan2(normal[0], normal[1])
    theta = -math.asin(float(np.clip(normal[2], -1.0, 1.0)))
    if theta < 0.0:
        phi += math.pi
        theta = -theta
    phi = wrap_angle(phi)

    cos_theta = math.cos(theta)
    if cos_theta < _MIN_COS_PLUNGE:
        raise DegenerateWindowError("Plunge is vertical; alpha is undefined")
    ratio = float(np.clip(eigenvectors[2, 1] / cos_theta, -1.0, 1.0))
    alpha = wrap_angle(math.asin(ratio), math.pi)
    return phi, theta, alpha


class SegmentScorer:
    """Scores windows of one series under a fixed configuration.

    Read-only over its inputs; safe to call for any window in any order.
    """

    def __init__(
        self,
        series: OrderedSeries,
        breaks: Optional[np.ndarray],
        config: StructureNormalConfig,
    ):
        self.series = series
        self.config = config
        if breaks is None:
            breaks = np.zeros(len(series), dtype=bool)
        self.breaks = np.asarray(breaks, dtype=bool)
        if len(self.breaks) != len(series):
            raise ValueError("breaks must have one flag per series sample")
        # _break_count[i] = number of breaks in [0, i)
        self._break_count = np.concatenate([[0], np.cumsum(self.breaks)])
        self.n_dof = config.degrees_of_freedom
        self.use_prior = bool(config.use_bias_correction and series.has_normals)

    def contains_break(self, lo: int, hi: int) -> bool:
        return bool(self._break_count[hi] - self._break_count[lo] > 0)

    def is_valid_window(self, lo: int, hi: int) -> bool:
        n = hi - lo
        if lo < 0 or hi > len(self.series):
            return False
        if n < self.config.min_size or n > self.config.max_size:
            return False
        return not self.contains_break(lo, hi)

    def score(self, lo: int, hi: int) -> Optional[WindowScore]:
        """Score window [lo, hi).

        Returns None for windows that are out of bounds, the wrong length,
        or contain a break.

        Raises:
            DegenerateWindowError: singular scatter, zero-variance normal
                direction, vertical normal, or a zero mean sampled normal.
        """
        if not self.is_valid_window(lo, hi):
            return None

        n = hi - lo
        pts = self.series.positions[lo:hi]
        centroid = pts.mean(axis=0)

        mean_normal = None
        if self.use_prior:
            mean_normal = self.series.normals[lo:hi].sum(axis=0) / n
            length = float(np.linalg.norm(mean_normal))
            if length < _MIN_NORMAL_LENGTH:
                raise DegenerateWindowError("Mean sampled normal has zero length")
            mean_normal = mean_normal / length

        centred = pts - centroid
        scatter = centred.T @ centred
        cov = scatter / n

        eigvals, eigvecs = sorted_eigensystem(cov)
        if not eigvals[2] > 0.0:
            raise DegenerateWindowError("Window points are coplanar or collinear")

        phi, theta, alpha = plane_angles(eigvecs)
        lsf = log_wishart_scale_factor(scatter, self.n_dof)

        if self.config.marginalize_alpha:
            log_score = log_wishart_marginal_alpha(
                scatter, self.n_dof, phi, theta, eigvals, lsf,
                steps=self.config.alpha_steps,
            )
        else:
            log_score = log_wishart(scatter, self.n_dof, phi, theta, alpha, eigvals, lsf)

        if mean_normal is not None:
            log_score += log_orientation_prior(phi, theta, mean_normal)

        return WindowScore(
            lo=lo,
            hi=hi,
            log_score=float(log_score),
            normal=eigvecs[:, 2].copy(),
            trend=phi,
            plunge=theta,
            alpha=alpha,
            eigenvalues=eigvals,
            eigenvectors=eigvecs,
            centroid=centroid,
        )
