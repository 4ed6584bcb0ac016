"""
Orientation conventions and whole-region plane fitting.

Trend/plunge describe a direction (bearing clockwise from +Y/north, angle
below horizontal). Dip/dip-direction and strike/dip (right-hand rule)
describe a plane through its normal. Angles from the trend/plunge helpers
are radians; plane reporting is in degrees.
"""
import logging
import math
from dataclasses import dataclass
from typing import Optional, Tuple

import numpy as np
import trimesh

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * math.pi


def wrap_angle(angle: float, period: float = TWO_PI) -> float:
    """Map ``angle`` into [0, period)."""
    wrapped = math.fmod(angle, period)
    if wrapped < 0.0:
        wrapped += period
    # fmod can return period itself after adding for tiny negatives
    if wrapped >= period:
        wrapped -= period
    return wrapped


def trend_plunge(vector: np.ndarray) -> Tuple[float, float]:
    """Trend in [0, 2pi) and plunge in [0, pi/2] of a direction.

    Upward-pointing vectors are reversed so plunge is never negative.
    """
    v = np.asarray(vector, dtype=float)
    v = v / np.linalg.norm(v)
    phi = math.atan2(v[0], v[1])
    theta = -math.asin(float(np.clip(v[2], -1.0, 1.0)))
    if theta < 0.0:
        phi += math.pi
        theta = -theta
    return wrap_angle(phi), theta


def vector_from_trend_plunge(phi: float, theta: float) -> np.ndarray:
    """Unit vector pointing along trend ``phi`` and plunge ``theta``."""
    return np.array([
        math.sin(phi) * math.cos(theta),
        math.cos(phi) * math.cos(theta),
        -math.sin(theta),
    ])


def dip_and_dip_direction(normal: np.ndarray) -> Tuple[float, float]:
    """Dip (0-90) and dip direction (0-360) in degrees of a plane normal."""
    n = np.asarray(normal, dtype=float)
    n = n / np.linalg.norm(n)
    if n[2] < 0:
        n = -n
    dip = math.degrees(math.acos(float(np.clip(n[2], -1.0, 1.0))))
    dip_dir = math.degrees(math.atan2(n[0], n[1])) % 360.0
    return dip, dip_dir


def strike_and_dip(normal: np.ndarray) -> Tuple[float, float]:
    """Strike (right-hand rule) and dip in degrees."""
    dip, dip_dir = dip_and_dip_direction(normal)
    return (dip_dir - 90.0) % 360.0, dip


def normal_from_dip(dip_deg: float, dip_direction_deg: float) -> np.ndarray:
    """Upward unit normal of a plane with the given dip and dip direction."""
    d = math.radians(dip_deg)
    a = math.radians(dip_direction_deg)
    return np.array([math.sin(d) * math.sin(a), math.sin(d) * math.cos(a), math.cos(d)])


@dataclass
class FitPlane:
    """Least-squares plane through every point of a surface."""
    centroid: np.ndarray
    normal: np.ndarray      # upward unit normal
    rms: float
    strike: float
    dip: float
    dip_direction: float

    def to_dict(self) -> dict:
        return {
            "centroid": [float(c) for c in self.centroid],
            "normal": [float(c) for c in self.normal],
            "rms": float(self.rms),
            "strike": float(self.strike),
            "dip": float(self.dip),
            "dip_direction": float(self.dip_direction),
        }


def fit_plane(points: np.ndarray) -> Optional[FitPlane]:
    """Fit a plane to ``points``.

    Returns None when there is not enough 3D information (fewer than three
    points, or all points on a line).
    """
    pts = np.asarray(points, dtype=float).reshape(-1, 3)
    if len(pts) < 3 or np.linalg.matrix_rank(pts - pts.mean(axis=0)) < 2:
        logger.warning("Not enough 3D information to generate sensible fit plane")
        return None

    centroid, normal = trimesh.points.plane_fit(pts)
    normal = np.asarray(normal, dtype=float)
    normal = normal / np.linalg.norm(normal)
    if normal[2] < 0:
        normal = -normal

    residuals = trimesh.points.point_plane_distance(pts, normal, centroid)
    rms = float(np.sqrt(np.mean(np.square(residuals))))
    strike, dip = strike_and_dip(normal)
    _, dip_dir = dip_and_dip_direction(normal)

    return FitPlane(
        centroid=np.asarray(centroid, dtype=float),
        normal=normal,
        rms=rms,
        strike=strike,
        dip=dip,
        dip_direction=dip_dir,
    )
