"""
Shared test fixtures for structure normal estimation tests.
"""
import sys
from pathlib import Path

import numpy as np
import pytest

# Add src/ to path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from map_tracker import SurfaceEstimate
from ordered_series import OrderedSeries
from orientation import normal_from_dip
from structure_config import StructureNormalConfig


def make_plane_trace(
    n: int = 200,
    dip_deg: float = 30.0,
    dip_direction_deg: float = 120.0,
    noise: float = 0.02,
    spacing: float = 0.5,
    amplitude: float = 3.0,
    wavelength: float = 40.0,
    offset: float = 0.0,
    seed: int = 42,
):
    """A sinuous trace lying on a plane of known orientation.

    The trace wanders within the plane so every window of a few dozen
    points spans two dimensions. ``offset`` shifts the whole trace along
    the upward plane normal.

    Returns:
        (points (n, 3), upward unit normal (3,))
    """
    normal = normal_from_dip(dip_deg, dip_direction_deg)
    u = np.cross([0.0, 0.0, 1.0], normal)
    if np.linalg.norm(u) < 1e-9:
        u = np.array([1.0, 0.0, 0.0])
    u /= np.linalg.norm(u)
    v = np.cross(normal, u)

    t = np.arange(n, dtype=float)
    rng = np.random.default_rng(seed)
    points = (
        np.outer(t * spacing, u)
        + np.outer(amplitude * np.sin(2.0 * np.pi * t / wavelength), v)
        + offset * normal
        + rng.normal(0.0, noise, size=(n, 3))
    )
    return points, normal


def angle_between_deg(a: np.ndarray, b: np.ndarray) -> float:
    """Unsigned angle between two axes (sign of either vector ignored)."""
    a = a / np.linalg.norm(a)
    b = b / np.linalg.norm(b)
    dot = abs(float(np.dot(a, b)))
    return float(np.degrees(np.arccos(np.clip(dot, -1.0, 1.0))))


def flat_estimate(points: np.ndarray, normal) -> SurfaceEstimate:
    """A finalised estimate with the same normal at every point."""
    points = np.asarray(points, dtype=float)
    n = len(points)
    series = OrderedSeries(
        positions=points,
        normals=None,
        original_index=np.arange(n),
        axis=np.array([1.0, 0.0, 0.0]),
        projection=points[:, 0].copy(),
    )
    return SurfaceEstimate(
        series=series,
        normals=np.tile(np.asarray(normal, dtype=float), (n, 1)),
        log_weight=np.zeros(n),
        start=np.zeros(n, dtype=np.int64),
        end=np.full(n, n, dtype=np.int64),
        segment_id=np.full(n, n * n, dtype=np.int64),
        trend=np.zeros(n),
        plunge=np.zeros(n),
    )


def grid_points(size: int = 10, spacing: float = 1.0, z: float = 0.0) -> np.ndarray:
    xs, ys = np.meshgrid(np.arange(size) * spacing, np.arange(size) * spacing)
    return np.column_stack([xs.ravel(), ys.ravel(), np.full(size * size, z)])


@pytest.fixture
def plane_trace():
    """200 noisy points on a plane dipping 30 degrees toward 120."""
    return make_plane_trace()


@pytest.fixture
def small_config():
    """Window sizes suited to a 200-point trace."""
    return StructureNormalConfig(
        min_size=20,
        max_size=50,
        cutoff_distance=10.0,
        compute_thickness=True,
        use_bias_correction=True,
    )
