"""
Input model for structure normal estimation.

A Dataset is what one estimation pass works on: either a single trace or a
geological object with lower/upper boundary surfaces and pinch nodes. The
kind is decided once when datasets are gathered; downstream code only looks
at ``Dataset.surfaces()``.
"""
from dataclasses import dataclass, field
from enum import Enum
from typing import Iterable, Iterator, List, Optional, Tuple

import numpy as np


class DatasetKind(Enum):
    """What a dataset was gathered from."""
    TRACE = "trace"
    GEO_OBJECT = "geo_object"
    SINGLE_SURFACE_GEO_OBJECT = "single_surface_geo_object"


class SurfaceRole(Enum):
    LOWER = "lower"
    UPPER = "upper"


@dataclass
class Trace:
    """Ordered points digitised along an outcrop, with optional sampled normals."""
    points: np.ndarray                      # (M, 3)
    normals: Optional[np.ndarray] = None    # (M, 3) outcrop normals at each point

    def __post_init__(self):
        self.points = np.asarray(self.points, dtype=float).reshape(-1, 3)
        if self.normals is not None:
            self.normals = np.asarray(self.normals, dtype=float).reshape(-1, 3)
            if len(self.normals) != len(self.points):
                raise ValueError(
                    f"Trace has {len(self.points)} points but {len(self.normals)} normals"
                )

    def __len__(self) -> int:
        return len(self.points)


@dataclass
class Surface:
    """All traces digitised on one boundary of a dataset."""
    traces: List[Trace] = field(default_factory=list)

    @property
    def point_count(self) -> int:
        return sum(len(t) for t in self.traces)


@dataclass
class Dataset:
    name: str
    kind: DatasetKind
    lower: Surface
    upper: Optional[Surface] = None
    pinch_nodes: np.ndarray = field(default_factory=lambda: np.zeros((0, 3)))

    def __post_init__(self):
        self.pinch_nodes = np.asarray(self.pinch_nodes, dtype=float).reshape(-1, 3)
        if self.kind is not DatasetKind.GEO_OBJECT:
            # Traces and single-surface objects only ever have one boundary.
            self.upper = None

    @property
    def has_two_surfaces(self) -> bool:
        return self.upper is not None

    def surfaces(self) -> List[Tuple[SurfaceRole, Surface]]:
        out = [(SurfaceRole.LOWER, self.lower)]
        if self.upper is not None:
            out.append((SurfaceRole.UPPER, self.upper))
        return out

    @classmethod
    def from_trace(cls, name: str, trace: Trace) -> "Dataset":
        return cls(name=name, kind=DatasetKind.TRACE, lower=Surface([trace]))


def iter_surface_points(
    traces: Iterable[Trace],
) -> Iterator[Tuple[np.ndarray, Optional[np.ndarray]]]:
    """Yield ``(position, normal)`` for every point of every trace, in order."""
    for trace in traces:
        for i in range(len(trace)):
            normal = None if trace.normals is None else trace.normals[i]
            yield trace.points[i], normal


def surface_arrays(surface: Surface) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """Stack a surface into ``(positions, normals)``.

    Normals are returned only when every trace carries them; a surface
    mixing traces with and without normals is treated as having none.
    """
    positions = []
    normals = []
    have_normals = True
    for position, normal in iter_surface_points(surface.traces):
        positions.append(position)
        if normal is None:
            have_normals = False
        elif have_normals:
            normals.append(normal)

    if not positions:
        return np.zeros((0, 3)), None
    pos = np.vstack(positions)
    if not have_normals:
        return pos, None
    return pos, np.vstack(normals)
