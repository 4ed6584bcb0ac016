"""JSON dataset loading and result writing for structure normal runs."""

from __future__ import annotations

import json
import math
from pathlib import Path
from typing import Any, Dict, List

import numpy as np
import trimesh

from structure_pipeline import StructureNormalRun, SurfaceResult
from trace_data import Dataset, DatasetKind, Surface, Trace

POINT_FILE_SUFFIXES = {".ply", ".xyz", ".obj", ".stl", ".off", ".glb"}


def _trace_from_dict(item: Dict[str, Any]) -> Trace:
    points = item.get("points")
    if points is None:
        raise ValueError("trace entry must contain 'points'")
    normals = item.get("normals")
    return Trace(points=np.asarray(points, dtype=float),
                 normals=None if normals is None else np.asarray(normals, dtype=float))


def _surface_from_list(items: Any) -> Surface:
    if items is None:
        return Surface()
    if not isinstance(items, list):
        raise ValueError("surface must be a list of traces")
    return Surface([_trace_from_dict(t) for t in items])


def dataset_from_dict(payload: Dict[str, Any], default_name: str = "dataset") -> Dataset:
    name = str(payload.get("name", default_name)).strip() or default_name
    kind = DatasetKind(str(payload.get("kind", DatasetKind.TRACE.value)))
    upper = payload.get("upper")
    return Dataset(
        name=name,
        kind=kind,
        lower=_surface_from_list(payload.get("lower")),
        upper=_surface_from_list(upper) if upper is not None else None,
        pinch_nodes=np.asarray(payload.get("pinch_nodes", []), dtype=float),
    )


def load_point_file(path: Path) -> Dataset:
    """Load a single trace from any point/mesh file trimesh can read."""
    geom = trimesh.load(str(path))
    if isinstance(geom, trimesh.Scene):
        geom = trimesh.util.concatenate(list(geom.geometry.values()))
    vertices = np.asarray(getattr(geom, "vertices", np.zeros((0, 3))), dtype=float)
    if len(vertices) == 0:
        raise ValueError(f"No points found in {path}")
    return Dataset.from_trace(path.stem, Trace(points=vertices))


def load_datasets(path: str) -> List[Dataset]:
    """Read datasets from a JSON document or a single point file.

    JSON layout::

        {"datasets": [{"name": "bed_a", "kind": "geo_object",
                       "lower": [{"points": [[x, y, z], ...], "normals": [...]}],
                       "upper": [...], "pinch_nodes": [[x, y, z]]}]}
    """
    p = Path(path)
    if not p.is_file():
        raise FileNotFoundError(f"Input file not found: {p}")

    if p.suffix.lower() in POINT_FILE_SUFFIXES:
        return [load_point_file(p)]

    payload = json.loads(p.read_text(encoding="utf-8"))
    raw = payload.get("datasets") if isinstance(payload, dict) else payload
    if not isinstance(raw, list) or not raw:
        raise ValueError("input must contain a non-empty 'datasets' list")
    return [
        dataset_from_dict(item, default_name=f"dataset_{i}")
        for i, item in enumerate(raw)
        if isinstance(item, dict)
    ]


def _jsonable(values: np.ndarray) -> list:
    """Array -> nested lists with non-finite floats as None."""
    out = []
    for v in np.asarray(values).tolist():
        if isinstance(v, list):
            out.append([None if isinstance(c, float) and not math.isfinite(c) else c for c in v])
        elif isinstance(v, float) and not math.isfinite(v):
            out.append(None)
        else:
            out.append(v)
    return out


def surface_to_dict(surface: SurfaceResult) -> Dict[str, Any]:
    est = surface.estimate
    return {
        "role": surface.role.value,
        "point_count": int(len(surface.points)),
        "estimated_count": int(est.estimated.sum()),
        "windows_scored": int(est.windows_scored),
        "windows_degenerate": int(est.windows_degenerate),
        "normals": _jsonable(surface.normals),
        "channels": {k: _jsonable(v) for k, v in surface.channels.items()},
        "fit_plane": surface.fit_plane.to_dict() if surface.fit_plane else None,
    }


def run_to_dict(run: StructureNormalRun) -> Dict[str, Any]:
    cfg = run.config
    return {
        "config": {
            "min_size": cfg.min_size,
            "max_size": cfg.max_size,
            "cutoff_distance": cfg.cutoff_distance,
            "compute_thickness": cfg.compute_thickness,
            "use_bias_correction": cfg.use_bias_correction,
            "marginalize_alpha": cfg.marginalize_alpha,
        },
        "cancelled": run.cancelled,
        "elapsed_s": round(run.elapsed_s, 3),
        "warnings": list(run.warnings),
        "datasets": [
            {
                "name": ds.name,
                "kind": ds.kind.value,
                "surfaces": [surface_to_dict(s) for s in ds.surfaces.values()],
            }
            for ds in run.datasets
        ],
    }


def write_json(path: Path, payload: Dict[str, Any]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8") as f:
        json.dump(payload, f, indent=2)
