"""Tests for dataset loading and result serialisation."""
import json

import numpy as np
import pytest
import trimesh

from conftest import make_plane_trace
from structure_config import StructureNormalConfig
from structure_io import load_datasets, run_to_dict, write_json
from structure_pipeline import run_structure_normals
from trace_data import DatasetKind, Surface, Trace, iter_surface_points, surface_arrays


def _write_payload(path, payload):
    path.write_text(json.dumps(payload), encoding="utf-8")
    return path


class TestTraceData:

    def test_iter_surface_points_is_flat(self):
        a = Trace(np.zeros((3, 3)), np.ones((3, 3)))
        b = Trace(np.full((2, 3), 5.0))
        pairs = list(iter_surface_points([a, b]))
        assert len(pairs) == 5
        assert pairs[0][1] is not None
        assert pairs[4][1] is None

    def test_surface_arrays_drops_partial_normals(self):
        surface = Surface([Trace(np.zeros((3, 3)), np.ones((3, 3))), Trace(np.ones((2, 3)))])
        positions, normals = surface_arrays(surface)
        assert positions.shape == (5, 3)
        assert normals is None

    def test_mismatched_normals_rejected(self):
        with pytest.raises(ValueError):
            Trace(np.zeros((3, 3)), np.zeros((2, 3)))


class TestLoadDatasets:

    def test_json_geo_object(self, tmp_path):
        lower, _ = make_plane_trace(n=30)
        upper, _ = make_plane_trace(n=30, offset=1.0)
        path = _write_payload(tmp_path / "in.json", {
            "datasets": [{
                "name": "bed_a",
                "kind": "geo_object",
                "lower": [{"points": lower.tolist(), "normals": np.ones_like(lower).tolist()}],
                "upper": [{"points": upper.tolist()}],
                "pinch_nodes": [lower[10].tolist()],
            }]
        })
        datasets = load_datasets(str(path))
        assert len(datasets) == 1
        ds = datasets[0]
        assert ds.name == "bed_a"
        assert ds.kind is DatasetKind.GEO_OBJECT
        assert ds.has_two_surfaces
        assert ds.lower.point_count == 30
        assert ds.lower.traces[0].normals is not None
        assert ds.pinch_nodes.shape == (1, 3)

    def test_trace_kind_ignores_upper(self, tmp_path):
        pts, _ = make_plane_trace(n=30)
        path = _write_payload(tmp_path / "in.json", {
            "datasets": [{"kind": "trace", "lower": [{"points": pts.tolist()}],
                          "upper": [{"points": pts.tolist()}]}]
        })
        ds = load_datasets(str(path))[0]
        assert ds.name == "dataset_0"
        assert not ds.has_two_surfaces

    def test_point_file(self, tmp_path):
        pts, _ = make_plane_trace(n=40)
        path = tmp_path / "trace.ply"
        trimesh.PointCloud(pts).export(str(path))
        ds = load_datasets(str(path))[0]
        assert ds.kind is DatasetKind.TRACE
        assert ds.lower.point_count == 40

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_datasets(str(tmp_path / "nope.json"))

    def test_empty_dataset_list(self, tmp_path):
        path = _write_payload(tmp_path / "in.json", {"datasets": []})
        with pytest.raises(ValueError):
            load_datasets(str(path))


class TestRunToDict:

    def test_serialisable_with_unestimated_points(self, tmp_path, plane_trace):
        from trace_data import Dataset

        points, _ = plane_trace
        dataset = Dataset(
            name="bed",
            kind=DatasetKind.TRACE,
            lower=Surface([Trace(points)]),
            pinch_nodes=points[[100]],
        )
        config = StructureNormalConfig(min_size=20, max_size=50)
        payload = run_to_dict(run_structure_normals([dataset], config))

        out = tmp_path / "out" / "result.json"
        write_json(out, payload)
        loaded = json.loads(out.read_text(encoding="utf-8"))

        surface = loaded["datasets"][0]["surfaces"][0]
        assert surface["role"] == "lower"
        assert surface["point_count"] == 200
        assert surface["estimated_count"] == 199
        assert surface["channels"]["Weight"][100] is None
        assert surface["channels"]["SegmentID"][100] == -1
        assert surface["normals"][100] == [0.0, 0.0, 0.0]
        assert loaded["config"]["min_size"] == 20
