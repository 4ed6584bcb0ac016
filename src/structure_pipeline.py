"""Multi-dataset pipeline: traces -> ordered series -> normals -> thickness."""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional, Sequence

import numpy as np

from break_index import build_break_index
from map_tracker import SurfaceEstimate
from normal_estimation import NormalEstimationEngine
from ordered_series import build_ordered_series
from orientation import FitPlane, fit_plane
from structure_config import StructureNormalConfig
from structure_errors import (
    EstimationCancelled,
    InsufficientDataError,
    NoValidWindowError,
)
from thickness import ThicknessResult, estimate_pair_thickness
from trace_data import Dataset, DatasetKind, SurfaceRole, surface_arrays

logger = logging.getLogger(__name__)

START_CHANNEL = "StartPoint"
END_CHANNEL = "EndPoint"
SEGMENT_CHANNEL = "SegmentID"
WEIGHT_CHANNEL = "Weight"
THICKNESS_CHANNEL = "Thickness"

ProgressCallback = Callable[[str, float], None]


@dataclass
class SurfaceResult:
    """Output for one surface, in the surface's original point order."""
    role: SurfaceRole
    points: np.ndarray                  # (M, 3) as gathered from the traces
    normals: np.ndarray                 # (M, 3) estimated normals, NaN where dropped
    channels: Dict[str, np.ndarray]
    estimate: SurfaceEstimate
    fit_plane: Optional[FitPlane] = None

    @property
    def has_thickness(self) -> bool:
        return THICKNESS_CHANNEL in self.channels


@dataclass
class DatasetResult:
    name: str
    kind: DatasetKind
    surfaces: Dict[SurfaceRole, SurfaceResult] = field(default_factory=dict)


@dataclass
class StructureNormalRun:
    config: StructureNormalConfig
    datasets: List[DatasetResult] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    cancelled: bool = False
    elapsed_s: float = 0.0

    def dataset(self, name: str) -> Optional[DatasetResult]:
        for result in self.datasets:
            if result.name == name:
                return result
        return None


def _surface_result(
    role: SurfaceRole,
    points: np.ndarray,
    estimate: SurfaceEstimate,
    thickness: Optional[ThicknessResult] = None,
) -> SurfaceResult:
    series = estimate.series
    normals = estimate.normals if thickness is None else thickness.normals
    channels = {
        START_CHANNEL: series.to_original_order(estimate.start, fill=-1),
        END_CHANNEL: series.to_original_order(estimate.end, fill=-1),
        SEGMENT_CHANNEL: series.to_original_order(estimate.segment_id, fill=-1),
        WEIGHT_CHANNEL: series.to_original_order(estimate.log_weight),
    }
    if thickness is not None:
        channels[THICKNESS_CHANNEL] = series.to_original_order(thickness.thickness)
    return SurfaceResult(
        role=role,
        points=points,
        normals=series.to_original_order(normals),
        channels=channels,
        estimate=estimate,
        fit_plane=fit_plane(series.positions),
    )


class _Warnings:
    def __init__(self, sink: List[str]):
        self.sink = sink

    def __call__(self, message: str) -> None:
        logger.warning(message)
        self.sink.append(message)


def run_structure_normals(
    datasets: Sequence[Dataset],
    config: Optional[StructureNormalConfig] = None,
    should_cancel: Optional[Callable[[], bool]] = None,
    progress: Optional[ProgressCallback] = None,
) -> StructureNormalRun:
    """Estimate structure normals (and thickness) for every dataset.

    Regions that are too small or cannot be fitted are skipped with a
    warning. On cancellation the in-flight surface is discarded, results of
    finished surfaces are kept and ``run.cancelled`` is set.

    Raises:
        BadConfigurationError: before any work, if ``config`` is invalid.
    """
    if config is None:
        config = StructureNormalConfig()
    config.validate()

    run = StructureNormalRun(config=config)
    warn = _Warnings(run.warnings)
    started = time.perf_counter()

    if not datasets:
        warn("No datasets or traces to estimate structure normals for")

    logger.info("Estimating structure normals for %d datasets", len(datasets))
    for d_idx, dataset in enumerate(datasets):
        info = f"Processing {d_idx + 1} of {len(datasets)} datasets"
        if should_cancel is not None and should_cancel():
            run.cancelled = True
            break
        result = DatasetResult(name=dataset.name, kind=dataset.kind)
        try:
            _run_dataset(dataset, result, config, info, warn, should_cancel, progress)
        except EstimationCancelled as exc:
            logger.info("Dataset %s cancelled: %s", dataset.name, exc)
            run.cancelled = True
        if result.surfaces:
            run.datasets.append(result)
        if run.cancelled:
            break

    run.elapsed_s = time.perf_counter() - started
    logger.info(
        "Structure normal estimation %s in %.2fs (%d datasets, %d warnings)",
        "cancelled" if run.cancelled else "complete",
        run.elapsed_s, len(run.datasets), len(run.warnings),
    )
    return run


def _run_dataset(
    dataset: Dataset,
    result: DatasetResult,
    config: StructureNormalConfig,
    info: str,
    warn: _Warnings,
    should_cancel: Optional[Callable[[], bool]],
    progress: Optional[ProgressCallback],
) -> None:
    """Fill ``result`` surface by surface; a surface is added only once finished."""
    surfaces = dataset.surfaces()
    estimates: Dict[SurfaceRole, SurfaceEstimate] = {}
    points: Dict[SurfaceRole, np.ndarray] = {}

    for s_idx, (role, surface) in enumerate(surfaces):
        offset = 100.0 * s_idx / len(surfaces)
        span = 100.0 / len(surfaces)

        def engine_progress(fraction: float, _offset=offset, _span=span) -> None:
            if progress is not None:
                progress(f"{info}: calculating fit planes...", _offset + _span * fraction)

        engine = NormalEstimationEngine(config, should_cancel=should_cancel, progress=engine_progress)
        positions, normals = surface_arrays(surface)
        label = f"{dataset.name}/{role.value}"
        try:
            series = build_ordered_series(positions, normals, min_size=config.min_size)
        except InsufficientDataError as exc:
            warn(f"Region {label} ignored: {exc}")
            continue

        if config.use_bias_correction and not series.has_normals:
            warn(
                f"Region {label}: cannot compensate for outcrop-surface bias as "
                "points have no normals. Estimates may be misleading."
            )

        breaks = build_break_index(series, dataset.pinch_nodes)
        try:
            estimates[role] = engine.estimate(series, breaks)
        except NoValidWindowError as exc:
            warn(
                f"Region {label} contains no valid windows (pinch nodes break the "
                f"trace into small segments?). Region ignored: {exc}"
            )
            continue
        points[role] = positions
        result.surfaces[role] = _surface_result(role, positions, estimates[role])

    if (
        config.compute_thickness
        and dataset.has_two_surfaces
        and SurfaceRole.LOWER in estimates
        and SurfaceRole.UPPER in estimates
    ):
        if progress is not None:
            progress(f"{info}: estimating thickness...", 0.0)
        lower_t, upper_t = estimate_pair_thickness(
            estimates[SurfaceRole.LOWER],
            estimates[SurfaceRole.UPPER],
            config,
            should_cancel=should_cancel,
        )
        for role, measured in ((SurfaceRole.LOWER, lower_t), (SurfaceRole.UPPER, upper_t)):
            result.surfaces[role] = _surface_result(
                role, points[role], estimates[role], measured,
            )
