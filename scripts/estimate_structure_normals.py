#!/usr/bin/env python3
"""
Estimate structure normals (and unit thickness) for traced geological surfaces.

Reads datasets from a JSON file (or a single trace from a point file),
runs the sliding-window normal estimation and writes a results JSON.

Usage:
    venv/bin/python3 scripts/estimate_structure_normals.py --input traces.json
    venv/bin/python3 scripts/estimate_structure_normals.py --input bed.ply --min-size 20 --max-size 200

Exit codes:
    0 - all datasets processed
    1 - finished with warnings (regions skipped)
    2 - cancelled, bad configuration, or nothing produced
"""
import argparse
import logging
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from structure_config import StructureNormalConfig
from structure_errors import BadConfigurationError
from structure_io import load_datasets, run_to_dict, write_json
from structure_pipeline import run_structure_normals


def main():
    parser = argparse.ArgumentParser(
        description="Estimate structure normals and thickness from traces"
    )
    parser.add_argument(
        "--input", required=True, type=str,
        help="Datasets JSON, or a point file (PLY/XYZ/OBJ) holding one trace",
    )
    parser.add_argument(
        "--output", type=str, default="output/structure_normals.json",
        help="Results JSON (default: output/structure_normals.json)",
    )
    parser.add_argument(
        "--min-size", type=int, default=100,
        help="Minimum window size in points (default: 100)",
    )
    parser.add_argument(
        "--max-size", type=int, default=1000,
        help="Maximum window size in points (default: 1000)",
    )
    parser.add_argument(
        "--cutoff", type=float, default=10.0,
        help="Max distance to the opposite surface for thickness (default: 10.0)",
    )
    parser.add_argument(
        "--no-thickness", action="store_true",
        help="Skip thickness estimation",
    )
    parser.add_argument(
        "--no-bias-correction", action="store_true",
        help="Do not apply the outcrop sampling-bias prior",
    )
    parser.add_argument(
        "--marginalize-alpha", action="store_true",
        help="Integrate the likelihood over the third orientation angle",
    )
    parser.add_argument(
        "-v", "--verbose", action="store_true",
        help="DEBUG logging",
    )

    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    log = logging.getLogger("estimate_structure_normals")

    config = StructureNormalConfig(
        min_size=args.min_size,
        max_size=args.max_size,
        cutoff_distance=args.cutoff,
        compute_thickness=not args.no_thickness,
        use_bias_correction=not args.no_bias_correction,
        marginalize_alpha=args.marginalize_alpha,
    )

    datasets = load_datasets(args.input)
    try:
        run = run_structure_normals(datasets, config)
    except BadConfigurationError as exc:
        log.error("Bad configuration: %s", exc)
        return 2

    output = Path(args.output)
    write_json(output, run_to_dict(run))
    log.info("Wrote %s", output)

    if run.cancelled or not run.datasets:
        return 2
    if run.warnings:
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
