#!/usr/bin/env python3
"""Intrinsic camera calibration from chessboard images."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

from camcalib import (
    CalibrationConfig,
    CalibrationError,
    ChessboardPattern,
    CornerDetectionConfig,
    SolverConfig,
    calibrate_from_images,
    list_images,
    save_parameters,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("images", type=Path, nargs="+", help="Calibration images or directories containing them")
    parser.add_argument("--output", type=Path, default=Path("camera.json"), help="Parameter file to write (.json, .xml or .yml)")
    parser.add_argument("--columns", type=int, default=10, help="Number of inner corners along the chessboard width")
    parser.add_argument("--rows", type=int, default=7, help="Number of inner corners along the chessboard height")
    parser.add_argument("--square-size", type=float, default=24.0, help="Chessboard square size in millimetres")
    parser.add_argument("--max-images", type=int, default=None, help="Use at most this many images")
    parser.add_argument("--no-k3", dest="k3", action="store_false", help="Estimate only k1, k2, p1, p2")
    parser.add_argument("--max-iterations", type=int, default=200, help="Iteration cap for the joint refinement")
    parser.add_argument("--no-equalize", dest="equalize", action="store_false", help="Disable CLAHE before detection")
    parser.add_argument("--blur", type=int, default=0, help="Gaussian blur kernel size (0 to disable)")
    parser.add_argument("--scale", type=float, default=1.0, help="Upscale factor before corner detection")
    parser.add_argument("--no-subpix", dest="subpix", action="store_false", help="Disable sub-pixel refinement")
    parser.add_argument("--vis", type=Path, default=None, help="Optional directory for visualising detections")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    image_paths = list_images(args.images)
    if args.max_images:
        image_paths = image_paths[: args.max_images]

    try:
        pattern = ChessboardPattern(args.columns, args.rows, args.square_size)
        detection = CornerDetectionConfig(
            equalize_hist=args.equalize,
            blur_kernel=args.blur,
            scale=args.scale,
            refine_subpixel=args.subpix,
        )
        config = CalibrationConfig(
            estimate_k3=args.k3,
            solver=SolverConfig(max_iterations=args.max_iterations),
        )
        session = calibrate_from_images(image_paths, pattern, detection, config, vis_dir=args.vis)
    except CalibrationError as exc:
        print(f"ERROR: Failed to calibrate camera: {exc}", file=sys.stderr)
        return 1

    np.set_printoptions(precision=6, suppress=True)
    print()
    print(f"intrinsic:\n{session.intrinsic.matrix}")
    print(f"distortion:\n{session.intrinsic.distortion}")
    print(f"RMS reprojection error: {session.rms_error:.4f} px")
    for path, error in zip(session.image_paths, session.per_view_errors):
        print(f"  {path}: {error:.4f} px")
    print()
    first = session.poses[0]
    print(f"{session.image_paths[0]}:")
    print(f"rvec:\n{first.rvec}")
    print(f"tvec:\n{first.tvec}")

    try:
        save_parameters(args.output, session.intrinsic, first)
    except CalibrationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    print(f"Write the camera info to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
