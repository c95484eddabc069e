#!/usr/bin/env python3
"""Estimate the camera pose in object space from one image and stored intrinsics."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

import numpy as np

from camcalib import (
    CalibrationError,
    Chessboard,
    ChessboardPattern,
    InputError,
    Manual,
    NonConvergent,
    acquire_correspondences,
    estimate_pose,
    evaluate_reprojection,
    load_image,
    load_object_points,
    load_parameters,
    save_parameters,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("image", type=Path, help="Image showing the target")
    parser.add_argument("camera", type=Path, help="Parameter file holding the intrinsic model")
    parser.add_argument("--object-points", type=Path, default=None, help="Text file with one 'x,y,z' object point per line")
    parser.add_argument("--mode", choices=["chessboard", "manual"], default="chessboard", help="How image points are acquired")
    parser.add_argument("--columns", type=int, default=10, help="Number of inner corners along the chessboard width")
    parser.add_argument("--rows", type=int, default=7, help="Number of inner corners along the chessboard height")
    parser.add_argument("--square-size", type=float, default=24.0, help="Chessboard square size in millimetres")
    parser.add_argument("--output", type=Path, default=Path("campos.json"), help="Parameter file to write the pose to")
    parser.add_argument("--show", action="store_true", help="Display the detected chessboard")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    return parser.parse_args(argv)


def _print_pose(pose) -> None:
    np.set_printoptions(precision=6, suppress=True)
    print(f"rvec:\n{pose.rvec}")
    print(f"tvec:\n{pose.tvec}")


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    try:
        pattern = ChessboardPattern(args.columns, args.rows, args.square_size)
        if args.object_points is not None:
            object_points = load_object_points(args.object_points)
        elif args.mode == "manual":
            raise InputError("Manual mode needs --object-points")
        else:
            object_points = pattern.object_points()

        if args.mode == "manual":
            strategy = Manual(count=len(object_points))
        else:
            strategy = Chessboard(pattern=pattern)

        intrinsic, _ = load_parameters(args.camera)
        if intrinsic is None:
            raise InputError(f"{args.camera} holds no intrinsic model")

        image = load_image(args.image)
        correspondences = acquire_correspondences(image, object_points, strategy, show=args.show)
        result = estimate_pose(correspondences, intrinsic)
    except NonConvergent as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        if exc.pose is not None:
            print("Unrefined estimate:")
            _print_pose(exc.pose)
        return 1
    except CalibrationError as exc:
        print(f"ERROR: Failed to estimate camera position: {exc}", file=sys.stderr)
        return 1

    _print_pose(result.pose)
    report = evaluate_reprojection(
        correspondences.object_points, result.pose, intrinsic, correspondences.image_points
    )
    print(f"reprojection RMS: {report.rms:.4f} px (max {report.max_error:.4f} px)")

    try:
        save_parameters(args.output, pose=result.pose)
    except CalibrationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1
    print(f"Write the camera position to {args.output}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
