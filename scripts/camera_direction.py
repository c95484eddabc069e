#!/usr/bin/env python3
"""Print the camera orientation angles implied by stored intrinsics and pose."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

import numpy as np

from camcalib import (
    CalibrationError,
    InputError,
    compose_projection_matrix,
    decompose_projection_matrix,
    load_parameters,
)


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("camera", type=Path, help="Parameter file holding the intrinsic model")
    parser.add_argument("position", type=Path, help="Parameter file holding the camera pose")
    parser.add_argument("--matrix", action="store_true", help="Also print the projection matrix and its factors")
    return parser.parse_args(argv)


def main(argv: list[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        intrinsic, _ = load_parameters(args.camera)
        _, pose = load_parameters(args.position)
        if intrinsic is None:
            raise InputError(f"{args.camera} holds no intrinsic model")
        if pose is None:
            raise InputError(f"{args.position} holds no pose")
        P = compose_projection_matrix(intrinsic, pose)
        decomposition = decompose_projection_matrix(P)
    except CalibrationError as exc:
        print(f"ERROR: {exc}", file=sys.stderr)
        return 1

    if args.matrix:
        np.set_printoptions(precision=6, suppress=True)
        print(f"projection:\n{P}")
        print(f"intrinsic:\n{decomposition.intrinsic}")
        print(f"rotation:\n{decomposition.rotation}")
        print(f"camera center:\n{decomposition.camera_center}")
    angles = decomposition.angles
    print(f"[roll, pitch, yaw] = [{angles.roll:.6f}, {angles.pitch:.6f}, {angles.yaw:.6f}]")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
