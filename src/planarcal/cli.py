#!/usr/bin/env python3
"""
planarcal CLI - camera calibration from chessboard images.

Usage:
    planarcal calibrate -w 9 -H 6 -s 0.025 -o camera.toml images.xml
    planarcal calibrate --config settings.toml --write-extrinsics images.txt
    planarcal undistort camera.toml images.xml undistorted/
    planarcal --help

The image list is either an OpenCV XML/YAML string list (as written by
imagelist_creator) or a text file with one image path per line.
"""

from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import replace
from pathlib import Path

from .calibration import collect_views, read_image_list, run_and_save
from .config import DEFAULT_OUTPUT, load_settings
from .errors import ConfigurationError, PlanarCalError
from .serialization import intrinsics_from_record, load_record
from .types import BoardGeometry, CalibrationConfiguration, CalibrationSettings
from .undistort import undistort_images

logger = logging.getLogger("planarcal")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="planarcal",
        description="Camera calibration from chessboard images",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    commands = parser.add_subparsers(dest="command")

    calib = commands.add_parser("calibrate", help="Calibrate from a list of board images")
    calib.add_argument("image_list", type=Path, help="Image list file")
    calib.add_argument("--config", type=Path, help="TOML settings file")
    calib.add_argument("-w", "--board-width", type=int, help="Inner corners per board row")
    calib.add_argument("-H", "--board-height", type=int, help="Inner corners per board column")
    calib.add_argument("-s", "--square-size", type=float, help="Square size in user units (default 1)")
    calib.add_argument("-o", "--output", type=Path, help=f"Output record (default {DEFAULT_OUTPUT})")
    calib.add_argument("--write-points", action="store_true", help="Write detected feature points")
    calib.add_argument("--write-extrinsics", action="store_true", help="Write extrinsic parameters")
    calib.add_argument("--zero-tangent-dist", action="store_true", help="Assume zero tangential distortion")
    calib.add_argument("-a", "--aspect-ratio", type=float, help="Fix the aspect ratio fx/fy")
    calib.add_argument("-p", "--fix-principal-point", action="store_true", help="Fix the principal point at the center")

    undist = commands.add_parser("undistort", help="Write undistorted copies of images")
    undist.add_argument("calibration", type=Path, help="Calibration record written by 'calibrate'")
    undist.add_argument("image_list", type=Path, help="Image list file")
    undist.add_argument("output_dir", type=Path, help="Directory for undistorted images")

    return parser


def resolve_settings(args: argparse.Namespace) -> CalibrationSettings:
    """
    Merge the optional settings file with command-line flags.
    Flags win over the file.
    """
    if args.config is not None:
        settings = load_settings(args.config)
    else:
        if args.board_width is None or args.board_height is None:
            raise ConfigurationError("Board size required: pass -w and -H or --config")
        settings = CalibrationSettings(
            board=BoardGeometry(args.board_width, args.board_height),
        )

    board = settings.board
    if args.board_width is not None or args.board_height is not None or args.square_size is not None:
        board = BoardGeometry(
            columns=args.board_width if args.board_width is not None else board.columns,
            rows=args.board_height if args.board_height is not None else board.rows,
            square_size=args.square_size if args.square_size is not None else board.square_size,
        )

    calibration = settings.calibration
    if args.aspect_ratio is not None:
        calibration = replace(calibration, fix_aspect_ratio=True, aspect_ratio=args.aspect_ratio)
    if args.zero_tangent_dist:
        calibration = replace(calibration, zero_tangent_dist=True)
    if args.fix_principal_point:
        calibration = replace(calibration, fix_principal_point=True)

    return CalibrationSettings(
        board=board,
        calibration=calibration,
        output=str(args.output) if args.output is not None else settings.output,
        write_extrinsics=settings.write_extrinsics or args.write_extrinsics,
        write_points=settings.write_points or args.write_points,
    )


def run_calibrate(args: argparse.Namespace) -> int:
    settings = resolve_settings(args)
    images = read_image_list(args.image_list)

    accumulator = collect_views(images, settings.board)
    correspondences = accumulator.finalize()

    run_and_save(
        correspondences,
        settings.calibration,
        Path(settings.output),
        write_extrinsics=settings.write_extrinsics,
        write_points=settings.write_points,
    )
    return 0


def run_undistort(args: argparse.Namespace) -> int:
    record = load_record(args.calibration)
    if record is None:
        logger.error("Calibration not found: %s", args.calibration)
        return 1

    camera_matrix, distortion = intrinsics_from_record(record)
    images = read_image_list(args.image_list)
    undistort_images(images, camera_matrix, distortion, record.image_size, args.output_dir)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s | %(levelname)-8s | %(name)s - %(message)s",
    )

    if args.command is None:
        parser.print_help()
        return 0

    try:
        if args.command == "calibrate":
            return run_calibrate(args)
        return run_undistort(args)
    except PlanarCalError as exc:
        logger.error("%s", exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
