"""
Calibration module for planarcal.

Every stage returns a new immutable value; only the accumulator holds
state. No threading - the caller runs stages in order.
"""

from .accumulator import CorrespondenceAccumulator

from .solver import (
    CalibrationSolver,
    OpenCVSolver,
    build_solver_flags,
    describe_flags,
    initial_camera_matrix,
    solve_calibration,
    validate_solver_output,
)

from .reprojection import (
    average_from_per_view,
    evaluate_reprojection,
    project_view,
)

from .detection import (
    collect_views,
    detect_chessboard,
    read_image_list,
)

from .pipeline import run_and_save

__all__ = [
    # Accumulation
    "CorrespondenceAccumulator",
    # Solver
    "CalibrationSolver",
    "OpenCVSolver",
    "build_solver_flags",
    "describe_flags",
    "initial_camera_matrix",
    "solve_calibration",
    "validate_solver_output",
    # Reprojection
    "average_from_per_view",
    "evaluate_reprojection",
    "project_view",
    # Detection
    "collect_views",
    "detect_chessboard",
    "read_image_list",
    # Pipeline
    "run_and_save",
]
