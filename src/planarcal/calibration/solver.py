"""
Single-camera calibration solve.

The nonlinear solver is a capability behind the CalibrationSolver protocol;
OpenCVSolver wraps cv2.calibrateCamera. solve_calibration() translates the
configuration into solver flags, calls the solver exactly once, validates
what comes back and scores it.
"""

from __future__ import annotations

import logging
from typing import Protocol, Sequence

import cv2
import numpy as np

from ..errors import SolverFailure
from ..types import (
    CalibrationConfiguration,
    CalibrationResult,
    CorrespondenceSet,
    SolverOutput,
)
from .reprojection import evaluate_reprojection

logger = logging.getLogger(__name__)


# ============================================================================
# Flags
# ============================================================================

DISTORTION_COUNT = 8  # k1, k2, p1, p2, k3, k4, k5, k6

# k4 and k5 are never refined; their slots in the 8-term vector
FIXED_DISTORTION_FLAGS = cv2.CALIB_FIX_K4 | cv2.CALIB_FIX_K5
FIXED_DISTORTION_SLOTS = (5, 6)

# Largest magnitude accepted for any camera matrix or distortion entry
MAX_PARAMETER_MAGNITUDE = 1e12

# Order matters: it is the order of the description string
FLAG_NAMES = (
    (cv2.CALIB_USE_INTRINSIC_GUESS, "use_intrinsic_guess"),
    (cv2.CALIB_FIX_ASPECT_RATIO, "fix_aspectRatio"),
    (cv2.CALIB_FIX_PRINCIPAL_POINT, "fix_principal_point"),
    (cv2.CALIB_ZERO_TANGENT_DIST, "zero_tangent_dist"),
)


def build_solver_flags(config: CalibrationConfiguration) -> int:
    """
    Translate a configuration into cv2.calibrateCamera flags.

    The k4/k5 fix is always added.
    """
    flags = 0
    if config.use_intrinsic_guess:
        flags |= cv2.CALIB_USE_INTRINSIC_GUESS
    if config.fix_aspect_ratio:
        flags |= cv2.CALIB_FIX_ASPECT_RATIO
    if config.fix_principal_point:
        flags |= cv2.CALIB_FIX_PRINCIPAL_POINT
    if config.zero_tangent_dist:
        flags |= cv2.CALIB_ZERO_TANGENT_DIST
    return flags | FIXED_DISTORTION_FLAGS


def describe_flags(flags: int) -> str:
    """
    Human-readable summary of the user-selectable flags.

    e.g. "flags: +fix_aspectRatio+zero_tangent_dist"
    """
    names = "".join(f"+{name}" for bit, name in FLAG_NAMES if flags & bit)
    return f"flags: {names}"


def initial_camera_matrix(config: CalibrationConfiguration) -> np.ndarray:
    """
    Starting camera matrix handed to the solver.

    Identity, with fx preset to the aspect ratio when the ratio is held fixed.
    """
    matrix = np.eye(3, dtype=np.float64)
    if config.fix_aspect_ratio:
        matrix[0, 0] = config.aspect_ratio
    return matrix


# ============================================================================
# Solver Capability
# ============================================================================


class CalibrationSolver(Protocol):
    """Anything that can run a batch intrinsic calibration."""

    def calibrate(
        self,
        object_points: Sequence[np.ndarray],
        image_points: Sequence[np.ndarray],
        image_size: tuple[int, int],
        camera_matrix: np.ndarray,
        distortion: np.ndarray,
        flags: int,
    ) -> SolverOutput:
        ...


class OpenCVSolver:
    """CalibrationSolver backed by cv2.calibrateCamera."""

    def calibrate(
        self,
        object_points: Sequence[np.ndarray],
        image_points: Sequence[np.ndarray],
        image_size: tuple[int, int],
        camera_matrix: np.ndarray,
        distortion: np.ndarray,
        flags: int,
    ) -> SolverOutput:
        obj = [np.array(o, dtype=np.float32).reshape(-1, 1, 3) for o in object_points]
        img = [np.array(p, dtype=np.float32).reshape(-1, 1, 2) for p in image_points]

        rms, matrix, dist, rvecs, tvecs = cv2.calibrateCamera(
            obj,
            img,
            (int(image_size[0]), int(image_size[1])),
            camera_matrix.copy(),
            distortion.copy(),
            flags=flags,
        )
        logger.info("RMS error reported by calibrateCamera: %g", rms)

        return SolverOutput(
            camera_matrix=np.asarray(matrix, dtype=np.float64),
            distortion=np.asarray(dist, dtype=np.float64).ravel(),
            rotations=tuple(np.asarray(r, dtype=np.float64).ravel() for r in rvecs),
            translations=tuple(np.asarray(t, dtype=np.float64).ravel() for t in tvecs),
        )


# ============================================================================
# Validation
# ============================================================================


def check_range(values: np.ndarray, limit: float = MAX_PARAMETER_MAGNITUDE) -> bool:
    """True if every entry is finite and within +/- limit."""
    values = np.asarray(values, dtype=np.float64)
    return bool(np.all(np.isfinite(values)) and np.all(np.abs(values) <= limit))


def _normalize_distortion(distortion: np.ndarray) -> np.ndarray:
    """
    Pad or trim a solver distortion vector to 8 terms, zeroing k4/k5.
    """
    flat = np.asarray(distortion, dtype=np.float64).ravel()
    if flat.size > DISTORTION_COUNT and np.any(flat[DISTORTION_COUNT:] != 0):
        raise SolverFailure(
            f"Solver returned {flat.size} distortion terms; "
            f"only {DISTORTION_COUNT} are supported",
            distortion=flat,
        )

    out = np.zeros(DISTORTION_COUNT, dtype=np.float64)
    count = min(DISTORTION_COUNT, flat.size)
    out[:count] = flat[:count]
    for slot in FIXED_DISTORTION_SLOTS:
        out[slot] = 0.0
    return out


def validate_solver_output(output: SolverOutput, view_count: int) -> SolverOutput:
    """
    Reject non-finite or implausible solver output.

    Returns:
        SolverOutput with an 8-term distortion vector

    Raises:
        SolverFailure: If any parameter is out of range or the pose count
            does not match the view count
    """
    matrix = np.asarray(output.camera_matrix, dtype=np.float64)
    if matrix.shape != (3, 3):
        raise SolverFailure(
            f"Camera matrix has shape {matrix.shape}, expected (3, 3)",
            camera_matrix=matrix,
            distortion=output.distortion,
        )
    if not check_range(matrix) or not check_range(output.distortion):
        raise SolverFailure(
            "Solver returned non-finite or out-of-range parameters",
            camera_matrix=matrix,
            distortion=output.distortion,
        )
    if len(output.rotations) != view_count or len(output.translations) != view_count:
        raise SolverFailure(
            f"Solver returned {len(output.rotations)} poses for {view_count} views",
            camera_matrix=matrix,
            distortion=output.distortion,
        )

    rotations = tuple(np.asarray(r, dtype=np.float64).ravel() for r in output.rotations)
    translations = tuple(np.asarray(t, dtype=np.float64).ravel() for t in output.translations)
    if any(v.size != 3 for v in rotations + translations):
        raise SolverFailure(
            "Solver returned a pose that is not a 3-vector",
            camera_matrix=matrix,
            distortion=output.distortion,
        )

    return SolverOutput(
        camera_matrix=matrix,
        distortion=_normalize_distortion(output.distortion),
        rotations=rotations,
        translations=translations,
    )


# ============================================================================
# Calibration
# ============================================================================


def solve_calibration(
    correspondences: CorrespondenceSet,
    config: CalibrationConfiguration | None = None,
    solver: CalibrationSolver | None = None,
) -> CalibrationResult:
    """
    Calibrate a camera from finalized correspondences.

    One solver call; no retries and no dropping of views.

    Args:
        correspondences: Output of CorrespondenceAccumulator.finalize()
        config: Solver options (defaults to everything free)
        solver: Solver capability (defaults to OpenCVSolver)

    Returns:
        CalibrationResult with per-view and average reprojection error

    Raises:
        SolverFailure: If the solver raises or returns invalid parameters
    """
    if config is None:
        config = CalibrationConfiguration()
    if solver is None:
        solver = OpenCVSolver()

    flags = build_solver_flags(config)
    logger.info(
        "Calibrating from %d views of a %dx%d board (%s)",
        correspondences.view_count,
        correspondences.board.columns,
        correspondences.board.rows,
        describe_flags(flags),
    )

    try:
        output = solver.calibrate(
            correspondences.object_points,
            correspondences.image_points,
            correspondences.image_size,
            initial_camera_matrix(config),
            np.zeros((DISTORTION_COUNT, 1), dtype=np.float64),
            flags,
        )
    except (cv2.error, ValueError, np.linalg.LinAlgError) as exc:
        raise SolverFailure(f"Solver raised: {exc}") from exc

    output = validate_solver_output(output, correspondences.view_count)

    per_view, average = evaluate_reprojection(
        correspondences,
        output.camera_matrix,
        output.distortion,
        output.rotations,
        output.translations,
    )

    return CalibrationResult(
        camera_matrix=output.camera_matrix,
        distortion=output.distortion,
        rotations=output.rotations,
        translations=output.translations,
        per_view_errors=per_view,
        average_error=average,
        flags=flags,
        image_size=correspondences.image_size,
    )
