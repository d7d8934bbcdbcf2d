"""
Core data structures for planarcal.

Each stage of the pipeline returns its own frozen type, so the phase that
produced a value is visible from its type:

    BoardGeometry -> CorrespondenceAccumulator -> CorrespondenceSet
        -> SolverOutput -> CalibrationResult -> CalibrationRecord

Logic lives in the calibration modules - these are data containers only.
"""

from __future__ import annotations

from dataclasses import dataclass
from numbers import Integral, Real

import numpy as np

from .errors import ConfigurationError


def _is_count(value) -> bool:
    """Integer, but not bool."""
    return isinstance(value, Integral) and not isinstance(value, bool)


# ============================================================================
# Board Geometry
# ============================================================================


@dataclass(frozen=True)  # No slots - need properties
class BoardGeometry:
    """
    Known layout of a planar chessboard target.

    columns/rows count inner corners, square_size is in arbitrary units
    (whatever the translations should come out in).
    """

    columns: int
    rows: int
    square_size: float = 1.0

    def __post_init__(self):
        if not _is_count(self.columns) or self.columns <= 0:
            raise ConfigurationError(f"Invalid board width: {self.columns!r}")
        if not _is_count(self.rows) or self.rows <= 0:
            raise ConfigurationError(f"Invalid board height: {self.rows!r}")
        if (
            isinstance(self.square_size, bool)
            or not isinstance(self.square_size, Real)
            or not self.square_size > 0
        ):
            raise ConfigurationError(f"Invalid board square size: {self.square_size!r}")

    @property
    def point_count(self) -> int:
        """Number of inner corners on the board."""
        return self.columns * self.rows

    @property
    def pattern_size(self) -> tuple[int, int]:
        """(columns, rows) as expected by cv2.findChessboardCorners."""
        return (self.columns, self.rows)

    def template_3d(self) -> np.ndarray:
        """
        Board-frame corner positions in row-major order.

        Returns:
            (columns*rows, 3) float32 array, point (j*s, i*s, 0) for row i,
            column j
        """
        jj, ii = np.meshgrid(np.arange(self.columns), np.arange(self.rows))
        corners = np.zeros((self.point_count, 3), dtype=np.float32)
        corners[:, 0] = jj.ravel() * self.square_size
        corners[:, 1] = ii.ravel() * self.square_size
        return corners


# ============================================================================
# Calibration Configuration
# ============================================================================


@dataclass(frozen=True, slots=True)
class CalibrationConfiguration:
    """
    User-selectable solver options.

    Translated to OpenCV's native flag bits only inside the solver adapter.
    """

    fix_aspect_ratio: bool = False
    aspect_ratio: float = 1.0  # fx/fy, only used when fix_aspect_ratio is set
    zero_tangent_dist: bool = False
    fix_principal_point: bool = False
    use_intrinsic_guess: bool = False

    def __post_init__(self):
        if self.fix_aspect_ratio and not self.aspect_ratio > 0:
            raise ConfigurationError(f"Invalid aspect ratio: {self.aspect_ratio}")


# ============================================================================
# Correspondences
# ============================================================================


@dataclass(frozen=True)  # No slots - need properties
class CorrespondenceSet:
    """
    Finalized 3D-2D correspondences for every accepted view.

    Every entry of object_points is the same read-only board template;
    image_points[i] is the (n, 2) view observed in image i.
    """

    board: BoardGeometry
    object_points: tuple[np.ndarray, ...]
    image_points: tuple[np.ndarray, ...]
    image_size: tuple[int, int]  # (width, height)

    @property
    def view_count(self) -> int:
        return len(self.image_points)

    @property
    def point_count(self) -> int:
        """Points per view (constant across views)."""
        return self.board.point_count


# ============================================================================
# Solver Output and Results
# ============================================================================


@dataclass(frozen=True, slots=True)
class SolverOutput:
    """
    Raw parameters returned by a calibration solver, before validation.
    """

    camera_matrix: np.ndarray  # 3x3
    distortion: np.ndarray  # flat distortion vector, solver-defined length
    rotations: tuple[np.ndarray, ...]  # (3,) Rodrigues vector per view
    translations: tuple[np.ndarray, ...]  # (3,) translation per view


@dataclass(frozen=True)  # No slots - need properties
class CalibrationResult:
    """
    Validated calibration of one camera from one batch of views.
    """

    camera_matrix: np.ndarray  # 3x3
    distortion: np.ndarray  # (8,) k1, k2, p1, p2, k3, k4, k5, k6
    rotations: tuple[np.ndarray, ...]  # (3,) Rodrigues vector per view
    translations: tuple[np.ndarray, ...]  # (3,) per view
    per_view_errors: np.ndarray  # (n_views,)
    average_error: float
    flags: int  # effective OpenCV calibration flags
    image_size: tuple[int, int]  # (width, height)

    @property
    def view_count(self) -> int:
        return len(self.rotations)

    @property
    def focal_length(self) -> tuple[float, float]:
        return float(self.camera_matrix[0, 0]), float(self.camera_matrix[1, 1])

    @property
    def principal_point(self) -> tuple[float, float]:
        return float(self.camera_matrix[0, 2]), float(self.camera_matrix[1, 2])


@dataclass(frozen=True, slots=True)
class CalibrationRecord:
    """
    Persisted form of a calibration run.

    Holds plain Python values only so two records compare with ==.
    Optional fields are None when the caller did not ask to persist them.
    """

    calibration_time: str
    image_size: tuple[int, int]  # (width, height)
    board_size: tuple[int, int]  # (columns, rows)
    square_size: float
    flags: int
    flags_description: str
    camera_matrix: tuple[tuple[float, ...], ...]  # 3 rows of 3
    distortion: tuple[float, ...]  # 8 coefficients
    average_error: float
    aspect_ratio: float | None = None
    frame_count: int | None = None
    per_view_errors: tuple[float, ...] | None = None
    extrinsics: tuple[tuple[float, ...], ...] | None = None  # rvec + tvec per view
    image_points: tuple[tuple[tuple[float, float], ...], ...] | None = None


# ============================================================================
# Pure functions for computed properties
# ============================================================================


def extrinsics_to_vector(rotation: np.ndarray, translation: np.ndarray) -> np.ndarray:
    """
    Pack one view's pose as a 6-element vector.
    [rodrigues_x, rodrigues_y, rodrigues_z, tx, ty, tz]
    """
    return np.hstack([
        np.asarray(rotation, dtype=np.float64).ravel(),
        np.asarray(translation, dtype=np.float64).ravel(),
    ])


def extrinsics_matrix(result: CalibrationResult) -> np.ndarray:
    """
    Stack per-view poses into an (n_views, 6) array.
    """
    if result.view_count == 0:
        return np.zeros((0, 6), dtype=np.float64)
    rows = [
        extrinsics_to_vector(rvec, tvec)
        for rvec, tvec in zip(result.rotations, result.translations)
    ]
    return np.vstack(rows)


# ============================================================================
# Run Settings
# ============================================================================


@dataclass(frozen=True, slots=True)
class CalibrationSettings:
    """
    Everything needed for one calibration run.
    Loaded from a TOML settings file and/or command-line flags.
    """

    board: BoardGeometry
    calibration: CalibrationConfiguration = CalibrationConfiguration()
    output: str = "out_camera_data.toml"
    write_extrinsics: bool = False
    write_points: bool = False
