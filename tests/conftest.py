"""
Pytest configuration and shared fixtures.
"""

import tempfile
from pathlib import Path

import cv2
import numpy as np
import pytest

from planarcal.types import BoardGeometry, SolverOutput


IMAGE_SIZE = (640, 480)


class KnownSolver:
    """Deterministic solver returning fixed parameters and recording its call."""

    def __init__(self, camera_matrix, distortion, rotations, translations):
        self.output = SolverOutput(
            camera_matrix=np.asarray(camera_matrix, dtype=np.float64),
            distortion=np.asarray(distortion, dtype=np.float64),
            rotations=tuple(np.asarray(r, dtype=np.float64) for r in rotations),
            translations=tuple(np.asarray(t, dtype=np.float64) for t in translations),
        )
        self.calls = []

    def calibrate(self, object_points, image_points, image_size, camera_matrix, distortion, flags):
        self.calls.append({
            "object_points": object_points,
            "image_points": image_points,
            "image_size": image_size,
            "camera_matrix": camera_matrix.copy(),
            "distortion": distortion.copy(),
            "flags": flags,
        })
        return self.output


class RaisingSolver:
    def calibrate(self, *args, **kwargs):
        raise ValueError("did not converge")


@pytest.fixture
def temp_dir():
    """Provide a temporary directory that's cleaned up after test."""
    with tempfile.TemporaryDirectory() as td:
        yield Path(td)


@pytest.fixture
def board():
    """4x5 inner corners, 2.5cm squares."""
    return BoardGeometry(columns=4, rows=5, square_size=0.025)


@pytest.fixture
def camera_matrix():
    """Typical camera intrinsics matrix for a 640x480 sensor."""
    return np.array([
        [800.0, 0.0, 320.0],
        [0.0, 800.0, 240.0],
        [0.0, 0.0, 1.0],
    ], dtype=np.float64)


@pytest.fixture
def zero_distortion():
    return np.zeros(8, dtype=np.float64)


@pytest.fixture
def poses():
    """Three tilted board poses about half a metre in front of the camera."""
    rotations = [
        np.array([0.35, -0.20, 0.05]),
        np.array([-0.30, 0.35, -0.10]),
        np.array([0.15, 0.40, 0.20]),
    ]
    translations = [
        np.array([-0.04, -0.05, 0.50]),
        np.array([-0.03, -0.06, 0.45]),
        np.array([-0.05, -0.04, 0.55]),
    ]
    return rotations, translations


@pytest.fixture
def synthetic_views(board, camera_matrix, zero_distortion, poses):
    """Noise-free projections of the board template for each pose."""
    rotations, translations = poses
    template = board.template_3d().astype(np.float64)
    views = []
    for rvec, tvec in zip(rotations, translations):
        projected, _ = cv2.projectPoints(template, rvec, tvec, camera_matrix, zero_distortion)
        views.append(projected.reshape(-1, 2).astype(np.float32))
    return views


@pytest.fixture
def correspondences(board, synthetic_views):
    from planarcal.calibration import CorrespondenceAccumulator

    accumulator = CorrespondenceAccumulator(board)
    for view in synthetic_views:
        accumulator.accept(view, image_size=IMAGE_SIZE)
    return accumulator.finalize()


@pytest.fixture
def known_solver(camera_matrix, zero_distortion, poses):
    """Solver that returns the ground-truth parameters."""
    rotations, translations = poses
    return KnownSolver(camera_matrix, zero_distortion, rotations, translations)


@pytest.fixture
def nan_solver(camera_matrix, zero_distortion, poses):
    """Solver whose camera matrix contains a NaN."""
    rotations, translations = poses
    matrix = camera_matrix.copy()
    matrix[0, 0] = np.nan
    return KnownSolver(matrix, zero_distortion, rotations, translations)


@pytest.fixture
def raising_solver():
    return RaisingSolver()


def render_chessboard(columns, rows, square_px=40, margin_px=40):
    """
    Grayscale image of a chessboard with columns x rows inner corners.

    Returns:
        (image, corner_origin) where corner_origin is the pixel coordinate of
        the first inner corner
    """
    squares_x, squares_y = columns + 1, rows + 1
    width = squares_x * square_px + 2 * margin_px
    height = squares_y * square_px + 2 * margin_px
    image = np.full((height, width), 255, dtype=np.uint8)
    for sy in range(squares_y):
        for sx in range(squares_x):
            if (sx + sy) % 2 == 0:
                y0 = margin_px + sy * square_px
                x0 = margin_px + sx * square_px
                image[y0:y0 + square_px, x0:x0 + square_px] = 0
    origin = margin_px + square_px - 0.5
    return image, origin


@pytest.fixture
def chessboard_image(board):
    """Fronto-parallel BGR chessboard image matching the board fixture."""
    image, _ = render_chessboard(board.columns, board.rows)
    return cv2.cvtColor(image, cv2.COLOR_GRAY2BGR)
