"""
Reprojection error of a solved calibration.

Pure functions - no state.
"""

from __future__ import annotations

from typing import Sequence

import cv2
import numpy as np

from ..types import CorrespondenceSet


def project_view(
    object_points: np.ndarray,
    rotation: np.ndarray,
    translation: np.ndarray,
    camera_matrix: np.ndarray,
    distortion: np.ndarray,
) -> np.ndarray:
    """
    Project board points into the image through one view's pose.

    Returns:
        (n, 2) float64 predicted image points
    """
    projected, _ = cv2.projectPoints(
        np.asarray(object_points, dtype=np.float64).reshape(-1, 1, 3),
        np.asarray(rotation, dtype=np.float64).reshape(3, 1),
        np.asarray(translation, dtype=np.float64).reshape(3, 1),
        np.asarray(camera_matrix, dtype=np.float64),
        np.asarray(distortion, dtype=np.float64).ravel(),
    )
    return projected.reshape(-1, 2)


def evaluate_reprojection(
    correspondences: CorrespondenceSet,
    camera_matrix: np.ndarray,
    distortion: np.ndarray,
    rotations: Sequence[np.ndarray],
    translations: Sequence[np.ndarray],
) -> tuple[np.ndarray, float]:
    """
    Compute per-view and aggregate reprojection error.

    For view i with n points, err_i is the L2 norm of the whole flattened
    residual (both axes). The per-view value is sqrt(err_i**2 / n) - divided
    by the point count, not the coordinate count - and the aggregate is
    sqrt(sum(err_i**2) / sum(n)).

    Args:
        correspondences: Views the parameters were solved from
        camera_matrix: 3x3 intrinsics
        distortion: Distortion coefficients
        rotations: Rodrigues vector per view
        translations: Translation per view

    Returns:
        (per_view_errors, average_error)
    """
    per_view = np.zeros(correspondences.view_count, dtype=np.float64)
    total_sq = 0.0
    total_points = 0

    for i, (obj, img) in enumerate(
        zip(correspondences.object_points, correspondences.image_points)
    ):
        predicted = project_view(obj, rotations[i], translations[i], camera_matrix, distortion)
        residual = predicted - np.asarray(img, dtype=np.float64).reshape(-1, 2)
        err = float(np.linalg.norm(residual.ravel()))
        n = len(obj)
        per_view[i] = np.sqrt(err * err / n)
        total_sq += err * err
        total_points += n

    if total_points == 0:
        return per_view, 0.0

    return per_view, float(np.sqrt(total_sq / total_points))


def average_from_per_view(
    per_view_errors: Sequence[float],
    point_counts: Sequence[int],
) -> float:
    """
    Re-derive the aggregate error from per-view errors and point counts.
    """
    errors = np.asarray(per_view_errors, dtype=np.float64)
    counts = np.asarray(point_counts, dtype=np.float64)
    total = counts.sum()
    if total == 0:
        return 0.0
    return float(np.sqrt(np.sum(counts * errors ** 2) / total))
