"""
Undistortion of images and points with solved intrinsics.

Pure functions operating on camera matrix + 8-term distortion arrays.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import cv2
import numpy as np

from .errors import ImageReadError

logger = logging.getLogger(__name__)


def undistort_points(
    points: np.ndarray,
    camera_matrix: np.ndarray,
    distortion: np.ndarray,
    iterations: int = 5,
) -> np.ndarray:
    """
    Undistort 2D points using camera intrinsics.

    Fixed-point inversion of the rational + tangential model.
    Based on: https://yangyushi.github.io/code/2020/03/04/opencv-undistort.html

    Args:
        points: (n, 2) array of distorted image coordinates
        camera_matrix: 3x3 intrinsics
        distortion: (8,) k1, k2, p1, p2, k3, k4, k5, k6
        iterations: Number of refinement iterations

    Returns:
        (n, 2) array of undistorted image coordinates
    """
    if points.size == 0:
        return points.copy()

    coeffs = np.zeros(8, dtype=np.float64)
    flat = np.asarray(distortion, dtype=np.float64).ravel()[:8]
    coeffs[: flat.size] = flat
    k1, k2, p1, p2, k3, k4, k5, k6 = coeffs

    fx, fy = camera_matrix[0, 0], camera_matrix[1, 1]
    cx, cy = camera_matrix[0, 2], camera_matrix[1, 2]

    x = (points[:, 0] - cx) / fx
    y = (points[:, 1] - cy) / fy
    x0, y0 = x.copy(), y.copy()

    for _ in range(iterations):
        r2 = x**2 + y**2
        k_inv = (1 + k4 * r2 + k5 * r2**2 + k6 * r2**3) / (1 + k1 * r2 + k2 * r2**2 + k3 * r2**3)
        delta_x = 2 * p1 * x * y + p2 * (r2 + 2 * x**2)
        delta_y = p1 * (r2 + 2 * y**2) + 2 * p2 * x * y
        x = (x0 - delta_x) * k_inv
        y = (y0 - delta_y) * k_inv

    return np.column_stack([x * fx + cx, y * fy + cy])


def build_undistort_maps(
    camera_matrix: np.ndarray,
    distortion: np.ndarray,
    image_size: tuple[int, int],
    alpha: float = 1.0,
) -> tuple[np.ndarray, np.ndarray]:
    """
    Remap tables for undistorting whole images.

    alpha=1 keeps every source pixel in view (black borders allowed).

    Returns:
        (map1, map2) for cv2.remap
    """
    new_matrix, _ = cv2.getOptimalNewCameraMatrix(
        camera_matrix, distortion, image_size, alpha, image_size, centerPrincipalPoint=False
    )
    return cv2.initUndistortRectifyMap(
        camera_matrix, distortion, None, new_matrix, image_size, cv2.CV_16SC2
    )


def undistort_image(
    image: np.ndarray,
    camera_matrix: np.ndarray,
    distortion: np.ndarray,
    maps: tuple[np.ndarray, np.ndarray] | None = None,
) -> np.ndarray:
    """
    Undistort a single image.

    Args:
        image: Source image
        camera_matrix: 3x3 intrinsics
        distortion: Distortion coefficients
        maps: Optional prebuilt maps from build_undistort_maps()

    Returns:
        Undistorted image, same size as the input
    """
    if maps is None:
        height, width = image.shape[:2]
        maps = build_undistort_maps(camera_matrix, distortion, (width, height))
    map1, map2 = maps
    return cv2.remap(image, map1, map2, cv2.INTER_LINEAR)


def undistort_images(
    image_paths: Iterable[Path],
    camera_matrix: np.ndarray,
    distortion: np.ndarray,
    image_size: tuple[int, int],
    output_dir: Path,
) -> list[Path]:
    """
    Write undistorted copies of images into output_dir.

    Returns:
        Paths written, in input order

    Raises:
        ImageReadError: If an image cannot be decoded
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    maps = build_undistort_maps(camera_matrix, distortion, image_size)

    written = []
    for path in image_paths:
        path = Path(path)
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None or image.size == 0:
            raise ImageReadError(f"Empty image: {path}", path=str(path))
        if (image.shape[1], image.shape[0]) != tuple(image_size):
            logger.warning(
                "%s is %dx%d, calibration was %dx%d",
                path, image.shape[1], image.shape[0], image_size[0], image_size[1],
            )
            rectified = undistort_image(image, camera_matrix, distortion)
        else:
            rectified = undistort_image(image, camera_matrix, distortion, maps)

        out_path = output_dir / path.name
        cv2.imwrite(str(out_path), rectified)
        written.append(out_path)

    logger.info("Wrote %d undistorted images to %s", len(written), output_dir)
    return written
