"""
Chessboard corner detection and image-list handling.

Thin wrappers over OpenCV that feed a CorrespondenceAccumulator. Views
that fail detection or have the wrong shape are skipped, not fatal.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterable

import cv2
import numpy as np

from ..errors import ConfigurationError, ImageReadError, StructuralMismatchError
from ..types import BoardGeometry
from .accumulator import CorrespondenceAccumulator

logger = logging.getLogger(__name__)

CHESSBOARD_FLAGS = (
    cv2.CALIB_CB_ADAPTIVE_THRESH | cv2.CALIB_CB_FAST_CHECK | cv2.CALIB_CB_NORMALIZE_IMAGE
)
SUBPIX_CRITERIA = (cv2.TERM_CRITERIA_EPS + cv2.TERM_CRITERIA_COUNT, 30, 0.1)
SUBPIX_WINDOW = (11, 11)

LIST_SUFFIXES = {".xml", ".yml", ".yaml", ".json"}


# ============================================================================
# Chessboard Detection
# ============================================================================


def detect_chessboard(frame: np.ndarray, board: BoardGeometry) -> np.ndarray | None:
    """
    Find the inner corners of a chessboard in one image.

    Args:
        frame: BGR (h, w, 3) or grayscale (h, w) image
        board: Board to look for

    Returns:
        (n, 2) float32 corners in row-major board order, or None if the
        full board was not found
    """
    if frame.ndim == 2:
        gray = frame
    else:
        gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)

    found, corners = cv2.findChessboardCorners(gray, board.pattern_size, flags=CHESSBOARD_FLAGS)
    if not found or corners is None:
        return None

    # Sub-pixel refinement
    try:
        corners = cv2.cornerSubPix(gray, corners, SUBPIX_WINDOW, (-1, -1), SUBPIX_CRITERIA)
    except cv2.error as exc:
        logger.debug("Sub-pixel refinement failed, using raw corners: %s", exc)

    return corners.reshape(-1, 2).astype(np.float32)


def collect_views(
    image_paths: Iterable[Path],
    board: BoardGeometry,
    accumulator: CorrespondenceAccumulator | None = None,
) -> CorrespondenceAccumulator:
    """
    Detect the board in each image and accept every full detection.

    Args:
        image_paths: Images to scan, in order
        board: Board to look for
        accumulator: Optional accumulator to extend

    Returns:
        The accumulator holding all accepted views

    Raises:
        ImageReadError: If an image cannot be decoded
    """
    if accumulator is None:
        accumulator = CorrespondenceAccumulator(board)

    paths = [Path(p) for p in image_paths]
    for path in paths:
        image = cv2.imread(str(path), cv2.IMREAD_COLOR)
        if image is None or image.size == 0:
            raise ImageReadError(f"Empty image: {path}", path=str(path))

        height, width = image.shape[:2]
        corners = detect_chessboard(image, board)
        if corners is None:
            logger.info("Chessboard corners not found in image: %s", path)
            continue

        try:
            accumulator.accept(corners, image_size=(width, height))
        except StructuralMismatchError as exc:
            logger.warning("Rejected view from %s: %s", path, exc)
            continue

        logger.info("%d/%d views accepted (%s)", accumulator.view_count, len(paths), path.name)

    return accumulator


# ============================================================================
# Image Lists
# ============================================================================


def _read_storage_list(path: Path) -> list[str]:
    """First top-level sequence of an OpenCV XML/YAML/JSON file."""
    fs = cv2.FileStorage(str(path), cv2.FILE_STORAGE_READ)
    try:
        if not fs.isOpened():
            raise ConfigurationError(f"Could not open image list: {path}")
        node = fs.getFirstTopLevelNode()
        if node is None or not node.isSeq():
            raise ConfigurationError(f"Image list {path} has no top-level sequence")
        return [node.at(i).string() for i in range(node.size())]
    finally:
        fs.release()


def _read_text_list(path: Path) -> list[str]:
    """One path per line; blank lines and # comments are skipped."""
    names = []
    for line in path.read_text().splitlines():
        line = line.strip()
        if not line or line.startswith("#"):
            continue
        names.append(line)
    return names


def read_image_list(path: Path) -> list[Path]:
    """
    Read a list of calibration images.

    Accepts the OpenCV storage format produced by imagelist_creator
    (XML/YAML with a single string sequence) or a plain text file with one
    path per line. Relative paths resolve against the list's directory.

    Raises:
        ConfigurationError: If the list is missing, unreadable or empty
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Image list not found: {path}")

    if path.suffix.lower() in LIST_SUFFIXES:
        names = _read_storage_list(path)
    else:
        names = _read_text_list(path)

    if not names:
        raise ConfigurationError(f"Image list is empty: {path}")

    images = []
    for name in names:
        image_path = Path(name)
        if not image_path.is_absolute():
            image_path = path.parent / image_path
        images.append(image_path)
    return images
