"""
Collection of accepted chessboard views ahead of calibration.

The accumulator is the only mutable stage of the pipeline. finalize() hands
back an immutable CorrespondenceSet; nothing downstream mutates the views.
"""

from __future__ import annotations

import logging

import numpy as np

from ..errors import ConfigurationError, InsufficientDataError, StructuralMismatchError
from ..types import BoardGeometry, CorrespondenceSet

logger = logging.getLogger(__name__)


class CorrespondenceAccumulator:
    """
    Collects one 2D corner set per view for a single board.

    Views must list every inner corner of the board in row-major order,
    as returned by cv2.findChessboardCorners.
    """

    def __init__(self, board: BoardGeometry):
        self.board = board
        self._views: list[np.ndarray] = []
        self._image_size: tuple[int, int] | None = None

    @property
    def view_count(self) -> int:
        return len(self._views)

    @property
    def image_size(self) -> tuple[int, int] | None:
        """(width, height) of the most recently accepted image."""
        return self._image_size

    def accept(self, view, image_size: tuple[int, int] | None = None) -> None:
        """
        Add one view.

        Args:
            view: (n, 2) or (n, 1, 2) image points
            image_size: Optional (width, height) of the source image.
                Last one seen wins.

        Raises:
            StructuralMismatchError: If the view does not have exactly one
                point per board corner. The view is not stored.
        """
        expected = self.board.point_count
        try:
            points = np.array(view, dtype=np.float32)
        except (TypeError, ValueError) as exc:
            raise StructuralMismatchError(
                f"View is not an (n, 2) point array: {exc}",
                expected=expected,
                actual=len(view) if hasattr(view, "__len__") else 0,
            ) from exc

        if points.ndim >= 2 and points.shape[-1] == 2:
            points = points.reshape(-1, 2)
            actual = len(points)
        else:
            actual = len(points) if points.ndim else 0
            points = None

        if points is None or actual != expected:
            raise StructuralMismatchError(
                f"View has {actual} points, board expects {expected}",
                expected=expected,
                actual=actual,
            )

        points.flags.writeable = False
        self._views.append(points)
        if image_size is not None:
            self._image_size = (int(image_size[0]), int(image_size[1]))
        logger.debug("Accepted view %d (%d points)", len(self._views), actual)

    def finalize(self, image_size: tuple[int, int] | None = None) -> CorrespondenceSet:
        """
        Pair every accepted view with the board template.

        Args:
            image_size: Optional (width, height) overriding the last one seen

        Returns:
            CorrespondenceSet in acceptance order

        Raises:
            InsufficientDataError: If no views were accepted
            ConfigurationError: If the image size is unknown
        """
        if not self._views:
            raise InsufficientDataError("No views accepted; nothing to calibrate")

        if image_size is None:
            image_size = self._image_size
        if image_size is None:
            raise ConfigurationError("Image size unknown; pass image_size")
        width, height = int(image_size[0]), int(image_size[1])
        if width <= 0 or height <= 0:
            raise ConfigurationError(f"Invalid image size: {width}x{height}")

        template = self.board.template_3d()
        template.flags.writeable = False

        return CorrespondenceSet(
            board=self.board,
            object_points=tuple(template for _ in self._views),
            image_points=tuple(self._views),
            image_size=(width, height),
        )
