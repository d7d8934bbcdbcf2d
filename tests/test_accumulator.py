"""
Tests for planarcal.calibration.accumulator.
"""

import numpy as np
import pytest

from planarcal.calibration import CorrespondenceAccumulator
from planarcal.errors import (
    ConfigurationError,
    InsufficientDataError,
    StructuralMismatchError,
)
from planarcal.types import CorrespondenceSet


class TestAccept:
    def test_accepts_full_view(self, board, synthetic_views):
        accumulator = CorrespondenceAccumulator(board)
        accumulator.accept(synthetic_views[0], image_size=(640, 480))
        assert accumulator.view_count == 1
        assert accumulator.image_size == (640, 480)

    def test_accepts_opencv_corner_layout(self, board, synthetic_views):
        """findChessboardCorners returns (n, 1, 2)."""
        accumulator = CorrespondenceAccumulator(board)
        accumulator.accept(synthetic_views[0].reshape(-1, 1, 2))
        assert accumulator.view_count == 1

    def test_accepts_list_of_tuples(self, board):
        accumulator = CorrespondenceAccumulator(board)
        accumulator.accept([(float(i), float(i)) for i in range(board.point_count)])
        assert accumulator.view_count == 1

    @pytest.mark.parametrize("count", [0, 1, 19, 21])
    def test_rejects_wrong_length(self, board, count):
        accumulator = CorrespondenceAccumulator(board)
        view = np.zeros((count, 2), dtype=np.float32)
        with pytest.raises(StructuralMismatchError) as info:
            accumulator.accept(view)
        assert info.value.expected == 20
        assert info.value.actual == count
        assert accumulator.view_count == 0

    def test_rejects_wrong_dimension(self, board):
        accumulator = CorrespondenceAccumulator(board)
        with pytest.raises(StructuralMismatchError):
            accumulator.accept(np.zeros((20, 3)))
        with pytest.raises(StructuralMismatchError):
            accumulator.accept(np.zeros(40))
        assert accumulator.view_count == 0

    def test_rejects_ragged_view(self, board):
        accumulator = CorrespondenceAccumulator(board)
        view = [(1.0, 2.0)] * 19 + [(1.0,)]
        with pytest.raises(StructuralMismatchError) as info:
            accumulator.accept(view)
        assert info.value.expected == 20
        assert info.value.actual == 20
        assert accumulator.view_count == 0

    def test_rejects_non_numeric_view(self, board):
        accumulator = CorrespondenceAccumulator(board)
        with pytest.raises(StructuralMismatchError):
            accumulator.accept([("x", "y")] * 20)
        assert accumulator.view_count == 0

    def test_bad_view_does_not_disturb_others(self, board, synthetic_views):
        """A 19-point view is rejected; the rest remain accepted."""
        accumulator = CorrespondenceAccumulator(board)
        accumulator.accept(synthetic_views[0])
        with pytest.raises(StructuralMismatchError):
            accumulator.accept(synthetic_views[1][:19])
        accumulator.accept(synthetic_views[2])

        assert accumulator.view_count == 2
        result = accumulator.finalize(image_size=(640, 480))
        np.testing.assert_array_equal(result.image_points[0], synthetic_views[0])
        np.testing.assert_array_equal(result.image_points[1], synthetic_views[2])

    def test_stored_view_is_a_read_only_copy(self, board, synthetic_views):
        accumulator = CorrespondenceAccumulator(board)
        view = synthetic_views[0].copy()
        accumulator.accept(view)
        view[0, 0] = -1.0

        stored = accumulator.finalize(image_size=(640, 480)).image_points[0]
        assert stored[0, 0] != -1.0
        with pytest.raises(ValueError):
            stored[0, 0] = 5.0

    def test_last_image_size_wins(self, board, synthetic_views):
        accumulator = CorrespondenceAccumulator(board)
        accumulator.accept(synthetic_views[0], image_size=(640, 480))
        accumulator.accept(synthetic_views[1], image_size=(800, 600))
        accumulator.accept(synthetic_views[2])
        assert accumulator.image_size == (800, 600)


class TestFinalize:
    def test_empty_raises(self, board):
        accumulator = CorrespondenceAccumulator(board)
        with pytest.raises(InsufficientDataError):
            accumulator.finalize(image_size=(640, 480))

    def test_unknown_image_size_raises(self, board, synthetic_views):
        accumulator = CorrespondenceAccumulator(board)
        accumulator.accept(synthetic_views[0])
        with pytest.raises(ConfigurationError, match="Image size"):
            accumulator.finalize()

    def test_invalid_image_size_raises(self, board, synthetic_views):
        accumulator = CorrespondenceAccumulator(board)
        accumulator.accept(synthetic_views[0])
        with pytest.raises(ConfigurationError):
            accumulator.finalize(image_size=(0, 480))

    def test_pairs_every_view_with_template(self, board, correspondences, synthetic_views):
        assert isinstance(correspondences, CorrespondenceSet)
        assert correspondences.view_count == 3
        assert correspondences.point_count == 20
        assert correspondences.image_size == (640, 480)

        template = board.template_3d()
        for obj, img, expected in zip(
            correspondences.object_points,
            correspondences.image_points,
            synthetic_views,
        ):
            np.testing.assert_array_equal(obj, template)
            np.testing.assert_array_equal(img, expected)

    def test_template_shared_and_read_only(self, correspondences):
        first = correspondences.object_points[0]
        assert all(obj is first for obj in correspondences.object_points)
        with pytest.raises(ValueError):
            first[0, 0] = 1.0

    def test_explicit_image_size_overrides(self, board, synthetic_views):
        accumulator = CorrespondenceAccumulator(board)
        accumulator.accept(synthetic_views[0], image_size=(640, 480))
        result = accumulator.finalize(image_size=(1280, 720))
        assert result.image_size == (1280, 720)
