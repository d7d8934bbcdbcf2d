"""
End-to-end calibration run: solve, score, persist on success.
"""

from __future__ import annotations

import logging
from pathlib import Path

from ..errors import SolverFailure
from ..serialization import record_from_result, save_record
from ..types import CalibrationConfiguration, CalibrationResult, CorrespondenceSet
from .solver import CalibrationSolver, solve_calibration

logger = logging.getLogger(__name__)


def run_and_save(
    correspondences: CorrespondenceSet,
    config: CalibrationConfiguration,
    output_path: Path,
    write_extrinsics: bool = False,
    write_points: bool = False,
    solver: CalibrationSolver | None = None,
) -> CalibrationResult:
    """
    Calibrate and write the parameter record.

    Nothing is written when the solver fails.

    Args:
        correspondences: Finalized views
        config: Solver options
        output_path: Destination record file
        write_extrinsics: Also persist per-view errors and poses
        write_points: Also persist the observed corners
        solver: Optional solver capability (defaults to OpenCV)

    Returns:
        CalibrationResult

    Raises:
        SolverFailure: If calibration failed
    """
    try:
        result = solve_calibration(correspondences, config, solver)
    except SolverFailure as exc:
        logger.error("Calibration failed: %s", exc)
        raise

    logger.info("Calibration succeeded. avg reprojection error = %.2f", result.average_error)

    record = record_from_result(
        result,
        correspondences,
        config,
        write_extrinsics=write_extrinsics,
        write_points=write_points,
    )
    save_record(record, Path(output_path))
    return result
