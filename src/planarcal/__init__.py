# planarcal - single-camera calibration from planar chessboard views

__version__ = "0.1.0"

# Core types
from planarcal.types import (
    BoardGeometry,
    CalibrationConfiguration,
    CorrespondenceSet,
    SolverOutput,
    CalibrationResult,
    CalibrationRecord,
    CalibrationSettings,
)

# Errors
from planarcal.errors import (
    PlanarCalError,
    ConfigurationError,
    StructuralMismatchError,
    InsufficientDataError,
    SolverFailure,
    ParseError,
    ImageReadError,
)

# Calibration
from planarcal.calibration import (
    CorrespondenceAccumulator,
    CalibrationSolver,
    OpenCVSolver,
    solve_calibration,
    evaluate_reprojection,
    run_and_save,
)

# Configuration
from planarcal.config import (
    load_settings,
    save_settings,
)

# Persistence
from planarcal.serialization import (
    record_from_result,
    write_record,
    read_record,
    save_record,
    load_record,
)

__all__ = [
    # Core types
    "BoardGeometry",
    "CalibrationConfiguration",
    "CorrespondenceSet",
    "SolverOutput",
    "CalibrationResult",
    "CalibrationRecord",
    "CalibrationSettings",
    # Errors
    "PlanarCalError",
    "ConfigurationError",
    "StructuralMismatchError",
    "InsufficientDataError",
    "SolverFailure",
    "ParseError",
    "ImageReadError",
    # Calibration
    "CorrespondenceAccumulator",
    "CalibrationSolver",
    "OpenCVSolver",
    "solve_calibration",
    "evaluate_reprojection",
    "run_and_save",
    # Configuration
    "load_settings",
    "save_settings",
    # Persistence
    "record_from_result",
    "write_record",
    "read_record",
    "save_record",
    "load_record",
]
