"""
Persisted calibration records.

Records are written as TOML with self-describing field names. Optional
fields (per-view errors, extrinsics, image points) are simply left out
when not requested; a record without them is still complete.
"""

from __future__ import annotations

import logging
from datetime import datetime
from numbers import Real
from pathlib import Path

import numpy as np
import rtoml

from .calibration.solver import describe_flags
from .errors import ParseError
from .types import (
    CalibrationConfiguration,
    CalibrationRecord,
    CalibrationResult,
    CorrespondenceSet,
    extrinsics_matrix,
)

logger = logging.getLogger(__name__)


# ============================================================================
# Building Records
# ============================================================================


def record_from_result(
    result: CalibrationResult,
    correspondences: CorrespondenceSet,
    config: CalibrationConfiguration,
    write_extrinsics: bool = False,
    write_points: bool = False,
    timestamp: str | None = None,
) -> CalibrationRecord:
    """
    Build the persisted record for a successful calibration.

    Args:
        result: Validated calibration
        correspondences: Views the result was solved from
        config: Configuration the solver ran with
        write_extrinsics: Include per-view errors and poses
        write_points: Include the observed image points
        timestamp: Override for calibration_time (defaults to now)

    Returns:
        CalibrationRecord
    """
    if timestamp is None:
        timestamp = datetime.now().strftime("%c")

    per_view_errors = None
    extrinsics = None
    if write_extrinsics:
        per_view_errors = tuple(float(e) for e in result.per_view_errors)
        extrinsics = tuple(
            tuple(float(v) for v in row) for row in extrinsics_matrix(result)
        )

    image_points = None
    if write_points:
        image_points = tuple(
            tuple((float(x), float(y)) for x, y in view)
            for view in correspondences.image_points
        )

    frame_count = None
    if write_extrinsics or write_points:
        frame_count = correspondences.view_count

    return CalibrationRecord(
        calibration_time=timestamp,
        image_size=(int(result.image_size[0]), int(result.image_size[1])),
        board_size=(correspondences.board.columns, correspondences.board.rows),
        square_size=float(correspondences.board.square_size),
        flags=int(result.flags),
        flags_description=describe_flags(result.flags),
        camera_matrix=tuple(
            tuple(float(v) for v in row) for row in np.asarray(result.camera_matrix)
        ),
        distortion=tuple(float(v) for v in np.asarray(result.distortion).ravel()),
        average_error=float(result.average_error),
        aspect_ratio=float(config.aspect_ratio) if config.fix_aspect_ratio else None,
        frame_count=frame_count,
        per_view_errors=per_view_errors,
        extrinsics=extrinsics,
        image_points=image_points,
    )


def intrinsics_from_record(record: CalibrationRecord) -> tuple[np.ndarray, np.ndarray]:
    """
    Camera matrix and distortion of a record as numpy arrays.
    """
    return (
        np.array(record.camera_matrix, dtype=np.float64),
        np.array(record.distortion, dtype=np.float64),
    )


# ============================================================================
# Writing
# ============================================================================


def write_record(record: CalibrationRecord) -> bytes:
    """
    Serialize a record to UTF-8 TOML.

    Key order is fixed, so equal records give identical bytes.
    """
    data = {"calibration_time": record.calibration_time}

    if record.frame_count is not None:
        data["nframes"] = record.frame_count

    data["image_width"] = record.image_size[0]
    data["image_height"] = record.image_size[1]
    data["board_width"] = record.board_size[0]
    data["board_height"] = record.board_size[1]
    data["square_size"] = float(record.square_size)

    if record.aspect_ratio is not None:
        data["aspectRatio"] = float(record.aspect_ratio)

    data["flags"] = record.flags
    data["flags_description"] = record.flags_description
    data["camera_matrix"] = [[float(v) for v in row] for row in record.camera_matrix]
    data["distortion_coefficients"] = [float(v) for v in record.distortion]
    data["avg_reprojection_error"] = float(record.average_error)

    if record.per_view_errors is not None:
        data["per_view_reprojection_errors"] = [float(e) for e in record.per_view_errors]

    if record.extrinsics is not None:
        data["extrinsic_parameters"] = [
            [float(v) for v in row] for row in record.extrinsics
        ]

    if record.image_points is not None:
        data["image_points"] = [
            [[float(x), float(y)] for x, y in view] for view in record.image_points
        ]

    return rtoml.dumps(data).encode("utf-8")


def save_record(record: CalibrationRecord, path: Path) -> None:
    """
    Write a record to disk.

    Args:
        record: CalibrationRecord
        path: Destination .toml file
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_bytes(write_record(record))
    logger.info("Saved calibration to %s", path)


# ============================================================================
# Reading
# ============================================================================


def _field(data: dict, key: str):
    if key not in data:
        raise ParseError(f"Missing field: {key}")
    return data[key]


def _as_int(value, key: str) -> int:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ParseError(f"Field {key} must be an integer, got {value!r}")
    return value


def _as_float(value, key: str) -> float:
    if isinstance(value, bool) or not isinstance(value, Real):
        raise ParseError(f"Field {key} must be a number, got {value!r}")
    return float(value)


def _as_str(value, key: str) -> str:
    if not isinstance(value, str):
        raise ParseError(f"Field {key} must be a string, got {value!r}")
    return value


def _as_vector(value, key: str, length: int | None = None) -> tuple[float, ...]:
    if not isinstance(value, list):
        raise ParseError(f"Field {key} must be an array")
    if length is not None and len(value) != length:
        raise ParseError(f"Field {key} must have {length} entries, got {len(value)}")
    return tuple(_as_float(v, key) for v in value)


def _as_matrix(value, key: str, columns: int, rows: int | None = None) -> tuple[tuple[float, ...], ...]:
    if not isinstance(value, list):
        raise ParseError(f"Field {key} must be an array of rows")
    if rows is not None and len(value) != rows:
        raise ParseError(f"Field {key} must have {rows} rows, got {len(value)}")
    return tuple(_as_vector(row, key, columns) for row in value)


def _as_points(value, key: str) -> tuple[tuple[tuple[float, float], ...], ...]:
    if not isinstance(value, list):
        raise ParseError(f"Field {key} must be an array of views")
    views = tuple(_as_matrix(view, key, 2) for view in value)
    if len({len(view) for view in views}) > 1:
        raise ParseError(f"Field {key} views have differing point counts")
    return views


def read_record(data: bytes) -> CalibrationRecord:
    """
    Parse a record produced by write_record().

    Args:
        data: UTF-8 TOML bytes

    Returns:
        CalibrationRecord

    Raises:
        ParseError: If the data is not valid TOML or a field is missing or
            malformed. No partial record is returned.
    """
    try:
        text = data.decode("utf-8") if isinstance(data, (bytes, bytearray)) else data
        raw = rtoml.loads(text)
    except (UnicodeDecodeError, rtoml.TomlParsingError) as exc:
        raise ParseError(f"Not a calibration record: {exc}") from exc

    if not isinstance(raw, dict):
        raise ParseError("Not a calibration record")

    frame_count = None
    if "nframes" in raw:
        frame_count = _as_int(raw["nframes"], "nframes")

    aspect_ratio = None
    if "aspectRatio" in raw:
        aspect_ratio = _as_float(raw["aspectRatio"], "aspectRatio")

    per_view_errors = None
    if "per_view_reprojection_errors" in raw:
        per_view_errors = _as_vector(
            raw["per_view_reprojection_errors"], "per_view_reprojection_errors"
        )

    extrinsics = None
    if "extrinsic_parameters" in raw:
        extrinsics = _as_matrix(raw["extrinsic_parameters"], "extrinsic_parameters", 6)

    image_points = None
    if "image_points" in raw:
        image_points = _as_points(raw["image_points"], "image_points")

    return CalibrationRecord(
        calibration_time=_as_str(_field(raw, "calibration_time"), "calibration_time"),
        image_size=(
            _as_int(_field(raw, "image_width"), "image_width"),
            _as_int(_field(raw, "image_height"), "image_height"),
        ),
        board_size=(
            _as_int(_field(raw, "board_width"), "board_width"),
            _as_int(_field(raw, "board_height"), "board_height"),
        ),
        square_size=_as_float(_field(raw, "square_size"), "square_size"),
        flags=_as_int(_field(raw, "flags"), "flags"),
        flags_description=_as_str(_field(raw, "flags_description"), "flags_description"),
        camera_matrix=_as_matrix(_field(raw, "camera_matrix"), "camera_matrix", 3, rows=3),
        distortion=_as_vector(
            _field(raw, "distortion_coefficients"), "distortion_coefficients", 8
        ),
        average_error=_as_float(
            _field(raw, "avg_reprojection_error"), "avg_reprojection_error"
        ),
        aspect_ratio=aspect_ratio,
        frame_count=frame_count,
        per_view_errors=per_view_errors,
        extrinsics=extrinsics,
        image_points=image_points,
    )


def load_record(path: Path) -> CalibrationRecord | None:
    """
    Read a record from disk.

    Returns:
        CalibrationRecord, or None if the file doesn't exist

    Raises:
        ParseError: If the file exists but is malformed
    """
    path = Path(path)
    if not path.exists():
        return None
    return read_record(path.read_bytes())
