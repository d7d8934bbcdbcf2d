"""
Configuration loading/saving.

Pure functions operating on dataclasses. Settings live in a TOML file:

    [board]
    columns = 9
    rows = 6
    square_size = 0.025

    [calibration]
    aspect_ratio = 1.0          # presence fixes fx/fy
    zero_tangent_dist = false
    fix_principal_point = false
    use_intrinsic_guess = false

    [output]
    path = "out_camera_data.toml"
    write_extrinsics = false
    write_points = false
"""

from __future__ import annotations

from pathlib import Path

import rtoml

from .errors import ConfigurationError
from .types import BoardGeometry, CalibrationConfiguration, CalibrationSettings


DEFAULT_OUTPUT = "out_camera_data.toml"


# ============================================================================
# TOML Settings
# ============================================================================


def settings_from_dict(data: dict) -> CalibrationSettings:
    """
    Build settings from a parsed TOML document.

    Args:
        data: Parsed settings (see module docstring for layout)

    Returns:
        CalibrationSettings

    Raises:
        ConfigurationError: If the board is missing or any value is invalid
    """
    board_data = data.get("board", {})
    if "columns" not in board_data or "rows" not in board_data:
        raise ConfigurationError("Settings need [board] columns and rows")

    board = BoardGeometry(
        columns=board_data["columns"],
        rows=board_data["rows"],
        square_size=board_data.get("square_size", 1.0),
    )

    calib_data = data.get("calibration", {})
    calibration = CalibrationConfiguration(
        fix_aspect_ratio="aspect_ratio" in calib_data,
        aspect_ratio=calib_data.get("aspect_ratio", 1.0),
        zero_tangent_dist=calib_data.get("zero_tangent_dist", False),
        fix_principal_point=calib_data.get("fix_principal_point", False),
        use_intrinsic_guess=calib_data.get("use_intrinsic_guess", False),
    )

    output_data = data.get("output", {})

    return CalibrationSettings(
        board=board,
        calibration=calibration,
        output=output_data.get("path", DEFAULT_OUTPUT),
        write_extrinsics=output_data.get("write_extrinsics", False),
        write_points=output_data.get("write_points", False),
    )


def settings_to_dict(settings: CalibrationSettings) -> dict:
    """
    Inverse of settings_from_dict().
    """
    calibration = {
        "zero_tangent_dist": settings.calibration.zero_tangent_dist,
        "fix_principal_point": settings.calibration.fix_principal_point,
        "use_intrinsic_guess": settings.calibration.use_intrinsic_guess,
    }
    if settings.calibration.fix_aspect_ratio:
        calibration["aspect_ratio"] = settings.calibration.aspect_ratio

    return {
        "board": {
            "columns": settings.board.columns,
            "rows": settings.board.rows,
            "square_size": settings.board.square_size,
        },
        "calibration": calibration,
        "output": {
            "path": settings.output,
            "write_extrinsics": settings.write_extrinsics,
            "write_points": settings.write_points,
        },
    }


def load_settings(path: Path) -> CalibrationSettings:
    """
    Load calibration settings from a TOML file.

    Args:
        path: Path to settings .toml file

    Returns:
        CalibrationSettings dataclass

    Raises:
        ConfigurationError: If the file is missing, not valid TOML or invalid
    """
    path = Path(path)
    if not path.exists():
        raise ConfigurationError(f"Settings file not found: {path}")

    try:
        data = rtoml.load(path)
    except rtoml.TomlParsingError as exc:
        raise ConfigurationError(f"Could not parse {path}: {exc}") from exc

    return settings_from_dict(data)


def save_settings(settings: CalibrationSettings, path: Path) -> None:
    """
    Save calibration settings to a TOML file.

    Args:
        settings: CalibrationSettings dataclass
        path: Path to save settings .toml
    """
    path = Path(path)
    # Ensure parent directory exists
    path.parent.mkdir(parents=True, exist_ok=True)

    with open(path, "w") as f:
        rtoml.dump(settings_to_dict(settings), f)
