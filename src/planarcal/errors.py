"""Exception classes for planarcal."""

from __future__ import annotations


class PlanarCalError(Exception):
    """Base exception for all planarcal errors."""

    pass


class ConfigurationError(PlanarCalError):
    """Raised when board geometry or calibration settings are invalid."""

    pass


class StructuralMismatchError(PlanarCalError):
    """Raised when a view does not hold one point per board corner."""

    def __init__(self, message: str, expected: int, actual: int):
        self.expected = expected
        self.actual = actual
        super().__init__(message)


class InsufficientDataError(PlanarCalError):
    """Raised when calibration is requested without any accepted views."""

    pass


class SolverFailure(PlanarCalError):
    """Raised when the solver fails or returns out-of-range parameters."""

    def __init__(self, message: str, camera_matrix=None, distortion=None):
        self.camera_matrix = camera_matrix
        self.distortion = distortion
        super().__init__(message)


class ParseError(PlanarCalError):
    """Raised when a persisted calibration record cannot be read."""

    pass


class ImageReadError(PlanarCalError):
    """Raised when an image in the input list cannot be decoded."""

    def __init__(self, message: str, path: str | None = None):
        self.path = path
        super().__init__(message)
