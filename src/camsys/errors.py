from __future__ import annotations

from pathlib import Path


class CameraSystemError(Exception):
    pass


class CalibrationParseError(CameraSystemError, ValueError):
    """Raised when a calibration file cannot be turned into a camera system."""

    def __init__(self, msg: str, *, path: str | Path | None = None, field: str | None = None) -> None:
        self.msg = msg
        self.path = None if path is None else Path(path)
        self.field = field
        prefix = f"{self.path}: " if self.path is not None else ""
        super().__init__(prefix + msg)


class CalibrationWriteError(CameraSystemError, RuntimeError):
    pass


class InvalidArgumentError(CameraSystemError, ValueError):
    pass


class ConfigValidationError(CameraSystemError, ValueError):
    pass
