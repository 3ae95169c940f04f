from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from camsys.errors import ConfigValidationError

SCHEMA_VERSION = "camsys.config.v0"


@dataclass(frozen=True)
class CameraSystemConfig:
    max_num_cameras: int = 10
    undistort_max_iterations: int = 30
    undistort_tolerance: float = 1e-12


DEFAULT_CONFIG = CameraSystemConfig()


def _require(cond: bool, msg: str) -> None:
    if not cond:
        raise ConfigValidationError(msg)


def load_config(path: Path) -> CameraSystemConfig:
    data = json.loads(Path(path).read_text(encoding="utf-8"))
    return parse_config(data)


def parse_config(data: dict[str, Any]) -> CameraSystemConfig:
    schema_version = data.get("schema_version", SCHEMA_VERSION)
    _require(schema_version == SCHEMA_VERSION, f"schema_version must be {SCHEMA_VERSION}")

    max_num_cameras = int(data.get("max_num_cameras", DEFAULT_CONFIG.max_num_cameras))
    _require(max_num_cameras >= 1, "max_num_cameras must be >= 1")

    max_iter = int(data.get("undistort_max_iterations", DEFAULT_CONFIG.undistort_max_iterations))
    _require(max_iter >= 1, "undistort_max_iterations must be >= 1")

    tol = float(data.get("undistort_tolerance", DEFAULT_CONFIG.undistort_tolerance))
    _require(tol > 0.0, "undistort_tolerance must be > 0")

    return CameraSystemConfig(
        max_num_cameras=max_num_cameras,
        undistort_max_iterations=max_iter,
        undistort_tolerance=tol,
    )
