from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum
from typing import Sequence

import numpy as np

from camsys.errors import InvalidArgumentError


class RigidBodyParam(IntEnum):
    ANGLE_X = 0
    ANGLE_Y = 1
    ANGLE_Z = 2
    TRANSLATION_X = 3
    TRANSLATION_Y = 4
    TRANSLATION_Z = 5


NUM_RIGID_BODY_PARAMS = len(RigidBodyParam)


@dataclass(frozen=True)
class RotTransCoefficients:
    """
    Batch-invariant coefficients of a rigid-body transform.

    `rot_trans` is the (3,4) matrix [R | T]. `d_rot` holds dR/d(angle) with
    shape (3,3,3) indexed (angle, row, col), or None when partials were not
    requested.
    """

    rot_trans: np.ndarray
    d_rot: np.ndarray | None = None

    @property
    def rotation(self) -> np.ndarray:
        return self.rot_trans[:, :3]

    @property
    def translation(self) -> np.ndarray:
        return self.rot_trans[:, 3]


def _check_params(params: Sequence[float] | np.ndarray) -> np.ndarray:
    params = np.asarray(params, dtype=np.float64).reshape(-1)
    if params.shape[0] != NUM_RIGID_BODY_PARAMS:
        raise InvalidArgumentError(
            f"rigid body transform needs {NUM_RIGID_BODY_PARAMS} parameters, got {params.shape[0]}"
        )
    return params


def euler_rotation_matrix(alpha: float, beta: float, gamma: float) -> np.ndarray:
    """R = Rz(gamma) Ry(beta) Rx(alpha), angles in radians."""
    ca, cb, cg = np.cos(alpha), np.cos(beta), np.cos(gamma)
    sa, sb, sg = np.sin(alpha), np.sin(beta), np.sin(gamma)
    return np.array(
        [
            [cb * cg, sa * sb * cg - ca * sg, ca * sb * cg + sa * sg],
            [cb * sg, sa * sb * sg + ca * cg, ca * sb * sg - sa * cg],
            [-sb, sa * cb, ca * cb],
        ],
        dtype=np.float64,
    )


def rot_trans_coefficients(params: Sequence[float] | np.ndarray, partials: bool = False) -> RotTransCoefficients:
    params = _check_params(params)
    alpha = params[RigidBodyParam.ANGLE_X]
    beta = params[RigidBodyParam.ANGLE_Y]
    gamma = params[RigidBodyParam.ANGLE_Z]
    ca, cb, cg = np.cos(alpha), np.cos(beta), np.cos(gamma)
    sa, sb, sg = np.sin(alpha), np.sin(beta), np.sin(gamma)

    rot_trans = np.empty((3, 4), dtype=np.float64)
    rot_trans[:, :3] = euler_rotation_matrix(alpha, beta, gamma)
    rot_trans[:, 3] = params[RigidBodyParam.TRANSLATION_X : RigidBodyParam.TRANSLATION_Z + 1]
    rot_trans.setflags(write=False)
    if not partials:
        return RotTransCoefficients(rot_trans=rot_trans)

    d_rot = np.array(
        [
            # d/d alpha
            [
                [0.0, ca * sb * cg + sa * sg, -sa * sb * cg + ca * sg],
                [0.0, ca * sb * sg - sa * cg, -sa * sb * sg - ca * cg],
                [0.0, ca * cb, -sa * cb],
            ],
            # d/d beta
            [
                [-sb * cg, sa * cb * cg, ca * cb * cg],
                [-sb * sg, sa * cb * sg, ca * cb * sg],
                [-cb, -sa * sb, -ca * sb],
            ],
            # d/d gamma
            [
                [-cb * sg, -sa * sb * sg - ca * cg, -ca * sb * sg + sa * cg],
                [cb * cg, sa * sb * cg - ca * sg, ca * sb * cg + sa * sg],
                [0.0, 0.0, 0.0],
            ],
        ],
        dtype=np.float64,
    )
    d_rot.setflags(write=False)
    return RotTransCoefficients(rot_trans=rot_trans, d_rot=d_rot)


def apply_rot_trans(
    coeffs: RotTransCoefficients,
    source_x: np.ndarray,
    source_y: np.ndarray,
    source_z: np.ndarray,
    source_dx: np.ndarray | None = None,
    source_dy: np.ndarray | None = None,
    source_dz: np.ndarray | None = None,
) -> tuple[np.ndarray, ...]:
    """
    Apply precomputed coefficients to a batch of points.

    Returns (x, y, z), or (x, y, z, dx, dy, dz) when the coefficients carry
    angle derivatives. Without upstream partials the derivative arrays are
    (6,N) wrt [angle_x, angle_y, angle_z, tx, ty, tz]. With upstream partials
    shaped (3,N) (wrt the plane parameters [zp, theta, phi]) they are (6,N):
    the upstream columns carried through R, then the three angle columns.
    """
    src = np.stack(
        [
            np.asarray(source_x, dtype=np.float64),
            np.asarray(source_y, dtype=np.float64),
            np.asarray(source_z, dtype=np.float64),
        ]
    )
    target = coeffs.rotation @ src + coeffs.translation[:, None]
    if coeffs.d_rot is None:
        return target[0], target[1], target[2]

    n = src.shape[1]
    # (angle, row, col) x (col, point) -> (row, angle, point)
    d_angles = np.einsum("arc,cn->ran", coeffs.d_rot, src)
    partials = np.zeros((3, NUM_RIGID_BODY_PARAMS, n), dtype=np.float64)
    if source_dx is None:
        partials[:, :3, :] = d_angles
        partials[0, RigidBodyParam.TRANSLATION_X, :] = 1.0
        partials[1, RigidBodyParam.TRANSLATION_Y, :] = 1.0
        partials[2, RigidBodyParam.TRANSLATION_Z, :] = 1.0
        return target[0], target[1], target[2], partials[0], partials[1], partials[2]

    upstream = np.stack([source_dx, source_dy, source_dz]).astype(np.float64)
    if upstream.shape[1] != 3:
        raise InvalidArgumentError(f"upstream partials need 3 parameter rows, got {upstream.shape[1]}")
    # translation does not depend on the upstream parameters
    partials[:, :3, :] = np.einsum("rc,cpn->rpn", coeffs.rotation, upstream)
    partials[:, 3:, :] = d_angles
    return target[0], target[1], target[2], partials[0], partials[1], partials[2]


def rotate_translate(
    source_x: np.ndarray,
    source_y: np.ndarray,
    source_z: np.ndarray,
    params: Sequence[float] | np.ndarray,
    *,
    derivatives: bool = False,
) -> tuple[np.ndarray, ...]:
    """
    Rotate then translate a batch of 3D points: target = R source + T.

    params = [angle_x, angle_y, angle_z, tx, ty, tz] (radians). With
    `derivatives=True` the partials wrt the 6 parameters are returned as
    three (6,N) arrays after the coordinates.
    """
    source_x = np.asarray(source_x, dtype=np.float64).reshape(-1)
    source_y = np.asarray(source_y, dtype=np.float64).reshape(-1)
    source_z = np.asarray(source_z, dtype=np.float64).reshape(-1)
    n = source_x.shape[0]
    if n == 0:
        raise InvalidArgumentError("rotate_translate needs at least one point")
    if source_y.shape[0] != n or source_z.shape[0] != n:
        raise InvalidArgumentError(
            f"source coordinate arrays must have equal length, got {n}, {source_y.shape[0]}, {source_z.shape[0]}"
        )
    coeffs = rot_trans_coefficients(params, partials=derivatives)
    return apply_rot_trans(coeffs, source_x, source_y, source_z)
