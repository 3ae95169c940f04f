from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

import numpy as np

logger = logging.getLogger(__name__)


class LensDistortionModel(Enum):
    NONE = "NONE"
    OPENCV_DIS = "OPENCV_DIS"
    VIC3D_DIS = "VIC3D_DIS"
    K1R1_K2R2_K3R3 = "K1R1_K2R2_K3R3"
    K1R2_K2R4_K3R6 = "K1R2_K2R4_K3R6"
    K1R3_K2R5_K3R7 = "K1R3_K2R5_K3R7"

    @classmethod
    def from_string(cls, text: str) -> "LensDistortionModel":
        try:
            return cls(text.strip())
        except ValueError:
            valid = " ".join(m.value for m in cls)
            raise ValueError(f"unknown lens distortion model {text!r}, valid models are: {valid}") from None


# radial exponents of K1, K2, K3 for the polynomial models
_RADIAL_POWERS = {
    LensDistortionModel.K1R1_K2R2_K3R3: (1, 2, 3),
    LensDistortionModel.K1R2_K2R4_K3R6: (2, 4, 6),
    LensDistortionModel.K1R3_K2R5_K3R7: (3, 5, 7),
    LensDistortionModel.VIC3D_DIS: (2, 4, 6),
}


@dataclass(frozen=True)
class LensDistortion:
    """
    Lens distortion on normalized camera coordinates (x=X/Z, y=Y/Z).

    Coefficient names follow OpenCV: radial k1..k6 (k4..k6 are the rational
    denominator), tangential p1, p2 and thin prism s1..s4. The polynomial
    models only use k1..k3.
    """

    model: LensDistortionModel = LensDistortionModel.NONE
    k1: float = 0.0
    k2: float = 0.0
    k3: float = 0.0
    k4: float = 0.0
    k5: float = 0.0
    k6: float = 0.0
    p1: float = 0.0
    p2: float = 0.0
    s1: float = 0.0
    s2: float = 0.0
    s3: float = 0.0
    s4: float = 0.0

    def distort(self, x: np.ndarray, y: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        xd, yd, _ = self._evaluate(x, y, jacobian=False)
        return xd, yd

    def distort_with_jacobian(
        self, x: np.ndarray, y: np.ndarray
    ) -> tuple[np.ndarray, np.ndarray, tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]]:
        """
        Distort and return the per-point Jacobian as (dxd/dx, dxd/dy, dyd/dx, dyd/dy).
        """
        return self._evaluate(x, y, jacobian=True)

    def _evaluate(self, x, y, jacobian: bool):
        x = np.asarray(x, dtype=np.float64)
        y = np.asarray(y, dtype=np.float64)
        if self.model is LensDistortionModel.NONE:
            if not jacobian:
                return x.copy(), y.copy(), None
            one = np.ones_like(x)
            zero = np.zeros_like(x)
            return x.copy(), y.copy(), (one, zero, zero.copy(), one.copy())
        if self.model is LensDistortionModel.OPENCV_DIS:
            return self._evaluate_opencv(x, y, jacobian)
        return self._evaluate_radial(x, y, jacobian)

    def _evaluate_radial(self, x, y, jacobian: bool):
        powers = _RADIAL_POWERS[self.model]
        coeffs = (self.k1, self.k2, self.k3)
        r = np.sqrt(x * x + y * y)
        factor = np.ones_like(r)
        for k, p in zip(coeffs, powers):
            factor = factor + k * r**p
        xd = x * factor
        yd = y * factor
        if not jacobian:
            return xd, yd, None

        # g = (1/r) d(factor)/dr; only ever multiplied by x^2, xy or y^2 so it is zeroed at r == 0
        good = r > 0.0
        r_safe = np.where(good, r, 1.0)
        g = np.zeros_like(r)
        for k, p in zip(coeffs, powers):
            g = g + k * p * r_safe ** (p - 2)
        g = np.where(good, g, 0.0)
        j_xx = factor + x * x * g
        j_xy = x * y * g
        j_yx = j_xy.copy()
        j_yy = factor + y * y * g
        return xd, yd, (j_xx, j_xy, j_yx, j_yy)

    def _evaluate_opencv(self, x, y, jacobian: bool):
        x2 = x * x
        y2 = y * y
        xy = x * y
        r2 = x2 + y2
        r4 = r2 * r2
        r6 = r4 * r2
        num = 1.0 + self.k1 * r2 + self.k2 * r4 + self.k3 * r6
        den = 1.0 + self.k4 * r2 + self.k5 * r4 + self.k6 * r6
        radial = num / den
        xd = x * radial + 2.0 * self.p1 * xy + self.p2 * (r2 + 2.0 * x2) + self.s1 * r2 + self.s2 * r4
        yd = y * radial + self.p1 * (r2 + 2.0 * y2) + 2.0 * self.p2 * xy + self.s3 * r2 + self.s4 * r4
        if not jacobian:
            return xd, yd, None

        d_num = self.k1 + 2.0 * self.k2 * r2 + 3.0 * self.k3 * r4
        d_den = self.k4 + 2.0 * self.k5 * r2 + 3.0 * self.k6 * r4
        # d(radial)/d(r2)
        d_radial = (d_num * den - num * d_den) / (den * den)
        j_xx = (
            radial
            + 2.0 * x2 * d_radial
            + 2.0 * self.p1 * y
            + 6.0 * self.p2 * x
            + 2.0 * self.s1 * x
            + 4.0 * self.s2 * r2 * x
        )
        j_xy = 2.0 * xy * d_radial + 2.0 * self.p1 * x + 2.0 * self.p2 * y + 2.0 * self.s1 * y + 4.0 * self.s2 * r2 * y
        j_yx = 2.0 * xy * d_radial + 2.0 * self.p1 * x + 2.0 * self.p2 * y + 2.0 * self.s3 * x + 4.0 * self.s4 * r2 * x
        j_yy = (
            radial
            + 2.0 * y2 * d_radial
            + 6.0 * self.p1 * y
            + 2.0 * self.p2 * x
            + 2.0 * self.s3 * y
            + 4.0 * self.s4 * r2 * y
        )
        return xd, yd, (j_xx, j_xy, j_yx, j_yy)

    def undistort(
        self,
        xd: np.ndarray,
        yd: np.ndarray,
        max_iterations: int = 30,
        tolerance: float = 1e-12,
    ) -> tuple[np.ndarray, np.ndarray]:
        """
        Newton inverse of distort().
        """
        xd = np.asarray(xd, dtype=np.float64)
        yd = np.asarray(yd, dtype=np.float64)
        if self.model is LensDistortionModel.NONE:
            return xd.copy(), yd.copy()
        x = xd.copy()
        y = yd.copy()
        residual = np.inf
        for _ in range(int(max_iterations)):
            x_est, y_est, (j_xx, j_xy, j_yx, j_yy) = self.distort_with_jacobian(x, y)
            fx = x_est - xd
            fy = y_est - yd
            residual = float(np.max(np.abs(np.concatenate([fx.reshape(-1), fy.reshape(-1)])), initial=0.0))
            if residual < tolerance:
                break
            det = j_xx * j_yy - j_xy * j_yx
            det = np.where(np.abs(det) < 1e-15, 1.0, det)
            x = x - (j_yy * fx - j_xy * fy) / det
            y = y - (-j_yx * fx + j_xx * fy) / det
        else:
            logger.warning(
                "undistort did not converge after %d iterations (max residual %.3e, model %s)",
                max_iterations,
                residual,
                self.model.value,
            )
        return x, y
