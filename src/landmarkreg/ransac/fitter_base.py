"""
Shared tolerance handling and agreement test for every transform family.

A concrete fitter provides fit_least_squares, transform_points, to_matrix and
is_degenerate. The squared-distance agreement test lives here so that the
RANSAC consensus count and the agreement-data pass use the same metric and
the same threshold.
"""

from __future__ import annotations

import numpy as np

from .errors import DegenerateConfigurationError
from .types import (
    Correspondences, FloatArray, Mask, Mat4x4, Parameters, Points3D,
    split_correspondences,
)


class FitterBase:
    min_samples: int = 0
    n_params: int = 0
    # similarity families keep edge length ratios, rigid ones keep lengths
    preserves_shape: bool = False
    preserves_length: bool = False

    def __init__(self, delta: float = 1.0) -> None:
        self.delta = delta

    def __repr__(self) -> str:
        return f"{type(self).__name__}(delta={self._delta!r})"

    # ---------- Tolerance ----------
    @property
    def delta(self) -> float:
        return self._delta

    @delta.setter
    def delta(self, value: float) -> None:
        value = float(value)
        if not np.isfinite(value) or value < 0.0:
            raise ValueError(f"delta must be a finite value >= 0, got {value}")
        self._delta = value
        # residuals are compared in squared space, no sqrt per test
        self._delta_squared = value * value

    @property
    def delta_squared(self) -> float:
        return self._delta_squared

    # ---------- Family specific ----------
    def is_degenerate(self, data: Correspondences) -> bool:
        raise NotImplementedError

    def fit_least_squares(self, data: Correspondences) -> Parameters:
        raise NotImplementedError

    def transform_points(self, params: Parameters, pts: Points3D) -> Points3D:
        raise NotImplementedError

    def to_matrix(self, params: Parameters) -> Mat4x4:
        raise NotImplementedError

    # ---------- Shared ----------
    def fit_minimal(self, data: Correspondences) -> Parameters:
        """
        Fit from a sample of at least min_samples rows.

        There is no separate minimal solver: an exact fit is the least-squares
        fit with N == min_samples.
        """
        data = np.asarray(data, dtype=np.float64)
        if data.ndim != 2 or data.shape[0] < self.min_samples:
            raise DegenerateConfigurationError(
                f"{type(self).__name__} needs {self.min_samples} correspondences, got {data.shape}"
            )
        return self.fit_least_squares(data)

    def squared_residuals(self, params: Parameters, data: Correspondences) -> FloatArray:
        """
        Per-row squared distance between the transformed moving point and the
        fixed point. Shape: (N,).
        """
        fixed, moving = split_correspondences(data)
        diff = self.transform_points(params, moving) - fixed
        return np.sum(diff * diff, axis=1)

    def agree_mask(self, params: Parameters, data: Correspondences) -> Mask:
        return self.squared_residuals(params, data) <= self._delta_squared

    def agree(self, params: Parameters, correspondence: FloatArray) -> bool:
        """True iff one (6,) correspondence is within delta under params."""
        return bool(self.agree_mask(params, np.asarray(correspondence).reshape(1, -1))[0])
