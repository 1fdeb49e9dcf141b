"""
Adapter: makes 3D affine functions conform to the TransformFitter protocol.
"""

from __future__ import annotations

import numpy as np

from .affine import AFFINE_N_PARAMS, affine_matrix, apply_affine, fit_affine_least_squares, is_coplanar
from .fitter_base import FitterBase
from .types import Correspondences, Mat4x4, Parameters, Points3D, split_correspondences


class AffineFitter(FitterBase):
    """General 3D affine transform (12 dof), 4 non-coplanar correspondences."""
    min_samples = 4
    n_params = AFFINE_N_PARAMS

    def __init__(self, delta: float = 1.0, *, eps_rank: float = 1e-9) -> None:
        super().__init__(delta)
        self.eps_rank = float(eps_rank)

    def is_degenerate(self, data: Correspondences) -> bool:
        _, moving = split_correspondences(data)
        return is_coplanar(moving, self.eps_rank)

    def fit_least_squares(self, data: Correspondences) -> Parameters:
        fixed, moving = split_correspondences(data)
        return fit_affine_least_squares(fixed, moving)

    def transform_points(self, params: Parameters, pts: Points3D) -> Points3D:
        return apply_affine(params, np.asarray(pts, dtype=np.float64))

    def to_matrix(self, params: Parameters) -> Mat4x4:
        return affine_matrix(params)
