"""
Adapters: make the closed-form rigid / similarity functions conform to the
TransformFitter protocol.

This keeps ransac/core.py generic and reusable.
"""

from __future__ import annotations

import numpy as np

from .fitter_base import FitterBase
from .similarity import (
    RIGID_N_PARAMS, SIMILARITY_N_PARAMS,
    apply_similarity, fit_similarity_least_squares, is_collinear,
    pack_params, similarity_matrix, unpack_params,
)
from .types import Correspondences, Mat4x4, Parameters, Points3D, split_correspondences


class SimilarityFitter(FitterBase):
    """
    Rotation + translation + uniform scale (7 dof). 3 non-collinear
    correspondences determine it.
    """
    min_samples = 3
    n_params = SIMILARITY_N_PARAMS
    with_scale = True
    preserves_shape = True

    def __init__(self, delta: float = 1.0, *, eps_rank: float = 1e-9) -> None:
        super().__init__(delta)
        self.eps_rank = float(eps_rank)

    def is_degenerate(self, data: Correspondences) -> bool:
        fixed, moving = split_correspondences(data)
        return is_collinear(fixed, self.eps_rank) or is_collinear(moving, self.eps_rank)

    def fit_least_squares(self, data: Correspondences) -> Parameters:
        fixed, moving = split_correspondences(data)
        R, t, s = fit_similarity_least_squares(
            fixed, moving, with_scale=self.with_scale, eps_rank=self.eps_rank
        )
        return pack_params(R, t, s if self.with_scale else None)

    def _unpack(self, params: Parameters):
        params = np.asarray(params, dtype=np.float64).reshape(-1)
        if params.shape[0] != self.n_params:
            raise ValueError(f"{type(self).__name__} expects {self.n_params} parameters, got {params.shape[0]}")
        return unpack_params(params)

    def transform_points(self, params: Parameters, pts: Points3D) -> Points3D:
        R, t, s = self._unpack(params)
        return apply_similarity(R, t, s, np.asarray(pts, dtype=np.float64))

    def to_matrix(self, params: Parameters) -> Mat4x4:
        return similarity_matrix(*self._unpack(params))


class RigidFitter(SimilarityFitter):
    """Rotation + translation only (6 dof), scale fixed to 1."""
    n_params = RIGID_N_PARAMS
    with_scale = False
    preserves_length = True
