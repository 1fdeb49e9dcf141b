"""
Cheap pre-filters applied to a sample before the transform fit.

Edge-length consistency:
    For every pair (i, j) inside the sample, the edge |fixed_i - fixed_j|
    and the edge |moving_i - moving_j| must be related by the same factor.

    - rigid model: the factor is 1, so each ratio must lie in
      [similarity, 1 / similarity]
    - similarity model (free scale): only the spread of the ratios is
      checked, min(ratio) / max(ratio) >= similarity

A wrong match almost always breaks one of these edges, so the sample is
rejected without paying for an SVD.
"""

from __future__ import annotations

import numpy as np

from .types import Correspondences, split_correspondences


def _pairwise_lengths(pts: np.ndarray) -> np.ndarray:
    i, j = np.triu_indices(pts.shape[0], k=1)
    return np.linalg.norm(pts[i] - pts[j], axis=1)


def check_edge_length(
        sample: Correspondences,
        similarity: float,
        *,
        fixed_scale: bool = False,
        eps: float = 1e-12,
) -> bool:
    """
    Return True if the sample passes the edge-length consistency test.

    similarity: ratio tolerance in (0, 1]; 1.0 requires perfectly consistent edges.
    fixed_scale: True for rigid models where edges must have equal length.
    """
    if not 0.0 < similarity <= 1.0:
        raise ValueError(f"similarity must be in (0, 1], got {similarity}")
    fixed, moving = split_correspondences(sample)
    if fixed.shape[0] < 2:
        return True

    lf = _pairwise_lengths(fixed)
    lm = _pairwise_lengths(moving)

    # A zero edge on one side only cannot be explained by any scale
    zero_f = lf <= eps
    zero_m = lm <= eps
    if np.any(zero_f != zero_m):
        return False
    keep = ~zero_f
    if not np.any(keep):
        return True

    ratios = lm[keep] / lf[keep]
    if fixed_scale:
        return bool(np.all(ratios >= similarity) and np.all(ratios <= 1.0 / similarity))
    return bool(ratios.min() >= similarity * ratios.max())
