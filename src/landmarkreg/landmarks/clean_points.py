"""
Utilities for cleaning correspondence sets before robust estimation.

Remove:
- NaNs/Infs
- optionally, exact duplicate correspondences
- optionally, pairs whose displacement is implausibly large
"""

from __future__ import annotations

import numpy as np

from ..ransac.types import BoolArray, Points3D


def clean_correspondences(
    fixed: Points3D,
    moving: Points3D,
    *,
    drop_duplicates: bool = False,
    max_displacement: float | None = None,
) -> tuple[Points3D, Points3D, BoolArray]:
    fixed = np.asarray(fixed, dtype=np.float64)
    moving = np.asarray(moving, dtype=np.float64)

    if fixed.ndim != 2 or moving.ndim != 2 or fixed.shape != moving.shape or fixed.shape[1] != 3:
        raise ValueError(f"Expected fixed/moving shape (N,3) matching; got {fixed.shape} vs {moving.shape}")

    mask = np.ones((fixed.shape[0],), dtype=bool)

    # Check if points are finite
    mask &= np.isfinite(fixed).all(axis=1)
    mask &= np.isfinite(moving).all(axis=1)

    # big-jump pruning, only meaningful when both frames roughly coincide
    if max_displacement is not None:
        with np.errstate(invalid="ignore"):
            motion = np.linalg.norm(moving - fixed, axis=1)
        mask &= motion <= float(max_displacement)

    if drop_duplicates:
        rows = np.hstack([fixed, moving])
        _, first = np.unique(rows[mask], axis=0, return_index=True)
        keep = np.zeros(int(mask.sum()), dtype=bool)
        keep[first] = True
        mask[np.flatnonzero(mask)] = keep

    return fixed[mask], moving[mask], mask
