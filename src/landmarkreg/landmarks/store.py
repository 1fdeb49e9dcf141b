"""
Correspondence store: the putative landmark matches handed to RANSAC.

Each correspondence is one (6,) row, the fixed landmark followed by the
moving landmark:

    [fixed_x, fixed_y, fixed_z, moving_x, moving_y, moving_z]

The optional agreement rows have the same layout but are only used to score
hypotheses, never to fit them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np

from ..ransac.core import ransac
from ..ransac.types import (
    Correspondences, Points3D, RansacParams, RansacResult, TransformFitter,
    split_correspondences,
)
from .clean_points import clean_correspondences


def make_correspondences(fixed: Points3D, moving: Points3D) -> Correspondences:
    """Concatenate (N,3) fixed and moving points row-wise into (N,6)."""
    fixed = np.asarray(fixed, dtype=np.float64)
    moving = np.asarray(moving, dtype=np.float64)
    if fixed.ndim != 2 or fixed.shape[1] != 3 or fixed.shape != moving.shape:
        raise ValueError(f"Expected fixed/moving shape (N,3) matching; got {fixed.shape} vs {moving.shape}")
    return np.hstack([fixed, moving])


@dataclass(frozen=True, eq=False)
class CorrespondenceStore:
    data: Correspondences
    agree_data: Optional[Correspondences] = None

    def __post_init__(self) -> None:
        # Normalise to read-only float64 (N,6) arrays
        fixed, moving = split_correspondences(self.data)
        data = np.hstack([fixed, moving])
        data.setflags(write=False)
        object.__setattr__(self, "data", data)

        if self.agree_data is not None:
            a_fixed, a_moving = split_correspondences(self.agree_data)
            agree = np.hstack([a_fixed, a_moving])
            agree.setflags(write=False)
            object.__setattr__(self, "agree_data", agree)

    @classmethod
    def from_point_sets(
            cls,
            fixed: Points3D,
            moving: Points3D,
            *,
            agree_fixed: Optional[Points3D] = None,
            agree_moving: Optional[Points3D] = None,
            clean: bool = False,
    ) -> "CorrespondenceStore":
        """
        Build a store from corresponding point arrays.

        agree_fixed / agree_moving must be given together. In "nearest"
        agreement mode they are two clouds paired only by index, so the
        longer one is truncated to the shorter length.
        """
        if (agree_fixed is None) != (agree_moving is None):
            raise ValueError("agree_fixed and agree_moving must be given together")

        if clean:
            fixed, moving, _ = clean_correspondences(fixed, moving)
        data = make_correspondences(fixed, moving)

        agree = None
        if agree_fixed is not None:
            agree_fixed = np.asarray(agree_fixed, dtype=np.float64)
            agree_moving = np.asarray(agree_moving, dtype=np.float64)
            n = min(agree_fixed.shape[0], agree_moving.shape[0])
            agree = make_correspondences(agree_fixed[:n], agree_moving[:n])
        return cls(data=data, agree_data=agree)

    def __len__(self) -> int:
        return int(self.data.shape[0])

    @property
    def fixed(self) -> Points3D:
        return self.data[:, :3]

    @property
    def moving(self) -> Points3D:
        return self.data[:, 3:]


def register_landmarks(
        store: CorrespondenceStore,
        fitter: TransformFitter,
        params: RansacParams = RansacParams(),
) -> RansacResult:
    """Run RANSAC on a store, scoring its agreement rows when present."""
    return ransac(fitter, store.data, agree_data=store.agree_data, params=params)
