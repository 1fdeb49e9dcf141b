"""
Scoring of the agreement data (held-out rows never used for fitting).

Two modes share the fitter's squared tolerance:

- paired:  each row is a correspondence, scored with fitter.agree_mask
- nearest: the rows only carry two point clouds. The fixed halves go into a
           KD-tree once; a transformed moving point agrees if its nearest
           fixed point is within delta.
"""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
from scipy.spatial import cKDTree

from .types import AgreeMode, Correspondences, Mask, Parameters, TransformFitter, split_correspondences

logger = logging.getLogger(__name__)


class AgreementScorer:
    def __init__(
            self,
            fitter: TransformFitter,
            agree_data: Optional[Correspondences],
            mode: AgreeMode = "paired",
    ) -> None:
        if mode not in ("paired", "nearest"):
            raise ValueError(f"Unknown agreement mode {mode!r}")
        self.fitter = fitter
        self.mode = mode
        self.data: Optional[Correspondences] = None
        self._tree: Optional[cKDTree] = None
        self._moving = None

        if agree_data is None:
            return
        fixed, moving = split_correspondences(agree_data)
        self.data = np.hstack([fixed, moving])
        if mode == "nearest" and fixed.shape[0] > 0:
            self._tree = cKDTree(fixed)
            self._moving = moving
            logger.debug("Built KD-tree over %d agreement points", fixed.shape[0])

    def __len__(self) -> int:
        return 0 if self.data is None else self.data.shape[0]

    @property
    def enabled(self) -> bool:
        return self.data is not None

    def score(self, params: Parameters) -> Optional[Mask]:
        """Inlier mask over the agreement rows, or None without agreement data."""
        if self.data is None:
            return None
        if self.data.shape[0] == 0:
            return np.zeros((0,), dtype=bool)
        if self.mode == "paired":
            return self.fitter.agree_mask(params, self.data)

        transformed = self.fitter.transform_points(params, self._moving)
        dist, _ = self._tree.query(transformed, k=1)
        return dist * dist <= self.fitter.delta_squared

    def squared_residuals(self, params: Parameters) -> np.ndarray:
        """Squared distance of every agreement row under params, in the mode used for scoring."""
        if self.data is None or self.data.shape[0] == 0:
            return np.zeros((0,), dtype=np.float64)
        if self.mode == "paired":
            return self.fitter.squared_residuals(params, self.data)
        transformed = self.fitter.transform_points(params, self._moving)
        dist, _ = self._tree.query(transformed, k=1)
        return dist * dist
