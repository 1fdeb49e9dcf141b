"""
Shared typed primitives for the landmark RANSAC pipeline.

Defines:
- Typed NumPy aliases for geometry
    - Points are (N,3) float arrays
    - Correspondences are (N,6) float arrays: [fixed xyz, moving xyz]
    - Transforms are 4x4 homogeneous matrices or flat parameter vectors
- Transform fitter protocol used by the generic RANSAC loop
- RANSAC configuration (RansacParams) and result container (RansacResult)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Protocol, TypeAlias

import numpy as np
import numpy.typing as npt

from .errors import NoConsensusError, NoConsensusFound

# ---------- Numpy typing aliases ----------
# - float64 for geometry / matrices (more stable for linear algebra)
# - bool_ for masks

FloatArray: TypeAlias = npt.NDArray[np.float64]
BoolArray: TypeAlias = npt.NDArray[np.bool_]

# Landmarks in 3D. Stored as float64 for consistency in math.
Points3D: TypeAlias = FloatArray         # shape: (N, 3)

# One correspondence per row, fixed point first then moving point.
Correspondences: TypeAlias = FloatArray  # shape: (N, 6)

# Flat transform parameters (versor/translation/scale or affine matrix).
Parameters: TypeAlias = FloatArray       # shape: (P,), empty on failure

# Boolean inlier mask: True as inlier, False as outlier
Mask: TypeAlias = BoolArray              # shape: (N,)

# 4x4 homogeneous transform matrix, last row [0,0,0,1].
Mat4x4: TypeAlias = FloatArray           # shape: (4, 4)

POINT_DIM = 3
CORRESPONDENCE_DIM = 2 * POINT_DIM

AgreeMode = Literal["paired", "nearest"]
RefineOn = Literal["data", "agree", "union"]


def split_correspondences(data: Correspondences) -> tuple[Points3D, Points3D]:
    """
    Split (N,6) correspondences into (fixed, moving) point arrays, each (N,3).
    """
    data = np.asarray(data, dtype=np.float64)
    if data.ndim == 1:
        data = data.reshape(1, -1)
    if data.ndim != 2 or data.shape[1] != CORRESPONDENCE_DIM:
        raise ValueError(f"Expected correspondences shape (N,{CORRESPONDENCE_DIM}), got {data.shape}")
    return data[:, :POINT_DIM], data[:, POINT_DIM:]


class TransformFitter(Protocol):
    """
    Interface a transform family must implement to be usable by the RANSAC loop.

    RANSAC steps:
    1) Fit candidate parameters from a minimal sample
    2) Classify every correspondence as agreeing / disagreeing
    3) Refit the parameters on the inliers (least squares)

    fit_minimal and fit_least_squares share one numerical method. They raise
    DegenerateConfigurationError when the rows cannot determine the transform.
    """

    min_samples: int
    preserves_shape: bool
    preserves_length: bool

    @property
    def delta(self) -> float:
        ...

    @property
    def delta_squared(self) -> float:
        ...

    def is_degenerate(self, data: Correspondences) -> bool:
        ...

    def fit_minimal(self, data: Correspondences) -> Parameters:
        ...

    def fit_least_squares(self, data: Correspondences) -> Parameters:
        ...

    def transform_points(self, params: Parameters, pts: Points3D) -> Points3D:
        ...

    def squared_residuals(self, params: Parameters, data: Correspondences) -> FloatArray:
        ...

    def agree(self, params: Parameters, correspondence: FloatArray) -> bool:
        ...

    def agree_mask(self, params: Parameters, data: Correspondences) -> Mask:
        ...

    def to_matrix(self, params: Parameters) -> Mat4x4:
        ...


# ---------- RANSAC configuration ----------
@dataclass(frozen=True)
class RansacParams:
    """
    Configuration of one RANSAC run.

    min_samples:
      - Correspondences drawn per hypothesis. None -> the fitter's minimum.
        Must not be smaller than the fitter's minimum.
    max_iters:
      - Hard upper bound on iterations. The adaptive bound only shrinks it.
    confidence:
      - Desired probability of drawing at least one outlier-free sample.
    seed:
      - Seed of the numpy Generator. Same seed + same input -> same result.
    max_sample_retries:
      - Redraws allowed per iteration when a sample is degenerate or fails
        the edge-length check. Exhausting it wastes the iteration.
    check_edge_length:
      - None disables. Otherwise a ratio in (0,1]: pairwise edge lengths of
        the sample in the fixed and moving sets must be consistent. Only
        shape-preserving (rigid / similarity) fitters accept it.
    check_sample_agreement:
      - Reject a candidate unless every sampled correspondence agrees with it.
    agree_mode:
      - "paired": agreement rows are correspondences.
      - "nearest": agreement rows are two point clouds; a transformed moving
        point agrees if its nearest fixed point is within tolerance.
    refine_on:
      - Inlier set used by the final least-squares pass:
        "data", "agree" (paired only) or "union" (paired only). When the
        chosen set has no inliers the other non-empty set is used and the
        result reports it.
    timeout_s:
      - Optional wall clock limit layered over the iteration bound.
    """
    min_samples: Optional[int] = None
    max_iters: int = 1000
    confidence: float = 0.99
    seed: Optional[int] = 0
    max_sample_retries: int = 100
    check_edge_length: Optional[float] = None
    check_sample_agreement: bool = False
    agree_mode: AgreeMode = "paired"
    refine_on: RefineOn = "data"
    timeout_s: Optional[float] = None

    def __post_init__(self) -> None:
        if self.min_samples is not None and self.min_samples < 1:
            raise ValueError(f"min_samples must be >= 1, got {self.min_samples}")
        if self.max_iters < 1:
            raise ValueError(f"max_iters must be >= 1, got {self.max_iters}")
        if not 0.0 < self.confidence < 1.0:
            raise ValueError(f"confidence must be in (0, 1), got {self.confidence}")
        if self.max_sample_retries < 0:
            raise ValueError(f"max_sample_retries must be >= 0, got {self.max_sample_retries}")
        if self.check_edge_length is not None and not 0.0 < self.check_edge_length <= 1.0:
            raise ValueError(f"check_edge_length must be in (0, 1], got {self.check_edge_length}")
        if self.agree_mode not in ("paired", "nearest"):
            raise ValueError(f"Unknown agree_mode {self.agree_mode!r}")
        if self.refine_on not in ("data", "agree", "union"):
            raise ValueError(f"Unknown refine_on {self.refine_on!r}")
        if self.agree_mode == "nearest" and self.refine_on != "data":
            raise ValueError("refine_on must be 'data' when agree_mode is 'nearest'")
        if self.timeout_s is not None and self.timeout_s <= 0:
            raise ValueError(f"timeout_s must be > 0, got {self.timeout_s}")


# ---------- RANSAC output container ----------
# frozen=True means "immutable" after construction
@dataclass(frozen=True)
class RansacResult:
    parameters: Parameters           # refined parameters, empty on failure
    inliers: Mask                    # inlier mask over the fitting correspondences
    agree_inliers: Optional[Mask]    # inlier mask over the agreement rows, if any
    num_inliers: int                 # data inliers + agreement inliers of the best hypothesis
    inlier_fraction: float           # data inliers / number of fitting correspondences
    rmse: float                      # inlier RMSE under the refined parameters, NaN on failure
    iterations: int                  # how many RANSAC iterations were actually run
    threshold: float                 # the tolerance delta used
    refine_on: str                   # inlier set actually used for the final refit, "none" if no refit
    reason: Optional[str] = None     # None on success, NoConsensusFound on failure

    @property
    def success(self) -> bool:
        return self.parameters.size > 0

    def as_metrics(self) -> tuple[float, float]:
        """(inlier fraction, inlier RMSE)"""
        return self.inlier_fraction, self.rmse

    def raise_for_failure(self) -> "RansacResult":
        if not self.success:
            raise NoConsensusError(
                f"RANSAC found no consensus after {self.iterations} iterations (delta={self.threshold})"
            )
        return self

    @classmethod
    def failure(cls, *, n_data: int, n_agree: Optional[int], iterations: int,
                threshold: float, refine_on: RefineOn) -> "RansacResult":
        return cls(
            parameters=np.zeros((0,), dtype=np.float64),
            inliers=np.zeros((n_data,), dtype=bool),
            agree_inliers=None if n_agree is None else np.zeros((n_agree,), dtype=bool),
            num_inliers=0,
            inlier_fraction=0.0,
            rmse=float("nan"),
            iterations=iterations,
            threshold=float(threshold),
            refine_on=refine_on,
            reason=NoConsensusFound,
        )
