"""
Closed-form rigid / similarity model utilities (absolute orientation).

We estimate R, t and (optionally) s such that, for every correspondence:

    fixed_i  ≈  s * R @ moving_i + t

Method (Umeyama / orthogonal Procrustes):
    1) centre both point sets on their centroids
    2) cross-covariance H = sum_i moving_c_i fixed_c_i^T
    3) SVD: H = U S V^T
    4) R = V D U^T, D = diag(1, 1, sign(det(V U^T)))  (no reflections)
    5) s = trace(S D) / sum_i |moving_c_i|^2          (joint with R)
    6) t = mean(fixed) - s R mean(moving)

The same formula is an exact fit for 3 consistent correspondences and a true
least-squares fit for N > 3.

Parameter vector (ITK VersorRigid3D / Similarity3D ordering):
    rigid:      [vx, vy, vz, tx, ty, tz]
    similarity: [vx, vy, vz, tx, ty, tz, s]
where (vx, vy, vz) is the vector part of the unit quaternion whose scalar
part is kept non-negative.
"""

from __future__ import annotations

import numpy as np
from scipy.spatial.transform import Rotation

from .errors import DegenerateConfigurationError
from .types import FloatArray, Mat4x4, Parameters, Points3D

RIGID_N_PARAMS = 6
SIMILARITY_N_PARAMS = 7


# ---------- Degeneracy Check Helpers ----------
def _singular_values_centered(pts: Points3D) -> FloatArray:
    centered = pts - pts.mean(axis=0, keepdims=True)
    return np.linalg.svd(centered, compute_uv=False)


def _coordinate_scale(pts: Points3D) -> float:
    """Largest absolute coordinate; spreads are compared against it."""
    return float(np.max(np.abs(pts)))


def is_collinear(pts: Points3D, eps_rank: float = 1e-9) -> bool:
    """
    True if the points are coincident or (nearly) on one line.

    The centred point matrix has rank < 2 in that case: its second singular
    value vanishes relative to the first. Coincidence is judged relative to
    the coordinate magnitude, so the test does not depend on units.
    Non-finite points count as degenerate.
    """
    if pts.shape[0] < 3 or not np.isfinite(pts).all():
        return True
    try:
        sv = _singular_values_centered(pts)
    except np.linalg.LinAlgError:
        return True
    if sv[0] <= eps_rank * _coordinate_scale(pts):
        return True
    return bool(sv[1] <= eps_rank * sv[0])


# ---------- Versor encoding ----------
def rotation_to_versor(R: FloatArray) -> FloatArray:
    """
    Rotation matrix -> versor (vector part of the unit quaternion, w >= 0).

    scipy projects R onto SO(3), which removes small numerical drift.
    """
    q = Rotation.from_matrix(R).as_quat()  # [x, y, z, w]
    if q[3] < 0.0:
        q = -q
    return q[:3].astype(np.float64)


def versor_to_rotation(versor: FloatArray) -> FloatArray:
    v = np.asarray(versor, dtype=np.float64).reshape(3)
    norm2 = float(v @ v)
    if norm2 > 1.0:
        # 180 degree rotation with rounding error: w is zero
        v = v / np.sqrt(norm2)
        norm2 = 1.0
    w = np.sqrt(1.0 - norm2)
    return Rotation.from_quat([v[0], v[1], v[2], w]).as_matrix()


# ---------- Fitting ----------
def fit_similarity_least_squares(
        fixed: Points3D,
        moving: Points3D,
        *,
        with_scale: bool = True,
        eps_rank: float = 1e-9,
) -> tuple[FloatArray, FloatArray, float]:
    """
    Fit fixed ≈ s R moving + t from N >= 3 correspondences.

    Returns:
      (R (3,3), t (3,), s). s is 1.0 when with_scale is False.

    Raises:
      DegenerateConfigurationError if fewer than 3 points, either point set
      is collinear / coincident, or the SVD fails.
    """
    if fixed.shape != moving.shape:
        raise ValueError(f"fixed and moving must have same shape, got {fixed.shape} vs {moving.shape}")
    if fixed.ndim != 2 or fixed.shape[1] != 3:
        raise ValueError(f"Expected pts shape (N,3), got {fixed.shape}")

    n = fixed.shape[0]
    if n < 3:
        raise DegenerateConfigurationError(f"Need at least 3 correspondences, got {n}")
    if not (np.isfinite(fixed).all() and np.isfinite(moving).all()):
        raise DegenerateConfigurationError("Non-finite coordinates in correspondences")

    # Both sets must span a plane, otherwise rotation about the line is free
    if is_collinear(moving, eps_rank) or is_collinear(fixed, eps_rank):
        raise DegenerateConfigurationError("Collinear or coincident landmarks")

    mu_f = fixed.mean(axis=0)
    mu_m = moving.mean(axis=0)
    fc = fixed - mu_f
    mc = moving - mu_m

    H = (mc.T @ fc) / n
    try:
        U, S, Vt = np.linalg.svd(H)
    except np.linalg.LinAlgError as exc:
        raise DegenerateConfigurationError(f"SVD failed: {exc}") from exc

    # rank(H) < 2 -> rotation underdetermined
    spread = np.sqrt(float(np.sum(fc * fc)) * float(np.sum(mc * mc))) / n
    if S[0] <= eps_rank * spread or S[1] <= eps_rank * S[0]:
        raise DegenerateConfigurationError(f"Cross-covariance rank < 2 (singular values {S})")

    d = np.ones(3, dtype=np.float64)
    if np.linalg.det(Vt.T @ U.T) < 0.0:
        d[2] = -1.0
    R = Vt.T @ np.diag(d) @ U.T

    if with_scale:
        var_m = float(np.sum(mc * mc)) / n
        s = float(np.sum(S * d)) / var_m
        if not np.isfinite(s) or s <= 0.0:
            raise DegenerateConfigurationError(f"Invalid scale {s}")
    else:
        s = 1.0

    t = mu_f - s * (R @ mu_m)
    if not (np.isfinite(R).all() and np.isfinite(t).all()):
        raise DegenerateConfigurationError("Non-finite transform")
    return R, t, s


# ---------- Parameter packing ----------
def pack_params(R: FloatArray, t: FloatArray, s: float | None = None) -> Parameters:
    parts = [rotation_to_versor(R), np.asarray(t, dtype=np.float64).reshape(3)]
    if s is not None:
        parts.append(np.array([s], dtype=np.float64))
    return np.concatenate(parts)


def unpack_params(params: Parameters) -> tuple[FloatArray, FloatArray, float]:
    params = np.asarray(params, dtype=np.float64).reshape(-1)
    if params.shape[0] not in (RIGID_N_PARAMS, SIMILARITY_N_PARAMS):
        raise ValueError(f"Expected 6 or 7 parameters, got {params.shape[0]}")
    R = versor_to_rotation(params[:3])
    t = params[3:6]
    s = float(params[6]) if params.shape[0] == SIMILARITY_N_PARAMS else 1.0
    return R, t, s


# ---------- Apply transform ----------
def apply_similarity(R: FloatArray, t: FloatArray, s: float, pts: Points3D) -> Points3D:
    """
    Apply s R p + t to (N,3) points. Each point is a row, so multiply by R^T.
    """
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"Expected pts shape (N,3), got {pts.shape}")
    return (s * (pts @ R.T) + t.reshape(1, 3)).astype(np.float64)


def similarity_matrix(R: FloatArray, t: FloatArray, s: float) -> Mat4x4:
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = s * R
    T[:3, 3] = t
    return T
