"""
3D affine model utilities (4x4 homogeneous form).

We estimate an affine transform such that:

    fixed  ≈  A @ moving + t

where:

    T = [[a00, a01, a02, tx],
         [a10, a11, a12, ty],
         [a20, a21, a22, tz],
         [  0,   0,   0,  1]]

Unknowns are 12 parameters, ordered as ITK's AffineTransform:
    [a00, a01, a02, a10, a11, a12, a20, a21, a22, tx, ty, tz]
"""

from __future__ import annotations

import numpy as np

from .errors import DegenerateConfigurationError
from .types import FloatArray, Mat4x4, Parameters, Points3D

AFFINE_N_PARAMS = 12


# ---------- Degeneracy Check Helpers ----------
def _tetra_volume6(p0: np.ndarray, p1: np.ndarray, p2: np.ndarray, p3: np.ndarray) -> float:
    """
    Return 6x the volume of the tetrahedron (p0, p1, p2, p3):

        vol6 = |(p1 - p0) . ((p2 - p0) x (p3 - p0))|

    If vol6 is near 0, the four points are coplanar (degenerate for affine).
    """
    return float(abs(np.dot(p1 - p0, np.cross(p2 - p0, p3 - p0))))


def is_coplanar(pts: Points3D, eps_rank: float = 1e-9) -> bool:
    """
    True if the points do not span 3D space.

    For exactly 4 points use the tetrahedron volume, otherwise the third
    singular value of the centred points. Coincidence is judged relative to
    the coordinate magnitude. Non-finite points count as degenerate.
    """
    n = pts.shape[0]
    if n < 4 or not np.isfinite(pts).all():
        return True
    magnitude = float(np.max(np.abs(pts)))
    if n == 4:
        scale = float(np.max(np.linalg.norm(pts - pts[0], axis=1)))
        if scale <= eps_rank * magnitude:
            return True
        return _tetra_volume6(pts[0], pts[1], pts[2], pts[3]) <= eps_rank * scale ** 3
    try:
        sv = np.linalg.svd(pts - pts.mean(axis=0, keepdims=True), compute_uv=False)
    except np.linalg.LinAlgError:
        return True
    if sv[0] <= eps_rank * magnitude:
        return True
    return bool(sv[2] <= eps_rank * sv[0])


# ---------- Affine Fitting ----------
def _theta_to_mat4x4(theta: np.ndarray) -> Mat4x4:
    """
    Convert parameter vector theta = [a00..a22, tx, ty, tz] into a 4x4 affine matrix.
    """
    theta = np.asarray(theta, dtype=np.float64).reshape(-1)
    if theta.shape[0] != AFFINE_N_PARAMS:
        raise ValueError(f"Expected {AFFINE_N_PARAMS} affine parameters, got {theta.shape[0]}")
    T = np.eye(4, dtype=np.float64)
    T[:3, :3] = theta[:9].reshape(3, 3)
    T[:3, 3] = theta[9:]
    return T


def fit_affine_least_squares(fixed: Points3D, moving: Points3D) -> Parameters:
    """
    Fit a 3D affine transform from N >= 4 correspondences using least squares.

    Uses np.linalg.lstsq(A, b): finds theta that minimizes ||A theta - b||^2.

    Raises DegenerateConfigurationError if the system does not have full rank
    (coplanar / repeated points) or the solve fails.
    """
    if fixed.shape != moving.shape:
        raise ValueError(f"fixed and moving must have same shape, got {fixed.shape} vs {moving.shape}")
    if fixed.ndim != 2 or fixed.shape[1] != 3:
        raise ValueError(f"Expected pts shape (N,3), got {fixed.shape}")

    n = fixed.shape[0]
    if n < 4:
        raise DegenerateConfigurationError(f"Need at least 4 correspondences, got {n}")

    # A is (3N x 12), b is (3N,)
    # For each correspondence (x, y, z) -> (x', y', z'):
    #   x' = a00*x + a01*y + a02*z + tx   (likewise y', z')
    A = np.zeros((3 * n, AFFINE_N_PARAMS), dtype=np.float64)
    for k in range(3):
        A[k::3, 3 * k:3 * k + 3] = moving
        A[k::3, 9 + k] = 1.0
    bvec = fixed.reshape(-1).astype(np.float64)

    try:
        theta, _, rank, _ = np.linalg.lstsq(A, bvec, rcond=None)
    except np.linalg.LinAlgError as exc:
        raise DegenerateConfigurationError(f"lstsq failed: {exc}") from exc

    # 12 unknowns need 12 independent constraints: coplanar or repeated
    # moving points leave the out-of-plane column free.
    if rank < AFFINE_N_PARAMS:
        raise DegenerateConfigurationError(f"Affine system rank {rank} < {AFFINE_N_PARAMS}")
    if not np.isfinite(theta).all():
        raise DegenerateConfigurationError("Non-finite affine parameters")
    return theta.astype(np.float64)


# ---------- Apply transform ----------
def apply_affine(theta: Parameters, pts: Points3D) -> Points3D:
    if pts.ndim != 2 or pts.shape[1] != 3:
        raise ValueError(f"Expected pts shape (N,3), got {pts.shape}")
    T = _theta_to_mat4x4(theta)
    return (pts @ T[:3, :3].T + T[:3, 3]).astype(np.float64)


def affine_matrix(theta: Parameters) -> Mat4x4:
    return _theta_to_mat4x4(theta)


def affine_from_matrix(T: FloatArray) -> Parameters:
    T = np.asarray(T, dtype=np.float64)
    if T.shape not in ((4, 4), (3, 4)):
        raise ValueError(f"Expected T shape (4,4) or (3,4), got {T.shape}")
    return np.concatenate([T[:3, :3].reshape(-1), T[:3, 3]])
