from __future__ import annotations

import numpy as np
import pytest
from scipy.spatial.transform import Rotation


def similarity_transform(R: np.ndarray, t: np.ndarray, s: float, pts: np.ndarray) -> np.ndarray:
    return s * (pts @ R.T) + t


def make_dataset(
        n_inliers: int,
        n_outliers: int,
        *,
        R: np.ndarray,
        t: np.ndarray,
        s: float = 1.0,
        noise: float = 0.0,
        box: float = 10.0,
        outlier_box: float = 50.0,
        seed: int = 0,
) -> np.ndarray:
    """
    (N,6) rows [fixed, moving]; the first n_inliers rows satisfy
    fixed = s R moving + t (+ noise), the rest are random pairs.
    """
    rng = np.random.default_rng(seed)
    moving = rng.uniform(-box, box, size=(n_inliers, 3))
    fixed = similarity_transform(R, t, s, moving)
    if noise > 0:
        fixed = fixed + rng.normal(scale=noise, size=fixed.shape)

    out_moving = rng.uniform(-outlier_box, outlier_box, size=(n_outliers, 3))
    out_fixed = rng.uniform(-outlier_box, outlier_box, size=(n_outliers, 3))

    inliers = np.hstack([fixed, moving])
    outliers = np.hstack([out_fixed, out_moving])
    return np.vstack([inliers, outliers])


@pytest.fixture
def true_rotation() -> np.ndarray:
    return Rotation.from_euler("xyz", [30.0, -20.0, 45.0], degrees=True).as_matrix()


@pytest.fixture
def true_translation() -> np.ndarray:
    return np.array([5.0, -2.0, 3.5])


@pytest.fixture
def true_matrix(true_rotation, true_translation):
    def _make(s: float = 1.0) -> np.ndarray:
        T = np.eye(4)
        T[:3, :3] = s * true_rotation
        T[:3, 3] = true_translation
        return T
    return _make
