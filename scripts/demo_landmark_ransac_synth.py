import logging

import numpy as np
from scipy.spatial.transform import Rotation

from landmarkreg import CorrespondenceStore, RansacParams, SimilarityFitter, register_landmarks

logging.basicConfig(level=logging.INFO, format="%(asctime)s - %(levelname)s - %(message)s")

# Define a known similarity transform
R_true = Rotation.from_euler("xyz", [20.0, -10.0, 35.0], degrees=True).as_matrix()
t_true = np.array([30.0, 10.0, -5.0])
s_true = 1.3

rng = np.random.default_rng(0)
moving = rng.uniform(-50.0, 50.0, size=(60, 3))
fixed = s_true * moving @ R_true.T + t_true + rng.normal(scale=0.05, size=(60, 3))

# 40% wrong matches
n_bad = 24
fixed[:n_bad] = rng.uniform(-80.0, 80.0, size=(n_bad, 3))

store = CorrespondenceStore.from_point_sets(fixed, moving)
fitter = SimilarityFitter(delta=0.5)
result = register_landmarks(store, fitter, RansacParams(check_edge_length=0.9, seed=0))

if not result.success:
    print("RANSAC estimate failed, degenerate configuration?")
else:
    T_true = np.eye(4)
    T_true[:3, :3] = s_true * R_true
    T_true[:3, 3] = t_true
    print("T_true:\n", T_true)
    print("T_est:\n", fitter.to_matrix(result.parameters))
    print("parameters:", result.parameters)
print("inlier fraction:", result.inlier_fraction)
print("inlier RMSE:", result.rmse)
