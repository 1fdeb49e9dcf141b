"""
landmarkreg: robust rigid / similarity / affine registration of 3D landmark
correspondences with RANSAC.
"""
from .ransac import (
    RigidFitter, SimilarityFitter, AffineFitter,
    RansacParams, RansacResult, ransac,
    DegenerateConfigurationError, InsufficientDataError, NoConsensusError, NoConsensusFound,
)
from .landmarks import CorrespondenceStore, make_correspondences, register_landmarks

__all__ = [
    "RigidFitter", "SimilarityFitter", "AffineFitter",
    "RansacParams", "RansacResult", "ransac",
    "DegenerateConfigurationError", "InsufficientDataError", "NoConsensusError", "NoConsensusFound",
    "CorrespondenceStore", "make_correspondences", "register_landmarks",
]
