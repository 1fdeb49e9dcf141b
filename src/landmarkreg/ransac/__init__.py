"""
RANSAC package

This module provides:
- A reusable generic RANSAC implementation
- Typed geometry primitives
- Transform fitter interface definitions
- Rigid, similarity and affine 3D transform fitters
"""

from .types import (
    FloatArray, BoolArray, Points3D, Correspondences, Parameters, Mask, Mat4x4,
    TransformFitter, RansacParams, RansacResult, split_correspondences,
)

from .errors import (
    LandmarkRegistrationError, DegenerateConfigurationError, InsufficientDataError,
    NoConsensusError, NoConsensusFound,
)

from .similarity import (
    fit_similarity_least_squares, apply_similarity, rotation_to_versor, versor_to_rotation,
)

from .similarity_fitter import RigidFitter, SimilarityFitter

from .affine import fit_affine_least_squares, apply_affine, affine_from_matrix

from .affine_fitter import AffineFitter

from .consistency import check_edge_length

from .agreement import AgreementScorer

from .core import ransac

__all__ = [
    "FloatArray", "BoolArray", "Points3D", "Correspondences", "Parameters", "Mask", "Mat4x4",
    "TransformFitter", "RansacParams", "RansacResult", "split_correspondences",
    "LandmarkRegistrationError", "DegenerateConfigurationError", "InsufficientDataError",
    "NoConsensusError", "NoConsensusFound",
    "fit_similarity_least_squares", "apply_similarity", "rotation_to_versor", "versor_to_rotation",
    "RigidFitter", "SimilarityFitter",
    "fit_affine_least_squares", "apply_affine", "affine_from_matrix",
    "AffineFitter",
    "check_edge_length",
    "AgreementScorer",
    "ransac",
]
