"""
Landmarks package
"""
from .clean_points import clean_correspondences
from .store import CorrespondenceStore, make_correspondences, register_landmarks

__all__ = [
    "clean_correspondences",
    "CorrespondenceStore", "make_correspondences", "register_landmarks",
]
