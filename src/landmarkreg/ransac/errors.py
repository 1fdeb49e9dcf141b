"""
Exceptions raised by the landmark registration fitters and the RANSAC driver.

- DegenerateConfigurationError: a subset cannot determine the transform.
  The RANSAC loop recovers from it (the iteration is wasted).
- InsufficientDataError: the whole correspondence set is smaller than the
  minimal sample. Fatal, raised before any iteration.
- NoConsensusFound: not an exception. It is the reason string carried by a
  failed RansacResult. Use RansacResult.raise_for_failure() to turn it into
  NoConsensusError.
"""

from __future__ import annotations


class LandmarkRegistrationError(Exception):
    """Base class for landmarkreg errors."""


class DegenerateConfigurationError(LandmarkRegistrationError, ValueError):
    pass


class InsufficientDataError(LandmarkRegistrationError, ValueError):
    pass


class NoConsensusError(LandmarkRegistrationError):
    pass


NoConsensusFound = "no_consensus_found"
