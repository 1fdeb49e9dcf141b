"""
Generic RANSAC loop (transform-agnostic).

RANSAC overview:
- Randomly sample a *minimal* subset of correspondences
- Reject degenerate / edge-inconsistent samples and redraw
- Fit candidate parameters from that subset
- Score all correspondences (and the agreement rows) with the squared-distance test
- Keep the hypothesis with the most inliers (ties keep the earlier one)
- Refit using all inliers (least squares) to get the final parameters

Uses the TransformFitter protocol from types.py:
    RANSAC works with the rigid, similarity and affine fitters
"""
from __future__ import annotations

import logging
import os
import time
from typing import Optional

import numpy as np

from .agreement import AgreementScorer
from .consistency import check_edge_length
from .errors import DegenerateConfigurationError, InsufficientDataError
from .types import (
    Correspondences, FloatArray, Mask, Parameters, RansacParams, RansacResult,
    TransformFitter, split_correspondences,
)

logger = logging.getLogger(__name__)
_RANSAC_DEBUG = os.environ.get("LANDMARKREG_RANSAC_DEBUG", "0") == "1"
if _RANSAC_DEBUG:
    logger.setLevel(logging.DEBUG)


def _required_iter_for_confidence(
        *,
        p_all_inliers: float,
        inlier_ratio: float,
        sample_size: int,
) -> int:
    """
    Compute the number of RANSAC iterations needed so that the probability
    of having drawn at least ONE all-inlier minimal sample is >= p_all_inliers.

    inlier ratio w = (# inliers) / N, Minimal sample m = min_samples,
    - P(all-inliers) = w^m
    - P(not-all-inlier-for-k-times) = (1 - w^m)^k
    - P(at-least-once-all-inliers) = 1 - (1 - w^m)^k >= p

    Formula:
       k >= log(1 - p) / log(1 - w^m)

    Edge cases:
     - w == 0  -> impossible, return "infinite-ish" (capped by max_iters)
     - w == 1  -> 1 iteration is enough
    """
    # Clamp inputs to avoid log(0)
    p = float(np.clip(p_all_inliers, 1e-12, 1.0 - 1e-12))
    w = float(np.clip(inlier_ratio, 0.0, 1.0))
    m = int(sample_size)

    if m <= 0:
        raise ValueError("sample_size must be >= 1")

    if w >= 1.0:
        return 1

    if w <= 0.0:
        return int(1e9)

    # If w^m is extremely tiny, log(1 - w^m) close to 0
    w_to_m = float(np.clip(w ** m, 1e-12, 1.0 - 1e-12))

    k = int(np.ceil(np.log(1.0 - p) / np.log(1.0 - w_to_m)))
    return max(1, k)


def _draw_sample(
        rng: np.random.Generator,
        data: Correspondences,
        sample_size: int,
        fitter: TransformFitter,
        params: RansacParams,
) -> Optional[np.ndarray]:
    """
    Draw unique indices until the sample is usable, at most
    max_sample_retries redraws. Returns None when the cap is exhausted.
    """
    n = data.shape[0]
    for _ in range(params.max_sample_retries + 1):
        sample_idx = rng.choice(n, size=sample_size, replace=False)
        sample = data[sample_idx]
        if fitter.is_degenerate(sample):
            continue
        if params.check_edge_length is not None and not check_edge_length(
                sample, params.check_edge_length, fixed_scale=fitter.preserves_length):
            continue
        return sample_idx
    return None


def _refinement_rows(
        refine_on: str,
        data: Correspondences,
        inliers: Mask,
        scorer: AgreementScorer,
        agree_inliers: Optional[Mask],
) -> Correspondences:
    """Inlier correspondences for the final least-squares pass."""
    parts = [np.empty((0, data.shape[1]), dtype=np.float64)]
    if refine_on in ("data", "union"):
        parts.append(data[inliers])
    # nearest-mode agreement rows are not correspondences
    if refine_on in ("agree", "union") and scorer.mode == "paired" and agree_inliers is not None:
        parts.append(scorer.data[agree_inliers])
    return np.vstack(parts)


def _rmse(sq_err: FloatArray) -> float:
    if sq_err.size == 0:
        return float("nan")
    return float(np.sqrt(np.mean(sq_err)))


def ransac(
        fitter: TransformFitter,
        data: Correspondences,
        *,
        agree_data: Optional[Correspondences] = None,
        params: RansacParams = RansacParams(),
) -> RansacResult:
    """
    Robustly estimate transform parameters mapping moving -> fixed points.

    Inputs:
    - fitter: provides fit_minimal, fit_least_squares, agree_mask, delta
    - data: (N,6) correspondences [fixed xyz, moving xyz], used for sampling,
      scoring and refinement
    - agree_data: optional (M,6) rows used only for scoring (and for the
      final refit if params.refine_on asks for it)
    - params: RansacParams

    Returns:
    - RansacResult. On failure its parameters are empty and reason is
      NoConsensusFound; check result.success before use.

    Raises:
    - InsufficientDataError if N < min_samples (no iteration is attempted)
    """
    # ---------- Input validation ----------
    fixed, moving = split_correspondences(data)
    data = np.hstack([fixed, moving])
    n = data.shape[0]

    sample_size = fitter.min_samples if params.min_samples is None else int(params.min_samples)
    if sample_size < fitter.min_samples:
        raise ValueError(
            f"min_samples={sample_size} is below the {type(fitter).__name__} minimum of {fitter.min_samples}"
        )
    if n < sample_size:
        raise InsufficientDataError(f"Need at least {sample_size} correspondences, got {n}")

    if params.check_edge_length is not None and not fitter.preserves_shape:
        raise ValueError(f"check_edge_length needs a rigid or similarity fitter, got {type(fitter).__name__}")

    scorer = AgreementScorer(fitter, agree_data, params.agree_mode)
    if params.refine_on != "data" and not scorer.enabled:
        raise ValueError(f"refine_on={params.refine_on!r} requires agree_data")

    # RNG: reproducible sampling
    rng = np.random.default_rng(params.seed)

    # Track the best hypothesis
    best_params: Optional[Parameters] = None
    best_inliers: Optional[Mask] = None
    best_agree_inliers: Optional[Mask] = None
    best_count = 0

    target_iters = params.max_iters
    iters_run = 0
    wasted = 0
    start = time.monotonic()

    # ---------- Main RANSAC Loop ----------
    i = 0
    while i < params.max_iters and i < target_iters:
        if params.timeout_s is not None and time.monotonic() - start >= params.timeout_s:
            logger.info("RANSAC timeout after %d iterations (%.3fs)", iters_run, params.timeout_s)
            break
        iters_run = i + 1

        sample_idx = _draw_sample(rng, data, sample_size, fitter, params)
        if sample_idx is None:
            wasted += 1
            i += 1
            continue
        sample = data[sample_idx]

        try:
            candidate = fitter.fit_minimal(sample)
        except DegenerateConfigurationError:
            wasted += 1
            i += 1
            continue

        if params.check_sample_agreement and not np.all(fitter.agree_mask(candidate, sample)):
            wasted += 1
            i += 1
            continue

        inliers: Mask = fitter.agree_mask(candidate, data)
        agree_inliers = scorer.score(candidate)

        num_data_inliers = int(np.count_nonzero(inliers))
        count = num_data_inliers
        if agree_inliers is not None:
            count += int(np.count_nonzero(agree_inliers))

        # Strictly better only: on a tie the earlier hypothesis is kept
        if count > best_count:
            best_params = candidate
            best_inliers = inliers
            best_agree_inliers = agree_inliers
            best_count = count

            w = num_data_inliers / float(n)
            iter_needed = _required_iter_for_confidence(
                p_all_inliers=params.confidence,
                inlier_ratio=w,
                sample_size=sample_size,
            )
            target_iters = min(target_iters, max(iter_needed, iters_run))
            logger.debug(
                "[RANSAC] better model: inliers=%d/%d (total %d), w=%.3f, target_iters=%d",
                num_data_inliers, n, best_count, w, target_iters,
            )

        i += 1

    n_agree = len(scorer) if scorer.enabled else None
    if best_params is None or best_inliers is None:
        logger.warning("RANSAC found no consensus in %d iterations (%d wasted)", iters_run, wasted)
        return RansacResult.failure(
            n_data=n, n_agree=n_agree, iterations=iters_run,
            threshold=fitter.delta, refine_on=params.refine_on,
        )

    # ---------- Refinement ----------
    refine_on = params.refine_on
    refine_rows = _refinement_rows(refine_on, data, best_inliers, scorer, best_agree_inliers)
    if refine_rows.shape[0] == 0:
        for fallback in ("data", "agree"):
            rows = _refinement_rows(fallback, data, best_inliers, scorer, best_agree_inliers)
            if rows.shape[0] > 0:
                logger.info("No inliers in the %r refinement set, refining on %r instead", refine_on, fallback)
                refine_on, refine_rows = fallback, rows
                break

    if refine_rows.shape[0] == 0:
        # Only nearest-neighbour agreement points support the model: nothing paired to refit on
        logger.info("No paired inliers to refit on, keeping sampled model")
        refine_on = "none"
        final_params = best_params
        final_rmse = _rmse(scorer.squared_residuals(best_params)[best_agree_inliers])
    else:
        try:
            final_params = fitter.fit_least_squares(refine_rows)
        except DegenerateConfigurationError as exc:
            # Least squares refit failed, fall back to the best sampled hypothesis
            logger.debug("Refit on %d inliers failed (%s), keeping sampled model", refine_rows.shape[0], exc)
            final_params = best_params
        final_rmse = _rmse(fitter.squared_residuals(final_params, refine_rows))

    num_data_inliers = int(np.count_nonzero(best_inliers))

    logger.info(
        "RANSAC done: inliers=%d/%d, rmse=%.6g, iterations=%d (%d wasted)",
        num_data_inliers, n, final_rmse, iters_run, wasted,
    )

    return RansacResult(
        parameters=np.asarray(final_params, dtype=np.float64),
        inliers=best_inliers,
        agree_inliers=best_agree_inliers,
        num_inliers=best_count,
        inlier_fraction=num_data_inliers / float(n),
        rmse=final_rmse,
        iterations=iters_run,
        threshold=fitter.delta,
        refine_on=refine_on,
    )
