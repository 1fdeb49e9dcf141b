from __future__ import annotations

import math
import types

import numpy as np
import pytest

from landmarkreg.ransac import (
    AffineFitter, DegenerateConfigurationError, InsufficientDataError, NoConsensusError, NoConsensusFound,
    RansacParams, RigidFitter, SimilarityFitter, ransac,
)
from landmarkreg.ransac import core
from landmarkreg.ransac.core import _required_iter_for_confidence

from conftest import make_dataset


def test_three_exact_plus_two_outliers(true_rotation, true_translation, true_matrix):
    data = make_dataset(3, 2, R=true_rotation, t=true_translation, s=1.4)
    fitter = SimilarityFitter(delta=0.01)

    result = ransac(fitter, data, params=RansacParams(max_iters=1000, seed=0))

    assert result.success
    assert result.reason is None
    assert result.inlier_fraction == pytest.approx(0.6)
    np.testing.assert_array_equal(result.inliers, [True, True, True, False, False])
    assert result.rmse < 1e-9
    np.testing.assert_allclose(fitter.to_matrix(result.parameters), true_matrix(1.4), atol=1e-8)


def test_seventy_percent_inliers(true_rotation, true_translation, true_matrix):
    data = make_dataset(70, 30, R=true_rotation, t=true_translation, s=0.8, noise=1e-3, seed=11)
    fitter = SimilarityFitter(delta=0.05)

    result = ransac(fitter, data, params=RansacParams(max_iters=2000, confidence=0.999, seed=4))

    assert result.success
    assert abs(result.inlier_fraction - 0.7) <= 0.05
    assert result.rmse < 0.01
    np.testing.assert_allclose(fitter.to_matrix(result.parameters), true_matrix(0.8), atol=1e-2)
    assert result.iterations < 2000


def test_same_seed_same_result(true_rotation, true_translation):
    data = make_dataset(40, 20, R=true_rotation, t=true_translation, noise=1e-3, seed=5)
    params = RansacParams(seed=123)

    first = ransac(RigidFitter(delta=0.05), data, params=params)
    second = ransac(RigidFitter(delta=0.05), data, params=params)

    np.testing.assert_array_equal(first.parameters, second.parameters)
    assert first.inlier_fraction == second.inlier_fraction
    assert first.iterations == second.iterations


def test_exactly_minimal_consistent_data(true_rotation, true_translation, true_matrix):
    data = make_dataset(3, 0, R=true_rotation, t=true_translation)
    fitter = RigidFitter(delta=1e-6)

    result = ransac(fitter, data)

    assert result.inlier_fraction == 1.0
    assert result.inliers.all()
    assert result.iterations == 1
    np.testing.assert_allclose(fitter.to_matrix(result.parameters), true_matrix(), atol=1e-9)


class _CountingFitter(RigidFitter):
    calls = 0

    def fit_least_squares(self, data):
        type(self).calls += 1
        return super().fit_least_squares(data)


def test_insufficient_data_raises_before_fitting(true_rotation, true_translation):
    data = make_dataset(2, 0, R=true_rotation, t=true_translation)
    fitter = _CountingFitter()
    with pytest.raises(InsufficientDataError):
        ransac(fitter, data)
    assert _CountingFitter.calls == 0


def test_min_samples_above_minimum_is_insufficient(true_rotation, true_translation):
    data = make_dataset(4, 0, R=true_rotation, t=true_translation)
    with pytest.raises(InsufficientDataError):
        ransac(RigidFitter(), data, params=RansacParams(min_samples=5))


def test_min_samples_below_minimum_rejected(true_rotation, true_translation):
    data = make_dataset(10, 0, R=true_rotation, t=true_translation)
    with pytest.raises(ValueError):
        ransac(AffineFitter(), data, params=RansacParams(min_samples=3))


def test_larger_sample_size(true_rotation, true_translation, true_matrix):
    data = make_dataset(20, 4, R=true_rotation, t=true_translation, seed=8)
    fitter = RigidFitter(delta=1e-6)
    result = ransac(fitter, data, params=RansacParams(min_samples=5, seed=1))
    assert result.inlier_fraction == pytest.approx(20 / 24)
    np.testing.assert_allclose(fitter.to_matrix(result.parameters), true_matrix(), atol=1e-9)


def test_all_degenerate_samples_give_failure_result():
    t = np.linspace(0.0, 1.0, 6).reshape(-1, 1)
    line = t * np.array([[1.0, 2.0, 3.0]])
    data = np.hstack([line + 1.0, line])
    fitter = SimilarityFitter(delta=0.1)

    result = ransac(fitter, data, params=RansacParams(max_iters=20, max_sample_retries=3))

    assert not result.success
    assert result.parameters.size == 0
    assert result.reason == NoConsensusFound
    assert result.inlier_fraction == 0.0
    assert math.isnan(result.rmse)
    assert result.iterations == 20
    assert not result.inliers.any()
    with pytest.raises(NoConsensusError):
        result.raise_for_failure()


def test_edge_length_and_sample_agreement_checks(true_rotation, true_translation, true_matrix):
    data = make_dataset(30, 30, R=true_rotation, t=true_translation, seed=2)
    fitter = RigidFitter(delta=1e-6)
    params = RansacParams(seed=0, check_edge_length=0.9, check_sample_agreement=True, max_sample_retries=1000)

    result = ransac(fitter, data, params=params)

    assert result.inlier_fraction == pytest.approx(0.5)
    np.testing.assert_allclose(fitter.to_matrix(result.parameters), true_matrix(), atol=1e-9)


def test_paired_agreement_data(true_rotation, true_translation):
    data = make_dataset(10, 5, R=true_rotation, t=true_translation, seed=3)
    agree = make_dataset(20, 10, R=true_rotation, t=true_translation, seed=4)
    fitter = RigidFitter(delta=1e-6)

    result = ransac(fitter, data, agree_data=agree)

    assert result.inlier_fraction == pytest.approx(10 / 15)
    assert result.agree_inliers is not None
    assert result.agree_inliers.sum() == 20
    assert result.num_inliers == 30
    assert result.refine_on == "data"


@pytest.mark.parametrize("refine_on", ["agree", "union"])
def test_refine_on_agreement_rows(refine_on, true_rotation, true_translation, true_matrix):
    data = make_dataset(10, 5, R=true_rotation, t=true_translation, s=2.0, seed=3)
    agree = make_dataset(20, 10, R=true_rotation, t=true_translation, s=2.0, seed=4)
    fitter = SimilarityFitter(delta=1e-6)

    result = ransac(fitter, data, agree_data=agree, params=RansacParams(refine_on=refine_on))

    assert result.refine_on == refine_on
    assert result.rmse < 1e-9
    np.testing.assert_allclose(fitter.to_matrix(result.parameters), true_matrix(2.0), atol=1e-9)


def test_refine_on_agree_requires_agree_data(true_rotation, true_translation):
    data = make_dataset(10, 0, R=true_rotation, t=true_translation)
    with pytest.raises(ValueError):
        ransac(RigidFitter(), data, params=RansacParams(refine_on="agree"))


def test_nearest_agreement_mode(true_rotation, true_translation):
    data = make_dataset(8, 4, R=true_rotation, t=true_translation, seed=6)
    rng = np.random.default_rng(9)
    cloud = make_dataset(40, 0, R=true_rotation, t=true_translation, seed=10)
    # clouds are only paired by index after shuffling the fixed side
    agree = np.hstack([cloud[rng.permutation(40), :3], cloud[:, 3:]])
    fitter = RigidFitter(delta=1e-6)

    result = ransac(fitter, data, agree_data=agree, params=RansacParams(agree_mode="nearest"))

    assert result.success
    assert result.agree_inliers.all()
    assert result.inlier_fraction == pytest.approx(8 / 12)


def test_timeout_stops_the_loop(monkeypatch, true_rotation, true_translation):
    data = make_dataset(5, 50, R=true_rotation, t=true_translation, seed=12)
    ticks = iter(range(1000))
    monkeypatch.setattr(core, "time", types.SimpleNamespace(monotonic=lambda: float(next(ticks))))

    result = ransac(RigidFitter(delta=1e-6), data, params=RansacParams(max_iters=500, timeout_s=3.5))

    # start=0, checks at 1, 2, 3 run, the check at 4 stops
    assert result.iterations == 3


@pytest.mark.parametrize("kwargs", [
    {"max_iters": 0},
    {"confidence": 1.0},
    {"confidence": 0.0},
    {"min_samples": 0},
    {"check_edge_length": 0.0},
    {"agree_mode": "nearest", "refine_on": "union"},
    {"refine_on": "everything"},
    {"timeout_s": 0.0},
])
def test_invalid_params(kwargs):
    with pytest.raises(ValueError):
        RansacParams(**kwargs)


def test_required_iterations():
    assert _required_iter_for_confidence(p_all_inliers=0.99, inlier_ratio=1.0, sample_size=3) == 1
    assert _required_iter_for_confidence(p_all_inliers=0.99, inlier_ratio=0.0, sample_size=3) >= 10**9
    # log(0.01) / log(1 - 0.5^3) = 34.5
    assert _required_iter_for_confidence(p_all_inliers=0.99, inlier_ratio=0.5, sample_size=3) == 35


def test_as_metrics(true_rotation, true_translation):
    data = make_dataset(6, 0, R=true_rotation, t=true_translation)
    result = ransac(RigidFitter(delta=1e-6), data)
    fraction, rmse = result.as_metrics()
    assert fraction == 1.0
    assert rmse < 1e-9


def test_non_finite_row_does_not_crash(true_rotation, true_translation, true_matrix):
    data = make_dataset(6, 2, R=true_rotation, t=true_translation, seed=13)
    data[7, 0] = np.nan
    fitter = RigidFitter(delta=1e-6)

    result = ransac(fitter, data, params=RansacParams(seed=0))

    assert result.success
    assert not result.inliers[7]
    assert result.inlier_fraction == pytest.approx(6 / 8)
    np.testing.assert_allclose(fitter.to_matrix(result.parameters), true_matrix(), atol=1e-9)


def test_empty_refine_set_falls_back_to_data_inliers(true_rotation, true_translation, true_matrix):
    data = make_dataset(10, 0, R=true_rotation, t=true_translation, seed=14)
    agree = make_dataset(0, 10, R=true_rotation, t=true_translation, seed=15)
    fitter = RigidFitter(delta=1e-6)

    result = ransac(fitter, data, agree_data=agree, params=RansacParams(refine_on="agree"))

    assert result.success
    assert not result.agree_inliers.any()
    assert result.refine_on == "data"
    assert result.inlier_fraction == 1.0
    assert result.rmse < 1e-9
    np.testing.assert_allclose(fitter.to_matrix(result.parameters), true_matrix(), atol=1e-9)


class _MinimalOnlyFitter(RigidFitter):
    def fit_least_squares(self, data):
        if len(data) > self.min_samples:
            raise DegenerateConfigurationError("only minimal samples can be fitted")
        return super().fit_least_squares(data)


def test_degenerate_refit_keeps_sampled_model(true_rotation, true_translation):
    data = make_dataset(8, 2, R=true_rotation, t=true_translation, noise=1e-3, seed=16)
    fitter = _MinimalOnlyFitter(delta=0.05)

    result = ransac(fitter, data, params=RansacParams(seed=0))

    assert result.success
    assert result.inlier_fraction == pytest.approx(0.8)
    assert 0.0 < result.rmse <= 0.05
    # the sampled model is not the least-squares solution on the inliers
    refit = RigidFitter().fit_least_squares(data[result.inliers])
    assert not np.allclose(result.parameters, refit, rtol=0.0, atol=1e-12)


def test_edge_length_check_rejected_for_affine():
    rng = np.random.default_rng(17)
    data = np.hstack([rng.uniform(-1, 1, size=(10, 3)), rng.uniform(-1, 1, size=(10, 3))])
    with pytest.raises(ValueError):
        ransac(AffineFitter(), data, params=RansacParams(check_edge_length=0.9))
