import numpy as np
import pytest

from mrf_trend.aggregation import CoalescentCellStats, CountCellStats, aggregate
from mrf_trend.calibration import calibrate_zeta, exceedance_probability, naive_log_trajectory
from mrf_trend.errors import CalibrationError
from mrf_trend.grid import equal_width_grid
from mrf_trend.observations import CoalescentObservations


def _coalescent_stats() -> CoalescentCellStats:
    obs = CoalescentObservations(samp_times=[0.0], n_sampled=[10], coal_times=np.arange(1.0, 10.0))
    return aggregate(equal_width_grid(9, max_time=9.0), obs)


def _count_stats() -> CountCellStats:
    return CountCellStats(
        counts=np.array([3, 0, 7, 12, 5, 2, 9, 4]),
        exposure=np.array([1.0, 1.0, 2.0, 1.5, 1.0, 0.5, 3.0, 1.0]),
    )


def test_naive_estimate_uses_floor_for_empty_cells():
    stats = CoalescentCellStats(events=np.array([2, 0, 1]), opportunity=np.array([4.0, 3.0, 1.0]))
    naive = naive_log_trajectory(stats, floor=0.5)
    assert np.allclose(naive, np.log([2.0, 6.0, 1.0]))


@pytest.mark.parametrize("order", [1, 2])
def test_half_cauchy_zeta_matches_closed_form(order):
    stats = _coalescent_stats()
    calib = calibrate_zeta(stats, order=order, alpha=0.05)
    d = np.diff(naive_log_trajectory(stats), n=order)
    sd = np.std(d, ddof=1)
    # P(gamma < sd) = (2/pi) arctan(sd/zeta) = alpha.
    expected = sd / np.tan(0.5 * np.pi * 0.05)
    assert calib.zeta == pytest.approx(expected, rel=1e-8)
    assert calib.target_variance == pytest.approx(sd**2)
    assert exceedance_probability(calib.zeta, target_sd=calib.target_sd) == pytest.approx(0.05, abs=1e-9)


def test_zeta_decreases_with_alpha():
    stats = _count_stats()
    zetas = [calibrate_zeta(stats, order=1, alpha=a).zeta for a in (0.01, 0.05, 0.2, 0.5)]
    assert all(z1 > z2 for z1, z2 in zip(zetas, zetas[1:]))


def test_half_normal_scale_distribution():
    stats = _count_stats()
    hc = calibrate_zeta(stats, order=2, alpha=0.05, scale_dist="halfcauchy")
    hn = calibrate_zeta(stats, order=2, alpha=0.05, scale_dist="halfnormal")
    assert hn.zeta > 0
    assert hn.zeta != pytest.approx(hc.zeta)


def test_single_cell_fails():
    stats = CoalescentCellStats(events=np.array([3]), opportunity=np.array([2.0]))
    with pytest.raises(CalibrationError):
        calibrate_zeta(stats, order=1)


def test_too_few_differences_fails():
    stats = CountCellStats(counts=np.array([1, 4, 2]), exposure=np.ones(3))
    with pytest.raises(CalibrationError):
        calibrate_zeta(stats, order=2)


def test_flat_naive_estimate_fails():
    stats = CountCellStats(counts=np.full(6, 4), exposure=np.ones(6))
    with pytest.raises(CalibrationError):
        calibrate_zeta(stats, order=1)


def test_no_sign_change_in_bracket_fails():
    with pytest.raises(CalibrationError):
        calibrate_zeta(_count_stats(), order=1, bracket=(1e-8, 1e-3))


def test_invalid_alpha():
    with pytest.raises(ValueError):
        calibrate_zeta(_count_stats(), order=1, alpha=1.5)
