import numpy as np
import pytest

from mrf_trend.aggregation import (
    BinomialCellStats,
    CoalescentCellStats,
    Likelihood,
    aggregate,
    likelihood_of,
    lineage_counts,
)
from mrf_trend.calibration import naive_log_trajectory
from mrf_trend.errors import ConfigMismatch, InvalidGrid
from mrf_trend.grid import TimeGrid, build_grid, equal_width_grid
from mrf_trend.observations import (
    BinomialObservations,
    CoalescentObservations,
    CountObservations,
    SurvivalObservations,
)


def _isochronous_ten() -> CoalescentObservations:
    return CoalescentObservations(
        samp_times=np.array([0.0]),
        n_sampled=np.array([10]),
        coal_times=np.arange(1.0, 10.0),
    )


def _heterochronous() -> CoalescentObservations:
    return CoalescentObservations(
        samp_times=np.array([0.0, 0.5, 1.2]),
        n_sampled=np.array([5, 3, 2]),
        coal_times=np.array([0.2, 0.3, 0.6, 0.7, 0.9, 1.3, 1.5, 2.0, 3.0]),
    )


def test_coalescent_unit_spaced_events_one_per_cell():
    obs = _isochronous_ten()
    grid = equal_width_grid(9, max_time=9.0)
    stats = aggregate(grid, obs)
    assert isinstance(stats, CoalescentCellStats)
    assert stats.events.tolist() == [1] * 9
    # C(n) = n(n-1)/2 for n = 10, 9, ..., 2 over unit-length cells.
    assert np.allclose(stats.opportunity, [45, 36, 28, 21, 15, 10, 6, 3, 1])
    assert np.all(np.diff(stats.opportunity) < 0)
    assert np.all(np.isfinite(naive_log_trajectory(stats)))


def test_coalescent_cell_past_tmrca_is_invalid():
    grid = equal_width_grid(10, max_time=10.0)
    with pytest.raises(InvalidGrid):
        aggregate(grid, _isochronous_ten())


def test_coalescent_event_conservation_and_total_opportunity():
    obs = _heterochronous()
    for n_cells in (2, 4):
        grid = build_grid(obs, n_cells)
        stats = aggregate(grid, obs)
        assert stats.n_cells == grid.n_cells
        assert int(stats.events.sum()) == obs.coal_times.size
        # Hand-integrated C(n(t)) over [0, 3].
        assert stats.opportunity.sum() == pytest.approx(12.5)


def test_lineage_counts_step_function():
    obs = _heterochronous()
    n = lineage_counts(obs, np.array([0.0, 0.2, 0.3, 0.5, 0.6]))
    assert n.tolist() == [5, 4, 3, 6]


def test_coalescent_observation_validation():
    with pytest.raises(ValueError):
        CoalescentObservations(samp_times=[0.0], n_sampled=[4], coal_times=[1.0, 2.0])
    with pytest.raises(ValueError):
        # Second sample batch arrives after the only lineage pair has merged.
        CoalescentObservations(samp_times=[0.0, 5.0], n_sampled=[2, 2], coal_times=[1.0, 2.0, 6.0])


def test_count_aggregation_sums_per_cell():
    obs = CountObservations(
        times=[0.5, 0.7, 1.5, 2.2, 2.8],
        exposure=[1.0, 2.0, 1.5, 0.5, 0.5],
        counts=[3, 1, 0, 2, 4],
    )
    stats = aggregate(equal_width_grid(3, max_time=3.0), obs)
    assert stats.counts.tolist() == [4, 0, 6]
    assert np.allclose(stats.exposure, [3.0, 1.5, 1.0])


def test_count_cell_without_exposure_is_invalid():
    obs = CountObservations(times=[0.5, 2.5], exposure=[1.0, 1.0], counts=[1, 1])
    with pytest.raises(InvalidGrid):
        aggregate(equal_width_grid(3, max_time=3.0), obs)


def test_binomial_zero_successes_is_valid():
    obs = BinomialObservations(times=[0.5, 1.5, 2.5], trials=[10, 10, 10], successes=[0, 3, 5])
    stats = aggregate(equal_width_grid(3, max_time=3.0), obs)
    assert isinstance(stats, BinomialCellStats)
    assert stats.successes.tolist() == [0, 3, 5]
    assert stats.trials.tolist() == [10, 10, 10]
    assert np.all(np.isfinite(naive_log_trajectory(stats)))


def test_binomial_zero_trials_is_invalid():
    obs = BinomialObservations(times=[0.5, 1.5, 2.5], trials=[10, 0, 10], successes=[2, 0, 5])
    with pytest.raises(InvalidGrid):
        aggregate(equal_width_grid(3, max_time=3.0), obs)


def test_binomial_observation_validation():
    with pytest.raises(ValueError):
        BinomialObservations(times=[0.5], trials=[3], successes=[4])


def test_survival_at_risk_events_and_exposure_with_truncation():
    obs = SurvivalObservations(
        times=[1.0, 2.5, 3.0, 4.0],
        events=[1, 0, 1, 1],
        entry_times=[0.0, 0.0, 1.5, 0.0],
    )
    stats = aggregate(TimeGrid(np.array([0.0, 2.0, 4.0])), obs)
    assert stats.events.tolist() == [1, 2]
    assert stats.at_risk.tolist() == [4, 3]
    assert np.allclose(stats.exposure, [5.5, 3.5])


def test_survival_censoring_beyond_last_event_covered_by_grid():
    obs = SurvivalObservations(times=[1.0, 2.0, 6.0], events=[1, 1, 0])
    grid = build_grid(obs, 2)
    assert grid.boundaries[-1] == pytest.approx(6.0)
    stats = aggregate(grid, obs)
    assert stats.exposure.sum() == pytest.approx(9.0)


def test_likelihood_dispatch():
    assert likelihood_of(_isochronous_ten()) is Likelihood.COALESCENT
    with pytest.raises(ConfigMismatch):
        aggregate(equal_width_grid(2, max_time=1.0), object())


def test_survival_cell_with_nobody_at_risk_is_invalid():
    obs = SurvivalObservations(times=[1.0, 1.5], events=[1, 1])
    with pytest.raises(InvalidGrid):
        aggregate(TimeGrid(np.array([0.0, 2.0, 4.0])), obs)


@pytest.mark.parametrize(
    "build",
    [
        lambda: CountObservations(times=[1.0, 2.0], exposure=[1.0, 1.0], counts=[2.7, 3.9]),
        lambda: BinomialObservations(times=[1.0], trials=[10.5], successes=[3]),
        lambda: BinomialObservations(times=[1.0], trials=[10], successes=[3.2]),
        lambda: SurvivalObservations(times=[1.0, 2.0], events=[1, 0.5]),
        lambda: CoalescentObservations(samp_times=[0.0], n_sampled=[2.5], coal_times=[1.0]),
    ],
)
def test_fractional_integer_fields_are_rejected(build):
    with pytest.raises(ValueError):
        build()


def test_whole_valued_floats_are_accepted_as_counts():
    obs = CountObservations(times=[1.0, 2.0], exposure=[1.0, 1.0], counts=[2.0, 3.0])
    assert obs.counts.dtype.kind == "i"
    assert obs.counts.tolist() == [2, 3]
