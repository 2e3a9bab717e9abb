import numpy as np
import pytest

from mrf_trend.errors import DataInsufficient, InvalidGrid
from mrf_trend.grid import TimeGrid, build_grid, build_grid_from_times, equal_width_grid
from mrf_trend.observations import CoalescentObservations


def test_equal_width_grid_kept_when_every_cell_has_events():
    t = np.linspace(0.5, 9.5, 10)
    grid = build_grid_from_times(t, 5, max_time=10.0)
    assert np.allclose(grid.boundaries, np.linspace(0.0, 10.0, 6))
    assert np.all(grid.counts(t) >= 1)


def test_empty_cells_trigger_repositioning_onto_event_times():
    t = np.array([0.1, 0.2, 0.3, 0.4, 9.9])
    grid = build_grid_from_times(t, 5)
    assert grid.n_cells == 5
    assert np.allclose(grid.boundaries, [0.0, 0.1, 0.2, 0.3, 0.4, 9.9])
    assert np.all(grid.counts(t) == 1)


def test_cell_count_reduced_when_too_few_distinct_events():
    t = np.array([1.0, 2.0, 2.0, 3.0])
    grid = build_grid_from_times(t, 5)
    assert grid.n_cells == 3
    assert np.all(grid.counts(t) >= 1)


@pytest.mark.parametrize("seed", [0, 1, 2, 3])
def test_grid_boundaries_strictly_increasing(seed):
    rng = np.random.default_rng(seed)
    t = rng.exponential(scale=2.0, size=40)
    grid = build_grid_from_times(t, 12)
    assert grid.boundaries.size == grid.n_cells + 1
    assert np.all(np.diff(grid.boundaries) > 0)
    assert grid.boundaries[0] == 0.0
    assert grid.boundaries[-1] >= t.max()
    assert np.all(grid.counts(t) >= 1)


@pytest.mark.parametrize("times", [[], [1.5]])
def test_too_few_events_is_data_insufficient(times):
    with pytest.raises(DataInsufficient):
        build_grid_from_times(np.array(times, dtype=float), 4)


def test_cell_index_half_open_cells():
    grid = equal_width_grid(4, max_time=4.0)
    idx = grid.cell_index(np.array([0.0, 1.0, 1.0001, 4.0]))
    assert idx.tolist() == [0, 0, 1, 3]
    with pytest.raises(InvalidGrid):
        grid.cell_index(np.array([4.5]))


def test_grid_is_immutable_and_validated():
    grid = TimeGrid(np.array([0.0, 1.0, 3.0]))
    assert np.allclose(grid.midpoints, [0.5, 2.0])
    with pytest.raises(ValueError):
        grid.boundaries[0] = -1.0
    with pytest.raises(InvalidGrid):
        TimeGrid(np.array([0.0, 2.0, 2.0]))


def test_build_grid_from_coalescent_spans_to_tmrca():
    obs = CoalescentObservations(
        samp_times=np.array([0.0]),
        n_sampled=np.array([10]),
        coal_times=np.arange(1.0, 10.0),
    )
    grid = build_grid(obs, 9)
    assert np.allclose(grid.boundaries, np.arange(0.0, 10.0))
