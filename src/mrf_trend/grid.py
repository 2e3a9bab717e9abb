from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np

from .errors import DataInsufficient, InvalidGrid
from .observations import Observations

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class TimeGrid:
    """Contiguous cells ``[b0, b1], (b1, b2], ..., (b_{m-1}, b_m]`` over the time axis."""

    boundaries: np.ndarray

    def __post_init__(self) -> None:
        b = np.array(self.boundaries, dtype=float, copy=True)
        if b.ndim != 1 or b.size < 2:
            raise InvalidGrid("A grid needs at least two boundaries.")
        if not np.all(np.isfinite(b)):
            raise InvalidGrid("Grid boundaries must be finite.")
        if np.any(np.diff(b) <= 0):
            raise InvalidGrid("Grid boundaries must be strictly increasing.")
        b.setflags(write=False)
        object.__setattr__(self, "boundaries", b)

    @property
    def n_cells(self) -> int:
        return int(self.boundaries.size - 1)

    @property
    def widths(self) -> np.ndarray:
        return np.diff(self.boundaries)

    @property
    def midpoints(self) -> np.ndarray:
        return self.boundaries[:-1] + 0.5 * self.widths

    def cell_index(self, times: np.ndarray) -> np.ndarray:
        """Cell of each time; the left edge of the grid belongs to the first cell."""
        t = np.asarray(times, dtype=float)
        if np.any(t < self.boundaries[0]) or np.any(t > self.boundaries[-1]):
            raise InvalidGrid(
                f"Times outside grid [{self.boundaries[0]:g}, {self.boundaries[-1]:g}]."
            )
        idx = np.searchsorted(self.boundaries, t, side="left") - 1
        return np.clip(idx, 0, self.n_cells - 1)

    def counts(self, times: np.ndarray) -> np.ndarray:
        return np.bincount(self.cell_index(times), minlength=self.n_cells)


def equal_width_grid(n_cells: int, *, max_time: float, min_time: float = 0.0) -> TimeGrid:
    if n_cells < 1:
        raise ValueError("n_cells must be >= 1.")
    if not (max_time > min_time):
        raise ValueError("max_time must exceed min_time.")
    return TimeGrid(np.linspace(float(min_time), float(max_time), int(n_cells) + 1))


def _quantile_boundaries(distinct: np.ndarray, n_cells: int, *, max_time: float) -> np.ndarray:
    D = distinct.size
    i = np.arange(1, n_cells)
    interior = distinct[np.ceil(i * D / n_cells).astype(int) - 1]
    return np.concatenate([[0.0], interior, [max_time]])


def build_grid_from_times(
    event_times: np.ndarray,
    n_cells: int,
    *,
    max_time: float | None = None,
    min_events: int = 1,
) -> TimeGrid:
    """Partition ``[0, max_time]`` into ``n_cells`` cells, each holding informative events.

    Equal-width cells are kept when every cell holds at least ``min_events`` events.
    Otherwise every interior boundary is moved onto an event time so that cells hold
    roughly equal numbers of distinct events (quantile placement). If there are fewer
    distinct event times than requested cells, the cell count is reduced. Repositioned
    cells are only guaranteed one event each, whatever ``min_events`` asks for.
    """
    t = np.sort(np.asarray(event_times, dtype=float))
    if t.ndim != 1:
        raise ValueError("event_times must be 1D.")
    if t.size < 2:
        raise DataInsufficient(f"Need at least two informative events to build a grid (got {t.size}).")
    if np.any(t < 0) or not np.all(np.isfinite(t)):
        raise ValueError("event_times must be finite and non-negative.")
    if n_cells < 1:
        raise ValueError("n_cells must be >= 1.")
    upper = float(t[-1]) if max_time is None else float(max_time)
    if upper < t[-1]:
        raise ValueError("max_time must cover every event time.")
    if not upper > 0:
        raise DataInsufficient("All informative events occur at time 0.")

    grid = equal_width_grid(n_cells, max_time=upper)
    if np.all(grid.counts(t) >= int(min_events)):
        return grid

    distinct = np.unique(t)
    distinct = distinct[distinct > 0]
    n_feasible = min(int(n_cells), int(distinct.size))
    if n_feasible < 1:
        raise DataInsufficient("No informative events after time 0.")
    if n_feasible < n_cells:
        log.warning(
            "Only %d distinct event times; reducing grid from %d to %d cells.",
            distinct.size,
            n_cells,
            n_feasible,
        )
    b = _quantile_boundaries(distinct, n_feasible, max_time=upper)
    b = np.unique(b)
    grid = TimeGrid(b)
    log.debug("Repositioned grid boundaries onto event times: %d cells over [0, %g].", grid.n_cells, upper)
    return grid


def build_grid(
    observations: Observations,
    n_cells: int,
    *,
    max_time: float | None = None,
    min_events: int = 1,
) -> TimeGrid:
    """Grid spanning every record of ``observations`` (see :func:`build_grid_from_times`)."""
    upper = observations.time_span() if max_time is None else float(max_time)
    if upper < observations.time_span():
        raise ValueError("max_time must cover every observation.")
    return build_grid_from_times(
        observations.informative_times(),
        n_cells,
        max_time=upper,
        min_events=min_events,
    )
