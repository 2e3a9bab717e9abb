from __future__ import annotations

from dataclasses import dataclass, fields
from enum import Enum
from typing import Callable, ClassVar, Union

import numpy as np

from .errors import ConfigMismatch, InvalidGrid
from .grid import TimeGrid
from .observations import (
    BinomialObservations,
    CoalescentObservations,
    CountObservations,
    Observations,
    SurvivalObservations,
)


class Likelihood(str, Enum):
    COALESCENT = "coalescent"
    COUNT = "count"
    BINOMIAL = "binomial"
    SURVIVAL = "survival"


class _CellStats:
    likelihood: ClassVar[Likelihood]

    def __post_init__(self) -> None:
        sizes = set()
        for f in fields(self):
            arr = np.array(getattr(self, f.name), copy=True)
            if arr.ndim != 1:
                raise InvalidGrid(f"{f.name} must be 1D (one entry per cell).")
            arr.setflags(write=False)
            object.__setattr__(self, f.name, arr)
            sizes.add(arr.size)
        if len(sizes) != 1:
            raise InvalidGrid("Per-cell statistics have inconsistent lengths.")

    @property
    def n_cells(self) -> int:
        return int(getattr(self, fields(self)[0].name).size)


@dataclass(frozen=True)
class CoalescentCellStats(_CellStats):
    likelihood: ClassVar[Likelihood] = Likelihood.COALESCENT
    events: np.ndarray
    opportunity: np.ndarray


@dataclass(frozen=True)
class CountCellStats(_CellStats):
    likelihood: ClassVar[Likelihood] = Likelihood.COUNT
    counts: np.ndarray
    exposure: np.ndarray


@dataclass(frozen=True)
class BinomialCellStats(_CellStats):
    likelihood: ClassVar[Likelihood] = Likelihood.BINOMIAL
    successes: np.ndarray
    trials: np.ndarray


@dataclass(frozen=True)
class SurvivalCellStats(_CellStats):
    likelihood: ClassVar[Likelihood] = Likelihood.SURVIVAL
    events: np.ndarray
    at_risk: np.ndarray
    exposure: np.ndarray


CellStatistics = Union[CoalescentCellStats, CountCellStats, BinomialCellStats, SurvivalCellStats]


def lineage_counts(obs: CoalescentObservations, breakpoints: np.ndarray) -> np.ndarray:
    """Lineages alive on each interval ``(breakpoints[i], breakpoints[i+1])``.

    A lineage sampled at ``s`` is counted for ``t > s``; a coalescence at ``c`` removes
    one lineage for ``t > c``.
    """
    left = np.asarray(breakpoints, dtype=float)[:-1]
    samp_order = np.argsort(obs.samp_times, kind="stable")
    samp_sorted = obs.samp_times[samp_order]
    n_cum = np.concatenate([[0], np.cumsum(obs.n_sampled[samp_order])])
    entered = n_cum[np.searchsorted(samp_sorted, left, side="right")]
    merged = np.searchsorted(obs.coal_times, left, side="right")
    return entered - merged


def aggregate_coalescent(grid: TimeGrid, obs: CoalescentObservations) -> CoalescentCellStats:
    events = grid.counts(obs.coal_times)
    if np.any(obs.samp_times > grid.boundaries[-1]):
        raise InvalidGrid("Sampling times extend beyond the grid.")

    # Exact integral of C(n(t)) = n(n-1)/2 over piecewise-constant lineage counts.
    lo, hi = grid.boundaries[0], grid.boundaries[-1]
    knots = np.concatenate([grid.boundaries, obs.samp_times, obs.coal_times])
    knots = np.unique(knots[(knots >= lo) & (knots <= hi)])
    n = lineage_counts(obs, knots)
    rate = 0.5 * n * (n - 1)
    seg_cell = grid.cell_index(0.5 * (knots[:-1] + knots[1:]))
    opportunity = np.bincount(seg_cell, weights=rate * np.diff(knots), minlength=grid.n_cells)

    bad = np.flatnonzero(opportunity <= 0)
    if bad.size:
        raise InvalidGrid(
            f"Cells {bad.tolist()} have zero coalescent opportunity (fewer than two lineages)."
        )
    return CoalescentCellStats(events=events, opportunity=opportunity)


def aggregate_count(grid: TimeGrid, obs: CountObservations) -> CountCellStats:
    idx = grid.cell_index(obs.times)
    counts = np.bincount(idx, weights=obs.counts, minlength=grid.n_cells).astype(int)
    exposure = np.bincount(idx, weights=obs.exposure, minlength=grid.n_cells)
    bad = np.flatnonzero(exposure <= 0)
    if bad.size:
        raise InvalidGrid(f"Cells {bad.tolist()} have zero exposure.")
    return CountCellStats(counts=counts, exposure=exposure)


def aggregate_binomial(grid: TimeGrid, obs: BinomialObservations) -> BinomialCellStats:
    idx = grid.cell_index(obs.times)
    successes = np.bincount(idx, weights=obs.successes, minlength=grid.n_cells).astype(int)
    trials = np.bincount(idx, weights=obs.trials, minlength=grid.n_cells).astype(int)
    bad = np.flatnonzero(trials <= 0)
    if bad.size:
        raise InvalidGrid(f"Cells {bad.tolist()} have zero trials.")
    return BinomialCellStats(successes=successes, trials=trials)


def aggregate_survival(grid: TimeGrid, obs: SurvivalObservations) -> SurvivalCellStats:
    lo = grid.boundaries[:-1][None, :]
    hi = grid.boundaries[1:][None, :]
    entry = obs.entry_times[:, None]
    exit_ = obs.times[:, None]
    if np.any(obs.times > grid.boundaries[-1]):
        raise InvalidGrid("Follow-up extends beyond the grid.")

    # Person-time of (entry, exit] inside each cell; left truncation and censoring clip it.
    overlap = np.clip(np.minimum(exit_, hi) - np.maximum(entry, lo), 0.0, None)
    exposure = overlap.sum(axis=0)
    at_risk = (overlap > 0).sum(axis=0)
    events = grid.counts(obs.times[obs.events == 1])
    bad = np.flatnonzero(exposure <= 0)
    if bad.size:
        raise InvalidGrid(f"Cells {bad.tolist()} have nobody at risk.")
    return SurvivalCellStats(events=events, at_risk=at_risk, exposure=exposure)


_AGGREGATORS: dict[type, tuple[Likelihood, Callable[[TimeGrid, Observations], CellStatistics]]] = {
    CoalescentObservations: (Likelihood.COALESCENT, aggregate_coalescent),
    CountObservations: (Likelihood.COUNT, aggregate_count),
    BinomialObservations: (Likelihood.BINOMIAL, aggregate_binomial),
    SurvivalObservations: (Likelihood.SURVIVAL, aggregate_survival),
}


def _lookup(observations: Observations):
    entry = _AGGREGATORS.get(type(observations))
    if entry is None:
        raise ConfigMismatch(f"Unsupported observation type: {type(observations).__name__}")
    return entry


def likelihood_of(observations: Observations) -> Likelihood:
    return _lookup(observations)[0]


def aggregate(grid: TimeGrid, observations: Observations) -> CellStatistics:
    """Per-cell sufficient statistics for ``observations`` on ``grid``, in grid order."""
    _, fn = _lookup(observations)
    stats = fn(grid, observations)
    if stats.n_cells != grid.n_cells:
        raise InvalidGrid(f"Aggregation produced {stats.n_cells} cells for a {grid.n_cells}-cell grid.")
    return stats
