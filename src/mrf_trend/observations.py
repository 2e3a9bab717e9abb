from __future__ import annotations

from dataclasses import dataclass
from typing import Union

import numpy as np


def _as_1d(x, name: str, *, integer: bool = False) -> np.ndarray:
    arr = np.array(x, dtype=float, copy=True)
    if arr.ndim != 1:
        raise ValueError(f"{name} must be 1D.")
    if not np.all(np.isfinite(arr)):
        raise ValueError(f"{name} must be finite.")
    if integer:
        if np.any(arr != np.round(arr)):
            raise ValueError(f"{name} must hold whole numbers.")
        arr = arr.astype(int)
    arr.setflags(write=False)
    return arr


def _set(obj, name: str, value) -> None:
    object.__setattr__(obj, name, value)


@dataclass(frozen=True)
class CoalescentObservations:
    """Heterochronous genealogy summarized by sampling and coalescent times.

    Times run backwards from the present (t=0). ``n_sampled[i]`` lineages enter at
    ``samp_times[i]``; each entry of ``coal_times`` merges two lineages.
    """

    samp_times: np.ndarray
    n_sampled: np.ndarray
    coal_times: np.ndarray

    def __post_init__(self) -> None:
        samp = _as_1d(self.samp_times, "samp_times")
        n = _as_1d(self.n_sampled, "n_sampled", integer=True)
        coal = _as_1d(self.coal_times, "coal_times")
        if samp.shape != n.shape:
            raise ValueError("samp_times and n_sampled must have the same shape.")
        if np.any(samp < 0) or np.any(coal < 0):
            raise ValueError("Times must be non-negative.")
        if np.any(n <= 0):
            raise ValueError("n_sampled must be positive.")
        if np.any(np.diff(coal) < 0):
            raise ValueError("coal_times must be sorted.")
        if coal.size != int(n.sum()) - 1:
            raise ValueError(
                f"Expected {int(n.sum()) - 1} coalescent times for {int(n.sum())} samples, got {coal.size}."
            )
        # Lineages present just before each coalescence (samples at tied times enter first).
        entered = np.array([n[samp <= c].sum() for c in coal], dtype=int)
        before = entered - np.arange(coal.size)
        if np.any(before < 2):
            raise ValueError("A coalescence occurs with fewer than two lineages present.")
        _set(self, "samp_times", samp)
        _set(self, "n_sampled", n)
        _set(self, "coal_times", coal)

    def informative_times(self) -> np.ndarray:
        return self.coal_times

    def time_span(self) -> float:
        return float(max(self.coal_times.max(initial=0.0), self.samp_times.max(initial=0.0)))


@dataclass(frozen=True)
class CountObservations:
    """Event counts observed over intervals of known exposure, located at ``times``."""

    times: np.ndarray
    exposure: np.ndarray
    counts: np.ndarray

    def __post_init__(self) -> None:
        t = _as_1d(self.times, "times")
        e = _as_1d(self.exposure, "exposure")
        y = _as_1d(self.counts, "counts", integer=True)
        if not (t.shape == e.shape == y.shape):
            raise ValueError("times, exposure and counts must have the same shape.")
        if np.any(t < 0):
            raise ValueError("times must be non-negative.")
        if np.any(e <= 0):
            raise ValueError("exposure must be positive.")
        if np.any(y < 0):
            raise ValueError("counts must be non-negative.")
        _set(self, "times", t)
        _set(self, "exposure", e)
        _set(self, "counts", y)

    def informative_times(self) -> np.ndarray:
        return self.times

    def time_span(self) -> float:
        return float(self.times.max(initial=0.0))


@dataclass(frozen=True)
class BinomialObservations:
    times: np.ndarray
    trials: np.ndarray
    successes: np.ndarray

    def __post_init__(self) -> None:
        t = _as_1d(self.times, "times")
        n = _as_1d(self.trials, "trials", integer=True)
        y = _as_1d(self.successes, "successes", integer=True)
        if not (t.shape == n.shape == y.shape):
            raise ValueError("times, trials and successes must have the same shape.")
        if np.any(t < 0):
            raise ValueError("times must be non-negative.")
        if np.any(y < 0) or np.any(y > n):
            raise ValueError("Require 0 <= successes <= trials.")
        _set(self, "times", t)
        _set(self, "trials", n)
        _set(self, "successes", y)

    def informative_times(self) -> np.ndarray:
        return self.times

    def time_span(self) -> float:
        return float(self.times.max(initial=0.0))


@dataclass(frozen=True)
class SurvivalObservations:
    """Right-censored (optionally left-truncated) individual follow-up.

    Each individual is at risk on ``(entry_times[i], times[i]]``; ``events[i]`` is 1
    if follow-up ended in an event and 0 if it was censored.
    """

    times: np.ndarray
    events: np.ndarray
    entry_times: np.ndarray | None = None

    def __post_init__(self) -> None:
        t = _as_1d(self.times, "times")
        d = _as_1d(self.events, "events", integer=True)
        if t.shape != d.shape:
            raise ValueError("times and events must have the same shape.")
        if not np.all(np.isin(d, (0, 1))):
            raise ValueError("events must be a 0/1 indicator.")
        if self.entry_times is None:
            entry = np.zeros_like(t)
            entry.setflags(write=False)
        else:
            entry = _as_1d(self.entry_times, "entry_times")
            if entry.shape != t.shape:
                raise ValueError("entry_times must match times.")
        if np.any(entry < 0):
            raise ValueError("entry_times must be non-negative.")
        if np.any(t <= entry):
            raise ValueError("Each exit time must be later than its entry time.")
        _set(self, "times", t)
        _set(self, "events", d)
        _set(self, "entry_times", entry)

    def informative_times(self) -> np.ndarray:
        return self.times[self.events == 1]

    def time_span(self) -> float:
        return float(self.times.max(initial=0.0))


Observations = Union[CoalescentObservations, CountObservations, BinomialObservations, SurvivalObservations]
