from __future__ import annotations

from dataclasses import dataclass

import numpy as np
from scipy.special import expit

from .aggregation import Likelihood
from .errors import ConfigMismatch, ShapeMismatch
from .grid import TimeGrid

_INVERSE_LINK = {
    Likelihood.COALESCENT: np.exp,
    Likelihood.COUNT: np.exp,
    Likelihood.SURVIVAL: np.exp,
    Likelihood.BINOMIAL: expit,
}


@dataclass(frozen=True)
class PosteriorTrajectory:
    """Trajectory draws on the original scale.

    ``samples`` is (draws, cells), or (chains, draws, cells) when ``by_chain``.
    """

    grid: TimeGrid
    samples: np.ndarray
    likelihood: Likelihood
    by_chain: bool

    @property
    def midpoints(self) -> np.ndarray:
        return self.grid.midpoints

    @property
    def flat_samples(self) -> np.ndarray:
        return self.samples.reshape((-1, self.grid.n_cells))

    def summary(self, alpha: float = 0.05) -> dict[str, np.ndarray]:
        """Pointwise posterior median and central (1 - alpha) credible band per cell."""
        if not (0.0 < alpha < 1.0):
            raise ValueError("alpha must lie in (0, 1).")
        s = self.flat_samples
        lo, med, hi = np.quantile(s, [0.5 * alpha, 0.5, 1.0 - 0.5 * alpha], axis=0)
        return {"midpts": self.midpoints, "median": med, "lower": lo, "upper": hi}


def extract_trajectory(
    draws: np.ndarray,
    grid: TimeGrid,
    likelihood: Likelihood | str,
    *,
    by_chain: bool = False,
) -> PosteriorTrajectory:
    """Back-transform link-scale draws of theta onto the trajectory scale.

    ``draws`` is (draws, cells) or (chains, draws, cells). With ``by_chain=False`` a
    chain axis is flattened chain-major so draw order is kept within each chain.
    """
    try:
        likelihood = Likelihood(likelihood)
    except ValueError:
        raise ConfigMismatch(f"Unknown likelihood family {likelihood!r}.") from None
    raw = np.asarray(draws, dtype=float)
    if raw.ndim not in (2, 3):
        raise ShapeMismatch(f"draws must be 2D or 3D (got {raw.ndim}D).")
    if raw.shape[-1] != grid.n_cells:
        raise ShapeMismatch(f"draws have {raw.shape[-1]} cells but the grid has {grid.n_cells}.")
    if by_chain and raw.ndim != 3:
        raise ShapeMismatch("by_chain=True needs draws shaped (chains, draws, cells).")

    out = _INVERSE_LINK[likelihood](raw)
    if not by_chain:
        out = out.reshape((-1, grid.n_cells))
    out = np.array(out, copy=True)
    out.setflags(write=False)
    return PosteriorTrajectory(grid=grid, samples=out, likelihood=likelihood, by_chain=bool(by_chain))
