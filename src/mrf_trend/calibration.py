from __future__ import annotations

import logging
from dataclasses import dataclass

import numpy as np
from scipy.optimize import brentq
from scipy.special import logit
from scipy.stats import halfcauchy, halfnorm

from .aggregation import (
    BinomialCellStats,
    CellStatistics,
    CoalescentCellStats,
    CountCellStats,
    SurvivalCellStats,
)
from .differences import check_order
from .errors import CalibrationError, ConfigMismatch

log = logging.getLogger(__name__)

_SCALE_DISTS = {"halfcauchy": halfcauchy, "halfnormal": halfnorm}


@dataclass(frozen=True)
class ZetaCalibration:
    zeta: float
    alpha: float
    order: int
    target_variance: float
    naive_log_trajectory: np.ndarray
    scale_dist: str
    iterations: int

    @property
    def target_sd(self) -> float:
        return float(np.sqrt(self.target_variance))


def naive_log_trajectory(stats: CellStatistics, *, floor: float = 0.5) -> np.ndarray:
    """Closed-form per-cell ("skyline") estimate of the trajectory on the link scale.

    Zero event counts are replaced by ``floor`` so every cell gets a finite value.
    """
    if not floor > 0:
        raise ValueError("floor must be positive.")
    if isinstance(stats, CoalescentCellStats):
        # Coalescent rate is C(n)/Ne, so Ne_hat = opportunity / events.
        return np.log(stats.opportunity / np.maximum(stats.events, floor))
    if isinstance(stats, CountCellStats):
        return np.log(np.maximum(stats.counts, floor) / stats.exposure)
    if isinstance(stats, SurvivalCellStats):
        return np.log(np.maximum(stats.events, floor) / stats.exposure)
    if isinstance(stats, BinomialCellStats):
        n = stats.trials.astype(float)
        p = np.clip(stats.successes / n, floor / n, 1.0 - floor / n)
        return logit(p)
    raise ConfigMismatch(f"Unsupported cell statistics: {type(stats).__name__}")


def exceedance_probability(zeta: float, *, target_sd: float, scale_dist: str = "halfcauchy") -> float:
    """P(gamma < target_sd) for the difference scale gamma ~ scale_dist(0, zeta).

    This is the prior probability that the empirical difference variance exceeds the
    prior-implied one; it decreases monotonically in ``zeta``.
    """
    dist = _SCALE_DISTS[scale_dist]
    return float(dist.cdf(target_sd, scale=zeta))


def calibrate_zeta(
    stats: CellStatistics,
    *,
    order: int,
    alpha: float = 0.05,
    scale_dist: str = "halfcauchy",
    floor: float = 0.5,
    bracket: tuple[float, float] = (1e-8, 1e4),
    maxiter: int = 200,
    xtol: float = 1e-12,
) -> ZetaCalibration:
    """Global-scale hyperparameter zeta matched to the variability of the naive estimate.

    Solves ``P(gamma < sqrt(V)) = alpha`` for zeta, where V is the sample variance of
    the order-k differences of :func:`naive_log_trajectory` and gamma is the global
    difference scale with prior ``scale_dist(0, zeta)``.
    """
    order = check_order(order)
    if not (0.0 < alpha < 1.0):
        raise ValueError("alpha must lie in (0, 1).")
    if scale_dist not in _SCALE_DISTS:
        raise ValueError(f"scale_dist must be one of: {', '.join(sorted(_SCALE_DISTS))}")
    lo, hi = float(bracket[0]), float(bracket[1])
    if not (0.0 < lo < hi):
        raise ValueError("bracket must satisfy 0 < lo < hi.")

    naive = naive_log_trajectory(stats, floor=floor)
    if not np.all(np.isfinite(naive)):
        raise CalibrationError("Naive trajectory estimate is not finite in every cell.")
    d = np.diff(naive, n=order)
    if d.size < 2:
        raise CalibrationError(
            f"Need at least two order-{order} differences to calibrate zeta (have {d.size} from {naive.size} cells)."
        )
    V = float(np.var(d, ddof=1))
    if not (V > 0 and np.isfinite(V)):
        raise CalibrationError("Naive estimate has no variability across cells.")
    target_sd = float(np.sqrt(V))

    def objective(z: float) -> float:
        return exceedance_probability(z, target_sd=target_sd, scale_dist=scale_dist) - alpha

    f_lo, f_hi = objective(lo), objective(hi)
    if np.sign(f_lo) == np.sign(f_hi):
        raise CalibrationError(
            f"No sign change for zeta in [{lo:g}, {hi:g}] "
            f"(target sd {target_sd:.4g}, alpha {alpha:g})."
        )
    zeta, res = brentq(objective, lo, hi, xtol=xtol, maxiter=maxiter, full_output=True, disp=False)
    if not res.converged:
        raise CalibrationError(f"zeta root-finding did not converge after {res.iterations} iterations.")
    log.debug("Calibrated zeta=%.6g (order=%d, alpha=%g, V=%.6g, iters=%d).", zeta, order, alpha, V, res.iterations)
    naive.setflags(write=False)
    return ZetaCalibration(
        zeta=float(zeta),
        alpha=float(alpha),
        order=order,
        target_variance=V,
        naive_log_trajectory=naive,
        scale_dist=scale_dist,
        iterations=int(res.iterations),
    )
