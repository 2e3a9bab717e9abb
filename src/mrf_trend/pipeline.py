from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Union

import numpy as np

from .aggregation import CellStatistics, aggregate, likelihood_of
from .calibration import ZetaCalibration, calibrate_zeta
from .errors import ConfigMismatch
from .grid import TimeGrid, build_grid
from .model_spec import ModelSpec, Prior, assemble_model_spec
from .observations import Observations

log = logging.getLogger(__name__)

Covariates = Union[np.ndarray, Callable[[TimeGrid], np.ndarray]]


@dataclass(frozen=True)
class PreparedModel:
    grid: TimeGrid
    stats: CellStatistics
    calibration: ZetaCalibration
    spec: ModelSpec


def prepare_model(
    observations: Observations,
    *,
    n_cells: int,
    order: int = 1,
    prior: Prior | str = Prior.HORSESHOE,
    alpha: float = 0.05,
    scale_dist: str = "halfcauchy",
    max_time: float | None = None,
    covariates: Covariates | None = None,
    theta1_scale: float = 100.0,
) -> PreparedModel:
    """Grid -> per-cell statistics -> calibrated zeta -> engine payload, in one call.

    The grid may end up with fewer than ``n_cells`` cells when the data hold fewer
    distinct event times. ``covariates`` can therefore be a callable that receives the
    built :class:`TimeGrid` and returns one row per cell.
    """
    likelihood = likelihood_of(observations)
    grid = build_grid(observations, n_cells, max_time=max_time)
    stats = aggregate(grid, observations)
    if callable(covariates):
        covariates = covariates(grid)
    elif covariates is not None and grid.n_cells < n_cells and len(covariates) == n_cells:
        raise ConfigMismatch(
            f"Grid was reduced from {n_cells} to {grid.n_cells} cells; covariates sized for {n_cells} cells "
            f"no longer fit. Pass a callable of the built grid instead."
        )
    calib = calibrate_zeta(stats, order=order, alpha=alpha, scale_dist=scale_dist)
    spec = assemble_model_spec(
        prior=prior,
        likelihood=likelihood,
        order=order,
        grid=grid,
        stats=stats,
        zeta=calib.zeta,
        covariates=covariates,
        theta1_scale=theta1_scale,
    )
    log.info(
        "Prepared %s/%s order-%d model: %d cells, zeta=%.4g.",
        spec.prior.value,
        likelihood.value,
        order,
        grid.n_cells,
        calib.zeta,
    )
    return PreparedModel(grid=grid, stats=stats, calibration=calib, spec=spec)
