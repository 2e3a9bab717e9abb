from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Protocol, Sequence

import numpy as np

from .errors import ShapeMismatch
from .model_spec import ModelSpec, initial_values

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class SamplerControls:
    """Sampler settings passed through to the engine.

    ``iterations`` counts warmup iterations too; ``warmup`` defaults to half of them.
    ``adapt_delta`` and ``max_treedepth`` are HMC adaptation controls; engines that do
    not use them ignore them.
    """

    chains: int = 4
    iterations: int = 2000
    warmup: int | None = None
    thin: int = 1
    adapt_delta: float = 0.95
    max_treedepth: int = 12
    seed: int = 0

    def __post_init__(self) -> None:
        if self.chains < 1:
            raise ValueError("chains must be >= 1.")
        if self.iterations < 1:
            raise ValueError("iterations must be >= 1.")
        if self.thin < 1:
            raise ValueError("thin must be >= 1.")
        if not (0.0 < self.adapt_delta < 1.0):
            raise ValueError("adapt_delta must lie in (0, 1).")
        if self.max_treedepth < 1:
            raise ValueError("max_treedepth must be >= 1.")
        if not (0 <= self.n_warmup < self.iterations):
            raise ValueError("warmup must satisfy 0 <= warmup < iterations.")

    @property
    def n_warmup(self) -> int:
        return self.iterations // 2 if self.warmup is None else int(self.warmup)

    @property
    def n_kept(self) -> int:
        """Post-warmup iterations kept per chain after thinning.

        The last iteration of each thinning block is kept, as in
        ``emcee.EnsembleSampler.get_chain(discard=warmup, thin=thin)``.
        """
        return len(range(self.n_warmup + self.thin - 1, self.iterations, self.thin))


class SamplingEngine(Protocol):
    def sample(
        self,
        spec: ModelSpec,
        controls: SamplerControls,
        inits: Sequence[dict[str, np.ndarray]],
    ) -> list[dict[str, np.ndarray]]:
        """Return one mapping of parameter name -> draws per chain."""
        ...


@dataclass(frozen=True)
class EngineResult:
    spec: ModelSpec
    controls: SamplerControls
    chains: tuple[dict[str, np.ndarray], ...]
    meta: dict

    @property
    def theta(self) -> np.ndarray:
        """Log-scale trajectory draws shaped (chains, draws, cells)."""
        return np.stack([c["theta"] for c in self.chains], axis=0)

    def param(self, name: str) -> np.ndarray:
        return np.stack([c[name] for c in self.chains], axis=0)


def _check_chains(spec: ModelSpec, controls: SamplerControls, chains: list[dict[str, np.ndarray]]) -> None:
    if len(chains) != controls.chains:
        raise ShapeMismatch(f"Engine returned {len(chains)} chains, expected {controls.chains}.")
    n_draws = None
    for i, c in enumerate(chains):
        if "theta" not in c:
            raise ShapeMismatch(f"Chain {i} has no 'theta' draws.")
        th = np.asarray(c["theta"])
        if th.ndim != 2 or th.shape[1] != spec.n_cells:
            raise ShapeMismatch(f"Chain {i} theta has shape {th.shape}; expected (draws, {spec.n_cells}).")
        if n_draws is None:
            n_draws = th.shape[0]
        elif th.shape[0] != n_draws:
            raise ShapeMismatch("Chains returned different numbers of draws.")


def run_engine(
    engine: SamplingEngine,
    spec: ModelSpec,
    controls: SamplerControls | None = None,
    *,
    inits: Sequence[dict[str, np.ndarray]] | None = None,
) -> EngineResult:
    """Blocking call into ``engine``; validates the shape of what comes back."""
    controls = SamplerControls() if controls is None else controls
    if inits is None:
        inits = initial_values(spec, n_chains=controls.chains, seed=controls.seed)
    elif len(inits) != controls.chains:
        raise ValueError(f"Got {len(inits)} init sets for {controls.chains} chains.")

    t0 = time.time()
    chains = [dict(c) for c in engine.sample(spec, controls, inits)]
    _check_chains(spec, controls, chains)
    elapsed = time.time() - t0
    log.info(
        "Engine %s finished %d chains (%s prior, %s likelihood, J=%d) in %.1fs.",
        type(engine).__name__,
        controls.chains,
        spec.prior.value,
        spec.likelihood.value,
        spec.n_cells,
        elapsed,
    )
    return EngineResult(
        spec=spec,
        controls=controls,
        chains=tuple(chains),
        meta={"engine": type(engine).__name__, "elapsed_s": float(elapsed)},
    )
