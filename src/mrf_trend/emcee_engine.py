from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence

import numpy as np

from .aggregation import Likelihood
from .engine import SamplerControls
from .model_spec import ModelSpec, Prior


def _loglike_fn(spec: ModelSpec) -> Callable[[np.ndarray], float]:
    d = spec.data
    y = np.asarray(d["y"], dtype=float)
    if spec.likelihood is Likelihood.COALESCENT:
        A = np.asarray(d["A"], dtype=float)
        # Poisson events with rate A * exp(-theta): theta is log effective size.
        return lambda eta: float(np.sum(-y * eta - A * np.exp(-eta)))
    if spec.likelihood in (Likelihood.COUNT, Likelihood.SURVIVAL):
        off = np.asarray(d["log_offset"], dtype=float)
        return lambda eta: float(np.sum(y * (eta + off) - np.exp(eta + off)))
    if spec.likelihood is Likelihood.BINOMIAL:
        n = np.asarray(d["n"], dtype=float)
        return lambda eta: float(np.sum(y * eta - n * np.logaddexp(0.0, eta)))
    raise ValueError(f"Unsupported likelihood: {spec.likelihood}")


@dataclass(frozen=True)
class _Layout:
    J: int
    n_diff: int
    n_beta: int
    horseshoe: bool

    @property
    def ndim(self) -> int:
        return self.J + 1 + self.n_beta + (self.n_diff if self.horseshoe else 0)

    def split(self, x: np.ndarray) -> tuple[np.ndarray, float, np.ndarray, np.ndarray]:
        J, b = self.J, self.n_beta
        theta = x[:J]
        log_gam = float(x[J])
        beta = x[J + 1 : J + 1 + b]
        log_tau = x[J + 1 + b :]
        return theta, log_gam, beta, log_tau


def make_log_posterior(spec: ModelSpec) -> tuple[Callable[[np.ndarray], float], _Layout]:
    """Log posterior of the shrinkage MRF on an unconstrained parameter vector.

    Layout: ``[theta (J), log gam, beta (P), log tau (J-k, horseshoe only)]``. The
    global scale gam has a half-Cauchy(0, zeta) prior and horseshoe local scales
    tau have half-Cauchy(0, 1) priors; log-Jacobians are included.
    """
    order = spec.order
    zeta = float(spec.hyper["zeta"])
    s1 = float(spec.hyper["theta1_scale"])
    X = np.asarray(spec.data["X"], dtype=float) if "X" in spec.data else None
    layout = _Layout(
        J=spec.n_cells,
        n_diff=spec.n_cells - order,
        n_beta=0 if X is None else X.shape[1],
        horseshoe=spec.prior is Prior.HORSESHOE,
    )
    loglike = _loglike_fn(spec)
    prior = spec.prior

    def _log_prob(x: np.ndarray) -> float:
        theta, log_gam, beta, log_tau = layout.split(np.asarray(x, dtype=float))
        gam = np.exp(log_gam)
        lp = -0.5 * float(np.sum((theta[:order] / s1) ** 2))
        lp += -np.log1p((gam / zeta) ** 2) + log_gam
        diff = np.diff(theta, n=order)
        if prior is Prior.NORMAL:
            lp += -layout.n_diff * log_gam - 0.5 * float(np.sum((diff / gam) ** 2))
        elif prior is Prior.LAPLACE:
            lp += -layout.n_diff * log_gam - float(np.sum(np.abs(diff))) / gam
        else:
            tau = np.exp(log_tau)
            scale = gam * tau
            lp += float(np.sum(-np.log(scale) - 0.5 * (diff / scale) ** 2))
            lp += float(np.sum(-np.log1p(tau**2) + log_tau))
        eta = theta
        if X is not None:
            lp += -0.5 * float(np.sum((beta / s1) ** 2))
            eta = theta + X @ beta
        return lp + loglike(eta)

    def log_prob(x: np.ndarray) -> float:
        with np.errstate(over="ignore", invalid="ignore", divide="ignore"):
            out = _log_prob(x)
        return float(out) if np.isfinite(out) else -np.inf

    return log_prob, layout


@dataclass(frozen=True)
class EmceeEngine:
    """Reference engine backed by ``emcee.EnsembleSampler``; one independent run per chain.

    Suitable for small grids and tests. Each kept step contributes one draw per walker.
    """

    n_walkers: int | None = None
    init_spread: float = 1e-3
    progress: bool = False

    def sample(
        self,
        spec: ModelSpec,
        controls: SamplerControls,
        inits: Sequence[dict[str, np.ndarray]],
    ) -> list[dict[str, np.ndarray]]:
        import emcee

        log_prob, layout = make_log_posterior(spec)
        n_walkers = max(int(self.n_walkers or 0), 2 * layout.ndim + 2)
        out = []
        for c in range(controls.chains):
            rng = np.random.default_rng(controls.seed + c)
            init = inits[c]
            x0 = np.concatenate(
                [
                    np.asarray(init["theta"], dtype=float),
                    [np.log(float(init["gam"]))],
                    np.zeros(layout.n_beta),
                    np.log(np.asarray(init["tau"], dtype=float)) if layout.horseshoe else np.zeros(0),
                ]
            )
            p0 = x0[None, :] + self.init_spread * rng.normal(size=(n_walkers, layout.ndim))
            sampler = emcee.EnsembleSampler(n_walkers, layout.ndim, log_prob)
            sampler.run_mcmc(p0, controls.iterations, progress=self.progress)
            flat = sampler.get_chain(discard=controls.n_warmup, thin=controls.thin, flat=True)
            theta, log_gam, beta, log_tau = (
                flat[:, : layout.J],
                flat[:, layout.J],
                flat[:, layout.J + 1 : layout.J + 1 + layout.n_beta],
                flat[:, layout.J + 1 + layout.n_beta :],
            )
            draws = {
                "theta": theta,
                "gam": np.exp(log_gam),
                "lp": sampler.get_log_prob(discard=controls.n_warmup, thin=controls.thin, flat=True),
            }
            if layout.n_beta:
                draws["beta"] = beta
            if layout.horseshoe:
                draws["tau"] = np.exp(log_tau)
            out.append(draws)
        return out
