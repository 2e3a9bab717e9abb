from __future__ import annotations

from pathlib import Path

import numpy as np
import pandas as pd

from .aggregation import Likelihood
from .errors import ConfigMismatch
from .observations import (
    BinomialObservations,
    CoalescentObservations,
    CountObservations,
    Observations,
    SurvivalObservations,
)


def _read(path: Path, required: tuple[str, ...]) -> pd.DataFrame:
    df = pd.read_csv(path, comment="#")
    missing = [c for c in required if c not in df.columns]
    if missing:
        raise ValueError(f"{path} missing column(s): {', '.join(missing)}")
    if df[list(required)].isna().to_numpy().any():
        raise ValueError(f"{path} has empty values in {', '.join(required)}.")
    return df


def load_coalescent(*, samples_path: Path, coal_path: Path) -> CoalescentObservations:
    """Load sampling events (``samp_time,n_sampled``) and coalescent times (``coal_time``)."""
    samp = _read(Path(samples_path), ("samp_time", "n_sampled"))
    coal = _read(Path(coal_path), ("coal_time",))
    return CoalescentObservations(
        samp_times=samp["samp_time"].to_numpy(dtype=float),
        n_sampled=samp["n_sampled"].to_numpy(dtype=int),
        coal_times=np.sort(coal["coal_time"].to_numpy(dtype=float)),
    )


def load_counts(path: Path) -> CountObservations:
    df = _read(Path(path), ("time", "exposure", "count"))
    return CountObservations(
        times=df["time"].to_numpy(dtype=float),
        exposure=df["exposure"].to_numpy(dtype=float),
        counts=df["count"].to_numpy(dtype=int),
    )


def load_binomial(path: Path) -> BinomialObservations:
    df = _read(Path(path), ("time", "trials", "successes"))
    return BinomialObservations(
        times=df["time"].to_numpy(dtype=float),
        trials=df["trials"].to_numpy(dtype=int),
        successes=df["successes"].to_numpy(dtype=int),
    )


def load_survival(path: Path) -> SurvivalObservations:
    """Load ``time,event`` rows; an optional ``entry`` column gives left-truncation times."""
    df = _read(Path(path), ("time", "event"))
    entry = df["entry"].to_numpy(dtype=float) if "entry" in df.columns else None
    return SurvivalObservations(
        times=df["time"].to_numpy(dtype=float),
        events=df["event"].to_numpy(dtype=int),
        entry_times=entry,
    )


def load_observations(likelihood: Likelihood | str, *paths: Path) -> Observations:
    try:
        likelihood = Likelihood(likelihood)
    except ValueError:
        raise ConfigMismatch(f"Unknown likelihood family {likelihood!r}.") from None
    if likelihood is Likelihood.COALESCENT:
        if len(paths) != 2:
            raise ValueError("Coalescent data needs two files: samples and coalescent times.")
        return load_coalescent(samples_path=paths[0], coal_path=paths[1])
    if len(paths) != 1:
        raise ValueError(f"{likelihood.value} data needs exactly one file.")
    loader = {
        Likelihood.COUNT: load_counts,
        Likelihood.BINOMIAL: load_binomial,
        Likelihood.SURVIVAL: load_survival,
    }[likelihood]
    return loader(paths[0])
