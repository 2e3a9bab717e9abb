from __future__ import annotations

from dataclasses import dataclass

import numpy as np

from .errors import ConfigMismatch

SUPPORTED_ORDERS = (1, 2)


def check_order(order: int) -> int:
    if order not in SUPPORTED_ORDERS:
        raise ConfigMismatch(f"order must be one of {SUPPORTED_ORDERS} (got {order!r}).")
    return int(order)


@dataclass(frozen=True)
class DifferenceStructure:
    """Order-k differencing of a length-``n_cells`` log-trajectory.

    Row i of the weight pattern gives theta[i+1] - theta[i] (k=1) or
    theta[i+2] - 2 theta[i+1] + theta[i] (k=2). The first k values are left out of
    the differenced chain and receive their own vague prior.
    """

    order: int
    n_cells: int

    def __post_init__(self) -> None:
        check_order(self.order)
        if self.n_cells <= self.order:
            raise ConfigMismatch(
                f"Order-{self.order} differences need more than {self.order} cells (got {self.n_cells})."
            )

    @property
    def n_differences(self) -> int:
        return self.n_cells - self.order

    def weights(self) -> np.ndarray:
        return np.diff(np.eye(self.n_cells), n=self.order, axis=0)

    def apply(self, theta: np.ndarray) -> np.ndarray:
        theta = np.asarray(theta, dtype=float)
        if theta.shape[-1] != self.n_cells:
            raise ConfigMismatch(f"Expected {self.n_cells} values along the last axis, got {theta.shape[-1]}.")
        return np.diff(theta, n=self.order, axis=-1)

    def to_payload(self) -> dict[str, int]:
        return {"order": int(self.order), "n_diff": int(self.n_differences)}
