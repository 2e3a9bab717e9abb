from __future__ import annotations


class MRFError(Exception):
    """Base class for errors raised while preparing an MRF smoothing model."""


class DataInsufficient(MRFError, ValueError):
    """Too few informative events to build a grid."""


class InvalidGrid(MRFError, ValueError):
    """A grid cell has no statistical support (or times fall outside the grid)."""


class CalibrationError(MRFError, RuntimeError):
    """The zeta root-finder cannot bracket a solution or the naive estimate degenerates."""


class ConfigMismatch(MRFError, ValueError):
    """Prior/likelihood/order configuration disagrees with the data supplied."""


class ShapeMismatch(MRFError, ValueError):
    """Posterior draws are incompatible with the grid."""
