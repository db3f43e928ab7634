"""Error taxonomy for tracking-error function computation.

Per-sample failures (:class:`IntegrationDivergence`) are recovered at the
sampler boundary. A missing timing file (:class:`ConfigMissing`) is recovered
with defaults when it is optional. Fit failures (:class:`FitInfeasible`) are
always fatal.
"""


class ConfigMissing(FileNotFoundError):
    """A configuration artifact could not be found or read."""


class IntegrationDivergence(ArithmeticError):
    """A simulated trajectory produced a non-finite or otherwise invalid state."""


class FitInfeasible(ValueError):
    """The error envelope cannot support a sound polynomial bound."""
