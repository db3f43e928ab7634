"""Conservative polynomial bounds on an error envelope.

A least-squares polynomial straddles its data, so on its own it is not an
upper bound. :func:`conservative_fit` fits the polynomial and then applies a
shift policy that lifts it above every data point. The default
:func:`constant_shift` raises the constant term by the worst undershoot.

Coefficients are ordered highest power first, as used by ``numpy.polyval``.
"""

from collections.abc import Callable
from dataclasses import dataclass

import numpy as np

from trackbound.exceptions import FitInfeasible

ShiftPolicy = Callable[[np.ndarray, np.ndarray, np.ndarray], np.ndarray]


def least_squares_fit(time: np.ndarray, values: np.ndarray, degree: int) -> np.ndarray:
    """Unconstrained least-squares polynomial fit."""
    return np.polyfit(time, values, degree)


def undershoot(coeffs: np.ndarray, time: np.ndarray, values: np.ndarray) -> float:
    """Largest amount by which the data exceeds the polynomial."""
    return float(np.max(values - np.polyval(coeffs, time)))


def constant_shift(
    coeffs: np.ndarray, time: np.ndarray, values: np.ndarray
) -> np.ndarray:
    """Raise the constant term so the polynomial bounds every data point.

    Returns a new coefficient array; ``coeffs`` is left untouched. If the
    polynomial already bounds the data it is returned unchanged.
    """
    shifted = np.array(coeffs, dtype=float)
    delta = undershoot(shifted, time, values)
    if delta > 0:
        shifted[-1] += delta
        # Rounding in polyval can leave an undershoot of a few ulps.
        scale = max(float(np.max(np.abs(values))), abs(float(shifted[-1])))
        for _ in range(8):
            gap = undershoot(shifted, time, values)
            if gap <= 0:
                break
            shifted[-1] += max(gap, float(np.spacing(scale)))
    return shifted


def check_upper_bound(coeffs: np.ndarray, time: np.ndarray, values: np.ndarray) -> None:
    """Raise :class:`FitInfeasible` unless the polynomial bounds all data."""
    gap = undershoot(coeffs, time, values)
    if gap > 0:
        raise FitInfeasible(f"Polynomial undershoots the envelope by {gap:.3e}.")


def check_envelope(time: np.ndarray, values: np.ndarray, degree: int) -> None:
    """Reject envelopes that cannot support a sound fit."""
    if time.ndim != 1 or values.shape != time.shape:
        raise FitInfeasible(
            f"Envelope shape {values.shape} does not match time grid {time.shape}."
        )
    if time.size == 0:
        raise FitInfeasible("Envelope is empty.")
    if time.size <= degree:
        raise FitInfeasible(
            f"Need more than {degree} envelope points for a degree {degree} fit. "
            f"Got {time.size}."
        )
    if not np.all(np.isfinite(values)):
        missing = int(np.count_nonzero(~np.isfinite(values)))
        raise FitInfeasible(f"Envelope has {missing} time steps without valid data.")
    if np.any(values < 0):
        raise FitInfeasible("Envelope has negative error values.")


@dataclass(frozen=True)
class BoundFit:
    """A fitted bound and the least-squares fit it was derived from."""

    coeffs: np.ndarray
    raw_coeffs: np.ndarray

    @property
    def shift(self) -> float:
        return float(self.coeffs[-1] - self.raw_coeffs[-1])

    def __call__(self, t):
        return np.polyval(self.coeffs, t)


def conservative_fit(
    time,
    values,
    degree: int = 4,
    shift: ShiftPolicy = constant_shift,
) -> BoundFit:
    """Fit a polynomial of ``degree`` that upper-bounds ``values``.

    Args:
        time: Sample times (N,)
        values: Envelope values (N,), finite and non-negative
        degree: Polynomial degree
        shift: Policy turning the least-squares fit into an upper bound

    Returns:
        The shifted fit together with the raw least-squares coefficients

    Raises:
        FitInfeasible: If the envelope is degenerate or the shifted
            polynomial still undershoots some data point
    """
    time = np.asarray(time, dtype=float)
    values = np.asarray(values, dtype=float)
    check_envelope(time, values, degree)

    raw = least_squares_fit(time, values, degree)
    if not np.all(np.isfinite(raw)):
        raise FitInfeasible("Least-squares fit produced non-finite coefficients.")

    coeffs = shift(raw, time, values)
    check_upper_bound(coeffs, time, values)
    return BoundFit(coeffs=coeffs, raw_coeffs=raw)
