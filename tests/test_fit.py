import numpy as np
import pytest

from trackbound.exceptions import FitInfeasible
from trackbound.fit import (
    check_upper_bound,
    conservative_fit,
    constant_shift,
    least_squares_fit,
    undershoot,
)


@pytest.fixture
def bumpy_envelope():
    t = np.linspace(0.0, 2.0, 41)
    env = 0.2 + 0.05 * np.sin(6 * t) + 0.1 * t
    env[17] += 0.3
    return t, env


def test_shift_equals_worst_undershoot(bumpy_envelope):
    t, env = bumpy_envelope
    raw = least_squares_fit(t, env, 4)
    worst = float(np.max(env - np.polyval(raw, t)))
    assert worst > 0

    fit = conservative_fit(t, env, degree=4)
    assert fit.shift == pytest.approx(worst, rel=1e-9)
    assert np.all(fit(t) >= env)
    np.testing.assert_allclose(fit.coeffs[:-1], raw[:-1])


def test_unshifted_fit_is_not_a_bound(bumpy_envelope):
    t, env = bumpy_envelope
    fit = conservative_fit(t, env, degree=4)
    with pytest.raises(FitInfeasible):
        check_upper_bound(fit.raw_coeffs, t, env)
    check_upper_bound(fit.coeffs, t, env)


def test_bound_is_tight_at_worst_point(bumpy_envelope):
    t, env = bumpy_envelope
    fit = conservative_fit(t, env, degree=4)
    assert np.min(fit(t) - env) == pytest.approx(0.0, abs=1e-12)


def test_no_shift_when_already_above():
    t = np.linspace(0.0, 1.0, 11)
    env = np.zeros_like(t)
    coeffs = np.array([0.0, 0.0, 1.0])
    assert np.array_equal(constant_shift(coeffs, t, env), coeffs)
    assert undershoot(coeffs, t, env) == -1.0


def test_zero_envelope_gives_zero_polynomial():
    t = np.linspace(0.0, 2.0, 201)
    fit = conservative_fit(t, np.zeros_like(t), degree=4)
    assert np.array_equal(fit.coeffs, np.zeros(5))
    assert fit.shift == 0.0


def test_constant_envelope_gives_constant_polynomial():
    t = np.linspace(0.0, 2.0, 201)
    fit = conservative_fit(t, np.full_like(t, 0.3), degree=4)
    np.testing.assert_allclose(fit(t), 0.3, atol=1e-9)
    assert np.all(fit(t) >= 0.3)


@pytest.mark.parametrize("degree", [1, 2, 6])
def test_degree_is_a_parameter(bumpy_envelope, degree):
    t, env = bumpy_envelope
    fit = conservative_fit(t, env, degree=degree)
    assert fit.coeffs.size == degree + 1
    assert np.all(fit(t) >= env)


def test_custom_shift_policy_is_checked(bumpy_envelope):
    t, env = bumpy_envelope
    with pytest.raises(FitInfeasible, match="undershoots"):
        conservative_fit(t, env, shift=lambda c, t, v: c)


@pytest.mark.parametrize(
    "t, env",
    [
        (np.array([]), np.array([])),
        (np.linspace(0, 1, 10), np.full(10, np.nan)),
        (np.linspace(0, 1, 10), np.r_[np.zeros(9), np.nan]),
        (np.linspace(0, 1, 4), np.zeros(4)),
        (np.linspace(0, 1, 10), np.zeros(9)),
        (np.linspace(0, 1, 10), -np.ones(10)),
    ],
)
def test_degenerate_envelope_is_rejected(t, env):
    with pytest.raises(FitInfeasible):
        conservative_fit(t, env, degree=4)
