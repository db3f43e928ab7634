import numpy as np
import pytest

from trackbound.vehicle import (
    VehicleParams,
    steering_angle,
    steering_angle_bounds,
    yaw_rate,
)


def test_yaw_rate_matches_slip_corrected_formula():
    params = VehicleParams(wheelbase=0.3, slip_coefficient=0.01)
    v, delta = 1.8, 0.2
    expected = v * np.tan(delta) / (0.3 + 0.01 * v**2)
    assert yaw_rate(v, delta, params) == pytest.approx(expected)


def test_steering_angle_inverts_yaw_rate():
    params = VehicleParams()
    speeds = np.linspace(1.0, 2.0, 5)
    omegas = np.linspace(-1.0, 1.0, 5)
    delta = steering_angle(omegas, speeds, params)
    np.testing.assert_allclose(yaw_rate(speeds, delta, params), omegas, atol=1e-12)


def test_slip_reduces_yaw_rate():
    no_slip = VehicleParams(slip_coefficient=0.0)
    slip = VehicleParams(slip_coefficient=0.05)
    assert yaw_rate(2.0, 0.3, slip) < yaw_rate(2.0, 0.3, no_slip)


@pytest.mark.parametrize("speed", [0.0, 1e-12, -0.0])
def test_zero_speed_is_clamped(speed):
    params = VehicleParams()
    assert np.isfinite(steering_angle(0.5, speed, params))
    assert np.isfinite(yaw_rate(speed, 0.3, params))


def test_steering_angle_bounds_cover_corners():
    params = VehicleParams(slip_coefficient=4.4e-7)
    lo, hi = steering_angle_bounds((1.0, 2.0), (-1.0, 1.0), params)
    l, c = params.wheelbase, params.slip_coefficient
    assert lo == pytest.approx(min(np.arctan(-(l + c * v**2) / v) for v in (1.0, 2.0)))
    assert hi == pytest.approx(max(np.arctan((l + c * v**2) / v) for v in (1.0, 2.0)))
    assert lo < 0 < hi


def test_invalid_params():
    with pytest.raises(ValueError):
        VehicleParams(wheelbase=0.0)
    with pytest.raises(ValueError):
        VehicleParams(speed_epsilon=0.0)
