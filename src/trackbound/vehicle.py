"""Vehicle parameters and the steering-angle/yaw-rate mapping.

The rover is modelled as a kinematic bicycle whose yaw rate depends on speed,
steering angle and a speed-dependent slip correction:

    yaw_rate = v * tan(delta) / (wheelbase + slip_coefficient * v**2)

The same mapping is used by :class:`trackbound.rover_agent.RoverAgent` to
propagate heading and by :mod:`trackbound.deviation` to turn steering angles
into yaw rates for the error metric. Speeds are clamped to a small positive
epsilon before any division.

Example:
    >>> from trackbound.vehicle import VehicleParams, yaw_rate, steering_angle
    >>> params = VehicleParams()
    >>> delta = steering_angle(0.5, 1.5, params)
    >>> round(float(yaw_rate(1.5, delta, params)), 6)
    0.5
"""

from dataclasses import dataclass

import numpy as np


@dataclass(frozen=True)
class VehicleParams:
    """Physical parameters of the rover.

    Attributes:
        wheelbase: Distance between axles in meters
        slip_coefficient: Empirical slip correction in s^2/m (may be zero)
        speed_epsilon: Smallest speed used as a divisor in m/s
        max_steer: Steering angle limit in radians
        max_steer_rate: Steering rate limit in rad/s
        max_accel: Longitudinal acceleration limit in m/s^2
    """

    wheelbase: float = 0.3
    slip_coefficient: float = 4.4e-7
    speed_epsilon: float = 1e-3
    max_steer: float = 0.5
    max_steer_rate: float = 4.0
    max_accel: float = 3.0

    def __post_init__(self):
        if not self.wheelbase > 0:
            raise ValueError(f"wheelbase must be positive. Got {self.wheelbase}.")
        if not self.speed_epsilon > 0:
            raise ValueError(
                f"speed_epsilon must be positive. Got {self.speed_epsilon}."
            )
        if not (self.max_steer > 0 and self.max_steer_rate > 0 and self.max_accel > 0):
            raise ValueError("Steering and acceleration limits must be positive.")

    def effective_length(self, speed):
        """Slip-corrected wheelbase at the given speed."""
        return self.wheelbase + self.slip_coefficient * np.square(speed)


def _guard_speed(speed, params: VehicleParams):
    # Keep the sign so reversing would still map consistently.
    speed = np.asarray(speed, dtype=float)
    magnitude = np.maximum(np.abs(speed), params.speed_epsilon)
    return np.where(speed < 0, -magnitude, magnitude)


def yaw_rate(speed, steering, params: VehicleParams):
    """Yaw rate produced by a steering angle at a given speed.

    Args:
        speed: Speed in m/s (scalar or array)
        steering: Steering angle in radians (scalar or array)
        params: Vehicle parameters

    Returns:
        Yaw rate in rad/s, broadcast over the inputs
    """
    v = _guard_speed(speed, params)
    return v * np.tan(steering) / params.effective_length(v)


def steering_angle(yaw_rate_cmd, speed, params: VehicleParams):
    """Steering angle that produces ``yaw_rate_cmd`` at ``speed``.

    Inverse of :func:`yaw_rate`.
    """
    v = _guard_speed(speed, params)
    return np.arctan(yaw_rate_cmd * params.effective_length(v) / v)


def steering_angle_bounds(
    v_range: tuple[float, float],
    w_range: tuple[float, float],
    params: VehicleParams,
) -> tuple[float, float]:
    """Range of initial steering angles implied by speed and yaw-rate ranges.

    The inverse mapping is monotone in yaw rate, and in speed for speeds below
    ``sqrt(wheelbase / slip_coefficient)``, so evaluating the corners of the
    two ranges is sufficient.
    """
    corners = [
        float(steering_angle(w, v, params)) for v in v_range for w in w_range
    ]
    return min(corners), max(corners)
