"""Desired (open-loop) trajectories for the rover maneuver family.

A maneuver is described by a final time ``t_f``, a terminal yaw-rate command
``w0_des``, a heading offset ``psi_end`` and a commanded speed ``v_des``. The
desired trajectory starts at heading ``-psi_end`` and ends at heading 0 with
yaw rate ``w0_des``. The heading is the quadratic Hermite interpolant of
these three conditions, so the yaw rate is linear in time and the steering
command is continuous. The speed is held at ``v_des`` for the whole maneuver.

Example:
    Build a maneuver and query the reference at t=0.5s:

    >>> traj = make_desired_trajectory(2.0, 0.2, 0.3, 1.5)
    >>> (x, y, heading), (v, omega) = traj.get_state(0.5)
"""

from dataclasses import dataclass

import numpy as np
from scipy.integrate import cumulative_trapezoid

from trackbound.vehicle import VehicleParams, steering_angle

DEFAULT_T_SAMPLE = 0.01


def time_grid(t_f: float, t_sample: float = DEFAULT_T_SAMPLE) -> np.ndarray:
    """Uniform time grid on [0, t_f] that always ends exactly at ``t_f``.

    Args:
        t_f: Final time in seconds
        t_sample: Sample spacing in seconds

    Returns:
        Strictly increasing array starting at 0 and ending at ``t_f``

    Raises:
        ValueError: If ``t_f`` or ``t_sample`` is not positive
    """
    if not t_f > 0:
        raise ValueError(f"t_f must be positive. Got {t_f}.")
    if not t_sample > 0:
        raise ValueError(f"t_sample must be positive. Got {t_sample}.")

    # Integer multiples avoid the drift of repeated float addition.
    n = int(np.floor(t_f / t_sample + 1e-9))
    grid = np.arange(n + 1) * t_sample
    if t_f - grid[-1] > 1e-9 * t_sample:
        grid = np.append(grid, t_f)
    else:
        grid[-1] = t_f
    return grid


@dataclass(frozen=True)
class DesiredTrajectory:
    """Desired state and command trajectory sampled on a fixed grid.

    Attributes:
        time: Sample times (N,)
        x: X position (N,)
        y: Y position (N,)
        heading: Heading angle (N,)
        speed: Desired speed (N,)
        yaw_rate: Desired yaw rate (N,)
        steering: Steering angle that realizes ``yaw_rate`` at ``speed`` (N,)
    """

    time: np.ndarray
    x: np.ndarray
    y: np.ndarray
    heading: np.ndarray
    speed: np.ndarray
    yaw_rate: np.ndarray
    steering: np.ndarray

    @property
    def t_f(self) -> float:
        return float(self.time[-1])

    def get_state(
        self, t: float
    ) -> tuple[tuple[float, float, float], tuple[float, float]]:
        """Reference posture and velocity at time ``t``.

        Values between grid points are linearly interpolated; times outside
        [0, t_f] are clamped to the end points.

        Returns:
            Tuple of ``(x, y, heading)`` and ``(speed, yaw_rate)``
        """
        posture = tuple(
            float(np.interp(t, self.time, a)) for a in (self.x, self.y, self.heading)
        )
        velocity = tuple(
            float(np.interp(t, self.time, a)) for a in (self.speed, self.yaw_rate)
        )
        return posture, velocity


def _heading_profile(s: np.ndarray, t_f: float, h0: float, w_end: float):
    # Quadratic Hermite basis with h(0) = h0, h(1) = 0 and dh/dt(1) = w_end.
    h = h0 * (1 - s) ** 2 + t_f * w_end * (s**2 - s)
    dh = (-2 * h0 * (1 - s) + t_f * w_end * (2 * s - 1)) / t_f
    return h, dh


def make_desired_trajectory(
    t_f: float,
    w0_des: float,
    psi_end: float,
    v_des: float,
    params: VehicleParams | None = None,
    t_sample: float = DEFAULT_T_SAMPLE,
) -> DesiredTrajectory:
    """Generate the desired trajectory for one maneuver.

    The result is a pure function of its arguments: repeated calls return
    bit-identical arrays.

    Args:
        t_f: Maneuver duration in seconds
        w0_des: Yaw-rate command reached at ``t_f`` in rad/s
        psi_end: Heading offset removed over the maneuver in rad. The
            trajectory starts at heading ``-psi_end`` and ends at heading 0.
        v_des: Commanded speed in m/s
        params: Vehicle parameters for the steering-equivalent command
        t_sample: Grid spacing in seconds

    Returns:
        The desired trajectory on ``time_grid(t_f, t_sample)``
    """
    params = params if params is not None else VehicleParams()
    t = time_grid(t_f, t_sample)
    s = t / t_f

    heading, omega = _heading_profile(s, t_f, -psi_end, w0_des)
    speed = np.full_like(t, float(v_des))
    x = cumulative_trapezoid(speed * np.cos(heading), t, initial=0.0)
    y = cumulative_trapezoid(speed * np.sin(heading), t, initial=0.0)
    steering = steering_angle(omega, speed, params)

    return DesiredTrajectory(
        time=t,
        x=x,
        y=y,
        heading=heading,
        speed=speed,
        yaw_rate=omega,
        steering=steering,
    )
