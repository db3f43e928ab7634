"""Rover agent with a feedback tracking controller.

This module provides RoverAgent, a kinematic bicycle model of an all-wheel
drive rover that tracks a :class:`~trackbound.trajectory.DesiredTrajectory`.
The state is ``[x, y, heading, v, delta]`` where ``delta`` is the steering
angle. Heading is propagated with the shared slip-corrected mapping from
:mod:`trackbound.vehicle`.

The tracking controller follows Kanayama et al.'s stable tracking law to
produce a yaw-rate command, converts it to a steering angle command, and
closes a proportional speed loop. Control inputs are held constant over each
control period while the dynamics are integrated with ``solve_ivp``.

Reference:
    Y. Kanayama, Y. Kimura, F. Miyazaki, and T. Noguchi, "A stable tracking
    control method for an autonomous mobile robot," IEEE ICRA, 1990.
"""

import logging
from decimal import Decimal

import numpy as np
from scipy.integrate import solve_ivp

from trackbound.exceptions import IntegrationDivergence
from trackbound.trajectory import DesiredTrajectory, time_grid
from trackbound.vehicle import VehicleParams, steering_angle, yaw_rate

logger = logging.getLogger(__name__)

STATE_DIM = 5


class RoverAgent:
    """Rover with steering and speed actuators tracking a desired trajectory.

    Usage mirrors a simulator agent: :meth:`reset` places the rover at a
    state, :meth:`move` tracks a desired trajectory for a duration, and
    :attr:`time` / :attr:`state` read back the realized telemetry.
    """

    def __init__(
        self,
        params: VehicleParams | None = None,
        control_period: float = 0.02,
        time_step: float = 0.004,
        k_speed: float = 4.0,
        k_x: float = 2.0,
        k_y: float = 4.0,
        k_heading: float = 3.0,
        k_steer: float = 20.0,
    ):
        """Initialize the rover.

        Args:
            params: Vehicle parameters (default: ``VehicleParams()``)
            control_period: Controller update period in seconds
            time_step: Integration output spacing in seconds
            k_speed: Speed loop gain in 1/s
            k_x: Longitudinal position gain in 1/s^2
            k_y: Lateral position gain in 1/m^2
            k_heading: Heading gain in 1/m
            k_steer: Steering servo bandwidth in 1/s
        """
        self.params = params if params is not None else VehicleParams()
        self.control_period = control_period
        self.time_step = time_step
        self.k_speed = k_speed
        self.k_x = k_x
        self.k_y = k_y
        self.k_heading = k_heading
        self.k_steer = k_steer
        self.reset(np.zeros(STATE_DIM))

    def reset(self, state) -> None:
        """Place the rover at ``state`` and clear its telemetry."""
        state = np.asarray(state, dtype=float)
        if state.shape != (STATE_DIM,):
            raise ValueError(f"state must have length {STATE_DIM}. Got {state.shape}.")
        self.trace = np.concatenate([[0.0], state])[np.newaxis, :]

    @property
    def time(self) -> np.ndarray:
        return self.trace[:, 0]

    @property
    def state(self) -> np.ndarray:
        """Realized states (N, 5) as ``[x, y, heading, v, delta]``."""
        return self.trace[:, 1:]

    def dynamics(self, t: float, state, u: tuple[float, float]) -> list[float]:
        """Continuous-time rover dynamics.

        Args:
            t: Current time (unused for the time-invariant model)
            state: Current state ``[x, y, heading, v, delta]``
            u: Control inputs ``(accel_cmd, delta_cmd)``

        Returns:
            State derivatives
        """
        _, _, heading, v, delta = state
        accel_cmd, delta_cmd = u
        p = self.params

        x_dot = v * np.cos(heading)
        y_dot = v * np.sin(heading)
        heading_dot = yaw_rate(v, delta, p)
        v_dot = min(p.max_accel, max(-p.max_accel, accel_cmd))
        delta_dot = self.k_steer * (delta_cmd - delta)
        delta_dot = min(p.max_steer_rate, max(-p.max_steer_rate, delta_dot))

        return [x_dot, y_dot, float(heading_dot), v_dot, delta_dot]

    def tracking_controller(
        self,
        state,
        reference_posture: tuple[float, float, float],
        reference_velocity: tuple[float, float],
    ) -> tuple[float, float]:
        """Compute ``(accel_cmd, delta_cmd)`` to track the reference.

        The yaw-rate command is the Kanayama law
        ``omega_r + v_r * (k_y * y_e + k_heading * sin(theta_e))``; it is
        converted into a steering angle with the inverse slip-corrected
        mapping and saturated at the steering limit.
        """
        x, y, theta, v, _ = state
        x_r, y_r, theta_r = reference_posture
        v_r, omega_r = reference_velocity

        x_e = np.cos(theta) * (x_r - x) + np.sin(theta) * (y_r - y)
        y_e = -np.sin(theta) * (x_r - x) + np.cos(theta) * (y_r - y)
        theta_e = theta_r - theta

        accel_cmd = self.k_speed * (v_r - v) + self.k_x * x_e
        omega_cmd = omega_r + v_r * (self.k_y * y_e + self.k_heading * np.sin(theta_e))
        delta_cmd = float(steering_angle(omega_cmd, v, self.params))
        delta_cmd = min(self.params.max_steer, max(-self.params.max_steer, delta_cmd))

        return float(accel_cmd), delta_cmd

    def move(self, t_f: float, desired: DesiredTrajectory) -> np.ndarray:
        """Track ``desired`` for ``t_f`` seconds from the current state.

        Each control period is solved as a separate IVP with the control
        input computed from the state at the start of the period.

        Args:
            t_f: Tracking duration in seconds
            desired: Desired trajectory to follow

        Returns:
            Telemetry array (n_points, 6) of ``[t, x, y, heading, v, delta]``

        Raises:
            IntegrationDivergence: If integration fails or the state
                becomes non-finite
        """
        if Decimal(str(self.control_period)) % Decimal(str(self.time_step)) != 0:
            logger.warning(
                "control_period should be a multiple of time_step. Got %s",
                (self.control_period, self.time_step),
            )

        t_eval = time_grid(t_f, self.time_step)
        n_points = t_eval.shape[0]
        steps = max(1, int(round(self.control_period / self.time_step)))
        control_indices = np.append(np.arange(0, n_points - 1, steps), n_points - 1)

        trace = np.zeros((n_points, STATE_DIM + 1))
        trace[:, 0] = t_eval
        state = self.state[-1].copy()
        trace[0, 1:] = state

        for i_start, i_end in zip(control_indices[:-1], control_indices[1:]):
            pr, vr = desired.get_state(t_eval[i_start])
            u = self.tracking_controller(state, pr, vr)
            sol = solve_ivp(
                self.dynamics,
                (t_eval[i_start], t_eval[i_end]),
                state,
                t_eval=t_eval[i_start : i_end + 1],
                args=(u,),
            )
            if not sol.success or sol.y.shape[1] != i_end - i_start + 1:
                raise IntegrationDivergence(
                    f"Integration failed at t={t_eval[i_start]:.3f}: {sol.message}"
                )
            if not np.all(np.isfinite(sol.y)):
                raise IntegrationDivergence(
                    f"Non-finite state after t={t_eval[i_start]:.3f}"
                )
            trace[i_start : i_end + 1, 1:] = sol.y.T
            state = sol.y[:, -1]

        self.trace = trace
        return trace
