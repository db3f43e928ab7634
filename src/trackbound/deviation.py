"""Tracking error of the rover against its desired trajectories.

This module measures how far the feedback-tracked rover deviates from the
commanded trajectory, per channel (speed and yaw rate), and reduces many such
measurements into a worst-case envelope.

The main functionality includes:
- match_trajectories(): Resample realized telemetry onto the desired grid
- compare_trajectories(): Per-channel absolute error for one maneuver
- sample_error(): Generate, simulate and compare one maneuver
- ErrorEnvelope / aggregate(): Pointwise maximum over many samples

Samples whose simulation diverged are kept as invalid ``ErrorSample``
objects so they can be counted, but they never enter the envelope.

Example:
    >>> from trackbound.config import ManeuverParams, SweepConfig
    >>> from trackbound.vehicle import VehicleParams
    >>> params = ManeuverParams(v0=1.5, w0=0.0, v_des=1.5, psi_end=0.1, w0_des=0.0)
    >>> sample = sample_error(params, SweepConfig(), VehicleParams(), t_f=1.0)
    >>> envelope = aggregate([sample], sample.time)
"""

import functools
import logging
from collections.abc import Callable, Iterable
from dataclasses import dataclass

import numpy as np

from trackbound.config import ManeuverParams, SweepConfig
from trackbound.exceptions import IntegrationDivergence
from trackbound.rover_agent import RoverAgent
from trackbound.trajectory import DesiredTrajectory, make_desired_trajectory
from trackbound.vehicle import VehicleParams, yaw_rate

logger = logging.getLogger(__name__)

CHANNELS = ("speed", "yaw_rate")

AgentFactory = Callable[[VehicleParams, SweepConfig], RoverAgent]


def rover_agent_factory(vehicle: VehicleParams, config: SweepConfig) -> RoverAgent:
    return RoverAgent(
        vehicle, control_period=config.control_period, time_step=config.time_step
    )


@dataclass(frozen=True)
class ErrorSample:
    """Absolute tracking error of one maneuver on the desired time grid.

    Attributes:
        params: Maneuver that produced this sample
        time: Desired time grid (N,)
        speed: Speed error (N,)
        yaw_rate: Yaw-rate error (N,)
        reason: Why the sample is invalid, or ``None`` if it is valid
    """

    params: ManeuverParams | None
    time: np.ndarray
    speed: np.ndarray
    yaw_rate: np.ndarray
    reason: str | None = None

    @classmethod
    def invalid(
        cls, params: ManeuverParams | None, time: np.ndarray, reason: str
    ) -> "ErrorSample":
        nan = np.full_like(time, np.nan, dtype=float)
        return cls(params, time, nan, nan.copy(), reason)

    @property
    def valid(self) -> bool:
        return (
            self.reason is None
            and bool(np.all(np.isfinite(self.speed)))
            and bool(np.all(np.isfinite(self.yaw_rate)))
        )


def match_trajectories(
    t_desired: np.ndarray, t_realized: np.ndarray, states: np.ndarray
) -> np.ndarray:
    """Linearly interpolate realized states onto the desired time grid.

    Args:
        t_desired: Target times (N,)
        t_realized: Realized sample times (M,), increasing
        states: Realized states (M, n)

    Returns:
        Resampled states (N, n). Times outside the realized span take the
        nearest end value.
    """
    states = np.asarray(states, dtype=float)
    return np.column_stack(
        [np.interp(t_desired, t_realized, states[:, i]) for i in range(states.shape[1])]
    )


def compare_trajectories(
    desired: DesiredTrajectory,
    t_realized: np.ndarray,
    states: np.ndarray,
    vehicle: VehicleParams,
    params: ManeuverParams | None = None,
) -> ErrorSample:
    """Per-channel absolute error between realized and desired trajectories.

    Realized states are ``[x, y, heading, v, delta]``. Yaw rates on both
    sides come from :func:`trackbound.vehicle.yaw_rate`.
    """
    matched = match_trajectories(desired.time, t_realized, states)
    v_real, delta_real = matched[:, 3], matched[:, 4]

    speed_err = np.abs(v_real - desired.speed)
    yaw_err = np.abs(
        yaw_rate(v_real, delta_real, vehicle)
        - yaw_rate(desired.speed, desired.steering, vehicle)
    )
    return ErrorSample(params, desired.time, speed_err, yaw_err)


def sample_error(
    params: ManeuverParams,
    config: SweepConfig,
    vehicle: VehicleParams,
    t_f: float,
    agent_factory: AgentFactory = rover_agent_factory,
) -> ErrorSample:
    """Simulate one maneuver and measure its tracking error.

    A diverging simulation yields an invalid sample instead of raising.
    """
    desired = make_desired_trajectory(
        t_f, params.w0_des, params.psi_end, params.v_des, vehicle, config.t_sample
    )
    agent = agent_factory(vehicle, config)
    agent.reset(params.initial_state(vehicle))
    try:
        agent.move(t_f, desired)
    except IntegrationDivergence as e:
        logger.debug("Discarding %s: %s", params, e)
        return ErrorSample.invalid(params, desired.time, str(e))

    sample = compare_trajectories(desired, agent.time, agent.state, vehicle, params)
    if not sample.valid:
        logger.debug("Discarding %s: non-finite error", params)
        return ErrorSample.invalid(params, desired.time, "non-finite error")
    return sample


@dataclass(frozen=True)
class ErrorEnvelope:
    """Pointwise worst-case error per channel over a set of samples.

    Entries with no contributing sample are NaN. Combining envelopes with
    :meth:`merge` is commutative and associative.

    Attributes:
        time: Shared time grid (N,)
        speed: Maximum speed error (N,)
        yaw_rate: Maximum yaw-rate error (N,)
        n_samples: Number of valid samples reduced into the envelope
        n_discarded: Number of invalid samples skipped
    """

    time: np.ndarray
    speed: np.ndarray
    yaw_rate: np.ndarray
    n_samples: int = 0
    n_discarded: int = 0

    @classmethod
    def empty(cls, time: np.ndarray) -> "ErrorEnvelope":
        time = np.asarray(time, dtype=float)
        nan = np.full_like(time, np.nan)
        return cls(time, nan, nan.copy())

    def channel(self, name: str) -> np.ndarray:
        if name not in CHANNELS:
            raise ValueError(f"Unknown channel '{name}'. Expected one of {CHANNELS}.")
        return getattr(self, name)

    def _check_grid(self, time: np.ndarray) -> None:
        if time.shape != self.time.shape or not np.allclose(time, self.time):
            raise ValueError(
                f"Time grids differ: {time.shape} vs envelope {self.time.shape}."
            )

    def add(self, sample: ErrorSample) -> "ErrorEnvelope":
        """Envelope including ``sample``, or counting it as discarded."""
        self._check_grid(sample.time)
        if not sample.valid:
            return ErrorEnvelope(
                self.time,
                self.speed,
                self.yaw_rate,
                self.n_samples,
                self.n_discarded + 1,
            )
        return ErrorEnvelope(
            self.time,
            np.fmax(self.speed, sample.speed),
            np.fmax(self.yaw_rate, sample.yaw_rate),
            self.n_samples + 1,
            self.n_discarded,
        )

    def merge(self, other: "ErrorEnvelope") -> "ErrorEnvelope":
        self._check_grid(other.time)
        return ErrorEnvelope(
            self.time,
            np.fmax(self.speed, other.speed),
            np.fmax(self.yaw_rate, other.yaw_rate),
            self.n_samples + other.n_samples,
            self.n_discarded + other.n_discarded,
        )


def aggregate(samples: Iterable[ErrorSample], time: np.ndarray) -> ErrorEnvelope:
    """Reduce samples into an envelope on ``time``, skipping invalid ones."""
    return functools.reduce(ErrorEnvelope.add, samples, ErrorEnvelope.empty(time))
