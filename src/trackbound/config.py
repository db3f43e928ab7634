"""Sweep configuration, planner timing and the maneuver parameter grid.

The sweep covers five dimensions: initial speed ``v0``, initial yaw-rate
command ``w0``, commanded speed ``v_des``, heading offset ``psi_end`` and
terminal yaw-rate command ``w0_des``. The ``v_des`` range depends on ``v0``
(the controller can only change speed by ``delta_v`` over a maneuver) and the
``w0_des`` range depends on ``psi_end`` through a pluggable bound policy.

Example:
    >>> config = SweepConfig(n_samples=2)
    >>> sum(1 for _ in maneuver_grid(config))
    32
"""

import itertools
import logging
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

import numpy as np
import scipy.io

from trackbound.exceptions import ConfigMissing
from trackbound.vehicle import VehicleParams, steering_angle

logger = logging.getLogger(__name__)

DEFAULT_TIMING_FILE = "rover_timing.mat"


@dataclass(frozen=True)
class TimingInfo:
    """Planner timing in seconds.

    Attributes:
        t_plan: Planning time allotted per receding-horizon iteration
        t_stop: Time needed to brake to a stop
        t_f: Maneuver duration over which tracking error is bounded
    """

    t_plan: float
    t_stop: float
    t_f: float

    def __post_init__(self):
        if not (self.t_plan > 0 and self.t_stop > 0 and self.t_f > 0):
            raise ValueError(f"Timing values must be positive. Got {self}.")


DEFAULT_TIMING = TimingInfo(t_plan=0.5, t_stop=2.0, t_f=2.0)


def load_timing(path: str | Path | None = DEFAULT_TIMING_FILE) -> TimingInfo:
    """Load planner timing from a ``.mat`` file.

    Args:
        path: File holding ``t_plan``, ``t_stop`` and ``t_f``. ``None`` means
            no timing artifact is available.

    Returns:
        The stored timing, or :data:`DEFAULT_TIMING` if the file is absent

    Raises:
        ConfigMissing: If the file exists but lacks a timing variable
    """
    if path is None or not Path(path).is_file():
        logger.warning(
            "Could not find timing file %s. Using defaults %s.", path, DEFAULT_TIMING
        )
        return DEFAULT_TIMING

    logger.info("Loading planner timing from %s", path)
    data = scipy.io.loadmat(str(path))
    try:
        values = {k: float(np.squeeze(data[k])) for k in ("t_plan", "t_stop", "t_f")}
    except KeyError as e:
        raise ConfigMissing(f"Timing file {path} has no variable {e}.") from e
    return TimingInfo(**values)


@dataclass(frozen=True)
class ManeuverParams:
    """One sampled combination of maneuver parameters."""

    v0: float
    w0: float
    v_des: float
    psi_end: float
    w0_des: float

    def initial_state(self, vehicle: VehicleParams) -> np.ndarray:
        """Rover state ``[x, y, heading, v, delta]`` at the start of tracking.

        The initial steering angle is the one that produces ``w0`` at ``v0``.
        """
        delta0 = float(steering_angle(self.w0, self.v0, vehicle))
        return np.array([0.0, 0.0, -self.psi_end, self.v0, delta0])


# Called as policy(psi_end, config) -> (w_min, w_max).
YawBoundPolicy = Callable[..., tuple[float, float]]


def heading_limited_yaw_bounds(psi_end: float, config: "SweepConfig") -> tuple[float, float]:
    """Feasible terminal yaw-rate commands for a heading offset.

    Large positive offsets disallow strongly negative commands and vice
    versa: ``w_min = max(-1, psi_end/psi_end_max - 1)`` and
    ``w_max = min(1, psi_end/psi_end_min + 1)``. A side of the heading range
    that does not extend past zero leaves the matching bound at -1 or 1.
    """
    w_min, w_max = -1.0, 1.0
    if config.psi_end_max > 0:
        w_min = max(w_min, psi_end / config.psi_end_max - 1.0)
    if config.psi_end_min < 0:
        w_max = min(w_max, psi_end / config.psi_end_min + 1.0)
    return w_min, w_max


@dataclass(frozen=True)
class SweepConfig:
    """Ranges and resolution of the maneuver parameter sweep.

    Attributes:
        v0_min, v0_max: Initial speed range in m/s
        w0_min, w0_max: Initial yaw-rate command range in rad/s
        min_spd, max_spd: Absolute limits on commanded speed in m/s
        psi_end_min, psi_end_max: Heading offset range in rad
        delta_v: Largest allowed change between v0 and v_des in m/s
        n_samples: Samples per swept dimension
        t_sample: Spacing of the error time grid in seconds
        degree: Degree of the fitted bound polynomial
        control_period: Tracking controller period in seconds
        time_step: Integration output spacing in seconds
        yaw_bounds: Policy returning the ``w0_des`` range for a ``psi_end``.
            Must be a module-level function when the sweep runs in worker
            processes.
        progress_every: Log progress every this many samples
    """

    v0_min: float = 1.0
    v0_max: float = 2.0
    w0_min: float = -1.0
    w0_max: float = 1.0
    min_spd: float = 1.0
    max_spd: float = 2.0
    psi_end_min: float = -0.5
    psi_end_max: float = 0.5
    delta_v: float = 1.0
    n_samples: int = 4
    t_sample: float = 0.01
    degree: int = 4
    control_period: float = 0.02
    time_step: float = 0.004
    yaw_bounds: YawBoundPolicy = heading_limited_yaw_bounds
    progress_every: int = 100

    def __post_init__(self):
        for lo, hi in (
            ("v0_min", "v0_max"),
            ("w0_min", "w0_max"),
            ("min_spd", "max_spd"),
            ("psi_end_min", "psi_end_max"),
        ):
            if getattr(self, lo) > getattr(self, hi):
                raise ValueError(
                    f"{lo} must not exceed {hi}. Got {getattr(self, lo)} > {getattr(self, hi)}."
                )
        if not self.v0_min > 0:
            raise ValueError(f"v0_min must be positive. Got {self.v0_min}.")
        if self.n_samples < 1:
            raise ValueError(f"n_samples must be at least 1. Got {self.n_samples}.")
        if self.delta_v < 0:
            raise ValueError(f"delta_v must be non-negative. Got {self.delta_v}.")
        if self.degree < 0:
            raise ValueError(f"degree must be non-negative. Got {self.degree}.")
        if self.progress_every < 1:
            raise ValueError(
                f"progress_every must be at least 1. Got {self.progress_every}."
            )
        for psi_end in (self.psi_end_min, self.psi_end_max):
            w_min, w_max = self.yaw_bounds(psi_end, self)
            if w_min > w_max:
                raise ValueError(
                    f"Empty w0_des range {(w_min, w_max)} for psi_end={psi_end}."
                )

    @property
    def n_total(self) -> int:
        return self.n_samples**5

    def speed_commands(self, v0: float) -> np.ndarray:
        """Commanded speeds reachable from ``v0`` within ``delta_v``."""
        lo = max(v0 - self.delta_v, self.min_spd)
        hi = min(v0 + self.delta_v, self.max_spd)
        if lo > hi:
            raise ValueError(
                f"No feasible speed command for v0={v0} within [{self.min_spd}, {self.max_spd}]."
            )
        return np.linspace(lo, hi, self.n_samples)

    def yaw_commands(self, psi_end: float) -> np.ndarray:
        w_min, w_max = self.yaw_bounds(psi_end, self)
        return np.linspace(w_min, w_max, self.n_samples)


def maneuver_grid(config: SweepConfig) -> Iterator[ManeuverParams]:
    """Enumerate the Cartesian sweep in a fixed, deterministic order."""
    v0_vec = np.linspace(config.v0_min, config.v0_max, config.n_samples)
    w0_vec = np.linspace(config.w0_min, config.w0_max, config.n_samples)
    psi_vec = np.linspace(config.psi_end_min, config.psi_end_max, config.n_samples)

    for v0, w0 in itertools.product(v0_vec, w0_vec):
        for v_des, psi_end in itertools.product(config.speed_commands(v0), psi_vec):
            for w0_des in config.yaw_commands(psi_end):
                yield ManeuverParams(
                    float(v0), float(w0), float(v_des), float(psi_end), float(w0_des)
                )
