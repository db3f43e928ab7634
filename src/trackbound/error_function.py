"""Tracking-error function computation and persistence.

The tracking-error function g(t) bounds, per channel, how far the tracked
rover can deviate from a commanded trajectory of the maneuver family after t
seconds of tracking. It is computed by sweeping the maneuver parameters,
reducing the per-sample errors into a worst-case envelope, and fitting a
polynomial that is shifted to lie above the envelope everywhere.

The main functionality includes:
- compute_envelope(): Parallel map over the sweep with a max-reduce
- fit_error_function(): Conservative fit of an envelope
- compute_error_function(): Full pipeline from configuration to g(t)
- save_error_function() / load_error_function(): ``.mat`` persistence
- find_error_function(): Select a stored table by current speed

Example:
    Compute and store the error functions for v0 in [1, 2] m/s:

    >>> from trackbound import SweepConfig, VehicleParams, compute_error_function
    >>> g = compute_error_function(SweepConfig(), VehicleParams(), workers=4)
    >>> path = save_error_function(g, "data")
    >>> g.evaluate("speed", 0.5)
"""

import functools
import logging
import pickle
from collections.abc import Iterable
from concurrent.futures import ProcessPoolExecutor
from dataclasses import asdict, dataclass
from pathlib import Path

import numpy as np
import scipy.io

from trackbound.config import (
    SweepConfig,
    TimingInfo,
    load_timing,
    maneuver_grid,
)
from trackbound.deviation import (
    CHANNELS,
    AgentFactory,
    ErrorEnvelope,
    ErrorSample,
    rover_agent_factory,
    sample_error,
)
from trackbound.exceptions import ConfigMissing, FitInfeasible
from trackbound.fit import ShiftPolicy, conservative_fit, constant_shift
from trackbound.trajectory import time_grid
from trackbound.vehicle import VehicleParams, steering_angle_bounds

logger = logging.getLogger(__name__)

FILENAME_PATTERN = "rover_error_functions_v0_*_to_*.mat"


@dataclass(frozen=True)
class ErrorFunction:
    """Fitted tracking-error bounds and the domain they are valid on.

    Attributes:
        g_v_coeffs: Speed-error bound coefficients, highest power first
        g_w_coeffs: Yaw-rate-error bound coefficients, highest power first
        v0_min, v0_max: Initial speed range swept
        psi_end_min, psi_end_max: Heading offset range swept
        delta_v: Largest speed change between v0 and the commanded speed
        delta0_min, delta0_max: Initial steering angle range
        t_f: Tracking duration the bound covers
        degree: Polynomial degree
        n_samples: Number of valid samples behind the envelope
        n_discarded: Number of diverged samples excluded
    """

    g_v_coeffs: np.ndarray
    g_w_coeffs: np.ndarray
    v0_min: float
    v0_max: float
    psi_end_min: float
    psi_end_max: float
    delta_v: float
    delta0_min: float
    delta0_max: float
    t_f: float
    degree: int
    n_samples: int = 0
    n_discarded: int = 0

    def __post_init__(self):
        for name in ("g_v_coeffs", "g_w_coeffs"):
            coeffs = np.asarray(getattr(self, name), dtype=float)
            if coeffs.ndim != 1 or coeffs.size == 0 or not np.all(np.isfinite(coeffs)):
                raise FitInfeasible(f"{name} is empty or non-finite: {coeffs}.")
            object.__setattr__(self, name, coeffs)

    def coeffs(self, channel: str) -> np.ndarray:
        if channel == "speed":
            return self.g_v_coeffs
        elif channel == "yaw_rate":
            return self.g_w_coeffs
        raise ValueError(f"Unknown channel '{channel}'. Expected one of {CHANNELS}.")

    def evaluate(self, channel: str, t):
        """Error bound of ``channel`` after ``t`` seconds of tracking."""
        return np.polyval(self.coeffs(channel), t)

    def covers(self, v0: float) -> bool:
        return self.v0_min <= v0 <= self.v0_max

    @property
    def filename(self) -> str:
        return error_function_filename(self.v0_min, self.v0_max)


def error_function_filename(v0_min: float, v0_max: float) -> str:
    return f"rover_error_functions_v0_{v0_min:0.1f}_to_{v0_max:0.1f}.mat"


def _reduce(
    samples: Iterable[ErrorSample], time: np.ndarray, config: SweepConfig
) -> ErrorEnvelope:
    envelope = ErrorEnvelope.empty(time)
    for i, sample in enumerate(samples, start=1):
        envelope = envelope.add(sample)
        if i % config.progress_every == 0:
            logger.info("Iteration %d out of %d", i, config.n_total)
    return envelope


def compute_envelope(
    config: SweepConfig,
    vehicle: VehicleParams,
    t_f: float,
    workers: int | None = None,
    agent_factory: AgentFactory = rover_agent_factory,
) -> ErrorEnvelope:
    """Worst-case tracking error over the full maneuver sweep.

    Args:
        config: Sweep ranges and resolution
        vehicle: Vehicle parameters
        t_f: Tracking duration in seconds
        workers: Number of worker processes. ``None`` or 1 runs serially.
            With more than one worker the configuration and
            ``agent_factory`` must be picklable (module-level callables).
        agent_factory: Builds the agent that tracks each maneuver

    Returns:
        Envelope on ``time_grid(t_f, config.t_sample)``. The result does not
        depend on ``workers``.

    Raises:
        ValueError: If a parallel sweep is requested with callables that
            cannot be sent to worker processes
    """
    time = time_grid(t_f, config.t_sample)
    task = functools.partial(
        sample_error,
        config=config,
        vehicle=vehicle,
        t_f=t_f,
        agent_factory=agent_factory,
    )

    logger.info(
        "Sweeping %d maneuvers over t_f=%.2fs with %s worker(s)",
        config.n_total,
        t_f,
        workers or 1,
    )
    if workers is not None and workers > 1:
        try:
            pickle.dumps(task)
        except (pickle.PicklingError, AttributeError, TypeError) as e:
            raise ValueError(
                "yaw_bounds and agent_factory must be module-level callables "
                f"for a sweep with workers={workers}: {e}"
            ) from e
        chunksize = max(1, config.n_total // (4 * workers))
        with ProcessPoolExecutor(max_workers=workers) as executor:
            envelope = _reduce(
                executor.map(task, maneuver_grid(config), chunksize=chunksize),
                time,
                config,
            )
    else:
        envelope = _reduce(map(task, maneuver_grid(config)), time, config)

    if envelope.n_discarded:
        logger.warning(
            "Discarded %d of %d samples due to diverging simulations",
            envelope.n_discarded,
            envelope.n_samples + envelope.n_discarded,
        )
    return envelope


def fit_error_function(
    envelope: ErrorEnvelope,
    config: SweepConfig,
    vehicle: VehicleParams,
    shift: ShiftPolicy = constant_shift,
) -> ErrorFunction:
    """Fit conservative bounds to ``envelope`` and attach the validity domain.

    Raises:
        FitInfeasible: If the envelope holds no valid samples or is
            degenerate at some time step
    """
    if envelope.n_samples == 0:
        raise FitInfeasible(
            f"No valid samples in the envelope ({envelope.n_discarded} discarded)."
        )
    fits = {
        channel: conservative_fit(
            envelope.time, envelope.channel(channel), config.degree, shift
        )
        for channel in CHANNELS
    }
    for channel, fit in fits.items():
        logger.info("Fitted %s bound with shift %.3e", channel, fit.shift)

    delta0_min, delta0_max = steering_angle_bounds(
        (config.v0_min, config.v0_max), (config.w0_min, config.w0_max), vehicle
    )
    return ErrorFunction(
        g_v_coeffs=fits["speed"].coeffs,
        g_w_coeffs=fits["yaw_rate"].coeffs,
        v0_min=config.v0_min,
        v0_max=config.v0_max,
        psi_end_min=config.psi_end_min,
        psi_end_max=config.psi_end_max,
        delta_v=config.delta_v,
        delta0_min=delta0_min,
        delta0_max=delta0_max,
        t_f=float(envelope.time[-1]),
        degree=config.degree,
        n_samples=envelope.n_samples,
        n_discarded=envelope.n_discarded,
    )


def compute_error_function(
    config: SweepConfig,
    vehicle: VehicleParams,
    timing: TimingInfo | None = None,
    workers: int | None = None,
    shift: ShiftPolicy = constant_shift,
    agent_factory: AgentFactory = rover_agent_factory,
) -> ErrorFunction:
    """Compute the tracking-error function for a sweep configuration.

    Args:
        config: Sweep ranges and resolution
        vehicle: Vehicle parameters
        timing: Planner timing. ``None`` falls back to the defaults with a
            warning.
        workers: Number of worker processes for the sweep
        shift: Policy that turns the least-squares fit into an upper bound
        agent_factory: Builds the agent that tracks each maneuver

    Returns:
        The fitted error function

    Raises:
        FitInfeasible: If no sound bound can be established
    """
    if timing is None:
        timing = load_timing(None)
    envelope = compute_envelope(config, vehicle, timing.t_f, workers, agent_factory)
    return fit_error_function(envelope, config, vehicle, shift)


def save_error_function(error_function: ErrorFunction, directory: str | Path = ".") -> Path:
    """Write ``error_function`` to ``directory`` under its v0-range name.

    Returns:
        Path of the written ``.mat`` file
    """
    path = Path(directory) / error_function.filename
    path.parent.mkdir(parents=True, exist_ok=True)
    scipy.io.savemat(str(path), asdict(error_function))
    logger.info("Saved error functions to %s", path)
    return path


def load_error_function(path: str | Path) -> ErrorFunction:
    """Read an error function written by :func:`save_error_function`."""
    path = Path(path)
    if not path.is_file():
        raise ConfigMissing(f"No error function file at {path}.")
    data = scipy.io.loadmat(str(path))
    try:
        return ErrorFunction(
            g_v_coeffs=np.ravel(data["g_v_coeffs"]),
            g_w_coeffs=np.ravel(data["g_w_coeffs"]),
            v0_min=float(np.squeeze(data["v0_min"])),
            v0_max=float(np.squeeze(data["v0_max"])),
            psi_end_min=float(np.squeeze(data["psi_end_min"])),
            psi_end_max=float(np.squeeze(data["psi_end_max"])),
            delta_v=float(np.squeeze(data["delta_v"])),
            delta0_min=float(np.squeeze(data["delta0_min"])),
            delta0_max=float(np.squeeze(data["delta0_max"])),
            t_f=float(np.squeeze(data["t_f"])),
            degree=int(np.squeeze(data["degree"])),
            n_samples=int(np.squeeze(data.get("n_samples", 0))),
            n_discarded=int(np.squeeze(data.get("n_discarded", 0))),
        )
    except KeyError as e:
        raise ConfigMissing(f"Error function file {path} has no variable {e}.") from e


def find_error_function(directory: str | Path, v0: float) -> ErrorFunction:
    """Load the stored error function whose v0 range contains ``v0``."""
    for path in sorted(Path(directory).glob(FILENAME_PATTERN)):
        error_function = load_error_function(path)
        if error_function.covers(v0):
            return error_function
    raise ConfigMissing(f"No error function in {directory} covers v0={v0}.")


if __name__ == "__main__":
    logging.basicConfig(level=logging.INFO)
    g = compute_error_function(SweepConfig(), VehicleParams(), load_timing())
    save_error_function(g)
