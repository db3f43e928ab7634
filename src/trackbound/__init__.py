"""trackbound: Certified tracking-error bounds for reachability-based planning.

This package computes the tracking-error function g(t) used by a
reachability-based trajectory planner for a rover. The planner's forward
reachable set is only sound if the feedback-tracked rover never deviates from
the commanded trajectory by more than g(t), per channel (speed and yaw rate),
after t seconds of tracking.

The package includes:
- RoverAgent: Rover dynamics with a feedback tracking controller
- make_desired_trajectory: The parameterized maneuver family
- deviation: Per-maneuver tracking error and worst-case envelopes
- fit: Conservative polynomial bounds
- compute_error_function: The full sweep, fit and persistence pipeline

Example:
    Compute the error functions for the default sweep and store them:

    >>> from trackbound import SweepConfig, VehicleParams, compute_error_function
    >>> from trackbound import save_error_function
    >>> g = compute_error_function(SweepConfig(), VehicleParams())
    >>> save_error_function(g, "data")
"""

from trackbound.config import (
    DEFAULT_TIMING,
    ManeuverParams,
    SweepConfig,
    TimingInfo,
    load_timing,
    maneuver_grid,
)
from trackbound.deviation import ErrorEnvelope, ErrorSample, aggregate, sample_error
from trackbound.error_function import (
    ErrorFunction,
    compute_envelope,
    compute_error_function,
    find_error_function,
    fit_error_function,
    load_error_function,
    save_error_function,
)
from trackbound.exceptions import ConfigMissing, FitInfeasible, IntegrationDivergence
from trackbound.fit import conservative_fit, constant_shift
from trackbound.rover_agent import RoverAgent
from trackbound.trajectory import DesiredTrajectory, make_desired_trajectory
from trackbound.vehicle import VehicleParams, steering_angle, yaw_rate

__all__ = [
    "DEFAULT_TIMING",
    "ConfigMissing",
    "DesiredTrajectory",
    "ErrorEnvelope",
    "ErrorFunction",
    "ErrorSample",
    "FitInfeasible",
    "IntegrationDivergence",
    "ManeuverParams",
    "RoverAgent",
    "SweepConfig",
    "TimingInfo",
    "VehicleParams",
    "aggregate",
    "compute_envelope",
    "compute_error_function",
    "conservative_fit",
    "constant_shift",
    "find_error_function",
    "fit_error_function",
    "load_error_function",
    "load_timing",
    "make_desired_trajectory",
    "maneuver_grid",
    "sample_error",
    "save_error_function",
    "steering_angle",
    "yaw_rate",
]
