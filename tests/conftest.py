import numpy as np
import pytest

from trackbound.config import SweepConfig, TimingInfo
from trackbound.exceptions import IntegrationDivergence
from trackbound.vehicle import VehicleParams, steering_angle


class PerfectAgent:
    """Agent that reproduces the desired trajectory exactly."""

    def __init__(self, vehicle, config):
        self.vehicle = vehicle

    def reset(self, state):
        self.initial_state = np.asarray(state, dtype=float)

    def move(self, t_f, desired):
        self.time = desired.time
        self.state = np.column_stack(
            [desired.x, desired.y, desired.heading, desired.speed, desired.steering]
        )
        return np.column_stack([self.time, self.state])


class BiasedAgent(PerfectAgent):
    """Agent that drives BIAS m/s too fast while matching the yaw rate."""

    BIAS = 0.25

    def move(self, t_f, desired):
        speed = desired.speed + self.BIAS
        steering = steering_angle(desired.yaw_rate, speed, self.vehicle)
        self.time = desired.time
        self.state = np.column_stack(
            [desired.x, desired.y, desired.heading, speed, steering]
        )
        return np.column_stack([self.time, self.state])


class DivergingAgent(PerfectAgent):
    """Agent whose simulation diverges for the largest heading offset."""

    PSI_END = 0.5

    def move(self, t_f, desired):
        if np.isclose(self.initial_state[2], -self.PSI_END):
            raise IntegrationDivergence("state blew up")
        return super().move(t_f, desired)


@pytest.fixture
def vehicle():
    return VehicleParams()


@pytest.fixture
def small_config():
    return SweepConfig(n_samples=2, t_sample=0.05, progress_every=10)


@pytest.fixture
def short_timing():
    return TimingInfo(t_plan=0.5, t_stop=1.0, t_f=0.5)
