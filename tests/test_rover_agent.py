from types import SimpleNamespace

import numpy as np
import pytest

from trackbound import rover_agent
from trackbound.config import ManeuverParams
from trackbound.exceptions import IntegrationDivergence
from trackbound.rover_agent import RoverAgent
from trackbound.trajectory import make_desired_trajectory


def test_reset_sets_initial_telemetry():
    agent = RoverAgent()
    agent.reset([1.0, 2.0, 0.1, 1.5, 0.0])
    assert agent.time.tolist() == [0.0]
    assert agent.state[-1].tolist() == [1.0, 2.0, 0.1, 1.5, 0.0]
    with pytest.raises(ValueError):
        agent.reset([0.0, 0.0, 0.0])


def test_straight_line_is_tracked_exactly():
    agent = RoverAgent()
    desired = make_desired_trajectory(1.0, 0.0, 0.0, 1.5)
    agent.reset([0.0, 0.0, 0.0, 1.5, 0.0])
    trace = agent.move(1.0, desired)

    assert trace.shape == (agent.time.size, 6)
    assert agent.time[-1] == 1.0
    np.testing.assert_allclose(agent.state[:, 3], 1.5, atol=1e-9)
    np.testing.assert_allclose(agent.state[:, 1], 0.0, atol=1e-9)
    np.testing.assert_allclose(agent.state[-1, 0], 1.5, atol=1e-6)


def test_telemetry_is_sampled_at_the_agent_rate():
    agent = RoverAgent(time_step=0.004)
    desired = make_desired_trajectory(0.4, 0.0, 0.0, 1.0, t_sample=0.01)
    agent.reset([0.0, 0.0, 0.0, 1.0, 0.0])
    agent.move(0.4, desired)
    assert agent.time.size == 101
    assert agent.time.size != desired.time.size


def test_heading_offset_converges():
    agent = RoverAgent()
    desired = make_desired_trajectory(2.0, 0.0, 0.3, 1.5)
    agent.reset(ManeuverParams(1.5, 0.0, 1.5, 0.3, 0.0).initial_state(agent.params))
    agent.move(2.0, desired)
    assert np.all(np.isfinite(agent.state))
    assert abs(agent.state[-1, 2]) < 0.3


def test_lowest_speed_stays_finite():
    agent = RoverAgent()
    params = ManeuverParams(v0=1e-6, w0=1.0, v_des=1e-6, psi_end=0.5, w0_des=0.0)
    desired = make_desired_trajectory(1.0, params.w0_des, params.psi_end, params.v_des)
    agent.reset(params.initial_state(agent.params))
    agent.move(1.0, desired)
    assert np.all(np.isfinite(agent.state))


def test_non_finite_state_raises(monkeypatch):
    def exploding_solve_ivp(fun, t_span, y0, t_eval, args):
        return SimpleNamespace(
            success=True, message="", y=np.full((len(y0), len(t_eval)), np.inf)
        )

    monkeypatch.setattr(rover_agent, "solve_ivp", exploding_solve_ivp)
    agent = RoverAgent()
    agent.reset([0.0, 0.0, 0.0, 1.0, 0.0])
    with pytest.raises(IntegrationDivergence):
        agent.move(0.2, make_desired_trajectory(0.2, 0.0, 0.0, 1.0))


def test_failed_integration_raises(monkeypatch):
    def failing_solve_ivp(fun, t_span, y0, t_eval, args):
        return SimpleNamespace(success=False, message="step size too small", y=None)

    monkeypatch.setattr(rover_agent, "solve_ivp", failing_solve_ivp)
    agent = RoverAgent()
    agent.reset([0.0, 0.0, 0.0, 1.0, 0.0])
    with pytest.raises(IntegrationDivergence, match="step size"):
        agent.move(0.2, make_desired_trajectory(0.2, 0.0, 0.0, 1.0))
