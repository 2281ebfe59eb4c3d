"""
pytest configuration and fixtures for mpclib tests.
"""

import pytest
import numpy as np


# ============================================================================
# Fixtures
# ============================================================================

@pytest.fixture
def small_dim():
    """
    Small linear problem.

    nx=2, nu=1, ndu=1, ny=1, ph=5, ch=2
    QP variables: 6 augmented blocks of 3 + 5 increments = 23
    """
    from mpclib import Dimensions
    return Dimensions(nx=2, nu=1, ndu=1, ny=1, ph=5, ch=2)


@pytest.fixture
def double_integrator_model():
    """
    Discrete double integrator, position measured.

    x = [position, velocity], u = acceleration, dt = 0.1
    """
    dt = 0.1
    A = np.array([[1.0, dt], [0.0, 1.0]])
    B = np.array([[0.5 * dt**2], [dt]])
    C = np.array([[1.0, 0.0]])
    return {"A": A, "B": B, "C": C, "dt": dt}


@pytest.fixture
def builder(small_dim, double_integrator_model):
    """ProblemBuilder with the double integrator and open bounds."""
    from mpclib import ProblemBuilder

    ph = small_dim.ph
    b = ProblemBuilder()
    b.initialize(small_dim)
    b.set_state_model(
        double_integrator_model["A"],
        double_integrator_model["B"],
        double_integrator_model["C"],
    )
    b.set_constraints(
        x_min=np.full((2, ph), -np.inf), u_min=np.full((1, ph), -np.inf),
        y_min=np.full((1, ph), -np.inf), x_max=np.full((2, ph), np.inf),
        u_max=np.full((1, ph), np.inf), y_max=np.full((1, ph), np.inf),
    )
    b.set_objective(
        np.ones((1, ph + 1)),
        np.zeros((1, ph + 1)),
        np.full((1, ph), 0.1),
    )
    return b


@pytest.fixture
def scalar_nmpc():
    """
    Nonlinear controller on the scalar plant x+ = 0.9 x + 0.1 u.

    Objective: sum of squared states plus 0.01 times squared inputs.
    """
    from mpclib import Dimensions, NLParameters, NMPC

    mpc = NMPC(Dimensions(nx=1, nu=1, ndu=0, ny=0, ph=10, ch=3))
    mpc.set_optimizer_parameters(NLParameters(relative_ftol=1e-6, relative_xtol=0.0))
    assert mpc.set_state_space_function(lambda x, u: 0.9 * x + 0.1 * u)
    assert mpc.set_objective_function(
        lambda X, U, e: np.sum(X ** 2) + 0.01 * np.sum(U ** 2)
    )
    return mpc


# ============================================================================
# Markers
# ============================================================================

def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line("markers", "slow: marks tests as slow")
    config.addinivalue_line("markers", "integration: marks closed-loop tests")
