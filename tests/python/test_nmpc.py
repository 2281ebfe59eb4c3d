"""
Tests for the nonlinear MPC controller.

Tests covering:
1. Lifecycle and argument checks
2. Regulation of a scalar plant through SLSQP
3. User constraints, continuous time and scaling
4. Failure handling
"""

import numpy as np
import pytest


def plant(x, u):
    return 0.9 * x + 0.1 * u


def cost(X, U, e):
    return np.sum(X ** 2) + 0.01 * np.sum(U ** 2)


def make_nmpc(**sizes):
    from mpclib import Dimensions, NLParameters, NMPC

    dims = dict(nx=1, nu=1, ndu=0, ny=0, ph=10, ch=3)
    dims.update(sizes)
    mpc = NMPC(Dimensions(**dims))
    mpc.set_optimizer_parameters(NLParameters(relative_ftol=1e-6, relative_xtol=0.0))
    return mpc


class TestLifecycle:
    """Test initialization and argument checks."""

    def test_not_initialized(self):
        """Setters require initialize."""
        from mpclib import NMPC, NotInitializedError

        mpc = NMPC()
        with pytest.raises(NotInitializedError):
            mpc.set_objective_function(cost)
        with pytest.raises(NotInitializedError):
            mpc.step(np.zeros(1))

    def test_disturbances_rejected(self):
        """Nonlinear MPC has no measured disturbances."""
        from mpclib import Dimensions, InvalidInputError, NMPC

        with pytest.raises(InvalidInputError):
            NMPC(Dimensions(nx=1, nu=1, ndu=1, ny=0, ph=5, ch=2))

    def test_parameter_type(self):
        """Linear parameters are rejected."""
        from mpclib import InvalidInputError, LParameters

        mpc = make_nmpc()
        with pytest.raises(InvalidInputError):
            mpc.set_optimizer_parameters(LParameters())

    def test_step_before_objective(self):
        """Stepping without an objective is an error, not a failure code."""
        from mpclib import NotInitializedError

        mpc = make_nmpc()
        mpc.set_state_space_function(plant)
        with pytest.raises(NotInitializedError):
            mpc.step(np.zeros(1))

    def test_bad_tolerance(self):
        """A tolerance of the wrong size is reported by the return value."""
        mpc = make_nmpc()
        assert mpc.set_state_space_function(plant, tolerance=np.zeros(3)) is False
        assert mpc.set_state_space_function(plant, tolerance=np.zeros(10)) is True

    def test_not_callable(self):
        """User functions must be callable."""
        from mpclib import InvalidInputError

        mpc = make_nmpc()
        with pytest.raises(InvalidInputError):
            mpc.set_objective_function("cost")


class TestRegulation:
    """Test solving."""

    def test_first_step(self, scalar_nmpc):
        """A displaced plant is pushed back."""
        from mpclib import ReturnCode

        result = scalar_nmpc.step(np.array([1.0]), np.zeros(1))

        assert result.retcode in (ReturnCode.FTOL_REACHED, ReturnCode.XTOL_REACHED)
        assert result.cmd[0] < 0
        assert np.isfinite(result.cost)

    @pytest.mark.integration
    def test_closed_loop(self, scalar_nmpc):
        """The closed loop converges to the origin."""
        x = np.array([1.0])
        u = np.zeros(1)
        for _ in range(15):
            u = scalar_nmpc.step(x, u).cmd
            x = plant(x, u)

        assert abs(x[0]) < 0.05

    def test_input_constraint(self):
        """Inequality constraints bound the command."""
        mpc = make_nmpc(ineq=11)
        mpc.set_state_space_function(plant)
        mpc.set_objective_function(cost)
        assert mpc.set_ineq_constraints(lambda X, U, e: -U[:, 0] - 0.5)

        result = mpc.step(np.array([1.0]), np.zeros(1))

        assert result.retcode > 0
        assert result.cmd[0] >= -0.5 - 1e-4

    def test_terminal_equality(self):
        """Equality constraints are honored."""
        mpc = make_nmpc(eq=1)
        mpc.set_state_space_function(plant)
        mpc.set_objective_function(cost)
        assert mpc.set_eq_constraints(lambda X, U: [X[-1, 0]])

        result = mpc.step(np.array([1.0]), np.zeros(1))

        assert result.retcode > 0
        assert result.cmd[0] < 0

    def test_continuous_time(self):
        """Continuous models are integrated over the sample time."""
        mpc = make_nmpc()
        assert mpc.set_continuous_time_model(0.1)
        mpc.set_state_space_function(lambda x, u: -x + u)
        mpc.set_objective_function(cost)

        result = mpc.step(np.array([1.0]), np.zeros(1))

        assert result.retcode > 0
        assert result.cmd[0] < 0

    def test_input_scaling(self, scalar_nmpc):
        """Scaling the inputs does not change the optimal command."""
        reference = scalar_nmpc.step(np.array([1.0]), np.zeros(1)).cmd

        mpc = make_nmpc()
        mpc.set_state_space_function(plant)
        mpc.set_objective_function(cost)
        mpc.set_input_scale([2.0])
        scaled = mpc.step(np.array([1.0]), np.zeros(1)).cmd

        np.testing.assert_allclose(mpc.mapping.input_scaling, [2.0])
        np.testing.assert_allclose(scaled, reference, atol=5e-2)


class TestFailure:
    """Test failure handling."""

    def test_raising_objective_holds_command(self, scalar_nmpc):
        """An objective error keeps the previous command."""
        from mpclib import ReturnCode

        previous = scalar_nmpc.step(np.array([1.0]), np.zeros(1))

        def broken(X, U, e):
            raise FloatingPointError("overflow")

        scalar_nmpc.set_objective_function(broken)
        result = scalar_nmpc.step(np.array([1.0]), previous.cmd)

        assert result.retcode == ReturnCode.FAILURE
        assert np.isinf(result.cost)
        np.testing.assert_array_equal(result.cmd, previous.cmd)

    def test_zero_iterations(self, scalar_nmpc):
        """A zero evaluation budget fails without raising."""
        from mpclib import NLParameters, ReturnCode

        scalar_nmpc.set_optimizer_parameters(NLParameters(maximum_iteration=0))
        result = scalar_nmpc.step(np.array([1.0]), np.zeros(1))

        assert result.retcode == ReturnCode.FAILURE
        np.testing.assert_array_equal(result.cmd, np.zeros(1))
        assert scalar_nmpc.get_last_result() is result

    def test_iteration_limit_applies_last_iterate(self, scalar_nmpc):
        """Hitting the iteration limit applies the last iterate, not the held command."""
        from mpclib import NLParameters, ReturnCode

        scalar_nmpc.set_optimizer_parameters(
            NLParameters(relative_ftol=1e-12, relative_xtol=0.0, maximum_iteration=2)
        )
        result = scalar_nmpc.step(np.array([1.0]), np.zeros(1))

        assert result.retcode == ReturnCode.MAXEVAL_REACHED
        assert result.retcode > 0
        assert np.isfinite(result.cost)
        assert np.all(np.isfinite(result.cmd))
        assert np.any(result.cmd != 0.0)
