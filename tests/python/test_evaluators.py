"""
Tests for the nonlinear objective and constraint evaluators.
"""

import numpy as np
import pytest


@pytest.fixture
def setup():
    """Scalar plant, ph=3, ch=2: decision vector of length 6."""
    from mpclib import Dimensions, Mapping

    dim = Dimensions(nx=1, nu=1, ndu=0, ny=0, ph=3, ch=2, ineq=2, eq=1)
    mapping = Mapping()
    mapping.initialize(dim)
    return dim, mapping


@pytest.fixture
def x():
    """States 1, 2, 3; moves 0.5, -0.5; slack 0."""
    return np.array([1.0, 2.0, 3.0, 0.5, -0.5, 0.0])


class TestFiniteDifference:
    """Test the finite difference helper."""

    def test_linear_function(self):
        """Gradient of a linear map is its transpose."""
        from mpclib.evaluators import finite_difference

        M = np.array([[1.0, 2.0], [3.0, 4.0], [5.0, 6.0]])
        x0 = np.array([0.3, -0.7])

        grad = finite_difference(lambda v: M @ v, x0, M @ x0)

        assert grad.shape == (2, 3)
        np.testing.assert_allclose(grad, M.T, atol=1e-6)


class TestObjective:
    """Test Objective."""

    def test_value_and_gradient(self, setup, x):
        """Sum of squared predicted states."""
        from mpclib import Objective

        dim, mapping = setup
        objective = Objective()
        objective.initialize(dim, mapping)
        objective.set_function(lambda X, U, e: np.sum(X[1:] ** 2))

        cost = objective.evaluate(x, has_gradient=True)

        assert cost.value == pytest.approx(14.0)
        assert cost.grad.shape == (dim.n_opt,)
        np.testing.assert_allclose(cost.grad[:3], [2.0, 4.0, 6.0], rtol=1e-5)
        np.testing.assert_allclose(cost.grad[3:], 0.0, atol=1e-6)

    def test_no_gradient(self, setup, x):
        """Gradient is skipped when not requested."""
        from mpclib import Objective

        dim, mapping = setup
        objective = Objective()
        objective.initialize(dim, mapping)
        objective.set_function(lambda X, U, e: float(e))

        assert objective.evaluate(x).grad is None

    def test_current_state(self, setup, x):
        """The current state is the first trajectory row."""
        from mpclib import Objective

        dim, mapping = setup
        objective = Objective()
        objective.initialize(dim, mapping)
        objective.set_function(lambda X, U, e: X[0, 0])
        objective.set_current_state([4.0])

        assert objective.evaluate(x).value == pytest.approx(4.0)

    def test_function_missing(self, setup, x):
        """Evaluating without a function raises."""
        from mpclib import NotInitializedError, Objective

        dim, mapping = setup
        objective = Objective()
        objective.initialize(dim, mapping)
        with pytest.raises(NotInitializedError):
            objective.evaluate(x)

    def test_not_callable(self, setup):
        """Objective functions must be callable."""
        from mpclib import InvalidInputError, Objective

        dim, mapping = setup
        objective = Objective()
        objective.initialize(dim, mapping)
        with pytest.raises(InvalidInputError):
            objective.set_function(3.0)


class TestConstraints:
    """Test Constraints."""

    def make(self, setup):
        from mpclib import Constraints

        dim, mapping = setup
        constraints = Constraints()
        constraints.initialize(dim, mapping)
        constraints.set_current_state([0.0])
        return constraints

    def test_dynamics_residual(self, setup, x):
        """Residual is X[k+1] - f(X[k], U[k])."""
        constraints = self.make(setup)
        constraints.set_state_space_function(lambda s, u: 2.0 * s + u)

        res = constraints.evaluate_state_model_eq(x, has_gradient=True)

        # U = [0.5, -0.5, -0.5], X = [0, 1, 2, 3]
        np.testing.assert_allclose(res.value, [1.0 - 0.5, 2.0 - 1.5, 3.0 - 3.5])
        assert res.grad.shape == (6, 3)
        np.testing.assert_allclose(res.grad[0], [1.0, -2.0, 0.0], atol=1e-6)

    def test_continuous_time(self, setup, x):
        """Continuous models are integrated with forward Euler."""
        constraints = self.make(setup)
        constraints.set_state_space_function(lambda s, u: -s + u)
        constraints.set_continuous_time(0.1)

        res = constraints.evaluate_state_model_eq(x)

        expected_first = 1.0 - (0.0 + 0.1 * (0.0 + 0.5))
        assert res.value[0] == pytest.approx(expected_first)

    def test_bad_sample_time(self, setup):
        """Sample time must be positive."""
        from mpclib import InvalidInputError

        constraints = self.make(setup)
        with pytest.raises(InvalidInputError):
            constraints.set_continuous_time(0.0)

    def test_model_output_size(self, setup, x):
        """A model returning the wrong size raises."""
        from mpclib import DimensionError

        constraints = self.make(setup)
        constraints.set_state_space_function(lambda s, u: np.zeros(2))
        with pytest.raises(DimensionError):
            constraints.evaluate_state_model_eq(x)

    def test_user_functions(self, setup, x):
        """Inequality and equality functions are sized by the dimensions."""
        from mpclib import DimensionError

        constraints = self.make(setup)
        constraints.set_ineq_function(lambda X, U, e: U[:2, 0] - 1.0)
        constraints.set_eq_function(lambda X, U: [X[-1, 0] - 3.0])

        np.testing.assert_allclose(constraints.evaluate_ineq(x).value, [-0.5, -1.5])
        np.testing.assert_allclose(constraints.evaluate_eq(x).value, [0.0])

        constraints.set_eq_function(lambda X, U: [0.0, 0.0])
        with pytest.raises(DimensionError):
            constraints.evaluate_eq(x)

    def test_missing_functions(self, setup, x):
        """Unset functions raise on evaluation."""
        from mpclib import NotInitializedError

        constraints = self.make(setup)
        with pytest.raises(NotInitializedError):
            constraints.evaluate_ineq(x)
        with pytest.raises(NotInitializedError):
            constraints.evaluate_state_model_eq(x)
