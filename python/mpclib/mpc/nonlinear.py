"""
Nonlinear MPC Controller
========================

Front-end of the nonlinear controller. The user supplies Python
callables on trajectories (see :mod:`mpclib.evaluators`); the controller
wires them to the evaluators and binds those to the SLSQP optimizer.

Example:
    >>> mpc = NMPC(Dimensions(nx=2, nu=1, ndu=0, ny=0, ph=10, ch=5))
    >>> mpc.set_state_space_function(lambda x, u: A @ x + B @ u)
    >>> mpc.set_objective_function(lambda X, U, e: np.sum(X ** 2) + 0.1 * np.sum(U ** 2))
    >>> result = mpc.step(x0, u_prev)
"""

from __future__ import annotations

from typing import Callable

import numpy as np

from ..dimensions import Dimensions
from ..evaluators import Constraints, Objective
from ..exceptions import InvalidInputError
from ..mapping import Mapping
from ..nlsolver import NLOptimizer
from ..parameters import NLParameters, Parameters
from .controller import MPC


class NMPC(MPC):
    """
    Nonlinear Model Predictive Controller.

    The constraint setters return ``False`` when the optimizer cannot
    register the constraint (for instance a tolerance vector of the
    wrong size); they raise only for invalid arguments or when called
    before :meth:`initialize`.
    """

    def _validate_dimensions(self, dim: Dimensions) -> None:
        if dim.ndu:
            raise InvalidInputError("nonlinear MPC does not support measured disturbances")

    def _on_setup(self) -> None:
        dim = self._dim

        self._mapping = Mapping()
        self._mapping.initialize(dim)

        self._objective = Objective()
        self._objective.initialize(dim, self._mapping)

        self._constraints = Constraints()
        self._constraints.initialize(dim, self._mapping)

        self._optimizer = NLOptimizer()
        self._optimizer.initialize(dim)
        self._optimizer.set_mapping(self._mapping)

    def _on_model_update(self, x0: np.ndarray) -> None:
        self._objective.set_current_state(x0)
        self._constraints.set_current_state(x0)

    @property
    def mapping(self) -> Mapping:
        self._check_initialized()
        return self._mapping

    @property
    def optimizer(self) -> NLOptimizer:
        self._check_initialized()
        return self._optimizer

    def set_continuous_time_model(self, ts: float) -> bool:
        """Interpret the state space function as ``dx/dt``, sampled every ``ts``."""
        self._check_initialized()
        self._constraints.set_continuous_time(ts)
        self._log.debug("Continuous time model, sample time %g", ts)
        return True

    def set_input_scale(self, scaling) -> None:
        self._check_initialized()
        self._mapping.set_input_scaling(scaling)
        self._log.debug("Setting input scaling")

    def set_state_scale(self, scaling) -> None:
        self._check_initialized()
        self._mapping.set_state_scaling(scaling)
        self._log.debug("Setting state scaling")

    def set_optimizer_parameters(self, params: Parameters) -> None:
        """Set the solver tolerances and limits (:class:`NLParameters` only)."""
        self._check_initialized()
        if not isinstance(params, NLParameters):
            raise InvalidInputError(
                f"nonlinear MPC expects NLParameters, got {type(params).__name__}"
            )
        self._optimizer.set_parameters(params)

    def set_objective_function(self, function: Callable) -> bool:
        """
        Set the objective ``function(X, U, slack) -> float``.

        Returns:
            True if the objective was bound to the optimizer
        """
        self._check_initialized()
        self._objective.set_function(function)
        self._log.debug("Setting objective function")
        return self._optimizer.bind(self._objective)

    def set_state_space_function(self, function: Callable, tolerance=0.0) -> bool:
        """
        Set the prediction model ``function(x, u) -> x_next``.

        Args:
            function: Discrete update, or derivative after
                :meth:`set_continuous_time_model`
            tolerance: Scalar or (ph*nx,) tolerance of the dynamics residual
        """
        self._check_initialized()
        self._constraints.set_state_space_function(function)
        self._log.debug("Setting state space function")
        return self._optimizer.bind_eq(self._constraints, tolerance)

    def set_ineq_constraints(self, function: Callable, tolerance=0.0) -> bool:
        """Set ``function(X, U, slack) -> (ineq,)``, feasible when <= tolerance."""
        self._check_initialized()
        self._constraints.set_ineq_function(function)
        self._log.debug("Setting inequality constraints")
        return self._optimizer.bind_user_ineq(self._constraints, tolerance)

    def set_eq_constraints(self, function: Callable, tolerance=0.0) -> bool:
        """Set ``function(X, U) -> (eq,)``, feasible when zero (within tolerance)."""
        self._check_initialized()
        self._constraints.set_eq_function(function)
        self._log.debug("Setting equality constraints")
        return self._optimizer.bind_user_eq(self._constraints, tolerance)
