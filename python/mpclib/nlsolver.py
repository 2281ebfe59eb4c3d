"""
Nonlinear MPC Optimizer
=======================

Adapter between the flat-vector evaluators and SciPy's SLSQP solver.

Evaluators follow a value + optional gradient protocol::

    objective.evaluate(x, has_gradient) -> Cost(value, grad (n,))
    constraints.evaluate_*(x, has_gradient) -> ConstraintValue(value (m,), grad (n, m))

SciPy asks for values and Jacobians through separate callbacks and
expects constraint Jacobians row-wise, shape (m, n), so gradients are
transposed before they are handed over. Per-component tolerances relax
a constraint component to ``|h| <= tol`` (equality) or ``g <= tol``
(inequality); a zero tolerance keeps it exact.
"""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

import numpy as np
from scipy.optimize import Bounds, minimize

from .dimensions import Dimensions
from .exceptions import InvalidInputError, MPCError, NotInitializedError, OptimizationError
from .mapping import Mapping
from .parameters import NLParameters
from .result import Result, ReturnCode
from .utils.validation import as_vector

logger = logging.getLogger(__name__)

# scipy SLSQP exit mode for "Iteration limit reached"
_SLSQP_ITERATION_LIMIT = 9


class OptimizerState(Enum):
    """Lifecycle of :class:`NLOptimizer`."""
    UNINITIALIZED = "uninitialized"
    INITIALIZED = "initialized"
    BOUND = "bound"
    READY = "ready"


class _StepToleranceReached(Exception):
    """Raised from the iteration callback when the step falls below ``xtol``."""

    def __init__(self, x: np.ndarray) -> None:
        self.x = x
        super().__init__("step tolerance reached")


class _StepMonitor:
    """SLSQP callback stopping on the relative step tolerance."""

    def __init__(self, xtol: float) -> None:
        self.xtol = xtol
        self.iterations = 0
        self._previous: Optional[np.ndarray] = None

    def __call__(self, xk: np.ndarray) -> None:
        self.iterations += 1
        xk = np.array(xk, dtype=np.float64)
        previous, self._previous = self._previous, xk
        if previous is None or self.xtol <= 0:
            return
        if np.linalg.norm(xk - previous) <= self.xtol * np.linalg.norm(xk):
            raise _StepToleranceReached(xk)


class _Forward:
    """
    Forwards one evaluator method to SciPy's value/Jacobian callbacks.

    The last evaluation is cached so that a value request followed by a
    Jacobian request at the same point calls the evaluator once with
    ``has_gradient=True`` at most.
    """

    def __init__(self, evaluate: Callable, n_opt: int) -> None:
        self._evaluate = evaluate
        self._n_opt = n_opt
        self._x: Optional[np.ndarray] = None
        self._res: Any = None
        self._has_gradient = False

    def _call(self, x: np.ndarray, has_gradient: bool):
        x = np.asarray(x, dtype=np.float64)
        cached = self._x is not None and np.array_equal(x, self._x)
        if not cached or (has_gradient and not self._has_gradient):
            self._res = self._evaluate(x.copy(), has_gradient)
            self._x = x.copy()
            self._has_gradient = has_gradient
        return self._res

    def value(self, x: np.ndarray):
        return self._call(x, False).value

    def gradient(self, x: np.ndarray) -> np.ndarray:
        grad = np.asarray(self._call(x, True).grad, dtype=np.float64)
        if grad.size != self._n_opt:
            raise OptimizationError(
                f"objective gradient must have {self._n_opt} elements, got {grad.size}"
            )
        return grad.ravel()

    def jacobian(self, x: np.ndarray) -> np.ndarray:
        grad = np.asarray(self._call(x, True).grad, dtype=np.float64)
        if grad.ndim != 2 or grad.shape[0] != self._n_opt:
            raise OptimizationError(
                f"constraint gradient must have {self._n_opt} rows, got shape {grad.shape}"
            )
        # (n, m) column layout to the solver's row layout (m, n)
        return grad.T


def _equality_constraints(fwd: _Forward, tol: np.ndarray) -> List[Dict[str, Any]]:
    exact = tol <= 0
    relaxed = ~exact
    out = []
    if exact.any():
        out.append({
            "type": "eq",
            "fun": lambda x: np.atleast_1d(fwd.value(x))[exact],
            "jac": lambda x: fwd.jacobian(x)[exact],
        })
    if relaxed.any():
        t = tol[relaxed]
        out.append({
            "type": "ineq",
            "fun": lambda x: np.concatenate([
                t - np.atleast_1d(fwd.value(x))[relaxed],
                t + np.atleast_1d(fwd.value(x))[relaxed],
            ]),
            "jac": lambda x: np.vstack([
                -fwd.jacobian(x)[relaxed],
                fwd.jacobian(x)[relaxed],
            ]),
        })
    return out


def _inequality_constraints(fwd: _Forward, tol: np.ndarray) -> List[Dict[str, Any]]:
    # SciPy wants fun(x) >= 0, evaluators report g(x) <= tol
    return [{
        "type": "ineq",
        "fun": lambda x: tol - np.atleast_1d(fwd.value(x)),
        "jac": lambda x: -fwd.jacobian(x),
    }]


class NLOptimizer:
    """
    SLSQP optimizer of the nonlinear controller.

    Decision vector: ``ph*nx`` predicted states, ``ch*nu`` control moves
    and one slack variable. The slack is kept non-negative when
    ``NLParameters.hard_constraints`` is set; every other component is
    unbounded.

    On any solver failure :meth:`run` returns the previous command with
    ``ReturnCode.FAILURE``; no exception leaves :meth:`run` once the
    optimizer is bound.

    Example:
        >>> opt = NLOptimizer()
        >>> opt.initialize(dim)
        >>> opt.set_mapping(mapping)
        >>> opt.bind(objective)
        >>> opt.bind_eq(constraints, np.zeros(dim.ph * dim.nx))
        >>> result = opt.run(x0, u0)
    """

    def __init__(self) -> None:
        self._dim: Optional[Dimensions] = None
        self._mapping: Optional[Mapping] = None
        self.state = OptimizerState.UNINITIALIZED

    def initialize(self, dim: Dimensions) -> None:
        """Configure the solver for the decision vector and reset its state."""
        self._dim = dim
        self._objective: Optional[_Forward] = None
        self._constraints: Dict[str, List[Dict[str, Any]]] = {}
        self._last_result = Result.zeros(dim.nu)
        self._current_slack = 0.0
        self.state = OptimizerState.INITIALIZED
        self._apply_parameters(NLParameters())

    def _check(self) -> Dimensions:
        if self._dim is None:
            raise NotInitializedError("NLOptimizer")
        return self._dim

    def set_mapping(self, mapping: Mapping) -> None:
        self._check()
        self._mapping = mapping

    @property
    def last_result(self) -> Result:
        return self._last_result

    @property
    def parameters(self) -> NLParameters:
        return self._params

    def _apply_parameters(self, params: NLParameters) -> None:
        dim = self._dim
        lb = np.full(dim.n_opt, -np.inf)
        ub = np.full(dim.n_opt, np.inf)
        if params.hard_constraints:
            lb[-1] = 0.0
        self._params = params
        self._bounds = Bounds(lb, ub)
        logger.debug("Setting tolerances and stopping criterias")

    def set_parameters(self, params: NLParameters) -> None:
        """Set tolerances, evaluation cap and slack bound."""
        self._check()
        if not isinstance(params, NLParameters):
            raise InvalidInputError(
                f"nonlinear optimizer expects NLParameters, got {type(params).__name__}"
            )
        self._apply_parameters(params)
        if self.state == OptimizerState.BOUND:
            self.state = OptimizerState.READY

    def bind(self, objective) -> bool:
        """
        Register the objective evaluator.

        Returns:
            False if the evaluator cannot be registered
        """
        dim = self._check()
        evaluate = getattr(objective, "evaluate", None)
        if not callable(evaluate):
            logger.warning("Unable to bind objective function: no evaluate method")
            return False
        self._objective = _Forward(evaluate, dim.n_opt)
        if self.state == OptimizerState.INITIALIZED:
            self.state = OptimizerState.BOUND
        logger.debug("Objective function bound")
        return True

    def _bind_constraints(self, key: str, evaluate, size: int, tol, equality: bool) -> bool:
        dim = self._check()
        if not callable(evaluate):
            logger.warning("Unable to bind %s constraints: evaluator not callable", key)
            return False
        try:
            tol = as_vector(tol, size, f"{key} tolerances")
        except (MPCError, ValueError, TypeError) as e:
            logger.warning("Unable to bind %s constraints: %s", key, e)
            return False

        if size == 0:
            self._constraints.pop(key, None)
            return True

        fwd = _Forward(evaluate, dim.n_opt)
        if equality:
            self._constraints[key] = _equality_constraints(fwd, tol)
        else:
            self._constraints[key] = _inequality_constraints(fwd, tol)
        logger.debug("Adding %s constraints", key)
        return True

    def bind_eq(self, constraints, tol) -> bool:
        """Register the dynamics equality constraints, ``ph*nx`` components."""
        dim = self._check()
        return self._bind_constraints(
            "state model equality",
            getattr(constraints, "evaluate_state_model_eq", None),
            dim.ph * dim.nx, tol, equality=True,
        )

    def bind_user_ineq(self, constraints, tol) -> bool:
        """Register the user inequality constraints, ``ineq`` components."""
        dim = self._check()
        return self._bind_constraints(
            "user inequality",
            getattr(constraints, "evaluate_ineq", None),
            dim.ineq, tol, equality=False,
        )

    def bind_user_eq(self, constraints, tol) -> bool:
        """Register the user equality constraints, ``eq`` components."""
        dim = self._check()
        return self._bind_constraints(
            "user equality",
            getattr(constraints, "evaluate_eq", None),
            dim.eq, tol, equality=True,
        )

    def warm_start(self, x0: np.ndarray, u0: np.ndarray) -> np.ndarray:
        """
        Initial decision vector: ``x0`` on every predicted step, ``u0``
        on every step mapped to the control horizon, last slack.
        """
        dim = self._check()
        x0 = as_vector(x0, dim.nx, "x0")
        u0 = as_vector(u0, dim.nu, "u0")

        n_states = dim.ph * dim.nx
        x_init = np.zeros(dim.n_opt)
        x_init[:n_states] = np.tile(x0, dim.ph)
        x_init[n_states:-1] = self._mapping.Iu2z @ np.tile(u0, dim.ph)
        x_init[-1] = self._current_slack
        return x_init

    def _optimize(self, x_init: np.ndarray) -> Tuple[np.ndarray, float, int, int]:
        if self._params.maximum_iteration < 1:
            raise OptimizationError("evaluation budget exhausted before the first iteration")

        constraints = [c for group in self._constraints.values() for c in group]
        monitor = _StepMonitor(self._params.relative_xtol)

        try:
            res = minimize(
                self._objective.value,
                x_init,
                jac=self._objective.gradient,
                method="SLSQP",
                bounds=self._bounds,
                constraints=constraints,
                callback=monitor,
                options={
                    "maxiter": self._params.maximum_iteration,
                    "ftol": self._params.relative_ftol,
                },
            )
        except _StepToleranceReached as stop:
            return stop.x, float(self._objective.value(stop.x)), ReturnCode.XTOL_REACHED, monitor.iterations

        if res.status == _SLSQP_ITERATION_LIMIT and np.all(np.isfinite(res.x)):
            logger.warning("Iteration limit of %d reached, using the last iterate",
                           self._params.maximum_iteration)
            return res.x, float(res.fun), ReturnCode.MAXEVAL_REACHED, int(res.nfev)
        if not res.success:
            raise OptimizationError(
                f"SLSQP exit mode {res.status}: {res.message}", status=res.status
            )
        return res.x, float(res.fun), ReturnCode.FTOL_REACHED, int(res.nfev)

    def run(self, x0: np.ndarray, u0: np.ndarray) -> Result:
        """
        Solve the nonlinear problem from the current state.

        Args:
            x0: Current state (nx,)
            u0: Previously applied input, used for the warm start (nu,)

        Returns:
            Result with the first input of the optimal trajectory, or the
            previous command and ``ReturnCode.FAILURE`` if the solve failed;
            the last iterate with ``ReturnCode.MAXEVAL_REACHED`` if the
            iteration limit stopped the solver
        """
        self._check()
        if self.state not in (OptimizerState.BOUND, OptimizerState.READY):
            raise NotInitializedError("NLOptimizer objective")
        if self._mapping is None:
            raise NotInitializedError("NLOptimizer mapping")

        x_init = self.warm_start(x0, u0)

        try:
            x_opt, cost, code, evaluations = self._optimize(x_init)
            if not np.all(np.isfinite(x_opt)) or not np.isfinite(cost):
                raise OptimizationError("solver returned a non-finite solution")

            logger.info("Optimization end after: %d evaluation steps", evaluations)
            logger.info("Optimization end with code: %d", int(code))
            logger.info("Optimization end with cost: %g", cost)

            X, U, slack = self._mapping.unwrap_vector(x_opt, x0)
            logger.debug("Optimal predicted state vector\n%s", X)
            logger.debug("Optimal predicted input vector\n%s", U)

            self._current_slack = slack
            r = Result(cmd=U[0].copy(), cost=cost, retcode=int(code))
        except Exception as e:
            logger.warning("No optimal solution found: %s", e)
            r = Result(
                cmd=self._last_result.cmd.copy(),
                retcode=int(ReturnCode.FAILURE),
            )

        self._last_result = r
        return r
