"""
Nonlinear Evaluators
====================

Objective and constraint evaluators on the flat decision vector of the
nonlinear controller.

User functions work on trajectories::

    objective(X, U, slack) -> float
    model(x, u) -> x_next            (discrete time)
    model(x, u) -> dx/dt             (after set_continuous_time(ts))
    ineq(X, U, slack) -> (ineq,)     feasible when <= 0
    eq(X, U) -> (eq,)                feasible when == 0

with ``X`` of shape (ph+1, nx) and ``U`` of shape (ph+1, nu), both
obtained from :meth:`Mapping.unwrap_vector`.

Every evaluator answers ``evaluate*(x, has_gradient)``. Gradients are
forward finite differences in the natural column layout: one column per
function component, shape (n_opt, m).
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional

import numpy as np

from .dimensions import Dimensions
from .exceptions import DimensionError, InvalidInputError, NotInitializedError
from .mapping import Mapping
from .utils.validation import as_vector

_FD_STEP = np.sqrt(np.finfo(float).eps)


@dataclass
class Cost:
    """Objective value and optional gradient (n_opt,)."""
    value: float
    grad: Optional[np.ndarray] = None


@dataclass
class ConstraintValue:
    """Constraint values (m,) and optional gradient (n_opt, m)."""
    value: np.ndarray
    grad: Optional[np.ndarray] = None


def finite_difference(
    func: Callable[[np.ndarray], np.ndarray],
    x: np.ndarray,
    f0: np.ndarray,
) -> np.ndarray:
    """
    Forward difference gradient of ``func`` at ``x``.

    Args:
        func: Vector function of the decision vector
        x: Evaluation point (n,)
        f0: ``func(x)``, shape (m,)

    Returns:
        Gradient of shape (n, m), column ``j`` is the gradient of
        component ``j``
    """
    x = np.asarray(x, dtype=np.float64)
    f0 = np.atleast_1d(np.asarray(f0, dtype=np.float64))
    grad = np.zeros((x.size, f0.size))
    for i in range(x.size):
        step = _FD_STEP * max(1.0, abs(x[i]))
        xp = x.copy()
        xp[i] += step
        grad[i] = (np.atleast_1d(func(xp)) - f0) / step
    return grad


class _Evaluator:
    """Shared state: dimensions, mapping and current state."""

    name = "evaluator"

    def __init__(self) -> None:
        self._dim: Optional[Dimensions] = None
        self._mapping: Optional[Mapping] = None

    def initialize(self, dim: Dimensions, mapping: Mapping) -> None:
        self._dim = dim
        self._mapping = mapping
        self._x0 = np.zeros(dim.nx)

    def _check(self) -> Dimensions:
        if self._dim is None:
            raise NotInitializedError(self.name)
        return self._dim

    def set_current_state(self, x0) -> None:
        dim = self._check()
        self._x0 = as_vector(x0, dim.nx, "x0")

    def _unwrap(self, x: np.ndarray):
        return self._mapping.unwrap_vector(x, self._x0)


class Objective(_Evaluator):
    """
    Scalar objective on the decision vector.

    Example:
        >>> objective = Objective()
        >>> objective.initialize(dim, mapping)
        >>> objective.set_function(lambda X, U, e: np.sum(X ** 2) + e ** 2)
        >>> cost = objective.evaluate(x, has_gradient=True)
        >>> cost.value, cost.grad.shape
    """

    name = "Objective"

    def __init__(self) -> None:
        super().__init__()
        self._function: Optional[Callable] = None

    def set_function(self, function: Callable) -> None:
        self._check()
        if not callable(function):
            raise InvalidInputError("objective function must be callable")
        self._function = function

    def _value(self, x: np.ndarray) -> float:
        X, U, slack = self._unwrap(x)
        return float(self._function(X, U, slack))

    def evaluate(self, x: np.ndarray, has_gradient: bool = False) -> Cost:
        self._check()
        if self._function is None:
            raise NotInitializedError("objective function")
        x = np.asarray(x, dtype=np.float64)
        value = self._value(x)
        grad = None
        if has_gradient:
            grad = finite_difference(self._value, x, np.array([value]))[:, 0]
        return Cost(value=value, grad=grad)


class Constraints(_Evaluator):
    """
    Dynamics, user inequality and user equality constraints.

    The dynamics residual stacks, for every predicted step ``k``,
    ``X[k+1] - f(X[k], U[k])`` (``ph*nx`` components). In continuous
    time the model is integrated with forward Euler over ``ts``.
    """

    name = "Constraints"

    def __init__(self) -> None:
        super().__init__()
        self._model: Optional[Callable] = None
        self._ineq: Optional[Callable] = None
        self._eq: Optional[Callable] = None
        self._ts: Optional[float] = None

    def set_state_space_function(self, function: Callable) -> None:
        self._check()
        if not callable(function):
            raise InvalidInputError("state space function must be callable")
        self._model = function

    def set_continuous_time(self, ts: float) -> None:
        """Treat the model as a derivative, integrated over ``ts`` seconds."""
        self._check()
        if ts <= 0:
            raise InvalidInputError(f"sample time must be positive, got {ts}")
        self._ts = float(ts)

    def set_ineq_function(self, function: Callable) -> None:
        self._check()
        if not callable(function):
            raise InvalidInputError("inequality function must be callable")
        self._ineq = function

    def set_eq_function(self, function: Callable) -> None:
        self._check()
        if not callable(function):
            raise InvalidInputError("equality function must be callable")
        self._eq = function

    def _next_state(self, x: np.ndarray, u: np.ndarray) -> np.ndarray:
        out = np.asarray(self._model(x, u), dtype=np.float64).ravel()
        if self._ts is not None:
            return x + self._ts * out
        return out

    def _state_model_value(self, x: np.ndarray) -> np.ndarray:
        dim = self._dim
        X, U, _ = self._unwrap(x)
        residual = np.zeros((dim.ph, dim.nx))
        for k in range(dim.ph):
            nxt = self._next_state(X[k], U[k])
            if nxt.shape != (dim.nx,):
                raise DimensionError(
                    f"state space function must return {dim.nx} elements, got {nxt.size}"
                )
            residual[k] = X[k + 1] - nxt
        return residual.ravel()

    def _ineq_value(self, x: np.ndarray) -> np.ndarray:
        X, U, slack = self._unwrap(x)
        value = np.asarray(self._ineq(X, U, slack), dtype=np.float64).ravel()
        if value.shape != (self._dim.ineq,):
            raise DimensionError(
                f"inequality function must return {self._dim.ineq} elements, got {value.size}"
            )
        return value

    def _eq_value(self, x: np.ndarray) -> np.ndarray:
        X, U, _ = self._unwrap(x)
        value = np.asarray(self._eq(X, U), dtype=np.float64).ravel()
        if value.shape != (self._dim.eq,):
            raise DimensionError(
                f"equality function must return {self._dim.eq} elements, got {value.size}"
            )
        return value

    @staticmethod
    def _evaluate(func, x, has_gradient: bool) -> ConstraintValue:
        x = np.asarray(x, dtype=np.float64)
        value = func(x)
        grad = finite_difference(func, x, value) if has_gradient else None
        return ConstraintValue(value=value, grad=grad)

    def evaluate_state_model_eq(self, x: np.ndarray, has_gradient: bool = False) -> ConstraintValue:
        self._check()
        if self._model is None:
            raise NotInitializedError("state space function")
        return self._evaluate(self._state_model_value, x, has_gradient)

    def evaluate_ineq(self, x: np.ndarray, has_gradient: bool = False) -> ConstraintValue:
        self._check()
        if self._ineq is None:
            raise NotInitializedError("inequality function")
        return self._evaluate(self._ineq_value, x, has_gradient)

    def evaluate_eq(self, x: np.ndarray, has_gradient: bool = False) -> ConstraintValue:
        self._check()
        if self._eq is None:
            raise NotInitializedError("equality function")
        return self._evaluate(self._eq_value, x, has_gradient)
