"""
MPC Controllers
===============

User-facing front-ends. Every controller follows the same lifecycle::

    controller = LMPC()
    controller.initialize(Dimensions(...))   # allocate, sizes fixed from now on
    controller.set_...(...)                  # model, weights, constraints
    result = controller.step(x0, u_prev)     # once per sample time

Classes:
- MPC: common initialization guard, stepping and logging
- LMPC: linear MPC, QP solved with OSQP
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import Optional

import numpy as np

from ..builder import Problem, ProblemBuilder
from ..dimensions import Dimensions
from ..exceptions import InvalidInputError, NotInitializedError, UnsupportedOperationError
from ..parameters import LParameters, Parameters
from ..result import Result
from ..solver import LOptimizer
from ..utils.validation import as_horizon_matrix, as_vector

logger = logging.getLogger(__name__)


class _PrefixAdapter(logging.LoggerAdapter):
    """Prepends the controller prefix to every record."""

    def process(self, msg, kwargs):
        prefix = self.extra.get("prefix")
        if prefix:
            msg = f"[{prefix}] {msg}"
        return msg, kwargs


class MPC(ABC):
    """
    Base front-end shared by the linear and nonlinear controllers.

    Subclasses provide ``_on_setup`` (allocate their builder/optimizer)
    and ``_on_model_update`` (receive the current state before a solve).
    Every public operation checks that :meth:`initialize` was called.
    """

    def __init__(self, dim: Optional[Dimensions] = None) -> None:
        self._dim: Optional[Dimensions] = None
        self._optimizer = None
        self._result: Optional[Result] = None
        self._log = _PrefixAdapter(logger, {"prefix": ""})
        if dim is not None:
            self.initialize(dim)

    def initialize(self, dim: Optional[Dimensions] = None, **sizes) -> None:
        """
        Fix the problem dimensions and allocate every component.

        Args:
            dim: Dimension descriptor
            **sizes: Alternatively the ``Dimensions`` fields as keywords

        Example:
            >>> mpc = LMPC()
            >>> mpc.initialize(nx=2, nu=1, ndu=0, ny=1, ph=10, ch=3)
        """
        if dim is None:
            dim = Dimensions(**sizes)
        elif sizes:
            raise InvalidInputError("pass either a Dimensions or keyword sizes, not both")
        self._validate_dimensions(dim)
        self._dim = dim
        self._on_setup()
        self._result = Result.zeros(dim.nu)
        self._log.debug("Controller initialized with %s", dim)

    def _validate_dimensions(self, dim: Dimensions) -> None:
        pass

    @abstractmethod
    def _on_setup(self) -> None:
        """Allocate the builder or optimizer for the fixed dimensions."""
        pass

    def _on_model_update(self, x0: np.ndarray) -> None:
        pass

    def _check_initialized(self) -> Dimensions:
        if self._dim is None:
            raise NotInitializedError(type(self).__name__)
        return self._dim

    @property
    def dimensions(self) -> Dimensions:
        return self._check_initialized()

    def set_logger_level(self, level) -> None:
        """Set the level of the ``mpclib`` package logger."""
        logging.getLogger("mpclib").setLevel(level)

    def set_logger_prefix(self, prefix: str) -> None:
        """Prefix prepended to this controller's log records."""
        self._log.extra["prefix"] = prefix

    def step(self, x0, u0=None) -> Result:
        """
        Compute the control action for the current state.

        Args:
            x0: Current state (nx,)
            u0: Previously applied input (nu,); defaults to the last command

        Returns:
            Result of the optimization; its command is the input to apply
        """
        dim = self._check_initialized()
        x0 = as_vector(x0, dim.nx, "x0")
        u0 = self._result.cmd if u0 is None else as_vector(u0, dim.nu, "u0")

        self._on_model_update(x0)
        result = self._optimizer.run(x0, u0)
        self._result = result

        self._log.debug("Step result: %r", result)
        return result

    def get_last_result(self) -> Result:
        self._check_initialized()
        return self._result


class LMPC(MPC):
    """
    Linear Model Predictive Controller.

    Tracks output, input and input increment references over the
    prediction horizon of a discrete-time plant::

        x(k+1) = A x(k) + B u(k) + Bd d(k)
        y(k)   = C x(k) + Dd d(k)

    The model must be discrete and already scaled: continuous-time and
    scaling setters raise :class:`UnsupportedOperationError`.

    Example:
        >>> mpc = LMPC(Dimensions(nx=2, nu=1, ndu=0, ny=1, ph=10, ch=3))
        >>> mpc.set_state_space_model(A, B, C)
        >>> mpc.set_objective_weights([1.0], [0.0], [0.1])
        >>> mpc.set_constraints(u_min=[-1.0], u_max=[1.0])
        >>> mpc.set_references([1.0])
        >>> result = mpc.step(x0, u_prev)
    """

    def _validate_dimensions(self, dim: Dimensions) -> None:
        if dim.ineq or dim.eq:
            raise InvalidInputError("linear MPC has no user inequality/equality constraints")

    def _on_setup(self) -> None:
        self._builder = ProblemBuilder()
        self._builder.initialize(self._dim)

        self._optimizer = LOptimizer()
        self._optimizer.initialize(self._dim)
        self._optimizer.set_builder(self._builder)

        # unbounded until the user sets constraints
        self.set_constraints()

    @property
    def builder(self) -> ProblemBuilder:
        self._check_initialized()
        return self._builder

    def get_problem(self, x0, u0=None) -> Problem:
        """QP data the optimizer would solve for ``x0`` with the stored references."""
        self._check_initialized()
        u0 = self._result.cmd if u0 is None else u0
        return self._optimizer.get_problem(x0, u0)

    def set_continuous_time_model(self, ts: float) -> bool:
        raise UnsupportedOperationError("linear MPC supports only discrete time systems")

    def set_input_scale(self, scaling) -> None:
        raise UnsupportedOperationError("linear MPC does not support input scaling")

    def set_state_scale(self, scaling) -> None:
        raise UnsupportedOperationError("linear MPC does not support state scaling")

    def set_optimizer_parameters(self, params: Parameters) -> None:
        """Set the OSQP settings (:class:`LParameters` only)."""
        self._check_initialized()
        if not isinstance(params, LParameters):
            raise InvalidInputError(
                f"linear MPC expects LParameters, got {type(params).__name__}"
            )
        self._optimizer.set_parameters(params)

    def set_constraints(
        self,
        x_min=None, u_min=None, y_min=None,
        x_max=None, u_max=None, y_max=None,
    ) -> bool:
        """
        Set state, input and output box constraints.

        Vectors are applied equally along the prediction horizon; 2-D
        arrays give one column per predicted step. ``None`` leaves the
        bound open.

        Args:
            x_min, x_max: State bounds (nx,) or (nx, ph)
            u_min, u_max: Input bounds (nu,) or (nu, ph)
            y_min, y_max: Output bounds (ny,) or (ny, ph)
        """
        dim = self._check_initialized()
        ph = dim.ph

        bounds = dict(
            x_min=as_horizon_matrix(x_min, dim.nx, ph, "x_min", fill=-np.inf),
            u_min=as_horizon_matrix(u_min, dim.nu, ph, "u_min", fill=-np.inf),
            y_min=as_horizon_matrix(y_min, dim.ny, ph, "y_min", fill=-np.inf),
            x_max=as_horizon_matrix(x_max, dim.nx, ph, "x_max", fill=np.inf),
            u_max=as_horizon_matrix(u_max, dim.nu, ph, "u_max", fill=np.inf),
            y_max=as_horizon_matrix(y_max, dim.ny, ph, "y_max", fill=np.inf),
        )

        self._log.debug("Setting constraints")
        return self._builder.set_constraints(**bounds)

    def set_objective_weights(self, output_weights, input_weights, delta_input_weights) -> bool:
        """
        Set the tracking weights.

        Vectors are applied equally along the prediction horizon; 2-D
        arrays give one column per step.

        Args:
            output_weights: Output weights (ny,) or (ny, ph+1)
            input_weights: Input weights (nu,) or (nu, ph+1)
            delta_input_weights: Input increment weights (nu,) or (nu, ph)
        """
        dim = self._check_initialized()
        ph = dim.ph

        output_weights = as_horizon_matrix(output_weights, dim.ny, ph + 1, "output weights")
        input_weights = as_horizon_matrix(input_weights, dim.nu, ph + 1, "input weights")
        delta_input_weights = as_horizon_matrix(
            delta_input_weights, dim.nu, ph, "input increment weights"
        )

        self._log.debug("Setting weights")
        return self._builder.set_objective(output_weights, input_weights, delta_input_weights)

    def set_state_space_model(self, A, B, C) -> bool:
        """
        Set the state space model matrices.

        Args:
            A: State update matrix (nx, nx)
            B: Input matrix (nx, nu)
            C: Output matrix (ny, nx)
        """
        self._check_initialized()
        self._log.debug("Setting state space model")
        return self._builder.set_state_model(A, B, C)

    def set_disturbances(self, Bd, Dd) -> bool:
        """
        Set the measured disturbance matrices.

        Args:
            Bd: State disturbance matrix (nx, ndu)
            Dd: Output disturbance matrix (ny, ndu)
        """
        self._check_initialized()
        self._log.debug("Setting disturbances matrices")
        return self._builder.set_exogenous_input(Bd, Dd)

    def set_exogenous_inputs(self, u_meas) -> bool:
        """Set the measured disturbance vector (ndu,) used by the next steps."""
        self._check_initialized()
        return self._optimizer.set_exogenous_inputs(u_meas)

    def set_references(self, y_ref, u_ref=None, delta_u_ref=None) -> bool:
        """
        Set the references of the objective function.

        Args:
            y_ref: Output reference (ny,)
            u_ref: Input reference (nu,), zero by default
            delta_u_ref: Input increment reference (nu,), zero by default
        """
        dim = self._check_initialized()
        u_ref = np.zeros(dim.nu) if u_ref is None else u_ref
        delta_u_ref = np.zeros(dim.nu) if delta_u_ref is None else delta_u_ref
        return self._optimizer.set_references(y_ref, u_ref, delta_u_ref)
