"""Linear MPC optimizer: solves the builder's QP with OSQP."""

from __future__ import annotations

import logging
from typing import Optional

import numpy as np
import osqp

from .builder import ProblemBuilder
from .dimensions import Dimensions
from .exceptions import InvalidInputError, NotInitializedError
from .parameters import LParameters
from .result import Result
from .utils.validation import as_vector

logger = logging.getLogger(__name__)

# OSQP statuses with a usable primal solution
_USABLE_STATUS = ("solved", "solved inaccurate")


class LOptimizer:
    """
    QP optimizer of the linear controller.

    Holds the references and measured disturbances of the current step,
    asks the :class:`ProblemBuilder` for the QP and solves it with OSQP.
    The OSQP workspace is set up again only when the builder's
    time-invariant terms changed; otherwise only ``q``, ``l`` and ``u``
    are updated.

    The solver status is returned unchanged in ``Result.retcode``. When
    it is not a solved status, the command of the previous step is held.
    """

    def __init__(self) -> None:
        self._dim: Optional[Dimensions] = None
        self._builder: Optional[ProblemBuilder] = None
        self._solver: Optional[osqp.OSQP] = None
        self._solver_revision = -1

    def initialize(self, dim: Dimensions) -> None:
        """Reset references, disturbances, parameters and the last result."""
        self._dim = dim
        self._y_ref = np.zeros(dim.ny)
        self._u_ref = np.zeros(dim.nu)
        self._delta_u_ref = np.zeros(dim.nu)
        self._u_meas = np.zeros(dim.ndu)
        self._params = LParameters()
        self._last_result = Result.zeros(dim.nu)
        self._solver = None
        self._solver_revision = -1

    def _check(self) -> Dimensions:
        if self._dim is None:
            raise NotInitializedError("LOptimizer")
        return self._dim

    def set_builder(self, builder: ProblemBuilder) -> None:
        self._check()
        self._builder = builder
        self._solver = None

    def set_parameters(self, params: LParameters) -> None:
        """Set the OSQP settings, applied at the next solver setup."""
        self._check()
        if not isinstance(params, LParameters):
            raise InvalidInputError(
                f"linear optimizer expects LParameters, got {type(params).__name__}"
            )
        self._params = params
        self._solver = None
        logger.debug("Setting tolerances and stopping criterias")

    def set_references(self, y_ref, u_ref, delta_u_ref) -> bool:
        dim = self._check()
        self._y_ref = as_vector(y_ref, dim.ny, "output reference")
        self._u_ref = as_vector(u_ref, dim.nu, "input reference")
        self._delta_u_ref = as_vector(delta_u_ref, dim.nu, "input increment reference")
        return True

    def set_exogenous_inputs(self, u_meas) -> bool:
        dim = self._check()
        self._u_meas = as_vector(u_meas, dim.ndu, "measured disturbance")
        return True

    @property
    def last_result(self) -> Result:
        return self._last_result

    def get_problem(self, x0: np.ndarray, u0: np.ndarray):
        """QP for the current state with the stored references and disturbances."""
        self._check()
        if self._builder is None:
            raise NotInitializedError("LOptimizer builder")
        return self._builder.get(
            x0, u0, self._y_ref, self._u_ref, self._delta_u_ref, self._u_meas
        )

    def _setup_solver(self, problem) -> None:
        P, A = problem.get_sparse()
        self._solver = osqp.OSQP()
        self._solver.setup(
            P, problem.q, A, problem.l, problem.u,
            **self._params.to_osqp(),
        )
        self._solver_revision = self._builder.revision

    def run(self, x0: np.ndarray, u0: np.ndarray) -> Result:
        """
        Solve the QP for the current state.

        Args:
            x0: Current state (nx,)
            u0: Previously applied input (nu,)

        Returns:
            Result with the first optimal input, the QP cost and the
            OSQP status value
        """
        problem = self.get_problem(x0, u0)

        if self._solver is None or self._solver_revision != self._builder.revision:
            self._setup_solver(problem)
        else:
            self._solver.update(q=problem.q, l=problem.l, u=problem.u)

        res = self._solver.solve()
        status = int(res.info.status_val)

        logger.info("Optimization end after: %d iterations", res.info.iter)
        logger.info("Optimization end with code: %d", status)

        r = Result(retcode=status)
        if res.info.status in _USABLE_STATUS and res.x is not None and np.all(np.isfinite(res.x)):
            r.cmd = self._builder.first_command(res.x)
            r.cost = float(res.info.obj_val)
            logger.info("Optimization end with cost: %g", r.cost)

            if logger.isEnabledFor(logging.DEBUG):
                X, U, _ = self._builder.unwrap_solution(res.x)
                logger.debug("Optimal predicted state vector\n%s", X)
                logger.debug("Optimal predicted input vector\n%s", U)
        else:
            logger.warning(
                "No optimal solution found (status %s), holding previous command",
                res.info.status,
            )
            r.cmd = self._last_result.cmd.copy()

        self._last_result = r
        return r
