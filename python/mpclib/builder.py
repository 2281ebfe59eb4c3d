"""
Linear MPC Problem Builder
==========================

Assembles the quadratic program solved at every control step of the
linear controller.

The plant is augmented so that the previous input is carried as a state
and the input increment becomes the decision input::

    [x]        [A  B] [x]      [B]          [Bd]
    [u](k+1) = [0  I] [u](k) + [I] du(k)  + [0 ] d(k)

    [y]   [C  0] [x]   [Dd]
    [u] = [0  I] [u] + [0 ] d(k)

Decision vector (length ``(ph+1)*(nx+nu) + ph*nu``)::

    z = [ xa_0, xa_1, ..., xa_ph | du_0, ..., du_{ph-1} ]

QP::

    minimize    (1/2) z' P z + q' z
    subject to  l <= A z <= u

The first ``(ph+1)*(nx+nu)`` rows of ``A`` encode the dynamics with
``l == u``; the remaining rows bound states, inputs, outputs and input
increments.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Optional, Tuple

import numpy as np
from scipy import sparse

from .dimensions import Dimensions
from .exceptions import DimensionError, NotInitializedError
from .utils.validation import as_matrix, as_vector

logger = logging.getLogger(__name__)


@dataclass
class Problem:
    """
    Solver-facing QP data.

    ``P`` and ``A`` only change when the model, weights or constraints
    change; ``q``, ``l`` and ``u`` are rewritten by every
    :meth:`ProblemBuilder.get` call.

    Attributes:
        P: Objective quadratic form (n, n)
        q: Objective linear term (n,)
        A: Stacked equality and inequality constraint matrix (m, n)
        l: Lower bounds of ``A z`` (m,)
        u: Upper bounds of ``A z`` (m,)
    """
    P: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    q: np.ndarray = field(default_factory=lambda: np.zeros(0))
    A: np.ndarray = field(default_factory=lambda: np.zeros((0, 0)))
    l: np.ndarray = field(default_factory=lambda: np.zeros(0))
    u: np.ndarray = field(default_factory=lambda: np.zeros(0))

    def get_sparse(self) -> Tuple[sparse.csc_matrix, sparse.csc_matrix]:
        """
        Sparse views of ``P`` and ``A`` in CSC format.

        Only the upper triangle of ``P`` is kept, as expected by OSQP.
        """
        P_sparse = sparse.triu(sparse.csc_matrix(self.P), format="csc")
        A_sparse = sparse.csc_matrix(self.A)
        P_sparse.eliminate_zeros()
        A_sparse.eliminate_zeros()
        return P_sparse, A_sparse


class ProblemBuilder:
    """
    Builds the QP matrices of the linear controller.

    Every setter rebuilds the time-invariant terms ``P``, ``A`` and the
    constant part of the bounds. :meth:`get` then refreshes the terms
    that depend on the current state, references and measured
    disturbances.

    Example:
        >>> builder = ProblemBuilder()
        >>> builder.initialize(Dimensions(nx=2, nu=1, ndu=0, ny=1, ph=5, ch=2))
        >>> builder.set_state_model(A, B, C)
        >>> problem = builder.get(x0, u0, y_ref, u_ref, du_ref, np.zeros(0))
    """

    def __init__(self, dim: Optional[Dimensions] = None) -> None:
        self._dim: Optional[Dimensions] = None
        self.revision = 0
        if dim is not None:
            self.initialize(dim)

    def initialize(self, dim: Dimensions) -> None:
        """Allocate every intermediate matrix and zero it."""
        self._dim = dim
        nx, nu, ndu, ny, ph = dim.nx, dim.nu, dim.ndu, dim.ny, dim.ph
        n_aug = dim.n_aug

        # augmented model, increments as input
        self.ssA = np.zeros((n_aug, n_aug))
        self.ssB = np.zeros((n_aug, nu))
        self.ssC = np.zeros((ny + nu, n_aug))

        # measured disturbances on states and outputs
        self.ssBv = np.zeros((n_aug, ndu))
        self.ssDv = np.zeros((ny + nu, ndu))

        # tracking weights: output, input and input increment
        self.w_output = np.zeros((ny, ph + 1))
        self.w_u = np.zeros((nu, ph + 1))
        self.w_delta_u = np.zeros((nu, ph))

        self.min_x = np.zeros((nx, ph + 1))
        self.max_x = np.zeros((nx, ph + 1))
        self.min_y = np.zeros((ny, ph + 1))
        self.max_y = np.zeros((ny, ph + 1))
        self.min_u = np.zeros((nu, ph))
        self.max_u = np.zeros((nu, ph))

        self._leq = np.zeros(dim.n_eq_rows)
        self._ueq = np.zeros(dim.n_eq_rows)
        self._lineq = np.zeros(dim.n_ineq_rows)
        self._uineq = np.zeros(dim.n_ineq_rows)

        self.problem = Problem(
            P=np.zeros((dim.n_qp_vars, dim.n_qp_vars)),
            q=np.zeros(dim.n_qp_vars),
            A=np.zeros((dim.n_qp_cons, dim.n_qp_vars)),
            l=np.zeros(dim.n_qp_cons),
            u=np.zeros(dim.n_qp_cons),
        )
        self.revision = 0

    def _check(self) -> Dimensions:
        if self._dim is None:
            raise NotInitializedError("ProblemBuilder")
        return self._dim

    @property
    def dim(self) -> Dimensions:
        return self._check()

    def set_state_model(self, A, B, C) -> bool:
        """
        Set the discrete-time plant and build its augmented form.

        Args:
            A: State matrix (nx, nx)
            B: Input matrix (nx, nu)
            C: Output matrix (ny, nx)
        """
        dim = self._check()
        nx, nu, ny = dim.nx, dim.nu, dim.ny
        A = as_matrix(A, (nx, nx), "A")
        B = as_matrix(B, (nx, nu), "B")
        C = as_matrix(C, (ny, nx), "C")

        self.ssA[:] = 0.0
        self.ssA[:nx, :nx] = A
        self.ssA[:nx, nx:] = B
        self.ssA[nx:, nx:] = np.eye(nu)

        self.ssB[:] = 0.0
        self.ssB[:nx, :] = B
        self.ssB[nx:, :] = np.eye(nu)

        # the carried input is also an output so it can be penalized
        self.ssC[:] = 0.0
        self.ssC[:ny, :nx] = C
        self.ssC[ny:, nx:] = np.eye(nu)

        return self.build_time_invariant_terms()

    def set_exogenous_input(self, Bd, Dd) -> bool:
        """
        Set the measured disturbance matrices.

        Args:
            Bd: Disturbance to state matrix (nx, ndu)
            Dd: Disturbance to output matrix (ny, ndu)
        """
        dim = self._check()
        Bd = as_matrix(Bd, (dim.nx, dim.ndu), "Bd")
        Dd = as_matrix(Dd, (dim.ny, dim.ndu), "Dd")

        # disturbances only reach the plant states and outputs
        self.ssBv[:] = 0.0
        self.ssBv[:dim.nx, :] = Bd
        self.ssDv[:] = 0.0
        self.ssDv[:dim.ny, :] = Dd

        return self.build_time_invariant_terms()

    def set_objective(self, output_weights, input_weights, delta_input_weights) -> bool:
        """
        Set the per-step tracking weights.

        Args:
            output_weights: Output weights (ny, ph+1)
            input_weights: Input weights (nu, ph+1)
            delta_input_weights: Input increment weights (nu, ph)
        """
        dim = self._check()
        self.w_output = as_matrix(output_weights, (dim.ny, dim.ph + 1), "output weights")
        self.w_u = as_matrix(input_weights, (dim.nu, dim.ph + 1), "input weights")
        self.w_delta_u = as_matrix(
            delta_input_weights, (dim.nu, dim.ph), "input increment weights"
        )
        return self.build_time_invariant_terms()

    def set_constraints(self, x_min, u_min, y_min, x_max, u_max, y_max) -> bool:
        """
        Set the per-step box constraints.

        State and output bounds are given for the ``ph`` predicted steps;
        the first column is reused for the current step.

        Args:
            x_min, x_max: State bounds (nx, ph)
            u_min, u_max: Input bounds (nu, ph)
            y_min, y_max: Output bounds (ny, ph)
        """
        dim = self._check()
        nx, nu, ny, ph = dim.nx, dim.nu, dim.ny, dim.ph

        x_min = as_matrix(x_min, (nx, ph), "x_min")
        x_max = as_matrix(x_max, (nx, ph), "x_max")
        y_min = as_matrix(y_min, (ny, ph), "y_min")
        y_max = as_matrix(y_max, (ny, ph), "y_max")

        self.min_x[:, 1:] = x_min
        self.min_x[:, 0] = x_min[:, 0]
        self.max_x[:, 1:] = x_max
        self.max_x[:, 0] = x_max[:, 0]

        self.min_y[:, 1:] = y_min
        self.min_y[:, 0] = y_min[:, 0]
        self.max_y[:, 1:] = y_max
        self.max_y[:, 0] = y_max[:, 0]

        self.min_u = as_matrix(u_min, (nu, ph), "u_min")
        self.max_u = as_matrix(u_max, (nu, ph), "u_max")

        return self.build_time_invariant_terms()

    def _extended_weight(self, i: int) -> np.ndarray:
        """Block diagonal weight of the extended output [y; u] at step ``i``."""
        return np.diag(np.concatenate([self.w_output[:, i], self.w_u[:, i]]))

    def build_time_invariant_terms(self) -> bool:
        """Rebuild ``P``, ``A`` and the constant part of the bounds."""
        dim = self._check()
        nu, ny, ph, ch = dim.nu, dim.ny, dim.ph, dim.ch
        n_aug = dim.n_aug
        n_eq = dim.n_eq_rows
        n_y_rows = (ph + 1) * ny

        # quadratic objective
        P = self.problem.P
        P[:] = 0.0
        for i in range(ph + 1):
            blk = slice(i * n_aug, (i + 1) * n_aug)
            P[blk, blk] = self.ssC.T @ self._extended_weight(i) @ self.ssC

            # increments stop at the last prediction step
            if i < ph:
                inc = slice(n_eq + i * nu, n_eq + (i + 1) * nu)
                P[inc, inc] = np.diag(self.w_delta_u[:, i])

        # dynamics: -xa_i + ssA xa_{i-1} + ssB du_{i-1}
        A_eq = np.zeros((n_eq, dim.n_qp_vars))
        A_eq[:, :n_eq] = (
            np.kron(np.eye(ph + 1), -np.eye(n_aug))
            + np.kron(np.eye(ph + 1, k=-1), self.ssA)
        )
        A_eq[:, n_eq:] = np.kron(np.eye(ph + 1, ph, k=-1), self.ssB)

        # state/input box, outputs, increments
        A_ineq = np.zeros((dim.n_ineq_rows, dim.n_qp_vars))
        A_ineq[:n_eq, :n_eq] = np.eye(n_eq)
        A_ineq[n_eq:n_eq + n_y_rows, :n_eq] = np.kron(np.eye(ph + 1), self.ssC[:ny, :])
        A_ineq[n_eq + n_y_rows:, n_eq:] = np.eye(ph * nu)

        for i in range(ph + 1):
            j = min(i, ph - 1)
            blk = slice(i * n_aug, (i + 1) * n_aug)
            self._lineq[blk] = np.concatenate([self.min_x[:, i], self.min_u[:, j]])
            self._uineq[blk] = np.concatenate([self.max_x[:, i], self.max_u[:, j]])

        self._lineq[n_eq:n_eq + n_y_rows] = self.min_y.ravel(order="F")
        self._uineq[n_eq:n_eq + n_y_rows] = self.max_y.ravel(order="F")

        # no increments past the control horizon
        for i in range(ph):
            rows = slice(n_eq + n_y_rows + i * nu, n_eq + n_y_rows + (i + 1) * nu)
            bound = 0.0 if i > ch else np.inf
            self._lineq[rows] = -bound
            self._uineq[rows] = bound

        self.problem.A[:n_eq] = A_eq
        self.problem.A[n_eq:] = A_ineq

        self.revision += 1
        logger.debug("Time invariant terms rebuilt (revision %d)", self.revision)
        return True

    def get(
        self,
        x0: np.ndarray,
        u0: np.ndarray,
        y_ref: np.ndarray,
        u_ref: np.ndarray,
        delta_u_ref: np.ndarray,
        u_meas: np.ndarray,
    ) -> Problem:
        """
        Refresh the step dependent terms and return the problem.

        The returned object is owned by the builder and rewritten by the
        next call.

        Args:
            x0: Current state (nx,)
            u0: Previously applied input (nu,)
            y_ref: Output reference (ny,)
            u_ref: Input reference (nu,)
            delta_u_ref: Input increment reference (nu,)
            u_meas: Measured disturbance (ndu,)

        Returns:
            The builder's :class:`Problem`
        """
        dim = self._check()
        nx, nu, ny, ph = dim.nx, dim.nu, dim.ny, dim.ph
        n_aug = dim.n_aug
        n_eq = dim.n_eq_rows

        x0 = as_vector(x0, nx, "x0")
        u0 = as_vector(u0, nu, "u0")
        y_ref = as_vector(y_ref, ny, "y_ref")
        u_ref = as_vector(u_ref, nu, "u_ref")
        delta_u_ref = as_vector(delta_u_ref, nu, "delta_u_ref")
        u_meas = as_vector(u_meas, dim.ndu, "u_meas")

        e_ref = np.concatenate([y_ref, u_ref])
        offset = self.ssDv @ u_meas
        state_offset = self.ssBv @ u_meas
        output_offset = offset[:ny]

        q = self.problem.q
        q[:] = 0.0
        self._leq[:] = 0.0
        lineq = self._lineq.copy()
        uineq = self._uineq.copy()

        for i in range(ph + 1):
            blk = slice(i * n_aug, (i + 1) * n_aug)
            q[blk] = self.ssC.T @ self._extended_weight(i) @ (offset - e_ref)

            if i < ph:
                q[n_eq + i * nu:n_eq + (i + 1) * nu] = -(self.w_delta_u[:, i] * delta_u_ref)

            if i > 0:
                self._leq[blk] = -state_offset

            # measured disturbances act as offsets on the output bounds
            rows = slice(n_eq + i * ny, n_eq + (i + 1) * ny)
            lineq[rows] -= output_offset
            uineq[rows] -= output_offset

        # the first augmented block is the current state and applied input
        self._leq[:nx] = -x0
        self._leq[nx:n_aug] = -u0
        self._ueq[:] = self._leq

        self.problem.l[:n_eq] = self._leq
        self.problem.u[:n_eq] = self._ueq
        self.problem.l[n_eq:] = lineq
        self.problem.u[n_eq:] = uineq

        return self.problem

    def first_command(self, solution: np.ndarray) -> np.ndarray:
        """Input applied now: the carried input of augmented block 1."""
        dim = self._check()
        start = dim.n_aug + dim.nx
        return np.asarray(solution[start:start + dim.nu], dtype=np.float64).copy()

    def unwrap_solution(self, solution: np.ndarray) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Split a QP solution into trajectories.

        Returns:
            Tuple ``(X, U, dU)`` of shapes (ph+1, nx), (ph+1, nu), (ph, nu)
        """
        dim = self._check()
        solution = np.asarray(solution, dtype=np.float64).ravel()
        if solution.size != dim.n_qp_vars:
            raise DimensionError(
                f"QP solution must have {dim.n_qp_vars} elements, got {solution.size}"
            )
        aug = solution[:dim.n_eq_rows].reshape(dim.ph + 1, dim.n_aug)
        increments = solution[dim.n_eq_rows:].reshape(dim.ph, dim.nu)
        return aug[:, :dim.nx].copy(), aug[:, dim.nx:].copy(), increments.copy()
