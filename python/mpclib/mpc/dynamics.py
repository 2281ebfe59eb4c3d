"""
Plant Models
============

Discrete-time linear plants with measured disturbances, used to build
the prediction model of :class:`LMPC` and to simulate the plant side of a loop::

    x(k+1) = A x(k) + B u(k) + Bd d(k)
    y(k)   = C x(k) + Dd d(k)
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

import numpy as np
from scipy.linalg import expm

from ..exceptions import DimensionError, InvalidInputError


@dataclass
class LinearSystem:
    """
    Linear time-invariant discrete-time plant.

    Args:
        A: State update matrix (nx, nx)
        B: Input matrix (nx, nu)
        C: Output matrix (ny, nx), identity when omitted
        Bd: State disturbance matrix (nx, ndu), optional
        Dd: Output disturbance matrix (ny, ndu), optional
        dt: Sample time

    Example:
        >>> plant = double_integrator(dt=0.1)
        >>> mpc = LMPC(Dimensions(nx=2, nu=1, ndu=0, ny=2, ph=20, ch=5))
        >>> mpc.set_state_space_model(plant.A, plant.B, plant.C)
        >>> x = plant.step(x, mpc.step(x).cmd)
    """
    A: np.ndarray
    B: np.ndarray
    C: Optional[np.ndarray] = None
    Bd: Optional[np.ndarray] = None
    Dd: Optional[np.ndarray] = None
    dt: float = 1.0

    def __post_init__(self):
        self.A = np.asarray(self.A, dtype=np.float64)
        self.B = np.asarray(self.B, dtype=np.float64)

        if self.A.ndim != 2 or self.A.shape[0] != self.A.shape[1]:
            raise DimensionError(f"A must be square, got shape {self.A.shape}")
        n_x = self.A.shape[0]
        if self.B.ndim != 2 or self.B.shape[0] != n_x:
            raise DimensionError(f"B must have {n_x} rows, got shape {self.B.shape}")

        if self.C is None:
            self.C = np.eye(n_x)
        self.C = np.asarray(self.C, dtype=np.float64)
        if self.C.ndim != 2 or self.C.shape[1] != n_x:
            raise DimensionError(f"C must have {n_x} columns, got shape {self.C.shape}")

        n_d = 0
        for name in ("Bd", "Dd"):
            value = getattr(self, name)
            if value is not None:
                value = np.asarray(value, dtype=np.float64)
                setattr(self, name, value)
                n_d = max(n_d, value.shape[1])
        if self.Bd is None:
            self.Bd = np.zeros((n_x, n_d))
        if self.Dd is None:
            self.Dd = np.zeros((self.C.shape[0], n_d))
        if self.Bd.shape != (n_x, n_d) or self.Dd.shape != (self.C.shape[0], n_d):
            raise DimensionError(
                f"disturbance matrices must be ({n_x}, {n_d}) and "
                f"({self.C.shape[0]}, {n_d}), got {self.Bd.shape} and {self.Dd.shape}"
            )

        if self.dt <= 0:
            raise InvalidInputError(f"sample time must be positive, got {self.dt}")

    @property
    def n_states(self) -> int:
        return self.A.shape[0]

    @property
    def n_inputs(self) -> int:
        return self.B.shape[1]

    @property
    def n_outputs(self) -> int:
        return self.C.shape[0]

    @property
    def n_disturbances(self) -> int:
        return self.Bd.shape[1]

    def _disturbance(self, d) -> np.ndarray:
        if d is None:
            return np.zeros(self.n_disturbances)
        return np.asarray(d, dtype=np.float64).ravel()

    def step(self, x: np.ndarray, u: np.ndarray, d: Optional[np.ndarray] = None) -> np.ndarray:
        """
        Advance the plant by one sample.

        Args:
            x: Current state (nx,)
            u: Applied input (nu,)
            d: Measured disturbance (ndu,), zero when omitted

        Returns:
            Next state (nx,)
        """
        return self.A @ x + self.B @ u + self.Bd @ self._disturbance(d)

    def output(self, x: np.ndarray, d: Optional[np.ndarray] = None) -> np.ndarray:
        return self.C @ x + self.Dd @ self._disturbance(d)

    def simulate(self, x0: np.ndarray, u_sequence: np.ndarray) -> np.ndarray:
        """
        Open-loop simulation without disturbances.

        Args:
            x0: Initial state (nx,)
            u_sequence: Inputs (N, nu)

        Returns:
            State trajectory (N+1, nx) including the initial state
        """
        u_sequence = np.atleast_2d(np.asarray(u_sequence, dtype=np.float64))
        trajectory = np.zeros((len(u_sequence) + 1, self.n_states))
        trajectory[0] = x0
        for k, u in enumerate(u_sequence):
            trajectory[k + 1] = self.step(trajectory[k], u)
        return trajectory

    @classmethod
    def from_continuous(
        cls,
        Ac: np.ndarray,
        Bc: np.ndarray,
        dt: float,
        C: Optional[np.ndarray] = None,
        method: str = "zoh",
    ) -> "LinearSystem":
        """
        Discretize ``dx/dt = Ac x + Bc u``.

        Args:
            Ac: Continuous state matrix
            Bc: Continuous input matrix
            dt: Sample time
            C: Output matrix, identity when omitted
            method: 'zoh', 'euler' or 'tustin'
        """
        Ac = np.asarray(Ac, dtype=np.float64)
        Bc = np.asarray(Bc, dtype=np.float64)
        n = Ac.shape[0]

        if method == "euler":
            A = np.eye(n) + Ac * dt
            B = Bc * dt
        elif method == "zoh":
            m = Bc.shape[1]
            M = np.zeros((n + m, n + m))
            M[:n, :n] = Ac * dt
            M[:n, n:] = Bc * dt
            eM = expm(M)
            A = eM[:n, :n]
            B = eM[:n, n:]
        elif method == "tustin":
            half = 0.5 * dt * Ac
            lhs = np.eye(n) - half
            A = np.linalg.solve(lhs, np.eye(n) + half)
            B = np.linalg.solve(lhs, Bc * dt)
        else:
            raise InvalidInputError(f"unknown discretization method '{method}'")

        return cls(A, B, C=C, dt=dt)


def double_integrator(dt: float = 0.1) -> LinearSystem:
    """Point mass: states [position, velocity], input acceleration."""
    A = np.array([
        [1, dt],
        [0, 1],
    ])
    B = np.array([
        [0.5 * dt**2],
        [dt],
    ])
    return LinearSystem(A, B, dt=dt)
