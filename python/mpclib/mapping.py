"""
Control-Horizon Mapping
=======================

Linear operators between the control-horizon parameterization used by
the nonlinear decision vector and the full prediction-horizon input
sequence.

The control horizon has ``ch`` moves. Every move covers one prediction
step except the last, which is held for the remaining ``ph - ch + 1``
steps (tail-hold)::

    Iz2u @ z = [z_0, z_1, ..., z_{ch-1}, z_{ch-1}, ..., z_{ch-1}]

Decision vector layout (length ``ph*nx + ch*nu + 1``)::

    [ x_1 ... x_ph | z_0 ... z_{ch-1} | slack ]
"""

from __future__ import annotations

from typing import Optional, Tuple

import numpy as np

from .dimensions import Dimensions
from .exceptions import DimensionError, InvalidInputError, NotInitializedError
from .utils.validation import as_vector


class Mapping:
    """
    Control-horizon to prediction-horizon mapping with channel scaling.

    Example:
        >>> mapping = Mapping()
        >>> mapping.initialize(Dimensions(nx=2, nu=1, ndu=0, ny=1, ph=4, ch=2))
        >>> mapping.Iz2u.shape
        (4, 2)
    """

    def __init__(self, dim: Optional[Dimensions] = None) -> None:
        self._dim: Optional[Dimensions] = None
        if dim is not None:
            self.initialize(dim)

    def initialize(self, dim: Dimensions) -> None:
        """Allocate the operators, reset scaling to identity and compute the mapping."""
        self._dim = dim

        self._Iz2u = np.zeros((dim.ph * dim.nu, dim.ch * dim.nu))
        self._Iu2z = np.zeros((dim.ch * dim.nu, dim.ph * dim.nu))
        self._Sz2u = np.zeros((dim.nu, dim.nu))
        self._Su2z = np.zeros((dim.nu, dim.nu))

        self._input_scaling = np.ones(dim.nu)
        self._state_scaling = np.ones(dim.nx)
        self._inverse_state_scaling = np.ones(dim.nx)

        self.compute_mapping()

    def _check(self) -> Dimensions:
        if self._dim is None:
            raise NotInitializedError("Mapping")
        return self._dim

    @property
    def dim(self) -> Dimensions:
        return self._check()

    def set_input_scaling(self, scaling) -> None:
        """Set the per-channel input scale factors."""
        dim = self._check()
        self._input_scaling = as_vector(scaling, dim.nu, "input scaling")
        if np.any(self._input_scaling == 0):
            raise InvalidInputError("input scaling factors must be non-zero")
        self.compute_mapping()

    def set_state_scaling(self, scaling) -> None:
        """Set the per-channel state scale factors and cache their inverse."""
        dim = self._check()
        scaling = as_vector(scaling, dim.nx, "state scaling")
        if np.any(scaling == 0):
            raise InvalidInputError("state scaling factors must be non-zero")
        self._state_scaling = scaling
        self._inverse_state_scaling = 1.0 / scaling
        self.compute_mapping()

    @property
    def Iz2u(self) -> np.ndarray:
        """Control-horizon to prediction-horizon operator (ph*nu, ch*nu)."""
        self._check()
        return self._Iz2u.copy()

    @property
    def Iu2z(self) -> np.ndarray:
        """Prediction-horizon to control-horizon operator (ch*nu, ph*nu)."""
        self._check()
        return self._Iu2z.copy()

    @property
    def Sz2u(self) -> np.ndarray:
        self._check()
        return self._Sz2u

    @property
    def Su2z(self) -> np.ndarray:
        self._check()
        return self._Su2z

    @property
    def input_scaling(self) -> np.ndarray:
        self._check()
        return self._input_scaling

    @property
    def state_scaling(self) -> np.ndarray:
        self._check()
        return self._state_scaling

    @property
    def inverse_state_scaling(self) -> np.ndarray:
        self._check()
        return self._inverse_state_scaling

    def replication_counts(self) -> np.ndarray:
        """
        Number of prediction steps covered by each control move.

        All ones except the last entry, ``ph - ch + 1``. Sums to ``ph``.
        """
        dim = self._check()
        m = np.ones(dim.ch, dtype=int)
        m[-1] = dim.ph - dim.ch + 1
        return m

    def compute_mapping(self) -> None:
        """Rebuild ``Iz2u``/``Iu2z`` from the current input scaling."""
        dim = self._check()
        nu = dim.nu
        m = self.replication_counts()

        self._Iz2u[:] = 0.0
        self._Iu2z[:] = 0.0

        self._Sz2u = np.diag(self._input_scaling)
        self._Su2z = np.diag(1.0 / self._input_scaling)

        # TODO: linear interpolation between moves instead of a step hold
        col = 0
        row = 0
        for i in range(dim.ch):
            self._Iu2z[col:col + nu, row:row + nu] = self._Su2z
            for _ in range(m[i]):
                self._Iz2u[row:row + nu, col:col + nu] = self._Sz2u
                row += nu
            col += nu

    def unwrap_vector(
        self,
        x: np.ndarray,
        x0: np.ndarray,
    ) -> Tuple[np.ndarray, np.ndarray, float]:
        """
        Split a flat decision vector into trajectories.

        Args:
            x: Decision vector (ph*nx + ch*nu + 1,)
            x0: Current state (nx,), used as the first trajectory row

        Returns:
            Tuple ``(X, U, slack)`` with ``X`` of shape (ph+1, nx),
            ``U`` of shape (ph+1, nu) whose last row repeats row ``ph-1``,
            and the slack scalar.

        Raises:
            DimensionError: if ``x`` has the wrong length
        """
        dim = self._check()
        x = np.asarray(x, dtype=np.float64).ravel()
        if x.size != dim.n_opt:
            raise DimensionError(
                f"decision vector must have {dim.n_opt} elements, got {x.size}"
            )
        x0 = as_vector(x0, dim.nx, "x0")

        n_states = dim.ph * dim.nx
        z = x[n_states:n_states + dim.ch * dim.nu]

        U = np.zeros((dim.ph + 1, dim.nu))
        U[:dim.ph] = (self._Iz2u @ z).reshape(dim.ph, dim.nu)
        U[dim.ph] = U[dim.ph - 1]

        X = np.zeros((dim.ph + 1, dim.nx))
        X[0] = x0
        X[1:] = x[:n_states].reshape(dim.ph, dim.nx)
        X /= self._inverse_state_scaling

        slack = float(x[-1])
        return X, U, slack
