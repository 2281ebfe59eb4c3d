"""
Problem Dimensions
==================

Sizes shared by every component of a controller. Every matrix and
vector size in mpclib is an affine function of these integers.
"""

from dataclasses import dataclass

from .exceptions import InvalidInputError


@dataclass(frozen=True)
class Dimensions:
    """
    Dimension descriptor of a controller instance.

    Args:
        nx: State dimension
        nu: Input dimension
        ndu: Measured disturbance dimension
        ny: Output dimension
        ph: Prediction horizon
        ch: Control horizon (1 <= ch <= ph)
        ineq: Number of user inequality constraints
        eq: Number of user equality constraints

    Example:
        >>> dim = Dimensions(nx=2, nu=1, ndu=0, ny=1, ph=10, ch=3)
        >>> dim.n_opt
        24
    """
    nx: int
    nu: int
    ndu: int
    ny: int
    ph: int
    ch: int
    ineq: int = 0
    eq: int = 0

    def __post_init__(self):
        """Validate the dimension tuple."""
        for name in ("nx", "nu", "ndu", "ny", "ph", "ch", "ineq", "eq"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, int):
                raise InvalidInputError(f"{name} must be an integer, got {value!r}")
            if value < 0:
                raise InvalidInputError(f"{name} must be non-negative, got {value}")

        if self.nx < 1 or self.nu < 1:
            raise InvalidInputError("nx and nu must be at least 1")
        if self.ch < 1:
            raise InvalidInputError(f"control horizon must be at least 1, got {self.ch}")
        if self.ch > self.ph:
            raise InvalidInputError(
                f"control horizon ({self.ch}) exceeds prediction horizon ({self.ph})"
            )

    @property
    def n_aug(self) -> int:
        """Size of the augmented state (state + carried input)."""
        return self.nx + self.nu

    @property
    def n_opt(self) -> int:
        """Length of the nonlinear decision vector: states, moves, slack."""
        return self.ph * self.nx + self.ch * self.nu + 1

    @property
    def n_qp_vars(self) -> int:
        """Number of QP variables: augmented states over ph+1 steps, then increments."""
        return (self.ph + 1) * self.n_aug + self.ph * self.nu

    @property
    def n_eq_rows(self) -> int:
        """Rows of the dynamics equality block."""
        return (self.ph + 1) * self.n_aug

    @property
    def n_ineq_rows(self) -> int:
        """Rows of the box/output/rate inequality block."""
        return (self.ph + 1) * self.n_aug + (self.ph + 1) * self.ny + self.ph * self.nu

    @property
    def n_qp_cons(self) -> int:
        """Total constraint rows of the QP."""
        return self.n_eq_rows + self.n_ineq_rows
