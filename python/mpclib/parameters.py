"""
Solver Parameters
=================

Configuration structures for the two controller modes. Each front-end
accepts only its own parameter type.
"""

from dataclasses import dataclass


@dataclass
class Parameters:
    """
    Parameters shared by every optimizer.

    Attributes:
        maximum_iteration: Iteration/evaluation cap of the solver
    """
    maximum_iteration: int = 100


@dataclass
class LParameters(Parameters):
    """
    OSQP settings used by the linear controller.

    Attributes:
        alpha: ADMM relaxation parameter
        rho: ADMM step size
        eps_rel: Relative convergence tolerance
        eps_abs: Absolute convergence tolerance
        eps_prim_inf: Primal infeasibility tolerance
        eps_dual_inf: Dual infeasibility tolerance
        time_limit: Wall clock limit in seconds (0 disables it)
        adaptive_rho: Let OSQP adapt ``rho``
        verbose: Print solver progress
    """
    maximum_iteration: int = 4000
    alpha: float = 1.6
    rho: float = 1e-6
    eps_rel: float = 1e-4
    eps_abs: float = 1e-4
    eps_prim_inf: float = 1e-3
    eps_dual_inf: float = 1e-3
    time_limit: float = 0.0
    adaptive_rho: bool = True
    verbose: bool = False

    def to_osqp(self) -> dict:
        """Keyword settings for ``osqp.OSQP.setup``."""
        settings = {
            "alpha": self.alpha,
            "rho": self.rho,
            "eps_rel": self.eps_rel,
            "eps_abs": self.eps_abs,
            "eps_prim_inf": self.eps_prim_inf,
            "eps_dual_inf": self.eps_dual_inf,
            "max_iter": self.maximum_iteration,
            "adaptive_rho": self.adaptive_rho,
            "verbose": self.verbose,
        }
        if self.time_limit > 0:
            settings["time_limit"] = self.time_limit
        return settings


@dataclass
class NLParameters(Parameters):
    """
    SLSQP settings used by the nonlinear controller.

    Attributes:
        relative_ftol: Function tolerance
        relative_xtol: Step tolerance
        hard_constraints: Keep the slack variable non-negative
    """
    relative_ftol: float = 1e-10
    relative_xtol: float = 1e-10
    hard_constraints: bool = True
