"""
mpclib: Model Predictive Control Problem Formulation
====================================================

mpclib turns a plant model, weights and constraints into the optimization
problem solved at every sample time of a receding-horizon controller.

- Linear MPC: augmented state-space QP, solved with OSQP
- Nonlinear MPC: user callables on trajectories, solved with SLSQP

Quick Start
-----------
>>> import numpy as np
>>> from mpclib import Dimensions, NMPC
>>>
>>> mpc = NMPC(Dimensions(nx=1, nu=1, ndu=0, ny=0, ph=10, ch=3))
>>> mpc.set_state_space_function(lambda x, u: 0.9 * x + 0.1 * u)
>>> mpc.set_objective_function(lambda X, U, e: np.sum(X ** 2) + 0.01 * np.sum(U ** 2))
>>> result = mpc.step(np.array([1.0]), np.array([0.0]))
>>> print(result.cmd, result.retcode)
"""

__version__ = "0.1.0"
__author__ = "mpclib Contributors"

from .dimensions import Dimensions
from .mapping import Mapping
from .builder import Problem, ProblemBuilder
from .parameters import Parameters, LParameters, NLParameters
from .result import Result, ReturnCode
from .evaluators import Objective, Constraints, Cost, ConstraintValue
from .solver import LOptimizer
from .nlsolver import NLOptimizer
from .mpc import MPC, LMPC, NMPC, LinearSystem
from .exceptions import (
    MPCError,
    DimensionError,
    InvalidInputError,
    NotInitializedError,
    UnsupportedOperationError,
    OptimizationError,
)

__all__ = [
    # Version
    "__version__",

    # Problem description
    "Dimensions",
    "Mapping",
    "Problem",
    "ProblemBuilder",

    # Settings and results
    "Parameters",
    "LParameters",
    "NLParameters",
    "Result",
    "ReturnCode",

    # Nonlinear evaluation
    "Objective",
    "Constraints",
    "Cost",
    "ConstraintValue",

    # Optimizers
    "LOptimizer",
    "NLOptimizer",

    # Controllers
    "MPC",
    "LMPC",
    "NMPC",
    "LinearSystem",

    # Exceptions
    "MPCError",
    "DimensionError",
    "InvalidInputError",
    "NotInitializedError",
    "UnsupportedOperationError",
    "OptimizationError",
]
