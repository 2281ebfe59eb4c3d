"""
mpclib Controllers
==================

Quick Start
-----------
>>> from mpclib import Dimensions
>>> from mpclib.mpc import LMPC, double_integrator
>>>
>>> plant = double_integrator(dt=0.1)
>>> mpc = LMPC(Dimensions(nx=2, nu=1, ndu=0, ny=2, ph=20, ch=5))
>>> mpc.set_state_space_model(plant.A, plant.B, plant.C)
>>> mpc.set_objective_weights([10.0, 1.0], [0.0], [0.1])
>>> mpc.set_constraints(u_min=[-1.0], u_max=[1.0])
>>> mpc.set_references([1.0, 0.0])
>>> result = mpc.step(x0)

Classes
-------
LMPC
    Linear MPC on an augmented discrete model, solved with OSQP
NMPC
    Nonlinear MPC on user callables, solved with SLSQP
LinearSystem
    Discrete linear plant with measured disturbances
"""

from .controller import MPC, LMPC
from .nonlinear import NMPC
from .dynamics import LinearSystem, double_integrator

__all__ = [
    # Controllers
    "MPC",
    "LMPC",
    "NMPC",
    # Plants
    "LinearSystem",
    "double_integrator",
]
