#!/usr/bin/env python3
"""
mpclib Benchmark: time per control step

Linear MPC on a chain of double integrators for growing horizons, and
nonlinear MPC on a scalar plant. Run from the repository root after
``pip install -e .``.
"""

import time

import numpy as np
from scipy.linalg import block_diag

import mpclib
from mpclib import Dimensions, LMPC, NLParameters, NMPC
from mpclib.mpc import double_integrator

print(f"mpclib version: {mpclib.__version__}")
print()


def chain_plant(n_masses, dt=0.1):
    """Independent double integrators, one input each."""
    unit = double_integrator(dt)
    A = block_diag(*[unit.A] * n_masses)
    B = block_diag(*[unit.B] * n_masses)
    return A, B


def time_steps(mpc, x0, u0, steps):
    """Mean and max step time in ms, plus the return codes seen."""
    times = []
    codes = set()
    x = x0.copy()
    u = u0.copy()
    for _ in range(steps):
        start = time.perf_counter()
        result = mpc.step(x, u)
        times.append(time.perf_counter() - start)
        codes.add(int(result.retcode))
        u = result.cmd
    times = np.array(times) * 1000
    return times.mean(), times.max(), codes


def benchmark_lmpc():
    """Linear MPC step time against horizon and plant size."""
    print("=" * 70)
    print("Linear MPC (OSQP)")
    print("=" * 70)
    print(f"{'masses':>8} {'ph':>6} {'QP vars':>10} {'mean (ms)':>12} {'max (ms)':>12} {'codes':>10}")
    print("-" * 70)

    for n_masses in (1, 4):
        A, B = chain_plant(n_masses)
        nx, nu = A.shape[0], B.shape[1]
        for ph in (10, 20, 50):
            dim = Dimensions(nx=nx, nu=nu, ndu=0, ny=nx, ph=ph, ch=max(1, ph // 4))
            mpc = LMPC(dim)
            mpc.set_state_space_model(A, B, np.eye(nx))
            mpc.set_objective_weights(np.ones(nx), np.zeros(nu), np.full(nu, 0.1))
            mpc.set_constraints(u_min=-np.ones(nu), u_max=np.ones(nu))

            mean, peak, codes = time_steps(mpc, np.ones(nx), np.zeros(nu), 50)
            print(f"{n_masses:>8} {ph:>6} {dim.n_qp_vars:>10} {mean:>12.2f} {peak:>12.2f} "
                  f"{str(sorted(codes)):>10}")


def benchmark_nmpc():
    """Nonlinear MPC step time against horizon."""
    print("\n" + "=" * 70)
    print("Nonlinear MPC (SLSQP)")
    print("=" * 70)
    print(f"{'ph':>6} {'ch':>6} {'n_opt':>8} {'mean (ms)':>12} {'max (ms)':>12} {'codes':>10}")
    print("-" * 70)

    for ph in (5, 10, 20):
        dim = Dimensions(nx=1, nu=1, ndu=0, ny=0, ph=ph, ch=max(1, ph // 3))
        mpc = NMPC(dim)
        mpc.set_optimizer_parameters(NLParameters(relative_ftol=1e-6))
        mpc.set_state_space_function(lambda x, u: 0.9 * x + 0.1 * np.tanh(u))
        mpc.set_objective_function(lambda X, U, e: np.sum(X ** 2) + 0.01 * np.sum(U ** 2))

        mean, peak, codes = time_steps(mpc, np.ones(1), np.zeros(1), 10)
        print(f"{ph:>6} {dim.ch:>6} {dim.n_opt:>8} {mean:>12.2f} {peak:>12.2f} "
              f"{str(sorted(codes)):>10}")


if __name__ == "__main__":
    benchmark_lmpc()
    benchmark_nmpc()
