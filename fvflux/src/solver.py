"""
Damped Newton solver and implicit Euler time stepping for a System.
"""

import logging

import numpy as np
from dataclasses import dataclass
from typing import Sequence

from .errors import ConvergenceError
from .linsolve import factorize
from .system import System, DEFAULT_FD_STEP

logger = logging.getLogger(__name__)


@dataclass
class SolverControl:
    """Configuration for the Newton solver and the linear solve backend."""
    factorization: str = 'splu'  # Options: 'splu', 'dense'
    max_iterations: int = 100
    tol_absolute: float = 1e-10
    tol_relative: float = 1e-10
    damp_initial: float = 1.0  # Damping of the first Newton update
    damp_growth: float = 1.2  # Damping factor is multiplied by this each iteration
    fd_step: float = DEFAULT_FD_STEP  # Relative step for local Jacobians
    log_interval: int = 10

    def __post_init__(self):
        if not 0.0 < self.damp_initial <= 1.0:
            raise ValueError(f"damp_initial must be in (0, 1], got {self.damp_initial}")
        if self.damp_growth < 1.0:
            raise ValueError(f"damp_growth must be >= 1, got {self.damp_growth}")
        if self.max_iterations < 1:
            raise ValueError(f"max_iterations must be >= 1, got {self.max_iterations}")


@dataclass
class TransientSolution:
    """Solution snapshots of a transient run."""
    times: np.ndarray  # (n_times,)
    u: np.ndarray      # (n_times, num_species, num_nodes)

    def __len__(self) -> int:
        return len(self.times)

    def __getitem__(self, i: int) -> np.ndarray:
        return self.u[i]


def to_vector(U: np.ndarray) -> np.ndarray:
    """Flatten a (num_species, num_nodes) array to the assembly ordering."""
    return U.T.ravel()


def from_vector(x: np.ndarray, num_species: int) -> np.ndarray:
    """Inverse of to_vector."""
    return x.reshape(-1, num_species).T.copy()


def solve(system: System, inival: np.ndarray = None, control: SolverControl = None,
          tstep: float = np.inf, uold: np.ndarray = None) -> np.ndarray:
    """
    Solve the (steady or one implicit Euler step) nonlinear system.

    Args:
        system: Finite volume system
        inival: Initial guess (num_species, num_nodes), zero by default
        control: Solver configuration
        tstep: Time step; np.inf solves the steady problem
        uold: Previous solution, required for finite tstep

    Returns:
        Solution array (num_species, num_nodes)
    """
    control = control if control is not None else SolverControl()
    U = system.unknowns() if inival is None else system.check_solution(inival, 'inival').astype(float)

    damp = control.damp_initial
    norm0 = None
    for iteration in range(1, control.max_iterations + 1):
        F, J = system.assemble(U, uold, tstep, control.fd_step)
        du = factorize(J, control.factorization).solve(-to_vector(F))
        U += damp * from_vector(du, system.num_species)
        damp = min(1.0, damp * control.damp_growth)

        norm = np.max(np.abs(du)) if du.size else 0.0
        if norm0 is None:
            norm0 = max(norm, np.finfo(float).tiny)

        if iteration % control.log_interval == 0:
            logger.info("Newton iter %4d, |du| = %.4e, |du|/|du0| = %.4e",
                        iteration, norm, norm / norm0)

        if norm < control.tol_absolute or norm / norm0 < control.tol_relative:
            logger.info("Newton converged in %d iterations, |du| = %.4e", iteration, norm)
            return U

    raise ConvergenceError(f"Newton iteration did not converge in {control.max_iterations} "
                           f"iterations, last |du| = {norm:.4e}")


def solve_transient(system: System, inival: np.ndarray, times: Sequence[float],
                    control: SolverControl = None) -> TransientSolution:
    """
    Integrate in time with the implicit Euler method.

    Args:
        system: Finite volume system
        inival: Solution at times[0] (num_species, num_nodes)
        times: Strictly increasing output times, one implicit step between each
        control: Solver configuration

    Returns:
        TransientSolution with one snapshot per entry of times
    """
    times = np.asarray(times, dtype=float)
    if times.ndim != 1 or len(times) < 2 or np.any(np.diff(times) <= 0.0):
        raise ValueError("times must be strictly increasing with at least 2 entries")

    U = system.check_solution(inival, 'inival').astype(float)
    snapshots = [U.copy()]
    for i in range(1, len(times)):
        tstep = times[i] - times[i - 1]
        U = solve(system, inival=U, control=control, tstep=tstep, uold=snapshots[-1])
        snapshots.append(U.copy())
        logger.info("Time step %d: t = %.4e, dt = %.4e", i, times[i], tstep)

    return TransientSolution(times=times, u=np.array(snapshots))
