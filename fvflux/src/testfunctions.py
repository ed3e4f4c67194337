"""
Test function based flux functionals.

The net flux of a species through a set of boundary regions is extracted
from a finite volume solution by multiplying the discrete equations with a
test function T and summing over all control volumes (a discrete version of
integration by parts). T is 1 on the boundary regions of interest, 0 on the
regions the flux is measured against, and solves a plain Laplace problem in
between:

    I_s = sum_cells sum_edges ef * flux_s(u_k, u_l) * (T_k - T_l)
        + sum_cells sum_nodes nf * (reaction_s - source_s
                                    + (storage_s - storage_s_old) / dt) * T_k

For a species with Dirichlet data on the bc1 regions, the interior equations
vanish and I_s is the net flux of that species entering the domain through
the bc1 regions (negative for outflow).
"""

import logging
import threading

import numpy as np
from dataclasses import dataclass
from typing import Iterable, Union

from .errors import IllPosedProblemError, ShapeMismatchError
from .linsolve import factorize
from .physics import Physics
from .solver import SolverControl, to_vector, from_vector
from .system import System

logger = logging.getLogger(__name__)


def _testfunction_flux(f, u):
    f[0] = u[0] - u[1]


def _testfunction_storage(f, u):
    f[0] = u[0]


class TestFunctionFactory:
    """
    Creates test functions for boundary flux calculations on a system.

    The factory owns a one-species shadow system on the grid of the original
    system. Each testfunction() call overwrites the shadow boundary data and
    solves again; calls are serialized by an internal lock.
    """

    # Keep pytest from collecting this class
    __test__ = False

    def __init__(self, system: System, control: SolverControl = None):
        """
        Args:
            system: Original system, provides grid and species layout
            control: Solver configuration (factorization backend)
        """
        grid = system.grid
        if grid.num_cellregions == 0:
            raise ValueError("Cannot create test functions on a grid without cell regions")

        self.system = system
        self.control = control if control is not None else SolverControl()

        physics = Physics(flux=_testfunction_flux, storage=_testfunction_storage)
        self.tfsystem = System(grid, physics, num_species=1)
        self.tfsystem.enable_species(0, range(1, grid.num_cellregions + 1))

        self._lock = threading.Lock()

    def testfunction(self, bc0: Iterable[int], bc1: Iterable[int]) -> np.ndarray:
        """
        Create a test function with Dirichlet value 0 on the boundary regions
        in bc0 and Dirichlet value 1 on the boundary regions in bc1.

        Args:
            bc0: Boundary region ids where the test function is 0
            bc1: Boundary region ids where the test function is 1

        Returns:
            Test function values at the grid nodes (num_nodes,)
        """
        bc0 = [int(region) for region in bc0]
        bc1 = [int(region) for region in bc1]

        overlap = set(bc0) & set(bc1)
        if overlap:
            raise IllPosedProblemError(f"Boundary regions {sorted(overlap)} appear in both bc0 and bc1")
        if not bc0 and not bc1:
            raise IllPosedProblemError("Test function needs at least one Dirichlet region "
                                       "in bc0 or bc1 (pure Neumann problem is singular)")

        grid = self.tfsystem.grid
        for region in bc0 + bc1:
            if region < 1 or region > grid.num_bfaceregions:
                raise ValueError(f"Unknown boundary region {region}, grid has "
                                 f"{grid.num_bfaceregions} boundary regions")
        nodes = np.concatenate([grid.bregion_nodes(region) for region in bc0 + bc1])
        if nodes.size == 0:
            raise IllPosedProblemError(f"Boundary regions {sorted(bc0 + bc1)} contain no boundary "
                                       "nodes (pure Neumann problem is singular)")

        with self._lock:
            tfsystem = self.tfsystem
            tfsystem.clear_boundary_conditions()
            for region in bc1:
                tfsystem.boundary_dirichlet(0, region, 1.0)
            for region in bc0:
                tfsystem.boundary_dirichlet(0, region, 0.0)

            # Linear problem: one steady assembly at u = 0 and one solve
            u = tfsystem.unknowns()
            F, J = tfsystem.assemble(u, tstep=np.inf, fd_step=self.control.fd_step)
            du = factorize(J, self.control.factorization).solve(-to_vector(F))

        logger.debug("Test function for bc0=%s, bc1=%s: range [%.4g, %.4g]",
                     bc0, bc1, du.min(), du.max())
        return from_vector(du, 1)[0]


@dataclass(frozen=True)
class SteadyMode:
    """Steady state functional: no storage term."""


@dataclass(frozen=True)
class TransientMode:
    """Transient functional with backward difference storage term."""
    previous: np.ndarray  # Solution at the previous time (num_species, num_nodes)
    tstep: float


IntegrationMode = Union[SteadyMode, TransientMode]


def _check_arguments(system: System, tf: np.ndarray, *snapshots):
    tf = np.asarray(tf)
    if tf.shape != (system.grid.num_nodes,):
        raise ShapeMismatchError(f"Test function has shape {tf.shape}, "
                                 f"expected ({system.grid.num_nodes},)")
    checked = [system.check_solution(U, name) for name, U in snapshots]
    return (tf,) + tuple(checked)


def _integrate_edges(system: System, tf: np.ndarray, U: np.ndarray, integral: np.ndarray):
    grid = system.grid
    nspec = system.num_species
    mask = system.dofmask
    flux = system.physics.flux
    res = np.zeros(nspec)
    ukl = np.zeros(2 * nspec)

    for icell in range(grid.num_cells):
        for iedge in range(grid.num_edges_per_cell):
            n1, n2 = grid.edge_nodes(iedge, icell)
            ukl[:nspec] = U[:, n1]
            ukl[nspec:] = U[:, n2]
            res[:] = 0.0
            flux(res, ukl)
            active = mask[:, n1] & mask[:, n2]
            integral[active] += grid.celledgefactors[icell, iedge] * res[active] * (tf[n1] - tf[n2])


def integrate_transient(system: System, tf: np.ndarray, U: np.ndarray,
                        Uold: np.ndarray, tstep: float) -> np.ndarray:
    """
    Test function integral for a transient solution.

    Args:
        system: Finite volume system
        tf: Test function (num_nodes,)
        U: Solution at the current time (num_species, num_nodes)
        Uold: Solution at the previous time (num_species, num_nodes)
        tstep: Time step between Uold and U; np.inf drops the storage term

    Returns:
        Functional value per species (num_species,)
    """
    if not tstep > 0.0:
        raise ValueError(f"Time step must be positive, got {tstep}")
    tf, U, Uold = _check_arguments(system, tf, ('U', U), ('Uold', Uold))

    grid = system.grid
    nspec = system.num_species
    mask = system.dofmask
    physics = system.physics
    tstepinv = 1.0 / tstep

    integral = np.zeros(nspec)
    _integrate_edges(system, tf, U, integral)

    res = np.zeros(nspec)
    src = np.zeros(nspec)
    stor = np.zeros(nspec)
    storold = np.zeros(nspec)
    for icell in range(grid.num_cells):
        for inode in range(grid.num_nodes_per_cell):
            k = grid.cellnodes[icell, inode]
            res[:] = 0.0
            src[:] = 0.0
            stor[:] = 0.0
            storold[:] = 0.0
            physics.reaction(res, U[:, k])
            physics.source(src)
            physics.storage(stor, U[:, k])
            physics.storage(storold, Uold[:, k])
            active = mask[:, k]
            term = res - src + (stor - storold) * tstepinv
            integral[active] += grid.cellnodefactors[icell, inode] * term[active] * tf[k]
    return integral


def integrate_steady(system: System, tf: np.ndarray, U: np.ndarray) -> np.ndarray:
    """
    Steady state part of the test function integral (flux, reaction, source).

    Args:
        system: Finite volume system
        tf: Test function (num_nodes,)
        U: Solution (num_species, num_nodes)

    Returns:
        Functional value per species (num_species,)
    """
    tf, U = _check_arguments(system, tf, ('U', U))

    grid = system.grid
    nspec = system.num_species
    mask = system.dofmask
    physics = system.physics

    integral = np.zeros(nspec)
    _integrate_edges(system, tf, U, integral)

    res = np.zeros(nspec)
    src = np.zeros(nspec)
    for icell in range(grid.num_cells):
        for inode in range(grid.num_nodes_per_cell):
            k = grid.cellnodes[icell, inode]
            res[:] = 0.0
            src[:] = 0.0
            physics.reaction(res, U[:, k])
            physics.source(src)
            active = mask[:, k]
            integral[active] += grid.cellnodefactors[icell, inode] * (res[active] - src[active]) * tf[k]
    return integral


def integrate_storage(system: System, tf: np.ndarray, U: np.ndarray) -> np.ndarray:
    """
    Storage part of the test function integral, without time step division.

    The transient integral equals integrate_steady(U) plus
    (integrate_storage(U) - integrate_storage(Uold)) / tstep.

    Args:
        system: Finite volume system
        tf: Test function (num_nodes,)
        U: Solution (num_species, num_nodes)

    Returns:
        Functional value per species (num_species,)
    """
    tf, U = _check_arguments(system, tf, ('U', U))

    grid = system.grid
    nspec = system.num_species
    mask = system.dofmask
    storage = system.physics.storage

    integral = np.zeros(nspec)
    stor = np.zeros(nspec)
    for icell in range(grid.num_cells):
        for inode in range(grid.num_nodes_per_cell):
            k = grid.cellnodes[icell, inode]
            stor[:] = 0.0
            storage(stor, U[:, k])
            active = mask[:, k]
            integral[active] += grid.cellnodefactors[icell, inode] * stor[active] * tf[k]
    return integral


def integrate(system: System, tf: np.ndarray, U: np.ndarray,
              mode: IntegrationMode = None) -> np.ndarray:
    """
    Test function integral of a solution.

    Args:
        system: Finite volume system
        tf: Test function (num_nodes,)
        U: Solution (num_species, num_nodes)
        mode: SteadyMode() (default) or TransientMode(previous, tstep);
              a transient mode with infinite tstep is evaluated as steady

    Returns:
        Functional value per species (num_species,)
    """
    if mode is None or isinstance(mode, SteadyMode):
        return integrate_steady(system, tf, U)
    if isinstance(mode, TransientMode):
        if np.isinf(mode.tstep) and mode.tstep > 0:
            return integrate_steady(system, tf, U)
        return integrate_transient(system, tf, U, mode.previous, mode.tstep)
    raise TypeError(f"Unknown integration mode: {type(mode).__name__}")
