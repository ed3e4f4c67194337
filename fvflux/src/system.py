"""
Finite volume system: grid, physics, degrees of freedom and boundary data.

Discretization (Voronoi box method), for every control volume w_k:

    sum_l ef_kl * flux(u_k, u_l) + |w_k| * (reaction(u_k) - source
        + (storage(u_k) - storage(u_k_old)) / tstep) + boundary terms = 0

The solution is a dense array U of shape (num_species, num_nodes). Species
need not live on every node: the activation bitmap `dofmask` marks the
(species, node) pairs carrying an unknown. Inactive entries get the dummy
equation u = 0 and are skipped by every accumulation.
"""

import logging

import numpy as np
import scipy.sparse as sp
from typing import Iterable, Tuple

from .errors import ShapeMismatchError
from .grid import SimplexGrid
from .physics import Physics

logger = logging.getLogger(__name__)

# Penalty factor marking a Dirichlet boundary condition
DIRICHLET = 1.0e30

DEFAULT_FD_STEP = float(np.cbrt(np.finfo(float).eps))


def local_jacobian(func, res: np.ndarray, u: np.ndarray,
                   fd_step: float = DEFAULT_FD_STEP) -> np.ndarray:
    """
    Evaluate a physics callback and its Jacobian by central differences.

    Args:
        func: Callback func(f, u) filling f
        res: Residual buffer (num_species,), overwritten with func(u)
        u: Local state, not modified
        fd_step: Relative difference step

    Returns:
        Jacobian d res / d u of shape (len(res), len(u))
    """
    res[:] = 0.0
    func(res, u)

    jac = np.zeros((len(res), len(u)))
    up = u.astype(float)
    fp = np.zeros_like(res)
    fm = np.zeros_like(res)
    for j in range(len(u)):
        step = fd_step * max(1.0, abs(u[j]))
        up[j] = u[j] + step
        fp[:] = 0.0
        func(fp, up)
        up[j] = u[j] - step
        fm[:] = 0.0
        func(fm, up)
        up[j] = u[j]
        jac[:, j] = (fp - fm) / (2.0 * step)
    return jac


class System:
    """
    Multi-species finite volume system on a simplex grid.

    Species are indexed from 0. Region ids follow the grid (positive
    integers). Species activation must be set up before the first assembly.
    """

    def __init__(self, grid: SimplexGrid, physics: Physics, num_species: int):
        """
        Args:
            grid: Simplex grid with geometry factors
            physics: Physics callbacks
            num_species: Number of species (rows of the solution array)
        """
        if num_species < 1:
            raise ValueError(f"A system needs at least one species, got {num_species}")

        self.grid = grid
        self.physics = physics
        self.num_species = num_species

        self.dofmask = np.zeros((num_species, grid.num_nodes), dtype=bool)
        self.boundary_factors = np.zeros((num_species, grid.num_bfaceregions))
        self.boundary_values = np.zeros((num_species, grid.num_bfaceregions))

        self._frozen = False

    # --- Degrees of freedom ---

    def enable_species(self, ispec: int, regions: Iterable[int]):
        """Activate species ispec on all nodes of the given cell regions."""
        if self._frozen:
            raise RuntimeError("Species activation is fixed after the first assembly")
        self._check_species(ispec)
        for region in regions:
            if region < 1 or region > self.grid.num_cellregions:
                raise ValueError(f"Unknown cell region {region}, grid has "
                                 f"{self.grid.num_cellregions} cell regions")
            self.dofmask[ispec, self.grid.cellregion_nodes(region)] = True

    def isdof(self, ispec: int, inode: int) -> bool:
        """True if species ispec has an unknown at node inode."""
        return bool(self.dofmask[ispec, inode])

    @property
    def num_dof(self) -> int:
        """Size of the assembled linear systems."""
        return self.num_species * self.grid.num_nodes

    def unknowns(self, value: float = 0.0) -> np.ndarray:
        """Solution array filled with value on active dofs and 0 elsewhere."""
        return np.where(self.dofmask, value, 0.0)

    def _check_species(self, ispec: int):
        if ispec < 0 or ispec >= self.num_species:
            raise ValueError(f"Species index {ispec} out of range [0, {self.num_species})")

    def _check_bregion(self, region: int):
        if region < 1 or region > self.grid.num_bfaceregions:
            raise ValueError(f"Unknown boundary region {region}, grid has "
                             f"{self.grid.num_bfaceregions} boundary regions")

    # --- Boundary conditions ---

    def clear_boundary_conditions(self):
        """Reset all boundary factors and values to zero (homogeneous Neumann)."""
        self.boundary_factors[:] = 0.0
        self.boundary_values[:] = 0.0

    def boundary_dirichlet(self, ispec: int, region: int, value: float):
        """Fix species ispec to value on boundary region."""
        self._check_species(ispec)
        self._check_bregion(region)
        self.boundary_factors[ispec, region - 1] = DIRICHLET
        self.boundary_values[ispec, region - 1] = value

    def boundary_neumann(self, ispec: int, region: int, value: float):
        """Prescribe the inward normal flux of species ispec on boundary region."""
        self.boundary_robin(ispec, region, 0.0, value)

    def boundary_robin(self, ispec: int, region: int, factor: float, value: float):
        """Outward normal flux factor * u - value on boundary region."""
        self._check_species(ispec)
        self._check_bregion(region)
        self.boundary_factors[ispec, region - 1] = factor
        self.boundary_values[ispec, region - 1] = value

    # --- Assembly ---

    def check_solution(self, U: np.ndarray, name: str = 'U') -> np.ndarray:
        """Validate the shape of a solution array."""
        U = np.asarray(U)
        expected = (self.num_species, self.grid.num_nodes)
        if U.shape != expected:
            raise ShapeMismatchError(f"{name} has shape {U.shape}, expected {expected} "
                                     "(num_species, num_nodes)")
        return U

    def assemble(self, U: np.ndarray, Uold: np.ndarray = None, tstep: float = np.inf,
                 fd_step: float = DEFAULT_FD_STEP) -> Tuple[np.ndarray, sp.csr_matrix]:
        """
        Assemble the nonlinear residual and its Jacobian.

        Args:
            U: Current solution (num_species, num_nodes)
            Uold: Solution at the previous time step, required for finite tstep
            tstep: Time step; np.inf gives the steady state residual
            fd_step: Relative step of the finite difference local Jacobians

        Returns:
            F: Residual (num_species, num_nodes)
            J: Jacobian (num_dof, num_dof), unknown index inode * num_species + ispec
        """
        U = self.check_solution(U)
        if not tstep > 0.0:
            raise ValueError(f"Time step must be positive, got {tstep}")
        tstepinv = 1.0 / tstep
        if tstepinv != 0.0:
            if Uold is None:
                raise ValueError("Transient assembly requires the previous solution Uold")
            Uold = self.check_solution(Uold, 'Uold')

        self._frozen = True

        grid = self.grid
        physics = self.physics
        nspec = self.num_species
        mask = self.dofmask

        F = np.zeros((nspec, grid.num_nodes))
        rows, cols, vals = [], [], []

        def add(row_node, col_node, block, scale):
            # block: (nspec, nspec) local derivative
            r, c = np.nonzero(block)
            rows.extend(row_node * nspec + r)
            cols.extend(col_node * nspec + c)
            vals.extend(scale * block[r, c])

        res = np.zeros(nspec)
        src = np.zeros(nspec)
        stor = np.zeros(nspec)
        storold = np.zeros(nspec)

        has_flux = physics.has('flux')
        has_reaction = physics.has('reaction')
        has_storage = physics.has('storage') and tstepinv != 0.0

        for icell in range(grid.num_cells):
            if has_flux:
                for iedge in range(grid.num_edges_per_cell):
                    n1, n2 = grid.edge_nodes(iedge, icell)
                    ef = grid.celledgefactors[icell, iedge]
                    ukl = np.concatenate([U[:, n1], U[:, n2]])
                    jac = local_jacobian(physics.flux, res, ukl, fd_step)

                    active = mask[:, n1] & mask[:, n2]
                    F[active, n1] += ef * res[active]
                    F[active, n2] -= ef * res[active]
                    jac[~active, :] = 0.0
                    add(n1, n1, jac[:, :nspec], ef)
                    add(n1, n2, jac[:, nspec:], ef)
                    add(n2, n1, jac[:, :nspec], -ef)
                    add(n2, n2, jac[:, nspec:], -ef)

            for inode in range(grid.num_nodes_per_cell):
                k = grid.cellnodes[icell, inode]
                nf = grid.cellnodefactors[icell, inode]
                active = mask[:, k]
                uk = U[:, k]

                block = np.zeros((nspec, nspec))
                if has_reaction:
                    block += local_jacobian(physics.reaction, res, uk, fd_step)
                else:
                    res[:] = 0.0
                src[:] = 0.0
                physics.source(src)
                term = res - src

                if has_storage:
                    block += tstepinv * local_jacobian(physics.storage, stor, uk, fd_step)
                    storold[:] = 0.0
                    physics.storage(storold, Uold[:, k])
                    term += (stor - storold) * tstepinv

                F[active, k] += nf * term[active]
                block[~active, :] = 0.0
                add(k, k, block, nf)

        self._assemble_boundary(U, F, rows, cols, vals)

        # Dummy equations u = 0 for inactive dofs
        inactive_spec, inactive_node = np.nonzero(~mask)
        F[inactive_spec, inactive_node] = U[inactive_spec, inactive_node]
        rows.extend(inactive_node * nspec + inactive_spec)
        cols.extend(inactive_node * nspec + inactive_spec)
        vals.extend(np.ones(len(inactive_spec)))

        J = sp.csr_matrix((vals, (rows, cols)), shape=(self.num_dof, self.num_dof))
        logger.debug("Assembled %d cells, %d dofs, %d nonzeros",
                     grid.num_cells, self.num_dof, J.nnz)
        return F, J

    def _assemble_boundary(self, U, F, rows, cols, vals):
        grid = self.grid
        nspec = self.num_species
        for region in range(1, grid.num_bfaceregions + 1):
            for ispec in range(nspec):
                factor = self.boundary_factors[ispec, region - 1]
                value = self.boundary_values[ispec, region - 1]
                if factor == DIRICHLET:
                    nodes = grid.bregion_nodes(region)
                    nodes = nodes[self.dofmask[ispec, nodes]]
                    F[ispec, nodes] += DIRICHLET * (U[ispec, nodes] - value)
                    rows.extend(nodes * nspec + ispec)
                    cols.extend(nodes * nspec + ispec)
                    vals.extend(np.full(len(nodes), DIRICHLET))
                elif factor != 0.0 or value != 0.0:
                    faces = np.nonzero(grid.bfaceregions == region)[0]
                    for iface in faces:
                        for inode, k in enumerate(grid.bfacenodes[iface]):
                            if not self.dofmask[ispec, k]:
                                continue
                            bnf = grid.bfacenodefactors[iface, inode]
                            F[ispec, k] += bnf * (factor * U[ispec, k] - value)
                            rows.append(k * nspec + ispec)
                            cols.append(k * nspec + ispec)
                            vals.append(bnf * factor)
