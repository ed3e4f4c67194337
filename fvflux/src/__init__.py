"""
Finite Volume Flux Functionals
==============================

Boundary flux evaluation for multi-species finite volume (Voronoi box)
discretizations on simplex grids.

Features:
- 1D and 2D simplex grids with precomputed Voronoi geometry factors
- Physics given by flux, reaction, source and storage callbacks
- Per-node species activation (sparse degrees of freedom)
- Damped Newton solver and implicit Euler time stepping
- Test functions and steady/transient flux functionals

Example:
    grid = simplexgrid(np.linspace(0.0, 1.0, 21))
    system = System(grid, Physics(flux=flux), num_species=1)
    system.enable_species(0, [1])
    system.boundary_dirichlet(0, 1, 1.0)
    system.boundary_dirichlet(0, 2, 0.0)
    U = solve(system)

    factory = TestFunctionFactory(system)
    tf = factory.testfunction(bc0=[2], bc1=[1])
    I = integrate(system, tf, U)  # flux entering through region 1
"""

from .errors import (
    FVFluxError, IllPosedProblemError, ShapeMismatchError,
    LinearSolveError, ConvergenceError,
)
from .grid import SimplexGrid, simplexgrid
from .physics import Physics
from .system import System, DIRICHLET
from .linsolve import Factorization, LUFactorization, DenseFactorization, factorize
from .solver import SolverControl, TransientSolution, solve, solve_transient
from .testfunctions import (
    TestFunctionFactory, SteadyMode, TransientMode,
    integrate, integrate_steady, integrate_transient, integrate_storage,
)

__all__ = [
    # Errors
    'FVFluxError',
    'IllPosedProblemError',
    'ShapeMismatchError',
    'LinearSolveError',
    'ConvergenceError',

    # Grid
    'SimplexGrid',
    'simplexgrid',

    # Physics and system
    'Physics',
    'System',
    'DIRICHLET',

    # Linear solvers
    'Factorization',
    'LUFactorization',
    'DenseFactorization',
    'factorize',

    # Nonlinear solver
    'SolverControl',
    'TransientSolution',
    'solve',
    'solve_transient',

    # Test functions
    'TestFunctionFactory',
    'SteadyMode',
    'TransientMode',
    'integrate',
    'integrate_steady',
    'integrate_transient',
    'integrate_storage',
]

__version__ = '1.0.0'
