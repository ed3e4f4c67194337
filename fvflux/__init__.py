"""
fvflux Package - Finite Volume Flux Functionals
===============================================

Re-exports all public components from fvflux.src
"""

from fvflux.src import (
    # Errors
    FVFluxError,
    IllPosedProblemError,
    ShapeMismatchError,
    LinearSolveError,
    ConvergenceError,
    # Grid
    SimplexGrid,
    simplexgrid,
    # Physics and system
    Physics,
    System,
    DIRICHLET,
    # Linear solvers
    Factorization,
    LUFactorization,
    DenseFactorization,
    factorize,
    # Nonlinear solver
    SolverControl,
    TransientSolution,
    solve,
    solve_transient,
    # Test functions
    TestFunctionFactory,
    SteadyMode,
    TransientMode,
    integrate,
    integrate_steady,
    integrate_transient,
    integrate_storage,
)
from fvflux.src import __version__

__all__ = [
    'FVFluxError',
    'IllPosedProblemError',
    'ShapeMismatchError',
    'LinearSolveError',
    'ConvergenceError',
    'SimplexGrid',
    'simplexgrid',
    'Physics',
    'System',
    'DIRICHLET',
    'Factorization',
    'LUFactorization',
    'DenseFactorization',
    'factorize',
    'SolverControl',
    'TransientSolution',
    'solve',
    'solve_transient',
    'TestFunctionFactory',
    'SteadyMode',
    'TransientMode',
    'integrate',
    'integrate_steady',
    'integrate_transient',
    'integrate_storage',
]
