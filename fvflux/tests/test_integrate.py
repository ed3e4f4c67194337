"""
Pytest tests for test function integrals.

Tests verify:
1. Analytic boundary fluxes for steady diffusion (linear, nonlinear, with source)
2. Flux conservation between opposite boundaries
3. Constant test functions: only node terms remain
4. Species masking
5. Transient functional: steady limit, storage splitting, mass balance
6. Input validation
"""

import numpy as np
import pytest
import sys
from pathlib import Path

# Add project root to path
project_root = Path(__file__).parent.parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

from fvflux.src import (
    Physics, System, TestFunctionFactory, SteadyMode, TransientMode,
    simplexgrid, solve, integrate, integrate_steady, integrate_transient,
    integrate_storage, ShapeMismatchError,
)
from fvflux.tests.diffusion import (
    linear_flux, nonlinear_flux, create_diffusion_system,
    run_steady_diffusion_flux, run_transient_inflow,
)


def unit_source(f):
    f[0] = 1.0


def linear_reaction(f, u):
    f[0] = u[0]


def two_species_flux(f, u):
    f[0] = u[0] - u[2]
    f[1] = 2.0 * (u[1] - u[3])


def two_species_reaction(f, u):
    f[0] = u[0] * u[1]
    f[1] = -u[0] * u[1]


def two_species_source(f):
    f[0] = 0.5
    f[1] = 0.25


def two_species_storage(f, u):
    f[0] = u[0]
    f[1] = 2.0 * u[1]


@pytest.fixture
def full_physics():
    return Physics(flux=two_species_flux, reaction=two_species_reaction,
                   source=two_species_source, storage=two_species_storage)


@pytest.fixture
def masked_system(full_physics):
    """Two species on [0, 1]; species 1 is never enabled."""
    grid = simplexgrid(np.linspace(0.0, 1.0, 11))
    system = System(grid, full_physics, num_species=2)
    system.enable_species(0, [1])
    return system


@pytest.fixture
def coupled_system(full_physics):
    """Two species on the unit square, species 1 only on x < 0.5."""
    grid = simplexgrid(np.linspace(0.0, 1.0, 5), np.linspace(0.0, 1.0, 4),
                       cellregions=lambda xm: np.where(xm[:, 0] < 0.5, 1, 2))
    system = System(grid, full_physics, num_species=2)
    system.enable_species(0, [1, 2])
    system.enable_species(1, [1])
    return system


@pytest.fixture
def snapshots(coupled_system):
    """Two smooth solution snapshots for the coupled system."""
    x, y = coupled_system.grid.coord.T
    U = np.vstack([1.0 + x * y, np.cos(x) + y])
    Uold = np.vstack([1.0 + 0.5 * x * y, np.cos(x)])
    return U, Uold


def node_volumes(grid):
    volumes = np.zeros(grid.num_nodes)
    np.add.at(volumes, grid.cellnodes.ravel(), grid.cellnodefactors.ravel())
    return volumes


class TestSteadyDiffusionFlux:
    """Tests against analytically known boundary fluxes."""

    def test_linear_flux(self):
        """-u'' = 0, u(0) = 1, u(1) = 0: unit flux enters at x = 0."""
        _, _, _, flux_in = run_steady_diffusion_flux(21)
        assert np.isclose(flux_in[0], 1.0, rtol=1e-8)

    def test_linear_flux_opposite_boundary(self):
        system = create_diffusion_system(21)
        U = solve(system)
        tf = TestFunctionFactory(system).testfunction(bc0=[1], bc1=[2])
        assert np.isclose(integrate(system, tf, U)[0], -1.0, rtol=1e-8)

    def test_nonlinear_flux(self):
        """Coefficient 1 + u: flux is the Kirchhoff difference 1.5."""
        _, _, _, flux_in = run_steady_diffusion_flux(21, flux=nonlinear_flux)
        assert np.isclose(flux_in[0], 1.5, rtol=1e-8)

    def test_with_source(self):
        """-u'' = 1, u(0) = u(1) = 0: flux 1/2 leaves through x = 0."""
        system = create_diffusion_system(21, source=unit_source)
        system.boundary_dirichlet(0, 1, 0.0)
        U = solve(system)
        tf = TestFunctionFactory(system).testfunction(bc0=[2], bc1=[1])
        assert np.isclose(integrate(system, tf, U)[0], -0.5, rtol=1e-8)

    def test_two_dimensional(self):
        """u = 1 - x on the unit square: unit flux enters through the west side."""
        grid = simplexgrid(np.linspace(0.0, 1.0, 6), np.linspace(0.0, 1.0, 5))
        system = System(grid, Physics(flux=linear_flux), num_species=1)
        system.enable_species(0, [1])
        system.boundary_dirichlet(0, 4, 1.0)
        system.boundary_dirichlet(0, 2, 0.0)
        U = solve(system)

        tf = TestFunctionFactory(system).testfunction(bc0=[2], bc1=[4])
        assert np.isclose(integrate(system, tf, U)[0], 1.0, rtol=1e-8)

    def test_conservation(self):
        """Without reactions the flux in at x = 0 leaves at x = 1."""
        system = create_diffusion_system(21, flux=nonlinear_flux)
        U = solve(system)
        factory = TestFunctionFactory(system)
        flux_left = integrate(system, factory.testfunction(bc0=[2], bc1=[1]), U)
        flux_right = integrate(system, factory.testfunction(bc0=[1], bc1=[2]), U)
        assert np.isclose(flux_left[0] + flux_right[0], 0.0, atol=1e-10)

    def test_idempotent(self, coupled_system, snapshots):
        U, _ = snapshots
        tf = TestFunctionFactory(coupled_system).testfunction(bc0=[2], bc1=[4])
        assert np.array_equal(integrate_steady(coupled_system, tf, U),
                              integrate_steady(coupled_system, tf, U))


class TestConstantTestFunction:
    """A constant test function removes all edge contributions."""

    def test_edge_terms_vanish(self):
        grid = simplexgrid(np.linspace(0.0, 1.0, 11), np.linspace(0.0, 1.0, 11))
        system = System(grid, Physics(flux=linear_flux), num_species=1)
        system.enable_species(0, [1])
        tf = TestFunctionFactory(system).testfunction(bc0=[], bc1=[1, 2, 3, 4])

        U = np.random.default_rng(42).random((1, grid.num_nodes))
        assert np.isclose(integrate_steady(system, tf, U)[0], 0.0, atol=1e-10)

    def test_node_terms_scaled(self):
        grid = simplexgrid(np.linspace(0.0, 1.0, 11))
        physics = Physics(flux=linear_flux, reaction=linear_reaction)
        system = System(grid, physics, num_species=1)
        system.enable_species(0, [1])
        tf = TestFunctionFactory(system).testfunction(bc0=[], bc1=[1, 2])

        U = np.random.default_rng(7).random((1, grid.num_nodes))
        expected = U[0] @ node_volumes(grid)
        assert np.isclose(integrate_steady(system, tf, U)[0], expected, rtol=1e-10)
        assert np.isclose(integrate_steady(system, 3.0 * tf, U)[0], 3.0 * expected, rtol=1e-10)


class TestSpeciesMasking:
    """Species without degrees of freedom contribute nothing."""

    def test_inactive_species_is_zero(self, masked_system):
        U = np.ones((2, 11))
        Uold = np.zeros((2, 11))
        tf = np.linspace(1.0, 0.0, 11)

        assert integrate_steady(masked_system, tf, U)[1] == 0.0
        assert integrate_transient(masked_system, tf, U, Uold, 0.1)[1] == 0.0
        assert integrate_storage(masked_system, tf, U)[1] == 0.0
        assert integrate_steady(masked_system, tf, U)[0] != 0.0

    def test_partially_active_species(self, coupled_system, snapshots):
        """Only nodes where species 1 lives enter its functional."""
        U, _ = snapshots
        grid = coupled_system.grid
        tf = np.ones(grid.num_nodes)
        volumes = node_volumes(grid)

        # Storage 2 * u, summed over the control volumes of species 1 only
        partial = np.zeros(grid.num_nodes)
        for icell in range(grid.num_cells):
            for inode, k in enumerate(grid.cellnodes[icell]):
                if coupled_system.isdof(1, k):
                    partial[k] += grid.cellnodefactors[icell, inode]
        result = integrate_storage(coupled_system, tf, U)
        assert np.isclose(result[1], 2.0 * U[1] @ partial)
        assert np.isclose(result[0], U[0] @ volumes)

    def test_missing_callbacks(self):
        grid = simplexgrid(np.linspace(0.0, 1.0, 6))
        system = System(grid, Physics(), num_species=1)
        system.enable_species(0, [1])
        U = np.ones((1, 6))
        tf = np.linspace(0.0, 1.0, 6)
        assert np.all(integrate_transient(system, tf, U, 2.0 * U, 0.5) == 0.0)


class TestTransientFunctional:
    """Tests for the storage term of the functional."""

    def test_infinite_tstep_matches_steady(self, coupled_system, snapshots):
        U, Uold = snapshots
        tf = TestFunctionFactory(coupled_system).testfunction(bc0=[2], bc1=[4])
        steady = integrate_steady(coupled_system, tf, U)
        assert np.allclose(integrate_transient(coupled_system, tf, U, Uold, np.inf), steady,
                           rtol=1e-14, atol=1e-14)
        assert np.array_equal(integrate(coupled_system, tf, U, TransientMode(Uold, np.inf)), steady)
        assert np.array_equal(integrate(coupled_system, tf, U, SteadyMode()), steady)
        assert np.array_equal(integrate(coupled_system, tf, U), steady)

    def test_storage_splitting(self, coupled_system, snapshots):
        U, Uold = snapshots
        tstep = 0.05
        tf = TestFunctionFactory(coupled_system).testfunction(bc0=[1], bc1=[3])
        expected = (integrate_steady(coupled_system, tf, U)
                    + (integrate_storage(coupled_system, tf, U)
                       - integrate_storage(coupled_system, tf, Uold)) / tstep)
        assert np.allclose(integrate_transient(coupled_system, tf, U, Uold, tstep), expected,
                           rtol=1e-10)
        assert np.allclose(integrate(coupled_system, tf, U, TransientMode(Uold, tstep)), expected,
                           rtol=1e-10)

    def test_inflow_matches_stored_amount(self):
        """Time-integrated inflow through x = 0 fills the no-flux domain."""
        _, solution, inflow, stored = run_transient_inflow(21, np.linspace(0.0, 0.2, 11))
        assert stored[0] > 0.1
        assert np.isclose(inflow[0], stored[0], rtol=1e-8)

    def test_inputs_not_modified(self, coupled_system, snapshots):
        U, Uold = snapshots
        tf = np.linspace(0.0, 1.0, coupled_system.grid.num_nodes)
        U_copy, Uold_copy, tf_copy = U.copy(), Uold.copy(), tf.copy()
        integrate_transient(coupled_system, tf, U, Uold, 0.1)
        assert np.array_equal(U, U_copy)
        assert np.array_equal(Uold, Uold_copy)
        assert np.array_equal(tf, tf_copy)


class TestInputValidation:
    """Shape and argument errors are raised before any accumulation."""

    def test_wrong_species_count(self, masked_system):
        tf = np.zeros(11)
        with pytest.raises(ShapeMismatchError):
            integrate_steady(masked_system, tf, np.zeros((3, 11)))

    def test_wrong_node_count(self, masked_system):
        tf = np.zeros(11)
        with pytest.raises(ShapeMismatchError):
            integrate_storage(masked_system, tf, np.zeros((2, 10)))

    def test_wrong_previous_snapshot(self, masked_system):
        tf = np.zeros(11)
        with pytest.raises(ShapeMismatchError):
            integrate_transient(masked_system, tf, np.zeros((2, 11)), np.zeros((2, 12)), 0.1)

    def test_wrong_testfunction_length(self, masked_system):
        with pytest.raises(ShapeMismatchError):
            integrate(masked_system, np.zeros(10), np.zeros((2, 11)))

    def test_shape_error_is_value_error(self, masked_system):
        with pytest.raises(ValueError):
            integrate(masked_system, np.zeros(10), np.zeros((2, 11)))

    def test_nonpositive_tstep(self, masked_system):
        U = np.zeros((2, 11))
        with pytest.raises(ValueError):
            integrate_transient(masked_system, np.zeros(11), U, U, -1.0)

    def test_nan_tstep(self, masked_system):
        U = np.zeros((2, 11))
        with pytest.raises(ValueError):
            integrate_transient(masked_system, np.zeros(11), U, U, float('nan'))
        with pytest.raises(ValueError):
            integrate(masked_system, np.zeros(11), U, TransientMode(previous=U, tstep=float('nan')))

    def test_unknown_mode(self, masked_system):
        with pytest.raises(TypeError):
            integrate(masked_system, np.zeros(11), np.zeros((2, 11)), mode='steady')

    def test_callback_must_be_callable(self):
        with pytest.raises(TypeError):
            Physics(flux=1.0)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
