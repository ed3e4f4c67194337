"""
Test cases for the finite volume flux functionals.

Run tests with pytest:
    pytest fvflux/tests/ -v

Or run individual test files:
    pytest fvflux/tests/test_testfunctions.py -v
    pytest fvflux/tests/test_integrate.py -v
"""

from .diffusion import (
    linear_flux, nonlinear_flux, identity_storage,
    create_diffusion_system, run_steady_diffusion_flux, run_transient_inflow,
)

__all__ = [
    'linear_flux',
    'nonlinear_flux',
    'identity_storage',
    'create_diffusion_system',
    'run_steady_diffusion_flux',
    'run_transient_inflow',
]
