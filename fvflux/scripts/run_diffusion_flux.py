"""
Steady diffusion boundary flux computed with a test function.

Run from the project root:
    python fvflux/scripts/run_diffusion_flux.py [--plot]
"""

import sys
from pathlib import Path

# Add project root to path to import the fvflux package
project_root = Path(__file__).parent.parent.parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))

import argparse
import matplotlib.pyplot as plt

from fvflux.tests.diffusion import linear_flux, nonlinear_flux, run_steady_diffusion_flux


def plot_solution(system, U, tf, filename: str = None):
    """Plot the solution and the test function."""
    x = system.grid.coord[:, 0]

    fig, axes = plt.subplots(1, 2, figsize=(10, 4))
    axes[0].plot(x, U[0], 'b-o', linewidth=2, markersize=3)
    axes[0].set_xlabel('x')
    axes[0].set_ylabel('u')
    axes[0].set_title('Solution')
    axes[0].grid(True)

    axes[1].plot(x, tf, 'r-o', linewidth=2, markersize=3)
    axes[1].set_xlabel('x')
    axes[1].set_ylabel('T')
    axes[1].set_title('Test function')
    axes[1].grid(True)

    plt.tight_layout()

    if filename:
        plt.savefig(filename, dpi=150, bbox_inches='tight')
        print(f"Saved plot to {filename}")

    plt.show()


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument('--nonlinear', action='store_true', help='use coefficient 1 + u')
    parser.add_argument('--plot', action='store_true', help='plot solution and test function')
    args = parser.parse_args()

    flux = nonlinear_flux if args.nonlinear else linear_flux
    exact = 1.5 if args.nonlinear else 1.0

    print("=" * 50)
    print("STEADY DIFFUSION BOUNDARY FLUX")
    print("=" * 50)
    for n_nodes in [6, 11, 21, 41, 81]:
        system, U, tf, flux_in = run_steady_diffusion_flux(n_nodes, flux=flux)
        print(f"  error: {abs(flux_in[0] - exact):.3e}")

    if args.plot:
        plot_solution(system, U, tf)
