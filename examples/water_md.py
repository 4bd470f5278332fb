#!/usr/bin/env python
"""
Charge extrapolation along a model water MD trajectory.

Runs the same trajectory twice, once reusing the previous density and once
with charge extrapolation, and compares how far each initial guess is from
the converged (model) density.
"""

import os
import sys
import numpy as np

# Add parent directory to path for development
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from rsdft import (Atom, AtomicConfiguration, CalculationSettings, Crystal,
                   OuterStepDriver, RealSpaceGrid, SimulationContext)


def build_context(extrapolate):
    a = 12.0  # Bohr
    atoms = [
        Atom('O', [0.50, 0.50, 0.50]),
        Atom('H', [0.58, 0.56, 0.50]),
        Atom('H', [0.42, 0.56, 0.50]),
    ]
    crystal = Crystal.cubic(a, atoms, units='bohr')

    # symmetric stretch plus a slow drift of the whole molecule
    velocities = np.array([
        [0.004, 0.0, -0.006],
        [0.030, 0.020, -0.006],
        [-0.022, 0.020, -0.006],
    ])
    config = AtomicConfiguration(crystal, velocities=velocities, timestep=2.0)
    grid = RealSpaceGrid(crystal, mesh_spacing=0.5)

    settings = CalculationSettings(
        mode='md',
        extrapolation_depth=3 if extrapolate else 10 ** 6,
    )
    return SimulationContext.create(crystal, grid, settings=settings, atoms=config)


def main():
    """Compare initial-guess quality with and without charge extrapolation."""
    print("=" * 60)
    print("Model water MD: charge extrapolation")
    print("=" * 60)

    n_steps = 8
    errors = {}
    for extrapolate in (False, True):
        label = "extrapolated" if extrapolate else "previous density"
        print(f"\nRunning {n_steps} MD steps ({label})...")
        context = build_context(extrapolate)
        print(f"  Grid: {context.grid.shape}, electrons: {context.crystal.num_valence_electrons}")
        results = OuterStepDriver(context).run(n_steps, verbose=False)
        errors[label] = [r.initial_error for r in results]

    print("\n  step   |dn| previous     |dn| extrapolated")
    for i in range(n_steps):
        print(f"  {i:4d}   {errors['previous density'][i]:14.4e}  "
              f"{errors['extrapolated'][i]:16.4e}")

    return errors


if __name__ == '__main__':
    main()
