"""
Shared fixtures: small hydrogen-dimer contexts on coarse grids.
"""

import numpy as np
import pytest
from rsdft.context import CalculationSettings, SimulationContext
from rsdft.crystal import Crystal, Atom, AtomicConfiguration
from rsdft.grid import RealSpaceGrid
from rsdft.kpoints import KPoints


@pytest.fixture
def make_context():
    """Factory for a serial H2 context in a 10 Bohr cubic cell."""
    def make(mode='static', spin='none', shape=(10, 10, 10), kgrid=(1, 1, 1),
             velocities=None, **settings):
        moment = [0.0, 0.5, 0.5] if spin == 'noncollinear' else 0.8
        atoms = [Atom('H', [0.42, 0.5, 0.5], magnetization=moment),
                 Atom('H', [0.58, 0.5, 0.5], magnetization=moment)]
        crystal = Crystal.cubic(10.0, atoms)
        if velocities is None:
            velocities = [[-0.05, 0.0, 0.0], [0.05, 0.0, 0.0]]
        config = AtomicConfiguration(crystal, velocities=velocities, timestep=1.0,
                                     search_direction=np.array(velocities))
        grid = RealSpaceGrid(crystal, shape=shape)
        return SimulationContext.create(
            crystal, grid, settings=CalculationSettings(mode=mode, spin=spin, **settings),
            kpoints=KPoints(crystal, kgrid), atoms=config)
    return make
