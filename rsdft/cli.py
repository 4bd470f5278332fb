"""
Command-line interface for rsdft.
"""

import argparse
import sys

import numpy as np

from . import __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Outer-step initial guesses for real-space DFT'
    )
    parser.add_argument(
        '--version', action='version', version=f'rsdft {__version__}'
    )

    subparsers = parser.add_subparsers(dest='command')

    demo = subparsers.add_parser('demo', help='Run a model dimer trajectory')
    demo.add_argument('--mode', choices=['static', 'relax', 'md'], default='md')
    demo.add_argument('--steps', type=int, default=8, help='Number of outer steps')
    demo.add_argument('--spin', choices=['none', 'collinear', 'noncollinear'], default='none')
    demo.add_argument('--grid', type=int, default=24, help='Grid points per axis')
    demo.add_argument('--cell', type=float, default=12.0, help='Cubic cell length (Bohr)')
    demo.add_argument('--kgrid', type=int, nargs=3, default=(1, 1, 1))
    demo.add_argument('--fix-seed', action='store_true',
                      help='Partition-independent random orbitals')
    demo.add_argument('--singular-policy', choices=['minimum_norm', 'skip'],
                      default='minimum_norm')
    demo.add_argument('--mpi', action='store_true', help='Run on MPI_COMM_WORLD')
    demo.add_argument('--domains', type=int, nargs=3, default=(1, 1, 1),
                      help='Domain process grid (requires --mpi)')
    demo.add_argument('--output', default=None, help='HDF5 snapshot file')
    demo.add_argument('--plot', default=None, help='PNG of a density slice (needs --output)')
    demo.add_argument('--quiet', action='store_true')

    inspect = subparsers.add_parser('inspect', help='Print the contents of a snapshot')
    inspect.add_argument('filename')

    return parser


def harmonic_dimer_update(k_spring: float = 0.5, r0: float = 2.0):
    """
    Geometry callback for a two-atom model: harmonic bond of length r0.

    MD updates the velocities, relaxation sets the search direction to the
    force.
    """
    def update(context, step):
        atoms = context.atoms
        d = atoms.positions[1] - atoms.positions[0]
        r = np.linalg.norm(d)
        force = -k_spring * (r - r0) * d / r  # force on atom 1
        forces = np.array([-force, force]) * atoms.movable
        if context.settings.mode == 'md':
            atoms.velocities = atoms.velocities + atoms.timestep * forces
        else:
            atoms.search_direction = forces
    return update


def run_demo(args) -> int:
    from .context import CalculationSettings, SimulationContext
    from .crystal import Atom, AtomicConfiguration, Crystal
    from .driver import OuterStepDriver
    from .grid import RealSpaceGrid
    from .kpoints import KPoints
    from .parallel import serial_comm, world
    from .restart import HDF5Output, plot_density_slice

    settings = CalculationSettings(mode=args.mode, spin=args.spin,
                                   fix_rand_seed=args.fix_seed,
                                   singular_policy=args.singular_policy)

    a = args.cell
    moment = [0.0, 0.0, 1.0] if args.spin == 'noncollinear' else 1.0
    atoms = [
        Atom('H', [0.40, 0.5, 0.5], magnetization=moment),
        Atom('H', [0.62, 0.5, 0.5], magnetization=moment),
    ]
    crystal = Crystal.cubic(a, atoms, units='bohr')
    config = AtomicConfiguration(crystal, velocities=np.zeros((2, 3)),
                                 timestep=1.0, step_size=0.5)
    grid = RealSpaceGrid(crystal, shape=(args.grid,) * 3)
    kpoints = KPoints(crystal, tuple(args.kgrid))

    comm = world() if args.mpi else serial_comm
    context = SimulationContext.create(crystal, grid, settings=settings, kpoints=kpoints,
                                       atoms=config, comm=comm,
                                       domain_dims=args.domains)

    verbose = not args.quiet
    checkpoint = HDF5Output(args.output, verbose=verbose) if args.output else None
    driver = OuterStepDriver(context, geometry_update=harmonic_dimer_update(),
                             checkpoint=checkpoint)
    driver.run(args.steps, verbose=verbose)

    if args.plot:
        if checkpoint is None:
            print("--plot requires --output", file=sys.stderr)
            return 1
        if context.layout.density_domain is not None:
            plot_density_slice(checkpoint.path_for(context.layout.density_domain.comm),
                               args.plot)
    return 0


def inspect_snapshot(filename: str) -> int:
    from .restart import HDF5Output

    data = HDF5Output.read_snapshot(filename)
    print(f"File: {filename}")
    print(f"  mode: {data['mode']}, spin: {data['spin']}")
    print(f"  outer steps done: {data['elecgs_count']} "
          f"(stress-only: {data['stress_count']})")
    print(f"  grid: {data['grid_shape']}, local box: {data['vertices']}")
    print(f"  atoms: {' '.join(data['symbols'])}")
    for sym, pos in zip(data['symbols'], data['positions']):
        print(f"    {sym:2s} {pos[0]:12.6f} {pos[1]:12.6f} {pos[2]:12.6f}")
    print(f"  target charge: {data['pos_charge']:.6f}")
    print(f"  density channels: {data['electron_dens'].shape[0]}")
    if 'coefficients' in data:
        alpha, beta = data['coefficients']
        print(f"  last extrapolation: alpha = {alpha:.6f}, beta = {beta:.6f}, "
              f"rank = {data['matrix_rank']}")
    return 0


def main(argv=None) -> int:
    """Main entry point for CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == 'demo':
        return run_demo(args)
    if args.command == 'inspect':
        return inspect_snapshot(args.filename)
    parser.print_help()
    return 0


if __name__ == '__main__':
    sys.exit(main())
