"""
HDF5 snapshots of the outer-step state.

A snapshot holds the density fields, the atomic reference density, the
charge extrapolation history and the step counters, so a trajectory can be
continued with its extrapolation history intact. In a parallel run each
density-domain process writes its own local box to its own file.
"""

import numpy as np
import h5py
import matplotlib.pyplot as plt
from datetime import datetime
from typing import Optional

from .parallel import parprint


class HDF5Output:
    """
    Snapshot writer and reader.
    """

    def __init__(self, filename: str = "rsdft.h5", verbose: bool = False):
        """
        Args:
            filename: Output filename (a rank suffix is added in parallel runs)
            verbose: Report each written file
        """
        self.filename = filename
        self.verbose = verbose

    def path_for(self, comm) -> str:
        if comm.size == 1:
            return self.filename
        stem = self.filename[:-3] if self.filename.endswith('.h5') else self.filename
        return f"{stem}.rank{comm.rank:04d}.h5"

    def write_snapshot(self, context) -> Optional[str]:
        """
        Write the local state of `context`.

        Returns:
            The written path, or None outside the density domain
        """
        domain = context.layout.density_domain
        if domain is None:
            return None
        path = self.path_for(domain.comm)
        dens = context.density
        history = context.history

        with h5py.File(path, 'w') as f:
            f.attrs['title'] = 'rsdft outer-step snapshot'
            f.attrs['created'] = datetime.now().isoformat()
            f.attrs['mode'] = context.settings.mode
            f.attrs['spin'] = context.settings.spin
            f.attrs['elecgs_count'] = context.counters.elecgs_count
            f.attrs['stress_count'] = context.counters.stress_count
            f.attrs['grid_shape'] = context.grid.shape
            f.attrs['vertices'] = np.array(domain.partition.vertices)

            crystal_grp = f.create_group('crystal')
            crystal_grp.create_dataset('cell', data=context.crystal.cell)
            crystal_grp.create_dataset('positions_cartesian', data=context.atoms.positions)
            dt = h5py.string_dtype(encoding='utf-8')
            crystal_grp.create_dataset('symbols', data=context.crystal.get_species(), dtype=dt)

            density_grp = f.create_group('density')
            density_grp.attrs['units'] = 'electrons/bohr^3'
            density_grp.attrs['pos_charge'] = dens.pos_charge
            density_grp.create_dataset('electron_dens', data=dens.electron_dens)
            density_grp.create_dataset('reference', data=dens.reference)
            density_grp.create_dataset('mag', data=dens.mag)
            if dens.mag_reference is not None:
                density_grp.create_dataset('mag_reference', data=dens.mag_reference)

            history_grp = f.create_group('history')
            history_grp.create_dataset('density_diff', data=history.density_diff.as_array())
            history_grp.create_dataset('positions', data=history.positions.as_array())
            history_grp.create_dataset('positions_next', data=history.positions_next)
            history_grp.create_dataset('delta_density', data=history.delta_density)
            if history.coefficients is not None:
                history_grp.attrs['alpha'], history_grp.attrs['beta'] = history.coefficients
                history_grp.attrs['matrix_rank'] = history.matrix_rank

        if self.verbose:
            parprint(f"Snapshot written to {path}", comm=domain.comm)
        return path

    @staticmethod
    def read_snapshot(filename: str) -> dict:
        """
        Read a snapshot file.

        Returns:
            Dictionary with all stored data
        """
        data = {}
        with h5py.File(filename, 'r') as f:
            for key in ('mode', 'spin'):
                value = f.attrs[key]
                data[key] = value.decode() if isinstance(value, bytes) else str(value)
            data['elecgs_count'] = int(f.attrs['elecgs_count'])
            data['stress_count'] = int(f.attrs['stress_count'])
            data['grid_shape'] = tuple(int(n) for n in f.attrs['grid_shape'])
            data['vertices'] = tuple(tuple(int(v) for v in pair) for pair in f.attrs['vertices'])

            data['cell'] = f['crystal/cell'][:]
            data['positions'] = f['crystal/positions_cartesian'][:]
            data['symbols'] = [s.decode() if isinstance(s, bytes) else s
                               for s in f['crystal/symbols'][:]]

            data['pos_charge'] = float(f['density'].attrs['pos_charge'])
            data['electron_dens'] = f['density/electron_dens'][:]
            data['reference'] = f['density/reference'][:]
            data['mag'] = f['density/mag'][:]
            if 'mag_reference' in f['density']:
                data['mag_reference'] = f['density/mag_reference'][:]

            data['density_diff'] = f['history/density_diff'][:]
            data['history_positions'] = f['history/positions'][:]
            data['positions_next'] = f['history/positions_next'][:]
            data['delta_density'] = f['history/delta_density'][:]
            if 'alpha' in f['history'].attrs:
                data['coefficients'] = (float(f['history'].attrs['alpha']),
                                        float(f['history'].attrs['beta']))
                data['matrix_rank'] = int(f['history'].attrs['matrix_rank'])
        return data


def restore_context(context, data: dict):
    """
    Load a snapshot dictionary into `context`.

    Raises:
        ValueError: if the snapshot was written for a different grid box or
            spin setting
    """
    domain = context.layout.density_domain
    if domain is None:
        return
    if (data['grid_shape'] != context.grid.shape
            or data['vertices'] != domain.partition.vertices):
        raise ValueError(
            f"Snapshot box {data['grid_shape']}/{data['vertices']} does not match "
            f"{context.grid.shape}/{domain.partition.vertices}")
    if data['spin'] != context.settings.spin:
        raise ValueError(f"Snapshot spin setting '{data['spin']}' does not match "
                         f"'{context.settings.spin}'")

    context.counters.elecgs_count = int(data['elecgs_count'])
    context.counters.stress_count = int(data['stress_count'])

    dens = context.density
    dens.electron_dens[...] = data['electron_dens']
    dens.reference[:] = data['reference']
    dens.mag[...] = data['mag']
    if dens.mag_reference is not None:
        dens.mag_reference[...] = data['mag_reference']

    history = context.history
    history.density_diff.load(data['density_diff'])
    history.positions.load(data['history_positions'])
    history.positions_next = np.array(data['positions_next'])
    history.delta_density[:] = data['delta_density']
    history.coefficients = data.get('coefficients')
    history.matrix_rank = data.get('matrix_rank')

    context.atoms.positions = np.array(data['positions'])
    context.crystal.set_cartesian_positions(context.atoms.positions)


def plot_density_slice(filename: str, output_png: str = "electron_density.png",
                       slice_axis: int = 2, slice_index: int = None) -> None:
    """
    Create a pcolormesh plot of the total density stored in a snapshot.

    Args:
        filename: Snapshot file (one process's local box)
        output_png: Output PNG filename
        slice_axis: Grid axis to slice along (0, 1 or 2)
        slice_index: Index along slice_axis within the box (default: middle)
    """
    data = HDF5Output.read_snapshot(filename)
    (xs, xe), (ys, ye), (zs, ze) = data['vertices']
    density = data['electron_dens'][0].reshape(ze - zs, ye - ys, xe - xs)
    density = np.transpose(density, (2, 1, 0))  # index as [x, y, z]

    if slice_index is None:
        slice_index = density.shape[slice_axis] // 2
    density_2d = np.take(density, slice_index, axis=slice_axis)
    labels = [a for i, a in enumerate('xyz') if i != slice_axis]

    fig, ax = plt.subplots(figsize=(8, 6))
    mesh = ax.pcolormesh(density_2d.T, cmap='viridis', shading='auto')
    fig.colorbar(mesh, ax=ax, label='Electron density (electrons/bohr^3)')

    ax.set_xlabel(f'{labels[0]} (grid points)')
    ax.set_ylabel(f'{labels[1]} (grid points)')
    ax.set_title(f'Electron density (slice at {"xyz"[slice_axis]}={slice_index})')
    ax.set_aspect('equal')

    plt.tight_layout()
    plt.savefig(output_png, dpi=150)
    plt.close(fig)
