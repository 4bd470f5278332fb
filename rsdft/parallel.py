"""
Communicators and the nested spin / k-point / band / domain process layout.

Every communicator exposes the same small interface: ``rank``, ``size``,
``sum``, ``max``, ``broadcast``, ``barrier`` and ``split``. ``split`` returns
None on processes that are not members of the new group; code that needs a
group receives a :class:`DomainHandle` or None and returns immediately
when it gets None.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence

from .grid import RealSpaceGrid, DomainPartition, block_range

try:
    from mpi4py import MPI
    HAS_MPI4PY = True
except ImportError:
    HAS_MPI4PY = False


class SerialCommunicator:
    """Communicator of a single process."""

    rank = 0
    size = 1

    def sum(self, value):
        return value

    def max(self, value):
        return value

    def broadcast(self, value, root: int = 0):
        return value

    def barrier(self):
        pass

    def split(self, color: Optional[int], key: int = 0):
        if color is None:
            return None
        return SerialCommunicator()


class MPI4PyCommunicator:
    """
    Wrapper around an mpi4py communicator.

    ``sum`` reduces numpy arrays in place (and returns them) and returns
    the reduced value for Python scalars.
    """

    def __init__(self, comm):
        if not HAS_MPI4PY:
            raise ImportError("mpi4py is required for parallel runs. "
                              "Install with: pip install rsdft[mpi]")
        self.comm = comm

    @property
    def rank(self) -> int:
        return self.comm.Get_rank()

    @property
    def size(self) -> int:
        return self.comm.Get_size()

    def sum(self, value):
        if isinstance(value, np.ndarray):
            self.comm.Allreduce(MPI.IN_PLACE, value, op=MPI.SUM)
            return value
        return self.comm.allreduce(value, op=MPI.SUM)

    def max(self, value):
        if isinstance(value, np.ndarray):
            self.comm.Allreduce(MPI.IN_PLACE, value, op=MPI.MAX)
            return value
        return self.comm.allreduce(value, op=MPI.MAX)

    def broadcast(self, value, root: int = 0):
        if isinstance(value, np.ndarray):
            self.comm.Bcast(value, root=root)
            return value
        return self.comm.bcast(value, root=root)

    def barrier(self):
        self.comm.Barrier()

    def split(self, color: Optional[int], key: int = 0):
        new = self.comm.Split(MPI.UNDEFINED if color is None else color, key)
        if new == MPI.COMM_NULL:
            return None
        return MPI4PyCommunicator(new)


serial_comm = SerialCommunicator()


def world():
    """MPI_COMM_WORLD wrapped as a communicator."""
    if not HAS_MPI4PY:
        raise ImportError("mpi4py is required for parallel runs. "
                          "Install with: pip install rsdft[mpi]")
    return MPI4PyCommunicator(MPI.COMM_WORLD)


def parprint(*args, comm=None, **kwargs):
    """Print on rank 0 of `comm` only (all processes when comm is None)."""
    if comm is None or comm.rank == 0:
        print(*args, **kwargs)


@dataclass(frozen=True)
class DomainHandle:
    """Membership in a domain group: its communicator and the local grid box."""
    comm: object
    partition: DomainPartition

    @property
    def n_local(self) -> int:
        return self.partition.n_local


class ParallelLayout:
    """
    Split a communicator into nested spin > k-point > band > domain groups.

    Ranks are ordered with the domain index fastest:
    rank = ((ispin * npkpt + ikpt) * npband + iband) * ndomain + idomain.

    Attributes:
        spin_comm: processes sharing this spin group
        kpt_comm: processes sharing this spin and k-point group
        band_comm: processes sharing spin, k-point and domain, differing in band
        domain_comm: processes sharing spin, k-point and band group
        orbital_domain: DomainHandle over domain_comm
        density_domain: DomainHandle of the first spin/kpt/band replica,
            None on every other process
    """

    def __init__(self, comm, grid: RealSpaceGrid, n_spin: int = 1, n_kpts: int = 1,
                 n_states: int = 1, npspin: int = 1, npkpt: int = 1, npband: int = 1,
                 domain_dims: Sequence[int] = (1, 1, 1)):
        """
        Args:
            comm: Communicator to split (e.g. serial_comm or world())
            grid: Global real-space grid
            n_spin: Number of orbital spin channels to distribute
            n_kpts: Number of irreducible k-points
            n_states: Number of Kohn-Sham states
            npspin, npkpt, npband: Number of spin, k-point and band groups
            domain_dims: Domain process grid (px, py, pz)
        """
        self.world = comm
        self.domain_dims = tuple(int(d) for d in domain_dims)
        ndomain = int(np.prod(self.domain_dims))
        total = npspin * npkpt * npband * ndomain
        if total != comm.size:
            raise ValueError(
                f"Process grid {npspin}x{npkpt}x{npband}x{self.domain_dims} needs "
                f"{total} processes, communicator has {comm.size}")
        for name, n, p in (('spin channels', n_spin, npspin),
                           ('k-points', n_kpts, npkpt),
                           ('bands', n_states, npband)):
            if p > n:
                raise ValueError(f"Cannot distribute {n} {name} over {p} groups")

        self.npspin, self.npkpt, self.npband = npspin, npkpt, npband
        self.n_spin, self.n_kpts, self.n_states = n_spin, n_kpts, n_states

        rank = comm.rank
        self.domain_index = rank % ndomain
        rest = rank // ndomain
        self.band_index = rest % npband
        rest //= npband
        self.kpt_index = rest % npkpt
        self.spin_index = rest // npkpt

        kpt_group = self.spin_index * npkpt + self.kpt_index
        band_group = kpt_group * npband + self.band_index
        is_first_replica = band_group == 0

        self.spin_comm = comm.split(self.spin_index, rank)
        self.kpt_comm = comm.split(kpt_group, rank)
        self.band_comm = comm.split(kpt_group * ndomain + self.domain_index, rank)
        self.domain_comm = comm.split(band_group, rank)
        density_comm = comm.split(0 if is_first_replica else None, rank)

        coords = np.unravel_index(self.domain_index, self.domain_dims)
        partition = grid.partition(self.domain_dims, coords)
        self.orbital_domain = DomainHandle(self.domain_comm, partition)
        self.density_domain = (DomainHandle(density_comm, partition)
                               if density_comm is not None else None)

        self.spin_start, self.n_spin_local = block_range(n_spin, npspin, self.spin_index)
        self.kpt_start, self.n_kpts_local = block_range(n_kpts, npkpt, self.kpt_index)
        self.band_start, self.n_bands_local = block_range(n_states, npband, self.band_index)

    @classmethod
    def serial(cls, grid: RealSpaceGrid, n_spin: int = 1, n_kpts: int = 1,
               n_states: int = 1):
        """Layout of a single process owning everything."""
        return cls(serial_comm, grid, n_spin=n_spin, n_kpts=n_kpts, n_states=n_states)

    @property
    def is_root(self) -> bool:
        return self.world.rank == 0
