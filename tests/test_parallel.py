"""
Tests for communicators and the nested process layout.
"""

import numpy as np
import pytest
from rsdft.crystal import Crystal, Atom
from rsdft.grid import RealSpaceGrid
from rsdft.parallel import ParallelLayout, SerialCommunicator, serial_comm, parprint


class FakeRankCommunicator(SerialCommunicator):
    """Pretends to be one rank of a larger communicator and records splits."""

    def __init__(self, rank, size):
        self.rank = rank
        self.size = size
        self.colors = []

    def split(self, color, key=0):
        self.colors.append(color)
        if color is None:
            return None
        return SerialCommunicator()


class RecordingCommunicator(SerialCommunicator):
    """Serial communicator that counts reductions."""

    def __init__(self):
        self.n_sum = 0

    def sum(self, value):
        self.n_sum += 1
        return value


@pytest.fixture
def grid():
    """Create an 8x6x4 grid."""
    crystal = Crystal.cubic(8.0, [Atom('H', [0.5, 0.5, 0.5])])
    return RealSpaceGrid(crystal, shape=(8, 6, 4))


class TestSerialCommunicator:
    """Tests for SerialCommunicator."""

    def test_identity_reductions(self):
        """Test that reductions return their input."""
        a = np.arange(3.0)
        assert serial_comm.sum(a) is a
        assert serial_comm.max(2.5) == 2.5
        assert serial_comm.broadcast('x') == 'x'

    def test_split_undefined(self):
        """Test splitting with and without a color."""
        assert serial_comm.split(None) is None
        assert serial_comm.split(3).size == 1

    def test_parprint_root_only(self, capsys):
        """Test that only rank 0 prints."""
        parprint("hello", comm=FakeRankCommunicator(1, 2))
        parprint("world", comm=FakeRankCommunicator(0, 2))
        assert capsys.readouterr().out == "world\n"


class TestParallelLayout:
    """Tests for ParallelLayout."""

    def test_serial_layout(self, grid):
        """Test the single-process layout."""
        layout = ParallelLayout.serial(grid, n_spin=2, n_kpts=3, n_states=5)
        assert layout.density_domain is not None
        assert layout.orbital_domain.n_local == grid.n_points
        assert (layout.n_spin_local, layout.n_kpts_local, layout.n_bands_local) == (2, 3, 5)
        assert layout.is_root

    def test_process_count_checked(self, grid):
        """Test the process count check."""
        with pytest.raises(ValueError):
            ParallelLayout(serial_comm, grid, n_kpts=4, npkpt=2)

    def test_too_many_groups(self, grid):
        """Test rejection of more groups than items."""
        comm = FakeRankCommunicator(0, 4)
        with pytest.raises(ValueError):
            ParallelLayout(comm, grid, n_kpts=1, n_states=8, npkpt=4)

    def test_rank_decomposition(self, grid):
        """Test rank to group index mapping."""
        # 2 k-point groups x 2 band groups x 2 domains
        comm = FakeRankCommunicator(5, 8)
        layout = ParallelLayout(comm, grid, n_kpts=3, n_states=7,
                                npkpt=2, npband=2, domain_dims=(2, 1, 1))

        assert (layout.spin_index, layout.kpt_index,
                layout.band_index, layout.domain_index) == (0, 1, 0, 1)
        assert (layout.kpt_start, layout.n_kpts_local) == (2, 1)
        assert (layout.band_start, layout.n_bands_local) == (0, 4)
        assert layout.orbital_domain.partition.vertices == ((4, 8), (0, 6), (0, 4))
        # only the first k-point/band replica holds the density
        assert layout.density_domain is None
        assert comm.colors[-1] is None

    def test_first_replica_holds_density(self, grid):
        """Test that the first replica owns the density."""
        comm = FakeRankCommunicator(1, 8)
        layout = ParallelLayout(comm, grid, n_kpts=3, n_states=7,
                                npkpt=2, npband=2, domain_dims=(2, 1, 1))
        assert layout.density_domain is not None
        assert layout.density_domain.partition == layout.orbital_domain.partition

    def test_integrate_reduces_once(self, grid):
        """Test that integration issues one reduction."""
        comm = RecordingCommunicator()
        part = grid.partition()
        grid.integrate(np.ones(part.n_local), part, comm)
        assert comm.n_sum == 1
