"""
Tests for crystal structure and atomic configuration.
"""

import numpy as np
import pytest
from rsdft.crystal import Crystal, Atom, AtomicConfiguration


class TestAtom:
    """Tests for Atom class."""

    def test_atom_defaults(self):
        """Test atomic number, valence and constraints."""
        atom = Atom('Si', [0.0, 0.0, 0.0])
        assert atom.atomic_number == 14
        assert atom.z_valence == 4.0
        assert atom.fixed == (False, False, False)

    def test_vector_magnetization(self):
        """Test a vector magnetic moment."""
        atom = Atom('Fe', [0.5, 0.5, 0.5], magnetization=[0.0, 1.0, 2.0])
        np.testing.assert_array_equal(atom.magnetization, [0.0, 1.0, 2.0])


class TestCrystal:
    """Tests for Crystal class."""

    def test_angstrom_conversion(self):
        """Test that the cell is converted to Bohr."""
        a = 5.0
        crystal = Crystal(a * np.eye(3), [Atom('Si', [0.0, 0.0, 0.0])], units='angstrom')
        np.testing.assert_array_almost_equal(crystal.cell,
                                             a * Crystal.ANGSTROM_TO_BOHR * np.eye(3))

    def test_diamond_valence(self):
        """Test diamond structure valence charge."""
        crystal = Crystal.diamond(5.43, 'Si')
        assert crystal.num_atoms == 2
        assert crystal.num_valence_electrons == pytest.approx(8.0)

    def test_reciprocal_lattice(self):
        """Test reciprocal lattice calculation."""
        crystal = Crystal.cubic(5.0, [Atom('H', [0.0, 0.0, 0.0])])
        np.testing.assert_array_almost_equal(crystal.reciprocal_cell,
                                             (2 * np.pi / 5.0) * np.eye(3))

    def test_cartesian_roundtrip(self):
        """Test setting Cartesian positions."""
        crystal = Crystal.diamond(10.0, 'C', units='bohr')
        new = crystal.get_cartesian_positions() + 0.3
        crystal.set_cartesian_positions(new)
        np.testing.assert_array_almost_equal(crystal.get_cartesian_positions(), new)

    def test_movable_mask(self):
        """Test the movable-direction mask."""
        atoms = [Atom('H', [0.0, 0.0, 0.0], fixed=(True, False, True)),
                 Atom('H', [0.5, 0.0, 0.0])]
        crystal = Crystal.cubic(8.0, atoms)
        np.testing.assert_array_equal(crystal.movable_mask(),
                                      [[0.0, 1.0, 0.0], [1.0, 1.0, 1.0]])


class TestAtomicConfiguration:
    """Tests for moving atoms between outer steps."""

    @pytest.fixture
    def dimer(self):
        """Create an H2 dimer with one partly fixed atom."""
        atoms = [Atom('H', [0.4, 0.5, 0.5], fixed=(False, True, True)),
                 Atom('H', [0.6, 0.5, 0.5])]
        return Crystal.cubic(10.0, atoms)

    def test_md_advance(self, dimer):
        """Test an MD position update."""
        config = AtomicConfiguration(dimer, velocities=[[0.1, 0.0, 0.0], [-0.1, 0.0, 0.0]],
                                     timestep=2.0)
        start = config.positions.copy()
        disp = config.advance('md')

        np.testing.assert_array_almost_equal(disp, [[0.2, 0, 0], [-0.2, 0, 0]])
        np.testing.assert_array_almost_equal(config.positions, start + disp)
        np.testing.assert_array_almost_equal(dimer.get_cartesian_positions(), config.positions)

    def test_relax_respects_constraints(self, dimer):
        """Test that fixed directions do not move in relaxation."""
        config = AtomicConfiguration(dimer, step_size=0.5,
                                     search_direction=np.ones((2, 3)))
        disp = config.advance('relax')
        np.testing.assert_array_almost_equal(disp, [[0.5, 0.0, 0.0], [0.5, 0.5, 0.5]])

    def test_positions_not_wrapped(self, dimer):
        """Test that positions are not wrapped into the cell."""
        config = AtomicConfiguration(dimer, velocities=[[20.0, 0, 0], [0, 0, 0]])
        config.advance('md')
        assert config.positions[0, 0] > dimer.cell[0, 0]

    def test_static_cannot_advance(self, dimer):
        """Test that a static run cannot move atoms."""
        config = AtomicConfiguration(dimer)
        with pytest.raises(ValueError):
            config.advance('static')
