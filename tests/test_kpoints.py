"""
Tests for k-point generation module.
"""

import numpy as np
import pytest
from rsdft.crystal import Crystal, Atom
from rsdft.kpoints import KPoints


class TestKPoints:
    """Tests for KPoints class."""

    @pytest.fixture
    def silicon_crystal(self):
        """Create silicon diamond structure."""
        return Crystal.diamond(5.43, 'Si', units='angstrom')

    def test_full_grid_creation(self, silicon_crystal):
        """Test full k-point grid without symmetry."""
        kpts = KPoints(silicon_crystal, (2, 2, 2), use_symmetry=False)
        assert kpts.nkpts == 8
        assert len(kpts) == 8

    def test_symmetry_reduction(self, silicon_crystal):
        """Test k-point reduction with symmetry."""
        kpts_full = KPoints(silicon_crystal, (4, 4, 4), use_symmetry=False)
        kpts_sym = KPoints(silicon_crystal, (4, 4, 4), use_symmetry=True)

        assert kpts_sym.nkpts < kpts_full.nkpts
        assert np.sum(kpts_sym.weights) == pytest.approx(1.0)

    def test_gamma_only(self, silicon_crystal):
        """Test Gamma-point detection."""
        assert KPoints.gamma(silicon_crystal).is_gamma_point
        assert KPoints(silicon_crystal, (1, 1, 1)).is_gamma_point

    def test_shifted_single_point_is_not_gamma(self, silicon_crystal):
        """Test that a shifted single point is not Gamma."""
        kpts = KPoints(silicon_crystal, (1, 1, 1), shift=(0.5, 0.5, 0.5), use_symmetry=False)
        assert kpts.nkpts == 1
        assert not kpts.is_gamma_point

    def test_grid_without_symmetry_is_not_gamma(self, silicon_crystal):
        """Test that a larger grid is not Gamma only."""
        assert not KPoints(silicon_crystal, (2, 1, 1), use_symmetry=False).is_gamma_point

    def test_low_symmetry_molecule(self):
        """Test reduction by time reversal only."""
        atoms = [Atom('H', [0.1, 0.2, 0.3]), Atom('O', [0.35, 0.6, 0.45])]
        crystal = Crystal.cubic(10.0, atoms)
        kpts = KPoints(crystal, (3, 3, 3))
        # time reversal alone pairs k with -k
        assert kpts.nkpts == 14
        assert np.sum(kpts.weights) == pytest.approx(1.0)

    def test_invalid_grid(self, silicon_crystal):
        """Test rejection of an empty grid."""
        with pytest.raises(ValueError):
            KPoints(silicon_crystal, (0, 1, 1))

    def test_iteration(self, silicon_crystal):
        """Test iterating over k-points."""
        kpts = KPoints(silicon_crystal, (2, 2, 2), use_symmetry=False)
        count = 0
        for k_cart, weight in kpts:
            assert k_cart.shape == (3,)
            assert weight > 0
            count += 1
        assert count == kpts.nkpts
