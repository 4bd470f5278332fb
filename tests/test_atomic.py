"""
Tests for atomic superposition densities.
"""

import numpy as np
import pytest
from rsdft.atomic import (gaussian_on_partition, superposition_density,
                          superposition_magnetization)


class TestSuperposition:
    """Tests for atomic superposition fields."""

    def test_gaussian_periodic_image(self, make_context):
        """Test that a Gaussian and its periodic image coincide."""
        ctx = make_context(shape=(10, 10, 10))
        part = ctx.grid.partition()
        inside = gaussian_on_partition(ctx.crystal, part, np.array([0.0, 5.0, 5.0]), 1.0)
        shifted = gaussian_on_partition(ctx.crystal, part, np.array([10.0, 5.0, 5.0]), 1.0)
        np.testing.assert_array_almost_equal(inside, shifted)
        assert np.sum(inside) * ctx.grid.dV == pytest.approx(1.0, rel=1e-3)

    def test_density_charge(self, make_context):
        """Test that the superposition carries the valence charge."""
        ctx = make_context()
        domain = ctx.layout.density_domain
        rho = superposition_density(ctx.crystal, ctx.grid, domain)
        assert np.all(rho >= 0.0)
        assert ctx.grid.integrate(rho, domain.partition, domain.comm) == pytest.approx(2.0)

    def test_density_follows_positions(self, make_context):
        """Test that moving the atoms by one grid spacing shifts the density."""
        ctx = make_context()
        domain = ctx.layout.density_domain
        moved = ctx.atoms.positions + np.array([1.0, 0.0, 0.0])
        a = superposition_density(ctx.crystal, ctx.grid, domain)
        b = superposition_density(ctx.crystal, ctx.grid, domain, positions=moved)
        # one grid spacing along x
        np.testing.assert_array_almost_equal(
            np.roll(a.reshape(10, 10, 10), 1, axis=2).ravel(), b)

    def test_collinear_magnetization(self, make_context):
        """Test the collinear reference magnetization."""
        ctx = make_context(spin='collinear')
        mag = superposition_magnetization(ctx.crystal, ctx.layout.density_domain, 'collinear')
        assert mag.shape == (1000,)
        assert np.sum(mag) * ctx.grid.dV == pytest.approx(1.6, rel=1e-3)

    def test_noncollinear_magnetization(self, make_context):
        """Test the vector reference magnetization."""
        ctx = make_context(spin='noncollinear')
        mag = superposition_magnetization(ctx.crystal, ctx.layout.density_domain,
                                          'noncollinear')
        assert mag.shape == (3, 1000)
        np.testing.assert_array_equal(mag[0], 0.0)
        np.testing.assert_array_almost_equal(mag[1], mag[2])

    def test_unpolarized_has_no_magnetization(self, make_context):
        """Test that an unpolarized run has no magnetization."""
        ctx = make_context()
        with pytest.raises(ValueError):
            superposition_magnetization(ctx.crystal, ctx.layout.density_domain, 'none')
