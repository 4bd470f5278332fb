"""
Tests for spin decomposition.
"""

import numpy as np
from rsdft.spin import diagonal_density, magnetization_norm


def test_collinear_decomposition():
    """Test up and down channels."""
    rho = np.array([1.0, 2.0, 0.5])
    mag = np.array([0.2, -1.0, 0.0])
    up, down = diagonal_density(mag, rho)

    np.testing.assert_array_almost_equal(up + down, rho)
    np.testing.assert_array_almost_equal(up - down, mag)


def test_in_place_outputs():
    """Test writing into output arrays."""
    rho = np.ones(4)
    mag = np.full(4, 0.5)
    up = np.zeros(4)
    down = np.zeros(4)
    diagonal_density(mag, rho, up, down)
    np.testing.assert_array_equal(up, 0.75)
    np.testing.assert_array_equal(down, 0.25)


def test_magnetization_norm():
    """Test the magnetization norm."""
    mx = np.array([3.0, 0.0])
    my = np.array([4.0, 0.0])
    mz = np.array([0.0, -2.0])
    np.testing.assert_array_almost_equal(magnetization_norm(mx, my, mz), [5.0, 2.0])
