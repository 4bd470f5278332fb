"""
Spin decomposition of electron densities.

Collinear:      n_up = (n + m) / 2,    n_down = (n - m) / 2
Non-collinear:  the same with m replaced by |m| = sqrt(mx^2 + my^2 + mz^2),
                giving the eigenvalues of the 2x2 spin density matrix.
"""

import numpy as np
from typing import Optional, Tuple


def magnetization_norm(mx: np.ndarray, my: np.ndarray, mz: np.ndarray,
                       out: Optional[np.ndarray] = None) -> np.ndarray:
    """Pointwise |m| of a non-collinear magnetization field."""
    if out is None:
        out = np.empty_like(mx, dtype=np.float64)
    np.sqrt(mx * mx + my * my + mz * mz, out=out)
    return out


def diagonal_density(mag: np.ndarray, rho: np.ndarray,
                     up: Optional[np.ndarray] = None,
                     down: Optional[np.ndarray] = None) -> Tuple[np.ndarray, np.ndarray]:
    """
    Spin-up and spin-down densities from total density and magnetization.

    Args:
        mag: Collinear magnetization, or |m| in the non-collinear case
        rho: Total electron density
        up, down: Optional output arrays

    Returns:
        (up, down)
    """
    if up is None:
        up = np.empty_like(rho)
    if down is None:
        down = np.empty_like(rho)
    up[...] = (rho + mag) / 2.0
    down[...] = (rho - mag) / 2.0
    return up, down
