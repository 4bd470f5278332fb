"""
Reproducible pseudo-random fields on a distributed grid.

Two modes are provided:

* seeded: every value is a function of its global linear index only, so a
  field is bit-for-bit identical for any domain decomposition. Values are
  drawn one global grid row (fixed j, k) at a time from a generator seeded
  with the global index of the row's first point; the local x-range is then
  sliced out of the row.
* communicator-seeded: one stream per process, seeded from the rank in a
  communicator. Reproducible only for a fixed process layout.
"""

import numpy as np
from typing import Callable, Optional

from .grid import DomainPartition


def _fill_rows(partition: DomainPartition, seed_shift: int, out: np.ndarray,
               draw_row: Callable[[np.random.Generator, int], np.ndarray]) -> np.ndarray:
    if seed_shift < 0:
        raise ValueError(f"Seed shift must be non-negative, got {seed_shift}")
    if out.size != partition.n_local:
        raise ValueError(f"Output holds {out.size} values, partition has {partition.n_local}")
    if not out.flags['C_CONTIGUOUS']:
        raise ValueError("Output array must be contiguous")

    Nx, Ny, _ = partition.grid_shape
    (xs, xe), (ys, ye), (zs, ze) = partition.vertices
    nx, ny, nz = partition.local_shape
    view = out.reshape(nz, ny, nx)
    for k in range(zs, ze):
        for j in range(ys, ye):
            rng = np.random.default_rng(seed_shift + k * Nx * Ny + j * Nx)
            view[k - zs, j - ys, :] = draw_row(rng, Nx)[xs:xe]
    return out


def seeded_rand_vec(partition: DomainPartition, low: float, high: float,
                    seed_shift: int, out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    Uniform real values in [low, high) on the local box, keyed by global index.

    Args:
        partition: Local box of the global grid
        low, high: Interval of the values
        seed_shift: Global offset of this field (band/spinor/k-point shift)
        out: Optional contiguous float array of partition.n_local values

    Returns:
        Array of partition.n_local values (out, when given)
    """
    if out is None:
        out = np.empty(partition.n_local)
    return _fill_rows(partition, seed_shift, out,
                      lambda rng, n: rng.uniform(low, high, n))


def seeded_rand_vec_complex(partition: DomainPartition, low: float, high: float,
                            seed_shift: int, out: Optional[np.ndarray] = None) -> np.ndarray:
    """Complex version of :func:`seeded_rand_vec`; both parts lie in [low, high)."""
    if out is None:
        out = np.empty(partition.n_local, dtype=np.complex128)

    def draw_row(rng, n):
        parts = rng.uniform(low, high, (n, 2))
        return parts[:, 0] + 1j * parts[:, 1]

    return _fill_rows(partition, seed_shift, out, draw_row)


def set_rand_mat(mat: np.ndarray, low: float, high: float, comm) -> np.ndarray:
    """
    Fill `mat` in place with uniform values from a stream seeded by comm.rank.

    Complex arrays get independent real and imaginary parts.
    """
    rng = np.random.default_rng(comm.rank + 1)
    if np.iscomplexobj(mat):
        mat.real = rng.uniform(low, high, mat.shape)
        mat.imag = rng.uniform(low, high, mat.shape)
    else:
        mat[...] = rng.uniform(low, high, mat.shape)
    return mat
