"""
Real-space finite-difference grid and its domain decomposition.

Global fields are stored as C-ordered arrays of shape (Nz, Ny, Nx), so the
flattened global index of point (i, j, k) is i + j*Nx + k*Nx*Ny. Local
fields use the same x-fastest order restricted to the local box.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple
from .crystal import Crystal


def block_range(n: int, p: int, i: int) -> Tuple[int, int]:
    """
    Balanced block distribution of n items over p parts.

    The first n % p parts receive one extra item.

    Returns:
        (start, count) for part i
    """
    if p < 1 or not 0 <= i < p:
        raise ValueError(f"Invalid part {i} of {p}")
    base, extra = divmod(n, p)
    start = i * base + min(i, extra)
    count = base + (1 if i < extra else 0)
    return start, count


@dataclass(frozen=True)
class DomainPartition:
    """Local box of a global grid, with half-open vertices per axis."""
    grid_shape: Tuple[int, int, int]
    vertices: Tuple[Tuple[int, int], Tuple[int, int], Tuple[int, int]]

    @property
    def local_shape(self) -> Tuple[int, int, int]:
        """(nx, ny, nz) of the local box."""
        return tuple(stop - start for start, stop in self.vertices)

    @property
    def n_local(self) -> int:
        return int(np.prod(self.local_shape))

    def global_indices(self) -> np.ndarray:
        """Flattened global index of every local point, x fastest."""
        Nx, Ny, _ = self.grid_shape
        (xs, xe), (ys, ye), (zs, ze) = self.vertices
        k, j, i = np.meshgrid(np.arange(zs, ze), np.arange(ys, ye), np.arange(xs, xe),
                              indexing='ij')
        return (i + j * Nx + k * Nx * Ny).ravel()

    def extract(self, global_field: np.ndarray) -> np.ndarray:
        """Cut the local part out of a flattened (or (Nz, Ny, Nx)) global field."""
        Nx, Ny, Nz = self.grid_shape
        (xs, xe), (ys, ye), (zs, ze) = self.vertices
        field3d = np.asarray(global_field).reshape(Nz, Ny, Nx)
        return field3d[zs:ze, ys:ye, xs:xe].ravel()

    def fractional_coordinates(self) -> np.ndarray:
        """(n_local, 3) fractional coordinates of the local points."""
        Nx, Ny, Nz = self.grid_shape
        (xs, xe), (ys, ye), (zs, ze) = self.vertices
        k, j, i = np.meshgrid(np.arange(zs, ze), np.arange(ys, ye), np.arange(xs, xe),
                              indexing='ij')
        return np.stack([i.ravel() / Nx, j.ravel() / Ny, k.ravel() / Nz], axis=1)


class RealSpaceGrid:
    """
    Uniform real-space grid spanning the unit cell.

    Integration uses the uniform volume element dV unless generalized
    per-point weights are supplied (non-Cartesian or curvilinear cells).
    """

    def __init__(self, crystal: Crystal, shape: Optional[Sequence[int]] = None,
                 mesh_spacing: Optional[float] = None,
                 weights: Optional[np.ndarray] = None):
        """
        Initialize the grid.

        Args:
            crystal: Crystal structure (Bohr)
            shape: Grid points (Nx, Ny, Nz) along the three lattice vectors
            mesh_spacing: Target spacing in Bohr, used when shape is not given
            weights: Optional global integration weights, Nx*Ny*Nz values
        """
        self.crystal = crystal
        if shape is None:
            if mesh_spacing is None:
                raise ValueError("Either shape or mesh_spacing must be given")
            lengths = np.linalg.norm(crystal.cell, axis=1)
            shape = np.maximum(np.ceil(lengths / mesh_spacing).astype(int), 1)
        self.shape = tuple(int(n) for n in shape)
        if len(self.shape) != 3 or min(self.shape) < 1:
            raise ValueError(f"Grid shape must be three positive integers, got {shape}")

        self.n_points = int(np.prod(self.shape))
        self.dV = crystal.volume / self.n_points

        if weights is not None:
            weights = np.asarray(weights, dtype=np.float64).ravel()
            if weights.size != self.n_points:
                raise ValueError(
                    f"Expected {self.n_points} integration weights, got {weights.size}")
        self.weights = weights

    @property
    def has_weights(self) -> bool:
        return self.weights is not None

    def partition(self, dims: Sequence[int] = (1, 1, 1),
                  coords: Sequence[int] = (0, 0, 0)) -> DomainPartition:
        """
        Local box of the process at `coords` in a `dims` process grid.

        Args:
            dims: Number of domains along x, y, z
            coords: Position of this domain in the process grid
        """
        vertices = []
        for n, p, c in zip(self.shape, dims, coords):
            if p > n:
                raise ValueError(f"Cannot split {n} grid points over {p} domains")
            start, count = block_range(n, p, c)
            vertices.append((start, start + count))
        return DomainPartition(self.shape, tuple(vertices))

    def local_weights(self, partition: DomainPartition) -> Optional[np.ndarray]:
        """Generalized weights on the local box, or None for a uniform dV."""
        if self.weights is None:
            return None
        return partition.extract(self.weights)

    def integrate(self, field: np.ndarray, partition: DomainPartition, comm) -> float:
        """
        Integral of a local field over the whole cell.

        The local weighted sum is reduced with comm.sum, so every member of
        the domain communicator must call this together.
        """
        weights = self.local_weights(partition)
        if weights is None:
            local = float(np.sum(field)) * self.dV
        else:
            local = float(np.dot(field, weights))
        return comm.sum(local)
