"""
K-point sampling with symmetry reduction using spglib.

The orbital initializer only needs two things from the sampling: how many
irreducible k-points there are (to distribute them over k-point groups)
and whether the calculation is Gamma-point only (real orbitals).
"""

import numpy as np
import spglib
from typing import Tuple
from .crystal import Crystal


class KPoints:
    """
    Monkhorst-Pack k-point grid with optional symmetry reduction.
    """

    def __init__(self, crystal: Crystal, grid: Tuple[int, int, int] = (1, 1, 1),
                 shift: Tuple[float, float, float] = (0.0, 0.0, 0.0),
                 use_symmetry: bool = True, symprec: float = 1e-5):
        """
        Initialize k-point grid.

        Args:
            crystal: Crystal structure
            grid: Monkhorst-Pack grid dimensions (nk1, nk2, nk3)
            shift: Grid shift in fractional reciprocal coordinates
            use_symmetry: Whether to use symmetry to reduce k-points
            symprec: Symmetry tolerance passed to spglib
        """
        if any(int(n) < 1 for n in grid):
            raise ValueError(f"K-point grid dimensions must be positive, got {grid}")

        self.crystal = crystal
        self.grid = tuple(int(n) for n in grid)
        self.shift = tuple(float(s) for s in shift)
        self.use_symmetry = use_symmetry
        self.symprec = symprec

        full = self._monkhorst_pack()
        if use_symmetry:
            self.kpoints_frac, self.weights = self._reduce(full)
        else:
            self.kpoints_frac = full
            self.weights = np.full(len(full), 1.0 / len(full))
        self.nkpts = len(self.weights)
        self.kpoints_cart = self.kpoints_frac @ self.crystal.reciprocal_cell

    @classmethod
    def gamma(cls, crystal: Crystal):
        """Single zone-center sampling point."""
        return cls(crystal, (1, 1, 1), use_symmetry=False)

    def _monkhorst_pack(self) -> np.ndarray:
        axes = [(2 * np.arange(n) - n + 1 + 2 * s) / (2 * n)
                for n, s in zip(self.grid, self.shift)]
        k1, k2, k3 = np.meshgrid(*axes, indexing='ij')
        return np.stack([k1.ravel(), k2.ravel(), k3.ravel()], axis=1)

    def _reduce(self, kpoints: np.ndarray) -> Tuple[np.ndarray, np.ndarray]:
        """
        Fold the full grid into irreducible stars.

        Rotations come from spglib and act on fractional reciprocal
        coordinates through the transpose of the real-space rotation.
        Time reversal (k -> -k) is always included.

        Returns:
            (irreducible_kpoints, weights)
        """
        symmetry = spglib.get_symmetry(self.crystal.get_spglib_cell(), symprec=self.symprec)
        if symmetry is None:
            rotations = np.eye(3, dtype=int)[None]
        else:
            rotations = np.asarray(symmetry['rotations'])
        rotations = np.concatenate([rotations, -rotations])

        nk = len(kpoints)
        scale = 2 * np.array(self.grid)

        def key(k):
            k = k - np.round(k)
            return tuple(np.round(k * scale).astype(int) % scale)

        index = {key(k): ik for ik, k in enumerate(kpoints)}
        assigned = np.zeros(nk, dtype=bool)
        ir_kpoints = []
        ir_weights = []

        for ik in range(nk):
            if assigned[ik]:
                continue
            star = set()
            for rot in rotations:
                jk = index.get(key(rot.T @ kpoints[ik]))
                if jk is not None and not assigned[jk]:
                    star.add(jk)
            star.add(ik)
            assigned[list(star)] = True
            ir_kpoints.append(kpoints[ik])
            ir_weights.append(len(star) / nk)

        return np.array(ir_kpoints), np.array(ir_weights)

    @property
    def is_gamma_point(self) -> bool:
        """True when the only sampling point is the zone center."""
        return self.nkpts == 1 and np.allclose(self.kpoints_frac[0], 0.0, atol=1e-12)

    def __len__(self):
        return self.nkpts

    def __iter__(self):
        for i in range(self.nkpts):
            yield self.kpoints_cart[i], self.weights[i]
