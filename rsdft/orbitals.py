"""
Initial Kohn-Sham orbitals for the eigensolver.

Orbitals are stored per process as an array of shape
(n_kpts_local, n_bands_local, n_spinor_local, n_local): real for
Gamma-point-only runs, complex otherwise. They are created with random
values on the first outer step and handed on unchanged afterwards.
"""

import time
import numpy as np
from dataclasses import dataclass
from typing import Optional

from .parallel import parprint
from .randomfield import seeded_rand_vec, seeded_rand_vec_complex, set_rand_mat


class OrbitalAllocationError(MemoryError):
    """Orbital storage could not be allocated."""


@dataclass
class OrbitalBlock:
    """Local block of orbital coefficients and the eigensolver workspace."""
    coefficients: np.ndarray
    work: np.ndarray
    kpt_start: int
    band_start: int
    spinor_start: int

    @property
    def is_real(self) -> bool:
        return not np.iscomplexobj(self.coefficients)

    @property
    def n_kpts(self) -> int:
        return self.coefficients.shape[0]

    @property
    def n_bands(self) -> int:
        return self.coefficients.shape[1]

    def kpoint_matrix(self, k: int) -> np.ndarray:
        """(n_spinor_local * n_local, n_bands_local) view of k-point k."""
        nb = self.coefficients.shape[1]
        return self.coefficients[k].reshape(nb, -1).T


def allocate_orbitals(shape, dtype) -> np.ndarray:
    try:
        return np.empty(shape, dtype=dtype)
    except MemoryError as exc:
        raise OrbitalAllocationError(
            f"Could not allocate orbital storage of shape {shape} ({np.dtype(dtype).name})") from exc


class OrbitalInitializer:
    """
    Random starting orbitals on the first outer step.

    Reads: settings, layout, grid, kpoints, counters, n_states.
    Mutates: context.orbitals.
    """

    def __init__(self, context):
        self.context = context

    def initialize(self, verbose: bool = False) -> Optional[OrbitalBlock]:
        """
        Allocate and fill the local orbital block, or pass the existing one on.

        Returns:
            The orbital block, or None outside the orbital domain
        """
        ctx = self.context
        domain = ctx.layout.orbital_domain
        if domain is None:
            return None

        if ctx.counters.elecgs_count > 0 and ctx.orbitals is not None:
            # TODO: extrapolate orbitals from previous outer steps
            return ctx.orbitals

        if verbose:
            parprint("Initializing Kohn-Sham orbitals ...", comm=domain.comm)
        t1 = time.perf_counter()

        settings = ctx.settings
        layout = ctx.layout
        if settings.spin == 'collinear':
            n_spinor_local, spinor_start = layout.n_spin_local, layout.spin_start
        else:
            n_spinor_local, spinor_start = settings.n_spinor, 0

        gamma = ctx.is_gamma_point
        dtype = np.float64 if gamma else np.complex128
        n_kpts_local = 1 if gamma else layout.n_kpts_local
        kpt_start = 0 if gamma else layout.kpt_start
        shape = (n_kpts_local, layout.n_bands_local, n_spinor_local, domain.n_local)

        block = OrbitalBlock(coefficients=allocate_orbitals(shape, dtype),
                             work=allocate_orbitals(shape[1:], dtype),
                             kpt_start=kpt_start, band_start=layout.band_start,
                             spinor_start=spinor_start)

        low, high = settings.orbital_bounds
        if settings.fix_rand_seed:
            fill = seeded_rand_vec if gamma else seeded_rand_vec_complex
            Nd = ctx.grid.n_points
            Ndsp = Nd * settings.n_spinor
            size_kg = Ndsp * ctx.n_states
            for k in range(n_kpts_local):
                kg = kpt_start + k
                for n in range(layout.n_bands_local):
                    ng = layout.band_start + n
                    for s in range(n_spinor_local):
                        shift = kg * size_kg + ng * Ndsp + (spinor_start + s) * Nd
                        fill(domain.partition, low, high, shift, out=block.coefficients[k, n, s])
        else:
            set_rand_mat(block.coefficients, low, high, layout.spin_comm)

        ctx.orbitals = block
        if verbose:
            parprint(f"Finished setting random orbitals. Time taken: "
                     f"{(time.perf_counter() - t1) * 1e3:.3f} ms", comm=domain.comm)
        return block
