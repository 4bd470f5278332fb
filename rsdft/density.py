"""
Initial electron density for each outer step.
"""

import numpy as np
from typing import Optional

from .grid import RealSpaceGrid
from .parallel import DomainHandle, parprint
from .spin import diagonal_density, magnetization_norm


class ChargeNormalizationError(ValueError):
    """The density integral is not positive, so it cannot be rescaled."""


def extrapolated_density(reference: np.ndarray, delta: np.ndarray, floor: float,
                         out: Optional[np.ndarray] = None) -> np.ndarray:
    """
    reference + delta, with every value below `floor` raised to `floor`.

    Exchange-correlation evaluation needs a strictly positive density.
    """
    if out is None:
        out = np.empty_like(reference)
    np.add(reference, delta, out=out)
    np.maximum(out, floor, out=out)
    return out


def renormalize_density(rho: np.ndarray, target: float, grid: RealSpaceGrid,
                        domain: DomainHandle) -> float:
    """
    Scale `rho` in place so its global integral equals `target`.

    Collective over domain.comm.

    Returns:
        The applied scale factor

    Raises:
        ChargeNormalizationError: if the integral is not positive and finite
    """
    integral = grid.integrate(rho, domain.partition, domain.comm)
    if not np.isfinite(integral) or integral <= 0.0:
        raise ChargeNormalizationError(
            f"Electron density integrates to {integral}, cannot scale to {target} electrons")
    scale = target / integral
    rho *= scale
    return scale


class DensityInitializer:
    """
    Starting density of an outer step.

    First step: copy the atomic reference density (and magnetization).
    Later steps: add the extrapolated correction once enough history exists,
    then rescale to the exact electron count and rebuild the spin channels.

    Reads: density.reference, density.mag_reference, history.delta_density,
    counters, settings, atoms.
    Mutates: density.electron_dens, density.mag, history.positions[0]
    (first step of a trajectory only).
    """

    def __init__(self, context):
        self.context = context
        self.used_extrapolation = False

    def initialize(self, verbose: bool = False) -> Optional[float]:
        """
        Fill the density fields for the current outer step.

        Returns:
            The normalization scale factor (1.0 on the first step), or None
            on processes outside the density domain
        """
        ctx = self.context
        domain = ctx.layout.density_domain
        if domain is None:
            return None

        if verbose:
            parprint("Initializing electron density ...", comm=domain.comm)

        settings = ctx.settings
        dens = ctx.density
        step = ctx.counters.effective_count
        self.used_extrapolation = False

        if step == 0:
            dens.total[:] = dens.reference
            if settings.spin == 'collinear':
                dens.mag[0] = dens.mag_reference
                diagonal_density(dens.mag[0], dens.total, dens.up, dens.down)
            elif settings.spin == 'noncollinear':
                dens.mag[1:4] = dens.mag_reference
                magnetization_norm(dens.mag[1], dens.mag[2], dens.mag[3], out=dens.mag[0])
                diagonal_density(dens.mag[0], dens.total, dens.up, dens.down)

            # zero-order position reference for later extrapolation
            if settings.is_trajectory:
                ctx.history.positions[0] = ctx.atoms.positions
            return 1.0

        if step >= settings.extrapolation_depth and settings.is_trajectory:
            if verbose:
                parprint("Using charge extrapolation for density guess", comm=domain.comm)
            extrapolated_density(dens.reference, ctx.history.delta_density,
                                 settings.xc_rhotol, out=dens.total)
            self.used_extrapolation = True

        scale = renormalize_density(dens.total, dens.pos_charge, ctx.grid, domain)

        if settings.is_spin_polarized:
            diagonal_density(dens.mag[0], dens.total, dens.up, dens.down)
        return scale
