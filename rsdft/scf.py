"""
Model self-consistent field collaborator.

The real SCF loop lives outside this package. ModelSCF stands in for it in
examples and tests: its "converged" density is the atomic superposition
plus a bond charge at the midpoint of every close atom pair, so it moves
smoothly with the geometry the way a real ground-state density does. The
number of iterations is modelled as linear mixing contracting the initial
error down to the tolerance.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional

from .atomic import gaussian_on_partition, superposition_density
from .spin import diagonal_density


@dataclass
class SCFResult:
    """Results from one model SCF run."""
    converged: bool
    n_iterations: int
    initial_error: float  # integral of |n_guess - n_scf|
    total_charge: float


class ModelSCF:
    """
    Synthetic SCF whose fixed point depends only on the atomic positions.
    """

    def __init__(self, context, bond_cutoff: float = 5.0, bond_charge: float = 0.25,
                 width: float = 1.0, bond_width: float = 0.8,
                 mixing_alpha: float = 0.3, tol: float = 1e-6, max_iter: int = 100):
        """
        Args:
            context: SimulationContext
            bond_cutoff: Pair distance (Bohr) below which a bond charge is added
            bond_charge: Electrons moved into each bond
            width: Gaussian width of the atomic charges (Bohr)
            bond_width: Gaussian width of the bond charges (Bohr)
            mixing_alpha: Linear mixing parameter of the modelled iteration
            tol: Convergence tolerance on the density error
            max_iter: Maximum modelled iterations
        """
        self.context = context
        self.bond_cutoff = bond_cutoff
        self.bond_charge = bond_charge
        self.width = width
        self.bond_width = bond_width
        self.mixing_alpha = mixing_alpha
        self.tol = tol
        self.max_iter = max_iter

    def bond_midpoints(self) -> np.ndarray:
        """Cartesian midpoints of atom pairs closer than bond_cutoff."""
        crystal = self.context.crystal
        positions = self.context.atoms.positions
        inv_cell = np.linalg.inv(crystal.cell)
        midpoints = []
        for i in range(len(positions)):
            for j in range(i + 1, len(positions)):
                d = (positions[j] - positions[i]) @ inv_cell
                d = (d - np.round(d)) @ crystal.cell
                if np.linalg.norm(d) < self.bond_cutoff:
                    midpoints.append(positions[i] + 0.5 * d)
        return np.array(midpoints).reshape(-1, 3)

    def converged_density(self) -> np.ndarray:
        """Local model ground-state density at the current positions (collective)."""
        ctx = self.context
        domain = ctx.layout.density_domain
        rho = superposition_density(ctx.crystal, ctx.grid, domain,
                                    positions=ctx.atoms.positions, width=self.width)
        for center in self.bond_midpoints():
            rho += self.bond_charge * gaussian_on_partition(
                ctx.crystal, domain.partition, center, self.bond_width)
        total = ctx.grid.integrate(rho, domain.partition, domain.comm)
        rho *= ctx.density.pos_charge / total
        return rho

    def run(self) -> Optional[SCFResult]:
        """
        Replace the guess density with the model ground state.

        Returns:
            SCFResult, or None outside the density domain
        """
        ctx = self.context
        domain = ctx.layout.density_domain
        if domain is None:
            return None

        dens = ctx.density
        target = self.converged_density()
        error = ctx.grid.integrate(np.abs(dens.total - target), domain.partition, domain.comm)

        if error <= self.tol:
            n_iter = 1
        else:
            rate = np.log(1.0 - self.mixing_alpha)
            n_iter = int(np.ceil(np.log(self.tol / error) / rate)) + 1
        converged = n_iter <= self.max_iter

        dens.total[:] = target
        if ctx.settings.is_spin_polarized:
            diagonal_density(dens.mag[0], dens.total, dens.up, dens.down)

        return SCFResult(
            converged=converged,
            n_iterations=min(n_iter, self.max_iter),
            initial_error=float(error),
            total_charge=ctx.grid.integrate(dens.total, domain.partition, domain.comm),
        )
