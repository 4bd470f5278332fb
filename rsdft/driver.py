"""
Outer geometry-step driver.

Per outer step:

1. rebuild the atomic reference density for the current positions
2. initialize orbitals and density
3. run the SCF collaborator
4. unless this is the final step, move the atoms and update the charge
   extrapolation history for the next step
"""

from dataclasses import dataclass
from typing import Callable, List, Optional, Tuple

from .atomic import superposition_density, superposition_magnetization
from .density import DensityInitializer
from .extrapolation import ChargeExtrapolator
from .orbitals import OrbitalInitializer
from .parallel import parprint
from .scf import ModelSCF


@dataclass
class OuterStepResult:
    """Summary of one outer step (None entries on idle processes)."""
    step: int
    extrapolated: bool
    scale: Optional[float]
    n_scf_iterations: Optional[int]
    initial_error: Optional[float]
    total_charge: Optional[float]
    coefficients: Optional[Tuple[float, float]] = None


class OuterStepDriver:
    """
    Runs a static calculation, a relaxation or an MD trajectory.
    """

    def __init__(self, context, scf=None, reference_width: float = 1.0,
                 geometry_update: Optional[Callable] = None, checkpoint=None):
        """
        Args:
            context: SimulationContext
            scf: SCF collaborator with a ``run()`` method returning an object
                with ``n_iterations``, ``initial_error`` and ``total_charge``
                (default: ModelSCF)
            reference_width: Gaussian width of the atomic reference charges
            geometry_update: Optional callback ``f(context, step)`` that sets
                velocities or the search direction before the atoms move
            checkpoint: Optional restart.HDF5Output written after each step
        """
        self.context = context
        self.scf = scf if scf is not None else ModelSCF(context, width=reference_width)
        self.reference_width = reference_width
        self.geometry_update = geometry_update
        self.checkpoint = checkpoint

        self.density_initializer = DensityInitializer(context)
        self.orbital_initializer = OrbitalInitializer(context)
        self.extrapolator = ChargeExtrapolator(context)

    def refresh_reference(self):
        """Atomic superposition density (and magnetization) at the current positions."""
        ctx = self.context
        domain = ctx.layout.density_domain
        if domain is None:
            return
        positions = ctx.atoms.positions
        ctx.density.reference[:] = superposition_density(
            ctx.crystal, ctx.grid, domain, positions=positions, width=self.reference_width)
        if ctx.settings.is_spin_polarized:
            ctx.density.mag_reference[...] = superposition_magnetization(
                ctx.crystal, domain, ctx.settings.spin, positions=positions,
                width=self.reference_width)

    def step(self, final: bool = False, verbose: bool = False) -> OuterStepResult:
        """Run one outer step."""
        ctx = self.context
        index = ctx.counters.effective_count

        self.refresh_reference()
        self.orbital_initializer.initialize(verbose=verbose)
        scale = self.density_initializer.initialize(verbose=verbose)
        scf_result = self.scf.run()
        ctx.counters.ground_state_done()

        coefficients = None
        if not final and ctx.settings.is_trajectory:
            if self.geometry_update is not None:
                self.geometry_update(ctx, index)
            ctx.atoms.advance(ctx.settings.mode)
            coefficients = self.extrapolator.update(verbose=verbose)

        if self.checkpoint is not None:
            self.checkpoint.write_snapshot(ctx)

        return OuterStepResult(
            step=index,
            extrapolated=self.density_initializer.used_extrapolation,
            scale=scale,
            n_scf_iterations=None if scf_result is None else scf_result.n_iterations,
            initial_error=None if scf_result is None else scf_result.initial_error,
            total_charge=None if scf_result is None else scf_result.total_charge,
            coefficients=coefficients,
        )

    def run(self, n_steps: int = 1, verbose: bool = True) -> List[OuterStepResult]:
        """
        Run n_steps outer steps (a static calculation always runs one).

        Returns:
            One OuterStepResult per step
        """
        if not self.context.settings.is_trajectory:
            n_steps = 1
        if n_steps < 1:
            raise ValueError(f"Number of outer steps must be positive, got {n_steps}")

        results = []
        for i in range(n_steps):
            results.append(self.step(final=(i == n_steps - 1), verbose=verbose))

        if verbose:
            self.print_summary(results)
        return results

    def print_summary(self, results: List[OuterStepResult]):
        comm = self.context.layout.world
        parprint("\n" + "=" * 72, comm=comm)
        parprint("Outer step summary", comm=comm)
        parprint("=" * 72, comm=comm)
        parprint(f"  {'step':>4}  {'extrap':>6}  {'scale':>12}  {'|dn| guess':>12}  "
                 f"{'SCF iter':>8}  {'charge':>12}", comm=comm)
        for r in results:
            if r.initial_error is None:
                continue
            parprint(f"  {r.step:4d}  {str(r.extrapolated):>6}  {r.scale:12.8f}  "
                     f"{r.initial_error:12.4e}  {r.n_scf_iterations:8d}  "
                     f"{r.total_charge:12.8f}", comm=comm)
        parprint("=" * 72, comm=comm)
