"""
Simulation context shared by the initial-guess components.

The context aggregates everything the density initializer, the charge
extrapolator and the orbital initializer read or mutate, so each of them
can be driven by a synthetic context in tests.
"""

import numpy as np
from dataclasses import dataclass
from typing import Optional, Sequence, Tuple

from .crystal import Crystal, AtomicConfiguration
from .extrapolation import ExtrapolationHistory, SINGULAR_POLICIES
from .grid import RealSpaceGrid
from .kpoints import KPoints
from .parallel import ParallelLayout, serial_comm


MODES = ('static', 'relax', 'md')
SPIN_SETTINGS = ('none', 'collinear', 'noncollinear')


@dataclass
class CalculationSettings:
    """
    Parameters controlling the initial guesses.

    Attributes:
        mode: 'static', 'relax' or 'md'
        spin: 'none', 'collinear' or 'noncollinear'
        xc_rhotol: Floor applied to negative extrapolated densities
        fix_rand_seed: Use partition-independent seeded random orbitals
        orbital_bounds: Interval of the random orbital values
        singular_policy: 'minimum_norm' or 'skip' for a rank-deficient FtF
        extrapolation_depth: Outer steps required before extrapolating (>= 3)
    """
    mode: str = 'static'
    spin: str = 'none'
    xc_rhotol: float = 1e-14
    fix_rand_seed: bool = False
    orbital_bounds: Tuple[float, float] = (-0.5, 0.5)
    singular_policy: str = 'minimum_norm'
    extrapolation_depth: int = 3

    def __post_init__(self):
        if self.mode not in MODES:
            raise ValueError(f"Unknown calculation mode '{self.mode}', expected one of {MODES}")
        if self.spin not in SPIN_SETTINGS:
            raise ValueError(f"Unknown spin setting '{self.spin}', expected one of {SPIN_SETTINGS}")
        if self.singular_policy not in SINGULAR_POLICIES:
            raise ValueError(f"Unknown singular policy '{self.singular_policy}', "
                             f"expected one of {SINGULAR_POLICIES}")
        if not self.xc_rhotol > 0.0:
            raise ValueError(f"xc_rhotol must be positive, got {self.xc_rhotol}")
        if self.extrapolation_depth < ExtrapolationHistory.DEPTH:
            raise ValueError(f"extrapolation_depth must be at least {ExtrapolationHistory.DEPTH}")
        low, high = self.orbital_bounds
        if not low < high:
            raise ValueError(f"Invalid orbital bounds {self.orbital_bounds}")
        self.orbital_bounds = (float(low), float(high))

    @property
    def is_trajectory(self) -> bool:
        return self.mode in ('relax', 'md')

    @property
    def is_spin_polarized(self) -> bool:
        return self.spin != 'none'

    @property
    def n_spinor(self) -> int:
        """Spin components per orbital across all spin groups."""
        return 1 if self.spin == 'none' else 2

    @property
    def n_spin_groups(self) -> int:
        """Spin channels that can be distributed over spin communicators."""
        return 2 if self.spin == 'collinear' else 1

    @property
    def n_density_channels(self) -> int:
        """Rows of the density array: [total] or [total, up, down]."""
        return 3 if self.is_spin_polarized else 1

    @property
    def n_mag_channels(self) -> int:
        """Rows of the magnetization array: [], [m] or [|m|, mx, my, mz]."""
        return {'none': 0, 'collinear': 1, 'noncollinear': 4}[self.spin]


@dataclass
class OuterStepCounters:
    """
    Outer-step bookkeeping.

    Attributes:
        elecgs_count: Electronic ground states completed so far
        stress_count: Of those, stress-only sub-steps (excluded from
            extrapolation eligibility)
    """
    elecgs_count: int = 0
    stress_count: int = 0

    @property
    def effective_count(self) -> int:
        return self.elecgs_count - self.stress_count

    def ground_state_done(self, stress_only: bool = False):
        self.elecgs_count += 1
        if stress_only:
            self.stress_count += 1


class DensityState:
    """
    Density fields on the local box of the density domain.

    Attributes:
        electron_dens: (n_density_channels, n_local); rows total[, up, down]
        reference: Atomic superposition density (n_local,)
        mag: (n_mag_channels, n_local); collinear [m], non-collinear
            [|m|, mx, my, mz]
        mag_reference: Atomic reference magnetization, (n_local,) collinear
            or (3, n_local) non-collinear; None when unpolarized
        pos_charge: Number of electrons the density must integrate to
    """

    def __init__(self, n_local: int, settings: CalculationSettings, pos_charge: float):
        self.n_local = n_local
        self.electron_dens = np.zeros((settings.n_density_channels, n_local))
        self.reference = np.zeros(n_local)
        self.mag = np.zeros((settings.n_mag_channels, n_local))
        if settings.spin == 'collinear':
            self.mag_reference = np.zeros(n_local)
        elif settings.spin == 'noncollinear':
            self.mag_reference = np.zeros((3, n_local))
        else:
            self.mag_reference = None
        self.pos_charge = float(pos_charge)

    @property
    def total(self) -> np.ndarray:
        return self.electron_dens[0]

    @property
    def up(self) -> Optional[np.ndarray]:
        return self.electron_dens[1] if self.electron_dens.shape[0] > 1 else None

    @property
    def down(self) -> Optional[np.ndarray]:
        return self.electron_dens[2] if self.electron_dens.shape[0] > 1 else None


class SimulationContext:
    """
    Explicit state passed to every initial-guess component.

    Attributes:
        settings: CalculationSettings
        crystal: Crystal
        grid: RealSpaceGrid
        kpoints: KPoints
        layout: ParallelLayout
        atoms: AtomicConfiguration
        n_states: Number of Kohn-Sham states
        counters: OuterStepCounters
        density: DensityState (zero-length fields on idle processes)
        history: ExtrapolationHistory
        orbitals: OrbitalBlock once allocated, else None
    """

    def __init__(self, settings: CalculationSettings, crystal: Crystal, grid: RealSpaceGrid,
                 kpoints: KPoints, layout: ParallelLayout, atoms: AtomicConfiguration,
                 n_states: int, counters: Optional[OuterStepCounters] = None):
        self.settings = settings
        self.crystal = crystal
        self.grid = grid
        self.kpoints = kpoints
        self.layout = layout
        self.atoms = atoms
        self.n_states = n_states
        self.counters = counters if counters is not None else OuterStepCounters()

        domain = layout.density_domain
        n_local = domain.n_local if domain is not None else 0
        self.density = DensityState(n_local, settings, crystal.num_valence_electrons)
        self.history = ExtrapolationHistory(n_local, crystal.num_atoms)
        self.orbitals = None

    @classmethod
    def create(cls, crystal: Crystal, grid: RealSpaceGrid,
               settings: Optional[CalculationSettings] = None,
               kpoints: Optional[KPoints] = None, n_states: Optional[int] = None,
               atoms: Optional[AtomicConfiguration] = None, comm=None,
               npspin: int = 1, npkpt: int = 1, npband: int = 1,
               domain_dims: Sequence[int] = (1, 1, 1)):
        """
        Build a context and its parallel layout.

        Args:
            crystal: Crystal structure
            grid: Real-space grid
            settings: Calculation settings (defaults to a static, unpolarized run)
            kpoints: K-point sampling (defaults to Gamma only)
            n_states: Number of states (default: n_electrons/2 + 4)
            atoms: Atomic configuration (default: static atoms of `crystal`)
            comm: Communicator to split (default: serial)
            npspin, npkpt, npband, domain_dims: Process grid
        """
        settings = settings if settings is not None else CalculationSettings()
        kpoints = kpoints if kpoints is not None else KPoints.gamma(crystal)
        if n_states is None:
            n_states = int(crystal.num_valence_electrons / 2) + 4
        if atoms is None:
            atoms = AtomicConfiguration(crystal)
        if settings.spin == 'noncollinear' and npspin != 1:
            raise ValueError("Non-collinear spinors cannot be split over spin groups")

        layout = ParallelLayout(comm if comm is not None else serial_comm, grid,
                                n_spin=settings.n_spin_groups, n_kpts=kpoints.nkpts,
                                n_states=n_states, npspin=npspin, npkpt=npkpt,
                                npband=npband, domain_dims=domain_dims)
        return cls(settings, crystal, grid, kpoints, layout, atoms, n_states)

    @property
    def is_gamma_point(self) -> bool:
        return self.kpoints.is_gamma_point
