"""
rsdft

Initial electron densities and orbitals for real-space DFT, with charge
extrapolation across relaxation and molecular-dynamics steps.
"""

__version__ = "0.1.0"

from .crystal import Crystal, Atom, AtomicConfiguration
from .grid import RealSpaceGrid, DomainPartition
from .kpoints import KPoints
from .parallel import ParallelLayout, SerialCommunicator, serial_comm
from .context import CalculationSettings, OuterStepCounters, SimulationContext
from .density import DensityInitializer, ChargeNormalizationError
from .extrapolation import ChargeExtrapolator
from .orbitals import OrbitalInitializer, OrbitalBlock, OrbitalAllocationError
from .driver import OuterStepDriver, OuterStepResult

__all__ = [
    "Crystal", "Atom", "AtomicConfiguration", "RealSpaceGrid", "DomainPartition",
    "KPoints", "ParallelLayout", "SerialCommunicator", "serial_comm",
    "CalculationSettings", "OuterStepCounters", "SimulationContext",
    "DensityInitializer", "ChargeNormalizationError", "ChargeExtrapolator",
    "OrbitalInitializer", "OrbitalBlock", "OrbitalAllocationError",
    "OuterStepDriver", "OuterStepResult",
]
