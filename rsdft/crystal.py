"""
Crystal structure and atomic configuration for outer geometry steps.
"""

import numpy as np
from dataclasses import dataclass
from typing import List, Optional, Tuple, Union


# Atomic numbers for common elements
ATOMIC_NUMBERS = {
    'H': 1, 'He': 2, 'Li': 3, 'Be': 4, 'B': 5, 'C': 6, 'N': 7, 'O': 8,
    'F': 9, 'Ne': 10, 'Na': 11, 'Mg': 12, 'Al': 13, 'Si': 14, 'P': 15,
    'S': 16, 'Cl': 17, 'Ar': 18, 'K': 19, 'Ca': 20, 'Sc': 21, 'Ti': 22,
    'V': 23, 'Cr': 24, 'Mn': 25, 'Fe': 26, 'Co': 27, 'Ni': 28, 'Cu': 29,
    'Zn': 30, 'Ga': 31, 'Ge': 32, 'As': 33, 'Se': 34, 'Br': 35, 'Kr': 36,
}

# Valence charges used when no pseudopotential is attached
VALENCE_CHARGES = {
    'H': 1, 'He': 2, 'Li': 1, 'Be': 2, 'B': 3, 'C': 4, 'N': 5, 'O': 6,
    'F': 7, 'Ne': 8, 'Na': 1, 'Mg': 2, 'Al': 3, 'Si': 4, 'P': 5,
    'S': 6, 'Cl': 7, 'Ar': 8, 'Fe': 8, 'Co': 9, 'Ni': 10, 'Cu': 11,
}


@dataclass
class Atom:
    """Represents an atom in the crystal structure."""
    symbol: str
    position: np.ndarray  # Fractional coordinates
    atomic_number: int = None
    z_valence: float = None
    magnetization: Union[float, np.ndarray] = 0.0  # scalar or (mx, my, mz)
    fixed: Tuple[bool, bool, bool] = (False, False, False)

    def __post_init__(self):
        self.position = np.array(self.position, dtype=np.float64)
        if self.atomic_number is None:
            self.atomic_number = ATOMIC_NUMBERS.get(self.symbol, 0)
        if self.z_valence is None:
            self.z_valence = float(VALENCE_CHARGES.get(self.symbol, self.atomic_number))
        if np.ndim(self.magnetization) > 0:
            self.magnetization = np.array(self.magnetization, dtype=np.float64)
        self.fixed = tuple(bool(f) for f in self.fixed)


class Crystal:
    """
    Represents a crystal structure with unit cell and atoms.

    Attributes:
        cell: 3x3 matrix with lattice vectors as rows (in Bohr)
        atoms: List of Atom objects
    """

    # Conversion factor: Angstrom to Bohr
    ANGSTROM_TO_BOHR = 1.8897259886

    def __init__(self, cell: np.ndarray, atoms: List[Atom], units: str = 'angstrom'):
        """
        Initialize crystal structure.

        Args:
            cell: 3x3 matrix with lattice vectors as rows
            atoms: List of Atom objects with fractional coordinates
            units: 'angstrom' or 'bohr' for cell vectors
        """
        self.cell = np.array(cell, dtype=np.float64)
        if units.lower() == 'angstrom':
            self.cell *= self.ANGSTROM_TO_BOHR
        self.atoms = atoms
        self.volume = np.abs(np.linalg.det(self.cell))
        self.reciprocal_cell = 2 * np.pi * np.linalg.inv(self.cell).T

    @property
    def num_atoms(self) -> int:
        return len(self.atoms)

    @property
    def num_valence_electrons(self) -> float:
        """Total valence charge of the neutral cell."""
        return float(sum(atom.z_valence for atom in self.atoms))

    def get_cartesian_positions(self) -> np.ndarray:
        """Get atomic positions in Cartesian coordinates (Bohr)."""
        return self.get_fractional_positions() @ self.cell

    def get_fractional_positions(self) -> np.ndarray:
        return np.array([atom.position for atom in self.atoms])

    def set_cartesian_positions(self, positions: np.ndarray):
        """Move the atoms to new Cartesian positions (Bohr)."""
        frac = np.asarray(positions, dtype=np.float64).reshape(-1, 3) @ np.linalg.inv(self.cell)
        for atom, p in zip(self.atoms, frac):
            atom.position = p

    def get_species(self) -> List[str]:
        return [atom.symbol for atom in self.atoms]

    def get_spglib_cell(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """
        Get cell in spglib format.

        Returns:
            (lattice, positions, numbers) tuple for spglib
        """
        lattice = self.cell / self.ANGSTROM_TO_BOHR  # spglib works in Angstrom
        positions = self.get_fractional_positions() % 1.0
        numbers = np.array([atom.atomic_number for atom in self.atoms])
        return (lattice, positions, numbers)

    def movable_mask(self) -> np.ndarray:
        """(n_atoms, 3) array with 1.0 for free directions and 0.0 for fixed ones."""
        return np.array([[0.0 if f else 1.0 for f in atom.fixed] for atom in self.atoms])

    @classmethod
    def cubic(cls, a: float, atoms: List[Atom], units: str = 'bohr'):
        """Create a simple cubic cell holding the given atoms."""
        return cls(a * np.eye(3), atoms, units)

    @classmethod
    def diamond(cls, a: float, symbol: str = 'Si', units: str = 'angstrom'):
        """
        Create a diamond structure crystal (like Si or C).

        Args:
            a: Lattice constant
            symbol: Atomic symbol
            units: 'angstrom' or 'bohr'
        """
        cell = a * np.array([
            [0.5, 0.5, 0.0],
            [0.0, 0.5, 0.5],
            [0.5, 0.0, 0.5]
        ])

        atoms = [
            Atom(symbol, [0.00, 0.00, 0.00]),
            Atom(symbol, [0.25, 0.25, 0.25]),
        ]

        return cls(cell, atoms, units)


class AtomicConfiguration:
    """
    Atomic positions of the current outer step and the quantities the
    geometry driver uses to move them.

    Positions are Cartesian (Bohr) and are never wrapped back into the
    cell, so consecutive steps can be differenced directly.
    """

    def __init__(self, crystal: Crystal, velocities: Optional[np.ndarray] = None,
                 timestep: float = 1.0, step_size: float = 1.0,
                 search_direction: Optional[np.ndarray] = None):
        """
        Args:
            crystal: Crystal whose atoms are being moved
            velocities: (n_atoms, 3) MD velocities (Bohr / a.u. time)
            timestep: MD timestep (a.u. time)
            step_size: Relaxation line-search step length
            search_direction: (n_atoms, 3) relaxation search direction
        """
        self.crystal = crystal
        self.positions = crystal.get_cartesian_positions()
        n = crystal.num_atoms
        self.velocities = (np.zeros((n, 3)) if velocities is None
                           else np.array(velocities, dtype=np.float64).reshape(n, 3))
        self.search_direction = (np.zeros((n, 3)) if search_direction is None
                                 else np.array(search_direction, dtype=np.float64).reshape(n, 3))
        self.timestep = timestep
        self.step_size = step_size
        self.movable = crystal.movable_mask()

    @property
    def n_atoms(self) -> int:
        return self.positions.shape[0]

    def md_displacement(self) -> np.ndarray:
        return self.timestep * self.velocities

    def relax_displacement(self) -> np.ndarray:
        return self.step_size * self.search_direction * self.movable

    def advance(self, mode: str) -> np.ndarray:
        """
        Move the atoms to the next outer-step positions.

        Args:
            mode: 'md' or 'relax'

        Returns:
            The applied displacement, shape (n_atoms, 3)
        """
        if mode == 'md':
            disp = self.md_displacement()
        elif mode == 'relax':
            disp = self.relax_displacement()
        else:
            raise ValueError(f"Cannot advance atoms in '{mode}' mode")
        self.positions = self.positions + disp
        self.crystal.set_cartesian_positions(self.positions)
        return disp
