"""
Charge-density extrapolation across outer geometry steps.

The density difference dn = n_scf - n_atomic of the next step is predicted
from the last three differences (Alfe, Comput. Phys. Commun. 118, 31
(1999)):

    dn_next = (1 + alpha) dn_0 + (beta - alpha) dn_1 - beta dn_2

where alpha and beta fit the upcoming displacement R_next - R_0 by the two
previous displacements R_0 - R_1 and R_1 - R_2 in the least-squares sense.
"""

import numpy as np
from collections import deque
from scipy.linalg import lstsq
from typing import Optional, Sequence, Tuple

from .parallel import parprint


SINGULAR_POLICIES = ('minimum_norm', 'skip')


class HistoryRing:
    """
    Fixed-depth history of equally shaped snapshots.

    Index 0 is the most recent snapshot. ``push`` drops the oldest.
    """

    def __init__(self, depth: int, shape: Sequence[int]):
        self.depth = depth
        self.shape = tuple(shape)
        self._slots = deque((np.zeros(self.shape) for _ in range(depth)), maxlen=depth)

    def _checked(self, snapshot) -> np.ndarray:
        snapshot = np.array(snapshot, dtype=np.float64)
        if snapshot.shape != self.shape:
            raise ValueError(f"Snapshot shape {snapshot.shape} does not match history {self.shape}")
        return snapshot

    def push(self, snapshot: np.ndarray):
        """Store a copy of `snapshot` as the most recent entry."""
        self._slots.appendleft(self._checked(snapshot))

    def __getitem__(self, i: int) -> np.ndarray:
        return self._slots[i]

    def __setitem__(self, i: int, snapshot: np.ndarray):
        self._slots[i] = self._checked(snapshot)

    def __len__(self):
        return self.depth

    def as_array(self) -> np.ndarray:
        """(depth, *shape) copy, most recent first."""
        return np.stack(list(self._slots))

    def load(self, stacked: np.ndarray):
        """Replace all slots from an array produced by :meth:`as_array`."""
        stacked = np.asarray(stacked, dtype=np.float64)
        if stacked.shape != (self.depth,) + self.shape:
            raise ValueError(f"Cannot load history of shape {stacked.shape}")
        self._slots = deque((s.copy() for s in stacked), maxlen=self.depth)


class ExtrapolationHistory:
    """
    Outer-step history owned by the density domain.

    Attributes:
        density_diff: last three n - n_atomic differences
        positions: last three atomic position snapshots, (n_atoms, 3) each
        positions_next: estimate of the next step's positions
        delta_density: extrapolated density difference for the next step
        coefficients: (alpha, beta) of the last extrapolation, or None
        matrix_rank: numerical rank of the last FtF matrix, or None
    """

    DEPTH = 3

    def __init__(self, n_local: int, n_atoms: int):
        self.density_diff = HistoryRing(self.DEPTH, (n_local,))
        self.positions = HistoryRing(self.DEPTH, (n_atoms, 3))
        self.positions_next = np.zeros((n_atoms, 3))
        self.delta_density = np.zeros(n_local)
        self.coefficients: Optional[Tuple[float, float]] = None
        self.matrix_rank: Optional[int] = None


def solve_extrapolation_system(FtF: np.ndarray, Ftf: np.ndarray,
                               policy: str = 'minimum_norm') -> Tuple[float, float, int]:
    """
    Solve FtF [alpha, beta] = Ftf for a possibly rank-deficient FtF.

    The SVD-based LAPACK driver returns the minimum-norm least-squares
    solution. With policy 'skip', a rank-deficient system yields (0, 0),
    i.e. the latest density difference is reused unchanged.

    Returns:
        (alpha, beta, rank)
    """
    if policy not in SINGULAR_POLICIES:
        raise ValueError(f"Unknown singular policy '{policy}', expected one of {SINGULAR_POLICIES}")
    coeffs, _, rank, _ = lstsq(FtF, Ftf, lapack_driver='gelsd')
    if rank < 2 and policy == 'skip':
        return 0.0, 0.0, int(rank)
    return float(coeffs[0]), float(coeffs[1]), int(rank)


def extrapolation_coefficients(positions: HistoryRing, positions_next: np.ndarray,
                               policy: str = 'minimum_norm') -> Tuple[float, float, int]:
    """
    Build and solve the 2x2 normal equations from the position history.

    Returns:
        (alpha, beta, rank)
    """
    p0, p1, p2 = (positions[i].ravel() for i in range(3))
    f1 = p0 - p1
    f2 = p1 - p2
    target = np.ravel(positions_next) - p0

    FtF = np.array([[f1 @ f1, f1 @ f2],
                    [f1 @ f2, f2 @ f2]])
    Ftf = np.array([f1 @ target, f2 @ target])
    return solve_extrapolation_system(FtF, Ftf, policy)


def extrapolate_difference(d0: np.ndarray, d1: np.ndarray, d2: np.ndarray,
                           alpha: float, beta: float,
                           out: Optional[np.ndarray] = None) -> np.ndarray:
    """(1 + alpha) d0 + (beta - alpha) d1 - beta d2"""
    if out is None:
        out = np.empty_like(d0)
    out[...] = (1 + alpha) * d0 + (beta - alpha) * d1 - beta * d2
    return out


class ChargeExtrapolator:
    """
    Maintains the outer-step history and predicts the next density correction.

    Reads: density.total, density.reference, atoms, counters, settings.
    Mutates: context.history.
    """

    def __init__(self, context):
        self.context = context

    def update(self, verbose: bool = False) -> Optional[Tuple[float, float]]:
        """
        Record the finished outer step and extrapolate for the next one.

        Must run after the SCF of the current step has converged and after
        the geometry driver has moved the atoms to the next positions.

        Returns:
            (alpha, beta) when an extrapolation was made, else None
        """
        ctx = self.context
        domain = ctx.layout.density_domain
        if domain is None:
            return None

        settings = ctx.settings
        history = ctx.history
        atoms = ctx.atoms
        step = ctx.counters.effective_count

        history.density_diff.push(ctx.density.total - ctx.density.reference)

        if settings.mode in ('md', 'relax'):
            if step == 1:
                history.positions_next = atoms.positions.copy()
            elif settings.mode == 'md':
                history.positions_next = history.positions_next + atoms.md_displacement()
            else:
                history.positions_next = history.positions_next + atoms.relax_displacement()

        result = None
        if step >= settings.extrapolation_depth:
            alpha, beta, rank = extrapolation_coefficients(
                history.positions, history.positions_next, settings.singular_policy)
            extrapolate_difference(history.density_diff[0], history.density_diff[1],
                                   history.density_diff[2], alpha, beta,
                                   out=history.delta_density)
            history.coefficients = (alpha, beta)
            history.matrix_rank = rank
            result = history.coefficients
            if verbose:
                parprint(f"Charge extrapolation: alpha = {alpha: .6f}, beta = {beta: .6f}, "
                         f"rank(FtF) = {rank}", comm=domain.comm)

        history.positions.push(history.positions_next)
        return result
