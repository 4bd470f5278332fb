"""
Tests for settings, counters and the simulation context.
"""

import numpy as np
import pytest
from rsdft.context import CalculationSettings, OuterStepCounters
from rsdft.density import DensityInitializer
from rsdft.extrapolation import ChargeExtrapolator
from rsdft.orbitals import OrbitalInitializer
from rsdft.parallel import SerialCommunicator


class CountingCommunicator(SerialCommunicator):
    """Counts collective calls."""

    def __init__(self):
        self.calls = 0

    def sum(self, value):
        self.calls += 1
        return value

    def broadcast(self, value, root=0):
        self.calls += 1
        return value


class TestCalculationSettings:
    """Tests for CalculationSettings."""

    def test_defaults(self):
        """Test default settings."""
        settings = CalculationSettings()
        assert settings.xc_rhotol == 1e-14
        assert settings.orbital_bounds == (-0.5, 0.5)
        assert not settings.is_trajectory
        assert settings.n_density_channels == 1

    @pytest.mark.parametrize("kwargs", [
        {'mode': 'neb'},
        {'spin': 'up'},
        {'singular_policy': 'inverse'},
        {'xc_rhotol': 0.0},
        {'extrapolation_depth': 2},
        {'orbital_bounds': (0.5, -0.5)},
    ])
    def test_invalid(self, kwargs):
        """Test rejection of invalid settings."""
        with pytest.raises(ValueError):
            CalculationSettings(**kwargs)

    @pytest.mark.parametrize("spin,channels,mag,spinor,groups", [
        ('none', 1, 0, 1, 1),
        ('collinear', 3, 1, 2, 2),
        ('noncollinear', 3, 4, 2, 1),
    ])
    def test_spin_dimensions(self, spin, channels, mag, spinor, groups):
        """Test array dimensions per spin setting."""
        settings = CalculationSettings(spin=spin)
        assert settings.n_density_channels == channels
        assert settings.n_mag_channels == mag
        assert settings.n_spinor == spinor
        assert settings.n_spin_groups == groups


class TestOuterStepCounters:
    """Tests for OuterStepCounters."""

    def test_stress_steps_excluded(self):
        """Test that stress-only steps are not counted as effective."""
        counters = OuterStepCounters()
        counters.ground_state_done()
        counters.ground_state_done(stress_only=True)
        counters.ground_state_done()
        assert counters.elecgs_count == 3
        assert counters.effective_count == 2


class TestSimulationContext:
    """Tests for SimulationContext."""

    def test_default_states(self, make_context):
        """Test the default number of states and field sizes."""
        ctx = make_context()
        assert ctx.n_states == 5
        assert ctx.is_gamma_point
        assert ctx.density.electron_dens.shape == (1, 1000)
        assert ctx.density.mag_reference is None

    def test_noncollinear_fields(self, make_context):
        """Test non-collinear magnetization fields."""
        ctx = make_context(spin='noncollinear', shape=(4, 4, 4))
        assert ctx.density.mag.shape == (4, 64)
        assert ctx.density.mag_reference.shape == (3, 64)

    def test_idle_process_does_nothing(self, make_context):
        """Test that idle processes skip every operation and collective."""
        ctx = make_context(mode='md', spin='collinear', shape=(4, 4, 4))
        comm = CountingCommunicator()
        ctx.layout.density_domain = None
        ctx.layout.orbital_domain = None
        ctx.layout.spin_comm = comm
        ctx.counters.elecgs_count = 4
        before = ctx.density.electron_dens.copy()

        assert DensityInitializer(ctx).initialize() is None
        assert ChargeExtrapolator(ctx).update() is None
        assert OrbitalInitializer(ctx).initialize() is None

        assert comm.calls == 0
        np.testing.assert_array_equal(ctx.density.electron_dens, before)
        assert ctx.orbitals is None
        assert ctx.history.coefficients is None
