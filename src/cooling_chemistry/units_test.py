"""Unit tests for units.py"""

import math

import pytest

from cooling_chemistry import constants
from cooling_chemistry.errors import InvalidUnitsError
from cooling_chemistry.units import UnitSystem


@pytest.mark.parametrize(
    "density_units, length_units, time_units",
    [
        (1.67e-24, 1.0, 1.0e12),
        (constants.mh, 3.0857e21, constants.s_per_myr),
        (1.0, 1.0, 1.0),
        (2.3e-30, 3.0857e24, 3.0857e17),
    ],
)
def test_velocity_units_derived(density_units, length_units, time_units):
    units = UnitSystem(density_units, length_units, time_units)

    if units.velocity_units != length_units / time_units:
        raise ValueError(f"velocity_units {units.velocity_units} != length / time")


def test_explicit_velocity_units_must_match():
    UnitSystem(1.0, 10.0, 2.0, velocity_units=5.0)

    with pytest.raises(InvalidUnitsError, match="velocity_units"):
        UnitSystem(1.0, 10.0, 2.0, velocity_units=4.0)


@pytest.mark.parametrize("bad", [0.0, -1.0, math.inf, math.nan])
@pytest.mark.parametrize("name", ["density_units", "length_units", "time_units", "a_units"])
def test_invalid_units_rejected(name, bad):
    kwargs = dict(density_units=1.0, length_units=1.0, time_units=1.0, a_units=1.0)
    kwargs[name] = bad

    with pytest.raises(InvalidUnitsError, match=name):
        UnitSystem(**kwargs)


def test_invalid_units_is_value_error():
    with pytest.raises(ValueError):
        UnitSystem(-1.0, 1.0, 1.0)


def test_temperature_units_of_example():
    units = UnitSystem(density_units=1.67e-24, length_units=1.0, time_units=1.0e12)

    expected = constants.mh * (1.0 / 1.0e12) ** 2 / constants.kboltz
    assert units.temperature_units == pytest.approx(expected, rel=1e-12)


def test_rate_units_scale_with_density():
    units = UnitSystem(density_units=2.0 * constants.mh, length_units=1.0, time_units=10.0)

    assert units.chemistry_rate_units(1) == pytest.approx(0.1)
    assert units.chemistry_rate_units(2) == pytest.approx(0.1 / 2.0)
    assert units.chemistry_rate_units(3) == pytest.approx(0.1 / 4.0)
    with pytest.raises(ValueError):
        units.chemistry_rate_units(4)


def test_cooling_units_consistent_with_rate_units():
    """A cooling coefficient divided by cooling_units gives de/dt in code units."""
    units = UnitSystem(density_units=1.67e-24, length_units=3.0857e21, time_units=3.15e13)
    lam_cgs = 1e-23
    n_cgs = 1.0
    rho_cgs = constants.mh

    edot_cgs = lam_cgs * n_cgs**2 / rho_cgs
    edot_code = edot_cgs * units.time_units / units.energy_units

    n_code = n_cgs / units.number_density_units
    rho_code = rho_cgs / units.density_units
    assert lam_cgs / units.cooling_units * n_code**2 / rho_code == pytest.approx(
        edot_code, rel=1e-10
    )


def test_comoving_density_scale_and_redshift():
    static = UnitSystem(1.0, 1.0, 1.0)
    assert static.density_scale(0.5) == 1.0
    assert static.redshift(0.5) == 0.0

    comoving = UnitSystem(1.0, 1.0, 1.0, a_units=1.0, comoving_coordinates=True)
    assert comoving.density_scale(0.5) == pytest.approx(8.0)
    assert comoving.redshift(0.25) == pytest.approx(3.0)


def test_unit_system_hashable_and_frozen():
    units = UnitSystem(1.0, 1.0, 1.0)

    assert hash(units) == hash(UnitSystem(1.0, 1.0, 1.0))
    with pytest.raises(AttributeError):
        units.density_units = 2.0
