"""Shared fixtures: reference rate data, unit systems and initialized grids."""

import jax
import numpy as np
import pytest

from cooling_chemistry import chemistry_utils, constants, grid_utils, rate_data_utils
from cooling_chemistry.units import UnitSystem

jax.config.update("jax_enable_x64", True)


@pytest.fixture(scope="session")
def rate_data_path(tmp_path_factory):
    path = tmp_path_factory.mktemp("data") / "primordial_reference.json"
    return rate_data_utils.write_reference_rate_data(path)


@pytest.fixture
def example_units():
    """Units of the classic single cell example: n ~ 1 cm^-3, time in 1e12 s."""
    return UnitSystem(density_units=1.67e-24, length_units=1.0, time_units=1.0e12)


@pytest.fixture
def galactic_units():
    """kpc, Myr and m_H / cm^3, small enough for single precision."""
    return UnitSystem(
        density_units=constants.mh, length_units=3.0857e21, time_units=constants.s_per_myr
    )


@pytest.fixture
def make_config(rate_data_path):
    """Factory for enabled configurations; keyword arguments override defaults."""

    def _make(level=1, metals=False, **overrides):
        config = chemistry_utils.set_defaults()
        config.use_chemistry = True
        config.radiative_cooling_enabled = True
        config.primordial_chemistry_level = level
        config.metal_cooling_enabled = metals
        config.rate_data_source = rate_data_path
        for name, value in overrides.items():
            setattr(config, name, value)
        return config

    return _make


@pytest.fixture
def make_state():
    """Factory for a grid initialized like the single cell example.

    Species follow neutral primordial gas with trace ionization and the internal
    energy is `temperature / temperature_units`, as in the example program.
    """

    def _make(token, dimension=(1, 1, 1), temperature=1000.0, density=1.0, **kwargs):
        config = token.configuration
        state = grid_utils.allocate_fields(token, dimension, **kwargs)
        X = config.hydrogen_fraction_by_mass
        dtype = np.dtype(config.precision)
        tiny = constants.tiny_number * density

        initial = {
            "density": density,
            "internal_energy": temperature / token.units.temperature_units,
            "HI_density": X * density,
            "HII_density": tiny,
            "HeI_density": (1.0 - X) * density,
            "HeII_density": tiny,
            "HeIII_density": tiny,
            "e_density": tiny,
            "HM_density": tiny,
            "H2I_density": tiny,
            "H2II_density": tiny,
            "DI_density": 2.0 * 3.4e-5 * density,
            "DII_density": tiny,
            "HDI_density": tiny,
            "metal_density": config.solar_metal_fraction_by_mass * density,
        }
        for name in state.fields:
            state[name][:] = np.asarray(initial.get(name, 0.0), dtype=dtype)
        return state

    return _make
