"""Unit tests for thermodynamic_relations.py"""

import jax
import jax.numpy as jnp
import pytest

from cooling_chemistry import thermodynamic_relations
from cooling_chemistry.chemistry_types import PrimordialChemistry

jax.config.update("jax_enable_x64", True)


def _species(n_cells=3, H2=0.0):
    ones = jnp.ones(n_cells)
    return {
        "HI": 0.76 * ones,
        "HII": 0.0 * ones,
        "HeI": 0.24 / 4.0 * ones,
        "HeII": 0.0 * ones,
        "HeIII": 0.0 * ones,
        "e": 0.0 * ones,
        "HM": 0.0 * ones,
        "H2I": H2 * ones,
        "H2II": 0.0 * ones,
    }


def test_number_density_neutral_gas():
    n = _species()

    n_total = thermodynamic_relations.number_density(n, PrimordialChemistry.SIX_SPECIES)

    assert jnp.allclose(n_total, 0.76 + 0.06)
    mu = 1.0 / n_total
    assert jnp.allclose(mu, thermodynamic_relations.neutral_mean_molecular_weight(0.76))


def test_effective_gamma_monatomic_without_h2():
    n = _species()
    T = jnp.array([10.0, 1e3, 1e5])

    gamma = thermodynamic_relations.effective_gamma(n, T, 5.0 / 3.0)

    assert jnp.allclose(gamma, 5.0 / 3.0)


def test_effective_gamma_h2_limits():
    """Pure H2 tends to 7/5 when rotation is excited and 9/7 with vibration."""
    zeros = jnp.zeros(2)
    n = {name: zeros for name in _species(2)}
    n["H2I"] = jnp.ones(2)
    T = jnp.array([300.0, 1e6])

    gamma = thermodynamic_relations.effective_gamma(n, T, 5.0 / 3.0)

    assert float(gamma[0]) == pytest.approx(7.0 / 5.0, rel=1e-6)
    assert float(gamma[1]) == pytest.approx(9.0 / 7.0, rel=1e-3)


def test_effective_gamma_mixture_weighted_by_number():
    """Equal numbers of H atoms and H2 molecules at 300 K: 1 + 2 / (3/2 + 5/2)."""
    zeros = jnp.zeros(1)
    n = {name: zeros for name in _species(1)}
    n["HI"] = jnp.ones(1)
    n["H2I"] = jnp.ones(1)

    gamma = thermodynamic_relations.effective_gamma(n, jnp.array([300.0]), 5.0 / 3.0)

    assert float(gamma[0]) == pytest.approx(1.5, rel=1e-6)


def test_effective_gamma_helium_counts_per_particle():
    zeros = jnp.zeros(1)
    n = {name: zeros for name in _species(1)}
    n["HeI"] = jnp.ones(1)
    n["H2I"] = jnp.ones(1)

    gamma = thermodynamic_relations.effective_gamma(n, jnp.array([300.0]), 5.0 / 3.0)

    assert float(gamma[0]) == pytest.approx(1.5, rel=1e-6)


def test_pressure_ideal_gas():
    density = jnp.array([1.0, 2.0])
    energy = jnp.array([3.0, 3.0])
    gamma = jnp.full(2, 5.0 / 3.0)

    p = thermodynamic_relations.pressure(density, energy, gamma)

    assert jnp.allclose(p, jnp.array([2.0, 4.0]))


def test_pressure_shape_checked():
    with pytest.raises(Exception):
        thermodynamic_relations.pressure(jnp.ones(2), jnp.ones(3), jnp.ones(2))


def test_temperature_floor():
    T = thermodynamic_relations.temperature_from_pressure(
        jnp.array([0.0, 1.0]), jnp.array([1.0, 1.0]), 100.0, 5.0
    )

    assert jnp.allclose(T, jnp.array([5.0, 100.0]))


def test_tabulated_temperature_constant_mu():
    log_T = jnp.linspace(0.0, 9.0, 10)
    mu_table = jnp.full(10, 0.6)
    energy = jnp.array([1.0, 10.0])

    T, mu = thermodynamic_relations.tabulated_temperature(
        jnp.ones(2), energy, 5.0 / 3.0, log_T, mu_table, 1000.0, 1.0
    )

    assert jnp.allclose(mu, 0.6)
    assert jnp.allclose(T, 2.0 / 3.0 * energy * 0.6 * 1000.0)


def test_tabulated_temperature_consistent_with_table():
    """The converged mu equals the table value at the returned temperature."""
    log_T = jnp.linspace(0.0, 9.0, 91)
    # neutral below 1e4 K, ionized above
    mu_table = jnp.where(log_T < 4.0, 1.22, 0.59)
    energy = jnp.array([10.0, 1e6])

    T, mu = thermodynamic_relations.tabulated_temperature(
        jnp.ones(2), energy, 5.0 / 3.0, log_T, mu_table, 1.0, 1.0
    )

    table_mu = jnp.interp(jnp.log10(T), log_T, mu_table)
    assert jnp.allclose(mu, table_mu, rtol=1e-4)
