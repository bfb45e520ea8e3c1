"""Ideal gas relations between internal energy, temperature, pressure and gamma.

All functions are pure and operate on flat arrays over active cells in code
units. Species enter as number densities in units of m_H (mass density divided
by particle mass, see `chemistry_types.SPECIES_MASS`).
"""

from __future__ import annotations

import jax
import jax.numpy as jnp
from jaxtyping import Array, Float

from cooling_chemistry.chemistry_types import FinalizedConfig, PrimordialChemistry
from cooling_chemistry.diagnose import runtime_check_array_sizes

MU_ITERATIONS = 20


def neutral_mean_molecular_weight(hydrogen_fraction: float) -> float:
    """Mean molecular weight of neutral atomic H/He gas [m_H]."""
    return 4.0 / (1.0 + 3.0 * hydrogen_fraction)


def number_density(n: dict[str, Float[Array, " N"]], level: int) -> Float[Array, " N"]:
    """Total particle number density; metals and deuterium are neglected."""
    total = n["HI"] + n["HII"] + n["HeI"] + n["HeII"] + n["HeIII"] + n["e"]
    if level >= PrimordialChemistry.NINE_SPECIES:
        total = total + n["HM"] + n["H2I"] + n["H2II"]
    return total


def h2_inverse_gamma_minus_one(T: Float[Array, " N"]) -> Float[Array, " N"]:
    """1 / (gamma_H2 - 1) including vibrational excitation of H2.

    Rotational levels are taken as fully excited (5/2) and the vibrational mode
    enters with its characteristic temperature of 6100 K.
    """
    x = 6100.0 / T
    x_safe = jnp.minimum(x, 10.0)
    vibrational = x_safe**2 * jnp.exp(x_safe) / (jnp.expm1(x_safe)) ** 2
    return jnp.where(x < 10.0, 0.5 * (5.0 + 2.0 * vibrational), 2.5)


def effective_gamma(
    n: dict[str, Float[Array, " N"]], T: Float[Array, " N"], gamma: float
) -> Float[Array, " N"]:
    """Adiabatic index of a mixture of H2 and monatomic gas with index `gamma`.

    `n` holds number densities, as returned by `source_terms.number_densities`.
    """
    n_H2 = n["H2I"] + n["H2II"]
    n_other = (
        n["HI"] + n["HII"] + n["HM"] + n["HeI"] + n["HeII"] + n["HeIII"] + n["e"]
    )
    n_H2 = jnp.maximum(n_H2, 0.0)
    inverse = n_H2 * h2_inverse_gamma_minus_one(T) + n_other / (gamma - 1.0)
    return 1.0 + (n_H2 + n_other) / inverse


@runtime_check_array_sizes
def pressure(
    density: Float[Array, " N"],
    internal_energy: Float[Array, " N"],
    gamma: Float[Array, " N"],
) -> Float[Array, " N"]:
    return (gamma - 1.0) * density * internal_energy


def temperature_from_pressure(
    p: Float[Array, " N"],
    n: Float[Array, " N"],
    temperature_units: float,
    temperature_floor: float,
) -> Float[Array, " N"]:
    """T = p / n in Kelvin, bounded below by the floor."""
    return jnp.maximum(p * temperature_units / n, temperature_floor)


def tabulated_temperature(
    density: Float[Array, " N"],
    internal_energy: Float[Array, " N"],
    gamma: float,
    log_T_table: Float[Array, " n_bins"],
    mu_table: Float[Array, " n_bins"],
    temperature_units: float,
    temperature_floor: float,
) -> tuple[Float[Array, " N"], Float[Array, " N"]]:
    """Temperature and mean molecular weight consistent with a mu(T) table.

    Solves T = (gamma - 1) e mu(T) T_units by damped fixed-point iteration,
    starting from the value of the coldest table entry.

    Returns:
        T: [K]
        mu: [m_H]
    """
    T_over_mu = (gamma - 1.0) * internal_energy * temperature_units

    def body(_, mu):
        T = jnp.maximum(T_over_mu * mu, temperature_floor)
        mu_table_value = jnp.interp(jnp.log10(T), log_T_table, mu_table)
        return 0.5 * (mu + mu_table_value)

    mu0 = jnp.full_like(density, mu_table[0])
    mu = jax.lax.fori_loop(0, MU_ITERATIONS, body, mu0)
    T = jnp.maximum(T_over_mu * mu, temperature_floor)
    return T, mu


def thermal_state(
    token: FinalizedConfig,
    density: Float[Array, " N"],
    internal_energy: Float[Array, " N"],
    n: dict[str, Float[Array, " N"]],
) -> tuple[Float[Array, " N"], Float[Array, " N"], Float[Array, " N"]]:
    """Temperature [K], pressure and effective gamma of every active cell.

    Shared by the temperature, pressure, gamma and cooling time queries and by the
    integrator, so all of them see the same state.

    Args:
        token: finalized configuration
        density: gas density [code]
        internal_energy: specific internal energy [code]
        n: species number densities [code, m_H units], empty without a network

    Returns:
        T, p, gamma_eff
    """
    config = token.configuration
    units = token.units
    level = config.primordial_chemistry_level
    gamma = jnp.full_like(density, config.gamma)

    if not n:
        if token.tables is not None:
            T, mu = tabulated_temperature(
                density,
                internal_energy,
                config.gamma,
                token.tables.log_T,
                token.tables.mean_molecular_weight,
                units.temperature_units,
                config.temperature_floor,
            )
        else:
            mu = neutral_mean_molecular_weight(config.hydrogen_fraction_by_mass)
            T_raw = (config.gamma - 1.0) * internal_energy * mu * units.temperature_units
            T = jnp.maximum(T_raw, config.temperature_floor)
        return T, pressure(density, internal_energy, gamma), gamma

    n_total = number_density(n, level)
    p = pressure(density, internal_energy, gamma)
    T = temperature_from_pressure(
        p, n_total, units.temperature_units, config.temperature_floor
    )
    if level >= PrimordialChemistry.NINE_SPECIES:
        gamma = effective_gamma(n, T, config.gamma)
        p = pressure(density, internal_energy, gamma)
        T = temperature_from_pressure(
            p, n_total, units.temperature_units, config.temperature_floor
        )
    return T, p, gamma
