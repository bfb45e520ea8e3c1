"""Subcycled integration of the species and internal energy over one timestep.

Every active cell advances with its own subcycle step; cells that reached the end
of the timestep idle (step 0) until all cells are done or the iteration limit
`max_iterations` is exhausted.
"""

from __future__ import annotations

from dataclasses import dataclass

import jax
import jax.numpy as jnp
from jaxtyping import Array, Bool, Float, Int

from cooling_chemistry import constants, source_terms, thermodynamic_relations
from cooling_chemistry.chemistry_types import FinalizedConfig, PrimordialChemistry

MAX_RELATIVE_CHANGE = 0.1
"""Largest fractional change of e, n_HI or n_e allowed within one subcycle."""


@jax.tree_util.register_dataclass
@dataclass(frozen=True)
class IntegrationResult:
    species: dict[str, Float[Array, " N"]]
    """Mass densities of the variant's species [code, comoving if applicable]."""
    internal_energy: Float[Array, " N"]
    n_subcycles: Int[Array, ""]
    converged: Bool[Array, ""]


def _limit(value: Float[Array, " N"], rate: Float[Array, " N"]) -> Float[Array, " N"]:
    """Step after which `value` changes by MAX_RELATIVE_CHANGE at constant `rate`."""
    abs_rate = jnp.abs(rate)
    safe_rate = jnp.where(abs_rate > 0.0, abs_rate, 1.0)
    return jnp.where(abs_rate > 0.0, MAX_RELATIVE_CHANGE * value / safe_rate, jnp.inf)


def _element_totals(n):
    return (
        source_terms.hydrogen_nuclei(n),
        n["HeI"] + n["HeII"] + n["HeIII"],
        n["DI"] + n["DII"] + n["HDI"],
    )


def _renormalize(n, totals):
    """Rescale each element's species to the conserved total, then set electrons."""
    groups = (
        ("HI", "HII", "HM", "H2I", "H2II"),
        ("HeI", "HeII", "HeIII"),
        ("DI", "DII", "HDI"),
    )
    n = dict(n)
    for names, target, current in zip(groups, totals, _element_totals(n)):
        factor = jnp.where(current > 0.0, target / jnp.where(current > 0.0, current, 1.0), 1.0)
        for name in names:
            n[name] = n[name] * factor
    n["e"] = source_terms.electron_density(n)
    return n


def _cmb_floor(token, density, e_old, e_new, n, redshift):
    """Keep net cooling from taking comoving gas below the CMB temperature."""
    config = token.configuration
    if not (token.units.comoving_coordinates and config.cmb_temperature_floor):
        return e_new
    T_cmb = constants.T_cmb_0 * (1.0 + redshift)
    if n:
        n_total = thermodynamic_relations.number_density(n, config.primordial_chemistry_level)
        mu = density / n_total
    else:
        mu = thermodynamic_relations.neutral_mean_molecular_weight(config.hydrogen_fraction_by_mass)
    e_cmb = T_cmb / (mu * (config.gamma - 1.0) * token.units.temperature_units)
    return jnp.maximum(e_new, jnp.minimum(e_old, e_cmb))


def net_rates(token, density, internal_energy, n, metal_density, heating, redshift, k_photo):
    """Temperature and de/dt at the current state."""
    T, _, _ = thermodynamic_relations.thermal_state(token, density, internal_energy, n)
    edot = source_terms.energy_rate(
        token, density, T, n, metal_density, heating, redshift, k_photo
    )
    return T, edot


def integrate(
    token: FinalizedConfig,
    density: Float[Array, " N"],
    internal_energy: Float[Array, " N"],
    species: dict[str, Float[Array, " N"]],
    metal_density: Float[Array, " N"] | None,
    heating: dict[str, Float[Array, " N"]],
    density_scale: Float[Array, ""],
    redshift: Float[Array, ""],
    dt: Float[Array, ""],
) -> IntegrationResult:
    """Advance species and internal energy of every cell by `dt`.

    Species are updated one after another in `source_terms.NETWORK_ORDER` with the
    backward Euler step (n + C dt) / (1 + D dt); the energy update is explicit.
    After each subcycle the elemental totals of H, He and D are restored and the
    electron density follows from charge neutrality.

    Args:
        token: finalized configuration with rate tables
        density: gas density of the active cells [code]
        internal_energy: specific internal energy [code]
        species: mass density fields of the variant, empty at level 0
        metal_density: metal mass density, None without metal cooling
        heating: enabled CGS heating fields
        density_scale: comoving to physical density factor
        redshift: current redshift
        dt: timestep [code]

    Returns:
        IntegrationResult; `converged` is False if `max_iterations` subcycles did not
        cover `dt` in every cell. Nothing is clipped, callers check for non-physical
        values.
    """
    config = token.configuration
    level = config.primordial_chemistry_level
    has_network = level >= PrimordialChemistry.SIX_SPECIES
    apply_energy = config.radiative_cooling_enabled

    rho = density * density_scale
    metals = metal_density * density_scale if metal_density is not None else None
    n0 = source_terms.number_densities(species, density_scale) if has_network else {}
    totals = _element_totals(n0) if has_network else ()
    k_photo = source_terms.photo_rates(token.tables, redshift, config.uv_background_enabled)
    tracked = tuple(name.removesuffix("_density") for name in token.variant.species_fields)

    def cond(carry):
        remaining, _, _, iteration = carry
        return (iteration < config.max_iterations) & jnp.any(remaining > 0.0)

    def body(carry):
        remaining, n, e, iteration = carry
        T, edot = net_rates(token, rho, e, n, metals, heating, redshift, k_photo)

        step = remaining
        if apply_energy:
            step = jnp.minimum(step, _limit(e, edot))
        if has_network:
            k = source_terms.rate_coefficients(token.tables, T, level, config.three_body_rate)
            tiny = constants.tiny_number * rho
            dHI = source_terms.time_derivative("HI", n, k, k_photo)
            dne = source_terms.electron_time_derivative(n, k, k_photo)
            step = jnp.minimum(step, _limit(n["HI"] + tiny, dHI))
            step = jnp.minimum(step, _limit(n["e"] + tiny, dne))

            n = dict(n)
            for name in source_terms.NETWORK_ORDER:
                if name not in tracked:
                    continue
                creation, destruction = source_terms.SPECIES_TERMS[name](n, k, k_photo)
                n[name] = source_terms.backward_euler(n[name], creation, destruction, step)
            n = _renormalize(n, totals)

        if apply_energy:
            e_new = e + edot * step
            e = _cmb_floor(token, rho, e, e_new, n, redshift)

        return remaining - step, n, e, iteration + 1

    init = (
        jnp.full_like(density, dt),
        n0,
        internal_energy,
        jnp.asarray(0, dtype=jnp.int32),
    )
    remaining, n, e, iteration = jax.lax.while_loop(cond, body, init)

    result_species = (
        source_terms.mass_densities(n, token.variant.species_fields, density_scale)
        if has_network
        else {}
    )
    return IntegrationResult(
        species=result_species,
        internal_energy=e,
        n_subcycles=iteration,
        converged=jnp.all(remaining <= 0.0),
    )


def energy_time_derivative(
    token: FinalizedConfig,
    density: Float[Array, " N"],
    internal_energy: Float[Array, " N"],
    species: dict[str, Float[Array, " N"]],
    metal_density: Float[Array, " N"] | None,
    heating: dict[str, Float[Array, " N"]],
    density_scale: Float[Array, ""],
    redshift: Float[Array, ""],
) -> Float[Array, " N"]:
    """de/dt of every cell at the current state, as used by `integrate`."""
    config = token.configuration
    rho = density * density_scale
    metals = metal_density * density_scale if metal_density is not None else None
    n = source_terms.number_densities(species, density_scale) if species else {}
    k_photo = source_terms.photo_rates(token.tables, redshift, config.uv_background_enabled)
    _, edot = net_rates(token, rho, internal_energy, n, metals, heating, redshift, k_photo)
    return edot


integrate_jit = jax.jit(integrate)
energy_time_derivative_jit = jax.jit(energy_time_derivative)
