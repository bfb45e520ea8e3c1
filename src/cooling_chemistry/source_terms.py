"""Rate lookup, species creation/destruction terms and the net heating/cooling rate.

Number densities are in code units of m_H (mass density over particle mass) and
physical, i.e. already multiplied by the comoving density scale. Reaction labels
follow the customary numbering of the primordial network:

    k1  HI + e -> HII + 2e          k13 H2I + HI -> 3HI
    k2  HII + e -> HI + photon      k14 HM + e -> HI + 2e
    k3  HeI + e -> HeII + 2e        k15 HM + HI -> 2HI + e
    k4  HeII + e -> HeI + photon    k16 HM + HII -> 2HI
    k5  HeII + e -> HeIII + 2e      k17 HM + HII -> H2II + e
    k6  HeIII + e -> HeII + photon  k18 H2II + e -> 2HI
    k7  HI + e -> HM + photon       k19 H2II + HM -> HI + H2I
    k8  HM + HI -> H2I + e          k22 3HI -> H2I + HI
    k9  HI + HII -> H2II + photon   k24 HI + photon -> HII + e
    k10 H2II + HI -> H2I + HII      k25 HeII + photon -> HeIII + e
    k11 H2I + HII -> H2II + HI      k26 HeI + photon -> HeII + e
    k12 H2I + e -> 2HI + e

    k50 HII + DI -> HI + DII        k54 H2I + DI -> HDI + HI
    k51 HI + DII -> HII + DI        k55 HDI + HI -> H2I + DI
    k52 H2I + DII -> HDI + HII      k56 DI + HM -> HDI + e
    k53 HDI + HII -> H2I + DII

Deuterium is a trace species: its reactions do not feed back on hydrogen.
"""

from __future__ import annotations

from typing import Callable

import jax
import jax.numpy as jnp
from jaxtyping import Array, Float

from cooling_chemistry import constants
from cooling_chemistry.chemistry_types import (
    FinalizedConfig,
    PrimordialChemistry,
    RateTables,
    SPECIES_FIELDS,
    SPECIES_MASS,
)
from cooling_chemistry.diagnose import runtime_check_array_sizes
from cooling_chemistry.reaction_rates import DEUTERIUM_RATES, H2_RATES

SPECIES = tuple(name.removesuffix("_density") for name in SPECIES_FIELDS)

NETWORK_ORDER = ("HI", "HII", "HeI", "HeII", "HeIII", "HM", "H2II", "H2I", "DI", "DII", "HDI")
"""Update order of the backward Euler sweep; electrons follow from charge neutrality."""

Terms = tuple[Float[Array, " N"], Float[Array, " N"]]


def number_densities(
    species: dict[str, Float[Array, " N"]], scale: float | Float[Array, ""] = 1.0
) -> dict[str, Float[Array, " N"]]:
    """Mass density fields to number densities, padded with zeros to all species."""
    zeros = jnp.zeros_like(next(iter(species.values())))
    return {
        name: species[f"{name}_density"] * scale / SPECIES_MASS[f"{name}_density"]
        if f"{name}_density" in species
        else zeros
        for name in SPECIES
    }


def mass_densities(
    n: dict[str, Float[Array, " N"]],
    species_fields: tuple[str, ...],
    scale: float | Float[Array, ""] = 1.0,
) -> dict[str, Float[Array, " N"]]:
    """Inverse of `number_densities` restricted to the fields of a variant."""
    return {
        name: n[name.removesuffix("_density")] * SPECIES_MASS[name] / scale
        for name in species_fields
    }


def interpolate_table(
    log_T_table: Float[Array, " n_bins"],
    table: Float[Array, "n_rows n_bins"],
    T: Float[Array, " N"],
) -> Float[Array, "n_rows N"]:
    """Linear interpolation in log10(T), clamped to the table range."""
    log_T = jnp.clip(jnp.log10(T), log_T_table[0], log_T_table[-1])
    return jax.vmap(lambda row: jnp.interp(log_T, log_T_table, row))(table)


def rate_coefficients(
    tables: RateTables, T: Float[Array, " N"], level: int, three_body: bool
) -> dict[str, Float[Array, " N"]]:
    """Rate coefficients at T; reactions outside the active network are zero."""
    values = interpolate_table(tables.log_T, tables.rates, T)
    k = dict(zip(tables.rate_names, values))
    disabled = []
    if level < PrimordialChemistry.NINE_SPECIES:
        disabled += list(H2_RATES)
    if level < PrimordialChemistry.TWELVE_SPECIES:
        disabled += list(DEUTERIUM_RATES)
    if not three_body:
        disabled.append("k22")
    for name in disabled:
        k[name] = jnp.zeros_like(T)
    return k


def cooling_coefficients(tables: RateTables, T: Float[Array, " N"]) -> dict[str, Float[Array, " N"]]:
    values = interpolate_table(tables.log_T, tables.cooling, T)
    return dict(zip(tables.cooling_names, values))


def photo_rates(tables: RateTables, redshift, enabled: bool) -> dict[str, Float[Array, ""]]:
    """UV background rates at `redshift`; zero before the background switches on."""
    if not enabled:
        return {name: jnp.zeros((), tables.uvb_rates.dtype) for name in tables.uvb_names}
    values = jax.vmap(lambda row: jnp.interp(redshift, tables.uvb_redshift, row))(
        tables.uvb_rates
    )
    on = redshift <= tables.uvb_redshift_on
    return {name: jnp.where(on, v, 0.0) for name, v in zip(tables.uvb_names, values)}


def _HI(n, k, p) -> Terms:
    creation = (
        k["k2"] * n["HII"] * n["e"]
        + k["k11"] * n["H2I"] * n["HII"]
        + 2.0 * k["k12"] * n["H2I"] * n["e"]
        + 2.0 * k["k13"] * n["H2I"] * n["HI"]
        + k["k14"] * n["HM"] * n["e"]
        + k["k15"] * n["HM"] * n["HI"]
        + 2.0 * k["k16"] * n["HM"] * n["HII"]
        + 2.0 * k["k18"] * n["H2II"] * n["e"]
        + k["k19"] * n["H2II"] * n["HM"]
    )
    destruction = (
        k["k1"] * n["e"]
        + k["k7"] * n["e"]
        + k["k8"] * n["HM"]
        + k["k9"] * n["HII"]
        + k["k10"] * n["H2II"]
        + 2.0 * k["k22"] * n["HI"] ** 2
        + p["k24"]
    )
    return creation, destruction


def _HII(n, k, p) -> Terms:
    creation = (
        k["k1"] * n["HI"] * n["e"]
        + k["k10"] * n["H2II"] * n["HI"]
        + p["k24"] * n["HI"]
    )
    destruction = (
        k["k2"] * n["e"]
        + k["k9"] * n["HI"]
        + k["k11"] * n["H2I"]
        + k["k16"] * n["HM"]
        + k["k17"] * n["HM"]
    )
    return creation, destruction


def _HeI(n, k, p) -> Terms:
    return k["k4"] * n["HeII"] * n["e"], k["k3"] * n["e"] + p["k26"]


def _HeII(n, k, p) -> Terms:
    creation = (
        k["k3"] * n["HeI"] * n["e"] + k["k6"] * n["HeIII"] * n["e"] + p["k26"] * n["HeI"]
    )
    return creation, (k["k4"] + k["k5"]) * n["e"] + p["k25"]


def _HeIII(n, k, p) -> Terms:
    return k["k5"] * n["HeII"] * n["e"] + p["k25"] * n["HeII"], k["k6"] * n["e"]


def _HM(n, k, p) -> Terms:
    destruction = (
        (k["k8"] + k["k15"]) * n["HI"]
        + k["k14"] * n["e"]
        + (k["k16"] + k["k17"]) * n["HII"]
        + k["k19"] * n["H2II"]
    )
    return k["k7"] * n["HI"] * n["e"], destruction


def _H2II(n, k, p) -> Terms:
    creation = (
        k["k9"] * n["HI"] * n["HII"]
        + k["k11"] * n["H2I"] * n["HII"]
        + k["k17"] * n["HM"] * n["HII"]
    )
    return creation, k["k10"] * n["HI"] + k["k18"] * n["e"] + k["k19"] * n["HM"]


def _H2I(n, k, p) -> Terms:
    creation = (
        k["k8"] * n["HM"] * n["HI"]
        + k["k10"] * n["H2II"] * n["HI"]
        + k["k19"] * n["H2II"] * n["HM"]
        + k["k22"] * n["HI"] ** 3
    )
    return creation, k["k11"] * n["HII"] + k["k12"] * n["e"] + k["k13"] * n["HI"]


def _DI(n, k, p) -> Terms:
    creation = (
        k["k2"] * n["DII"] * n["e"]
        + k["k51"] * n["DII"] * n["HI"]
        + k["k55"] * n["HDI"] * n["HI"]
    )
    destruction = (
        k["k1"] * n["e"]
        + k["k50"] * n["HII"]
        + k["k54"] * n["H2I"]
        + k["k56"] * n["HM"]
        + p["k24"]
    )
    return creation, destruction


def _DII(n, k, p) -> Terms:
    creation = (
        k["k1"] * n["DI"] * n["e"]
        + k["k50"] * n["HII"] * n["DI"]
        + k["k53"] * n["HDI"] * n["HII"]
        + p["k24"] * n["DI"]
    )
    return creation, k["k2"] * n["e"] + k["k51"] * n["HI"] + k["k52"] * n["H2I"]


def _HDI(n, k, p) -> Terms:
    creation = (
        k["k52"] * n["H2I"] * n["DII"]
        + k["k54"] * n["H2I"] * n["DI"]
        + k["k56"] * n["DI"] * n["HM"]
    )
    return creation, k["k53"] * n["HII"] + k["k55"] * n["HI"]


SPECIES_TERMS: dict[str, Callable[..., Terms]] = {
    "HI": _HI,
    "HII": _HII,
    "HeI": _HeI,
    "HeII": _HeII,
    "HeIII": _HeIII,
    "HM": _HM,
    "H2II": _H2II,
    "H2I": _H2I,
    "DI": _DI,
    "DII": _DII,
    "HDI": _HDI,
}
"""Creation C [n/t] and destruction D [1/t] with dn/dt = C - D n, per species."""


def time_derivative(name: str, n, k, p) -> Float[Array, " N"]:
    creation, destruction = SPECIES_TERMS[name](n, k, p)
    return creation - destruction * n[name]


def electron_density(n: dict[str, Float[Array, " N"]]) -> Float[Array, " N"]:
    """Charge neutrality."""
    n_e = n["HII"] + n["HeII"] + 2.0 * n["HeIII"] + n["H2II"] - n["HM"] + n["DII"]
    return jnp.maximum(n_e, 0.0)


def electron_time_derivative(n, k, p) -> Float[Array, " N"]:
    return (
        time_derivative("HII", n, k, p)
        + time_derivative("HeII", n, k, p)
        + 2.0 * time_derivative("HeIII", n, k, p)
        + time_derivative("H2II", n, k, p)
        - time_derivative("HM", n, k, p)
        + time_derivative("DII", n, k, p)
    )


@runtime_check_array_sizes
def backward_euler(
    n: Float[Array, " N"],
    creation: Float[Array, " N"],
    destruction: Float[Array, " N"],
    dt: Float[Array, " N"],
) -> Float[Array, " N"]:
    """Partially implicit update, positive for non-negative inputs."""
    return (n + creation * dt) / (1.0 + destruction * dt)


def hydrogen_nuclei(n: dict[str, Float[Array, " N"]]) -> Float[Array, " N"]:
    return n["HI"] + n["HII"] + n["HM"] + 2.0 * (n["H2I"] + n["H2II"])


def energy_rate(
    token: FinalizedConfig,
    density: Float[Array, " N"],
    T: Float[Array, " N"],
    n: dict[str, Float[Array, " N"]],
    metal_density: Float[Array, " N"] | None,
    heating: dict[str, Float[Array, " N"]],
    redshift,
    k_photo: dict[str, Float[Array, ""]],
) -> Float[Array, " N"]:
    """Net heating minus cooling per unit mass, de/dt [code].

    Args:
        token: finalized configuration with rate tables
        density: physical gas density [code]
        T: temperature [K]
        n: physical number densities of all species, zero if not evolved
        metal_density: metal mass density, None without metal cooling
        heating: CGS volumetric [erg/s/cm^3] and specific [erg/s/g] heating fields
        redshift: current redshift, 0 without comoving coordinates
        k_photo: UV background rates from `photo_rates`
    """
    config = token.configuration
    units = token.units
    tables = token.tables
    level = config.primordial_chemistry_level
    lam = cooling_coefficients(tables, T)

    if level == PrimordialChemistry.TABULATED:
        n_H = config.hydrogen_fraction_by_mass * density
        cooling = lam["equilibrium"] * n_H**2
        heating_rate = jnp.zeros_like(density)
    else:
        n_H = hydrogen_nuclei(n)
        n_e = n["e"]
        cooling = n_e * (
            (lam["ceHI"] + lam["ciHI"]) * n["HI"]
            + lam["ciHeI"] * n["HeI"]
            + (lam["ceHeII"] + lam["ciHeII"] + lam["reHeII1"] + lam["reHeII2"]) * n["HeII"]
            + lam["reHII"] * n["HII"]
            + lam["reHeIII"] * n["HeIII"]
            + lam["brem"] * (n["HII"] + n["HeII"] + 4.0 * n["HeIII"])
        )
        if level >= PrimordialChemistry.NINE_SPECIES:
            cooling = cooling + lam["h2"] * n["HI"] * n["H2I"]
        if level >= PrimordialChemistry.TWELVE_SPECIES:
            cooling = cooling + lam["hd"] * n["HI"] * n["HDI"]
        if units.comoving_coordinates:
            T_cmb = constants.T_cmb_0 * (1.0 + redshift)
            compton = constants.compton_coefficient / units.photoheating_units
            cooling = cooling + compton * (1.0 + redshift) ** 4 * (T - T_cmb) * n_e
        heating_rate = (
            k_photo["piHI"] * n["HI"]
            + k_photo["piHeI"] * n["HeI"]
            + k_photo["piHeII"] * n["HeII"]
        )

    if metal_density is not None:
        metallicity = metal_density / density / config.solar_metal_fraction_by_mass
        heating_rate = heating_rate + (
            (lam["metal_heating"] - lam["metal_cooling"]) * n_H**2 * metallicity
        )

    edot = (heating_rate - cooling) / density
    if "volumetric_heating_rate" in heating:
        edot = edot + heating["volumetric_heating_rate"] / units.volumetric_heating_units / density
    if "specific_heating_rate" in heating:
        edot = edot + heating["specific_heating_rate"] / units.specific_heating_units
    return edot
