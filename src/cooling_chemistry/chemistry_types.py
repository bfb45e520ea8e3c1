from __future__ import annotations

import enum
from dataclasses import dataclass, field
from pathlib import Path
from typing import Literal

import jax
import jax.numpy as jnp
import jaxtyping as jt
from jaxtyping import Array, Float

from cooling_chemistry.errors import FrozenConfigurationError
from cooling_chemistry.units import UnitSystem


BASE_FIELDS: tuple[str, ...] = (
    "density",
    "internal_energy",
    "x_velocity",
    "y_velocity",
    "z_velocity",
)
HEATING_FIELDS: tuple[str, ...] = ("volumetric_heating_rate", "specific_heating_rate")
METAL_FIELD = "metal_density"

SPECIES_ADDED_AT_LEVEL: dict[int, tuple[str, ...]] = {
    1: (
        "HI_density",
        "HII_density",
        "HeI_density",
        "HeII_density",
        "HeIII_density",
        "e_density",
    ),
    2: ("HM_density", "H2I_density", "H2II_density"),
    3: ("DI_density", "DII_density", "HDI_density"),
}

SPECIES_FIELDS: tuple[str, ...] = tuple(
    name for level in sorted(SPECIES_ADDED_AT_LEVEL) for name in SPECIES_ADDED_AT_LEVEL[level]
)

SPECIES_MASS: dict[str, float] = {
    "HI_density": 1.0,
    "HII_density": 1.0,
    "HeI_density": 4.0,
    "HeII_density": 4.0,
    "HeIII_density": 4.0,
    "e_density": 1.0,
    "HM_density": 1.0,
    "H2I_density": 2.0,
    "H2II_density": 2.0,
    "DI_density": 2.0,
    "DII_density": 2.0,
    "HDI_density": 3.0,
}
"""Particle mass in units of m_H used to turn mass densities into number densities.

The electron field already stores n_e * m_H, hence 1.
"""


class PrimordialChemistry(enum.IntEnum):
    """Tier of the primordial network; each level tracks a superset of the previous."""

    TABULATED = 0
    """No network; equilibrium cooling and mean molecular weight from tables."""
    SIX_SPECIES = 1
    """H, He and electrons."""
    NINE_SPECIES = 2
    """Adds H-, H2 and H2+."""
    TWELVE_SPECIES = 3
    """Adds D, D+ and HD."""


@dataclass(frozen=True)
class NetworkVariant:
    """One of the closed set of network shapes (level x metals on/off)."""

    level: PrimordialChemistry
    metal_cooling: bool

    @property
    def species_fields(self) -> tuple[str, ...]:
        return tuple(
            name
            for level in range(1, int(self.level) + 1)
            for name in SPECIES_ADDED_AT_LEVEL[level]
        )

    @property
    def required_fields(self) -> tuple[str, ...]:
        """Arrays a grid field state must carry for this variant."""
        metal = (METAL_FIELD,) if self.metal_cooling else ()
        return BASE_FIELDS + self.species_fields + metal

    @property
    def has_network(self) -> bool:
        return self.level >= PrimordialChemistry.SIX_SPECIES


def _freeze_guard_setattr(self, name, value):
    if self.__dict__.get("_frozen", False):
        raise FrozenConfigurationError(
            f"ChemistryConfiguration is finalized; cannot set '{name}'."
        )
    object.__setattr__(self, name, value)


@dataclass(unsafe_hash=True)
class ChemistryConfiguration:
    """Switches and parameters selecting the active network and physics terms.

    Mutable until passed to `chemistry_utils.finalize`, read-only afterwards.
    Instances are normally created with `chemistry_utils.set_defaults()`.
    """

    use_chemistry: bool = False
    """Master switch; when False evolve calls are no-ops."""
    radiative_cooling_enabled: bool = False
    primordial_chemistry_level: int = 0
    """0-3, see `PrimordialChemistry`."""
    metal_cooling_enabled: bool = False
    uv_background_enabled: bool = False
    hydrogen_fraction_by_mass: float = 0.76
    solar_metal_fraction_by_mass: float = 0.01295
    rate_data_source: str | Path | None = None
    """Path to the JSON rate/cooling dataset."""

    gamma: float = 5.0 / 3.0
    """Adiabatic index of monatomic gas."""
    deuterium_to_hydrogen_ratio: float = 2.0 * 3.4e-5
    """By mass."""
    use_volumetric_heating_rate: bool = True
    use_specific_heating_rate: bool = True
    three_body_rate: bool = True
    """Include three-body H2 formation (level >= 2)."""
    cmb_temperature_floor: bool = True
    """Cooling never pushes comoving gas below T_CMB(z)."""
    temperature_floor: float = 1.0
    """[K]"""
    max_iterations: int = 10000
    """Subcycles allowed per evolve call before non-convergence is reported."""
    n_temperature_bins: int = 600
    temperature_start: float = 1.0
    """[K]"""
    temperature_end: float = 1.0e9
    """[K]"""
    precision: Literal["float32", "float64"] = "float64"
    verbose: bool = False

    _frozen: bool = field(default=False, init=False, repr=False, compare=False)
    _token: "FinalizedConfig | None" = field(
        default=None, init=False, repr=False, compare=False
    )

    __setattr__ = _freeze_guard_setattr

    @property
    def is_finalized(self) -> bool:
        return self._frozen

    @property
    def variant(self) -> NetworkVariant:
        return NetworkVariant(
            level=PrimordialChemistry(self.primordial_chemistry_level),
            metal_cooling=bool(self.metal_cooling_enabled),
        )

    @property
    def dtype(self):
        return jnp.float32 if self.precision == "float32" else jnp.float64


@jax.tree_util.register_dataclass
@dataclass(frozen=True)
class RateTables:
    """Rate and cooling tables on a uniform log10(T) grid, in code units.

    Blocks the configuration does not use are stored as zeros so that the
    table layout is the same for every network variant.
    """

    rate_names: tuple[str, ...] = field(metadata=dict(static=True))
    cooling_names: tuple[str, ...] = field(metadata=dict(static=True))
    uvb_names: tuple[str, ...] = field(metadata=dict(static=True))
    uvb_redshift_on: float = field(metadata=dict(static=True))

    log_T: Float[jt.Array, " n_bins"]
    rates: Float[jt.Array, "n_rates n_bins"]
    cooling: Float[jt.Array, "n_cooling n_bins"]
    mean_molecular_weight: Float[jt.Array, " n_bins"]
    uvb_redshift: Float[jt.Array, " n_redshifts"]
    uvb_rates: Float[jt.Array, "n_uvb n_redshifts"]

    @property
    def n_bins(self) -> int:
        return self.log_T.shape[0]

    def rate(self, name: str) -> Float[Array, " n_bins"]:
        return self.rates[self.rate_names.index(name)]

    def cooling_rate(self, name: str) -> Float[Array, " n_bins"]:
        return self.cooling[self.cooling_names.index(name)]


@jax.tree_util.register_dataclass
@dataclass(frozen=True)
class FinalizedConfig:
    """Ready token produced by `chemistry_utils.finalize`.

    Every solver operation requires one. Switches and units are static for JIT,
    tables are traced.
    """

    configuration: ChemistryConfiguration = field(metadata=dict(static=True))
    units: UnitSystem = field(metadata=dict(static=True))
    a_value: float = field(metadata=dict(static=True))
    tables: RateTables | None = None

    @property
    def variant(self) -> NetworkVariant:
        return self.configuration.variant

    @property
    def dtype(self):
        return self.configuration.dtype
