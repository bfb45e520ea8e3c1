"""Creation and finalization of chemistry configurations.

`finalize` is all-or-nothing: either the configuration is frozen and a
`FinalizedConfig` returned, or a `ConfigError` is raised and the configuration is
left mutable and untouched.
"""

import json
import logging
import math
from pathlib import Path

import jax
import jax.numpy as jnp
import numpy as np
import pydantic

from cooling_chemistry import constants, reaction_rates
from cooling_chemistry.chemistry_types import (
    ChemistryConfiguration,
    FinalizedConfig,
    PrimordialChemistry,
    RateTables,
)
from cooling_chemistry.errors import ConfigError
from cooling_chemistry.rate_data_types import RateDataset
from cooling_chemistry.units import UnitSystem

logger = logging.getLogger(__name__)

RATE_NAMES = (
    reaction_rates.COLLISIONAL_RATES
    + reaction_rates.H2_RATES
    + reaction_rates.DEUTERIUM_RATES
)
THREE_BODY_RATES = ("k22",)
COOLING_NAMES = reaction_rates.PRIMORDIAL_COOLING + (
    "h2",
    "hd",
    "equilibrium",
    "metal_cooling",
    "metal_heating",
)
PRECISIONS = ("float32", "float64")


def set_defaults() -> ChemistryConfiguration:
    """Configuration with every physics switch off and default parameters."""
    return ChemistryConfiguration()


def required_data_blocks(config: ChemistryConfiguration) -> tuple[str, ...]:
    """Dataset blocks the configuration reads at finalization."""
    level = config.primordial_chemistry_level
    blocks: list[str] = []
    if level == PrimordialChemistry.TABULATED:
        blocks.append("equilibrium_cooling")
    if level >= PrimordialChemistry.SIX_SPECIES:
        blocks += ["collisional_rates", "primordial_cooling"]
    if level >= PrimordialChemistry.NINE_SPECIES:
        blocks += ["h2_rates", "h2_cooling"]
    if level >= PrimordialChemistry.TWELVE_SPECIES:
        blocks += ["deuterium_rates", "hd_cooling"]
    if config.metal_cooling_enabled:
        blocks.append("metal_cooling")
    if config.uv_background_enabled:
        blocks.append("uv_background")
    return tuple(blocks)


def _validate_parameters(
    config: ChemistryConfiguration, unit_system: UnitSystem, a_value: float
) -> None:
    if not isinstance(unit_system, UnitSystem):
        raise ConfigError(f"unit_system must be a UnitSystem, got {type(unit_system).__name__}")

    level = config.primordial_chemistry_level
    if isinstance(level, bool) or not isinstance(level, int) or level not in range(4):
        raise ConfigError(f"primordial_chemistry_level must be 0, 1, 2 or 3, got {level!r}")

    if config.precision not in PRECISIONS:
        raise ConfigError(f"precision must be one of {PRECISIONS}, got {config.precision!r}")

    if not 0.0 < config.hydrogen_fraction_by_mass <= 1.0:
        raise ConfigError(
            f"hydrogen_fraction_by_mass must be in (0, 1], got {config.hydrogen_fraction_by_mass}"
        )
    if not config.solar_metal_fraction_by_mass > 0.0:
        raise ConfigError("solar_metal_fraction_by_mass must be positive")
    if not config.gamma > 1.0:
        raise ConfigError(f"gamma must be > 1, got {config.gamma}")
    if config.deuterium_to_hydrogen_ratio < 0.0:
        raise ConfigError("deuterium_to_hydrogen_ratio must be non-negative")
    if not config.temperature_floor > 0.0:
        raise ConfigError("temperature_floor must be positive")
    if config.max_iterations < 1:
        raise ConfigError(f"max_iterations must be >= 1, got {config.max_iterations}")
    if config.n_temperature_bins < 2:
        raise ConfigError("n_temperature_bins must be >= 2")
    if not 0.0 < config.temperature_start < config.temperature_end:
        raise ConfigError("require 0 < temperature_start < temperature_end")

    if not isinstance(a_value, (int, float)) or not math.isfinite(a_value) or a_value <= 0.0:
        raise ConfigError(f"a_value must be a positive finite number, got {a_value!r}")
    if not unit_system.comoving_coordinates and a_value != 1.0:
        raise ConfigError(
            f"a_value must be 1 without comoving coordinates, got {a_value}"
        )


def load_rate_dataset(path: str | Path) -> RateDataset:
    """Read and validate the JSON dataset; any failure is a ConfigError."""
    path = Path(path)
    try:
        with path.open("r") as f:
            raw_data = json.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read rate data '{path}': {e}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"Rate data '{path}' is not valid JSON: {e}") from e

    try:
        return RateDataset.model_validate(raw_data)
    except pydantic.ValidationError as e:
        raise ConfigError(f"Rate data '{path}' does not match the schema:\n{e}") from e


def _resample(
    log_T: np.ndarray, log_T_data: np.ndarray, values: list[float] | None
) -> np.ndarray:
    """Linear interpolation in log10(T); missing blocks become zeros."""
    if values is None:
        return np.zeros_like(log_T)
    return np.interp(log_T, log_T_data, np.asarray(values, dtype=np.float64))


def build_rate_tables(
    dataset: RateDataset, config: ChemistryConfiguration, unit_system: UnitSystem
) -> RateTables:
    """Resample the dataset onto the configured temperature grid in code units.

    Rate coefficients are divided by `chemistry_rate_units`, cooling coefficients
    by `cooling_units`, photoheating rates by `photoheating_units`.
    """
    log_T = np.linspace(
        np.log10(config.temperature_start),
        np.log10(config.temperature_end),
        config.n_temperature_bins,
    )
    log_T_data = np.log10(np.asarray(dataset.temperature))

    rate_blocks = {}
    for block in (dataset.collisional_rates, dataset.h2_rates, dataset.deuterium_rates):
        rate_blocks.update(block or {})
    rates = []
    for name in RATE_NAMES:
        order = 3 if name in THREE_BODY_RATES else 2
        rates.append(
            _resample(log_T, log_T_data, rate_blocks.get(name))
            / unit_system.chemistry_rate_units(order)
        )

    primordial = dataset.primordial_cooling or {}
    equilibrium = dataset.equilibrium_cooling
    metals = dataset.metal_cooling
    cooling_values = {name: primordial.get(name) for name in reaction_rates.PRIMORDIAL_COOLING}
    cooling_values["h2"] = dataset.h2_cooling
    cooling_values["hd"] = dataset.hd_cooling
    cooling_values["equilibrium"] = equilibrium.cooling if equilibrium else None
    cooling_values["metal_cooling"] = metals.cooling if metals else None
    cooling_values["metal_heating"] = metals.heating if metals else None
    cooling = [
        _resample(log_T, log_T_data, cooling_values[name]) / unit_system.cooling_units
        for name in COOLING_NAMES
    ]

    if equilibrium is not None:
        mu = _resample(log_T, log_T_data, equilibrium.mean_molecular_weight)
    else:
        # fully neutral primordial gas
        X = config.hydrogen_fraction_by_mass
        mu = np.full_like(log_T, 4.0 / (1.0 + 3.0 * X))

    uvb = dataset.uv_background
    if uvb is not None:
        uvb_redshift = np.asarray(uvb.redshift)
        uvb_rates = [
            np.asarray(getattr(uvb, name))
            / (
                unit_system.photoheating_units
                if name.startswith("pi")
                else unit_system.chemistry_rate_units(1)
            )
            for name in reaction_rates.UVB_RATES
        ]
        redshift_on = uvb.redshift_on
    else:
        uvb_redshift = np.array([0.0, 1.0])
        uvb_rates = [np.zeros(2) for _ in reaction_rates.UVB_RATES]
        redshift_on = 0.0

    dtype = config.dtype
    return RateTables(
        rate_names=RATE_NAMES,
        cooling_names=COOLING_NAMES,
        uvb_names=reaction_rates.UVB_RATES,
        uvb_redshift_on=float(redshift_on),
        log_T=jnp.asarray(log_T, dtype=dtype),
        rates=jnp.asarray(np.stack(rates), dtype=dtype),
        cooling=jnp.asarray(np.stack(cooling), dtype=dtype),
        mean_molecular_weight=jnp.asarray(mu, dtype=dtype),
        uvb_redshift=jnp.asarray(uvb_redshift, dtype=dtype),
        uvb_rates=jnp.asarray(np.stack(uvb_rates), dtype=dtype),
    )


def _log_summary(config: ChemistryConfiguration, unit_system: UnitSystem, a_value: float):
    logger.info("Chemistry configuration:")
    for name, value in vars(config).items():
        if not name.startswith("_"):
            logger.info("  %-28s = %s", name, value)
    logger.info(
        "Units: density=%g g/cm^3, length=%g cm, time=%g s, a_units=%g, comoving=%s, a=%g",
        unit_system.density_units,
        unit_system.length_units,
        unit_system.time_units,
        unit_system.a_units,
        unit_system.comoving_coordinates,
        a_value,
    )
    logger.info("Temperature units: %g K", unit_system.temperature_units)


def _enable_precision(config: ChemistryConfiguration) -> None:
    # process-wide; only switched once every check has passed
    if config.precision == "float64":
        jax.config.update("jax_enable_x64", True)


def finalize(
    config: ChemistryConfiguration, unit_system: UnitSystem, a_value: float = 1.0
) -> FinalizedConfig:
    """Validate `config`, load and convert its data tables, and freeze it.

    Args:
        config: configuration to finalize; frozen on success
        unit_system: code units the tables are converted to
        a_value: initial expansion factor (1 for non-cosmological runs)

    Returns:
        The ready token required by every solver operation. Finalizing an already
        finalized configuration again with an equal unit system and a_value
        returns the same token.

    Raises:
        ConfigError: invalid parameter, missing or unreadable data, or an attempt
            to re-finalize against different units.
    """
    if config.is_finalized:
        token = config._token
        if token.units == unit_system and token.a_value == a_value:
            logger.debug("Configuration already finalized, reusing token")
            return token
        raise ConfigError(
            "Configuration is already finalized against a different unit system or a_value"
        )

    _validate_parameters(config, unit_system, a_value)

    dataset = None
    if config.use_chemistry:
        if config.rate_data_source is None:
            raise ConfigError("use_chemistry is set but rate_data_source is not")
        dataset = load_rate_dataset(config.rate_data_source)
        missing = dataset.missing_blocks(required_data_blocks(config))
        if missing:
            raise ConfigError(
                f"Rate data '{config.rate_data_source}' lacks blocks required by the "
                f"configuration: {missing}"
            )

    _enable_precision(config)
    tables = None
    if dataset is not None:
        tables = build_rate_tables(dataset, config, unit_system)
        logger.debug(
            "Loaded rate data '%s' v%d onto %d temperature bins",
            dataset.name,
            dataset.version,
            tables.n_bins,
        )

    token = FinalizedConfig(
        configuration=config, units=unit_system, a_value=float(a_value), tables=tables
    )
    object.__setattr__(config, "_token", token)
    object.__setattr__(config, "_frozen", True)

    if config.verbose:
        _log_summary(config, unit_system, a_value)
    logger.debug(
        "Finalized level %d network (metals=%s, T_units=%.3e K, T_cmb(z)=%.3f K)",
        config.primordial_chemistry_level,
        config.metal_cooling_enabled,
        unit_system.temperature_units,
        constants.T_cmb_0 * (1.0 + unit_system.redshift(a_value)),
    )
    return token
