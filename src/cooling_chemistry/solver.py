"""Solver invocation protocol: one evolve operation and four derived-quantity queries.

Every operation takes the ready token from `chemistry_utils.finalize`, the unit
system it was finalized with, the caller's `GridFieldState` and the current
expansion factor. Operations touch only the active region. A failing operation
raises `SolverError` and leaves every array of the state as it was: inputs are
gathered and checked, the new state is computed and checked, and only then
written back.
"""

import dataclasses
import logging
import math

import jax
import jax.numpy as jnp
import numpy as np

from cooling_chemistry import diagnose, grid_utils, numerics, source_terms
from cooling_chemistry import thermodynamic_relations
from cooling_chemistry.chemistry_types import FinalizedConfig, METAL_FIELD
from cooling_chemistry.errors import MissingFieldError, SolverError
from cooling_chemistry.grid_types import GridFieldState
from cooling_chemistry.units import UnitSystem

logger = logging.getLogger(__name__)


@dataclasses.dataclass(frozen=True)
class EvolveStatistics:
    n_subcycles: int
    """Subcycles taken by the slowest cell; 0 for a no-op."""
    n_cells: int
    """Active cells updated."""


@dataclasses.dataclass(frozen=True)
class _Inputs:
    density: np.ndarray
    internal_energy: np.ndarray
    species: dict[str, np.ndarray]
    metal_density: np.ndarray | None
    heating: dict[str, np.ndarray]


def _fail(message: str, reason: str) -> SolverError:
    logger.warning("solver call failed [%s]: %s", reason, message)
    return SolverError(message, reason=reason)


def _check_call(
    token: FinalizedConfig,
    units: UnitSystem,
    fields: GridFieldState,
    expansion_factor: float,
) -> None:
    if not isinstance(token, FinalizedConfig):
        raise _fail(
            "a finalized configuration is required, call chemistry_utils.finalize first",
            "unfinalized",
        )
    if units != token.units:
        raise _fail("unit system differs from the one used at finalization", "inconsistent")
    if fields.bound_token is not None and fields.bound_token is not token:
        raise _fail("grid field state is bound to a different configuration", "inconsistent")

    if not isinstance(expansion_factor, (int, float)) or not math.isfinite(expansion_factor):
        raise _fail(f"expansion_factor must be a finite number, got {expansion_factor!r}", "validation")
    if units.comoving_coordinates:
        if expansion_factor <= 0.0:
            raise _fail(f"expansion_factor must be positive, got {expansion_factor}", "validation")
    elif expansion_factor != 1.0:
        raise _fail(
            f"expansion_factor must be 1 without comoving coordinates, got {expansion_factor}",
            "validation",
        )

    try:
        fields.validate(token)
    except MissingFieldError as e:
        logger.warning("solver call failed [validation]: %s", e)
        raise SolverError(str(e), reason="validation") from e


def _gather_inputs(token: FinalizedConfig, fields: GridFieldState, writeable: bool) -> _Inputs:
    """Copy and check the active region of every array the call reads."""
    config = token.configuration
    dtype = np.dtype(config.precision)
    variant = token.variant
    species_fields = variant.species_fields if config.use_chemistry else ()
    metal = (METAL_FIELD,) if variant.metal_cooling else ()
    heating_fields = fields.heating_fields(config)

    for name in ("density", "internal_energy") + species_fields:
        grid_utils.check_array(fields, name, fields[name], dtype, writeable=writeable)
    for name in metal + heating_fields:
        grid_utils.check_array(fields, name, fields[name], dtype)

    values = grid_utils.gather_active(
        fields, ("density", "internal_energy") + species_fields + metal + heating_fields
    )
    heating = {name: values.pop(name) for name in heating_fields}
    diagnose.check_all(values, stage="input")
    diagnose.check_nan_inf(heating, stage="input")

    return _Inputs(
        density=values["density"],
        internal_energy=values["internal_energy"],
        species={name: values[name] for name in species_fields},
        metal_density=values.get(METAL_FIELD),
        heating=heating,
    )


def _to_device(inputs: _Inputs):
    species = {name: jnp.asarray(v) for name, v in inputs.species.items()}
    heating = {name: jnp.asarray(v) for name, v in inputs.heating.items()}
    metal = jnp.asarray(inputs.metal_density) if inputs.metal_density is not None else None
    return (
        jnp.asarray(inputs.density),
        jnp.asarray(inputs.internal_energy),
        species,
        metal,
        heating,
    )


def evolve_step(
    token: FinalizedConfig,
    units: UnitSystem,
    fields: GridFieldState,
    expansion_factor: float,
    dt: float,
) -> EvolveStatistics:
    """Advance species densities and internal energy of the active region by `dt`.

    Args:
        token: ready token of the configuration
        units: unit system the token was finalized with
        fields: grid field state, updated in place on success
        expansion_factor: current expansion factor, 1 for non-cosmological runs
        dt: timestep [code time units], positive

    Returns:
        EvolveStatistics of the call.

    Raises:
        SolverError: with reason `unfinalized`, `inconsistent`, `validation`,
            `non_physical` or `non_convergence`. The state is unchanged.
    """
    _check_call(token, units, fields, expansion_factor)
    if not isinstance(dt, (int, float)) or not math.isfinite(dt) or dt <= 0.0:
        raise _fail(f"dt must be finite and positive, got {dt!r}", "validation")

    config = token.configuration
    inputs = _gather_inputs(token, fields, writeable=True)
    if not config.use_chemistry:
        fields.bind(token)
        return EvolveStatistics(n_subcycles=0, n_cells=0)

    dtype = np.dtype(config.precision)
    density, energy, species, metal, heating = _to_device(inputs)
    result = numerics.integrate_jit(
        token,
        density,
        energy,
        species,
        metal,
        heating,
        jnp.asarray(units.density_scale(expansion_factor), dtype=dtype),
        jnp.asarray(units.redshift(expansion_factor), dtype=dtype),
        jnp.asarray(dt, dtype=dtype),
    )

    n_subcycles = int(result.n_subcycles)
    if not bool(result.converged):
        raise _fail(
            f"timestep dt={dt:.4e} not completed within max_iterations="
            f"{config.max_iterations} subcycles",
            "non_convergence",
        )

    updated = {name: np.asarray(v, dtype=dtype) for name, v in result.species.items()}
    updated["internal_energy"] = np.asarray(result.internal_energy, dtype=dtype)
    diagnose.check_nan_inf(updated, stage="output")
    diagnose.check_nonnegativity(updated, stage="output")

    grid_utils.scatter_active(fields, updated)
    fields.bind(token)
    diagnose.live_diagnostics(n_subcycles, fields.active_count, dt)
    return EvolveStatistics(n_subcycles=n_subcycles, n_cells=fields.active_count)


@jax.jit
def _thermal_quantities(token, density, internal_energy, species):
    n = source_terms.number_densities(species) if species else {}
    return thermodynamic_relations.thermal_state(token, density, internal_energy, n)


def _query_thermal(
    index: int,
    token: FinalizedConfig,
    units: UnitSystem,
    fields: GridFieldState,
    expansion_factor: float,
    out: np.ndarray | None,
) -> np.ndarray:
    _check_call(token, units, fields, expansion_factor)
    inputs = _gather_inputs(token, fields, writeable=False)
    dtype = np.dtype(token.configuration.precision)
    density, energy, species, _, _ = _to_device(inputs)
    values = np.asarray(_thermal_quantities(token, density, energy, species)[index], dtype=dtype)
    diagnose.check_nan_inf({"result": values}, stage="output")
    out = grid_utils.scatter_buffer(fields, values, out, dtype)
    fields.bind(token)
    return out


def query_temperature(
    token: FinalizedConfig,
    units: UnitSystem,
    fields: GridFieldState,
    expansion_factor: float,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Gas temperature [K] of every active cell.

    `out` may hold `active_count` values or the full grid volume; if None a
    full-volume array is allocated. The filled buffer is returned.
    """
    return _query_thermal(0, token, units, fields, expansion_factor, out)


def query_pressure(
    token: FinalizedConfig,
    units: UnitSystem,
    fields: GridFieldState,
    expansion_factor: float,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Thermal pressure [code units] of every active cell."""
    return _query_thermal(1, token, units, fields, expansion_factor, out)


def query_gamma(
    token: FinalizedConfig,
    units: UnitSystem,
    fields: GridFieldState,
    expansion_factor: float,
    out: np.ndarray | None = None,
) -> np.ndarray:
    """Effective adiabatic index of every active cell."""
    return _query_thermal(2, token, units, fields, expansion_factor, out)


def query_cooling_time(
    token: FinalizedConfig,
    units: UnitSystem,
    fields: GridFieldState,
    expansion_factor: float,
    out: np.ndarray | None = None,
    signed: bool = False,
) -> np.ndarray:
    """Cooling time e / |de/dt| [code time units] of every active cell.

    Cells with de/dt == 0 get +inf. With `signed=True` the result is e / (de/dt),
    negative where the gas cools.
    """
    _check_call(token, units, fields, expansion_factor)
    inputs = _gather_inputs(token, fields, writeable=False)
    config = token.configuration
    dtype = np.dtype(config.precision)

    if config.use_chemistry:
        density, energy, species, metal, heating = _to_device(inputs)
        edot = np.asarray(
            numerics.energy_time_derivative_jit(
                token,
                density,
                energy,
                species,
                metal,
                heating,
                jnp.asarray(units.density_scale(expansion_factor), dtype=dtype),
                jnp.asarray(units.redshift(expansion_factor), dtype=dtype),
            ),
            dtype=dtype,
        )
    else:
        edot = np.zeros_like(inputs.internal_energy)
    diagnose.check_nan_inf({"de/dt": edot}, stage="output")

    rate = edot if signed else np.abs(edot)
    values = np.full_like(inputs.internal_energy, np.inf)
    np.divide(inputs.internal_energy, rate, out=values, where=rate != 0.0)

    out = grid_utils.scatter_buffer(fields, values, out, dtype)
    fields.bind(token)
    return out
