"""Non-equilibrium primordial chemistry and radiative cooling for grid codes.

Key components:
- units: code-to-CGS unit system
- chemistry_types / chemistry_utils: configuration, finalization into a ready token
- grid_types / grid_utils: per-cell field state and required-field table
- solver: evolve and query operations
- rate_data_utils: reference rate and cooling dataset
"""

from .chemistry_types import (
    ChemistryConfiguration,
    FinalizedConfig,
    NetworkVariant,
    PrimordialChemistry,
)
from .chemistry_utils import finalize, set_defaults
from .errors import (
    ConfigError,
    CoolingChemistryError,
    FrozenConfigurationError,
    InvalidUnitsError,
    MissingFieldError,
    SolverError,
)
from .grid_types import GridFieldState
from .grid_utils import allocate_fields, required_fields
from .rate_data_utils import write_reference_rate_data
from .solver import (
    EvolveStatistics,
    evolve_step,
    query_cooling_time,
    query_gamma,
    query_pressure,
    query_temperature,
)
from .units import UnitSystem

__all__ = [
    "ChemistryConfiguration",
    "FinalizedConfig",
    "NetworkVariant",
    "PrimordialChemistry",
    "finalize",
    "set_defaults",
    "ConfigError",
    "CoolingChemistryError",
    "FrozenConfigurationError",
    "InvalidUnitsError",
    "MissingFieldError",
    "SolverError",
    "GridFieldState",
    "allocate_fields",
    "required_fields",
    "write_reference_rate_data",
    "EvolveStatistics",
    "evolve_step",
    "query_cooling_time",
    "query_gamma",
    "query_pressure",
    "query_temperature",
    "UnitSystem",
]
