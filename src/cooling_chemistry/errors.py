"""Error taxonomy of the chemistry/cooling solver interface.

Configuration-time failures (`InvalidUnitsError`, `ConfigError`) are separated from
per-call failures (`MissingFieldError`, `SolverError`). The caller decides which of
them are fatal to a run.
"""

from typing import Literal, Sequence

SolverErrorReason = Literal[
    "unfinalized", "validation", "non_physical", "non_convergence", "inconsistent"
]


class CoolingChemistryError(Exception):
    """Base class for all errors raised by cooling_chemistry."""


class InvalidUnitsError(CoolingChemistryError, ValueError):
    """The unit system could not be constructed."""


class ConfigError(CoolingChemistryError, ValueError):
    """Finalization of a chemistry configuration failed; nothing was finalized."""


class FrozenConfigurationError(CoolingChemistryError, AttributeError):
    """A finalized chemistry configuration was modified."""


class MissingFieldError(CoolingChemistryError, KeyError):
    """A grid field state lacks arrays required by the active network."""

    def __init__(self, missing: Sequence[str]):
        self.missing = tuple(missing)
        super().__init__(f"Missing required fields: {list(self.missing)}")

    def __str__(self) -> str:
        # KeyError would otherwise repr() the message
        return self.args[0]


class SolverError(CoolingChemistryError, RuntimeError):
    """An evolve or query call failed; the grid field state is unchanged."""

    def __init__(self, message: str, reason: SolverErrorReason = "non_physical"):
        self.reason = reason
        super().__init__(f"[{reason}] {message}")
