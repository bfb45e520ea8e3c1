from __future__ import annotations

import math
from dataclasses import dataclass, field

import numpy as np

from cooling_chemistry.chemistry_types import (
    ChemistryConfiguration,
    FinalizedConfig,
    HEATING_FIELDS,
    NetworkVariant,
)
from cooling_chemistry.errors import MissingFieldError


@dataclass
class GridFieldState:
    """Per-cell fields of one structured grid block, owned by the caller.

    Each array holds `product(dimension)` values, either flat in Fortran order
    (first axis fastest) or with shape `dimension`. Only the active region
    `active_start..active_end` (inclusive, zero-based) is ever read or written;
    the rest are ghost zones. Evolve calls overwrite the species and energy
    arrays of the active region in place.
    """

    rank: int
    dimension: tuple[int, ...]
    active_start: tuple[int, ...]
    active_end: tuple[int, ...]
    fields: dict[str, np.ndarray] = field(default_factory=dict)

    _bound_token: FinalizedConfig | None = field(
        default=None, init=False, repr=False, compare=False
    )

    def __post_init__(self):
        self.dimension = tuple(int(d) for d in self.dimension)
        self.active_start = tuple(int(i) for i in self.active_start)
        self.active_end = tuple(int(i) for i in self.active_end)

        if self.rank not in (1, 2, 3):
            raise ValueError(f"rank must be 1, 2 or 3, got {self.rank}")
        for name in ("dimension", "active_start", "active_end"):
            if len(getattr(self, name)) != self.rank:
                raise ValueError(f"{name} must have {self.rank} entries")
        for axis, (n, lo, hi) in enumerate(
            zip(self.dimension, self.active_start, self.active_end)
        ):
            if n < 1:
                raise ValueError(f"dimension[{axis}] must be positive, got {n}")
            if not 0 <= lo <= hi < n:
                raise ValueError(
                    f"active region [{lo}, {hi}] on axis {axis} outside [0, {n - 1}]"
                )

    @property
    def volume(self) -> int:
        return math.prod(self.dimension)

    @property
    def active_shape(self) -> tuple[int, ...]:
        return tuple(hi - lo + 1 for lo, hi in zip(self.active_start, self.active_end))

    @property
    def active_count(self) -> int:
        return math.prod(self.active_shape)

    @property
    def bound_token(self) -> FinalizedConfig | None:
        """Ready token of the first successful solver call on this state."""
        return self._bound_token

    def bind(self, token: FinalizedConfig) -> None:
        """Bind the state to `token`; a state stays bound to its first token."""
        if self._bound_token is None:
            self._bound_token = token

    def __contains__(self, name: str) -> bool:
        return name in self.fields

    def __getitem__(self, name: str) -> np.ndarray:
        if name not in self.fields:
            raise MissingFieldError([name])
        return self.fields[name]

    def __setitem__(self, name: str, array: np.ndarray) -> None:
        self.fields[name] = array

    def missing_fields(
        self, config: ChemistryConfiguration | FinalizedConfig | NetworkVariant
    ) -> list[str]:
        """Required field names absent from this state, in table order."""
        variant = config if isinstance(config, NetworkVariant) else config.variant
        return [name for name in variant.required_fields if name not in self.fields]

    def validate(self, config: ChemistryConfiguration | FinalizedConfig | NetworkVariant) -> None:
        """Raise MissingFieldError naming every missing required field."""
        missing = self.missing_fields(config)
        if missing:
            raise MissingFieldError(missing)

    def heating_fields(self, config: ChemistryConfiguration) -> tuple[str, ...]:
        """Heating-rate arrays present and enabled by the configuration."""
        enabled = (config.use_volumetric_heating_rate, config.use_specific_heating_rate)
        return tuple(
            name for name, on in zip(HEATING_FIELDS, enabled) if on and name in self.fields
        )
