"""Conversion between simulation (code) units and CGS."""

import dataclasses
import math

from cooling_chemistry import constants
from cooling_chemistry.errors import InvalidUnitsError


@dataclasses.dataclass(frozen=True)
class UnitSystem:
    """Code-to-CGS conversion factors for one run.

    Multiplying a code value by the matching factor gives CGS. The velocity unit is
    derived and always equals `length_units / time_units`.
    """

    density_units: float
    """[g/cm^3]"""
    length_units: float
    """[cm]"""
    time_units: float
    """[s]"""
    a_units: float = 1.0
    """Units of the expansion factor."""
    comoving_coordinates: bool = False
    """True for cosmological (comoving) runs."""
    velocity_units: float | None = None
    """Optional; must equal length_units / time_units when given."""

    def __post_init__(self):
        for name in ("density_units", "length_units", "time_units", "a_units"):
            value = getattr(self, name)
            if not isinstance(value, (int, float)) or not math.isfinite(value):
                raise InvalidUnitsError(f"{name} must be a finite number, got {value!r}")
            if value <= 0.0:
                raise InvalidUnitsError(f"{name} must be positive, got {value}")

        derived = self.length_units / self.time_units
        if self.velocity_units is None:
            object.__setattr__(self, "velocity_units", derived)
        elif self.velocity_units != derived:
            raise InvalidUnitsError(
                f"velocity_units ({self.velocity_units}) must equal "
                f"length_units / time_units ({derived})"
            )

    @property
    def energy_units(self) -> float:
        """Specific energy [erg/g] per code unit."""
        return (self.a_units * self.velocity_units) ** 2

    @property
    def temperature_units(self) -> float:
        """[K] per code unit of (pressure / number density)."""
        return constants.mh * self.energy_units / constants.kboltz

    @property
    def pressure_units(self) -> float:
        """[dyn/cm^2]"""
        return self.density_units * self.energy_units

    @property
    def number_density_units(self) -> float:
        """[1/cm^3] per code density in units of m_H."""
        return self.density_units / constants.mh

    @property
    def cooling_units(self) -> float:
        """[erg cm^3/s] per code unit of a two-body cooling coefficient."""
        return constants.mh**2 * self.energy_units / (self.density_units * self.time_units)

    def chemistry_rate_units(self, order: int) -> float:
        """CGS value of one code unit of a rate coefficient.

        order=1: photo rates [1/s], order=2: [cm^3/s], order=3: [cm^6/s].
        """
        if order not in (1, 2, 3):
            raise ValueError(f"order must be 1, 2 or 3, got {order}")
        return 1.0 / (self.time_units * self.number_density_units ** (order - 1))

    def density_scale(self, a_value: float) -> float:
        """Factor converting code densities to physical code densities."""
        if not self.comoving_coordinates:
            return 1.0
        return 1.0 / (a_value * self.a_units) ** 3

    def redshift(self, a_value: float) -> float:
        if not self.comoving_coordinates:
            return 0.0
        return 1.0 / (a_value * self.a_units) - 1.0

    @property
    def photoheating_units(self) -> float:
        """[erg/s] per code unit of a per-particle heating (or Compton) coefficient."""
        return constants.mh * self.energy_units / self.time_units

    @property
    def volumetric_heating_units(self) -> float:
        """[erg/s/cm^3]"""
        return self.density_units * self.energy_units / self.time_units

    @property
    def specific_heating_units(self) -> float:
        """[erg/s/g]"""
        return self.energy_units / self.time_units
