"""Schema of the rate and cooling dataset read by `chemistry_utils.finalize`.

The dataset is a single JSON document. Every tabulated quantity is sampled on the
common `temperature` grid except the UV background, which is sampled in redshift.
Blocks a configuration does not need may be omitted.
"""

from __future__ import annotations

import math

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from cooling_chemistry.reaction_rates import (
    COLLISIONAL_RATES,
    DEUTERIUM_RATES,
    H2_RATES,
    PRIMORDIAL_COOLING,
    UVB_RATES,
)

TemperatureTable = list[float]


def _check_names(block: dict[str, list[float]], expected: tuple[str, ...], label: str):
    missing = [name for name in expected if name not in block]
    if missing:
        raise ValueError(f"{label} is missing entries: {missing}")


def _check_length(values: list[float], n: int, label: str):
    if len(values) != n:
        raise ValueError(f"{label} has {len(values)} samples, expected {n}")
    if not all(math.isfinite(v) for v in values):
        raise ValueError(f"{label} contains non-finite values")


class EquilibriumCooling(BaseModel):
    """Cooling per n_H^2 [erg cm^3/s] and mean molecular weight of gas in
    collisional ionization equilibrium, used when no network is evolved."""

    model_config = ConfigDict(extra="forbid")

    cooling: TemperatureTable
    mean_molecular_weight: TemperatureTable


class MetalCooling(BaseModel):
    """Metal line cooling and heating per n_H^2 [erg cm^3/s] at solar metallicity."""

    model_config = ConfigDict(extra="forbid")

    cooling: TemperatureTable
    heating: TemperatureTable


class UVBackground(BaseModel):
    """Photoionization [1/s] and photoheating [erg/s] rates per ion versus redshift."""

    model_config = ConfigDict(extra="forbid")

    redshift: list[float] = Field(..., min_length=2)
    k24: list[float]
    k25: list[float]
    k26: list[float]
    piHI: list[float]
    piHeI: list[float]
    piHeII: list[float]
    redshift_on: float = Field(..., ge=0.0)

    @model_validator(mode="after")
    def _check_tables(self) -> "UVBackground":
        if any(b <= a for a, b in zip(self.redshift, self.redshift[1:])):
            raise ValueError("uv_background.redshift must be strictly ascending")
        for name in UVB_RATES:
            _check_length(getattr(self, name), len(self.redshift), f"uv_background.{name}")
        return self


class RateDataset(BaseModel):
    """Top level of the dataset document."""

    model_config = ConfigDict(extra="forbid")

    name: str
    version: int = Field(..., ge=1)
    temperature: TemperatureTable = Field(..., min_length=2)
    """[K], strictly ascending."""

    collisional_rates: dict[str, list[float]] | None = None
    h2_rates: dict[str, list[float]] | None = None
    deuterium_rates: dict[str, list[float]] | None = None
    primordial_cooling: dict[str, list[float]] | None = None
    h2_cooling: list[float] | None = None
    hd_cooling: list[float] | None = None
    equilibrium_cooling: EquilibriumCooling | None = None
    metal_cooling: MetalCooling | None = None
    uv_background: UVBackground | None = None

    @field_validator("temperature")
    @classmethod
    def _check_temperature(cls, value: list[float]) -> list[float]:
        if value[0] <= 0.0:
            raise ValueError("temperature must be positive")
        if any(b <= a for a, b in zip(value, value[1:])):
            raise ValueError("temperature must be strictly ascending")
        return value

    @model_validator(mode="after")
    def _check_blocks(self) -> "RateDataset":
        n = len(self.temperature)
        named_blocks = (
            ("collisional_rates", COLLISIONAL_RATES),
            ("h2_rates", H2_RATES),
            ("deuterium_rates", DEUTERIUM_RATES),
            ("primordial_cooling", PRIMORDIAL_COOLING),
        )
        for label, expected in named_blocks:
            block = getattr(self, label)
            if block is None:
                continue
            _check_names(block, expected, label)
            for name, values in block.items():
                _check_length(values, n, f"{label}.{name}")

        for label in ("h2_cooling", "hd_cooling"):
            values = getattr(self, label)
            if values is not None:
                _check_length(values, n, label)

        if self.equilibrium_cooling is not None:
            _check_length(self.equilibrium_cooling.cooling, n, "equilibrium_cooling.cooling")
            _check_length(
                self.equilibrium_cooling.mean_molecular_weight,
                n,
                "equilibrium_cooling.mean_molecular_weight",
            )
        if self.metal_cooling is not None:
            _check_length(self.metal_cooling.cooling, n, "metal_cooling.cooling")
            _check_length(self.metal_cooling.heating, n, "metal_cooling.heating")
        return self

    def missing_blocks(self, required: tuple[str, ...]) -> list[str]:
        return [label for label in required if getattr(self, label) is None]
