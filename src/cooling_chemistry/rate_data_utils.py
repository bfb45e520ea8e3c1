"""Generation of the reference rate and cooling dataset."""

import json
import logging
from pathlib import Path

import numpy as np

from cooling_chemistry import reaction_rates
from cooling_chemistry.rate_data_types import (
    EquilibriumCooling,
    MetalCooling,
    RateDataset,
    UVBackground,
)

logger = logging.getLogger(__name__)

REFERENCE_NAME = "primordial_reference"
REFERENCE_VERSION = 1


def _as_lists(block: dict[str, np.ndarray]) -> dict[str, list[float]]:
    return {name: values.tolist() for name, values in block.items()}


def build_reference_rate_data(
    temperature_start: float = 1.0,
    temperature_end: float = 1.0e9,
    n_temperatures: int = 181,
    redshift_end: float = 15.0,
    n_redshifts: int = 61,
    redshift_on: float = 8.5,
    hydrogen_fraction: float = 0.76,
) -> RateDataset:
    """Tabulate the analytic fits of `reaction_rates` into a dataset.

    Args:
        temperature_start: lowest temperature [K]
        temperature_end: highest temperature [K]
        n_temperatures: number of log-spaced temperature samples
        redshift_end: highest redshift of the UV background table
        n_redshifts: number of linearly spaced redshift samples
        redshift_on: redshift at which the UV background switches on
        hydrogen_fraction: hydrogen mass fraction used for the equilibrium table

    Returns:
        The dataset, already validated.
    """
    T = np.logspace(np.log10(temperature_start), np.log10(temperature_end), n_temperatures)
    z = np.linspace(0.0, redshift_end, n_redshifts)

    equilibrium_cooling, mu = reaction_rates.collisional_equilibrium(T, hydrogen_fraction)
    metal_cooling = reaction_rates.metal_cooling(T)
    # photoelectric heating of dust-bearing gas, only below 1e4 K
    metal_heating = np.where(T < 1e4, 1e-27, 0.0)
    uvb = reaction_rates.uv_background(z, redshift_on)

    return RateDataset(
        name=REFERENCE_NAME,
        version=REFERENCE_VERSION,
        temperature=T.tolist(),
        collisional_rates=_as_lists(reaction_rates.collisional_rates(T)),
        h2_rates=_as_lists(reaction_rates.h2_rates(T)),
        deuterium_rates=_as_lists(reaction_rates.deuterium_rates(T)),
        primordial_cooling=_as_lists(reaction_rates.primordial_cooling(T)),
        h2_cooling=reaction_rates.h2_cooling(T).tolist(),
        hd_cooling=reaction_rates.hd_cooling(T).tolist(),
        equilibrium_cooling=EquilibriumCooling(
            cooling=equilibrium_cooling.tolist(), mean_molecular_weight=mu.tolist()
        ),
        metal_cooling=MetalCooling(
            cooling=metal_cooling.tolist(), heating=metal_heating.tolist()
        ),
        uv_background=UVBackground(
            redshift=z.tolist(), redshift_on=redshift_on, **_as_lists(uvb)
        ),
    )


def write_reference_rate_data(path: str | Path, **kwargs) -> Path:
    """Write the reference dataset as JSON and return its path.

    Keyword arguments are forwarded to `build_reference_rate_data`.
    """
    path = Path(path)
    dataset = build_reference_rate_data(**kwargs)
    with path.open("w") as f:
        json.dump(dataset.model_dump(exclude_none=True), f)
    logger.info(
        "Wrote rate dataset '%s' v%d (%d temperatures) to %s",
        dataset.name,
        dataset.version,
        len(dataset.temperature),
        path,
    )
    return path
