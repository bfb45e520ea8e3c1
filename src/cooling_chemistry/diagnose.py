"""Physicality checks on solver inputs and outputs.

Every check raises `SolverError`; values are never clamped to make them pass.
"""

import logging
from typing import Mapping

import jaxtyping as jt
import numpy as np
from beartype import beartype

from cooling_chemistry.errors import SolverError

logger = logging.getLogger(__name__)


def runtime_check_array_sizes(f):
    """Decorator to enforce jaxtyping shape annotations at runtime."""
    return jt.jaxtyped(typechecker=beartype)(f)


def check_nan_inf(values: Mapping[str, np.ndarray], stage: str = "input") -> None:
    for name, array in values.items():
        if np.any(np.isnan(array)):
            raise SolverError(f"NaN values present in {stage} field '{name}'.")
        if np.any(np.isinf(array)):
            raise SolverError(f"Inf values present in {stage} field '{name}'.")


def check_nonnegativity(values: Mapping[str, np.ndarray], stage: str = "input") -> None:
    for name, array in values.items():
        if np.any(array < 0.0):
            n_bad = int(np.count_nonzero(array < 0.0))
            raise SolverError(f"{stage} field '{name}' negative in {n_bad} cell(s).")


def check_positive_density(density: np.ndarray) -> None:
    if np.any(density <= 0.0):
        raise SolverError("Mass density not positive.")


def check_positive_energy(internal_energy: np.ndarray) -> None:
    if np.any(internal_energy <= 0.0):
        n_bad = int(np.count_nonzero(internal_energy <= 0.0))
        raise SolverError(f"Internal energy not positive in {n_bad} cell(s).")


def check_all(values: Mapping[str, np.ndarray], stage: str = "input") -> None:
    """NaN/Inf, non-negativity and, if present, strictly positive density and energy."""
    check_nan_inf(values, stage)
    check_nonnegativity(values, stage)
    if "density" in values:
        check_positive_density(values["density"])
    if "internal_energy" in values:
        check_positive_energy(values["internal_energy"])


def live_diagnostics(n_subcycles: int, n_cells: int, dt: float) -> None:
    logger.debug("evolved %d cell(s) over dt=%.4e in %d subcycle(s)", n_cells, dt, n_subcycles)
