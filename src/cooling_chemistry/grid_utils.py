"""Helpers for creating grid field states and moving data in and out of the
active region."""

from typing import Iterable, Sequence

import numpy as np

from cooling_chemistry.chemistry_types import (
    ChemistryConfiguration,
    FinalizedConfig,
    HEATING_FIELDS,
    NetworkVariant,
    PrimordialChemistry,
)
from cooling_chemistry.errors import SolverError
from cooling_chemistry.grid_types import GridFieldState


def required_fields(
    config: ChemistryConfiguration | FinalizedConfig | NetworkVariant,
) -> tuple[str, ...]:
    """Field names a grid field state must hold for the configuration's variant."""
    variant = config if isinstance(config, NetworkVariant) else config.variant
    return variant.required_fields


def required_fields_table() -> dict[tuple[int, bool], tuple[str, ...]]:
    """Required fields of every (level, metal_cooling) network variant."""
    return {
        (int(level), metals): NetworkVariant(level, metals).required_fields
        for level in PrimordialChemistry
        for metals in (False, True)
    }


def allocate_fields(
    config: ChemistryConfiguration | FinalizedConfig,
    dimension: Sequence[int],
    active_start: Sequence[int] | None = None,
    active_end: Sequence[int] | None = None,
    include_heating: bool = False,
) -> GridFieldState:
    """Zero-filled grid field state with exactly the arrays the variant needs.

    Args:
        config: configuration (or its ready token) selecting the variant and dtype
        dimension: grid shape including ghost zones
        active_start: first active index per axis, default 0
        active_end: last active index per axis (inclusive), default dimension - 1
        include_heating: also allocate the volumetric and specific heating arrays

    Returns:
        A state whose arrays are flat, Fortran ordered and of the configured dtype.
    """
    if isinstance(config, FinalizedConfig):
        config = config.configuration
    dimension = tuple(int(d) for d in dimension)
    rank = len(dimension)
    active_start = tuple(active_start) if active_start is not None else (0,) * rank
    active_end = (
        tuple(active_end) if active_end is not None else tuple(d - 1 for d in dimension)
    )

    state = GridFieldState(
        rank=rank, dimension=dimension, active_start=active_start, active_end=active_end
    )
    names = required_fields(config) + (HEATING_FIELDS if include_heating else ())
    for name in names:
        state[name] = np.zeros(state.volume, dtype=np.dtype(config.precision))
    return state


def active_slices(state: GridFieldState) -> tuple[slice, ...]:
    return tuple(slice(lo, hi + 1) for lo, hi in zip(state.active_start, state.active_end))


def _grid_view(state: GridFieldState, array: np.ndarray) -> np.ndarray:
    if array.ndim == 1:
        return array.reshape(state.dimension, order="F")
    return array


def check_array(
    state: GridFieldState, name: str, array: np.ndarray, dtype: np.dtype, writeable: bool = False
) -> None:
    """SolverError unless `array` fits the grid layout and precision."""
    if not isinstance(array, np.ndarray):
        raise SolverError(
            f"field '{name}' must be a numpy array, got {type(array).__name__}", reason="validation"
        )
    if array.shape not in ((state.volume,), state.dimension):
        raise SolverError(
            f"field '{name}' has shape {array.shape}, expected ({state.volume},) or "
            f"{state.dimension}",
            reason="validation",
        )
    if array.dtype != dtype:
        raise SolverError(
            f"field '{name}' has dtype {array.dtype}, configured precision is {dtype}",
            reason="validation",
        )
    if writeable and not array.flags.writeable:
        raise SolverError(f"field '{name}' is read-only", reason="validation")


def gather_active(state: GridFieldState, names: Iterable[str]) -> dict[str, np.ndarray]:
    """Copies of the active region of each named field, flattened in Fortran order."""
    slices = active_slices(state)
    return {
        name: np.array(_grid_view(state, state[name])[slices]).ravel(order="F")
        for name in names
    }


def scatter_active(state: GridFieldState, values: dict[str, np.ndarray]) -> None:
    """Write flat active-region values back into the state arrays in place."""
    slices = active_slices(state)
    shape = state.active_shape
    for name, flat in values.items():
        view = _grid_view(state, state[name])
        view[slices] = np.asarray(flat, dtype=view.dtype).reshape(shape, order="F")


def scatter_buffer(
    state: GridFieldState, values: np.ndarray, out: np.ndarray | None, dtype: np.dtype
) -> np.ndarray:
    """Place per-active-cell query results into the caller's buffer.

    A buffer of length `active_count` receives the values directly; a buffer of the
    full grid volume (flat or shaped) receives them at the active cells only.
    `None` allocates a flat full-volume buffer filled with zeros.
    """
    if out is None:
        out = np.zeros(state.volume, dtype=dtype)
    if not isinstance(out, np.ndarray) or out.dtype != dtype:
        raise SolverError(
            f"output buffer must be a numpy array of dtype {dtype}", reason="validation"
        )

    if out.shape == (state.active_count,) and state.active_count != state.volume:
        out[:] = values
    elif out.shape in ((state.volume,), state.dimension):
        view = _grid_view(state, out)
        view[active_slices(state)] = values.reshape(state.active_shape, order="F")
    else:
        raise SolverError(
            f"output buffer has shape {out.shape}, expected ({state.active_count},) or "
            f"({state.volume},)",
            reason="validation",
        )
    return out
