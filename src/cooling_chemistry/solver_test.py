"""Tests of the evolve and query operations on grid field states."""

import jax
import numpy as np
import pytest

from cooling_chemistry import chemistry_utils, grid_utils, solver
from cooling_chemistry.errors import MissingFieldError, SolverError
from cooling_chemistry.units import UnitSystem

jax.config.update("jax_enable_x64", True)

QUERIES = (
    solver.query_temperature,
    solver.query_pressure,
    solver.query_gamma,
    solver.query_cooling_time,
)

HYDROGEN_FIELDS = ("HI_density", "HII_density", "HM_density", "H2I_density", "H2II_density")
IONIZED_FIELDS = ("HII_density", "HeII_density", "HeIII_density", "e_density")


def _snapshot(state):
    return {name: array.copy() for name, array in state.fields.items()}


def _assert_unchanged(state, before):
    for name, array in before.items():
        if not np.array_equal(state[name], array):
            raise ValueError(f"Field {name} was modified.")


def test_single_cell_full_network(make_config, make_state, example_units):
    """Level 3 with metals and UV background over one Myr, as in the example program."""
    token = chemistry_utils.finalize(
        make_config(level=3, metals=True, uv_background_enabled=True), example_units
    )
    state = make_state(token)
    hydrogen_before = sum(state[name][0] for name in HYDROGEN_FIELDS)
    HII_before = state["HII_density"][0]
    dt = 3.15e13 / example_units.time_units

    stats = solver.evolve_step(token, example_units, state, 1.0, dt)

    assert stats.n_cells == 1
    assert stats.n_subcycles > 0
    assert state.bound_token is token
    hydrogen_after = sum(state[name][0] for name in HYDROGEN_FIELDS)
    assert hydrogen_after == pytest.approx(hydrogen_before, rel=1e-6)
    assert state["HII_density"][0] > HII_before
    for name in grid_utils.required_fields(token):
        assert np.all(np.isfinite(state[name]))
        assert np.all(state[name] >= 0.0)

    cooling_time = solver.query_cooling_time(token, example_units, state, 1.0)
    temperature = solver.query_temperature(token, example_units, state, 1.0)
    pressure = solver.query_pressure(token, example_units, state, 1.0)
    gamma = solver.query_gamma(token, example_units, state, 1.0)

    assert np.isfinite(cooling_time[0]) and cooling_time[0] > 0.0
    assert np.isfinite(temperature[0]) and temperature[0] > 0.0
    assert np.isfinite(pressure[0]) and pressure[0] > 0.0
    assert 1.0 < gamma[0] <= 5.0 / 3.0 + 1e-12


def test_queries_are_idempotent(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=2, metals=True), example_units)
    state = make_state(token, dimension=(3, 2))
    before = _snapshot(state)

    for query in QUERIES:
        first = query(token, example_units, state, 1.0)
        second = query(token, example_units, state, 1.0)
        assert np.array_equal(first, second)

    _assert_unchanged(state, before)


def test_temperature_matches_ideal_gas(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token, temperature=1000.0)

    T = solver.query_temperature(token, example_units, state, 1.0)
    p = solver.query_pressure(token, example_units, state, 1.0)

    density = state["density"][0]
    n = (
        state["HI_density"][0]
        + state["HII_density"][0]
        + state["e_density"][0]
        + (state["HeI_density"][0] + state["HeII_density"][0] + state["HeIII_density"][0]) / 4.0
    )
    assert p[0] == pytest.approx((5.0 / 3.0 - 1.0) * density * state["internal_energy"][0])
    assert T[0] == pytest.approx(p[0] * example_units.temperature_units / n, rel=1e-10)


def test_no_heating_leaves_energy_unchanged(make_config, make_state, example_units):
    token = chemistry_utils.finalize(
        make_config(level=0, radiative_cooling_enabled=False), example_units
    )
    state = make_state(token, dimension=(4,))
    before = _snapshot(state)

    solver.evolve_step(token, example_units, state, 1.0, 10.0)

    _assert_unchanged(state, before)


def test_chemistry_disabled_is_noop(example_units):
    token = chemistry_utils.finalize(chemistry_utils.set_defaults(), example_units)
    state = grid_utils.allocate_fields(token, (2, 2))
    state["density"][:] = 1.0
    state["internal_energy"][:] = 5.0
    before = _snapshot(state)

    stats = solver.evolve_step(token, example_units, state, 1.0, 1.0)

    assert stats == solver.EvolveStatistics(n_subcycles=0, n_cells=0)
    _assert_unchanged(state, before)
    assert np.all(np.isinf(solver.query_cooling_time(token, example_units, state, 1.0)))


def test_zero_timestep_rejected(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token)
    before = _snapshot(state)

    with pytest.raises(SolverError, match="dt") as excinfo:
        solver.evolve_step(token, example_units, state, 1.0, 0.0)

    assert excinfo.value.reason == "validation"
    _assert_unchanged(state, before)
    assert state.bound_token is None


def test_ghost_zones_untouched(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1, uv_background_enabled=True), example_units)
    state = make_state(token, dimension=(4, 3), active_start=(1, 1), active_end=(2, 1))
    ghost = np.ones((4, 3), dtype=bool)
    ghost[1:3, 1] = False
    ghost = ghost.ravel(order="F")
    for name in state.fields:
        state[name][ghost] = 7.0
    before = _snapshot(state)

    stats = solver.evolve_step(token, example_units, state, 1.0, 1.0)

    assert stats.n_cells == 2
    for name, array in before.items():
        assert np.array_equal(state[name][ghost], array[ghost])
    assert not np.array_equal(state["HII_density"], before["HII_density"])

    T = solver.query_temperature(token, example_units, state, 1.0)
    assert np.all(T[ghost] == 0.0)
    assert np.all(T[~ghost] > 0.0)


def test_shaped_arrays(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    flat = make_state(token, dimension=(2, 3))
    shaped = make_state(token, dimension=(2, 3))
    for name in shaped.fields:
        shaped[name] = shaped[name].reshape((2, 3), order="F")

    solver.evolve_step(token, example_units, flat, 1.0, 1.0)
    solver.evolve_step(token, example_units, shaped, 1.0, 1.0)

    for name in flat.fields:
        assert np.allclose(flat[name], shaped[name].ravel(order="F"), rtol=1e-12)


@pytest.mark.parametrize("operation", ("evolve",) + tuple(q.__name__ for q in QUERIES))
def test_negative_density_fails_without_side_effects(
    operation, make_config, make_state, example_units
):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token, dimension=(3,))
    state["density"][1] = -1.0
    state["HII_density"][2] = -1e-10
    before = _snapshot(state)

    with pytest.raises(SolverError) as excinfo:
        if operation == "evolve":
            solver.evolve_step(token, example_units, state, 1.0, 1.0)
        else:
            getattr(solver, operation)(token, example_units, state, 1.0)

    assert excinfo.value.reason == "non_physical"
    _assert_unchanged(state, before)
    assert state.bound_token is None


def test_nan_energy_is_non_physical(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token)
    state["internal_energy"][0] = np.nan

    with pytest.raises(SolverError, match="NaN") as excinfo:
        solver.evolve_step(token, example_units, state, 1.0, 1.0)
    assert excinfo.value.reason == "non_physical"


def test_zero_internal_energy_is_non_physical(make_config, make_state, example_units):
    token = chemistry_utils.finalize(
        make_config(level=1, metals=True, uv_background_enabled=True), example_units
    )
    state = make_state(token, dimension=(2,))
    state["internal_energy"][:] = 0.0
    before = _snapshot(state)

    with pytest.raises(SolverError, match="Internal energy") as excinfo:
        solver.evolve_step(token, example_units, state, 1.0, 1.0)

    assert excinfo.value.reason == "non_physical"
    _assert_unchanged(state, before)


def test_non_convergence_leaves_state_unchanged(make_config, make_state, example_units):
    token = chemistry_utils.finalize(
        make_config(level=1, uv_background_enabled=True, max_iterations=1), example_units
    )
    state = make_state(token)
    before = _snapshot(state)

    with pytest.raises(SolverError) as excinfo:
        solver.evolve_step(token, example_units, state, 1.0, 31.5)

    assert excinfo.value.reason == "non_convergence"
    assert "max_iterations" in str(excinfo.value)
    _assert_unchanged(state, before)


def test_unfinalized_configuration(make_config, make_state, example_units):
    config = make_config(level=1)
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token)

    with pytest.raises(SolverError) as excinfo:
        solver.evolve_step(config, example_units, state, 1.0, 1.0)
    assert excinfo.value.reason == "unfinalized"


def test_inconsistent_units(make_config, make_state, example_units, galactic_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token)

    with pytest.raises(SolverError) as excinfo:
        solver.query_temperature(token, galactic_units, state, 1.0)
    assert excinfo.value.reason == "inconsistent"


def test_state_bound_to_first_token(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    other = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token)

    solver.query_temperature(token, example_units, state, 1.0)

    assert state.bound_token is token
    with pytest.raises(SolverError) as excinfo:
        solver.evolve_step(other, example_units, state, 1.0, 1.0)
    assert excinfo.value.reason == "inconsistent"


def test_missing_field_is_validation_error(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=2), example_units)
    state = make_state(token)
    del state.fields["H2I_density"]
    del state.fields["HM_density"]

    with pytest.raises(SolverError, match="H2I_density") as excinfo:
        solver.evolve_step(token, example_units, state, 1.0, 1.0)

    assert excinfo.value.reason == "validation"
    assert isinstance(excinfo.value.__cause__, MissingFieldError)
    assert excinfo.value.__cause__.missing == ("HM_density", "H2I_density")


@pytest.mark.parametrize(
    "expansion_factor, dt",
    [(0.5, 1.0), (float("nan"), 1.0), (1.0, -1.0), (1.0, 0.0), (1.0, float("inf"))],
)
def test_invalid_call_arguments(expansion_factor, dt, make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token)

    with pytest.raises(SolverError) as excinfo:
        solver.evolve_step(token, example_units, state, expansion_factor, dt)
    assert excinfo.value.reason == "validation"


def test_wrong_dtype_is_validation_error(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token)
    state["HI_density"] = state["HI_density"].astype(np.float32)

    with pytest.raises(SolverError, match="dtype") as excinfo:
        solver.query_pressure(token, example_units, state, 1.0)
    assert excinfo.value.reason == "validation"


def test_cooling_time_infinite_without_sources(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token, temperature=100.0)
    for name in IONIZED_FIELDS:
        state[name][:] = 0.0

    cooling_time = solver.query_cooling_time(token, example_units, state, 1.0)

    assert np.isinf(cooling_time[0]) and cooling_time[0] > 0.0


def test_cooling_time_sign_follows_heating(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token, temperature=100.0, include_heating=True)
    for name in IONIZED_FIELDS:
        state[name][:] = 0.0
    specific = 1e-3  # erg/s/g
    edot = specific / example_units.specific_heating_units
    expected = state["internal_energy"][0] / edot

    state["specific_heating_rate"][:] = specific
    heated = solver.query_cooling_time(token, example_units, state, 1.0, signed=True)
    state["specific_heating_rate"][:] = -specific
    cooled = solver.query_cooling_time(token, example_units, state, 1.0, signed=True)
    unsigned = solver.query_cooling_time(token, example_units, state, 1.0)

    assert heated[0] == pytest.approx(expected, rel=1e-10)
    assert cooled[0] == pytest.approx(-expected, rel=1e-10)
    assert unsigned[0] == pytest.approx(expected, rel=1e-10)


def test_output_buffers(make_config, make_state, example_units):
    token = chemistry_utils.finalize(make_config(level=1), example_units)
    state = make_state(token, dimension=(4,), active_start=(1,), active_end=(2,))
    full = solver.query_gamma(token, example_units, state, 1.0)

    active = np.empty(2)
    returned = solver.query_gamma(token, example_units, state, 1.0, out=active)
    assert returned is active
    assert np.array_equal(active, full[1:3])

    volume = np.full(4, -1.0)
    solver.query_gamma(token, example_units, state, 1.0, out=volume)
    assert np.array_equal(volume[1:3], full[1:3])
    assert volume[0] == -1.0 and volume[3] == -1.0

    with pytest.raises(SolverError) as excinfo:
        solver.query_gamma(token, example_units, state, 1.0, out=np.empty(3))
    assert excinfo.value.reason == "validation"
    with pytest.raises(SolverError):
        solver.query_gamma(token, example_units, state, 1.0, out=np.empty(4, dtype=np.float32))


def test_single_precision(make_config, make_state, galactic_units):
    token = chemistry_utils.finalize(
        make_config(level=2, precision="float32"), galactic_units
    )
    state = make_state(token, dimension=(2,), density=0.1)

    solver.evolve_step(token, galactic_units, state, 1.0, 1.0)
    T = solver.query_temperature(token, galactic_units, state, 1.0)

    assert T.dtype == np.float32
    assert np.all(np.isfinite(T)) and np.all(T > 0.0)
    for name in grid_utils.required_fields(token):
        assert state[name].dtype == np.float32


def test_comoving_run(make_config, make_state):
    units = UnitSystem(
        density_units=1.67e-24, length_units=1.0, time_units=1.0e12, comoving_coordinates=True
    )
    a_value = 0.25
    token = chemistry_utils.finalize(make_config(level=1), units, a_value=a_value)
    state = make_state(token, density=1.0 / 64.0)

    stats = solver.evolve_step(token, units, state, a_value, 1.0)
    T = solver.query_temperature(token, units, state, a_value)
    cooling_time = solver.query_cooling_time(token, units, state, a_value)

    assert stats.n_cells == 1
    assert np.isfinite(T[0]) and T[0] > 0.0
    assert cooling_time[0] > 0.0

    with pytest.raises(SolverError) as excinfo:
        solver.query_temperature(token, units, state, -1.0)
    assert excinfo.value.reason == "validation"
