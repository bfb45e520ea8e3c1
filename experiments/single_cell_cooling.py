"""Single cell evolved with the full primordial network.

A cell of neutral primordial gas at n ~ 1 cm^-3 and 1000 K is exposed to the UV
background at z = 0 with metal cooling enabled, and evolved over one Myr. The
cooling time, temperature, pressure and gamma are printed before and after.

Set COOLING_CHEMISTRY_LOG_LEVEL=INFO (or DEBUG) for solver diagnostics.
"""

from pathlib import Path

import jax
import numpy as np

from cooling_chemistry import chemistry_utils, constants, grid_utils, solver
from cooling_chemistry.logging_utils import configure_logging
from cooling_chemistry.rate_data_utils import write_reference_rate_data
from cooling_chemistry.units import UnitSystem

jax.config.update("jax_enable_x64", True)
configure_logging()

print("=" * 80)
print("Single cell: primordial chemistry with metals and UV background")
print("=" * 80)

# Units
units = UnitSystem(density_units=1.67e-24, length_units=1.0, time_units=1.0e12)
a_value = 1.0

# Rate data
data_path = write_reference_rate_data(Path(__file__).parent / "primordial_reference.json")

# Configuration
config = chemistry_utils.set_defaults()
config.use_chemistry = True
config.radiative_cooling_enabled = True
config.primordial_chemistry_level = 3
config.metal_cooling_enabled = True
config.uv_background_enabled = True
config.rate_data_source = data_path
config.verbose = True

token = chemistry_utils.finalize(config, units, a_value=a_value)

# Initial conditions
state = grid_utils.allocate_fields(token, (1, 1, 1))
X = config.hydrogen_fraction_by_mass
tiny = constants.tiny_number
initial = {
    "density": 1.0,
    "internal_energy": 1000.0 / units.temperature_units,
    "HI_density": X,
    "HII_density": tiny,
    "HeI_density": 1.0 - X,
    "HeII_density": tiny,
    "HeIII_density": tiny,
    "e_density": tiny,
    "HM_density": tiny,
    "H2I_density": tiny,
    "H2II_density": tiny,
    "DI_density": 2.0 * 3.4e-5,
    "DII_density": tiny,
    "HDI_density": tiny,
    "metal_density": config.solar_metal_fraction_by_mass,
}
for name, value in initial.items():
    state[name][:] = value


def report(label):
    cooling_time = solver.query_cooling_time(token, units, state, a_value, signed=True)
    temperature = solver.query_temperature(token, units, state, a_value)
    pressure = solver.query_pressure(token, units, state, a_value)
    gamma = solver.query_gamma(token, units, state, a_value)

    print(f"\n{label}:")
    print(f"  cooling time = {cooling_time[0] * units.time_units:.4e} s")
    print(f"  T            = {temperature[0]:.4e} K")
    print(f"  p            = {pressure[0] * units.pressure_units:.4e} dyn/cm^2")
    print(f"  gamma        = {gamma[0]:.6f}")
    print(f"  x_HII        = {state['HII_density'][0] / X:.4e}")
    print(f"  x_H2         = {state['H2I_density'][0] / X:.4e}")


report("Initial state")

# Time integration
dt = constants.s_per_myr / units.time_units
stats = solver.evolve_step(token, units, state, a_value, dt)

print(f"\nEvolved dt = {dt:.3e} (code) in {stats.n_subcycles} subcycles")
report("After 1 Myr")

if not np.all(np.isfinite(state["internal_energy"])):
    raise ValueError("Internal energy is not finite after the step.")
