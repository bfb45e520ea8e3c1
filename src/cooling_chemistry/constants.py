from scipy import constants

# CGS values; the solver works in erg, g, cm, s.

mh = constants.m_p * 1e3  # [g] hydrogen mass (proton mass)

me = constants.m_e * 1e3  # [g] electron mass

kboltz = constants.Boltzmann * 1e7  # [erg/K]

erg_per_ev = constants.eV * 1e7  # [erg/eV]

ev_per_kelvin = constants.Boltzmann / constants.eV  # [eV/K]

s_per_yr = constants.year  # [s] julian year

s_per_myr = 1e6 * constants.year  # [s]

T_cmb_0 = 2.725  # [K] CMB temperature today

compton_coefficient = 5.65e-36  # [erg/s/K] Compton cooling per electron at z = 0, scales as (1+z)^4

solar_metal_fraction = 0.01295  # Cloudy solar abundance set, by mass

tiny_number = 1e-20
