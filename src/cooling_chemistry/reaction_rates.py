"""Analytic fits for the primordial network rate coefficients and cooling terms.

These feed `rate_data_utils.write_reference_rate_data`, which tabulates them into the
dataset read at finalization; the solver never evaluates them directly.

Sources:
    - Abel et al. 1997 (New Astron. 2, 181): k1, k3, k4, k5, k13, k14, k15, k17-k19
    - Cen 1992 (ApJS 78, 341) and Black 1981: k2, k6 and the atomic cooling terms
    - Galli & Palla 1998/2002: k7, deuterium network, H2 and HD cooling
    - Kreckel et al. 2010: k8
    - Koyama & Inutsuka 2002: low temperature metal cooling

All temperatures in [K]. Two-body rates in [cm^3/s], three-body in [cm^6/s],
cooling coefficients in [erg cm^3/s].
"""

import numpy as np
from jaxtyping import Float

from cooling_chemistry import constants

TINY_RATE = 1e-20

COLLISIONAL_RATES = ("k1", "k2", "k3", "k4", "k5", "k6")
H2_RATES = (
    "k7", "k8", "k9", "k10", "k11", "k12", "k13",
    "k14", "k15", "k16", "k17", "k18", "k19", "k22",
)  # fmt: skip
DEUTERIUM_RATES = ("k50", "k51", "k52", "k53", "k54", "k55", "k56")
PRIMORDIAL_COOLING = (
    "ceHI", "ceHeII", "ciHI", "ciHeI", "ciHeII",
    "reHII", "reHeII1", "reHeII2", "reHeIII", "brem",
)  # fmt: skip
UVB_RATES = ("k24", "k25", "k26", "piHI", "piHeI", "piHeII")


def _T_eV(T: Float[np.ndarray, " N"]) -> Float[np.ndarray, " N"]:
    return T * constants.ev_per_kelvin


def _log_poly(x: Float[np.ndarray, " N"], coeffs: tuple[float, ...]) -> Float[np.ndarray, " N"]:
    return sum(c * x**i for i, c in enumerate(coeffs))


def _exp_fit_above(
    T: Float[np.ndarray, " N"], T_eV_min: float, coeffs: tuple[float, ...]
) -> Float[np.ndarray, " N"]:
    """exp(polynomial in ln T_eV) above a threshold, TINY_RATE below.

    The fits are evaluated no higher than T_eV = 1e4 (~1e8 K).
    """
    T_eV = _T_eV(T)
    lnT = np.log(np.clip(T_eV, T_eV_min, 1e4))
    return np.where(T_eV > T_eV_min, np.exp(_log_poly(lnT, coeffs)), TINY_RATE)


def _recombination_shape(T: Float[np.ndarray, " N"]) -> Float[np.ndarray, " N"]:
    return 1.0 / np.sqrt(T) * (T / 1e3) ** -0.2 / (1.0 + (T / 1e6) ** 0.7)


def collisional_rates(T: Float[np.ndarray, " N"]) -> dict[str, Float[np.ndarray, " N"]]:
    """H and He ionization and recombination, k1-k6."""
    T_eV = _T_eV(T)
    k1 = _exp_fit_above(
        T,
        0.8,
        (
            -32.71396786, 13.536556, -5.73932875, 1.56315498, -0.2877056,
            0.0348255977, -0.00263197617, 0.000111954395, -2.03914985e-6,
        ),
    )  # fmt: skip
    k3 = _exp_fit_above(
        T,
        0.8,
        (
            -44.09864886, 23.91596563, -10.7532302, 3.05803875, -0.56851189,
            0.0679539123, -0.00500905610, 2.06723616e-4, -3.64916141e-6,
        ),
    )  # fmt: skip
    k5 = _exp_fit_above(
        T,
        0.8,
        (
            -68.71040990, 43.93347633, -18.4806699, 4.70162649, -0.76924663,
            0.081130420, -0.00532402063, 1.97570531e-4, -3.16558106e-6,
        ),
    )  # fmt: skip

    k4_dielectronic = (
        1.54e-9
        * (1.0 + 0.3 * np.exp(-8.099328789667 / T_eV))
        * np.exp(-40.49664394833662 / T_eV)
        / T_eV**1.5
    )
    k4 = np.where(T_eV > 0.8, k4_dielectronic, 0.0) + 3.92e-13 / T_eV**0.6353

    return {
        "k1": k1,
        "k2": 8.4e-11 * _recombination_shape(T),
        "k3": k3,
        "k4": k4,
        "k5": k5,
        "k6": 3.36e-10 * _recombination_shape(T),
    }


def h2_rates(T: Float[np.ndarray, " N"]) -> dict[str, Float[np.ndarray, " N"]]:
    """H-, H2 and H2+ network, k7-k19 plus three-body formation k22."""
    T_eV = _T_eV(T)

    k8 = (
        1.35e-9
        * (T**9.8493e-2 + 3.2852e-1 * T**5.5610e-1 + 2.771e-7 * T**2.1826)
        / (1.0 + 6.191e-3 * T**1.0461 + 8.9712e-11 * T**3.0424 + 3.2576e-14 * T**3.7741)
    )
    T_ratio = T / 56200.0
    k9 = np.where(
        T < 6.7e3,
        1.85e-23 * T**1.8,
        5.81e-16 * T_ratio ** (-0.6657 * np.log10(T_ratio)),
    )
    k14 = _exp_fit_above(
        T,
        0.04,
        (
            -18.01849334, 2.3608522, -0.28274430, 0.0162331664, -0.0336501203,
            0.0117832978, -0.00165619470, 1.06827520e-4, -2.63128581e-6,
        ),
    )  # fmt: skip

    return {
        "k7": 3.0e-16 * (T / 300.0) ** 0.95 * np.exp(-T / 9.32e3),
        "k8": k8,
        "k9": k9,
        "k10": np.full_like(T, 6.0e-10),
        "k11": 3.0e-10 * np.exp(-21050.0 / T),
        "k12": 5.6e-11 * np.sqrt(T_eV) * np.exp(-102124.0 / T),
        "k13": 1.067e-10
        * T_eV**2.012
        * np.exp(-4.463 / T_eV)
        / (1.0 + 0.2472 * T_eV) ** 3.512,
        "k14": k14,
        "k15": 2.5634e-9 * T_eV**1.78186,
        "k16": 2.4e-6 / np.sqrt(T) * (1.0 + T / 2.0e4),
        "k17": np.where(
            T < 1e4, 1.0e-8 * T**-0.4, 4.0e-4 * T**-1.4 * np.exp(-15100.0 / T)
        ),
        "k18": np.where(T < 617.0, 1.0e-8, 1.32e-6 * T**-0.76),
        "k19": 5.0e-7 * np.sqrt(100.0 / T),
        "k22": 6.0e-32 * T**-0.25 + 2.0e-31 * T**-0.5,
    }


def deuterium_rates(T: Float[np.ndarray, " N"]) -> dict[str, Float[np.ndarray, " N"]]:
    """D, D+ and HD exchange reactions, k50-k56."""
    return {
        "k50": 1.0e-9 * np.exp(-41.0 / T),
        "k51": np.full_like(T, 1.0e-9),
        "k52": np.full_like(T, 2.1e-9),
        "k53": 1.0e-9 * np.exp(-464.0 / T),
        "k54": 7.5e-11 * np.exp(-3820.0 / T),
        "k55": 7.5e-11 * np.exp(-4240.0 / T),
        "k56": 1.5e-9 * (T / 300.0) ** -0.1,
    }


def primordial_cooling(T: Float[np.ndarray, " N"]) -> dict[str, Float[np.ndarray, " N"]]:
    """Atomic H/He cooling coefficients, each multiplying n_e * n_species.

    Bremsstrahlung multiplies n_e * (n_HII + n_HeII + 4 n_HeIII).
    """
    sqrt_T = np.sqrt(T)
    high_T_damping = 1.0 / (1.0 + np.sqrt(T / 1e5))
    log_T = np.log10(T)

    return {
        "ceHI": 7.5e-19 * np.exp(-118348.0 / T) * high_T_damping,
        "ceHeII": 5.54e-17 * T**-0.397 * np.exp(-473638.0 / T) * high_T_damping,
        "ciHI": 1.27e-21 * sqrt_T * np.exp(-157809.1 / T) * high_T_damping,
        "ciHeI": 9.38e-22 * sqrt_T * np.exp(-285335.4 / T) * high_T_damping,
        "ciHeII": 4.95e-22 * sqrt_T * np.exp(-631515.0 / T) * high_T_damping,
        "reHII": 8.70e-27 * sqrt_T * (T / 1e3) ** -0.2 / (1.0 + (T / 1e6) ** 0.7),
        "reHeII1": 1.55e-26 * T**0.3647,
        "reHeII2": 1.24e-13
        * T**-1.5
        * np.exp(-470000.0 / T)
        * (1.0 + 0.3 * np.exp(-94000.0 / T)),
        "reHeIII": 3.48e-26 * sqrt_T * (T / 1e3) ** -0.2 / (1.0 + (T / 1e6) ** 0.7),
        "brem": 1.43e-27 * sqrt_T * (1.1 + 0.34 * np.exp(-((5.5 - log_T) ** 2) / 3.0)),
    }


def h2_cooling(T: Float[np.ndarray, " N"]) -> Float[np.ndarray, " N"]:
    """Low density H2 cooling per n_HI * n_H2 (Galli & Palla 1998)."""
    x = np.log10(np.clip(T, 13.0, 1e4))
    log_lambda = -103.0 + 97.59 * x - 48.05 * x**2 + 10.80 * x**3 - 0.9032 * x**4
    return 10.0**log_lambda


def hd_cooling(T: Float[np.ndarray, " N"]) -> Float[np.ndarray, " N"]:
    """Low density HD cooling per n_HI * n_HD, two lowest rotational levels."""
    gamma_10 = 4.4e-12 + 3.6e-13 * T**0.77
    gamma_21 = 4.1e-12 + 2.1e-13 * T**0.92
    E_10 = 128.0 * constants.kboltz
    E_21 = 255.0 * constants.kboltz
    return 2.0 * gamma_10 * E_10 * np.exp(-128.0 / T) + (5.0 / 3.0) * gamma_21 * E_21 * np.exp(
        -255.0 / T
    )


def collisional_equilibrium(
    T: Float[np.ndarray, " N"], hydrogen_fraction: float = 0.76
) -> tuple[Float[np.ndarray, " N"], Float[np.ndarray, " N"]]:
    """Cooling per n_H^2 and mean molecular weight of H/He gas in ionization equilibrium.

    Returns:
        cooling: [erg cm^3/s]
        mu: mean molecular weight [m_H]
    """
    rates = collisional_rates(T)
    cooling = primordial_cooling(T)

    y = (1.0 - hydrogen_fraction) / (4.0 * hydrogen_fraction)  # n_He / n_H

    HII_over_HI = rates["k1"] / rates["k2"]
    x_HII = HII_over_HI / (1.0 + HII_over_HI)
    x_HI = 1.0 - x_HII

    HeII_over_HeI = rates["k3"] / rates["k4"]
    HeIII_over_HeII = rates["k5"] / rates["k6"]
    norm = 1.0 + HeII_over_HeI + HeII_over_HeI * HeIII_over_HeII
    x_HeI = y / norm
    x_HeII = y * HeII_over_HeI / norm
    x_HeIII = y * HeII_over_HeI * HeIII_over_HeII / norm

    x_e = x_HII + x_HeII + 2.0 * x_HeIII

    total = x_e * (
        (cooling["ceHI"] + cooling["ciHI"]) * x_HI
        + cooling["ciHeI"] * x_HeI
        + (cooling["ceHeII"] + cooling["ciHeII"] + cooling["reHeII1"] + cooling["reHeII2"])
        * x_HeII
        + cooling["reHII"] * x_HII
        + cooling["reHeIII"] * x_HeIII
        + cooling["brem"] * (x_HII + x_HeII + 4.0 * x_HeIII)
    )

    mu = (1.0 + 4.0 * y) / (1.0 + y + x_e)

    return total, mu


def metal_cooling(T: Float[np.ndarray, " N"]) -> Float[np.ndarray, " N"]:
    """Illustrative solar metallicity cooling curve per n_H^2.

    Fine-structure and low temperature lines follow Koyama & Inutsuka (2002); the
    collisionally excited peak near 2.5e5 K is a log-normal bump of the right
    height. Not a substitute for a photoionization code table.
    """
    T_low = np.minimum(T, 1e4)
    low_temperature = 2e-26 * (
        1e7 * np.exp(-1.184e5 / (T_low + 1000.0)) + 1.4e-2 * np.sqrt(T_low) * np.exp(-92.0 / T_low)
    )
    peak = 10.0**-21.6 * np.exp(-0.5 * ((np.log10(T) - 5.4) / 0.5) ** 2)
    return low_temperature + peak


def uv_background(
    redshift: Float[np.ndarray, " N"], redshift_on: float = 8.5
) -> dict[str, Float[np.ndarray, " N"]]:
    """Photoionization [1/s] and photoheating [erg/s] rates per ion of a UV background.

    The HI rate interpolates a Haardt & Madau (2012)-like history; He rates and
    heating energies are fixed multiples of it. Zero above `redshift_on`.
    """
    z_nodes = np.array([0.0, 1.0, 2.0, 3.0, 4.0, 5.0, 6.0, 7.0, 8.0])
    log_gamma_nodes = np.array([-13.6, -12.6, -12.1, -12.0, -12.1, -12.4, -12.8, -13.4, -14.2])
    gamma_HI = 10.0 ** np.interp(redshift, z_nodes, log_gamma_nodes)
    gamma_HI = np.where(redshift <= redshift_on, gamma_HI, 0.0)

    gamma_HeI = 0.6 * gamma_HI
    gamma_HeII = 0.01 * gamma_HI

    return {
        "k24": gamma_HI,
        "k25": gamma_HeII,
        "k26": gamma_HeI,
        "piHI": 4.0 * constants.erg_per_ev * gamma_HI,
        "piHeI": 6.0 * constants.erg_per_ev * gamma_HeI,
        "piHeII": 14.0 * constants.erg_per_ev * gamma_HeII,
    }
