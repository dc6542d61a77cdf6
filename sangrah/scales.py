#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Physical constants and the code-unit scale table.

A scale factor multiplies a value in code units and returns it in the
named physical unit:

    rho_g_cm3 = rho_code * info.scale["g_cm3"]

`Scales.to_code` is the exact inverse of `Scales.convert`.

"""

from __future__ import annotations

import math
from typing import Dict, Iterator, Mapping, Optional

import numpy as np

CODE_UNIT_NAMES = ("standard", "code")

# Hydrogen mass fraction used by the RAMSES cooling module
X_FRACTION = 0.76


class _FrozenTable(Mapping):
    """Read-only name -> float mapping with attribute access."""

    def __init__(self, values: Dict[str, float]):
        self.__dict__["_values"] = dict(values)

    def __getitem__(self, key: str) -> float:
        return self._values[key]

    def __getattr__(self, key: str) -> float:
        try:
            return self.__dict__["_values"][key]
        except KeyError:
            raise AttributeError(key) from None

    def __setattr__(self, key, value):
        raise AttributeError(f"{type(self).__name__} is read-only")

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def to_dict(self) -> Dict[str, float]:
        return dict(self._values)

    def copy(self):
        return type(self)(self._values)


class PhysicalConstants(_FrozenTable):
    """Constants in cgs units (IAU / CODATA 2018, mH as in RAMSES)."""

    def __init__(self):
        pc = 3.08567758128e18
        yr = 3.15576e7
        msol = 1.9891e33
        super().__init__({
            "Au": 1.495978707e13,
            "pc": pc,
            "kpc": pc * 1e3,
            "Mpc": pc * 1e6,
            "mpc": pc * 1e-3,
            "ly": 9.4607304725808e17,
            "Msol": msol,
            "Msun": msol,
            "Rsol": 6.96e10,
            "Lsol": 3.828e33,
            "Mearth": 5.9722e27,
            "Mjupiter": 1.89813e30,
            "me": 9.1093837015e-28,
            "mp": 1.67262192369e-24,
            "mH": 1.66e-24,
            "amu": 1.66053906660e-24,
            "c": 2.99792458e10,
            "G": 6.67430e-8,
            "kB": 1.380649e-16,
            "eV": 1.602176634e-12,
            "yr": yr,
            "Myr": yr * 1e6,
            "Gyr": yr * 1e9,
            "day": 86400.0,
            "hr": 3600.0,
        })


class Scales(_FrozenTable):
    """
    Conversion factors from code units to physical units.

    Code units themselves are reachable as "standard" or "code" (factor 1).
    """

    def factor(self, unit: str) -> float:
        if unit in CODE_UNIT_NAMES:
            return 1.0
        try:
            return self._values[unit]
        except KeyError:
            raise KeyError(f"Unknown unit '{unit}'. Known units: {', '.join(sorted(self._values))}") from None

    def convert(self, value, unit: str):
        """Code units -> `unit`."""
        return np.multiply(value, self.factor(unit))

    def to_code(self, value, unit: str):
        """`unit` -> code units."""
        return np.divide(value, self.factor(unit))


def create_scales(unit_l: float, unit_d: float, unit_t: float, unit_m: float,
                  constants: Optional[PhysicalConstants] = None) -> Scales:
    """
    Build the scale table for one output.

    Args:
        unit_l: code length in cm
        unit_d: code density in g/cm^3
        unit_t: code time in s
        unit_m: code mass in g (unit_d * unit_l**3)
    """
    c = constants or PhysicalConstants()
    pc, mH, kB = c.pc, c.mH, c.kB
    unit_v = unit_l / unit_t
    mu = 1.0 / X_FRACTION

    s: Dict[str, float] = {}

    # length
    s["Mpc"] = unit_l / pc / 1e6
    s["kpc"] = unit_l / pc / 1e3
    s["pc"] = unit_l / pc
    s["mpc"] = unit_l / pc * 1e3
    s["ly"] = unit_l / c.ly
    s["Au"] = unit_l / c.Au
    s["km"] = unit_l / 1.0e5
    s["m"] = unit_l / 1.0e2
    s["cm"] = unit_l
    s["mm"] = unit_l * 10.0

    # volume
    for name in ("Mpc", "kpc", "pc", "mpc", "ly", "Au", "km", "m", "cm", "mm"):
        s[name + "3"] = s[name] ** 3

    # density and surface density
    s["Msol_pc3"] = unit_d * pc ** 3 / c.Msol
    s["Msun_pc3"] = s["Msol_pc3"]
    s["g_cm3"] = unit_d
    s["Msol_pc2"] = unit_d * unit_l * pc ** 2 / c.Msol
    s["Msun_pc2"] = s["Msol_pc2"]
    s["g_cm2"] = unit_d * unit_l
    s["nH"] = X_FRACTION / mH * unit_d
    s["atoms_cm2"] = unit_d * unit_l / mH

    # time
    s["Gyr"] = unit_t / c.yr / 1e9
    s["Myr"] = unit_t / c.yr / 1e6
    s["yr"] = unit_t / c.yr
    s["s"] = unit_t
    s["ms"] = unit_t * 1e3

    # mass
    s["Msol"] = unit_d * unit_l ** 3 / c.Msol
    s["Msun"] = s["Msol"]
    s["Mearth"] = unit_d * unit_l ** 3 / c.Mearth
    s["Mjupiter"] = unit_d * unit_l ** 3 / c.Mjupiter
    s["g"] = unit_d * unit_l ** 3
    s["kg"] = s["g"] / 1e3

    # velocity and acceleration
    s["km_s"] = unit_v / 1e5
    s["m_s"] = unit_v / 1e2
    s["cm_s"] = unit_v
    s["cm_s2"] = unit_l / unit_t ** 2
    s["m_s2"] = s["cm_s2"] / 100.0
    s["km_s2"] = s["cm_s2"] / 1e5

    # energy, pressure, temperature
    s["erg"] = unit_m * unit_v ** 2
    s["erg_g"] = unit_v ** 2
    s["km2_s2"] = s["erg_g"] / 1e10
    s["g_cms2"] = unit_m / (unit_l * unit_t ** 2)
    s["Ba"] = unit_m / unit_l / unit_t ** 2
    s["g_cm_s2"] = s["Ba"]
    s["p_kB"] = s["Ba"] / kB
    s["K_cm3"] = s["p_kB"]
    s["T_mu"] = mH / kB * unit_v ** 2
    s["K_mu"] = s["T_mu"]
    s["T"] = s["T_mu"] * mu
    s["K"] = s["T"]
    s["eV"] = unit_m * unit_v ** 2 / c.eV
    s["keV"] = s["eV"] / 1e3
    s["erg_s"] = unit_m * unit_v ** 2 / unit_t
    s["Lsol"] = s["erg_s"] / c.Lsol

    # angular momentum and magnetic field
    s["g_cm2_s"] = unit_m * unit_l ** 2 / unit_t
    s["Gauss"] = math.sqrt(4.0 * math.pi * unit_m / (unit_l * unit_t ** 2))
    s["muG"] = s["Gauss"] * 1e6

    return Scales(s)
