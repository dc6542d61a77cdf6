#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Weighted descriptive statistics and mass-weighted aggregates over dataset
columns.

"""

from __future__ import annotations

from typing import NamedTuple, Optional, Tuple

import numpy as np


class WStat(NamedTuple):
    mean: float
    median: float
    std: float
    skewness: float
    kurtosis: float
    min: float
    max: float


def weighted_median(values: np.ndarray, weights: np.ndarray) -> float:
    """Smallest value at which the cumulative weight reaches half the total."""
    order = np.argsort(values, kind="stable")
    v, w = values[order], weights[order]
    cum = np.cumsum(w)
    idx = int(np.searchsorted(cum, 0.5 * cum[-1], side="left"))
    return float(v[min(idx, len(v) - 1)])


def wstat(values, weight=None, mask=None) -> WStat:
    """
    Weighted mean, median, standard deviation, skewness, excess kurtosis,
    minimum and maximum.

    Args:
        values: 1-D array
        weight: optional non-negative weights of the same length
        mask: optional boolean selection applied to both

    Returns:
        WStat; every entry is NaN for an empty selection.
    """
    v = np.asarray(values, dtype=np.float64).reshape(-1)
    w = np.ones_like(v) if weight is None else np.asarray(weight, dtype=np.float64).reshape(-1)
    if len(w) != len(v):
        raise ValueError(f"weight has {len(w)} entries for {len(v)} values")
    if mask is not None:
        m = np.asarray(mask, dtype=bool).reshape(-1)
        v, w = v[m], w[m]

    if v.size == 0 or np.sum(w) <= 0:
        nan = float("nan")
        return WStat(nan, nan, nan, nan, nan, nan, nan)

    mean = float(np.average(v, weights=w))
    var = float(np.average((v - mean) ** 2, weights=w))
    std = float(np.sqrt(var))
    if std > 0:
        skew = float(np.average(((v - mean) / std) ** 3, weights=w))
        kurt = float(np.average(((v - mean) / std) ** 4, weights=w)) - 3.0
    else:
        skew, kurt = 0.0, 0.0

    return WStat(
        mean=mean,
        median=weighted_median(v, w),
        std=std,
        skewness=skew,
        kurtosis=kurt,
        min=float(np.min(v)),
        max=float(np.max(v)),
    )


# ──────────────────────────────────────────────────────────────────────────────
# Mass-weighted aggregates
# ──────────────────────────────────────────────────────────────────────────────

def _masked(mask, *arrays):
    arrays = [np.asarray(a, dtype=np.float64).reshape(-1) for a in arrays]
    n = len(arrays[0])
    if any(len(a) != n for a in arrays):
        raise ValueError("All arrays must have the same length")
    if mask is None:
        return arrays
    m = np.asarray(mask, dtype=bool).reshape(-1)
    if len(m) != n:
        raise ValueError(f"mask has {len(m)} entries for {n} values")
    return [a[m] for a in arrays]


def msum(mass, mask=None) -> float:
    """Total mass of the (masked) rows."""
    (m,) = _masked(mask, mass)
    return float(np.sum(m))


def average_mweighted(values, mass, mask=None) -> float:
    """Mass-weighted mean of `values`; NaN when the selected mass is zero."""
    v, m = _masked(mask, values, mass)
    total = np.sum(m)
    if v.size == 0 or total == 0:
        return float("nan")
    return float(np.sum(v * m) / total)


def center_of_mass(x, y, z, mass, mask=None) -> Tuple[float, float, float]:
    return tuple(average_mweighted(a, mass, mask) for a in (x, y, z))  # type: ignore[return-value]


def bulk_velocity(vx, vy, vz, mass, mask=None) -> Tuple[float, float, float]:
    """Mass-weighted mean velocity."""
    return tuple(average_mweighted(a, mass, mask) for a in (vx, vy, vz))  # type: ignore[return-value]
