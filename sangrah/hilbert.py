#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

3D Hilbert keys and shard pruning.

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
RAMSES decomposes the domain across CPUs along a Peano-Hilbert curve: CPU i
owns the key interval [bound_key[i-1], bound_key[i]). The key is computed at
a depth of nlevelmax+1 bits per axis. Given a spatial box we compute the key
intervals of the (at most eight) coarse cubes enclosing it and keep only the
CPUs whose intervals intersect them.

Pruning is an optimisation only. Reading every shard and filtering rows
afterwards gives the same table.

"""

from __future__ import annotations

import logging
from typing import List, Sequence, Union

import numpy as np

logger = logging.getLogger("sangrah")

# RAMSES state diagram, reshaped Fortran-style to [digit, (next state, hilbert digit), state]
_STATE_DIAGRAM = np.array(
    [
        1, 2, 3, 2, 4, 5, 3, 5,
        0, 1, 3, 2, 7, 6, 4, 5,
        2, 6, 0, 7, 8, 8, 0, 7,
        0, 7, 1, 6, 3, 4, 2, 5,
        0, 9, 10, 9, 1, 1, 11, 11,
        0, 3, 7, 4, 1, 2, 6, 5,
        6, 0, 6, 11, 9, 0, 9, 8,
        2, 3, 1, 0, 5, 4, 6, 7,
        11, 11, 0, 7, 5, 9, 0, 7,
        4, 3, 5, 2, 7, 0, 6, 1,
        4, 4, 8, 8, 0, 6, 10, 6,
        6, 5, 1, 2, 7, 4, 0, 3,
        5, 7, 5, 3, 1, 1, 11, 11,
        4, 7, 3, 0, 5, 6, 2, 1,
        6, 1, 6, 10, 9, 4, 9, 10,
        6, 7, 5, 4, 1, 0, 2, 3,
        10, 3, 1, 1, 10, 3, 5, 9,
        2, 5, 3, 4, 1, 6, 0, 7,
        4, 4, 8, 8, 2, 7, 2, 3,
        2, 1, 5, 6, 3, 0, 4, 7,
        7, 2, 11, 2, 7, 5, 8, 5,
        4, 5, 7, 6, 3, 2, 0, 1,
        10, 3, 2, 6, 10, 3, 4, 4,
        6, 1, 7, 0, 5, 2, 4, 3,
    ],
    dtype=np.int64,
).reshape((8, 2, 12), order="F")

ArrayLike = Union[int, Sequence[int], np.ndarray]


def hilbert3d(ix: ArrayLike, iy: ArrayLike, iz: ArrayLike, bit_length: int) -> np.ndarray:
    """
    Hilbert key of integer coordinates at a given bit depth.

    Args:
        ix, iy, iz: 0-based integer coordinates in [0, 2**bit_length)
        bit_length: number of bits per axis

    Returns:
        float64 array of keys (a 0-d array for scalar input). Keys lie in
        [0, 2**(3*bit_length)).
    """
    x = np.asarray(ix, dtype=np.int64)
    y = np.asarray(iy, dtype=np.int64)
    z = np.asarray(iz, dtype=np.int64)
    x, y, z = np.broadcast_arrays(x, y, z)

    if bit_length <= 0:
        return np.zeros(x.shape, dtype=np.float64)

    limit = 1 << bit_length
    if np.any((x < 0) | (y < 0) | (z < 0) | (x >= limit) | (y >= limit) | (z >= limit)):
        raise ValueError(f"Coordinates out of range for bit_length={bit_length}")

    state = np.zeros(x.shape, dtype=np.int64)
    key = np.zeros(x.shape, dtype=np.float64)

    # Walk bits from most significant to least, three key bits per level
    for i in range(bit_length - 1, -1, -1):
        sdigit = (((x >> i) & 1) << 2) | (((y >> i) & 1) << 1) | ((z >> i) & 1)
        hdigit = _STATE_DIAGRAM[sdigit, 1, state]
        state = _STATE_DIAGRAM[sdigit, 0, state]
        key = key * 8.0 + hdigit

    return key


def coarse_level_for_extent(dmax: float, lmax: int) -> int:
    """First level (1-based) whose cell size drops below `dmax`, capped at `lmax`."""
    ilevel = 1
    for il in range(1, max(lmax, 1) + 1):
        ilevel = il
        if 0.5 ** il < dmax:
            break
    return ilevel


def cpu_list(
    bound_key: Sequence[float],
    ranges: Sequence[float],
    nlevelmax: int,
    lmax: int,
    lmin: int = 1,
) -> List[int]:
    """
    CPUs (1-based, ascending) whose Hilbert domain intersects `ranges`.

    Args:
        bound_key: ncpu+1 domain boundaries from the info file
        ranges: (xmin, xmax, ymin, ymax, zmin, zmax) in [0,1] domain units
        nlevelmax: maximum level the simulation was run with
        lmax: finest level being read
        lmin: coarsest level being read; the coarse cubes are never finer
            than the parent cells of level `lmin`, so every oct read is fully
            contained in one cube
    """
    bound_key = np.asarray(bound_key, dtype=np.float64)
    ncpu = len(bound_key) - 1
    xmin, xmax, ymin, ymax, zmin, zmax = (float(r) for r in ranges)

    dmax = max(xmax - xmin, ymax - ymin, zmax - zmin)
    ilevel = coarse_level_for_extent(dmax, lmax)
    bit_length = max(0, min(ilevel - 1, lmin - 1))
    maxdom = 1 << bit_length
    dkey = float(2 ** (nlevelmax + 1) / maxdom) ** 3

    if bit_length > 0:
        imin = min(int(np.floor(xmin * maxdom)), maxdom - 1)
        jmin = min(int(np.floor(ymin * maxdom)), maxdom - 1)
        kmin = min(int(np.floor(zmin * maxdom)), maxdom - 1)
        imax = min(int(np.floor(xmax * maxdom)), maxdom - 1)
        jmax = min(int(np.floor(ymax * maxdom)), maxdom - 1)
        kmax = min(int(np.floor(zmax * maxdom)), maxdom - 1)
        idom = np.array([imin, imax, imin, imax, imin, imax, imin, imax])
        jdom = np.array([jmin, jmin, jmax, jmax, jmin, jmin, jmax, jmax])
        kdom = np.array([kmin, kmin, kmin, kmin, kmax, kmax, kmax, kmax])
        order_min = np.unique(hilbert3d(idom, jdom, kdom, bit_length))
    else:
        order_min = np.zeros(1)

    bounding_min = order_min * dkey
    bounding_max = (order_min + 1.0) * dkey

    lo = bound_key[:-1][:, None]
    hi = bound_key[1:][:, None]
    hit = np.any((lo < bounding_max[None, :]) & (hi > bounding_min[None, :]), axis=1)
    selected = [int(i) + 1 for i in np.flatnonzero(hit)]

    logger.debug(
        "Hilbert pruning: bit_length=%d, %d domain(s), %d/%d cpu file(s) selected",
        bit_length, len(order_min), len(selected), ncpu,
    )
    return selected
