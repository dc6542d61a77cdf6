#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

AMR grid reconstruction for one CPU shard.

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
An AMR shard stores its octs level by level, domain by domain. For every
oct we get the centre `xg` and the `son` index of each of its 8 cells
(0 when the cell is not refined). No tree is built: each level is a flat
set of parallel arrays indexed by oct number, and cell coordinates follow
from index arithmetic on the oct centre.

──────────────────────────────────────────────────────────────────────────────
Coordinates
──────────────────────────────────────────────────────────────────────────────
An oct at level L sits in the level-(L-1) parent cell

    p = floor((xg - xbound) * 2**(L-1)) + 1          (1-based, per axis)

and its cells at level L have indices c = 2p - 1 + o with the octant offset
o = (ind & 1, ind >> 1 & 1, ind >> 2 & 1) for ind = 0..7. The centre of
cell c is (c - 0.5) / 2**L in domain units.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

import numpy as np

from .errors import ShardStructureError
from .fortran import FortranFile

logger = logging.getLogger("sangrah")

TWOTONDIM = 8

# octant offsets (ind, axis) for ind = 0..7
OCTANT_OFFSETS = np.array([[(ind >> a) & 1 for a in range(3)] for ind in range(TWOTONDIM)], dtype=np.int64)

# records per oct block: index, next, prev, xg*3, father, nbor*6, son*8, cpumap*8, flag1*8
_RECORDS_PER_DOMAIN = 3 + 3 + 1 + 6 + 3 * TWOTONDIM


@dataclass
class GridLevel:
    """
    Octs of one level owned by a shard.

    Attributes:
        level: refinement level L of the cells (the octs' own level)
        parent: (ngrids, 3) 1-based parent cell indices at level L-1
        son: (8, ngrids) son indices per octant, None when not read
    """

    level: int
    parent: np.ndarray
    son: Optional[np.ndarray] = None

    @property
    def ngrids(self) -> int:
        return len(self.parent)

    def cell_coordinates(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """1-based (cx, cy, cz) of every cell, each shaped (8, ngrids)."""
        base = 2 * self.parent - 1
        cx = base[None, :, 0] + OCTANT_OFFSETS[:, 0, None]
        cy = base[None, :, 1] + OCTANT_OFFSETS[:, 1, None]
        cz = base[None, :, 2] + OCTANT_OFFSETS[:, 2, None]
        return cx, cy, cz

    def leaf_mask(self, lmax: int) -> np.ndarray:
        """
        (8, ngrids) flags of cells that are not refined further.

        Cells at `lmax` count as leaves even when refined, so that a read
        truncated at `lmax` still covers the whole domain.
        """
        if self.level >= lmax or self.son is None:
            return np.ones((TWOTONDIM, self.ngrids), dtype=bool)
        return self.son <= 0


@dataclass
class GridShard:
    """
    Grid structure of one shard between lmin and lmax.

    `ncache[L-1, j-1]` holds the oct count of domain j at level L for every
    level up to lmax; the hydro and gravity readers check their own counts
    against it.
    """

    cpu: int
    path: str
    lmin: int
    lmax: int
    ncpu: int
    nboundary: int
    ncache: np.ndarray
    levels: Dict[int, GridLevel] = field(default_factory=dict)

    @property
    def ndomains(self) -> int:
        return self.ncpu + self.nboundary

    def own_grids(self, level: int) -> int:
        return int(self.ncache[level - 1, self.cpu - 1])

    def max_leaf_cells(self) -> int:
        """Upper bound on the leaf rows this shard can produce."""
        return int(sum(TWOTONDIM * lvl.ngrids for lvl in self.levels.values()))


def _grid_record(f: FortranFile, dtype: str, ncache: int, what: str, level: int) -> np.ndarray:
    arr = f.read_vector(dtype)
    if arr.size != ncache:
        raise ShardStructureError(
            f"Level {level}: {what} record holds {arr.size} entries, header declares {ncache} grids",
            path=f.path,
        )
    return arr


def read_grid_shard(
    path: str,
    cpu: int,
    ncpu: int,
    nlevelmax: int,
    lmin: int,
    lmax: int,
    read_son: bool = True,
) -> GridShard:
    """
    Reconstruct the grid of one AMR shard.

    Args:
        path: amr_NNNNN.outCCCCC file
        cpu: 1-based shard index; only this domain's octs are kept
        ncpu: CPU count from the info file
        nlevelmax: maximum level from the info file
        lmin, lmax: levels to keep; reading stops after lmax
        read_son: read the refinement records; with False every cell is a
            leaf, which is only correct when lmin == lmax

    Raises:
        MalformedRecordError: broken record framing
        ShardStructureError: header disagrees with the simulation, or grid
            records disagree with the declared counts
    """
    with FortranFile(path) as f:
        file_ncpu = f.read_int()
        ndim = f.read_int()
        if file_ncpu != ncpu or ndim != 3:
            raise ShardStructureError(
                f"AMR header has ncpu={file_ncpu}, ndim={ndim}; expected ncpu={ncpu}, ndim=3", path=path
            )
        nx, ny, nz = f.read_ints(3)
        file_nlevelmax = f.read_int()
        if file_nlevelmax < lmax:
            raise ShardStructureError(
                f"AMR header has nlevelmax={file_nlevelmax} < lmax={lmax} (info levelmax={nlevelmax})",
                path=path,
            )
        f.skip(1)  # ngridmax
        nboundary = f.read_int()
        f.skip(1)  # ngrid_current
        f.skip(14)
        numbl = f.read_array("i", file_nlevelmax * ncpu).reshape((file_nlevelmax, ncpu))
        f.skip(1)  # numbtot

        numbb = np.zeros((file_nlevelmax, 0), dtype=np.int32)
        if nboundary > 0:
            f.skip(2)  # headb, tailb
            numbb = f.read_array("i", file_nlevelmax * nboundary).reshape((file_nlevelmax, nboundary))

        f.skip(1)  # headf, tailf, numbf, used_mem, used_mem_tot
        ordering = f.read_string()
        f.skip(5 if "bisection" in ordering.lower() else 1)
        f.skip(3)  # coarse son, flag1, cpu_map

        ncache = np.hstack([numbl, numbb])[:lmax].astype(np.int64)
        xbound = np.array([nx // 2, ny // 2, nz // 2], dtype=np.float64)

        shard = GridShard(
            cpu=cpu, path=path, lmin=lmin, lmax=lmax,
            ncpu=ncpu, nboundary=nboundary, ncache=ncache,
        )

        for ilevel in range(1, lmax + 1):
            for idom in range(1, ncpu + nboundary + 1):
                n = int(ncache[ilevel - 1, idom - 1])
                if n <= 0:
                    continue
                if idom != cpu or ilevel < lmin:
                    f.skip(_RECORDS_PER_DOMAIN)
                    continue

                f.skip(3)  # index, next, prev
                xg = np.empty((n, 3), dtype=np.float64)
                for axis in range(3):
                    xg[:, axis] = _grid_record(f, "d", n, "xg", ilevel)
                f.skip(1 + 6)  # father, nbor

                son = None
                if read_son:
                    son = np.empty((TWOTONDIM, n), dtype=np.int32)
                    for ind in range(TWOTONDIM):
                        son[ind] = _grid_record(f, "i", n, "son", ilevel)
                else:
                    f.skip(TWOTONDIM)
                f.skip(2 * TWOTONDIM)  # cpumap, flag1

                parent = (np.floor((xg - xbound) * 2 ** (ilevel - 1)) + 1).astype(np.int64)
                shard.levels[ilevel] = GridLevel(level=ilevel, parent=parent, son=son)

    logger.debug(
        "AMR shard %05d: %d level(s), %d grid(s) kept",
        cpu, len(shard.levels), sum(lvl.ngrids for lvl in shard.levels.values()),
    )
    return shard
