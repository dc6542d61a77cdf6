#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Per-shard readers for cell data (hydro and gravity).

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Both file kinds mirror the AMR shard: for every level and every domain they
store (ilevel), (ncache) and, when ncache > 0, one record per octant and
variable, octant-major. Records of other domains, of levels below lmin and
of variables that were not requested are skipped without being decoded.

Selection is applied per level in this order:
  1. level bounds (whole levels are skipped)
  2. leaf cells only
  3. spatial footprint test on the integer cell coordinates
  4. variable projection (only requested columns are materialised)

Hydro rows additionally get the smallr/smallc floors.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Callable, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .amr import TWOTONDIM, GridShard, read_grid_shard
from .errors import ShardStructureError
from .fortran import FortranFile
from .parallel import ShardResult
from .selection import VariableSelection, cells_in_ranges, is_full_box
from .table import Table

logger = logging.getLogger("sangrah")

CELL_INDEX_COLUMNS = ("cx", "cy", "cz")


@dataclass(frozen=True)
class CellRequest:
    """Everything a worker needs to read one hydro or gravity shard."""

    kind: str
    ncpu: int
    nlevelmax: int
    lmin: int
    lmax: int
    ranges: Tuple[float, float, float, float, float, float]
    variables: VariableSelection
    smallr: float = 0.0
    smallc: float = 0.0
    gamma: float = 5.0 / 3.0
    check_negvalues: bool = False
    print_filenames: bool = False

    @property
    def bypass_refinement(self) -> bool:
        return self.lmin == self.lmax


def cell_schema(request: CellRequest) -> Dict[str, str]:
    """Column name -> dtype, in table order."""
    schema = {"level": "i4"}
    if request.variables.read_cpu:
        schema["cpu"] = "i4"
    for name in CELL_INDEX_COLUMNS:
        schema[name] = "i4"
    for name in request.variables.names:
        schema[name] = "f8"
    return schema


# ──────────────────────────────────────────────────────────────────────────────
# Headers
# ──────────────────────────────────────────────────────────────────────────────

def _check(cond: bool, message: str, path: str) -> None:
    if not cond:
        raise ShardStructureError(message, path=path)


def _read_hydro_header(f: FortranFile, request: CellRequest) -> int:
    ncpu = f.read_int()
    nvar = f.read_int()
    ndim = f.read_int()
    nlevelmax = f.read_int()
    f.skip(1)  # nboundary
    f.skip(1)  # gamma
    _check(ncpu == request.ncpu and ndim == 3, f"Hydro header has ncpu={ncpu}, ndim={ndim}", f.path)
    _check(nlevelmax >= request.lmax, f"Hydro header has nlevelmax={nlevelmax} < lmax={request.lmax}", f.path)
    _check(
        not request.variables.indices or max(request.variables.indices) < nvar,
        f"Hydro shard holds {nvar} variables, selection needs {max(request.variables.indices, default=-1) + 1}",
        f.path,
    )
    return nvar


def _read_gravity_header(f: FortranFile, request: CellRequest) -> int:
    ncpu = f.read_int()
    # older RAMSES versions write ndim here, newer ones ndim+1
    ndim = f.read_int()
    nlevelmax = f.read_int()
    f.skip(1)  # nboundary
    _check(ncpu == request.ncpu and ndim in (3, 4), f"Gravity header has ncpu={ncpu}, ndim={ndim}", f.path)
    _check(nlevelmax >= request.lmax, f"Gravity header has nlevelmax={nlevelmax} < lmax={request.lmax}", f.path)
    return 4


_HEADERS: Dict[str, Callable[[FortranFile, CellRequest], int]] = {
    "hydro": _read_hydro_header,
    "grav": _read_gravity_header,
}


# ──────────────────────────────────────────────────────────────────────────────
# Shard reader
# ──────────────────────────────────────────────────────────────────────────────

def _read_block(f: FortranFile, nvar: int, ncache: int, wanted: Sequence[int], level: int) -> Dict[int, np.ndarray]:
    """Octant-major variable block; returns var index -> (8, ncache) array."""
    out = {ivar: np.empty((TWOTONDIM, ncache), dtype=np.float64) for ivar in wanted}
    for ind in range(TWOTONDIM):
        for ivar in range(nvar):
            if ivar not in out:
                f.skip(1)
                continue
            arr = f.read_vector("d")
            if arr.size != ncache:
                raise ShardStructureError(
                    f"Level {level}: variable {ivar + 1} holds {arr.size} cells, expected {ncache}",
                    path=f.path,
                )
            out[ivar][ind] = arr
    return out


def _level_rows(
    grid_level,
    block: Dict[int, np.ndarray],
    request: CellRequest,
    cpu: int,
    full_box: bool,
) -> Optional[Dict[str, np.ndarray]]:
    cx, cy, cz = grid_level.cell_coordinates()
    keep = grid_level.leaf_mask(request.lmax)
    if not full_box:
        keep &= cells_in_ranges(cx, cy, cz, request.ranges, grid_level.level)

    # grid-major: all 8 cells of an oct are adjacent
    keep = keep.T
    n = int(np.count_nonzero(keep))
    if n == 0:
        return None

    rows: Dict[str, np.ndarray] = {"level": np.full(n, grid_level.level, dtype=np.int32)}
    if request.variables.read_cpu:
        rows["cpu"] = np.full(n, cpu, dtype=np.int32)
    rows["cx"] = cx.T[keep].astype(np.int32)
    rows["cy"] = cy.T[keep].astype(np.int32)
    rows["cz"] = cz.T[keep].astype(np.int32)
    for name, ivar in zip(request.variables.names, request.variables.indices):
        rows[name] = block[ivar].T[keep]
    return rows


def read_cell_shard(path: str, amr_path: str, cpu: int, request: CellRequest) -> ShardResult:
    """
    Read one hydro or gravity shard, aligned against its AMR shard.

    Args:
        path: hydro_ or grav_ file of the shard
        amr_path: matching amr_ file
        cpu: 1-based shard index
        request: selection and floors

    Raises:
        MalformedRecordError, ShardStructureError
    """
    if request.print_filenames:
        logger.info("Reading %s", path)

    grid: GridShard = read_grid_shard(
        amr_path, cpu, request.ncpu, request.nlevelmax, request.lmin, request.lmax,
        read_son=not request.bypass_refinement,
    )
    full_box = is_full_box(request.ranges)
    wanted = list(request.variables.indices)
    parts: List[Dict[str, np.ndarray]] = []

    with FortranFile(path) as f:
        nvar = _HEADERS[request.kind](f, request)
        for ilevel in range(1, request.lmax + 1):
            for idom in range(1, grid.ndomains + 1):
                file_level = f.read_int()
                ncache = f.read_int()
                expected = int(grid.ncache[ilevel - 1, idom - 1])
                if file_level != ilevel or ncache != expected:
                    raise ShardStructureError(
                        f"Level {ilevel} domain {idom}: file declares (level={file_level}, "
                        f"ncache={ncache}), AMR shard has ncache={expected}",
                        path=path,
                    )
                if ncache == 0:
                    continue
                if idom != cpu or ilevel < request.lmin:
                    f.skip(TWOTONDIM * nvar)
                    continue
                block = _read_block(f, nvar, ncache, wanted, ilevel)
                rows = _level_rows(grid.levels[ilevel], block, request, cpu, full_box)
                if rows is not None:
                    parts.append(rows)

    schema = cell_schema(request)
    if parts:
        table = Table({name: np.concatenate([p[name] for p in parts]) for name in schema})
    else:
        table = Table.empty(schema)

    quality: Dict[str, int] = {}
    if request.kind == "hydro":
        quality = apply_floors(table, request)
    return ShardResult(cpu=cpu, table=table, quality=quality)


# ──────────────────────────────────────────────────────────────────────────────
# Floors
# ──────────────────────────────────────────────────────────────────────────────

def pressure_floor(rho: Optional[np.ndarray], smallr: float, smallc: float, gamma: float):
    """Pressure whose sound speed equals smallc at density rho (or smallr)."""
    density = smallr if rho is None else rho
    return np.multiply(density, smallc ** 2 / gamma)


def apply_floors(table: Table, request: CellRequest) -> Dict[str, int]:
    """
    Clamp rho and p in place and return the quality counters.

    Negative values are only counted (when check_negvalues is set) for fields
    without an active floor, since a floor would hide them.
    """
    quality: Dict[str, int] = {}
    rho = table["rho"] if "rho" in table else None
    p = table["p"] if "p" in table else None

    if request.check_negvalues:
        if rho is not None and request.smallr <= 0:
            quality["negative_rho"] = int(np.count_nonzero(rho < 0))
        if p is not None and request.smallc <= 0:
            quality["negative_p"] = int(np.count_nonzero(p < 0))

    if rho is not None and request.smallr > 0:
        low = rho < request.smallr
        quality["floored_rho"] = int(np.count_nonzero(low))
        rho[low] = request.smallr

    if p is not None and request.smallc > 0:
        floor = pressure_floor(rho, request.smallr, request.smallc, request.gamma)
        low = p < floor
        quality["floored_p"] = int(np.count_nonzero(low))
        p[low] = np.broadcast_to(floor, p.shape)[low]

    return quality
