#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Per-shard particle reader.

──────────────────────────────────────────────────────────────────────────────
Record layout
──────────────────────────────────────────────────────────────────────────────
Header: ncpu, ndim, npart, localseed, nstar_tot, mstar_tot, mstar_lost, nsink.

Without a v1 descriptor the records are
    x, y, z, vx, vy, vz, mass, id (int32), level (int32)
followed by birth (and metals, when written) if nstar_tot > 0.

With a v1 part_file_descriptor.txt the record order and types follow the
descriptor; names are mapped to the short column names (position_x -> x,
identity -> id, levelp -> level, ...).

Particle files are self-contained; no AMR shard is needed.

"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, List, Tuple

import numpy as np

from .errors import ShardStructureError
from .fortran import FortranFile
from .info import DESCRIPTOR_TYPES, PARTICLE_NAME_MAP, SimulationInfo
from .parallel import ShardResult
from .selection import VariableSelection, is_full_box, points_in_ranges
from .table import Table

logger = logging.getLogger("sangrah")

POSITION_COLUMNS = ("x", "y", "z")
_LEGACY_LAYOUT = (
    ("x", "f8"), ("y", "f8"), ("z", "f8"),
    ("vx", "f8"), ("vy", "f8"), ("vz", "f8"),
    ("mass", "f8"), ("id", "i4"), ("level", "i4"),
)


def particle_layout(info: SimulationInfo) -> Tuple[Tuple[str, str], ...]:
    """
    (column, dtype) of every record after the header, in file order.

    For the legacy layout the star records (birth, metals) are not
    included; they depend on each shard's nstar_tot.
    """
    d = info.descriptor
    if d.particle_version >= 1 and d.particles:
        types = d.particle_types or ["d"] * len(d.particles)
        return tuple(
            (PARTICLE_NAME_MAP.get(name, name), DESCRIPTOR_TYPES.get(t, "f8"))
            for name, t in zip(d.particles, types)
        )
    return _LEGACY_LAYOUT


@dataclass(frozen=True)
class ParticleRequest:
    ncpu: int
    boxlen: float
    layout: Tuple[Tuple[str, str], ...]
    legacy: bool
    metals: bool
    ranges: Tuple[float, float, float, float, float, float]
    variables: VariableSelection
    lmin: int
    lmax: int
    filter_levels: bool = False
    print_filenames: bool = False

    def dtype_of(self, name: str) -> str:
        for col, dt in self.layout:
            if col == name:
                return dt
        return "f8"


def particle_schema(request: ParticleRequest) -> Dict[str, str]:
    schema = {"level": "i4", "x": "f8", "y": "f8", "z": "f8", "id": "i8"}
    if request.variables.read_cpu:
        schema["cpu"] = "i4"
    for name in request.variables.names:
        schema[name] = request.dtype_of(name)
    return schema


def _record(f: FortranFile, dtype: str, npart: int, name: str) -> np.ndarray:
    arr = f.read_vector(dtype)
    if arr.size != npart:
        raise ShardStructureError(
            f"Particle record '{name}' holds {arr.size} entries, header declares npart={npart}",
            path=f.path,
        )
    return arr


def read_particle_shard(path: str, cpu: int, request: ParticleRequest) -> ShardResult:
    """
    Read one particle shard and apply the spatial (and optional level) filter.

    Raises:
        MalformedRecordError, ShardStructureError
    """
    if request.print_filenames:
        logger.info("Reading %s", path)

    needed = set(POSITION_COLUMNS) | {"id", "level"} | set(request.variables.names)
    columns: Dict[str, np.ndarray] = {}

    with FortranFile(path) as f:
        ncpu = f.read_int()
        ndim = f.read_int()
        npart = f.read_int()
        f.skip(1)  # localseed
        nstar = f.read_int()
        f.skip(3)  # mstar_tot, mstar_lost, nsink
        if ncpu != request.ncpu or ndim != 3:
            raise ShardStructureError(f"Particle header has ncpu={ncpu}, ndim={ndim}", path=path)

        layout: List[Tuple[str, str]] = list(request.layout)
        if request.legacy and nstar > 0:
            layout.append(("birth", "f8"))
            if request.metals:
                layout.append(("metals", "f8"))

        if npart > 0:
            for name, dtype in layout:
                if name in needed:
                    columns[name] = _record(f, dtype, npart, name)
                else:
                    f.skip(1)

    schema = particle_schema(request)
    for name in ("level",) + tuple(request.variables.names):
        if name not in columns:
            # level not written, or birth/metals on a shard without stars
            columns[name] = np.zeros(npart, dtype=schema[name])
    for name in POSITION_COLUMNS + ("id",):
        if name not in columns:
            if npart > 0:
                raise ShardStructureError(f"Particle records have no '{name}' field", path=path)
            columns[name] = np.zeros(0, dtype=schema[name])

    keep = np.ones(npart, dtype=bool)
    if not is_full_box(request.ranges):
        keep &= points_in_ranges(columns["x"], columns["y"], columns["z"], request.ranges, request.boxlen)
    if request.filter_levels:
        keep &= (columns["level"] >= request.lmin) & (columns["level"] <= request.lmax)

    out: Dict[str, np.ndarray] = {}
    for name, dtype in schema.items():
        if name == "cpu":
            out[name] = np.full(int(np.count_nonzero(keep)), cpu, dtype=np.int32)
        else:
            out[name] = columns[name][keep].astype(dtype, copy=False)
    return ShardResult(cpu=cpu, table=Table(out))
