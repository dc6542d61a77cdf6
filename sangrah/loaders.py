#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Public entry points: read hydro, gravity, particle and clump data.

──────────────────────────────────────────────────────────────────────────────
Flow
──────────────────────────────────────────────────────────────────────────────
  1. validate the request against the SimulationInfo (ConfigurationError)
  2. check that exactly ncpu shard files exist (ShardCountMismatchError)
  3. prune shards with the Hilbert domain table, when possible
  4. dispatch the per-shard reader over a thread pool
  5. assemble the dataset and apply the partial-failure policy

Example:

    info = get_info(7, path="simulations")
    gas = read_hydro(info, variables=["rho", "p"], xrange=(0.25, 0.75), smallr=1e-10)
    part = read_particles(info, thread_budget=4)

"""

from __future__ import annotations

import logging
import os
from functools import partial
from typing import Any, Iterable, List, Optional, Sequence, Union

import numpy as np

from .assembler import assemble
from .cells import CellRequest, cell_schema, read_cell_shard
from .clumps import ClumpRequest, clump_schema, read_clump_shard
from .config import ReaderConfig, resolve_config
from .datasets import (
    ClumpDataset,
    Dataset,
    DatasetKind,
    GravityDataset,
    HydroDataset,
    ParticleDataset,
)
from .errors import ConfigurationError
from .hilbert import cpu_list
from .info import SimulationInfo, check_shard_count, get_info
from .parallel import dispatch
from .particles import ParticleRequest, particle_layout, particle_schema, read_particle_shard
from .selection import is_full_box, prepare_ranges, resolve_levels, resolve_variables
from .table import Table

logger = logging.getLogger("sangrah")

Variables = Optional[Union[str, Iterable[str]]]
Range = Optional[Sequence[Optional[float]]]

__all__ = [
    "get_info",
    "read_hydro",
    "read_gravity",
    "read_particles",
    "read_clumps",
    "read_dataset",
    "shard_plan",
]


# ──────────────────────────────────────────────────────────────────────────────
# Shared helpers
# ──────────────────────────────────────────────────────────────────────────────

def _require(info: SimulationInfo, kind: DatasetKind) -> None:
    if not info.has(kind.value):
        raise ConfigurationError(
            f"Output {info.output} in {info.paths.folder} has no {kind.value} data"
        )


def _select_shards(
    info: SimulationInfo,
    ranges: Sequence[float],
    lmin: int,
    lmax: int,
    config: ReaderConfig,
) -> List[int]:
    """All CPUs, or only those whose Hilbert domain meets `ranges`."""
    everything = list(range(1, info.ncpu + 1))
    if (
        not config.prune_shards
        or is_full_box(ranges)
        or not info.hilbert_ordering
        or info.bound_key is None
    ):
        return everything
    nlevelmax = info.grid.nlevelmax or info.levelmax
    cpus = cpu_list(info.bound_key, ranges, nlevelmax, lmax, lmin)
    config.narrate("Hilbert pruning kept %d of %d shard(s)", len(cpus), info.ncpu)
    return cpus


def _cell_rows_estimate(info: SimulationInfo, lmin: int, lmax: int, bytes_per_row: int, cpu: int) -> int:
    numbl = info.grid.numbl
    if numbl is None:
        return bytes_per_row
    grids = int(np.sum(numbl[lmin - 1:lmax, cpu - 1]))
    return max(1, 8 * grids) * bytes_per_row


def _flat_estimate(rows: int, bytes_per_row: int, cpu: int) -> int:
    return max(1, rows) * bytes_per_row


def _file_estimate(info: SimulationInfo, kind: str, rows: int, bytes_per_row: int, cpu: int) -> int:
    """Header-based estimate, raised to the shard's size on disk."""
    path = info.paths.shard(kind, cpu)
    on_disk = os.path.getsize(path) if os.path.isfile(path) else 0
    return max(_flat_estimate(rows, bytes_per_row, cpu), on_disk)


def _bytes_per_row(schema) -> int:
    return int(sum(np.dtype(dt).itemsize for dt in schema.values()))


# ──────────────────────────────────────────────────────────────────────────────
# Workers (module level so they are cheap to bind with functools.partial)
# ──────────────────────────────────────────────────────────────────────────────

def _cell_worker(info: SimulationInfo, request: CellRequest, cpu: int):
    paths = info.paths
    return read_cell_shard(paths.shard(request.kind, cpu), paths.shard("amr", cpu), cpu, request)


def _particle_worker(info: SimulationInfo, request: ParticleRequest, cpu: int):
    return read_particle_shard(info.paths.shard("part", cpu), cpu, request)


def _clump_worker(info: SimulationInfo, request: ClumpRequest, cpu: int):
    return read_clump_shard(info.paths.shard("clump", cpu), cpu, request)


# ──────────────────────────────────────────────────────────────────────────────
# Cell data
# ──────────────────────────────────────────────────────────────────────────────

def _read_cells(
    kind: DatasetKind,
    info: SimulationInfo,
    available: Sequence[str],
    variables: Variables,
    level_range,
    spatial_range,
    xrange: Range,
    yrange: Range,
    zrange: Range,
    center,
    range_unit: str,
    config: ReaderConfig,
    smallr: float = 0.0,
    smallc: float = 0.0,
    check_negvalues: bool = False,
) -> Dataset:
    _require(info, kind)
    if smallr < 0 or smallc < 0:
        raise ConfigurationError(f"smallr and smallc must be >= 0, got {smallr}, {smallc}")

    lmin, lmax = resolve_levels(info, level_range)
    ranges = prepare_ranges(info, xrange, yrange, zrange, center, range_unit, spatial_range)
    selection = resolve_variables(available, variables)
    check_shard_count(info, ["amr", kind.shard_prefix])

    request = CellRequest(
        kind=kind.shard_prefix,
        ncpu=info.ncpu,
        nlevelmax=info.levelmax,
        lmin=lmin,
        lmax=lmax,
        ranges=ranges,
        variables=selection,
        smallr=float(smallr),
        smallc=float(smallc),
        gamma=info.gamma,
        check_negvalues=check_negvalues,
        print_filenames=config.print_filenames,
    )
    schema = cell_schema(request)
    cpus = _select_shards(info, ranges, lmin, lmax, config)

    config.narrate(
        "%s: levels %d-%d, variables %s, ranges %s", kind.value, lmin, lmax, list(selection.names), ranges
    )
    outcome = dispatch(
        cpus,
        partial(_cell_worker, info, request),
        Table.empty(schema),
        config,
        estimate=partial(_cell_rows_estimate, info, lmin, lmax, _bytes_per_row(schema)),
        label=f"{kind.value} shards",
    )

    extra = {"smallr": float(smallr), "smallc": float(smallc)} if kind is DatasetKind.HYDRO else {}
    return assemble(
        kind, outcome, info, list(schema), lmin, lmax, ranges, list(selection.names), config, **extra
    )


def read_hydro(
    info: SimulationInfo,
    variables: Variables = None,
    level_range: Optional[Sequence[Optional[int]]] = None,
    spatial_range: Optional[Sequence[float]] = None,
    smallr: float = 0.0,
    smallc: float = 0.0,
    xrange: Range = None,
    yrange: Range = None,
    zrange: Range = None,
    center=(0.0, 0.0, 0.0),
    range_unit: str = "standard",
    check_negvalues: bool = False,
    config: Optional[ReaderConfig] = None,
    **options: Any,
) -> HydroDataset:
    """
    Read the leaf hydro cells of one output.

    Args:
        info: SimulationInfo from get_info
        variables: names (rho, vx, vy, vz, p, var6, ...), "varN", "cpu" or "all"
        level_range: (lmin, lmax); defaults to (levelmin, levelmax)
        spatial_range: (xmin, xmax, ymin, ymax, zmin, zmax) in [0,1] domain units
        smallr: density floor (0 disables)
        smallc: sound-speed floor used to clamp the pressure (0 disables)
        xrange, yrange, zrange, center, range_unit: per-axis alternative to spatial_range
        check_negvalues: count negative rho/p in fields without a floor
        config: ReaderConfig; keyword `options` override its fields

    Returns:
        HydroDataset with columns level, [cpu], cx, cy, cz, <variables>.

    Raises:
        ConfigurationError, PartialReadError, SchemaMismatchError
    """
    cfg = resolve_config(config, **options)
    return _read_cells(
        DatasetKind.HYDRO, info, info.variable_list, variables, level_range, spatial_range,
        xrange, yrange, zrange, center, range_unit, cfg,
        smallr=smallr, smallc=smallc, check_negvalues=check_negvalues,
    )


def read_gravity(
    info: SimulationInfo,
    variables: Variables = None,
    level_range: Optional[Sequence[Optional[int]]] = None,
    spatial_range: Optional[Sequence[float]] = None,
    xrange: Range = None,
    yrange: Range = None,
    zrange: Range = None,
    center=(0.0, 0.0, 0.0),
    range_unit: str = "standard",
    config: Optional[ReaderConfig] = None,
    **options: Any,
) -> GravityDataset:
    """Read the leaf gravity cells (epot, ax, ay, az) of one output."""
    cfg = resolve_config(config, **options)
    return _read_cells(
        DatasetKind.GRAVITY, info, info.gravity_variable_list, variables, level_range, spatial_range,
        xrange, yrange, zrange, center, range_unit, cfg,
    )


# ──────────────────────────────────────────────────────────────────────────────
# Particles and clumps
# ──────────────────────────────────────────────────────────────────────────────

def read_particles(
    info: SimulationInfo,
    variables: Variables = None,
    level_range: Optional[Sequence[Optional[int]]] = None,
    spatial_range: Optional[Sequence[float]] = None,
    xrange: Range = None,
    yrange: Range = None,
    zrange: Range = None,
    center=(0.0, 0.0, 0.0),
    range_unit: str = "standard",
    config: Optional[ReaderConfig] = None,
    **options: Any,
) -> ParticleDataset:
    """
    Read the particles of one output.

    Particles are filtered by level only when `level_range` is given.

    Returns:
        ParticleDataset with columns level, x, y, z, id, [cpu], <variables>.
    """
    cfg = resolve_config(config, **options)
    kind = DatasetKind.PARTICLES
    _require(info, kind)

    lmin, lmax = resolve_levels(info, level_range)
    ranges = prepare_ranges(info, xrange, yrange, zrange, center, range_unit, spatial_range)
    selection = resolve_variables(info.particles_variable_list, variables)
    check_shard_count(info, ["part"])

    legacy = not (info.descriptor.particle_version >= 1 and info.descriptor.particles)
    request = ParticleRequest(
        ncpu=info.ncpu,
        boxlen=info.boxlen,
        layout=particle_layout(info),
        legacy=legacy,
        metals=info.part_info.metals,
        ranges=ranges,
        variables=selection,
        lmin=lmin,
        lmax=lmax,
        filter_levels=level_range is not None and any(v is not None for v in level_range),
        print_filenames=cfg.print_filenames,
    )
    schema = particle_schema(request)
    # particles sit in leaf cells, which are never coarser than levelmin
    cpus = _select_shards(info, ranges, info.levelmin, info.levelmax, cfg)

    outcome = dispatch(
        cpus,
        partial(_particle_worker, info, request),
        Table.empty(schema),
        cfg,
        estimate=partial(
            _file_estimate, info, "part", info.part_info.Npart // max(1, info.ncpu), _bytes_per_row(schema)
        ),
        label="particle shards",
    )
    return assemble(kind, outcome, info, list(schema), lmin, lmax, ranges, list(selection.names), cfg)


def read_clumps(
    info: SimulationInfo,
    variables: Variables = None,
    spatial_range: Optional[Sequence[float]] = None,
    xrange: Range = None,
    yrange: Range = None,
    zrange: Range = None,
    center=(0.0, 0.0, 0.0),
    range_unit: str = "standard",
    config: Optional[ReaderConfig] = None,
    **options: Any,
) -> ClumpDataset:
    """
    Read the clump catalogue of one output.

    The spatial filter uses peak_x/peak_y/peak_z when those columns exist.
    """
    cfg = resolve_config(config, **options)
    kind = DatasetKind.CLUMPS
    _require(info, kind)

    ranges = prepare_ranges(info, xrange, yrange, zrange, center, range_unit, spatial_range)
    selection = resolve_variables(info.clumps_variable_list, variables)
    check_shard_count(info, ["clump"])

    request = ClumpRequest(
        boxlen=info.boxlen, ranges=ranges, variables=selection, print_filenames=cfg.print_filenames
    )
    schema = clump_schema(request)
    outcome = dispatch(
        list(range(1, info.ncpu + 1)),
        partial(_clump_worker, info, request),
        Table.empty(schema),
        cfg,
        estimate=partial(_file_estimate, info, "clump", 1, _bytes_per_row(schema)),
        label="clump shards",
    )
    return assemble(
        kind, outcome, info, list(schema), info.levelmin, info.levelmax, ranges, list(selection.names), cfg
    )


_READERS = {
    DatasetKind.HYDRO: read_hydro,
    DatasetKind.GRAVITY: read_gravity,
    DatasetKind.PARTICLES: read_particles,
    DatasetKind.CLUMPS: read_clumps,
}


def read_dataset(kind: Union[str, DatasetKind], info: SimulationInfo, **kwargs: Any) -> Dataset:
    """Read a dataset selected by kind ("hydro", "gravity", "particles", "clumps")."""
    return _READERS[DatasetKind.parse(kind)](info, **kwargs)


def shard_plan(
    kind: Union[str, DatasetKind],
    info: SimulationInfo,
    spatial_range: Optional[Sequence[float]] = None,
    level_range: Optional[Sequence[Optional[int]]] = None,
    config: Optional[ReaderConfig] = None,
    **options: Any,
) -> List[int]:
    """Shards a read of `kind` would open, without reading any of them."""
    kind = DatasetKind.parse(kind)
    cfg = resolve_config(config, **options)
    _require(info, kind)
    lmin, lmax = resolve_levels(info, level_range)
    ranges = prepare_ranges(info, spatial_range=spatial_range)
    if kind is DatasetKind.CLUMPS:
        return list(range(1, info.ncpu + 1))
    if kind is DatasetKind.PARTICLES:
        lmin, lmax = info.levelmin, info.levelmax
    return _select_shards(info, ranges, lmin, lmax, cfg)
