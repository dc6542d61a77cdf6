#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Per-shard clump reader.

Clump files are plain text: one header line with the column names, then
one whitespace-delimited row per clump. Shards of an output must share the
same header; a disagreement surfaces as a SchemaMismatchError when the
shards are merged.

"""

from __future__ import annotations

import logging
import warnings
from dataclasses import dataclass
from typing import Tuple

import numpy as np

from .errors import ShardStructureError
from .parallel import ShardResult
from .selection import VariableSelection, is_full_box, points_in_ranges
from .table import Table

logger = logging.getLogger("sangrah")

PEAK_COLUMNS = ("peak_x", "peak_y", "peak_z")


@dataclass(frozen=True)
class ClumpRequest:
    boxlen: float
    ranges: Tuple[float, float, float, float, float, float]
    variables: VariableSelection
    print_filenames: bool = False


def clump_schema(request: ClumpRequest):
    schema = {}
    if request.variables.read_cpu:
        schema["cpu"] = "i4"
    for name in request.variables.names:
        schema[name] = "f8"
    return schema


def read_clump_shard(path: str, cpu: int, request: ClumpRequest) -> ShardResult:
    """
    Read one clump text file.

    Raises:
        ShardStructureError: unreadable rows or a row width that does not
            match the header
    """
    if request.print_filenames:
        logger.info("Reading %s", path)

    try:
        with open(path, "r", encoding="utf-8") as fh:
            header = fh.readline().split()
            with warnings.catch_warnings():
                # an empty shard is legal; numpy warns about it
                warnings.simplefilter("ignore", UserWarning)
                data = np.loadtxt(fh, dtype=np.float64, ndmin=2)
    except ValueError as e:
        raise ShardStructureError(f"Unreadable clump rows: {e}", path=path) from e

    if data.size == 0:
        data = np.empty((0, len(header)), dtype=np.float64)
    if data.shape[1] != len(header):
        raise ShardStructureError(
            f"Clump rows have {data.shape[1]} columns, header names {len(header)}", path=path
        )
    columns = {name: data[:, i] for i, name in enumerate(header)}

    keep = np.ones(len(data), dtype=bool)
    if not is_full_box(request.ranges) and all(c in columns for c in PEAK_COLUMNS):
        keep = points_in_ranges(
            columns["peak_x"], columns["peak_y"], columns["peak_z"], request.ranges, request.boxlen
        )

    out = {}
    if request.variables.read_cpu:
        out["cpu"] = np.full(int(np.count_nonzero(keep)), cpu, dtype=np.int32)
    for name in header:
        if name in request.variables.names:
            out[name] = columns[name][keep]
    return ShardResult(cpu=cpu, table=Table(out))
