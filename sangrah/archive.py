#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Save and load assembled datasets as compressed HDF5 archives.

──────────────────────────────────────────────────────────────────────────────
Layout
──────────────────────────────────────────────────────────────────────────────
/<kind>                       one group per dataset kind (hydro, gravity, ...)
    attrs: columns, lmin, lmax, boxlen, ranges, selected_variables,
           failed_shards, quality, smallr/smallc (hydro), info (JSON)
    <column>                  one compressed 1-D dataset per column

Column names and order round-trip unchanged.

"""

from __future__ import annotations

import json
import logging
import shlex
import sys
import time
from typing import Union

import h5py as h5
import numpy as np

from .datasets import DATASET_CLASSES, Dataset, DatasetKind, HydroDataset
from .info import SimulationInfo
from .table import Table

logger = logging.getLogger("sangrah")

FORMAT_VERSION = 1


def save_datasets(filename: str, *datasets: Dataset, compression: str = "gzip") -> None:
    """
    Write one or more datasets into a single HDF5 file.

    Args:
        filename: target file (overwritten)
        datasets: datasets of distinct kinds
        compression: h5py compression filter for the column datasets
    """
    from . import __version__

    kinds = [d.kind.value for d in datasets]
    if len(set(kinds)) != len(kinds):
        raise ValueError(f"Only one dataset per kind can be stored, got {kinds}")

    t0 = time.time()
    with h5.File(filename, "w") as f:
        f.attrs["format_version"] = FORMAT_VERSION
        f.attrs["generator_command"] = shlex.join(sys.argv)
        f.attrs["generator_timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        f.attrs["generator_version"] = __version__

        for ds in datasets:
            group = f.create_group(ds.kind.value, track_order=True)
            group.attrs["columns"] = json.dumps(ds.data.columns)
            group.attrs["lmin"] = ds.lmin
            group.attrs["lmax"] = ds.lmax
            group.attrs["boxlen"] = ds.boxlen
            group.attrs["ranges"] = np.asarray(ds.ranges, dtype=np.float64)
            group.attrs["selected_variables"] = json.dumps(list(ds.selected_variables))
            group.attrs["failed_shards"] = json.dumps(list(ds.failed_shards))
            group.attrs["quality"] = json.dumps(ds.quality)
            group.attrs["info"] = json.dumps(ds.info.to_dict())
            if isinstance(ds, HydroDataset):
                group.attrs["smallr"] = ds.smallr
                group.attrs["smallc"] = ds.smallc

            for name in ds.data.columns:
                values = ds.data[name]
                if len(values):
                    group.create_dataset(name, data=values, compression=compression)
                else:
                    group.create_dataset(name, data=values)

            logger.debug("Stored %s: %d rows", ds.kind.value, len(ds))

    logger.info("Saved %s (%s) in %.2fs", filename, ", ".join(kinds), time.time() - t0)


def load_dataset(filename: str, kind: Union[str, DatasetKind]) -> Dataset:
    """
    Rebuild one dataset from an archive written by `save_datasets`.

    Raises:
        KeyError when the archive holds no dataset of `kind`.
    """
    kind = DatasetKind.parse(kind)
    with h5.File(filename, "r") as f:
        if kind.value not in f:
            raise KeyError(f"{filename} holds no '{kind.value}' dataset (found: {', '.join(f.keys())})")
        group = f[kind.value]
        columns = json.loads(group.attrs["columns"])
        table = Table({name: group[name][()] for name in columns})
        info = SimulationInfo.from_dict(json.loads(group.attrs["info"]))

        extra = {}
        if kind is DatasetKind.HYDRO:
            extra = {"smallr": float(group.attrs.get("smallr", 0.0)), "smallc": float(group.attrs.get("smallc", 0.0))}

        return DATASET_CLASSES[kind](
            data=table,
            info=info,
            lmin=int(group.attrs["lmin"]),
            lmax=int(group.attrs["lmax"]),
            boxlen=float(group.attrs["boxlen"]),
            ranges=tuple(float(r) for r in group.attrs["ranges"]),
            selected_variables=json.loads(group.attrs["selected_variables"]),
            scale=info.scale.copy(),
            failed_shards=json.loads(group.attrs["failed_shards"]),
            quality=json.loads(group.attrs["quality"]),
            **extra,
        )
