#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Export hydro or gravity datasets to the VTKHDF OverlappingAMR format that
ParaView and other VTK-based tools can read.

──────────────────────────────────────────────────────────────────────────────
Layout
──────────────────────────────────────────────────────────────────────────────
/VTKHDF                  Version (2,2), Type, GridDescription, Origin,
                         NumberOfLevels, generator metadata
    /LevelN              one group per populated level, N = 0, 1, ...
        Spacing          boxlen / 2**level on every axis
        NumberOfBlocks   cells at this level
        AMRBox           int32 rows [i, i, j, j, k, k] (0-based indices)
        CellData/<name>  float32 scalars (N, 1) or vectors (N, 3)
        PointData, FieldData (empty)

Each leaf cell is written as a one-cell block.

"""

from __future__ import annotations

import logging
import shlex
import sys
import time
from typing import Dict, List, Optional, Sequence, Tuple

import h5py as h5
import numpy as np

from .datasets import CellDataset

logger = logging.getLogger("sangrah")

FLOAT_DTYPE = "f"  # float32

# vector name -> components, written as (N, 3) when all three are present
VECTOR_FIELDS = {
    "velocity": ("vx", "vy", "vz"),
    "acceleration": ("ax", "ay", "az"),
}


def _resolve_fields(dataset: CellDataset, fields: Optional[Sequence[str]]) -> Tuple[List[str], Dict[str, Tuple[str, str, str]]]:
    """
    Split requested names into scalar columns and vectors.

    With `fields` None every variable column is exported; complete
    velocity/acceleration triplets become vectors.
    """
    columns = set(dataset.data.columns)
    scalars: List[str] = []
    vectors: Dict[str, Tuple[str, str, str]] = {}

    if fields is None:
        used = set()
        for vname, comps in VECTOR_FIELDS.items():
            if all(c in columns for c in comps):
                vectors[vname] = comps
                used.update(comps)
        scalars = [v for v in dataset.selected_variables if v in columns and v not in used]
        return scalars, vectors

    for name in fields:
        if name in VECTOR_FIELDS and all(c in columns for c in VECTOR_FIELDS[name]):
            vectors[name] = VECTOR_FIELDS[name]
        elif name in columns:
            scalars.append(name)
        else:
            logger.warning("Requested field '%s' not found in the dataset; skipping.", name)
    return scalars, vectors


def _write_level_to_hdf5(
    level_group,
    spacing: float,
    indices: np.ndarray,
    scalars_dict: Dict[str, np.ndarray],
    vectors_dict: Dict[str, np.ndarray],
) -> None:
    """
    Write one AMR level group following VTKHDF OverlappingAMR expectations.

    Args:
        level_group: h5py Group for the level (already created)
        spacing: cell spacing for this level
        indices: Nx3 array of 0-based integer cell indices
        scalars_dict: mapping name -> 1D array (length N)
        vectors_dict: mapping name -> Nx3 array
    """
    level_group.attrs.create("Spacing", [spacing, spacing, spacing], dtype=FLOAT_DTYPE)
    level_group.attrs["NumberOfBlocks"] = len(indices)

    i, j, k = (indices[:, a].astype(np.int32) for a in range(3))
    amr_values = np.column_stack([i, i, j, j, k, k]).astype(np.int32)
    level_group.create_dataset("AMRBox", data=amr_values)

    celldata = level_group.create_group("CellData")

    for name, arr in scalars_dict.items():
        celldata.create_dataset(name, data=arr.reshape(-1, 1).astype(FLOAT_DTYPE))

    for name, arr in vectors_dict.items():
        celldata.create_dataset(name, data=arr.astype(FLOAT_DTYPE))

    level_group.create_group("PointData")
    level_group.create_group("FieldData")


def export_vtkhdf(dataset: CellDataset, filename: str, fields: Optional[Sequence[str]] = None) -> int:
    """
    Write a hydro or gravity dataset as a VTKHDF OverlappingAMR file.

    Args:
        dataset: HydroDataset or GravityDataset
        filename: output file (overwritten)
        fields: variable columns or vector names to export; None means all

    Returns:
        Number of levels written.
    """
    from . import __version__

    if not isinstance(dataset, CellDataset):
        raise TypeError(f"VTKHDF export needs cell data, got {dataset.kind.value}")

    t0 = time.time()
    scalars, vectors = _resolve_fields(dataset, fields)
    table = dataset.data
    levels = sorted(int(lvl) for lvl in np.unique(table["level"]))

    with h5.File(filename, "w") as f:
        root = f.create_group("VTKHDF", track_order=True)
        root.attrs["Version"] = (2, 2)
        root.attrs.create(
            "Type", b"OverlappingAMR", dtype=h5.string_dtype("ascii", len(b"OverlappingAMR"))
        )
        root.attrs.create(
            "GridDescription", b"XYZ", dtype=h5.string_dtype("ascii", len(b"XYZ"))
        )
        root.attrs.create(
            "Origin", [0.0, 0.0, 0.0], dtype=FLOAT_DTYPE
        )
        root.attrs["NumberOfLevels"] = len(levels)

        root.attrs["generator_command"] = shlex.join(sys.argv)
        root.attrs["generator_timestamp"] = time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())
        root.attrs["generator_version"] = __version__

        for new_level, actual_level in enumerate(levels):
            mask = table["level"] == actual_level
            sel = table.take(mask)
            indices = np.column_stack([sel["cx"], sel["cy"], sel["cz"]]).astype(np.int64) - 1
            spacing = dataset.boxlen / 2.0 ** actual_level

            level_group = root.create_group(f"Level{new_level}")
            _write_level_to_hdf5(
                level_group=level_group,
                spacing=spacing,
                indices=indices,
                scalars_dict={name: sel[name] for name in scalars},
                vectors_dict={
                    name: np.column_stack([sel[c] for c in comps]) for name, comps in vectors.items()
                },
            )
            logger.debug("Level %s -> Level%d: %d cells", actual_level, new_level, len(sel))

    logger.info("DONE: Saved '%s' (%d level(s)) in %.2fs", filename, len(levels), time.time() - t0)
    return len(levels)
