#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Region selection on datasets that are already loaded.

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
`subregion` cuts a cuboid, cylinder or sphere out of a dataset, and
`shellregion` keeps a spherical or cylindrical shell. Both return a new
dataset of the same kind; the input is left untouched.

Geometry is given the way the readers take it: ranges and radii relative to
`center`, in `range_unit` ("standard" means domain units, [0,1] over the box).

For cell data, `cell=True` keeps every cell whose footprint meets the
region (the cuboid case is the same rule the readers apply), while
`cell=False` tests only the cell centres. Particles and clumps are tested by
position. `inverse=True` keeps the complement.

Example:

    gas = read_hydro(info)
    core = subregion(gas, "sphere", radius=2.0, center=["bc"], range_unit="kpc")
    disc = subregion(gas, "cylinder", radius=10.0, height=1.0, center=["bc"], range_unit="kpc")
    shell = shellregion(gas, "sphere", radius=(2.0, 4.0), center=["bc"], range_unit="kpc")

"""

from __future__ import annotations

import dataclasses
import logging
from typing import List, Optional, Sequence, Tuple

import numpy as np

from .datasets import CellDataset, Dataset
from .errors import ConfigurationError
from .selection import CenterArg, RangeArg, _resolve_center, cells_in_ranges, points_in_ranges, prepare_ranges

logger = logging.getLogger("sangrah")

AXES = {"x": 0, "y": 1, "z": 2}


# ──────────────────────────────────────────────────────────────────────────────
# Geometry helpers
# ──────────────────────────────────────────────────────────────────────────────

def _unit_length(dataset: Dataset, range_unit: str) -> float:
    """Length of the box in `range_unit`."""
    if range_unit in ("standard", "code"):
        return 1.0
    try:
        return dataset.boxlen * dataset.scale.factor(range_unit)
    except KeyError as e:
        raise ConfigurationError(str(e)) from e


def _geometry(dataset: Dataset) -> Tuple[np.ndarray, Optional[np.ndarray]]:
    """(N, 3) positions in domain units and, for cells, the half cell size."""
    pos = dataset.positions() / dataset.boxlen
    if isinstance(dataset, CellDataset):
        return pos, 0.5 / np.power(2.0, dataset.data["level"])
    return pos, None


def _distances(offset: np.ndarray, half: Optional[np.ndarray], cell: bool) -> Tuple[np.ndarray, np.ndarray]:
    """Per-axis nearest and farthest distance of each row from the centre."""
    d = np.abs(offset)
    if half is None or not cell:
        return d, d
    h = half[:, None]
    return np.maximum(d - h, 0.0), d + h


def _axis_split(direction: str) -> Tuple[int, List[int]]:
    try:
        axis = AXES[direction]
    except KeyError:
        raise ConfigurationError(f"Unknown direction '{direction}'. Choose from: x, y, z") from None
    return axis, [a for a in range(3) if a != axis]


def _bounding_ranges(centre: Sequence[float], extent: Sequence[float]) -> Tuple[float, ...]:
    return tuple(
        float(np.clip(centre[a] + sign * extent[a], 0.0, 1.0))
        for a in range(3)
        for sign in (-1.0, 1.0)
    )


def _intersect(a: Sequence[float], b: Sequence[float]) -> Tuple[float, ...]:
    out = []
    for axis in range(3):
        lo = max(a[2 * axis], b[2 * axis])
        hi = min(a[2 * axis + 1], b[2 * axis + 1])
        out += [lo, max(lo, hi)]
    return tuple(out)


def _subset(dataset: Dataset, mask: np.ndarray, ranges: Sequence[float], label: str) -> Dataset:
    table = dataset.data.take(mask)
    logger.debug("%s: kept %d of %d rows", label, len(table), len(dataset))
    return dataclasses.replace(
        dataset,
        data=table,
        ranges=tuple(ranges),
        selected_variables=list(dataset.selected_variables),
        scale=dataset.scale.copy(),
        failed_shards=list(dataset.failed_shards),
        quality=dict(dataset.quality),
    )


# ──────────────────────────────────────────────────────────────────────────────
# Region masks
# ──────────────────────────────────────────────────────────────────────────────

def cuboid_mask(dataset: Dataset, ranges: Sequence[float], cell: bool = True) -> np.ndarray:
    """Rows inside the cuboid `ranges` (domain units)."""
    if isinstance(dataset, CellDataset) and cell:
        level = dataset.data["level"]
        mask = np.zeros(len(dataset), dtype=bool)
        for lvl in np.unique(level):
            at = level == lvl
            mask[at] = cells_in_ranges(
                dataset.data["cx"][at], dataset.data["cy"][at], dataset.data["cz"][at], ranges, int(lvl)
            )
        return mask
    pos, _ = _geometry(dataset)
    return points_in_ranges(pos[:, 0], pos[:, 1], pos[:, 2], ranges, 1.0)


def sphere_mask(
    dataset: Dataset,
    centre: Sequence[float],
    r_out: float,
    r_in: float = 0.0,
    cell: bool = True,
) -> np.ndarray:
    """Rows within `r_in <= r <= r_out` of `centre` (domain units)."""
    pos, half = _geometry(dataset)
    near, far = _distances(pos - np.asarray(centre), half, cell)
    mask = np.sqrt(np.sum(near ** 2, axis=1)) <= r_out
    if r_in > 0:
        mask &= np.sqrt(np.sum(far ** 2, axis=1)) >= r_in
    return mask


def cylinder_mask(
    dataset: Dataset,
    centre: Sequence[float],
    r_out: float,
    height: float,
    direction: str = "z",
    r_in: float = 0.0,
    cell: bool = True,
) -> np.ndarray:
    """
    Rows of a cylinder (or cylindrical shell) around `centre`.

    Args:
        r_out, r_in: outer and inner radius in the plane normal to `direction`
        height: half height along `direction`
    """
    axis, plane = _axis_split(direction)
    pos, half = _geometry(dataset)
    near, far = _distances(pos - np.asarray(centre), half, cell)
    mask = (np.sqrt(np.sum(near[:, plane] ** 2, axis=1)) <= r_out) & (near[:, axis] <= height)
    if r_in > 0:
        mask &= np.sqrt(np.sum(far[:, plane] ** 2, axis=1)) >= r_in
    return mask


# ──────────────────────────────────────────────────────────────────────────────
# Public API
# ──────────────────────────────────────────────────────────────────────────────

def subregion(
    dataset: Dataset,
    shape: str = "cuboid",
    xrange: RangeArg = None,
    yrange: RangeArg = None,
    zrange: RangeArg = None,
    radius: float = 0.0,
    height: float = 0.0,
    direction: str = "z",
    center: CenterArg = (0.0, 0.0, 0.0),
    range_unit: str = "standard",
    cell: bool = True,
    inverse: bool = False,
) -> Dataset:
    """
    Select a cuboid, cylinder or sphere from a loaded dataset.

    Args:
        dataset: any dataset kind
        shape: "cuboid", "cylinder" (alias "disc") or "sphere"
        xrange, yrange, zrange: cuboid bounds relative to `center`
        radius: cylinder or sphere radius
        height: half height of the cylinder along `direction`
        direction: cylinder axis, "x", "y" or "z"
        center: region centre; "bc" is the box centre
        range_unit: unit of the bounds, radius and height
        cell: cell data only; test footprints (True) or centres (False)
        inverse: keep everything outside the region

    Returns:
        New dataset of the same kind. `ranges` becomes the region's bounding
        box, clipped to the old ranges; it is unchanged for `inverse`.

    Raises:
        ConfigurationError for unknown shapes, non-positive sizes or bad units.
    """
    shape = shape.lower()
    if shape == "cuboid":
        ranges = prepare_ranges(dataset.info, xrange, yrange, zrange, center, range_unit)
        mask = cuboid_mask(dataset, ranges, cell)
    elif shape in ("cylinder", "disc", "sphere"):
        if radius <= 0 or (shape != "sphere" and height <= 0):
            raise ConfigurationError(f"{shape} needs a positive radius" + ("" if shape == "sphere" else " and height"))
        conv = _unit_length(dataset, range_unit)
        centre = [c / conv for c in _resolve_center(center, conv)]
        r, h = radius / conv, height / conv
        if shape == "sphere":
            mask = sphere_mask(dataset, centre, r, cell=cell)
            extent = [r, r, r]
        else:
            mask = cylinder_mask(dataset, centre, r, h, direction, cell=cell)
            axis, _ = _axis_split(direction)
            extent = [h if a == axis else r for a in range(3)]
        ranges = _bounding_ranges(centre, extent)
    else:
        raise ConfigurationError(f"Unknown region shape '{shape}'. Choose from: cuboid, cylinder, sphere")

    if inverse:
        return _subset(dataset, ~mask, dataset.ranges, f"subregion {shape} (inverse)")
    return _subset(dataset, mask, _intersect(dataset.ranges, ranges), f"subregion {shape}")


def shellregion(
    dataset: Dataset,
    shape: str = "sphere",
    radius: Sequence[float] = (0.0, 0.0),
    height: float = 0.0,
    direction: str = "z",
    center: CenterArg = (0.0, 0.0, 0.0),
    range_unit: str = "standard",
    cell: bool = True,
    inverse: bool = False,
) -> Dataset:
    """
    Keep a spherical or cylindrical shell `radius = (r_in, r_out)` of a dataset.

    Cell data with `cell=True` keeps every cell that meets the shell.

    Raises:
        ConfigurationError for unknown shapes or when not 0 <= r_in < r_out.
    """
    r_in, r_out = (float(r) for r in radius)
    if not 0 <= r_in < r_out:
        raise ConfigurationError(f"Shell radii need 0 <= r_in < r_out, got ({r_in}, {r_out})")
    shape = shape.lower()
    conv = _unit_length(dataset, range_unit)
    centre = [c / conv for c in _resolve_center(center, conv)]
    r_in, r_out = r_in / conv, r_out / conv

    if shape == "sphere":
        mask = sphere_mask(dataset, centre, r_out, r_in, cell)
        extent = [r_out] * 3
    elif shape in ("cylinder", "disc"):
        if height <= 0:
            raise ConfigurationError("cylinder shell needs a positive height")
        h = height / conv
        mask = cylinder_mask(dataset, centre, r_out, h, direction, r_in, cell)
        axis, _ = _axis_split(direction)
        extent = [h if a == axis else r_out for a in range(3)]
    else:
        raise ConfigurationError(f"Unknown shell shape '{shape}'. Choose from: sphere, cylinder")

    if inverse:
        return _subset(dataset, ~mask, dataset.ranges, f"shellregion {shape} (inverse)")
    return _subset(dataset, mask, _intersect(dataset.ranges, _bounding_ranges(centre, extent)), f"shellregion {shape}")
