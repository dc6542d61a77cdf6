#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Selection handling: output numbers, spatial ranges, level bounds, variables.

──────────────────────────────────────────────────────────────────────────────
Spatial convention
──────────────────────────────────────────────────────────────────────────────
Ranges are stored as (xmin, xmax, ymin, ymax, zmin, zmax) in domain units,
where [0,1] spans the box. A cell at level L with 1-based index c is kept on
an axis when

    floor(lo * 2**L) + 1 <= c <= floor(hi * 2**L) + 1

i.e. its footprint [(c-1)/2**L, c/2**L) intersects the closed range
[lo, hi]. A cell that starts exactly at `hi` is kept; a cell that ends
exactly at `lo` is not. Particles and clumps are point-like and use
lo*boxlen <= x <= hi*boxlen.

"""

from __future__ import annotations

import argparse
from dataclasses import dataclass
from typing import Iterable, List, Optional, Sequence, Tuple, Union

import numpy as np

from .errors import ConfigurationError

FULL_BOX = (0.0, 1.0, 0.0, 1.0, 0.0, 1.0)

RangeArg = Optional[Sequence[Optional[float]]]
CenterArg = Sequence[Union[float, str]]


# ──────────────────────────────────────────────────────────────────────────────
# Command-line argument parsing
# ──────────────────────────────────────────────────────────────────────────────

def parse_output_numbers(arg: str) -> List[int]:
    """
    Parse output numbers strings like '5', '1,3,5', or '2-7' into a list of ints.

    Args:
        arg: user-provided string

    Returns:
        List of ints representing output numbers.

    Raises:
        argparse.ArgumentTypeError on invalid format.
    """

    if "-" in arg and "," in arg:
        raise argparse.ArgumentTypeError("Do not mix ranges and lists; use either 'a-b' or 'a,b,c'.")

    if "-" in arg:
        try:
            start, end = map(int, arg.split("-", 1))
        except ValueError:
            raise argparse.ArgumentTypeError("Invalid range; use 'start-end'.")
        if end < start:
            raise argparse.ArgumentTypeError("Range end must be >= start.")
        return list(range(start, end + 1))

    if "," in arg:
        nums = []
        for x in arg.split(","):
            x = x.strip()
            if x == "":
                continue
            try:
                nums.append(int(x))
            except ValueError:
                raise argparse.ArgumentTypeError(f"Invalid integer in list: '{x}'")
        return nums

    try:
        return [int(arg)]
    except ValueError:
        raise argparse.ArgumentTypeError("Output number must be an integer.")


def parse_norm_range(arg: Optional[str]) -> Tuple[Optional[float], Optional[float]]:
    """
    Parse normalized axis range spec: 'min:max', ':max', 'min:', or ':'.

    Returns (min_norm, max_norm) where each entry is a float in [0,1], or None when not provided.
    """

    if arg is None:
        return (None, None)

    s = arg.strip()

    if s == "":
        return (None, None)

    if ":" not in s:
        raise argparse.ArgumentTypeError("Axis range must be 'min:max' (e.g., 0.2:0.8, :0.6, 0.1:, :).")

    left, right = s.split(":", 1)
    try:
        minv = float(left) if left.strip() != "" else 0.0
        maxv = float(right) if right.strip() != "" else 1.0
    except ValueError:
        raise argparse.ArgumentTypeError(f"Axis bounds must be numbers: '{arg}'")

    if not (0.0 <= minv <= 1.0 and 0.0 <= maxv <= 1.0):
        raise argparse.ArgumentTypeError("Axis normalized bounds must be within [0, 1].")

    if minv > maxv:
        raise argparse.ArgumentTypeError("Axis min cannot be greater than axis max.")

    return (minv, maxv)


def parse_fields_arg(arg: Optional[str]) -> Optional[List[str]]:
    """
    Parse a comma-separated list of names.

    Returns None if nothing was passed (meaning every variable).
    """

    if arg is None:
        return None

    fields = [f.strip() for f in arg.split(",") if f.strip() != ""]

    return fields if fields else None


def parse_memory(arg: str) -> int:
    """
    Parse a byte count such as '512M', '2G', '64k' or '65536'.

    Raises:
        argparse.ArgumentTypeError on invalid format.
    """

    s = str(arg).strip().upper()
    if s.endswith("B"):
        s = s[:-1]
    factors = {"K": 1024, "M": 1024 ** 2, "G": 1024 ** 3}
    mult = 1
    if s and s[-1] in factors:
        mult = factors[s[-1]]
        s = s[:-1]
    try:
        value = int(float(s) * mult)
    except ValueError:
        raise argparse.ArgumentTypeError(f"Invalid memory size: '{arg}'")
    if value <= 0:
        raise argparse.ArgumentTypeError("Memory size must be positive.")
    return value


# ──────────────────────────────────────────────────────────────────────────────
# Ranges
# ──────────────────────────────────────────────────────────────────────────────

def prepare_ranges(
    info,
    xrange: RangeArg = None,
    yrange: RangeArg = None,
    zrange: RangeArg = None,
    center: CenterArg = (0.0, 0.0, 0.0),
    range_unit: str = "standard",
    spatial_range: Optional[Sequence[float]] = None,
) -> Tuple[float, float, float, float, float, float]:
    """
    Turn user ranges into a clipped 6-tuple in domain units.

    Args:
        info: SimulationInfo (boxlen and scale table)
        xrange, yrange, zrange: (lo, hi) relative to `center`, in `range_unit`;
            a None bound means the full axis
        center: per-axis centre in `range_unit`; "bc"/"boxcenter" is the box centre
        range_unit: "standard" (domain units) or any scale-table unit
        spatial_range: 6-tuple in domain units, exclusive with the per-axis form

    Raises:
        ConfigurationError on inverted ranges, unknown units or mixed forms.
    """
    if spatial_range is not None:
        if any(r is not None for r in (xrange, yrange, zrange)):
            raise ConfigurationError("Give either spatial_range or xrange/yrange/zrange, not both")
        if len(spatial_range) != 6:
            raise ConfigurationError(f"spatial_range needs 6 values, got {len(spatial_range)}")
        bounds = [float(v) for v in spatial_range]
    else:
        if range_unit in ("standard", "code"):
            conv = 1.0
        else:
            try:
                conv = info.boxlen * info.scale.factor(range_unit)
            except KeyError as e:
                raise ConfigurationError(str(e)) from e

        centre = _resolve_center(center, conv)
        bounds = []
        for axis, rng in enumerate((xrange, yrange, zrange)):
            lo, hi = (None, None) if rng is None else tuple(rng)
            bounds.append(0.0 if lo is None else (float(lo) + centre[axis]) / conv)
            bounds.append(1.0 if hi is None else (float(hi) + centre[axis]) / conv)

    for axis, name in enumerate("xyz"):
        lo, hi = bounds[2 * axis], bounds[2 * axis + 1]
        if lo > hi:
            raise ConfigurationError(f"{name}range is inverted: {lo} > {hi}")

    clipped = tuple(float(np.clip(b, 0.0, 1.0)) for b in bounds)
    return clipped  # type: ignore[return-value]


def _resolve_center(center: CenterArg, conv: float) -> List[float]:
    if isinstance(center, str):
        center = [center]
    center = list(center)
    if len(center) == 1:
        center = center * 3
    if len(center) != 3:
        raise ConfigurationError(f"center needs 1 or 3 entries, got {len(center)}")
    out = []
    for c in center:
        if isinstance(c, str):
            if c.lower() not in ("bc", "boxcenter"):
                raise ConfigurationError(f"Unknown center keyword '{c}'")
            out.append(0.5 * conv)
        else:
            out.append(float(c))
    return out


def is_full_box(ranges: Sequence[float]) -> bool:
    return tuple(float(r) for r in ranges) == FULL_BOX


def cell_index_bounds(ranges: Sequence[float], level: int) -> np.ndarray:
    """
    Inclusive 1-based index bounds per axis at `level`.

    Returns:
        int64 array [[imin, imax], [jmin, jmax], [kmin, kmax]]
    """
    n = 2 ** level
    r = np.asarray(ranges, dtype=np.float64).reshape(3, 2)
    return (np.floor(r * n) + 1).astype(np.int64)


def cells_in_ranges(cx: np.ndarray, cy: np.ndarray, cz: np.ndarray, ranges: Sequence[float], level: int) -> np.ndarray:
    """Boolean mask of cells at `level` whose footprint meets `ranges`."""
    b = cell_index_bounds(ranges, level)
    return (
        (cx >= b[0, 0]) & (cx <= b[0, 1])
        & (cy >= b[1, 0]) & (cy <= b[1, 1])
        & (cz >= b[2, 0]) & (cz <= b[2, 1])
    )


def points_in_ranges(x: np.ndarray, y: np.ndarray, z: np.ndarray, ranges: Sequence[float], boxlen: float) -> np.ndarray:
    r = np.asarray(ranges, dtype=np.float64) * boxlen
    return (x >= r[0]) & (x <= r[1]) & (y >= r[2]) & (y <= r[3]) & (z >= r[4]) & (z <= r[5])


# ──────────────────────────────────────────────────────────────────────────────
# Levels and variables
# ──────────────────────────────────────────────────────────────────────────────

def resolve_levels(info, level_range: Optional[Sequence[Optional[int]]] = None) -> Tuple[int, int]:
    """
    (lmin, lmax) for a read, defaulting to the output's (levelmin, levelmax).

    Raises:
        ConfigurationError when lmax exceeds levelmax, lmin exceeds lmax or
        either is below 1.
    """
    lo, hi = (None, None) if level_range is None else tuple(level_range)
    lmin = info.levelmin if lo is None else int(lo)
    lmax = info.levelmax if hi is None else int(hi)
    if lmin < 1:
        raise ConfigurationError(f"lmin must be >= 1, got {lmin}")
    if lmax > info.levelmax:
        raise ConfigurationError(f"lmax={lmax} exceeds the simulation levelmax={info.levelmax}")
    if lmin > lmax:
        raise ConfigurationError(f"lmin={lmin} is greater than lmax={lmax}")
    return lmin, lmax


@dataclass(frozen=True)
class VariableSelection:
    """Variables picked from an ordered list of available names."""

    names: Tuple[str, ...]
    indices: Tuple[int, ...]
    read_cpu: bool = False

    def __contains__(self, name: str) -> bool:
        return name in self.names


def resolve_variables(
    available: Sequence[str],
    requested: Optional[Union[str, Iterable[str]]] = None,
    allow_cpu: bool = True,
) -> VariableSelection:
    """
    Map requested names onto `available`, keeping file order.

    Names may be given directly ("rho") or positionally as "varN" (1-based).
    "all" (or None) selects everything; "cpu" adds the shard index column.

    Raises:
        ConfigurationError for unknown names.
    """
    available = list(available)
    if requested is None or requested == "all":
        return VariableSelection(tuple(available), tuple(range(len(available))), False)
    if isinstance(requested, str):
        requested = [requested]

    wanted = set()
    read_cpu = False
    for name in requested:
        if name == "all":
            wanted.update(range(len(available)))
        elif name == "cpu" and allow_cpu:
            read_cpu = True
        elif name in available:
            wanted.add(available.index(name))
        elif name.startswith("var") and name[3:].isdigit() and 1 <= int(name[3:]) <= len(available):
            wanted.add(int(name[3:]) - 1)
        else:
            raise ConfigurationError(
                f"Unknown variable '{name}'. Available: {', '.join(available)}"
            )

    indices = tuple(sorted(wanted))
    return VariableSelection(tuple(available[i] for i in indices), indices, read_cpu)
