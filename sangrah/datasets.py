#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Dataset objects returned by the readers.

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
A dataset wraps one Table together with the selection that was actually
applied (clipped ranges, loaded levels, selected variables), a copy of the
unit-scale table and a shared reference to the SimulationInfo it was read
from. The dataset kind is an explicit enum; each kind has its own class.

"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

import numpy as np

from .info import SimulationInfo
from .scales import Scales
from . import stats
from .stats import WStat, wstat
from .table import Table


class DatasetKind(enum.Enum):
    HYDRO = "hydro"
    GRAVITY = "gravity"
    PARTICLES = "particles"
    CLUMPS = "clumps"

    @classmethod
    def parse(cls, value) -> "DatasetKind":
        if isinstance(value, cls):
            return value
        try:
            return cls(str(value).lower())
        except ValueError:
            raise ValueError(f"Unknown dataset kind '{value}'. Choose from: {', '.join(k.value for k in cls)}") from None

    @property
    def shard_prefix(self) -> str:
        """File prefix of the shards holding this kind."""
        return {"hydro": "hydro", "gravity": "grav", "particles": "part", "clumps": "clump"}[self.value]

    @property
    def is_cell_data(self) -> bool:
        return self in (DatasetKind.HYDRO, DatasetKind.GRAVITY)


@dataclass
class Dataset:
    """
    Common fields of every dataset kind.

    Attributes:
        data: the merged table
        info: simulation overview (shared, read-only)
        lmin, lmax: levels actually loaded
        boxlen: box length in code units
        ranges: applied (clipped) spatial ranges in [0,1] domain units
        selected_variables: variable columns present in `data`
        scale: copy of the unit-scale table of `info`
        failed_shards: shards excluded after a read error
        quality: data-quality counters (floored or negative values)
    """

    data: Table
    info: SimulationInfo
    lmin: int
    lmax: int
    boxlen: float
    ranges: Tuple[float, float, float, float, float, float]
    selected_variables: List[str]
    scale: Scales
    failed_shards: List[int] = field(default_factory=list)
    quality: Dict[str, int] = field(default_factory=dict)

    kind = DatasetKind.HYDRO

    def __len__(self) -> int:
        return len(self.data)

    @property
    def columns(self) -> List[str]:
        return self.data.columns

    def getvar(self, name: str, unit: Optional[str] = None) -> np.ndarray:
        """
        Column `name`, converted to `unit` when given.

        Raises:
            KeyError for unknown columns or units.
        """
        values = self._derived(name)
        if values is None:
            values = self.data[name]
        if unit is None:
            return values
        return self.scale.convert(values, unit)

    def _derived(self, name: str) -> Optional[np.ndarray]:
        return None

    def positions(self, unit: Optional[str] = None) -> np.ndarray:
        """(N, 3) positions in code units (or `unit`)."""
        return np.column_stack([self.getvar(a, unit) for a in ("x", "y", "z")])

    def wstat(self, name: str, weight: Optional[str] = None, unit: Optional[str] = None, mask=None) -> WStat:
        """Weighted statistics of one column, optionally weighted by another."""
        w = None if weight is None else self.getvar(weight)
        return wstat(self.getvar(name, unit), weight=w, mask=mask)

    # ── mass-weighted aggregates (datasets carrying a "mass" column or rho) ──

    def msum(self, unit: Optional[str] = None, mask=None) -> float:
        """Total mass in code units (or `unit`, e.g. "Msol")."""
        return stats.msum(self.getvar("mass", unit), mask=mask)

    def average_mweighted(self, name: str, mask=None) -> float:
        return stats.average_mweighted(self.getvar(name), self.getvar("mass"), mask=mask)

    def center_of_mass(self, unit: Optional[str] = None, mask=None) -> Tuple[float, float, float]:
        """Mass-weighted mean position, in code units or `unit`."""
        x, y, z = (self.getvar(a, unit) for a in ("x", "y", "z"))
        return stats.center_of_mass(x, y, z, self.getvar("mass"), mask=mask)

    com = center_of_mass

    def bulk_velocity(self, unit: Optional[str] = None, mask=None) -> Tuple[float, float, float]:
        """Mass-weighted mean velocity, in code units or `unit`, e.g. "km_s"."""
        vx, vy, vz = (self.getvar(a, unit) for a in ("vx", "vy", "vz"))
        return stats.bulk_velocity(vx, vy, vz, self.getvar("mass"), mask=mask)

    average_velocity = bulk_velocity

    def summary(self) -> str:
        lines = [
            f"{self.kind.value} dataset of output {self.info.output}: {len(self)} rows",
            f"  columns: {', '.join(self.columns)}",
            f"  levels: {self.lmin}-{self.lmax}  boxlen={self.boxlen:g}",
            "  ranges: x=[{:g}, {:g}] y=[{:g}, {:g}] z=[{:g}, {:g}]".format(*self.ranges),
            f"  memory: {self.data.nbytes / 1024 ** 2:.2f} MiB",
        ]
        if self.failed_shards:
            lines.append(f"  failed shards: {self.failed_shards}")
        if self.quality:
            lines.append(f"  quality: {self.quality}")
        return "\n".join(lines)


@dataclass
class CellDataset(Dataset):
    """Hydro or gravity cells; geometry follows from level and cx/cy/cz."""

    def cellsize(self) -> np.ndarray:
        """Cell edge length in code units."""
        return self.boxlen / np.power(2.0, self.data["level"])

    def _derived(self, name: str) -> Optional[np.ndarray]:
        if name == "cellsize":
            return self.cellsize()
        if name in ("x", "y", "z"):
            c = self.data["c" + name].astype(np.float64)
            return (c - 0.5) * self.cellsize()
        return None


@dataclass
class HydroDataset(CellDataset):
    smallr: float = 0.0
    smallc: float = 0.0

    kind = DatasetKind.HYDRO

    def _derived(self, name: str) -> Optional[np.ndarray]:
        if name == "mass" and "mass" not in self.data:
            # cell mass: rho times cell volume
            return self.data["rho"] * self.cellsize() ** 3
        return super()._derived(name)


@dataclass
class GravityDataset(CellDataset):
    kind = DatasetKind.GRAVITY


@dataclass
class ParticleDataset(Dataset):
    kind = DatasetKind.PARTICLES


@dataclass
class ClumpDataset(Dataset):
    kind = DatasetKind.CLUMPS

    def _derived(self, name: str) -> Optional[np.ndarray]:
        if name in ("x", "y", "z") and f"peak_{name}" in self.data:
            return self.data[f"peak_{name}"]
        return None


DATASET_CLASSES = {
    DatasetKind.HYDRO: HydroDataset,
    DatasetKind.GRAVITY: GravityDataset,
    DatasetKind.PARTICLES: ParticleDataset,
    DatasetKind.CLUMPS: ClumpDataset,
}
