#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Simulation overview for one RAMSES output.

──────────────────────────────────────────────────────────────────────────────
What is read
──────────────────────────────────────────────────────────────────────────────
- info_NNNNN.txt               run parameters, units, Hilbert domain table
- amr_NNNNN.out00001           grid header and per-level grid counts
- hydro_NNNNN.out00001         number of hydro variables and gamma
- hydro_file_descriptor.txt    hydro variable names (v0 and v1 formats)
- part_file_descriptor.txt     particle record layout (v1)
- header_NNNNN.txt             particle counts (v0 totals or v1 families)
- clump_NNNNN.txt00001         clump column names
- namelist.txt, compilation.txt, makefile.txt, patches.txt, timer_NNNNN.txt

Everything is read once by `get_info`; the resulting SimulationInfo is
shared read-only by every dataset built from it.

"""

from __future__ import annotations

import glob
import logging
import os
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

import numpy as np

from .errors import ConfigurationError, ShardCountMismatchError, ShardError
from .fortran import FortranFile
from .scales import PhysicalConstants, Scales, create_scales

logger = logging.getLogger("sangrah")

HYDRO_BASE_VARIABLES = ["rho", "vx", "vy", "vz", "p"]
GRAVITY_VARIABLES = ["epot", "ax", "ay", "az"]
LEGACY_PARTICLE_VARIABLES = ["vx", "vy", "vz", "mass", "birth"]

# descriptor name -> column name
PARTICLE_NAME_MAP = {
    "position_x": "x",
    "position_y": "y",
    "position_z": "z",
    "velocity_x": "vx",
    "velocity_y": "vy",
    "velocity_z": "vz",
    "identity": "id",
    "levelp": "level",
    "birth_time": "birth",
    "metallicity": "metals",
}

# descriptor type code -> numpy dtype
DESCRIPTOR_TYPES = {"d": "f8", "f": "f4", "i": "i4", "l": "i8", "q": "i8", "b": "i1"}

# row order of the v1 "Family Count" table in header_NNNNN.txt
_FAMILY_ROWS = (
    "other_tracer1", "debris_tracer", "cloud_tracer", "star_tracer", "other_tracer2", "gas_tracer",
    "DM", "star", "cloud", "debris", "other", "undefined",
)

_INFO_INT_KEYS = ("ncpu", "ndim", "levelmin", "levelmax", "ngridmax", "nstep_coarse")
_INFO_FLOAT_KEYS = (
    "boxlen", "time", "aexp", "H0", "omega_m", "omega_l", "omega_k", "omega_b",
    "unit_l", "unit_d", "unit_t",
)


# ──────────────────────────────────────────────────────────────────────────────
# File layout
# ──────────────────────────────────────────────────────────────────────────────

SHARD_SUFFIX = {"amr": "out", "hydro": "out", "grav": "out", "part": "out", "clump": "txt"}


@dataclass
class OutputPaths:
    """Absolute paths of every file belonging to one output."""

    output: int
    root: str

    @property
    def tag(self) -> str:
        return f"{self.output:05d}"

    @property
    def folder(self) -> str:
        return os.path.join(self.root, f"output_{self.tag}")

    def _file(self, name: str) -> str:
        return os.path.join(self.folder, name)

    @property
    def info(self) -> str:
        return self._file(f"info_{self.tag}.txt")

    @property
    def header(self) -> str:
        return self._file(f"header_{self.tag}.txt")

    @property
    def timer(self) -> str:
        return self._file(f"timer_{self.tag}.txt")

    @property
    def namelist(self) -> str:
        return self._file("namelist.txt")

    @property
    def compilation(self) -> str:
        return self._file("compilation.txt")

    @property
    def makefile(self) -> str:
        return self._file("makefile.txt")

    @property
    def patches(self) -> str:
        return self._file("patches.txt")

    @property
    def hydro_descriptor(self) -> str:
        return self._file("hydro_file_descriptor.txt")

    @property
    def part_descriptor(self) -> str:
        return self._file("part_file_descriptor.txt")

    def shard(self, kind: str, cpu: int) -> str:
        """Path of shard `cpu` (1-based) for `kind` in amr/hydro/grav/part/clump."""
        return self._file(f"{kind}_{self.tag}.{SHARD_SUFFIX[kind]}{cpu:05d}")

    def shard_pattern(self, kind: str) -> str:
        return self._file(f"{kind}_{self.tag}.{SHARD_SUFFIX[kind]}[0-9][0-9][0-9][0-9][0-9]")


# ──────────────────────────────────────────────────────────────────────────────
# Sub-records
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class GridInfo:
    """AMR header of the first shard."""

    nx: int = 1
    ny: int = 1
    nz: int = 1
    nlevelmax: int = 0
    ngridmax: int = 0
    nboundary: int = 0
    ngrid_current: int = 0
    # grids per (level, cpu), shape (nlevelmax, ncpu); used for row estimates
    numbl: Optional[np.ndarray] = None


@dataclass
class Descriptor:
    hydro: List[str] = field(default_factory=list)
    hydro_types: List[str] = field(default_factory=list)
    hydro_version: int = 0
    hydro_file: bool = False
    particles: List[str] = field(default_factory=list)
    particle_types: List[str] = field(default_factory=list)
    particle_version: int = 0
    particle_file: bool = False


@dataclass
class ParticleInfo:
    Npart: int = 0
    Ndm: int = 0
    Nstars: int = 0
    Nsinks: int = 0
    Ncloud: int = 0
    Ndebris: int = 0
    Nother: int = 0
    Nundefined: int = 0
    tracers: Dict[str, int] = field(default_factory=dict)
    # legacy files only: a metals record follows birth
    metals: bool = False
    header_version: int = -1


# ──────────────────────────────────────────────────────────────────────────────
# SimulationInfo
# ──────────────────────────────────────────────────────────────────────────────

@dataclass
class SimulationInfo:
    """Per-output metadata, created once by `get_info` and never mutated."""

    output: int
    path: str
    ncpu: int = 0
    ndim: int = 3
    levelmin: int = 0
    levelmax: int = 0
    ngridmax: int = 0
    nstep_coarse: int = 0
    boxlen: float = 1.0
    time: float = 0.0
    aexp: float = 1.0
    H0: float = 1.0
    omega_m: float = 1.0
    omega_l: float = 0.0
    omega_k: float = 0.0
    omega_b: float = 0.0
    unit_l: float = 1.0
    unit_d: float = 1.0
    unit_t: float = 1.0
    unit_v: float = 1.0
    unit_m: float = 1.0
    ordering: str = "hilbert"
    bound_key: Optional[np.ndarray] = None

    grid: GridInfo = field(default_factory=GridInfo)
    descriptor: Descriptor = field(default_factory=Descriptor)
    part_info: ParticleInfo = field(default_factory=ParticleInfo)

    amr: bool = False
    hydro: bool = False
    gravity: bool = False
    particles: bool = False
    clumps: bool = False
    headerfile: bool = False

    nvarh: int = 0
    gamma: float = 5.0 / 3.0
    variable_list: List[str] = field(default_factory=list)
    gravity_variable_list: List[str] = field(default_factory=lambda: list(GRAVITY_VARIABLES))
    particles_variable_list: List[str] = field(default_factory=list)
    clumps_variable_list: List[str] = field(default_factory=list)

    namelist_content: Dict[str, Dict[str, str]] = field(default_factory=dict)
    compilation: Dict[str, str] = field(default_factory=dict)
    files: Dict[str, bool] = field(default_factory=dict)

    constants: PhysicalConstants = field(default_factory=PhysicalConstants)
    scale: Optional[Scales] = None

    @property
    def paths(self) -> OutputPaths:
        return OutputPaths(self.output, self.path)

    @property
    def hilbert_ordering(self) -> bool:
        return "hilbert" in self.ordering.lower()

    @property
    def namelist(self) -> bool:
        return bool(self.namelist_content)

    def has(self, kind: str) -> bool:
        return bool(getattr(self, kind))

    def summary(self) -> str:
        """Short human readable overview."""
        lines = [
            f"output [{self.output}] in {self.paths.folder}",
            f"  ncpu={self.ncpu}  ndim={self.ndim}  levelmin={self.levelmin}  levelmax={self.levelmax}",
            f"  boxlen={self.boxlen:g}  time={self.time:g}  aexp={self.aexp:g}  ordering={self.ordering}",
            f"  unit_l={self.unit_l:g} cm  unit_d={self.unit_d:g} g/cm^3  unit_t={self.unit_t:g} s",
        ]
        present = [k for k in ("hydro", "gravity", "particles", "clumps") if self.has(k)]
        lines.append(f"  datasets: {', '.join(present) if present else 'none'}")
        if self.hydro:
            lines.append(f"  hydro: nvarh={self.nvarh} gamma={self.gamma:g} vars={self.variable_list}")
            d = self.descriptor
            if d.hydro_file:
                types = ", ".join(d.hydro_types) if d.hydro_types else "untyped"
                lines.append(f"  hydro descriptor: version={d.hydro_version} fields={d.hydro} types=[{types}]")
        if self.particles:
            p = self.part_info
            lines.append(
                f"  particles: Npart={p.Npart} Ndm={p.Ndm} Nstars={p.Nstars} Nsinks={p.Nsinks} "
                f"vars={self.particles_variable_list}"
            )
        if self.clumps:
            lines.append(f"  clumps: columns={self.clumps_variable_list}")
        return "\n".join(lines)

    # ── persistence ───────────────────────────────────────────────────────────

    def to_dict(self) -> Dict[str, Any]:
        """JSON-friendly representation; arrays become lists."""
        out: Dict[str, Any] = {}
        for key, value in self.__dict__.items():
            if key in ("constants", "scale"):
                continue
            out[key] = _plain(value)
        out["scale"] = self.scale.to_dict() if self.scale is not None else None
        return out

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "SimulationInfo":
        data = dict(data)
        grid = dict(data.pop("grid", {}) or {})
        if grid.get("numbl") is not None:
            grid["numbl"] = np.asarray(grid["numbl"], dtype=np.int64)
        descriptor = Descriptor(**(data.pop("descriptor", {}) or {}))
        part_info = ParticleInfo(**(data.pop("part_info", {}) or {}))
        scale = data.pop("scale", None)
        if data.get("bound_key") is not None:
            data["bound_key"] = np.asarray(data["bound_key"], dtype=np.float64)
        info = cls(grid=GridInfo(**grid), descriptor=descriptor, part_info=part_info, **data)
        if scale is not None:
            info.scale = Scales(scale)
        else:
            info.scale = create_scales(info.unit_l, info.unit_d, info.unit_t, info.unit_m, info.constants)
        return info


def _plain(value: Any) -> Any:
    if isinstance(value, np.ndarray):
        return value.tolist()
    if isinstance(value, np.generic):
        return value.item()
    if hasattr(value, "__dataclass_fields__"):
        return {k: _plain(v) for k, v in value.__dict__.items()}
    if isinstance(value, dict):
        return {k: _plain(v) for k, v in value.items()}
    if isinstance(value, (list, tuple)):
        return [_plain(v) for v in value]
    return value


# ──────────────────────────────────────────────────────────────────────────────
# Readers
# ──────────────────────────────────────────────────────────────────────────────

def _read_lines(path: str) -> List[str]:
    with open(path, "r", encoding="utf-8", errors="replace") as fh:
        return fh.read().splitlines()


def read_info_file(info: SimulationInfo) -> None:
    """Parse info_NNNNN.txt into `info`."""
    path = info.paths.info
    if not os.path.isfile(path):
        raise ConfigurationError(f"Info file not found: {path}")

    values: Dict[str, str] = {}
    domain_rows: List[List[str]] = []
    in_domains = False

    for line in _read_lines(path):
        stripped = line.strip()
        if not stripped:
            continue
        if in_domains:
            parts = stripped.split()
            if len(parts) >= 3 and parts[0].isdigit():
                domain_rows.append(parts)
                continue
            in_domains = False
        if stripped.upper().startswith("DOMAIN"):
            in_domains = True
            continue
        if "=" in stripped:
            key, _, value = stripped.partition("=")
            values[key.strip()] = value.strip()

    try:
        for key in _INFO_INT_KEYS:
            setattr(info, key, int(values[key]))
        for key in _INFO_FLOAT_KEYS:
            setattr(info, key, float(values[key].replace("D", "E").replace("d", "e")))
    except (KeyError, ValueError) as e:
        raise ConfigurationError(f"Unreadable info file {path}: {e}") from e

    if info.ndim != 3:
        raise ConfigurationError(f"Only 3D outputs are supported (ndim={info.ndim})")

    info.unit_v = info.unit_l / info.unit_t
    info.unit_m = info.unit_d * info.unit_l ** 3
    info.ordering = values.get("ordering type", "hilbert").strip()

    if info.hilbert_ordering:
        if len(domain_rows) != info.ncpu:
            raise ConfigurationError(
                f"Info file lists {len(domain_rows)} Hilbert domains for ncpu={info.ncpu}"
            )
        bound_key = np.zeros(info.ncpu + 1, dtype=np.float64)
        bound_key[0] = float(domain_rows[0][1].replace("D", "E"))
        for i, row in enumerate(domain_rows):
            bound_key[i + 1] = float(row[2].replace("D", "E"))
        info.bound_key = bound_key


def read_amr_header(info: SimulationInfo) -> None:
    """Grid header and per-level counts from the first AMR shard."""
    path = info.paths.shard("amr", 1)
    if not os.path.isfile(path):
        info.amr = False
        return
    info.amr = True
    g = info.grid
    with FortranFile(path) as f:
        f.skip(2)
        g.nx, g.ny, g.nz = f.read_ints(3)
        g.nlevelmax = f.read_int()
        g.ngridmax = f.read_int()
        g.nboundary = f.read_int()
        g.ngrid_current = f.read_int()
        # boxlen, (noutput,iout,ifout), tout, aout, t, dtold, dtnew, nstep,
        # (einit,...), cosmology, expansion, mass_sph, headl, taill
        f.skip(14)
        numbl = f.read_array("i", g.nlevelmax * info.ncpu)
        g.numbl = numbl.reshape((g.nlevelmax, info.ncpu)).astype(np.int64)


def read_hydro_descriptor(info: SimulationInfo) -> None:
    path = info.paths.hydro_descriptor
    d = info.descriptor
    if not os.path.isfile(path):
        return
    lines = _read_lines(path)
    if not lines:
        return
    d.hydro_file = True
    names, types = _parse_descriptor(lines)
    d.hydro, d.hydro_types = names, types
    d.hydro_version = 0 if "nvar" in lines[0] else _descriptor_version(lines[0])


def _descriptor_version(first_line: str) -> int:
    match = re.search(r"version\s*:\s*(\d+)", first_line)
    return int(match.group(1)) if match else -1


def _parse_descriptor(lines: Sequence[str]) -> Tuple[List[str], List[str]]:
    """
    Parse either descriptor format.

    v0:  nvar = 6 / variable #  1: density
    v1:  # version:  1 / # ivar, variable_name, variable_type / 1, density, d
    """
    names: List[str] = []
    types: List[str] = []
    if "nvar" in lines[0]:
        for line in lines[1:]:
            if ":" in line:
                names.append(line.rsplit(":", 1)[1].strip())
        return names, types
    for line in lines:
        if line.lstrip().startswith("#") or "," not in line:
            continue
        parts = [p.strip() for p in line.split(",")]
        if len(parts) >= 3:
            names.append(parts[1])
            types.append(parts[2])
    return names, types


def read_hydro_header(info: SimulationInfo) -> None:
    path = info.paths.shard("hydro", 1)
    read_hydro_descriptor(info)
    if not os.path.isfile(path):
        info.hydro = False
        return
    with FortranFile(path) as f:
        f.skip(1)
        info.nvarh = f.read_int()
        f.skip(3)
        info.gamma = f.read_real()
    info.hydro = True
    names = list(HYDRO_BASE_VARIABLES[: info.nvarh])
    names += [f"var{i}" for i in range(6, info.nvarh + 1)]
    info.variable_list = names
    if not info.descriptor.hydro_file:
        info.descriptor.hydro = list(names)


def read_gravity_presence(info: SimulationInfo) -> None:
    info.gravity = os.path.isfile(info.paths.shard("grav", 1))
    info.gravity_variable_list = list(GRAVITY_VARIABLES)


def read_particle_header(info: SimulationInfo) -> None:
    """Particle counts (header file) and record layout (descriptor)."""
    p = info.part_info
    info.particles = os.path.isfile(info.paths.shard("part", 1))
    if not info.particles:
        return

    if os.path.isfile(info.paths.header):
        info.headerfile = True
        lines = [ln for ln in _read_lines(info.paths.header) if ln.strip()]
        if lines and "Total" in lines[0]:
            # v0: label line followed by its value, four times
            p.header_version = 0
            values = [int(ln.split()[0]) for ln in lines[1::2]]
            p.Npart, p.Ndm, p.Nstars, p.Nsinks = (values + [0, 0, 0, 0])[:4]
        elif lines and "Family" in lines[0]:
            p.header_version = 1
            values = [int(ln.split()[-1]) for ln in lines[1:] if ln.split()[-1].lstrip("-").isdigit()]
            values = (values + [0] * len(_FAMILY_ROWS))[: len(_FAMILY_ROWS)]
            counts = dict(zip(_FAMILY_ROWS, values))
            p.tracers = {k: counts[k] for k in _FAMILY_ROWS[:6]}
            p.Ndm = counts["DM"]
            p.Nstars = counts["star"]
            p.Ncloud = counts["cloud"]
            p.Ndebris = counts["debris"]
            p.Nother = counts["other"]
            p.Nundefined = counts["undefined"]
            p.Npart = sum(values)

    d = info.descriptor
    if os.path.isfile(info.paths.part_descriptor):
        lines = _read_lines(info.paths.part_descriptor)
        if lines:
            d.particle_file = True
            d.particle_version = _descriptor_version(lines[0])
            if d.particle_version >= 1:
                d.particles, d.particle_types = _parse_descriptor(lines)

    if d.particle_version >= 1 and d.particles:
        skip = {"position_x", "position_y", "position_z", "identity", "levelp"}
        info.particles_variable_list = [
            PARTICLE_NAME_MAP.get(name, name) for name in d.particles if name not in skip
        ]
    else:
        p.metals = _legacy_has_metals(info.paths.shard("part", 1))
        info.particles_variable_list = list(LEGACY_PARTICLE_VARIABLES) + (["metals"] if p.metals else [])
        if not d.particles:
            d.particles = list(info.particles_variable_list)


def _legacy_has_metals(path: str) -> bool:
    """True when a legacy particle shard carries a record after birth."""
    with FortranFile(path) as f:
        f.skip(4)  # ncpu, ndim, npart, localseed
        nstar = f.read_int()
        if nstar <= 0:
            return False
        f.skip(3 + 9 + 1)  # mstar_tot, mstar_lost, nsink, x..level, birth
        return not f.at_eof()


def read_clump_header(info: SimulationInfo) -> None:
    path = info.paths.shard("clump", 1)
    info.clumps = os.path.isfile(path)
    if not info.clumps:
        return
    with open(path, "r", encoding="utf-8") as fh:
        first = fh.readline()
    info.clumps_variable_list = first.split()


def read_namelist(info: SimulationInfo, namelist: Optional[str] = None) -> None:
    """Parse Fortran namelist groups (&GROUP ... /) into nested dicts."""
    path = namelist or info.paths.namelist
    info.files["namelist"] = os.path.isfile(path)
    if not info.files["namelist"]:
        return
    lines = _read_lines(path)
    if not any("&RUN_PARAMS" in ln for ln in lines):
        logger.debug("Namelist %s has no &RUN_PARAMS group; ignored", path)
        return
    content: Dict[str, Dict[str, str]] = {}
    group: Optional[str] = None
    for line in lines:
        stripped = line.split("!", 1)[0].strip()
        if stripped.startswith("&"):
            group = stripped[1:].strip()
            content.setdefault(group, {})
        elif stripped == "/":
            group = None
        elif group is not None and "=" in stripped:
            key, _, value = stripped.partition("=")
            content[group][key.strip()] = value.strip()
    info.namelist_content = content


def read_auxiliary_files(info: SimulationInfo) -> None:
    p = info.paths
    for name, path in (("makefile", p.makefile), ("patchfile", p.patches), ("timerfile", p.timer)):
        info.files[name] = os.path.isfile(path)
    info.files["compilation"] = os.path.isfile(p.compilation)
    if info.files["compilation"]:
        keys = ("compile_date", "patch_dir", "remote_repo", "local_branch", "last_commit")
        lines = _read_lines(p.compilation)
        for key, line in zip(keys, lines):
            if "=" in line and "\x00" not in line:
                info.compilation[key] = line.split("=", 1)[1].strip()


def check_shard_count(info: SimulationInfo, kinds: Sequence[str]) -> None:
    """
    Verify that exactly ncpu shard files exist for each of `kinds`.

    Raises:
        ShardCountMismatchError when a file is missing or extra files exist.
    """
    paths = info.paths
    for kind in kinds:
        found = sorted(glob.glob(paths.shard_pattern(kind)))
        expected = [paths.shard(kind, cpu) for cpu in range(1, info.ncpu + 1)]
        missing = [os.path.basename(e) for e in expected if not os.path.isfile(e)]
        if missing or len(found) != info.ncpu:
            raise ShardCountMismatchError(info.ncpu, len(found), missing)


def get_info(output: int, path: str = ".", namelist: Optional[str] = None, verbose: bool = False) -> SimulationInfo:
    """
    Read the overview of one output.

    Args:
        output: output number (the NNNNN in output_NNNNN)
        path: directory that contains the output_NNNNN folders
        namelist: optional path to a namelist file used instead of the output's own
        verbose: log the overview at INFO level

    Raises:
        ConfigurationError: missing folder or unreadable info file.
    """
    info = SimulationInfo(output=int(output), path=os.path.abspath(path))
    if not os.path.isdir(info.paths.folder):
        raise ConfigurationError(f"Output folder not found: {info.paths.folder}")

    read_info_file(info)
    info.scale = create_scales(info.unit_l, info.unit_d, info.unit_t, info.unit_m, info.constants)
    read_namelist(info, namelist)
    try:
        read_amr_header(info)
        read_hydro_header(info)
        read_particle_header(info)
    except ShardError as e:
        raise ConfigurationError(f"Unreadable shard header: {e}") from e
    read_gravity_presence(info)
    read_clump_header(info)
    read_auxiliary_files(info)

    log = logger.info if verbose else logger.debug
    for line in info.summary().splitlines():
        log(line)
    return info
