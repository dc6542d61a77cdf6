#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

──────────────────────────────────────────────────────────────────────────────
CLI QUICK START (copy–paste, then tweak)
──────────────────────────────────────────────────────────────────────────────
Example run (reads a subvolume of two outputs on 8 threads):

    sangrah \
        --path ./simulations \
        --numbers 1,3,5 \
        --kinds hydro,particles \
        --level-start 6 --level-end 9 \
        --x-range 0.25:0.75 --y-range 0.25:0.75 --z-range : \
        --fields rho,p,vx,vy,vz \
        --threads 8 --max-batch-memory 512M \
        --output-prefix subbox \
        --verbose

Exploration mode :

    # Lists the variables of every dataset kind present (nothing is read)
    sangrah --path ./simulations -n 5 --list-fields

    # Dry-run: show levels, ranges and the shards that would be read
    sangrah --path ./simulations -n 5 --x-range 0:0.5 --dry-run --verbose

Required args:

    --path             Directory containing the output_NNNNN folders.
    -n / --numbers     Output numbers to process. Formats:
                       "7" or "3,5,9" or "10-15"

Optional args:

    --kinds            Comma list of hydro, gravity, particles, clumps (default: hydro)
    --level-start / --level-end     AMR level bounds (inclusive)
    --x-range / --y-range / --z-range   Normalized ranges [0,1] over box length
    --fields           Variables to read (default: all)
    --threads          Worker threads (default: all cores)
    --max-batch-memory Byte ceiling per batch, K/M/G suffixes allowed
    --output-prefix    Prefix for written files (default: sangrah)
    --format           hdf5 archive of all kinds, or vtkhdf for cell data
    --allow-partial    Keep going when some shards are unreadable
    --list-fields      Only list available variables and exit
    --dry-run          Plan everything except reading and writing
    --verbose          Step-by-step narration

"""

from __future__ import annotations

import argparse
import logging
import os
import sys
from typing import Dict, List, Optional, Sequence

from .archive import save_datasets
from .config import DEFAULT_MAX_BATCH_MEMORY, ReaderConfig, setup_logging
from .datasets import DatasetKind
from .errors import PartialReadError, SangrahError
from .info import SimulationInfo, get_info
from .loaders import read_dataset, shard_plan
from .selection import parse_fields_arg, parse_memory, parse_norm_range, parse_output_numbers, prepare_ranges
from .vtkhdf import export_vtkhdf

logger = logging.getLogger("sangrah")


def parse_kinds_arg(arg: str) -> List[DatasetKind]:
    """Parse a comma-separated list of dataset kinds."""
    kinds = []
    for name in arg.split(","):
        name = name.strip()
        if not name:
            continue
        try:
            kind = DatasetKind.parse(name)
        except ValueError as e:
            raise argparse.ArgumentTypeError(str(e))
        if kind not in kinds:
            kinds.append(kind)
    if not kinds:
        raise argparse.ArgumentTypeError("At least one dataset kind is required.")
    return kinds


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sangrah", description="Parallel reader for RAMSES AMR outputs")

    # Required inputs
    parser.add_argument("--path", type=str, required=True, help="Directory containing output_NNNNN folders (REQUIRED)")
    parser.add_argument("-n", "--numbers", type=parse_output_numbers, required=True, help="Output numbers like '1', '1,3,5' or '2-7' (REQUIRED)")
    parser.add_argument("--kinds", type=parse_kinds_arg, default=[DatasetKind.HYDRO], help="Comma list of hydro,gravity,particles,clumps (default: hydro)")

    # Level selection
    parser.add_argument("--level-start", type=int, default=None, help="Minimum AMR level to include (inclusive). Optional.")
    parser.add_argument("--level-end", type=int, default=None, help="Maximum AMR level to include (inclusive). Optional.")

    # Normalized ranges (single arg per axis)
    parser.add_argument("--x-range", type=parse_norm_range, default=None, help="Normalized x range 'min:max' (e.g., 0.2:0.8, :0.7, 0.1:, :).")
    parser.add_argument("--y-range", type=parse_norm_range, default=None, help="Normalized y range 'min:max'.")
    parser.add_argument("--z-range", type=parse_norm_range, default=None, help="Normalized z range 'min:max'.")

    parser.add_argument("--fields", type=parse_fields_arg, default=None, help="Comma-separated variables to read (e.g. rho,vx,p,cpu). Default: all.")

    # Parallelism
    parser.add_argument("--threads", type=int, default=None, help="Worker threads (default: all cores).")
    parser.add_argument("--max-batch-memory", type=parse_memory, default=None, help="Byte ceiling per dispatched batch, e.g. 512M.")

    # Output
    parser.add_argument("-o", "--output-prefix", dest="output_prefix", default="sangrah", help="Output file prefix (default: sangrah)")
    parser.add_argument("--format", choices=("hdf5", "vtkhdf"), default="hdf5", help="hdf5 archive or VTKHDF OverlappingAMR (cell data only).")

    # Utility flags
    parser.add_argument("--allow-partial", action="store_true", help="Return data from the readable shards when some fail.")
    parser.add_argument("--list-fields", action="store_true", help="List available variables in the first requested output and exit.")
    parser.add_argument("--dry-run", action="store_true", help="Print plan without reading or writing.")
    parser.add_argument("--verbose", action="store_true", help="Verbose logging.")
    return parser


def _spatial_range(args) -> List[float]:
    bounds: List[float] = []
    for rng in (args.x_range, args.y_range, args.z_range):
        lo, hi = (None, None) if rng is None else rng
        bounds += [0.0 if lo is None else lo, 1.0 if hi is None else hi]
    return bounds


def _fields_for(kind: DatasetKind, info: SimulationInfo, fields: Optional[Sequence[str]]) -> Optional[List[str]]:
    """Restrict --fields to the names `kind` knows; None means all."""
    if fields is None:
        return None
    available = {
        DatasetKind.HYDRO: info.variable_list,
        DatasetKind.GRAVITY: info.gravity_variable_list,
        DatasetKind.PARTICLES: info.particles_variable_list,
        DatasetKind.CLUMPS: info.clumps_variable_list,
    }[kind]
    known = [f for f in fields if f in available or f == "cpu" or (f.startswith("var") and f[3:].isdigit())]
    dropped = [f for f in fields if f not in known]
    if dropped:
        logger.debug("%s: ignoring field(s) %s", kind.value, dropped)
    return known or None


def list_fields(info: SimulationInfo) -> Dict[str, List[str]]:
    out = {}
    if info.hydro:
        out["hydro"] = list(info.variable_list)
    if info.gravity:
        out["gravity"] = list(info.gravity_variable_list)
    if info.particles:
        out["particles"] = list(info.particles_variable_list)
    if info.clumps:
        out["clumps"] = list(info.clumps_variable_list)
    return out


def process_output(output_num: int, args, config: ReaderConfig) -> None:
    """Read the requested kinds of one output and write them (unless dry-run)."""
    info = get_info(output_num, path=args.path, verbose=args.verbose)
    spatial = _spatial_range(args)
    level_range = (args.level_start, args.level_end)
    kinds = [k for k in args.kinds if info.has(k.value)]
    for k in args.kinds:
        if k not in kinds:
            logger.warning("Output %s has no %s data; skipping.", output_num, k.value)

    if args.dry_run:
        ranges = prepare_ranges(info, spatial_range=spatial)
        for kind in kinds:
            cpus = shard_plan(kind, info, spatial, level_range, config)
            logger.info(
                "[dry-run] output %s %s: %d of %d shard(s), ranges %s, fields %s",
                output_num, kind.value, len(cpus), info.ncpu, ranges, _fields_for(kind, info, args.fields) or "all",
            )
        return

    datasets = []
    for kind in kinds:
        kwargs = dict(variables=_fields_for(kind, info, args.fields), spatial_range=spatial, config=config)
        if kind is not DatasetKind.CLUMPS:
            kwargs["level_range"] = level_range
        ds = read_dataset(kind, info, **kwargs)
        logger.info("output %s %s: %d rows", output_num, kind.value, len(ds))
        datasets.append(ds)

    if not datasets:
        logger.warning("Skipping output %s: nothing to write.", output_num)
        return

    if args.format == "vtkhdf":
        for ds in datasets:
            if not ds.kind.is_cell_data:
                logger.warning("VTKHDF export skips %s data.", ds.kind.value)
                continue
            export_vtkhdf(ds, f"{args.output_prefix}_{output_num:05d}_{ds.kind.value}.vtkhdf", args.fields)
    else:
        save_datasets(f"{args.output_prefix}_{output_num:05d}.h5", *datasets)


def main(argv: Optional[Sequence[str]] = None) -> int:
    """
    Parse CLI args and run the read pipeline.

    Returns:
        Process exit code.
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    # Configure logging early
    setup_logging(args.verbose)

    if not os.path.isdir(args.path):
        logger.error("Input folder not found: %s", args.path)
        return 2

    if args.level_start is not None and args.level_end is not None:
        if args.level_end < args.level_start:
            parser.error(f"Invalid level range: end ({args.level_end}) < start ({args.level_start}).")

    try:
        config = ReaderConfig(
            thread_budget=args.threads,
            max_batch_memory=args.max_batch_memory or DEFAULT_MAX_BATCH_MEMORY,
            verbose=args.verbose,
            allow_partial=args.allow_partial,
        )

        if args.list_fields:
            first_num = args.numbers[0]
            info = get_info(first_num, path=args.path)
            fields = list_fields(info)
            if fields:
                print("Available fields:")
                for kind, names in fields.items():
                    print(f" - {kind}: {', '.join(names)}")
            else:
                print("No datasets found.")
            return 0

        for num in args.numbers:
            process_output(num, args, config)
    except PartialReadError as e:
        logger.error("Unreadable shards (use --allow-partial to keep the rest):\n%s", e)
        return 1
    except SangrahError as e:
        logger.error("FATAL: %s", e)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
