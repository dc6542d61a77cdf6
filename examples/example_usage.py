#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

─────────────────────────────────────────────────────────────
Example Usage of Sangrah
─────────────────────────────────────────────────────────────

This script demonstrates how to use the Sangrah readers to
explore RAMSES simulation outputs and load a subvolume.

Features demonstrated:
1. Inspecting the simulation overview of an output
2. Listing the variables of every dataset kind
3. Planning which CPU shards a subvolume touches
4. Reading hydro cells and particles, then saving them to HDF5

─────────────────────────────────────────────────────────────

"""

from sangrah import (
    DatasetKind,
    ReaderConfig,
    SangrahError,
    get_info,
    read_hydro,
    read_particles,
    save_datasets,
    shard_plan,
)

# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

RAMSES_OUTPUT_ROOT = "ramses_outputs/sedov_3d"

OUTPUT_NUMBERS = [1, 2]

SUBVOLUME = [0.25, 0.75, 0.25, 0.75, 0.25, 0.75]

HYDRO_FIELDS = ["rho", "vx", "vy", "vz", "p"]

SAVE = False  # Set to True to write output_NNNNN_subbox.h5 files

CONFIG = ReaderConfig(thread_budget=4, max_batch_memory=256 * 1024 ** 2, verbose=True)


# ──────────────────────────────────────────────────────────────
# Helper Functions
# ──────────────────────────────────────────────────────────────


def print_fields(info):

    print("Available fields:")
    for kind in DatasetKind:
        if info.has(kind.value):
            names = {
                DatasetKind.HYDRO: info.variable_list,
                DatasetKind.GRAVITY: info.gravity_variable_list,
                DatasetKind.PARTICLES: info.particles_variable_list,
                DatasetKind.CLUMPS: info.clumps_variable_list,
            }[kind]
            print(f"  {kind.value}: {', '.join(names)}")


def print_plan(info):

    cpus = shard_plan(DatasetKind.HYDRO, info, SUBVOLUME, (None, None), CONFIG)
    print(f"Subvolume touches {len(cpus)} of {info.ncpu} hydro shard(s)")


# ──────────────────────────────────────────────────────────────
# Main Example Workflow
# ──────────────────────────────────────────────────────────────

def main():

    print("=== Sangrah Example Usage ===")

    for num in OUTPUT_NUMBERS:
        try:
            info = get_info(num, path=RAMSES_OUTPUT_ROOT)
        except SangrahError as e:
            print(f"⚠️ Skipping output {num}: {e}")
            continue

        print(f"\n🔹 Output {num}")
        print(info.summary())
        print_fields(info)
        print_plan(info)

        gas = read_hydro(info, variables=HYDRO_FIELDS, spatial_range=SUBVOLUME, config=CONFIG)
        print(gas.summary())
        print("Density (weighted by cell size):", gas.wstat("rho", weight="cellsize"))

        datasets = [gas]
        if info.particles:
            stars = read_particles(info, spatial_range=SUBVOLUME, config=CONFIG)
            print(stars.summary())
            datasets.append(stars)

        if SAVE:
            save_datasets(f"output_{num:05d}_subbox.h5", *datasets)
            print(f"✅ Output {num} saved")

    print("\n🎉 Example usage finished!")


# ──────────────────────────────────────────────────────────────
# Entry Point
# ──────────────────────────────────────────────────────────────

if __name__ == "__main__":
    main()
