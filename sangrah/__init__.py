# -*- coding: utf-8 -*-

"""

Sangrah: parallel reader for RAMSES AMR outputs
================================================

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Sangrah reads the per-CPU binary shards of a RAMSES output (AMR, hydro,
gravity, particles) and its clump catalogues, and assembles them into one
column table per dataset kind, with level, spatial and variable selection
applied while reading.

──────────────────────────────────────────────────────────────────────────────
WHY THIS EXISTS
──────────────────────────────────────────────────────────────────────────────
- Large runs write thousands of shards; reading them one by one is slow,
  and holding them all in memory at once is not an option.
- Shards are read on a thread pool in memory-bounded batches and merged in
  CPU order, so the result does not depend on the thread count.

"""

from .archive import load_dataset, save_datasets
from .config import ReaderConfig, setup_logging
from .datasets import (
    ClumpDataset,
    Dataset,
    DatasetKind,
    GravityDataset,
    HydroDataset,
    ParticleDataset,
)
from .errors import (
    ConfigurationError,
    MalformedRecordError,
    PartialReadError,
    SangrahError,
    SchemaMismatchError,
    ShardCountMismatchError,
    ShardError,
    ShardStructureError,
)
from .info import SimulationInfo, get_info
from .loaders import (
    read_clumps,
    read_dataset,
    read_gravity,
    read_hydro,
    read_particles,
    shard_plan,
)
from .regions import shellregion, subregion
from .stats import WStat, average_mweighted, bulk_velocity, center_of_mass, msum, wstat
from .table import Table
from .vtkhdf import export_vtkhdf

__version__ = "1.0.0"
