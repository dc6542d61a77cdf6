#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Reader configuration and logging setup.

Every reader takes an explicit ReaderConfig (or keyword overrides of its
fields). Nothing here is process-wide except `setup_logging`, which only the
CLI calls.

"""

from __future__ import annotations

import dataclasses
import logging
import os
from dataclasses import dataclass
from typing import Any, Optional

from .errors import ConfigurationError

DEFAULT_MAX_BATCH_MEMORY = 256 * 1024 ** 2


def setup_logging(verbose: bool) -> None:
    """
    Configure global logging.

    Args:
        verbose: If True, set DEBUG level, otherwise INFO.
    """

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s | %(levelname)-8s | %(message)s",
        datefmt="%H:%M:%S",
    )

    logging.getLogger("sangrah").setLevel(level)
    logging.getLogger("h5py").setLevel(logging.WARNING)


@dataclass(frozen=True)
class ReaderConfig:
    """
    Per-call reader settings.

    Attributes:
        thread_budget: worker threads; None means os.cpu_count()
        max_batch_memory: estimated bytes a single dispatched batch may hold
        verbose: narrate the load at INFO level instead of DEBUG
        print_filenames: log every shard file as it is opened
        allow_partial: return partial datasets with a warning instead of
            raising PartialReadError
        prune_shards: skip shards whose Hilbert domain misses the selection
    """

    thread_budget: Optional[int] = None
    max_batch_memory: int = DEFAULT_MAX_BATCH_MEMORY
    verbose: bool = False
    print_filenames: bool = False
    allow_partial: bool = False
    prune_shards: bool = True

    def __post_init__(self):
        if self.thread_budget is not None and int(self.thread_budget) < 1:
            raise ConfigurationError(f"thread_budget must be >= 1, got {self.thread_budget}")
        if int(self.max_batch_memory) <= 0:
            raise ConfigurationError(f"max_batch_memory must be > 0, got {self.max_batch_memory}")

    def resolved_threads(self) -> int:
        if self.thread_budget is not None:
            return int(self.thread_budget)
        return max(1, os.cpu_count() or 1)

    def narrate(self, msg: str, *args: Any) -> None:
        """Log at INFO when verbose, DEBUG otherwise."""
        logging.getLogger("sangrah").log(logging.INFO if self.verbose else logging.DEBUG, msg, *args)


def resolve_config(config: Optional[ReaderConfig] = None, **overrides: Any) -> ReaderConfig:
    """Apply non-None keyword overrides on top of `config` (or the defaults)."""
    base = config or ReaderConfig()
    changes = {k: v for k, v in overrides.items() if v is not None}
    unknown = set(changes) - {f.name for f in dataclasses.fields(ReaderConfig)}
    if unknown:
        raise TypeError(f"Unknown reader option(s): {', '.join(sorted(unknown))}")
    return dataclasses.replace(base, **changes) if changes else base

