#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Table assembler: turns a dispatch outcome into a dataset object.

The merged table is checked against the expected column set, wrapped in the
dataset class of its kind together with the selection that was applied,
and the partial-failure policy of the ReaderConfig is enforced.

"""

from __future__ import annotations

import logging
from typing import Any, Dict, Sequence, Tuple

from .config import ReaderConfig
from .datasets import DATASET_CLASSES, Dataset, DatasetKind
from .errors import PartialReadError, SchemaMismatchError
from .info import SimulationInfo
from .parallel import DispatchOutcome

logger = logging.getLogger("sangrah")


def assemble(
    kind: DatasetKind,
    outcome: DispatchOutcome,
    info: SimulationInfo,
    expected_columns: Sequence[str],
    lmin: int,
    lmax: int,
    ranges: Tuple[float, float, float, float, float, float],
    selected_variables: Sequence[str],
    config: ReaderConfig,
    **extra: Any,
) -> Dataset:
    """
    Build the dataset of `kind` from a dispatch outcome.

    Args:
        kind: dataset kind selecting the dataset class
        outcome: merged table, quality counters and failures
        info: simulation overview
        expected_columns: column names every shard had to produce
        lmin, lmax, ranges, selected_variables: the applied selection
        config: reader settings (partial-failure policy)
        extra: kind-specific fields (smallr, smallc)

    Raises:
        SchemaMismatchError: merged columns differ from `expected_columns`
        PartialReadError: some shards failed and allow_partial is off
    """
    table = outcome.table
    if table.columns != list(expected_columns):
        raise SchemaMismatchError(
            f"{kind.value}: merged columns {table.columns} differ from expected {list(expected_columns)}"
        )

    cls = DATASET_CLASSES[kind]
    dataset = cls(
        data=table,
        info=info,
        lmin=lmin,
        lmax=lmax,
        boxlen=info.boxlen,
        ranges=tuple(ranges),
        selected_variables=list(selected_variables),
        scale=info.scale.copy(),
        failed_shards=outcome.failed_shards,
        quality=dict(outcome.quality),
        **extra,
    )

    _report_quality(kind, dataset.quality)

    if outcome.failures:
        err = PartialReadError(outcome.failures, dataset=dataset)
        if not config.allow_partial:
            raise err
        logger.warning("%s: returning partial data. %s", kind.value, err)

    config.narrate("%s: %d rows, %d column(s)", kind.value, len(table), len(table.columns))
    return dataset


def _report_quality(kind: DatasetKind, quality: Dict[str, int]) -> None:
    for key, count in sorted(quality.items()):
        if count and key.startswith("negative_"):
            logger.warning("%s: %d negative value(s) of '%s'", kind.value, count, key[len("negative_"):])
        elif count and key.startswith("floored_"):
            logger.warning("%s: %d value(s) of '%s' raised to the floor", kind.value, count, key[len("floored_"):])
