#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Parallel shard dispatcher.

──────────────────────────────────────────────────────────────────────────────
Description
──────────────────────────────────────────────────────────────────────────────
Shards are split into contiguous batches. A batch closes when the next
shard would push its estimated size over `max_batch_memory`, or when it
already holds ceil(n_shards / threads) shards. Each batch is one future on
a ThreadPoolExecutor.

Estimates can be wrong, so a worker also counts the bytes it actually
holds: once they pass `max_batch_memory` it hands them to the running merge
before reading the next shard. The merge takes results strictly in
ascending CPU order. Hand-offs from a batch whose predecessors are still
open wait, compacted, until those predecessors are closed. The merged
table is therefore identical for every thread budget.

A ShardError inside a worker excludes that shard (zero rows) and is
reported once all shards were attempted. Any other exception propagates.

"""

from __future__ import annotations

import concurrent.futures
import logging
import math
import threading
import time
from dataclasses import dataclass, field
from functools import partial
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .config import ReaderConfig
from .errors import ShardError
from .table import Table

logger = logging.getLogger("sangrah")

ShardReader = Callable[[int], "ShardResult"]


@dataclass
class ShardResult:
    """Rows produced by one shard plus its data-quality counters."""

    cpu: int
    table: Table
    quality: Dict[str, int] = field(default_factory=dict)


@dataclass
class DispatchOutcome:
    table: Table
    shards: List[int]
    quality: Dict[str, int] = field(default_factory=dict)
    failures: List[Tuple[int, BaseException]] = field(default_factory=list)

    @property
    def failed_shards(self) -> List[int]:
        return [cpu for cpu, _ in self.failures]


def plan_batches(
    cpus: Sequence[int],
    estimated_bytes: Sequence[int],
    threads: int,
    max_batch_memory: int,
) -> List[List[int]]:
    """
    Split `cpus` into contiguous batches.

    Args:
        cpus: shard indices in canonical (ascending) order
        estimated_bytes: estimated table size of each shard
        threads: worker count
        max_batch_memory: byte ceiling for one batch

    Returns:
        List of batches; every batch holds at least one shard.
    """
    if not cpus:
        return []
    per_batch = max(1, math.ceil(len(cpus) / max(1, threads)))
    batches: List[List[int]] = []
    current: List[int] = []
    current_bytes = 0
    for cpu, nbytes in zip(cpus, estimated_bytes):
        if current and (len(current) >= per_batch or current_bytes + nbytes > max_batch_memory):
            batches.append(current)
            current, current_bytes = [], 0
        current.append(cpu)
        current_bytes += nbytes
    batches.append(current)
    return batches


def run_batch(
    reader: ShardReader,
    merge: "_OrderedMerge",
    ceiling: int,
    index: int,
    cpus: Sequence[int],
) -> None:
    """
    Worker function: read every shard of one batch in order.

    Shard errors are kept in place of the result so the remaining shards of
    the batch are still read. Once the tables held by the worker exceed
    `ceiling` bytes they are handed to the merge before the next shard is
    read; the batch is closed with a final hand-off.
    """
    out: List[Tuple[int, Union[ShardResult, ShardError]]] = []
    held = 0
    for cpu in cpus:
        try:
            res = reader(cpu)
        except ShardError as e:
            if e.cpu is None:
                e.cpu = cpu
            logger.debug("Shard %05d failed: %s", cpu, e)
            out.append((cpu, e))
            continue
        out.append((cpu, res))
        held += res.table.nbytes
        if held > ceiling:
            merge.offer(index, out, final=False)
            out, held = [], 0
    merge.offer(index, out, final=True)


class _OrderedMerge:
    """
    Collects shard tables in canonical order, compacting past a byte ceiling.

    Workers hand over results per batch through `offer`. Results of the
    batch currently at the head of the order go straight into the merge;
    those of later batches wait, compacted, until every earlier batch has
    been closed.
    """

    def __init__(self, ceiling: int):
        self.ceiling = ceiling
        self.parts: List[Table] = []
        self.pending: List[Table] = []
        self.pending_bytes = 0
        self.quality: Dict[str, int] = {}
        self.failures: List[Tuple[int, BaseException]] = []
        self.head = 0
        self.waiting: Dict[int, _OrderedMerge] = {}
        self.closed: set = set()
        self._lock = threading.Lock()

    def offer(self, index: int, results: List[Tuple[int, Union[ShardResult, ShardError]]], final: bool) -> None:
        with self._lock:
            if index == self.head:
                self.add(results)
            else:
                self.waiting.setdefault(index, _OrderedMerge(self.ceiling)).add(results)
            if final:
                self.closed.add(index)
            while self.head in self.closed:
                self.closed.discard(self.head)
                self.head += 1
                if self.head in self.waiting:
                    self.absorb(self.waiting.pop(self.head))

    def absorb(self, other: "_OrderedMerge") -> None:
        """Append everything `other` collected, keeping its order."""
        other.compact()
        for key, value in other.quality.items():
            self.quality[key] = self.quality.get(key, 0) + value
        self.failures.extend(other.failures)
        self.compact()
        self.parts.extend(other.parts)

    def add(self, results: List[Tuple[int, Union[ShardResult, ShardError]]]) -> None:
        for cpu, res in results:
            if isinstance(res, ShardError):
                self.failures.append((cpu, res))
                continue
            for key, value in res.quality.items():
                self.quality[key] = self.quality.get(key, 0) + int(value)
            if len(res.table):
                self.pending.append(res.table)
                self.pending_bytes += res.table.nbytes
        if self.pending_bytes > self.ceiling:
            self.compact()

    def compact(self) -> None:
        if self.pending:
            self.parts.append(Table.concat(self.pending))
            self.pending, self.pending_bytes = [], 0

    def result(self, empty: Table) -> Table:
        self.compact()
        if not self.parts:
            return empty
        # the empty template pins the schema even when only one shard contributed
        return Table.concat([empty] + self.parts)


def dispatch(
    cpus: Sequence[int],
    reader: ShardReader,
    empty: Table,
    config: ReaderConfig,
    estimate: Optional[Callable[[int], int]] = None,
    label: str = "shards",
) -> DispatchOutcome:
    """
    Read `cpus` in parallel and merge the results in ascending CPU order.

    Args:
        cpus: shard indices to read
        reader: callable reading one shard and returning a ShardResult
        empty: zero-row table with the expected schema
        config: thread budget, memory ceiling and narration settings
        estimate: estimated bytes of one shard's table
        label: name used in log messages

    Returns:
        DispatchOutcome with the merged table and any shard failures.
    """
    cpus = sorted(int(c) for c in cpus)
    threads = config.resolved_threads()
    sizes = [estimate(cpu) if estimate is not None else 0 for cpu in cpus]
    batches = plan_batches(cpus, sizes, threads, config.max_batch_memory)
    nworkers = max(1, min(threads, len(batches)))

    config.narrate("Reading %d %s in %d batch(es) on %d thread(s)", len(cpus), label, len(batches), nworkers)
    t0 = time.time()

    merge = _OrderedMerge(config.max_batch_memory)
    worker = partial(run_batch, reader, merge, config.max_batch_memory)

    if batches:
        with concurrent.futures.ThreadPoolExecutor(max_workers=nworkers) as ex:
            futures = [ex.submit(worker, i, batch) for i, batch in enumerate(batches)]
            try:
                for fut in concurrent.futures.as_completed(futures):
                    fut.result()
            except BaseException:
                for fut in futures:
                    fut.cancel()
                raise

    table = merge.result(empty)
    config.narrate(
        "Read %d %s (%d failed): %d rows in %.2fs",
        len(cpus), label, len(merge.failures), len(table), time.time() - t0,
    )
    return DispatchOutcome(table=table, shards=cpus, quality=merge.quality, failures=merge.failures)
