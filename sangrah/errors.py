#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Exception hierarchy for sangrah.

──────────────────────────────────────────────────────────────────────────────
Taxonomy
──────────────────────────────────────────────────────────────────────────────
- ConfigurationError      fatal, raised before any shard is dispatched
- ShardError              one shard is unusable; the dispatcher records it
                          and carries on with the remaining shards
- PartialReadError        raised once every shard was attempted and at least
                          one of them failed; carries the partial dataset
- SchemaMismatchError     shards produced different column sets; always fatal

"""

from __future__ import annotations

from typing import Any, List, Optional, Sequence, Tuple


class SangrahError(Exception):
    """Base class for every error raised by sangrah."""


class ConfigurationError(SangrahError):
    """Invalid request or unreadable output metadata."""


class ShardCountMismatchError(ConfigurationError):
    """The number of shard files on disk differs from the declared ncpu."""

    def __init__(self, declared: int, found: int, missing: Sequence[str] = ()):
        self.declared = declared
        self.found = found
        self.missing = list(missing)
        msg = f"Info file declares ncpu={declared} but {found} shard file(s) were found"
        if self.missing:
            shown = ", ".join(self.missing[:5])
            more = "" if len(self.missing) <= 5 else f" (+{len(self.missing) - 5} more)"
            msg += f"; missing: {shown}{more}"
        super().__init__(msg)


class ShardError(SangrahError):
    """
    A single shard could not be decoded.

    Args:
        message: human readable cause
        path: file that failed, when known
        cpu: 1-based shard index, filled in by the dispatcher when missing
    """

    def __init__(self, message: str, path: Optional[str] = None, cpu: Optional[int] = None):
        self.path = path
        self.cpu = cpu
        self.message = message
        super().__init__(message)

    def __str__(self) -> str:
        where = f" [{self.path}]" if self.path else ""
        return f"{self.message}{where}"


class MalformedRecordError(ShardError):
    """Record markers disagree, a record is truncated or has the wrong item size."""


class ShardStructureError(ShardError):
    """Declared grid/particle counts disagree with the records present in a shard."""


class PartialReadError(SangrahError):
    """
    Some shards failed while the others were read successfully.

    Attributes:
        failures: list of (cpu, exception) in ascending cpu order
        failed_shards: the failed cpu indices
        dataset: dataset assembled from the shards that succeeded
    """

    def __init__(self, failures: List[Tuple[int, BaseException]], dataset: Any = None):
        self.failures = sorted(failures, key=lambda item: item[0])
        self.failed_shards = [cpu for cpu, _ in self.failures]
        self.dataset = dataset
        lines = [f"{len(self.failures)} shard(s) failed to read:"]
        for cpu, exc in self.failures:
            lines.append(f"  cpu {cpu:05d}: {type(exc).__name__}: {exc}")
        super().__init__("\n".join(lines))


class SchemaMismatchError(SangrahError):
    """Two shard tables disagree on their columns."""
