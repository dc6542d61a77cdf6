#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""

Column-oriented table used for every dataset kind.

A Table is an ordered mapping of column name -> 1-D numpy array, all of the
same length. The column set is fixed at construction; `add_column` is the
only mutation and is meant for explicit user action.

"""

from __future__ import annotations

from collections import OrderedDict
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Sequence, Union

import numpy as np

from .errors import SchemaMismatchError


class Table:
    """
    Ordered collection of equal-length columns.

    Args:
        columns: mapping of name -> array-like, in column order
    """

    def __init__(self, columns: Optional[Mapping[str, Iterable]] = None):
        self._columns: "OrderedDict[str, np.ndarray]" = OrderedDict()
        nrows = None
        for name, values in (columns or {}).items():
            arr = np.asarray(values)
            if arr.ndim != 1:
                arr = arr.reshape(-1)
            if nrows is None:
                nrows = len(arr)
            elif len(arr) != nrows:
                raise ValueError(f"Column '{name}' has {len(arr)} rows, expected {nrows}")
            self._columns[name] = arr
        self._nrows = nrows or 0

    @classmethod
    def empty(cls, schema: Mapping[str, Union[str, np.dtype]]) -> "Table":
        """Zero-row table with the given name -> dtype schema."""
        return cls({name: np.empty(0, dtype=dt) for name, dt in schema.items()})

    # ── introspection ─────────────────────────────────────────────────────────

    def __len__(self) -> int:
        return self._nrows

    @property
    def columns(self) -> List[str]:
        return list(self._columns)

    @property
    def schema(self) -> Dict[str, np.dtype]:
        return {name: arr.dtype for name, arr in self._columns.items()}

    @property
    def nbytes(self) -> int:
        return int(sum(arr.nbytes for arr in self._columns.values()))

    def __getitem__(self, name: str) -> np.ndarray:
        try:
            return self._columns[name]
        except KeyError:
            raise KeyError(f"No column '{name}'. Columns: {', '.join(self._columns)}") from None

    def __contains__(self, name: object) -> bool:
        return name in self._columns

    def __iter__(self) -> Iterator[str]:
        return iter(self._columns)

    def __repr__(self) -> str:
        return f"Table({self._nrows} rows; {', '.join(self._columns)})"

    # ── row operations ────────────────────────────────────────────────────────

    def take(self, selector: Union[np.ndarray, Sequence[int], slice]) -> "Table":
        """Rows picked by a boolean mask, an index array or a slice."""
        if isinstance(selector, slice):
            return Table({n: a[selector] for n, a in self._columns.items()})
        sel = np.asarray(selector)
        if sel.dtype == bool and len(sel) != self._nrows:
            raise ValueError(f"Mask has {len(sel)} entries for {self._nrows} rows")
        return Table({n: a[sel] for n, a in self._columns.items()})

    def sort_by(self, keys: Union[str, Sequence[str]]) -> "Table":
        """Stable sort on one or more columns, first key most significant."""
        if isinstance(keys, str):
            keys = [keys]
        if not keys or self._nrows == 0:
            return self.take(slice(None))
        order = np.lexsort([self[k] for k in reversed(list(keys))])
        return self.take(order)

    @classmethod
    def concat(cls, tables: Sequence["Table"]) -> "Table":
        """
        Concatenate tables in the given order.

        Raises:
            SchemaMismatchError when two tables disagree on their column names.
        """
        tables = [t for t in tables if t is not None]
        if not tables:
            return cls()
        reference = tables[0].columns
        for t in tables[1:]:
            if t.columns != reference:
                raise SchemaMismatchError(
                    f"Column mismatch while merging: {reference} vs {t.columns}"
                )
        if len(tables) == 1:
            return tables[0]
        return cls({name: np.concatenate([t[name] for t in tables]) for name in reference})

    def equals(self, other: "Table") -> bool:
        """Same columns in the same order with identical values and dtypes."""
        if not isinstance(other, Table) or self.columns != other.columns or len(self) != len(other):
            return False
        for name in self.columns:
            a, b = self[name], other[name]
            if a.dtype != b.dtype or not np.array_equal(a, b, equal_nan=a.dtype.kind == "f"):
                return False
        return True

    # ── mutation and export ───────────────────────────────────────────────────

    def add_column(self, name: str, values: Iterable) -> None:
        arr = np.asarray(values).reshape(-1)
        if self._columns and len(arr) != self._nrows:
            raise ValueError(f"Column '{name}' has {len(arr)} rows, expected {self._nrows}")
        if not self._columns:
            self._nrows = len(arr)
        self._columns[name] = arr

    def to_dict(self) -> Dict[str, np.ndarray]:
        return dict(self._columns)
