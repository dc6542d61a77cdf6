"""
Unit tests for the column table.

"""

import numpy as np
import pytest

from sangrah.errors import SchemaMismatchError
from sangrah.table import Table


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_construct_and_inspect():
    t = Table({"level": np.array([1, 2, 3], dtype="i4"), "rho": [0.1, 0.2, 0.3]})
    assert len(t) == 3
    assert t.columns == ["level", "rho"]
    assert t.schema["level"] == np.dtype("i4")
    assert "rho" in t and "p" not in t
    assert t.nbytes == 3 * 4 + 3 * 8


def test_unequal_columns():
    with pytest.raises(ValueError):
        Table({"a": [1, 2], "b": [1]})


def test_unknown_column():
    with pytest.raises(KeyError):
        Table({"a": [1]})["b"]


def test_empty_keeps_schema():
    t = Table.empty({"level": "i4", "rho": "f8"})
    assert len(t) == 0
    assert t.columns == ["level", "rho"]
    assert t["rho"].dtype == np.float64


def test_take():
    t = Table({"a": np.arange(5)})
    assert t.take(t["a"] > 2)["a"].tolist() == [3, 4]
    assert t.take([4, 0])["a"].tolist() == [4, 0]
    assert t.take(slice(1, 3))["a"].tolist() == [1, 2]
    with pytest.raises(ValueError):
        t.take(np.array([True, False]))


def test_sort_by_is_stable():
    t = Table({"k": [2, 1, 2, 1], "v": [0, 1, 2, 3]})
    s = t.sort_by("k")
    assert s["k"].tolist() == [1, 1, 2, 2]
    assert s["v"].tolist() == [1, 3, 0, 2]
    s = t.sort_by(["k", "v"])
    assert s["v"].tolist() == [1, 3, 0, 2]


def test_concat_order():
    a = Table({"x": [1, 2]})
    b = Table({"x": [3]})
    assert Table.concat([a, b])["x"].tolist() == [1, 2, 3]
    assert Table.concat([b, a])["x"].tolist() == [3, 1, 2]


def test_concat_schema_mismatch():
    with pytest.raises(SchemaMismatchError):
        Table.concat([Table({"x": [1]}), Table({"y": [1]})])


def test_concat_promotes_from_empty_template():
    """An empty template pins the dtype of its columns."""
    empty = Table.empty({"x": "f8"})
    merged = Table.concat([empty, Table({"x": np.array([1.0], dtype="f8")})])
    assert merged["x"].dtype == np.float64
    assert len(merged) == 1


def test_equals():
    a = Table({"x": np.array([1.0, np.nan])})
    assert a.equals(Table({"x": np.array([1.0, np.nan])}))
    assert not a.equals(Table({"x": np.array([1.0, 2.0])}))
    assert not a.equals(Table({"x": np.array([1, 2], dtype="i8")}))


def test_add_column():
    t = Table({"x": [1, 2]})
    t.add_column("y", [3, 4])
    assert t.columns == ["x", "y"]
    with pytest.raises(ValueError):
        t.add_column("z", [1])
