"""
Unit tests for AMR grid reconstruction.

These tests verify that:
1. Only the shard's own octs are kept, level by level
2. Cell coordinates follow from the oct centres
3. Leaf flags honour the son records and the lmax cut

"""

import numpy as np
import pytest

from ramses_fixture import flip_trailing_marker

from sangrah.amr import GridLevel, read_grid_shard
from sangrah.errors import MalformedRecordError, ShardStructureError


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_own_octs_per_level(simulation):
    """Kept octs are exactly the shard's own octs."""
    for cpu in range(1, simulation.ncpu + 1):
        grid = read_grid_shard(simulation.shard("amr", cpu), cpu, 4, 4, 1, 4)
        np.testing.assert_array_equal(grid.ncache, simulation.numbl())
        for level in range(1, 5):
            expected = sorted(o.parent for o in simulation.octs_at(level, cpu))
            if not expected:
                assert level not in grid.levels
                continue
            got = sorted(map(tuple, grid.levels[level].parent.tolist()))
            assert got == expected
            assert grid.own_grids(level) == len(expected)


def test_levels_outside_range_skipped(simulation):
    grid = read_grid_shard(simulation.shard("amr", 1), 1, 4, 4, 3, 3)
    assert set(grid.levels) <= {3}
    assert grid.ncache.shape == (3, 4)


def test_leaf_mask_matches_tree(simulation):
    """Leaves found from the son records are the fixture's leaves."""
    found = set()
    for cpu in range(1, simulation.ncpu + 1):
        grid = read_grid_shard(simulation.shard("amr", cpu), cpu, 4, 4, 1, 4)
        for level, lvl in grid.levels.items():
            cx, cy, cz = lvl.cell_coordinates()
            leaf = lvl.leaf_mask(4)
            for x, y, z in zip(cx[leaf], cy[leaf], cz[leaf]):
                found.add((level, int(x), int(y), int(z), cpu))
    expected = {tuple(int(v) for v in row) for row in simulation.leaves}
    assert found == expected


def test_cell_coordinates():
    """Octant offsets run x fastest."""
    lvl = GridLevel(level=2, parent=np.array([[2, 1, 1]]))
    cx, cy, cz = lvl.cell_coordinates()
    assert cx[:, 0].tolist() == [3, 4, 3, 4, 3, 4, 3, 4]
    assert cy[:, 0].tolist() == [1, 1, 2, 2, 1, 1, 2, 2]
    assert cz[:, 0].tolist() == [1, 1, 1, 1, 2, 2, 2, 2]


def test_leaf_mask_at_lmax():
    """Cells at lmax are leaves even when refined."""
    son = np.zeros((8, 1), dtype=np.int32)
    son[3, 0] = 5
    lvl = GridLevel(level=2, parent=np.array([[1, 1, 1]]), son=son)
    assert lvl.leaf_mask(3)[:, 0].tolist() == [True, True, True, False, True, True, True, True]
    assert lvl.leaf_mask(2).all()


def test_wrong_ncpu(simulation):
    with pytest.raises(ShardStructureError):
        read_grid_shard(simulation.shard("amr", 1), 1, 8, 4, 1, 4)


def test_lmax_beyond_file(simulation):
    with pytest.raises(ShardStructureError):
        read_grid_shard(simulation.shard("amr", 1), 1, 4, 5, 1, 5)


def test_corrupt_marker(simulation):
    path = simulation.shard("amr", 2)
    flip_trailing_marker(path)
    with pytest.raises(MalformedRecordError):
        read_grid_shard(path, 2, 4, 4, 1, 4)
