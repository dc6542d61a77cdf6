"""
Unit tests for Hilbert keys and shard pruning.

These tests verify that:
1. Keys are a bijection onto [0, 8**bits) with unit steps between neighbours
2. Known keys of the RAMSES curve are reproduced
3. cpu_list keeps every shard that can hold cells of a box

"""

import numpy as np
import pytest

from sangrah.hilbert import coarse_level_for_extent, cpu_list, hilbert3d


# ──────────────────────────────────────────────────────────────
# Keys
# ──────────────────────────────────────────────────────────────

def test_known_keys():
    """First-level keys match the RAMSES state diagram."""
    assert float(hilbert3d(0, 0, 0, 1)) == 0.0
    assert float(hilbert3d(0, 0, 1, 1)) == 1.0
    assert float(hilbert3d(1, 0, 0, 1)) == 7.0
    assert float(hilbert3d(1, 1, 0, 1)) == 4.0


@pytest.mark.parametrize("bits", [1, 2, 3])
def test_keys_are_a_curve(bits):
    """Every key appears once, and consecutive keys are face neighbours."""
    n = 2 ** bits
    ix, iy, iz = np.meshgrid(np.arange(n), np.arange(n), np.arange(n), indexing="ij")
    keys = hilbert3d(ix.ravel(), iy.ravel(), iz.ravel(), bits)
    assert sorted(keys.astype(int).tolist()) == list(range(n ** 3))

    order = np.argsort(keys)
    pts = np.column_stack([ix.ravel(), iy.ravel(), iz.ravel()])[order]
    steps = np.abs(np.diff(pts, axis=0)).sum(axis=1)
    assert np.all(steps == 1)


def test_zero_bits():
    assert np.all(hilbert3d([0, 0], [0, 0], [0, 0], 0) == 0)


def test_out_of_range():
    with pytest.raises(ValueError):
        hilbert3d(2, 0, 0, 1)


def test_coarse_level():
    assert coarse_level_for_extent(1.0, 10) == 1
    assert coarse_level_for_extent(0.4, 10) == 2
    assert coarse_level_for_extent(1e-6, 3) == 3


# ──────────────────────────────────────────────────────────────
# Pruning
# ──────────────────────────────────────────────────────────────

def test_cpu_list_full_box():
    """The whole box needs every shard."""
    bound_key = np.linspace(0, 8.0 ** 4, 5)
    assert cpu_list(bound_key, (0, 1, 0, 1, 0, 1), 3, 3, 3) == [1, 2, 3, 4]


def test_cpu_list_single_octant():
    """A box inside the first octant keeps only the shard owning key 0."""
    depth = 4
    bound_key = np.linspace(0, 8.0 ** depth, 9)  # one octant per cpu
    assert cpu_list(bound_key, (0, 0.4, 0, 0.4, 0, 0.4), depth - 1, 3, 3) == [1]


def test_cpu_list_octant_owner():
    """The shard owning the octant of key 7 is found."""
    depth = 4
    bound_key = np.linspace(0, 8.0 ** depth, 9)
    # octant (1, 0, 0) has key 7 -> eighth shard
    assert cpu_list(bound_key, (0.6, 0.9, 0.1, 0.4, 0.1, 0.4), depth - 1, 3, 3) == [8]


def test_cpu_list_never_finer_than_lmin():
    """With lmin=1 the cubes cover the whole box, so nothing is pruned."""
    bound_key = np.linspace(0, 8.0 ** 4, 9)
    assert cpu_list(bound_key, (0, 0.1, 0, 0.1, 0, 0.1), 3, 3, 1) == list(range(1, 9))
