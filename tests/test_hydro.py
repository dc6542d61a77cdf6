"""
Unit tests for reading hydro cells.

These tests verify that:
1. Every leaf cell is returned once, with its own variable values
2. The table is identical for every thread budget and batch size
3. Level and spatial selection keep exactly the expected cells
4. Hilbert pruning never changes the result
5. smallr/smallc floors and negative-value checks behave as documented

"""

import numpy as np
import pytest

from ramses_fixture import make_output

from sangrah import ReaderConfig, get_info, read_hydro, shard_plan
from sangrah.errors import ConfigurationError
from sangrah.selection import cell_index_bounds


# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

def leaf_set(simulation, lmin=1, lmax=None, ranges=None):
    """(level, cx, cy, cz, cpu) of the fixture leaves a read should return."""
    lmax = lmax or simulation.levelmax
    rows = set()
    for level in range(lmin, lmax + 1):
        for o in simulation.octs_at(level):
            for ind, cell in enumerate(o.cells):
                if o.son[ind] != 0 and level < lmax:
                    continue
                if ranges is not None:
                    b = cell_index_bounds(ranges, level)
                    if not all(b[a, 0] <= cell[a] <= b[a, 1] for a in range(3)):
                        continue
                rows.add((level,) + cell + (o.cpu,))
    return rows


def row_set(ds):
    t = ds.data
    return {
        (int(l), int(x), int(y), int(z), int(c))
        for l, x, y, z, c in zip(t["level"], t["cx"], t["cy"], t["cz"], t["cpu"])
    }


# ──────────────────────────────────────────────────────────────
# Completeness and values
# ──────────────────────────────────────────────────────────────

def test_all_leaves(simulation, info):
    """Every leaf cell of the tree appears exactly once."""
    gas = read_hydro(info, variables=["all", "cpu"])
    assert len(gas) == len(simulation.leaves)
    assert row_set(gas) == leaf_set(simulation)
    assert gas.columns == ["level", "cpu", "cx", "cy", "cz", "rho", "vx", "vy", "vz", "p"]


def test_leaf_count_matches_grid_counts(info):
    """Leaves = 8 * octs(lmin..lmax) - octs(lmin+1..lmax)."""
    gas = read_hydro(info)
    numbl = info.grid.numbl.sum(axis=1)
    lmin, lmax = gas.lmin, gas.lmax
    expected = 8 * numbl[lmin - 1:lmax].sum() - numbl[lmin:lmax].sum()
    assert len(gas) == expected


def test_values_follow_cells(info):
    """Each row carries the values written for its own cell."""
    gas = read_hydro(info)
    t = gas.data
    np.testing.assert_array_equal(t["vx"], t["cx"])
    np.testing.assert_array_equal(t["vy"], t["cy"])
    np.testing.assert_array_equal(t["vz"], t["cz"])
    np.testing.assert_allclose(t["p"], 1e-7 * t["cz"] + 1e-9 * t["level"])
    assert np.all(t["rho"] == 1e-5)


def test_derived_positions(info):
    """x, y, z and cellsize come from level and cell indices."""
    gas = read_hydro(info)
    t = gas.data
    size = info.boxlen / 2.0 ** t["level"]
    np.testing.assert_allclose(gas.getvar("cellsize"), size)
    np.testing.assert_allclose(gas.getvar("x"), (t["cx"] - 0.5) * size)
    assert gas.positions().shape == (len(gas), 3)
    np.testing.assert_allclose(gas.getvar("x", "kpc"), gas.getvar("x") * info.scale["kpc"])


@pytest.mark.parametrize("threads", [1, 2, 4, 8])
def test_thread_budget_invariance(info, threads):
    """Thread budget and batch size never change the table."""
    reference = read_hydro(info, variables=["all", "cpu"], thread_budget=1)
    again = read_hydro(info, variables=["all", "cpu"], thread_budget=threads)
    assert again.data.equals(reference.data)
    tiny = read_hydro(info, variables=["all", "cpu"], thread_budget=threads, max_batch_memory=1)
    assert tiny.data.equals(reference.data)


def test_rows_in_cpu_order(info):
    gas = read_hydro(info, variables=["cpu"], thread_budget=4)
    cpu = gas.data["cpu"]
    assert np.all(np.diff(cpu) >= 0)


def test_variable_projection(info):
    gas = read_hydro(info, variables=["p", "var1"])
    assert gas.columns == ["level", "cx", "cy", "cz", "rho", "p"]
    assert gas.selected_variables == ["rho", "p"]
    assert gas.data["cx"].dtype == np.int32
    assert gas.data["p"].dtype == np.float64


# ──────────────────────────────────────────────────────────────
# Selection
# ──────────────────────────────────────────────────────────────

def test_level_range(simulation, info):
    """Cells of lmax count as leaves even when refined."""
    gas = read_hydro(info, variables=["cpu"], level_range=(2, 3))
    assert row_set(gas) == leaf_set(simulation, 2, 3)
    assert gas.lmin == 2 and gas.lmax == 3
    assert set(np.unique(gas.data["level"]).tolist()) == {2, 3}


def test_single_level(simulation, info):
    """lmin == lmax returns every cell of that level."""
    gas = read_hydro(info, level_range=(3, 3))
    assert len(gas) == 8 * len(simulation.octs_at(3))
    assert np.all(gas.data["level"] == 3)


def test_spatial_range(simulation, info):
    """Cells whose footprint meets the box are kept, and nothing else."""
    ranges = (0.0, 0.5, 0.25, 1.0, 0.0, 0.6)
    gas = read_hydro(info, variables=["cpu"], spatial_range=ranges)
    assert row_set(gas) == leaf_set(simulation, ranges=ranges)
    assert gas.ranges == ranges


def test_centered_range(info):
    """A range around the box centre equals the explicit box."""
    a = read_hydro(info, xrange=(-0.25, 0.25), yrange=(-0.25, 0.25), zrange=(-0.25, 0.25), center=["bc"])
    b = read_hydro(info, spatial_range=[0.25, 0.75, 0.25, 0.75, 0.25, 0.75])
    assert a.data.equals(b.data)


def test_pruning_plan(info):
    """A box inside the first octant needs only the first shard."""
    ranges = [0.0, 0.4, 0.0, 0.4, 0.0, 0.4]
    assert shard_plan("hydro", info, spatial_range=ranges) == [1]
    assert shard_plan("hydro", info, spatial_range=ranges, prune_shards=False) == [1, 2, 3, 4]
    assert shard_plan("hydro", info) == [1, 2, 3, 4]


@pytest.mark.parametrize(
    "ranges",
    [
        [0.0, 0.4, 0.0, 0.4, 0.0, 0.4],
        [0.5, 1.0, 0.0, 0.3, 0.2, 0.9],
        [0.1, 0.2, 0.6, 0.9, 0.7, 0.8],
    ],
)
def test_pruning_is_exact(info, ranges):
    """Pruned and unpruned reads return the same table."""
    pruned = read_hydro(info, variables=["all", "cpu"], spatial_range=ranges)
    full = read_hydro(info, variables=["all", "cpu"], spatial_range=ranges, prune_shards=False)
    assert pruned.data.equals(full.data)


# ──────────────────────────────────────────────────────────────
# One block per CPU
# ──────────────────────────────────────────────────────────────

def test_block_per_cpu(z_half_info):
    gas = read_hydro(z_half_info, variables=["all", "cpu"])
    assert len(gas) == 256
    assert np.all(gas.data["level"] == 3)
    assert np.all(gas.data["rho"] == 1e-5)
    counts = np.bincount(gas.data["cpu"], minlength=5)[1:]
    assert counts.tolist() == [64, 64, 64, 64]


def test_block_per_cpu_half_box(z_half_info):
    gas = read_hydro(z_half_info, variables=["cpu"], spatial_range=[0.5, 1.0, 0.0, 1.0, 0.0, 1.0])
    assert len(gas) == 128
    assert set(np.unique(gas.data["cpu"]).tolist()) == {2, 4}
    assert np.all(gas.data["cx"] >= 5)


# ──────────────────────────────────────────────────────────────
# Floors and quality counters
# ──────────────────────────────────────────────────────────────

def test_smallr_raises_density(info):
    gas = read_hydro(info, smallr=3e-5)
    assert np.all(gas.data["rho"] >= 3e-5)
    assert gas.quality["floored_rho"] == len(gas)
    assert gas.smallr == 3e-5


def test_smallr_idempotent(info):
    a = read_hydro(info, smallr=3e-5)
    b = read_hydro(info, smallr=3e-5)
    assert a.data.equals(b.data)


def test_smallr_below_minimum_is_noop(info):
    plain = read_hydro(info)
    floored = read_hydro(info, smallr=1e-6)
    assert floored.data.equals(plain.data)
    assert floored.quality["floored_rho"] == 0


def test_smallc_pressure_floor(info):
    """p is raised to rho * smallc**2 / gamma."""
    plain = read_hydro(info)
    gas = read_hydro(info, smallc=0.3)
    floor = plain.data["rho"] * 0.3 ** 2 / info.gamma
    np.testing.assert_allclose(gas.data["p"], np.maximum(plain.data["p"], floor))
    assert gas.quality["floored_p"] == int(np.count_nonzero(plain.data["p"] < floor))
    assert gas.quality["floored_p"] > 0


def test_negative_values(tmp_path):
    """Negatives are counted only for fields without a floor."""

    def values(name, level, cx, cy, cz):
        if name == "rho":
            return np.where(cx == 1, -1e-5, 1e-5)
        return np.ones(cx.shape)

    out = make_output(str(tmp_path), hydro_values=values)
    info = get_info(out.output, path=out.root)

    gas = read_hydro(info, check_negvalues=True)
    expected = int(np.count_nonzero(gas.data["cx"] == 1))
    assert expected > 0
    assert gas.quality["negative_rho"] == expected
    assert gas.quality["negative_p"] == 0

    floored = read_hydro(info, check_negvalues=True, smallr=1e-6)
    assert "negative_rho" not in floored.quality
    assert floored.quality["floored_rho"] == expected
    assert np.all(floored.data["rho"] > 0)


# ──────────────────────────────────────────────────────────────
# Configuration errors
# ──────────────────────────────────────────────────────────────

def test_bad_requests(info):
    with pytest.raises(ConfigurationError):
        read_hydro(info, level_range=(1, 9))
    with pytest.raises(ConfigurationError):
        read_hydro(info, variables=["temperature"])
    with pytest.raises(ConfigurationError):
        read_hydro(info, smallr=-1.0)
    with pytest.raises(ConfigurationError):
        read_hydro(info, spatial_range=[0.6, 0.4, 0, 1, 0, 1])
    with pytest.raises(ConfigurationError):
        read_hydro(info, config=ReaderConfig(thread_budget=0))


def test_missing_hydro(tmp_path, simulation):
    info = get_info(simulation.output, path=simulation.root)
    info.hydro = False
    with pytest.raises(ConfigurationError):
        read_hydro(info)
