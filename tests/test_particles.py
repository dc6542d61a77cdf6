"""
Unit tests for reading particles.

These tests verify that:
1. Every particle is read once from the shard that holds it
2. Legacy and descriptor layouts yield the same columns
3. Spatial and level filters apply only where requested

"""

import os

import numpy as np
import pytest

from ramses_fixture import make_output

from sangrah import get_info, read_particles
from sangrah.errors import ConfigurationError
from sangrah.loaders import _file_estimate


# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

def by_id(ds):
    return ds.data.sort_by("id")


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_all_particles(simulation, info):
    part = read_particles(info, variables=["all", "cpu"])
    p = simulation.particles
    header = info.part_info
    assert len(part) == header.Ndm + header.Nstars + header.Nsinks
    assert len(part) == header.Npart == len(p["id"])
    assert part.columns == ["level", "x", "y", "z", "id", "cpu", "vx", "vy", "vz", "mass", "birth"]

    t = by_id(part)
    np.testing.assert_array_equal(t["id"], p["id"])
    np.testing.assert_allclose(t["x"], p["x"])
    np.testing.assert_allclose(t["vz"], p["vz"])
    np.testing.assert_array_equal(t["level"], p["level"])
    np.testing.assert_array_equal(t["cpu"], p["cpu"])
    # no stars: birth is filled with zeros
    assert np.all(t["birth"] == 0)
    assert t["id"].dtype == np.int64


def test_stars_legacy(tmp_path):
    out = make_output(str(tmp_path), nstars=5)
    info = get_info(out.output, path=out.root)
    t = by_id(read_particles(info, variables=["birth"]))
    np.testing.assert_allclose(t["birth"], out.particles["birth"])
    assert np.count_nonzero(t["birth"]) == 5


def test_descriptor_layout(tmp_path):
    out = make_output(str(tmp_path), particle_descriptor=True, nstars=10)
    info = get_info(out.output, path=out.root)
    part = read_particles(info)
    assert part.columns == ["level", "x", "y", "z", "id", "vx", "vy", "vz", "mass", "family", "tag", "birth"]
    assert len(part) == info.part_info.Ndm + info.part_info.Nstars
    t = by_id(part)
    np.testing.assert_array_equal(t["family"], out.particles["family"])
    assert t["family"].dtype == np.int8
    np.testing.assert_allclose(t["mass"], out.particles["mass"])
    np.testing.assert_array_equal(t["level"], out.particles["level"])


def test_spatial_filter(simulation, info):
    """Points are kept inside the closed box scaled by boxlen."""
    ranges = [0.0, 0.5, 0.2, 0.6, 0.0, 1.0]
    part = read_particles(info, spatial_range=ranges)
    p = simulation.particles
    inside = (p["x"] <= 0.5) & (p["y"] >= 0.2) & (p["y"] <= 0.6)
    assert len(part) == int(np.count_nonzero(inside))
    assert set(part.data["id"].tolist()) == set(p["id"][inside].tolist())


def test_pruning_is_exact(info):
    ranges = [0.0, 0.4, 0.0, 0.4, 0.0, 0.4]
    pruned = read_particles(info, spatial_range=ranges)
    full = read_particles(info, spatial_range=ranges, prune_shards=False)
    assert pruned.data.equals(full.data)


def test_level_filter_only_when_asked(simulation, info):
    p = simulation.particles
    assert len(read_particles(info)) == len(p["id"])
    fine = read_particles(info, level_range=(4, None))
    assert len(fine) == int(np.count_nonzero(p["level"] >= 4))
    assert np.all(fine.data["level"] >= 4)
    assert len(read_particles(info, level_range=(None, None))) == len(p["id"])


def test_thread_invariance(info):
    a = read_particles(info, variables=["all", "cpu"], thread_budget=1)
    b = read_particles(info, variables=["all", "cpu"], thread_budget=4, max_batch_memory=1)
    assert a.data.equals(b.data)


def test_empty_shards(tmp_path):
    """Shards without particles contribute zero rows."""
    out = make_output(str(tmp_path), particles=[[0.1, 0.1, 0.1], [0.2, 0.1, 0.1]])
    info = get_info(out.output, path=out.root)
    part = read_particles(info, variables=["mass"])
    assert len(part) == 2
    assert part.columns == ["level", "x", "y", "z", "id", "mass"]


def test_unknown_variable(info):
    with pytest.raises(ConfigurationError):
        read_particles(info, variables=["temperature"])


def test_estimate_without_header(tmp_path):
    """Without a header file the batch estimate falls back to the shard size on disk."""
    out = make_output(str(tmp_path))
    os.remove(os.path.join(out.folder, f"header_{out.output:05d}.txt"))
    info = get_info(out.output, path=out.root)
    assert info.part_info.Npart == 0

    path = info.paths.shard("part", 2)
    assert _file_estimate(info, "part", 0, 8, 2) == os.path.getsize(path)
    assert len(read_particles(info, max_batch_memory=1)) == len(out.particles["id"])
