"""
Unit tests for HDF5 archives of assembled datasets.

"""

import h5py
import numpy as np
import pytest

from sangrah import load_dataset, read_hydro, read_particles, save_datasets
from sangrah.datasets import HydroDataset, ParticleDataset


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_round_trip(info, tmp_path):
    """Columns, order, dtypes and selection survive a save/load."""
    gas = read_hydro(info, variables=["rho", "p", "cpu"], level_range=(2, 3), smallr=2e-5)
    part = read_particles(info, spatial_range=[0, 0.5, 0, 1, 0, 1])
    path = str(tmp_path / "archive.h5")
    save_datasets(path, gas, part)

    loaded = load_dataset(path, "hydro")
    assert isinstance(loaded, HydroDataset)
    assert loaded.data.equals(gas.data)
    assert loaded.columns == gas.columns
    assert (loaded.lmin, loaded.lmax) == (2, 3)
    assert loaded.smallr == pytest.approx(2e-5)
    assert loaded.quality == gas.quality
    assert loaded.info.ncpu == info.ncpu
    np.testing.assert_allclose(loaded.getvar("x", "kpc"), gas.getvar("x", "kpc"))

    loaded = load_dataset(path, "particles")
    assert isinstance(loaded, ParticleDataset)
    assert loaded.data.equals(part.data)
    assert loaded.ranges == part.ranges


def test_layout(info, tmp_path):
    gas = read_hydro(info, variables=["rho"])
    path = str(tmp_path / "archive.h5")
    save_datasets(path, gas)
    with h5py.File(path, "r") as f:
        assert list(f.keys()) == ["hydro"]
        assert "generator_version" in f.attrs
        group = f["hydro"]
        assert list(group.keys()) == ["level", "cx", "cy", "cz", "rho"]
        assert group["rho"].compression == "gzip"


def test_empty_dataset(info, tmp_path):
    """A selection with no cells still round-trips its columns."""
    gas_empty = read_hydro(info, variables=["rho"], spatial_range=[1.0, 1.0, 1.0, 1.0, 1.0, 1.0], level_range=(2, 2))
    assert len(gas_empty) == 0
    path = str(tmp_path / "empty.h5")
    save_datasets(path, gas_empty)
    loaded = load_dataset(path, "hydro")
    assert len(loaded) == len(gas_empty)
    assert loaded.columns == gas_empty.columns


def test_missing_kind(info, tmp_path):
    path = str(tmp_path / "archive.h5")
    save_datasets(path, read_hydro(info, variables=["rho"]))
    with pytest.raises(KeyError):
        load_dataset(path, "clumps")


def test_duplicate_kinds(info, tmp_path):
    gas = read_hydro(info, variables=["rho"])
    with pytest.raises(ValueError):
        save_datasets(str(tmp_path / "dup.h5"), gas, gas)
