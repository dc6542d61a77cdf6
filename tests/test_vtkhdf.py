"""
Unit tests for the VTKHDF OverlappingAMR export.

These tests verify that:
1. The root group carries the VTKHDF metadata ParaView expects
2. One level group is written per populated level, with one block per cell
3. Velocity and acceleration triplets become vectors

"""

import h5py
import numpy as np
import pytest

from sangrah import export_vtkhdf, read_gravity, read_hydro, read_particles


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_hydro_export(info, tmp_path):
    gas = read_hydro(info)
    path = str(tmp_path / "gas.vtkhdf")
    assert export_vtkhdf(gas, path) == 3

    with h5py.File(path, "r") as f:
        root = f["VTKHDF"]
        assert root.attrs["Type"] == b"OverlappingAMR"
        assert tuple(root.attrs["Version"]) == (2, 2)
        assert root.attrs["NumberOfLevels"] == 3

        total = 0
        for new_level, level in enumerate((2, 3, 4)):
            group = root[f"Level{new_level}"]
            n = int(group.attrs["NumberOfBlocks"])
            total += n
            assert group.attrs["Spacing"][0] == pytest.approx(info.boxlen / 2 ** level)
            box = group["AMRBox"][()]
            assert box.shape == (n, 6)
            np.testing.assert_array_equal(box[:, 0], box[:, 1])
            assert box.min() >= 0 and box.max() < 2 ** level
            cells = group["CellData"]
            assert cells["velocity"].shape == (n, 3)
            assert cells["rho"].shape == (n, 1)
            assert cells["rho"].dtype == np.float32
            assert "vx" not in cells
        assert total == len(gas)


def test_field_subset(info, tmp_path):
    gas = read_hydro(info, level_range=(2, 2))
    path = str(tmp_path / "rho.vtkhdf")
    export_vtkhdf(gas, path, fields=["rho", "nonexistent"])
    with h5py.File(path, "r") as f:
        assert list(f["VTKHDF/Level0/CellData"].keys()) == ["rho"]


def test_gravity_vectors(info, tmp_path):
    grav = read_gravity(info)
    path = str(tmp_path / "grav.vtkhdf")
    export_vtkhdf(grav, path)
    with h5py.File(path, "r") as f:
        cells = f["VTKHDF/Level0/CellData"]
        assert set(cells.keys()) == {"acceleration", "epot"}


def test_rejects_particles(info, tmp_path):
    with pytest.raises(TypeError):
        export_vtkhdf(read_particles(info), str(tmp_path / "p.vtkhdf"))
