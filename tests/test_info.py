"""
Unit tests for the simulation overview (get_info).

These tests verify that:
1. Run parameters, units and the Hilbert domain table are read
2. Datasets present in the output are detected with their variables
3. Particle headers and descriptors of both layouts are understood
4. Broken or incomplete outputs raise ConfigurationError

"""

import os

import numpy as np
import pytest

from ramses_fixture import make_output

from sangrah import get_info
from sangrah.errors import ConfigurationError, ShardCountMismatchError
from sangrah.info import SimulationInfo, check_shard_count


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_run_parameters(simulation, info):
    """Info file values land in SimulationInfo."""
    assert info.ncpu == 4
    assert info.levelmin == 2
    assert info.levelmax == 4
    assert info.boxlen == pytest.approx(1.0)
    assert info.time == pytest.approx(0.25)
    assert info.unit_m == pytest.approx(info.unit_d * info.unit_l ** 3)
    assert info.hilbert_ordering
    np.testing.assert_allclose(info.bound_key, simulation.bound_key)


def test_amr_header(simulation, info):
    """Grid counts per level and CPU come from the first AMR shard."""
    assert info.amr
    assert info.grid.nlevelmax == 4
    np.testing.assert_array_equal(info.grid.numbl, simulation.numbl())


def test_datasets_present(info):
    """Every dataset kind written by the fixture is detected."""
    assert info.hydro and info.gravity and info.particles and info.clumps
    assert info.nvarh == 5
    assert info.gamma == pytest.approx(1.4)
    assert info.variable_list == ["rho", "vx", "vy", "vz", "p"]
    assert info.gravity_variable_list == ["epot", "ax", "ay", "az"]
    assert info.clumps_variable_list[:4] == ["index", "lev", "parent", "ncell"]


def test_extra_hydro_variables(tmp_path):
    """Variables beyond the first five are named var6, var7, ..."""
    out = make_output(str(tmp_path), hydro_names=["rho", "vx", "vy", "vz", "p", "metal", "scalar"])
    info = get_info(out.output, path=out.root)
    assert info.variable_list == ["rho", "vx", "vy", "vz", "p", "var6", "var7"]


def test_legacy_particles(info):
    """v0 header totals and the legacy variable list."""
    p = info.part_info
    assert p.header_version == 0
    assert p.Npart == 125
    assert p.Ndm == 125
    assert p.Nstars == 0
    assert not p.metals
    assert info.particles_variable_list == ["vx", "vy", "vz", "mass", "birth"]


def test_descriptor_particles(tmp_path):
    """v1 descriptor and family counts."""
    out = make_output(str(tmp_path), particle_descriptor=True, nstars=10)
    info = get_info(out.output, path=out.root)
    assert info.descriptor.particle_version == 1
    assert info.part_info.header_version == 1
    assert info.part_info.Ndm == 115
    assert info.part_info.Nstars == 10
    assert info.part_info.Npart == 125
    assert info.particles_variable_list == ["vx", "vy", "vz", "mass", "family", "tag", "birth"]


def test_namelist(info):
    assert info.namelist
    assert info.namelist_content["RUN_PARAMS"]["hydro"] == ".true."
    assert info.namelist_content["AMR_PARAMS"]["levelmax"] == "4"


def test_summary_mentions_datasets(info):
    text = info.summary()
    assert "ncpu=4" in text
    assert "hydro" in text and "particles" in text


def test_dict_round_trip(info):
    """to_dict/from_dict preserve the fields readers rely on."""
    again = SimulationInfo.from_dict(info.to_dict())
    assert again.ncpu == info.ncpu
    assert again.variable_list == info.variable_list
    np.testing.assert_array_equal(again.bound_key, info.bound_key)
    np.testing.assert_array_equal(again.grid.numbl, info.grid.numbl)
    assert again.scale["kpc"] == pytest.approx(info.scale["kpc"])


def test_planar_ordering(z_half_info):
    """Non-Hilbert outputs have no domain table."""
    assert not z_half_info.hilbert_ordering
    assert z_half_info.bound_key is None


def test_missing_output(tmp_path):
    with pytest.raises(ConfigurationError):
        get_info(3, path=str(tmp_path))


def test_missing_info_file(simulation):
    os.remove(os.path.join(simulation.folder, "info_00001.txt"))
    with pytest.raises(ConfigurationError):
        get_info(1, path=simulation.root)


def test_corrupt_amr_header(simulation):
    """A truncated first AMR shard is a configuration problem."""
    path = simulation.shard("amr", 1)
    with open(path, "r+b") as fh:
        fh.truncate(40)
    with pytest.raises(ConfigurationError):
        get_info(1, path=simulation.root)


def test_shard_count(simulation, info):
    """A missing shard file is reported by name."""
    check_shard_count(info, ["amr", "hydro"])
    os.remove(simulation.shard("hydro", 3))
    with pytest.raises(ShardCountMismatchError) as exc:
        check_shard_count(info, ["hydro"])
    assert exc.value.declared == 4
    assert exc.value.found == 3
    assert exc.value.missing == ["hydro_00001.out00003"]


def test_summary_lists_hydro_descriptor(simulation):
    """A hydro descriptor's version and variable types show up in the summary."""
    path = os.path.join(simulation.folder, "hydro_file_descriptor.txt")
    with open(path, "w") as fh:
        fh.write("# version:  1\n# ivar, variable_name, variable_type\n")
        for i, name in enumerate(["density", "velocity_x", "velocity_y", "velocity_z", "pressure"], start=1):
            fh.write(f"  {i}, {name}, d\n")
    info = get_info(simulation.output, path=simulation.root)
    assert info.descriptor.hydro_version == 1
    assert info.descriptor.hydro_types == ["d"] * 5
    text = info.summary()
    assert "hydro descriptor: version=1" in text
    assert "types=[d, d, d, d, d]" in text
