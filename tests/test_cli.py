"""
Unit tests for the Sangrah CLI.

These tests verify that the command-line interface:
1. Executes a dry-run without errors
2. Lists available fields correctly
3. Handles invalid input folders gracefully
4. Writes HDF5 archives and VTKHDF files
5. Parses the dataset kind list

"""

import argparse
import subprocess
import sys

import h5py
import pytest

from ramses_fixture import flip_trailing_marker

from sangrah import DatasetKind
from sangrah.cli import main, parse_kinds_arg


# ──────────────────────────────────────────────────────────────
# Configuration
# ──────────────────────────────────────────────────────────────

def run_cli(*args):
    return subprocess.run(
        [sys.executable, "-m", "sangrah.cli", *args],
        capture_output=True,
        text=True,
    )


# ──────────────────────────────────────────────────────────────
# Tests
# ──────────────────────────────────────────────────────────────

def test_cli_dry_run(simulation):
    """Ensure the CLI dry-run command executes without errors on an output."""
    result = run_cli(
        "--path", simulation.root,
        "-n", "1",
        "--kinds", "hydro,particles",
        "--x-range", "0:0.4", "--y-range", "0:0.4", "--z-range", "0:0.4",
        "--dry-run",
        "--verbose",
    )
    assert result.returncode == 0
    assert "dry-run" in result.stderr.lower()
    assert "1 of 4 shard(s)" in result.stderr


def test_cli_list_fields(simulation):
    """Verify that the CLI lists all available fields for an output."""
    result = run_cli("--path", simulation.root, "-n", "1", "--list-fields")
    assert result.returncode == 0
    assert "available fields" in result.stdout.lower()
    assert "hydro: rho, vx, vy, vz, p" in result.stdout


def test_cli_invalid_folder(tmp_path):
    """Check that the CLI returns a non-zero exit code for a non-existent folder."""
    result = run_cli("--path", str(tmp_path / "non" / "existent"), "-n", "1")
    assert result.returncode != 0
    assert "error" in result.stderr.lower()


def test_cli_missing_output(simulation):
    """An output number without a folder is a fatal error."""
    assert main(["--path", simulation.root, "-n", "9"]) == 1


def test_cli_writes_archive(simulation, tmp_path):
    prefix = str(tmp_path / "out")
    code = main([
        "--path", simulation.root, "-n", "1",
        "--kinds", "hydro,gravity,clumps",
        "--fields", "rho,epot,index",
        "--level-start", "2", "--level-end", "3",
        "--threads", "2", "--max-batch-memory", "64k",
        "-o", prefix,
    ])
    assert code == 0
    with h5py.File(prefix + "_00001.h5", "r") as f:
        assert set(f.keys()) == {"hydro", "gravity", "clumps"}
        assert list(f["hydro"].keys()) == ["level", "cx", "cy", "cz", "rho"]
        assert list(f["gravity"].keys()) == ["level", "cx", "cy", "cz", "epot"]
        assert f["hydro"].attrs["lmax"] == 3


def test_cli_writes_vtkhdf(simulation, tmp_path):
    prefix = str(tmp_path / "amr")
    assert main(["--path", simulation.root, "-n", "1", "--format", "vtkhdf", "-o", prefix]) == 0
    with h5py.File(prefix + "_00001_hydro.vtkhdf", "r") as f:
        assert f["VTKHDF"].attrs["NumberOfLevels"] == 3


def test_cli_partial(simulation, tmp_path):
    """Unreadable shards fail the run unless --allow-partial is given."""
    flip_trailing_marker(simulation.shard("hydro", 2))
    prefix = str(tmp_path / "out")
    assert main(["--path", simulation.root, "-n", "1", "-o", prefix]) == 1
    assert main(["--path", simulation.root, "-n", "1", "-o", prefix, "--allow-partial"]) == 0


def test_parse_kinds_arg():
    """Kinds are parsed case-insensitively, deduplicated, and validated."""
    assert parse_kinds_arg("Hydro,particles,hydro") == [DatasetKind.HYDRO, DatasetKind.PARTICLES]
    with pytest.raises(argparse.ArgumentTypeError):
        parse_kinds_arg("hydro,stars")
    with pytest.raises(argparse.ArgumentTypeError):
        parse_kinds_arg(",")
