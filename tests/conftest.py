"""
Shared fixtures: synthetic RAMSES outputs written into a temporary directory.

"""

import pytest

from ramses_fixture import make_output, uniform_z_half

from sangrah import get_info


@pytest.fixture
def simulation(tmp_path):
    """ncpu=4, levels 2-4, refined towards x = 0, Hilbert ordering."""
    return make_output(str(tmp_path))


@pytest.fixture
def info(simulation):
    return get_info(simulation.output, path=simulation.root)


@pytest.fixture
def z_half(tmp_path):
    """ncpu=4, level 3 only in z < 0.5, one 4x4x4 block per CPU."""
    return uniform_z_half(str(tmp_path))


@pytest.fixture
def z_half_info(z_half):
    return get_info(z_half.output, path=z_half.root)
