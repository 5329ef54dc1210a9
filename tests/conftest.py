import pytest

from geometry import construct_toolchain_geometry
from projection import PMTLayout, PMTTable

from tests.factories import PHI_POSITIONS, make_geometry


@pytest.fixture
def wcsim_geometry():
    return make_geometry()


@pytest.fixture
def toolchain(wcsim_geometry):
    """(geometry, tube id -> channel key, channel key -> tube id)"""
    return construct_toolchain_geometry(wcsim_geometry)


@pytest.fixture
def geom(toolchain):
    return toolchain[0]


@pytest.fixture
def pmt_table(geom):
    return PMTTable(geom)


@pytest.fixture
def layout(geom, pmt_table):
    return PMTLayout(pmt_table, geom.tank_radius, geom.tank_halfheight, PHI_POSITIONS)
