import pytest

from docflow.services.office_directory import OfficeClusterMap, set_cluster_map
from docflow.tests.helpers import OFFICES


@pytest.fixture
def offices():
    return list(OFFICES)


@pytest.fixture
def cluster_map():
    return OfficeClusterMap()


@pytest.fixture(autouse=True)
def reset_cluster_map():
    """Each test starts from the built-in cluster table."""
    set_cluster_map(OfficeClusterMap())
    yield
    set_cluster_map(None)
