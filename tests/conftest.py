"""
This file contains shared fixtures for all tests.
"""
import logging

import pytest

from tests.fakes import FakeCluster
from workshop.crds.client import DeskClient
from workshop.operator.desk.provisioner import ResourceProvisioner


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("workshop.tests")


@pytest.fixture
def cluster() -> FakeCluster:
    return FakeCluster()


@pytest.fixture
def desk_client(cluster: FakeCluster) -> DeskClient:
    return DeskClient(api=cluster)


@pytest.fixture
def provisioner(cluster: FakeCluster, logger: logging.Logger) -> ResourceProvisioner:
    return ResourceProvisioner(
        logger,
        core_v1=cluster,
        rbac_v1=cluster,
        apps_v1=cluster,
        networking_v1=cluster,
    )
