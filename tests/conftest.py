"""Shared fixtures for the planner tests."""

import pytest

from fleetplanner.mission.catalog import MissionCatalog
from fleetplanner.mission.coordinator import MissionCoordinator

from tests.helpers import FakeClock, make_config


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def catalog(config):
    return MissionCatalog(config)


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def coordinator(config, clock):
    return MissionCoordinator(config, clock=clock)
