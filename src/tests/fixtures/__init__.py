"""Test fixtures including task and project data factories."""

from tests.fixtures.doubles import FakeClock, make_mock_gateway
from tests.fixtures.factories import (
    EntityFactory,
    ProjectFactory,
    TaskFactory,
    reset_all_factories,
)

__all__ = [
    "EntityFactory",
    "FakeClock",
    "ProjectFactory",
    "TaskFactory",
    "make_mock_gateway",
    "reset_all_factories",
]
