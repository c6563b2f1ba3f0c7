"""Pytest configuration and fixtures."""

import pytest

from vcenter_tags.model import Cardinality, Snapshot
from tests.fakes import InMemoryGateway, category, make_snapshot, tag


@pytest.fixture
def empty_gateway() -> InMemoryGateway:
    """A vCenter with no categories or tags."""
    return InMemoryGateway()


@pytest.fixture
def app_snapshot() -> Snapshot:
    """One new category with one tag under it."""
    return make_snapshot(
        categories=[category("App", cardinality=Cardinality.SINGLE, entity_types=["VirtualMachine"])],
        tags=[tag("Finance", "App")]
    )


@pytest.fixture
def populated_gateway() -> InMemoryGateway:
    """A vCenter with a few categories and tags, including a system category."""
    return InMemoryGateway(
        categories=[
            category("App", "Application owner", Cardinality.SINGLE, ["VirtualMachine"]),
            category("Backup", "Backup policy", Cardinality.MULTIPLE, ["VirtualMachine", "Datastore"]),
            category("vSphereHA", "Created by vCenter", Cardinality.MULTIPLE),
        ],
        tags=[
            tag("Finance", "App", "Finance apps"),
            tag("HR", "App"),
            tag("Daily", "Backup", "Nightly job"),
            tag("Protected", "vSphereHA"),
        ],
    )
