"""
共通フィクスチャ
"""

import pytest

from fakes import FakeCatalog, FakeIdentity, FakeRedis, InMemoryOrderStore
from services.order.app.orchestrator import OrderOrchestrator
from services.order.app.publisher import OrderEventPublisher


@pytest.fixture
def store():
    return InMemoryOrderStore()


@pytest.fixture
def catalog():
    catalog = FakeCatalog()
    catalog.add("p1", "Coffee Beans", "9.99", category="grocery")
    catalog.add("p2", "Mug", "12.50", category="kitchen")
    return catalog


@pytest.fixture
def identity():
    return FakeIdentity(users={"u1", "u2"})


@pytest.fixture
def redis():
    return FakeRedis()


@pytest.fixture
def publisher(redis):
    return OrderEventPublisher(redis)


@pytest.fixture
def orchestrator(store, catalog, identity, publisher):
    return OrderOrchestrator(store, catalog, identity, publisher)
