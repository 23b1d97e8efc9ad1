"""
Shared fixtures: an in-memory document store with failure injection and the
full service graph built on top of it.
"""

import pytest
import pytest_asyncio

from app.core.services import build_services
from tests.helpers import FlakyStore, add_user


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def services(store):
    return build_services(store)


@pytest_asyncio.fixture
async def host(services):
    return await add_user(services, "host", "Hana Host")


@pytest_asyncio.fixture
async def u1(services):
    return await add_user(services, "u1", "Uma One")


@pytest_asyncio.fixture
async def u2(services):
    return await add_user(services, "u2", "Ugo Two")
