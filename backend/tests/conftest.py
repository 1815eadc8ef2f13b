"""
Pytest configuration and shared fixtures for backend tests.

Service tests run against an in-memory MongoDB (mongomock-motor) with the same
indexes the real database gets, so uniqueness rules are enforced by the store.
"""
import random
import sys
from pathlib import Path
from types import SimpleNamespace

import pytest
import pytest_asyncio
from mongomock_motor import AsyncMongoMockClient

BACKEND_DIR = Path(__file__).resolve().parent.parent
if str(BACKEND_DIR) not in sys.path:
    sys.path.insert(0, str(BACKEND_DIR))

from database import ensure_indexes
from drivecrm.config import Settings
from drivecrm.models import AdminCreate, AgentCreate
from drivecrm.services import build_services

SUPER_ADMIN_EMAIL = "root@drivecrm.example.com"


@pytest.fixture
def settings():
    return Settings(
        super_admin_emails=frozenset({SUPER_ADMIN_EMAIL}),
        default_max_leads=100,
        default_max_users=5,
        jwt_secret="test-secret",
    )


@pytest_asyncio.fixture
async def db():
    client = AsyncMongoMockClient()
    database = client["drivecrm_test"]
    await ensure_indexes(database)
    return database


@pytest_asyncio.fixture
async def services(db, settings):
    return build_services(db, settings, rng=random.Random(1234))


async def make_tenant(services, slug: str, agents: int = 2) -> SimpleNamespace:
    admin = await services.users.create_admin(
        AdminCreate(first_name="Ada", last_name=slug.upper(), email=f"admin@{slug}.example.com")
    )
    members = []
    for i in range(agents):
        members.append(await services.users.create_agent(
            admin.id,
            admin.id,
            AgentCreate(first_name=f"Agent{i + 1}", last_name=slug.upper(), email=f"agent{i + 1}@{slug}.example.com"),
        ))
    return SimpleNamespace(id=admin.id, admin=admin, agents=members)


@pytest_asyncio.fixture
async def tenant(services):
    """Admin with two active agents."""
    return await make_tenant(services, "t1")


@pytest_asyncio.fixture
async def other_tenant(services):
    return await make_tenant(services, "t2", agents=1)
