"""
Integration Test Layer Configuration

Runs TakeoverRepository against a real PostgreSQL database. The takeover
schema is dropped before and after each test. Tests are skipped when the
database cannot be reached or SKIP_DB_TESTS is set.

Usage:
    TAKEOVER_TEST_DB=takeover_test pytest tests/integration -v
"""
import asyncpg
import pytest
import pytest_asyncio

from core.config import TakeoverConfig
from core.postgres_client import PostgresClientWrapper
from microservices.takeover_service.schema import SCHEMA_NAME
from microservices.takeover_service.takeover_repository import TakeoverRepository
from microservices.takeover_service.takeover_service import TakeoverService
from tests.component.mocks import MockEventBus, MockMintClient


def pytest_configure(config):
    """Configure custom markers"""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests (real PostgreSQL)"
    )


def _dsn(test_config) -> str:
    return (
        f"postgresql://{test_config.POSTGRES_USER}:{test_config.POSTGRES_PASSWORD}"
        f"@{test_config.POSTGRES_HOST}:{test_config.POSTGRES_PORT}/{test_config.POSTGRES_DB}"
    )


async def _drop_schema(db: PostgresClientWrapper):
    await db.execute(f"DROP SCHEMA IF EXISTS {SCHEMA_NAME} CASCADE")


@pytest_asyncio.fixture
async def db_client(test_config):
    """PostgreSQL client on a clean takeover schema"""
    db = PostgresClientWrapper("takeover_service_test", dsn=_dsn(test_config))
    try:
        await db.connect()
    except (OSError, asyncpg.PostgresError) as e:
        pytest.skip(f"PostgreSQL not available: {e}")

    await _drop_schema(db)
    yield db
    await _drop_schema(db)
    await db.close()


@pytest_asyncio.fixture
async def repository(db_client):
    """Initialized repository with the canonical schema"""
    repo = TakeoverRepository(db=db_client)
    await repo.ensure_schema()
    return repo


@pytest.fixture
def mint_client() -> MockMintClient:
    return MockMintClient()


@pytest.fixture
def service(repository, mint_client, clock) -> TakeoverService:
    """Service on the real repository; mint service and event bus mocked"""
    return TakeoverService(
        repository=repository,
        mint_client=mint_client,
        event_bus=MockEventBus(),
        config=TakeoverConfig(),
        clock=clock,
    )
