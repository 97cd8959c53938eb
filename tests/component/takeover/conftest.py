"""
Takeover Service Component Test Fixtures

Provides the service and its components wired to:
- MockTakeoverRepository: in-memory TakeoverRepositoryProtocol
- MockMintClient: idempotent mint service double
- MockEventBus: captured event publishing
- FakeClock: hand-moved unix clock
"""

import pytest

from core.config import TakeoverConfig
from microservices.takeover_service.auto_finalize import AutoFinalizeScheduler
from microservices.takeover_service.finalization import FinalizationStateMachine
from microservices.takeover_service.takeover_service import TakeoverService


@pytest.fixture
def takeover_config() -> TakeoverConfig:
    return TakeoverConfig(finalization_lease_seconds=300, auto_finalize_interval_seconds=0)


@pytest.fixture
def takeover_service(mock_repository, mock_mint_client, mock_event_bus, takeover_config, clock):
    """Create takeover service with mocked dependencies"""
    return TakeoverService(
        repository=mock_repository,
        mint_client=mock_mint_client,
        event_bus=mock_event_bus,
        config=takeover_config,
        clock=clock,
    )


@pytest.fixture
def state_machine(mock_repository, mock_mint_client, mock_event_bus, clock):
    return FinalizationStateMachine(
        repository=mock_repository,
        mint_client=mock_mint_client,
        event_bus=mock_event_bus,
        lease_seconds=300,
        clock=clock,
    )


@pytest.fixture
def auto_finalizer(mock_repository, state_machine, mock_event_bus):
    return AutoFinalizeScheduler(
        repository=mock_repository,
        state_machine=state_machine,
        event_bus=mock_event_bus,
    )


@pytest.fixture
async def small_takeover(takeover_service, data_factory):
    """A live SMALL-preset campaign created through the service"""
    return await takeover_service.create_takeover(data_factory.make_create_request())
