"""
Component Test Mocks

Shared mock implementations for component testing.
These mocks replace real I/O dependencies (PostgreSQL, NATS, mint service).
"""

from .mint_mock import MockMintClient
from .nats_mock import MockEventBus
from .takeover_repository_mock import MockTakeoverRepository

__all__ = [
    'MockEventBus',
    'MockMintClient',
    'MockTakeoverRepository',
]
