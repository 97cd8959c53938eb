"""
Takeover Service Factory

Factory for creating TakeoverService with real dependencies.
This is the ONLY module that imports concrete implementations.
"""

import logging
from typing import Optional

from core.config import TakeoverConfig, get_settings

from .takeover_repository import TakeoverRepository
from .takeover_service import TakeoverService

logger = logging.getLogger(__name__)


def create_takeover_service(
    config: Optional[TakeoverConfig] = None,
    event_bus=None,
    mint_client=None,
) -> TakeoverService:
    """
    Create TakeoverService with all real dependencies

    Args:
        config: Optional service config (global settings if not provided)
        event_bus: Optional event bus for event publishing
        mint_client: Optional mint client (creates default if not provided)

    Returns:
        TakeoverService wired to PostgreSQL and the mint service
    """
    if config is None:
        config = get_settings()

    repository = TakeoverRepository(config=config.infra)

    if mint_client is None:
        from .clients.mint_client import MintClient

        mint_client = MintClient(
            base_url=config.mint_service_url,
            timeout=config.mint_service_timeout,
            max_retries=config.mint_max_retries,
        )
        logger.info("✅ MintClient initialized for takeover service")

    return TakeoverService(
        repository=repository,
        mint_client=mint_client,
        event_bus=event_bus,
        config=config,
    )


__all__ = ["create_takeover_service"]
