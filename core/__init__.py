#!/usr/bin/env python3
"""
Core Module for Microservices Architecture

Shared infrastructure components for the platform's microservices.

COMPONENTS:
    - config/: dataclass configuration loaded from environment (python-dotenv)
    - logger.py: service logger setup
    - postgres_client.py: asyncpg pool wrapper with transaction context
    - nats_client.py: NATS JetStream event bus

USAGE:
    from core.config import get_settings
    from core.logger import setup_service_logger

    settings = get_settings()
    logger = setup_service_logger(settings.service_name)
"""

__version__ = "2.0.0"
