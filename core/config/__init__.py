#!/usr/bin/env python3
"""Configuration for the takeover platform

Configuration hierarchy:
- infra_config: Infrastructure services (PostgreSQL, NATS)
- logging_config: Logging configuration
- takeover_config: Takeover service settings (policy bounds, finalization, mint service)
"""
import os
from dotenv import load_dotenv
from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .takeover_config import TakeoverConfig

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)

# Create global settings instance
settings = TakeoverConfig.from_env()

def get_settings() -> TakeoverConfig:
    """Get global settings instance"""
    return settings

def reload_settings() -> TakeoverConfig:
    """Reload settings from environment"""
    global settings
    settings = TakeoverConfig.from_env()
    return settings

__all__ = [
    'TakeoverConfig',
    'get_settings',
    'reload_settings',
    'settings',
    'LoggingConfig',
    'InfraConfig',
]
