#!/usr/bin/env python3
"""Takeover service settings

Policy bounds, finalization lease and auto-finalize sweep interval,
mint service endpoint.
"""
import os
from dataclasses import dataclass, field

from .infra_config import InfraConfig
from .logging_config import LoggingConfig

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _int(val: str, default: int) -> int:
    try:
        return int(val) if val else default
    except ValueError:
        return default

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


@dataclass
class TakeoverConfig:
    """Takeover service configuration"""

    # ===========================================
    # Service
    # ===========================================
    service_name: str = "takeover_service"
    service_host: str = "0.0.0.0"
    service_port: int = 8250
    debug: bool = False

    # ===========================================
    # Mint issuance service
    # ===========================================
    mint_service_url: str = "http://localhost:8260"
    mint_service_timeout: float = 30.0
    mint_max_retries: int = 3

    # ===========================================
    # Finalization
    # ===========================================
    finalization_lease_seconds: int = 300
    auto_finalize_interval_seconds: int = 60
    publish_events: bool = True

    # ===========================================
    # Campaign creation bounds (whole tokens / lamports)
    # ===========================================
    min_supply_tokens: int = 1_000_000
    max_supply_tokens: int = 1_000_000_000_000
    min_price_lamports: int = 1
    max_price_lamports: int = 1_000_000_000_000

    infra: InfraConfig = field(default_factory=InfraConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> 'TakeoverConfig':
        """Load takeover service config from environment"""
        return cls(
            service_name=os.getenv("SERVICE_NAME", "takeover_service"),
            service_host=os.getenv("TAKEOVER_SERVICE_HOST", "0.0.0.0"),
            service_port=_int(os.getenv("TAKEOVER_SERVICE_PORT", "8250"), 8250),
            debug=_bool(os.getenv("DEBUG", "false")),

            mint_service_url=os.getenv("MINT_SERVICE_URL", "http://localhost:8260"),
            mint_service_timeout=_float(os.getenv("MINT_SERVICE_TIMEOUT", "30"), 30.0),
            mint_max_retries=_int(os.getenv("MINT_MAX_RETRIES", "3"), 3),

            finalization_lease_seconds=_int(os.getenv("FINALIZATION_LEASE_SECONDS", "300"), 300),
            auto_finalize_interval_seconds=_int(os.getenv("AUTO_FINALIZE_INTERVAL_SECONDS", "60"), 60),
            publish_events=_bool(os.getenv("TAKEOVER_PUBLISH_EVENTS", "true")),

            min_supply_tokens=_int(os.getenv("TAKEOVER_MIN_SUPPLY_TOKENS", "1000000"), 1_000_000),
            max_supply_tokens=_int(os.getenv("TAKEOVER_MAX_SUPPLY_TOKENS", "1000000000000"), 1_000_000_000_000),
            min_price_lamports=_int(os.getenv("TAKEOVER_MIN_PRICE_LAMPORTS", "1"), 1),
            max_price_lamports=_int(os.getenv("TAKEOVER_MAX_PRICE_LAMPORTS", "1000000000000"), 1_000_000_000_000),

            infra=InfraConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )
