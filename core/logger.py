"""
Service logger setup

Configures stdlib logging once per process from LoggingConfig:
console handler, optional file handler, optional structured (JSON-line) format.

Usage:
    from core.logger import setup_service_logger

    logger = setup_service_logger("takeover_service")
"""

import json
import logging
import sys
from typing import Optional

from core.config import LoggingConfig

_configured = False


class StructuredFormatter(logging.Formatter):
    """One JSON object per line"""

    def __init__(self, service_name: str, environment: str):
        super().__init__()
        self.service_name = service_name
        self.environment = environment

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": self.formatTime(record),
            "level": record.levelname,
            "logger": record.name,
            "service": self.service_name,
            "environment": self.environment,
            "message": record.getMessage(),
        }
        if record.exc_info:
            payload["exception"] = self.formatException(record.exc_info)
        return json.dumps(payload)


def setup_service_logger(
    service_name: str,
    level: Optional[str] = None,
    config: Optional[LoggingConfig] = None,
) -> logging.Logger:
    """
    Configure root logging handlers and return the service logger.

    Args:
        service_name: Logger name, also stamped on structured records
        level: Log level override (defaults to LoggingConfig.log_level)
        config: Optional LoggingConfig (defaults to LoggingConfig.from_env())

    Returns:
        logging.Logger for the service
    """
    global _configured

    config = config or LoggingConfig.from_env()
    log_level = getattr(logging, (level or config.log_level).upper(), logging.INFO)

    if not _configured:
        if config.enable_structured:
            formatter: logging.Formatter = StructuredFormatter(service_name, config.environment)
        else:
            formatter = logging.Formatter(config.log_format)

        root = logging.getLogger()
        root.setLevel(log_level)

        if config.enable_console:
            console = logging.StreamHandler(sys.stdout)
            console.setFormatter(formatter)
            root.addHandler(console)

        if config.log_file:
            file_handler = logging.FileHandler(config.log_file)
            file_handler.setFormatter(formatter)
            root.addHandler(file_handler)

        _configured = True

    logger = logging.getLogger(service_name)
    logger.setLevel(log_level)
    return logger
