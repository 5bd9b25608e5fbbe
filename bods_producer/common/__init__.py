"""
Common Module - Shared utilities
================================

- kafka_config: BODS / Kafka / scheduler configuration
- errors: exception taxonomy
- logging_setup: process-wide logging configuration
"""

from .errors import (
    BodsProducerError,
    ConfigurationError,
    FetchErrorType,
    ParseError,
    PublishError,
    RecordDecodeError,
    TransportError,
)
from .kafka_config import get_config, reset_config, ProducerAppConfig
from .logging_setup import setup_logging

__all__ = [
    "BodsProducerError",
    "ConfigurationError",
    "FetchErrorType",
    "ParseError",
    "PublishError",
    "RecordDecodeError",
    "TransportError",
    "get_config",
    "reset_config",
    "ProducerAppConfig",
    "setup_logging",
]
