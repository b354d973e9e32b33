"""
core - Core utilities for the price collector.

This package contains:
- constants.py: Enums, simulation defaults, well-known addresses
- exceptions.py: Typed exceptions with error codes
- logging.py: Structured JSON logging
"""

from core.constants import (
    ErrorCode,
    LegState,
    TradeDirection,
)
from core.exceptions import (
    ConfigurationError,
    DecodeError,
    InsufficientInjectedBalance,
    PriceFetcherError,
    SimulationReverted,
    TracingUnsupported,
    TransportError,
)
from core.logging import get_logger, setup_logging

__all__ = [
    # Constants
    "ErrorCode",
    "LegState",
    "TradeDirection",
    # Exceptions
    "ConfigurationError",
    "DecodeError",
    "InsufficientInjectedBalance",
    "PriceFetcherError",
    "SimulationReverted",
    "TracingUnsupported",
    "TransportError",
    # Logging
    "get_logger",
    "setup_logging",
]
