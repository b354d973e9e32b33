# PATH: core/constants.py
"""
Constants for the price collector.

Contains enums, simulation defaults and well-known addresses.

DEFAULTS CONTRACT:
- Every numeric default below is only a fallback for config/simulation.yaml
- Gas price and headroom are empirically tuned; keep them configurable
"""

from enum import Enum
from typing import Final

# =============================================================================
# SIMULATION DEFAULTS
# =============================================================================

# 1000 gwei, high enough that no historical base fee rejects the call
DEFAULT_SYNTHETIC_GAS_PRICE_WEI: Final[int] = 1_000_000_000_000

# 100 ETH of funding on top of whatever the call itself needs
DEFAULT_FUNDING_HEADROOM_WEI: Final[int] = 100 * 10**18

# Gas limits
DEFAULT_SIMULATION_GAS_LIMIT: Final[int] = 2_000_000
DEFAULT_READ_GAS_LIMIT: Final[int] = 1_000_000

# Balance injector: candidate *= 7 / 5 per attempt, at most 3 attempts
DEFAULT_INJECTOR_RETRIES: Final[int] = 3
DEFAULT_INJECTOR_GROWTH: Final[tuple[int, int]] = (7, 5)

# Router deadline: far enough in the future for any historical block
UNRESTRICTED_DEADLINE: Final[int] = 2**64 - 1

# Transaction fee helper: base fee * 15 / 10
TX_FEE_BASE_FEE_MULTIPLIER: Final[tuple[int, int]] = (15, 10)
TX_FEE_MAX_ATTEMPTS: Final[int] = 5
TX_FEE_BACKOFF_SECONDS: Final[float] = 1.0

# =============================================================================
# WELL-KNOWN ADDRESSES (Ethereum mainnet)
# =============================================================================

ZERO_ADDRESS: Final[str] = "0x0000000000000000000000000000000000000000"
DEAD_ADDRESS: Final[str] = "0x000000000000000000000000000000000000dead"
UNICRYPT_LOCKER_ADDRESS: Final[str] = "0x663a5c229c09b049e36dcc11a9b0d4a8eb9db214"

WETH_ADDRESS: Final[str] = "0xc02aaa39b223fe8d0a0e5c4f27ead9083c756cc2"
UNISWAP_V2_ROUTER_ADDRESS: Final[str] = "0x7a250d5630b4cf539739df2c5dacb4c659f2488d"
DEFAULT_TRADER_ADDRESS: Final[str] = "0x65a8f07bd9a8598e1b5b6c0a88f4779dbc077675"
DEFAULT_DECOY_ADDRESS: Final[str] = "0xca74f404e0c7bfa35b13b511097df966d5a65597"

# =============================================================================
# TRACERS
# =============================================================================

TRACE_CALL_METHOD: Final[str] = "debug_traceCall"
CALL_TRACER: Final[str] = "callTracer"
PRESTATE_TRACER: Final[str] = "prestateTracer"
LATEST_BLOCK: Final[str] = "latest"


class TradeDirection(str, Enum):
    """Direction of a simulated trade, seen from the trader."""
    BUY = "BUY"
    SELL = "SELL"


class LegState(str, Enum):
    """States a simulated leg moves through."""
    IDLE = "IDLE"
    VALIDATING = "VALIDATING"
    DIFFING = "DIFFING"
    BALANCE_READ = "BALANCE_READ"
    RETRY = "RETRY"
    DONE = "DONE"
    FAILED = "FAILED"


class ErrorCode(str, Enum):
    """
    Error codes for typed failures.

    INFRA_*: transport level, retryable outside the engine
    TRACE_*: node cannot serve the tracer, fatal for the run
    SIM_*: this exact simulation input failed
    """
    # Infrastructure
    INFRA_RPC_ERROR = "INFRA_RPC_ERROR"
    INFRA_TIMEOUT = "INFRA_TIMEOUT"

    # Tracing support
    TRACE_UNSUPPORTED = "TRACE_UNSUPPORTED"

    # Simulation
    SIM_REVERTED = "SIM_REVERTED"
    SIM_INSUFFICIENT_INJECTED_BALANCE = "SIM_INSUFFICIENT_INJECTED_BALANCE"

    # Decoding / configuration
    DECODE_ERROR = "DECODE_ERROR"
    CONFIG_INVALID = "CONFIG_INVALID"

    UNKNOWN = "UNKNOWN"
