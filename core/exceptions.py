# PATH: core/exceptions.py
"""
Typed exceptions for the price collector.

Transport failures are kept apart from simulation failures so the caller
can tell "retry later" from "skip this data point".
"""

from typing import Optional

from core.constants import ErrorCode


class PriceFetcherError(Exception):
    """Base exception for the price collector."""

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.UNKNOWN,
        details: Optional[dict] = None,
    ):
        super().__init__(message)
        self.message = message
        self.code = code
        self.details = details or {}

    def __str__(self):
        return f"[{self.code.value}] {self.message}"


class TransportError(PriceFetcherError):
    """Network or RPC failure. Retryable outside the engine."""

    def __init__(
        self,
        message: str,
        details: Optional[dict] = None,
        code: ErrorCode = ErrorCode.INFRA_RPC_ERROR,
    ):
        super().__init__(message, code, details)


class TracingUnsupported(PriceFetcherError):
    """The node does not serve debug_traceCall or the requested tracer."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.TRACE_UNSUPPORTED, details)


class SimulationReverted(PriceFetcherError):
    """The validating trace reported an error or a revert reason."""

    def __init__(
        self,
        message: str,
        error: Optional[str] = None,
        revert_reason: Optional[str] = None,
        details: Optional[dict] = None,
    ):
        super().__init__(message, ErrorCode.SIM_REVERTED, details)
        self.error = error
        self.revert_reason = revert_reason


class InsufficientInjectedBalance(PriceFetcherError):
    """The balance injector could not fabricate the requested balance."""

    def __init__(
        self,
        message: str,
        token: str,
        block: object,
        requested: int,
        observed: Optional[int],
        details: Optional[dict] = None,
    ):
        super().__init__(
            message,
            ErrorCode.SIM_INSUFFICIENT_INJECTED_BALANCE,
            {
                "token": token,
                "block": block,
                "requested": requested,
                "observed": observed,
                **(details or {}),
            },
        )
        self.token = token
        self.block = block
        self.requested = requested
        self.observed = observed


class DecodeError(PriceFetcherError):
    """A return value or trace response could not be decoded."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.DECODE_ERROR, details)


class ConfigurationError(PriceFetcherError):
    """Invalid configuration or unsupported parameter. Never retried."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__(message, ErrorCode.CONFIG_INVALID, details)
