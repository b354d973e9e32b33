"""
chains/trace_call.py - debug_traceCall client.

Two request shapes against the same RPC method:

    validate(params) -> ValidatedCallResult
        callTracer, onlyTopCall=false, withLog=true
        Detects failure before any diff is trusted.

    diff(params) -> StateDiff
        prestateTracer, diffMode=true
        Returns only the "post" half: the changes induced by the call.

TRUST CONTRACT:
    A diff is only used after a successful validate on identical params.
    validate_and_diff() enforces that ordering.

NODE ERRORS:
    -32601, or a message naming the method or tracer  -> TracingUnsupported
    "tracing failed: ..." (call could not execute)     -> SimulationReverted
    anything else, e.g. missing history for a block     -> TransportError

Block tags: an integer height (sent as hex) or "latest". Anything else is
a ConfigurationError and never reaches the node.
"""

import re
from dataclasses import dataclass, field
from typing import Any, Optional

from chains.providers import RPCProvider
from core.constants import CALL_TRACER, LATEST_BLOCK, PRESTATE_TRACER, TRACE_CALL_METHOD
from core.exceptions import (
    ConfigurationError,
    DecodeError,
    SimulationReverted,
    TracingUnsupported,
    TransportError,
)
from core.logging import get_logger
from simulation.abi import normalize_address, parse_quantity
from simulation.state_diff import StateDiff

logger = get_logger(__name__)

# JSON-RPC "method not found"
RPC_METHOD_NOT_FOUND = -32601

# geth prefix for a call that could not execute (funds, fee caps, nonce)
TRACING_FAILED_PREFIX = "tracing failed:"

_TRACER_NOT_FOUND = re.compile(r"\btracer\b.*\bnot found\b|\bunsupported tracer\b")

BlockTag = int | str


@dataclass(frozen=True)
class TraceCallParams:
    """Inputs of one simulated call."""
    to: str
    data: str
    gas: int
    block: BlockTag
    gas_price: Optional[int] = None
    value: int = 0
    sender: Optional[str] = None
    state_overrides: Optional[StateDiff] = None

    def call_object(self) -> dict[str, Any]:
        obj: dict[str, Any] = {
            "to": normalize_address(self.to),
            "gas": hex(self.gas),
            "value": hex(self.value),
            "data": self.data,
        }
        if self.gas_price is not None:
            obj["gasPrice"] = hex(self.gas_price)
        if self.sender is not None:
            obj["from"] = normalize_address(self.sender)
        return obj


@dataclass
class ValidatedCallResult:
    """Parsed callTracer frame."""
    success: bool
    gas_used: int
    error: Optional[str] = None
    revert_reason: Optional[str] = None
    output: Optional[str] = None
    calls: list["ValidatedCallResult"] = field(default_factory=list)
    logs: list[dict] = field(default_factory=list)

    def all_logs(self) -> list[dict]:
        """Logs of this frame and every nested call, depth first."""
        result: list[dict] = []
        for call in self.calls:
            result.extend(call.all_logs())
        result.extend(self.logs)
        return result

    @classmethod
    def from_frame(cls, frame: dict) -> "ValidatedCallResult":
        try:
            gas_used = parse_quantity(frame.get("gasUsed")) or 0
        except (ValueError, TypeError) as e:
            raise DecodeError(
                "Malformed gasUsed in call trace",
                details={"gasUsed": frame.get("gasUsed")},
            ) from e
        error = frame.get("error") or None
        revert_reason = frame.get("revertReason") or None
        return cls(
            success=error is None and revert_reason is None,
            gas_used=gas_used,
            error=error,
            revert_reason=revert_reason,
            output=frame.get("output"),
            calls=[cls.from_frame(c) for c in frame.get("calls") or []],
            logs=list(frame.get("logs") or []),
        )


def format_block_tag(block: BlockTag) -> str:
    """Serialize a block for the wire: hex height or "latest"."""
    if isinstance(block, bool):
        raise ConfigurationError(f"Unsupported block tag: {block!r}")
    if isinstance(block, int):
        if block < 0:
            raise ConfigurationError(f"Negative block number: {block}")
        return hex(block)
    if block == LATEST_BLOCK:
        return LATEST_BLOCK
    raise ConfigurationError(
        f"Unsupported block tag: {block!r}",
        details={"supported": ["<int>", LATEST_BLOCK]},
    )


def _is_unsupported(rpc_code: Any, rpc_message: str) -> bool:
    """True when the node lacks the trace method or the tracer, not the state."""
    if rpc_code == RPC_METHOD_NOT_FOUND:
        return True
    message = rpc_message.lower()
    return TRACE_CALL_METHOD.lower() in message or bool(_TRACER_NOT_FOUND.search(message))


class TraceCallClient:
    """
    Client for debug_traceCall.

    Usage:
        client = TraceCallClient(provider)
        result, post = await client.validate_and_diff(params)
    """

    def __init__(self, provider: RPCProvider):
        self.provider = provider

    def _build_request(self, params: TraceCallParams, tracer_options: dict) -> list:
        options = dict(tracer_options)
        if params.state_overrides is not None:
            options["stateOverrides"] = params.state_overrides.to_wire()
        return [params.call_object(), format_block_tag(params.block), options]

    async def _trace(self, params: TraceCallParams, tracer_options: dict) -> Any:
        request = self._build_request(params, tracer_options)
        try:
            response = await self.provider.call(TRACE_CALL_METHOD, request)
        except TransportError as e:
            rpc_code = e.details.get("rpc_code")
            rpc_message = str(e.details.get("rpc_message") or "")
            if _is_unsupported(rpc_code, rpc_message):
                raise TracingUnsupported(
                    f"Node cannot serve {TRACE_CALL_METHOD} with {tracer_options['tracer']}",
                    details={"tracer": tracer_options["tracer"], **e.details},
                ) from e
            if rpc_message.lower().startswith(TRACING_FAILED_PREFIX):
                raise SimulationReverted(
                    f"{TRACE_CALL_METHOD} could not execute the call: {rpc_message}",
                    error=rpc_message,
                    details={"tracer": tracer_options["tracer"], "to": params.to, **e.details},
                ) from e
            raise
        if response.result is None:
            raise DecodeError(
                f"{TRACE_CALL_METHOD} returned null",
                details={"tracer": tracer_options["tracer"], "to": params.to},
            )
        return response.result

    async def validate(self, params: TraceCallParams) -> ValidatedCallResult:
        """Run the call under callTracer and report success, gas and errors."""
        frame = await self._trace(
            params,
            {
                "tracer": CALL_TRACER,
                "tracerConfig": {"onlyTopCall": False, "withLog": True},
            },
        )
        if not isinstance(frame, dict):
            raise DecodeError(
                "callTracer result is not an object",
                details={"type": type(frame).__name__},
            )
        return ValidatedCallResult.from_frame(frame)

    async def diff(self, params: TraceCallParams) -> StateDiff:
        """Run the call under prestateTracer in diff mode and return "post"."""
        result = await self._trace(
            params,
            {
                "tracer": PRESTATE_TRACER,
                "tracerConfig": {"diffMode": True},
            },
        )
        if not isinstance(result, dict):
            raise DecodeError(
                "prestateTracer result is not an object",
                details={"type": type(result).__name__},
            )
        try:
            return StateDiff.from_wire(result.get("post"))
        except (ValueError, TypeError, AttributeError) as e:
            raise DecodeError(
                f"Malformed prestate diff: {e}",
                details={"to": params.to},
            ) from e

    async def validate_and_diff(
        self,
        params: TraceCallParams,
        label: str = "call",
    ) -> tuple[ValidatedCallResult, StateDiff]:
        """
        Validate, then diff the identical params.

        Raises:
            SimulationReverted: validate reported an error or revert reason;
                diff is not requested in that case
        """
        result = await self.validate(params)
        raise_if_reverted(result, label, params)
        post = await self.diff(params)
        return result, post


def raise_if_reverted(
    result: ValidatedCallResult,
    label: str,
    params: TraceCallParams,
) -> None:
    """Turn a failed validate into SimulationReverted."""
    if result.success:
        return
    logger.debug(
        f"{label} reverted",
        extra={
            "context": {
                "to": params.to,
                "block": params.block,
                "error": result.error,
                "revert_reason": result.revert_reason,
            }
        },
    )
    raise SimulationReverted(
        f"{label} failed: error={result.error!r}, revert_reason={result.revert_reason!r}",
        error=result.error,
        revert_reason=result.revert_reason,
        details={"to": params.to, "block": params.block},
    )
