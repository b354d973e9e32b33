"""
chains/ - Blockchain interaction layer.

Modules:
- providers: JSON-RPC provider with failover
- trace_call: debug_traceCall client (validating and diffing tracers)
"""

from chains.providers import (
    RPCProvider,
    RPCResponse,
    RPCStats,
)
from chains.trace_call import (
    TraceCallClient,
    TraceCallParams,
    ValidatedCallResult,
    format_block_tag,
)

__all__ = [
    # Providers
    "RPCProvider",
    "RPCResponse",
    "RPCStats",
    # Trace call
    "TraceCallClient",
    "TraceCallParams",
    "ValidatedCallResult",
    "format_block_tag",
]
