"""
simulation/abi.py - ABI selector registry and calldata encoding.

The engine only needs six functions with externally fixed selectors:

ERC-20:
    balanceOf(address)                  0x70a08231
    approve(address,uint256)            0x095ea7b3
    totalSupply()                       0x18160ddd
    transfer(address,uint256)           0xa9059cbb

UniswapV2-style router:
    swapExactETHForTokensSupportingFeeOnTransferTokens(
        uint256,address[],address,uint256)          0xb6f9de95
    swapExactTokensForETHSupportingFeeOnTransferTokens(
        uint256,uint256,address[],address,uint256)  0x791ac947

The registry is built once at process start and passed by reference to
every component; it is immutable and safe for concurrent reads.
"""

import re
from dataclasses import dataclass

from core.exceptions import DecodeError

SELECTOR_BALANCE_OF = "70a08231"
SELECTOR_APPROVE = "095ea7b3"
SELECTOR_TOTAL_SUPPLY = "18160ddd"
SELECTOR_TRANSFER = "a9059cbb"
SELECTOR_SWAP_EXACT_ETH_FOR_TOKENS_FOT = "b6f9de95"
SELECTOR_SWAP_EXACT_TOKENS_FOR_ETH_FOT = "791ac947"

WORD_HEX_CHARS = 64
MAX_UINT256 = 2**256 - 1

_ADDRESS_RE = re.compile(r"^(0x)?[0-9a-fA-F]{40}$")


# =============================================================================
# HEX HELPERS
# =============================================================================

def normalize_address(address: str) -> str:
    """Lower-case 0x-prefixed address; raises ValueError if malformed."""
    if not isinstance(address, str) or not _ADDRESS_RE.match(address):
        raise ValueError(f"Malformed address: {address!r}")
    return "0x" + address[-40:].lower()


def strip_0x(value: str) -> str:
    return value[2:] if value.startswith(("0x", "0X")) else value


def to_word(value: int) -> str:
    """Encode an unsigned integer as one 32-byte word (64 hex chars, no 0x)."""
    if value < 0 or value > MAX_UINT256:
        raise ValueError(f"Value out of uint256 range: {value}")
    return hex(value)[2:].zfill(WORD_HEX_CHARS)


def encode_address(address: str) -> str:
    """Left-pad an address to one word."""
    return normalize_address(address)[2:].zfill(WORD_HEX_CHARS)


def parse_quantity(value: str | int | None) -> int | None:
    """Parse a JSON-RPC quantity (hex string or plain integer)."""
    if value is None:
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.startswith(("0x", "0X")):
            return int(text, 16) if len(text) > 2 else 0
        return int(text)
    raise ValueError(f"Not a quantity: {value!r}")


def _encode_address_array(addresses: list[str]) -> str:
    return to_word(len(addresses)) + "".join(encode_address(a) for a in addresses)


# =============================================================================
# REGISTRY
# =============================================================================

@dataclass(frozen=True)
class AbiRegistry:
    """Selectors for the external ABIs the engine calls."""
    balance_of: str = SELECTOR_BALANCE_OF
    approve: str = SELECTOR_APPROVE
    total_supply: str = SELECTOR_TOTAL_SUPPLY
    transfer: str = SELECTOR_TRANSFER
    swap_exact_eth_for_tokens: str = SELECTOR_SWAP_EXACT_ETH_FOR_TOKENS_FOT
    swap_exact_tokens_for_eth: str = SELECTOR_SWAP_EXACT_TOKENS_FOR_ETH_FOT

    @classmethod
    def default(cls) -> "AbiRegistry":
        return cls()

    # ERC-20

    def encode_balance_of(self, holder: str) -> str:
        return f"0x{self.balance_of}{encode_address(holder)}"

    def encode_total_supply(self) -> str:
        return f"0x{self.total_supply}"

    def encode_approve(self, spender: str, amount: int) -> str:
        return f"0x{self.approve}{encode_address(spender)}{to_word(amount)}"

    def encode_transfer(self, to: str, amount: int) -> str:
        return f"0x{self.transfer}{encode_address(to)}{to_word(amount)}"

    # Router

    def encode_swap_exact_eth_for_tokens(
        self,
        amount_out_min: int,
        path: list[str],
        to: str,
        deadline: int,
    ) -> str:
        """
        Encode swapExactETHForTokensSupportingFeeOnTransferTokens.

        Head: amountOutMin, offset(path), to, deadline. Tail: path.
        """
        head = (
            to_word(amount_out_min)
            + to_word(4 * 32)
            + encode_address(to)
            + to_word(deadline)
        )
        return f"0x{self.swap_exact_eth_for_tokens}{head}{_encode_address_array(path)}"

    def encode_swap_exact_tokens_for_eth(
        self,
        amount_in: int,
        amount_out_min: int,
        path: list[str],
        to: str,
        deadline: int,
    ) -> str:
        """
        Encode swapExactTokensForETHSupportingFeeOnTransferTokens.

        Head: amountIn, amountOutMin, offset(path), to, deadline. Tail: path.
        """
        head = (
            to_word(amount_in)
            + to_word(amount_out_min)
            + to_word(5 * 32)
            + encode_address(to)
            + to_word(deadline)
        )
        return f"0x{self.swap_exact_tokens_for_eth}{head}{_encode_address_array(path)}"

    # Decoding

    def decode_uint256(self, output: str | None, function: str = "call") -> int:
        """
        Decode the first return word as uint256.

        Raises:
            DecodeError: empty or short output
        """
        if not output or strip_0x(output) == "":
            raise DecodeError(
                f"Empty return data for {function}",
                details={"function": function},
            )
        data = strip_0x(output)
        if len(data) < WORD_HEX_CHARS:
            raise DecodeError(
                f"Return data too short for {function}: {len(data)} chars",
                details={"function": function, "raw": output[:100]},
            )
        try:
            return int(data[:WORD_HEX_CHARS], 16)
        except ValueError as e:
            raise DecodeError(
                f"Return data for {function} is not hex",
                details={"function": function, "raw": output[:100]},
            ) from e
