"""
tests/unit/test_abi.py - Selector registry and calldata encoding tests.
"""

import pytest

from core.constants import ErrorCode
from core.exceptions import DecodeError
from simulation.abi import (
    MAX_UINT256,
    AbiRegistry,
    encode_address,
    normalize_address,
    parse_quantity,
    to_word,
)

TOKEN = "0x6B175474E89094C44Da98b954EedeAC495271d0F"
WETH = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
TRADER = "0x65A8F07Bd9A8598E1b5B6C0a88F4779DBC077675"


class TestHexHelpers:
    """Test address and word helpers."""

    def test_normalize_address(self):
        assert normalize_address(WETH) == WETH.lower()
        assert normalize_address(WETH[2:]) == WETH.lower()

    @pytest.mark.parametrize("bad", ["", "0x1234", "0x" + "zz" * 20, None])
    def test_normalize_address_rejects(self, bad):
        with pytest.raises(ValueError):
            normalize_address(bad)

    def test_to_word_range(self):
        assert to_word(0) == "0" * 64
        assert to_word(MAX_UINT256) == "f" * 64
        with pytest.raises(ValueError):
            to_word(-1)
        with pytest.raises(ValueError):
            to_word(MAX_UINT256 + 1)

    def test_encode_address_pads_left(self):
        encoded = encode_address(WETH)
        assert len(encoded) == 64
        assert encoded == "0" * 24 + WETH[2:].lower()

    def test_parse_quantity(self):
        assert parse_quantity("0x10") == 16
        assert parse_quantity("0x") == 0
        assert parse_quantity(5) == 5
        assert parse_quantity("42") == 42
        assert parse_quantity(None) is None
        with pytest.raises(ValueError):
            parse_quantity("0xzz")


class TestAbiRegistry:
    """Test calldata encoding for ERC-20 and router functions."""

    def setup_method(self):
        self.registry = AbiRegistry.default()

    def test_erc20_selectors(self):
        assert self.registry.encode_balance_of(TRADER).startswith("0x70a08231")
        assert self.registry.encode_total_supply() == "0x18160ddd"
        assert self.registry.encode_approve(TRADER, 1).startswith("0x095ea7b3")
        assert self.registry.encode_transfer(TRADER, 1).startswith("0xa9059cbb")

    def test_transfer_layout(self):
        data = self.registry.encode_transfer(TRADER, 10**18)
        # 0x + selector(8) + 2*64
        assert len(data) == 138
        assert data[10:74] == encode_address(TRADER)
        assert int(data[74:], 16) == 10**18

    def test_buy_layout(self):
        data = self.registry.encode_swap_exact_eth_for_tokens(
            amount_out_min=0, path=[WETH, TOKEN], to=TRADER, deadline=2**64 - 1
        )
        body = data[10:]
        words = [body[i:i + 64] for i in range(0, len(body), 64)]

        assert data.startswith("0xb6f9de95")
        assert len(words) == 7
        assert int(words[0], 16) == 0
        assert int(words[1], 16) == 0x80
        assert words[2] == encode_address(TRADER)
        assert int(words[3], 16) == 2**64 - 1
        assert int(words[4], 16) == 2
        assert words[5] == encode_address(WETH)
        assert words[6] == encode_address(TOKEN)

    def test_sell_layout(self):
        data = self.registry.encode_swap_exact_tokens_for_eth(
            amount_in=123, amount_out_min=0, path=[TOKEN, WETH], to=TRADER, deadline=1
        )
        body = data[10:]
        words = [body[i:i + 64] for i in range(0, len(body), 64)]

        assert data.startswith("0x791ac947")
        assert len(words) == 8
        assert int(words[0], 16) == 123
        assert int(words[2], 16) == 0xa0
        assert words[3] == encode_address(TRADER)
        assert int(words[5], 16) == 2
        assert words[6] == encode_address(TOKEN)
        assert words[7] == encode_address(WETH)

    def test_decode_uint256(self):
        assert self.registry.decode_uint256("0x" + to_word(7) + to_word(9)) == 7

    @pytest.mark.parametrize("output", [None, "", "0x", "0x" + "00" * 31])
    def test_decode_short_raises(self, output):
        with pytest.raises(DecodeError) as exc_info:
            self.registry.decode_uint256(output, "balanceOf")

        assert exc_info.value.code == ErrorCode.DECODE_ERROR
        assert exc_info.value.details["function"] == "balanceOf"

    def test_decode_non_hex_raises(self):
        with pytest.raises(DecodeError):
            self.registry.decode_uint256("0x" + "zz" * 32)
