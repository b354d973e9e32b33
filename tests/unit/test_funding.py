"""
tests/unit/test_funding.py - Funding primitives and balance injector tests.
"""

import pytest

from chains.trace_call import TraceCallClient
from config import SimulationConfig
from core.constants import ErrorCode
from core.exceptions import InsufficientInjectedBalance, SimulationReverted
from fake_node import ETH, LEDGER, POOL, ROUTER, TOKEN, FakeProvider, build_market
from simulation.abi import AbiRegistry
from simulation.funding import BalanceInjector, FundingPrimitives, fund_eth
from simulation.state_diff import EMPTY_STATE

TRADER = SimulationConfig().trader_address
BLOCK = 17_000_000


def make_engine(market, config=None):
    config = config or SimulationConfig().validate()
    registry = AbiRegistry.default()
    client = TraceCallClient(FakeProvider(market.node))
    funding = FundingPrimitives(client, registry, config)
    injector = BalanceInjector(client, funding, registry, config)
    return funding, injector


def injector_transfers(node) -> list[int]:
    """Amounts of every injector transfer validated so far, in order."""
    return [
        int(params[0]["data"][74:], 16)
        for params in node.traces("callTracer")
        if params[0]["data"].startswith("0xa9059cbb")
    ]


class TestFundEth:

    def test_single_account(self):
        diff = fund_eth(TRADER.upper().replace("0X", "0x"), 5)
        assert list(diff) == [TRADER]
        assert diff.balance_of(TRADER) == 5


class TestFundingPrimitives:
    """Test balance reads and approvals."""

    @pytest.mark.asyncio
    async def test_read_balance(self, market):
        funding, _ = make_engine(market)

        assert await funding.read_balance(TOKEN, POOL, BLOCK) == 2_000_000 * ETH
        assert await funding.read_balance(TOKEN, TRADER, BLOCK) == 0

    @pytest.mark.asyncio
    async def test_read_balance_funds_holder(self, market):
        funding, _ = make_engine(market)

        await funding.read_balance(TOKEN, TRADER, BLOCK)

        call, _, options = market.node.traces("callTracer")[-1]
        assert call["from"] == TRADER
        assert int(options["stateOverrides"][TRADER]["balance"], 16) == 100 * ETH

    @pytest.mark.asyncio
    async def test_approve_gas_and_state(self, market):
        funding, _ = make_engine(market)

        approval = await funding.approve(TOKEN, TRADER, ROUTER, 10**18, BLOCK)

        # 21000 intrinsic + 24000 approve in the fake token
        assert approval.gas_used == 45_000
        allowance_slot = market.token.allowance_slot(TRADER, ROUTER)
        assert approval.state.storage_of(TOKEN)[allowance_slot] == 10**18
        assert approval.state.balance_of(TRADER) == 100 * ETH - 45_000 * 10**12
        assert approval.state[TRADER].nonce == 1

    @pytest.mark.asyncio
    async def test_approve_revert_skips_diff(self, market):
        funding, _ = make_engine(market)

        # the pair contract has no approve()
        with pytest.raises(SimulationReverted):
            await funding.approve(POOL, TRADER, ROUTER, 1, BLOCK)

        assert market.node.traces("prestateTracer") == []


class TestBalanceInjector:
    """Test decoy-address differencing."""

    @pytest.mark.asyncio
    async def test_zero_amount_is_empty(self, market):
        _, injector = make_engine(market)

        assert await injector.grant(TOKEN, POOL, 0, TRADER, BLOCK) == EMPTY_STATE
        assert market.node.requests == []

    @pytest.mark.asyncio
    async def test_plain_token_first_attempt(self, market):
        _, injector = make_engine(market)

        state = await injector.grant(TOKEN, POOL, 1_000 * ETH, TRADER, BLOCK)

        assert list(state) == [TOKEN]
        assert dict(state.storage_of(TOKEN)) == {
            market.token.balance_slot(TRADER): 1_400 * ETH,
        }
        assert injector_transfers(market.node) == [1_400 * ETH, 1_400 * ETH]

    @pytest.mark.asyncio
    async def test_shared_slots_cancel_out(self):
        market = build_market(tax_bps=1_000)
        _, injector = make_engine(market)

        state = await injector.grant(TOKEN, POOL, 1_000 * ETH, TRADER, BLOCK)

        slots = set(state.storage_of(TOKEN))
        assert market.token.balance_slot(POOL) not in slots
        assert market.token.total_supply_slot not in slots
        assert slots == {market.token.balance_slot(TRADER)}

    @pytest.mark.asyncio
    async def test_transfer_tax_converges(self):
        """A 30% transfer tax still converges within three attempts."""
        market = build_market(tax_bps=3_000)
        funding, injector = make_engine(market)
        amount = 1_000 * ETH

        state = await injector.grant(TOKEN, POOL, amount, TRADER, BLOCK)

        assert await funding.read_balance(TOKEN, TRADER, BLOCK, state) >= amount
        owner_transfers = injector_transfers(market.node)[::2]
        assert 1 < len(owner_transfers) <= 3
        assert owner_transfers == sorted(owner_transfers)

    @pytest.mark.asyncio
    async def test_heavy_tax_exhausts_retries(self):
        market = build_market(tax_bps=8_000)
        _, injector = make_engine(market)

        with pytest.raises(InsufficientInjectedBalance) as exc_info:
            await injector.grant(TOKEN, POOL, 1_000 * ETH, TRADER, BLOCK)

        error = exc_info.value
        assert error.code == ErrorCode.SIM_INSUFFICIENT_INJECTED_BALANCE
        assert error.requested == 1_000 * ETH
        assert 0 < error.observed < 1_000 * ETH
        assert error.details["attempts"] == 3

    @pytest.mark.asyncio
    async def test_external_ledger_fails_fast(self):
        """Balances held in another contract leave no owner-specific slot on the token."""
        market = build_market(ledger=True)
        _, injector = make_engine(market)

        with pytest.raises(InsufficientInjectedBalance) as exc_info:
            await injector.grant(TOKEN, POOL, 1_000 * ETH, TRADER, BLOCK)

        assert exc_info.value.observed is None
        assert exc_info.value.details["attempt"] == 1
        assert len(injector_transfers(market.node)) == 2
        assert market.node.accounts[LEDGER].storage

    @pytest.mark.asyncio
    async def test_blacklisted_owner_reports_last_revert(self):
        market = build_market(blacklist=(TRADER,))
        _, injector = make_engine(market)

        with pytest.raises(InsufficientInjectedBalance) as exc_info:
            await injector.grant(TOKEN, POOL, 1_000 * ETH, TRADER, BLOCK)

        assert exc_info.value.observed is None
        assert exc_info.value.details["last_revert"] == "Blacklisted"
        # decoy is never probed after the owner transfer reverts
        assert len(injector_transfers(market.node)) == 3
        assert market.node.traces("prestateTracer") == []

    @pytest.mark.asyncio
    async def test_recipient_stamp_slot_is_injected_too(self):
        """A per-recipient non-balance slot survives differencing."""
        market = build_market(stamp_recipients=True)
        _, injector = make_engine(market)

        state = await injector.grant(TOKEN, POOL, 1_000 * ETH, TRADER, BLOCK)

        slots = state.storage_of(TOKEN)
        assert slots[market.token.balance_slot(TRADER)] == 1_400 * ETH
        assert slots[market.token.stamp_slot(TRADER)] == 1
        assert len(slots) == 2

    @pytest.mark.asyncio
    async def test_dust_amount_grows_every_attempt(self):
        market = build_market(blacklist=(TRADER,))
        _, injector = make_engine(market)

        with pytest.raises(InsufficientInjectedBalance):
            await injector.grant(TOKEN, POOL, 1, TRADER, BLOCK)

        assert injector_transfers(market.node) == [2, 3, 4]

    @pytest.mark.asyncio
    async def test_dust_amount_succeeds(self, market):
        funding, injector = make_engine(market)

        state = await injector.grant(TOKEN, POOL, 2, TRADER, BLOCK)

        assert await funding.read_balance(TOKEN, TRADER, BLOCK, state) == 3
