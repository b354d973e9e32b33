"""
pricing/price_fetcher.py - Price fetcher facade.

The operations the collection pipeline calls:

    get_buy_price(block, amount_in, token)             -> BuyQuote
    get_sell_price(block, amount_in, token, pool, st)  -> SellQuote
    get_state_with_tokens(token, pool, amount, block)  -> StateDiff
    get_total_supply(contract, block)                  -> int
    get_balance_of(token, holder, block)               -> int
    get_tx_fee(block, gas_used)                        -> TxFee

Every operation returns a value or raises a typed PriceFetcherError; no
default is substituted for a failure.
"""

import asyncio
from dataclasses import dataclass
from decimal import Decimal
from typing import Optional

from chains.providers import RPCProvider
from chains.trace_call import BlockTag, TraceCallClient, TraceCallParams, raise_if_reverted
from config import SimulationConfig
from core.constants import (
    TX_FEE_BACKOFF_SECONDS,
    TX_FEE_BASE_FEE_MULTIPLIER,
    TX_FEE_MAX_ATTEMPTS,
)
from core.exceptions import TransportError
from core.logging import get_logger
from simulation.abi import AbiRegistry, parse_quantity
from simulation.funding import BalanceInjector, FundingPrimitives
from simulation.state_diff import StateDiff
from simulation.swap import BuyQuote, SellQuote, SwapSimulator

logger = get_logger(__name__)

WEI_PER_ETH = Decimal(10**18)


@dataclass(frozen=True)
class TxFee:
    """Fee of gas_used at a block, priced at base fee * 1.5."""
    timestamp: int
    gas_price_wei: int
    fee_wei: int

    @property
    def fee_eth(self) -> Decimal:
        return Decimal(self.fee_wei) / WEI_PER_ETH


class PriceFetcher:
    """
    Facade over the swap simulator and read-only calls.

    Usage:
        fetcher = PriceFetcher(provider, config.simulation)
        quote = await fetcher.get_buy_price(17_000_000, 10**17, token)
    """

    def __init__(
        self,
        provider: RPCProvider,
        config: SimulationConfig,
        registry: Optional[AbiRegistry] = None,
    ):
        self.provider = provider
        self.config = config
        self.registry = registry or AbiRegistry.default()

        self.trace_client = TraceCallClient(provider)
        self.funding = FundingPrimitives(self.trace_client, self.registry, config)
        self.injector = BalanceInjector(self.trace_client, self.funding, self.registry, config)
        self.simulator = SwapSimulator(
            self.trace_client, self.funding, self.injector, self.registry, config
        )

    async def get_buy_price(
        self,
        block: BlockTag,
        amount_in: int,
        token: str,
    ) -> BuyQuote:
        """Tokens received for amount_in wei of ETH at block."""
        return await self.simulator.buy(amount_in, token, block, self.config.trader_address)

    async def get_sell_price(
        self,
        block: BlockTag,
        amount_in: int,
        token: str,
        pool: str,
        state_with_tokens: Optional[StateDiff] = None,
    ) -> SellQuote:
        """
        Wei received for amount_in of token at block.

        Args:
            state_with_tokens: injection from get_state_with_tokens() to
                reuse across many sell sizes at one block
        """
        return await self.simulator.sell(
            amount_in,
            token,
            pool,
            block,
            self.config.trader_address,
            precomputed_injection=state_with_tokens,
        )

    async def get_state_with_tokens(
        self,
        token: str,
        pool: str,
        amount: int,
        block: BlockTag,
        owner: Optional[str] = None,
    ) -> StateDiff:
        """Injection giving the trader (or owner) at least amount of token."""
        return await self.injector.grant(
            token, pool, amount, owner or self.config.trader_address, block
        )

    async def _read_uint(self, to: str, data: str, block: BlockTag, label: str) -> int:
        params = TraceCallParams(
            to=to,
            data=data,
            gas=self.config.read_gas_limit,
            block=block,
        )
        result = await self.trace_client.validate(params)
        raise_if_reverted(result, label, params)
        return self.registry.decode_uint256(result.output, label)

    async def get_total_supply(self, contract: str, block: BlockTag) -> int:
        """totalSupply() of a token or pool, without overrides."""
        return await self._read_uint(
            contract, self.registry.encode_total_supply(), block, "totalSupply"
        )

    async def get_balance_of(self, token: str, holder: str, block: BlockTag) -> int:
        """balanceOf(holder) of a token or pool, without overrides."""
        return await self._read_uint(
            token, self.registry.encode_balance_of(holder), block, "balanceOf"
        )

    async def get_tx_fee(self, block: BlockTag, gas_used: int) -> TxFee:
        """
        Price gas_used at block, using the block's base fee * 1.5.

        Retries with exponential backoff while the block or its base fee
        is unavailable.

        Raises:
            TransportError: still unavailable after all attempts
        """
        multiplier, divisor = TX_FEE_BASE_FEE_MULTIPLIER
        last_problem = "no attempt made"

        for attempt in range(1, TX_FEE_MAX_ATTEMPTS + 1):
            try:
                header = await self.provider.get_block(block)
            except TransportError as e:
                header = None
                last_problem = str(e)
            else:
                if header is None:
                    last_problem = "block not found"
                elif header.get("baseFeePerGas") is None:
                    last_problem = "block has no base fee"

            if header is not None and header.get("baseFeePerGas") is not None:
                gas_price = parse_quantity(header["baseFeePerGas"]) * multiplier // divisor
                return TxFee(
                    timestamp=parse_quantity(header["timestamp"]),
                    gas_price_wei=gas_price,
                    fee_wei=gas_price * gas_used,
                )

            logger.debug(
                "Block header unavailable for fee",
                extra={"context": {"block": block, "attempt": attempt, "problem": last_problem}},
            )
            if attempt < TX_FEE_MAX_ATTEMPTS:
                await asyncio.sleep(TX_FEE_BACKOFF_SECONDS * 2**attempt)

        raise TransportError(
            f"Failed to get gas price for block {block} after {TX_FEE_MAX_ATTEMPTS} attempts",
            details={"block": block, "last_problem": last_problem},
        )
