"""
pricing/sampler.py - Price curve sampling per (token, pool, block).

For each block:
    1. Buy grid: buy_step_wei * (j + 1) for j in range(buy_steps)
    2. One balance injection for the largest buy output, at block - 1
    3. Sell grid: sell_points amounts spaced evenly between the smallest
       and the largest buy output, reusing that injection
    4. Liquidity: pool totalSupply and LP balances of lock holders

A failed simulation leaves its point empty and is counted; only
TracingUnsupported and ConfigurationError abort the run.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Optional

from config import SamplerConfig
from core.exceptions import (
    DecodeError,
    InsufficientInjectedBalance,
    SimulationReverted,
    TransportError,
)
from core.logging import get_logger
from pricing.price_fetcher import PriceFetcher
from simulation.abi import normalize_address
from simulation.state_diff import StateDiff

logger = get_logger(__name__)

# Failures that cost one data point, not the run
POINT_FAILURES = (
    SimulationReverted,
    InsufficientInjectedBalance,
    DecodeError,
    TransportError,
)


@dataclass
class PriceRow:
    """Sampled price curve of one token at one block."""
    block: int
    buy_amounts_x: list[int] = field(default_factory=list)
    buy_amounts_y: list[Optional[int]] = field(default_factory=list)
    buy_gas_used: Optional[int] = None
    sell_amounts_x: list[int] = field(default_factory=list)
    sell_amounts_y: list[Optional[int]] = field(default_factory=list)
    sell_gas_used: Optional[int] = None
    approve_gas_used: Optional[int] = None
    pool_liquidity: Optional[int] = None
    liquidity_by_holder: dict[str, Optional[int]] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        """Flat row; uint256 values as decimal strings."""
        def fmt(value: Optional[int]) -> Optional[str]:
            return None if value is None else str(value)

        row: dict[str, Any] = {
            "block": self.block,
            "buy_gas_used": self.buy_gas_used,
            "sell_gas_used": self.sell_gas_used,
            "approve_gas_used": self.approve_gas_used,
            "pool_liquidity": fmt(self.pool_liquidity),
        }
        for i, (x, y) in enumerate(zip(self.buy_amounts_x, self.buy_amounts_y)):
            row[f"buy_x_{i}"] = fmt(x)
            row[f"buy_y_{i}"] = fmt(y)
        for i, (x, y) in enumerate(zip(self.sell_amounts_x, self.sell_amounts_y)):
            row[f"sell_x_{i}"] = fmt(x)
            row[f"sell_y_{i}"] = fmt(y)
        for holder, amount in self.liquidity_by_holder.items():
            row[f"liquidity_{holder}"] = fmt(amount)
        return row


@dataclass
class SamplerStats:
    """Counts of attempted and failed simulations."""
    amount_buys: int = 0
    amount_buys_failed: int = 0
    amount_sells: int = 0
    amount_sells_failed: int = 0
    tokens_done: int = 0

    def add(self, other: "SamplerStats") -> None:
        self.amount_buys += other.amount_buys
        self.amount_buys_failed += other.amount_buys_failed
        self.amount_sells += other.amount_sells
        self.amount_sells_failed += other.amount_sells_failed
        self.tokens_done += other.tokens_done

    def to_dict(self) -> dict[str, int]:
        return {
            "amount_buys": self.amount_buys,
            "amount_buys_failed": self.amount_buys_failed,
            "amount_sells": self.amount_sells,
            "amount_sells_failed": self.amount_sells_failed,
            "tokens_done": self.tokens_done,
        }


def sell_grid(min_amount: int, max_amount: int, points: int) -> list[int]:
    """points amounts from min_amount towards max_amount in equal integer steps."""
    step = (max_amount - min_amount) // (points - 1)
    return [min_amount + step * j for j in range(points)]


class PriceCurveSampler:
    """
    Samples buy/sell curves for many tokens with bounded concurrency.

    Usage:
        sampler = PriceCurveSampler(fetcher, config.sampler)
        rows = await sampler.sample_token(token, pool, [17_000_000])
    """

    def __init__(self, fetcher: PriceFetcher, config: SamplerConfig):
        self.fetcher = fetcher
        self.config = config
        self.stats = SamplerStats()
        self._semaphore = asyncio.Semaphore(config.max_in_flight)

    async def _sample_block(
        self,
        token: str,
        pool: str,
        block: int,
        stats: SamplerStats,
    ) -> PriceRow:
        row = PriceRow(block=block)
        ctx = {"token": token, "pool": pool, "block": block}

        for j in range(self.config.buy_steps):
            amount_in = self.config.buy_step_wei * (j + 1)
            row.buy_amounts_x.append(amount_in)
            stats.amount_buys += 1
            try:
                quote = await self.fetcher.get_buy_price(block, amount_in, token)
            except POINT_FAILURES as e:
                stats.amount_buys_failed += 1
                row.buy_amounts_y.append(None)
                logger.debug("Buy point failed", extra={"context": {**ctx, "amount_in": amount_in, "error": str(e)}})
                continue
            row.buy_amounts_y.append(quote.amount_out)
            row.buy_gas_used = quote.gas_used

        outputs = [y for y in row.buy_amounts_y if y is not None]
        if outputs:
            await self._sample_sells(token, pool, block, min(outputs), max(outputs), row, stats)

        await self._sample_liquidity(pool, block, row)
        return row

    async def _sample_sells(
        self,
        token: str,
        pool: str,
        block: int,
        min_amount: int,
        max_amount: int,
        row: PriceRow,
        stats: SamplerStats,
    ) -> None:
        ctx = {"token": token, "pool": pool, "block": block}
        injection: Optional[StateDiff] = None
        try:
            injection = await self.fetcher.get_state_with_tokens(
                token, pool, max_amount, max(block - 1, 0)
            )
        except POINT_FAILURES as e:
            logger.info(
                "Precomputed injection failed, injecting per sell",
                extra={"context": {**ctx, "amount": max_amount, "error": str(e)}},
            )

        for amount_in in sell_grid(min_amount, max_amount, self.config.sell_points):
            row.sell_amounts_x.append(amount_in)
            stats.amount_sells += 1
            try:
                quote = await self.fetcher.get_sell_price(block, amount_in, token, pool, injection)
            except POINT_FAILURES as e:
                stats.amount_sells_failed += 1
                row.sell_amounts_y.append(None)
                logger.debug("Sell point failed", extra={"context": {**ctx, "amount_in": amount_in, "error": str(e)}})
                continue
            row.sell_amounts_y.append(quote.amount_out)
            row.sell_gas_used = quote.gas_used
            row.approve_gas_used = quote.gas_used_approve

    async def _sample_liquidity(self, pool: str, block: int, row: PriceRow) -> None:
        try:
            row.pool_liquidity = await self.fetcher.get_total_supply(pool, block)
        except POINT_FAILURES as e:
            logger.debug("totalSupply failed", extra={"context": {"pool": pool, "block": block, "error": str(e)}})

        for holder in self.config.liquidity_holders:
            try:
                row.liquidity_by_holder[holder] = await self.fetcher.get_balance_of(pool, holder, block)
            except POINT_FAILURES as e:
                row.liquidity_by_holder[holder] = None
                logger.debug(
                    "LP balance failed",
                    extra={"context": {"pool": pool, "holder": holder, "block": block, "error": str(e)}},
                )

    async def sample_token(self, token: str, pool: str, blocks: list[int]) -> list[PriceRow]:
        """Sample every block of one token, in block order."""
        token = normalize_address(token)
        pool = normalize_address(pool)
        stats = SamplerStats()

        async with self._semaphore:
            rows = [
                await self._sample_block(token, pool, block, stats)
                for block in sorted(set(blocks))
            ]

        stats.tokens_done = 1
        self.stats.add(stats)
        logger.info(
            "Token sampled",
            extra={"context": {"token": token, "pool": pool, "blocks": len(rows), **stats.to_dict()}},
        )
        return rows

    async def sample_many(
        self,
        token_to_pool: dict[str, str],
        token_to_blocks: dict[str, list[int]],
    ) -> dict[str, list[PriceRow]]:
        """Sample all tokens concurrently, at most max_in_flight at a time."""
        tokens = [t for t in token_to_pool if token_to_blocks.get(t)]
        results = await asyncio.gather(
            *(self.sample_token(t, token_to_pool[t], token_to_blocks[t]) for t in tokens)
        )
        return dict(zip(tokens, results))
