"""
simulation/swap.py - Counterfactual router swaps.

BUY LEG (ETH -> token):
    fund trader with amount_in + headroom
    validate, diff swapExactETHForTokensSupportingFeeOnTransferTokens
    amount_out = balanceOf(trader) read on top of the diff

SELL LEG (token -> ETH):
    approve router, inject token balance (or reuse a precomputed one)
    validate, diff swapExactTokensForETHSupportingFeeOnTransferTokens
    amount_out = post ETH balance + total gas * gas price - funded balance

Amounts are always measured on balances after the call, never taken from
decoded swap return values: fee-on-transfer tokens deliver less than the
router is asked to move.

Reverts surface as SimulationReverted with the node's revert reason and
are not retried here.
"""

from dataclasses import dataclass
from typing import Optional

from chains.trace_call import (
    BlockTag,
    TraceCallClient,
    TraceCallParams,
    ValidatedCallResult,
    raise_if_reverted,
)
from config import SimulationConfig
from core.constants import UNRESTRICTED_DEADLINE, LegState, TradeDirection
from core.exceptions import DecodeError, PriceFetcherError
from core.logging import get_logger, log_leg
from simulation.abi import AbiRegistry, normalize_address
from simulation.funding import BalanceInjector, FundingPrimitives, fund_eth
from simulation.state_diff import EMPTY_STATE, StateDiff, merge

logger = get_logger(__name__)


@dataclass(frozen=True)
class BuyQuote:
    """Result of a simulated ETH -> token swap."""
    amount_out: int
    gas_used: int


@dataclass(frozen=True)
class SellQuote:
    """Result of a simulated token -> ETH swap."""
    amount_out: int
    gas_used: int
    gas_used_approve: int


class SwapSimulator:
    """
    Simulates router swaps for a synthetic trader.

    Stateless between calls; safe to share across concurrent tasks.
    """

    def __init__(
        self,
        trace_client: TraceCallClient,
        funding: FundingPrimitives,
        injector: BalanceInjector,
        registry: AbiRegistry,
        config: SimulationConfig,
    ):
        self.trace_client = trace_client
        self.funding = funding
        self.injector = injector
        self.registry = registry
        self.config = config

    def _swap_params(
        self,
        trader: str,
        data: str,
        block: BlockTag,
        state: StateDiff,
        value: int = 0,
    ) -> TraceCallParams:
        return TraceCallParams(
            sender=trader,
            to=self.config.router_address,
            data=data,
            gas=self.config.gas_limit,
            gas_price=self.config.gas_price_wei,
            value=value,
            block=block,
            state_overrides=state,
        )

    async def _validate_then_diff(
        self,
        params: TraceCallParams,
        label: str,
        direction: str,
        token: str,
    ) -> tuple[ValidatedCallResult, StateDiff]:
        result = await self.trace_client.validate(params)
        raise_if_reverted(result, label, params)
        log_leg(logger, direction, LegState.DIFFING.value, token, params.block, gas_used=result.gas_used)
        post = await self.trace_client.diff(params)
        return result, post

    async def buy(
        self,
        amount_in_wei: int,
        token: str,
        block: BlockTag,
        trader: Optional[str] = None,
    ) -> BuyQuote:
        """
        Simulate buying token with amount_in_wei of ETH.

        Raises:
            SimulationReverted: router call or balance read reverted
        """
        trader = normalize_address(trader or self.config.trader_address)
        token = normalize_address(token)
        direction = TradeDirection.BUY.value

        data = self.registry.encode_swap_exact_eth_for_tokens(
            amount_out_min=0,
            path=[self.config.weth_address, token],
            to=trader,
            deadline=UNRESTRICTED_DEADLINE,
        )
        state = fund_eth(trader, amount_in_wei + self.config.funding_headroom_wei)
        params = self._swap_params(trader, data, block, state, value=amount_in_wei)

        log_leg(logger, direction, LegState.IDLE.value, token, block, amount_in=amount_in_wei)
        try:
            log_leg(logger, direction, LegState.VALIDATING.value, token, block)
            result, post = await self._validate_then_diff(params, "buy swap", direction, token)

            log_leg(logger, direction, LegState.BALANCE_READ.value, token, block)
            amount_out = await self.funding.read_balance(token, trader, block, post)
        except PriceFetcherError as e:
            log_leg(logger, direction, LegState.FAILED.value, token, block, error=str(e))
            raise

        log_leg(
            logger, direction, LegState.DONE.value, token, block,
            amount_in=amount_in_wei, amount_out=amount_out, gas_used=result.gas_used,
        )
        return BuyQuote(amount_out=amount_out, gas_used=result.gas_used)

    async def sell(
        self,
        amount_in: int,
        token: str,
        pool: str,
        block: BlockTag,
        trader: Optional[str] = None,
        precomputed_injection: Optional[StateDiff] = None,
    ) -> SellQuote:
        """
        Simulate selling amount_in of token for ETH.

        Args:
            precomputed_injection: balance injection to reuse; computed
                fresh when None

        Raises:
            SimulationReverted: approve or router call reverted
            InsufficientInjectedBalance: injection failed
            DecodeError: trader balance missing from the swap diff
        """
        trader = normalize_address(trader or self.config.trader_address)
        token = normalize_address(token)
        direction = TradeDirection.SELL.value
        headroom = self.config.funding_headroom_wei
        gas_price = self.config.gas_price_wei

        log_leg(
            logger, direction, LegState.IDLE.value, token, block,
            amount_in=amount_in, reuse_injection=precomputed_injection is not None,
        )
        try:
            approval = await self.funding.approve(
                token=token,
                owner=trader,
                spender=self.config.router_address,
                amount=amount_in,
                block=block,
                base_override=EMPTY_STATE,
            )

            if precomputed_injection is not None:
                injection = precomputed_injection
            else:
                injection = await self.injector.grant(token, pool, amount_in, trader, block)

            state = merge(approval.state, injection)
            data = self.registry.encode_swap_exact_tokens_for_eth(
                amount_in=amount_in,
                amount_out_min=0,
                path=[token, self.config.weth_address],
                to=trader,
                deadline=UNRESTRICTED_DEADLINE,
            )
            params = self._swap_params(trader, data, block, state)

            log_leg(logger, direction, LegState.VALIDATING.value, token, block, amount_in=amount_in)
            result, post = await self._validate_then_diff(params, "sell swap", direction, token)

            post_balance = post.balance_of(trader)
            if post_balance is None:
                raise DecodeError(
                    "Trader ETH balance missing from sell diff",
                    details={"token": token, "block": block, "trader": trader},
                )
        except PriceFetcherError as e:
            log_leg(logger, direction, LegState.FAILED.value, token, block, error=str(e))
            raise

        total_gas = approval.gas_used + result.gas_used
        amount_out = post_balance + total_gas * gas_price - headroom

        log_leg(
            logger, direction, LegState.DONE.value, token, block,
            amount_in=amount_in, amount_out=amount_out,
            gas_used=result.gas_used, gas_used_approve=approval.gas_used,
        )
        return SellQuote(
            amount_out=amount_out,
            gas_used=result.gas_used,
            gas_used_approve=approval.gas_used,
        )
