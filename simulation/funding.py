"""
simulation/funding.py - Synthetic funding primitives.

Three ways to put a synthetic trader in a position to trade at a
historical block without holding anything:

    fund_eth()          override the ETH balance
    approve()           simulate ERC-20 approve and keep its state changes
    BalanceInjector     fabricate an ERC-20 balance for an unknown layout

BALANCE INJECTION (decoy-address differencing):
    1. From the pool (which holds the token) simulate
       transfer(owner, candidate) and transfer(decoy, candidate)
    2. Slots changed for the owner but absent from the decoy diff are
       the owner's balance slots; shared bookkeeping (pool balance,
       totalSupply on burn) cancels out
    3. Read balanceOf(owner) on top of that fragment and accept only if
       it covers the requested amount
    candidate grows by 7/5 before every attempt, so transfer taxes up to
    ~30% still converge within three attempts.

KNOWN RISK: a slot written for the recipient that is not a balance
(e.g. a per-recipient timestamp) also survives differencing and is
injected along with the balance. Nothing here filters it.
"""

from dataclasses import dataclass
from typing import Optional

from chains.trace_call import BlockTag, TraceCallClient, TraceCallParams, raise_if_reverted
from config import SimulationConfig
from core.constants import LegState
from core.exceptions import InsufficientInjectedBalance
from core.logging import get_logger
from simulation.abi import AbiRegistry, normalize_address
from simulation.state_diff import EMPTY_STATE, AccountDiff, StateDiff, merge

logger = get_logger(__name__)


def fund_eth(address: str, amount: int) -> StateDiff:
    """One-entry override setting the ETH balance of address."""
    return StateDiff({address: AccountDiff(balance=amount)})


@dataclass(frozen=True)
class ApprovalResult:
    """State after a simulated approve, and the gas it cost."""
    state: StateDiff
    gas_used: int


class FundingPrimitives:
    """
    Approve and balance reads under synthetic funding.

    All calls go through the validating tracer first; nothing from a
    failed call is used.
    """

    def __init__(
        self,
        trace_client: TraceCallClient,
        registry: AbiRegistry,
        config: SimulationConfig,
    ):
        self.trace_client = trace_client
        self.registry = registry
        self.config = config

    def _params(
        self,
        sender: str,
        to: str,
        data: str,
        block: BlockTag,
        state: StateDiff,
        value: int = 0,
    ) -> TraceCallParams:
        return TraceCallParams(
            sender=sender,
            to=to,
            data=data,
            gas=self.config.gas_limit,
            gas_price=self.config.gas_price_wei,
            value=value,
            block=block,
            state_overrides=state,
        )

    async def read_balance(
        self,
        token: str,
        holder: str,
        block: BlockTag,
        override: StateDiff = EMPTY_STATE,
    ) -> int:
        """
        Simulate token.balanceOf(holder) on top of override.

        The holder is funded so the read itself can pay for gas.
        """
        state = merge(fund_eth(holder, self.config.funding_headroom_wei), override)
        params = self._params(
            sender=holder,
            to=token,
            data=self.registry.encode_balance_of(holder),
            block=block,
            state=state,
        )
        result = await self.trace_client.validate(params)
        raise_if_reverted(result, "balanceOf", params)
        return self.registry.decode_uint256(result.output, "balanceOf")

    async def approve(
        self,
        token: str,
        owner: str,
        spender: str,
        amount: int,
        block: BlockTag,
        base_override: StateDiff = EMPTY_STATE,
    ) -> ApprovalResult:
        """
        Simulate token.approve(spender, amount) from owner.

        Returns the approve diff layered over the override it ran on, and
        the gas it consumed, derived from the owner's ETH balance drop.
        """
        state = merge(base_override, fund_eth(owner, self.config.funding_headroom_wei))
        params = self._params(
            sender=owner,
            to=token,
            data=self.registry.encode_approve(spender, amount),
            block=block,
            state=state,
        )
        _, post = await self.trace_client.validate_and_diff(params, label="approve")

        funded = state.balance_of(owner)
        spent = post.balance_of(owner)
        gas_used = 0
        if funded is not None and spent is not None:
            gas_used = (funded - spent) // self.config.gas_price_wei

        return ApprovalResult(state=merge(post, state), gas_used=gas_used)


class BalanceInjector:
    """
    Fabricates an ERC-20 balance for an address whose balance slot is
    unknown, by decoy-address differencing.

    Usage:
        injector = BalanceInjector(trace_client, funding, registry, config)
        state = await injector.grant(token, pool, amount, owner, block)
    """

    def __init__(
        self,
        trace_client: TraceCallClient,
        funding: FundingPrimitives,
        registry: AbiRegistry,
        config: SimulationConfig,
    ):
        self.trace_client = trace_client
        self.funding = funding
        self.registry = registry
        self.config = config

    def _transfer_params(
        self,
        token: str,
        pool: str,
        recipient: str,
        amount: int,
        block: BlockTag,
        funding: StateDiff,
    ) -> TraceCallParams:
        return TraceCallParams(
            sender=pool,
            to=token,
            data=self.registry.encode_transfer(recipient, amount),
            gas=self.config.gas_limit,
            gas_price=self.config.gas_price_wei,
            block=block,
            state_overrides=funding,
        )

    def _grow(self, amount: int) -> int:
        grown = amount * self.config.injector_growth_numerator // self.config.injector_growth_denominator
        # floor division stalls on dust amounts
        return max(grown, amount + 1)

    async def grant(
        self,
        token: str,
        pool: str,
        amount: int,
        owner: str,
        block: BlockTag,
    ) -> StateDiff:
        """
        Build a StateDiff giving owner at least amount of token at block.

        Raises:
            InsufficientInjectedBalance: no owner-specific slot was found,
                or every attempt reverted or fell short
        """
        token = normalize_address(token)
        owner = normalize_address(owner)
        if amount <= 0:
            return EMPTY_STATE

        ctx = {"token": token, "pool": pool, "block": block, "requested": amount}
        funding = fund_eth(pool, self.config.funding_headroom_wei)

        candidate = amount
        observed: Optional[int] = None
        last_revert: Optional[str] = None

        for attempt in range(1, self.config.injector_retries + 1):
            candidate = self._grow(candidate)
            logger.debug(
                "Injector probing",
                extra={"context": {**ctx, "attempt": attempt, "candidate": candidate,
                                   "state": LegState.VALIDATING.value}},
            )

            owner_params = self._transfer_params(token, pool, owner, candidate, block, funding)
            decoy_params = self._transfer_params(
                token, pool, self.config.decoy_address, candidate, block, funding
            )

            owner_result = await self.trace_client.validate(owner_params)
            decoy_result = await self.trace_client.validate(decoy_params) if owner_result.success else None
            failed = owner_result if not owner_result.success else decoy_result
            if failed is not None and not failed.success:
                last_revert = failed.revert_reason or failed.error
                logger.debug(
                    "Injector probe reverted",
                    extra={"context": {**ctx, "attempt": attempt, "revert": last_revert,
                                       "state": LegState.RETRY.value}},
                )
                continue

            owner_post = await self.trace_client.diff(owner_params)
            decoy_post = await self.trace_client.diff(decoy_params)

            decoy_slots = decoy_post.storage_of(token)
            owner_only = {
                slot: value
                for slot, value in owner_post.storage_of(token).items()
                if slot not in decoy_slots
            }
            if not owner_only:
                raise InsufficientInjectedBalance(
                    f"No owner-specific storage slot found for token {token} at block {block}",
                    token=token,
                    block=block,
                    requested=amount,
                    observed=observed,
                    details={"attempt": attempt, "candidate": candidate},
                )

            fragment = StateDiff({token: AccountDiff(storage=owner_only)})
            observed = await self.funding.read_balance(token, owner, block, fragment)
            if observed >= amount:
                logger.debug(
                    "Injector done",
                    extra={"context": {**ctx, "attempt": attempt, "observed": observed,
                                       "slots": len(owner_only), "state": LegState.DONE.value}},
                )
                return fragment

            logger.debug(
                "Injected balance short",
                extra={"context": {**ctx, "attempt": attempt, "observed": observed,
                                   "state": LegState.RETRY.value}},
            )

        logger.warning(
            "Injector exhausted retries",
            extra={"context": {**ctx, "observed": observed, "last_revert": last_revert}},
        )
        raise InsufficientInjectedBalance(
            f"Could not inject {amount} of token {token} at block {block}: "
            f"last observed balance {observed}",
            token=token,
            block=block,
            requested=amount,
            observed=observed,
            details={"attempts": self.config.injector_retries, "last_revert": last_revert},
        )
