"""
simulation/state_diff.py - State override algebra.

StateDiff maps an address to the AccountDiff overriding it. Both are
immutable values; merge() builds a new StateDiff and never touches its
operands.

MERGE CONTRACT (left-biased union):
- address in one operand only: copied unchanged
- address in both: storage is the union, left wins per slot;
  balance/nonce/code take left's value if present, else right's
- earliest-applied precondition goes on the left

WIRE FORMAT (debug_traceCall stateOverrides):
    {address: {balance?, nonce?, code?, stateDiff?: {slot: value}}}
In-process the per-slot overrides live in `storage`; the wire names them
`stateDiff`. Slots and values are sent as 32-byte words.
"""

from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Optional

from simulation.abi import normalize_address, parse_quantity, strip_0x, to_word


@dataclass(frozen=True)
class AccountDiff:
    """Per-account override or post-execution change."""
    balance: Optional[int] = None
    nonce: Optional[int] = None
    code: Optional[bytes] = None
    storage: Optional[Mapping[int, int]] = field(default=None)

    def __post_init__(self):
        if self.storage is not None:
            object.__setattr__(self, "storage", MappingProxyType(dict(self.storage)))

    @property
    def is_empty(self) -> bool:
        return (
            self.balance is None
            and self.nonce is None
            and self.code is None
            and not self.storage
        )

    def merge(self, other: "AccountDiff") -> "AccountDiff":
        """Left-biased merge of two diffs for the same account."""
        storage = dict(other.storage or {})
        storage.update(self.storage or {})
        return AccountDiff(
            balance=self.balance if self.balance is not None else other.balance,
            nonce=self.nonce if self.nonce is not None else other.nonce,
            code=self.code if self.code is not None else other.code,
            storage=storage or None,
        )

    def to_wire(self) -> dict[str, Any]:
        wire: dict[str, Any] = {}
        if self.balance is not None:
            wire["balance"] = hex(self.balance)
        if self.nonce is not None:
            wire["nonce"] = hex(self.nonce)
        if self.code is not None:
            wire["code"] = "0x" + self.code.hex()
        if self.storage:
            wire["stateDiff"] = {
                "0x" + to_word(slot): "0x" + to_word(value)
                for slot, value in sorted(self.storage.items())
            }
        return wire

    @classmethod
    def from_wire(cls, data: Mapping[str, Any]) -> "AccountDiff":
        """
        Parse one account entry of a tracer response or an override.

        Accepts `storage` (prestate tracer) or `stateDiff` (override) for
        slots, and a nonce given either as integer or hex quantity.
        """
        raw_storage = data.get("storage")
        if raw_storage is None:
            raw_storage = data.get("stateDiff")
        storage = None
        if raw_storage:
            storage = {int(k, 16): int(v, 16) for k, v in raw_storage.items()}

        code = data.get("code")
        return cls(
            balance=parse_quantity(data.get("balance")),
            nonce=parse_quantity(data.get("nonce")),
            code=bytes.fromhex(strip_0x(code)) if code is not None else None,
            storage=storage,
        )


class StateDiff(Mapping[str, AccountDiff]):
    """Immutable address -> AccountDiff mapping."""

    __slots__ = ("_accounts",)

    def __init__(self, accounts: Optional[Mapping[str, AccountDiff]] = None):
        normalized: dict[str, AccountDiff] = {}
        for address, diff in (accounts or {}).items():
            key = normalize_address(address)
            normalized[key] = normalized[key].merge(diff) if key in normalized else diff
        self._accounts = MappingProxyType(normalized)

    def __getitem__(self, address: str) -> AccountDiff:
        return self._accounts[normalize_address(address)]

    def __contains__(self, address: object) -> bool:
        if not isinstance(address, str):
            return False
        try:
            return normalize_address(address) in self._accounts
        except ValueError:
            return False

    def __iter__(self) -> Iterator[str]:
        return iter(self._accounts)

    def __len__(self) -> int:
        return len(self._accounts)

    def __eq__(self, other: object) -> bool:
        if isinstance(other, StateDiff):
            return dict(self._accounts) == dict(other._accounts)
        return NotImplemented

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        return f"StateDiff({dict(self._accounts)!r})"

    def merge(self, other: "StateDiff") -> "StateDiff":
        return merge(self, other)

    def storage_of(self, address: str) -> Mapping[int, int]:
        """Storage of an account, empty if absent."""
        diff = self.get(address)
        if diff is None or diff.storage is None:
            return {}
        return diff.storage

    def balance_of(self, address: str) -> Optional[int]:
        diff = self.get(address)
        return diff.balance if diff is not None else None

    def to_wire(self) -> dict[str, dict[str, Any]]:
        return {address: diff.to_wire() for address, diff in sorted(self._accounts.items())}

    @classmethod
    def from_wire(cls, data: Optional[Mapping[str, Any]]) -> "StateDiff":
        return cls({address: AccountDiff.from_wire(entry or {}) for address, entry in (data or {}).items()})


EMPTY_STATE = StateDiff()


def merge(left: StateDiff, right: StateDiff) -> StateDiff:
    """
    Left-biased union of two state diffs.

    Associative; commutative only when the address sets are disjoint.
    """
    accounts = dict(right.items())
    for address, diff in left.items():
        if address in accounts:
            accounts[address] = diff.merge(accounts[address])
        else:
            accounts[address] = diff
    return StateDiff(accounts)
