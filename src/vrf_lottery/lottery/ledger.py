"""
Round Ledger - participant registry and escrowed contributions for one round
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, List, Set, Tuple

from vrf_lottery.lottery.errors import AlreadyEntered, IncorrectEntranceFee, NoRefundableBalance
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)


@dataclass(frozen=True)
class LedgerState:
    """Copy of the ledger used to roll back a failed operation."""

    participants: Tuple[str, ...]
    balances: Tuple[Tuple[str, int], ...]
    pot: int


class RoundLedger:
    """Owns the participant registry, membership flags, balances and pot.

    The registry list and the membership set always hold the same addresses;
    every mutation below touches both.
    """

    def __init__(self, entrance_fee: int):
        self._entrance_fee = entrance_fee
        self._participants: List[str] = []
        self._entered: Set[str] = set()
        self._balances: Dict[str, int] = {}
        self._pot = 0

    # =============== QUERIES ===============

    @property
    def pot(self) -> int:
        return self._pot

    @property
    def participants(self) -> List[str]:
        return list(self._participants)

    @property
    def participant_count(self) -> int:
        return len(self._participants)

    def has_entered(self, address: str) -> bool:
        return address in self._entered

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def total_balances(self) -> int:
        return sum(self._balances.values())

    # =============== MUTATIONS ===============

    def add_entry(self, address: str, value: int) -> None:
        """Register ``address`` for this round against an exact fee payment."""
        if address in self._entered:
            raise AlreadyEntered(address)
        if value != self._entrance_fee:
            raise IncorrectEntranceFee(self._entrance_fee, value)

        self._entered.add(address)
        self._participants.append(address)
        self._balances[address] = self._entrance_fee
        self._pot += self._entrance_fee
        logger.debug(f"Entry recorded for {address}, pot now {self._pot}")

    def winner_index(self, random_value: int) -> int:
        """Index of the winning participant for ``random_value``.

        Plain modulo reduction: lower indices are favoured by at most
        len(registry) / 2**256 for a 256-bit value.
        """
        if not self._participants:
            raise ValueError("Cannot select a winner from an empty registry")
        return random_value % len(self._participants)

    def pick_winner(self, random_value: int) -> str:
        return self._participants[self.winner_index(random_value)]

    def release(self, address: str) -> int:
        """Remove ``address`` from the round and return its balance for refund."""
        amount = self._balances.get(address, 0)
        if amount == 0:
            raise NoRefundableBalance(address)

        del self._balances[address]
        self._entered.discard(address)
        self._participants.remove(address)
        self._pot -= amount
        return amount

    def reset(self) -> None:
        self._participants.clear()
        self._entered.clear()
        self._balances.clear()
        self._pot = 0

    # =============== ROLLBACK ===============

    def snapshot(self) -> LedgerState:
        return LedgerState(
            participants=tuple(self._participants),
            balances=tuple(self._balances.items()),
            pot=self._pot,
        )

    def restore(self, state: LedgerState) -> None:
        self._participants = list(state.participants)
        self._entered = set(state.participants)
        self._balances = dict(state.balances)
        self._pot = state.pot
