"""
Lottery Engine - round state machine over the escrow ledger
"""

from __future__ import annotations

from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional, Union

from vrf_lottery.chain.escrow import Escrow
from vrf_lottery.chain.vrf import RandomnessSource
from vrf_lottery.lottery import timeout
from vrf_lottery.lottery.errors import (
    DrawTimeoutNotElapsed,
    InvalidAddress,
    LotteryNotDrawing,
    LotteryNotFailed,
    LotteryNotOpen,
    RefundsOutstanding,
    UpkeepNotNeeded,
)
from vrf_lottery.lottery.event_manager import EventLog
from vrf_lottery.lottery.ledger import LedgerState, RoundLedger
from vrf_lottery.lottery.models import (
    DRAW_REQUESTED,
    LOTTERY_ENTERED,
    REFUND_ISSUED,
    ROUND_FAILED,
    ROUND_RESTARTED,
    WINNER_PICKED,
    LotteryConfig,
    LotteryEvent,
    Phase,
    RoundSnapshot,
    UpkeepStatus,
)
from vrf_lottery.lottery.payout import PayoutExecutor
from vrf_lottery.lottery.request_tracker import RandomnessRequestTracker
from vrf_lottery.utils.common import normalize_address, shorten_eth_address, unix_now
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

Record = Union[LotteryEvent, RoundSnapshot]


@dataclass(frozen=True)
class _SavedState:
    ledger: LedgerState
    outstanding: Optional[int]
    phase: Phase
    last_timestamp: int
    drawing_started_at: int
    recent_winner: Optional[str]
    round_id: int


class LotteryEngine:
    """Owns the phase, timers, ledger and request tracker of the lottery.

    Every public operation runs inside ``_transaction``: if it raises, all of
    the above are put back exactly as they were and nothing is recorded.
    None of the operations check the caller's identity.
    """

    def __init__(
        self,
        config: LotteryConfig,
        escrow: Escrow,
        randomness: RandomnessSource,
        *,
        events: Optional[EventLog] = None,
        clock: Callable[[], int] = unix_now,
    ):
        self._config = config
        self._escrow = escrow
        self._randomness = randomness
        self._payouts = PayoutExecutor(escrow)
        self._events = events if events is not None else EventLog()
        self._clock = clock

        self._ledger = RoundLedger(config.entrance_fee)
        self._requests = RandomnessRequestTracker()
        self._phase = Phase.OPEN
        self._last_timestamp = clock()
        self._drawing_started_at = 0
        self._recent_winner: Optional[str] = None
        self._round_id = 1

        logger.info(
            f"Lottery engine initialized: fee={config.entrance_fee} wei, "
            f"interval={config.interval}s, draw_timeout={config.draw_timeout}s"
        )

    # =============== TRANSACTIONS ===============

    def _save_state(self) -> _SavedState:
        return _SavedState(
            ledger=self._ledger.snapshot(),
            outstanding=self._requests.outstanding,
            phase=self._phase,
            last_timestamp=self._last_timestamp,
            drawing_started_at=self._drawing_started_at,
            recent_winner=self._recent_winner,
            round_id=self._round_id,
        )

    def _restore_state(self, saved: _SavedState) -> None:
        self._ledger.restore(saved.ledger)
        self._requests.restore(saved.outstanding)
        self._phase = saved.phase
        self._last_timestamp = saved.last_timestamp
        self._drawing_started_at = saved.drawing_started_at
        self._recent_winner = saved.recent_winner
        self._round_id = saved.round_id

    @contextmanager
    def _transaction(self) -> Iterator[List[Record]]:
        saved = self._save_state()
        records: List[Record] = []
        try:
            yield records
        except Exception:
            self._restore_state(saved)
            raise
        for record in records:
            if isinstance(record, RoundSnapshot):
                self._events.add_history_snapshot(record)
            else:
                self._events.record(record)

    def _event(self, event_type: str, message: str, **details: Any) -> LotteryEvent:
        return LotteryEvent(
            event_type=event_type,
            round_id=self._round_id,
            message=message,
            details=details,
            event_time=self._clock(),
        )

    @staticmethod
    def _address(address: str) -> str:
        try:
            return normalize_address(address)
        except ValueError:
            raise InvalidAddress(address) from None

    # =============== OPERATIONS ===============

    def enter(self, caller: str, value: int, payment_ref: Optional[str] = None) -> None:
        """Join the current round by paying exactly the entrance fee.

        ``payment_ref`` identifies the inbound transfer (a transaction hash)
        for escrows that verify payments.
        """
        caller = self._address(caller)
        with self._transaction() as records:
            if self._phase != Phase.OPEN:
                raise LotteryNotOpen("enter", self._phase)
            self._ledger.add_entry(caller, value)
            self._escrow.receive(caller, value, payment_ref)
            records.append(
                self._event(
                    LOTTERY_ENTERED,
                    f"{shorten_eth_address(caller)} entered round {self._round_id}",
                    player=caller,
                    amount=value,
                    pot=self._ledger.pot,
                )
            )

    def upkeep_status(self) -> UpkeepStatus:
        """Observe the Open -> Drawing guard without changing anything."""
        now = self._clock()
        return UpkeepStatus(
            is_open=self._phase == Phase.OPEN,
            interval_elapsed=timeout.interval_elapsed(now, self._last_timestamp, self._config.interval),
            has_players=self._ledger.participant_count > 0,
            balance_matches=self._ledger.pot == self._escrow.balance(),
            draw_timed_out=self._draw_timed_out(now),
        )

    def start_drawing(self) -> int:
        """Move Open -> Drawing and request randomness; returns the request id."""
        with self._transaction() as records:
            status = self.upkeep_status()
            if not status.upkeep_needed:
                raise UpkeepNotNeeded(
                    status,
                    pot=self._ledger.pot,
                    balance=self._escrow.balance(),
                    players=self._ledger.participant_count,
                )

            self._phase = Phase.DRAWING
            self._drawing_started_at = self._clock()
            request_id = self._randomness.request_randomness(self._config.randomness)
            self._requests.record(request_id)
            records.append(
                self._event(
                    DRAW_REQUESTED,
                    f"Round {self._round_id} drawing, randomness request {request_id}",
                    request_id=request_id,
                    pot=self._ledger.pot,
                    participants=self._ledger.participant_count,
                )
            )
        logger.info(f"Round {self._round_id} drawing with request {request_id}")
        return request_id

    def fulfill_randomness(self, request_id: int, value: int) -> str:
        """Accept the randomness response, pay the winner and reopen the round."""
        with self._transaction() as records:
            self._requests.validate(request_id, self._phase)

            winner = self._ledger.pick_winner(int(value))
            prize = self._ledger.pot
            participant_count = self._ledger.participant_count
            finished_round = self._round_id
            now = self._clock()

            self._phase = Phase.COMPLETED
            self._ledger.reset()
            self._requests.clear()
            self._recent_winner = winner
            self._last_timestamp = now
            self._payouts.payout(winner, prize)

            self._phase = Phase.OPEN
            records.append(
                self._event(
                    WINNER_PICKED,
                    f"{shorten_eth_address(winner)} won {prize} wei in round {finished_round}",
                    winner=winner,
                    amount=prize,
                    request_id=request_id,
                )
            )
            records.append(
                RoundSnapshot(
                    round_id=finished_round,
                    outcome=Phase.COMPLETED.name,
                    participant_count=participant_count,
                    total_pot=prize,
                    winner=winner,
                    request_id=request_id,
                    finished_at=now,
                )
            )
            self._round_id += 1
        logger.info(f"Round {finished_round} completed, winner {winner} received {prize} wei")
        return winner

    def declare_failed(self) -> None:
        """Abandon a drawing whose randomness did not arrive in time."""
        with self._transaction() as records:
            if self._phase != Phase.DRAWING:
                raise LotteryNotDrawing("declare failure", self._phase)
            now = self._clock()
            if not self._draw_timed_out(now):
                raise DrawTimeoutNotElapsed(
                    timeout.seconds_until(now, self._drawing_started_at, self._config.draw_timeout)
                )

            request_id = self._requests.clear()
            self._phase = Phase.FAILED
            records.append(
                self._event(
                    ROUND_FAILED,
                    f"Round {self._round_id} failed, randomness request {request_id} timed out",
                    request_id=request_id,
                    pot=self._ledger.pot,
                    participants=self._ledger.participant_count,
                )
            )
            records.append(
                RoundSnapshot(
                    round_id=self._round_id,
                    outcome=Phase.FAILED.name,
                    participant_count=self._ledger.participant_count,
                    total_pot=self._ledger.pot,
                    winner=None,
                    request_id=request_id,
                    finished_at=now,
                )
            )
        logger.warning(f"Round {self._round_id} moved to FAILED after request {request_id} timed out")

    def refund(self, caller: str) -> int:
        """Pull the caller's entrance fee back out of a failed round."""
        caller = self._address(caller)
        with self._transaction() as records:
            if self._phase != Phase.FAILED:
                raise LotteryNotFailed("refund", self._phase)
            amount = self._ledger.release(caller)
            self._payouts.refund(caller, amount)
            records.append(
                self._event(
                    REFUND_ISSUED,
                    f"{shorten_eth_address(caller)} refunded {amount} wei",
                    player=caller,
                    amount=amount,
                    remaining_pot=self._ledger.pot,
                )
            )
        return amount

    def restart(self) -> None:
        """Reopen the lottery once every refund of a failed round was claimed."""
        with self._transaction() as records:
            if self._phase != Phase.FAILED:
                raise LotteryNotFailed("restart", self._phase)
            if self._ledger.pot != 0:
                raise RefundsOutstanding(self._ledger.pot, self._ledger.participant_count)

            self._ledger.reset()
            self._phase = Phase.OPEN
            self._last_timestamp = self._clock()
            self._round_id += 1
            records.append(self._event(ROUND_RESTARTED, f"Round {self._round_id} opened after refunds"))

    # =============== READ SURFACE ===============

    def _draw_timed_out(self, now: int) -> bool:
        return self._phase == Phase.DRAWING and timeout.draw_timed_out(
            now, self._drawing_started_at, self._config.draw_timeout
        )

    @property
    def config(self) -> LotteryConfig:
        return self._config

    @property
    def events(self) -> EventLog:
        return self._events

    @property
    def phase(self) -> Phase:
        return self._phase

    @property
    def pot(self) -> int:
        return self._ledger.pot

    @property
    def participants(self) -> List[str]:
        return self._ledger.participants

    @property
    def participant_count(self) -> int:
        return self._ledger.participant_count

    @property
    def round_id(self) -> int:
        return self._round_id

    @property
    def last_timestamp(self) -> int:
        return self._last_timestamp

    @property
    def drawing_started_at(self) -> int:
        return self._drawing_started_at

    @property
    def outstanding_request_id(self) -> Optional[int]:
        return self._requests.outstanding

    @property
    def recent_winner(self) -> Optional[str]:
        return self._recent_winner

    def held_balance(self) -> int:
        return self._escrow.balance()

    @property
    def verifies_payments(self) -> bool:
        return self._escrow.verifies_payments

    def has_entered(self, address: str) -> bool:
        return self._ledger.has_entered(self._address(address))

    def refundable_balance(self, address: str) -> int:
        """Amount ``address`` can reclaim right now; always 0 outside FAILED."""
        if self._phase != Phase.FAILED:
            return 0
        return self._ledger.balance_of(self._address(address))

    def get_state(self) -> Dict[str, Any]:
        now = self._clock()
        state: Dict[str, Any] = {
            "round_id": self._round_id,
            "phase": self._phase.name,
            "pot": self._ledger.pot,
            "held_balance": self._escrow.balance(),
            "participant_count": self._ledger.participant_count,
            "participants": self._ledger.participants,
            "last_timestamp": self._last_timestamp,
            "drawing_started_at": self._drawing_started_at,
            "outstanding_request_id": self._requests.outstanding,
            "recent_winner": self._recent_winner,
            "seconds_until_interval": timeout.seconds_until(now, self._last_timestamp, self._config.interval),
            "upkeep": self.upkeep_status().to_dict(),
        }
        if self._phase == Phase.DRAWING:
            state["seconds_until_timeout"] = timeout.seconds_until(
                now, self._drawing_started_at, self._config.draw_timeout
            )
        return state
