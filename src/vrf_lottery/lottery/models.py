"""Core data models for the lottery round state machine."""

from __future__ import annotations

from dataclasses import asdict, dataclass, field
from enum import IntEnum
from typing import Any, Dict, Optional


class Phase(IntEnum):
    """Round phases. COMPLETED is only held during the payout step."""

    OPEN = 0
    DRAWING = 1
    FAILED = 2
    COMPLETED = 3


# Observability record types
LOTTERY_ENTERED = "lottery_entered"
DRAW_REQUESTED = "draw_requested"
WINNER_PICKED = "winner_picked"
ROUND_FAILED = "round_failed"
REFUND_ISSUED = "refund_issued"
ROUND_RESTARTED = "round_restarted"


@dataclass(frozen=True)
class RandomnessParams:
    """Parameters forwarded with every randomness request."""

    key_hash: str
    subscription_id: int
    request_confirmations: int = 3
    callback_gas_limit: int = 500000
    num_words: int = 1


@dataclass(frozen=True)
class LotteryConfig:
    """Immutable lottery configuration, fixed when the engine is created."""

    entrance_fee: int
    interval: int
    draw_timeout: int
    randomness: RandomnessParams

    def __post_init__(self) -> None:
        if self.entrance_fee <= 0:
            raise ValueError("entrance_fee must be positive")
        if self.interval < 0:
            raise ValueError("interval must not be negative")
        if self.draw_timeout <= 0:
            raise ValueError("draw_timeout must be positive")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass(frozen=True)
class UpkeepStatus:
    """The Open -> Drawing guard conditions as observed at one instant."""

    is_open: bool
    interval_elapsed: bool
    has_players: bool
    balance_matches: bool
    draw_timed_out: bool = False

    @property
    def upkeep_needed(self) -> bool:
        return self.is_open and self.interval_elapsed and self.has_players and self.balance_matches

    def to_dict(self) -> Dict[str, bool]:
        payload = asdict(self)
        payload["upkeep_needed"] = self.upkeep_needed
        return payload


@dataclass
class LotteryEvent:
    """Structured record emitted after every successful state change."""

    event_type: str
    round_id: int
    message: str
    details: Dict[str, Any] = field(default_factory=dict)
    event_time: int = 0

    def get_item_id(self) -> str:
        return f"{self.round_id}-{self.event_time}-{self.event_type}"


@dataclass
class RoundSnapshot:
    """Historical record of a completed or refunded round."""

    round_id: int
    outcome: str
    participant_count: int
    total_pot: int
    winner: Optional[str]
    request_id: Optional[int]
    finished_at: int
