"""
Automation adapter - the check/perform pair polled by an external scheduler
"""

from __future__ import annotations

import json
from typing import Any, Dict, Tuple

from vrf_lottery.lottery.engine import LotteryEngine
from vrf_lottery.lottery.errors import UpkeepNotNeeded
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

ACTION_DRAW = "draw"
ACTION_DECLARE_FAILED = "declare_failed"
ACTION_NONE = "none"


def decode_perform_data(perform_data: bytes) -> Dict[str, Any]:
    """Best-effort decode of a ``check_upkeep`` payload, for logging only."""
    if not perform_data:
        return {}
    try:
        payload = json.loads(perform_data.decode("utf-8"))
    except (UnicodeDecodeError, ValueError):
        return {}
    return payload if isinstance(payload, dict) else {}


class AutomationAdapter:
    """Exposes the engine to a scheduler that knows nothing about lotteries.

    ``check_upkeep`` may be polled at any rate; it never mutates state.
    ``perform_upkeep`` does not trust whatever the scheduler saw earlier and
    checks again before starting a drawing.
    """

    def __init__(self, engine: LotteryEngine):
        self._engine = engine

    def check_upkeep(self, check_data: bytes = b"") -> Tuple[bool, bytes]:
        status = self._engine.upkeep_status()
        if status.upkeep_needed:
            action = ACTION_DRAW
        elif status.draw_timed_out:
            # declare_failed is a separate public call; only hint at it
            action = ACTION_DECLARE_FAILED
        else:
            action = ACTION_NONE

        perform_data = json.dumps({"action": action, "round_id": self._engine.round_id}).encode("utf-8")
        return status.upkeep_needed, perform_data

    def perform_upkeep(self, perform_data: bytes = b"") -> int:
        hint = decode_perform_data(perform_data)
        upkeep_needed, _ = self.check_upkeep()
        if not upkeep_needed:
            logger.warning(f"perform_upkeep called without pending work (hint={hint})")
            raise UpkeepNotNeeded(
                self._engine.upkeep_status(),
                pot=self._engine.pot,
                balance=self._engine.held_balance(),
                players=self._engine.participant_count,
            )
        return self._engine.start_drawing()
