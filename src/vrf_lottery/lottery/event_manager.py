"""In-memory observability log: activity feed, round history and listeners."""

from __future__ import annotations

from collections import defaultdict, deque
from threading import Lock
from typing import Callable, Dict, List, Optional

from vrf_lottery.lottery.models import LotteryEvent, RoundSnapshot
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

Listener = Callable[[LotteryEvent], None]

ALL_EVENTS = "*"


class EventLog:
    """Volatile storage for emitted lottery events and finished rounds.

    Records are advisory: a failing listener is logged and skipped, it never
    reaches back into the engine.
    """

    def __init__(self, *, feed_capacity: int = 100, history_capacity: int = 20) -> None:
        self._lock = Lock()
        self._listeners: Dict[str, List[Listener]] = defaultdict(list)
        self._live_feed: deque[LotteryEvent] = deque(maxlen=feed_capacity)
        self._history: deque[RoundSnapshot] = deque(maxlen=history_capacity)

    # ------------------------------------------------------------------
    # Listener management
    # ------------------------------------------------------------------
    def add_listener(self, event_type: str, callback: Listener) -> None:
        with self._lock:
            self._listeners[event_type].append(callback)
        logger.debug(f"[EventLog] Adding listener for event_type={event_type}, callback={callback}")

    def _emit(self, event: LotteryEvent) -> None:
        with self._lock:
            listeners = list(self._listeners.get(event.event_type, [])) + list(self._listeners.get(ALL_EVENTS, []))
        for callback in listeners:
            try:
                callback(event)
            except Exception as exc:
                logger.error("Listener for %s failed: %s", event.event_type, exc)

    # ------------------------------------------------------------------
    # Recording
    # ------------------------------------------------------------------
    def record(self, event: LotteryEvent) -> None:
        with self._lock:
            self._live_feed.append(event)
        logger.info(f"[EventLog] {event.event_type}: {event.message}")
        self._emit(event)

    def add_history_snapshot(self, snapshot: RoundSnapshot) -> None:
        with self._lock:
            self._history.append(snapshot)
        logger.debug(f"[EventLog] Round {snapshot.round_id} archived as {snapshot.outcome}")

    # ------------------------------------------------------------------
    # Accessors
    # ------------------------------------------------------------------
    def get_live_feed(self, limit: Optional[int] = None, event_type: Optional[str] = None) -> List[LotteryEvent]:
        with self._lock:
            items = list(self._live_feed)
        if event_type is not None:
            items = [item for item in items if item.event_type == event_type]
        if limit is not None:
            return items[-limit:]
        return items

    def get_round_history(self, limit: Optional[int] = None) -> List[RoundSnapshot]:
        with self._lock:
            items = list(self._history)
        if limit is not None:
            return items[-limit:]
        return items

    def clear(self) -> None:
        with self._lock:
            self._live_feed.clear()
            self._history.clear()
