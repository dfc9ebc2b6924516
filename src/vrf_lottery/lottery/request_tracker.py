"""Correlation of randomness responses with the single outstanding request."""

from __future__ import annotations

from typing import Optional

from vrf_lottery.lottery.errors import RequestMismatch
from vrf_lottery.lottery.models import Phase
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)


class RandomnessRequestTracker:
    """Holds at most one live request id, set when the round starts drawing."""

    def __init__(self) -> None:
        self._outstanding: Optional[int] = None

    @property
    def outstanding(self) -> Optional[int]:
        return self._outstanding

    def record(self, request_id: int) -> None:
        if self._outstanding is not None:
            logger.warning(f"Replacing outstanding request {self._outstanding} with {request_id}")
        self._outstanding = int(request_id)

    def validate(self, request_id: int, phase: Phase) -> None:
        """Raise RequestMismatch unless ``request_id`` is the live request."""
        if phase != Phase.DRAWING or self._outstanding is None or request_id != self._outstanding:
            raise RequestMismatch(request_id, self._outstanding)

    def restore(self, request_id: Optional[int]) -> None:
        self._outstanding = request_id

    def clear(self) -> Optional[int]:
        request_id, self._outstanding = self._outstanding, None
        return request_id
