"""Randomness source interface and a local development coordinator."""

from __future__ import annotations

import secrets
from typing import Dict, Optional

from vrf_lottery.lottery.models import RandomnessParams
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)


class RandomnessSource:
    """Something that accepts randomness requests and answers them later.

    ``request_randomness`` must return immediately with an identifier; the
    answer is delivered to ``LotteryEngine.fulfill_randomness`` at some later
    point, or never.
    """

    def request_randomness(self, params: RandomnessParams) -> int:
        raise NotImplementedError


class LocalVRFCoordinator(RandomnessSource):
    """In-process coordinator with sequential request ids.

    Requests stay pending until ``fulfill`` delivers a value successfully or
    ``drop`` discards them to simulate a response that never arrives.
    """

    def __init__(self, first_request_id: int = 1) -> None:
        self._next_request_id = first_request_id
        self._pending: Dict[int, RandomnessParams] = {}

    def request_randomness(self, params: RandomnessParams) -> int:
        request_id = self._next_request_id
        self._next_request_id += 1
        self._pending[request_id] = params
        logger.info(f"Randomness request {request_id} queued (subscription {params.subscription_id})")
        return request_id

    @property
    def pending_requests(self) -> Dict[int, RandomnessParams]:
        return dict(self._pending)

    def latest_request_id(self) -> Optional[int]:
        return max(self._pending) if self._pending else None

    def fulfill(self, request_id: int, consumer, value: Optional[int] = None) -> int:
        """Deliver randomness for ``request_id`` to ``consumer``.

        Raises KeyError for an unknown request. Any error raised by the
        consumer propagates and leaves the request pending.
        """
        if request_id not in self._pending:
            raise KeyError(f"Unknown randomness request {request_id}")
        if value is None:
            value = secrets.randbits(256)
        consumer.fulfill_randomness(request_id, value)
        del self._pending[request_id]
        logger.info(f"Randomness request {request_id} fulfilled")
        return value

    def drop(self, request_id: int) -> None:
        self._pending.pop(request_id, None)
        logger.info(f"Randomness request {request_id} dropped")
