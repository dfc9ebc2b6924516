"""FastAPI gateway exposing the lottery engine over HTTP."""

from __future__ import annotations

import asyncio
from dataclasses import asdict
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Optional, TypeVar

from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from vrf_lottery.chain.vrf import LocalVRFCoordinator
from vrf_lottery.lottery.automation import AutomationAdapter
from vrf_lottery.lottery.engine import LotteryEngine
from vrf_lottery.lottery.errors import (
    AlreadyEntered,
    IncorrectEntranceFee,
    InvalidAddress,
    LotteryError,
    PaymentNotVerified,
    PhaseGuardViolation,
    PreconditionNotMet,
    RefundsOutstanding,
    RequestMismatch,
    TransferFailed,
)
from vrf_lottery.lottery.models import LotteryEvent, Phase
from vrf_lottery.utils.config import get_config_flag
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

T = TypeVar("T")

ERROR_STATUS = {
    InvalidAddress: 400,
    IncorrectEntranceFee: 400,
    PaymentNotVerified: 402,
    PhaseGuardViolation: 409,
    AlreadyEntered: 409,
    RequestMismatch: 409,
    PreconditionNotMet: 412,
    RefundsOutstanding: 412,
    TransferFailed: 502,
}


def status_for(exc: LotteryError) -> int:
    for cls in type(exc).__mro__:
        if cls in ERROR_STATUS:
            return ERROR_STATUS[cls]
    return 400


class EnterRequest(BaseModel):
    address: str
    value_wei: int
    tx_hash: Optional[str] = None


class RefundRequest(BaseModel):
    address: str


class PerformUpkeepRequest(BaseModel):
    perform_data: Optional[str] = None


class LotteryWebServer:
    """HTTP gateway for players, the external scheduler and operators.

    Engine calls may block on the chain, so each one runs in a worker thread.
    A single lock keeps them strictly one at a time.
    """

    def __init__(
        self,
        config: Dict[str, Any],
        engine: LotteryEngine,
        coordinator: Optional[LocalVRFCoordinator] = None,
    ) -> None:
        self.config = config
        self.engine = engine
        self.automation = AutomationAdapter(engine)
        self.coordinator = coordinator
        self.allow_unverified_entries = get_config_flag(config, "server.allow_unverified_entries")
        self._engine_lock = asyncio.Lock()
        self._server = None

        self.app = FastAPI(
            title="VRF Lottery API",
            description="Permissionless lottery rounds settled by verifiable randomness",
            version="1.0.0",
        )

        self._setup_middleware()
        self._setup_routes()

    async def _call(self, func: Callable[..., T], *args: Any) -> T:
        async with self._engine_lock:
            return await asyncio.to_thread(func, *args)

    # ------------------------------------------------------------------
    # FastAPI scaffolding
    # ------------------------------------------------------------------
    def _setup_middleware(self) -> None:
        self.app.add_middleware(
            CORSMiddleware,
            allow_origins=["*"],
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )

        @self.app.exception_handler(LotteryError)
        async def lottery_error_handler(request: Request, exc: LotteryError) -> JSONResponse:
            logger.warning("%s %s rejected: %s", request.method, request.url.path, exc)
            return JSONResponse(status_code=status_for(exc), content={"error": exc.code, "detail": str(exc)})

    def _setup_routes(self) -> None:  # noqa: C901 - routing setup intentionally verbose
        engine = self.engine

        # ------------------------------------------------------------------
        # Health & state
        # ------------------------------------------------------------------
        @self.app.get("/api/health")
        async def health_check() -> Dict[str, Any]:
            # Answers without the engine lock so a slow transfer cannot stall it.
            return {
                "status": "ok",
                "timestamp": datetime.now(timezone.utc).isoformat(),
                "components": {
                    "engine": "busy" if self._engine_lock.locked() else engine.phase.name,
                    "coordinator": "local" if self.coordinator else "external",
                },
            }

        @self.app.get("/api/lottery/state")
        async def get_state() -> Dict[str, Any]:
            return await self._call(engine.get_state)

        @self.app.get("/api/lottery/config")
        async def get_config() -> Dict[str, Any]:
            return {"config": engine.config.to_dict()}

        @self.app.get("/api/lottery/participants")
        async def get_participants() -> Dict[str, Any]:
            def read() -> Dict[str, Any]:
                return {
                    "round_id": engine.round_id,
                    "participants": engine.participants,
                    "total_participants": engine.participant_count,
                    "pot_wei": engine.pot,
                }

            return await self._call(read)

        @self.app.get("/api/lottery/players/{address}")
        async def get_player(address: str) -> Dict[str, Any]:
            def read() -> Dict[str, Any]:
                return {
                    "address": address,
                    "has_entered": engine.has_entered(address),
                    "refundable_wei": engine.refundable_balance(address),
                }

            return await self._call(read)

        @self.app.get("/api/history")
        async def get_round_history(limit: int = 20) -> Dict[str, Any]:
            limit = max(1, min(limit, 200))
            rounds = [asdict(item) for item in engine.events.get_round_history(limit=limit)]
            return {
                "rounds": rounds,
                "summary": {
                    "total_rounds": len(rounds),
                    "completed_rounds": sum(1 for r in rounds if r["outcome"] == Phase.COMPLETED.name),
                    "failed_rounds": sum(1 for r in rounds if r["outcome"] == Phase.FAILED.name),
                },
            }

        @self.app.get("/api/activities")
        async def get_live_feed(limit: int = 50) -> Dict[str, Any]:
            limit = max(1, min(limit, 200))
            feed = engine.events.get_live_feed(limit=limit)
            return {"activities": [self._serialize_event(item) for item in reversed(feed)]}

        # ------------------------------------------------------------------
        # Player operations
        # ------------------------------------------------------------------
        @self.app.post("/api/lottery/enter")
        async def enter(request: EnterRequest) -> Dict[str, Any]:
            if not engine.verifies_payments and not self.allow_unverified_entries:
                raise HTTPException(
                    status_code=403,
                    detail="This escrow cannot verify payments; entries over HTTP are disabled",
                )
            await self._call(engine.enter, request.address, request.value_wei, request.tx_hash)
            return {"status": "entered", "round_id": engine.round_id, "pot_wei": engine.pot}

        @self.app.post("/api/lottery/refund")
        async def refund(request: RefundRequest) -> Dict[str, Any]:
            amount = await self._call(engine.refund, request.address)
            return {"status": "refunded", "amount_wei": amount, "pot_wei": engine.pot}

        @self.app.post("/api/lottery/declare-failed")
        async def declare_failed() -> Dict[str, Any]:
            await self._call(engine.declare_failed)
            return {"status": "failed", "round_id": engine.round_id, "pot_wei": engine.pot}

        @self.app.post("/api/lottery/restart")
        async def restart() -> Dict[str, Any]:
            await self._call(engine.restart)
            return {"status": "open", "round_id": engine.round_id}

        # ------------------------------------------------------------------
        # Scheduler surface
        # ------------------------------------------------------------------
        @self.app.get("/api/upkeep/check")
        async def check_upkeep() -> Dict[str, Any]:
            upkeep_needed, perform_data = await self._call(self.automation.check_upkeep)
            return {"upkeep_needed": upkeep_needed, "perform_data": "0x" + perform_data.hex()}

        @self.app.post("/api/upkeep/perform")
        async def perform_upkeep(request: PerformUpkeepRequest) -> Dict[str, Any]:
            raw = request.perform_data or ""
            try:
                perform_data = bytes.fromhex(raw[2:] if raw.startswith("0x") else raw)
            except ValueError:
                raise HTTPException(status_code=400, detail="perform_data must be hex encoded")
            request_id = await self._call(self.automation.perform_upkeep, perform_data)
            return {"status": "drawing", "request_id": request_id, "round_id": engine.round_id}

        # ------------------------------------------------------------------
        # Development randomness
        # ------------------------------------------------------------------
        @self.app.post("/api/vrf/fulfill/{request_id}")
        async def fulfill_request(request_id: int) -> Dict[str, Any]:
            if self.coordinator is None:
                raise HTTPException(status_code=404, detail="No local randomness coordinator configured")
            try:
                value = await self._call(self.coordinator.fulfill, request_id, engine)
            except KeyError:
                raise HTTPException(status_code=404, detail=f"Unknown randomness request {request_id}")
            return {
                "status": "fulfilled",
                "request_id": request_id,
                "random_value": str(value),
                "winner": engine.recent_winner,
            }

    @staticmethod
    def _serialize_event(event: LotteryEvent) -> Dict[str, Any]:
        return {
            "id": event.get_item_id(),
            "type": event.event_type,
            "round_id": event.round_id,
            "message": event.message,
            "details": event.details,
            "timestamp": event.event_time,
        }

    # ------------------------------------------------------------------
    # Lifecycle management
    # ------------------------------------------------------------------
    async def start(self, host: str = "0.0.0.0", port: int = 6080) -> None:
        import uvicorn

        logger.info("Starting lottery web server on %s:%s", host, port)
        config = uvicorn.Config(self.app, host=host, port=port, log_level="info", access_log=True)
        self._server = uvicorn.Server(config)
        try:
            await self._server.serve()
        finally:
            logger.info("Lottery web server stopped")

    async def stop(self) -> None:
        if self._server is not None:
            self._server.should_exit = True
