#!/usr/bin/env python3
"""
VRF Lottery Application

Main entry point: loads configuration, wires the escrow, randomness
coordinator and lottery engine, and serves the HTTP gateway until a shutdown
signal is received.
"""

import asyncio
import signal
import sys
from pathlib import Path
from typing import Any, Dict

from dotenv import load_dotenv

from vrf_lottery.chain.escrow import Escrow, InMemoryEscrow, Web3Escrow
from vrf_lottery.chain.vrf import LocalVRFCoordinator
from vrf_lottery.lottery.engine import LotteryEngine
from vrf_lottery.utils.config import build_lottery_config, get_config_value, load_config
from vrf_lottery.utils.logger import get_logger
from vrf_lottery.web_server import LotteryWebServer

logger = get_logger(__name__)


def build_escrow(config: Dict[str, Any]) -> Escrow:
    mode = str(get_config_value(config, "escrow.mode", "memory")).lower()
    if mode == "web3":
        return Web3Escrow(config)
    if mode == "memory":
        return InMemoryEscrow()
    raise ValueError(f"Unknown escrow mode: {mode}")


class LotteryApp:
    """Owns the engine and web server for the lifetime of the process."""

    def __init__(self, config: Dict[str, Any]):
        self.config = config
        self.lottery_config = build_lottery_config(config)
        self.escrow = build_escrow(config)
        self.coordinator = LocalVRFCoordinator()
        self.engine = LotteryEngine(self.lottery_config, self.escrow, self.coordinator)
        self.web_server = LotteryWebServer(config, self.engine, self.coordinator)
        self.running = True

        logger.info("🎲 Lottery application initialized")

    def _display_config_summary(self) -> None:
        logger.info("=" * 60)
        logger.info("📋 CONFIGURATION SUMMARY")
        logger.info("=" * 60)
        logger.info(f"💰 Entrance fee: {self.lottery_config.entrance_fee} wei")
        logger.info(f"⏱️  Interval: {self.lottery_config.interval}s")
        logger.info(f"⌛ Draw timeout: {self.lottery_config.draw_timeout}s")
        logger.info(f"🔑 VRF key hash: {self.lottery_config.randomness.key_hash}")
        logger.info(f"🏦 Escrow: {type(self.escrow).__name__}")
        logger.info(f"🧾 Payments verified: {'yes' if self.escrow.verifies_payments else 'no'}")
        logger.info("=" * 60)

    def _handle_signal(self, signum, frame) -> None:
        logger.info(f"📡 Received signal {signum}, initiating graceful shutdown...")
        self.running = False

    async def start(self) -> None:
        self._display_config_summary()

        host = get_config_value(self.config, "server.host", "0.0.0.0")
        port = int(get_config_value(self.config, "server.port", 6080))
        server_task = asyncio.create_task(self.web_server.start(host=host, port=port))

        try:
            while self.running and not server_task.done():
                await asyncio.sleep(1)
        finally:
            await self.stop()
            await server_task

    async def stop(self) -> None:
        logger.info("🛑 Stopping lottery application")
        self.running = False
        await self.web_server.stop()


async def main() -> None:
    load_dotenv(Path.cwd() / ".env")
    app = LotteryApp(load_config())

    signal.signal(signal.SIGINT, app._handle_signal)
    signal.signal(signal.SIGTERM, app._handle_signal)

    await app.start()


def run() -> None:
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("🛑 Application interrupted by user")
    except Exception as e:
        logger.exception(f"❌ Application failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    run()
