#!/usr/bin/env python3
"""
Lottery System Demo

Plays one successful round and one timed-out round (refunds + restart)
against the in-memory escrow and the local VRF coordinator, using freshly
generated accounts and a simulated clock.
"""

import argparse
import random

from eth_account import Account
from web3 import Web3

from vrf_lottery.chain.escrow import InMemoryEscrow
from vrf_lottery.chain.vrf import LocalVRFCoordinator
from vrf_lottery.lottery.automation import AutomationAdapter
from vrf_lottery.lottery.engine import LotteryEngine
from vrf_lottery.lottery.models import LotteryConfig, RandomnessParams


class SimulatedClock:
    def __init__(self, start: int = 1_700_000_000):
        self.now = start

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


class LotteryDemo:
    def __init__(self, players: int, seed: int):
        self.rng = random.Random(seed)
        self.clock = SimulatedClock()
        self.config = LotteryConfig(
            entrance_fee=Web3.to_wei("0.01", "ether"),
            interval=30,
            draw_timeout=600,
            randomness=RandomnessParams(key_hash="0x" + "ab" * 32, subscription_id=1),
        )
        self.escrow = InMemoryEscrow()
        self.coordinator = LocalVRFCoordinator()
        self.engine = LotteryEngine(self.config, self.escrow, self.coordinator, clock=self.clock)
        self.automation = AutomationAdapter(self.engine)
        self.users = [Account.create().address for _ in range(players)]

    def print_header(self, title):
        print(f"\n{'='*60}")
        print(f"🎯 {title}")
        print('='*60)

    def print_state(self):
        state = self.engine.get_state()
        print(f"💡 round={state['round_id']} phase={state['phase']} pot={Web3.from_wei(state['pot'], 'ether')} ETH "
              f"players={state['participant_count']} held={Web3.from_wei(state['held_balance'], 'ether')} ETH")

    def enter_everyone(self):
        for address in self.users:
            self.engine.enter(address, self.config.entrance_fee)
            print(f"✅ {address} entered")
        self.print_state()

    def successful_round(self):
        self.print_header("Round with a winner")
        self.enter_everyone()

        upkeep_needed, _ = self.automation.check_upkeep()
        print(f"💡 upkeep needed before interval: {upkeep_needed}")
        self.clock.advance(self.config.interval)
        upkeep_needed, perform_data = self.automation.check_upkeep()
        print(f"💡 upkeep needed after interval: {upkeep_needed}")

        request_id = self.automation.perform_upkeep(perform_data)
        print(f"✅ randomness requested: {request_id}")
        self.print_state()

        self.coordinator.fulfill(request_id, self.engine, value=self.rng.getrandbits(256))
        print(f"🏆 winner: {self.engine.recent_winner}")
        self.print_state()

    def failed_round(self):
        self.print_header("Round whose randomness never arrives")
        self.enter_everyone()
        self.clock.advance(self.config.interval)
        request_id = self.automation.perform_upkeep()
        self.coordinator.drop(request_id)
        print(f"⚠️  randomness request {request_id} lost")

        self.clock.advance(self.config.draw_timeout)
        self.engine.declare_failed()
        self.print_state()

        for address in self.users:
            amount = self.engine.refund(address)
            print(f"✅ {address} refunded {Web3.from_wei(amount, 'ether')} ETH")
        self.engine.restart()
        self.print_state()

    def run(self):
        self.successful_round()
        self.failed_round()
        print("\n📜 Activity feed:")
        for event in self.engine.events.get_live_feed():
            print(f"  [{event.event_type}] {event.message}")


def main():
    parser = argparse.ArgumentParser(description="Run a scripted lottery simulation")
    parser.add_argument("--players", type=int, default=3, help="number of generated participants")
    parser.add_argument("--seed", type=int, default=7, help="seed for the simulated randomness")
    args = parser.parse_args()
    LotteryDemo(args.players, args.seed).run()


if __name__ == "__main__":
    main()
