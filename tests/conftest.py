import pytest
from web3 import EthereumTesterProvider, Web3

from vrf_lottery.chain.escrow import InMemoryEscrow
from vrf_lottery.chain.vrf import LocalVRFCoordinator
from vrf_lottery.lottery.automation import AutomationAdapter
from vrf_lottery.lottery.engine import LotteryEngine
from vrf_lottery.lottery.models import LotteryConfig, RandomnessParams

FEE = Web3.to_wei("0.01", "ether")
INTERVAL = 30
DRAW_TIMEOUT = 600
START_TIME = 1_700_000_000


def address(n: int) -> str:
    return Web3.to_checksum_address(f"0x{n:040x}")


ALICE = address(0xA11CE)
BOB = address(0xB0B)
CAROL = address(0xCA201)


class FakeClock:
    def __init__(self, now: int = START_TIME):
        self.now = now

    def __call__(self) -> int:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += seconds


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def lottery_config():
    return LotteryConfig(
        entrance_fee=FEE,
        interval=INTERVAL,
        draw_timeout=DRAW_TIMEOUT,
        randomness=RandomnessParams(key_hash="0x" + "ab" * 32, subscription_id=7),
    )


@pytest.fixture
def escrow():
    return InMemoryEscrow()


@pytest.fixture
def chain():
    """In-process EVM chain with ten funded, unlocked accounts."""
    return Web3(EthereumTesterProvider())


def pay(chain, sender: str, recipient: str, value: int) -> str:
    tx_hash = chain.eth.send_transaction({"from": sender, "to": recipient, "value": value})
    chain.eth.wait_for_transaction_receipt(tx_hash)
    return Web3.to_hex(tx_hash)


@pytest.fixture
def coordinator():
    return LocalVRFCoordinator()


@pytest.fixture
def engine(lottery_config, escrow, coordinator, clock):
    return LotteryEngine(lottery_config, escrow, coordinator, clock=clock)


@pytest.fixture
def automation(engine):
    return AutomationAdapter(engine)


@pytest.fixture
def drawing(engine, clock):
    """Engine with ALICE and BOB entered and a drawing in progress; yields the request id."""
    engine.enter(ALICE, FEE)
    engine.enter(BOB, FEE)
    clock.advance(INTERVAL)
    return engine.start_drawing()


@pytest.fixture
def failed(engine, clock, drawing):
    clock.advance(DRAW_TIMEOUT)
    engine.declare_failed()
    return drawing
