"""Fund-safety properties checked over arbitrary operation sequences."""

from hypothesis import settings
from hypothesis import strategies as st
from hypothesis.stateful import RuleBasedStateMachine, invariant, rule

from conftest import DRAW_TIMEOUT, FEE, FakeClock, address
from vrf_lottery.chain.escrow import InMemoryEscrow
from vrf_lottery.chain.vrf import LocalVRFCoordinator
from vrf_lottery.lottery.engine import LotteryEngine
from vrf_lottery.lottery.errors import LotteryError, RequestMismatch
from vrf_lottery.lottery.models import LotteryConfig, Phase, RandomnessParams

PLAYERS = [address(n) for n in range(1, 6)]

players = st.sampled_from(PLAYERS)


class LotteryMachine(RuleBasedStateMachine):
    def __init__(self):
        super().__init__()
        self.clock = FakeClock()
        self.escrow = InMemoryEscrow()
        self.coordinator = LocalVRFCoordinator()
        self.config = LotteryConfig(
            entrance_fee=FEE,
            interval=30,
            draw_timeout=DRAW_TIMEOUT,
            randomness=RandomnessParams(key_hash="0x00", subscription_id=1),
        )
        self.engine = LotteryEngine(self.config, self.escrow, self.coordinator, clock=self.clock)
        self.paid_in = 0

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------
    @rule(player=players, overpay=st.sampled_from([0, 0, 0, 1, -1]))
    def enter(self, player, overpay):
        before = self.engine.pot
        try:
            self.engine.enter(player, FEE + overpay)
        except LotteryError:
            assert self.engine.pot == before
            return
        self.paid_in += FEE

    @rule(seconds=st.integers(min_value=0, max_value=DRAW_TIMEOUT + 60))
    def advance(self, seconds):
        self.clock.advance(seconds)

    @rule()
    def start_drawing(self):
        try:
            self.engine.start_drawing()
        except LotteryError:
            assert self.engine.phase != Phase.DRAWING or self.engine.outstanding_request_id is not None

    @rule(value=st.integers(min_value=0, max_value=2**256 - 1))
    def deliver_randomness(self, value):
        request_id = self.engine.outstanding_request_id
        if request_id is None:
            return
        try:
            self.coordinator.fulfill(request_id, self.engine, value=value)
        except LotteryError:
            assert self.engine.outstanding_request_id == request_id

    @rule(request_id=st.integers(min_value=0, max_value=50), value=st.integers(min_value=0))
    def deliver_stray_randomness(self, request_id, value):
        if request_id == self.engine.outstanding_request_id:
            return
        phase, pot = self.engine.phase, self.engine.pot
        try:
            self.engine.fulfill_randomness(request_id, value)
        except RequestMismatch:
            assert (self.engine.phase, self.engine.pot) == (phase, pot)
        else:
            raise AssertionError("stray randomness accepted")

    @rule()
    def declare_failed(self):
        try:
            self.engine.declare_failed()
        except LotteryError:
            pass

    @rule(player=players)
    def refund(self, player):
        try:
            self.engine.refund(player)
        except LotteryError:
            pass

    @rule()
    def restart(self):
        try:
            self.engine.restart()
        except LotteryError:
            pass

    @rule(player=players, reject=st.booleans())
    def toggle_recipient(self, player, reject):
        if reject:
            self.escrow.reject_transfers_to(player)
        else:
            self.escrow.accept_transfers_to(player)

    # ------------------------------------------------------------------
    # Invariants
    # ------------------------------------------------------------------
    @invariant()
    def phase_is_resting(self):
        assert self.engine.phase != Phase.COMPLETED

    @invariant()
    def held_balance_matches_pot(self):
        if self.engine.phase in (Phase.OPEN, Phase.DRAWING):
            assert self.escrow.balance() == self.engine.pot

    @invariant()
    def registry_matches_membership(self):
        participants = self.engine.participants
        assert len(participants) == len(set(participants))
        for player in PLAYERS:
            assert self.engine.has_entered(player) == (player in participants)

    @invariant()
    def refunds_only_visible_when_failed(self):
        if self.engine.phase != Phase.FAILED:
            assert all(self.engine.refundable_balance(p) == 0 for p in PLAYERS)

    @invariant()
    def no_stranded_funds(self):
        if self.engine.pot:
            assert self.engine.participants
        if self.engine.phase == Phase.FAILED:
            balances = {p: self.engine.refundable_balance(p) for p in PLAYERS}
            assert sum(balances.values()) == self.engine.pot
            assert {p for p, amount in balances.items() if amount} == set(self.engine.participants)

    @invariant()
    def value_is_conserved(self):
        paid_out = sum(amount for _, amount in self.escrow.sent)
        assert self.paid_in == paid_out + self.escrow.balance()

    def teardown(self):
        # Whatever state we ended in, the round must be recoverable to OPEN
        # with everything paid back out.
        for player in PLAYERS:
            self.escrow.accept_transfers_to(player)
        if self.engine.phase == Phase.DRAWING:
            self.clock.advance(DRAW_TIMEOUT)
            self.engine.declare_failed()
        if self.engine.phase == Phase.FAILED:
            for player in self.engine.participants:
                self.engine.refund(player)
            self.engine.restart()
        assert self.engine.phase == Phase.OPEN
        for player in self.engine.participants:
            assert self.engine.has_entered(player)
        assert self.paid_in == sum(amount for _, amount in self.escrow.sent) + self.engine.pot


TestLotteryFundSafety = LotteryMachine.TestCase
TestLotteryFundSafety.settings = settings(max_examples=60, stateful_step_count=40, deadline=None)
