"""
Lottery exceptions.

Every rejection raised by the engine is a LotteryError subclass with a stable
``code`` so the HTTP layer can report it without string matching. A rejected
call never leaves partial state behind.
"""

from typing import Any, Dict, Optional


class LotteryError(Exception):
    """Base class for all lottery rejections."""

    code = "lottery_error"


class InvalidAddress(LotteryError):
    code = "invalid_address"

    def __init__(self, address):
        self.address = address
        super().__init__(f"Invalid address: {address!r}")


# ============ Phase guard ============

class PhaseGuardViolation(LotteryError):
    """Operation invoked while the current phase forbids it."""

    code = "phase_guard_violation"

    def __init__(self, operation: str, phase):
        self.operation = operation
        self.phase = phase
        super().__init__(f"Cannot {operation} while lottery is {phase.name}")


class LotteryNotOpen(PhaseGuardViolation):
    code = "lottery_not_open"


class LotteryNotDrawing(PhaseGuardViolation):
    code = "lottery_not_drawing"


class LotteryNotFailed(PhaseGuardViolation):
    code = "lottery_not_failed"


# ============ Entry ============

class IncorrectEntranceFee(LotteryError):
    """Attached value differs from the fixed entrance fee."""

    code = "incorrect_entrance_fee"

    def __init__(self, expected: int, received: int):
        self.expected = expected
        self.received = received
        super().__init__(f"Entrance fee is exactly {expected} wei, received {received}")


class AlreadyEntered(LotteryError):
    code = "already_entered"

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"{address} already entered this round")


# ============ Preconditions ============

class PreconditionNotMet(LotteryError):
    code = "precondition_not_met"


class UpkeepNotNeeded(PreconditionNotMet):
    """Draw requested while the Open -> Drawing guard does not hold."""

    code = "upkeep_not_needed"

    def __init__(self, status, *, pot: int = 0, balance: int = 0, players: int = 0):
        self.status = status
        self.pot = pot
        self.balance = balance
        self.players = players
        super().__init__(
            f"Upkeep not needed (open={status.is_open}, interval_elapsed={status.interval_elapsed}, "
            f"players={players}, pot={pot}, balance={balance})"
        )

    def to_dict(self) -> Dict[str, Any]:
        payload = self.status.to_dict()
        payload.update({"pot": self.pot, "balance": self.balance, "players": self.players})
        return payload


class DrawTimeoutNotElapsed(PreconditionNotMet):
    code = "draw_timeout_not_elapsed"

    def __init__(self, remaining: int):
        self.remaining = remaining
        super().__init__(f"Draw timeout has not elapsed, {remaining}s remaining")


class NoRefundableBalance(PreconditionNotMet):
    code = "no_refundable_balance"

    def __init__(self, address: str):
        self.address = address
        super().__init__(f"{address} has nothing to refund")


class RefundsOutstanding(LotteryError):
    """Restart attempted while refundable balances remain."""

    code = "refunds_outstanding"

    def __init__(self, pot: int, outstanding: int):
        self.pot = pot
        self.outstanding = outstanding
        super().__init__(f"{outstanding} refunds totalling {pot} wei are still outstanding")


# ============ Randomness correlation ============

class RequestMismatch(LotteryError):
    """Randomness response does not match the outstanding request."""

    code = "request_mismatch"

    def __init__(self, request_id: int, outstanding: Optional[int]):
        self.request_id = request_id
        self.outstanding = outstanding
        super().__init__(f"Randomness response {request_id} does not match outstanding request {outstanding}")


# ============ Transfers ============

class TransferFailed(LotteryError):
    code = "transfer_failed"

    def __init__(self, recipient: str, amount: int, purpose: str):
        self.recipient = recipient
        self.amount = amount
        self.purpose = purpose
        super().__init__(f"{purpose} transfer of {amount} wei to {recipient} failed")


class PaymentNotVerified(LotteryError):
    """Entry not backed by a matching inbound transfer to the escrow."""

    code = "payment_not_verified"

    def __init__(self, sender: str, amount: int, reason: str):
        self.sender = sender
        self.amount = amount
        self.reason = reason
        super().__init__(f"Payment of {amount} wei from {sender} not verified: {reason}")
