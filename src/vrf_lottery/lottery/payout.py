"""
Payout / refund executor - outbound transfers out of the escrow
"""

from vrf_lottery.chain.escrow import Escrow
from vrf_lottery.lottery.errors import TransferFailed
from vrf_lottery.utils.common import shorten_eth_address
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)


class PayoutExecutor:
    """Turns the escrow's boolean send into an exception on failure.

    The caller is responsible for undoing its own bookkeeping when
    TransferFailed propagates.
    """

    def __init__(self, escrow: Escrow):
        self._escrow = escrow

    def payout(self, recipient: str, amount: int) -> None:
        self._transfer(recipient, amount, "payout")

    def refund(self, recipient: str, amount: int) -> None:
        self._transfer(recipient, amount, "refund")

    def _transfer(self, recipient: str, amount: int, purpose: str) -> None:
        if not self._escrow.send(recipient, amount):
            logger.error(f"{purpose.capitalize()} of {amount} wei to {shorten_eth_address(recipient)} failed")
            raise TransferFailed(recipient, amount, purpose)
        logger.info(f"{purpose.capitalize()} of {amount} wei sent to {shorten_eth_address(recipient)}")
