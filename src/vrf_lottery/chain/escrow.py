"""Escrow backends: where entrance fees are held and how prizes leave.

The engine only relies on three things: the balance currently held for the
lottery, crediting an inbound entry, and an all-or-nothing outbound send that
reports success as a boolean.
"""

from __future__ import annotations

import re
import time
from decimal import Decimal
from typing import Any, Dict, List, Optional, Set, Tuple

from eth_account import Account
from web3 import Web3
from web3.exceptions import TimeExhausted, TransactionNotFound

from vrf_lottery.lottery.errors import PaymentNotVerified
from vrf_lottery.utils.common import normalize_address, shorten_eth_address
from vrf_lottery.utils.logger import get_logger

logger = get_logger(__name__)

TRANSFER_GAS = 21000

_TX_HASH = re.compile(r"0x[0-9a-f]{64}")


class Escrow:
    """Interface for the value-transfer collaborator."""

    # Whether ``receive`` checks that the funds actually arrived.
    verifies_payments = False

    def balance(self) -> int:
        raise NotImplementedError

    def receive(self, sender: str, amount: int, payment_ref: Optional[str] = None) -> None:
        raise NotImplementedError

    def send(self, recipient: str, amount: int) -> bool:
        raise NotImplementedError


class InMemoryEscrow(Escrow):
    """Process-local escrow used by tests, the demo and ``escrow.mode=memory``.

    Entries are taken at their word, so this backend must never face
    untrusted callers.
    """

    def __init__(self, initial_balance: int = 0) -> None:
        self._balance = initial_balance
        self._rejecting: Set[str] = set()
        self.sent: List[Tuple[str, int]] = []

    def balance(self) -> int:
        return self._balance

    def receive(self, sender: str, amount: int, payment_ref: Optional[str] = None) -> None:
        self._balance += amount

    def inject(self, amount: int) -> None:
        """Funds arriving outside of an entry, e.g. a direct donation."""
        self._balance += amount

    def reject_transfers_to(self, address: str) -> None:
        self._rejecting.add(normalize_address(address))

    def accept_transfers_to(self, address: str) -> None:
        self._rejecting.discard(normalize_address(address))

    def send(self, recipient: str, amount: int) -> bool:
        if recipient in self._rejecting or amount > self._balance:
            logger.warning("Transfer of %s wei to %s rejected", amount, shorten_eth_address(recipient))
            return False
        self._balance -= amount
        self.sent.append((recipient, amount))
        return True


class Web3Escrow(Escrow):
    """Escrow account on an EVM chain, driven through web3.py.

    Players pay the entrance fee on-chain to ``address`` and then register the
    entry with the transaction hash; ``receive`` checks that transaction before
    the entry counts. Only verified entries are lottery funds. Anything else on
    the account (gas top-ups, stray deposits, rejected payments) is a gas float
    that pays for outbound transfers.

    ``balance()`` is the verified amount that is actually spendable: it never
    exceeds what entries paid in, and without a gas funder it also keeps one
    transfer's worth of gas aside so that the whole pot can be sent. When
    ``escrow.gas_funder_key`` is set, that account tops the escrow up before
    every send instead.
    """

    verifies_payments = True

    def __init__(self, config: Dict[str, Any], w3: Optional[Web3] = None):
        escrow_cfg = config.get("escrow", {})
        self.rpc_url: str = escrow_cfg.get("rpc_url", "http://127.0.0.1:8545")
        self.rpc_timeout = float(escrow_cfg.get("rpc_timeout", 10.0))
        self.receipt_timeout = int(escrow_cfg.get("receipt_timeout", 180))
        self.poll_interval = float(escrow_cfg.get("poll_interval", 2.0))

        private_key = escrow_cfg.get("private_key")
        if not private_key:
            raise ValueError("escrow.private_key is required for the web3 escrow")
        self.account = Account.from_key(private_key)

        funder_key = escrow_cfg.get("gas_funder_key")
        self.gas_funder = Account.from_key(funder_key) if funder_key else None

        self._gas_price_override: Optional[int] = None
        gas_price_setting = escrow_cfg.get("gas_price_gwei")
        if gas_price_setting:
            self._gas_price_override = Web3.to_wei(Decimal(str(gas_price_setting)), "gwei")

        self._w3 = w3 or Web3(Web3.HTTPProvider(self.rpc_url, request_kwargs={"timeout": self.rpc_timeout}))
        chain_id = escrow_cfg.get("chain_id")
        self.chain_id = int(chain_id) if chain_id else int(self._w3.eth.chain_id)

        self._accounted = 0
        self._used_payments: Set[str] = set()
        logger.info("Escrow account loaded: %s (chain id %s)", self.account.address, self.chain_id)

    @property
    def address(self) -> str:
        return self.account.address

    @property
    def accounted(self) -> int:
        """Verified entry funds not yet paid back out."""
        return self._accounted

    def _gas_price(self) -> int:
        return int(self._gas_price_override or self._w3.eth.gas_price)

    def gas_allowance(self) -> int:
        """Gas held back from ``balance()`` for the next outbound transfer."""
        if self.gas_funder is not None:
            return 0
        return TRANSFER_GAS * self._gas_price()

    def balance(self) -> int:
        spendable = int(self._w3.eth.get_balance(self.address)) - self.gas_allowance()
        return max(0, min(spendable, self._accounted))

    # ------------------------------------------------------------------
    # Inbound
    # ------------------------------------------------------------------
    def receive(self, sender: str, amount: int, payment_ref: Optional[str] = None) -> None:
        if not payment_ref:
            raise PaymentNotVerified(sender, amount, "no transaction hash given")
        tx_hash = Web3.to_hex(hexstr=payment_ref)
        if not _TX_HASH.fullmatch(tx_hash):
            raise PaymentNotVerified(sender, amount, f"malformed transaction hash {payment_ref!r}")
        if tx_hash in self._used_payments:
            raise PaymentNotVerified(sender, amount, f"transaction {tx_hash} already paid for an entry")

        try:
            tx = self._w3.eth.get_transaction(tx_hash)
            receipt = self._w3.eth.get_transaction_receipt(tx_hash)
        except TransactionNotFound:
            raise PaymentNotVerified(sender, amount, f"transaction {tx_hash} is not mined") from None

        if int(receipt["status"]) != 1:
            raise PaymentNotVerified(sender, amount, f"transaction {tx_hash} reverted")
        if (tx.get("to") or "").lower() != self.address.lower():
            raise PaymentNotVerified(sender, amount, f"transaction {tx_hash} did not pay the escrow")
        if str(tx["from"]).lower() != sender.lower():
            raise PaymentNotVerified(sender, amount, f"transaction {tx_hash} was sent by {tx['from']}")
        if int(tx["value"]) != amount:
            raise PaymentNotVerified(sender, amount, f"transaction {tx_hash} carried {tx['value']} wei")

        self._used_payments.add(tx_hash)
        self._accounted += amount
        logger.info("Entry of %s wei from %s verified in %s", amount, shorten_eth_address(sender), tx_hash)

    # ------------------------------------------------------------------
    # Outbound
    # ------------------------------------------------------------------
    def _submit(self, account, recipient: str, amount: int, gas_price: int) -> str:
        txn = {
            "to": recipient,
            "value": amount,
            "gas": TRANSFER_GAS,
            "gasPrice": gas_price,
            "nonce": self._w3.eth.get_transaction_count(account.address),
            "chainId": self.chain_id,
        }
        signed = account.sign_transaction(txn)
        return Web3.to_hex(self._w3.eth.send_raw_transaction(signed.raw_transaction))

    def _await_receipt(self, tx_hash: str) -> Optional[Dict[str, Any]]:
        """Block until ``tx_hash`` is mined; None once the node no longer knows it.

        A broadcast transfer is never reported as failed while it can still be
        mined, otherwise the caller's rollback would let it be paid twice.
        """
        while True:
            try:
                return self._w3.eth.wait_for_transaction_receipt(tx_hash, timeout=self.receipt_timeout)
            except TimeExhausted:
                pass
            except Exception as exc:
                logger.warning("Polling receipt of %s failed: %s", tx_hash, exc)
                time.sleep(self.poll_interval)
                continue

            try:
                self._w3.eth.get_transaction(tx_hash)
            except TransactionNotFound:
                logger.error("Transfer %s was dropped before it was mined", tx_hash)
                return None
            except Exception as exc:
                logger.warning("Looking up pending transfer %s failed: %s", tx_hash, exc)
                time.sleep(self.poll_interval)
            logger.warning("Transfer %s still pending after %ss, waiting", tx_hash, self.receipt_timeout)

    def _top_up(self, needed: int, gas_price: int) -> None:
        shortfall = needed - int(self._w3.eth.get_balance(self.address))
        if shortfall <= 0:
            return
        tx_hash = self._submit(self.gas_funder, self.address, shortfall, gas_price)
        receipt = self._await_receipt(tx_hash)
        if receipt is None or int(receipt["status"]) != 1:
            raise RuntimeError(f"gas top-up {tx_hash} did not land")
        logger.info("Gas funder topped up escrow with %s wei in %s", shortfall, tx_hash)

    def send(self, recipient: str, amount: int) -> bool:
        if amount > self._accounted:
            logger.error("Refusing to send %s wei, only %s wei of entries are held", amount, self._accounted)
            return False

        try:
            gas_price = self._gas_price()
            if self.gas_funder is not None:
                self._top_up(amount + TRANSFER_GAS * gas_price, gas_price)
            tx_hash = self._submit(self.account, recipient, amount, gas_price)
        except Exception as exc:
            logger.error("Transfer of %s wei to %s failed: %s", amount, recipient, exc)
            return False

        receipt = self._await_receipt(tx_hash)
        if receipt is None:
            return False
        if int(receipt["status"]) != 1:
            logger.error("Transfer %s to %s reverted", tx_hash, recipient)
            return False

        self._accounted -= amount
        logger.info("Sent %s wei to %s in %s", amount, recipient, tx_hash)
        return True

    def health_check(self) -> Dict[str, Any]:
        try:
            return {
                "status": "healthy",
                "latestBlock": int(self._w3.eth.block_number),
                "accountedWei": self._accounted,
                "heldWei": int(self._w3.eth.get_balance(self.address)),
            }
        except Exception as exc:
            return {"status": "error", "detail": str(exc)}
