"""
settlement.py - Integer Double-Entry Payment Ledger

PaymentLedger is the in-memory reference implementation of the
AtomicSettlement protocol. It moves payment units between accounts and is
the only place in the package where account balances change.

Key responsibilities:
    - Applies a batch of transfers atomically (all transfers or none)
    - Validates the whole batch (registration, non-negative balances, u64
      bounds) before applying any of it
    - Logs every applied batch as a SettlementRecord with a sequence number
      and a content hash of its transfers
    - Rejects re-use of a settlement id (idempotency)
    - Reverses an applied batch for compensation
    - Conservation: the balances of all accounts, including the system
      account, always sum to zero
"""

from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Set, Tuple
import hashlib
import logging
import threading

from .core import (
    U64_MAX, SYSTEM_ACCOUNT,
    Transfer,
    ArithmeticOverflow, InsufficientFunds, AccountNotRegistered, DuplicateSettlement,
)

logger = logging.getLogger(__name__)


# ============================================================================
# SETTLEMENT RECORDS
# ============================================================================

@dataclass(frozen=True, slots=True)
class SettlementRecord:
    """
    An applied settlement batch.

    Attributes:
        settlement_id: Caller-supplied or generated batch id
        sequence: Monotonic position in the settlement log
        transfers: Transfers in the order they were applied
        content_hash: sha256 over the canonical form of the transfers
        reverses: Id of the batch this one compensates, if any
    """
    settlement_id: str
    sequence: int
    transfers: Tuple[Transfer, ...]
    content_hash: str
    reverses: Optional[str] = None

    @property
    def total(self) -> int:
        return sum(t.amount for t in self.transfers)

    def __repr__(self) -> str:
        return (f"SettlementRecord(#{self.sequence} {self.settlement_id}: "
                f"{len(self.transfers)} transfers, total={self.total})")


def _canonicalize(value: Any) -> str:
    """Deterministic string form of a value for hashing."""
    if value is None:
        return "null"
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return f"N:{value}"
    if isinstance(value, str):
        return f"S:{value}"
    if isinstance(value, Transfer):
        return "T:" + _canonicalize((value.source, value.dest, value.amount, value.memo))
    if isinstance(value, dict):
        items = sorted(value.items(), key=lambda kv: str(kv[0]))
        serialized = ",".join(f"{_canonicalize(k)}:{_canonicalize(v)}" for k, v in items)
        return f"{{{serialized}}}"
    if isinstance(value, (list, tuple)):
        serialized = ",".join(_canonicalize(item) for item in value)
        return f"[{serialized}]"
    raise TypeError(f"Cannot canonicalize {type(value).__name__}")


def compute_content_hash(transfers: Sequence[Transfer]) -> str:
    """
    Content hash of a transfer batch.

    Order matters: the same transfers applied in a different order are a
    different batch.
    """
    return hashlib.sha256(_canonicalize(tuple(transfers)).encode("utf-8")).hexdigest()


# ============================================================================
# PAYMENT LEDGER
# ============================================================================

class PaymentLedger:
    """
    Double-entry payment ledger with atomic batches and an audit trail.

    Accounts hold non-negative integer balances. SYSTEM_ACCOUNT issues units
    through deposit() and is exempt from the non-negative check, so its
    balance is minus the total issued.

    Thread Safety:
        All public methods hold one internal lock; a batch is applied and
        logged as a single step.

    Example:
        payments = PaymentLedger("main")
        payments.register_account("alice")
        payments.deposit("alice", 5_000_000)
        payments.settle([Transfer("alice", "bob", 1_000_000)])
    """

    def __init__(self, name: str = "payments", verbose: bool = False,
                 auto_register_recipients: bool = True):
        """
        Create a payment ledger.

        Args:
            name: Ledger identifier, used in generated settlement ids
            verbose: Report applied and rejected batches at INFO/WARNING
                     instead of DEBUG
            auto_register_recipients: Register unknown destination accounts
                                      on first credit. Sources must always
                                      be registered.
        """
        self.name = name
        self.verbose = verbose
        self.auto_register_recipients = auto_register_recipients
        self.balances: Dict[str, int] = {SYSTEM_ACCOUNT: 0}
        self.registered_accounts: Set[str] = {SYSTEM_ACCOUNT}
        self.settlement_log: List[SettlementRecord] = []
        self._by_id: Dict[str, SettlementRecord] = {}
        self._reversed: Set[str] = set()
        self._next_sequence = 0
        self._lock = threading.RLock()

    # ========================================================================
    # REGISTRATION
    # ========================================================================

    def register_account(self, account_id: str) -> str:
        """
        Register a new account with a zero balance.

        Raises:
            ValueError: If the account id is empty or already registered
        """
        if not account_id or not account_id.strip():
            raise ValueError("account_id cannot be empty")
        with self._lock:
            if account_id in self.registered_accounts:
                raise ValueError(f"Account {account_id} already registered")
            self.registered_accounts.add(account_id)
            self.balances[account_id] = 0
            return account_id

    def is_registered(self, account_id: str) -> bool:
        return account_id in self.registered_accounts

    def list_accounts(self) -> List[str]:
        return sorted(self.registered_accounts)

    # ========================================================================
    # Settlement PROTOCOL
    # ========================================================================

    def available(self, account_id: str) -> int:
        """
        Spendable balance of an account.

        Raises:
            AccountNotRegistered: If the account is unknown
        """
        with self._lock:
            if account_id not in self.registered_accounts:
                raise AccountNotRegistered(f"Account {account_id} not registered")
            return self.balances[account_id]

    def transfer(self, source: str, dest: str, amount: int) -> None:
        """Move amount from source to dest as a single-transfer batch."""
        self.settle([Transfer(source, dest, amount)])

    def deposit(self, account_id: str, amount: int) -> str:
        """Issue new payment units to an account from SYSTEM_ACCOUNT."""
        with self._lock:
            if account_id not in self.registered_accounts:
                self.register_account(account_id)
            return self.settle([Transfer(SYSTEM_ACCOUNT, account_id, amount, "deposit")])

    def settle(self, transfers: Sequence[Transfer], settlement_id: Optional[str] = None) -> str:
        """
        Apply a batch of transfers atomically.

        Every transfer is validated against the balances that result from
        the whole batch; nothing is applied unless the batch is valid.
        An empty batch moves nothing but is logged like any other, so its
        id is never handed out twice and can be reversed.

        Args:
            transfers: Transfers to apply, in order
            settlement_id: Optional idempotency key for the batch

        Returns:
            The settlement id of the applied batch

        Raises:
            DuplicateSettlement: If settlement_id was already applied
            AccountNotRegistered: If a source (or, without auto-registration,
                                  a destination) is unknown
            InsufficientFunds: If any account would go negative
            ArithmeticOverflow: If any balance would exceed u64
        """
        transfers = tuple(transfers)
        with self._lock:
            if settlement_id is not None and settlement_id in self._by_id:
                self._report_rejected(settlement_id, "duplicate settlement id")
                raise DuplicateSettlement(f"Settlement {settlement_id} already applied")

            sequence = self._next_sequence
            sid = settlement_id or self._generate_settlement_id(sequence)

            new_accounts = self._validate(sid, transfers)

            for account_id in new_accounts:
                self.registered_accounts.add(account_id)
                self.balances[account_id] = 0
            for t in transfers:
                self.balances[t.source] -= t.amount
                self.balances[t.dest] += t.amount

            record = SettlementRecord(
                settlement_id=sid,
                sequence=sequence,
                transfers=transfers,
                content_hash=compute_content_hash(transfers),
                reverses=self._reversal_target(sid),
            )
            self._next_sequence += 1
            self.settlement_log.append(record)
            self._by_id[sid] = record
            self._report_applied(record)
            return sid

    def reverse(self, settlement_id: str) -> str:
        """
        Apply the inverse of an applied batch, in reverse transfer order.

        Raises:
            KeyError: If no batch with that id was applied
            DuplicateSettlement: If the batch was already reversed
            InsufficientFunds: If a recipient no longer holds what it received
        """
        with self._lock:
            record = self._by_id.get(settlement_id)
            if record is None:
                raise KeyError(f"Unknown settlement {settlement_id}")
            if settlement_id in self._reversed:
                raise DuplicateSettlement(f"Settlement {settlement_id} already reversed")
            inverse = [t.reversed() for t in reversed(record.transfers)]
            sid = self.settle(inverse, settlement_id=f"reverse:{settlement_id}")
            self._reversed.add(settlement_id)
            return sid

    # ========================================================================
    # AUDIT
    # ========================================================================

    def get_record(self, settlement_id: str) -> Optional[SettlementRecord]:
        return self._by_id.get(settlement_id)

    def total_supply(self) -> int:
        """Sum of all balances, system account included. Always 0."""
        with self._lock:
            return sum(self.balances[a] for a in sorted(self.registered_accounts))

    def verify_conservation(self) -> Dict[str, Any]:
        """
        Verify that payment units are conserved.

        Returns:
            Dict with keys:
            - 'valid': bool - True if balances sum to 0 and none is negative
            - 'issued': int - Units issued by the system account
            - 'held': int - Units held by all other accounts
            - 'negative': List[str] - Non-system accounts below zero
        """
        with self._lock:
            issued = -self.balances[SYSTEM_ACCOUNT]
            held = sum(b for a, b in sorted(self.balances.items()) if a != SYSTEM_ACCOUNT)
            negative = sorted(a for a, b in self.balances.items()
                              if a != SYSTEM_ACCOUNT and b < 0)
            return {
                'valid': issued == held and not negative,
                'issued': issued,
                'held': held,
                'negative': negative,
            }

    # ========================================================================
    # INTERNALS
    # ========================================================================

    def _generate_settlement_id(self, sequence: int) -> str:
        return f"settle:{self.name}:{sequence:012d}"

    @staticmethod
    def _reversal_target(settlement_id: str) -> Optional[str]:
        prefix = "reverse:"
        return settlement_id[len(prefix):] if settlement_id.startswith(prefix) else None

    def _validate(self, sid: str, transfers: Tuple[Transfer, ...]) -> Set[str]:
        """Check a batch against current balances; return accounts to create."""
        new_accounts: Set[str] = set()
        for t in transfers:
            if t.source not in self.registered_accounts:
                self._report_rejected(sid, f"account not registered: {t.source}")
                raise AccountNotRegistered(f"Account {t.source} not registered")
            if t.dest not in self.registered_accounts:
                if not self.auto_register_recipients:
                    self._report_rejected(sid, f"account not registered: {t.dest}")
                    raise AccountNotRegistered(f"Account {t.dest} not registered")
                new_accounts.add(t.dest)

        net: Dict[str, int] = {}
        for t in transfers:
            net[t.source] = net.get(t.source, 0) - t.amount
            net[t.dest] = net.get(t.dest, 0) + t.amount

        for account_id, delta in sorted(net.items()):
            # SYSTEM_ACCOUNT is exempt from balance validation
            if account_id == SYSTEM_ACCOUNT:
                continue
            proposed = self.balances.get(account_id, 0) + delta
            if proposed < 0:
                self._report_rejected(sid, f"{account_id}: {proposed} < 0")
                raise InsufficientFunds(
                    f"{account_id} holds {self.balances.get(account_id, 0)}, needs {-delta}"
                )
            if proposed > U64_MAX:
                self._report_rejected(sid, f"{account_id}: balance exceeds u64")
                raise ArithmeticOverflow(f"{account_id} balance {proposed} exceeds u64")
        return new_accounts

    def _report_applied(self, record: SettlementRecord) -> None:
        level = logging.INFO if self.verbose else logging.DEBUG
        logger.log(level, "APPLIED %r %s", record, list(record.transfers))

    def _report_rejected(self, sid: str, reason: str) -> None:
        level = logging.WARNING if self.verbose else logging.DEBUG
        logger.log(level, "REJECTED %s: %s", sid, reason)
