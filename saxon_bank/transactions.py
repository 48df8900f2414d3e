"""
Transaction Log Module

Append-only record of every ledger operation. A record is immutable once it
reaches a terminal status; the only mutation ever applied is the single
pending -> completed/rejected flip of a pending transfer.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .errors import AlreadyProcessed, NotFound
from .locking import KeyedLocks
from .money import to_decimal


class TransactionType(Enum):
    """Types of ledger transactions"""
    DEPOSIT = "deposit"
    WITHDRAWAL = "withdrawal"
    TRANSFER = "transfer"
    PAYMENT = "payment"


class TransactionStatus(Enum):
    """States of a transaction"""
    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REJECTED = "rejected"


class TransactionKind(Enum):
    """What produced the transaction, finer than TransactionType"""
    PLAIN = "plain"
    TRANSFER_DEBIT = "transfer_debit"      # sender leg, pending until resolved
    TRANSFER_CREDIT = "transfer_credit"    # recipient leg written on approval
    TRANSFER_REFUND = "transfer_refund"    # compensating credit on rejection
    LOAN_DISBURSEMENT = "loan_disbursement"
    ADMIN_ADJUSTMENT = "admin_adjustment"
    BILL_PAYMENT = "bill_payment"
    REFERRAL_REWARD = "referral_reward"


TERMINAL_STATUSES = (TransactionStatus.COMPLETED, TransactionStatus.FAILED, TransactionStatus.REJECTED)


@dataclass
class Transaction(StorageRecord):
    """
    Ledger transaction owned by ``account_id``.

    Counterparties are recorded by account number (as shown to customers) and
    by id. ``related_transaction_id`` links a credit or refund leg to the
    pending transfer it resolves.
    """
    account_id: str
    transaction_type: TransactionType
    amount: Decimal
    status: TransactionStatus
    description: str
    kind: TransactionKind = TransactionKind.PLAIN
    from_account: Optional[str] = None
    to_account: Optional[str] = None
    from_account_id: Optional[str] = None
    to_account_id: Optional[str] = None
    related_transaction_id: Optional[str] = None
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    metadata: Optional[Dict[str, Any]] = None

    def __post_init__(self):
        if self.amount <= 0:
            raise ValueError("Transaction amount must be positive")

    @property
    def is_pending(self) -> bool:
        return self.status == TransactionStatus.PENDING

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES

    @property
    def is_debit(self) -> bool:
        """Whether this record took money out of the owner's balance"""
        return self.transaction_type in (TransactionType.WITHDRAWAL, TransactionType.PAYMENT) or \
            self.kind == TransactionKind.TRANSFER_DEBIT

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Transaction':
        data = dict(data)
        data['transaction_type'] = TransactionType(data['transaction_type'])
        data['status'] = TransactionStatus(data['status'])
        data['kind'] = TransactionKind(data.get('kind', TransactionKind.PLAIN.value))
        data['amount'] = to_decimal(data['amount'])
        data['processed_at'] = parse_datetime(data.get('processed_at'))
        return super().from_dict(data)


class TransactionLog:
    """
    Append-only transaction store with a check-and-set for pending transfers
    """

    def __init__(self, storage: StorageInterface):
        self.storage = storage
        self.transactions_table = "transactions"
        # Per-transaction locks guarding pending -> terminal
        self.locks = KeyedLocks()

    def append(
        self,
        account_id: str,
        transaction_type: TransactionType,
        amount: Decimal,
        description: str,
        status: TransactionStatus = TransactionStatus.COMPLETED,
        kind: TransactionKind = TransactionKind.PLAIN,
        **counterparties
    ) -> Transaction:
        """
        Append a new transaction record.

        Completed records are stamped processed_at immediately. Extra keyword
        arguments populate the optional Transaction fields (from_account,
        to_account, related_transaction_id, processed_by, metadata, ...).
        """
        now = datetime.now(timezone.utc)
        transaction = Transaction(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            transaction_type=transaction_type,
            amount=amount,
            status=status,
            description=description,
            kind=kind,
            **counterparties
        )
        if status != TransactionStatus.PENDING and transaction.processed_at is None:
            transaction.processed_at = now

        self._save_transaction(transaction)
        return transaction

    def _save_transaction(self, transaction: Transaction) -> None:
        self.storage.save(self.transactions_table, transaction.id, transaction.to_dict())

    def get(self, transaction_id: str) -> Optional[Transaction]:
        data = self.storage.load(self.transactions_table, transaction_id)
        if data:
            return Transaction.from_dict(data)
        return None

    def require(self, transaction_id: str) -> Transaction:
        transaction = self.get(transaction_id) if transaction_id else None
        if not transaction:
            raise NotFound(f"Transaction {transaction_id} not found")
        return transaction

    def find(self, **criteria) -> List[Transaction]:
        """Find transactions matching field values, newest first"""
        filters = {k: (v.value if isinstance(v, Enum) else v) for k, v in criteria.items()}
        found = [Transaction.from_dict(d) for d in self.storage.find(self.transactions_table, filters)]
        found.sort(key=lambda t: t.created_at, reverse=True)
        return found

    def list_for_account(self, account_id: str, limit: Optional[int] = None) -> List[Transaction]:
        """Transactions owned by account_id, newest first"""
        transactions = self.find(account_id=account_id)
        if limit:
            transactions = transactions[:limit]
        return transactions

    def list_pending_transfers(self) -> List[Transaction]:
        return self.find(
            transaction_type=TransactionType.TRANSFER,
            status=TransactionStatus.PENDING,
            kind=TransactionKind.TRANSFER_DEBIT
        )

    def list_all(self, limit: Optional[int] = None) -> List[Transaction]:
        transactions = self.find()
        if limit:
            transactions = transactions[:limit]
        return transactions

    def mark_resolved(self, transaction_id: str, status: TransactionStatus,
                      processed_by: Optional[str]) -> Transaction:
        """
        Check-and-set pending -> terminal.

        The caller holds ``self.locks.hold(transaction_id)``.

        Raises:
            NotFound: Unknown transaction id
            AlreadyProcessed: Transaction already terminal
        """
        transaction = self.require(transaction_id)
        if not transaction.is_pending:
            raise AlreadyProcessed(
                f"Transaction {transaction_id} already {transaction.status.value}"
            )

        now = datetime.now(timezone.utc)
        transaction.status = status
        transaction.processed_by = processed_by
        transaction.processed_at = now
        transaction.updated_at = now
        self._save_transaction(transaction)
        return transaction
