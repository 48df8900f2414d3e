"""
Statements and Insights Module

Read-only views over the transaction log: account statements, spending
insights grouped by category, and the admin dashboard summary of pending
work.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any

from .accounts import AccountManager
from .billers import BillerDirectory
from .money import ZERO
from .transactions import Transaction, TransactionLog, TransactionStatus, TransactionType


SPENDING_CATEGORIES = {
    TransactionType.PAYMENT: "Bill Payments",
    TransactionType.TRANSFER: "Transfers",
}
OTHER_CATEGORY = "Other"


@dataclass
class Statement:
    """Account statement over an optional period"""
    account_id: str
    account_number: str
    balance: Decimal
    generated_at: datetime
    transactions: List[Transaction] = field(default_factory=list)
    period_start: Optional[datetime] = None
    period_end: Optional[datetime] = None

    @property
    def total_in(self) -> Decimal:
        return sum((t.amount for t in self.transactions
                    if not t.is_debit and t.status == TransactionStatus.COMPLETED), ZERO)

    @property
    def total_out(self) -> Decimal:
        return sum((t.amount for t in _spending(self.transactions)), ZERO)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "account_id": self.account_id,
            "account_number": self.account_number,
            "balance": str(self.balance),
            "generated_at": self.generated_at.isoformat(),
            "period_start": self.period_start.isoformat() if self.period_start else None,
            "period_end": self.period_end.isoformat() if self.period_end else None,
            "total_in": str(self.total_in),
            "total_out": str(self.total_out),
            "transactions": [t.to_dict() for t in self.transactions]
        }


def _spending(transactions: List[Transaction]) -> List[Transaction]:
    # Rejected transfers were refunded; failed ones never moved money
    return [t for t in transactions
            if t.is_debit and t.status in (TransactionStatus.COMPLETED, TransactionStatus.PENDING)]


def _as_utc(moment: Optional[datetime]) -> Optional[datetime]:
    """Naive datetimes are taken to be UTC"""
    if moment is not None and moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment


class StatementService:
    """
    Statements for customers and summaries for admins
    """

    def __init__(
        self,
        accounts: AccountManager,
        transactions: TransactionLog,
        billers: Optional[BillerDirectory] = None,
        workflows: Optional[Dict[str, Any]] = None
    ):
        self.accounts = accounts
        self.transactions = transactions
        self.billers = billers
        # name -> ApprovalWorkflow, e.g. {"cards": ..., "kyc": ..., "loans": ...}
        self.workflows = workflows or {}

    def statement(self, account_id: str, start: Optional[datetime] = None,
                  end: Optional[datetime] = None) -> Statement:
        """
        Transactions owned by account_id, newest first, optionally limited to
        created_at within [start, end].
        """
        start, end = _as_utc(start), _as_utc(end)
        account = self.accounts.require_account(account_id)
        transactions = self.transactions.list_for_account(account_id)
        if start:
            transactions = [t for t in transactions if t.created_at >= start]
        if end:
            transactions = [t for t in transactions if t.created_at <= end]

        return Statement(
            account_id=account.id,
            account_number=account.account_number,
            balance=account.balance,
            generated_at=datetime.now(timezone.utc),
            transactions=transactions,
            period_start=start,
            period_end=end
        )

    def insights(self, account_id: str) -> Dict[str, Any]:
        """
        Money that left the account grouped into "Bill Payments",
        "Transfers" and "Other", plus the total spent.
        """
        self.accounts.require_account(account_id)
        spending = _spending(self.transactions.list_for_account(account_id))

        categories: Dict[str, Decimal] = {}
        for transaction in spending:
            category = SPENDING_CATEGORIES.get(transaction.transaction_type, OTHER_CATEGORY)
            categories[category] = categories.get(category, ZERO) + transaction.amount

        total_spent = sum((t.amount for t in spending), ZERO)
        top_category = max(categories, key=categories.get) if categories else None

        return {
            "categories": categories,
            "total_spent": total_spent,
            "top_category": top_category,
            "transaction_count": len(spending)
        }

    def admin_summary(self) -> Dict[str, Any]:
        """Pending work and totals for the admin dashboard"""
        accounts = self.accounts.list_accounts()
        summary = {
            "total_accounts": len(accounts),
            "total_balance": sum((a.balance for a in accounts), ZERO),
            "pending_transfers": len(self.transactions.list_pending_transfers()),
        }
        for name, workflow in self.workflows.items():
            summary[f"pending_{name}"] = workflow.count_pending()
        if self.billers:
            summary["billers"] = len(self.billers.list_all())
        return summary
