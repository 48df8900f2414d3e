"""
Biller Directory Module

Admin-maintained directory of billers and the payment records produced by
bill payments. Moving the money is the ledger's job; this module owns the
biller records and the BillPayment receipts.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import random
import time
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .context import RequestContext
from .errors import DuplicateRequest, NotFound, ValidationError
from .logging_config import get_logger, log_action
from .money import to_decimal


logger = get_logger("saxon.billers")


class BillerCategory(Enum):
    UTILITY = "utility"
    CREDIT_CARD = "credit card"
    LOAN = "loan"
    INTERNET = "internet"
    PHONE = "phone"
    OTHER = "other"


@dataclass
class Biller(StorageRecord):
    name: str
    category: BillerCategory
    account_number: str
    description: str = ""
    is_active: bool = True

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Biller':
        data = dict(data)
        data['category'] = BillerCategory(data['category'])
        return super().from_dict(data)


@dataclass
class BillPayment(StorageRecord):
    account_id: str
    biller_id: str
    biller_name: str
    amount: Decimal
    reference: str  # BILL-<epoch millis>-<0..999>
    status: str
    description: str
    transaction_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'BillPayment':
        data = dict(data)
        data['amount'] = to_decimal(data['amount'])
        return super().from_dict(data)


class BillerDirectory:
    """
    Biller administration and bill payment receipts
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail, accounts):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts = accounts
        self.billers_table = "billers"
        self.payments_table = "bill_payments"

    def _save_biller(self, biller: Biller) -> None:
        self.storage.save(self.billers_table, biller.id, biller.to_dict())

    def add_biller(self, ctx: RequestContext, name: str, category, account_number: str,
                   description: str = "") -> Biller:
        """
        Add an active biller (admin only).

        Raises:
            DuplicateRequest: A biller with this account number exists
        """
        self.accounts.require_admin(ctx)

        if not name or not account_number:
            raise ValidationError("Biller name and account number are required")
        try:
            category = BillerCategory(category.value if isinstance(category, BillerCategory) else category)
        except ValueError:
            raise ValidationError(f"Unknown biller category: {category}")

        with self.storage.atomic():
            if self.storage.find(self.billers_table, {"account_number": account_number}):
                raise DuplicateRequest("Biller with this account number already exists")

            now = datetime.now(timezone.utc)
            biller = Biller(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                name=name,
                category=category,
                account_number=account_number,
                description=description or ""
            )
            self._save_biller(biller)
            self.audit_trail.log_event(
                event_type=AuditEventType.BILLER_CREATED,
                entity_type="biller",
                entity_id=biller.id,
                metadata={"name": name, "category": category.value},
                user_id=ctx.account_id
            )

        log_action(logger, "info", "Biller added", user_id=ctx.account_id,
                   action="add_biller", resource=biller.id,
                   correlation_id=ctx.correlation_id)
        return biller

    def toggle_biller(self, ctx: RequestContext, biller_id: str) -> Biller:
        """Flip is_active (admin only)"""
        self.accounts.require_admin(ctx)

        with self.storage.atomic():
            biller = self.require_biller(biller_id)
            biller.is_active = not biller.is_active
            biller.updated_at = datetime.now(timezone.utc)
            self._save_biller(biller)
            self.audit_trail.log_event(
                event_type=AuditEventType.BILLER_UPDATED,
                entity_type="biller",
                entity_id=biller.id,
                metadata={"is_active": biller.is_active},
                user_id=ctx.account_id
            )

        log_action(logger, "info", "Biller status updated", user_id=ctx.account_id,
                   action="toggle_biller", resource=biller.id,
                   correlation_id=ctx.correlation_id,
                   extra={"is_active": biller.is_active})
        return biller

    def delete_biller(self, ctx: RequestContext, biller_id: str) -> None:
        """Delete a biller (admin only); existing payment receipts are kept"""
        self.accounts.require_admin(ctx)

        with self.storage.atomic():
            if not self.storage.delete(self.billers_table, biller_id):
                raise NotFound(f"Biller {biller_id} not found")
            self.audit_trail.log_event(
                event_type=AuditEventType.BILLER_DELETED,
                entity_type="biller",
                entity_id=biller_id,
                user_id=ctx.account_id
            )

        log_action(logger, "info", "Biller deleted", user_id=ctx.account_id,
                   action="delete_biller", resource=biller_id,
                   correlation_id=ctx.correlation_id)

    def get_biller(self, biller_id: str) -> Optional[Biller]:
        data = self.storage.load(self.billers_table, biller_id) if biller_id else None
        if data:
            return Biller.from_dict(data)
        return None

    def require_biller(self, biller_id: str) -> Biller:
        biller = self.get_biller(biller_id)
        if not biller:
            raise NotFound(f"Biller {biller_id} not found")
        return biller

    def require_active_biller(self, biller_id: str) -> Biller:
        """Biller that can accept payments; inactive billers count as missing"""
        biller = self.get_biller(biller_id)
        if not biller or not biller.is_active:
            raise NotFound("Biller not found")
        return biller

    def _sorted(self, billers: List[Biller]) -> List[Biller]:
        return sorted(billers, key=lambda b: (b.category.value, b.name))

    def list_active(self) -> List[Biller]:
        """Active billers sorted by category then name"""
        return self._sorted([Biller.from_dict(d) for d in
                             self.storage.find(self.billers_table, {"is_active": True})])

    def list_all(self) -> List[Biller]:
        return self._sorted([Biller.from_dict(d) for d in self.storage.load_all(self.billers_table)])

    def _generate_reference(self) -> str:
        while True:
            reference = f"BILL-{int(time.time() * 1000)}-{random.randint(0, 999)}"
            if not self.storage.find(self.payments_table, {"reference": reference}):
                return reference

    def record_payment(self, account_id: str, biller: Biller, amount: Decimal,
                       description: str, transaction_id: str) -> BillPayment:
        """Write the receipt for a completed bill payment (inside the ledger's block)"""
        now = datetime.now(timezone.utc)
        payment = BillPayment(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            biller_id=biller.id,
            biller_name=biller.name,
            amount=amount,
            reference=self._generate_reference(),
            status="completed",
            description=description,
            transaction_id=transaction_id
        )
        self.storage.save(self.payments_table, payment.id, payment.to_dict())
        return payment

    def payment_history(self, account_id: str) -> List[BillPayment]:
        """Bill payments of account_id, newest first"""
        payments = [BillPayment.from_dict(d) for d in
                    self.storage.find(self.payments_table, {"account_id": account_id})]
        payments.sort(key=lambda p: p.created_at, reverse=True)
        return payments
