"""
Referral Program Module

Registration with a valid referral code creates a pending referral linking
referrer and referred account. Completing it credits the referrer the reward
through the ledger (as a ``referral_reward`` deposit) exactly once.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .audit import AuditTrail, AuditEventType
from .accounts import Account, AccountManager
from .context import RequestContext
from .errors import AlreadyProcessed, NotFound
from .locking import KeyedLocks
from .logging_config import get_logger, log_action
from .money import ZERO, format_currency, to_decimal
from .notifications import NotificationCenter, NotificationKind
from .transactions import TransactionStatus


logger = get_logger("saxon.referrals")


class ReferralStatus(Enum):
    PENDING = "pending"
    COMPLETED = "completed"


@dataclass
class Referral(StorageRecord):
    referrer_id: str
    referred_id: str
    status: ReferralStatus = ReferralStatus.PENDING
    reward_amount: Decimal = Decimal('50.00')
    completed_at: Optional[datetime] = None
    reward_transaction_id: Optional[str] = None

    @property
    def referred_at(self) -> datetime:
        return self.created_at

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Referral':
        data = dict(data)
        data['status'] = ReferralStatus(data['status'])
        data['reward_amount'] = to_decimal(data['reward_amount'])
        data['completed_at'] = parse_datetime(data.get('completed_at'))
        return super().from_dict(data)


class ReferralProgram:
    """
    Records referrals at registration and pays rewards on completion
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        accounts: AccountManager,
        ledger,
        notifications: Optional[NotificationCenter] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts = accounts
        self.ledger = ledger
        self.notifications = notifications
        self.referrals_table = "referrals"
        self.locks = KeyedLocks()

    @property
    def reward_amount(self) -> Decimal:
        return to_decimal(self.accounts.config.referral_reward_amount)

    def _save(self, referral: Referral) -> None:
        self.storage.save(self.referrals_table, referral.id, referral.to_dict())

    def get(self, referral_id: str) -> Optional[Referral]:
        data = self.storage.load(self.referrals_table, referral_id) if referral_id else None
        if data:
            return Referral.from_dict(data)
        return None

    def require(self, referral_id: str) -> Referral:
        referral = self.get(referral_id)
        if not referral:
            raise NotFound(f"Referral {referral_id} not found")
        return referral

    def _find(self, **filters) -> List[Referral]:
        filters = {k: (v.value if isinstance(v, Enum) else v) for k, v in filters.items()}
        referrals = [Referral.from_dict(d) for d in self.storage.find(self.referrals_table, filters)]
        referrals.sort(key=lambda r: r.created_at, reverse=True)
        return referrals

    def list_for_referrer(self, referrer_id: str) -> List[Referral]:
        return self._find(referrer_id=referrer_id)

    def referral_of(self, referred_id: str) -> Optional[Referral]:
        """The referral that brought referred_id in, if any"""
        found = self._find(referred_id=referred_id)
        return found[0] if found else None

    def record_referral(self, referrer_id: str, referred_account: Account) -> Referral:
        """
        Create a pending referral and append the referred id to the referrer.

        Runs inside the registration block, which already holds the
        referrer's lock.
        """
        now = datetime.now(timezone.utc)
        with self.storage.atomic():
            referrer = self.accounts.require_account(referrer_id)
            referral = Referral(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                referrer_id=referrer.id,
                referred_id=referred_account.id,
                reward_amount=self.reward_amount
            )
            self._save(referral)

            referrer.referrals.append(referred_account.id)
            self.accounts.save_account(referrer)

            self.audit_trail.log_event(
                event_type=AuditEventType.REFERRAL_CREATED,
                entity_type="referral",
                entity_id=referral.id,
                metadata={"referrer_id": referrer.id, "referred_id": referred_account.id},
                user_id=referred_account.id
            )

        log_action(logger, "info", "Referral recorded", user_id=referred_account.id,
                   action="record_referral", resource=referral.id,
                   extra={"referrer_id": referrer_id})
        return referral

    def notify_new_referral(self, referral: Referral, referred_account: Account) -> None:
        if self.notifications:
            reward = referral.reward_amount
            shown = f"${int(reward)}" if reward == int(reward) else format_currency(reward)
            self.notifications.notify(
                referral.referrer_id, NotificationKind.REFERRAL, "New Referral!",
                f"{referred_account.name} signed up using your referral link. They'll need to "
                f"complete their first transaction for you to earn {shown}."
            )

    def complete_referral(self, ctx: RequestContext, referral_id: str) -> Referral:
        """
        Pay the referral reward and mark the referral completed.

        Raises:
            PermissionDenied: Caller is neither admin nor the system
            NotFound: Unknown referral
            AlreadyProcessed: Referral already completed
        """
        self.accounts.require_admin(ctx)

        with self.locks.hold(referral_id):
            referral = self.require(referral_id)
            if referral.status == ReferralStatus.COMPLETED:
                raise AlreadyProcessed(f"Referral {referral_id} already completed")

            with self.accounts.locks.hold(referral.referrer_id), self.storage.atomic():
                reward = self.ledger.credit_referral_reward(
                    ctx, referral.referrer_id, referral.reward_amount, referral.id
                )
                now = datetime.now(timezone.utc)
                referral.status = ReferralStatus.COMPLETED
                referral.completed_at = now
                referral.updated_at = now
                referral.reward_transaction_id = reward.id
                self._save(referral)

                self.audit_trail.log_event(
                    event_type=AuditEventType.REFERRAL_COMPLETED,
                    entity_type="referral",
                    entity_id=referral.id,
                    metadata={"referrer_id": referral.referrer_id,
                              "reward_amount": referral.reward_amount},
                    user_id=ctx.account_id
                )

        log_action(logger, "info", "Referral completed", user_id=ctx.account_id,
                   action="complete_referral", resource=referral.id,
                   correlation_id=ctx.correlation_id,
                   extra={"referrer_id": referral.referrer_id,
                          "reward_amount": str(referral.reward_amount)})
        if self.notifications:
            self.notifications.notify(
                referral.referrer_id, NotificationKind.REFERRAL, "Referral Reward Earned",
                f"You earned {format_currency(referral.reward_amount)} because someone you "
                "referred completed their first transaction."
            )
        return referral

    def on_first_completed_transaction(self, account_id: str) -> Optional[Referral]:
        """
        Complete the pending referral of account_id once it has a completed
        transaction. Returns the completed referral, or None when there is
        nothing to complete yet.
        """
        referral = self.referral_of(account_id)
        if not referral or referral.status != ReferralStatus.PENDING:
            return None

        completed = self.ledger.transactions.find(
            account_id=account_id, status=TransactionStatus.COMPLETED
        )
        if not completed:
            return None

        try:
            return self.complete_referral(RequestContext.system(), referral.id)
        except AlreadyProcessed:
            # Another trigger completed it first
            return None

    def stats(self, account_id: str) -> Dict[str, Any]:
        """Referral counts and earnings of one referrer"""
        referrals = self.list_for_referrer(account_id)
        completed = [r for r in referrals if r.status == ReferralStatus.COMPLETED]
        account = self.accounts.require_account(account_id)
        return {
            "referral_code": account.referral_code,
            "total": len(referrals),
            "completed": len(completed),
            "pending": len(referrals) - len(completed),
            "earned": sum((r.reward_amount for r in completed), ZERO)
        }
