"""
Approval Workflow Module

Generic admin-gated state machine shared by card requests, KYC reviews and
loan applications:

    pending -> approved
    pending -> rejected

Both targets are terminal. Each decision is a check-and-set on the request
status under a per-request lock, records the acting admin and timestamp, runs
the request type's side effects inside the same storage block and notifies
the owner after commit.
"""

from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any, Tuple
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord, parse_datetime
from .audit import AuditTrail, AuditEventType
from .accounts import Account, AccountManager
from .context import RequestContext
from .errors import AlreadyProcessed, NotFound
from .locking import KeyedLocks
from .logging_config import get_logger, log_action
from .notifications import NotificationCenter, NotificationKind


logger = get_logger("saxon.approvals")


class ApprovalStatus(Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class ApprovalRequest(StorageRecord):
    """Base record for anything an admin approves or rejects"""
    account_id: str
    status: ApprovalStatus = ApprovalStatus.PENDING
    processed_by: Optional[str] = None
    processed_at: Optional[datetime] = None
    notes: Optional[str] = None

    @property
    def is_pending(self) -> bool:
        return self.status == ApprovalStatus.PENDING

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApprovalRequest':
        data = dict(data)
        data['status'] = ApprovalStatus(data['status'])
        data['processed_at'] = parse_datetime(data.get('processed_at'))
        return super().from_dict(data)


class ApprovalWorkflow:
    """
    Base class for approval workflows.

    Subclasses set ``request_class``, ``table_name``, ``entity_type`` and
    ``notification_kind`` and override the ``_on_approved`` / ``_on_rejected``
    hooks and the notification texts.
    """

    request_class = ApprovalRequest
    table_name = "approval_requests"
    entity_type = "approval_request"
    notification_kind = NotificationKind.SECURITY

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        accounts: AccountManager,
        notifications: Optional[NotificationCenter] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts = accounts
        self.notifications = notifications
        self.locks = KeyedLocks()

    # Persistence

    def _save(self, request: ApprovalRequest) -> None:
        self.storage.save(self.table_name, request.id, request.to_dict())

    def get(self, request_id: str) -> Optional[ApprovalRequest]:
        data = self.storage.load(self.table_name, request_id) if request_id else None
        if data:
            return self.request_class.from_dict(data)
        return None

    def require(self, request_id: str) -> ApprovalRequest:
        request = self.get(request_id)
        if not request:
            raise NotFound(f"{self.entity_type.replace('_', ' ').capitalize()} {request_id} not found")
        return request

    def _find(self, **filters) -> List[ApprovalRequest]:
        filters = {k: (v.value if isinstance(v, Enum) else v) for k, v in filters.items()}
        requests = [self.request_class.from_dict(d) for d in self.storage.find(self.table_name, filters)]
        requests.sort(key=lambda r: r.created_at, reverse=True)
        return requests

    def list_pending(self) -> List[ApprovalRequest]:
        return self._find(status=ApprovalStatus.PENDING)

    def list_processed(self, limit: Optional[int] = 50) -> List[ApprovalRequest]:
        processed = [r for r in self._find() if not r.is_pending]
        processed.sort(key=lambda r: r.processed_at or r.created_at, reverse=True)
        return processed[:limit] if limit else processed

    def list_for_account(self, account_id: str) -> List[ApprovalRequest]:
        return self._find(account_id=account_id)

    def pending_for_account(self, account_id: str) -> Optional[ApprovalRequest]:
        pending = self._find(account_id=account_id, status=ApprovalStatus.PENDING)
        return pending[0] if pending else None

    def count_pending(self) -> int:
        return len(self.storage.find(self.table_name, {"status": ApprovalStatus.PENDING.value}))

    # Submission

    def _new_request_fields(self, account_id: str) -> Dict[str, Any]:
        now = datetime.now(timezone.utc)
        return {
            "id": str(uuid.uuid4()),
            "created_at": now,
            "updated_at": now,
            "account_id": account_id,
        }

    def _record_submission(self, ctx: RequestContext, request: ApprovalRequest,
                           metadata: Optional[Dict[str, Any]] = None) -> None:
        """Save a new request and audit it; runs inside the caller's storage block"""
        self._save(request)
        self.audit_trail.log_event(
            event_type=AuditEventType.REQUEST_SUBMITTED,
            entity_type=self.entity_type,
            entity_id=request.id,
            metadata=metadata or {},
            user_id=ctx.account_id
        )

    # Decisions

    def _ensure_pending(self, request: ApprovalRequest) -> None:
        if not request.is_pending:
            raise AlreadyProcessed(
                f"{self.entity_type.replace('_', ' ').capitalize()} already {request.status.value}"
            )

    def _decide(self, ctx: RequestContext, request_id: str, status: ApprovalStatus,
                notes: Optional[str]) -> ApprovalRequest:
        self.accounts.require_admin(ctx)

        if status == ApprovalStatus.REJECTED:
            notes = self._rejection_notes(notes)

        with self.locks.hold(request_id):
            request = self.require(request_id)
            self._ensure_pending(request)

            with self.accounts.locks.hold(request.account_id), self.storage.atomic():
                account = self.accounts.require_account(request.account_id)
                if status == ApprovalStatus.APPROVED:
                    self._on_approved(ctx, request, account)
                else:
                    self._on_rejected(ctx, request, account)

                now = datetime.now(timezone.utc)
                request.status = status
                request.processed_by = ctx.account_id
                request.processed_at = now
                request.updated_at = now
                if notes is not None:
                    request.notes = notes
                self._save(request)

                self.audit_trail.log_event(
                    event_type=(AuditEventType.REQUEST_APPROVED if status == ApprovalStatus.APPROVED
                                else AuditEventType.REQUEST_REJECTED),
                    entity_type=self.entity_type,
                    entity_id=request.id,
                    metadata={"account_id": request.account_id, "notes": notes},
                    user_id=ctx.account_id
                )

        log_action(logger, "info", f"{self.entity_type} {status.value}",
                   user_id=ctx.account_id, action=f"{status.value}_{self.entity_type}",
                   resource=request.id, correlation_id=ctx.correlation_id,
                   extra={"account_id": request.account_id})

        if status == ApprovalStatus.APPROVED:
            title, message = self._approval_message(request)
        else:
            title, message = self._rejection_message(request)
        self._notify(request.account_id, title, message)

        return request

    def approve(self, ctx: RequestContext, request_id: str,
                notes: Optional[str] = None) -> ApprovalRequest:
        """
        Approve a pending request (admin only).

        Raises:
            PermissionDenied: Caller is not an admin
            NotFound: Unknown request id
            AlreadyProcessed: Request already approved or rejected
        """
        return self._decide(ctx, request_id, ApprovalStatus.APPROVED, notes)

    def reject(self, ctx: RequestContext, request_id: str,
               notes: Optional[str] = None) -> ApprovalRequest:
        """Reject a pending request (admin only); same errors as approve"""
        return self._decide(ctx, request_id, ApprovalStatus.REJECTED, notes)

    # Hooks

    def _on_approved(self, ctx: RequestContext, request: ApprovalRequest, account: Account) -> None:
        pass

    def _on_rejected(self, ctx: RequestContext, request: ApprovalRequest, account: Account) -> None:
        pass

    def _rejection_notes(self, notes: Optional[str]) -> Optional[str]:
        return notes

    def _approval_message(self, request: ApprovalRequest) -> Tuple[str, str]:
        return "Request Approved", "Your request has been approved."

    def _rejection_message(self, request: ApprovalRequest) -> Tuple[str, str]:
        return "Request Rejected", "Your request has been rejected."

    def _notify(self, account_id: str, title: str, message: str) -> None:
        if self.notifications:
            self.notifications.notify(account_id, self.notification_kind, title, message)
