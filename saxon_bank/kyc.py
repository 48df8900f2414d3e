"""
KYC document review.

The core only sees document references produced by the file store; upload
validation happens outside. Submission moves the account to 33% progress,
approval to fully verified, rejection back to 0.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

from .approvals import ApprovalRequest, ApprovalWorkflow
from .accounts import Account
from .context import RequestContext
from .errors import DuplicateRequest, ValidationError
from .logging_config import get_logger, log_action
from .notifications import NotificationKind


logger = get_logger("saxon.kyc")

DOCUMENT_TYPES = ("id", "address", "selfie")
SUBMITTED_PROGRESS = 33
DEFAULT_REJECTION_NOTE = "Documents rejected"


@dataclass
class KycRequest(ApprovalRequest):
    # [{"type": "id" | "address" | "selfie", "url": ..., "filename": ...}]
    documents: List[Dict[str, Any]] = field(default_factory=list)


def normalize_documents(documents: List[Dict[str, Any]]) -> List[Dict[str, Any]]:
    normalized = []
    for document in documents or []:
        doc_type = document.get("type")
        if doc_type not in DOCUMENT_TYPES:
            raise ValidationError(f"Unknown document type: {doc_type}")
        if not document.get("url"):
            raise ValidationError(f"Document {doc_type} has no url")
        normalized.append({
            "type": doc_type,
            "url": document["url"],
            "filename": document.get("filename") or document["url"].rsplit("/", 1)[-1]
        })
    if not normalized:
        raise ValidationError("At least one document is required")
    return normalized


class KycWorkflow(ApprovalWorkflow):
    request_class = KycRequest
    table_name = "kyc_requests"
    entity_type = "kyc_request"
    notification_kind = NotificationKind.SECURITY

    def submit(self, ctx: RequestContext, documents: List[Dict[str, Any]]) -> KycRequest:
        """
        Submit identity documents for review.

        Raises:
            DuplicateRequest: Already verified or a request is pending
            ValidationError: No documents or an unknown document type
        """
        documents = normalize_documents(documents)
        account_id = ctx.account_id

        with self.accounts.locks.hold(account_id), self.storage.atomic():
            account = self.accounts.require_account(account_id)
            if account.is_verified:
                raise DuplicateRequest("You are already verified")
            if self.pending_for_account(account_id):
                raise DuplicateRequest("You already have a pending verification request")

            request = KycRequest(documents=documents, **self._new_request_fields(account_id))
            self._record_submission(ctx, request, {"document_types": [d["type"] for d in documents]})

            account.kyc_pending = True
            account.kyc_progress = SUBMITTED_PROGRESS
            self.accounts.save_account(account)

        log_action(logger, "info", "KYC documents submitted", user_id=account_id,
                   action="submit_kyc", resource=request.id,
                   correlation_id=ctx.correlation_id)
        self._notify(account_id, "KYC Submitted",
                     "Your KYC documents have been submitted for verification. "
                     "We'll notify you once reviewed.")
        return request

    def _on_approved(self, ctx: RequestContext, request: KycRequest, account: Account) -> None:
        account.is_verified = True
        account.kyc_pending = False
        account.kyc_progress = 100
        account.id_verified = True
        account.address_verified = True
        account.selfie_verified = True
        self.accounts.save_account(account)

    def _on_rejected(self, ctx: RequestContext, request: KycRequest, account: Account) -> None:
        account.kyc_pending = False
        account.kyc_progress = 0
        self.accounts.save_account(account)

    def _rejection_notes(self, notes: Optional[str]) -> Optional[str]:
        return notes.strip() if notes and notes.strip() else DEFAULT_REJECTION_NOTE

    def _approval_message(self, request: KycRequest) -> Tuple[str, str]:
        return ("KYC Verified!",
                "Your identity has been successfully verified. You now have full access to all features.")

    def _rejection_message(self, request: KycRequest) -> Tuple[str, str]:
        return ("KYC Update",
                f"Your KYC documents were not approved. Reason: {request.notes}. "
                "Please resubmit with clearer documents.")
