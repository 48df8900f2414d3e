"""
Card issuance requests.

A customer may hold one card and have at most one pending request. Approval
issues a 16-digit number, an MM/YY expiry ``card_validity_years`` from today
and a 3-digit CVV.
"""

from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Optional, Tuple
import secrets

from .approvals import ApprovalRequest, ApprovalWorkflow
from .accounts import Account
from .context import RequestContext
from .errors import DuplicateRequest
from .logging_config import get_logger, log_action
from .notifications import NotificationKind


logger = get_logger("saxon.cards")


@dataclass
class CardRequest(ApprovalRequest):
    pass


def generate_card_number() -> str:
    return str(1000000000000000 + secrets.randbelow(9000000000000000))


def generate_cvv() -> str:
    return str(100 + secrets.randbelow(900))


def card_expiry(validity_years: int, today: Optional[date] = None) -> str:
    """MM/YY of today plus validity_years"""
    today = today or datetime.now(timezone.utc).date()
    return f"{today.month:02d}/{(today.year + validity_years) % 100:02d}"


class CardWorkflow(ApprovalWorkflow):
    request_class = CardRequest
    table_name = "card_requests"
    entity_type = "card_request"
    notification_kind = NotificationKind.CARD

    def submit(self, ctx: RequestContext) -> CardRequest:
        """
        Request a card for the calling account.

        Raises:
            DuplicateRequest: Account already has a card or a pending request
        """
        account_id = ctx.account_id
        with self.accounts.locks.hold(account_id), self.storage.atomic():
            account = self.accounts.require_account(account_id)
            if account.has_card:
                raise DuplicateRequest("You already have a card")
            if account.card_requested or self.pending_for_account(account_id):
                raise DuplicateRequest("You already have a pending request")

            request = CardRequest(**self._new_request_fields(account_id))
            self._record_submission(ctx, request)

            account.card_requested = True
            self.accounts.save_account(account)

        log_action(logger, "info", "Card requested", user_id=account_id,
                   action="submit_card_request", resource=request.id,
                   correlation_id=ctx.correlation_id)
        self._notify(account_id, "Card Request Submitted",
                     "Your card request has been submitted! We will review it within 2-3 business days.")
        return request

    def _on_approved(self, ctx: RequestContext, request: CardRequest, account: Account) -> None:
        account.has_card = True
        account.card_requested = False
        account.card_number = generate_card_number()
        account.card_expiry = card_expiry(self.accounts.config.card_validity_years)
        account.card_cvv = generate_cvv()
        self.accounts.save_account(account)

    def _on_rejected(self, ctx: RequestContext, request: CardRequest, account: Account) -> None:
        account.card_requested = False
        self.accounts.save_account(account)

    def _approval_message(self, request: CardRequest) -> Tuple[str, str]:
        return "Card Approved", "Your debit card has been approved and issued."

    def _rejection_message(self, request: CardRequest) -> Tuple[str, str]:
        return "Card Request Update", "Your card request was not approved at this time."
