"""
Test suite for card and KYC approval workflows
"""

import pytest
import re
from datetime import date, datetime, timezone

from saxon_bank.approvals import ApprovalStatus
from saxon_bank.cards import card_expiry, generate_card_number, generate_cvv
from saxon_bank.context import RequestContext
from saxon_bank.errors import AlreadyProcessed, DuplicateRequest, NotFound, PermissionDenied, ValidationError
from saxon_bank.notifications import NotificationKind


DOCUMENTS = [
    {"type": "id", "url": "/uploads/kyc/id-front.jpg"},
    {"type": "address", "url": "/uploads/kyc/utility-bill.pdf", "filename": "bill.pdf"},
    {"type": "selfie", "url": "/uploads/kyc/selfie.png"},
]


def account_of(system, account_id):
    return system.account_manager.get_account(account_id)


class TestCardHelpers:

    def test_card_number_and_cvv_shape(self):
        for _ in range(20):
            assert re.fullmatch(r"[1-9]\d{15}", generate_card_number())
            assert re.fullmatch(r"[1-9]\d{2}", generate_cvv())

    def test_expiry_four_years_out(self):
        assert card_expiry(4, today=date(2026, 10, 18)) == "10/30"
        assert card_expiry(4, today=date(2097, 3, 1)) == "03/01"


class TestCardWorkflow:
    """Card request submission and decisions"""

    def test_submit(self, system, register):
        account = register()
        request = system.cards.submit(RequestContext.for_account(account.id))

        assert request.status == ApprovalStatus.PENDING
        assert account_of(system, account.id).card_requested
        assert system.cards.pending_for_account(account.id).id == request.id

    def test_duplicate_pending_request(self, system, register):
        account = register()
        ctx = RequestContext.for_account(account.id)
        system.cards.submit(ctx)

        with pytest.raises(DuplicateRequest, match="pending request"):
            system.cards.submit(ctx)
        assert system.cards.count_pending() == 1

    def test_approve_issues_card(self, system, register, admin_ctx):
        account = register()
        request = system.cards.submit(RequestContext.for_account(account.id))

        approved = system.cards.approve(admin_ctx, request.id)

        assert approved.status == ApprovalStatus.APPROVED
        assert approved.processed_by == admin_ctx.account_id
        stored = account_of(system, account.id)
        assert stored.has_card
        assert not stored.card_requested
        assert re.fullmatch(r"\d{16}", stored.card_number)
        assert re.fullmatch(r"\d{3}", stored.card_cvv)
        today = datetime.now(timezone.utc).date()
        assert stored.card_expiry == card_expiry(4, today)

        with pytest.raises(DuplicateRequest, match="already have a card"):
            system.cards.submit(RequestContext.for_account(account.id))

    def test_reject_clears_request_flag(self, system, register, admin_ctx):
        account = register()
        ctx = RequestContext.for_account(account.id)
        request = system.cards.submit(ctx)

        system.cards.reject(admin_ctx, request.id, notes="Incomplete profile")

        stored = account_of(system, account.id)
        assert not stored.card_requested
        assert not stored.has_card
        assert system.cards.get(request.id).notes == "Incomplete profile"
        # A new request is allowed after a rejection
        assert system.cards.submit(ctx).is_pending

    def test_decisions_are_terminal(self, system, register, admin_ctx):
        account = register()
        request = system.cards.submit(RequestContext.for_account(account.id))
        system.cards.approve(admin_ctx, request.id)
        card_number = account_of(system, account.id).card_number

        with pytest.raises(AlreadyProcessed):
            system.cards.approve(admin_ctx, request.id)
        with pytest.raises(AlreadyProcessed):
            system.cards.reject(admin_ctx, request.id)
        assert account_of(system, account.id).card_number == card_number

    def test_decision_requires_admin(self, system, register):
        account = register()
        ctx = RequestContext.for_account(account.id, is_admin=True)
        request = system.cards.submit(ctx)

        with pytest.raises(PermissionDenied):
            system.cards.approve(ctx, request.id)

    def test_unknown_request(self, system, admin_ctx):
        with pytest.raises(NotFound):
            system.cards.approve(admin_ctx, "missing")

    def test_owner_notified(self, system, register, admin_ctx):
        account = register()
        request = system.cards.submit(RequestContext.for_account(account.id))
        system.cards.approve(admin_ctx, request.id)

        titles = [n.title for n in system.notifications.list_for_account(account.id)]
        assert "Card Approved" in titles
        assert "Card Request Submitted" in titles

    def test_processed_listing(self, system, register, admin_ctx):
        first = system.cards.submit(RequestContext.for_account(register().id))
        second = system.cards.submit(RequestContext.for_account(register().id))
        system.cards.reject(admin_ctx, first.id)

        assert [r.id for r in system.cards.list_pending()] == [second.id]
        assert [r.id for r in system.cards.list_processed()] == [first.id]


class TestKycWorkflow:
    """KYC submission and review"""

    def test_submit_sets_progress(self, system, register):
        account = register()
        request = system.kyc.submit(RequestContext.for_account(account.id), DOCUMENTS)

        assert [d["type"] for d in request.documents] == ["id", "address", "selfie"]
        assert request.documents[0]["filename"] == "id-front.jpg"
        assert request.documents[1]["filename"] == "bill.pdf"
        stored = account_of(system, account.id)
        assert stored.kyc_pending
        assert stored.kyc_progress == 33

    @pytest.mark.parametrize("documents", [
        [],
        [{"type": "passport", "url": "/uploads/p.jpg"}],
        [{"type": "id", "url": ""}],
    ])
    def test_submit_validation(self, system, register, documents):
        account = register()
        with pytest.raises(ValidationError):
            system.kyc.submit(RequestContext.for_account(account.id), documents)
        assert account_of(system, account.id).kyc_progress == 0

    def test_duplicate_pending(self, system, register):
        account = register()
        ctx = RequestContext.for_account(account.id)
        system.kyc.submit(ctx, DOCUMENTS)
        with pytest.raises(DuplicateRequest):
            system.kyc.submit(ctx, DOCUMENTS)

    def test_approve_verifies_fully(self, system, register, admin_ctx):
        account = register()
        ctx = RequestContext.for_account(account.id)
        request = system.kyc.submit(ctx, DOCUMENTS)

        system.kyc.approve(admin_ctx, request.id)

        stored = account_of(system, account.id)
        assert stored.is_verified
        assert stored.kyc_progress == 100
        assert not stored.kyc_pending
        assert stored.id_verified and stored.address_verified and stored.selfie_verified

        with pytest.raises(DuplicateRequest, match="already verified"):
            system.kyc.submit(ctx, DOCUMENTS)

    def test_reject_resets_progress_with_note(self, system, register, admin_ctx):
        account = register()
        request = system.kyc.submit(RequestContext.for_account(account.id), DOCUMENTS)

        rejected = system.kyc.reject(admin_ctx, request.id, notes="Blurry ID photo")

        assert rejected.status == ApprovalStatus.REJECTED
        assert rejected.notes == "Blurry ID photo"
        stored = account_of(system, account.id)
        assert stored.kyc_progress == 0
        assert not stored.kyc_pending
        assert not stored.is_verified

        notification = next(n for n in system.notifications.list_for_account(account.id)
                            if n.title == "KYC Update")
        assert notification.kind == NotificationKind.SECURITY
        assert "Blurry ID photo" in notification.message

    def test_reject_without_note_gets_default(self, system, register, admin_ctx):
        account = register()
        request = system.kyc.submit(RequestContext.for_account(account.id), DOCUMENTS)
        assert system.kyc.reject(admin_ctx, request.id, notes="  ").notes == "Documents rejected"
