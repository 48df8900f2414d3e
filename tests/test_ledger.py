"""
Test suite for ledger operations

Tests deposit, withdrawal, the two-phase transfer, bill payment, balance
adjustment and referral rewards.
CRITICAL: Validates that transfers are zero-sum once resolved and that a
failed operation leaves no persisted side effect.
"""

import pytest
from decimal import Decimal

from saxon_bank.audit import AuditEventType
from saxon_bank.context import RequestContext
from saxon_bank.money import MAX_BALANCE
from saxon_bank.errors import (
    AlreadyProcessed, InsufficientFunds, InvalidAction, InvalidAmount,
    InvalidTransfer, NotFound, PermissionDenied, RecipientNotFound
)
from saxon_bank.transactions import TransactionKind, TransactionStatus, TransactionType


def ctx(account):
    return RequestContext.for_account(account.id)


def balance(system, account):
    return system.account_manager.get_account(account.id).balance


class TestDepositWithdraw:
    """Single-account ledger operations"""

    def test_deposit_increases_balance(self, system, register):
        account = register()
        transaction = system.ledger.deposit(ctx(account), account.id, "250.50")

        assert balance(system, account) == Decimal('250.50')
        assert transaction.transaction_type == TransactionType.DEPOSIT
        assert transaction.status == TransactionStatus.COMPLETED
        assert transaction.description == "Deposit to account"
        assert transaction.processed_at is not None

    def test_deposit_rounds_to_cents(self, system, register):
        account = register()
        system.ledger.deposit(ctx(account), account.id, "10.005")
        assert balance(system, account) == Decimal('10.01')

    @pytest.mark.parametrize("amount", ["0", "-5", "abc", "NaN", "Infinity", None, True, ""])
    def test_deposit_rejects_invalid_amounts(self, system, register, amount):
        account = register()
        with pytest.raises(InvalidAmount):
            system.ledger.deposit(ctx(account), account.id, amount)
        assert balance(system, account) == Decimal('0.00')
        assert system.transactions.list_for_account(account.id) == []

    def test_deposit_into_other_account_requires_admin(self, system, register, admin_ctx):
        owner = register()
        other = register()

        with pytest.raises(PermissionDenied):
            system.ledger.deposit(ctx(other), owner.id, "10")

        system.ledger.deposit(admin_ctx, owner.id, "10")
        assert balance(system, owner) == Decimal('10.00')

    def test_withdraw(self, system, funded):
        account = funded("100.00")
        transaction = system.ledger.withdraw(ctx(account), account.id, "30")

        assert balance(system, account) == Decimal('70.00')
        assert transaction.transaction_type == TransactionType.WITHDRAWAL
        assert transaction.is_debit

    def test_withdraw_entire_balance(self, system, funded):
        account = funded("100.00")
        system.ledger.withdraw(ctx(account), account.id, "100.00")
        assert balance(system, account) == Decimal('0.00')

    def test_withdraw_insufficient_funds_leaves_balance(self, system, funded):
        account = funded("100.00")
        before = len(system.transactions.list_for_account(account.id))

        with pytest.raises(InsufficientFunds) as exc_info:
            system.ledger.withdraw(ctx(account), account.id, "100.01")

        assert exc_info.value.balance == Decimal('100.00')
        assert exc_info.value.requested == Decimal('100.01')
        assert balance(system, account) == Decimal('100.00')
        assert len(system.transactions.list_for_account(account.id)) == before

    def test_deposit_writes_audit_event(self, system, register):
        account = register()
        transaction = system.ledger.deposit(ctx(account), account.id, "5")

        events = system.audit_trail.get_events_for_entity("transaction", transaction.id)
        assert [e.event_type for e in events] == [AuditEventType.DEPOSIT_POSTED]
        assert events[0].user_id == account.id


class TestTwoPhaseTransfer:
    """Debit on submit, credit on approve, refund on reject"""

    def test_submit_debits_sender_only(self, system, funded, register):
        sender = funded("100.00")
        recipient = register()

        pending = system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")

        assert balance(system, sender) == Decimal('60.00')
        assert balance(system, recipient) == Decimal('0.00')
        assert pending.status == TransactionStatus.PENDING
        assert pending.kind == TransactionKind.TRANSFER_DEBIT
        assert pending.from_account == sender.account_number
        assert pending.to_account == recipient.account_number
        assert pending.description == f"Transfer to account {recipient.account_number}"
        assert [t.id for t in system.transactions.list_pending_transfers()] == [pending.id]

    def test_approve_credits_recipient_and_is_zero_sum(self, system, funded, register, admin_ctx):
        sender = funded("100.00")
        recipient = register()
        total_before = system.ledger.total_balance()

        pending = system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")
        resolved = system.ledger.approve_transfer(admin_ctx, pending.id)

        assert resolved.status == TransactionStatus.COMPLETED
        assert resolved.processed_by == admin_ctx.account_id
        assert balance(system, sender) == Decimal('60.00')
        assert balance(system, recipient) == Decimal('40.00')
        assert system.ledger.total_balance() == total_before

        credits = system.transactions.find(related_transaction_id=pending.id)
        assert len(credits) == 1
        assert credits[0].account_id == recipient.id
        assert credits[0].kind == TransactionKind.TRANSFER_CREDIT
        assert credits[0].amount == pending.amount
        assert credits[0].status == TransactionStatus.COMPLETED
        assert credits[0].description == f"Transfer from {sender.account_number}"

    def test_reject_refunds_sender_and_is_zero_sum(self, system, funded, register, admin_ctx):
        sender = funded("100.00")
        recipient = register()
        total_before = system.ledger.total_balance()

        pending = system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")
        resolved = system.ledger.reject_transfer(admin_ctx, pending.id)

        assert resolved.status == TransactionStatus.REJECTED
        assert balance(system, sender) == Decimal('100.00')
        assert balance(system, recipient) == Decimal('0.00')
        assert system.ledger.total_balance() == total_before

        refunds = system.transactions.find(related_transaction_id=pending.id)
        assert len(refunds) == 1
        assert refunds[0].kind == TransactionKind.TRANSFER_REFUND
        assert refunds[0].transaction_type == TransactionType.DEPOSIT
        assert refunds[0].account_id == sender.id
        assert refunds[0].description == "Refund for rejected transfer"

    def test_hundred_forty_example(self, system, funded, register, admin_ctx):
        sender = funded("100.00")
        recipient = register()

        first = system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")
        assert balance(system, sender) == Decimal('60.00')
        assert system.transactions.get(first.id).status == TransactionStatus.PENDING

        system.ledger.approve_transfer(admin_ctx, first.id)
        assert balance(system, recipient) == Decimal('40.00')
        assert system.transactions.get(first.id).status == TransactionStatus.COMPLETED

        system.ledger.deposit(ctx(sender), sender.id, "40")
        assert balance(system, sender) == Decimal('100.00')

        second = system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")
        system.ledger.reject_transfer(admin_ctx, second.id)
        assert balance(system, sender) == Decimal('100.00')
        assert system.transactions.get(second.id).status == TransactionStatus.REJECTED

    @pytest.mark.parametrize("first,second", [
        ("approve", "approve"), ("approve", "reject"),
        ("reject", "approve"), ("reject", "reject"),
    ])
    def test_second_resolution_is_already_processed(self, system, funded, register, admin_ctx,
                                                   first, second):
        sender = funded("100.00")
        recipient = register()
        pending = system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")

        getattr(system.ledger, f"{first}_transfer")(admin_ctx, pending.id)
        sender_balance = balance(system, sender)
        recipient_balance = balance(system, recipient)
        transaction_count = len(system.transactions.list_all())

        with pytest.raises(AlreadyProcessed):
            getattr(system.ledger, f"{second}_transfer")(admin_ctx, pending.id)

        assert balance(system, sender) == sender_balance
        assert balance(system, recipient) == recipient_balance
        assert len(system.transactions.list_all()) == transaction_count

    def test_unknown_recipient(self, system, funded):
        sender = funded("100.00")
        with pytest.raises(RecipientNotFound):
            system.ledger.submit_transfer(ctx(sender), "0000000000", "10")
        assert balance(system, sender) == Decimal('100.00')

    def test_transfer_to_self_rejected(self, system, funded):
        sender = funded("100.00")
        with pytest.raises(InvalidTransfer):
            system.ledger.submit_transfer(ctx(sender), sender.account_number, "10")
        assert balance(system, sender) == Decimal('100.00')

    def test_transfer_insufficient_funds(self, system, funded, register):
        sender = funded("100.00")
        recipient = register()
        with pytest.raises(InsufficientFunds):
            system.ledger.submit_transfer(ctx(sender), recipient.account_number, "100.01")
        assert balance(system, sender) == Decimal('100.00')
        assert system.transactions.list_pending_transfers() == []

    def test_resolution_requires_admin(self, system, funded, register):
        sender = funded("100.00")
        recipient = register()
        pending = system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")

        # A forged admin flag on the context is not enough
        forged = RequestContext.for_account(recipient.id, is_admin=True)
        with pytest.raises(PermissionDenied):
            system.ledger.approve_transfer(forged, pending.id)
        with pytest.raises(PermissionDenied):
            system.ledger.reject_transfer(ctx(sender), pending.id)

        assert system.transactions.get(pending.id).is_pending

    def test_resolving_non_transfer_is_invalid(self, system, funded, admin_ctx):
        account = funded("100.00")
        deposit = system.transactions.list_for_account(account.id)[0]
        with pytest.raises(InvalidTransfer):
            system.ledger.approve_transfer(admin_ctx, deposit.id)

    def test_resolving_unknown_transaction(self, system, admin_ctx):
        with pytest.raises(NotFound):
            system.ledger.approve_transfer(admin_ctx, "missing")


class TestBillPayment:
    """payBill debits immediately and writes a receipt"""

    def setup_biller(self, system, admin_ctx, active=True):
        biller = system.billers.add_biller(admin_ctx, "City Power", "utility", "UTIL-001")
        if not active:
            system.billers.toggle_biller(admin_ctx, biller.id)
        return biller

    def test_pay_bill(self, system, funded, admin_ctx):
        account = funded("100.00")
        biller = self.setup_biller(system, admin_ctx)

        payment = system.ledger.pay_bill(ctx(account), biller.id, "25.00")

        assert balance(system, account) == Decimal('75.00')
        assert payment.reference.startswith("BILL-")
        assert payment.description == "Payment to City Power"
        transaction = system.transactions.get(payment.transaction_id)
        assert transaction.transaction_type == TransactionType.PAYMENT
        assert transaction.status == TransactionStatus.COMPLETED
        assert transaction.description == "Bill payment to City Power"
        assert system.billers.payment_history(account.id)[0].id == payment.id

    def test_pay_inactive_biller_not_found(self, system, funded, admin_ctx):
        account = funded("100.00")
        biller = self.setup_biller(system, admin_ctx, active=False)
        with pytest.raises(NotFound):
            system.ledger.pay_bill(ctx(account), biller.id, "25.00")
        assert balance(system, account) == Decimal('100.00')

    def test_pay_bill_insufficient_funds(self, system, funded, admin_ctx):
        account = funded("10.00")
        biller = self.setup_biller(system, admin_ctx)
        with pytest.raises(InsufficientFunds):
            system.ledger.pay_bill(ctx(account), biller.id, "25.00")
        assert balance(system, account) == Decimal('10.00')
        assert system.billers.payment_history(account.id) == []


class TestBalanceAdjustment:
    """Admin add / deduct"""

    def test_add_and_deduct(self, system, register, admin_ctx):
        account = register()

        credit = system.ledger.adjust_balance(admin_ctx, account.id, "add", "500")
        debit = system.ledger.adjust_balance(admin_ctx, account.id, "deduct", "200", "Fee")

        assert balance(system, account) == Decimal('300.00')
        assert credit.description == "Admin adjustment - Credit"
        assert debit.description == "Fee"
        assert credit.kind == debit.kind == TransactionKind.ADMIN_ADJUSTMENT
        assert credit.processed_by == admin_ctx.account_id

    def test_deduct_insufficient_funds(self, system, funded, admin_ctx):
        account = funded("50.00")
        with pytest.raises(InsufficientFunds):
            system.ledger.adjust_balance(admin_ctx, account.id, "deduct", "60")
        assert balance(system, account) == Decimal('50.00')

    def test_unknown_action(self, system, funded, admin_ctx):
        account = funded("50.00")
        with pytest.raises(InvalidAction):
            system.ledger.adjust_balance(admin_ctx, account.id, "multiply", "2")

    def test_requires_admin(self, system, funded):
        account = funded("50.00")
        with pytest.raises(PermissionDenied):
            system.ledger.adjust_balance(ctx(account), account.id, "add", "1000")
        assert balance(system, account) == Decimal('50.00')


class TestNotificationFailure:
    """A failing notifier never rolls back a committed operation"""

    def test_deposit_survives_notifier_failure(self, system, register):
        class Broken:
            name = "broken"

            def send(self, notification):
                raise RuntimeError("channel down")

        system.notifications.register_provider(Broken())
        account = register()

        system.ledger.deposit(ctx(account), account.id, "20")
        assert balance(system, account) == Decimal('20.00')


class TestAmountLimits:
    """Oversized amounts are rejected before any balance moves"""

    @pytest.mark.parametrize("amount", ["1e30", "9" * 40, "1000000000.01"])
    def test_deposit_rejects_oversized_amount(self, system, register, amount):
        account = register()
        with pytest.raises(InvalidAmount):
            system.ledger.deposit(ctx(account), account.id, amount)
        assert balance(system, account) == Decimal('0.00')
        assert system.transactions.list_for_account(account.id) == []

    def test_configured_transaction_maximum(self, system, funded, register):
        system.account_manager.config.max_transaction_amount = "50.00"
        sender = funded("50.00")
        recipient = register()

        with pytest.raises(InvalidAmount, match="maximum"):
            system.ledger.submit_transfer(ctx(sender), recipient.account_number, "50.01")
        assert balance(system, sender) == Decimal('50.00')

    def test_credit_past_maximum_balance_leaves_balance(self, system, register, admin_ctx):
        account = register()
        stored = system.account_manager.get_account(account.id)
        stored.balance = MAX_BALANCE - Decimal('10.00')
        system.account_manager.save_account(stored)

        with pytest.raises(InvalidAmount):
            system.ledger.adjust_balance(admin_ctx, account.id, "add", "100.00")

        assert balance(system, account) == MAX_BALANCE - Decimal('10.00')
        assert system.transactions.list_for_account(account.id) == []


def fail(*args, **kwargs):
    raise RuntimeError("storage write failed")


class TestMultiStepAtomicity:
    """A failure part-way through a multi-step operation leaves no partial write"""

    def test_submit_transfer_rolls_back_debit(self, system, funded, register, monkeypatch):
        sender = funded("100.00")
        recipient = register()
        events_before = system.audit_trail.count_events()
        monkeypatch.setattr(system.transactions, "append", fail)

        with pytest.raises(RuntimeError):
            system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")

        assert balance(system, sender) == Decimal('100.00')
        assert system.transactions.list_pending_transfers() == []
        assert system.audit_trail.count_events() == events_before

    def test_submit_transfer_audit_failure_rolls_back(self, system, funded, register, monkeypatch):
        sender = funded("100.00")
        recipient = register()
        monkeypatch.setattr(system.audit_trail, "log_event", fail)

        with pytest.raises(RuntimeError):
            system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")

        assert balance(system, sender) == Decimal('100.00')
        assert len(system.transactions.list_for_account(sender.id)) == 1
        assert system.transactions.list_pending_transfers() == []

    @pytest.mark.parametrize("target", ["append", "log_event"])
    def test_approve_transfer_stays_pending(self, system, funded, register, admin_ctx,
                                            monkeypatch, target):
        sender = funded("100.00")
        recipient = register()
        pending = system.ledger.submit_transfer(ctx(sender), recipient.account_number, "40")
        owner = system.transactions if target == "append" else system.audit_trail
        monkeypatch.setattr(owner, target, fail)

        with pytest.raises(RuntimeError):
            system.ledger.approve_transfer(admin_ctx, pending.id)

        assert system.transactions.get(pending.id).status == TransactionStatus.PENDING
        assert balance(system, sender) == Decimal('60.00')
        assert balance(system, recipient) == Decimal('0.00')
        assert system.transactions.list_for_account(recipient.id) == []

        # The record is still resolvable once the fault clears
        monkeypatch.undo()
        system.ledger.approve_transfer(admin_ctx, pending.id)
        assert balance(system, recipient) == Decimal('40.00')

    @pytest.mark.parametrize("target", ["append", "log_event"])
    def test_pay_bill_rolls_back(self, system, funded, admin_ctx, monkeypatch, target):
        account = funded("100.00")
        biller = system.billers.add_biller(admin_ctx, "City Power", "utility", "UTIL-001")
        owner = system.transactions if target == "append" else system.audit_trail
        monkeypatch.setattr(owner, target, fail)

        with pytest.raises(RuntimeError):
            system.ledger.pay_bill(ctx(account), biller.id, "25.00")

        assert balance(system, account) == Decimal('100.00')
        assert len(system.transactions.list_for_account(account.id)) == 1
        assert system.billers.payment_history(account.id) == []
