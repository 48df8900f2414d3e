"""
Ledger Operations Module

Every balance change in the bank goes through this module:

- deposit / withdraw
- two-phase transfer: the sender is debited on submit and the transfer stays
  pending until an admin approves (recipient credited) or rejects (sender
  refunded)
- bill payment
- loan disbursement
- admin balance adjustment
- referral reward credit

Each operation validates the amount, takes the per-account lock(s) of every
account it touches (sorted, via ``KeyedLocks.hold``), runs inside one storage
atomic block together with its transaction records and audit events, logs a
structured line and only then notifies the customers involved. A failing
notifier never undoes a committed operation.

Conservation: transfers are zero-sum once resolved. The total balance across
accounts only moves through deposit, withdrawal, bill payment, loan
disbursement, admin adjustment and referral rewards.
"""

from decimal import Decimal
from typing import Optional

from .storage import StorageInterface
from .audit import AuditTrail, AuditEventType
from .accounts import Account, AccountManager
from .billers import BillerDirectory, BillPayment
from .context import RequestContext
from .errors import (
    AlreadyProcessed, InsufficientFunds, InvalidAction, InvalidAmount, InvalidTransfer,
    RecipientNotFound
)
from .logging_config import get_logger, log_action
from .loans import Loan, LoanCalculator
from .money import MAX_BALANCE, format_currency, parse_amount, quantize, to_decimal
from .notifications import NotificationCenter, NotificationKind
from .transactions import (
    Transaction, TransactionKind, TransactionLog, TransactionStatus, TransactionType
)


logger = get_logger("saxon.ledger")


class Ledger:
    """
    Atomic balance-changing operations
    """

    def __init__(
        self,
        storage: StorageInterface,
        audit_trail: AuditTrail,
        accounts: AccountManager,
        transactions: TransactionLog,
        billers: BillerDirectory,
        notifications: Optional[NotificationCenter] = None
    ):
        self.storage = storage
        self.audit_trail = audit_trail
        self.accounts = accounts
        self.transactions = transactions
        self.billers = billers
        self.notifications = notifications

    # Balance primitives; callers hold the account lock inside an atomic block

    def _amount(self, value) -> Decimal:
        return parse_amount(value, to_decimal(self.accounts.config.max_transaction_amount))

    def _credit(self, account: Account, amount: Decimal) -> None:
        if account.balance + amount > MAX_BALANCE:
            raise InvalidAmount(
                f"Credit of {format_currency(amount)} would exceed the maximum account balance"
            )
        account.balance = quantize(account.balance + amount)
        self.accounts.save_account(account)

    def _debit(self, account: Account, amount: Decimal) -> None:
        if account.balance < amount:
            raise InsufficientFunds(
                f"Insufficient funds: balance {format_currency(account.balance)}, "
                f"requested {format_currency(amount)}",
                balance=account.balance,
                requested=amount
            )
        account.balance = quantize(account.balance - amount)
        self.accounts.save_account(account)

    def _notify(self, account_id: str, kind: NotificationKind, title: str, message: str) -> None:
        if self.notifications:
            self.notifications.notify(account_id, kind, title, message)

    def _audit(self, event_type: AuditEventType, transaction: Transaction,
               ctx: RequestContext, **metadata) -> None:
        metadata.setdefault("account_id", transaction.account_id)
        metadata.setdefault("amount", transaction.amount)
        self.audit_trail.log_event(
            event_type=event_type,
            entity_type="transaction",
            entity_id=transaction.id,
            metadata=metadata,
            user_id=ctx.account_id
        )

    # Deposit / withdraw

    def deposit(self, ctx: RequestContext, account_id: str, amount,
                description: Optional[str] = None) -> Transaction:
        """
        Credit an account and record a completed deposit.

        Raises:
            InvalidAmount: Amount not a positive finite number
            NotFound: Unknown account
            PermissionDenied: Caller is neither the owner nor an admin
        """
        amount = self._amount(amount)
        self.accounts.require_self_or_admin(ctx, account_id)

        with self.accounts.locks.hold(account_id), self.storage.atomic():
            account = self.accounts.require_account(account_id)
            self._credit(account, amount)
            transaction = self.transactions.append(
                account_id, TransactionType.DEPOSIT, amount,
                description or "Deposit to account",
                to_account=account.account_number,
                to_account_id=account.id
            )
            self._audit(AuditEventType.DEPOSIT_POSTED, transaction, ctx)

        log_action(logger, "info", "Deposit posted", user_id=ctx.account_id,
                   action="deposit", resource=transaction.id, correlation_id=ctx.correlation_id,
                   extra={"account_id": account_id, "amount": str(amount)})
        self._notify(account_id, NotificationKind.DEPOSIT, "Deposit Received",
                     f"{format_currency(amount)} has been deposited to your account.")
        return transaction

    def withdraw(self, ctx: RequestContext, account_id: str, amount,
                 description: Optional[str] = None) -> Transaction:
        """
        Debit an account and record a completed withdrawal.

        Raises:
            InvalidAmount, NotFound, PermissionDenied: as for deposit
            InsufficientFunds: amount exceeds the balance; nothing is written
        """
        amount = self._amount(amount)
        self.accounts.require_self_or_admin(ctx, account_id)

        with self.accounts.locks.hold(account_id), self.storage.atomic():
            account = self.accounts.require_account(account_id)
            self._debit(account, amount)
            transaction = self.transactions.append(
                account_id, TransactionType.WITHDRAWAL, amount,
                description or "Withdrawal from account",
                from_account=account.account_number,
                from_account_id=account.id
            )
            self._audit(AuditEventType.WITHDRAWAL_POSTED, transaction, ctx)

        log_action(logger, "info", "Withdrawal posted", user_id=ctx.account_id,
                   action="withdraw", resource=transaction.id, correlation_id=ctx.correlation_id,
                   extra={"account_id": account_id, "amount": str(amount)})
        self._notify(account_id, NotificationKind.PAYMENT, "Withdrawal Processed",
                     f"{format_currency(amount)} has been withdrawn from your account.")
        return transaction

    # Two-phase transfer

    def submit_transfer(self, ctx: RequestContext, to_account_number: str, amount,
                        description: Optional[str] = None) -> Transaction:
        """
        Phase 1: debit the sender now and record a pending transfer.

        The recipient is untouched until an admin resolves the transfer.

        Raises:
            InvalidAmount: Amount not a positive finite number
            RecipientNotFound: No account has to_account_number
            InvalidTransfer: Recipient is the sender
            InsufficientFunds: Sender balance below amount
        """
        amount = self._amount(amount)
        to_account_number = (to_account_number or "").strip()
        sender_id = ctx.account_id

        recipient = self.accounts.get_account_by_number(to_account_number)
        if not recipient:
            raise RecipientNotFound("Recipient account not found")
        if recipient.id == sender_id:
            raise InvalidTransfer("Cannot transfer to your own account")

        with self.accounts.locks.hold(sender_id), self.storage.atomic():
            sender = self.accounts.require_account(sender_id)
            self._debit(sender, amount)
            transaction = self.transactions.append(
                sender.id, TransactionType.TRANSFER, amount,
                description or f"Transfer to account {to_account_number}",
                status=TransactionStatus.PENDING,
                kind=TransactionKind.TRANSFER_DEBIT,
                from_account=sender.account_number,
                from_account_id=sender.id,
                to_account=recipient.account_number,
                to_account_id=recipient.id
            )
            self._audit(AuditEventType.TRANSFER_SUBMITTED, transaction, ctx,
                        to_account_id=recipient.id)

        log_action(logger, "info", "Transfer submitted", user_id=sender_id,
                   action="submit_transfer", resource=transaction.id,
                   correlation_id=ctx.correlation_id,
                   extra={"to_account_id": recipient.id, "amount": str(amount)})
        self._notify(sender_id, NotificationKind.TRANSFER, "Transfer Pending",
                     f"Transfer of {format_currency(amount)} to account {to_account_number} "
                     "was debited from your account and is pending admin approval.")
        return transaction

    transfer = submit_transfer

    def approve_transfer(self, ctx: RequestContext, transaction_id: str) -> Transaction:
        """
        Phase 2a (admin): credit the recipient, record the credit leg and mark
        the pending transfer completed.

        Raises:
            PermissionDenied: Caller is not an admin
            NotFound: Unknown transaction
            AlreadyProcessed: Transfer already completed or rejected
            RecipientNotFound: Recipient account no longer exists
        """
        self.accounts.require_admin(ctx)

        with self.transactions.locks.hold(transaction_id):
            pending = self.transactions.require(transaction_id)
            self._ensure_transfer(pending)

            with self.accounts.locks.hold(pending.from_account_id, pending.to_account_id), \
                    self.storage.atomic():
                recipient = self.accounts.get_account(pending.to_account_id)
                if not recipient:
                    raise RecipientNotFound("Recipient not found")

                resolved = self.transactions.mark_resolved(
                    transaction_id, TransactionStatus.COMPLETED, ctx.account_id
                )
                self._credit(recipient, pending.amount)
                credit = self.transactions.append(
                    recipient.id, TransactionType.TRANSFER, pending.amount,
                    f"Transfer from {pending.from_account or 'unknown'}",
                    kind=TransactionKind.TRANSFER_CREDIT,
                    from_account=pending.from_account,
                    from_account_id=pending.from_account_id,
                    to_account=recipient.account_number,
                    to_account_id=recipient.id,
                    related_transaction_id=pending.id,
                    processed_by=ctx.account_id
                )
                self._audit(AuditEventType.TRANSFER_APPROVED, resolved, ctx,
                            credit_transaction_id=credit.id)

        log_action(logger, "info", "Transfer approved", user_id=ctx.account_id,
                   action="approve_transfer", resource=transaction_id,
                   correlation_id=ctx.correlation_id,
                   extra={"credit_transaction_id": credit.id, "amount": str(pending.amount)})
        self._notify(recipient.id, NotificationKind.TRANSFER, "Transfer Received",
                     f"You received {format_currency(pending.amount)} from account "
                     f"{pending.from_account}.")
        self._notify(pending.account_id, NotificationKind.TRANSFER, "Transfer Completed",
                     f"Your transfer of {format_currency(pending.amount)} to account "
                     f"{pending.to_account} has been approved.")
        return resolved

    def reject_transfer(self, ctx: RequestContext, transaction_id: str) -> Transaction:
        """
        Phase 2b (admin): refund the sender, record the refund and mark the
        pending transfer rejected. Same errors as approve_transfer.
        """
        self.accounts.require_admin(ctx)

        with self.transactions.locks.hold(transaction_id):
            pending = self.transactions.require(transaction_id)
            self._ensure_transfer(pending)

            with self.accounts.locks.hold(pending.account_id), self.storage.atomic():
                sender = self.accounts.require_account(pending.account_id)

                resolved = self.transactions.mark_resolved(
                    transaction_id, TransactionStatus.REJECTED, ctx.account_id
                )
                self._credit(sender, pending.amount)
                refund = self.transactions.append(
                    sender.id, TransactionType.DEPOSIT, pending.amount,
                    "Refund for rejected transfer",
                    kind=TransactionKind.TRANSFER_REFUND,
                    to_account=sender.account_number,
                    to_account_id=sender.id,
                    related_transaction_id=pending.id,
                    processed_by=ctx.account_id
                )
                self._audit(AuditEventType.TRANSFER_REJECTED, resolved, ctx,
                            refund_transaction_id=refund.id)

        log_action(logger, "info", "Transfer rejected", user_id=ctx.account_id,
                   action="reject_transfer", resource=transaction_id,
                   correlation_id=ctx.correlation_id,
                   extra={"refund_transaction_id": refund.id, "amount": str(pending.amount)})
        self._notify(pending.account_id, NotificationKind.TRANSFER, "Transfer Rejected",
                     f"Your transfer of {format_currency(pending.amount)} was rejected and the "
                     "amount has been refunded to your account.")
        return resolved

    def _ensure_transfer(self, transaction: Transaction) -> None:
        if transaction.kind != TransactionKind.TRANSFER_DEBIT:
            raise InvalidTransfer("Only pending transfers can be approved or rejected")
        if not transaction.is_pending:
            raise AlreadyProcessed(f"Transfer already {transaction.status.value}")

    # Bill payment

    def pay_bill(self, ctx: RequestContext, biller_id: str, amount,
                 description: Optional[str] = None) -> BillPayment:
        """
        Pay an active biller from the caller's balance.

        Raises:
            InvalidAmount: Amount not a positive finite number
            NotFound: Biller missing or inactive
            InsufficientFunds: Balance below amount
        """
        amount = self._amount(amount)
        account_id = ctx.account_id
        biller = self.billers.require_active_biller(biller_id)

        with self.accounts.locks.hold(account_id), self.storage.atomic():
            account = self.accounts.require_account(account_id)
            self._debit(account, amount)
            transaction = self.transactions.append(
                account_id, TransactionType.PAYMENT, amount,
                f"Bill payment to {biller.name}",
                kind=TransactionKind.BILL_PAYMENT,
                from_account=account.account_number,
                from_account_id=account.id,
                to_account=biller.account_number,
                metadata={"biller_id": biller.id}
            )
            payment = self.billers.record_payment(
                account_id, biller, amount,
                description or f"Payment to {biller.name}",
                transaction.id
            )
            self._audit(AuditEventType.BILL_PAID, transaction, ctx,
                        biller_id=biller.id, reference=payment.reference)

        log_action(logger, "info", "Bill paid", user_id=account_id, action="pay_bill",
                   resource=transaction.id, correlation_id=ctx.correlation_id,
                   extra={"biller_id": biller.id, "amount": str(amount),
                          "reference": payment.reference})
        self._notify(account_id, NotificationKind.PAYMENT, "Bill Payment Successful",
                     f"Your payment of {format_currency(amount)} to {biller.name} was successful. "
                     f"Reference: {payment.reference}")
        return payment

    # Loan disbursement

    def disburse_loan(self, ctx: RequestContext, loan: Loan) -> Transaction:
        """
        Credit the full loan principal to the borrower (admin only).

        Stores the configured annual rate (as a percentage) and the computed
        monthly payment on ``loan``; the caller persists the loan. Called by
        the loan workflow inside its approval block.
        """
        self.accounts.require_admin(ctx)

        annual_rate = to_decimal(self.accounts.config.loan_annual_interest_rate)
        loan.monthly_payment = LoanCalculator.monthly_payment(loan.amount, annual_rate, loan.term)
        loan.interest_rate = quantize(annual_rate * Decimal('100'))

        with self.accounts.locks.hold(loan.account_id), self.storage.atomic():
            borrower = self.accounts.require_account(loan.account_id)
            self._credit(borrower, loan.amount)
            transaction = self.transactions.append(
                borrower.id, TransactionType.DEPOSIT, loan.amount,
                f"{loan.loan_type.value} loan approved - funds disbursed",
                kind=TransactionKind.LOAN_DISBURSEMENT,
                to_account=borrower.account_number,
                to_account_id=borrower.id,
                processed_by=ctx.account_id,
                metadata={"loan_id": loan.id}
            )
            loan.disbursement_transaction_id = transaction.id
            self._audit(AuditEventType.LOAN_DISBURSED, transaction, ctx,
                        loan_id=loan.id, monthly_payment=loan.monthly_payment)

        log_action(logger, "info", "Loan disbursed", user_id=ctx.account_id,
                   action="disburse_loan", resource=loan.id, correlation_id=ctx.correlation_id,
                   extra={"amount": str(loan.amount), "monthly_payment": str(loan.monthly_payment)})
        return transaction

    # Admin adjustment

    def adjust_balance(self, ctx: RequestContext, account_id: str, action: str, amount,
                       reason: Optional[str] = None) -> Transaction:
        """
        Admin credit ("add") or debit ("deduct") of an account.

        Raises:
            PermissionDenied: Caller is not an admin
            InvalidAction: action is neither add nor deduct
            InvalidAmount: Amount not a positive finite number
            InsufficientFunds: deduct larger than the balance
        """
        self.accounts.require_admin(ctx)
        if action not in ("add", "deduct"):
            raise InvalidAction(f"Unknown balance action: {action}")
        amount = self._amount(amount)

        with self.accounts.locks.hold(account_id), self.storage.atomic():
            account = self.accounts.require_account(account_id)
            if action == "add":
                self._credit(account, amount)
                transaction = self.transactions.append(
                    account_id, TransactionType.DEPOSIT, amount,
                    reason or "Admin adjustment - Credit",
                    kind=TransactionKind.ADMIN_ADJUSTMENT,
                    to_account=account.account_number,
                    to_account_id=account.id,
                    processed_by=ctx.account_id
                )
            else:
                self._debit(account, amount)
                transaction = self.transactions.append(
                    account_id, TransactionType.WITHDRAWAL, amount,
                    reason or "Admin adjustment - Debit",
                    kind=TransactionKind.ADMIN_ADJUSTMENT,
                    from_account=account.account_number,
                    from_account_id=account.id,
                    processed_by=ctx.account_id
                )
            self._audit(AuditEventType.BALANCE_ADJUSTED, transaction, ctx, action=action)

        log_action(logger, "info", "Balance adjusted", user_id=ctx.account_id,
                   action="adjust_balance", resource=transaction.id,
                   correlation_id=ctx.correlation_id,
                   extra={"account_id": account_id, "adjustment": action, "amount": str(amount)})
        verb = "credited to" if action == "add" else "debited from"
        self._notify(account_id, NotificationKind.SECURITY, "Balance Adjusted",
                     f"{format_currency(amount)} was {verb} your account by an administrator.")
        return transaction

    # Referral reward

    def credit_referral_reward(self, ctx: RequestContext, referrer_id: str, amount,
                               referral_id: Optional[str] = None) -> Transaction:
        """
        Internal deposit tagged as a referral reward; also adds the amount to
        the referrer's referral_earnings.
        """
        self.accounts.require_admin(ctx)
        amount = self._amount(amount)

        with self.accounts.locks.hold(referrer_id), self.storage.atomic():
            referrer = self.accounts.require_account(referrer_id)
            referrer.referral_earnings = quantize(referrer.referral_earnings + amount)
            self._credit(referrer, amount)
            transaction = self.transactions.append(
                referrer_id, TransactionType.DEPOSIT, amount,
                "Referral reward",
                kind=TransactionKind.REFERRAL_REWARD,
                to_account=referrer.account_number,
                to_account_id=referrer.id,
                processed_by=ctx.account_id,
                metadata={"referral_id": referral_id}
            )
            self._audit(AuditEventType.REFERRAL_REWARD_CREDITED, transaction, ctx,
                        referral_id=referral_id)

        log_action(logger, "info", "Referral reward credited", user_id=ctx.account_id,
                   action="credit_referral_reward", resource=transaction.id,
                   correlation_id=ctx.correlation_id,
                   extra={"referrer_id": referrer_id, "amount": str(amount)})
        return transaction

    def total_balance(self) -> Decimal:
        """Sum of every account balance"""
        return self.accounts.total_balance()
