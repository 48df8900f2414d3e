"""
Loan Module

Loan applications go through the approval workflow. Approval disburses the
full principal to the borrower's balance through the ledger and stores the
interest rate and the monthly payment. Repayment is not tracked: the
amortization schedule is informational only.
"""

from decimal import Decimal, InvalidOperation
from datetime import date, datetime, timezone
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Tuple
from enum import Enum
import calendar

from .approvals import ApprovalRequest, ApprovalWorkflow
from .accounts import Account
from .context import RequestContext
from .errors import ValidationError
from .logging_config import get_logger, log_action
from .money import ZERO, format_currency, parse_amount, quantize, to_decimal
from .notifications import NotificationKind


logger = get_logger("saxon.loans")

DEFAULT_REJECTION_NOTE = "Application rejected"


class LoanType(Enum):
    PERSONAL = "personal"
    CAR = "car"
    EDUCATION = "education"
    HOME = "home"
    BUSINESS = "business"
    CONSTRUCTION = "construction"


@dataclass
class AmortizationEntry:
    """Single entry in amortization schedule"""
    payment_number: int
    payment_date: date
    payment_amount: Decimal
    principal_amount: Decimal
    interest_amount: Decimal
    remaining_balance: Decimal

    def to_dict(self) -> Dict[str, Any]:
        return {
            "payment_number": self.payment_number,
            "payment_date": self.payment_date.isoformat(),
            "payment_amount": str(self.payment_amount),
            "principal_amount": str(self.principal_amount),
            "interest_amount": str(self.interest_amount),
            "remaining_balance": str(self.remaining_balance)
        }


class LoanCalculator:
    """Equal-installment loan math; all inputs and outputs are Decimal"""

    @staticmethod
    def monthly_payment(principal: Decimal, annual_rate: Decimal, term_years: int) -> Decimal:
        """
        Standard loan payment formula: P * [r(1+r)^n] / [(1+r)^n - 1]
        with r the monthly rate and n = term_years * 12; P / n when r is 0.
        """
        months = term_years * 12
        monthly_rate = annual_rate / Decimal('12')

        if monthly_rate == 0:
            return quantize(principal / Decimal(months))

        factor = (Decimal('1') + monthly_rate) ** months
        return quantize(principal * (monthly_rate * factor) / (factor - Decimal('1')))

    @staticmethod
    def _add_months(start: date, months: int) -> date:
        month_index = start.month - 1 + months
        year = start.year + month_index // 12
        month = month_index % 12 + 1
        # Clamp to the last day of shorter months (Jan 31 -> Feb 28)
        return date(year, month, min(start.day, calendar.monthrange(year, month)[1]))

    @classmethod
    def amortization_schedule(cls, principal: Decimal, annual_rate: Decimal, term_years: int,
                              start_date: Optional[date] = None) -> List[AmortizationEntry]:
        """Equal installment schedule; the final entry pays off the exact remainder"""
        payment = cls.monthly_payment(principal, annual_rate, term_years)
        monthly_rate = annual_rate / Decimal('12')
        total_payments = term_years * 12
        first_date = cls._add_months(start_date or datetime.now(timezone.utc).date(), 1)

        schedule = []
        remaining = principal
        for number in range(1, total_payments + 1):
            interest = quantize(remaining * monthly_rate)
            if number == total_payments or payment - interest > remaining:
                principal_part = remaining
            else:
                principal_part = payment - interest
            remaining = remaining - principal_part

            schedule.append(AmortizationEntry(
                payment_number=number,
                payment_date=cls._add_months(first_date, number - 1),
                payment_amount=principal_part + interest,
                principal_amount=principal_part,
                interest_amount=interest,
                remaining_balance=remaining
            ))
            if remaining == 0:
                break
        return schedule


@dataclass
class Loan(ApprovalRequest):
    loan_type: LoanType = LoanType.PERSONAL
    amount: Decimal = ZERO
    term: int = 1  # years
    purpose: str = ""
    interest_rate: Optional[Decimal] = None  # annual percent, set on approval
    monthly_payment: Optional[Decimal] = None
    disbursement_transaction_id: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Loan':
        data = dict(data)
        data['loan_type'] = LoanType(data['loan_type'])
        data['amount'] = to_decimal(data['amount'])
        for key in ('interest_rate', 'monthly_payment'):
            if data.get(key) is not None:
                data[key] = to_decimal(data[key])
        return super().from_dict(data)


class LoanWorkflow(ApprovalWorkflow):
    request_class = Loan
    table_name = "loans"
    entity_type = "loan"
    notification_kind = NotificationKind.LOAN

    def __init__(self, storage, audit_trail, accounts, ledger, notifications=None):
        super().__init__(storage, audit_trail, accounts, notifications)
        self.ledger = ledger

    def apply(self, ctx: RequestContext, loan_type, amount, term, purpose: str = "") -> Loan:
        """
        Submit a loan application for the calling account.

        Raises:
            InvalidAmount: Amount not a positive number
            ValidationError: Unknown loan type, or a term that is not a whole
                number of years between one and the configured maximum
        """
        amount = parse_amount(amount, to_decimal(self.accounts.config.max_transaction_amount))
        try:
            loan_type = LoanType(loan_type.value if isinstance(loan_type, LoanType) else loan_type)
        except ValueError:
            raise ValidationError(f"Unknown loan type: {loan_type}")
        term = self._parse_term(term)

        account_id = ctx.account_id
        with self.storage.atomic():
            self.accounts.require_account(account_id)
            loan = Loan(
                loan_type=loan_type,
                amount=amount,
                term=term,
                purpose=purpose or "",
                **self._new_request_fields(account_id)
            )
            self._record_submission(ctx, loan, {
                "loan_type": loan_type.value, "amount": amount, "term": term
            })

        log_action(logger, "info", "Loan application submitted", user_id=account_id,
                   action="apply_loan", resource=loan.id, correlation_id=ctx.correlation_id,
                   extra={"amount": str(amount), "loan_type": loan_type.value})
        self._notify(account_id, "Loan Application Submitted",
                     f"Your {loan_type.value} loan application for {format_currency(amount)} "
                     "has been submitted for review.")
        return loan

    def _parse_term(self, term) -> int:
        max_term = self.accounts.config.max_loan_term_years
        if term is None or isinstance(term, bool):
            raise ValidationError("Loan term must be a whole number of years")
        try:
            value = Decimal(str(term).strip())
        except InvalidOperation:
            raise ValidationError("Loan term must be a whole number of years")
        if not value.is_finite() or value != value.to_integral_value():
            raise ValidationError("Loan term must be a whole number of years")
        if value < 1:
            raise ValidationError("Loan term must be at least one year")
        if value > max_term:
            raise ValidationError(f"Loan term cannot exceed {max_term} years")
        return int(value)

    def _on_approved(self, ctx: RequestContext, request: Loan, account: Account) -> None:
        self.ledger.disburse_loan(ctx, request)

    def _rejection_notes(self, notes: Optional[str]) -> Optional[str]:
        return notes.strip() if notes and notes.strip() else DEFAULT_REJECTION_NOTE

    def _approval_message(self, request: Loan) -> Tuple[str, str]:
        return ("Loan Approved!",
                f"Your {request.loan_type.value} loan of {format_currency(request.amount)} has been "
                "approved and funds have been added to your account.")

    def _rejection_message(self, request: Loan) -> Tuple[str, str]:
        return ("Loan Application Update",
                f"Your {request.loan_type.value} loan application has been reviewed and was not "
                "approved at this time.")

    def amortization_schedule(self, loan_id: str) -> List[AmortizationEntry]:
        """
        Informational repayment schedule.

        Uses the stored rate of an approved loan, the configured rate otherwise.
        """
        loan = self.require(loan_id)
        if loan.interest_rate is not None:
            annual_rate = loan.interest_rate / Decimal('100')
        else:
            annual_rate = to_decimal(self.accounts.config.loan_annual_interest_rate)
        start = (loan.processed_at or loan.created_at).date()
        return LoanCalculator.amortization_schedule(loan.amount, annual_rate, loan.term, start)

    def loan_summary(self, account_id: str) -> Dict[str, Any]:
        """Counts and approved total for one borrower"""
        loans = self.list_for_account(account_id)
        approved = [l for l in loans if l.status.value == "approved"]
        return {
            "total": len(loans),
            "pending": len([l for l in loans if l.is_pending]),
            "approved": len(approved),
            "rejected": len([l for l in loans if l.status.value == "rejected"]),
            "approved_amount": sum((l.amount for l in approved), ZERO)
        }
