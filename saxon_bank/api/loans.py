"""
Loan endpoints for the calling account
"""

from fastapi import APIRouter, Depends, status

from .dependencies import get_banking_system, get_current_context
from .schemas import LoanApplicationRequest
from ..context import RequestContext
from ..system import BankingSystem


router = APIRouter()


@router.get("")
def list_loans(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's loans, newest first, with a summary"""
    loans = system.loans.list_for_account(ctx.account_id)
    summary = system.loans.loan_summary(ctx.account_id)
    summary["approved_amount"] = str(summary["approved_amount"])
    return {"loans": [l.to_dict() for l in loans], "summary": summary}


@router.post("/apply", status_code=status.HTTP_201_CREATED)
def apply_for_loan(
    request: LoanApplicationRequest,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Submit a loan application for admin review"""
    loan = system.loans.apply(ctx, request.loan_type, request.amount, request.term, request.purpose)
    return {
        "loan": loan.to_dict(),
        "message": "Loan application submitted successfully! We will review it within 2-3 business days."
    }


@router.get("/{loan_id}/schedule")
def get_loan_schedule(
    loan_id: str,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Informational amortization schedule"""
    loan = system.loans.require(loan_id)
    system.account_manager.require_self_or_admin(ctx, loan.account_id)
    schedule = system.loans.amortization_schedule(loan_id)
    return {
        "loan_id": loan_id,
        "schedule": [entry.to_dict() for entry in schedule]
    }
