"""
Admin endpoints: dashboard, users, transfer resolution, approval queues,
billers, referrals and audit
"""

from enum import Enum
from typing import Any, Dict, Optional
from fastapi import APIRouter, Depends, Query, status

from .dependencies import get_banking_system, require_admin_context
from .schemas import AddBillerRequest, BalanceAdjustmentRequest, DecisionRequest
from ..context import RequestContext
from ..system import BankingSystem


router = APIRouter()


class ReviewQueue(str, Enum):
    CARDS = "cards"
    KYC = "kyc"
    LOANS = "loans"


@router.get("")
def dashboard(
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
) -> Dict[str, Any]:
    """Pending work and totals"""
    summary = system.statements.admin_summary()
    summary["total_balance"] = str(summary["total_balance"])
    return summary


# Users

@router.get("/users")
def list_users(
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """All accounts, newest first"""
    return {"users": [a.public_dict() for a in system.account_manager.list_accounts()]}


@router.get("/users/{account_id}")
def get_user(
    account_id: str,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Account with its transactions, requests and loans"""
    account = system.account_manager.require_account(account_id)
    card_requests = system.cards.list_for_account(account_id)
    kyc_requests = system.kyc.list_for_account(account_id)
    return {
        "user": account.public_dict(),
        "transactions": [t.to_dict() for t in system.transactions.list_for_account(account_id)],
        "card_request": card_requests[0].to_dict() if card_requests else None,
        "kyc_request": kyc_requests[0].to_dict() if kyc_requests else None,
        "loans": [l.to_dict() for l in system.loans.list_for_account(account_id)]
    }


@router.post("/users/{account_id}/balance")
def adjust_balance(
    account_id: str,
    request: BalanceAdjustmentRequest,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Credit (add) or debit (deduct) an account"""
    transaction = system.ledger.adjust_balance(
        ctx, account_id, request.action, request.amount, request.reason
    )
    account = system.account_manager.require_account(account_id)
    return {
        "transaction": transaction.to_dict(),
        "balance": str(account.balance),
        "message": "Balance updated successfully"
    }


@router.post("/users/{account_id}/toggle-admin")
def toggle_admin(
    account_id: str,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Grant or revoke the admin role"""
    account = system.account_manager.toggle_admin(ctx, account_id)
    return {"user": account.public_dict(), "is_admin": account.is_admin}


# Transfers

@router.get("/transfers")
def list_pending_transfers(
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Transfers waiting for a decision, newest first"""
    return {"transfers": [t.to_dict() for t in system.transactions.list_pending_transfers()]}


@router.post("/transfers/{transaction_id}/approve")
def approve_transfer(
    transaction_id: str,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Credit the recipient and complete the transfer"""
    transaction = system.ledger.approve_transfer(ctx, transaction_id)
    return {"transaction": transaction.to_dict(), "message": "Transfer approved"}


@router.post("/transfers/{transaction_id}/reject")
def reject_transfer(
    transaction_id: str,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Refund the sender and reject the transfer"""
    transaction = system.ledger.reject_transfer(ctx, transaction_id)
    return {"transaction": transaction.to_dict(), "message": "Transfer rejected and refunded"}


# Billers

@router.get("/billers")
def list_all_billers(
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Every biller, active or not"""
    return {"billers": [b.to_dict() for b in system.billers.list_all()]}


@router.post("/billers", status_code=status.HTTP_201_CREATED)
def add_biller(
    request: AddBillerRequest,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Add an active biller"""
    biller = system.billers.add_biller(
        ctx, request.name, request.category, request.account_number, request.description
    )
    return {"biller": biller.to_dict(), "message": "Biller added successfully"}


@router.post("/billers/{biller_id}/toggle")
def toggle_biller(
    biller_id: str,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Activate or deactivate a biller"""
    return {"biller": system.billers.toggle_biller(ctx, biller_id).to_dict()}


@router.delete("/billers/{biller_id}")
def delete_biller(
    biller_id: str,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Remove a biller"""
    system.billers.delete_biller(ctx, biller_id)
    return {"message": "Biller deleted"}


# Referrals

@router.post("/referrals/{referral_id}/complete")
def complete_referral(
    referral_id: str,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Pay the referral reward"""
    referral = system.referrals.complete_referral(ctx, referral_id)
    return {"referral": referral.to_dict(), "message": "Referral reward credited"}


# Audit

@router.get("/audit")
def get_audit_events(
    limit: Optional[int] = Query(100, ge=1),
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Most recent audit events"""
    events = system.audit_trail.get_all_events(limit=limit)
    return {"events": [e.to_dict() for e in events], "count": len(events)}


@router.get("/audit/verify")
def verify_audit_integrity(
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Check the audit hash chain"""
    return system.audit_trail.verify_integrity()


# Approval queues: cards, kyc, loans

@router.get("/{queue}")
def list_queue(
    queue: ReviewQueue,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Pending requests and the latest processed ones"""
    workflow = system.workflow(queue.value)
    return {
        "pending": [r.to_dict() for r in workflow.list_pending()],
        "processed": [r.to_dict() for r in workflow.list_processed()]
    }


@router.post("/{queue}/{request_id}/approve")
def approve_request(
    queue: ReviewQueue,
    request_id: str,
    request: Optional[DecisionRequest] = None,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Approve a pending card, KYC or loan request"""
    decided = system.workflow(queue.value).approve(
        ctx, request_id, request.notes if request else None
    )
    return {"request": decided.to_dict(), "message": "Request approved"}


@router.post("/{queue}/{request_id}/reject")
def reject_request(
    queue: ReviewQueue,
    request_id: str,
    request: Optional[DecisionRequest] = None,
    ctx: RequestContext = Depends(require_admin_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Reject a pending card, KYC or loan request"""
    decided = system.workflow(queue.value).reject(
        ctx, request_id, request.notes if request else None
    )
    return {"request": decided.to_dict(), "message": "Request rejected"}
