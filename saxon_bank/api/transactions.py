"""
Ledger endpoints for the calling account: deposit, withdraw, transfer,
history, statement and spending insights
"""

from datetime import datetime
from typing import Optional
from fastapi import APIRouter, Depends, Query, status

from .dependencies import get_banking_system, get_current_context
from .schemas import DepositRequest, TransferRequest, WithdrawRequest
from ..context import RequestContext
from ..system import BankingSystem


router = APIRouter()


@router.post("/deposit", status_code=status.HTTP_201_CREATED)
def deposit(
    request: DepositRequest,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Deposit into the caller's account"""
    transaction = system.ledger.deposit(ctx, ctx.account_id, request.amount, request.description)
    account = system.account_manager.require_account(ctx.account_id)
    return {
        "transaction": transaction.to_dict(),
        "balance": str(account.balance),
        "message": "Deposit successful"
    }


@router.post("/withdraw", status_code=status.HTTP_201_CREATED)
def withdraw(
    request: WithdrawRequest,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Withdraw from the caller's account"""
    transaction = system.ledger.withdraw(ctx, ctx.account_id, request.amount, request.description)
    account = system.account_manager.require_account(ctx.account_id)
    return {
        "transaction": transaction.to_dict(),
        "balance": str(account.balance),
        "message": "Withdrawal successful"
    }


@router.post("/transfer", status_code=status.HTTP_201_CREATED)
def transfer(
    request: TransferRequest,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Submit a transfer; the amount is debited now and held pending admin approval"""
    transaction = system.ledger.submit_transfer(
        ctx, request.to_account, request.amount, request.description
    )
    account = system.account_manager.require_account(ctx.account_id)
    return {
        "transaction": transaction.to_dict(),
        "balance": str(account.balance),
        "message": f"Transfer initiated! Amount ${transaction.amount} debited from your account. "
                   "Pending admin approval."
    }


@router.get("")
def list_transactions(
    limit: Optional[int] = Query(None, ge=1),
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's transactions, newest first"""
    transactions = system.transactions.list_for_account(ctx.account_id, limit=limit)
    return {
        "transactions": [t.to_dict() for t in transactions],
        "count": len(transactions)
    }


@router.get("/statement")
def get_statement(
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Account statement, optionally limited to a period"""
    return system.statements.statement(ctx.account_id, start, end).to_dict()


@router.get("/insights")
def get_insights(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Spending grouped by category"""
    insights = system.statements.insights(ctx.account_id)
    return {
        "categories": {name: str(total) for name, total in insights["categories"].items()},
        "total_spent": str(insights["total_spent"]),
        "top_category": insights["top_category"],
        "transaction_count": insights["transaction_count"]
    }


@router.get("/{transaction_id}")
def get_transaction(
    transaction_id: str,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """One transaction owned by the caller (admins may read any)"""
    transaction = system.transactions.require(transaction_id)
    system.account_manager.require_self_or_admin(ctx, transaction.account_id)
    return transaction.to_dict()
