"""
Bill payment endpoints
"""

from fastapi import APIRouter, Depends, status

from .dependencies import get_banking_system, get_current_context
from .schemas import PayBillRequest
from ..context import RequestContext
from ..system import BankingSystem


router = APIRouter()


@router.get("")
def list_billers(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Active billers sorted by category then name"""
    return {"billers": [b.to_dict() for b in system.billers.list_active()]}


@router.post("/pay", status_code=status.HTTP_201_CREATED)
def pay_bill(
    request: PayBillRequest,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Pay a biller from the caller's balance"""
    payment = system.ledger.pay_bill(ctx, request.biller_id, request.amount, request.description)
    return {
        "payment": payment.to_dict(),
        "reference": payment.reference,
        "message": f"Payment successful! Reference: {payment.reference}"
    }


@router.get("/history")
def payment_history(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's bill payments, newest first"""
    return {"payments": [p.to_dict() for p in system.billers.payment_history(ctx.account_id)]}
