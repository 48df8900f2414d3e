"""
Card endpoints for the calling account
"""

from fastapi import APIRouter, Depends, status

from .dependencies import get_banking_system, get_current_context
from ..context import RequestContext
from ..system import BankingSystem


router = APIRouter()


@router.get("")
def get_card(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Card state and the latest card request"""
    account = system.account_manager.require_account(ctx.account_id).public_dict()
    requests = system.cards.list_for_account(ctx.account_id)
    return {
        "has_card": account["has_card"],
        "card_requested": account["card_requested"],
        "card_number": account["card_number"],
        "card_expiry": account["card_expiry"],
        "latest_request": requests[0].to_dict() if requests else None
    }


@router.post("/apply", status_code=status.HTTP_201_CREATED)
def apply_for_card(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Request a debit card"""
    request = system.cards.submit(ctx)
    return {
        "request": request.to_dict(),
        "message": "Card request submitted! We will review it within 2-3 business days."
    }
