"""
KYC endpoints for the calling account
"""

from fastapi import APIRouter, Depends, status

from .dependencies import get_banking_system, get_current_context
from .schemas import KycSubmitRequest
from ..context import RequestContext
from ..system import BankingSystem


router = APIRouter()


@router.get("")
def get_kyc_status(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Verification progress and the latest KYC request"""
    account = system.account_manager.require_account(ctx.account_id)
    requests = system.kyc.list_for_account(ctx.account_id)
    return {
        "is_verified": account.is_verified,
        "kyc_pending": account.kyc_pending,
        "kyc_progress": account.kyc_progress,
        "id_verified": account.id_verified,
        "address_verified": account.address_verified,
        "selfie_verified": account.selfie_verified,
        "latest_request": requests[0].to_dict() if requests else None
    }


@router.post("/submit", status_code=status.HTTP_201_CREATED)
def submit_kyc(
    request: KycSubmitRequest,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Submit references to uploaded identity documents"""
    kyc_request = system.kyc.submit(ctx, [d.model_dump() for d in request.documents])
    return {
        "request": kyc_request.to_dict(),
        "message": "Documents submitted successfully! Verification takes 1-2 business days."
    }
