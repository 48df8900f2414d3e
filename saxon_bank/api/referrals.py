"""
Referral program endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import get_banking_system, get_current_context
from ..context import RequestContext
from ..system import BankingSystem


router = APIRouter()


@router.get("")
def get_referrals(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's referral code, statistics and referrals"""
    stats = system.referrals.stats(ctx.account_id)
    stats["earned"] = str(stats["earned"])
    referrals = system.referrals.list_for_referrer(ctx.account_id)
    return {
        **stats,
        "referrals": [r.to_dict() for r in referrals]
    }
