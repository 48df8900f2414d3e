"""
Account profile endpoints
"""

from fastapi import APIRouter, Depends

from .dependencies import get_banking_system, get_current_context
from .schemas import ProfileUpdateRequest, SettingsUpdateRequest
from ..context import RequestContext
from ..system import BankingSystem


router = APIRouter()


@router.get("/me")
def get_my_account(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's account without credentials"""
    return system.account_manager.require_account(ctx.account_id).public_dict()


@router.put("/me")
def update_my_profile(
    request: ProfileUpdateRequest,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Edit name, phone, date of birth and address"""
    account = system.account_manager.update_profile(
        ctx, ctx.account_id, **request.model_dump(exclude_unset=True)
    )
    return account.public_dict()


@router.get("/me/settings")
def get_my_settings(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    account = system.account_manager.require_account(ctx.account_id)
    return system.account_manager.settings_dict(account)


@router.put("/me/settings")
def update_my_settings(
    request: SettingsUpdateRequest,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Notification preferences and dark mode"""
    account = system.account_manager.update_settings(
        ctx, ctx.account_id, **request.model_dump(exclude_none=True)
    )
    return system.account_manager.settings_dict(account)


@router.get("/me/limits")
def get_my_limits(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Informational transaction limits"""
    account = system.account_manager.require_account(ctx.account_id)
    return {
        "daily_limit": str(account.daily_limit),
        "weekly_limit": str(account.weekly_limit),
        "monthly_limit": str(account.monthly_limit)
    }
