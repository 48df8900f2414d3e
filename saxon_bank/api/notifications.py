"""
In-app notification endpoints
"""

from typing import Optional
from fastapi import APIRouter, Depends, Query

from .dependencies import get_banking_system, get_current_context
from ..context import RequestContext
from ..system import BankingSystem


router = APIRouter()


@router.get("")
def list_notifications(
    unread_only: bool = False,
    limit: Optional[int] = Query(None, ge=1),
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Caller's notifications, newest first"""
    notifications = system.notifications.list_for_account(
        ctx.account_id, unread_only=unread_only, limit=limit
    )
    return {
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": system.notifications.unread_count(ctx.account_id)
    }


@router.post("/read-all")
def mark_all_read(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Mark every notification read"""
    return {"marked": system.notifications.mark_all_read(ctx.account_id)}


@router.post("/{notification_id}/read")
def mark_read(
    notification_id: str,
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
):
    """Mark one notification read"""
    return system.notifications.mark_read(ctx.account_id, notification_id).to_dict()
