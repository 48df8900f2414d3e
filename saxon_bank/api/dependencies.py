"""
Authentication and request-context dependencies
"""

from datetime import datetime, timezone, timedelta
from typing import Any, Dict, Optional
import uuid

import jwt
from fastapi import Depends, Request
from fastapi.security import HTTPBearer, HTTPAuthorizationCredentials

from ..accounts import Account
from ..context import RequestContext
from ..errors import AuthenticationError
from ..system import BankingSystem


# JWT Security
security = HTTPBearer(auto_error=False)


def get_banking_system(request: Request) -> BankingSystem:
    return request.app.state.system


def create_access_token(system: BankingSystem, account: Account) -> Dict[str, Any]:
    """Issue a bearer token carrying only the account id"""
    config = system.config
    now = datetime.now(timezone.utc)
    expires_at = now + timedelta(hours=config.jwt_expiry_hours)
    token_payload = {
        "sub": account.id,
        "exp": expires_at,
        "iat": now
    }
    token = jwt.encode(token_payload, config.jwt_secret, algorithm=config.jwt_algorithm)
    return {
        "access_token": token,
        "token_type": "bearer",
        "expires_at": expires_at.isoformat()
    }


def get_current_context(
    request: Request,
    credentials: Optional[HTTPAuthorizationCredentials] = Depends(security),
    system: BankingSystem = Depends(get_banking_system)
) -> RequestContext:
    """
    Validate the bearer token and build the caller's RequestContext.

    The admin flag comes from the stored account, not from the token.
    """
    if not credentials:
        raise AuthenticationError("Not authenticated")
    try:
        payload = jwt.decode(
            credentials.credentials,
            system.config.jwt_secret,
            algorithms=[system.config.jwt_algorithm]
        )
    except jwt.ExpiredSignatureError:
        raise AuthenticationError("Token expired")
    except jwt.InvalidTokenError:
        raise AuthenticationError("Invalid token")

    account_id = payload.get("sub")
    account = system.account_manager.get_account(account_id) if account_id else None
    if not account:
        raise AuthenticationError("Invalid token")

    correlation_id = request.headers.get("X-Correlation-ID") or str(uuid.uuid4())
    return RequestContext(
        account_id=account.id,
        is_admin=account.is_admin,
        correlation_id=correlation_id
    )


def require_admin_context(
    ctx: RequestContext = Depends(get_current_context),
    system: BankingSystem = Depends(get_banking_system)
) -> RequestContext:
    """Dependency for admin-only routes; raises PermissionDenied otherwise"""
    system.account_manager.require_admin(ctx)
    return ctx
