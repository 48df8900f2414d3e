"""
Request-scoped caller identity.

Every operation receives the caller explicitly instead of reading ambient
session state. ``is_admin`` is a hint from the transport layer only; admin-only
operations re-check the persisted account before acting.
"""

import uuid
from dataclasses import dataclass, field
from typing import Optional


SYSTEM_ACCOUNT_ID = "system"


@dataclass(frozen=True)
class RequestContext:
    account_id: Optional[str]
    is_admin: bool = False
    correlation_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_system(self) -> bool:
        return self.account_id == SYSTEM_ACCOUNT_ID

    @classmethod
    def system(cls) -> 'RequestContext':
        """Context for internal triggers (referral completion, bootstrap)"""
        return cls(account_id=SYSTEM_ACCOUNT_ID, is_admin=True)

    @classmethod
    def for_account(cls, account_id: str, is_admin: bool = False) -> 'RequestContext':
        return cls(account_id=account_id, is_admin=is_admin)
