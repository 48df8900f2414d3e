"""
Notification Module

Best-effort customer notifications. Ledger operations and approval decisions
call ``NotificationCenter.notify`` after their storage block has committed;
a failing channel is logged and never propagates back to the caller.

Channels:
- in-app: stored per account, listed and marked read through the API
- log: structured log line (development)
- webhook: JSON POST to a configured URL
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any
import uuid

import requests

from .storage import StorageInterface, StorageRecord
from .errors import NotFound
from .logging_config import get_logger, log_action


logger = get_logger("saxon.notifications")


class NotificationKind(Enum):
    """What the notification is about"""
    DEPOSIT = "deposit"
    TRANSFER = "transfer"
    PAYMENT = "payment"
    SECURITY = "security"
    CARD = "card"
    LOAN = "loan"
    REFERRAL = "referral"


@dataclass
class Notification(StorageRecord):
    account_id: str
    kind: NotificationKind
    title: str
    message: str
    read: bool = False

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        data = dict(data)
        data['kind'] = NotificationKind(data['kind'])
        return super().from_dict(data)


class ChannelProvider(ABC):
    """Abstract base class for notification channel providers"""

    name = "channel"

    @abstractmethod
    def send(self, notification: Notification) -> bool:
        """Send notification via this channel. Returns True if successful."""
        pass


class InAppChannelProvider(ChannelProvider):
    """In-app notification provider using storage"""

    name = "in_app"

    def __init__(self, storage: StorageInterface, table: str = "notifications"):
        self.storage = storage
        self.table = table

    def send(self, notification: Notification) -> bool:
        self.storage.save(self.table, notification.id, notification.to_dict())
        return True


class LogChannelProvider(ChannelProvider):
    """Logs the notification instead of delivering it"""

    name = "log"

    def __init__(self, channel_logger=None):
        self.logger = channel_logger or logger

    def send(self, notification: Notification) -> bool:
        log_action(self.logger, "info", f"Notification: {notification.title}",
                   user_id=notification.account_id, action="notify",
                   resource=notification.kind.value,
                   extra={"message": notification.message[:100]})
        return True


class WebhookChannelProvider(ChannelProvider):
    """Webhook channel provider for external integrations"""

    name = "webhook"

    def __init__(self, url: str, timeout: int = 10):
        self.url = url
        self.timeout = timeout

    def send(self, notification: Notification) -> bool:
        payload = {
            "notification_id": notification.id,
            "account_id": notification.account_id,
            "kind": notification.kind.value,
            "title": notification.title,
            "message": notification.message,
            "timestamp": notification.created_at.isoformat()
        }

        response = requests.post(
            self.url,
            json=payload,
            timeout=self.timeout,
            headers={"Content-Type": "application/json"}
        )
        return 200 <= response.status_code < 300


class NotificationCenter:
    """
    Fans a notification out to every registered channel and serves the
    in-app inbox.
    """

    def __init__(self, storage: StorageInterface,
                 providers: Optional[List[ChannelProvider]] = None):
        self.storage = storage
        self.in_app = InAppChannelProvider(storage)
        self.providers: List[ChannelProvider] = [self.in_app]
        for provider in providers or []:
            self.register_provider(provider)

    @property
    def table(self) -> str:
        return self.in_app.table

    def register_provider(self, provider: ChannelProvider) -> None:
        self.providers.append(provider)

    def notify(self, account_id: str, kind: NotificationKind, title: str,
               message: str) -> Optional[Notification]:
        """
        Fire-and-forget notification.

        Returns the notification, or None if it could not be built. Channel
        failures are logged and swallowed.
        """
        now = datetime.now(timezone.utc)
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            account_id=account_id,
            kind=kind,
            title=title,
            message=message
        )

        for provider in self.providers:
            try:
                if not provider.send(notification):
                    log_action(logger, "warning", "Notification channel declined delivery",
                               user_id=account_id, action="notify", resource=provider.name)
            except Exception as e:
                log_action(logger, "error", f"Notification channel failed: {e}",
                           user_id=account_id, action="notify", resource=provider.name)

        return notification

    def list_for_account(self, account_id: str, unread_only: bool = False,
                         limit: Optional[int] = None) -> List[Notification]:
        """In-app notifications for account_id, newest first"""
        filters = {"account_id": account_id}
        if unread_only:
            filters["read"] = False
        notifications = [Notification.from_dict(d) for d in self.storage.find(self.table, filters)]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        if limit:
            notifications = notifications[:limit]
        return notifications

    def mark_read(self, account_id: str, notification_id: str) -> Notification:
        """
        Mark one notification read.

        Raises:
            NotFound: Unknown id or owned by another account
        """
        data = self.storage.load(self.table, notification_id)
        if not data or data.get("account_id") != account_id:
            raise NotFound(f"Notification {notification_id} not found")

        notification = Notification.from_dict(data)
        if not notification.read:
            notification.read = True
            notification.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.table, notification.id, notification.to_dict())
        return notification

    def mark_all_read(self, account_id: str) -> int:
        """Mark every unread notification of account_id read; returns the count"""
        unread = self.list_for_account(account_id, unread_only=True)
        for notification in unread:
            notification.read = True
            notification.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.table, notification.id, notification.to_dict())
        return len(unread)

    def unread_count(self, account_id: str) -> int:
        return len(self.storage.find(self.table, {"account_id": account_id, "read": False}))
