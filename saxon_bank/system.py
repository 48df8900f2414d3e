"""
Banking system assembly.

Builds every component over one storage backend so the API, scripts and
tests share the same wiring.
"""

from typing import Optional

from .storage import StorageInterface, create_storage
from .audit import AuditTrail
from .accounts import AccountManager
from .approvals import ApprovalWorkflow
from .billers import BillerDirectory
from .cards import CardWorkflow
from .config import SaxonConfig, get_config
from .kyc import KycWorkflow
from .ledger import Ledger
from .loans import LoanWorkflow
from .logging_config import get_logger
from .notifications import LogChannelProvider, NotificationCenter, WebhookChannelProvider
from .referrals import ReferralProgram
from .statements import StatementService
from .transactions import TransactionLog


logger = get_logger("saxon.system")


class BankingSystem:
    """Saxon Bank core with all components initialized"""

    def __init__(self, config: Optional[SaxonConfig] = None,
                 storage: Optional[StorageInterface] = None):
        self.config = config or get_config()

        # Initialize storage
        if storage is None:
            storage = create_storage(self.config.storage_backend, self.config.database_path)
        self.storage = storage

        # Initialize core components
        self.audit_trail = AuditTrail(self.storage, enabled=self.config.enable_audit_logging)
        self.notifications = NotificationCenter(self.storage)
        if self.config.log_format == "text":
            self.notifications.register_provider(LogChannelProvider())
        if self.config.notification_webhook_url:
            self.notifications.register_provider(WebhookChannelProvider(
                self.config.notification_webhook_url,
                timeout=self.config.notification_webhook_timeout
            ))

        self.account_manager = AccountManager(self.storage, self.audit_trail, self.config)
        self.transactions = TransactionLog(self.storage)
        self.billers = BillerDirectory(self.storage, self.audit_trail, self.account_manager)
        self.ledger = Ledger(
            self.storage, self.audit_trail, self.account_manager,
            self.transactions, self.billers, self.notifications
        )

        # Approval workflows
        self.cards = CardWorkflow(
            self.storage, self.audit_trail, self.account_manager, self.notifications
        )
        self.kyc = KycWorkflow(
            self.storage, self.audit_trail, self.account_manager, self.notifications
        )
        self.loans = LoanWorkflow(
            self.storage, self.audit_trail, self.account_manager, self.ledger, self.notifications
        )

        self.referrals = ReferralProgram(
            self.storage, self.audit_trail, self.account_manager, self.ledger, self.notifications
        )
        self.account_manager.referral_program = self.referrals

        self.workflows = {"cards": self.cards, "kyc": self.kyc, "loans": self.loans}

        self.statements = StatementService(
            self.account_manager, self.transactions, self.billers, workflows=self.workflows
        )

    def workflow(self, name: str) -> ApprovalWorkflow:
        """Approval workflow by API name: cards, kyc or loans"""
        return self.workflows[name]

    def close(self) -> None:
        self.storage.close()
