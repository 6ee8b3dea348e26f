"""
The single path through which an account gets BLOCKED.
"""

from identity_service.store.index import IDocumentStore
from util.logging import logger

from . import dao
from .audit import AuditTrail
from .notifications import Notifier
from .schema import ProfileStatus, UserAccount


class AccountBlocker:
    """Blocks an account, clears its chaincode, notifies the owner and records the event."""

    def __init__(self, store: IDocumentStore, audit: AuditTrail, notifier: Notifier):
        self.store = store
        self.audit = audit
        self.notifier = notifier

    def block(self, account: UserAccount, reason: str, session_id: str = "") -> None:
        """
        Raises StoreWriteError if the status update fails. The notification
        and the audit entry are best-effort.
        """
        dao.set_profile_status(self.store, account.id, ProfileStatus.BLOCKED, clear_chaincode=True)

        notified = False
        if account.discord_id:
            notified = self.notifier.notify_blocked(account.discord_id, reason)

        self.audit.service_blocked(account.id, reason, session_id)
        logger.log_account_blocked(account.id, reason, notified)
