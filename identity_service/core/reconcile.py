"""
Profile reconciliation.

Decides what to do with a freshly fetched profile given the canonical profile
on the account, the outstanding PENDING diff and the most recently rejected
diff. At most one PENDING diff exists per user: any pending diff is resolved
to NOT APPROVED before a new one is written.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Optional

from identity_service.store.index import IDocumentStore
from util.logging import logger

from . import dao
from .audit import AuditTrail
from .batch import ensure_active
from .schema import DiffRecord, ProfileRecord


class Decision(str, Enum):
    STORE_NEW_DIFF = "STORE_NEW_DIFF"
    SKIP_SAME_AS_CANONICAL = "SKIP_SAME_AS_CANONICAL"
    SKIP_SAME_AS_PENDING = "SKIP_SAME_AS_PENDING"
    SKIP_SAME_AS_LAST_REJECTED = "SKIP_SAME_AS_LAST_REJECTED"


@dataclass
class ReconcileResult:
    decision: Decision
    stored_diff: Optional[DiffRecord] = None
    resolved_diff_id: Optional[str] = None
    rejected_diff_id: Optional[str] = None


class ProfileReconciler:
    """Applies the reconciliation rules and performs the resulting writes."""

    def __init__(self, store: IDocumentStore, audit: AuditTrail):
        self.store = store
        self.audit = audit

    def _resolve_pending(self, last_pending: Optional[DiffRecord]) -> Optional[str]:
        if last_pending is None or not last_pending.id:
            return None
        dao.set_not_approved(self.store, last_pending.id)
        return last_pending.id

    def reconcile(self, user_id: str, fetched: ProfileRecord, canonical: ProfileRecord,
                  last_pending: Optional[DiffRecord],
                  lookup_last_rejected: Callable[[], Optional[DiffRecord]],
                  session_id: str = "",
                  cancelled: Optional[threading.Event] = None) -> ReconcileResult:
        """
        Reconcile one user's fetched profile.

        Args:
            user_id: Owner of the profile
            fetched: Profile just returned by the user's service
            canonical: Profile currently stored on the account
            last_pending: Outstanding PENDING diff, if any
            lookup_last_rejected: Returns the newest NOT APPROVED diff; only
                called when a new diff is a candidate
            session_id: Batch session stamped on audit entries
            cancelled: Batch cancel_event, checked before each write

        Raises:
            StoreWriteError: if resolving the pending diff or storing the new one fails
            BatchCancelled: if cancelled is set before a write
        """
        ensure_active(cancelled)
        if fetched == canonical:
            resolved = self._resolve_pending(last_pending)
            self.audit.profile_skipped(user_id, "Current User Data is same as New Profile Data", session_id)
            logger.log_reconcile_decision(user_id, Decision.SKIP_SAME_AS_CANONICAL.value,
                                          {"resolved_diff_id": resolved})
            return ReconcileResult(Decision.SKIP_SAME_AS_CANONICAL, resolved_diff_id=resolved)

        if last_pending is not None and fetched == last_pending.profile:
            logger.log_reconcile_decision(user_id, Decision.SKIP_SAME_AS_PENDING.value,
                                          {"pending_diff_id": last_pending.id})
            return ReconcileResult(Decision.SKIP_SAME_AS_PENDING)

        resolved = self._resolve_pending(last_pending)

        last_rejected = lookup_last_rejected()
        if last_rejected is not None and fetched == last_rejected.profile:
            self.audit.profile_skipped(
                user_id,
                f"Last Rejected Diff is same as New Profile Data. Rejected Diff Id: {last_rejected.id}",
                session_id
            )
            logger.log_reconcile_decision(user_id, Decision.SKIP_SAME_AS_LAST_REJECTED.value,
                                          {"rejected_diff_id": last_rejected.id})
            return ReconcileResult(Decision.SKIP_SAME_AS_LAST_REJECTED, resolved_diff_id=resolved,
                                   rejected_diff_id=last_rejected.id)

        ensure_active(cancelled)
        diff = dao.store_diff(self.store, user_id, fetched)
        self.audit.diff_stored(diff, session_id)
        logger.log_reconcile_decision(user_id, Decision.STORE_NEW_DIFF.value,
                                      {"diff_id": diff.id, "resolved_diff_id": resolved})
        return ReconcileResult(Decision.STORE_NEW_DIFF, stored_diff=diff, resolved_diff_id=resolved)
