"""
Audit trail written to the logs collection.

Every write here is best-effort: a failing store is reported through the
operational logger and the caller carries on.
"""

from typing import Any, Dict, Optional

from identity_service.store.index import IDocumentStore
from util.logging import logger

from .schema import LOGS, DiffRecord, LogEntry, LogType, ProfileStatus

BLOCKED_VERIFICATION_REASON = "Chaincode not linked. Hash sent by service is not verified."


class AuditTrail:
    """Appends LogEntry documents for health, reconciliation and verification events."""

    def __init__(self, store: IDocumentStore):
        self.store = store

    def record(self, entry: LogEntry) -> Optional[str]:
        """Write one entry. Returns the new document id, or None if the write failed."""
        try:
            return self.store.add(LOGS, entry.to_document())
        except Exception as e:
            logger.log_store_failure("append_log", LOGS, e, critical=False)
            return None

    @staticmethod
    def _meta(user_id: str, session_id: str = "") -> Dict[str, Any]:
        meta = {"userId": user_id}
        if session_id:
            meta["sessionId"] = session_id
        return meta

    def service_health(self, user_id: str, running: bool, session_id: str = "") -> Optional[str]:
        return self.record(LogEntry(
            type=LogType.PROFILE_SERVICE_HEALTH,
            meta=self._meta(user_id, session_id),
            body={"userId": user_id, "serviceRunning": running},
        ))

    def profile_skipped(self, user_id: str, reason: str, session_id: str = "") -> Optional[str]:
        return self.record(LogEntry(
            type=LogType.PROFILE_SKIPPED,
            meta=self._meta(user_id, session_id),
            body={"userId": user_id, "reason": reason},
        ))

    def diff_stored(self, diff: DiffRecord, session_id: str = "") -> Optional[str]:
        profile = diff.to_document()
        profile["id"] = diff.id
        return self.record(LogEntry(
            type=LogType.PROFILE_DIFF_STORED,
            meta=self._meta(diff.owner_id, session_id),
            body={"userId": diff.owner_id, "profile": profile},
        ))

    def service_blocked(self, user_id: str, reason: str, session_id: str = "") -> Optional[str]:
        return self.record(LogEntry(
            type=LogType.PROFILE_SERVICE_BLOCKED,
            meta=self._meta(user_id, session_id),
            body={"userId": user_id, "reason": reason},
        ))

    def verification(self, user_id: str, status: ProfileStatus, profile_url: str) -> Optional[str]:
        if status == ProfileStatus.VERIFIED:
            log_type = LogType.PROFILE_VERIFIED
            body = {"userId": user_id, "profileURL": profile_url}
        else:
            log_type = LogType.PROFILE_BLOCKED
            body = {"userId": user_id, "reason": BLOCKED_VERIFICATION_REASON}
        return self.record(LogEntry(type=log_type, meta=self._meta(user_id), body=body))

    def verification_blocked(self, user_id: str, reason: str) -> Optional[str]:
        return self.record(LogEntry(
            type=LogType.VERIFICATION_BLOCKED,
            meta=self._meta(user_id),
            body={"userId": user_id, "reason": reason},
        ))
