"""
Fetch-and-reconcile for a single user.

Loads the account, checks that its profile service is reachable, fetches the
self-reported profile with a bcrypt-hashed chaincode as bearer token,
validates it and hands it to the reconciler. Every early exit records a
PROFILE_SKIPPED entry; exits caused by the user's service also block the
account.
"""

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import bcrypt
import requests

from identity_service.store.index import IDocumentStore
from util.logging import logger

from . import dao
from .audit import AuditTrail
from .batch import ensure_active
from .blocking import AccountBlocker
from .config import ServiceConfig
from .errors import ProfileValidationError
from .health_probe import HealthProbe, join_url
from .locks import UserLockRegistry
from .reconcile import Decision, ProfileReconciler
from .schema import ApprovalState, ProfileRecord, UserAccount
from .validation import validate_profile


class SyncOutcome(str, Enum):
    """Outcome of one user's sync. Values are the keys used in batch reports."""
    STORED = "Stored"
    NO_USER_ID = "NoUserId"
    USER_NOT_FOUND = "UserNotFound"
    NO_PROFILE_URL = "NoProfileURLCount"
    CHAINCODE_EMPTY = "ProfileServiceBlockedOrChaincodeEmpty"
    CHAINCODE_NOT_FOUND = "ChaincodeNotFound"
    NO_USER_DATA = "UserDataTypeError"
    SERVICE_DOWN = "ServiceDown"
    UNAUTHENTICATED = "UnauthenticatedAccessToProfileData"
    PROFILE_FETCH_ERROR = "ErrorInGettingProfileData"
    OTHER_ERROR = "OtherError"
    VALIDATION_ERROR = "ValidationError"
    SAME_AS_CANONICAL = "CurrentUserDataSameAsDiff"
    SAME_AS_PENDING = "SameAsLastPendingDiff"
    SAME_AS_LAST_REJECTED = "SameAsLastRejectedDiff"

    @property
    def message(self) -> str:
        return OUTCOME_MESSAGES[self]


OUTCOME_MESSAGES = {
    SyncOutcome.STORED: "Profile Saved",
    SyncOutcome.NO_USER_ID: "Profile Skipped No UserID",
    SyncOutcome.USER_NOT_FOUND: "Profile Skipped User Not Found",
    SyncOutcome.NO_PROFILE_URL: "Profile Skipped No Profile URL",
    SyncOutcome.CHAINCODE_EMPTY: "Profile Skipped Profile Service Blocked",
    SyncOutcome.CHAINCODE_NOT_FOUND: "Profile Skipped Chaincode Not Found",
    SyncOutcome.NO_USER_DATA: "Profile Skipped No User Data",
    SyncOutcome.SERVICE_DOWN: "Profile Skipped Service Down",
    SyncOutcome.UNAUTHENTICATED: "Profile Skipped unauthenticated access to profile data",
    SyncOutcome.PROFILE_FETCH_ERROR: "Profile Skipped error in getting profile data",
    SyncOutcome.OTHER_ERROR: "Profile Skipped other error",
    SyncOutcome.VALIDATION_ERROR: "Profile Skipped validation error",
    SyncOutcome.SAME_AS_CANONICAL: "Profile Skipped same data exists",
    SyncOutcome.SAME_AS_PENDING: "Profile Skipped same last pending diff",
    SyncOutcome.SAME_AS_LAST_REJECTED: "Profile Skipped same last rejected diff",
}

DECISION_OUTCOMES = {
    Decision.STORE_NEW_DIFF: SyncOutcome.STORED,
    Decision.SKIP_SAME_AS_CANONICAL: SyncOutcome.SAME_AS_CANONICAL,
    Decision.SKIP_SAME_AS_PENDING: SyncOutcome.SAME_AS_PENDING,
    Decision.SKIP_SAME_AS_LAST_REJECTED: SyncOutcome.SAME_AS_LAST_REJECTED,
}


@dataclass
class SyncResult:
    user_id: str
    outcome: SyncOutcome
    username: str = ""
    reason: str = ""
    diff_id: Optional[str] = None

    @property
    def message(self) -> str:
        return self.outcome.message


class _FetchFailed(Exception):

    def __init__(self, outcome: SyncOutcome, reason: str):
        super().__init__(reason)
        self.outcome = outcome
        self.reason = reason


class ProfileSync:
    """Runs the single-user sync flow."""

    def __init__(self, config: ServiceConfig, store: IDocumentStore, audit: AuditTrail,
                 blocker: AccountBlocker, reconciler: ProfileReconciler,
                 probe: Optional[HealthProbe] = None, locks: Optional[UserLockRegistry] = None,
                 session: Optional[requests.Session] = None):
        self.config = config
        self.store = store
        self.audit = audit
        self.blocker = blocker
        self.reconciler = reconciler
        self.session = session if session is not None else requests.Session()
        self.probe = probe if probe is not None else HealthProbe(self.session)
        self.locks = locks if locks is not None else UserLockRegistry()

    def _skip(self, account: UserAccount, outcome: SyncOutcome, reason: str,
              session_id: str, block: bool,
              cancelled: Optional[threading.Event] = None) -> SyncResult:
        ensure_active(cancelled)
        self.audit.profile_skipped(account.id, reason, session_id)
        logger.log_profile_skipped(account.id, reason, session_id)
        if block:
            ensure_active(cancelled)
            self.blocker.block(account, reason, session_id)
        return SyncResult(account.id, outcome, username=account.display_name, reason=reason)

    def bearer_token(self, chaincode: str) -> str:
        hashed = bcrypt.hashpw(chaincode.encode("utf-8"), bcrypt.gensalt(rounds=self.config.bcrypt_rounds))
        return hashed.decode("utf-8")

    def fetch_profile(self, profile_url: str, chaincode: str) -> ProfileRecord:
        """GET {profile_url}/profile. Raises _FetchFailed with the outcome to report."""
        try:
            token = self.bearer_token(chaincode)
        except ValueError as e:
            raise _FetchFailed(SyncOutcome.OTHER_ERROR, f"chaincode not encrypted: {e}")

        url = join_url(profile_url, "profile")
        try:
            response = self.session.get(
                url,
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.config.profile_timeout_sec
            )
        except requests.exceptions.RequestException as e:
            raise _FetchFailed(SyncOutcome.OTHER_ERROR, f"error getting profile data: {e}")

        if response.status_code == 401:
            raise _FetchFailed(SyncOutcome.UNAUTHENTICATED, "Unauthenticated Access to Profile Data")
        if response.status_code != 200:
            raise _FetchFailed(SyncOutcome.PROFILE_FETCH_ERROR, "Error in getting Profile Data")

        try:
            return ProfileRecord.from_dict(response.json())
        except (ValueError, TypeError) as e:
            raise _FetchFailed(SyncOutcome.OTHER_ERROR, f"error converting data to json: {e}")

    def sync(self, user_id: str, session_id: str = "",
             cancelled: Optional[threading.Event] = None) -> SyncResult:
        """
        Sync one user.

        Skips come back as a SyncResult; only store failures (StoreReadError,
        StoreWriteError) propagate. When run inside a batch, cancelled is the
        batch cancel_event and BatchCancelled is raised instead of writing
        once it is set.
        """
        if not user_id:
            return SyncResult("", SyncOutcome.NO_USER_ID)

        with self.locks.hold(user_id):
            return self._sync_locked(user_id, session_id, cancelled)

    def _sync_locked(self, user_id: str, session_id: str,
                     cancelled: Optional[threading.Event]) -> SyncResult:
        ensure_active(cancelled)
        account = dao.get_user(self.store, user_id)
        if account is None:
            self.audit.profile_skipped(user_id, "User Not Found", session_id)
            logger.log_profile_skipped(user_id, "User Not Found", session_id)
            return SyncResult(user_id, SyncOutcome.USER_NOT_FOUND, reason="User Not Found")

        if not isinstance(account.profile_url, str) or not account.profile_url:
            return self._skip(account, SyncOutcome.NO_PROFILE_URL, "Profile URL not available",
                              session_id, block=True, cancelled=cancelled)

        if not isinstance(account.chaincode, str):
            return self._skip(account, SyncOutcome.CHAINCODE_NOT_FOUND, "Chaincode Not Found",
                              session_id, block=True, cancelled=cancelled)
        if account.chaincode == "":
            return self._skip(account, SyncOutcome.CHAINCODE_EMPTY,
                              "Profile Service Blocked or Chaincode is empty", session_id,
                              block=True, cancelled=cancelled)

        try:
            canonical = account.canonical_profile()
        except TypeError as e:
            return self._skip(account, SyncOutcome.NO_USER_DATA, f"UserData Type Error: {e}",
                              session_id, block=False, cancelled=cancelled)

        probe = self.probe.probe(account.profile_url, self.config.profile_health_timeout_sec)
        ensure_active(cancelled)
        self.audit.service_health(account.id, probe.running, session_id)
        logger.log_health_probe(account.id, account.profile_url, probe.running, session_id)
        if not probe.running:
            return self._skip(account, SyncOutcome.SERVICE_DOWN, "Profile Service Down",
                              session_id, block=True, cancelled=cancelled)

        try:
            fetched = self.fetch_profile(account.profile_url, account.chaincode)
        except _FetchFailed as e:
            return self._skip(account, e.outcome, e.reason, session_id,
                              block=True, cancelled=cancelled)

        try:
            validate_profile(fetched)
        except ProfileValidationError as e:
            return self._skip(account, SyncOutcome.VALIDATION_ERROR, e.message, session_id,
                              block=self.config.block_on_validation_error, cancelled=cancelled)

        last_pending = dao.get_last_diff(self.store, account.id, ApprovalState.PENDING)
        result = self.reconciler.reconcile(
            account.id,
            fetched,
            canonical,
            last_pending,
            lambda: dao.get_last_diff(self.store, account.id, ApprovalState.NOT_APPROVED),
            session_id,
            cancelled
        )

        outcome = DECISION_OUTCOMES[result.decision]
        return SyncResult(
            account.id,
            outcome,
            username=account.display_name,
            diff_id=result.stored_diff.id if result.stored_diff else None
        )
