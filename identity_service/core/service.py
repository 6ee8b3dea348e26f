"""
Operation layer shared by the HTTP app, the Lambda handlers and the CLI.

IdentityService wires the components together for one ServiceConfig and
exposes each invocable operation as a method returning InvocationResult.
Caller-facing failures are raised as IdentityServiceError subclasses.
"""

import threading
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests

from identity_service.store.factory import get_document_store
from identity_service.store.index import IDocumentStore
from util.logging import logger

from . import dao
from .audit import AuditTrail
from .batch import BatchResult, ensure_active, run_batch
from .blocking import AccountBlocker
from .config import ServiceConfig, load_config, validate_config
from .errors import AccountNotFoundError, AlreadyVerifiedError, ChaincodeBlockedError, InputError, RemoteServiceError
from .health_probe import HealthProbe, ProbeResult
from .locks import UserLockRegistry
from .notifications import Notifier
from .parameters import ParameterResolver
from .profile_sync import ProfileSync, SyncOutcome, SyncResult
from .reconcile import ProfileReconciler
from .schema import ProfileStatus, UserAccount
from .verification import ChaincodeVerifier

HEALTH_MESSAGE = "Awesome, Server health is good!!!"
VERIFICATION_DONE = "Verification Process Done"


@dataclass
class InvocationResult:
    status_code: int
    message: str
    report: Optional[Dict[str, Any]] = field(default=None)


def _bucket(usernames: List[str]) -> Dict[str, Any]:
    return {"count": len(usernames), "usernames": usernames}


def build_sync_report(batch: BatchResult, accounts: Dict[str, UserAccount]) -> Dict[str, Any]:
    """Shape a batch of SyncResults into the reconciliation report."""
    def name_of(user_id: str) -> str:
        account = accounts.get(user_id)
        return account.display_name if account else user_id

    stored = []
    skipped = {
        outcome.value: [] for outcome in SyncOutcome
        if outcome not in (SyncOutcome.STORED, SyncOutcome.NO_USER_ID)
    }
    for user_id, result in batch.results.items():
        if result.outcome == SyncOutcome.STORED:
            stored.append(result.username or name_of(user_id))
        else:
            skipped.setdefault(result.outcome.value, []).append(result.username or name_of(user_id))

    return {
        "TotalProfilesChecked": batch.total,
        "Stored": _bucket(stored),
        "Skipped": {reason: _bucket(names) for reason, names in skipped.items()},
        "Errors": {
            "count": len(batch.errors),
            "usernames": [name_of(user_id) for user_id in batch.errors],
            "details": dict(batch.errors),
        },
        "TimedOut": _bucket([name_of(user_id) for user_id in batch.timed_out]),
    }


class IdentityService:
    """Entry point for every operation of the identity service."""

    def __init__(self, config: ServiceConfig, store: IDocumentStore,
                 parameters: Optional[ParameterResolver] = None,
                 session: Optional[requests.Session] = None,
                 notifier: Optional[Notifier] = None):
        self.config = config
        self.store = store
        self.parameters = parameters if parameters is not None else ParameterResolver(config)
        self.session = session if session is not None else requests.Session()

        self.audit = AuditTrail(store)
        self.notifier = notifier if notifier is not None else Notifier(config, self.parameters, self.session)
        self.blocker = AccountBlocker(store, self.audit, self.notifier)
        self.locks = UserLockRegistry()
        self.probe = HealthProbe(self.session)
        self.reconciler = ProfileReconciler(store, self.audit)
        self.verifier = ChaincodeVerifier(
            timeout=config.verify_timeout_sec,
            salt_length=config.salt_length,
            session=self.session
        )
        self.profile_sync = ProfileSync(
            config, store, self.audit, self.blocker, self.reconciler,
            probe=self.probe, locks=self.locks, session=self.session
        )

    def health(self) -> InvocationResult:
        return InvocationResult(200, HEALTH_MESSAGE)

    def sync_profile(self, user_id: str, session_id: str = "") -> InvocationResult:
        """Reconcile one user. Skips are reported as 200 with a descriptive message."""
        result = self.profile_sync.sync(user_id or "", session_id or "")
        return InvocationResult(200, result.message, report={
            "userId": result.user_id,
            "outcome": result.outcome.value,
            "reason": result.reason,
            "diffId": result.diff_id,
        })

    def sync_all_profiles(self) -> InvocationResult:
        """Reconcile every VERIFIED account under a new session id."""
        session_id = dao.create_session(self.store)
        accounts = {account.id: account for account in dao.list_verified_users(self.store)}
        logger.info(f"Starting profile sync session {session_id} for {len(accounts)} accounts")

        cancelled = threading.Event()

        def task(account: UserAccount) -> SyncResult:
            return self.profile_sync.sync(account.id, session_id, cancelled)

        batch = run_batch(
            "sync_profiles",
            accounts.values(),
            task,
            key=lambda account: account.id,
            max_workers=self.config.batch_max_workers,
            deadline_sec=self.config.batch_deadline_sec,
            cancel_event=cancelled
        )

        report = build_sync_report(batch, accounts)
        report["sessionId"] = session_id
        return InvocationResult(200, f"Total Profiles called in session is {batch.total}", report=report)

    def check_all_health(self) -> InvocationResult:
        """Probe every VERIFIED account's service and block the ones that are down."""
        accounts = [
            account for account in dao.list_verified_users(self.store)
            if isinstance(account.profile_url, str) and account.profile_url
        ]

        cancelled = threading.Event()

        def task(account: UserAccount) -> ProbeResult:
            probe = self.probe.probe(account.profile_url, self.config.health_timeout_sec)
            ensure_active(cancelled)
            self.audit.service_health(account.id, probe.running)
            logger.log_health_probe(account.id, account.profile_url, probe.running)
            if not probe.running:
                with self.locks.hold(account.id):
                    ensure_active(cancelled)
                    self.blocker.block(account, "Profile Service Down")
            return probe

        batch = run_batch(
            "health_check",
            accounts,
            task,
            key=lambda account: account.id,
            max_workers=self.config.batch_max_workers,
            deadline_sec=self.config.batch_deadline_sec,
            cancel_event=cancelled
        )

        names = {account.id: account.display_name for account in accounts}
        running = [names[user_id] for user_id, probe in batch.results.items() if probe.running]
        down = [names[user_id] for user_id, probe in batch.results.items() if not probe.running]
        report = {
            "TotalProfilesChecked": batch.total,
            "Running": _bucket(running),
            "Down": _bucket(down),
            "Errors": {
                "count": len(batch.errors),
                "usernames": [names[user_id] for user_id in batch.errors],
                "details": dict(batch.errors),
            },
            "TimedOut": _bucket([names[user_id] for user_id in batch.timed_out]),
        }
        return InvocationResult(200, f"Total Profiles called in session is {batch.total}", report=report)

    def verify_user(self, user_id: str) -> InvocationResult:
        """
        Run chaincode verification for one account.

        Raises:
            InputError: no userId, or the account lacks a usable profileURL/chaincode
            AccountNotFoundError: no such account
            ChaincodeBlockedError: the chaincode was cleared by an earlier block
            AlreadyVerifiedError: the account is already VERIFIED
            RemoteServiceError: the profile service could not be reached
        """
        if not user_id:
            raise InputError("no userId provided")

        with self.locks.hold(user_id):
            account = dao.get_user(self.store, user_id)
            if account is None:
                raise AccountNotFoundError(f"user {user_id} not found")

            if not isinstance(account.profile_url, str) or not account.profile_url:
                raise InputError("profile url is not a string")

            if isinstance(account.chaincode, str) and account.chaincode == "":
                self.audit.verification_blocked(user_id, "Chaincode is empty. Generate new one.")
                raise ChaincodeBlockedError("chaincode is blocked")
            if not isinstance(account.chaincode, str):
                raise InputError("chaincode is not a string")

            if account.profile_status == ProfileStatus.VERIFIED.value:
                raise AlreadyVerifiedError("Already Verified")

            result = self.verifier.verify(account.profile_url, account.chaincode)
            self.audit.verification(user_id, result.status, account.profile_url)
            dao.set_profile_status(
                self.store, user_id, result.status,
                clear_chaincode=result.status == ProfileStatus.BLOCKED
            )
            logger.log_verification(
                user_id, result.status.value, account.profile_url,
                error=str(result.error) if result.error else result.reason
            )

        if result.error is not None:
            raise RemoteServiceError(f"verification request failed: {result.error}")

        return InvocationResult(200, VERIFICATION_DONE, report={"status": result.status.value})


def create_service(config: Optional[ServiceConfig] = None) -> IdentityService:
    """
    Build an IdentityService from the environment.

    Raises ConfigurationError when the document store cannot be initialised.
    """
    config = config if config is not None else load_config()
    logger.set_debug(config.debug)
    for issue in validate_config(config):
        logger.warning(f"Config issue: {issue}")

    parameters = ParameterResolver(config)
    store = get_document_store(config, parameters)
    return IdentityService(config, store, parameters)
