"""
Data access for users, profile diffs and batch sessions.

Writes here are correctness-critical: a failure is logged and re-raised as
StoreWriteError so the invocation reports it. Audit log writes, which are
best-effort, live in audit.py.
"""

from typing import List, Optional

from identity_service.store.index import IDocumentStore
from identity_service.store.types import DESCENDING
from util.logging import logger

from .errors import StoreReadError, StoreWriteError
from .schema import (
    PROFILE_DIFFS, SESSIONS, USERS, ApprovalState, DiffRecord, ProfileRecord,
    ProfileStatus, UserAccount, now_millis, utcnow
)


def get_user(store: IDocumentStore, user_id: str) -> Optional[UserAccount]:
    """Load a user account, or None when no such document exists."""
    try:
        snapshot = store.get(USERS, user_id)
    except Exception as e:
        logger.log_store_failure("get", USERS, e)
        raise StoreReadError("get", USERS, e)

    if not snapshot.exists:
        return None
    return UserAccount.from_document(snapshot.id, snapshot.data)


def list_verified_users(store: IDocumentStore) -> List[UserAccount]:
    """Every account whose profileStatus is VERIFIED."""
    try:
        snapshots = store.query(USERS).where("profileStatus", "==", ProfileStatus.VERIFIED.value).get()
    except Exception as e:
        logger.log_store_failure("query", USERS, e)
        raise StoreReadError("query", USERS, e)

    return [UserAccount.from_document(s.id, s.data) for s in snapshots]


def set_profile_status(store: IDocumentStore, user_id: str, status: ProfileStatus,
                       clear_chaincode: bool = False) -> None:
    """Merge a new profileStatus onto the account, clearing the chaincode if asked."""
    update = {
        "profileStatus": status.value,
        "updated_at": now_millis(),
    }
    if clear_chaincode:
        update["chaincode"] = ""

    try:
        store.set(USERS, user_id, update, merge=True)
    except Exception as e:
        logger.log_store_failure("set_profile_status", USERS, e)
        raise StoreWriteError("set_profile_status", USERS, e)

    logger.debug(f"profileStatus for {user_id} set to {status.value}")


def get_last_diff(store: IDocumentStore, user_id: str, approval: ApprovalState) -> Optional[DiffRecord]:
    """Most recent diff for a user in the given approval state."""
    try:
        snapshots = (
            store.query(PROFILE_DIFFS)
            .where("userId", "==", user_id)
            .where("approval", "==", approval.value)
            .order_by("timestamp", DESCENDING)
            .limit(1)
            .get()
        )
        if not snapshots:
            return None
        return DiffRecord.from_document(snapshots[0].id, snapshots[0].data)
    except (TypeError, ValueError) as e:
        logger.log_store_failure("decode_diff", PROFILE_DIFFS, e)
        raise StoreReadError("decode_diff", PROFILE_DIFFS, e)
    except Exception as e:
        logger.log_store_failure("query", PROFILE_DIFFS, e)
        raise StoreReadError("query", PROFILE_DIFFS, e)


def set_not_approved(store: IDocumentStore, diff_id: str) -> None:
    """Resolve a pending diff. This is the only mutation a diff ever receives."""
    try:
        store.set(PROFILE_DIFFS, diff_id, {"approval": ApprovalState.NOT_APPROVED.value}, merge=True)
    except Exception as e:
        logger.log_store_failure("set_not_approved", PROFILE_DIFFS, e)
        raise StoreWriteError("set_not_approved", PROFILE_DIFFS, e)


def store_diff(store: IDocumentStore, user_id: str, profile: ProfileRecord) -> DiffRecord:
    """Persist a new PENDING diff and return it with its id."""
    diff = DiffRecord(owner_id=user_id, profile=profile)
    try:
        diff.id = store.add(PROFILE_DIFFS, diff.to_document())
    except Exception as e:
        logger.log_store_failure("store_diff", PROFILE_DIFFS, e)
        raise StoreWriteError("store_diff", PROFILE_DIFFS, e)
    return diff


def create_session(store: IDocumentStore) -> str:
    """Open a batch session and return its id."""
    try:
        return store.add(SESSIONS, {"Timestamp": utcnow()})
    except Exception as e:
        logger.log_store_failure("create_session", SESSIONS, e)
        raise StoreWriteError("create_session", SESSIONS, e)
