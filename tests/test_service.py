import threading
import time
from unittest.mock import MagicMock

import pytest
import requests

from identity_service.core.errors import (
    AccountNotFoundError, AlreadyVerifiedError, ChaincodeBlockedError, InputError, RemoteServiceError
)
from identity_service.core.schema import LOGS, SESSIONS, USERS, LogType
from identity_service.core.service import HEALTH_MESSAGE, IdentityService

from conftest import VALID_PROFILE, make_response, seed_user


@pytest.fixture
def notifier():
    return MagicMock()


@pytest.fixture
def service(config, store, profile_service, notifier):
    profile_service.route("GET", "/health", make_response(200))
    profile_service.route("GET", "/profile", make_response(200, dict(VALID_PROFILE)))
    return IdentityService(config, store, session=profile_service.session, notifier=notifier)


def logs_of_type(store, log_type):
    return [snap.data for snap in store.query(LOGS).where("type", "==", log_type.value).get()]


class TestHealth:

    def test_health_message(self, service):
        result = service.health()
        assert result.status_code == 200
        assert result.message == HEALTH_MESSAGE == "Awesome, Server health is good!!!"


class TestVerifyUser:
    """Status codes and side effects of verify."""

    def test_missing_user_id(self, service):
        with pytest.raises(InputError) as exc_info:
            service.verify_user("")
        assert exc_info.value.status_code == 400

    def test_unknown_user(self, service):
        with pytest.raises(AccountNotFoundError) as exc_info:
            service.verify_user("ghost")
        assert exc_info.value.status_code == 404

    def test_empty_chaincode_is_forbidden_and_logged(self, service, store):
        seed_user(store, chaincode="", profileStatus="PENDING")

        with pytest.raises(ChaincodeBlockedError) as exc_info:
            service.verify_user("user-1")

        assert exc_info.value.status_code == 403
        entries = logs_of_type(store, LogType.VERIFICATION_BLOCKED)
        assert entries[0]["body"]["reason"] == "Chaincode is empty. Generate new one."

    def test_bad_profile_url(self, service, store):
        seed_user(store, profileURL=42, profileStatus="PENDING")

        with pytest.raises(InputError):
            service.verify_user("user-1")

    def test_missing_chaincode(self, service, store):
        seed_user(store, chaincode=None, profileStatus="PENDING")

        with pytest.raises(InputError):
            service.verify_user("user-1")

    def test_already_verified(self, service, store):
        seed_user(store)

        with pytest.raises(AlreadyVerifiedError) as exc_info:
            service.verify_user("user-1")

        assert exc_info.value.status_code == 409
        assert exc_info.value.message == "Already Verified"

    def test_successful_verification(self, service, store, profile_service):
        seed_user(store, profileStatus="PENDING")
        profile_service.echo_verification()

        result = service.verify_user("user-1")

        assert result.status_code == 200
        assert result.message == "Verification Process Done"
        user = store.get(USERS, "user-1").data
        assert user["profileStatus"] == "VERIFIED"
        assert user["chaincode"] == "secret-chaincode"
        entry = logs_of_type(store, LogType.PROFILE_VERIFIED)[0]
        assert entry["body"]["profileURL"] == "https://profile.example.com/"

    def test_mismatch_blocks_and_clears_chaincode(self, service, store, profile_service):
        seed_user(store, profileStatus="PENDING")
        profile_service.chaincode = "wrong"
        profile_service.echo_verification()

        result = service.verify_user("user-1")

        assert result.status_code == 200
        user = store.get(USERS, "user-1").data
        assert user["profileStatus"] == "BLOCKED"
        assert user["chaincode"] == ""
        assert logs_of_type(store, LogType.PROFILE_BLOCKED)

    def test_transport_error_updates_status_then_raises(self, service, store, profile_service):
        seed_user(store, profileStatus="PENDING")
        profile_service.route("POST", "/verification", requests.exceptions.ConnectionError("refused"))

        with pytest.raises(RemoteServiceError) as exc_info:
            service.verify_user("user-1")

        assert exc_info.value.status_code == 502
        assert store.get(USERS, "user-1").data["profileStatus"] == "BLOCKED"
        assert logs_of_type(store, LogType.PROFILE_BLOCKED)


class TestSyncAllProfiles:
    """Batch reconciliation of every VERIFIED account."""

    def test_report_and_session(self, service, store):
        seed_user(store, "user-1")
        seed_user(store, "user-2", company="Old Co")
        seed_user(store, "user-3", chaincode="")
        seed_user(store, "user-4", profileStatus="PENDING")

        result = service.sync_all_profiles()

        assert result.status_code == 200
        assert result.message == "Total Profiles called in session is 3"
        report = result.report
        assert report["TotalProfilesChecked"] == 3
        assert report["Stored"] == {"count": 1, "usernames": ["name-2"]}
        assert report["Skipped"]["CurrentUserDataSameAsDiff"]["usernames"] == ["name-1"]
        assert report["Skipped"]["ProfileServiceBlockedOrChaincodeEmpty"]["count"] == 1
        assert report["Errors"]["count"] == 0
        assert report["TimedOut"]["count"] == 0

        session_id = report["sessionId"]
        assert store.get(SESSIONS, session_id).exists
        metas = [snap.data["meta"] for snap in store.query(LOGS).get()]
        assert metas
        assert all(meta.get("sessionId") == session_id for meta in metas)

    def test_no_verified_accounts(self, service, store):
        result = service.sync_all_profiles()

        assert result.message == "Total Profiles called in session is 0"
        assert result.report["TotalProfilesChecked"] == 0

    def test_task_errors_are_aggregated(self, service, store):
        seed_user(store, "user-1")
        service.profile_sync.sync = MagicMock(side_effect=RuntimeError("boom"))

        result = service.sync_all_profiles()

        assert result.report["Errors"]["count"] == 1
        assert result.report["Errors"]["details"] == {"user-1": "boom"}


class TestCheckAllHealth:

    def test_down_services_are_blocked(self, config, store, profile_service, notifier):
        seed_user(store, "user-1", profileURL="https://up.example.com")
        seed_user(store, "user-2", profileURL="https://down.example.com")

        profile_service.route("GET", "up.example.com/health", make_response(200))
        profile_service.route("GET", "down.example.com/health", make_response(503))
        service = IdentityService(config, store, session=profile_service.session, notifier=notifier)

        result = service.check_all_health()

        assert result.report["Running"]["usernames"] == ["name-1"]
        assert result.report["Down"]["usernames"] == ["name-2"]
        assert store.get(USERS, "user-2").data["profileStatus"] == "BLOCKED"
        assert store.get(USERS, "user-1").data["profileStatus"] == "VERIFIED"
        notifier.notify_blocked.assert_called_once_with("discord-1", "Profile Service Down")
        assert len(logs_of_type(store, LogType.PROFILE_SERVICE_HEALTH)) == 2

    def test_uses_batch_timeout(self, service, store, profile_service):
        seed_user(store, "user-1")

        service.check_all_health()

        health_call = [c for c in profile_service.calls if c[1].endswith("/health")][0]
        assert health_call[2]["timeout"] == 2.0

    def test_accounts_without_url_are_not_probed(self, service, store, profile_service):
        seed_user(store, "user-1", profileURL=None)

        result = service.check_all_health()

        assert result.report["TotalProfilesChecked"] == 0
        assert profile_service.calls == []


class TestBatchConcurrency:

    def test_same_user_syncs_do_not_interleave(self, service, store):
        """Two concurrent syncs of one user run one after the other."""
        seed_user(store, company="Old Co")
        active = []
        overlaps = []
        original = service.reconciler.reconcile

        def slow_reconcile(*args, **kwargs):
            active.append(1)
            if len(active) > 1:
                overlaps.append(True)
            time.sleep(0.05)
            try:
                return original(*args, **kwargs)
            finally:
                active.pop()

        service.reconciler.reconcile = slow_reconcile
        threads = [threading.Thread(target=service.sync_profile, args=("user-1",)) for _ in range(2)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert overlaps == []
        pending = store.query("profileDiffs").where("approval", "==", "PENDING").get()
        assert len(pending) == 1


class TestBatchDeadline:
    """Accounts reported as timed out are never written afterwards."""

    def test_timed_out_sync_writes_nothing_later(self, config, store, profile_service, notifier):
        seed_user(store, company="Old Co")
        release = threading.Event()

        def slow_profile(kwargs):
            release.wait(2)
            return make_response(200, dict(VALID_PROFILE))

        profile_service.route("GET", "/health", make_response(200))
        profile_service.route("GET", "/profile", slow_profile)
        service = IdentityService(config.with_overrides(batch_deadline_sec=0.2), store,
                                  session=profile_service.session, notifier=notifier)

        finished = threading.Event()
        sync = service.profile_sync.sync

        def tracked_sync(*args, **kwargs):
            try:
                return sync(*args, **kwargs)
            finally:
                finished.set()

        service.profile_sync.sync = tracked_sync

        result = service.sync_all_profiles()
        logs_at_report = len(store.query(LOGS).get())
        release.set()
        assert finished.wait(2)

        assert result.report["TimedOut"]["usernames"] == ["name-1"]
        assert result.report["Stored"]["count"] == 0
        assert store.query("profileDiffs").get() == []
        assert len(store.query(LOGS).get()) == logs_at_report
        assert store.get(USERS, "user-1").data["profileStatus"] == "VERIFIED"

    def test_timed_out_health_check_does_not_block(self, config, store, profile_service, notifier):
        seed_user(store)
        release = threading.Event()

        def slow_down(kwargs):
            release.wait(2)
            return make_response(503)

        profile_service.route("GET", "/health", slow_down)
        service = IdentityService(config.with_overrides(batch_deadline_sec=0.2), store,
                                  session=profile_service.session, notifier=notifier)

        result = service.check_all_health()
        release.set()
        time.sleep(0.2)

        assert result.report["TimedOut"]["count"] == 1
        assert store.get(USERS, "user-1").data["profileStatus"] == "VERIFIED"
        assert logs_of_type(store, LogType.PROFILE_SERVICE_HEALTH) == []
        notifier.notify_blocked.assert_not_called()
