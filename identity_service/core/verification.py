"""
Chaincode verification by salted challenge/response.

The service sends a fresh random salt to the user's profile service, which
must answer with hex(sha512(salt + chaincode)). Only a service that holds the
chaincode can produce the matching hash.
"""

import hashlib
import hmac
import secrets
import string
from dataclasses import dataclass
from typing import Optional

import requests

from util.logging import logger

from .health_probe import join_url
from .schema import ProfileStatus

SALT_ALPHABET = string.ascii_letters + string.digits


def generate_salt(length: int = 21) -> str:
    """Random salt from [A-Za-z0-9] drawn from a CSPRNG."""
    return "".join(secrets.choice(SALT_ALPHABET) for _ in range(length))


def chaincode_hash(salt: str, chaincode: str) -> str:
    return hashlib.sha512((salt + chaincode).encode("utf-8")).hexdigest()


@dataclass
class VerificationResult:
    status: ProfileStatus
    error: Optional[Exception] = None
    reason: str = ""

    @property
    def verified(self) -> bool:
        return self.status == ProfileStatus.VERIFIED


class ChaincodeVerifier:
    """Runs the salt/hash exchange against a profile service."""

    def __init__(self, timeout: float = 10.0, salt_length: int = 21,
                 session: Optional[requests.Session] = None):
        self.timeout = timeout
        self.salt_length = salt_length
        self.session = session if session is not None else requests.Session()

    def verify(self, profile_url: str, chaincode: str) -> VerificationResult:
        """
        Challenge the service at profile_url.

        Returns VERIFIED only when the returned hash matches. Any other answer
        is BLOCKED; a transport failure is BLOCKED with the error attached.
        """
        salt = generate_salt(self.salt_length)
        url = join_url(profile_url, "verification")

        try:
            response = self.session.post(url, json={"salt": salt}, timeout=self.timeout)
        except requests.exceptions.RequestException as e:
            logger.log_operation("verification.request", "failed", {"url": url, "error": str(e)})
            return VerificationResult(ProfileStatus.BLOCKED, error=e, reason="request failed")

        if response.status_code != 200:
            return VerificationResult(ProfileStatus.BLOCKED, reason=f"unexpected status {response.status_code}")

        try:
            payload = response.json()
        except ValueError:
            return VerificationResult(ProfileStatus.BLOCKED, reason="malformed response body")

        remote_hash = payload.get("hash") if isinstance(payload, dict) else None
        if not isinstance(remote_hash, str) or not remote_hash:
            return VerificationResult(ProfileStatus.BLOCKED, reason="missing hash")

        expected = chaincode_hash(salt, chaincode)
        if hmac.compare_digest(expected.encode("utf-8"), remote_hash.lower().encode("utf-8")):
            return VerificationResult(ProfileStatus.VERIFIED)
        return VerificationResult(ProfileStatus.BLOCKED, reason="hash mismatch")
