import hashlib
import string

import pytest
import requests

from identity_service.core.schema import ProfileStatus
from identity_service.core.verification import ChaincodeVerifier, chaincode_hash, generate_salt

from conftest import make_response


@pytest.fixture
def verifier(profile_service):
    return ChaincodeVerifier(timeout=1.0, session=profile_service.session)


class TestSalt:

    def test_salt_length_and_alphabet(self):
        salt = generate_salt()
        assert len(salt) == 21
        assert set(salt) <= set(string.ascii_letters + string.digits)

    def test_salts_differ(self):
        assert len({generate_salt() for _ in range(20)}) == 20

    def test_hash_is_sha512_of_salt_then_secret(self):
        expected = hashlib.sha512(b"abcsecret").hexdigest()
        assert chaincode_hash("abc", "secret") == expected


class TestChaincodeVerifier:
    """Challenge/response against a profile service."""

    def test_correct_hash_verifies(self, verifier, profile_service):
        profile_service.echo_verification()

        result = verifier.verify("https://profile.example.com", "secret-chaincode")

        assert result.status == ProfileStatus.VERIFIED
        assert result.error is None

    def test_request_shape(self, verifier, profile_service):
        profile_service.echo_verification()

        verifier.verify("https://profile.example.com/", "secret-chaincode")

        method, url, kwargs = profile_service.calls[0]
        assert method == "POST"
        assert url == "https://profile.example.com/verification"
        assert set(kwargs["json"].keys()) == {"salt"}
        assert kwargs["timeout"] == 1.0

    def test_wrong_secret_blocks(self, profile_service):
        service = profile_service
        service.chaincode = "some-other-secret"
        service.echo_verification()
        verifier = ChaincodeVerifier(session=service.session)

        result = verifier.verify("https://profile.example.com", "secret-chaincode")

        assert result.status == ProfileStatus.BLOCKED
        assert result.error is None
        assert result.reason == "hash mismatch"

    @pytest.mark.parametrize("response", [
        make_response(500, {"hash": "abc"}),
        make_response(200, json_error=True),
        make_response(200, {}),
        make_response(200, {"hash": ""}),
        make_response(200, ["not", "an", "object"]),
    ])
    def test_bad_answers_block_without_error(self, verifier, profile_service, response):
        profile_service.route("POST", "/verification", response)

        result = verifier.verify("https://profile.example.com", "secret-chaincode")

        assert result.status == ProfileStatus.BLOCKED
        assert result.error is None

    def test_timeout_blocks_with_error(self, verifier, profile_service):
        profile_service.route("POST", "/verification", requests.exceptions.Timeout("read timed out"))

        result = verifier.verify("https://profile.example.com", "secret-chaincode")

        assert result.status == ProfileStatus.BLOCKED
        assert isinstance(result.error, requests.exceptions.Timeout)
