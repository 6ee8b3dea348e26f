import hashlib
from unittest.mock import MagicMock

import pytest
import requests

from identity_service.core.config import ServiceConfig
from identity_service.core.schema import USERS, ProfileRecord
from identity_service.store.index import SimpleInMemoryDocumentStore


VALID_PROFILE = {
    "first_name": "Ada",
    "last_name": "Lovelace",
    "email": "ada@example.com",
    "phone": "9876543210",
    "yoe": 5,
    "company": "Analytical Engines",
    "designation": "Engineer",
    "github_id": "ada",
    "linkedin_id": "ada-lovelace",
    "twitter_id": "",
    "instagram_id": "",
    "website": "https://ada.example.com",
}


def make_response(status_code=200, json_data=None, json_error=False):
    """Build a requests.Response stand-in."""
    response = MagicMock(spec=requests.Response)
    response.status_code = status_code
    if json_error:
        response.json.side_effect = ValueError("No JSON object could be decoded")
    else:
        response.json.return_value = json_data
    return response


class FakeProfileService:
    """
    Routes session.get/session.post calls to canned answers per URL suffix.

    Values may be a response, an exception instance to raise, or a callable
    taking the call kwargs and returning a response.
    """

    def __init__(self, chaincode="secret-chaincode"):
        self.chaincode = chaincode
        self.routes = {}
        self.calls = []
        self.session = MagicMock(spec=requests.Session)
        self.session.get.side_effect = lambda url, **kwargs: self._dispatch("GET", url, kwargs)
        self.session.post.side_effect = lambda url, **kwargs: self._dispatch("POST", url, kwargs)

    def route(self, method, suffix, answer):
        self.routes[(method, suffix)] = answer

    def echo_verification(self):
        """Answer /verification with the correct hash for the configured chaincode."""
        def answer(kwargs):
            salt = kwargs["json"]["salt"]
            digest = hashlib.sha512((salt + self.chaincode).encode("utf-8")).hexdigest()
            return make_response(200, {"hash": digest})
        self.route("POST", "/verification", answer)

    def _dispatch(self, method, url, kwargs):
        self.calls.append((method, url, kwargs))
        for (route_method, suffix), answer in self.routes.items():
            if route_method == method and url.endswith(suffix):
                if isinstance(answer, Exception):
                    raise answer
                if callable(answer) and not isinstance(answer, MagicMock):
                    return answer(kwargs)
                return answer
        raise requests.exceptions.ConnectionError(f"no route for {method} {url}")


@pytest.fixture
def config():
    return ServiceConfig(
        environment="TEST",
        document_store="memory",
        bcrypt_rounds=4,
        batch_max_workers=4,
        batch_deadline_sec=5.0,
    )


@pytest.fixture
def store():
    return SimpleInMemoryDocumentStore()


@pytest.fixture
def profile_service():
    return FakeProfileService()


@pytest.fixture
def valid_profile():
    return ProfileRecord.from_dict(VALID_PROFILE)


def seed_user(store, user_id="user-1", **overrides):
    """Create a VERIFIED account whose canonical profile is VALID_PROFILE."""
    data = dict(VALID_PROFILE)
    data.update({
        "profileURL": "https://profile.example.com/",
        "chaincode": "secret-chaincode",
        "profileStatus": "VERIFIED",
        "discordId": "discord-1",
        "username": user_id.replace("user", "name"),
        "updated_at": 0,
    })
    data.update(overrides)
    for key in [k for k, v in overrides.items() if v is None]:
        del data[key]
    store.set(USERS, user_id, data)
    return data
