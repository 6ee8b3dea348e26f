import pytest
import requests

from identity_service.core.health_probe import HealthProbe, join_url

from conftest import make_response


@pytest.mark.parametrize("base, expected", [
    ("https://svc.example.com", "https://svc.example.com/health"),
    ("https://svc.example.com/", "https://svc.example.com/health"),
    ("https://svc.example.com/api/", "https://svc.example.com/api/health"),
])
def test_join_url(base, expected):
    assert join_url(base, "health") == expected


class TestHealthProbe:

    def test_200_is_running(self, profile_service):
        profile_service.route("GET", "/health", make_response(200))
        probe = HealthProbe(profile_service.session)

        assert probe.is_running("https://svc.example.com", timeout=2.0)
        _, url, kwargs = profile_service.calls[0]
        assert url == "https://svc.example.com/health"
        assert kwargs["timeout"] == 2.0

    def test_non_200_is_down(self, profile_service):
        profile_service.route("GET", "/health", make_response(503))

        result = HealthProbe(profile_service.session).probe("https://svc.example.com", timeout=2.0)

        assert not result.running
        assert result.status_code == 503

    def test_transport_error_is_down(self, profile_service):
        profile_service.route("GET", "/health", requests.exceptions.ConnectTimeout("timed out"))

        result = HealthProbe(profile_service.session).probe("https://svc.example.com", timeout=2.0)

        assert not result.running
        assert "timed out" in result.error
