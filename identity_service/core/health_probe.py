"""
Liveness probe for user-operated profile services.
"""

from dataclasses import dataclass
from typing import Optional

import requests

from util.logging import logger


def join_url(base: str, path: str) -> str:
    """Join a base URL and a path with exactly one slash between them."""
    return f"{base.rstrip('/')}/{path.lstrip('/')}"


@dataclass
class ProbeResult:
    running: bool
    status_code: Optional[int] = None
    error: str = ""


class HealthProbe:
    """GET {profile_url}/health; the service is up only on a 200 response."""

    def __init__(self, session: Optional[requests.Session] = None):
        self.session = session if session is not None else requests.Session()

    def probe(self, profile_url: str, timeout: float) -> ProbeResult:
        url = join_url(profile_url, "health")
        try:
            response = self.session.get(url, timeout=timeout)
        except requests.exceptions.RequestException as e:
            logger.debug(f"Health probe to {url} failed: {e}")
            return ProbeResult(running=False, error=str(e))

        if response.status_code != 200:
            return ProbeResult(running=False, status_code=response.status_code,
                               error=f"unexpected status {response.status_code}")
        return ProbeResult(running=True, status_code=200)

    def is_running(self, profile_url: str, timeout: float) -> bool:
        return self.probe(profile_url, timeout).running
