"""
Blocked-account notifications to the community bot.
"""

from datetime import timedelta
from typing import Optional

import jwt
import requests
from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import serialization

from util.logging import logger

from .config import ServiceConfig
from .errors import ConfigurationError
from .parameters import ParameterResolver
from .schema import utcnow


class Notifier:
    """
    Posts {userId, reason} to {notify_url}/profile/blocked with a short-lived
    RS256 bearer token. Failures are logged and never raised.
    """

    def __init__(self, config: ServiceConfig, parameters: ParameterResolver,
                 session: Optional[requests.Session] = None):
        self.config = config
        self.parameters = parameters
        self.session = session if session is not None else requests.Session()

    def generate_token(self) -> Optional[str]:
        """Sign a JWT that expires after jwt_ttl_sec. None when no usable key is configured."""
        private_key = self.parameters.get(self.config.private_key_param)
        if not private_key:
            return None
        try:
            # Env vars may hold the PEM with literal \n sequences
            pem = private_key.replace("\\n", "\n").encode("utf-8")
            key = serialization.load_pem_private_key(pem, password=None)
            claims = {"exp": utcnow() + timedelta(seconds=self.config.jwt_ttl_sec)}
            return jwt.encode(claims, key, algorithm="RS256")
        except (jwt.PyJWTError, UnsupportedAlgorithm, ValueError, TypeError) as e:
            logger.log_operation("notify.sign", "error", {"error": str(e)})
            return None

    def notify_blocked(self, discord_id: str, reason: str) -> bool:
        """Send the notification. Returns True when the bot accepted it."""
        if not discord_id:
            return False

        try:
            base_url = self.parameters.get(self.config.notify_url_param)
            token = self.generate_token() if base_url else None
        except ConfigurationError as e:
            logger.warning(f"Notification skipped: {e.message}")
            return False

        if not base_url:
            logger.warning("Notification skipped: no notify URL configured")
            return False
        if token is None:
            logger.warning("Notification skipped: could not sign a token")
            return False

        url = f"{base_url.rstrip('/')}/profile/blocked"
        try:
            response = self.session.post(
                url,
                json={"userId": discord_id, "reason": reason},
                headers={"Authorization": f"Bearer {token}"},
                timeout=self.config.notify_timeout_sec
            )
        except requests.exceptions.RequestException as e:
            logger.log_operation("notify.blocked", "failed", {"url": url, "error": str(e)})
            return False

        if response.status_code >= 300:
            logger.log_operation("notify.blocked", "failed", {"url": url, "status_code": response.status_code})
            return False

        logger.log_operation("notify.blocked", "success", {"discord_id": discord_id})
        return True
