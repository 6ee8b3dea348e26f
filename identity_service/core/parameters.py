"""
Secret resolution.

In DEVELOPMENT a parameter name is looked up as an environment variable.
In PRODUCTION it is read from AWS SSM Parameter Store. Any other
environment resolves every parameter to an empty string.
"""

import os
import threading
from typing import Dict

from util.logging import logger

from .config import ENV_DEVELOPMENT, ENV_PRODUCTION, ServiceConfig
from .errors import ConfigurationError


class ParameterResolver:
    """Resolves named secrets for the configured environment and caches them."""

    def __init__(self, config: ServiceConfig, ssm_client=None):
        self.environment = config.environment
        self._ssm_client = ssm_client
        self._cache: Dict[str, str] = {}
        self._lock = threading.Lock()

    def _ssm(self):
        if self._ssm_client is None:
            import boto3
            self._ssm_client = boto3.client("ssm")
        return self._ssm_client

    def get(self, name: str) -> str:
        """Return the value of a parameter, or "" when it is unset."""
        with self._lock:
            if name in self._cache:
                return self._cache[name]

        value = self._resolve(name)

        with self._lock:
            self._cache[name] = value
        return value

    def _resolve(self, name: str) -> str:
        if self.environment == ENV_DEVELOPMENT:
            return os.getenv(name, "")

        if self.environment == ENV_PRODUCTION:
            try:
                response = self._ssm().get_parameter(Name=name, WithDecryption=True)
                return response["Parameter"]["Value"]
            except Exception as e:
                logger.log_operation("parameter.resolve", "failed", {"parameter": name, "error": str(e)})
                raise ConfigurationError(f"Could not read parameter '{name}': {e}")

        return ""
