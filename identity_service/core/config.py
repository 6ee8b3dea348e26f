"""
Service configuration.

Everything is read from environment variables. Components receive an explicit
ServiceConfig built by load_config() instead of reading os.environ themselves.
"""

import os
from dataclasses import dataclass, replace
from pathlib import Path
from typing import List

ENV_DEVELOPMENT = "DEVELOPMENT"
ENV_PRODUCTION = "PRODUCTION"

# Version string
VERSION = "1.0.0"


@dataclass(frozen=True)
class ServiceConfig:
    environment: str = ENV_DEVELOPMENT
    document_store: str = "firestore"
    db_path: str = "./data/identity.db"
    firestore_cred_param: str = "firestoreCred"
    private_key_param: str = "identityServicePrivateKey"
    notify_url_param: str = "discordBotURL"
    health_timeout_sec: float = 2.0
    profile_health_timeout_sec: float = 5.0
    profile_timeout_sec: float = 10.0
    verify_timeout_sec: float = 10.0
    notify_timeout_sec: float = 5.0
    store_timeout_sec: float = 10.0
    batch_max_workers: int = 16
    batch_deadline_sec: float = 120.0
    block_on_validation_error: bool = True
    bcrypt_rounds: int = 10
    salt_length: int = 21
    jwt_ttl_sec: int = 60
    debug: bool = False

    def with_overrides(self, **changes) -> 'ServiceConfig':
        """Return a copy with some fields replaced."""
        return replace(self, **changes)


def load_config() -> ServiceConfig:
    """Build a ServiceConfig from the current environment."""
    return ServiceConfig(
        environment=os.getenv("environment", ENV_DEVELOPMENT),
        document_store=os.getenv("DOCUMENT_STORE", "firestore").lower(),
        db_path=os.getenv("DB_PATH", "./data/identity.db"),
        firestore_cred_param=os.getenv("FIRESTORE_CRED_PARAM", "firestoreCred"),
        private_key_param=os.getenv("PRIVATE_KEY_PARAM", "identityServicePrivateKey"),
        notify_url_param=os.getenv("NOTIFY_URL_PARAM", "discordBotURL"),
        health_timeout_sec=float(os.getenv("HEALTH_TIMEOUT_SEC", "2")),
        profile_health_timeout_sec=float(os.getenv("PROFILE_HEALTH_TIMEOUT_SEC", "5")),
        profile_timeout_sec=float(os.getenv("PROFILE_TIMEOUT_SEC", "10")),
        verify_timeout_sec=float(os.getenv("VERIFY_TIMEOUT_SEC", "10")),
        notify_timeout_sec=float(os.getenv("NOTIFY_TIMEOUT_SEC", "5")),
        store_timeout_sec=float(os.getenv("STORE_TIMEOUT_SEC", "10")),
        batch_max_workers=int(os.getenv("BATCH_MAX_WORKERS", "16")),
        batch_deadline_sec=float(os.getenv("BATCH_DEADLINE_SEC", "120")),
        block_on_validation_error=os.getenv("BLOCK_ON_VALIDATION_ERROR", "true").lower() == "true",
        bcrypt_rounds=int(os.getenv("BCRYPT_ROUNDS", "10")),
        salt_length=int(os.getenv("SALT_LENGTH", "21")),
        jwt_ttl_sec=int(os.getenv("JWT_TTL_SEC", "60")),
        debug=os.getenv("DEBUG", "false").lower() == "true",
    )


def debug_enabled():
    """Check if debug mode is enabled."""
    return os.getenv("DEBUG", "false").lower() == "true"


def ensure_db_directory(db_path: str):
    """Ensure the SQLite database directory exists."""
    Path(db_path).parent.mkdir(parents=True, exist_ok=True)


def validate_config(config: ServiceConfig) -> List[str]:
    """Validate configuration and return any issues."""
    issues = []

    if config.environment not in [ENV_DEVELOPMENT, ENV_PRODUCTION]:
        issues.append(f"Unknown environment: {config.environment} (secrets will resolve to empty strings)")

    if config.document_store not in ["firestore", "sqlite", "memory"]:
        issues.append(f"Invalid DOCUMENT_STORE: {config.document_store}")

    if config.batch_max_workers < 1:
        issues.append("BATCH_MAX_WORKERS must be >= 1")

    if config.batch_deadline_sec <= 0:
        issues.append("BATCH_DEADLINE_SEC must be > 0")

    for name in ["health_timeout_sec", "profile_health_timeout_sec", "profile_timeout_sec",
                 "verify_timeout_sec", "notify_timeout_sec", "store_timeout_sec"]:
        if getattr(config, name) <= 0:
            issues.append(f"{name.upper()} must be > 0")

    if not 4 <= config.bcrypt_rounds <= 31:
        issues.append("BCRYPT_ROUNDS must be between 4 and 31")

    if config.salt_length < 16:
        issues.append("SALT_LENGTH must be >= 16")

    return issues
