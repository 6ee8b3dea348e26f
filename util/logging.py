"""
Structured operational logging for the identity service.

Audit entries that must survive the invocation go to the document store
(see identity_service.core.audit); everything here goes to stdout.
"""

import logging
from typing import Any, Dict, List

SENSITIVE_FIELDS = ['chaincode', 'hash', 'salt', 'secret', 'authorization', 'Authorization', 'private_key', 'token']


class StructuredLogger:
    """Structured logger for health probes, reconciliation and verification."""

    def __init__(self, name: str = "identity_service"):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(logging.INFO)

        # Create handler if not already set
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            formatter = logging.Formatter(
                '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
            )
            handler.setFormatter(formatter)
            self.logger.addHandler(handler)

    def set_debug(self, enabled: bool):
        self.logger.setLevel(logging.DEBUG if enabled else logging.INFO)

    def log_operation(self, operation: str, status: str, details: Dict[str, Any] = None):
        """Log a structured operation."""
        message = f"Operation: {operation}, Status: {status}"
        if details:
            message += f", Details: {sanitize_payload(details)}"

        if status in ("failed", "error"):
            self.logger.error(message)
        elif status in ("down", "blocked", "skipped"):
            self.logger.warning(message)
        else:
            self.logger.info(message)

    def log_health_probe(self, user_id: str, url: str, running: bool, session_id: str = ""):
        """Log the result of a single health probe."""
        details = {"user_id": user_id, "url": url}
        if session_id:
            details["session_id"] = session_id
        self.log_operation("health.probe", "up" if running else "down", details)

    def log_reconcile_decision(self, user_id: str, decision: str, details: Dict[str, Any] = None):
        """Log which reconciliation branch was taken for a user."""
        log_details = {"user_id": user_id, "decision": decision}
        if details:
            log_details.update(details)
        self.log_operation("reconcile.decision", "success", log_details)

    def log_profile_skipped(self, user_id: str, reason: str, session_id: str = ""):
        details = {"user_id": user_id, "reason": reason[:100]}
        if session_id:
            details["session_id"] = session_id
        self.log_operation("profile.skipped", "skipped", details)

    def log_verification(self, user_id: str, status: str, profile_url: str, error: str = ""):
        """Log the outcome of a chaincode verification."""
        details = {"user_id": user_id, "profile_url": profile_url, "result": status}
        if error:
            details["error"] = error[:100]
        self.log_operation("verification", "success" if status == "VERIFIED" else "blocked", details)

    def log_account_blocked(self, user_id: str, reason: str, notified: bool = False):
        self.log_operation("account.blocked", "blocked", {
            "user_id": user_id,
            "reason": reason[:100],
            "notified": notified
        })

    def log_store_failure(self, operation: str, collection: str, error: Exception, critical: bool = True):
        """Log a document store failure. Critical failures are re-raised by the caller."""
        self.log_operation(f"store.{operation}", "failed", {
            "collection": collection,
            "critical": critical,
            "error": str(error)[:200]
        })

    def log_batch_summary(self, batch_name: str, start_time: float, end_time: float, details: Dict[str, Any] = None):
        """Log batch execution timing and counters."""
        duration_ms = round((end_time - start_time) * 1000, 2)
        log_details = {"duration_ms": duration_ms}
        if details:
            log_details.update(details)
        self.log_operation(f"batch.{batch_name}", "success", log_details)

    # Standard logging methods for compatibility
    def info(self, message: str) -> None:
        """Log an info message."""
        self.logger.info(message)

    def warning(self, message: str) -> None:
        """Log a warning message."""
        self.logger.warning(message)

    def error(self, message: str) -> None:
        """Log an error message."""
        self.logger.error(message)

    def debug(self, message: str) -> None:
        """Log a debug message."""
        self.logger.debug(message)


# Global logger instance
logger = StructuredLogger()


def sanitize_payload(payload: Any, reveal_sensitive: bool = False, sensitive_fields: List[str] = None) -> Any:
    """Redact secrets from payloads before they reach a log line."""
    if sensitive_fields is None:
        sensitive_fields = SENSITIVE_FIELDS

    if isinstance(payload, dict):
        sanitized = {}
        for k, v in payload.items():
            if reveal_sensitive or k not in sensitive_fields:
                sanitized[k] = sanitize_payload(v, reveal_sensitive, sensitive_fields)
            else:
                sanitized[k] = "[REDACTED]"
        return sanitized
    elif isinstance(payload, str):
        # Truncate long strings
        return payload[:100] + "..." if len(payload) > 100 else payload
    elif isinstance(payload, list):
        return [sanitize_payload(item, reveal_sensitive, sensitive_fields) for item in payload]
    else:
        return payload
