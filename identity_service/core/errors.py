"""
Exception hierarchy for the identity service.

Each error carries the status code the invocation surface reports for it.
"""

from typing import Any, Dict, List, Optional


class IdentityServiceError(Exception):
    """Base class for errors surfaced to the caller of an operation."""
    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.message, "status_code": self.status_code}


class InputError(IdentityServiceError):
    """Missing or malformed identifier in the request payload."""
    status_code = 400


class AccountNotFoundError(IdentityServiceError):
    status_code = 404


class ChaincodeBlockedError(IdentityServiceError):
    """Chaincode was cleared by a previous block and must be rotated."""
    status_code = 403


class AlreadyVerifiedError(IdentityServiceError):
    status_code = 409


class RemoteServiceError(IdentityServiceError):
    """A user's profile service was unreachable or answered badly."""
    status_code = 502


class ProfileValidationError(IdentityServiceError):
    """Fetched profile data failed field validation."""
    status_code = 422

    def __init__(self, errors: List[Dict[str, Any]]):
        summary = "; ".join(f"{e['field']}: {e['message']}" for e in errors)
        super().__init__(f"profile validation failed: {summary}")
        self.errors = errors


class StoreWriteError(IdentityServiceError):
    """A correctness-critical document store write failed."""
    status_code = 500

    def __init__(self, operation: str, collection: str, cause: Exception):
        super().__init__(f"{operation} on '{collection}' failed: {cause}")
        self.operation = operation
        self.collection = collection
        self.cause = cause


class StoreReadError(IdentityServiceError):
    """A document store read failed or returned an undecodable document."""
    status_code = 500

    def __init__(self, operation: str, collection: str, cause: Exception):
        super().__init__(f"{operation} on '{collection}' failed: {cause}")
        self.operation = operation
        self.collection = collection
        self.cause = cause


class ConfigurationError(IdentityServiceError):
    """Missing credentials or an unusable document store configuration."""
    status_code = 500
