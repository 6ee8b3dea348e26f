"""
Data model for profiles, diffs, accounts and audit entries.

Wire names follow the documents already stored by the profile services and
the approval dashboard, so field names here are snake_case while account
metadata (profileURL, profileStatus, ...) keeps its camelCase keys.
"""

from dataclasses import dataclass, asdict, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional


class ApprovalState(str, Enum):
    PENDING = "PENDING"
    NOT_APPROVED = "NOT APPROVED"
    APPROVED = "APPROVED"


class ProfileStatus(str, Enum):
    VERIFIED = "VERIFIED"
    PENDING = "PENDING"
    BLOCKED = "BLOCKED"


class LogType(str, Enum):
    PROFILE_SERVICE_HEALTH = "PROFILE_SERVICE_HEALTH"
    PROFILE_SKIPPED = "PROFILE_SKIPPED"
    PROFILE_DIFF_STORED = "PROFILE_DIFF_STORED"
    PROFILE_SERVICE_BLOCKED = "PROFILE_SERVICE_BLOCKED"
    PROFILE_VERIFIED = "PROFILE_VERIFIED"
    PROFILE_BLOCKED = "PROFILE_BLOCKED"
    VERIFICATION_BLOCKED = "VERIFICATION_BLOCKED"


# Collections
USERS = "users"
PROFILE_DIFFS = "profileDiffs"
LOGS = "logs"
SESSIONS = "identitySessionIds"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def now_millis() -> int:
    return int(utcnow().timestamp() * 1000)


@dataclass(frozen=True)
class ProfileRecord:
    """Self-reported profile. Equality is exact over every field."""
    first_name: str = ""
    last_name: str = ""
    email: str = ""
    phone: str = ""
    yoe: int = 0
    company: str = ""
    designation: str = ""
    github_id: str = ""
    linkedin_id: str = ""
    twitter_id: str = ""
    instagram_id: str = ""
    website: str = ""

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ProfileRecord':
        """
        Project a JSON object or stored document onto a ProfileRecord.

        Missing keys take the zero value and unknown keys are ignored.
        A present key holding the wrong type raises TypeError.
        """
        if not isinstance(data, dict):
            raise TypeError(f"profile data must be an object, got {type(data).__name__}")

        values = {}
        for f in fields(cls):
            if f.name not in data or data[f.name] is None:
                continue
            value = data[f.name]
            if f.type in (int, 'int'):
                # bool is an int subclass but never a valid yoe
                if isinstance(value, bool) or not isinstance(value, (int, float)):
                    raise TypeError(f"field '{f.name}' must be a number")
                if isinstance(value, float):
                    if not value.is_integer():
                        raise TypeError(f"field '{f.name}' must be an integer")
                    value = int(value)
            elif not isinstance(value, str):
                raise TypeError(f"field '{f.name}' must be a string")
            values[f.name] = value
        return cls(**values)

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class DiffRecord:
    """A proposed profile awaiting human approval."""
    owner_id: str
    profile: ProfileRecord
    created_at: datetime = field(default_factory=utcnow)
    approval_state: ApprovalState = ApprovalState.PENDING
    id: Optional[str] = None

    def to_document(self) -> Dict[str, Any]:
        """Flatten to the stored profileDiffs document shape."""
        data = {
            "userId": self.owner_id,
            "timestamp": self.created_at,
            "approval": self.approval_state.value,
        }
        data.update(self.profile.to_dict())
        return data

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'DiffRecord':
        return cls(
            id=doc_id,
            owner_id=data.get("userId", ""),
            profile=ProfileRecord.from_dict(data),
            created_at=data.get("timestamp") or utcnow(),
            approval_state=ApprovalState(data.get("approval", ApprovalState.PENDING.value)),
        )


@dataclass
class UserAccount:
    """Read view of a users document."""
    id: str
    profile_url: Optional[Any] = None
    chaincode: Optional[Any] = None
    profile_status: str = ""
    discord_id: str = ""
    username: str = ""
    raw: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_document(cls, doc_id: str, data: Dict[str, Any]) -> 'UserAccount':
        status = data.get("profileStatus")
        discord_id = data.get("discordId")
        username = data.get("username")
        return cls(
            id=doc_id,
            profile_url=data.get("profileURL"),
            chaincode=data.get("chaincode"),
            profile_status=status if isinstance(status, str) else "",
            discord_id=discord_id if isinstance(discord_id, str) else "",
            username=username if isinstance(username, str) else "",
            raw=data,
        )

    @property
    def display_name(self) -> str:
        return self.username or self.id

    def canonical_profile(self) -> ProfileRecord:
        """The last-synced profile stored flat on the account. Raises TypeError on bad data."""
        return ProfileRecord.from_dict(self.raw)


@dataclass
class LogEntry:
    """Append-only audit record written to the logs collection."""
    type: LogType
    meta: Dict[str, Any]
    body: Dict[str, Any]
    timestamp: datetime = field(default_factory=utcnow)

    def to_document(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "timestamp": self.timestamp,
            "meta": self.meta,
            "body": self.body,
        }
