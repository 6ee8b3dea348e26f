"""
Field validation for profile data fetched from a user's profile service.
"""

import re
from typing import Any, Dict, List

from pydantic import BaseModel, EmailStr, HttpUrl, TypeAdapter, ValidationError, field_validator

from .errors import ProfileValidationError
from .schema import ProfileRecord

_DIGITS = re.compile(r"[0-9]+")
_email_adapter = TypeAdapter(EmailStr)
_url_adapter = TypeAdapter(HttpUrl)


class ProfileSubmission(BaseModel):
    """Validation rules applied to a fetched profile before reconciliation."""

    first_name: str
    last_name: str
    email: str
    phone: str
    yoe: int
    company: str
    designation: str
    github_id: str
    linkedin_id: str
    twitter_id: str = ""
    instagram_id: str = ""
    website: str = ""

    @field_validator('first_name', 'last_name', 'company', 'designation', 'github_id', 'linkedin_id')
    @classmethod
    def must_not_be_blank(cls, v):
        if not v.strip():
            raise ValueError('cannot be blank')
        return v

    @field_validator('phone')
    @classmethod
    def phone_must_be_digits(cls, v):
        if not v.strip():
            raise ValueError('cannot be blank')
        if not _DIGITS.fullmatch(v):
            raise ValueError('must contain digits only')
        return v

    @field_validator('email')
    @classmethod
    def email_must_be_valid(cls, v):
        if not v.strip():
            raise ValueError('cannot be blank')
        try:
            _email_adapter.validate_python(v)
        except ValidationError:
            raise ValueError('must be a valid email address')
        return v

    @field_validator('yoe')
    @classmethod
    def yoe_must_not_be_negative(cls, v):
        if v < 0:
            raise ValueError('must be no less than 0')
        return v

    @field_validator('website')
    @classmethod
    def website_must_be_url(cls, v):
        if not v:
            return v
        # Bare hosts like "example.com" are accepted
        candidate = v if "://" in v else f"http://{v}"
        try:
            _url_adapter.validate_python(candidate)
        except ValidationError:
            raise ValueError('must be a valid URL')
        return v


def _format_errors(exc: ValidationError) -> List[Dict[str, Any]]:
    errors = []
    for error in exc.errors():
        field = ".".join(str(part) for part in error.get("loc", ())) or "profile"
        message = error.get("msg", "invalid value")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        errors.append({"field": field, "message": message})
    return errors


def collect_profile_errors(record: ProfileRecord) -> List[Dict[str, Any]]:
    """Return every field error for a profile; empty when it is valid."""
    try:
        ProfileSubmission(**record.to_dict())
    except ValidationError as e:
        return _format_errors(e)
    return []


def validate_profile(record: ProfileRecord) -> None:
    """Raise ProfileValidationError listing every failing field."""
    errors = collect_profile_errors(record)
    if errors:
        raise ProfileValidationError(errors)
