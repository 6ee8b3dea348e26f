from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import Optional, Dict, Any


class InvocationRequest(BaseModel):
    """Payload accepted by every operation: {userId, sessionId}."""
    model_config = ConfigDict(populate_by_name=True)

    user_id: Optional[str] = Field(default=None, alias="userId")
    session_id: Optional[str] = Field(default=None, alias="sessionId")

    @field_validator('user_id', 'session_id', mode='before')
    @classmethod
    def ignore_non_string_ids(cls, v):
        # A malformed identifier is treated as absent
        if not isinstance(v, str):
            return None
        v = v.strip()
        return v or None


class InvocationResponse(BaseModel):
    status_code: int
    message: str
    report: Optional[Dict[str, Any]] = None


class HealthResponse(BaseModel):
    status_code: int
    message: str
    version: str


class ErrorResponse(BaseModel):
    status_code: int
    message: str
