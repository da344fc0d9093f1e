from datetime import datetime
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from clinic_queue.core.base import as_utc

class IdentityKind(str, Enum):
    authenticated = "authenticated"
    direct_submission = "directSubmission"
    guest = "guest"

class Identity(BaseModel):
    """Who a check-in or queue lookup is for, however they were recognised."""
    kind: IdentityKind
    name: str
    student_id: str
    mobile: str | None = None
    user_id: str | None = None
    class_name: str | None = None

class GuestLoginIn(BaseModel):
    class Config:
        populate_by_name = True
        alias_generator = to_camel

    name: str = Field(default="", max_length=200)
    student_id: str = Field(default="", max_length=64)
    mobile: str | None = None

class GuestSessionOut(BaseModel):
    class Config:
        from_attributes = True
        populate_by_name = True
        alias_generator = to_camel

    session_token: str
    name: str
    student_id: str
    mobile: str | None
    expires_at: datetime

    @field_validator("expires_at", mode="after")
    @classmethod
    def _utc(cls, v: datetime):
        return as_utc(v)
