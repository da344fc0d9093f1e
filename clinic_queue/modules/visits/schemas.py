import uuid
from datetime import datetime
from pydantic import BaseModel, Field, field_validator
from pydantic.alias_generators import to_camel
from clinic_queue.core.base import as_utc

class _CamelOut(BaseModel):
    class Config:
        from_attributes = True
        populate_by_name = True
        alias_generator = to_camel

    @field_validator("created_at", "updated_at", mode="after", check_fields=False)
    @classmethod
    def _utc(cls, v: datetime | None):
        return as_utc(v)

class VisitSnapshot(_CamelOut):
    """The slice of a visit returned alongside ALREADY_ACTIVE and emergency escalations."""
    id: uuid.UUID
    name: str
    student_id: str
    priority: str
    symptoms: list[str]
    emergency_flag: bool
    created_at: datetime

class VisitOut(_CamelOut):
    id: uuid.UUID
    user_id: str | None
    student_id: str
    name: str
    mobile: str | None
    class_name: str | None = Field(default=None, alias="class")
    symptoms: list[str]
    queue_status: str
    emergency_flag: bool
    priority: str
    estimated_wait_time: int | None
    notes: str | None
    assigned_nurse: str | None
    assigned_nurse_name: str | None
    created_at: datetime
    updated_at: datetime

class RankedVisitOut(VisitOut):
    queue_position: int

class EmergencyVisitOut(VisitOut):
    position: int
