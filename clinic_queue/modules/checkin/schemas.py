import uuid
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

class CheckInIn(BaseModel):
    """Check-in form. Identity fields are only read when the caller is not signed in."""
    class Config:
        populate_by_name = True
        alias_generator = to_camel

    symptoms: list[str] = []
    severity: str | None = None
    emergency_flag: bool = False
    student_id: str | None = None
    name: str | None = None
    mobile: str | None = None
    class_name: str | None = Field(default=None, alias="class")

class CheckInOut(BaseModel):
    class Config:
        populate_by_name = True
        alias_generator = to_camel

    visit_id: uuid.UUID
    estimated_wait_time: int
    queue_status: str
    priority: str
    symptoms: list[str]
    emergency_flag: bool
    recheck_in: bool = False
