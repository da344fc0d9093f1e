import uuid
from typing import Annotated, Literal, Union
from pydantic import BaseModel, Field
from pydantic.alias_generators import to_camel

class _Action(BaseModel):
    class Config:
        populate_by_name = True
        alias_generator = to_camel

    visit_id: uuid.UUID

class StartRequest(_Action):
    action: Literal["start"]
    notes: str | None = None

class CompleteRequest(_Action):
    action: Literal["complete"]
    notes: str | None = None

class UpdateNotesRequest(_Action):
    action: Literal["update_notes"]
    notes: str | None = None

class UpdatePriorityRequest(_Action):
    action: Literal["update_priority"]
    priority: Literal["low", "medium", "high", "emergency"]

QueueAction = Annotated[
    Union[StartRequest, CompleteRequest, UpdateNotesRequest, UpdatePriorityRequest],
    Field(discriminator="action"),
]

class MarkEmergencyRequest(BaseModel):
    class Config:
        populate_by_name = True
        alias_generator = to_camel

    student_id: str = Field(..., min_length=1)

class QueueStats(BaseModel):
    class Config:
        populate_by_name = True
        alias_generator = to_camel

    total_waiting: int
    total_in_progress: int
    total_completed: int
    emergency_cases: int
    total_today: int
    average_wait_time: int
    total_pages: int
    current_page: int
    total_count: int
