"""
Reminder, completion and activity records exchanged with the care repository.
"""

from datetime import datetime, timezone
from typing import Literal, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

ReminderType = Literal["medicine", "appointment", "activity"]
Recurrence = Literal["none", "daily", "weekly", "monthly"]


class _RecordModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ReminderDraft(_RecordModel):
    """Reminder fields supplied by the assistant's create_reminder tool."""

    type: ReminderType
    title: str = Field(..., min_length=1, max_length=200)
    description: str = Field(default="", max_length=1000)
    reminder_date: str = Field(..., pattern=r"^\d{4}-\d{2}-\d{2}$", description="YYYY-MM-DD")
    reminder_time: str = Field(..., pattern=r"^\d{2}:\d{2}(:\d{2})?$", description="HH:mm")
    recurrence: Recurrence = "none"


class Reminder(_RecordModel):
    """A stored reminder."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    type: ReminderType
    title: str
    description: Optional[str] = None
    reminder_date: Optional[str] = None
    reminder_time: str
    recurrence: Recurrence = "none"
    is_active: bool = True
    is_completed: bool = False
    created_by: Optional[str] = None


class ReminderCompletion(_RecordModel):
    """Record of a reminder being marked as done."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    reminder_id: str
    user_id: str
    completed_by: str
    notes: Optional[str] = None
    scheduled_for: Optional[datetime] = None
    completed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    was_late: bool = False
    minutes_late: Optional[int] = None


class Activity(_RecordModel):
    """Interaction log entry shown on the family and professional dashboards."""

    id: str = Field(default_factory=lambda: str(uuid4()))
    user_id: str
    activity_type: str = "chat"
    description: str = Field(..., max_length=500)
    created_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
