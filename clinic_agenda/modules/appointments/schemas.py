from pydantic import BaseModel, Field, field_validator
import uuid
from datetime import datetime, timedelta
from clinic_agenda.core.clock import practice_tz

STATUSES = ("scheduled", "confirmed", "in_progress", "completed", "cancelled", "no_show")
STATUS_PATTERN = "^(" + "|".join(STATUSES) + ")$"

# Appointments in these states no longer occupy the calendar.
INACTIVE_STATUSES = frozenset({"cancelled", "no_show"})

# Only appointments that have not started yet can move.
RESCHEDULABLE = frozenset({"scheduled", "confirmed"})

VALID_NEXT = {
    "scheduled": {"confirmed", "in_progress", "cancelled", "no_show"},
    "confirmed": {"in_progress", "cancelled", "no_show"},
    "in_progress": {"completed"},
    "completed": set(),
    "cancelled": set(),
    "no_show": set(),
}

# ---- Appointments ----

class AppointmentOut(BaseModel):
    id: uuid.UUID
    clinic_id: uuid.UUID
    professional_id: uuid.UUID
    patient_id: uuid.UUID
    start: datetime
    duration_minutes: int
    status: str = "scheduled"
    notes: str | None = None

    class Config: from_attributes = True

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

    @property
    def occupies_calendar(self) -> bool:
        return self.status not in INACTIVE_STATUSES

class AppointmentStatusChange(BaseModel):
    status: str = Field(pattern=STATUS_PATTERN)

class AppointmentReschedule(BaseModel):
    """New start; duration and clinic stay as they are unless given."""
    start: datetime
    duration_minutes: int | None = None
    clinic_id: uuid.UUID | None = None
    force: bool = False

class CalendarQuery(BaseModel):
    start: datetime
    end: datetime
    clinic_id: uuid.UUID | None = None
    professional_id: uuid.UUID | None = None
    include_inactive: bool = False

    @field_validator("start", "end")
    @classmethod
    def _localize(cls, v: datetime):
        if v.tzinfo is None:
            return v.replace(tzinfo=practice_tz())
        return v
