import uuid
from datetime import datetime, timedelta
from enum import Enum
from pydantic import BaseModel, Field, field_validator
from clinic_agenda.core.clock import practice_tz

class ConflictVerdict(str, Enum):
    NONE = "NONE"
    SAME_CLINIC_OVERLAP = "SAME_CLINIC_OVERLAP"
    OTHER_CLINIC_OVERLAP = "OTHER_CLINIC_OVERLAP"

class ConflictCheck(BaseModel):
    verdict: ConflictVerdict = ConflictVerdict.NONE
    conflicting_appointment_ids: list[uuid.UUID] = []

    @property
    def is_free(self) -> bool:
        return self.verdict is ConflictVerdict.NONE

class ProposedBooking(BaseModel):
    # ids are optional at the model level so missing ones surface as InvalidRequestError
    clinic_id: uuid.UUID | None = None
    professional_id: uuid.UUID | None = None
    patient_id: uuid.UUID | None = None
    start: datetime
    duration_minutes: int
    notes: str | None = Field(default=None, max_length=4000)
    force: bool = False

    @field_validator("start")
    @classmethod
    def _localize(cls, v: datetime):
        # naive timestamps are wall-clock times at the practice
        if v.tzinfo is None:
            return v.replace(tzinfo=practice_tz())
        return v

    @property
    def end(self) -> datetime:
        return self.start + timedelta(minutes=self.duration_minutes)

class SlotOut(BaseModel):
    start: datetime
    end: datetime
    clinic_id: uuid.UUID
    professional_id: uuid.UUID
