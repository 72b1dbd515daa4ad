import uuid
from datetime import date
from pydantic import BaseModel, Field, model_validator

MINUTES_PER_DAY = 24 * 60
# 23:59 is how a closing time of "end of day" is entered
LAST_MINUTE = MINUTES_PER_DAY - 1


def day_of_week(d: date) -> int:
    """0=Sunday .. 6=Saturday."""
    return d.isoweekday() % 7


class OpenInterval(BaseModel):
    """Half-open span [start_minute, end_minute) of minutes past midnight."""
    start_minute: int = Field(ge=0, le=MINUTES_PER_DAY)
    end_minute: int = Field(ge=0, le=MINUTES_PER_DAY)

    model_config = {"frozen": True}

    def contains(self, start_minute: int, duration_minutes: int) -> bool:
        return self.start_minute <= start_minute and start_minute + duration_minutes <= self.end_minute


class WeeklyRuleCreate(BaseModel):
    clinic_id: uuid.UUID
    day_of_week: int = Field(ge=0, le=6)
    start_minute: int = Field(ge=0, le=MINUTES_PER_DAY - 1)
    end_minute: int = Field(ge=1, le=MINUTES_PER_DAY)

    @model_validator(mode="after")
    def _window(self):
        if self.end_minute <= self.start_minute:
            raise ValueError("end_minute must be after start_minute")
        return self


class OverrideCreate(BaseModel):
    clinic_id: uuid.UUID
    specific_date: date
    start_minute: int | None = Field(default=None, ge=0, le=MINUTES_PER_DAY - 1)
    end_minute: int | None = Field(default=None, ge=1, le=MINUTES_PER_DAY)
    blocked: bool = True
    reason: str | None = Field(default=None, max_length=255)

    @model_validator(mode="after")
    def _window(self):
        if (self.start_minute is None) != (self.end_minute is None):
            raise ValueError("start_minute and end_minute must be given together")
        if self.start_minute is not None and self.end_minute <= self.start_minute:
            raise ValueError("end_minute must be after start_minute")
        if self.blocked and not (self.reason or "").strip():
            raise ValueError("a closure needs a reason")
        if not self.blocked and self.start_minute is None:
            raise ValueError("an extra opening needs start_minute and end_minute")
        return self


class OperatingHoursRuleOut(BaseModel):
    id: uuid.UUID
    clinic_id: uuid.UUID
    day_of_week: int | None = None
    specific_date: date | None = None
    start_minute: int | None = None
    end_minute: int | None = None
    blocked: bool = False
    reason: str | None = None

    class Config: from_attributes = True

    @property
    def is_override(self) -> bool:
        return self.specific_date is not None

    def window(self) -> tuple[int, int]:
        start = 0 if self.start_minute is None else self.start_minute
        end = MINUTES_PER_DAY if self.end_minute is None else self.end_minute
        if end >= LAST_MINUTE:
            end = MINUTES_PER_DAY
        return start, end

    @property
    def is_full_day(self) -> bool:
        return self.window() == (0, MINUTES_PER_DAY)


class OpenHoursOut(BaseModel):
    clinic_id: uuid.UUID
    date: date
    closed: bool
    intervals: list[OpenInterval]
