import uuid
from datetime import date
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Date, ForeignKey, Boolean
from clinic_agenda.core.base import Base, TimestampedMixin

# Weekly template: day_of_week 0=Sun..6=Sat, specific_date NULL.
# Date override: specific_date set, day_of_week NULL; NULL minutes on a blocked override mean the whole day.
# Minutes are minutes past midnight, end exclusive.
class OperatingHoursRule(Base, TimestampedMixin):
    __tablename__ = "operating_hours_rule"
    clinic_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clinic.id"), index=True)
    day_of_week: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 0..6
    specific_date: Mapped[date | None] = mapped_column(Date, nullable=True, index=True)
    start_minute: Mapped[int | None] = mapped_column(Integer, nullable=True)  # e.g., 8*60
    end_minute: Mapped[int | None] = mapped_column(Integer, nullable=True)    # e.g., 12*60
    blocked: Mapped[bool] = mapped_column(Boolean, default=False)
    reason: Mapped[str | None] = mapped_column(String(255), nullable=True)
