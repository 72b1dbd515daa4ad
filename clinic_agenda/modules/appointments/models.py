import uuid
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, Integer, Text, TIMESTAMP, ForeignKey, Index
from clinic_agenda.core.base import Base, TimestampedMixin

class Appointment(Base, TimestampedMixin):
    __table_args__ = (Index("ix_appointment_professional_start", "professional_id", "start"),)

    clinic_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("clinic.id"), index=True)
    professional_id: Mapped[uuid.UUID] = mapped_column(ForeignKey("professional.id"))
    patient_id: Mapped[uuid.UUID] = mapped_column()  # patients live in the external patient registry

    start: Mapped[datetime] = mapped_column(TIMESTAMP(timezone=True))  # stored in UTC
    duration_minutes: Mapped[int] = mapped_column(Integer)

    # scheduled, confirmed, in_progress, completed, cancelled, no_show
    status: Mapped[str] = mapped_column(String(24), default="scheduled")
    notes: Mapped[str | None] = mapped_column(Text, nullable=True)
