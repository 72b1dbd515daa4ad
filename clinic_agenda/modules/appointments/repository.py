import uuid
from datetime import datetime, timedelta
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, and_
from clinic_agenda.core.clock import as_utc
from clinic_agenda.modules.appointments.models import Appointment
from clinic_agenda.modules.appointments.schemas import INACTIVE_STATUSES

# Longest appointment we accept; bounds how far back a range query must look.
MAX_DURATION = timedelta(hours=24)

class AppointmentRepository:
    def __init__(self, session: AsyncSession):
        self.session = session

    async def create(self, **data) -> Appointment:
        data["start"] = as_utc(data["start"])
        obj = Appointment(**data)
        self.session.add(obj)
        await self.session.flush()
        return obj

    async def get(self, appt_id: uuid.UUID) -> Appointment | None:
        q = select(Appointment).where(
            and_(Appointment.id == appt_id,
                 Appointment.deleted_at.is_(None))
        )
        res = await self.session.execute(q)
        return res.scalar_one_or_none()

    async def list_overlapping(self, start: datetime, end: datetime, *, professional_id: uuid.UUID | None = None, clinic_id: uuid.UUID | None = None, include_inactive: bool = True) -> Sequence[Appointment]:
        """Appointments whose [start, start+duration) intersects [start, end)."""
        start, end = as_utc(start), as_utc(end)
        cond = [
            Appointment.deleted_at.is_(None),
            Appointment.start < end,
            Appointment.start >= start - MAX_DURATION,
        ]
        if professional_id:
            cond.append(Appointment.professional_id == professional_id)
        if clinic_id:
            cond.append(Appointment.clinic_id == clinic_id)
        if not include_inactive:
            cond.append(Appointment.status.not_in(INACTIVE_STATUSES))
        q = select(Appointment).where(and_(*cond)).order_by(Appointment.start.asc())
        res = await self.session.execute(q)
        # the duration filter is applied here to stay portable across databases
        return [a for a in res.scalars().all()
                if as_utc(a.start) + timedelta(minutes=a.duration_minutes) > start]
