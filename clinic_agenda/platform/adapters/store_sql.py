import uuid
import logging
from contextlib import asynccontextmanager
from datetime import date, datetime
from typing import AsyncIterator, Sequence

from sqlalchemy import update, and_
from sqlalchemy.exc import DBAPIError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from clinic_agenda.core.clock import as_utc
from clinic_agenda.core.errors import InvalidRequestError, SerializationFailure
from clinic_agenda.modules.appointments.models import Appointment
from clinic_agenda.modules.appointments.repository import AppointmentRepository
from clinic_agenda.modules.appointments.schemas import AppointmentOut
from clinic_agenda.modules.directory.repository import DirectoryRepository
from clinic_agenda.modules.directory.schemas import ClinicOut, ProfessionalOut
from clinic_agenda.modules.events.outbox import OutboxService
from clinic_agenda.modules.operating_hours.repository import OperatingHoursRepository
from clinic_agenda.modules.operating_hours.resolver import overlapping_override
from clinic_agenda.modules.operating_hours.schemas import OperatingHoursRuleOut, WeeklyRuleCreate, OverrideCreate
from clinic_agenda.platform.ports.appointment_store import AppointmentStorePort, AppointmentUnitOfWork
from clinic_agenda.platform.ports.directory import DirectoryPort
from clinic_agenda.platform.ports.operating_hours_store import OperatingHoursStorePort

log = logging.getLogger(__name__)

# SQLSTATE 40001 serialization_failure, 40P01 deadlock_detected
_RETRYABLE_SQLSTATES = {"40001", "40P01"}

def _is_serialization_failure(e: DBAPIError) -> bool:
    orig = e.orig
    code = getattr(orig, "sqlstate", None) or getattr(orig, "pgcode", None)
    if code in _RETRYABLE_SQLSTATES:
        return True
    # sqlite reports write contention as a locked database
    return "database is locked" in str(orig)

def _appt_out(a: Appointment) -> AppointmentOut:
    return AppointmentOut(
        id=a.id, clinic_id=a.clinic_id, professional_id=a.professional_id, patient_id=a.patient_id,
        start=as_utc(a.start), duration_minutes=a.duration_minutes, status=a.status, notes=a.notes,
    )

def _rule_out(r) -> OperatingHoursRuleOut:
    return OperatingHoursRuleOut.model_validate(r)


class SqlUnitOfWork(AppointmentUnitOfWork):
    def __init__(self, session: AsyncSession):
        self.session = session
        self.appts = AppointmentRepository(session)

    async def list_by_professional(self, professional_id: uuid.UUID, start: datetime, end: datetime) -> Sequence[AppointmentOut]:
        rows = await self.appts.list_overlapping(start, end, professional_id=professional_id)
        return [_appt_out(a) for a in rows]

    async def insert(self, *, clinic_id, professional_id, patient_id, start, duration_minutes, status="scheduled", notes=None) -> AppointmentOut:
        obj = await self.appts.create(
            clinic_id=clinic_id, professional_id=professional_id, patient_id=patient_id,
            start=start, duration_minutes=duration_minutes, status=status, notes=notes,
        )
        return _appt_out(obj)

    async def move(self, appointment_id, *, clinic_id, start, duration_minutes, expected_status) -> AppointmentOut | None:
        res = await self.session.execute(
            update(Appointment)
            .where(and_(Appointment.id == appointment_id,
                        Appointment.status == expected_status,
                        Appointment.deleted_at.is_(None)))
            .values(clinic_id=clinic_id, start=as_utc(start), duration_minutes=duration_minutes,
                    version=Appointment.version + 1)
            .execution_options(synchronize_session=False)
        )
        if res.rowcount != 1:
            return None
        obj = await self.appts.get(appointment_id)
        await self.session.refresh(obj)
        return _appt_out(obj)

    async def record_event(self, event_type: str, subject_id: uuid.UUID, payload: dict) -> None:
        await OutboxService(self.session).enqueue(event_type, "appointment", subject_id, payload)


class SqlAppointmentStore(AppointmentStorePort):
    def __init__(self, sessionmaker: async_sessionmaker, tx_sessionmaker: async_sessionmaker | None = None):
        self.sessionmaker = sessionmaker
        self.tx_sessionmaker = tx_sessionmaker or sessionmaker

    async def list_by_professional(self, professional_id: uuid.UUID, start: datetime, end: datetime) -> Sequence[AppointmentOut]:
        async with self.sessionmaker() as s:
            rows = await AppointmentRepository(s).list_overlapping(start, end, professional_id=professional_id)
            return [_appt_out(a) for a in rows]

    async def list_calendar(self, start: datetime, end: datetime, *, clinic_id: uuid.UUID | None = None, professional_id: uuid.UUID | None = None, include_inactive: bool = False) -> Sequence[AppointmentOut]:
        async with self.sessionmaker() as s:
            rows = await AppointmentRepository(s).list_overlapping(
                start, end, clinic_id=clinic_id, professional_id=professional_id, include_inactive=include_inactive,
            )
            return [_appt_out(a) for a in rows]

    async def get(self, appointment_id: uuid.UUID) -> AppointmentOut | None:
        async with self.sessionmaker() as s:
            obj = await AppointmentRepository(s).get(appointment_id)
            return _appt_out(obj) if obj else None

    async def update_status(self, appointment_id: uuid.UUID, status: str, expected: str) -> AppointmentOut | None:
        """Compare-and-set on the current status; None when it no longer is `expected`."""
        async with self.sessionmaker() as s:
            res = await s.execute(
                update(Appointment)
                .where(and_(Appointment.id == appointment_id,
                            Appointment.status == expected,
                            Appointment.deleted_at.is_(None)))
                .values(status=status, version=Appointment.version + 1)
            )
            if res.rowcount != 1:
                await s.rollback()
                return None
            await s.commit()
            obj = await AppointmentRepository(s).get(appointment_id)
            return _appt_out(obj) if obj else None

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[SqlUnitOfWork]:
        async with self.tx_sessionmaker() as s:
            try:
                yield SqlUnitOfWork(s)
                await s.commit()
            except DBAPIError as e:
                await s.rollback()
                if _is_serialization_failure(e):
                    log.warning("Booking transaction aborted by concurrent writer: %s", e.orig)
                    raise SerializationFailure(str(e.orig)) from e
                raise
            except BaseException:
                await s.rollback()
                raise


class SqlOperatingHoursStore(OperatingHoursStorePort):
    def __init__(self, sessionmaker: async_sessionmaker, tx_sessionmaker: async_sessionmaker | None = None):
        self.sessionmaker = sessionmaker
        # overlap check and insert of an override must not interleave with another writer
        self.tx_sessionmaker = tx_sessionmaker or sessionmaker

    async def list_weekly_rules(self, clinic_id: uuid.UUID) -> Sequence[OperatingHoursRuleOut]:
        async with self.sessionmaker() as s:
            return [_rule_out(r) for r in await OperatingHoursRepository(s).list_weekly(clinic_id)]

    async def list_overrides(self, clinic_id: uuid.UUID, start: date, end: date | None = None) -> Sequence[OperatingHoursRuleOut]:
        async with self.sessionmaker() as s:
            return [_rule_out(r) for r in await OperatingHoursRepository(s).list_overrides(clinic_id, start, end)]

    async def add_weekly_rule(self, payload: WeeklyRuleCreate) -> OperatingHoursRuleOut:
        async with self.sessionmaker() as s:
            obj = await OperatingHoursRepository(s).create(blocked=False, **payload.model_dump())
            out = _rule_out(obj)
            await s.commit()
            return out

    async def add_override(self, payload: OverrideCreate) -> OperatingHoursRuleOut:
        async with self.tx_sessionmaker() as s:
            try:
                repo = OperatingHoursRepository(s)
                existing = [_rule_out(r) for r in await repo.list_overrides(payload.clinic_id, payload.specific_date)]
                candidate = OperatingHoursRuleOut(id=uuid.uuid4(), **payload.model_dump())
                clash = overlapping_override(candidate.window(), existing)
                if clash:
                    raise InvalidRequestError(
                        f"override overlaps existing rule {clash.id} on {payload.specific_date.isoformat()}"
                    )
                obj = await repo.create(id=candidate.id, **payload.model_dump())
                out = _rule_out(obj)
                await s.commit()
                return out
            except DBAPIError as e:
                await s.rollback()
                if _is_serialization_failure(e):
                    log.warning("Override write aborted by concurrent writer: %s", e.orig)
                    raise InvalidRequestError(
                        f"overrides of clinic {payload.clinic_id} on {payload.specific_date.isoformat()} "
                        "changed concurrently; reload and retry"
                    ) from e
                raise

    async def remove_rule(self, rule_id: uuid.UUID) -> bool:
        async with self.sessionmaker() as s:
            repo = OperatingHoursRepository(s)
            obj = await repo.get(rule_id)
            if not obj:
                return False
            await repo.soft_delete(obj)
            await s.commit()
            return True


class SqlDirectory(DirectoryPort):
    def __init__(self, sessionmaker: async_sessionmaker):
        self.sessionmaker = sessionmaker

    async def get_clinic(self, clinic_id: uuid.UUID) -> ClinicOut | None:
        async with self.sessionmaker() as s:
            obj = await DirectoryRepository(s).get_clinic(clinic_id)
            return ClinicOut.model_validate(obj) if obj else None

    async def get_professional(self, professional_id: uuid.UUID) -> ProfessionalOut | None:
        async with self.sessionmaker() as s:
            obj = await DirectoryRepository(s).get_professional(professional_id)
            return ProfessionalOut.model_validate(obj) if obj else None
