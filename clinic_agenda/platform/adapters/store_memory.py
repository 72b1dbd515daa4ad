import asyncio
import uuid
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from datetime import date, datetime, timedelta
from typing import AsyncIterator, Sequence

from clinic_agenda.core.clock import as_utc, now
from clinic_agenda.core.errors import InvalidRequestError, SerializationFailure
from clinic_agenda.modules.appointments.schemas import AppointmentOut
from clinic_agenda.modules.directory.schemas import ClinicOut, ProfessionalOut
from clinic_agenda.modules.events.outbox import TOPIC, event_message
from clinic_agenda.modules.operating_hours.resolver import overlapping_override
from clinic_agenda.modules.operating_hours.schemas import OperatingHoursRuleOut, WeeklyRuleCreate, OverrideCreate
from clinic_agenda.platform.adapters.bus_noop import NoopEventBus
from clinic_agenda.platform.ports.appointment_store import AppointmentStorePort, AppointmentUnitOfWork
from clinic_agenda.platform.ports.directory import DirectoryPort
from clinic_agenda.platform.ports.event_bus import EventBusPort
from clinic_agenda.platform.ports.operating_hours_store import OperatingHoursStorePort

log = logging.getLogger("store.memory")


def _overlaps(a: AppointmentOut, start: datetime, end: datetime) -> bool:
    return a.start < end and start < a.end


class MemoryUnitOfWork(AppointmentUnitOfWork):
    """
    Optimistic unit of work: remembers the version of every professional
    calendar it read and refuses to commit if another transaction wrote to one
    of them in the meantime.
    """

    def __init__(self, store: "MemoryStore"):
        self.store = store
        self.read_versions: dict[uuid.UUID, int] = {}
        self.pending: list[AppointmentOut] = []
        self.events: list[tuple[str, uuid.UUID, dict]] = []

    async def list_by_professional(self, professional_id: uuid.UUID, start: datetime, end: datetime) -> Sequence[AppointmentOut]:
        self.read_versions.setdefault(professional_id, self.store.versions[professional_id])
        await asyncio.sleep(0)  # let concurrent transactions interleave as they would on a real store
        return await self.store.list_by_professional(professional_id, start, end)

    async def insert(self, *, clinic_id, professional_id, patient_id, start, duration_minutes, status="scheduled", notes=None) -> AppointmentOut:
        appt = AppointmentOut(
            id=uuid.uuid4(), clinic_id=clinic_id, professional_id=professional_id, patient_id=patient_id,
            start=as_utc(start), duration_minutes=duration_minutes, status=status, notes=notes,
        )
        self.read_versions.setdefault(professional_id, self.store.versions[professional_id])
        self.pending.append(appt)
        return appt

    async def move(self, appointment_id, *, clinic_id, start, duration_minutes, expected_status) -> AppointmentOut | None:
        current = self.store.appointments.get(appointment_id)
        if current is None or current.status != expected_status:
            return None
        moved = current.model_copy(update={
            "clinic_id": clinic_id, "start": as_utc(start), "duration_minutes": duration_minutes,
        })
        self.read_versions.setdefault(current.professional_id, self.store.versions[current.professional_id])
        self.pending.append(moved)
        return moved

    async def record_event(self, event_type: str, subject_id: uuid.UUID, payload: dict) -> None:
        self.events.append((event_type, subject_id, payload))

    async def commit(self):
        for pid, seen in self.read_versions.items():
            if self.store.versions[pid] != seen:
                raise SerializationFailure(f"calendar of professional {pid} changed during the transaction")
        for appt in self.pending:
            self.store.appointments[appt.id] = appt
            self.store.versions[appt.professional_id] += 1
        for event_type, subject_id, payload in self.events:
            message = event_message(event_type, payload, now())
            self.store.events.append(message)
            await self.store.bus.publish(topic=TOPIC, key=str(subject_id), value=message)


class MemoryStore(AppointmentStorePort, OperatingHoursStorePort, DirectoryPort):
    """Process-local store for tests and the `memory` provider. Not shared across workers."""

    def __init__(self, bus: EventBusPort | None = None):
        self.bus = bus or NoopEventBus()
        self.clinics: dict[uuid.UUID, ClinicOut] = {}
        self.professionals: dict[uuid.UUID, ProfessionalOut] = {}
        self.rules: dict[uuid.UUID, OperatingHoursRuleOut] = {}
        self.appointments: dict[uuid.UUID, AppointmentOut] = {}
        self.versions: defaultdict[uuid.UUID, int] = defaultdict(int)
        self.events: list[dict] = []

    # ---- Directory ----
    def add_clinic(self, name: str, active: bool = True) -> ClinicOut:
        obj = ClinicOut(id=uuid.uuid4(), name=name, active=active)
        self.clinics[obj.id] = obj
        return obj

    def add_professional(self, name: str, active: bool = True) -> ProfessionalOut:
        obj = ProfessionalOut(id=uuid.uuid4(), name=name, active=active)
        self.professionals[obj.id] = obj
        return obj

    async def get_clinic(self, clinic_id: uuid.UUID) -> ClinicOut | None:
        return self.clinics.get(clinic_id)

    async def get_professional(self, professional_id: uuid.UUID) -> ProfessionalOut | None:
        return self.professionals.get(professional_id)

    # ---- Operating hours ----
    async def list_weekly_rules(self, clinic_id: uuid.UUID) -> Sequence[OperatingHoursRuleOut]:
        rules = [r for r in self.rules.values() if r.clinic_id == clinic_id and not r.is_override]
        return sorted(rules, key=lambda r: (r.day_of_week, r.start_minute))

    async def list_overrides(self, clinic_id: uuid.UUID, start: date, end: date | None = None) -> Sequence[OperatingHoursRuleOut]:
        end = end or start
        rules = [r for r in self.rules.values()
                 if r.clinic_id == clinic_id and r.is_override and start <= r.specific_date <= end]
        return sorted(rules, key=lambda r: (r.specific_date, r.window()))

    def seed_weekly_rule(self, payload: WeeklyRuleCreate) -> OperatingHoursRuleOut:
        obj = OperatingHoursRuleOut(id=uuid.uuid4(), blocked=False, **payload.model_dump())
        self.rules[obj.id] = obj
        return obj

    async def add_weekly_rule(self, payload: WeeklyRuleCreate) -> OperatingHoursRuleOut:
        return self.seed_weekly_rule(payload)

    async def add_override(self, payload: OverrideCreate) -> OperatingHoursRuleOut:
        obj = OperatingHoursRuleOut(id=uuid.uuid4(), **payload.model_dump())
        clash = overlapping_override(obj.window(), await self.list_overrides(payload.clinic_id, payload.specific_date))
        if clash:
            raise InvalidRequestError(
                f"override overlaps existing rule {clash.id} on {payload.specific_date.isoformat()}"
            )
        self.rules[obj.id] = obj
        return obj

    async def remove_rule(self, rule_id: uuid.UUID) -> bool:
        return self.rules.pop(rule_id, None) is not None

    # ---- Appointments ----
    def seed_appointment(self, **data) -> AppointmentOut:
        """Insert an appointment directly, bypassing the booking workflow."""
        data.setdefault("id", uuid.uuid4())
        data["start"] = as_utc(data["start"])
        appt = AppointmentOut(**data)
        self.appointments[appt.id] = appt
        self.versions[appt.professional_id] += 1
        return appt

    async def list_by_professional(self, professional_id: uuid.UUID, start: datetime, end: datetime) -> Sequence[AppointmentOut]:
        found = [a for a in self.appointments.values()
                 if a.professional_id == professional_id and _overlaps(a, start, end)]
        return sorted(found, key=lambda a: a.start)

    async def list_calendar(self, start: datetime, end: datetime, *, clinic_id: uuid.UUID | None = None, professional_id: uuid.UUID | None = None, include_inactive: bool = False) -> Sequence[AppointmentOut]:
        found = [a for a in self.appointments.values()
                 if _overlaps(a, start, end)
                 and (clinic_id is None or a.clinic_id == clinic_id)
                 and (professional_id is None or a.professional_id == professional_id)
                 and (include_inactive or a.occupies_calendar)]
        return sorted(found, key=lambda a: a.start)

    async def get(self, appointment_id: uuid.UUID) -> AppointmentOut | None:
        return self.appointments.get(appointment_id)

    async def update_status(self, appointment_id: uuid.UUID, status: str, expected: str) -> AppointmentOut | None:
        current = self.appointments.get(appointment_id)
        if current is None or current.status != expected:
            return None
        updated = current.model_copy(update={"status": status})
        self.appointments[appointment_id] = updated
        self.versions[updated.professional_id] += 1
        return updated

    @asynccontextmanager
    async def transaction(self) -> AsyncIterator[MemoryUnitOfWork]:
        uow = MemoryUnitOfWork(self)
        yield uow
        await uow.commit()
