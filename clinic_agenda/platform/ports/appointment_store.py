import uuid
from datetime import datetime
from typing import AsyncContextManager, Protocol, Sequence, runtime_checkable
from clinic_agenda.modules.appointments.schemas import AppointmentOut

@runtime_checkable
class AppointmentUnitOfWork(Protocol):
    """Operations that must run inside the booking transaction."""
    async def list_by_professional(self, professional_id: uuid.UUID, start: datetime, end: datetime) -> Sequence[AppointmentOut]: ...
    async def insert(self, *, clinic_id: uuid.UUID, professional_id: uuid.UUID, patient_id: uuid.UUID, start: datetime, duration_minutes: int, status: str = "scheduled", notes: str | None = None) -> AppointmentOut: ...
    async def move(self, appointment_id: uuid.UUID, *, clinic_id: uuid.UUID, start: datetime, duration_minutes: int, expected_status: str) -> AppointmentOut | None: ...
    async def record_event(self, event_type: str, subject_id: uuid.UUID, payload: dict) -> None: ...

@runtime_checkable
class AppointmentStorePort(Protocol):
    async def list_by_professional(self, professional_id: uuid.UUID, start: datetime, end: datetime) -> Sequence[AppointmentOut]: ...
    async def list_calendar(self, start: datetime, end: datetime, *, clinic_id: uuid.UUID | None = None, professional_id: uuid.UUID | None = None, include_inactive: bool = False) -> Sequence[AppointmentOut]: ...
    async def get(self, appointment_id: uuid.UUID) -> AppointmentOut | None: ...
    async def update_status(self, appointment_id: uuid.UUID, status: str, expected: str) -> AppointmentOut | None: ...
    def transaction(self) -> AsyncContextManager[AppointmentUnitOfWork]: ...
