import uuid
import logging
from datetime import datetime
from fastapi import APIRouter, Depends
from clinic_agenda.core.config import settings
from clinic_agenda.core.errors import CommitRaceError
from clinic_agenda.platform.provider_registry import registry
from clinic_agenda.modules.appointments.schemas import AppointmentOut, AppointmentReschedule, AppointmentStatusChange, CalendarQuery
from clinic_agenda.modules.appointments.service import AppointmentService
from clinic_agenda.modules.availability.service import AvailabilityService
from clinic_agenda.modules.booking.schemas import CommitResult
from clinic_agenda.modules.booking.service import BookingService

router = APIRouter()
logger = logging.getLogger(__name__)

def svc() -> AppointmentService:
    store = registry.appointment_store()
    availability = AvailabilityService(store, registry.operating_hours_store(), registry.directory())
    return AppointmentService(store, BookingService(store, availability))

# ---- Appointments ----

@router.get("/appointments", response_model=list[AppointmentOut])
async def list_appointments(
    start: datetime,
    end: datetime,
    clinic_id: uuid.UUID | None = None,
    professional_id: uuid.UUID | None = None,
    include_inactive: bool = False,
    service: AppointmentService = Depends(svc),
):
    q = CalendarQuery(start=start, end=end, clinic_id=clinic_id, professional_id=professional_id, include_inactive=include_inactive)
    return await service.list_calendar(q)

@router.get("/appointments/{appointment_id}", response_model=AppointmentOut)
async def get_appointment(appointment_id: uuid.UUID, service: AppointmentService = Depends(svc)):
    return await service.get(appointment_id)

@router.post("/appointments/{appointment_id}/status", response_model=AppointmentOut)
async def change_appointment_status(
    appointment_id: uuid.UUID,
    payload: AppointmentStatusChange,
    service: AppointmentService = Depends(svc),
):
    return await service.change_status(appointment_id, payload)

@router.post("/appointments/{appointment_id}/reschedule", response_model=CommitResult)
async def reschedule_appointment(
    appointment_id: uuid.UUID,
    payload: AppointmentReschedule,
    service: AppointmentService = Depends(svc),
):
    """Same conflict rules as /booking/commit; transient races are retried."""
    attempts = settings.COMMIT_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        try:
            return await service.reschedule(appointment_id, payload)
        except CommitRaceError as e:
            if not e.transient or attempt == attempts:
                raise
            logger.info(f"Retrying reschedule after transient race (attempt {attempt}/{attempts})")
