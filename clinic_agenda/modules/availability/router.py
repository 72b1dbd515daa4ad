import uuid
from datetime import date
from fastapi import APIRouter, Depends, Query
from clinic_agenda.platform.provider_registry import registry
from clinic_agenda.modules.availability.service import AvailabilityService
from clinic_agenda.modules.availability.schemas import SlotOut
from clinic_agenda.modules.operating_hours.schemas import OpenHoursOut

router = APIRouter()

def svc() -> AvailabilityService:
    return AvailabilityService(registry.appointment_store(), registry.operating_hours_store(), registry.directory())

# Slot search
@router.get("/availability/slots", response_model=list[SlotOut])
async def search_slots(
    clinic_id: uuid.UUID,
    professional_id: uuid.UUID,
    date: date,
    duration: int = 30,
    granularity: int | None = Query(default=None, ge=1, le=240),
    service: AvailabilityService = Depends(svc),
):
    return await service.list_free_slots(clinic_id, professional_id, date, duration, granularity)

# Resolved opening hours
@router.get("/availability/hours", response_model=OpenHoursOut)
async def opening_hours(clinic_id: uuid.UUID, date: date, service: AvailabilityService = Depends(svc)):
    intervals = await service.resolve_hours(clinic_id, date)
    return OpenHoursOut(clinic_id=clinic_id, date=date, closed=not intervals, intervals=intervals)
