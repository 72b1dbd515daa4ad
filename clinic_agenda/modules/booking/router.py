import logging
from fastapi import APIRouter, Depends, status
from clinic_agenda.core.config import settings
from clinic_agenda.core.errors import CommitRaceError, ConflictError
from clinic_agenda.platform.provider_registry import registry
from clinic_agenda.modules.availability.schemas import ProposedBooking
from clinic_agenda.modules.availability.service import AvailabilityService
from clinic_agenda.modules.booking.schemas import BookingState, CheckOut, CommitResult
from clinic_agenda.modules.booking.service import BookingService
from clinic_agenda.modules.booking.workflow import BookingWorkflow

router = APIRouter()
logger = logging.getLogger(__name__)

class BookingDeps:
    def __init__(self):
        self.availability = AvailabilityService(registry.appointment_store(), registry.operating_hours_store(), registry.directory())
        self.booking = BookingService(registry.appointment_store(), self.availability)

    def workflow(self, payload: ProposedBooking) -> BookingWorkflow:
        return BookingWorkflow(self.availability, self.booking, payload)

def svc() -> BookingDeps:
    return BookingDeps()

@router.post("/booking/check", response_model=CheckOut)
async def check_booking(payload: ProposedBooking, deps: BookingDeps = Depends(svc)):
    wf = deps.workflow(payload)
    check = await wf.validate()
    return CheckOut(state=wf.state, verdict=check.verdict, conflicting_appointment_ids=check.conflicting_appointment_ids)

@router.post("/booking/commit", response_model=CommitResult, status_code=status.HTTP_201_CREATED)
async def commit_booking(payload: ProposedBooking, deps: BookingDeps = Depends(svc)):
    """
    Validate and commit in one call. With force=false a conflict returns 409;
    with force=true the booking goes through and the response lists what it
    collides with. Transient commit races are retried up to COMMIT_MAX_ATTEMPTS.
    """
    attempts = settings.COMMIT_MAX_ATTEMPTS
    for attempt in range(1, attempts + 1):
        wf = deps.workflow(payload)
        check = await wf.validate()
        if wf.state == BookingState.CONFLICT_WARNING:
            if not payload.force:
                raise ConflictError(
                    f"professional already booked ({check.verdict.value})",
                    check.verdict, check.conflicting_appointment_ids,
                )
            wf.force()
        elif payload.force:
            wf.confirm_forced()
        try:
            return await wf.commit()
        except CommitRaceError as e:
            if not e.transient or attempt == attempts:
                raise
            logger.info(f"Retrying booking commit after transient race (attempt {attempt}/{attempts})")
