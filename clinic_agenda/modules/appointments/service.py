import uuid
import logging
from typing import Sequence

from clinic_agenda.core.errors import ConflictError, InvalidRequestError, NotFoundError, WorkflowStateError
from clinic_agenda.modules.appointments.schemas import (
    AppointmentOut, AppointmentReschedule, AppointmentStatusChange, CalendarQuery, RESCHEDULABLE, VALID_NEXT,
)
from clinic_agenda.modules.availability.schemas import ProposedBooking
from clinic_agenda.modules.booking.schemas import CommitResult
from clinic_agenda.modules.booking.service import BookingService
from clinic_agenda.platform.ports.appointment_store import AppointmentStorePort

logger = logging.getLogger(__name__)

class AppointmentService:
    def __init__(self, store: AppointmentStorePort, booking: BookingService):
        self.store = store
        self.booking = booking

    async def get(self, appointment_id: uuid.UUID) -> AppointmentOut:
        obj = await self.store.get(appointment_id)
        if not obj:
            raise NotFoundError(f"appointment {appointment_id} not found")
        return obj

    async def list_calendar(self, q: CalendarQuery) -> Sequence[AppointmentOut]:
        if q.end <= q.start:
            raise InvalidRequestError("end must be after start")
        return await self.store.list_calendar(
            q.start, q.end, clinic_id=q.clinic_id, professional_id=q.professional_id, include_inactive=q.include_inactive,
        )

    async def change_status(self, appointment_id: uuid.UUID, payload: AppointmentStatusChange) -> AppointmentOut:
        """Staff-driven lifecycle move; appointments are never deleted, only cancelled or closed."""
        obj = await self.get(appointment_id)
        if payload.status == obj.status:
            return obj
        if payload.status not in VALID_NEXT.get(obj.status, set()):
            raise InvalidRequestError(f"invalid status transition {obj.status} -> {payload.status}")
        updated = await self.store.update_status(appointment_id, payload.status, expected=obj.status)
        if updated is None:
            raise WorkflowStateError(f"appointment {appointment_id} was changed concurrently; reload and retry")
        logger.info(f"Appointment {appointment_id} status {obj.status} -> {updated.status}")
        return updated

    async def reschedule(self, appointment_id: uuid.UUID, payload: AppointmentReschedule) -> CommitResult:
        """
        Move an appointment to a new start, and optionally a new duration or
        clinic, for the same professional and patient.

        Validated like a new booking, except that the appointment never
        conflicts with itself. With force=false a conflict raises ConflictError;
        closed hours raise ClosedError regardless of force.
        """
        obj = await self.get(appointment_id)
        if obj.status not in RESCHEDULABLE:
            raise InvalidRequestError(f"a {obj.status} appointment cannot be rescheduled")

        proposed = ProposedBooking(
            clinic_id=payload.clinic_id or obj.clinic_id,
            professional_id=obj.professional_id,
            patient_id=obj.patient_id,
            start=payload.start,
            duration_minutes=payload.duration_minutes or obj.duration_minutes,
            notes=obj.notes,
        )
        check = await self.booking.availability.check_exact(proposed, exclude_id=obj.id)
        if not check.is_free:
            if not payload.force:
                raise ConflictError(
                    f"professional already booked ({check.verdict.value})",
                    check.verdict, check.conflicting_appointment_ids,
                )
            logger.warning(
                f"Reschedule of {obj.id} forced despite {check.verdict.value} with {check.conflicting_appointment_ids}"
            )
            proposed = proposed.model_copy(update={"force": True})

        result = await self.booking.reschedule(obj, proposed, known_conflicts=check.conflicting_appointment_ids)
        logger.info(f"Appointment {obj.id} moved from {obj.start.isoformat()} to {result.appointment.start.isoformat()}")
        return result
