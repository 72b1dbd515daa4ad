import asyncio
import uuid
import logging
from typing import Awaitable, Iterable

from clinic_agenda.core.config import settings
from clinic_agenda.core.errors import CommitRaceError, SerializationFailure, WorkflowStateError
from clinic_agenda.modules.appointments.schemas import AppointmentOut
from clinic_agenda.modules.availability.conflicts import find_conflicts
from clinic_agenda.modules.availability.schemas import ProposedBooking
from clinic_agenda.modules.availability.service import AvailabilityService
from clinic_agenda.modules.booking.schemas import CommitResult
from clinic_agenda.platform.ports.appointment_store import AppointmentStorePort

logger = logging.getLogger(__name__)

APPOINTMENT_CREATED = "appointment.created"
APPOINTMENT_RESCHEDULED = "appointment.rescheduled"

class BookingService:
    """
    The write path of the engine: one transaction that re-reads the
    professional's calendar, re-runs conflict detection and then inserts a new
    appointment or moves an existing one.
    Never retries; callers decide whether a transient CommitRaceError is worth
    another attempt.
    """

    def __init__(self, appointments: AppointmentStorePort, availability: AvailabilityService, timeout_seconds: float | None = None):
        self.appointments = appointments
        self.availability = availability
        self.timeout = timeout_seconds or settings.COMMIT_TIMEOUT_SECONDS

    async def _guarded(self, work: Awaitable[CommitResult], proposed: ProposedBooking) -> CommitResult:
        try:
            return await asyncio.wait_for(work, timeout=self.timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Booking commit timed out after {self.timeout}s for professional={proposed.professional_id}")
            raise CommitRaceError("booking transaction timed out", transient=True)
        except SerializationFailure as e:
            logger.warning(f"Booking commit lost a race for professional={proposed.professional_id}: {e}")
            raise CommitRaceError("calendar changed while booking; validate again", transient=True) from e

    async def commit(self, proposed: ProposedBooking, known_conflicts: Iterable[uuid.UUID] = ()) -> CommitResult:
        return await self._guarded(self._commit(proposed, set(known_conflicts)), proposed)

    async def reschedule(self, current: AppointmentOut, proposed: ProposedBooking, known_conflicts: Iterable[uuid.UUID] = ()) -> CommitResult:
        """Move `current` to the clinic, start and duration of `proposed`."""
        return await self._guarded(self._reschedule(current, proposed, set(known_conflicts)), proposed)

    def _gate(self, proposed: ProposedBooking, fresh, known: set[uuid.UUID], exclude_id: uuid.UUID | None = None):
        check = find_conflicts(proposed, fresh, exclude_id)
        race_ids = [i for i in check.conflicting_appointment_ids if i not in known]
        if not check.is_free and not proposed.force:
            logger.warning(f"Commit race: {check.verdict.value} with {race_ids} for professional={proposed.professional_id}")
            raise CommitRaceError(
                "slot was taken after validation", check.verdict, check.conflicting_appointment_ids,
            )
        return check, race_ids

    def _result(self, appt: AppointmentOut, proposed: ProposedBooking, check, race_ids, action: str) -> CommitResult:
        if proposed.force and not check.is_free:
            logger.warning(
                f"Forced {action} {appt.id}: {check.verdict.value} with {check.conflicting_appointment_ids}"
                + (f" (new since validation: {race_ids})" if race_ids else "")
            )
        else:
            logger.info(f"{action.capitalize()} appointment {appt.id} professional={appt.professional_id} clinic={appt.clinic_id} start={appt.start.isoformat()}")
        return CommitResult(
            appointment=appt,
            forced=proposed.force,
            conflicting_appointment_ids=check.conflicting_appointment_ids,
            race_appointment_ids=race_ids,
        )

    async def _commit(self, proposed: ProposedBooking, known: set[uuid.UUID]) -> CommitResult:
        range_start, range_end = self.availability.affected_range(proposed)
        async with self.appointments.transaction() as uow:
            fresh = await uow.list_by_professional(proposed.professional_id, range_start, range_end)
            check, race_ids = self._gate(proposed, fresh, known)

            appt = await uow.insert(
                clinic_id=proposed.clinic_id,
                professional_id=proposed.professional_id,
                patient_id=proposed.patient_id,
                start=proposed.start,
                duration_minutes=proposed.duration_minutes,
                notes=proposed.notes,
            )
            await uow.record_event(APPOINTMENT_CREATED, appt.id, {
                "appointment": appt.model_dump(mode="json"),
                "forced": proposed.force,
                "conflicting_appointment_ids": [str(i) for i in check.conflicting_appointment_ids],
            })
        return self._result(appt, proposed, check, race_ids, "booked")

    async def _reschedule(self, current: AppointmentOut, proposed: ProposedBooking, known: set[uuid.UUID]) -> CommitResult:
        range_start, range_end = self.availability.affected_range(proposed)
        async with self.appointments.transaction() as uow:
            fresh = await uow.list_by_professional(proposed.professional_id, range_start, range_end)
            check, race_ids = self._gate(proposed, fresh, known, exclude_id=current.id)

            appt = await uow.move(
                current.id,
                clinic_id=proposed.clinic_id,
                start=proposed.start,
                duration_minutes=proposed.duration_minutes,
                expected_status=current.status,
            )
            if appt is None:
                raise WorkflowStateError(f"appointment {current.id} was changed concurrently; reload and retry")
            await uow.record_event(APPOINTMENT_RESCHEDULED, appt.id, {
                "appointment": appt.model_dump(mode="json"),
                "previous": {
                    "clinic_id": str(current.clinic_id),
                    "start": current.start.isoformat(),
                    "duration_minutes": current.duration_minutes,
                },
                "forced": proposed.force,
                "conflicting_appointment_ids": [str(i) for i in check.conflicting_appointment_ids],
            })
        return self._result(appt, proposed, check, race_ids, "rescheduled")
