import uuid
import logging
from datetime import date, timedelta
from zoneinfo import ZoneInfo

from clinic_agenda.core.clock import day_bounds, local_datetime, minute_of_day, practice_tz
from clinic_agenda.core.config import settings
from clinic_agenda.core.errors import ClosedError, InvalidRequestError, NotFoundError
from clinic_agenda.modules.availability.conflicts import find_conflicts
from clinic_agenda.modules.availability.schemas import ConflictCheck, ProposedBooking, SlotOut
from clinic_agenda.modules.availability.slots import fits_within, generate_slots
from clinic_agenda.modules.operating_hours.resolver import resolve
from clinic_agenda.modules.operating_hours.schemas import MINUTES_PER_DAY, OpenInterval
from clinic_agenda.platform.ports.appointment_store import AppointmentStorePort
from clinic_agenda.platform.ports.directory import DirectoryPort
from clinic_agenda.platform.ports.operating_hours_store import OperatingHoursStorePort

logger = logging.getLogger(__name__)

def _check_duration(duration_minutes: int):
    if duration_minutes is None or duration_minutes <= 0:
        raise InvalidRequestError("duration_minutes must be positive")
    if duration_minutes > MINUTES_PER_DAY:
        raise InvalidRequestError("duration_minutes cannot exceed one day")

class AvailabilityService:
    """
    Answers "which slots are free" and "is this exact interval free".

    Reads only; every method is side-effect free and safe to run concurrently
    for independent (clinic, professional, date) keys.
    """

    def __init__(self, appointments: AppointmentStorePort, hours: OperatingHoursStorePort, directory: DirectoryPort, granularity_minutes: int | None = None, tz: ZoneInfo | None = None):
        self.appointments = appointments
        self.hours = hours
        self.directory = directory
        self.granularity = granularity_minutes or settings.SLOT_GRANULARITY_MINUTES
        self.tz = tz or practice_tz()

    async def _require_clinic(self, clinic_id: uuid.UUID | None):
        if clinic_id is None:
            raise InvalidRequestError("clinic_id is required")
        clinic = await self.directory.get_clinic(clinic_id)
        if not clinic or not clinic.active:
            raise NotFoundError(f"clinic {clinic_id} not found")
        return clinic

    async def _require_professional(self, professional_id: uuid.UUID | None):
        if professional_id is None:
            raise InvalidRequestError("professional_id is required")
        prof = await self.directory.get_professional(professional_id)
        if not prof or not prof.active:
            raise NotFoundError(f"professional {professional_id} not found")
        return prof

    async def _open_intervals(self, clinic_id: uuid.UUID, on: date) -> list[OpenInterval]:
        weekly = await self.hours.list_weekly_rules(clinic_id)
        overrides = await self.hours.list_overrides(clinic_id, on)
        return resolve(weekly, overrides, on)

    async def resolve_hours(self, clinic_id: uuid.UUID, on: date) -> list[OpenInterval]:
        """Open intervals of a clinic on a date; an empty list means closed, not an error."""
        await self._require_clinic(clinic_id)
        return await self._open_intervals(clinic_id, on)

    async def list_free_slots(self, clinic_id: uuid.UUID, professional_id: uuid.UUID, on: date, duration_minutes: int, granularity_minutes: int | None = None) -> list[SlotOut]:
        _check_duration(duration_minutes)
        await self._require_clinic(clinic_id)
        await self._require_professional(professional_id)

        intervals = await self._open_intervals(clinic_id, on)
        candidates = generate_slots(intervals, duration_minutes, granularity_minutes or self.granularity)
        if not candidates:
            return []

        # once, across every clinic: other-clinic bookings block the professional too
        day_start, day_end = day_bounds(on, self.tz)
        booked = await self.appointments.list_by_professional(professional_id, day_start, day_end)

        out: list[SlotOut] = []
        for minute in candidates:
            start = local_datetime(on, minute, self.tz)
            candidate = ProposedBooking(clinic_id=clinic_id, professional_id=professional_id, start=start, duration_minutes=duration_minutes)
            if find_conflicts(candidate, booked).is_free:
                out.append(SlotOut(start=start, end=candidate.end, clinic_id=clinic_id, professional_id=professional_id))
        logger.debug(f"{len(out)}/{len(candidates)} free slots for professional={professional_id} clinic={clinic_id} on {on}")
        return out

    async def check_exact(self, proposed: ProposedBooking, exclude_id: uuid.UUID | None = None) -> ConflictCheck:
        """
        Validate one concrete start/duration, independent of the slot grid.

        Raises ClosedError when the clinic has no open interval that contains
        the whole requested interval; otherwise returns the conflict verdict.
        `exclude_id` skips the appointment being rescheduled.
        """
        _check_duration(proposed.duration_minutes)
        if proposed.patient_id is None:
            raise InvalidRequestError("patient_id is required")
        if proposed.start.second or proposed.start.microsecond:
            raise InvalidRequestError("start must fall on a whole minute")
        await self._require_clinic(proposed.clinic_id)
        await self._require_professional(proposed.professional_id)

        on = proposed.start.astimezone(self.tz).date()
        intervals = await self._open_intervals(proposed.clinic_id, on)
        if not intervals:
            raise ClosedError(f"clinic {proposed.clinic_id} is closed on {on.isoformat()}")
        start_minute = minute_of_day(proposed.start, on, self.tz)
        if not fits_within(intervals, start_minute, proposed.duration_minutes):
            raise ClosedError(f"{proposed.start.isoformat()} (+{proposed.duration_minutes}min) is outside operating hours")

        existing = await self.appointments.list_by_professional(proposed.professional_id, proposed.start, proposed.end)
        return find_conflicts(proposed, existing, exclude_id)

    def affected_range(self, proposed: ProposedBooking):
        """Time range re-read inside the commit transaction: the whole local day(s) of the booking."""
        day_start, _ = day_bounds(proposed.start.astimezone(self.tz).date(), self.tz)
        _, day_end = day_bounds((proposed.end - timedelta(microseconds=1)).astimezone(self.tz).date(), self.tz)
        return day_start, day_end
