r"""
Booking workflow state machine.

    FORM -> VALIDATING -> CONFIRMED ---------> COMMITTED
                      \-> CONFLICT_WARNING -> CONFIRMED (force)
                                           \-> FORM (revise)

COMMITTED is terminal. A failed commit drops back to FORM so the booking is
validated again before the next attempt.
"""
import logging

from clinic_agenda.core.errors import ConflictError, SchedulingError, WorkflowStateError
from clinic_agenda.modules.availability.schemas import ConflictCheck, ProposedBooking
from clinic_agenda.modules.availability.service import AvailabilityService
from clinic_agenda.modules.booking.schemas import BookingState, CommitResult
from clinic_agenda.modules.booking.service import BookingService

logger = logging.getLogger(__name__)

EDITABLE_FIELDS = {"clinic_id", "professional_id", "patient_id", "start", "duration_minutes", "notes"}

class BookingWorkflow:
    def __init__(self, availability: AvailabilityService, booking: BookingService, proposal: ProposedBooking):
        self.availability = availability
        self.booking = booking
        # force is only ever set through force()
        self.proposal = proposal.model_copy(update={"force": False})
        self.state = BookingState.FORM
        self.check: ConflictCheck | None = None
        self.result: CommitResult | None = None

    def _require(self, *allowed: BookingState):
        if self.state not in allowed:
            raise WorkflowStateError(
                f"cannot go from {self.state.value}; expected {', '.join(s.value for s in allowed)}"
            )

    def revise(self, **changes) -> ProposedBooking:
        self._require(BookingState.FORM, BookingState.CONFLICT_WARNING)
        unknown = set(changes) - EDITABLE_FIELDS
        if unknown:
            raise WorkflowStateError(f"fields not editable: {', '.join(sorted(unknown))}")
        data = self.proposal.model_dump()
        data.update(changes, force=False)
        self.proposal = ProposedBooking(**data)
        self.check = None
        self.state = BookingState.FORM
        return self.proposal

    async def validate(self) -> ConflictCheck:
        self._require(BookingState.FORM)
        self.state = BookingState.VALIDATING
        try:
            check = await self.availability.check_exact(self.proposal)
        except SchedulingError:
            self.state = BookingState.FORM
            raise
        self.check = check
        self.state = BookingState.CONFIRMED if check.is_free else BookingState.CONFLICT_WARNING
        return check

    def force(self):
        self._require(BookingState.CONFLICT_WARNING)
        logger.warning(
            f"Booking forced by user despite {self.check.verdict.value} "
            f"with {self.check.conflicting_appointment_ids} professional={self.proposal.professional_id} "
            f"start={self.proposal.start.isoformat()}"
        )
        self.proposal = self.proposal.model_copy(update={"force": True})
        self.state = BookingState.CONFIRMED

    def confirm_forced(self):
        """
        Carry a caller's force flag through a clean validation, so a conflict
        that only shows up inside the commit transaction is booked anyway.
        """
        self._require(BookingState.CONFIRMED)
        logger.warning(
            f"Booking confirmed with force professional={self.proposal.professional_id} "
            f"start={self.proposal.start.isoformat()}; late conflicts will be booked over"
        )
        self.proposal = self.proposal.model_copy(update={"force": True})

    async def commit(self) -> CommitResult:
        self._require(BookingState.CONFIRMED)
        known = self.check.conflicting_appointment_ids if self.check else []
        try:
            self.result = await self.booking.commit(self.proposal, known_conflicts=known)
        except ConflictError:
            self.state = BookingState.FORM
            self.proposal = self.proposal.model_copy(update={"force": False})
            raise
        self.state = BookingState.COMMITTED
        return self.result
