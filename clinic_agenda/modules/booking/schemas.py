import uuid
from enum import Enum
from pydantic import BaseModel
from clinic_agenda.modules.appointments.schemas import AppointmentOut
from clinic_agenda.modules.availability.schemas import ConflictVerdict

class BookingState(str, Enum):
    FORM = "form"
    VALIDATING = "validating"
    CONFIRMED = "confirmed"
    CONFLICT_WARNING = "conflict_warning"
    COMMITTED = "committed"

class CheckOut(BaseModel):
    state: BookingState
    verdict: ConflictVerdict
    conflicting_appointment_ids: list[uuid.UUID] = []

class CommitResult(BaseModel):
    appointment: AppointmentOut
    forced: bool = False
    # every appointment the booking overlaps, as seen inside the commit transaction
    conflicting_appointment_ids: list[uuid.UUID] = []
    # the subset that was not known when the booking was validated
    race_appointment_ids: list[uuid.UUID] = []
