"""
Conflict detection between a proposed booking and a professional's existing
appointments.

Both sides only need `clinic_id`, `professional_id`, `start` and
`duration_minutes`; existing appointments also need `id` and `status`.
Intervals are half-open, so back-to-back appointments never collide.
"""
import uuid
from datetime import datetime, timedelta
from typing import Iterable

from clinic_agenda.modules.appointments.schemas import INACTIVE_STATUSES
from clinic_agenda.modules.availability.schemas import ConflictCheck, ConflictVerdict


def overlaps(a_start: datetime, a_end: datetime, b_start: datetime, b_end: datetime) -> bool:
    return a_start < b_end and b_start < a_end


def find_conflicts(proposed, existing: Iterable, exclude_id: uuid.UUID | None = None) -> ConflictCheck:
    """`exclude_id` is the appointment being moved, which never conflicts with its own new slot."""
    p_start = proposed.start
    p_end = p_start + timedelta(minutes=proposed.duration_minutes)

    same_clinic, other_clinic = [], []
    for appt in existing:
        if appt.professional_id != proposed.professional_id or appt.status in INACTIVE_STATUSES:
            continue
        if exclude_id is not None and appt.id == exclude_id:
            continue
        a_end = appt.start + timedelta(minutes=appt.duration_minutes)
        if not overlaps(p_start, p_end, appt.start, a_end):
            continue
        (same_clinic if appt.clinic_id == proposed.clinic_id else other_clinic).append(appt.id)

    if same_clinic:
        return ConflictCheck(verdict=ConflictVerdict.SAME_CLINIC_OVERLAP, conflicting_appointment_ids=same_clinic + other_clinic)
    if other_clinic:
        return ConflictCheck(verdict=ConflictVerdict.OTHER_CLINIC_OVERLAP, conflicting_appointment_ids=other_clinic)
    return ConflictCheck()


def detect(proposed, existing: Iterable, exclude_id: uuid.UUID | None = None) -> ConflictVerdict:
    return find_conflicts(proposed, existing, exclude_id).verdict
