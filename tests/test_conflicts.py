"""Tests for conflict detection between a proposal and existing appointments."""

import uuid
from itertools import permutations

import pytest

from clinic_agenda.modules.appointments.schemas import AppointmentOut
from clinic_agenda.modules.availability.conflicts import detect, find_conflicts, overlaps
from clinic_agenda.modules.availability.schemas import ConflictVerdict, ProposedBooking

from tests.conftest import MONDAY, at

CLINIC_C = uuid.uuid4()
CLINIC_D = uuid.uuid4()
PROF = uuid.uuid4()
OTHER_PROF = uuid.uuid4()


def appt(clinic, hhmm, duration=30, status="scheduled", professional=PROF) -> AppointmentOut:
    return AppointmentOut(
        id=uuid.uuid4(), clinic_id=clinic, professional_id=professional, patient_id=uuid.uuid4(),
        start=at(MONDAY, hhmm), duration_minutes=duration, status=status,
    )


def propose(clinic, hhmm, duration=30) -> ProposedBooking:
    return ProposedBooking(clinic_id=clinic, professional_id=PROF, start=at(MONDAY, hhmm), duration_minutes=duration)


class TestOverlaps:
    def test_back_to_back_does_not_overlap(self):
        a, b, c = at(MONDAY, "09:00"), at(MONDAY, "09:30"), at(MONDAY, "10:00")
        assert not overlaps(a, b, b, c)

    def test_contained(self):
        assert overlaps(at(MONDAY, "09:00"), at(MONDAY, "11:00"), at(MONDAY, "09:30"), at(MONDAY, "10:00"))


class TestDetect:
    def test_no_appointments(self):
        assert detect(propose(CLINIC_C, "09:00"), []) is ConflictVerdict.NONE

    def test_same_clinic_overlap(self):
        existing = [appt(CLINIC_C, "09:15")]
        check = find_conflicts(propose(CLINIC_C, "09:00"), existing)
        assert check.verdict is ConflictVerdict.SAME_CLINIC_OVERLAP
        assert check.conflicting_appointment_ids == [existing[0].id]

    def test_other_clinic_overlap(self):
        existing = [appt(CLINIC_D, "09:00")]
        check = find_conflicts(propose(CLINIC_C, "09:00"), existing)
        assert check.verdict is ConflictVerdict.OTHER_CLINIC_OVERLAP
        assert check.conflicting_appointment_ids == [existing[0].id]

    def test_same_clinic_wins_and_lists_both(self):
        other, same = appt(CLINIC_D, "09:00"), appt(CLINIC_C, "09:10", duration=10)
        check = find_conflicts(propose(CLINIC_C, "09:00"), [other, same])
        assert check.verdict is ConflictVerdict.SAME_CLINIC_OVERLAP
        assert check.conflicting_appointment_ids == [same.id, other.id]

    @pytest.mark.parametrize("status", ["cancelled", "no_show"])
    def test_inactive_statuses_ignored(self, status):
        assert detect(propose(CLINIC_C, "09:00"), [appt(CLINIC_C, "09:00", status=status)]) is ConflictVerdict.NONE

    @pytest.mark.parametrize("status", ["scheduled", "confirmed", "in_progress", "completed"])
    def test_active_statuses_count(self, status):
        verdict = detect(propose(CLINIC_C, "09:00"), [appt(CLINIC_C, "09:00", status=status)])
        assert verdict is ConflictVerdict.SAME_CLINIC_OVERLAP

    def test_other_professional_ignored(self):
        existing = [appt(CLINIC_C, "09:00", professional=OTHER_PROF)]
        assert detect(propose(CLINIC_C, "09:00"), existing) is ConflictVerdict.NONE

    def test_back_to_back_is_free(self):
        existing = [appt(CLINIC_C, "08:30"), appt(CLINIC_C, "09:30")]
        assert detect(propose(CLINIC_C, "09:00"), existing) is ConflictVerdict.NONE

    def test_moved_appointment_does_not_conflict_with_itself(self):
        existing = appt(CLINIC_C, "09:00", duration=60)
        moved = propose(CLINIC_C, "09:30")
        assert detect(moved, [existing]) is ConflictVerdict.SAME_CLINIC_OVERLAP
        assert detect(moved, [existing], exclude_id=existing.id) is ConflictVerdict.NONE

    def test_exclusion_only_skips_that_appointment(self):
        moving, other = appt(CLINIC_C, "09:00"), appt(CLINIC_D, "09:15")
        check = find_conflicts(propose(CLINIC_C, "09:00"), [moving, other], exclude_id=moving.id)
        assert check.verdict is ConflictVerdict.OTHER_CLINIC_OVERLAP
        assert check.conflicting_appointment_ids == [other.id]


class TestOverlapSymmetry:
    """Swapping which side is proposed never changes the verdict class."""

    CASES = [
        ((CLINIC_C, "09:00", 30), (CLINIC_C, "09:15", 30)),
        ((CLINIC_C, "09:00", 30), (CLINIC_D, "09:29", 30)),
        ((CLINIC_C, "09:00", 30), (CLINIC_C, "09:30", 30)),
        ((CLINIC_D, "08:00", 240), (CLINIC_C, "10:00", 15)),
        ((CLINIC_C, "10:00", 15), (CLINIC_D, "10:15", 60)),
    ]

    @pytest.mark.parametrize("a,b", CASES)
    def test_symmetric(self, a, b):
        verdicts = []
        for (p_clinic, p_time, p_dur), (e_clinic, e_time, e_dur) in permutations([a, b]):
            verdicts.append(detect(propose(p_clinic, p_time, p_dur), [appt(e_clinic, e_time, e_dur)]))
        assert verdicts[0] is verdicts[1]
