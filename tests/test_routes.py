"""HTTP surface tests using FastAPI's TestClient over the memory store."""

import uuid

import pytest
from fastapi.testclient import TestClient

from clinic_agenda.core.config import settings
from clinic_agenda.core.errors import CommitRaceError
from clinic_agenda.main import app
from clinic_agenda.modules.booking.service import BookingService
from clinic_agenda.modules.booking.workflow import BookingWorkflow
from clinic_agenda.platform.provider_registry import registry

from tests.conftest import MONDAY, SUNDAY, TUESDAY, at

API = settings.API_PREFIX


@pytest.fixture
def client(store):
    registry.use_memory(store)
    yield TestClient(app)
    registry.reset()


@pytest.fixture
def body(practice, patient_id):
    clinic_c, _, prof = practice

    def make(hhmm="09:00", duration=30, **extra):
        return {
            "clinic_id": str(clinic_c.id),
            "professional_id": str(prof.id),
            "patient_id": str(patient_id),
            "start": at(MONDAY, hhmm).isoformat(),
            "duration_minutes": duration,
            **extra,
        }
    return make


class TestHealth:
    def test_health(self, client):
        response = client.get(f"{API}/health")
        assert response.status_code == 200
        assert response.json() == {"status": "ok"}


class TestAvailabilityRoutes:
    def test_slots(self, client, practice):
        clinic_c, _, prof = practice
        response = client.get(f"{API}/availability/slots", params={
            "clinic_id": str(clinic_c.id), "professional_id": str(prof.id), "date": MONDAY.isoformat(), "duration": 60,
        })
        assert response.status_code == 200
        assert len(response.json()) == 7

    def test_slots_closed_day_is_empty(self, client, practice):
        clinic_c, _, prof = practice
        response = client.get(f"{API}/availability/slots", params={
            "clinic_id": str(clinic_c.id), "professional_id": str(prof.id), "date": SUNDAY.isoformat(),
        })
        assert response.status_code == 200
        assert response.json() == []

    def test_slots_bad_duration(self, client, practice):
        clinic_c, _, prof = practice
        response = client.get(f"{API}/availability/slots", params={
            "clinic_id": str(clinic_c.id), "professional_id": str(prof.id), "date": MONDAY.isoformat(), "duration": 0,
        })
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_request"

    def test_slots_unknown_clinic(self, client, practice):
        _, _, prof = practice
        response = client.get(f"{API}/availability/slots", params={
            "clinic_id": str(uuid.uuid4()), "professional_id": str(prof.id), "date": MONDAY.isoformat(),
        })
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_hours(self, client, practice):
        clinic_c, _, _ = practice
        response = client.get(f"{API}/availability/hours", params={"clinic_id": str(clinic_c.id), "date": MONDAY.isoformat()})
        assert response.status_code == 200
        data = response.json()
        assert data["closed"] is False
        assert data["intervals"] == [{"start_minute": 480, "end_minute": 720}]

        closed = client.get(f"{API}/availability/hours", params={"clinic_id": str(clinic_c.id), "date": TUESDAY.isoformat()})
        assert closed.json()["closed"] is True


class TestBookingRoutes:
    def test_check_free(self, client, body):
        response = client.post(f"{API}/booking/check", json=body())
        assert response.status_code == 200
        assert response.json() == {"state": "confirmed", "verdict": "NONE", "conflicting_appointment_ids": []}

    def test_check_closed(self, client, body):
        response = client.post(f"{API}/booking/check", json=body("12:00"))
        assert response.status_code == 422
        assert response.json()["error"] == "closed"

    def test_commit_then_conflict(self, client, body, store):
        first = client.post(f"{API}/booking/commit", json=body())
        assert first.status_code == 201
        appt_id = first.json()["appointment"]["id"]
        assert first.json()["forced"] is False

        second = client.post(f"{API}/booking/commit", json=body("09:15"))
        assert second.status_code == 409
        data = second.json()
        assert data["error"] == "conflict"
        assert data["verdict"] == "SAME_CLINIC_OVERLAP"
        assert data["conflicting_appointment_ids"] == [appt_id]
        assert len(store.appointments) == 1

    def test_forced_commit(self, client, body, store):
        existing = client.post(f"{API}/booking/commit", json=body()).json()["appointment"]["id"]
        response = client.post(f"{API}/booking/commit", json=body(force=True))
        assert response.status_code == 201
        data = response.json()
        assert data["forced"] is True
        assert data["conflicting_appointment_ids"] == [existing]
        assert len(store.events) == 2

    def test_force_carries_over_a_late_conflict(self, client, body, store, practice, monkeypatch):
        _, clinic_d, prof = practice
        real_validate = BookingWorkflow.validate
        late = []

        async def validate_then_book(self):
            check = await real_validate(self)
            late.append(store.seed_appointment(
                clinic_id=clinic_d.id, professional_id=prof.id, patient_id=uuid.uuid4(),
                start=at(MONDAY, "09:10"), duration_minutes=30,
            ))
            return check

        monkeypatch.setattr(BookingWorkflow, "validate", validate_then_book)
        response = client.post(f"{API}/booking/commit", json=body(force=True))
        assert response.status_code == 201
        data = response.json()
        assert data["forced"] is True
        assert data["race_appointment_ids"] == [str(late[0].id)]
        assert data["conflicting_appointment_ids"] == [str(late[0].id)]

    def test_commit_missing_patient(self, client, body):
        payload = body()
        del payload["patient_id"]
        response = client.post(f"{API}/booking/commit", json=payload)
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_request"

    def test_transient_race_is_retried(self, client, body, monkeypatch):
        calls = []
        real_commit = BookingService.commit

        async def flaky_commit(self, proposed, known_conflicts=()):
            calls.append(proposed.start)
            if len(calls) == 1:
                raise CommitRaceError("serialization failure", transient=True)
            return await real_commit(self, proposed, known_conflicts)

        monkeypatch.setattr(BookingService, "commit", flaky_commit)
        response = client.post(f"{API}/booking/commit", json=body())
        assert response.status_code == 201
        assert len(calls) == 2

    def test_transient_race_gives_up(self, client, body, monkeypatch):
        async def always_racing(self, proposed, known_conflicts=()):
            raise CommitRaceError("serialization failure", transient=True)

        monkeypatch.setattr(BookingService, "commit", always_racing)
        response = client.post(f"{API}/booking/commit", json=body())
        assert response.status_code == 409
        assert response.json()["error"] == "commit_race"
        assert response.json()["transient"] is True


class TestAppointmentRoutes:
    def test_status_lifecycle(self, client, body):
        appt_id = client.post(f"{API}/booking/commit", json=body()).json()["appointment"]["id"]

        response = client.post(f"{API}/appointments/{appt_id}/status", json={"status": "confirmed"})
        assert response.status_code == 200
        assert response.json()["status"] == "confirmed"

        response = client.post(f"{API}/appointments/{appt_id}/status", json={"status": "completed"})
        assert response.status_code == 422
        assert response.json()["error"] == "invalid_request"

        assert client.get(f"{API}/appointments/{appt_id}").json()["status"] == "confirmed"

    def test_reschedule(self, client, body, store):
        appt_id = client.post(f"{API}/booking/commit", json=body()).json()["appointment"]["id"]
        blocker = client.post(f"{API}/booking/commit", json=body("10:00")).json()["appointment"]["id"]

        response = client.post(f"{API}/appointments/{appt_id}/reschedule", json={"start": at(MONDAY, "10:00").isoformat()})
        assert response.status_code == 409
        assert response.json()["conflicting_appointment_ids"] == [blocker]

        response = client.post(f"{API}/appointments/{appt_id}/reschedule", json={"start": at(MONDAY, "11:00").isoformat()})
        assert response.status_code == 200
        data = response.json()
        assert data["appointment"]["id"] == appt_id
        assert data["forced"] is False
        assert store.events[-1]["type"] == "appointment.rescheduled"

        response = client.post(f"{API}/appointments/{appt_id}/reschedule", json={"start": at(MONDAY, "14:00").isoformat()})
        assert response.status_code == 422
        assert response.json()["error"] == "closed"

    def test_reschedule_transient_race_is_retried(self, client, body, monkeypatch):
        appt_id = client.post(f"{API}/booking/commit", json=body()).json()["appointment"]["id"]
        calls = []
        real_reschedule = BookingService.reschedule

        async def flaky_reschedule(self, current, proposed, known_conflicts=()):
            calls.append(proposed.start)
            if len(calls) == 1:
                raise CommitRaceError("serialization failure", transient=True)
            return await real_reschedule(self, current, proposed, known_conflicts)

        monkeypatch.setattr(BookingService, "reschedule", flaky_reschedule)
        response = client.post(f"{API}/appointments/{appt_id}/reschedule", json={"start": at(MONDAY, "11:00").isoformat()})
        assert response.status_code == 200
        assert len(calls) == 2

    def test_unknown_appointment(self, client):
        assert client.get(f"{API}/appointments/{uuid.uuid4()}").status_code == 404

    def test_calendar(self, client, body, practice):
        _, _, prof = practice
        client.post(f"{API}/booking/commit", json=body("08:00"))
        client.post(f"{API}/booking/commit", json=body("10:00"))
        response = client.get(f"{API}/appointments", params={
            "start": at(MONDAY, "00:00").isoformat(),
            "end": at(TUESDAY, "00:00").isoformat(),
            "professional_id": str(prof.id),
        })
        assert response.status_code == 200
        starts = [a["start"] for a in response.json()]
        assert len(starts) == 2
        assert starts == sorted(starts)


class TestOperatingHoursRoutes:
    def test_override_lifecycle(self, client, practice):
        clinic_c, _, _ = practice
        payload = {"clinic_id": str(clinic_c.id), "specific_date": MONDAY.isoformat(), "reason": "Feriado"}
        created = client.post(f"{API}/operating-hours/overrides", json=payload)
        assert created.status_code == 201
        rule_id = created.json()["id"]

        clash = client.post(f"{API}/operating-hours/overrides", json={**payload, "start_minute": 600, "end_minute": 660})
        assert clash.status_code == 422

        hours = client.get(f"{API}/availability/hours", params={"clinic_id": str(clinic_c.id), "date": MONDAY.isoformat()})
        assert hours.json()["closed"] is True

        assert client.delete(f"{API}/operating-hours/rules/{rule_id}").status_code == 204
        assert client.delete(f"{API}/operating-hours/rules/{rule_id}").status_code == 404

        hours = client.get(f"{API}/availability/hours", params={"clinic_id": str(clinic_c.id), "date": MONDAY.isoformat()})
        assert hours.json()["closed"] is False

    def test_weekly_rule(self, client, practice):
        clinic_c, _, _ = practice
        created = client.post(f"{API}/operating-hours/weekly", json={
            "clinic_id": str(clinic_c.id), "day_of_week": 2, "start_minute": 840, "end_minute": 1080,
        })
        assert created.status_code == 201
        rules = client.get(f"{API}/operating-hours/weekly", params={"clinic_id": str(clinic_c.id)}).json()
        assert [(r["day_of_week"], r["start_minute"]) for r in rules] == [(1, 480), (2, 840)]

    def test_weekly_rule_inverted_window(self, client, practice):
        clinic_c, _, _ = practice
        response = client.post(f"{API}/operating-hours/weekly", json={
            "clinic_id": str(clinic_c.id), "day_of_week": 2, "start_minute": 900, "end_minute": 840,
        })
        assert response.status_code == 422

    def test_weekly_rule_unknown_clinic(self, client):
        response = client.post(f"{API}/operating-hours/weekly", json={
            "clinic_id": str(uuid.uuid4()), "day_of_week": 2, "start_minute": 480, "end_minute": 720,
        })
        assert response.status_code == 404
