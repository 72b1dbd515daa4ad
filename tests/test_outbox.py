"""Transactional outbox: enqueue inside a session, relay to the bus later."""

from datetime import datetime, timezone

import pytest
from sqlalchemy import select

from clinic_agenda.modules.events.outbox import TOPIC, EventOutbox, OutboxService, event_message, relay_once

from tests.conftest import RecordingBus


class FailingBus:
    async def publish(self, topic, key, value, headers=None):
        raise ConnectionError("stream unavailable")


async def enqueue(sessionmaker, n=1):
    async with sessionmaker() as s:
        for i in range(n):
            await OutboxService(s).enqueue(
                "appointment.created", "appointment", f"appt-{i}", {"appointment": {"id": f"appt-{i}"}},
            )
        await s.commit()


async def statuses(sessionmaker):
    async with sessionmaker() as s:
        rows = (await s.execute(select(EventOutbox).order_by(EventOutbox.subject_id))).scalars().all()
        return [(r.status, r.attempts) for r in rows]


class TestEventMessage:
    def test_shape(self):
        when = datetime(2026, 10, 19, 12, 0, tzinfo=timezone.utc)
        msg = event_message("appointment.created", {"appointment": {"id": "a"}}, when, outbox_id="o-1")
        assert msg == {
            "type": "appointment.created",
            "appointment": {"id": "a"},
            "occurred_at": "2026-10-19T12:00:00+00:00",
            "outbox_id": "o-1",
        }

    def test_without_outbox_id(self):
        msg = event_message("appointment.created", {}, datetime(2026, 10, 19, tzinfo=timezone.utc))
        assert "outbox_id" not in msg


class TestRelay:
    @pytest.mark.asyncio
    async def test_publishes_pending_once(self, sessionmaker):
        await enqueue(sessionmaker, 2)
        bus = RecordingBus()

        async with sessionmaker() as s:
            assert await relay_once(s, bus) == 2
        assert [m["topic"] for m in bus.published] == [TOPIC, TOPIC]
        assert {m["key"] for m in bus.published} == {"appt-0", "appt-1"}
        assert all(m["value"]["type"] == "appointment.created" for m in bus.published)
        assert all("outbox_id" in m["value"] for m in bus.published)
        assert await statuses(sessionmaker) == [("sent", 0), ("sent", 0)]

        async with sessionmaker() as s:
            assert await relay_once(s, bus) == 0
        assert len(bus.published) == 2

    @pytest.mark.asyncio
    async def test_failure_backs_off(self, sessionmaker):
        await enqueue(sessionmaker)

        async with sessionmaker() as s:
            assert await relay_once(s, FailingBus()) == 1
        assert await statuses(sessionmaker) == [("pending", 1)]

        # next attempt is scheduled in the future, so nothing is due yet
        async with sessionmaker() as s:
            assert await relay_once(s, RecordingBus()) == 0

    @pytest.mark.asyncio
    async def test_failure_records_error(self, sessionmaker):
        await enqueue(sessionmaker)
        async with sessionmaker() as s:
            await relay_once(s, FailingBus())
        async with sessionmaker() as s:
            row = (await s.execute(select(EventOutbox))).scalar_one()
        assert row.last_error == "stream unavailable"
