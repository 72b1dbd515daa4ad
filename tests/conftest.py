"""Shared test fixtures for the scheduling engine."""

import os

# must be set before clinic_agenda.core.config builds its Settings
os.environ.setdefault("STORE_PROVIDER", "memory")
os.environ.setdefault("PRACTICE_TIMEZONE", "America/Sao_Paulo")
os.environ.setdefault("SLOT_GRANULARITY_MINUTES", "30")

import uuid
from datetime import date, datetime, time

import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from clinic_agenda.core.base import Base
from clinic_agenda.core.clock import practice_tz
from clinic_agenda.core.db import load_models
from clinic_agenda.modules.availability.schemas import ProposedBooking
from clinic_agenda.modules.availability.service import AvailabilityService
from clinic_agenda.modules.booking.service import BookingService
from clinic_agenda.modules.operating_hours.schemas import WeeklyRuleCreate
from clinic_agenda.platform.adapters.store_memory import MemoryStore

# 2026-10-19 is a Monday (day_of_week 1)
MONDAY = date(2026, 10, 19)
TUESDAY = date(2026, 10, 20)
SUNDAY = date(2026, 10, 18)


def at(day: date, hhmm: str) -> datetime:
    """Practice-local timestamp for a day and "HH:MM"."""
    h, m = hhmm.split(":")
    return datetime.combine(day, time(int(h), int(m)), tzinfo=practice_tz())


def hm(dt: datetime) -> str:
    return dt.astimezone(practice_tz()).strftime("%H:%M")


class RecordingBus:
    """Event bus double that keeps every published message."""

    def __init__(self):
        self.published: list[dict] = []

    async def publish(self, topic: str, key: str, value: dict, headers: dict | None = None) -> None:
        self.published.append({"topic": topic, "key": key, "value": value})


@pytest.fixture
def bus() -> RecordingBus:
    return RecordingBus()


@pytest.fixture
def store(bus) -> MemoryStore:
    return MemoryStore(bus=bus)


@pytest.fixture
def practice(store):
    """
    Two clinics and one professional.

    Clinic C opens Monday 08:00-12:00 only; clinic D opens Monday 08:00-18:00.
    """
    clinic_c = store.add_clinic("Centro")
    clinic_d = store.add_clinic("Zona Sul")
    prof = store.add_professional("Dra. Helena Prado")
    store.seed_weekly_rule(WeeklyRuleCreate(clinic_id=clinic_c.id, day_of_week=1, start_minute=8 * 60, end_minute=12 * 60))
    store.seed_weekly_rule(WeeklyRuleCreate(clinic_id=clinic_d.id, day_of_week=1, start_minute=8 * 60, end_minute=18 * 60))
    return clinic_c, clinic_d, prof


@pytest.fixture
def availability(store) -> AvailabilityService:
    return AvailabilityService(store, store, store, granularity_minutes=30)


@pytest.fixture
def booking(store, availability) -> BookingService:
    return BookingService(store, availability, timeout_seconds=2)


@pytest.fixture
def patient_id() -> uuid.UUID:
    return uuid.uuid4()


def proposal(clinic, prof, patient_id, start: datetime, duration: int = 30, **extra) -> ProposedBooking:
    return ProposedBooking(
        clinic_id=clinic.id, professional_id=prof.id, patient_id=patient_id,
        start=start, duration_minutes=duration, **extra,
    )


@pytest_asyncio.fixture
async def sessionmaker(tmp_path):
    """Fresh SQLite database (aiosqlite) with every table created."""
    load_models()
    engine = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'agenda.db'}")
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield async_sessionmaker(engine, expire_on_commit=False, class_=AsyncSession)
    await engine.dispose()
