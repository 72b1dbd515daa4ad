
import asyncio
import json
import os
import sys
from sqlalchemy.future import select

# Add the project root to the Python path
sys.path.insert(0, os.path.abspath(os.path.join(os.path.dirname(__file__), '..')))

from clinic_agenda.core.db import SessionLocal, init_models
from clinic_agenda.modules.directory.models import Clinic, Professional
from clinic_agenda.modules.directory.repository import DirectoryRepository
from clinic_agenda.modules.operating_hours.repository import OperatingHoursRepository

def _minutes(hhmm: str) -> int:
    hours, minutes = hhmm.split(":")
    return int(hours) * 60 + int(minutes)

async def create_weekly_hours(repo: OperatingHoursRepository, clinic_id, hours: dict):
    """
    Creates the weekly template of a clinic from {"1": [["08:00", "12:00"], ...], ...}
    keyed by day of week (0=Sunday).
    """
    print(f"    - Creating weekly hours for clinic {clinic_id}...")
    for day, blocks in hours.items():
        for start, end in blocks:
            await repo.create(
                clinic_id=clinic_id,
                day_of_week=int(day),
                start_minute=_minutes(start),
                end_minute=_minutes(end),
                blocked=False,
            )
    print("      ...hours created.")

async def main(path: str):
    """
    Seeds clinics, their weekly hours and professionals from a JSON file.
    """
    print("Starting practice seed...")

    with open(path, 'r', encoding='utf-8') as f:
        data = json.load(f)

    await init_models()
    async with SessionLocal() as db:
        directory = DirectoryRepository(db)
        hours = OperatingHoursRepository(db)

        for clinic_data in data.get("clinics", []):
            res = await db.execute(select(Clinic).where(Clinic.name == clinic_data["name"]))
            if res.scalars().first():
                print(f"  - Clinic '{clinic_data['name']}' already exists. Skipping.")
                continue
            clinic = await directory.create_clinic(name=clinic_data["name"], active=True)
            print(f"  - Created clinic '{clinic.name}' with ID: {clinic.id}")
            await create_weekly_hours(hours, clinic.id, clinic_data.get("weekly_hours", {}))

        for prof_data in data.get("professionals", []):
            res = await db.execute(select(Professional).where(Professional.name == prof_data["name"]))
            if res.scalars().first():
                print(f"  - Professional '{prof_data['name']}' already exists. Skipping.")
                continue
            prof = await directory.create_professional(name=prof_data["name"], active=True)
            print(f"  - Created professional '{prof.name}' with ID: {prof.id}")

        print("\nCommitting all changes to the database...")
        await db.commit()
        print("Seed complete!")

if __name__ == "__main__":
    default = os.path.join(os.path.dirname(__file__), 'practice_seed.json')
    asyncio.run(main(sys.argv[1] if len(sys.argv) > 1 else default))
