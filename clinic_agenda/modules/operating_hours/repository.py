import uuid
from datetime import date, datetime, timezone
from typing import Sequence
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from clinic_agenda.modules.operating_hours.models import OperatingHoursRule

class OperatingHoursRepository:
    def __init__(self, s: AsyncSession): self.s = s

    async def create(self, **data) -> OperatingHoursRule:
        obj = OperatingHoursRule(**data); self.s.add(obj); await self.s.flush(); return obj

    async def get(self, rule_id: uuid.UUID) -> OperatingHoursRule | None:
        res = await self.s.execute(select(OperatingHoursRule).where(
            OperatingHoursRule.id==rule_id, OperatingHoursRule.deleted_at.is_(None)
        ))
        return res.scalar_one_or_none()

    async def list_weekly(self, clinic_id: uuid.UUID) -> Sequence[OperatingHoursRule]:
        res = await self.s.execute(select(OperatingHoursRule).where(
            OperatingHoursRule.clinic_id==clinic_id,
            OperatingHoursRule.specific_date.is_(None),
            OperatingHoursRule.deleted_at.is_(None)
        ).order_by(OperatingHoursRule.day_of_week, OperatingHoursRule.start_minute))
        return res.scalars().all()

    async def list_overrides(self, clinic_id: uuid.UUID, start: date, end: date | None = None) -> Sequence[OperatingHoursRule]:
        """Overrides dated within [start, end]; a single day when end is omitted."""
        end = end or start
        res = await self.s.execute(select(OperatingHoursRule).where(
            OperatingHoursRule.clinic_id==clinic_id,
            OperatingHoursRule.specific_date >= start,
            OperatingHoursRule.specific_date <= end,
            OperatingHoursRule.deleted_at.is_(None)
        ).order_by(OperatingHoursRule.specific_date, OperatingHoursRule.start_minute))
        return res.scalars().all()

    async def soft_delete(self, rule: OperatingHoursRule):
        rule.deleted_at = datetime.now(timezone.utc); await self.s.flush()
