import uuid
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select
from clinic_agenda.modules.directory.models import Clinic, Professional

class DirectoryRepository:
    def __init__(self, s: AsyncSession): self.s = s

    async def create_clinic(self, **data) -> Clinic:
        obj = Clinic(**data); self.s.add(obj); await self.s.flush(); return obj
    async def create_professional(self, **data) -> Professional:
        obj = Professional(**data); self.s.add(obj); await self.s.flush(); return obj

    async def get_clinic(self, clinic_id: uuid.UUID) -> Clinic | None:
        res = await self.s.execute(select(Clinic).where(Clinic.id==clinic_id, Clinic.deleted_at.is_(None)))
        return res.scalar_one_or_none()
    async def get_professional(self, professional_id: uuid.UUID) -> Professional | None:
        res = await self.s.execute(select(Professional).where(Professional.id==professional_id, Professional.deleted_at.is_(None)))
        return res.scalar_one_or_none()
