import uuid
from typing import Protocol, runtime_checkable
from clinic_agenda.modules.directory.schemas import ClinicOut, ProfessionalOut

@runtime_checkable
class DirectoryPort(Protocol):
    async def get_clinic(self, clinic_id: uuid.UUID) -> ClinicOut | None: ...
    async def get_professional(self, professional_id: uuid.UUID) -> ProfessionalOut | None: ...
