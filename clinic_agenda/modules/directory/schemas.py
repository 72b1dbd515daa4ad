import uuid
from pydantic import BaseModel, Field

class ClinicCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    active: bool = True

class ClinicOut(ClinicCreate):
    id: uuid.UUID
    class Config: from_attributes = True

class ProfessionalCreate(BaseModel):
    name: str = Field(..., min_length=1, max_length=160)
    active: bool = True

class ProfessionalOut(ProfessionalCreate):
    id: uuid.UUID
    class Config: from_attributes = True
