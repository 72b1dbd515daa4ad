import uuid
from datetime import date
from fastapi import APIRouter, Depends, status
from clinic_agenda.platform.provider_registry import registry
from clinic_agenda.modules.operating_hours.service import OperatingHoursService
from clinic_agenda.modules.operating_hours.schemas import WeeklyRuleCreate, OverrideCreate, OperatingHoursRuleOut

router = APIRouter()

def svc() -> OperatingHoursService:
    return OperatingHoursService(registry.operating_hours_store(), registry.directory())

# Weekly template
@router.post("/operating-hours/weekly", response_model=OperatingHoursRuleOut, status_code=status.HTTP_201_CREATED)
async def add_weekly_rule(payload: WeeklyRuleCreate, service: OperatingHoursService = Depends(svc)):
    return await service.add_weekly_rule(payload)

@router.get("/operating-hours/weekly", response_model=list[OperatingHoursRuleOut])
async def list_weekly_rules(clinic_id: uuid.UUID, service: OperatingHoursService = Depends(svc)):
    return await service.list_weekly_rules(clinic_id)

# Date overrides: closures and extra openings
@router.post("/operating-hours/overrides", response_model=OperatingHoursRuleOut, status_code=status.HTTP_201_CREATED)
async def add_override(payload: OverrideCreate, service: OperatingHoursService = Depends(svc)):
    return await service.add_override(payload)

@router.get("/operating-hours/overrides", response_model=list[OperatingHoursRuleOut])
async def list_overrides(clinic_id: uuid.UUID, start: date, end: date | None = None, service: OperatingHoursService = Depends(svc)):
    return await service.list_overrides(clinic_id, start, end)

@router.delete("/operating-hours/rules/{rule_id}", status_code=204)
async def remove_rule(rule_id: uuid.UUID, service: OperatingHoursService = Depends(svc)):
    await service.remove_rule(rule_id)
