import uuid
from datetime import date
from typing import Protocol, Sequence, runtime_checkable
from clinic_agenda.modules.operating_hours.schemas import OperatingHoursRuleOut, WeeklyRuleCreate, OverrideCreate

@runtime_checkable
class OperatingHoursStorePort(Protocol):
    async def list_weekly_rules(self, clinic_id: uuid.UUID) -> Sequence[OperatingHoursRuleOut]: ...
    async def list_overrides(self, clinic_id: uuid.UUID, start: date, end: date | None = None) -> Sequence[OperatingHoursRuleOut]: ...
    async def add_weekly_rule(self, payload: WeeklyRuleCreate) -> OperatingHoursRuleOut: ...
    # must reject an override overlapping another one on the same clinic and date
    async def add_override(self, payload: OverrideCreate) -> OperatingHoursRuleOut: ...
    async def remove_rule(self, rule_id: uuid.UUID) -> bool: ...
