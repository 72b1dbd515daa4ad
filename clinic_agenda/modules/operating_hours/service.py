import uuid
import logging
from datetime import date
from clinic_agenda.core.errors import InvalidRequestError, NotFoundError
from clinic_agenda.modules.operating_hours.schemas import WeeklyRuleCreate, OverrideCreate, OperatingHoursRuleOut
from clinic_agenda.platform.ports.directory import DirectoryPort
from clinic_agenda.platform.ports.operating_hours_store import OperatingHoursStorePort

logger = logging.getLogger(__name__)

class OperatingHoursService:
    def __init__(self, store: OperatingHoursStorePort, directory: DirectoryPort):
        self.store = store
        self.directory = directory

    async def _require_clinic(self, clinic_id: uuid.UUID):
        clinic = await self.directory.get_clinic(clinic_id)
        if not clinic:
            raise NotFoundError(f"clinic {clinic_id} not found")

    async def add_weekly_rule(self, payload: WeeklyRuleCreate) -> OperatingHoursRuleOut:
        await self._require_clinic(payload.clinic_id)
        obj = await self.store.add_weekly_rule(payload)
        logger.info(f"Weekly hours added clinic={payload.clinic_id} dow={payload.day_of_week} {payload.start_minute}-{payload.end_minute}")
        return obj

    async def add_override(self, payload: OverrideCreate) -> OperatingHoursRuleOut:
        await self._require_clinic(payload.clinic_id)
        obj = await self.store.add_override(payload)
        kind = "closure" if payload.blocked else "extra opening"
        logger.info(f"Hours {kind} added clinic={payload.clinic_id} date={payload.specific_date} reason={payload.reason!r}")
        return obj

    async def list_weekly_rules(self, clinic_id: uuid.UUID):
        await self._require_clinic(clinic_id)
        return await self.store.list_weekly_rules(clinic_id)

    async def list_overrides(self, clinic_id: uuid.UUID, start: date, end: date | None = None):
        if end is not None and end < start:
            raise InvalidRequestError("end must not be before start")
        await self._require_clinic(clinic_id)
        return await self.store.list_overrides(clinic_id, start, end)

    async def remove_rule(self, rule_id: uuid.UUID):
        if not await self.store.remove_rule(rule_id):
            raise NotFoundError(f"operating hours rule {rule_id} not found")
