from clinic_agenda.core.config import settings
from clinic_agenda.platform.ports.appointment_store import AppointmentStorePort
from clinic_agenda.platform.ports.operating_hours_store import OperatingHoursStorePort
from clinic_agenda.platform.ports.directory import DirectoryPort
from clinic_agenda.platform.ports.event_bus import EventBusPort
from clinic_agenda.platform.adapters.bus_noop import NoopEventBus
from clinic_agenda.platform.adapters.bus_redis import RedisEventBus
from clinic_agenda.platform.adapters.store_memory import MemoryStore

class ProviderRegistry:
    _event_bus: EventBusPort | None = None
    _memory: MemoryStore | None = None
    _appointments: AppointmentStorePort | None = None
    _operating_hours: OperatingHoursStorePort | None = None
    _directory: DirectoryPort | None = None

    @classmethod
    def event_bus(cls) -> EventBusPort:
        if cls._event_bus is None:
            prov = (settings.EVENT_BUS_PROVIDER or "noop").lower()
            if prov == "redis":
                cls._event_bus = RedisEventBus()
            else:
                cls._event_bus = NoopEventBus()
        return cls._event_bus

    @classmethod
    def _build_stores(cls):
        if settings.STORE_PROVIDER == "memory":
            cls.use_memory(MemoryStore(bus=cls.event_bus()))
            return
        from clinic_agenda.core.db import SessionLocal, TxSessionLocal
        from clinic_agenda.platform.adapters.store_sql import SqlAppointmentStore, SqlOperatingHoursStore, SqlDirectory
        cls._appointments = SqlAppointmentStore(SessionLocal, TxSessionLocal)
        cls._operating_hours = SqlOperatingHoursStore(SessionLocal, TxSessionLocal)
        cls._directory = SqlDirectory(SessionLocal)

    @classmethod
    def use_memory(cls, store: MemoryStore) -> MemoryStore:
        cls._memory = store
        cls._appointments = cls._operating_hours = cls._directory = store
        return store

    @classmethod
    def reset(cls):
        cls._event_bus = cls._memory = None
        cls._appointments = cls._operating_hours = cls._directory = None

    @classmethod
    def appointment_store(cls) -> AppointmentStorePort:
        if cls._appointments is None:
            cls._build_stores()
        return cls._appointments

    @classmethod
    def operating_hours_store(cls) -> OperatingHoursStorePort:
        if cls._operating_hours is None:
            cls._build_stores()
        return cls._operating_hours

    @classmethod
    def directory(cls) -> DirectoryPort:
        if cls._directory is None:
            cls._build_stores()
        return cls._directory

registry = ProviderRegistry()
