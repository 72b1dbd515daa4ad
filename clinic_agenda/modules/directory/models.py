from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String
from clinic_agenda.core.base import Base, TimestampedMixin

class Clinic(Base, TimestampedMixin):
    __tablename__ = "clinic"
    name: Mapped[str] = mapped_column(String(160), index=True)
    active: Mapped[bool] = mapped_column(default=True)

# Not tied to a clinic: a professional may be booked at any location.
class Professional(Base, TimestampedMixin):
    __tablename__ = "professional"
    name: Mapped[str] = mapped_column(String(160), index=True)
    active: Mapped[bool] = mapped_column(default=True)
