"""Availability model definitions."""

from sqlalchemy import CheckConstraint, Column, ForeignKey, Integer, Time, UniqueConstraint
from agenda.database import Base


class AvailabilityWindow(Base):
    """A provider's open hours for one weekday (0 = Sunday .. 6 = Saturday)."""
    __tablename__ = "availability_windows"
    __table_args__ = (
        UniqueConstraint("provider_id", "weekday", name="uq_availability_provider_weekday"),
        CheckConstraint("weekday BETWEEN 0 AND 6", name="ck_availability_weekday"),
        CheckConstraint("start_time < end_time", name="ck_availability_bounds"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    weekday = Column(Integer, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
