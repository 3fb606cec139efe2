"""Appointment model definitions."""

import enum

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Integer, text
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
from agenda.database import Base
from agenda.models.service import Service
from agenda.models.user import User


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    REJECTED = "rejected"
    CANCELLED = "cancelled"


# Statuses that hold a slot and count toward the no-double-booking rule.
ACTIVE_STATUSES = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)

_ACTIVE_SLOT_PREDICATE = text("status IN ('pending', 'confirmed')")


class Appointment(Base):
    """Represents a booking of a provider's service by a client."""
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_active_slot",
            "provider_id",
            "start_time",
            unique=True,
            sqlite_where=_ACTIVE_SLOT_PREDICATE,
            postgresql_where=_ACTIVE_SLOT_PREDICATE,
        ),
        Index("idx_appointments_provider_status", "provider_id", "status"),
        Index("idx_appointments_client_start", "client_id", "start_time"),
    )

    id = Column(Integer, primary_key=True)
    provider_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    client_id = Column(Integer, ForeignKey("users.id"), nullable=False)
    service_id = Column(Integer, ForeignKey("services.id"), nullable=False)
    start_time = Column(DateTime, nullable=False)
    status = Column(
        Enum(
            AppointmentStatus,
            name="appointment_status",
            native_enum=False,
            values_callable=lambda statuses: [s.value for s in statuses],
        ),
        nullable=False,
        default=AppointmentStatus.PENDING,
    )
    created_at = Column(DateTime, nullable=False, server_default=func.now())

    provider = relationship(User, foreign_keys=[provider_id])
    client = relationship(User, foreign_keys=[client_id])
    service = relationship(Service)

    @property
    def provider_name(self) -> str | None:
        return self.provider.name if self.provider is not None else None

    @property
    def client_name(self) -> str | None:
        return self.client.name if self.client is not None else None

    @property
    def service_name(self) -> str | None:
        return self.service.name if self.service is not None else None
