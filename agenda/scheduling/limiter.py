"""Free-tier booking cap, derived from the ledger on every call."""

from dataclasses import dataclass

from sqlalchemy.orm import Session

from agenda.core import config
from agenda.scheduling.ledger import AppointmentLedger


@dataclass(frozen=True)
class BookingStatus:
    provider_id: int
    confirmed_count: int
    booking_cap: int

    @property
    def accepting_bookings(self) -> bool:
        return self.confirmed_count < self.booking_cap


class BookingLimiter:
    def __init__(self, db: Session, booking_cap: int | None = None):
        self.ledger = AppointmentLedger(db)
        self.booking_cap = booking_cap if booking_cap is not None else config.BOOKING_CAP

    def confirmed_count(self, provider_id: int) -> int:
        return self.ledger.confirmed_count(provider_id)

    def status(self, provider_id: int) -> BookingStatus:
        return BookingStatus(
            provider_id=provider_id,
            confirmed_count=self.confirmed_count(provider_id),
            booking_cap=self.booking_cap,
        )

    def is_accepting_bookings(self, provider_id: int) -> bool:
        return self.status(provider_id).accepting_bookings
