"""
Slot generation.

Turns a provider's weekly window for a date into fixed-step start times and
marks each one available or not from a single ledger snapshot. The
``available`` flag is a hint for the booking screen; ``AppointmentLedger.create``
is what actually refuses a taken slot.

Service duration is not checked against the window end: a 90 minute service
may be booked at the last 30 minute slot of the day.
"""

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from sqlalchemy.orm import Session

from agenda.core import config
from agenda.core.errors import ValidationError
from agenda.scheduling.calendar import AvailabilityCalendar
from agenda.scheduling.ledger import AppointmentLedger


@dataclass(frozen=True)
class Slot:
    time: time
    available: bool

    def label(self) -> str:
        return self.time.strftime('%H:%M')


def weekday_index(day: date) -> int:
    """Weekday with Sunday as 0, as stored on availability windows."""
    return (day.weekday() + 1) % 7


def iterate_slot_starts(day: date, window_start: time, window_end: time, granularity_minutes: int) -> list[datetime]:
    starts: list[datetime] = []
    current = datetime.combine(day, window_start)
    end = datetime.combine(day, window_end)
    step = timedelta(minutes=granularity_minutes)

    while current < end:
        starts.append(current)
        current += step

    return starts


class SlotGenerator:
    def __init__(self, db: Session):
        self.calendar = AvailabilityCalendar(db)
        self.ledger = AppointmentLedger(db)

    def generate_slots(
        self,
        provider_id: int,
        day: date,
        granularity_minutes: int = config.SLOT_GRANULARITY_MINUTES,
    ) -> list[Slot]:
        if granularity_minutes <= 0:
            raise ValidationError('Slot granularity must be a positive number of minutes.')

        window = self.calendar.get_window(provider_id, weekday_index(day))
        if window is None:
            return []

        occupied = self.ledger.occupied_starts(provider_id, day)

        return [
            Slot(time=start.time(), available=start not in occupied)
            for start in iterate_slot_starts(day, window.start_time, window.end_time, granularity_minutes)
        ]
