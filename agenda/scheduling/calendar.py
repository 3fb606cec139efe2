"""Recurring weekly availability: at most one open window per provider and weekday."""

import logging
from datetime import time

from sqlalchemy.orm import Session

from agenda.core.errors import AuthorizationError, ValidationError
from agenda.models.availability import AvailabilityWindow
from agenda.scheduling.context import CallerContext
from agenda.scheduling.store import store_guard

logger = logging.getLogger(__name__)

WEEKDAY_NAMES = ('Sunday', 'Monday', 'Tuesday', 'Wednesday', 'Thursday', 'Friday', 'Saturday')


def validate_weekday(weekday: int) -> int:
    if weekday not in range(7):
        raise ValidationError('Weekday must be between 0 (Sunday) and 6 (Saturday).')
    return weekday


class AvailabilityCalendar:
    def __init__(self, db: Session):
        self.db = db

    def get_window(self, provider_id: int, weekday: int) -> AvailabilityWindow | None:
        validate_weekday(weekday)
        with store_guard(self.db):
            return self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.provider_id == provider_id,
                AvailabilityWindow.weekday == weekday,
            ).first()

    def list_windows(self, provider_id: int) -> list[AvailabilityWindow]:
        with store_guard(self.db):
            return self.db.query(AvailabilityWindow).filter(
                AvailabilityWindow.provider_id == provider_id,
            ).order_by(AvailabilityWindow.weekday.asc()).all()

    def set_window(
        self,
        ctx: CallerContext,
        provider_id: int,
        weekday: int,
        start: time | None,
        end: time | None,
    ) -> AvailabilityWindow | None:
        """Upsert the window for ``weekday``, or remove it when both bounds are empty.

        Returns the stored window, or ``None`` after a removal.
        """
        if not ctx.is_provider or ctx.user_id != provider_id:
            raise AuthorizationError('Only the provider can change its availability.')

        existing = self.get_window(provider_id, weekday)

        if start is None and end is None:
            if existing is not None:
                with store_guard(self.db):
                    self.db.delete(existing)
                    self.db.commit()
                logger.info('Removed %s window for provider %s', WEEKDAY_NAMES[weekday], provider_id)
            return None

        if start is None or end is None:
            raise ValidationError('Both start and end times are required.')
        # Slots and bookings are whole minutes of provider-local time.
        start = start.replace(second=0, microsecond=0, tzinfo=None)
        end = end.replace(second=0, microsecond=0, tzinfo=None)
        if start >= end:
            raise ValidationError('Start time must be before end time.')

        with store_guard(self.db, conflict_message='Availability for this weekday changed concurrently.'):
            if existing is None:
                existing = AvailabilityWindow(
                    provider_id=provider_id,
                    weekday=weekday,
                    start_time=start,
                    end_time=end,
                )
                self.db.add(existing)
            else:
                existing.start_time = start
                existing.end_time = end
            self.db.commit()
            self.db.refresh(existing)

        return existing
