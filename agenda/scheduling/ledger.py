"""
Appointment ledger.

The ledger is the source of truth for double-booking and cap checks. Both
guarantees are enforced by the database, not by a read-then-write in
Python:

- a partial unique index on ``(provider_id, start_time)`` for pending and
  confirmed rows decides which of two concurrent bookings wins;
- confirmations run as one conditional ``UPDATE`` that re-counts the
  provider's confirmed rows, after locking the provider row where the
  backend supports ``SELECT ... FOR UPDATE``.
"""

import logging
from datetime import date, datetime, time, timedelta

from sqlalchemy import func
from sqlalchemy.orm import Session, aliased

from agenda.core.errors import ConflictError, NotFoundError
from agenda.models.appointment import ACTIVE_STATUSES, Appointment, AppointmentStatus
from agenda.models.user import User
from agenda.scheduling.store import store_guard

logger = logging.getLogger(__name__)

SLOT_TAKEN_DETAIL = 'This time slot was just taken. Please choose another time.'


class AppointmentLedger:
    def __init__(self, db: Session):
        self.db = db

    def get(self, appointment_id: int) -> Appointment:
        with store_guard(self.db):
            appointment = self.db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if appointment is None:
            raise NotFoundError('Appointment not found.')
        return appointment

    def is_slot_taken(self, provider_id: int, start_time: datetime) -> bool:
        with store_guard(self.db):
            return self.db.query(Appointment.id).filter(
                Appointment.provider_id == provider_id,
                Appointment.start_time == start_time,
                Appointment.status.in_(ACTIVE_STATUSES),
            ).first() is not None

    def occupied_starts(self, provider_id: int, day: date) -> set[datetime]:
        """Start times held by pending or confirmed appointments on ``day``."""
        day_start = datetime.combine(day, time.min)
        day_end = day_start + timedelta(days=1)
        with store_guard(self.db):
            rows = self.db.query(Appointment.start_time).filter(
                Appointment.provider_id == provider_id,
                Appointment.status.in_(ACTIVE_STATUSES),
                Appointment.start_time >= day_start,
                Appointment.start_time < day_end,
            ).all()
        return {start_time.replace(second=0, microsecond=0) for (start_time,) in rows}

    def confirmed_count(self, provider_id: int) -> int:
        with store_guard(self.db):
            return self.db.query(func.count(Appointment.id)).filter(
                Appointment.provider_id == provider_id,
                Appointment.status == AppointmentStatus.CONFIRMED,
            ).scalar() or 0

    def create(self, appointment: Appointment) -> Appointment:
        if self.is_slot_taken(appointment.provider_id, appointment.start_time):
            raise ConflictError(SLOT_TAKEN_DETAIL)

        appointment.status = AppointmentStatus.PENDING
        # A concurrent booking that passed the check above loses here on the unique index.
        with store_guard(self.db, conflict_message=SLOT_TAKEN_DETAIL, conflict_code=ConflictError.code):
            self.db.add(appointment)
            self.db.commit()
            self.db.refresh(appointment)

        logger.info(
            'Appointment %s created for provider %s at %s',
            appointment.id,
            appointment.provider_id,
            appointment.start_time,
        )
        return appointment

    def _apply_status(
        self,
        appointment: Appointment,
        new_status: AppointmentStatus,
        confirmed_cap: int | None = None,
    ) -> bool:
        """Move a pending appointment to ``new_status`` in one conditional write.

        Only the state machine calls this, after it has approved the
        transition. With ``confirmed_cap`` the write also requires the
        provider to hold fewer than that many confirmed appointments.
        Returns False when the row was no longer pending or the cap was
        reached by the time the statement ran.
        """
        with store_guard(self.db):
            query = self.db.query(Appointment).filter(
                Appointment.id == appointment.id,
                Appointment.status == AppointmentStatus.PENDING,
            )

            if confirmed_cap is not None:
                self.db.query(User.id).filter(User.id == appointment.provider_id).with_for_update().first()
                counted = aliased(Appointment)
                confirmed = self.db.query(func.count(counted.id)).filter(
                    counted.provider_id == appointment.provider_id,
                    counted.status == AppointmentStatus.CONFIRMED,
                ).scalar_subquery()
                query = query.filter(confirmed < confirmed_cap)

            updated = query.update({Appointment.status: new_status}, synchronize_session=False)
            self.db.commit()

        return updated == 1

    def list(
        self,
        provider_id: int | None = None,
        client_id: int | None = None,
        status: AppointmentStatus | None = None,
    ) -> list[Appointment]:
        with store_guard(self.db):
            query = self.db.query(Appointment)
            if provider_id is not None:
                query = query.filter(Appointment.provider_id == provider_id)
            if client_id is not None:
                query = query.filter(Appointment.client_id == client_id)
            if status is not None:
                query = query.filter(Appointment.status == status)
            return query.order_by(Appointment.start_time.asc(), Appointment.id.asc()).all()

    def status_counts(
        self,
        provider_id: int | None = None,
        client_id: int | None = None,
    ) -> dict[AppointmentStatus, int]:
        with store_guard(self.db):
            query = self.db.query(Appointment.status, func.count(Appointment.id))
            if provider_id is not None:
                query = query.filter(Appointment.provider_id == provider_id)
            if client_id is not None:
                query = query.filter(Appointment.client_id == client_id)
            rows = query.group_by(Appointment.status).all()

        counts = {status: 0 for status in AppointmentStatus}
        for status, count in rows:
            counts[AppointmentStatus(status)] = count
        return counts
