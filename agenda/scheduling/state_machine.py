"""
Appointment lifecycle.

Every status change goes through ``AppointmentStateMachine.transition`` and
the single ``TRANSITIONS`` table below. Checks run in a fixed order so the
caller always gets the most specific error: missing appointment, illegal
status pair, wrong actor, then the booking cap. A failed check never
touches the ledger.
"""

import logging
from dataclasses import dataclass
from datetime import datetime

from sqlalchemy.orm import Session

from agenda.core.errors import (
    AuthorizationError,
    CapacityError,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from agenda.models.appointment import Appointment, AppointmentStatus
from agenda.models.service import Service
from agenda.models.user import Role, User
from agenda.scheduling.calendar import AvailabilityCalendar
from agenda.scheduling.context import CallerContext
from agenda.scheduling.ledger import AppointmentLedger
from agenda.scheduling.limiter import BookingLimiter, BookingStatus
from agenda.scheduling.notifications import LoggingNotifier, Notifier, build_summary, dispatch
from agenda.scheduling.slots import weekday_index
from agenda.scheduling.store import store_guard

logger = logging.getLogger(__name__)

NOT_ACCEPTING_DETAIL = 'This provider is not accepting new bookings at the moment.'

# (from, to) -> role allowed to perform the change. Anything missing is illegal.
TRANSITIONS = {
    (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED): Role.PROVIDER,
    (AppointmentStatus.PENDING, AppointmentStatus.REJECTED): Role.PROVIDER,
    (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED): Role.CLIENT,
}


@dataclass
class TransitionResult:
    appointment: Appointment
    booking_status: BookingStatus | None = None
    notified: bool = False


def allowed_role(current: AppointmentStatus, target: AppointmentStatus) -> Role:
    try:
        return TRANSITIONS[(current, target)]
    except KeyError:
        raise InvalidTransition(
            f'Cannot change an appointment from {current.value} to {target.value}.'
        ) from None


def is_party(ctx: CallerContext, appointment: Appointment, role: Role) -> bool:
    if ctx.role != role:
        return False
    if role == Role.PROVIDER:
        return ctx.user_id == appointment.provider_id
    return ctx.user_id == appointment.client_id


class AppointmentStateMachine:
    def __init__(self, db: Session, notifier: Notifier | None = None, booking_cap: int | None = None):
        self.db = db
        self.ledger = AppointmentLedger(db)
        self.limiter = BookingLimiter(db, booking_cap=booking_cap)
        self.calendar = AvailabilityCalendar(db)
        self.notifier = notifier or LoggingNotifier()

    def _get_service(self, service_id: int) -> Service | None:
        with store_guard(self.db):
            return self.db.query(Service).filter(Service.id == service_id).first()

    def book(self, ctx: CallerContext, provider_id: int, service_id: int, start_time: datetime) -> Appointment:
        """Create a pending appointment for the calling client and notify the provider."""
        if not ctx.is_client:
            raise AuthorizationError('Only clients can book appointments.')

        with store_guard(self.db):
            provider = self.db.query(User).filter(
                User.id == provider_id,
                User.role == Role.PROVIDER,
            ).first()
        if provider is None:
            raise NotFoundError('Provider not found.')

        service = self._get_service(service_id)
        if service is None or service.provider_id != provider_id:
            raise NotFoundError('Service not found for this provider.')

        if not self.limiter.is_accepting_bookings(provider_id):
            raise CapacityError(NOT_ACCEPTING_DETAIL)

        start_time = start_time.replace(second=0, microsecond=0, tzinfo=None)
        window = self.calendar.get_window(provider_id, weekday_index(start_time.date()))
        if window is None or not (window.start_time <= start_time.time() < window.end_time):
            raise ValidationError("The requested time is outside the provider's availability.")

        appointment = self.ledger.create(
            Appointment(
                provider_id=provider_id,
                client_id=ctx.user_id,
                service_id=service_id,
                start_time=start_time,
            )
        )

        dispatch(self.notifier, provider_id, build_summary(appointment, service))
        return appointment

    def transition(
        self,
        ctx: CallerContext,
        appointment_id: int,
        new_status: AppointmentStatus,
    ) -> TransitionResult:
        appointment = self.ledger.get(appointment_id)
        current = AppointmentStatus(appointment.status)
        try:
            new_status = AppointmentStatus(new_status)
        except ValueError:
            raise InvalidTransition(f'Unknown appointment status: {new_status}.') from None

        role = allowed_role(current, new_status)
        if not is_party(ctx, appointment, role):
            raise AuthorizationError(f'Only the appointment\'s {role.value} can mark it {new_status.value}.')

        confirming = new_status == AppointmentStatus.CONFIRMED
        if confirming and not self.limiter.is_accepting_bookings(appointment.provider_id):
            raise CapacityError(NOT_ACCEPTING_DETAIL)

        applied = self.ledger._apply_status(
            appointment,
            new_status,
            confirmed_cap=self.limiter.booking_cap if confirming else None,
        )
        if not applied:
            # Lost a race: someone else moved the appointment or filled the last confirmed seat.
            with store_guard(self.db):
                self.db.refresh(appointment)
            latest = AppointmentStatus(appointment.status)
            if latest != AppointmentStatus.PENDING:
                raise InvalidTransition(
                    f'Cannot change an appointment from {latest.value} to {new_status.value}.'
                )
            raise CapacityError(NOT_ACCEPTING_DETAIL)

        with store_guard(self.db):
            self.db.refresh(appointment)
        logger.info(
            'Appointment %s moved from %s to %s by user %s',
            appointment.id,
            current.value,
            new_status.value,
            ctx.user_id,
        )

        result = TransitionResult(appointment=appointment)
        if confirming:
            result.booking_status = self.limiter.status(appointment.provider_id)

        recipient_id = appointment.client_id if role == Role.PROVIDER else appointment.provider_id
        service = self._get_service(appointment.service_id)
        if service is not None:
            result.notified = dispatch(self.notifier, recipient_id, build_summary(appointment, service))
        return result
