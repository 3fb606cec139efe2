"""
Booking notifications.

Delivery (email, WhatsApp, SMS) lives outside this service. The core only
hands a recipient id and a one-line summary to a ``Notifier`` after the
ledger change has been committed; a failing notifier is logged and never
undoes the change.
"""

import logging
from typing import Protocol

from agenda.models.appointment import Appointment, AppointmentStatus
from agenda.models.service import Service

logger = logging.getLogger(__name__)

STATUS_LABELS = {
    AppointmentStatus.PENDING: 'requested',
    AppointmentStatus.CONFIRMED: 'confirmed',
    AppointmentStatus.REJECTED: 'rejected',
    AppointmentStatus.CANCELLED: 'cancelled',
}


class Notifier(Protocol):
    def notify(self, recipient_id: int, summary: str) -> None:
        ...


class LoggingNotifier:
    """Writes notifications to the log instead of delivering them."""

    def notify(self, recipient_id: int, summary: str) -> None:
        logger.info('Notification for user %s: %s', recipient_id, summary)


def build_summary(appointment: Appointment, service: Service) -> str:
    when = appointment.start_time.strftime('%Y-%m-%d %H:%M')
    label = STATUS_LABELS[AppointmentStatus(appointment.status)]
    return f'{service.name} on {when}: appointment {label}.'


def dispatch(notifier: Notifier, recipient_id: int, summary: str) -> bool:
    try:
        notifier.notify(recipient_id, summary)
    except Exception:
        logger.exception('Notification to user %s failed; booking change is kept.', recipient_id)
        return False
    return True


def get_notifier() -> Notifier:
    return LoggingNotifier()
