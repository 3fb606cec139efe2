from datetime import datetime, time
from decimal import Decimal

import pytest

from agenda.core.errors import (
    AuthorizationError,
    CapacityError,
    ConflictError,
    InvalidTransition,
    NotFoundError,
    ValidationError,
)
from agenda.models.appointment import Appointment, AppointmentStatus
from agenda.models.availability import AvailabilityWindow
from agenda.models.service import Service
from agenda.models.user import Role
from agenda.scheduling.calendar import AvailabilityCalendar
from agenda.scheduling.limiter import BookingLimiter
from agenda.scheduling.slots import SlotGenerator
from agenda.scheduling.state_machine import TRANSITIONS, AppointmentStateMachine

from conftest import MONDAY, MONDAY_WEEKDAY, FailingNotifier, add_appointment, add_user, ctx_for

TEN_AM = datetime(2024, 1, 1, 10, 0)


@pytest.fixture
def machine(db, notifier) -> AppointmentStateMachine:
    return AppointmentStateMachine(db, notifier=notifier)


@pytest.fixture
def pending(db, provider, client, service) -> Appointment:
    return add_appointment(db, provider, client, service, TEN_AM, AppointmentStatus.PENDING)


def test_transition_table_only_leaves_pending() -> None:
    assert {current for current, _ in TRANSITIONS} == {AppointmentStatus.PENDING}


def test_book_creates_pending_appointment_and_notifies_provider(
    db, machine, notifier, provider, client, service, monday_window
) -> None:
    appointment = machine.book(ctx_for(client), provider.id, service.id, TEN_AM)

    assert appointment.status == AppointmentStatus.PENDING
    assert appointment.client_id == client.id
    assert notifier.sent == [(provider.id, 'Haircut on 2024-01-01 10:00: appointment requested.')]


def test_book_drops_seconds_from_start(machine, provider, client, service, monday_window) -> None:
    appointment = machine.book(ctx_for(client), provider.id, service.id, datetime(2024, 1, 1, 10, 0, 42))

    assert appointment.start_time == TEN_AM


def test_book_requires_client_role(machine, notifier, provider, other_provider, service, monday_window) -> None:
    with pytest.raises(AuthorizationError):
        machine.book(ctx_for(other_provider), provider.id, service.id, TEN_AM)

    assert notifier.sent == []


def test_book_unknown_provider(machine, client, service) -> None:
    with pytest.raises(NotFoundError):
        machine.book(ctx_for(client), 999, service.id, TEN_AM)


def test_book_client_id_is_not_a_provider(machine, client, other_client, service) -> None:
    with pytest.raises(NotFoundError):
        machine.book(ctx_for(client), other_client.id, service.id, TEN_AM)


def test_book_service_of_another_provider(db, machine, provider, other_provider, client, monday_window) -> None:
    foreign = Service(provider_id=other_provider.id, name='Massage', duration_minutes=60, price=Decimal('90'))
    db.add(foreign)
    db.commit()

    with pytest.raises(NotFoundError):
        machine.book(ctx_for(client), provider.id, foreign.id, TEN_AM)


@pytest.mark.parametrize(
    'start',
    [
        datetime(2024, 1, 1, 8, 30),
        datetime(2024, 1, 1, 17, 0),
        datetime(2024, 1, 7, 10, 0),
    ],
)
def test_book_outside_availability(machine, provider, client, service, monday_window, start) -> None:
    with pytest.raises(ValidationError):
        machine.book(ctx_for(client), provider.id, service.id, start)


def test_book_long_service_in_last_slot_is_allowed(db, machine, provider, client, monday_window) -> None:
    long_service = Service(provider_id=provider.id, name='Coloring', duration_minutes=120, price=Decimal('150'))
    db.add(long_service)
    db.commit()

    appointment = machine.book(ctx_for(client), provider.id, long_service.id, datetime(2024, 1, 1, 16, 30))

    assert appointment.status == AppointmentStatus.PENDING


def test_double_booking_scenario(db, machine, provider, client, other_client, service, monday_window) -> None:
    machine.book(ctx_for(client), provider.id, service.id, TEN_AM)

    slots = {slot.label(): slot.available for slot in SlotGenerator(db).generate_slots(provider.id, MONDAY)}
    assert slots['10:00'] is False

    with pytest.raises(ConflictError) as exception_info:
        machine.book(ctx_for(other_client), provider.id, service.id, TEN_AM)

    assert exception_info.value.code == 'slot_taken'


def test_book_refused_when_provider_at_cap(db, machine, notifier, provider, client, service, monday_window) -> None:
    for hour in range(11, 16):
        add_appointment(db, provider, client, service, datetime(2024, 1, 1, hour, 0), AppointmentStatus.CONFIRMED)

    with pytest.raises(CapacityError) as exception_info:
        machine.book(ctx_for(client), provider.id, service.id, TEN_AM)

    assert exception_info.value.code == 'not_accepting_bookings'
    assert db.query(Appointment).filter(Appointment.status == AppointmentStatus.PENDING).count() == 0
    assert notifier.sent == []


def test_provider_confirms_and_client_is_notified(machine, notifier, provider, client, pending) -> None:
    result = machine.transition(ctx_for(provider), pending.id, AppointmentStatus.CONFIRMED)

    assert result.appointment.status == AppointmentStatus.CONFIRMED
    assert result.booking_status.confirmed_count == 1
    assert result.booking_status.accepting_bookings is True
    assert result.notified is True
    assert notifier.sent == [(client.id, 'Haircut on 2024-01-01 10:00: appointment confirmed.')]


def test_provider_rejects_and_client_is_notified(machine, notifier, provider, client, pending) -> None:
    result = machine.transition(ctx_for(provider), pending.id, AppointmentStatus.REJECTED)

    assert result.appointment.status == AppointmentStatus.REJECTED
    assert result.booking_status is None
    assert notifier.sent == [(client.id, 'Haircut on 2024-01-01 10:00: appointment rejected.')]


def test_client_cancels_and_provider_is_notified(machine, notifier, provider, client, pending) -> None:
    result = machine.transition(ctx_for(client), pending.id, AppointmentStatus.CANCELLED)

    assert result.appointment.status == AppointmentStatus.CANCELLED
    assert notifier.sent == [(provider.id, 'Haircut on 2024-01-01 10:00: appointment cancelled.')]


def test_cancelled_appointment_cannot_be_confirmed(machine, provider, client, pending) -> None:
    machine.transition(ctx_for(client), pending.id, AppointmentStatus.CANCELLED)

    with pytest.raises(InvalidTransition):
        machine.transition(ctx_for(provider), pending.id, AppointmentStatus.CONFIRMED)


def test_other_client_cannot_confirm(db, machine, notifier, other_client, pending) -> None:
    with pytest.raises(AuthorizationError):
        machine.transition(ctx_for(other_client), pending.id, AppointmentStatus.CONFIRMED)

    db.refresh(pending)
    assert pending.status == AppointmentStatus.PENDING
    assert notifier.sent == []


@pytest.mark.parametrize(
    ('actor', 'target'),
    [
        ('client', AppointmentStatus.CONFIRMED),
        ('client', AppointmentStatus.REJECTED),
        ('provider', AppointmentStatus.CANCELLED),
        ('other_provider', AppointmentStatus.CONFIRMED),
        ('other_provider', AppointmentStatus.REJECTED),
        ('other_client', AppointmentStatus.CANCELLED),
    ],
)
def test_wrong_actor_is_refused(request, db, machine, pending, actor, target) -> None:
    caller = request.getfixturevalue(actor)

    with pytest.raises(AuthorizationError):
        machine.transition(ctx_for(caller), pending.id, target)

    db.refresh(pending)
    assert pending.status == AppointmentStatus.PENDING


@pytest.mark.parametrize('terminal', [AppointmentStatus.CONFIRMED, AppointmentStatus.REJECTED])
def test_terminal_appointment_cannot_be_cancelled(db, machine, provider, client, service, terminal) -> None:
    appointment = add_appointment(db, provider, client, service, TEN_AM, terminal)

    with pytest.raises(InvalidTransition):
        machine.transition(ctx_for(client), appointment.id, AppointmentStatus.CANCELLED)


def test_moving_back_to_pending_is_invalid(machine, provider, pending) -> None:
    with pytest.raises(InvalidTransition):
        machine.transition(ctx_for(provider), pending.id, AppointmentStatus.PENDING)


def test_unknown_appointment(machine, provider) -> None:
    with pytest.raises(NotFoundError):
        machine.transition(ctx_for(provider), 12345, AppointmentStatus.CONFIRMED)


def test_unknown_target_status_is_invalid_transition(db, machine, provider, pending) -> None:
    with pytest.raises(InvalidTransition):
        machine.transition(ctx_for(provider), pending.id, 'completed')

    db.refresh(pending)
    assert pending.status == AppointmentStatus.PENDING


def test_window_set_with_seconds_offers_bookable_slots(db, machine, provider, client, service) -> None:
    AvailabilityCalendar(db).set_window(ctx_for(provider), provider.id, MONDAY_WEEKDAY, time(9, 0, 30), time(10, 0))
    generator = SlotGenerator(db)

    assert [slot.time for slot in generator.generate_slots(provider.id, MONDAY)] == [time(9, 0), time(9, 30)]

    machine.book(ctx_for(client), provider.id, service.id, datetime(2024, 1, 1, 9, 0))

    assert [(slot.label(), slot.available) for slot in generator.generate_slots(provider.id, MONDAY)] == [
        ('09:00', False),
        ('09:30', True),
    ]


def test_cap_scenario_sixth_confirmation_fails(db, machine, provider, client, service) -> None:
    appointments = [
        add_appointment(db, provider, client, service, datetime(2024, 1, 1, hour, 0), AppointmentStatus.PENDING)
        for hour in range(9, 15)
    ]
    limiter = BookingLimiter(db)

    for expected_count, appointment in enumerate(appointments[:5], start=1):
        result = machine.transition(ctx_for(provider), appointment.id, AppointmentStatus.CONFIRMED)
        assert result.booking_status.confirmed_count == expected_count
        assert limiter.confirmed_count(provider.id) == expected_count

    assert result.booking_status.accepting_bookings is False
    assert limiter.is_accepting_bookings(provider.id) is False

    sixth = appointments[5]
    with pytest.raises(CapacityError):
        machine.transition(ctx_for(provider), sixth.id, AppointmentStatus.CONFIRMED)

    db.refresh(sixth)
    assert sixth.status == AppointmentStatus.PENDING
    assert limiter.confirmed_count(provider.id) == 5


def test_rejecting_still_allowed_at_cap(db, machine, provider, client, service) -> None:
    for hour in range(9, 14):
        add_appointment(db, provider, client, service, datetime(2024, 1, 1, hour, 0), AppointmentStatus.CONFIRMED)
    waiting = add_appointment(db, provider, client, service, datetime(2024, 1, 1, 15, 0), AppointmentStatus.PENDING)

    result = machine.transition(ctx_for(provider), waiting.id, AppointmentStatus.REJECTED)

    assert result.appointment.status == AppointmentStatus.REJECTED


def test_lost_confirmation_race_reports_capacity(
    db, machine, provider, pending, monkeypatch: pytest.MonkeyPatch
) -> None:
    monkeypatch.setattr(machine.ledger, '_apply_status', lambda *args, **kwargs: False)

    with pytest.raises(CapacityError):
        machine.transition(ctx_for(provider), pending.id, AppointmentStatus.CONFIRMED)


def test_lost_race_to_cancellation_reports_invalid_transition(
    db, machine, provider, pending, monkeypatch: pytest.MonkeyPatch
) -> None:
    def cancelled_meanwhile(appointment, new_status, confirmed_cap=None):
        db.query(Appointment).filter(Appointment.id == appointment.id).update(
            {Appointment.status: AppointmentStatus.CANCELLED}, synchronize_session=False
        )
        db.commit()
        return False

    monkeypatch.setattr(machine.ledger, '_apply_status', cancelled_meanwhile)

    with pytest.raises(InvalidTransition):
        machine.transition(ctx_for(provider), pending.id, AppointmentStatus.CONFIRMED)


def test_notifier_failure_keeps_the_change(db, provider, pending) -> None:
    machine = AppointmentStateMachine(db, notifier=FailingNotifier())

    result = machine.transition(ctx_for(provider), pending.id, AppointmentStatus.CONFIRMED)

    assert result.notified is False
    db.refresh(pending)
    assert pending.status == AppointmentStatus.CONFIRMED


def test_rejected_slot_can_be_booked_again(db, machine, provider, client, service, monday_window) -> None:
    first = machine.book(ctx_for(client), provider.id, service.id, TEN_AM)
    machine.transition(ctx_for(provider), first.id, AppointmentStatus.REJECTED)
    newcomer = add_user(db, 'client.c@example.com', Role.CLIENT)

    second = machine.book(ctx_for(newcomer), provider.id, service.id, TEN_AM)

    assert second.id != first.id
    assert second.status == AppointmentStatus.PENDING


def test_booking_window_edges(db, machine, provider, client, service) -> None:
    db.add(AvailabilityWindow(provider_id=provider.id, weekday=1, start_time=time(9, 0), end_time=time(10, 0)))
    db.commit()

    assert machine.book(ctx_for(client), provider.id, service.id, datetime(2024, 1, 1, 9, 0)).id is not None
    with pytest.raises(ValidationError):
        machine.book(ctx_for(client), provider.id, service.id, datetime(2024, 1, 1, 10, 0))
