from datetime import datetime

from fastapi import APIRouter, Depends, Query, status
from pydantic import BaseModel
from sqlalchemy.orm import Session

from agenda.auth.dependencies import get_caller_context
from agenda.core.errors import AuthorizationError
from agenda.database import ensure_database_ready, get_db
from agenda.models.appointment import AppointmentStatus
from agenda.scheduling.context import CallerContext
from agenda.scheduling.ledger import AppointmentLedger
from agenda.scheduling.limiter import BookingLimiter
from agenda.scheduling.notifications import Notifier, get_notifier
from agenda.scheduling.state_machine import AppointmentStateMachine

router = APIRouter(tags=['appointments'])


class CreateAppointmentRequest(BaseModel):
    provider_id: int
    service_id: int
    start_time: datetime


class AppointmentResponse(BaseModel):
    id: int
    provider_id: int
    client_id: int
    service_id: int
    start_time: datetime
    status: AppointmentStatus
    created_at: datetime | None = None
    provider_name: str | None = None
    client_name: str | None = None
    service_name: str | None = None

    class Config:
        from_attributes = True


class UpdateStatusRequest(BaseModel):
    status: AppointmentStatus


class StatusChangeResponse(BaseModel):
    appointment: AppointmentResponse
    confirmed_count: int | None = None
    accepting_bookings: bool | None = None
    message: str | None = None


class BookingStatusResponse(BaseModel):
    provider_id: int
    confirmed_count: int
    booking_cap: int
    accepting_bookings: bool


class AppointmentSummaryResponse(BaseModel):
    total: int
    pending: int
    confirmed: int
    rejected: int
    cancelled: int


@router.post('', response_model=AppointmentResponse, status_code=status.HTTP_201_CREATED)
def create_appointment(
    data: CreateAppointmentRequest,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()
    return AppointmentStateMachine(db, notifier=notifier).book(
        ctx,
        provider_id=data.provider_id,
        service_id=data.service_id,
        start_time=data.start_time,
    )


@router.get('', response_model=list[AppointmentResponse])
def list_my_appointments(
    appointment_status: AppointmentStatus | None = Query(default=None, alias='status'),
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context),
):
    ensure_database_ready()
    ledger = AppointmentLedger(db)
    if ctx.is_provider:
        return ledger.list(provider_id=ctx.user_id, status=appointment_status)
    return ledger.list(client_id=ctx.user_id, status=appointment_status)


@router.get('/summary', response_model=AppointmentSummaryResponse)
def appointment_summary(
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context),
):
    ensure_database_ready()
    ledger = AppointmentLedger(db)
    if ctx.is_provider:
        counts = ledger.status_counts(provider_id=ctx.user_id)
    else:
        counts = ledger.status_counts(client_id=ctx.user_id)

    return AppointmentSummaryResponse(
        total=sum(counts.values()),
        pending=counts[AppointmentStatus.PENDING],
        confirmed=counts[AppointmentStatus.CONFIRMED],
        rejected=counts[AppointmentStatus.REJECTED],
        cancelled=counts[AppointmentStatus.CANCELLED],
    )


@router.get('/booking-status/{provider_id}', response_model=BookingStatusResponse)
def booking_status(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()
    current = BookingLimiter(db).status(provider_id)
    return BookingStatusResponse(
        provider_id=provider_id,
        confirmed_count=current.confirmed_count,
        booking_cap=current.booking_cap,
        accepting_bookings=current.accepting_bookings,
    )


@router.get('/{appointment_id}', response_model=AppointmentResponse)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context),
):
    ensure_database_ready()
    appointment = AppointmentLedger(db).get(appointment_id)
    if ctx.user_id not in (appointment.provider_id, appointment.client_id):
        raise AuthorizationError('Only the client and the provider can view this appointment.')
    return appointment


@router.post('/{appointment_id}/status', response_model=StatusChangeResponse)
def update_appointment_status(
    appointment_id: int,
    data: UpdateStatusRequest,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context),
    notifier: Notifier = Depends(get_notifier),
):
    ensure_database_ready()
    result = AppointmentStateMachine(db, notifier=notifier).transition(ctx, appointment_id, data.status)

    response = StatusChangeResponse(appointment=AppointmentResponse.model_validate(result.appointment))
    if result.booking_status is not None:
        response.confirmed_count = result.booking_status.confirmed_count
        response.accepting_bookings = result.booking_status.accepting_bookings
        if not result.booking_status.accepting_bookings:
            response.message = (
                f'You reached the limit of {result.booking_status.booking_cap} confirmed appointments. '
                'New bookings are now blocked.'
            )
    return response
