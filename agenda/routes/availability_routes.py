from datetime import date, time

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from agenda.auth.dependencies import get_caller_context
from agenda.core import config
from agenda.database import ensure_database_ready, get_db
from agenda.scheduling.calendar import WEEKDAY_NAMES, AvailabilityCalendar
from agenda.scheduling.context import CallerContext
from agenda.scheduling.limiter import BookingLimiter
from agenda.scheduling.slots import SlotGenerator, weekday_index

router = APIRouter(tags=['availability'])

MAX_SLOT_GRANULARITY_MINUTES = 240


class SetWindowRequest(BaseModel):
    start_time: time | None = None
    end_time: time | None = None

    @field_validator('start_time', 'end_time', mode='before')
    @classmethod
    def blank_means_unset(cls, value):
        if isinstance(value, str) and not value.strip():
            return None
        return value


class AvailabilityWindowResponse(BaseModel):
    id: int
    provider_id: int
    weekday: int
    start_time: time
    end_time: time

    class Config:
        from_attributes = True


class SlotResponse(BaseModel):
    time: str
    available: bool


class ProviderSlotsResponse(BaseModel):
    provider_id: int
    date: date
    weekday: int
    weekday_name: str
    accepting_bookings: bool
    slots: list[SlotResponse]


@router.get('/{provider_id}/windows', response_model=list[AvailabilityWindowResponse])
def list_windows(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()
    return AvailabilityCalendar(db).list_windows(provider_id)


@router.put('/windows/{weekday}', response_model=AvailabilityWindowResponse | None)
def set_window(
    weekday: int,
    data: SetWindowRequest,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context),
):
    ensure_database_ready()
    return AvailabilityCalendar(db).set_window(ctx, ctx.user_id, weekday, data.start_time, data.end_time)


@router.get('/{provider_id}/slots', response_model=ProviderSlotsResponse)
def list_provider_slots(
    provider_id: int,
    slot_date: date = Query(..., alias='date'),
    granularity_minutes: int = Query(default=config.SLOT_GRANULARITY_MINUTES, ge=1, le=MAX_SLOT_GRANULARITY_MINUTES),
    db: Session = Depends(get_db),
):
    ensure_database_ready()

    slots = SlotGenerator(db).generate_slots(provider_id, slot_date, granularity_minutes)
    weekday = weekday_index(slot_date)

    return ProviderSlotsResponse(
        provider_id=provider_id,
        date=slot_date,
        weekday=weekday,
        weekday_name=WEEKDAY_NAMES[weekday],
        accepting_bookings=BookingLimiter(db).is_accepting_bookings(provider_id),
        slots=[SlotResponse(time=slot.label(), available=slot.available) for slot in slots],
    )
