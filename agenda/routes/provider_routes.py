from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel
from sqlalchemy.orm import Session

from agenda.database import ensure_database_ready, get_db
from agenda.routes.service_routes import ServiceResponse
from agenda.scheduling.directory import Directory
from agenda.scheduling.limiter import BookingLimiter

router = APIRouter(tags=['providers'])


class ProviderResponse(BaseModel):
    id: int
    name: str | None = None
    phone: str | None = None
    specialty: str | None = None
    accepting_bookings: bool
    services: list[ServiceResponse]


@router.get('', response_model=list[ProviderResponse])
def list_providers(
    search: str | None = Query(default=None, max_length=120),
    db: Session = Depends(get_db),
):
    ensure_database_ready()
    limiter = BookingLimiter(db)
    return [
        ProviderResponse(
            id=provider.id,
            name=provider.name,
            phone=provider.phone,
            specialty=provider.specialty,
            accepting_bookings=limiter.is_accepting_bookings(provider.id),
            services=[ServiceResponse.model_validate(service) for service in services],
        )
        for provider, services in Directory(db).providers(search)
    ]
