from decimal import Decimal

from fastapi import APIRouter, Depends, status
from pydantic import BaseModel, field_validator
from sqlalchemy.orm import Session

from agenda.auth.dependencies import get_caller_context
from agenda.database import ensure_database_ready, get_db
from agenda.scheduling.catalog import ServiceCatalog
from agenda.scheduling.context import CallerContext

router = APIRouter(tags=['services'])

MAX_SERVICE_NAME_LENGTH = 120


def _normalize_name(value: str | None) -> str | None:
    if value is None:
        return None
    normalized = value.strip()
    if len(normalized) > MAX_SERVICE_NAME_LENGTH:
        raise ValueError(f'Service name must be {MAX_SERVICE_NAME_LENGTH} characters or fewer.')
    return normalized


class CreateServiceRequest(BaseModel):
    name: str
    duration_minutes: int
    price: Decimal

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str) -> str:
        return _normalize_name(value)


class UpdateServiceRequest(BaseModel):
    name: str | None = None
    duration_minutes: int | None = None
    price: Decimal | None = None

    @field_validator('name')
    @classmethod
    def validate_name(cls, value: str | None) -> str | None:
        return _normalize_name(value)


class ServiceResponse(BaseModel):
    id: int
    provider_id: int
    name: str
    duration_minutes: int
    price: Decimal

    class Config:
        from_attributes = True


@router.get('/{provider_id}', response_model=list[ServiceResponse])
def list_services(provider_id: int, db: Session = Depends(get_db)):
    ensure_database_ready()
    return ServiceCatalog(db).list(provider_id)


@router.post('', response_model=ServiceResponse, status_code=status.HTTP_201_CREATED)
def create_service(
    data: CreateServiceRequest,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context),
):
    ensure_database_ready()
    return ServiceCatalog(db).create(ctx, data.name, data.duration_minutes, data.price)


@router.patch('/{service_id}', response_model=ServiceResponse)
def update_service(
    service_id: int,
    data: UpdateServiceRequest,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context),
):
    ensure_database_ready()
    return ServiceCatalog(db).update(
        ctx,
        service_id,
        name=data.name,
        duration_minutes=data.duration_minutes,
        price=data.price,
    )


@router.delete('/{service_id}', status_code=status.HTTP_204_NO_CONTENT)
def delete_service(
    service_id: int,
    db: Session = Depends(get_db),
    ctx: CallerContext = Depends(get_caller_context),
):
    ensure_database_ready()
    ServiceCatalog(db).delete(ctx, service_id)
