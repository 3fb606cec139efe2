"""Providers' service catalog."""

import logging
from decimal import Decimal

from sqlalchemy.orm import Session

from agenda.core.errors import AuthorizationError, ConflictError, NotFoundError, ValidationError
from agenda.models.appointment import Appointment
from agenda.models.service import Service
from agenda.scheduling.context import CallerContext
from agenda.scheduling.store import store_guard

logger = logging.getLogger(__name__)

SERVICE_IN_USE_DETAIL = 'This service has appointments and cannot be removed.'


def validate_service_fields(name: str | None, duration_minutes: int | None, price: Decimal | None) -> None:
    if name is not None and not name.strip():
        raise ValidationError('Service name is required.')
    if duration_minutes is not None and duration_minutes <= 0:
        raise ValidationError('Service duration must be greater than zero.')
    if price is not None and price < 0:
        raise ValidationError('Service price cannot be negative.')


class ServiceCatalog:
    def __init__(self, db: Session):
        self.db = db

    def list(self, provider_id: int) -> list[Service]:
        with store_guard(self.db):
            return self.db.query(Service).filter(
                Service.provider_id == provider_id,
            ).order_by(Service.name.asc()).all()

    def get(self, service_id: int) -> Service:
        with store_guard(self.db):
            service = self.db.query(Service).filter(Service.id == service_id).first()
        if service is None:
            raise NotFoundError('Service not found.')
        return service

    def _get_owned(self, ctx: CallerContext, service_id: int) -> Service:
        service = self.get(service_id)
        if not ctx.is_provider or service.provider_id != ctx.user_id:
            raise AuthorizationError('Only the provider who offers this service can change it.')
        return service

    def create(self, ctx: CallerContext, name: str, duration_minutes: int, price: Decimal) -> Service:
        if not ctx.is_provider:
            raise AuthorizationError('Only providers can offer services.')
        if name is None or duration_minutes is None or price is None:
            raise ValidationError('Name, duration and price are required.')
        validate_service_fields(name, duration_minutes, price)

        service = Service(
            provider_id=ctx.user_id,
            name=name.strip(),
            duration_minutes=duration_minutes,
            price=price,
        )
        with store_guard(self.db):
            self.db.add(service)
            self.db.commit()
            self.db.refresh(service)

        logger.info('Provider %s added service %s', ctx.user_id, service.id)
        return service

    def update(
        self,
        ctx: CallerContext,
        service_id: int,
        name: str | None = None,
        duration_minutes: int | None = None,
        price: Decimal | None = None,
    ) -> Service:
        service = self._get_owned(ctx, service_id)
        validate_service_fields(name, duration_minutes, price)

        if name is not None:
            service.name = name.strip()
        if duration_minutes is not None:
            service.duration_minutes = duration_minutes
        if price is not None:
            service.price = price

        with store_guard(self.db):
            self.db.commit()
            self.db.refresh(service)
        return service

    def delete(self, ctx: CallerContext, service_id: int) -> None:
        service = self._get_owned(ctx, service_id)

        with store_guard(self.db):
            referenced = self.db.query(Appointment.id).filter(
                Appointment.service_id == service.id,
            ).first() is not None
        # Appointments are never deleted, so neither is a service they point at.
        if referenced:
            raise ConflictError(SERVICE_IN_USE_DETAIL, code='service_in_use')

        with store_guard(self.db, conflict_message=SERVICE_IN_USE_DETAIL, conflict_code='service_in_use'):
            self.db.delete(service)
            self.db.commit()
        logger.info('Provider %s removed service %s', ctx.user_id, service_id)
