"""Accounts and the public provider directory."""

import logging

from sqlalchemy import exists, or_
from sqlalchemy.orm import Session

from agenda.core.errors import ConflictError, ValidationError
from agenda.models.service import Service
from agenda.models.user import Role, User
from agenda.scheduling.store import store_guard

logger = logging.getLogger(__name__)

ALREADY_REGISTERED_DETAIL = 'This account is already registered.'


def normalize_email(email: str) -> str:
    return email.strip().lower()


class Directory:
    def __init__(self, db: Session):
        self.db = db

    def find_by_email(self, email: str) -> User | None:
        with store_guard(self.db):
            return self.db.query(User).filter(User.email == normalize_email(email)).first()

    def register(
        self,
        email: str,
        name: str,
        role: Role,
        phone: str | None = None,
        specialty: str | None = None,
    ) -> User:
        """Record the profile of a signed-in identity as a client or a provider.

        The email comes from the verified token, never from the request body.
        """
        email = normalize_email(email)
        if not email:
            raise ValidationError('Email is required.')
        if not name or not name.strip():
            raise ValidationError('Name is required.')

        try:
            role = Role(role)
        except ValueError:
            raise ValidationError(f'Unknown role: {role}.') from None
        if self.find_by_email(email) is not None:
            raise ConflictError(ALREADY_REGISTERED_DETAIL, code='already_registered')

        user = User(
            email=email,
            name=name.strip(),
            phone=phone,
            role=role,
            specialty=specialty if role == Role.PROVIDER else None,
        )
        # Two first sign-ins racing for one email meet on the unique index.
        with store_guard(self.db, conflict_message=ALREADY_REGISTERED_DETAIL, conflict_code='already_registered'):
            self.db.add(user)
            self.db.commit()
            self.db.refresh(user)

        logger.info('Registered user %s as %s', user.id, role.value)
        return user

    def providers(self, search: str | None = None) -> list[tuple[User, list[Service]]]:
        """Providers ordered by name, each with its services.

        ``search`` matches the provider's name, specialty or any service name,
        case-insensitively.
        """
        with store_guard(self.db):
            query = self.db.query(User).filter(User.role == Role.PROVIDER)
            term = (search or '').strip()
            if term:
                pattern = f'%{term}%'
                offers_match = exists().where(
                    Service.provider_id == User.id,
                    Service.name.ilike(pattern),
                )
                query = query.filter(
                    or_(User.name.ilike(pattern), User.specialty.ilike(pattern), offers_match)
                )
            providers = query.order_by(User.name.asc(), User.id.asc()).all()

            services_by_provider: dict[int, list[Service]] = {provider.id: [] for provider in providers}
            if providers:
                services = self.db.query(Service).filter(
                    Service.provider_id.in_(list(services_by_provider)),
                ).order_by(Service.name.asc()).all()
                for service in services:
                    services_by_provider[service.provider_id].append(service)

        return [(provider, services_by_provider[provider.id]) for provider in providers]
