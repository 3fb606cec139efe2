import os
from datetime import datetime, time
from decimal import Decimal

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from agenda.database import Base  # noqa: E402
from agenda.models.appointment import Appointment, AppointmentStatus  # noqa: E402
from agenda.models.availability import AvailabilityWindow  # noqa: E402
from agenda.models.service import Service  # noqa: E402
from agenda.models.user import Role, User  # noqa: E402
from agenda.scheduling.context import CallerContext  # noqa: E402

# 2024-01-01 is a Monday.
MONDAY = datetime(2024, 1, 1).date()
MONDAY_WEEKDAY = 1


class RecordingNotifier:
    def __init__(self):
        self.sent: list[tuple[int, str]] = []

    def notify(self, recipient_id: int, summary: str) -> None:
        self.sent.append((recipient_id, summary))


class FailingNotifier:
    def notify(self, recipient_id: int, summary: str) -> None:
        raise RuntimeError('gateway down')


@pytest.fixture
def db():
    engine = create_engine(
        'sqlite:///:memory:',
        connect_args={'check_same_thread': False},
        poolclass=StaticPool,
    )
    testing_session_local = sessionmaker(autocommit=False, autoflush=False, bind=engine)
    Base.metadata.create_all(bind=engine)

    session = testing_session_local()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


def add_user(db, email: str, role: Role, name: str | None = None) -> User:
    user = User(email=email, name=name or email.split('@')[0], role=role)
    db.add(user)
    db.commit()
    db.refresh(user)
    return user


def ctx_for(user: User) -> CallerContext:
    return CallerContext(user_id=user.id, role=Role(user.role))


def add_appointment(db, provider: User, client: User, service: Service, start: datetime, status: AppointmentStatus):
    appointment = Appointment(
        provider_id=provider.id,
        client_id=client.id,
        service_id=service.id,
        start_time=start,
        status=status,
    )
    db.add(appointment)
    db.commit()
    db.refresh(appointment)
    return appointment


@pytest.fixture
def provider(db) -> User:
    return add_user(db, 'provider@example.com', Role.PROVIDER, name='Pat Provider')


@pytest.fixture
def other_provider(db) -> User:
    return add_user(db, 'other.provider@example.com', Role.PROVIDER)


@pytest.fixture
def client(db) -> User:
    return add_user(db, 'client.a@example.com', Role.CLIENT, name='Client A')


@pytest.fixture
def other_client(db) -> User:
    return add_user(db, 'client.b@example.com', Role.CLIENT, name='Client B')


@pytest.fixture
def service(db, provider) -> Service:
    haircut = Service(provider_id=provider.id, name='Haircut', duration_minutes=30, price=Decimal('40.00'))
    db.add(haircut)
    db.commit()
    db.refresh(haircut)
    return haircut


@pytest.fixture
def monday_window(db, provider) -> AvailabilityWindow:
    window = AvailabilityWindow(
        provider_id=provider.id,
        weekday=MONDAY_WEEKDAY,
        start_time=time(9, 0),
        end_time=time(17, 0),
    )
    db.add(window)
    db.commit()
    db.refresh(window)
    return window


@pytest.fixture
def notifier() -> RecordingNotifier:
    return RecordingNotifier()
