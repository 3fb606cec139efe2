import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import declarative_base, sessionmaker

from agenda.core import config
from agenda.core.errors import TransientStoreError
from agenda.scheduling.store import STORE_UNAVAILABLE_DETAIL


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./agenda.db")

connect_args = {"check_same_thread": False} if DATABASE_URL.startswith("sqlite") else {}
engine = create_engine(DATABASE_URL, echo=config.SQL_ECHO, connect_args=connect_args)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_availability_schema_checked = False
_user_schema_checked = False
_appointment_schema_checked = False

# Partial index: only pending/confirmed rows hold a slot, so a rejected or
# cancelled appointment never blocks a new booking at the same start.
ACTIVE_SLOT_INDEX_SQL = (
    "CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_active_slot "
    "ON appointments(provider_id, start_time) "
    "WHERE status IN ('pending', 'confirmed')"
)


def ensure_availability_schema() -> None:
    global _availability_schema_checked

    if _availability_schema_checked:
        return

    with _schema_lock:
        if _availability_schema_checked:
            return

        inspector = inspect(engine)

        if 'availability_windows' not in inspector.get_table_names():
            _availability_schema_checked = True
            return

        with engine.begin() as connection:
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_availability_provider_weekday '
                    'ON availability_windows(provider_id, weekday)'
                )
            )

        _availability_schema_checked = True


def ensure_user_schema() -> None:
    global _user_schema_checked

    if _user_schema_checked:
        return

    with _schema_lock:
        if _user_schema_checked:
            return

        inspector = inspect(engine)

        if 'users' not in inspector.get_table_names():
            _user_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('users')}
        if 'specialty' not in existing_columns:
            with engine.begin() as connection:
                connection.execute(text('ALTER TABLE users ADD COLUMN specialty VARCHAR'))

        _user_schema_checked = True


def ensure_appointment_schema() -> None:
    global _appointment_schema_checked

    if _appointment_schema_checked:
        return

    with _schema_lock:
        if _appointment_schema_checked:
            return

        inspector = inspect(engine)

        if 'appointments' not in inspector.get_table_names():
            _appointment_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('appointments')}
        migration_steps = [
            ('created_at', 'ALTER TABLE appointments ADD COLUMN created_at TIMESTAMP'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(text(ACTIVE_SLOT_INDEX_SQL))
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_provider_status ON appointments(provider_id, status)')
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_client_start ON appointments(client_id, start_time)')
            )

        _appointment_schema_checked = True


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_database_ready() -> None:
    try:
        ensure_user_schema()
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError as exc:
        raise TransientStoreError(STORE_UNAVAILABLE_DETAIL) from exc
