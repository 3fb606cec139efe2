import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from agenda.core import config
from agenda.core.errors import BookingError
from agenda.database import Base, engine, ensure_appointment_schema, ensure_availability_schema, ensure_user_schema
from agenda.models import appointment, availability, service, user  # noqa: F401
from agenda.routes import appointment_routes, auth_routes, availability_routes, provider_routes, service_routes

logger = logging.getLogger(__name__)

config.validate_runtime_config()

app = FastAPI(title='Agenda API')

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOW_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)


@app.exception_handler(BookingError)
def handle_booking_error(request: Request, exc: BookingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error('%s %s failed: %s', request.method, request.url.path, exc.message)
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.message, 'code': exc.code})


@app.on_event('startup')
def initialize_database() -> None:
    try:
        Base.metadata.create_all(bind=engine)
        ensure_user_schema()
        ensure_availability_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and database credentials.')


@app.get('/')
def root():
    return {'status': 'Agenda API Running'}


app.include_router(auth_routes.router, prefix='/auth')
app.include_router(availability_routes.router, prefix='/availability')
app.include_router(service_routes.router, prefix='/services')
app.include_router(provider_routes.router, prefix='/providers')
app.include_router(appointment_routes.router, prefix='/appointments')
