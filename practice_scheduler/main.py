import logging

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy.exc import SQLAlchemyError

from practice_scheduler.core import config
from practice_scheduler.database import Base, engine, ensure_appointment_schema, ensure_practice_schema
from practice_scheduler.models import appointment, call_records, patient, practice, recurring_appointment  # noqa: F401
from practice_scheduler.routes import appointment_routes, practice_routes, recurring_routes, telephony_routes
from practice_scheduler.scheduling.errors import SchedulingError

app = FastAPI()

app.add_middleware(
    CORSMiddleware,
    allow_origins=config.CORS_ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=['*'],
    allow_headers=['*'],
)

logger = logging.getLogger(__name__)


@app.on_event('startup')
def initialize_database() -> None:
    config.validate_runtime_config()
    try:
        Base.metadata.create_all(bind=engine)
        ensure_practice_schema()
        ensure_appointment_schema()
    except SQLAlchemyError:
        logger.exception('Database initialization failed. Check DATABASE_URL and Postgres credentials.')


@app.exception_handler(SchedulingError)
def handle_scheduling_error(request: Request, exc: SchedulingError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.warning('%s %s failed: %s', request.method, request.url.path, exc.detail)
    return JSONResponse(status_code=exc.status_code, content={'detail': exc.detail})


@app.get('/')
def root():
    return {'status': 'Practice Scheduler API Running'}


app.include_router(appointment_routes.router, prefix='/appointments')
app.include_router(recurring_routes.router, prefix='/recurring')
app.include_router(practice_routes.router, prefix='/practice')
app.include_router(telephony_routes.router, prefix='/telephony')
