import os
from dotenv import load_dotenv
from threading import Lock

from sqlalchemy import create_engine, inspect, text
from sqlalchemy.orm import declarative_base, sessionmaker


load_dotenv()
DATABASE_URL = os.getenv("DATABASE_URL")

engine = create_engine(DATABASE_URL)

SessionLocal = sessionmaker(
    autocommit=False,
    autoflush=False,
    bind=engine,
)

Base = declarative_base()

_schema_lock = Lock()
_practice_schema_checked = False
_appointment_schema_checked = False


def get_db():
    db = SessionLocal()
    try:
        yield db
    finally:
        db.close()


def ensure_practice_schema() -> None:
    global _practice_schema_checked

    if _practice_schema_checked:
        return

    with _schema_lock:
        if _practice_schema_checked:
            return

        inspector = inspect(engine)

        if 'practices' not in inspector.get_table_names():
            _practice_schema_checked = True
            return

        existing_columns = {column['name'] for column in inspector.get_columns('practices')}
        migration_steps = [
            ('business_hours', 'ALTER TABLE practices ADD COLUMN business_hours JSON'),
            ('webhook_url', 'ALTER TABLE practices ADD COLUMN webhook_url VARCHAR'),
            ('webhook_enabled', 'ALTER TABLE practices ADD COLUMN webhook_enabled BOOLEAN DEFAULT FALSE'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))

        _practice_schema_checked = True


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
            ('duration_minutes', 'ALTER TABLE appointments ADD COLUMN duration_minutes INTEGER DEFAULT 30'),
            ('ai_booked', 'ALTER TABLE appointments ADD COLUMN ai_booked BOOLEAN DEFAULT FALSE'),
            ('notes', 'ALTER TABLE appointments ADD COLUMN notes VARCHAR'),
            ('recurring_appointment_id', 'ALTER TABLE appointments ADD COLUMN recurring_appointment_id INTEGER'),
        ]

        with engine.begin() as connection:
            for column_name, statement in migration_steps:
                if column_name not in existing_columns:
                    connection.execute(text(statement))
            connection.execute(
                text(
                    'CREATE UNIQUE INDEX IF NOT EXISTS uq_appointments_patient_slot '
                    'ON appointments(practice_id, patient_id, date, time)'
                )
            )
            connection.execute(
                text('CREATE INDEX IF NOT EXISTS idx_appointments_practice_date ON appointments(practice_id, date)')
            )

        _appointment_schema_checked = True
