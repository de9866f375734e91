import os

from dotenv import load_dotenv


load_dotenv()


def _get_bool(value: str | None, default: bool = False) -> bool:
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_list(value: str | None, default: list[str]) -> list[str]:
    if not value:
        return default
    return [item.strip() for item in value.split(",") if item.strip()]

APP_ENV = os.getenv("APP_ENV", "development")

CORS_ALLOWED_ORIGINS = _get_list(os.getenv("CORS_ALLOWED_ORIGINS"), ["http://localhost:5173"])

PRACTICE_TIMEZONE = os.getenv("PRACTICE_TIMEZONE", "Europe/Berlin")

DEFAULT_APPOINTMENT_DURATION_MINUTES = int(os.getenv("DEFAULT_APPOINTMENT_DURATION_MINUTES", "30"))
AVAILABLE_SLOT_INCREMENT_MINUTES = int(os.getenv("AVAILABLE_SLOT_INCREMENT_MINUTES", "30"))
RECURRENCE_HORIZON_DAYS = int(os.getenv("RECURRENCE_HORIZON_DAYS", "28"))

# weekdays_only: Saturday and Sunday are never bookable.
# business_hours: days marked closed in the practice's hours are not bookable.
WEEKEND_BOOKING_POLICY = os.getenv("WEEKEND_BOOKING_POLICY", "weekdays_only")

WEBHOOK_ENABLED = _get_bool(os.getenv("WEBHOOK_ENABLED"), default=True)
WEBHOOK_TIMEOUT_SECONDS = float(os.getenv("WEBHOOK_TIMEOUT_SECONDS", "10"))

TELEPHONY_WEBHOOK_SECRET = os.getenv("TELEPHONY_WEBHOOK_SECRET", "")

JWT_SECRET_KEY = os.getenv("JWT_SECRET_KEY", "change-me")
JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
JWT_EXPIRES_MINUTES = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))


def validate_runtime_config() -> None:
    if APP_ENV.lower() == "production" and JWT_SECRET_KEY == "change-me":
        raise RuntimeError("JWT_SECRET_KEY must be set in production.")

    if APP_ENV.lower() == "production" and not TELEPHONY_WEBHOOK_SECRET:
        raise RuntimeError("TELEPHONY_WEBHOOK_SECRET must be set in production.")

    if WEEKEND_BOOKING_POLICY not in {"weekdays_only", "business_hours"}:
        raise RuntimeError("WEEKEND_BOOKING_POLICY must be 'weekdays_only' or 'business_hours'.")
