import os
import logging
from datetime import timedelta
from pathlib import Path
from typing import List
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

current_file_path = Path(__file__).resolve()
root_dir = current_file_path.parent.parent
env_path = root_dir / ".env"

if env_path.exists():
    load_dotenv(dotenv_path=env_path)

DEFAULT_SECRET_KEY = "dev-secret-key-change-this"


def _env_bool(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


def _env_int(name: str, default: int) -> int:
    value = os.getenv(name)
    if value is None or value.strip() == "":
        return default
    return int(value)


class Config:
    def __init__(self) -> None:
        # Security
        self.SECRET_KEY = os.getenv("SECRET_KEY", DEFAULT_SECRET_KEY)
        self.ALGORITHM = os.getenv("ALGORITHM", "HS256")
        self.BCRYPT_ROUNDS = _env_int("BCRYPT_ROUNDS", 12)
        self.MIN_PASSWORD_LENGTH = _env_int("MIN_PASSWORD_LENGTH", 6)

        # Database
        self.DATABASE_URL = os.getenv("DATABASE_URL", "postgresql://postgres@localhost:5432/taskpilot")
        self.DB_POOL_TIMEOUT_SECONDS = _env_int("DB_POOL_TIMEOUT_SECONDS", 10)

        # OTP / sessions
        self.OTP_TTL_SIGNUP_SECONDS = _env_int("OTP_TTL_SIGNUP_SECONDS", 600)
        self.OTP_TTL_RESET_SECONDS = _env_int("OTP_TTL_RESET_SECONDS", 600)
        self.OTP_RESEND_COOLDOWN_SECONDS = _env_int("OTP_RESEND_COOLDOWN_SECONDS", 120)
        self.SESSION_TTL_DAYS = _env_int("SESSION_TTL_DAYS", 7)
        self.RESET_GRANT_TTL_MINUTES = _env_int("RESET_GRANT_TTL_MINUTES", 15)

        # Reminder scheduler
        self.REMINDER_SCAN_INTERVAL_SECONDS = _env_int("REMINDER_SCAN_INTERVAL_SECONDS", 60)
        self.REMINDER_TIMEZONE = os.getenv("REMINDER_TIMEZONE", "UTC")
        self.RUN_REMINDER_SCHEDULER = _env_bool("RUN_REMINDER_SCHEDULER", True)

        # Mail delivery
        self.MAIL_API_URL = os.getenv("MAIL_API_URL", "https://api.sendgrid.com/v3/mail/send")
        self.MAIL_API_KEY = os.getenv("MAIL_API_KEY")
        self.MAIL_FROM = os.getenv("MAIL_FROM", "no-reply@taskpilot.local")
        self.MAIL_TIMEOUT_SECONDS = _env_int("MAIL_TIMEOUT_SECONDS", 15)
        self.MAIL_DRY_RUN = _env_bool("MAIL_DRY_RUN", False)

        # App
        self.LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
        self.CORS_ORIGINS = os.getenv(
            "CORS_ORIGINS",
            "http://localhost:5173,http://localhost:3000,http://localhost",
        )

        if self.SECRET_KEY == DEFAULT_SECRET_KEY:
            logger.warning("SECRET_KEY not set, using the development fallback")

    @property
    def otp_ttl_signup(self) -> timedelta:
        return timedelta(seconds=self.OTP_TTL_SIGNUP_SECONDS)

    @property
    def otp_ttl_reset(self) -> timedelta:
        return timedelta(seconds=self.OTP_TTL_RESET_SECONDS)

    @property
    def otp_resend_cooldown(self) -> timedelta:
        return timedelta(seconds=self.OTP_RESEND_COOLDOWN_SECONDS)

    @property
    def session_ttl(self) -> timedelta:
        return timedelta(days=self.SESSION_TTL_DAYS)

    @property
    def reset_grant_ttl(self) -> timedelta:
        return timedelta(minutes=self.RESET_GRANT_TTL_MINUTES)

    @property
    def cors_origins(self) -> List[str]:
        return [origin.strip() for origin in self.CORS_ORIGINS.split(",") if origin.strip()]


config = Config()
