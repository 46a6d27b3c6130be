# app/config.py
from pydantic_settings import BaseSettings
from typing import Optional

class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./barbershop.db"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: str = "INFO"

    # Wall clock of the shop; slots are local time labels
    TIMEZONE: str = "America/Mexico_City"

    RESCHEDULE_LOCKOUT_MINUTES: int = 30
    MAX_RESCHEDULES: int = 1

    REMINDER_LEAD_MINUTES: int = 15
    # Polled once per window; each slot falls into exactly one run
    REMINDER_WINDOW_MINUTES: int = 1

    STRIPE_WEBHOOK_SECRET: Optional[str] = None

    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASS: Optional[str] = None
    SMTP_SENDER: str = "no-reply@barbershop.local"

    class Config:
        env_file = ".env"

settings = Settings()
