"""
Application configuration
Read from environment variables (and an optional .env file)
"""
import logging
from decimal import Decimal

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Chalet Reservation API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # JWT
    SECRET_KEY: str = "your-secret-key-keep-it-secret"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Booking numbers
    BOOKING_NUMBER_PREFIX: str = "C"
    BOOKING_NUMBER_MAX_ATTEMPTS: int = 5

    # Deposit policy used when the catalog has no stored policy
    DEFAULT_DEPOSIT_TYPE: str = "percentage"
    DEFAULT_DEPOSIT_PERCENTAGE: Decimal = Decimal("30")
    DEFAULT_DEPOSIT_FIXED: Decimal = Decimal("100")

    # Realtime channel for operational dashboards
    EVENT_CHANNEL: str = "chalets"

    model_config = ConfigDict(env_file=".env", case_sensitive=True, extra="ignore")


settings = Settings()


def configure_logging(level: str = None) -> None:
    """Configure root logging once for the process"""
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
