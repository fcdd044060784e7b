"""
Settings for the SOS dispatch service.
Uses pydantic-settings so every value can be overridden from the environment or a .env file.
"""

from typing import Optional

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Application settings loaded from environment variables.
    """

    APP_NAME: str = "SOS Dispatch"
    APP_VERSION: str = "0.1.0"
    LOG_LEVEL: str = "INFO"

    DATABASE_URL: str = "sqlite:///./dispatch.db"
    SQL_ECHO: bool = False
    SEED_DEMO_DATA: bool = False

    # Dispatch policy
    REQUEST_TTL_SECONDS: int = 300
    SEARCH_RADIUS_METERS: float = 20000.0
    MAX_REASSIGNMENTS: Optional[int] = None  # None = bounded only by the responder pool
    SWEEP_INTERVAL_SECONDS: int = 15

    # Outbound SMS / OTP: "console" logs instead of sending, "twilio" uses the REST API
    SMS_PROVIDER: str = "console"
    OTP_PROVIDER: str = "console"
    TWILIO_ACCOUNT_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_MESSAGING_SERVICE_SID: Optional[str] = None
    TWILIO_VERIFY_SERVICE_SID: Optional[str] = None
    HTTP_TIMEOUT_SECONDS: float = 5.0

    class Config:
        env_file = ".env"
        case_sensitive = True
        extra = "ignore"


settings = Settings()
