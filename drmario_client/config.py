import logging
import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API
    API_BASE_URL: str = "http://localhost:8080/api/v1"
    HEALTH_URL: str = "http://localhost:8080/health"  # outside the versioned base path
    REQUEST_TIMEOUT: float = 30.0  # seconds, applies to every request

    # Session persistence
    SESSION_DIR: str = os.path.join(os.path.expanduser("~"), ".drmario")
    TOKEN_KEY: str = "authToken"
    USER_KEY: str = "user"

    # Dashboard
    DASHBOARD_PARALLEL: bool = False

    # Logging
    LOG_LEVEL: str = "INFO"


settings = Settings()


def configure_logging(level: str | None = None) -> None:
    logging.basicConfig(
        level=(level or settings.LOG_LEVEL).upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
