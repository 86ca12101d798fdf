from functools import lru_cache
from typing import Optional
from urllib.parse import quote_plus

from pydantic import model_validator
from pydantic_settings import BaseSettings

DEV_JWT_SECRET = "dev-secret-key-change-in-production"
SEARCH_PATH = "godplan,public"


class Settings(BaseSettings):
    # App
    APP_NAME: str = "GodPlan API"
    ENVIRONMENT: str = "development"
    LOG_LEVEL: Optional[str] = None
    PORT: int = 8080

    # Database (DATABASE_URL takes precedence over the DB_* tuple)
    DATABASE_URL: Optional[str] = None
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_USER: str = "postgres"
    DB_PASSWORD: str = ""
    DB_NAME: str = "godplan"
    DB_SSLMODE: str = "disable"
    DB_SSLROOTCERT: Optional[str] = None

    # Security
    JWT_SECRET: str = DEV_JWT_SECRET
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24  # 24 hours
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    TOKEN_LEEWAY_SECONDS: int = 0

    # Office geofence
    OFFICE_LATITUDE: float = -6.2088
    OFFICE_LONGITUDE: float = 106.8456
    ATTENDANCE_RADIUS_METERS: float = 100.0
    ENABLE_LOCATION_CHECK: bool = True

    # Frontend origin allowed by CORS
    FRONTEND_URL: Optional[str] = None

    class Config:
        env_file = ".env"
        case_sensitive = True
        frozen = True
        extra = "ignore"

    @model_validator(mode="after")
    def _check_production_safety(self):
        if self.ATTENDANCE_RADIUS_METERS <= 0:
            raise ValueError("ATTENDANCE_RADIUS_METERS must be positive")
        if not 0 <= self.TOKEN_LEEWAY_SECONDS <= 60:
            raise ValueError("TOKEN_LEEWAY_SECONDS must be between 0 and 60")
        if self.is_production and self.JWT_SECRET == DEV_JWT_SECRET:
            raise ValueError("JWT_SECRET must be set to a non-default value in production")
        return self

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.strip().lower() == "production"

    @property
    def database_url(self) -> str:
        """SQLAlchemy URL for the configured database, with the godplan search path."""
        if self.DATABASE_URL:
            url = self.DATABASE_URL
            # Hosted providers hand out postgres:// but SQLAlchemy + psycopg3 needs postgresql+psycopg://
            if url.startswith("postgres://"):
                url = "postgresql+psycopg://" + url[len("postgres://"):]
            elif url.startswith("postgresql://"):
                url = "postgresql+psycopg://" + url[len("postgresql://"):]
        else:
            url = (
                f"postgresql+psycopg://{quote_plus(self.DB_USER)}:{quote_plus(self.DB_PASSWORD)}"
                f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}?sslmode={self.DB_SSLMODE}"
            )
            if self.DB_SSLROOTCERT:
                url += f"&sslrootcert={quote_plus(self.DB_SSLROOTCERT)}"

        if url.startswith("postgresql") and "search_path" not in url and "options" not in url:
            sep = "&" if "?" in url else "?"
            url += f"{sep}options=-csearch_path%3D{SEARCH_PATH}"
        return url


@lru_cache
def get_settings() -> Settings:
    return Settings()
