import os
from typing import Any, List, Optional, Union
from functools import lru_cache
import logging

from pydantic import AnyHttpUrl, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Configurar el logger
logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=True,
        extra="ignore"  # Permitir campos extra en .env
    )

    # Configuración básica
    API_V1_STR: str = "/api/v1"

    # Información del proyecto
    PROJECT_NAME: str = "GymSchedule"
    PROJECT_DESCRIPTION: str = "Motor de horarios, aforo y lista de espera para clases de gimnasio"
    VERSION: str = "0.1.0"

    # Debug mode
    DEBUG_MODE: bool = os.getenv("DEBUG_MODE", "False").lower() in ("true", "1", "t")
    LOG_TO_FILE: bool = os.getenv("LOG_TO_FILE", "False").lower() in ("true", "1", "t")

    # CORS
    BACKEND_CORS_ORIGINS: List[AnyHttpUrl] = []

    @field_validator("BACKEND_CORS_ORIGINS", mode='before')
    def assemble_cors_origins(cls, v: Union[str, List[str]]) -> List[str]:
        if isinstance(v, str) and not v.startswith("["):
            return [i.strip() for i in v.split(",") if i.strip()]
        elif isinstance(v, (list, str)):
            return v
        raise ValueError(v)

    # Base de datos
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./gymschedule.db")
    SQLALCHEMY_DATABASE_URI: Optional[str] = None

    @field_validator("DATABASE_URL", mode="before")
    def ensure_proper_url_format(cls, v: Optional[str]) -> str:
        """Asegura que DATABASE_URL use el prefijo postgresql:// esperado por SQLAlchemy."""
        if not v:
            return "sqlite:///./gymschedule.db"
        if v.startswith("postgres://"):
            logger.info("Corrigiendo formato de postgres:// a postgresql://")
            return "postgresql://" + v[len("postgres://"):]
        return v

    @field_validator("SQLALCHEMY_DATABASE_URI", mode="before")
    def assemble_db_connection(cls, v: Optional[str], info) -> Any:
        """Configura la URI de SQLAlchemy. Siempre prioriza DATABASE_URL."""
        if v:
            return v
        return info.data.get("DATABASE_URL")

    # Redis (opcional, solo para caché de lectura)
    REDIS_URL: Optional[str] = os.getenv("REDIS_URL")
    AVAILABILITY_CACHE_TTL_SECONDS: int = 30

    # Motor de horarios
    RECURRENCE_HORIZON_DAYS: int = 90
    # Si es True, la promoción desde la lista de espera vuelve a consultar el derecho de acceso
    WAITLIST_PROMOTION_CHECKS_ENTITLEMENT: bool = False

    # Tareas programadas
    ENABLE_SCHEDULER: bool = os.getenv("ENABLE_SCHEDULER", "True").lower() in ("true", "1", "t")

    @field_validator("RECURRENCE_HORIZON_DAYS")
    def validate_horizon(cls, v: int) -> int:
        if v < 1:
            raise ValueError("RECURRENCE_HORIZON_DAYS debe ser al menos 1")
        return v


@lru_cache()
def get_settings() -> Settings:
    """Obtiene la configuración cacheada de la aplicación."""
    return Settings()


settings = get_settings()
