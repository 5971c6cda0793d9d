from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import sessionmaker
from sqlalchemy.exc import SQLAlchemyError
import logging

from app.core.config import get_settings

logger = logging.getLogger(__name__)

settings_instance = get_settings()
db_url = str(settings_instance.SQLALCHEMY_DATABASE_URI)


def _display_url(url: str) -> str:
    """Oculta las credenciales de la URL para poder loguearla."""
    if '@' in url:
        scheme = url.split('://')[0]
        host_info = url.split('@')[1]
        return f"{scheme}://***@{host_info}"
    return url


def build_engine(url: str) -> Engine:
    """
    Crea el engine según el backend.

    PostgreSQL usa READ COMMITTED: cada sentencia ve lo confirmado por otras
    transacciones, y el bloqueo de fila de la sesión serializa las decisiones
    de aforo. SQLite se usa en local y en tests.
    """
    if url.startswith("sqlite"):
        return create_engine(
            url,
            echo=False,
            connect_args={"check_same_thread": False, "timeout": 30},
        )
    return create_engine(
        url,
        echo=False,
        pool_pre_ping=True,
        pool_size=10,
        max_overflow=20,
        pool_timeout=30,
        pool_recycle=180,
        connect_args={
            "connect_timeout": 10,
            "options": "-c statement_timeout=30000",
        },
        execution_options={
            "isolation_level": "READ COMMITTED",
        },
    )


engine = build_engine(db_url)
logger.info(f"Engine creado para {_display_url(db_url)}")

# Crear clase de sesión
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)


# Dependencia para obtener la sesión de DB
def get_db():
    db = SessionLocal()
    try:
        yield db
    except SQLAlchemyError as e:
        logger.error(f"Error de SQLAlchemy en la sesión: {e}", exc_info=True)
        db.rollback()
        raise
    finally:
        db.close()
