"""
Unidad de trabajo transaccional.

Las mutaciones del motor (reservar, cancelar, unirse/salir de la lista de
espera, promover) se expresan como una función `work(db)` que lee, toma el
bloqueo de la sesión de clase, revalida precondiciones y escribe. La unidad
hace un único commit al final; ningún paso intermedio confirma por su cuenta.

Si la base de datos aborta la unidad por contención (lock timeout, deadlock,
serialización, o una violación de unicidad producida por una inserción
concurrente) se hace rollback y se vuelve a ejecutar `work` una vez, de modo
que las precondiciones se evalúan de nuevo contra datos frescos. Un segundo
fallo se reporta como ConflictError.
"""
from typing import Callable, Optional, TypeVar
import logging

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import Session

from app.core.exceptions import ConflictError, SchedulingError

logger = logging.getLogger(__name__)

T = TypeVar("T")

CONTENTION_ERRORS = (OperationalError, IntegrityError)


def run_in_transaction(
    db: Session,
    work: Callable[[Session], T],
    *,
    name: Optional[str] = None,
    retries: int = 1,
) -> T:
    """
    Ejecuta `work(db)` como una unidad atómica y hace commit si todo va bien.

    Args:
        db: Sesión de base de datos
        work: Función que recibe la sesión y realiza todos los pasos de la unidad
        name: Nombre de la operación (para logs y contexto del error)
        retries: Reintentos ante contención (1 por defecto)

    Returns:
        Lo que devuelva `work`

    Raises:
        SchedulingError: Errores de dominio, propagados tras el rollback
        ConflictError: Si la contención persiste después de los reintentos
    """
    operation = name or getattr(work, "__name__", "unit_of_work")
    attempt = 0
    while True:
        try:
            result = work(db)
            db.commit()
            return result
        except SchedulingError:
            db.rollback()
            raise
        except CONTENTION_ERRORS as e:
            db.rollback()
            if attempt < retries:
                attempt += 1
                logger.warning(
                    f"Contención en '{operation}', reintento {attempt}/{retries} "
                    f"con precondiciones revalidadas: {e.__class__.__name__}"
                )
                continue
            logger.error(f"Contención persistente en '{operation}' tras {retries} reintento(s): {e}")
            raise ConflictError(
                "La operación entró en conflicto con otra concurrente; vuelve a intentarlo",
                operation=operation,
            ) from e
        except Exception:
            db.rollback()
            raise
