"""
Cliente Redis con connection pooling (redis.asyncio).

Redis es opcional en este servicio: solo respalda la caché de lectura de
disponibilidad de sesiones. Si REDIS_URL no está configurada o el pool no se
puede inicializar, las dependencias entregan `None` y los servicios consultan
directamente la base de datos.

Para usar en endpoints:
```python
@router.get("/sessions/{session_id}/availability")
async def read_availability(redis_client: Optional[Redis] = Depends(get_redis_client)):
    ...
```
"""

from typing import AsyncIterator, Optional
import logging

from redis.asyncio import ConnectionPool, Redis

from app.core.config import get_settings

logger = logging.getLogger(__name__)

# Declaración global del pool de conexiones
REDIS_POOL: Optional[ConnectionPool] = None


async def initialize_redis_pool() -> Optional[ConnectionPool]:
    """
    Inicializa el pool de conexiones a Redis.
    Debe llamarse una sola vez al iniciar la aplicación.
    """
    global REDIS_POOL
    if REDIS_POOL is not None:
        return REDIS_POOL

    redis_url = (get_settings().REDIS_URL or "").split("#")[0].strip()
    if not redis_url:
        logger.info("REDIS_URL no configurada; la caché de disponibilidad queda deshabilitada.")
        return None

    logger.info("Inicializando connection pool para Redis...")
    REDIS_POOL = ConnectionPool.from_url(
        redis_url,
        encoding="utf-8",
        decode_responses=True,
        max_connections=50,
        socket_keepalive=True,
        socket_timeout=5,
        health_check_interval=30,
        retry_on_timeout=True,
    )
    logger.info("Connection pool de Redis inicializado correctamente.")
    return REDIS_POOL


async def get_redis_client() -> AsyncIterator[Optional[Redis]]:
    """
    Dependencia FastAPI que entrega un cliente Redis por request (o None).

    Cada request usa su propio cliente sobre el pool compartido y lo cierra al
    terminar para devolver la conexión al pool.
    """
    if REDIS_POOL is None:
        try:
            await initialize_redis_pool()
        except Exception as e:
            logger.error(f"Error al inicializar connection pool de Redis: {e}", exc_info=True)

    if REDIS_POOL is None:
        yield None
        return

    client = Redis(connection_pool=REDIS_POOL)
    try:
        yield client
    finally:
        try:
            await client.close()
        except Exception as e:
            logger.warning(f"Error cerrando cliente Redis: {e}")


async def close_redis_client() -> None:
    """Cierra el pool de conexiones Redis al finalizar la aplicación."""
    global REDIS_POOL

    if REDIS_POOL:
        logger.info("Cerrando connection pool de Redis...")
        await REDIS_POOL.disconnect()
        REDIS_POOL = None
        logger.info("Connection pool de Redis cerrado.")
