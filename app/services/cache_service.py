import json
import logging
from typing import Any, Optional, TypeVar, Type, Callable
from datetime import datetime, date, time

from pydantic import BaseModel
from redis.asyncio import Redis
from redis.exceptions import RedisError

logger = logging.getLogger(__name__)

T = TypeVar('T', bound=BaseModel)


# Serializador JSON personalizado para manejar objetos datetime
def json_serializer(obj):
    """Serializador JSON personalizado que maneja datetime, date y time."""
    if isinstance(obj, (datetime, date, time)):
        return obj.isoformat()
    raise TypeError(f"Tipo no serializable: {type(obj)}")


def availability_cache_key(gym_id: int, session_id: int) -> str:
    return f"schedule:gym:{gym_id}:session:{session_id}:availability"


class CacheService:
    """
    Servicio genérico para cachear objetos usando Redis.
    Permite cachear y recuperar modelos Pydantic.

    Solo se usa para lecturas de visualización; las decisiones de aforo
    siempre se toman contra la base de datos.
    """

    @staticmethod
    async def get_or_set(
        redis_client: Optional[Redis],
        cache_key: str,
        db_fetch_func: Callable,
        model_class: Type[T],
        expiry_seconds: int = 300,  # 5 minutos por defecto
    ) -> Any:
        """
        Obtiene un objeto de Redis o lo establece si no existe.

        Args:
            redis_client: Cliente Redis a usar (None = sin caché)
            cache_key: Clave única para identificar el objeto en caché
            db_fetch_func: Función asíncrona que obtiene los datos de la BD
            model_class: Clase del modelo Pydantic que se debe devolver
            expiry_seconds: Tiempo de expiración en segundos

        Returns:
            El objeto solicitado
        """
        if not redis_client:
            logger.debug("Cliente Redis no disponible, ejecutando consulta sin caché")
            return await db_fetch_func()

        try:
            cached_data = await redis_client.get(cache_key)
            if cached_data:
                logger.debug(f"Cache hit para clave: {cache_key}")
                try:
                    data = json.loads(cached_data)
                    return model_class.model_validate(data)
                except ValueError as e:
                    # Incluye JSONDecodeError y ValidationError de pydantic
                    logger.warning(f"Ignorando datos en caché corruptos para {cache_key}: {e}")
                    await redis_client.delete(cache_key)
        except RedisError as e:
            logger.error(f"Error al leer del caché: {str(e)}", exc_info=True)

        logger.debug(f"Cache miss para clave: {cache_key}")
        data = await db_fetch_func()

        if data is not None:
            try:
                json_data = data.model_dump()
                await redis_client.set(
                    cache_key, json.dumps(json_data, default=json_serializer), ex=expiry_seconds
                )
            except RedisError as e:
                logger.error(f"Error al guardar en caché {cache_key}: {str(e)}", exc_info=True)

        return data

    @staticmethod
    async def delete_key(redis_client: Optional[Redis], cache_key: str) -> int:
        """Elimina una clave concreta. Devuelve el número de claves eliminadas"""
        if not redis_client:
            return 0
        try:
            return await redis_client.delete(cache_key)
        except RedisError as e:
            logger.error(f"Error al eliminar la clave {cache_key}: {str(e)}", exc_info=True)
            return 0

    @staticmethod
    async def delete_pattern(redis_client: Optional[Redis], pattern: str) -> int:
        """
        Elimina todas las claves que coinciden con un patrón.
        Útil para invalidación de caché después de modificaciones.

        Args:
            redis_client: Cliente Redis a usar
            pattern: Patrón de claves a eliminar (ej: "schedule:gym:4:*")

        Returns:
            int: Número de claves eliminadas
        """
        if not redis_client:
            return 0

        try:
            keys = []
            async for key in redis_client.scan_iter(match=pattern):
                keys.append(key)

            if keys:
                count = await redis_client.delete(*keys)
                logger.info(f"Eliminadas {count} claves con patrón: {pattern}")
                return count
            return 0

        except RedisError as e:
            logger.error(f"Error al eliminar claves con patrón {pattern}: {str(e)}", exc_info=True)
            return 0

    @staticmethod
    async def invalidate_session_availability(redis_client: Optional[Redis], gym_id: int, *session_ids: int) -> None:
        """Invalida la disponibilidad cacheada de las sesiones cuya ocupación cambió"""
        for session_id in session_ids:
            await CacheService.delete_key(redis_client, availability_cache_key(gym_id, session_id))
