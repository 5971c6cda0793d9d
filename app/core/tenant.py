"""
Dependencias de tenant (gimnasio) y de miembro para los endpoints.

El gimnasio se identifica con el header X-Gym-ID. El miembro que actúa en
las rutas de autoservicio llega en X-Member-ID: la autenticación la resuelve
un gateway delante de este servicio.
"""
from fastapi import Header, HTTPException, Depends, status
from sqlalchemy.orm import Session
from typing import Optional
import logging

from redis.asyncio import Redis

from app.db.session import get_db
from app.db.redis_client import get_redis_client
from app.models.gym import Gym
from app.schemas.gym import GymSchema
from app.services.cache_service import CacheService

logger = logging.getLogger("tenant_verification")

GYM_DETAILS_CACHE_TTL_SECONDS = 300


async def get_tenant_id(
    x_gym_id: Optional[str] = Header(None, alias="X-Gym-ID")
) -> Optional[int]:
    """
    Obtiene el ID del tenant (gimnasio) únicamente del header X-Gym-ID.
    """
    if x_gym_id:
        try:
            return int(x_gym_id)
        except (ValueError, TypeError):
            logger.warning(f"Formato inválido para X-Gym-ID: {x_gym_id}")
            return None
    return None


async def get_current_gym(
    db: Session = Depends(get_db),
    tenant_id: Optional[int] = Depends(get_tenant_id),
    redis_client: Optional[Redis] = Depends(get_redis_client)
) -> Optional[GymSchema]:
    """
    Obtiene el GymSchema actual basado en el tenant ID, usando caché Redis.
    Devuelve None si no se proporciona tenant_id o si el gym no existe.
    """
    if not tenant_id:
        return None

    async def db_fetch():
        gym_db = db.query(Gym).filter(Gym.id == tenant_id).first()
        return GymSchema.model_validate(gym_db) if gym_db else None

    gym_schema = await CacheService.get_or_set(
        redis_client=redis_client,
        cache_key=f"gym_details:{tenant_id}",
        db_fetch_func=db_fetch,
        model_class=GymSchema,
        expiry_seconds=GYM_DETAILS_CACHE_TTL_SECONDS,
    )

    if not gym_schema:
        logger.warning(f"El gimnasio con ID {tenant_id} no existe.")
    return gym_schema


async def verify_gym_access(
    current_gym: Optional[GymSchema] = Depends(get_current_gym),
    x_gym_id: Optional[str] = Header(None, alias="X-Gym-ID")
) -> GymSchema:
    """
    Exige un gimnasio válido y activo en el header X-Gym-ID.
    """
    if not x_gym_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Se requiere el header X-Gym-ID"
        )
    if not current_gym:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail=f"Gimnasio {x_gym_id} no encontrado"
        )
    if current_gym.is_active is False:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="El gimnasio no está activo"
        )
    return current_gym


async def get_current_member_id(
    x_member_id: Optional[str] = Header(None, alias="X-Member-ID")
) -> int:
    """ID del miembro que realiza la operación de autoservicio."""
    if not x_member_id:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Se requiere el header X-Member-ID"
        )
    try:
        return int(x_member_id)
    except (ValueError, TypeError):
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Member-ID debe ser un entero"
        )
