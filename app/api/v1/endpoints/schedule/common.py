"""
Common imports and dependencies for the schedule module.

This module centralizes shared imports and dependencies used across
all schedule-related endpoints: database access, tenant resolution, the
optional Redis client, and the scheduling services. Importing from this
module keeps the schedule API endpoints consistent.
"""

from typing import Any, List, Optional
from datetime import datetime
from fastapi import APIRouter, Depends, Query, Path, Body, status
from sqlalchemy.orm import Session
from redis.asyncio import Redis

from app.core.tenant import verify_gym_access, get_current_member_id
from app.db.session import get_db
from app.db.redis_client import get_redis_client
from app.schemas.gym import GymSchema
from app.models.schedule import ClassSessionStatus
from app.services.cache_service import CacheService
from app.services.capacity import capacity_service
from app.services.booking import booking_service
from app.services.waitlist import waitlist_service
from app.services.recurrence import recurrence_service
from app.services.schedule import class_service, class_session_service
