"""
Services module for the scheduling engine

This module includes all service-related modules, which implement the business logic of the application.
Services interact with repositories, the unit of work and Redis (read cache only).
"""

# servicios disponibles
from app.services.capacity import capacity_service
from app.services.waitlist import waitlist_service
from app.services.booking import booking_service
from app.services.recurrence import recurrence_service
from app.services.schedule import class_service, class_session_service
from app.services.cache_service import CacheService

# Exportar servicios para acceso fácil
__all__ = [
    "capacity_service",
    "waitlist_service",
    "booking_service",
    "recurrence_service",
    "class_service",
    "class_session_service",
    "CacheService",
]
