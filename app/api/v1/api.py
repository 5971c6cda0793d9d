from fastapi import APIRouter

# Import modular packages directly
from app.api.v1.endpoints.schedule import router as schedule_router

api_router = APIRouter()

# Schedule module (classes, sessions, bookings and waitlists)
api_router.include_router(schedule_router, prefix="/schedule")
