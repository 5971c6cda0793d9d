"""
Schedule Module - API Endpoints

This module organizes the different components of the class scheduling engine:
- Class definitions and their booking policy, plus recurrence rules that
  expand into concrete sessions (/classes)
- Class sessions: ad hoc creation, listing, availability, capacity
  overrides and administrative cancellation (/sessions)
- Member bookings: self-service and staff booking, cancellation and
  post-session attendance reconciliation (/bookings)
- FIFO waitlists with automatic promotion when a slot frees (/waitlist)

Every route is scoped to the gym given in the X-Gym-ID header. Self-service
routes act on behalf of the member given in the X-Member-ID header.
"""

from fastapi import APIRouter

from app.api.v1.endpoints.schedule import (
    classes,
    sessions,
    bookings,
    waitlist
)

router = APIRouter()

# Rutas para clases y sesiones
router.include_router(classes.router, prefix="/classes", tags=["classes"])
router.include_router(sessions.router, prefix="/sessions", tags=["sessions"])

# Rutas para reservas y lista de espera
router.include_router(bookings.router, prefix="/bookings", tags=["bookings"])
router.include_router(waitlist.router, prefix="/waitlist", tags=["waitlist"])
