from app.api.v1.endpoints.schedule.common import *
from app.schemas.schedule import (
    ClassSession as ClassSessionSchema,
    ClassSessionCreate,
    SessionAvailability,
    SessionCapacityUpdate,
    SessionCancel,
    Booking as BookingSchema,
)

router = APIRouter()


@router.get("", response_model=List[ClassSessionSchema])
async def get_sessions(
    class_id: Optional[int] = Query(None, description="Only sessions of this class"),
    start_date: Optional[datetime] = Query(None, description="Range start; naive values are gym-local. Defaults to now"),
    end_date: Optional[datetime] = Query(None, description="Range end; naive values are gym-local"),
    session_status: Optional[ClassSessionStatus] = Query(None, alias="status"),
    skip: int = 0,
    limit: int = 100,
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """
    List Class Sessions

    Lists the gym's sessions ordered by start time. Without a date range it
    returns upcoming sessions.

    Returns:
        List[ClassSessionSchema]: Sessions matching the filters.
    """
    return class_session_service.get_sessions(
        db, gym_id=current_gym.id, class_id=class_id, start_date=start_date,
        end_date=end_date, status=session_status, skip=skip, limit=limit
    )


@router.post("", response_model=ClassSessionSchema, status_code=status.HTTP_201_CREATED)
async def create_session(
    session_data: ClassSessionCreate = Body(...),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """
    Create an Ad Hoc Session

    Creates a single session of a class. `end_time` defaults to
    `start_time + class duration`. Naive datetimes are interpreted in the
    gym's timezone and stored in UTC.

    Raises:
        404: Class not found in this gym.
        409: The class already has a session at that start time.
        422: end_time is not after start_time.
    """
    return class_session_service.create_session(db, session_data=session_data, gym_id=current_gym.id)


@router.get("/{session_id}", response_model=ClassSessionSchema)
async def get_session(
    session_id: int = Path(..., description="ID of the session"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """Get a Class Session"""
    return class_session_service.get_session(db, session_id=session_id, gym_id=current_gym.id)


@router.get("/{session_id}/availability", response_model=SessionAvailability)
async def get_session_availability(
    session_id: int = Path(..., description="ID of the session"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Get Session Availability

    Returns capacity, confirmed bookings, free slots and waitlist length.
    This view may be served from a short-lived cache; booking decisions never use it.
    """
    return await capacity_service.get_availability_cached(
        db, session_id=session_id, gym_id=current_gym.id, redis_client=redis_client
    )


@router.patch("/{session_id}/capacity", response_model=ClassSessionSchema)
async def update_session_capacity(
    session_id: int = Path(..., description="ID of the session"),
    capacity_in: SessionCapacityUpdate = Body(...),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Override Session Capacity

    Sets a session-specific capacity (null reverts to the class capacity).
    An increase promotes waitlisted members into the new slots.

    Raises:
        404: Session not found.
        409: Capacity below confirmed bookings, or session not scheduled.
    """
    session = class_session_service.update_capacity(
        db, session_id=session_id, override_capacity=capacity_in.override_capacity, gym_id=current_gym.id
    )
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, session_id)
    return session


@router.post("/{session_id}/cancel", response_model=ClassSessionSchema)
async def cancel_session(
    session_id: int = Path(..., description="ID of the session"),
    cancel_in: Optional[SessionCancel] = Body(None),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Cancel a Session (administrative)

    Cancels the session, every confirmed booking of it, and clears its
    waitlist. No cancellation deadline applies.

    Raises:
        404: Session not found.
        409: Session already cancelled or completed.
    """
    session, _ = class_session_service.cancel_session(
        db, session_id=session_id, gym_id=current_gym.id,
        reason=cancel_in.reason if cancel_in else None
    )
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, session_id)
    return session


@router.get("/{session_id}/bookings", response_model=List[BookingSchema])
async def get_session_bookings(
    session_id: int = Path(..., description="ID of the session"),
    include_cancelled: bool = False,
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """
    Get Session Roster

    Lists the bookings of a session for staff. Cancelled bookings are
    excluded unless `include_cancelled` is true.
    """
    return booking_service.get_session_bookings(
        db, session_id=session_id, gym_id=current_gym.id, include_cancelled=include_cancelled
    )
