from app.api.v1.endpoints.schedule.common import *
from app.schemas.schedule import (
    Booking as BookingSchema,
    BookingCancel,
    BookingWithSession,
)

router = APIRouter()


@router.post("/sessions/{session_id}", response_model=BookingSchema, status_code=status.HTTP_201_CREATED)
async def book_session(
    session_id: int = Path(..., description="ID of the session"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    member_id: int = Depends(get_current_member_id),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Book a Session

    Books a slot in the session for the member in the X-Member-ID header.

    Raises:
        HTTPException 400: Booking window not yet open or already closed.
        HTTPException 403: Member inactive or without entitlement.
        HTTPException 404: Session not found in this gym.
        HTTPException 409: Session full, already booked, or session not scheduled.
    """
    booking = booking_service.book_session(
        db, member_id=member_id, session_id=session_id, gym_id=current_gym.id
    )
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, session_id)
    return booking


@router.post(
    "/sessions/{session_id}/members/{member_id}",
    response_model=BookingSchema,
    status_code=status.HTTP_201_CREATED
)
async def book_session_for_member(
    session_id: int = Path(..., description="ID of the session"),
    member_id: int = Path(..., description="ID of the member to book"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Book a Session for a Member (staff)

    Same rules as self-service booking, applied to the given member.
    """
    booking = booking_service.book_session(
        db, member_id=member_id, session_id=session_id, gym_id=current_gym.id
    )
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, session_id)
    return booking


@router.get("/me", response_model=List[BookingWithSession])
async def get_my_bookings(
    upcoming: bool = Query(True, description="Upcoming bookings (ascending) or all bookings, most recent first"),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    member_id: int = Depends(get_current_member_id),
) -> Any:
    """
    Get My Bookings

    Returns the member's confirmed and attended bookings with their session.
    """
    return booking_service.get_member_bookings(
        db, member_id=member_id, gym_id=current_gym.id, upcoming=upcoming, limit=limit
    )


@router.post("/{booking_id}/cancel", response_model=BookingSchema)
async def cancel_my_booking(
    booking_id: int = Path(..., description="ID of the booking"),
    cancel_in: Optional[BookingCancel] = Body(None),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    member_id: int = Depends(get_current_member_id),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Cancel My Booking

    Cancels a booking owned by the member in the X-Member-ID header. If the
    session has a waitlist, the first member in line is promoted.

    Raises:
        HTTPException 400: Cancellation deadline passed.
        HTTPException 403: The booking belongs to another member.
        HTTPException 404: Booking not found.
        HTTPException 409: Booking is not confirmed.
    """
    booking = booking_service.cancel_booking(
        db, booking_id=booking_id, gym_id=current_gym.id, acting_member_id=member_id,
        reason=cancel_in.reason if cancel_in else None
    )
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, booking.session_id)
    return booking


@router.post("/{booking_id}/staff-cancel", response_model=BookingSchema)
async def cancel_booking_as_staff(
    booking_id: int = Path(..., description="ID of the booking"),
    cancel_in: Optional[BookingCancel] = Body(None),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Cancel a Booking (staff)

    Cancels any booking of the gym. The cancellation deadline still applies.
    """
    booking = booking_service.cancel_booking(
        db, booking_id=booking_id, gym_id=current_gym.id,
        reason=cancel_in.reason if cancel_in else None
    )
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, booking.session_id)
    return booking


@router.post("/{booking_id}/attended", response_model=BookingSchema)
async def mark_booking_attended(
    booking_id: int = Path(..., description="ID of the booking"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Mark Attendance

    Marks a confirmed booking as attended and records the attendance.

    Raises:
        HTTPException 404: Booking not found.
        HTTPException 409: Booking is not confirmed.
    """
    booking = booking_service.mark_attended(db, booking_id=booking_id, gym_id=current_gym.id)
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, booking.session_id)
    return booking


@router.post("/{booking_id}/no-show", response_model=BookingSchema)
async def mark_booking_no_show(
    booking_id: int = Path(..., description="ID of the booking"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """Mark a confirmed booking as a no-show."""
    booking = booking_service.mark_no_show(db, booking_id=booking_id, gym_id=current_gym.id)
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, booking.session_id)
    return booking
