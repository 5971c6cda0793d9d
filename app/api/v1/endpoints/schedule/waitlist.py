from app.api.v1.endpoints.schedule.common import *
from app.schemas.schedule import WaitlistEntry as WaitlistEntrySchema

router = APIRouter()


@router.post("/sessions/{session_id}", response_model=WaitlistEntrySchema, status_code=status.HTTP_201_CREATED)
async def join_waitlist(
    session_id: int = Path(..., description="ID of the session"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    member_id: int = Depends(get_current_member_id),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> Any:
    """
    Join a Session Waitlist

    Appends the member to the end of the session's waitlist.

    Raises:
        HTTPException 400: Waitlist disabled for this class.
        HTTPException 404: Session not found.
        HTTPException 409: Already waitlisted or booked, waitlist full, or session not scheduled.
    """
    entry = waitlist_service.join_waitlist(
        db, member_id=member_id, session_id=session_id, gym_id=current_gym.id
    )
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, session_id)
    return entry


@router.delete("/sessions/{session_id}", status_code=status.HTTP_204_NO_CONTENT)
async def leave_waitlist(
    session_id: int = Path(..., description="ID of the session"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
    member_id: int = Depends(get_current_member_id),
    redis_client: Optional[Redis] = Depends(get_redis_client),
) -> None:
    """
    Leave a Session Waitlist

    Removes the member from the waitlist; everyone behind moves up one position.
    """
    waitlist_service.leave_waitlist(db, member_id=member_id, session_id=session_id, gym_id=current_gym.id)
    await CacheService.invalidate_session_availability(redis_client, current_gym.id, session_id)


@router.get("/sessions/{session_id}", response_model=List[WaitlistEntrySchema])
async def get_waitlist(
    session_id: int = Path(..., description="ID of the session"),
    db: Session = Depends(get_db),
    current_gym: GymSchema = Depends(verify_gym_access),
) -> Any:
    """Get the waitlist of a session in queue order."""
    return waitlist_service.get_waitlist(db, session_id=session_id, gym_id=current_gym.id)
