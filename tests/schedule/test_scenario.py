"""
Recorrido completo: aforo 1, lista de espera máxima 2.
"""
from app.core.exceptions import SessionFullError, WaitlistFullError
from app.models.schedule import Booking, BookingStatus
from app.services.booking import booking_service
from app.services.capacity import capacity_service
from app.services.waitlist import waitlist_service

import pytest

A, B, C, D = 101, 102, 103, 104


def test_cancellation_promotes_head_of_waitlist(db, gym, class_factory, session_factory, member_factory, now):
    session = session_factory(gym, class_factory(gym, max_capacity=1, waitlist_max=2))
    member_factory(gym, A, B, C, D)

    booking_a = booking_service.book_session(db, member_id=A, session_id=session.id, gym_id=gym.id, now=now)

    with pytest.raises(SessionFullError):
        booking_service.book_session(db, member_id=B, session_id=session.id, gym_id=gym.id, now=now)
    entry_b = waitlist_service.join_waitlist(db, member_id=B, session_id=session.id, gym_id=gym.id)
    entry_c = waitlist_service.join_waitlist(db, member_id=C, session_id=session.id, gym_id=gym.id)
    assert (entry_b.position, entry_c.position) == (1, 2)

    with pytest.raises(WaitlistFullError):
        waitlist_service.join_waitlist(db, member_id=D, session_id=session.id, gym_id=gym.id)

    booking_service.cancel_booking(db, booking_id=booking_a.id, gym_id=gym.id, acting_member_id=A, now=now)

    booking_b = db.query(Booking).filter(Booking.member_id == B).one()
    assert booking_b.status == BookingStatus.CONFIRMED
    assert booking_b.promoted_from_waitlist is True
    assert waitlist_service.get_position(db, member_id=C, session_id=session.id, gym_id=gym.id) == 1
    assert waitlist_service.get_position(db, member_id=B, session_id=session.id, gym_id=gym.id) is None

    availability = capacity_service.get_availability(db, session.id, gym_id=gym.id)
    assert (availability.capacity, availability.booked, availability.waitlist_count) == (1, 1, 1)
    db.refresh(session)
    assert session.current_participants == 1
