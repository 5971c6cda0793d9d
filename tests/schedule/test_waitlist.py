"""
Tests de la lista de espera: orden FIFO, posiciones densas y promoción.
"""
import pytest
from datetime import datetime, timezone

from app.core.config import get_settings
from app.core.exceptions import (
    AlreadyExistsError,
    FeatureDisabledError,
    InvalidStateError,
    NotFoundError,
    WaitlistFullError,
)
from app.models.schedule import Booking, BookingStatus, WaitlistEntry
from app.services.booking import booking_service
from app.services.schedule import class_session_service
from app.services.waitlist import waitlist_service


def positions(db, session_id):
    return [
        (e.member_id, e.position)
        for e in db.query(WaitlistEntry)
        .filter(WaitlistEntry.session_id == session_id)
        .order_by(WaitlistEntry.position)
        .all()
    ]


@pytest.fixture
def full_session(db, gym, class_factory, session_factory, member_factory, now):
    """Sesión de capacidad 1 ya ocupada por el miembro 1."""
    session = session_factory(gym, class_factory(gym, max_capacity=1, waitlist_max=3))
    member_factory(gym, 1, 2, 3, 4, 5)
    booking_service.book_session(db, member_id=1, session_id=session.id, gym_id=gym.id, now=now)
    return session


class TestJoinLeave:

    def test_join_assigns_consecutive_positions(self, db, gym, full_session):
        for member_id in (2, 3, 4):
            waitlist_service.join_waitlist(db, member_id=member_id, session_id=full_session.id, gym_id=gym.id)

        assert positions(db, full_session.id) == [(2, 1), (3, 2), (4, 3)]

    def test_join_twice_is_rejected(self, db, gym, full_session):
        waitlist_service.join_waitlist(db, member_id=2, session_id=full_session.id, gym_id=gym.id)

        with pytest.raises(AlreadyExistsError):
            waitlist_service.join_waitlist(db, member_id=2, session_id=full_session.id, gym_id=gym.id)

    def test_booked_member_cannot_join(self, db, gym, full_session):
        with pytest.raises(AlreadyExistsError):
            waitlist_service.join_waitlist(db, member_id=1, session_id=full_session.id, gym_id=gym.id)

    def test_join_beyond_max_is_rejected(self, db, gym, full_session):
        for member_id in (2, 3, 4):
            waitlist_service.join_waitlist(db, member_id=member_id, session_id=full_session.id, gym_id=gym.id)

        with pytest.raises(WaitlistFullError):
            waitlist_service.join_waitlist(db, member_id=5, session_id=full_session.id, gym_id=gym.id)

    def test_join_disabled_waitlist(self, db, gym, class_factory, session_factory):
        session = session_factory(gym, class_factory(gym, waitlist_enabled=False))

        with pytest.raises(FeatureDisabledError):
            waitlist_service.join_waitlist(db, member_id=2, session_id=session.id, gym_id=gym.id)

    def test_join_cancelled_session(self, db, gym, full_session, now):
        class_session_service.cancel_session(db, session_id=full_session.id, gym_id=gym.id, now=now)

        with pytest.raises(InvalidStateError):
            waitlist_service.join_waitlist(db, member_id=2, session_id=full_session.id, gym_id=gym.id)

    def test_join_unknown_session(self, db, gym):
        with pytest.raises(NotFoundError):
            waitlist_service.join_waitlist(db, member_id=2, session_id=12345, gym_id=gym.id)

    def test_leave_renumbers_later_entries(self, db, gym, full_session):
        for member_id in (2, 3, 4):
            waitlist_service.join_waitlist(db, member_id=member_id, session_id=full_session.id, gym_id=gym.id)

        waitlist_service.leave_waitlist(db, member_id=2, session_id=full_session.id, gym_id=gym.id)

        assert positions(db, full_session.id) == [(3, 1), (4, 2)]

    def test_leave_when_not_waitlisted(self, db, gym, full_session):
        with pytest.raises(NotFoundError):
            waitlist_service.leave_waitlist(db, member_id=2, session_id=full_session.id, gym_id=gym.id)

    def test_positions_stay_dense_after_mixed_operations(self, db, gym, full_session, now):
        for member_id in (2, 3, 4):
            waitlist_service.join_waitlist(db, member_id=member_id, session_id=full_session.id, gym_id=gym.id)
        waitlist_service.leave_waitlist(db, member_id=3, session_id=full_session.id, gym_id=gym.id)
        waitlist_service.join_waitlist(db, member_id=5, session_id=full_session.id, gym_id=gym.id)
        first = db.query(Booking).filter(Booking.member_id == 1).one()
        booking_service.cancel_booking(db, booking_id=first.id, gym_id=gym.id, now=now)

        entries = positions(db, full_session.id)
        assert [p for _, p in entries] == list(range(1, len(entries) + 1))
        assert entries == [(4, 1), (5, 2)]

    def test_get_position(self, db, gym, full_session):
        waitlist_service.join_waitlist(db, member_id=2, session_id=full_session.id, gym_id=gym.id)
        waitlist_service.join_waitlist(db, member_id=3, session_id=full_session.id, gym_id=gym.id)

        assert waitlist_service.get_position(db, member_id=3, session_id=full_session.id, gym_id=gym.id) == 2
        assert waitlist_service.get_position(db, member_id=4, session_id=full_session.id, gym_id=gym.id) is None


class TestPromotion:

    def test_fifo_promotion(self, db, gym, class_factory, session_factory, member_factory, now):
        session = session_factory(gym, class_factory(gym, max_capacity=2))
        member_factory(gym, 1, 2, 3, 4, 5)
        first = booking_service.book_session(db, member_id=1, session_id=session.id, gym_id=gym.id, now=now)
        second = booking_service.book_session(db, member_id=2, session_id=session.id, gym_id=gym.id, now=now)
        for member_id in (3, 4, 5):
            waitlist_service.join_waitlist(db, member_id=member_id, session_id=session.id, gym_id=gym.id)

        booking_service.cancel_booking(db, booking_id=first.id, gym_id=gym.id, now=now)
        assert booking_service.get_session_bookings(db, session_id=session.id, gym_id=gym.id)[-1].member_id == 3

        booking_service.cancel_booking(db, booking_id=second.id, gym_id=gym.id, now=now)
        confirmed = {
            b.member_id for b in db.query(Booking).filter(
                Booking.session_id == session.id, Booking.status == BookingStatus.CONFIRMED
            )
        }
        assert confirmed == {3, 4}
        assert positions(db, session.id) == [(5, 1)]

    def test_promote_without_free_slot_is_noop(self, db, gym, full_session, now):
        waitlist_service.join_waitlist(db, member_id=2, session_id=full_session.id, gym_id=gym.id)

        assert waitlist_service.promote_next(db, full_session.id, now=now) is None
        assert positions(db, full_session.id) == [(2, 1)]

    def test_promote_empty_waitlist_is_noop(self, db, gym, class_factory, session_factory, now):
        session = session_factory(gym, class_factory(gym))

        assert waitlist_service.promote_next(db, session.id, now=now) is None

    def test_direct_booking_removes_own_waitlist_entry(self, db, gym, class_factory, session_factory, member_factory, now):
        session = session_factory(gym, class_factory(gym, max_capacity=1))
        member_factory(gym, 1, 2, 3)
        first = booking_service.book_session(db, member_id=1, session_id=session.id, gym_id=gym.id, now=now)
        waitlist_service.join_waitlist(db, member_id=2, session_id=session.id, gym_id=gym.id)
        waitlist_service.join_waitlist(db, member_id=3, session_id=session.id, gym_id=gym.id)

        # El staff amplía el aforo sin promover y el miembro 3 reserva directamente
        session.override_capacity = 3
        db.commit()
        booking_service.book_session(db, member_id=3, session_id=session.id, gym_id=gym.id, now=now)

        assert positions(db, session.id) == [(2, 1)]
        assert first.status == BookingStatus.CONFIRMED

    def test_capacity_increase_fills_from_waitlist(self, db, gym, full_session, now):
        for member_id in (2, 3, 4):
            waitlist_service.join_waitlist(db, member_id=member_id, session_id=full_session.id, gym_id=gym.id)

        class_session_service.update_capacity(
            db, session_id=full_session.id, override_capacity=3, gym_id=gym.id, now=now
        )

        assert positions(db, full_session.id) == [(4, 1)]
        promoted = db.query(Booking).filter(
            Booking.session_id == full_session.id, Booking.promoted_from_waitlist == True  # noqa: E712
        ).all()
        assert sorted(b.member_id for b in promoted) == [2, 3]

    def test_reconcile_promotes_pending_entries(self, db, gym, full_session, now):
        waitlist_service.join_waitlist(db, member_id=2, session_id=full_session.id, gym_id=gym.id)
        # Un hueco liberado sin pasar por la promoción
        full_session.override_capacity = 2
        db.commit()

        assert waitlist_service.reconcile(db, now=now) == 1
        assert positions(db, full_session.id) == []


class TestPromotionEntitlementCheck:

    @pytest.fixture
    def check_entitlement(self, monkeypatch):
        monkeypatch.setattr(get_settings(), "WAITLIST_PROMOTION_CHECKS_ENTITLEMENT", True)

    def test_member_without_entitlement_is_skipped(
        self, db, gym, class_factory, session_factory, member_factory, now, check_entitlement
    ):
        session = session_factory(gym, class_factory(gym, max_capacity=1))
        member_factory(gym, 1, 3)
        member_factory(gym, 2, membership_expires_at=datetime(2000, 1, 1, tzinfo=timezone.utc))
        first = booking_service.book_session(db, member_id=1, session_id=session.id, gym_id=gym.id, now=now)
        waitlist_service.join_waitlist(db, member_id=2, session_id=session.id, gym_id=gym.id)
        waitlist_service.join_waitlist(db, member_id=3, session_id=session.id, gym_id=gym.id)

        booking_service.cancel_booking(db, booking_id=first.id, gym_id=gym.id, now=now)

        confirmed = db.query(Booking).filter(
            Booking.session_id == session.id, Booking.status == BookingStatus.CONFIRMED
        ).one()
        assert confirmed.member_id == 3
        assert positions(db, session.id) == []

    def test_default_promotion_does_not_check_entitlement(
        self, db, gym, class_factory, session_factory, member_factory, now
    ):
        session = session_factory(gym, class_factory(gym, max_capacity=1))
        member_factory(gym, 1)
        member_factory(gym, 2, membership_expires_at=datetime(2000, 1, 1, tzinfo=timezone.utc))
        first = booking_service.book_session(db, member_id=1, session_id=session.id, gym_id=gym.id, now=now)
        waitlist_service.join_waitlist(db, member_id=2, session_id=session.id, gym_id=gym.id)

        booking_service.cancel_booking(db, booking_id=first.id, gym_id=gym.id, now=now)

        confirmed = db.query(Booking).filter(
            Booking.session_id == session.id, Booking.status == BookingStatus.CONFIRMED
        ).one()
        assert confirmed.member_id == 2
