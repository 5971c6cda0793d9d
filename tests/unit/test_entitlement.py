"""
Tests del control de acceso por membresía y del registro de asistencias.
"""
from datetime import datetime, timedelta, timezone

import pytest

from app.models.user_gym import GymRoleType, UserGym
from app.services.entitlement import membership_attendance_recorder, membership_entitlement_gate

NOW = datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)


class TestMembershipEntitlementGate:

    def test_unknown_member(self, db, gym):
        assert membership_entitlement_gate.is_member_active(db, 1, gym.id) is False
        assert membership_entitlement_gate.has_entitlement(db, 1, gym.id, now=NOW) is False

    def test_active_membership_without_expiry(self, db, gym, member_factory):
        member_factory(gym, 1)
        assert membership_entitlement_gate.is_member_active(db, 1, gym.id) is True
        assert membership_entitlement_gate.has_entitlement(db, 1, gym.id, now=NOW) is True

    @pytest.mark.parametrize("expires_in, expected", [
        (timedelta(days=1), True),
        (timedelta(days=-1), False),
    ])
    def test_membership_expiry(self, db, gym, member_factory, expires_in, expected):
        member_factory(gym, 1, membership_expires_at=NOW + expires_in)
        assert membership_entitlement_gate.has_entitlement(db, 1, gym.id, now=NOW) is expected

    def test_credits_override_expired_membership(self, db, gym, member_factory):
        member_factory(gym, 1, membership_expires_at=NOW - timedelta(days=1), class_credits=2)
        assert membership_entitlement_gate.has_entitlement(db, 1, gym.id, now=NOW) is True

    @pytest.mark.parametrize("overrides", [
        {"class_credits": 2},
        {"role": GymRoleType.TRAINER},
    ])
    def test_inactive_membership_has_no_entitlement(self, db, gym, member_factory, overrides):
        member_factory(gym, 1, is_active=False, **overrides)
        assert membership_entitlement_gate.is_member_active(db, 1, gym.id) is False
        assert membership_entitlement_gate.has_entitlement(db, 1, gym.id, now=NOW) is False

    def test_staff_role_override(self, db, gym, member_factory):
        member_factory(
            gym, 1, role=GymRoleType.TRAINER, membership_expires_at=NOW - timedelta(days=30)
        )
        assert membership_entitlement_gate.has_entitlement(db, 1, gym.id, now=NOW) is True

    def test_membership_is_scoped_by_gym(self, db, gym, other_gym, member_factory):
        member_factory(gym, 1)
        assert membership_entitlement_gate.has_entitlement(db, 1, other_gym.id, now=NOW) is False


class TestMembershipAttendanceRecorder:

    def test_records_attendance(self, db, gym, member_factory):
        member_factory(gym, 1)

        membership_attendance_recorder.record_attendance(db, 1, gym.id, session_id=10, attended_at=NOW)
        membership_attendance_recorder.record_attendance(db, 1, gym.id, session_id=11, attended_at=NOW)
        db.commit()

        membership = db.query(UserGym).filter(UserGym.user_id == 1).one()
        assert membership.total_attendances == 2
        assert membership.last_attendance_at is not None

    def test_missing_membership_is_ignored(self, db, gym):
        membership_attendance_recorder.record_attendance(db, 99, gym.id, session_id=10, attended_at=NOW)
        assert db.query(UserGym).count() == 0
