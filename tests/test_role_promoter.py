"""Tests for membership-derived role labels."""
from uuid import uuid4

import pytest

from tracker_core import membership_store, models, role_promoter
from tracker_core.errors import NotFoundError
from tracker_core.models import ROLE_PRECEDENCE, AuditEventKind, MembershipKind, RoleLabel
from tracker_core.role_promoter import MembershipSnapshot, derive_role


class TestDeriveRole:
    """Test the pure label derivation."""

    def test_no_memberships(self):
        assert derive_role(MembershipSnapshot()) == RoleLabel.USER

    def test_unit_membership(self):
        assert derive_role(MembershipSnapshot(unit_member_ids=(1,))) == RoleLabel.UNIT_ROLE

    def test_area_memberships_take_precedence(self):
        assert derive_role(MembershipSnapshot(area_member_ids=(1,))) == RoleLabel.AREA_ROLE
        assert derive_role(MembershipSnapshot(area_admin_ids=(1,))) == RoleLabel.AREA_ROLE
        assert derive_role(MembershipSnapshot(area_admin_ids=(1,), unit_member_ids=(2,))) == RoleLabel.AREA_ROLE

    def test_privilege_is_monotonic(self):
        """Adding a membership to a snapshot never lowers the derived label."""
        snapshots = [
            MembershipSnapshot(),
            MembershipSnapshot(unit_member_ids=(1,)),
            MembershipSnapshot(unit_member_ids=(1,), area_member_ids=(2,)),
            MembershipSnapshot(unit_member_ids=(1,), area_member_ids=(2,), area_admin_ids=(3,)),
        ]
        levels = [ROLE_PRECEDENCE[derive_role(s)] for s in snapshots]
        assert levels == sorted(levels)


class TestPromoteUserRole:
    """Test persisted promotion."""

    def test_promotes_from_memberships(self, db, factory):
        area = factory.area()
        unit = factory.unit()
        user = factory.user()

        factory.membership(MembershipKind.UNIT_MEMBER, user, unit.id)
        assert role_promoter.promote_user_role(db, user.id) == RoleLabel.UNIT_ROLE

        factory.membership(MembershipKind.AREA_MEMBER, user, area.id)
        assert role_promoter.promote_user_role(db, user.id) == RoleLabel.AREA_ROLE

        db.refresh(user)
        assert user.role_label == RoleLabel.AREA_ROLE

    def test_demotes_when_memberships_are_gone(self, db, factory):
        area = factory.area()
        user = factory.user()
        membership = factory.membership(MembershipKind.AREA_ADMIN, user, area.id)
        role_promoter.promote_user_role(db, user.id)

        db.delete(membership)
        db.commit()

        assert role_promoter.promote_user_role(db, user.id) == RoleLabel.USER

    def test_second_call_performs_no_write(self, db, factory, monkeypatch):
        unit = factory.unit()
        user = factory.user()
        factory.membership(MembershipKind.UNIT_MEMBER, user, unit.id)

        writes = []
        original = membership_store.set_system_role

        def counting_set_system_role(db, user_id, label):
            writes.append(label)
            return original(db, user_id, label)

        monkeypatch.setattr(membership_store, "set_system_role", counting_set_system_role)

        first = role_promoter.promote_user_role(db, user.id)
        second = role_promoter.promote_user_role(db, user.id)

        assert first == second == RoleLabel.UNIT_ROLE
        assert writes == [RoleLabel.UNIT_ROLE]

    def test_super_admin_is_never_downgraded(self, db, factory):
        user = factory.super_admin()

        assert role_promoter.promote_user_role(db, user.id) == RoleLabel.SUPER_ADMIN

        factory.membership(MembershipKind.UNIT_MEMBER, user, factory.unit().id)
        assert role_promoter.promote_user_role(db, user.id) == RoleLabel.SUPER_ADMIN

    def test_legacy_admin_label_is_recomputed(self, db, factory):
        user = factory.user(role_label=RoleLabel.ADMIN)

        assert role_promoter.promote_user_role(db, user.id) == RoleLabel.USER

    def test_missing_user(self, db):
        with pytest.raises(NotFoundError):
            role_promoter.promote_user_role(db, uuid4())

    def test_audit_only_on_change(self, db, factory):
        user = factory.user()
        factory.membership(MembershipKind.UNIT_MEMBER, user, factory.unit().id)

        role_promoter.promote_user_role(db, user.id)
        role_promoter.promote_user_role(db, user.id)

        events = (
            db.query(models.AuditEvent)
            .filter(models.AuditEvent.kind == AuditEventKind.ROLE_PROMOTED)
            .all()
        )
        assert len(events) == 1
        assert events[0].entity_ids == [str(user.id)]


class TestRecomputeUserRole:
    """Test the in-transaction variant used by membership mutations."""

    def test_does_not_commit(self, db, factory):
        user = factory.user()
        unit = factory.unit()
        membership_store.create_membership(db, MembershipKind.UNIT_MEMBER, user.id, unit.id)

        label, changed = role_promoter.recompute_user_role(db, user.id)
        assert (label, changed) == (RoleLabel.UNIT_ROLE, True)

        db.rollback()
        db.refresh(user)
        assert user.role_label == RoleLabel.USER


class TestSystemRoleStore:
    """Test the role label accessors of the membership store."""

    def test_get_and_set(self, db, factory):
        user = factory.user()
        assert membership_store.get_system_role(db, user.id) == RoleLabel.USER

        membership_store.set_system_role(db, user.id, RoleLabel.UNIT_ROLE)

        assert membership_store.get_system_role(db, user.id) == RoleLabel.UNIT_ROLE

    def test_missing_user(self, db):
        with pytest.raises(NotFoundError):
            membership_store.get_system_role(db, uuid4())
        with pytest.raises(NotFoundError):
            membership_store.set_system_role(db, uuid4(), RoleLabel.USER)


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
