"""
tests/test_admin_service.py — Audited Admin Mutations
======================================================
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import T0
from rankkeeper.database.models import AdminActionType, AdminLog, Base, DonationRank
from rankkeeper.engine.entitlement import NO_ENTITLEMENT, Entitlement
from rankkeeper.errors import InvalidAmount, InvalidDuration, StoreUnavailable, UnknownRank
from rankkeeper.services import admin_service

ADMIN = 99999


def _audit_rows(engine) -> list[AdminLog]:
    with Session(engine) as session:
        return list(session.scalars(select(AdminLog).order_by(AdminLog.id)).all())


class TestRankCatalogueCrud:
    def test_create_rank_is_audited(self, seeded_engine):
        row = admin_service.create_rank(
            seeded_engine,
            actor_id=ADMIN,
            id="legend",
            name="Legend",
            min_amount=Decimal("250"),
            color="#FF0000",
            text_color="#FFFFFF",
            price_per_day=Decimal("0.83"),
        )
        assert row.id == "legend"

        (log,) = _audit_rows(seeded_engine)
        assert log.action_type == AdminActionType.CREATE
        assert log.target_table == "donation_ranks"
        assert log.before_snapshot is None
        assert Decimal(log.after_snapshot["min_amount"]) == Decimal("250")

    def test_update_rank_keeps_id_frozen(self, seeded_engine):
        row = admin_service.update_rank(
            seeded_engine, "vip", actor_id=ADMIN, name="VIP Classic", id="hijack",
        )
        assert row.id == "vip"
        assert row.name == "VIP Classic"

        (log,) = _audit_rows(seeded_engine)
        assert log.before_snapshot["name"] == "VIP"
        assert log.after_snapshot["name"] == "VIP Classic"

    def test_duplicate_rank_id_is_a_store_error(self, seeded_engine):
        with pytest.raises(StoreUnavailable) as info:
            admin_service.create_rank(
                seeded_engine, actor_id=ADMIN, id="vip", name="VIP again",
                min_amount=Decimal("1"), color="#fff", text_color="#000",
            )
        assert info.value.__cause__ is not None
        assert _audit_rows(seeded_engine) == []

    def test_update_missing_rank(self, seeded_engine):
        assert admin_service.update_rank(seeded_engine, "ghost", actor_id=ADMIN, name="x") is None
        assert _audit_rows(seeded_engine) == []

    def test_delete_rank_clears_holders(self, seeded_engine, store):
        store.put(1, Entitlement("mvp", T0 + timedelta(days=5)))

        assert admin_service.delete_rank(seeded_engine, "mvp", actor_id=ADMIN)
        assert store.get(1) == NO_ENTITLEMENT
        with Session(seeded_engine) as session:
            assert session.get(DonationRank, "mvp") is None
        assert not admin_service.delete_rank(seeded_engine, "mvp", actor_id=ADMIN)


class TestEntitlementMutations:
    def test_timed_assign(self, seeded_engine, store, clock):
        ent = admin_service.admin_assign_rank(
            seeded_engine, 5, "vip", actor_id=ADMIN, days=7, clock=clock, reason="event prize",
        )
        assert ent == Entitlement("vip", T0 + timedelta(days=7))
        assert store.get(5) == ent

        (log,) = _audit_rows(seeded_engine)
        assert log.action_type == AdminActionType.RANK_ASSIGN
        assert log.target_id == "5"
        assert log.reason == "event prize"
        assert log.before_snapshot is None
        assert log.after_snapshot["donation_rank_id"] == "vip"

    def test_permanent_assign(self, seeded_engine, store, clock):
        admin_service.admin_assign_rank(seeded_engine, 5, "mvp", actor_id=ADMIN, clock=clock)
        assert store.get(5) == Entitlement("mvp", None)

    def test_assign_validates_before_writing(self, seeded_engine, store, clock):
        with pytest.raises(UnknownRank):
            admin_service.admin_assign_rank(seeded_engine, 5, "ghost", actor_id=ADMIN, days=3)
        with pytest.raises(InvalidDuration):
            admin_service.admin_assign_rank(seeded_engine, 5, "vip", actor_id=ADMIN, days=0)
        assert store.get(5) == NO_ENTITLEMENT
        assert _audit_rows(seeded_engine) == []

    def test_revoke_records_before_snapshot(self, seeded_engine, store, clock):
        store.put(5, Entitlement("vip", T0 + timedelta(days=3)))

        assert admin_service.admin_revoke_rank(seeded_engine, 5, actor_id=ADMIN, clock=clock)
        assert store.get(5) == NO_ENTITLEMENT

        (log,) = _audit_rows(seeded_engine)
        assert log.action_type == AdminActionType.RANK_REVOKE
        assert log.before_snapshot["donation_rank_id"] == "vip"
        assert log.after_snapshot["donation_rank_id"] is None

    def test_revoke_unknown_user(self, seeded_engine):
        assert not admin_service.admin_revoke_rank(seeded_engine, 404, actor_id=ADMIN)

    def test_assign_can_correct_total_donated(self, seeded_engine, store, clock):
        store.record_donation(5, Decimal("3.00"))

        admin_service.admin_assign_rank(
            seeded_engine, 5, "vip_plus", actor_id=ADMIN, days=30,
            total_donated="15.00", clock=clock,
        )

        assert store.get_total_donated(5) == Decimal("15.00")
        (log,) = _audit_rows(seeded_engine)
        assert Decimal(log.before_snapshot["total_donated"]) == Decimal("3")
        assert Decimal(log.after_snapshot["total_donated"]) == Decimal("15")

    def test_assign_keeps_total_when_not_given(self, seeded_engine, store, clock):
        store.record_donation(5, Decimal("3.00"))
        admin_service.admin_assign_rank(seeded_engine, 5, "vip", actor_id=ADMIN, days=7, clock=clock)
        assert store.get_total_donated(5) == Decimal("3.00")

    @pytest.mark.parametrize("total", ["-1", "abc", "Infinity"])
    def test_bad_total_rejected_before_writing(self, seeded_engine, store, clock, total):
        with pytest.raises(InvalidAmount):
            admin_service.admin_assign_rank(
                seeded_engine, 5, "vip", actor_id=ADMIN, days=7, total_donated=total, clock=clock,
            )
        assert store.get(5) == NO_ENTITLEMENT
        assert _audit_rows(seeded_engine) == []

    def test_database_errors_become_store_unavailable(self, seeded_engine, clock):
        Base.metadata.drop_all(seeded_engine)
        with pytest.raises(StoreUnavailable):
            admin_service.admin_assign_rank(seeded_engine, 5, "vip", actor_id=ADMIN, days=7, clock=clock)
        with pytest.raises(StoreUnavailable):
            admin_service.admin_revoke_rank(seeded_engine, 5, actor_id=ADMIN, clock=clock)
        with pytest.raises(StoreUnavailable):
            admin_service.delete_rank(seeded_engine, "vip", actor_id=ADMIN)
