"""
tests/test_entitlement_engine.py — Unit Tests for Entitlement Rules
====================================================================

Tests the pure decision logic (no I/O, no database).
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

import pytest

from conftest import T0
from rankkeeper.engine.entitlement import (
    NO_ENTITLEMENT,
    SECONDS_PER_DAY,
    Entitlement,
    RenewalPolicy,
    assign,
    change_rank,
    compute_expiry,
    find_expired,
    grant_permanent,
    is_active,
    is_expired,
    remaining_days,
    revoke,
)
from rankkeeper.errors import InvalidDuration

ONE_SECOND = timedelta(seconds=1)


def _timed(rank_id: str = "vip", days: int = 10, start: datetime = T0) -> Entitlement:
    return Entitlement(rank_id=rank_id, expires_at=start + timedelta(days=days))


# ---------------------------------------------------------------------------
# compute_expiry
# ---------------------------------------------------------------------------
class TestComputeExpiry:
    def test_adds_whole_days_in_seconds(self):
        assert compute_expiry(T0, 3) == T0 + timedelta(seconds=3 * SECONDS_PER_DAY)

    @pytest.mark.parametrize("days", [0, -1, -30])
    def test_rejects_non_positive_days(self, days):
        with pytest.raises(InvalidDuration):
            compute_expiry(T0, days)

    @pytest.mark.parametrize("days", [1.5, "7", True, None])
    def test_rejects_non_integer_days(self, days):
        with pytest.raises(InvalidDuration):
            compute_expiry(T0, days)

    def test_naive_now_is_treated_as_utc(self):
        naive = T0.replace(tzinfo=None)
        assert compute_expiry(naive, 1) == T0 + timedelta(days=1)


# ---------------------------------------------------------------------------
# is_active / is_expired
# ---------------------------------------------------------------------------
class TestIsActive:
    def test_no_rank_is_inactive(self):
        assert not is_active(NO_ENTITLEMENT, T0)

    def test_no_rank_drops_stray_expiry(self):
        ent = Entitlement(None, T0 + timedelta(days=1))
        assert ent == NO_ENTITLEMENT
        assert ent.expires_at is None
        assert not is_expired(ent, T0 + timedelta(days=2))

    def test_permanent_grant_is_always_active(self):
        legend = grant_permanent("legend")
        assert is_active(legend, T0)
        assert is_active(legend, T0 + timedelta(days=36500))

    def test_expiry_boundary_is_exclusive(self):
        ent = _timed(days=10)
        expiry = ent.expires_at
        assert is_active(ent, expiry - ONE_SECOND)
        assert not is_active(ent, expiry)
        assert not is_active(ent, expiry + ONE_SECOND)

    def test_is_expired_is_complement_for_timed_grants(self):
        ent = _timed(days=1)
        for offset in (-2, -1, 0, 1, 2):
            now = ent.expires_at + timedelta(seconds=offset)
            assert is_expired(ent, now) is not is_active(ent, now)

    def test_permanent_grant_never_expired(self):
        assert not is_expired(grant_permanent("legend"), T0 + timedelta(days=10_000))


# ---------------------------------------------------------------------------
# assign
# ---------------------------------------------------------------------------
class TestAssign:
    @pytest.mark.parametrize("days", [1, 7, 30, 365])
    def test_active_at_start_and_expired_after_duration(self, days):
        ent = assign(NO_ENTITLEMENT, "vip", days, T0)
        assert is_active(ent, T0)
        assert not is_active(ent, T0 + timedelta(seconds=days * SECONDS_PER_DAY))

    def test_invalid_days_raise(self):
        with pytest.raises(InvalidDuration):
            assign(NO_ENTITLEMENT, "vip", 0, T0)

    def test_overwrites_different_rank_without_stacking(self):
        first = assign(NO_ENTITLEMENT, "vip", 30, T0)
        later = T0 + timedelta(days=1)
        second = assign(first, "mvp", 10, later)
        assert second == Entitlement("mvp", later + timedelta(days=10))

    def test_same_rank_renewal_restarts_from_now_by_default(self):
        first = assign(NO_ENTITLEMENT, "vip", 30, T0)
        later = T0 + timedelta(days=5)
        renewed = assign(first, "vip", 30, later)
        assert renewed.expires_at == later + timedelta(days=30)

    def test_extend_policy_adds_to_current_expiry(self):
        first = assign(NO_ENTITLEMENT, "vip", 30, T0)
        later = T0 + timedelta(days=5)
        renewed = assign(first, "vip", 30, later, policy=RenewalPolicy.EXTEND)
        assert renewed.expires_at == T0 + timedelta(days=60)

    def test_extend_policy_ignores_different_rank(self):
        first = assign(NO_ENTITLEMENT, "vip", 30, T0)
        later = T0 + timedelta(days=5)
        switched = assign(first, "mvp", 10, later, policy=RenewalPolicy.EXTEND)
        assert switched.expires_at == later + timedelta(days=10)

    def test_extend_policy_restarts_after_expiry(self):
        first = assign(NO_ENTITLEMENT, "vip", 1, T0)
        later = T0 + timedelta(days=3)
        renewed = assign(first, "vip", 5, later, policy=RenewalPolicy.EXTEND)
        assert renewed.expires_at == later + timedelta(days=5)

    def test_timed_assignment_replaces_permanent_grant(self):
        ent = assign(grant_permanent("vip"), "vip", 5, T0, policy=RenewalPolicy.EXTEND)
        assert ent.expires_at == T0 + timedelta(days=5)


# ---------------------------------------------------------------------------
# revoke
# ---------------------------------------------------------------------------
class TestRevoke:
    @pytest.mark.parametrize(
        "ent",
        [NO_ENTITLEMENT, Entitlement("vip", T0), Entitlement("legend", None)],
    )
    def test_revoke_is_idempotent(self, ent):
        assert revoke(revoke(ent)) == revoke(ent) == Entitlement(None, None)


# ---------------------------------------------------------------------------
# remaining_days / change_rank
# ---------------------------------------------------------------------------
class TestRemainingDays:
    def test_rounds_partial_day_up(self):
        ent = _timed(days=10)
        assert remaining_days(ent, T0 + timedelta(days=2, hours=1)) == 8

    def test_zero_when_expired(self):
        assert remaining_days(_timed(days=1), T0 + timedelta(days=2)) == 0

    def test_none_for_permanent(self):
        assert remaining_days(grant_permanent("legend"), T0) is None


class TestChangeRank:
    def test_converts_remaining_days(self):
        ent = _timed("supporter", days=10)
        calls = []

        def convert(src, dst, days):
            calls.append((src, dst, days))
            return days // 2

        new = change_rank(ent, "patron", T0, convert=convert)
        assert calls == [("supporter", "patron", 10)]
        assert new == Entitlement("patron", T0 + timedelta(days=5))

    def test_conversion_worth_less_than_a_day_clears(self):
        new = change_rank(_timed(days=1), "mvp", T0, convert=lambda *_: 0)
        assert new == NO_ENTITLEMENT

    def test_nothing_active_clears(self):
        new = change_rank(NO_ENTITLEMENT, "mvp", T0, convert=lambda *_: 99)
        assert new == NO_ENTITLEMENT

    def test_permanent_stays_permanent(self):
        new = change_rank(grant_permanent("vip"), "mvp", T0, convert=lambda *_: 0)
        assert new == Entitlement("mvp", None)


# ---------------------------------------------------------------------------
# find_expired
# ---------------------------------------------------------------------------
class TestFindExpired:
    @pytest.fixture
    def population(self):
        return [
            (30, _timed(days=3)),
            (10, _timed(days=1)),
            (20, _timed(days=2)),
            (40, grant_permanent("legend")),
            (50, NO_ENTITLEMENT),
        ]

    def test_returns_sorted_expired_ids(self, population):
        assert find_expired(population, T0 + timedelta(days=2)) == [10, 20]

    def test_boundary_counts_as_expired(self, population):
        assert find_expired(population, T0 + timedelta(days=1)) == [10]

    def test_never_includes_permanent_grants(self, population):
        for years in (0, 1, 10, 100):
            now = T0 + timedelta(days=365 * years)
            assert 40 not in find_expired(population, now)

    def test_monotonic_in_now(self, population):
        previous: set[int] = set()
        for hours in range(0, 24 * 5, 6):
            current = set(find_expired(population, T0 + timedelta(hours=hours)))
            assert previous <= current
            previous = current

    def test_deterministic_for_shuffled_input(self, population):
        now = T0 + timedelta(days=4)
        assert find_expired(population, now) == find_expired(list(reversed(population)), now)

    def test_accepts_other_timezones(self):
        from datetime import timezone

        plus_two = timezone(timedelta(hours=2))
        ent = Entitlement("vip", datetime(2026, 1, 1, 12, tzinfo=plus_two))
        assert find_expired([(1, ent)], datetime(2026, 1, 1, 10, tzinfo=UTC)) == [1]
        assert find_expired([(1, ent)], datetime(2026, 1, 1, 9, tzinfo=UTC)) == []
