"""
rankkeeper.services.entitlement_service — Rank Assignment API
==============================================================

The consumer-facing surface of Rankkeeper.  Apart from the sweeper, every
change to a user's rank goes through :class:`EntitlementService`.

Every mutation follows the same pattern:
  1. Validate the request (rank exists, duration/amount sane)
  2. Load the current entitlement
  3. Decide the new entitlement with the pure engine
  4. Persist it

Validation happens before any store access, so a rejected request never
writes anything.  :class:`~rankkeeper.errors.StoreUnavailable` propagates
to the caller unretried.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal, InvalidOperation

from rankkeeper.config import RankkeeperConfig
from rankkeeper.engine import entitlement as rules
from rankkeeper.engine.clock import Clock, as_utc
from rankkeeper.engine.entitlement import Entitlement
from rankkeeper.engine.pricing import (
    RankUpgradeInfo,
    convert_rank_days,
    price_per_day_for,
    rank_upgrade_info,
)
from rankkeeper.errors import InvalidAmount, StoreUnavailable, UnknownRank
from rankkeeper.services.catalog import RankCatalog, RankDefinition
from rankkeeper.services.store import SqlEntitlementStore
from rankkeeper.services.sweeper import ExpirationSweeper, SweepResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class EntitlementStatus:
    """Snapshot of a user's rank for display."""

    user_id: int
    entitlement: Entitlement
    rank: RankDefinition | None
    active: bool
    days_remaining: int | None  # None for a permanent grant


@dataclass(frozen=True, slots=True)
class PurchaseReceipt:
    entitlement: Entitlement
    donation_id: int | None
    amount: Decimal


class EntitlementService:
    """Assign, renew, convert, revoke, and sweep rank entitlements.

    Parameters
    ----------
    catalog : rank lookups
    store : entitlement persistence (also the donation ledger for purchases)
    clock : time source
    config : renewal policy and sweep batch size
    """

    def __init__(
        self,
        catalog: RankCatalog,
        store: SqlEntitlementStore,
        clock: Clock,
        config: RankkeeperConfig | None = None,
    ) -> None:
        self.catalog = catalog
        self.store = store
        self.clock = clock
        self.config = config or RankkeeperConfig()
        self.sweeper = ExpirationSweeper(store, clock, batch_size=self.config.sweep_batch_size)

    # -------------------------------------------------------------------
    # Helpers
    # -------------------------------------------------------------------
    def _require_rank(self, rank_id: str) -> RankDefinition:
        rank = self.catalog.get_rank(rank_id) if rank_id else None
        if rank is None:
            raise UnknownRank(rank_id)
        return rank

    def _now(self, now: datetime | None) -> datetime:
        return as_utc(now) if now is not None else self.clock.now()

    # -------------------------------------------------------------------
    # Core API
    # -------------------------------------------------------------------
    def assign_rank(
        self,
        user_id: int,
        rank_id: str,
        days: int,
        now: datetime | None = None,
    ) -> Entitlement:
        """Grant *rank_id* to *user_id* for *days* days.

        Raises
        ------
        UnknownRank
            If *rank_id* is not in the catalogue.
        InvalidDuration
            If *days* is not a whole number >= 1.
        StoreUnavailable
            If the store cannot be read or written.
        """
        self._require_rank(rank_id)
        rules.validate_days(days)
        now = self._now(now)

        current = self.store.get(user_id)
        new = rules.assign(current, rank_id, days, now, policy=self.config.renewal_policy)
        self.store.put(user_id, new)

        logger.info(
            "Assigned rank %s to user %d for %d days (expires: %s)",
            rank_id, user_id, days, new.expires_at.isoformat(),
        )
        return new

    def is_entitled(self, user_id: int, now: datetime | None = None) -> bool:
        """Whether *user_id* currently holds any rank."""
        return rules.is_active(self.store.get(user_id), self._now(now))

    def sweep_once(self) -> SweepResult:
        """One expiration pass at the clock's current time."""
        return self.sweeper.sweep(self.clock.now())

    # -------------------------------------------------------------------
    # Extended operations
    # -------------------------------------------------------------------
    def grant_permanent_rank(self, user_id: int, rank_id: str) -> Entitlement:
        """Grant *rank_id* with no expiry.  Sweeps never touch it."""
        self._require_rank(rank_id)
        new = rules.grant_permanent(rank_id)
        self.store.put(user_id, new)
        logger.info("Granted permanent rank %s to user %d", rank_id, user_id)
        return new

    def revoke_rank(self, user_id: int) -> Entitlement:
        """Clear the user's rank.  Safe to repeat."""
        new = rules.revoke()
        self.store.put(user_id, new)
        logger.info("Revoked rank from user %d", user_id)
        return new

    def change_rank(
        self,
        user_id: int,
        new_rank_id: str,
        now: datetime | None = None,
    ) -> Entitlement:
        """Upgrade or downgrade, converting remaining days by price ratio.

        Moving to a pricier rank yields fewer days, a cheaper one more.
        """
        target = self._require_rank(new_rank_id)
        now = self._now(now)
        current = self.store.get(user_id)

        def _convert(from_rank_id: str, to_rank_id: str, days: int) -> int:
            source = self.catalog.get_rank(from_rank_id)
            from_ppd = source.daily_price if source is not None else price_per_day_for(from_rank_id)
            return convert_rank_days(from_ppd, target.daily_price, days)

        new = rules.change_rank(current, new_rank_id, now, convert=_convert)
        self.store.put(user_id, new)
        logger.info(
            "Changed user %d rank %s → %s (expires: %s)",
            user_id, current.rank_id, new.rank_id,
            new.expires_at.isoformat() if new.expires_at else None,
        )
        return new

    def get_status(self, user_id: int, now: datetime | None = None) -> EntitlementStatus:
        now = self._now(now)
        current = self.store.get(user_id)
        active = rules.is_active(current, now)
        rank = self.catalog.get_rank(current.rank_id) if active else None
        return EntitlementStatus(
            user_id=user_id,
            entitlement=current,
            rank=rank,
            active=active,
            days_remaining=rules.remaining_days(current, now),
        )

    def purchase_subscription(
        self,
        user_id: int,
        rank_id: str,
        days: int,
        amount: Decimal | int | str,
        *,
        method: str | None = None,
        now: datetime | None = None,
    ) -> PurchaseReceipt:
        """Assign a paid subscription, then journal the donation.

        The rank is granted first; a failure to record the donation is
        logged and does not take the rank back.
        """
        try:
            value = Decimal(str(amount))
        except InvalidOperation:
            raise InvalidAmount(amount) from None
        if not value.is_finite() or value < self.config.min_purchase_amount:
            raise InvalidAmount(amount)

        new = self.assign_rank(user_id, rank_id, days, now)

        donation_id: int | None = None
        try:
            donation_id = self.store.record_donation(
                user_id,
                value,
                currency=self.config.default_currency,
                method=method,
                message=f"Rank subscription: {rank_id} for {days} days",
            )
        except StoreUnavailable:
            logger.exception("Error recording donation for user %d", user_id)

        return PurchaseReceipt(entitlement=new, donation_id=donation_id, amount=value)

    def upgrade_info(self, user_id: int) -> RankUpgradeInfo:
        """Tier reached by the user's cumulative donations and the next one up."""
        total = self.store.get_total_donated(user_id)
        return rank_upgrade_info(self.catalog.list_ranks(), total)
