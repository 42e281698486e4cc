"""
rankkeeper.services.sweeper — Expiration Sweep
===============================================

One pass revokes every expired timed grant found in a bounded batch.

How it works:
    1. Load up to ``batch_size`` timed grants, soonest expiry first.
    2. Ask :func:`~rankkeeper.engine.entitlement.find_expired` which of them
       have expired at ``now``.
    3. Revoke each one with a guarded write that only matches a row whose
       stored expiry is still at or before ``now``.
    4. A row renewed since step 1 no longer matches and is reported as
       skipped.  A failed write is logged; it never aborts the batch.

Overlapping passes converge on the same end state: the second pass finds
nothing left to match.  A large backlog drains over successive passes because
revoked rows drop out of the candidate query.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime

from rankkeeper.config import DEFAULT_SWEEP_BATCH_SIZE
from rankkeeper.engine.clock import Clock, as_utc
from rankkeeper.engine.entitlement import find_expired
from rankkeeper.errors import StoreUnavailable
from rankkeeper.services.store import EntitlementStore

logger = logging.getLogger(__name__)


@dataclass
class SweepResult:
    """Outcome of one sweep pass.  Reported, never persisted."""

    checked: int = 0
    removed: int = 0
    removed_users: list[int] = field(default_factory=list)
    failed_users: list[int] = field(default_factory=list)
    skipped_users: list[int] = field(default_factory=list)
    timestamp: datetime | None = None

    def to_dict(self) -> dict:
        return {
            "checked": self.checked,
            "removed": self.removed,
            "removed_users": list(self.removed_users),
            "failed_users": list(self.failed_users),
            "skipped_users": list(self.skipped_users),
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


class ExpirationSweeper:
    """Applies the engine's expiry decision to the store."""

    def __init__(
        self,
        store: EntitlementStore,
        clock: Clock,
        *,
        batch_size: int = DEFAULT_SWEEP_BATCH_SIZE,
    ) -> None:
        if batch_size < 1:
            raise ValueError(f"batch_size must be >= 1, got {batch_size}")
        self.store = store
        self.clock = clock
        self.batch_size = batch_size

    def sweep(self, now: datetime | None = None) -> SweepResult:
        """Run one pass at *now* (defaults to the clock)."""
        now = as_utc(now) if now is not None else self.clock.now()

        batch = self.store.list_active_candidates(self.batch_size)
        expired = find_expired(batch, now)
        ranks = {user_id: e.rank_id for user_id, e in batch}
        result = SweepResult(checked=len(batch), timestamp=now)

        for user_id in expired:
            try:
                revoked = self.store.revoke_if_expired(user_id, now)
            except StoreUnavailable:
                logger.exception(
                    "Failed to revoke expired rank for user %d", user_id,
                    extra={"task": "sweep"},
                )
                result.failed_users.append(user_id)
                continue
            if not revoked:
                result.skipped_users.append(user_id)
                logger.info("Skipped user %d: rank changed since the batch was read", user_id)
                continue
            result.removed_users.append(user_id)
            logger.info("Removed expired rank %s from user %d", ranks[user_id], user_id)

        result.removed = len(result.removed_users)
        logger.info(
            "Sweep complete — checked=%d removed=%d skipped=%d failed=%d (now=%s)",
            result.checked, result.removed, len(result.skipped_users),
            len(result.failed_users), now.isoformat(),
        )
        return result
