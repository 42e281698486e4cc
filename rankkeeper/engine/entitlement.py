"""
rankkeeper.engine.entitlement — Entitlement Rules
==================================================

Pure decision logic over a user's rank grant.
No DB I/O, no clock reads: callers pass ``now`` explicitly.

:func:`is_active` is the only place that decides whether a grant is live,
and :func:`is_expired` is its exact complement for timed grants.  Expiry is
exclusive: a grant expiring at ``T`` is active at ``T - 1s`` and expired
at ``T``.

State machine::

    (None, None) ──assign──► (rank, T) ──now >= T──► expired ──sweep──► (None, None)
          │                      │
          └──grant_permanent──► (rank, None)   revoke from any state ──► (None, None)
"""

from __future__ import annotations

import enum
import logging
import math
from collections.abc import Callable, Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta

from rankkeeper.engine.clock import as_utc
from rankkeeper.errors import InvalidDuration

logger = logging.getLogger(__name__)

__all__ = [
    "SECONDS_PER_DAY",
    "NO_ENTITLEMENT",
    "Entitlement",
    "RenewalPolicy",
    "assign",
    "change_rank",
    "compute_expiry",
    "find_expired",
    "grant_permanent",
    "is_active",
    "is_expired",
    "remaining_days",
    "revoke",
    "validate_days",
]

SECONDS_PER_DAY = 86_400


class RenewalPolicy(enum.StrEnum):
    """Where a renewal of the *same* rank starts counting from."""
    FROM_NOW = "from_now"
    EXTEND = "extend"


# ---------------------------------------------------------------------------
# Entitlement — one per user
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class Entitlement:
    """A user's current rank grant.

    ``rank_id=None`` means no rank; any ``expires_at`` given with it is dropped.
    ``expires_at=None`` with a rank set is a permanent grant.
    """

    rank_id: str | None = None
    expires_at: datetime | None = None

    def __post_init__(self) -> None:
        expires_at = None if self.rank_id is None else as_utc(self.expires_at)
        object.__setattr__(self, "expires_at", expires_at)

    @property
    def is_permanent(self) -> bool:
        return self.rank_id is not None and self.expires_at is None


NO_ENTITLEMENT = Entitlement()


# ---------------------------------------------------------------------------
# Expiry arithmetic
# ---------------------------------------------------------------------------
def validate_days(days: object) -> int:
    """Return *days* if it is a whole number >= 1, else raise :class:`InvalidDuration`."""
    if isinstance(days, bool) or not isinstance(days, int) or days < 1:
        raise InvalidDuration(days)
    return days


def compute_expiry(now: datetime, days: int) -> datetime:
    """``now + days * 86400`` seconds."""
    validate_days(days)
    return as_utc(now) + timedelta(seconds=days * SECONDS_PER_DAY)


# ---------------------------------------------------------------------------
# Predicates
# ---------------------------------------------------------------------------
def is_active(entitlement: Entitlement, now: datetime) -> bool:
    """True iff the user holds a rank right now."""
    if entitlement.rank_id is None:
        return False
    return entitlement.expires_at is None or entitlement.expires_at > as_utc(now)


def is_expired(entitlement: Entitlement, now: datetime) -> bool:
    """True iff a timed grant has reached its expiry and is waiting to be swept."""
    return (
        entitlement.rank_id is not None
        and entitlement.expires_at is not None
        and entitlement.expires_at <= as_utc(now)
    )


def remaining_days(entitlement: Entitlement, now: datetime) -> int | None:
    """Whole days left on an active grant, rounded up.

    ``None`` for a permanent grant, ``0`` when nothing is active.
    """
    if entitlement.is_permanent:
        return None
    if not is_active(entitlement, now):
        return 0
    left = (entitlement.expires_at - as_utc(now)).total_seconds()
    return math.ceil(left / SECONDS_PER_DAY)


# ---------------------------------------------------------------------------
# Transitions
# ---------------------------------------------------------------------------
def assign(
    current: Entitlement,
    rank_id: str,
    days: int,
    now: datetime,
    *,
    policy: RenewalPolicy = RenewalPolicy.FROM_NOW,
) -> Entitlement:
    """Grant *rank_id* for *days*, replacing whatever *current* holds.

    Days never stack across different ranks.  Under
    :attr:`RenewalPolicy.EXTEND`, renewing the same rank while it is still
    active adds the days onto the current expiry instead of onto *now*.
    """
    validate_days(days)
    base = as_utc(now)
    if (
        policy is RenewalPolicy.EXTEND
        and current.rank_id == rank_id
        and current.expires_at is not None
        and is_active(current, now)
    ):
        base = current.expires_at
    return Entitlement(rank_id=rank_id, expires_at=compute_expiry(base, days))


def grant_permanent(rank_id: str) -> Entitlement:
    """A rank that never expires and is never swept."""
    return Entitlement(rank_id=rank_id, expires_at=None)


def revoke(current: Entitlement | None = None) -> Entitlement:
    """Clear the grant.  Ignores *current*, so repeated calls converge."""
    return NO_ENTITLEMENT


def change_rank(
    current: Entitlement,
    new_rank_id: str,
    now: datetime,
    *,
    convert: Callable[[str, str, int], int],
) -> Entitlement:
    """Move an active grant to *new_rank_id*, converting its remaining value.

    ``convert(from_rank_id, to_rank_id, remaining_days)`` returns the number
    of days the remaining value buys in the new rank.  A permanent grant
    stays permanent.  When nothing is active, or the conversion is worth
    less than one day, the grant is cleared.
    """
    if current.is_permanent:
        return grant_permanent(new_rank_id)

    days_left = remaining_days(current, now) or 0
    if days_left < 1:
        return revoke(current)

    converted = convert(current.rank_id, new_rank_id, days_left)
    if converted < 1:
        logger.debug(
            "Conversion %s → %s of %d days is worth less than a day",
            current.rank_id, new_rank_id, days_left,
        )
        return revoke(current)
    return Entitlement(rank_id=new_rank_id, expires_at=compute_expiry(now, converted))


# ---------------------------------------------------------------------------
# Sweep decision
# ---------------------------------------------------------------------------
def find_expired(
    entitlements: Iterable[tuple[int, Entitlement]],
    now: datetime,
) -> list[int]:
    """User ids whose timed grant has expired, sorted ascending.

    Permanent grants and empty entitlements are never returned.
    """
    return sorted(
        user_id for user_id, entitlement in entitlements
        if is_expired(entitlement, now)
    )
