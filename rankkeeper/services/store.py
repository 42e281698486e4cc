"""
rankkeeper.services.store — Entitlement Persistence
====================================================

Reads and writes the ``(donation_rank_id, rank_expires_at)`` pair on the
``users`` table.  Each call is its own short transaction; row atomicity is
the database's job, so no locks are taken here.  The sweep revokes through
:meth:`SqlEntitlementStore.revoke_if_expired`, a guarded single-row
``UPDATE``, never through :meth:`~SqlEntitlementStore.put`.

Any :class:`~sqlalchemy.exc.SQLAlchemyError` is re-raised as
:class:`~rankkeeper.errors.StoreUnavailable` with the original chained.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Protocol

from sqlalchemy import Engine, select, update
from sqlalchemy.exc import SQLAlchemyError

from rankkeeper.database.engine import get_session
from rankkeeper.database.models import Donation, User
from rankkeeper.engine.clock import Clock, SystemClock, as_utc
from rankkeeper.engine.entitlement import NO_ENTITLEMENT, Entitlement, revoke
from rankkeeper.errors import StoreUnavailable

logger = logging.getLogger(__name__)


class EntitlementStore(Protocol):
    def get(self, user_id: int) -> Entitlement: ...

    def put(self, user_id: int, entitlement: Entitlement) -> None: ...

    def list_active_candidates(self, limit: int) -> list[tuple[int, Entitlement]]: ...

    def revoke_if_expired(self, user_id: int, now: datetime) -> bool: ...


class DonationLedger(Protocol):
    def record_donation(
        self,
        user_id: int,
        amount: Decimal,
        *,
        currency: str,
        method: str | None,
        message: str | None,
    ) -> int: ...


def _entitlement_of(user: User) -> Entitlement:
    if user.donation_rank_id is None:
        return NO_ENTITLEMENT
    return Entitlement(rank_id=user.donation_rank_id, expires_at=as_utc(user.rank_expires_at))


def _get_or_create_user(session, user_id: int) -> User:
    user = session.get(User, user_id)
    if user is None:
        user = User(id=user_id, username=f"user-{user_id}", total_donated=Decimal("0"))
        session.add(user)
        session.flush()
    return user


class SqlEntitlementStore:
    """:class:`EntitlementStore` and :class:`DonationLedger` on the ``users`` table."""

    def __init__(self, engine: Engine, clock: Clock | None = None) -> None:
        self.engine = engine
        self.clock = clock or SystemClock()

    # -------------------------------------------------------------------
    # Reads
    # -------------------------------------------------------------------
    def get(self, user_id: int) -> Entitlement:
        """Current entitlement; an unknown user has none."""
        try:
            with get_session(self.engine) as session:
                user = session.get(User, user_id)
                return _entitlement_of(user) if user is not None else NO_ENTITLEMENT
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not read entitlement for user {user_id}") from exc

    def list_active_candidates(self, limit: int) -> list[tuple[int, Entitlement]]:
        """Timed grants, soonest expiry first, at most *limit* rows.

        Permanent grants (no expiry) are never candidates.
        """
        try:
            with get_session(self.engine) as session:
                rows = session.execute(
                    select(User.id, User.donation_rank_id, User.rank_expires_at)
                    .where(
                        User.donation_rank_id.is_not(None),
                        User.rank_expires_at.is_not(None),
                    )
                    .order_by(User.rank_expires_at, User.id)
                    .limit(limit)
                ).all()
        except SQLAlchemyError as exc:
            raise StoreUnavailable("Could not list entitlement candidates") from exc

        return [
            (row.id, Entitlement(rank_id=row.donation_rank_id, expires_at=row.rank_expires_at))
            for row in rows
        ]

    def get_total_donated(self, user_id: int) -> Decimal:
        try:
            with get_session(self.engine) as session:
                total = session.scalar(select(User.total_donated).where(User.id == user_id))
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not read donations for user {user_id}") from exc
        return Decimal(total) if total is not None else Decimal("0")

    # -------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------
    def put(self, user_id: int, entitlement: Entitlement) -> None:
        """Overwrite the user's entitlement and stamp ``updated_at``.

        The user row is created on first write.
        """
        try:
            with get_session(self.engine) as session:
                user = _get_or_create_user(session, user_id)
                user.donation_rank_id = entitlement.rank_id
                user.rank_expires_at = entitlement.expires_at
                user.updated_at = self.clock.now()
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not write entitlement for user {user_id}") from exc

        logger.debug(
            "Stored entitlement for user %d: rank=%s expires=%s",
            user_id, entitlement.rank_id, entitlement.expires_at,
        )

    def revoke_if_expired(self, user_id: int, now: datetime) -> bool:
        """Clear the user's timed grant only if it is still expired at *now*.

        The expiry check and the write are one ``UPDATE``, so a renewal
        committed after the sweep read its batch is never overwritten.
        Returns ``False`` when no row matched.
        """
        cleared = revoke()
        stmt = (
            update(User)
            .where(
                User.id == user_id,
                User.donation_rank_id.is_not(None),
                User.rank_expires_at.is_not(None),
                User.rank_expires_at <= as_utc(now),
            )
            .values(
                donation_rank_id=cleared.rank_id,
                rank_expires_at=cleared.expires_at,
                updated_at=self.clock.now(),
            )
            .execution_options(synchronize_session=False)
        )
        try:
            with get_session(self.engine) as session:
                matched = session.execute(stmt).rowcount
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not revoke entitlement for user {user_id}") from exc
        return matched > 0

    def record_donation(
        self,
        user_id: int,
        amount: Decimal,
        *,
        currency: str = "USD",
        method: str | None = None,
        message: str | None = None,
    ) -> int:
        """Append a donation row and add *amount* to the user's running total.

        Returns the new donation id.
        """
        try:
            with get_session(self.engine) as session:
                user = _get_or_create_user(session, user_id)
                donation = Donation(
                    user_id=user_id,
                    amount=amount,
                    currency=currency,
                    method=method,
                    message=message,
                    displayed=True,
                    created_at=self.clock.now(),
                )
                session.add(donation)
                user.total_donated = Decimal(user.total_donated or 0) + Decimal(amount)
                user.updated_at = self.clock.now()
                session.flush()
                return donation.id
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not record donation for user {user_id}") from exc
