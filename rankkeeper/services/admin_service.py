"""
rankkeeper.services.admin_service — Admin Mutation Service Layer
================================================================

Audited admin writes to the rank catalogue and to user entitlements.
Every write follows the pattern:
  1. Begin transaction
  2. Read "before" snapshot
  3. Apply change
  4. Write admin_log with before/after JSONB
  5. Commit

Entitlement decisions still come from :mod:`rankkeeper.engine.entitlement`;
this module only adds the audit trail around them.  Database failures are
raised as :class:`~rankkeeper.errors.StoreUnavailable`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal, InvalidOperation
from typing import Any

from sqlalchemy import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from rankkeeper.database.models import AdminActionType, AdminLog, DonationRank, User
from rankkeeper.engine import entitlement as rules
from rankkeeper.engine.clock import Clock, SystemClock, as_utc
from rankkeeper.engine.entitlement import Entitlement, RenewalPolicy
from rankkeeper.errors import InvalidAmount, StoreUnavailable, UnknownRank

logger = logging.getLogger(__name__)

_FROZEN_RANK_KEYS = ("id", "created_at")


# ---------------------------------------------------------------------------
# Generic audit helpers
# ---------------------------------------------------------------------------

def _row_to_dict(obj: Any) -> dict | None:
    """Convert a SQLAlchemy model instance to a JSON-serializable dict."""
    if obj is None:
        return None
    result = {}
    for col in obj.__table__.columns:
        val = getattr(obj, col.key, None)
        if isinstance(val, datetime):
            val = val.isoformat()
        elif isinstance(val, Decimal):
            val = str(val)
        result[col.name] = val
    return result


def _entitlement_snapshot(user: User | None) -> dict | None:
    if user is None:
        return None
    expires = as_utc(user.rank_expires_at)
    return {
        "user_id": user.id,
        "donation_rank_id": user.donation_rank_id,
        "rank_expires_at": expires.isoformat() if expires else None,
        "total_donated": str(user.total_donated) if user.total_donated is not None else None,
    }


def _log_admin_action(
    session: Session,
    *,
    actor_id: int,
    action_type: str,
    target_table: str,
    target_id: str | None,
    before: dict | None,
    after: dict | None,
    reason: str | None = None,
) -> None:
    """Insert a row into admin_log within the current transaction."""
    session.add(AdminLog(
        actor_id=actor_id,
        action_type=action_type,
        target_table=target_table,
        target_id=target_id,
        before_snapshot=before,
        after_snapshot=after,
        reason=reason,
    ))


# ---------------------------------------------------------------------------
# Rank catalogue CRUD
# ---------------------------------------------------------------------------

def create_rank(engine: Engine, *, actor_id: int, **fields: Any) -> DonationRank:
    """Insert a new catalogue rank.  ``id``, ``name``, ``min_amount``,
    ``color`` and ``text_color`` are required.

    A duplicate ``id`` surfaces as :class:`StoreUnavailable`.
    """
    try:
        with Session(engine, expire_on_commit=False) as session:
            row = DonationRank(**fields)
            session.add(row)
            session.flush()
            _log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.CREATE,
                target_table="donation_ranks",
                target_id=row.id,
                before=None,
                after=_row_to_dict(row),
            )
            session.commit()
            session.refresh(row)
            session.expunge(row)
    except SQLAlchemyError as exc:
        raise StoreUnavailable(f"Could not create rank {fields.get('id')!r}") from exc

    logger.info("Admin %d created rank %s", actor_id, row.id)
    return row


def update_rank(
    engine: Engine, rank_id: str, *, actor_id: int, **fields: Any,
) -> DonationRank | None:
    """Apply *fields* to an existing rank.  Returns ``None`` if not found."""
    try:
        with Session(engine, expire_on_commit=False) as session:
            row = session.get(DonationRank, rank_id)
            if row is None:
                return None
            before = _row_to_dict(row)
            for key, value in fields.items():
                if hasattr(row, key) and key not in _FROZEN_RANK_KEYS:
                    setattr(row, key, value)
            session.flush()
            _log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.UPDATE,
                target_table="donation_ranks",
                target_id=rank_id,
                before=before,
                after=_row_to_dict(row),
            )
            session.commit()
            session.refresh(row)
            session.expunge(row)
            return row
    except SQLAlchemyError as exc:
        raise StoreUnavailable(f"Could not update rank {rank_id!r}") from exc


def delete_rank(engine: Engine, rank_id: str, *, actor_id: int) -> bool:
    """Delete a rank and clear it from every holder.

    Returns ``True`` if the rank existed.
    """
    try:
        with Session(engine) as session:
            row = session.get(DonationRank, rank_id)
            if row is None:
                return False
            _log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.DELETE,
                target_table="donation_ranks",
                target_id=rank_id,
                before=_row_to_dict(row),
                after=None,
            )
            # Holders lose the rank outright; SQLite doesn't enforce ON DELETE SET NULL
            for holder in row.holders:
                cleared = rules.revoke()
                holder.donation_rank_id = cleared.rank_id
                holder.rank_expires_at = cleared.expires_at
            session.delete(row)
            session.commit()
    except SQLAlchemyError as exc:
        raise StoreUnavailable(f"Could not delete rank {rank_id!r}") from exc

    logger.info("Admin %d deleted rank %s", actor_id, rank_id)
    return True


# ---------------------------------------------------------------------------
# Entitlement mutations
# ---------------------------------------------------------------------------

def _parse_total(total_donated: Decimal | int | str) -> Decimal:
    try:
        value = Decimal(str(total_donated))
    except InvalidOperation:
        raise InvalidAmount(total_donated) from None
    if not value.is_finite() or value < 0:
        raise InvalidAmount(total_donated)
    return value


def admin_assign_rank(
    engine: Engine,
    user_id: int,
    rank_id: str,
    *,
    actor_id: int,
    days: int | None = None,
    total_donated: Decimal | int | str | None = None,
    reason: str | None = None,
    clock: Clock | None = None,
    policy: RenewalPolicy = RenewalPolicy.FROM_NOW,
) -> Entitlement:
    """Grant *rank_id* to *user_id*; ``days=None`` makes the grant permanent.

    *total_donated*, when given, overwrites the user's running donation
    total (manual corrections for off-platform payments).

    Raises :class:`UnknownRank`, :class:`InvalidDuration` or
    :class:`InvalidAmount` before writing.
    """
    if days is not None:
        rules.validate_days(days)
    total = _parse_total(total_donated) if total_donated is not None else None
    now = (clock or SystemClock()).now()

    try:
        with Session(engine) as session:
            if session.get(DonationRank, rank_id) is None:
                raise UnknownRank(rank_id)

            user = session.get(User, user_id)
            if user is None:
                user = User(id=user_id, username=f"user-{user_id}", total_donated=Decimal("0"))
                session.add(user)
                session.flush()
                before = None
                current = rules.NO_ENTITLEMENT
            else:
                before = _entitlement_snapshot(user)
                current = Entitlement(user.donation_rank_id, as_utc(user.rank_expires_at))

            if days is None:
                new = rules.grant_permanent(rank_id)
            else:
                new = rules.assign(current, rank_id, days, now, policy=policy)

            user.donation_rank_id = new.rank_id
            user.rank_expires_at = new.expires_at
            if total is not None:
                user.total_donated = total
            user.updated_at = now
            _log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.RANK_ASSIGN,
                target_table="users",
                target_id=str(user_id),
                before=before,
                after=_entitlement_snapshot(user),
                reason=reason,
            )
            session.commit()
    except SQLAlchemyError as exc:
        raise StoreUnavailable(f"Could not assign rank to user {user_id}") from exc

    logger.info(
        "Admin %d assigned rank %s to user %d (expires: %s)",
        actor_id, rank_id, user_id, new.expires_at.isoformat() if new.expires_at else "never",
    )
    return new


def admin_revoke_rank(
    engine: Engine,
    user_id: int,
    *,
    actor_id: int,
    reason: str | None = None,
    clock: Clock | None = None,
) -> bool:
    """Clear *user_id*'s rank.  Returns ``False`` if the user doesn't exist."""
    now = (clock or SystemClock()).now()
    try:
        with Session(engine) as session:
            user = session.get(User, user_id)
            if user is None:
                return False
            before = _entitlement_snapshot(user)
            cleared = rules.revoke()
            user.donation_rank_id = cleared.rank_id
            user.rank_expires_at = cleared.expires_at
            user.updated_at = now
            _log_admin_action(
                session,
                actor_id=actor_id,
                action_type=AdminActionType.RANK_REVOKE,
                target_table="users",
                target_id=str(user_id),
                before=before,
                after=_entitlement_snapshot(user),
                reason=reason,
            )
            session.commit()
    except SQLAlchemyError as exc:
        raise StoreUnavailable(f"Could not revoke rank from user {user_id}") from exc

    logger.info("Admin %d revoked rank from user %d", actor_id, user_id)
    return True
