"""
rankkeeper.services.catalog — Rank Catalogue Reads
===================================================

Read-only access to ``donation_ranks``.  Rows are converted into frozen
:class:`RankDefinition` values so nothing downstream holds a live ORM
object or an open session.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from decimal import Decimal
from typing import Protocol

from sqlalchemy import Engine, select
from sqlalchemy.exc import SQLAlchemyError

from rankkeeper.database.engine import get_session
from rankkeeper.database.models import DonationRank
from rankkeeper.engine.pricing import price_per_day_for
from rankkeeper.errors import StoreUnavailable

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class RankDefinition:
    """Catalogue entry.  Display attributes are opaque to the engine."""

    id: str
    name: str
    min_amount: Decimal
    color: str = "#FFFFFF"
    text_color: str = "#000000"
    badge: str | None = None
    icon: str | None = None
    glow: bool = False
    subtitle: str | None = None
    duration_days: int = 30
    price_per_day: Decimal | None = None

    @classmethod
    def from_row(cls, row: DonationRank) -> RankDefinition:
        return cls(
            id=row.id,
            name=row.name,
            min_amount=Decimal(row.min_amount),
            color=row.color,
            text_color=row.text_color,
            badge=row.badge,
            icon=row.icon,
            glow=bool(row.glow),
            subtitle=row.subtitle,
            duration_days=row.duration_days or 30,
            price_per_day=Decimal(row.price_per_day) if row.price_per_day is not None else None,
        )

    @property
    def daily_price(self) -> Decimal:
        """Price per day, falling back to the built-in pricing table."""
        return price_per_day_for(self.id, self.price_per_day)


class RankCatalog(Protocol):
    def get_rank(self, rank_id: str) -> RankDefinition | None: ...

    def list_ranks(self) -> list[RankDefinition]: ...


class SqlRankCatalog:
    """:class:`RankCatalog` backed by the ``donation_ranks`` table."""

    def __init__(self, engine: Engine) -> None:
        self.engine = engine

    def get_rank(self, rank_id: str) -> RankDefinition | None:
        try:
            with get_session(self.engine) as session:
                row = session.get(DonationRank, rank_id)
                return RankDefinition.from_row(row) if row is not None else None
        except SQLAlchemyError as exc:
            raise StoreUnavailable(f"Could not load rank {rank_id!r}") from exc

    def list_ranks(self) -> list[RankDefinition]:
        """All ranks, cheapest threshold first."""
        try:
            with get_session(self.engine) as session:
                rows = session.scalars(
                    select(DonationRank).order_by(DonationRank.min_amount, DonationRank.id)
                ).all()
                return [RankDefinition.from_row(r) for r in rows]
        except SQLAlchemyError as exc:
            raise StoreUnavailable("Could not list ranks") from exc
