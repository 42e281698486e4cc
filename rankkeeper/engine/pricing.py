"""
rankkeeper.engine.pricing — Rank Pricing & Tier Lookup
=======================================================

Pure ``Decimal`` arithmetic for subscription pricing.  Each rank has a
price per day; purchases buy whole days, upgrades and downgrades convert
the remaining value of one rank into days of another.

Money is rounded half-up to cents.  Day counts are always floored so a
purchase never buys more time than was paid for.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_FLOOR, ROUND_HALF_UP, Decimal
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from rankkeeper.services.catalog import RankDefinition

CENT = Decimal("0.01")

DEFAULT_PRICE_PER_DAY = Decimal("0.17")

RANK_PRICING: dict[str, Decimal] = {
    "supporter": Decimal("0.17"),  # ~$5/month
    "patron": Decimal("0.33"),     # ~$10/month
    "elite": Decimal("0.50"),      # ~$15/month
    "legend": Decimal("0.83"),     # ~$25/month
    "champion": Decimal("1.67"),   # ~$50/month
}

# (days, label, discount percent)
DURATION_PACKAGES: tuple[tuple[int, str, int], ...] = (
    (30, "1 Month", 0),
    (90, "3 Months", 5),
    (180, "6 Months", 10),
    (365, "12 Months", 15),
)


@dataclass(frozen=True, slots=True)
class DurationPackage:
    days: int
    label: str
    price: Decimal
    discount: int = 0


@dataclass(frozen=True, slots=True)
class RankValueInfo:
    price_per_day: Decimal
    price_per_month: Decimal
    price_per_year: Decimal


@dataclass(frozen=True, slots=True)
class RankUpgradeInfo:
    current_rank: RankDefinition | None
    next_rank: RankDefinition | None
    amount_needed: Decimal


def _money(value: Decimal) -> Decimal:
    return value.quantize(CENT, rounding=ROUND_HALF_UP)


def price_per_day_for(rank_id: str, price_per_day: Decimal | None = None) -> Decimal:
    """Resolve the daily price of a rank.

    An explicit *price_per_day* (from the catalogue row) wins, then the
    built-in table, then :data:`DEFAULT_PRICE_PER_DAY`.
    """
    if price_per_day is not None and price_per_day > 0:
        return Decimal(price_per_day)
    return RANK_PRICING.get(rank_id.lower(), DEFAULT_PRICE_PER_DAY)


def days_for_price(price_per_day: Decimal, price: Decimal) -> int:
    """Whole days that *price* buys."""
    return int((Decimal(price) / price_per_day).to_integral_value(rounding=ROUND_FLOOR))


def price_for_days(price_per_day: Decimal, days: int) -> Decimal:
    """Undiscounted price of *days* days, rounded to cents."""
    return _money(price_per_day * days)


def duration_packages(price_per_day: Decimal) -> list[DurationPackage]:
    """The standard 1/3/6/12-month packages with their volume discounts."""
    packages = []
    for days, label, discount in DURATION_PACKAGES:
        factor = (Decimal(100) - discount) / Decimal(100)
        packages.append(DurationPackage(
            days=days,
            label=label,
            price=_money(price_per_day * days * factor),
            discount=discount,
        ))
    return packages


def convert_rank_days(
    from_price_per_day: Decimal,
    to_price_per_day: Decimal,
    remaining_days: int,
) -> int:
    """Days of the target rank that the remaining value of the source rank buys."""
    total_value = from_price_per_day * remaining_days
    return days_for_price(to_price_per_day, total_value)


def rank_value_info(price_per_day: Decimal) -> RankValueInfo:
    """Display prices; the yearly figure carries the 12-month discount."""
    return RankValueInfo(
        price_per_day=price_per_day,
        price_per_month=_money(price_per_day * 30),
        price_per_year=_money(price_per_day * 365 * Decimal("0.85")),
    )


# ---------------------------------------------------------------------------
# Tier lookup by cumulative donation
# ---------------------------------------------------------------------------
def _by_threshold(ranks: Sequence[RankDefinition]) -> list[RankDefinition]:
    return sorted(ranks, key=lambda r: (Decimal(r.min_amount), r.id))


def rank_for_amount(ranks: Sequence[RankDefinition], amount: Decimal) -> RankDefinition | None:
    """Highest rank whose ``min_amount`` is covered by *amount*."""
    qualifying = [r for r in _by_threshold(ranks) if Decimal(r.min_amount) <= Decimal(amount)]
    return qualifying[-1] if qualifying else None


def rank_upgrade_info(ranks: Sequence[RankDefinition], amount: Decimal) -> RankUpgradeInfo:
    """Current tier for *amount*, the next tier up, and how much more it costs."""
    ordered = _by_threshold(ranks)
    amount = Decimal(amount)
    current = rank_for_amount(ordered, amount)
    if current is None:
        first = ordered[0] if ordered else None
        return RankUpgradeInfo(
            current_rank=None,
            next_rank=first,
            amount_needed=_money(Decimal(first.min_amount) - amount) if first else Decimal("0.00"),
        )

    index = ordered.index(current)
    next_rank = ordered[index + 1] if index + 1 < len(ordered) else None
    needed = Decimal(next_rank.min_amount) - amount if next_rank else Decimal(0)
    return RankUpgradeInfo(current_rank=current, next_rank=next_rank, amount_needed=_money(needed))
