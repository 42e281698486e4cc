"""
rankkeeper.database.seed — Default Rank Catalogue
==================================================

Baseline donation ranks inserted on first startup so purchases and admin
grants work out of the box.

Idempotent — only inserts rank ids that don't already exist.  Ranks
edited or created by admins are never overwritten.
"""

from __future__ import annotations

import logging
from decimal import Decimal

from sqlalchemy import Engine

from rankkeeper.database.engine import get_session
from rankkeeper.database.models import DonationRank

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Default rank catalogue
# ---------------------------------------------------------------------------
DEFAULT_RANKS: tuple[dict, ...] = (
    {
        "id": "vip",
        "name": "VIP",
        "min_amount": Decimal("5.00"),
        "color": "#FFD700",
        "text_color": "#000000",
        "badge": "\u2b50",        # ⭐
        "glow": False,
        "duration_days": 30,
        "subtitle": "Support the server!",
    },
    {
        "id": "vip_plus",
        "name": "VIP+",
        "min_amount": Decimal("15.00"),
        "color": "#00FF00",
        "text_color": "#000000",
        "badge": "\U0001f31f",    # 🌟
        "glow": True,
        "duration_days": 30,
        "subtitle": "Premium benefits!",
    },
    {
        "id": "mvp",
        "name": "MVP",
        "min_amount": Decimal("30.00"),
        "color": "#00FFFF",
        "text_color": "#000000",
        "badge": "\U0001f48e",    # 💎
        "glow": True,
        "duration_days": 30,
        "subtitle": "Most Valuable Player!",
    },
)


# ---------------------------------------------------------------------------
# Seeder
# ---------------------------------------------------------------------------
def seed_default_ranks(engine: Engine) -> int:
    """Insert default ranks that don't yet exist.  Returns the number inserted."""
    inserted = 0
    with get_session(engine) as session:
        for fields in DEFAULT_RANKS:
            if session.get(DonationRank, fields["id"]) is None:
                session.add(DonationRank(**fields))
                inserted += 1

    if inserted:
        logger.info("Seeded %d default donation ranks.", inserted)
    return inserted
