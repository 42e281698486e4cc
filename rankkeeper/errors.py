"""
rankkeeper.errors — Exception Hierarchy
========================================

Caller errors (:class:`InvalidDuration`, :class:`InvalidAmount`,
:class:`UnknownRank`) are raised before any write and are never retried.
:class:`StoreUnavailable` wraps database failures; the sweeper isolates it
per user, every other caller sees it directly.
"""

from __future__ import annotations


class RankkeeperError(Exception):
    """Base class for all Rankkeeper errors."""


class InvalidDuration(RankkeeperError):
    """A subscription length was not a positive whole number of days."""

    def __init__(self, days: object) -> None:
        super().__init__(f"Duration must be a positive number of days, got {days!r}")
        self.days = days


class InvalidAmount(RankkeeperError):
    """A purchase amount was below the accepted minimum."""

    def __init__(self, amount: object) -> None:
        super().__init__(f"Invalid subscription amount: {amount!r}")
        self.amount = amount


class UnknownRank(RankkeeperError):
    """The requested rank id is not in the catalogue."""

    def __init__(self, rank_id: str) -> None:
        super().__init__(f"Unknown rank: {rank_id!r}")
        self.rank_id = rank_id


class StoreUnavailable(RankkeeperError):
    """The backing database could not serve a read or write."""
