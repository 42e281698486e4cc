"""
rankkeeper.config — YAML Configuration Loader
==============================================

Reads ``config.yaml`` for the tunables of the entitlement lifecycle (sweep
batch size, renewal policy, currency).  Secrets such as ``DATABASE_URL``
stay in the environment and are never read from this file.

The loaded :class:`RankkeeperConfig` is passed explicitly to the services
that need it; nothing here is a process-wide singleton.

Usage::

    from rankkeeper.config import load_config

    cfg = load_config()              # reads ./config.yaml by default
    print(cfg.sweep_batch_size)      # 100
    print(cfg.renewal_policy)        # RenewalPolicy.FROM_NOW
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from rankkeeper.engine.entitlement import RenewalPolicy

DEFAULT_SWEEP_BATCH_SIZE = 100


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class RankkeeperConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    community_name: str = "Rankkeeper"

    # Sweeper
    sweep_batch_size: int = DEFAULT_SWEEP_BATCH_SIZE

    # Renewal of the same rank: recompute from now, or extend the current expiry
    renewal_policy: RenewalPolicy = RenewalPolicy.FROM_NOW

    # Purchases
    default_currency: str = "USD"
    min_purchase_amount: int = 1


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> RankkeeperConfig:
    """Read *path* and return a :class:`RankkeeperConfig` instance.

    Every key is optional; missing keys keep the dataclass defaults.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    ValueError
        If a value is out of range or ``renewal_policy`` is not recognised.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    batch_size = int(raw.get("sweep_batch_size", DEFAULT_SWEEP_BATCH_SIZE))
    if batch_size < 1:
        raise ValueError(f"sweep_batch_size must be >= 1, got {batch_size}")

    policy_raw = str(raw.get("renewal_policy", RenewalPolicy.FROM_NOW.value))
    try:
        policy = RenewalPolicy(policy_raw.strip().lower())
    except ValueError:
        valid = ", ".join(p.value for p in RenewalPolicy)
        raise ValueError(
            f"renewal_policy must be one of: {valid} (got {policy_raw!r})"
        ) from None

    return RankkeeperConfig(
        community_name=raw.get("community_name", "Rankkeeper"),
        sweep_batch_size=batch_size,
        renewal_policy=policy,
        default_currency=str(raw.get("default_currency", "USD")).upper(),
        min_purchase_amount=int(raw.get("min_purchase_amount", 1)),
    )
