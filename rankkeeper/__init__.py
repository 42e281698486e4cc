"""
Rankkeeper — Donation Rank Entitlements for Community Servers
==============================================================
Assigns time-bounded donation ranks to community members, renews and
converts them, and sweeps expired grants away on a schedule.  The web
layer that sells ranks and renders profiles lives elsewhere; this package
owns only the entitlement lifecycle.

Package layout::

    rankkeeper/
    ├── __main__.py        # ``python -m rankkeeper sweep`` / ``init-db``
    ├── config.py          # YAML → typed Python config
    ├── errors.py          # Exception hierarchy
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + session helper
    │   ├── models.py      # ORM models (users, donation_ranks, donations, admin_log)
    │   └── seed.py        # Default rank catalogue
    ├── engine/
    │   ├── clock.py       # Injectable time source
    │   ├── entitlement.py # Pure entitlement rules (assign / revoke / expiry)
    │   └── pricing.py     # Price-per-day maths, day conversion, tier lookup
    └── services/
        ├── catalog.py     # Rank catalogue reads
        ├── store.py       # Entitlement persistence
        ├── sweeper.py     # Expiration sweep pass
        ├── entitlement_service.py  # Consumer-facing assignment API
        └── admin_service.py        # Audit-logged admin mutations
"""

__version__ = "0.1.0"
