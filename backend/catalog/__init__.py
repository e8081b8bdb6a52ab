"""
App Catalog Backend
===================

Catalog of city and tenant apps, enriched with App Store and Google Play
metadata by a paced background sync.

Layers:
    ┌─────────────────────────────────────┐
    │   Routes (FastAPI, /api/app ...)    │  ← HTTP, auth, envelopes
    ├─────────────────────────────────────┤
    │   Services                          │  ← sync orchestrator, batch
    │                                     │    scheduler, merge, store lookup
    ├─────────────────────────────────────┤
    │   Repository + Schemas              │  ← AppRecord <-> apps table
    ├─────────────────────────────────────┤
    │   Database (async SQLAlchemy)       │
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
