"""
Document Gateway: Application Package Initializer
==================================================

What: Marks the `docgateway` directory as a Python package.
Who:  Imported by uvicorn (`docgateway.main:app`), Alembic, and pytest.

Architecture Note:
    The gateway is a thin, stateless layer over a document store:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns only
    ├─────────────────────────────────────┤
    │   Services (Document / User logic)  │  ← ids, metadata, merge, retries
    ├─────────────────────────────────────┤
    │      DocumentStore (async port)     │  ← get / insert / replace / query ...
    ├─────────────────────────────────────┤
    │   Database (primary + replica)      │  ← async SQLAlchemy engines
    └─────────────────────────────────────┘

    Nothing above the store keeps state between requests. Concurrency safety
    for writes comes from the store's version token (CAS), never from locks.
"""

__version__ = "1.0.0"
