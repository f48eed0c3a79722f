"""
M-Hike API: Application Package
=================================

Backend for the M-Hike hiking log: user accounts, hikes, trail
observations, and the avatar/photo uploads attached to them.

Layers:

    ┌─────────────────────────────────────┐
    │           Routes (API Layer)        │  ← HTTP concerns, receive uploads
    ├─────────────────────────────────────┤
    │         Services (Business Logic)   │  ← validation, asset lifecycle
    ├─────────────────────────────────────┤
    │       Models & Schemas (Data)       │  ← SQLAlchemy ORM + Pydantic
    ├─────────────────────────────────────┤
    │   Database handle   │ Asset storage │  ← opened by the app lifespan
    └─────────────────────────────────────┘
"""

__version__ = "1.0.0"
