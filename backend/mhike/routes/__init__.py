"""
M-Hike API: Route Handlers
============================

Route Inventory:
    - auth.py:          /api/auth/*          (accounts, profile, avatar)
    - hikes.py:         /api/hikes           (hike CRUD and search)
    - observations.py:  /api/hikes/.../observations
    - health.py:        /api/health

Routes stay thin: they receive uploads, collect form fields and hand off to
the services.
"""
