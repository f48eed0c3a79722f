"""
M-Hike API: Middleware Package
================================

Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [Request ID] → [Access Log] → [GZip] → [CORS] → Route Handler

    - Request ID first, so the access log line and any error body share it
    - Access log measures everything below it, including upload streaming
"""
