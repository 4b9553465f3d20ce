# Middleware package init
"""
Writegy Backend - Middleware Package
======================================

Cross-cutting concerns applied to every request.

Middleware Chain (outermost first):
    Request → [CORS] → [Request ID] → [Logging] → [Rate Limit] → [GZip] → Route Handler

    - Request ID sets the correlation ID used by logging and error bodies
    - Logging records status and duration on the way out
    - Rate Limit meters only the grammar endpoint and answers 429 itself
"""
