# Routes package init
"""
Writegy Backend - API Routes Package
======================================

Route Inventory:
    - documents.py: /api/documents        document CRUD and hierarchy
    - grammar.py:   /api/grammar/check    AI grammar check with fallback
    - auth.py:      /auth/sync, /auth/me  account sync and lookup
    - health.py:    /health               service health check

Routes stay thin: extract request data, call a service, shape the response.
"""
