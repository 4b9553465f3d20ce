# Services package init
"""
Writegy Backend - Services Layer
==================================

Business logic between the routes (HTTP) and the database.

Service Inventory:
    - metrics:            word and character counts for document text
    - document_tree:      parent/child moves, cycle and depth checks
    - document_service:   document CRUD, uploads, lazy metric repair
    - llm_base:           LLMService interface
    - completion_client:  OpenAI-compatible chat completions over httpx,
                          with retries and a circuit breaker
    - grammar_heuristics: rule-based fallback checker
    - grammar_service:    AI grammar check with caching and fallback
    - storage_service:    upload validation, local disk and S3 storage
    - identity_service:   bearer token verification
    - user_service:       find-or-create users, demo account policy
"""
