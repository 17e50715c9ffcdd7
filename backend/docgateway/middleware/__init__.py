# Middleware package init
"""
Document Gateway: Middleware Package
=====================================

What:  Cross-cutting concerns applied to every request.

Middleware Chain (execution order):
    Request → [Request ID] → [Rate Limit] → [Logging] → [GZip] → [CORS] → Route

    1. Request ID is outermost so even a 429 carries X-Request-ID
    2. Rate Limit rejects before any store work happens
    3. Logging sees the final status code and the full duration

    Responses pass back through the chain in reverse, which is where the
    X-Request-ID header is attached.
"""
