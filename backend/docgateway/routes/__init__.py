# Routes package init
"""
Document Gateway: API Routes Package
=====================================

Route Inventory:
    - health.py:     GET    /health                   (plain-text liveness)
                     GET    /diagnostics              (connection state)
    - documents.py:  GET    /documents/{key}          (plain text)
                     POST   /documents                (create, optional ?key=)
                     PUT    /documents/{key}          (upsert)
                     DELETE /documents/{key}
                     GET    /documents/{key}/exists   (plain text)
    - query.py:      POST   /query                    (parameterized read)
    - users.py:      POST   /users, GET /users
                     GET | PUT | DELETE /users/{id}
                     GET    /users/{id}/resilient     (replica fallback read)

Routes stay thin: parse path and body, call one service method, wrap the
result. Failures are raised, never caught here; the handlers registered in
main.py turn them into error envelopes.
"""
