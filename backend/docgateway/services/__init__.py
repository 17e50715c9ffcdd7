# Services package init
"""
Document Gateway: Services Layer
=================================

What:  Everything between the routes and the database.

Service Inventory:
    - DocumentStore (abstract, store_base.py): async store contract and
      result types (GetResult, MutationResult, PingResult, ...)
    - SqlDocumentStore (document_store.py): the contract over async
      SQLAlchemy, with per-call timeouts and error translation
    - metadata.py: key generation and validation, createdAt/updatedAt
      stamping, the partial update merge rule
    - DocumentService: generic documents, health, diagnostics, queries
    - UserService: user CRUD and the resilient replica-fallback read

Services receive their store in the constructor; the module-level
singletons wire them to the shared SqlDocumentStore, and tests swap in an
in-memory store.
"""
