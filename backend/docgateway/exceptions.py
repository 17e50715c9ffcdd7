"""
Document Gateway: Exception Hierarchy
======================================

What:  Application exceptions for every outcome a store call can settle in.
How:   Each class carries a user-safe message, a debug context dict, the
       envelope `error_code`, and the HTTP status it maps to. Global handlers
       in main.py turn them into response envelopes.
Who:   Raised by the document store and the services; caught by handlers.

Exception Hierarchy:
    GatewayError (base)
    ├── ValidationError          → 400 INVALID_INPUT
    ├── NotFoundError            → 404 NOT_FOUND
    ├── ConflictError            → 409 CONFLICT
    │   ├── DocumentExistsError      (create-only insert hit an existing key)
    │   └── VersionConflictError     (CAS changed between read and write)
    ├── StoreTimeoutError        → 504 TIMEOUT
    └── DatabaseError            → 500 INTERNAL_ERROR

    NotFound and Conflict are business outcomes, not faults: callers get a
    well-formed envelope for them exactly like for a success.
"""

from typing import Any, Dict, Optional


class GatewayError(Exception):
    """
    Base exception for all gateway errors.

    Attributes:
        message:  User-facing error description (safe to return in a response)
        context:  Additional debug info (logged, only `key` is echoed back)
    """

    error_code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "An unexpected error occurred",
        context: Optional[Dict[str, Any]] = None,
    ):
        self.message = message
        self.context = context or {}
        super().__init__(self.message)

    @property
    def key(self) -> Optional[str]:
        """Document key the failure concerns, if any."""
        return self.context.get("key")


class ValidationError(GatewayError):
    """
    Raised when client input is malformed or breaks a field rule.

    When: non-object JSON body, bad email/role on a user, write statement
          sent to /query, key longer than the store accepts.
    """

    error_code = "INVALID_INPUT"
    status_code = 400

    def __init__(
        self,
        message: str = "Validation failed",
        field: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if field:
            ctx["field"] = field
        super().__init__(message=message, context=ctx)
        self.field = field


class NotFoundError(GatewayError):
    """
    Raised when a key does not exist in the store.

    The store raises this instead of returning None or an empty mapping, so
    a missing document can never be confused with a real (empty) one.
    """

    error_code = "NOT_FOUND"
    status_code = 404

    def __init__(
        self,
        resource: str = "document",
        key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        message = f"The requested {resource} was not found"
        if key:
            message = f"{resource} with key '{key}' was not found"
        ctx = context or {}
        ctx["resource"] = resource
        if key:
            ctx["key"] = key
        super().__init__(message=message, context=ctx)
        self.resource = resource


class ConflictError(GatewayError):
    """Base for optimistic-concurrency and duplicate-key failures."""

    error_code = "CONFLICT"
    status_code = 409

    def __init__(
        self,
        message: str = "The document was modified concurrently",
        key: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if key:
            ctx["key"] = key
        super().__init__(message=message, context=ctx)


class DocumentExistsError(ConflictError):
    """Create-only insert found the key already present."""

    def __init__(self, key: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(
            message=f"A document with key '{key}' already exists",
            key=key,
            context=context,
        )


class VersionConflictError(ConflictError):
    """
    Conditional replace lost the race: the stored CAS no longer matches.

    The gateway does not retry this. The caller re-reads and re-applies.
    """

    def __init__(
        self,
        key: str,
        expected_cas: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if expected_cas is not None:
            ctx["expected_cas"] = expected_cas
        super().__init__(
            message=(
                f"Document '{key}' was modified by another request. "
                "Read it again and retry the update."
            ),
            key=key,
            context=ctx,
        )


class StoreTimeoutError(GatewayError):
    """A store call did not settle within `store_timeout_seconds`."""

    error_code = "TIMEOUT"
    status_code = 504

    def __init__(
        self,
        message: str = "Operation timed out",
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
    ):
        ctx = context or {}
        if operation:
            ctx["operation"] = operation
        super().__init__(message=message, context=ctx)
        self.operation = operation


class DatabaseError(GatewayError):
    """
    Any other store failure.

    The message returned to the client is always generic; driver details
    (SQL, constraint names) stay in the server log.
    """

    error_code = "INTERNAL_ERROR"
    status_code = 500

    def __init__(
        self,
        message: str = "Internal server error",
        context: Optional[Dict[str, Any]] = None,
    ):
        super().__init__(message=message, context=context)
