"""
Document Gateway: Identity and Bookkeeping Fields
==================================================

What:  Key generation, key validation, metadata stamping, and the partial
       update merge rule shared by the document and user services.

Key Format:
    `{prefix}-{epoch millis}`, e.g. `user-1699999999999`.
    Two creations in the same millisecond produce the same key. Generated
    keys are therefore only ever written with the create-only `insert`, and
    `insert_with_generated_key` draws a fresh key (1 ms later) when the
    store reports the key as taken.

Bookkeeping Fields:
    createdAt  set once when the document is created
    updatedAt  refreshed by every gateway write
    id / documentId  the key, copied into the body

    Callers cannot set these: values they send for them are overwritten on
    create, and `id` / `createdAt` are ignored on update.
"""

import logging
import time
from typing import Any, Callable, Dict, Mapping, Tuple

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from docgateway.config import settings
from docgateway.exceptions import DocumentExistsError, ValidationError
from docgateway.models.document import MAX_KEY_LENGTH
from docgateway.services.store_base import DocumentStore, MutationResult

logger = logging.getLogger(__name__)

CREATED_AT = "createdAt"
UPDATED_AT = "updatedAt"

# Fields an update can never change.
PROTECTED_FIELDS = frozenset({"id", CREATED_AT})


def now_millis() -> int:
    return time.time_ns() // 1_000_000


def generate_key(prefix: str) -> str:
    return f"{prefix}-{now_millis()}"


def validate_key(key: str) -> str:
    """Rejects keys the store cannot hold."""
    if not key or not key.strip():
        raise ValidationError(message="Document key must not be empty", field="key")
    if len(key.encode("utf-8")) > MAX_KEY_LENGTH:
        raise ValidationError(
            message=f"Document key exceeds {MAX_KEY_LENGTH} bytes",
            field="key",
            context={"length": len(key.encode("utf-8"))},
        )
    return key


def stamp_new(payload: Mapping[str, Any], key: str, id_field: str) -> Dict[str, Any]:
    """Copy of `payload` with the key and both timestamps set."""
    now = now_millis()
    document = dict(payload)
    document[id_field] = key
    document[CREATED_AT] = now
    document[UPDATED_AT] = now
    return document


def merge_update(current: Mapping[str, Any], partial: Mapping[str, Any]) -> Dict[str, Any]:
    """
    Applies a partial update to a stored document.

    Every field in `partial` except the protected ones replaces the stored
    value; fields absent from `partial` are kept. `updatedAt` is refreshed.
    """
    merged = dict(current)
    for name, value in partial.items():
        if name in PROTECTED_FIELDS:
            continue
        merged[name] = value
    merged[UPDATED_AT] = now_millis()
    return merged


async def insert_with_generated_key(
    store: DocumentStore,
    prefix: str,
    build: Callable[[str], Dict[str, Any]],
) -> Tuple[str, Dict[str, Any], MutationResult]:
    """
    Inserts a document under a freshly generated key.

    `build(key)` produces the document body for a candidate key. On a
    duplicate key the attempt is repeated with a new key, up to
    `key_generation_attempts` times; after that the DocumentExistsError
    propagates as a Conflict.
    """
    retrying = AsyncRetrying(
        retry=retry_if_exception_type(DocumentExistsError),
        stop=stop_after_attempt(settings.key_generation_attempts),
        # The key only changes once the millisecond does
        wait=wait_fixed(0.001),
        before_sleep=before_sleep_log(logger, logging.WARNING),
        reraise=True,
    )
    async for attempt in retrying:
        with attempt:
            key = generate_key(prefix)
            document = build(key)
            result = await store.insert(key, document)
    return key, document, result
