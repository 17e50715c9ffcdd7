"""
Document Gateway: Document Service
===================================

What:  Generic document operations: health, diagnostics, create, upsert,
       get, exists, delete, and parameterized queries.
How:   Each method is one call to the DocumentStore plus key/metadata
       handling. Store exceptions propagate to the global handlers, which
       shape them into envelopes.
Who:   Called by the /health, /diagnostics, /documents and /query routes.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from docgateway.services.document_store import document_store
from docgateway.services.metadata import (
    insert_with_generated_key,
    stamp_new,
    validate_key,
)
from docgateway.services.store_base import (
    DiagnosticsResult,
    DocumentStore,
    GetResult,
    MutationResult,
)

logger = logging.getLogger(__name__)


class DocumentService:
    """
    Stateless orchestration over a DocumentStore.

    Generated document keys look like `doc-1699999999999`; the key is also
    written into the body as `documentId`.
    """

    KEY_PREFIX = "doc"
    ID_FIELD = "documentId"

    def __init__(self, store: DocumentStore):
        self.store = store

    async def health(self) -> Tuple[bool, str]:
        """
        Liveness probe of the store.

        Returns (healthy, status text). Never raises: a failed probe is
        described by error code only, so driver messages stay server-side.
        """
        try:
            ping = await self.store.ping()
        except Exception as e:
            logger.warning("Health check: store probe raised %s: %s", type(e).__name__, e)
            code = getattr(e, "error_code", "INTERNAL_ERROR")
            return False, f"Document store health check failed: {code}"

        if not ping.healthy:
            failed = ", ".join(
                f"{ep.endpoint}={ep.error_code or ep.state}"
                for ep in ping.endpoints
                if not ep.ok
            )
            logger.warning("Health check: unhealthy endpoints: %s", failed)
            return False, f"Document store health check failed: {failed}"

        return True, "Document store is healthy! " + ping.export_to_json()

    async def diagnostics(self) -> DiagnosticsResult:
        return await self.store.diagnostics()

    async def create_document(
        self, payload: Dict[str, Any], key: Optional[str] = None
    ) -> Tuple[str, MutationResult]:
        """
        Create-only write.

        With a caller key, an existing document under it is a Conflict.
        Without one, a key is generated (and regenerated on collision).
        """
        if key is not None:
            validate_key(key)
            result = await self.store.insert(key, stamp_new(payload, key, self.ID_FIELD))
        else:
            key, _, result = await insert_with_generated_key(
                self.store,
                self.KEY_PREFIX,
                lambda candidate: stamp_new(payload, candidate, self.ID_FIELD),
            )
        logger.info("Document created: %s (cas=%d)", key, result.cas)
        return key, result

    async def upsert_document(self, key: str, payload: Dict[str, Any]) -> MutationResult:
        """Create-or-overwrite under `key`; the whole body is replaced."""
        validate_key(key)
        result = await self.store.upsert(key, stamp_new(payload, key, self.ID_FIELD))
        logger.info("Document upserted: %s (cas=%d)", key, result.cas)
        return result

    async def get_document(self, key: str) -> GetResult:
        return await self.store.get(validate_key(key))

    async def document_exists(self, key: str) -> bool:
        return await self.store.exists(validate_key(key))

    async def delete_document(self, key: str) -> MutationResult:
        result = await self.store.remove(validate_key(key))
        logger.info("Document deleted: %s", key)
        return result

    async def run_query(
        self, statement: str, parameters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        rows = await self.store.query(statement, parameters or {})
        logger.info("Query returned %d row(s)", len(rows))
        return rows


document_service = DocumentService(document_store)
