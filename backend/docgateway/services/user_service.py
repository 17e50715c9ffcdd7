"""
Document Gateway: User Service
===============================

What:  User CRUD on top of the document store, plus a resilient read.
Who:   Called by the /users routes.

Update Flow (optimistic concurrency):
    ┌──────────┐   cas    ┌──────────┐  merged  ┌────────────────────┐
    │  get()   │─────────▶│  merge   │─────────▶│ replace(doc, cas)  │
    └──────────┘          └──────────┘          └────────────────────┘
    missing → NotFound                          cas moved → Conflict

    The gateway never retries a Conflict: the caller's partial update was
    computed against a version that no longer exists.

Resilient Read:
    One attempt reads the primary; on NotFound or Timeout it falls back to a
    replica. Attempts that still end in a timeout are repeated up to
    `resilient_max_attempts` times with no delay. NotFound on both copies is
    final. Anything else fails fast as INTERNAL_ERROR.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
)

from docgateway.config import settings
from docgateway.exceptions import DatabaseError, NotFoundError, StoreTimeoutError
from docgateway.schemas.user import check_user_fields
from docgateway.services.document_store import document_store
from docgateway.services.metadata import (
    insert_with_generated_key,
    merge_update,
    stamp_new,
    validate_key,
)
from docgateway.services.store_base import DocumentStore, GetResult, MutationResult

logger = logging.getLogger(__name__)


class UserService:
    """
    Users live in the same store as generic documents, under `user-` keys.

    Responsibilities:
        - create_user(): generated key, bookkeeping fields, create-only insert
        - get_user() / list_users() / delete_user()
        - update_user(): read-merge-replace against the read CAS
        - get_user_resilient(): replica fallback + bounded timeout retry
    """

    KEY_PREFIX = "user"
    ID_FIELD = "id"

    def __init__(self, store: DocumentStore):
        self.store = store

    async def create_user(self, payload: Dict[str, Any]) -> Tuple[str, MutationResult]:
        check_user_fields(payload)
        user_id, _, result = await insert_with_generated_key(
            self.store,
            self.KEY_PREFIX,
            lambda candidate: stamp_new(payload, candidate, self.ID_FIELD),
        )
        logger.info("User created: %s", user_id)
        return user_id, result

    async def get_user(self, user_id: str) -> GetResult:
        try:
            return await self.store.get(validate_key(user_id))
        except NotFoundError:
            raise NotFoundError(resource="user", key=user_id) from None

    async def list_users(self, limit: Optional[int] = None) -> List[Dict[str, Any]]:
        return await self.store.scan(
            f"{self.KEY_PREFIX}-", limit or settings.user_list_limit
        )

    async def update_user(
        self, user_id: str, partial: Dict[str, Any]
    ) -> MutationResult:
        """
        Merges `partial` into the stored user and writes it back conditioned
        on the CAS from the read.

        Raises:
            NotFoundError: the user does not exist (or vanished before the write)
            VersionConflictError: another write landed between read and replace
        """
        check_user_fields(partial)
        current = await self.get_user(user_id)
        merged = merge_update(current.content, partial)
        try:
            result = await self.store.replace(user_id, merged, current.cas)
        except NotFoundError:
            raise NotFoundError(resource="user", key=user_id) from None
        logger.info("User updated: %s (cas %d → %d)", user_id, current.cas, result.cas)
        return result

    async def delete_user(self, user_id: str) -> MutationResult:
        try:
            result = await self.store.remove(validate_key(user_id))
        except NotFoundError:
            raise NotFoundError(resource="user", key=user_id) from None
        logger.info("User deleted: %s", user_id)
        return result

    # ── Resilient read ────────────────────────────────────────────────────

    async def _read_with_fallback(self, user_id: str) -> Tuple[GetResult, str]:
        try:
            return await self.store.get(user_id), "primary"
        except (NotFoundError, StoreTimeoutError) as primary_error:
            logger.info(
                "Primary read of %s failed (%s); trying replica",
                user_id, primary_error.error_code,
            )
            try:
                return await self.store.get_any_replica(user_id), "replica"
            except NotFoundError:
                # A replica miss says nothing when the primary never answered
                if isinstance(primary_error, StoreTimeoutError):
                    raise primary_error
                raise

    async def get_user_resilient(self, user_id: str) -> Tuple[GetResult, str]:
        """
        Reads a user, preferring any answer over an error.

        Returns:
            (result, source) where source is "primary" or "replica"

        Raises:
            NotFoundError: neither copy has the user
            StoreTimeoutError: still timing out after the last attempt
            DatabaseError: any other failure, without retry
        """
        validate_key(user_id)
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(StoreTimeoutError),
            stop=stop_after_attempt(settings.resilient_max_attempts),
            before_sleep=before_sleep_log(logger, logging.WARNING),
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    result, source = await self._read_with_fallback(user_id)
        except NotFoundError:
            raise NotFoundError(resource="user", key=user_id) from None
        except StoreTimeoutError as e:
            logger.error(
                "Resilient read of %s timed out after %d attempts",
                user_id, settings.resilient_max_attempts,
            )
            e.context["key"] = user_id
            e.context["attempts"] = settings.resilient_max_attempts
            raise
        except Exception as e:
            logger.error("Resilient read of %s failed: %s", user_id, str(e), exc_info=True)
            raise DatabaseError(
                context={"key": user_id, "error_type": type(e).__name__}
            ) from None
        return result, source


user_service = UserService(document_store)
