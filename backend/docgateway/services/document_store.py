"""
Document Gateway: SQL Document Store
=====================================

What:  DocumentStore implementation keeping JSON documents in PostgreSQL
       through async SQLAlchemy, with an optional read replica.
How:   One short-lived session per call, each call bounded by
       `store_timeout_seconds`. Writes run in their own transaction.
Who:   Singleton `document_store`, shared by DocumentService and UserService.

Operation Mapping:
    get / exists        SELECT ... WHERE key = :key          (primary)
    get_any_replica     same SELECT on the replica engine
    insert              INSERT; unique violation → DocumentExistsError
    upsert              INSERT ... ON CONFLICT (key) DO UPDATE
    replace             UPDATE ... WHERE key = :key AND cas = :cas
                        0 rows → NotFoundError or VersionConflictError
    remove              DELETE ... RETURNING revision
    query               caller's read statement, rows streamed off the cursor
    scan                SELECT ... WHERE key LIKE :prefix% ORDER BY key

Error Translation:
    asyncio timeout      → StoreTimeoutError (TIMEOUT)
    any SQLAlchemyError  → DatabaseError (INTERNAL_ERROR), details logged only
    OSError, asyncpg     → DatabaseError; asyncpg raises these unwrapped
                           while it is still opening the connection
    caller SQL errors    → ValidationError (INVALID_INPUT), query() only
    gateway exceptions raised inside an operation pass through unchanged
"""

import asyncio
import logging
import re
import secrets
import time
import uuid
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

import asyncpg
from sqlalchemy import delete, func, select, text, update
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.exc import (
    DataError,
    DBAPIError,
    IntegrityError,
    ProgrammingError,
    SQLAlchemyError,
    StatementError,
)
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker

from docgateway.config import settings
from docgateway.database import engine, replica_engine
from docgateway.exceptions import (
    DatabaseError,
    DocumentExistsError,
    GatewayError,
    NotFoundError,
    StoreTimeoutError,
    ValidationError,
    VersionConflictError,
)
from docgateway.models.document import StoredDocument
from docgateway.services.store_base import (
    DiagnosticsResult,
    DocumentStore,
    EndpointPing,
    GetResult,
    MutationResult,
    MutationToken,
    PingResult,
    partition_for,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# First keyword of the statements /query accepts.
_READ_STATEMENT = re.compile(r"^\s*(select|with|values)\b", re.IGNORECASE)

# Single-quoted SQL literal, '' being an escaped quote.
_STRING_LITERAL = re.compile(r"'(?:[^']|'')*'")


def new_cas() -> int:
    """Fresh version token; fits a JSON number exactly (< 2**53)."""
    return secrets.randbelow(2**53 - 1) + 1


class SqlDocumentStore(DocumentStore):
    """
    DocumentStore over one primary engine and an optional replica engine.

    Args:
        primary: Engine used for every write and primary read
        replica: Engine for `get_any_replica`; defaults to `primary`
        bucket_name: Reported in mutation tokens and diagnostics
        timeout: Seconds allowed per call
    """

    def __init__(
        self,
        primary: AsyncEngine,
        replica: Optional[AsyncEngine] = None,
        bucket_name: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        self._primary = primary
        self._replica = replica if replica is not None else primary
        self.bucket_name = bucket_name or settings.bucket_name
        self.timeout = timeout if timeout is not None else settings.store_timeout_seconds

        self._sessions = async_sessionmaker(self._primary, expire_on_commit=False)
        self._replica_sessions = (
            async_sessionmaker(self._replica, expire_on_commit=False)
            if self._replica is not self._primary
            else self._sessions
        )

    @property
    def has_replica(self) -> bool:
        return self._replica is not self._primary

    # ── Call wrapper ──────────────────────────────────────────────────────

    async def _run(
        self,
        operation: str,
        key: Optional[str],
        fn: Callable[[AsyncSession], Awaitable[T]],
        *,
        write: bool = False,
        replica: bool = False,
    ) -> T:
        """
        Runs `fn` in a fresh session under the store timeout.

        Writes get an explicit transaction that commits on success and
        rolls back when `fn` raises.
        """
        factory = self._replica_sessions if replica else self._sessions

        async def _call() -> T:
            async with factory() as session:
                if write:
                    async with session.begin():
                        return await fn(session)
                return await fn(session)

        context: Dict[str, Any] = {"operation": operation}
        if key is not None:
            context["key"] = key

        try:
            return await asyncio.wait_for(_call(), timeout=self.timeout)
        except GatewayError:
            raise
        except asyncio.TimeoutError:
            logger.warning(
                "Store %s timed out after %.2fs (key=%s, replica=%s)",
                operation, self.timeout, key, replica,
            )
            raise StoreTimeoutError(operation=operation, context=context)
        except (SQLAlchemyError, OSError, asyncpg.PostgresError, asyncpg.InterfaceError) as e:
            # The timeout clause must stay first: TimeoutError is an OSError.
            logger.error(
                "Store %s failed (key=%s): %s", operation, key, str(e), exc_info=True
            )
            context["error_type"] = type(e).__name__
            raise DatabaseError(context=context)

    def _mutation(self, key: str, cas: int, revision: int) -> MutationResult:
        return MutationResult(
            cas=cas,
            mutation_token=MutationToken(
                bucket_name=self.bucket_name,
                partition_id=partition_for(key),
                sequence_number=revision,
            ),
        )

    # ── Health ────────────────────────────────────────────────────────────

    async def _ping_endpoint(self, name: str, replica: bool) -> EndpointPing:
        start = time.perf_counter()
        try:
            await self._run("ping", None, lambda s: s.execute(text("SELECT 1")), replica=replica)
        except StoreTimeoutError:
            return EndpointPing(endpoint=name, state="timeout", error_code="TIMEOUT")
        except GatewayError as e:
            return EndpointPing(endpoint=name, state="error", error_code=e.error_code)
        latency_ms = round((time.perf_counter() - start) * 1000, 2)
        return EndpointPing(endpoint=name, state="ok", latency_ms=latency_ms)

    async def ping(self) -> PingResult:
        endpoints = [await self._ping_endpoint("primary", replica=False)]
        if self.has_replica:
            endpoints.append(await self._ping_endpoint("replica", replica=True))
        return PingResult(id=uuid.uuid4().hex[:16], endpoints=endpoints)

    async def diagnostics(self) -> DiagnosticsResult:
        ping = await self.ping()
        engines = {"primary": self._primary, "replica": self._replica}

        endpoints = []
        for probe in ping.endpoints:
            eng = engines[probe.endpoint]
            endpoints.append({
                "endpoint": probe.endpoint,
                "state": probe.state,
                "latencyMs": probe.latency_ms,
                "errorCode": probe.error_code,
                "dialect": eng.dialect.name,
                "host": eng.url.host,
                "database": eng.url.database,
                "pool": eng.pool.status(),
            })

        reachable = sum(1 for probe in ping.endpoints if probe.ok)
        if reachable == len(ping.endpoints):
            state = "online"
        elif reachable:
            state = "degraded"
        else:
            state = "offline"

        return DiagnosticsResult(
            id=ping.id, state=state, bucket=self.bucket_name, endpoints=endpoints
        )

    # ── Reads ─────────────────────────────────────────────────────────────

    async def _read(self, key: str, replica: bool) -> GetResult:
        async def _get(session: AsyncSession) -> GetResult:
            row = (
                await session.execute(
                    select(StoredDocument.content, StoredDocument.cas).where(
                        StoredDocument.key == key
                    )
                )
            ).one_or_none()
            if row is None:
                raise NotFoundError(key=key)
            return GetResult(key=key, content=dict(row.content), cas=row.cas)

        operation = "get_any_replica" if replica else "get"
        return await self._run(operation, key, _get, replica=replica)

    async def get(self, key: str) -> GetResult:
        return await self._read(key, replica=False)

    async def get_any_replica(self, key: str) -> GetResult:
        return await self._read(key, replica=True)

    async def exists(self, key: str) -> bool:
        async def _exists(session: AsyncSession) -> bool:
            found = await session.scalar(
                select(StoredDocument.key).where(StoredDocument.key == key)
            )
            return found is not None

        return await self._run("exists", key, _exists)

    # ── Writes ────────────────────────────────────────────────────────────

    async def insert(self, key: str, document: Dict[str, Any]) -> MutationResult:
        cas = new_cas()

        async def _insert(session: AsyncSession) -> MutationResult:
            session.add(StoredDocument(key=key, content=document, cas=cas, revision=1))
            try:
                await session.flush()
            except IntegrityError:
                raise DocumentExistsError(key=key) from None
            return self._mutation(key, cas, 1)

        return await self._run("insert", key, _insert, write=True)

    async def upsert(self, key: str, document: Dict[str, Any]) -> MutationResult:
        cas = new_cas()

        async def _upsert(session: AsyncSession) -> MutationResult:
            stmt = pg_insert(StoredDocument).values(
                key=key, content=document, cas=cas, revision=1
            )
            stmt = stmt.on_conflict_do_update(
                index_elements=[StoredDocument.key],
                set_={
                    "content": stmt.excluded.content,
                    "cas": stmt.excluded.cas,
                    "revision": StoredDocument.revision + 1,
                    "updated_at": func.now(),
                },
            ).returning(StoredDocument.revision)
            revision = (await session.execute(stmt)).scalar_one()
            return self._mutation(key, cas, revision)

        return await self._run("upsert", key, _upsert, write=True)

    async def replace(
        self, key: str, document: Dict[str, Any], cas: int
    ) -> MutationResult:
        next_cas = new_cas()

        async def _replace(session: AsyncSession) -> MutationResult:
            stmt = (
                update(StoredDocument)
                .where(StoredDocument.key == key, StoredDocument.cas == cas)
                .values(
                    content=document,
                    cas=next_cas,
                    revision=StoredDocument.revision + 1,
                    updated_at=func.now(),
                )
                .returning(StoredDocument.revision)
                .execution_options(synchronize_session=False)
            )
            revision = (await session.execute(stmt)).scalar_one_or_none()
            if revision is not None:
                return self._mutation(key, next_cas, revision)

            # Nothing matched: either the key is gone or the CAS moved on
            current = await session.scalar(
                select(StoredDocument.cas).where(StoredDocument.key == key)
            )
            if current is None:
                raise NotFoundError(key=key)
            raise VersionConflictError(key=key, expected_cas=cas)

        return await self._run("replace", key, _replace, write=True)

    async def remove(self, key: str) -> MutationResult:
        async def _remove(session: AsyncSession) -> MutationResult:
            stmt = (
                delete(StoredDocument)
                .where(StoredDocument.key == key)
                .returning(StoredDocument.revision)
                .execution_options(synchronize_session=False)
            )
            revision = (await session.execute(stmt)).scalar_one_or_none()
            if revision is None:
                raise NotFoundError(key=key)
            return self._mutation(key, new_cas(), revision + 1)

        return await self._run("remove", key, _remove, write=True)

    # ── Queries ───────────────────────────────────────────────────────────

    async def query(
        self, statement: str, parameters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        body = statement.strip().rstrip(";").strip()
        if not _READ_STATEMENT.match(body):
            raise ValidationError(
                message="Only read statements (SELECT / WITH / VALUES) are accepted",
                field="query",
            )
        if ";" in _STRING_LITERAL.sub("''", body):
            raise ValidationError(
                message="Exactly one statement per query is accepted",
                field="query",
            )
        params = parameters or {}

        async def _query(session: AsyncSession) -> List[Dict[str, Any]]:
            conn = await session.connection()
            if conn.dialect.name == "postgresql":
                await session.execute(text("SET TRANSACTION READ ONLY"))
            try:
                result = await session.stream(text(body), params)
                return [dict(row) async for row in result.mappings()]
            except (ProgrammingError, DataError) as e:
                logger.info("Query rejected by the database: %s", e.orig)
                raise ValidationError(
                    message="Query could not be executed: invalid statement or parameter value",
                    field="query",
                    context={"error_type": type(e).__name__},
                )
            except StatementError as e:
                # Raised before the statement reaches the server, e.g. an unbound parameter
                if isinstance(e, DBAPIError):
                    raise
                logger.info("Query rejected before execution: %s", e.orig)
                raise ValidationError(
                    message="Query could not be executed: missing or invalid parameters",
                    field="query",
                    context={"error_type": type(e).__name__},
                )

        logger.debug("Running query with %d parameter(s)", len(params))
        return await self._run("query", None, _query)

    async def scan(self, prefix: str, limit: int) -> List[Dict[str, Any]]:
        async def _scan(session: AsyncSession) -> List[Dict[str, Any]]:
            stmt = (
                select(StoredDocument.key, StoredDocument.content)
                .where(StoredDocument.key.startswith(prefix, autoescape=True))
                .order_by(StoredDocument.key)
                .limit(limit)
            )
            rows = (await session.execute(stmt)).all()
            return [{**row.content, "id": row.key} for row in rows]

        return await self._run("scan", None, _scan)


document_store = SqlDocumentStore(engine, replica_engine)
