"""
Document Gateway: Abstract Document Store Interface
====================================================

What:  The async contract every document store backend implements, plus the
       result types its operations return.
Why:   Services depend on this interface only. The SQL backend, the in-memory
       store used by the tests, or a different database can be swapped in
       without touching routes or services.
Who:   Implemented by SqlDocumentStore; consumed by DocumentService and
       UserService.

Failure Contract:
    Each operation either returns its result or raises one of the typed
    gateway exceptions (NotFoundError, DocumentExistsError,
    VersionConflictError, StoreTimeoutError, DatabaseError, ValidationError).
    Driver exceptions never cross this boundary.
"""

import json
import zlib
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

# Keys hash onto this many partitions (crc32 % 1024), like vBuckets.
NUM_PARTITIONS = 1024


def partition_for(key: str) -> int:
    """Partition id a key maps to."""
    return zlib.crc32(key.encode("utf-8")) % NUM_PARTITIONS


@dataclass(frozen=True)
class MutationToken:
    """
    Ordering marker of one write.

    Two tokens for the same key compare by sequence number; a reader that has
    seen a token can tell whether its view includes that write.
    """

    bucket_name: str
    partition_id: int
    sequence_number: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "bucket": self.bucket_name,
            "partitionId": self.partition_id,
            "sequenceNumber": self.sequence_number,
        }

    def __str__(self) -> str:
        return (
            f"mt{{bucket={self.bucket_name},vbID={self.partition_id},"
            f"seqno={self.sequence_number}}}"
        )


@dataclass(frozen=True)
class MutationResult:
    """Outcome of insert / upsert / replace / remove."""

    cas: int
    mutation_token: MutationToken


@dataclass(frozen=True)
class GetResult:
    """A document as read from the store, with the CAS to write it back."""

    key: str
    content: Dict[str, Any]
    cas: int


@dataclass
class EndpointPing:
    """Latency probe of one store endpoint (primary or replica)."""

    endpoint: str
    state: str  # "ok" | "timeout" | "error"
    latency_ms: Optional[float] = None
    error_code: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state == "ok"


@dataclass
class PingResult:
    id: str
    endpoints: List[EndpointPing] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return bool(self.endpoints) and all(ep.ok for ep in self.endpoints)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "endpoints": [
                {
                    "endpoint": ep.endpoint,
                    "state": ep.state,
                    "latencyMs": ep.latency_ms,
                    "errorCode": ep.error_code,
                }
                for ep in self.endpoints
            ],
        }

    def export_to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class DiagnosticsResult:
    """
    Point-in-time view of the store connection.

    state is "online" when every endpoint answers, "degraded" when only some
    do, and "offline" when none does.
    """

    id: str
    state: str
    bucket: str
    endpoints: List[Dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "state": self.state,
            "bucket": self.bucket,
            "endpoints": self.endpoints,
        }


class DocumentStore(ABC):
    """
    Async key-value / document store contract.

    Implementations bound every call by their configured timeout and
    translate their own failures into gateway exceptions.
    """

    @abstractmethod
    async def ping(self) -> PingResult:
        """
        Probes every endpoint. Endpoint failures are reported in the
        result, not raised.
        """

    @abstractmethod
    async def diagnostics(self) -> DiagnosticsResult:
        """Connection state of every endpoint; never raises for outages."""

    @abstractmethod
    async def get(self, key: str) -> GetResult:
        """
        Reads a document from the primary.

        Raises:
            NotFoundError: the key does not exist
        """

    @abstractmethod
    async def get_any_replica(self, key: str) -> GetResult:
        """Reads a document from a replica (the primary when none exists)."""

    @abstractmethod
    async def insert(self, key: str, document: Dict[str, Any]) -> MutationResult:
        """
        Create-only write.

        Raises:
            DocumentExistsError: the key is already present
        """

    @abstractmethod
    async def upsert(self, key: str, document: Dict[str, Any]) -> MutationResult:
        """Create-or-overwrite write; succeeds whether or not the key exists."""

    @abstractmethod
    async def replace(
        self, key: str, document: Dict[str, Any], cas: int
    ) -> MutationResult:
        """
        Overwrites an existing document if its CAS still equals `cas`.

        Raises:
            NotFoundError: the key does not exist
            VersionConflictError: the document changed since `cas` was read
        """

    @abstractmethod
    async def remove(self, key: str) -> MutationResult:
        """
        Deletes a document.

        Raises:
            NotFoundError: the key does not exist
        """

    @abstractmethod
    async def exists(self, key: str) -> bool:
        """Whether the key is present. Never returns content."""

    @abstractmethod
    async def query(
        self, statement: str, parameters: Optional[Dict[str, Any]] = None
    ) -> List[Dict[str, Any]]:
        """
        Runs a parameterized read statement and collects its rows.

        An empty list is a valid result.

        Raises:
            ValidationError: the statement is not a read statement
        """

    @abstractmethod
    async def scan(self, prefix: str, limit: int) -> List[Dict[str, Any]]:
        """Documents whose key starts with `prefix`, ordered by key."""
