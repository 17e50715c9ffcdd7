"""
Document Gateway: Response Envelopes and Request Bodies
========================================================

What:  Pydantic models for every JSON body the API accepts or returns.
Why:   One envelope shape for all outcomes: `success` plus either the
       operation payload or `error` / `errorCode`.
How:   Field names are snake_case in Python and camelCase on the wire
       (`userId`, `mutationToken`, `errorCode`); FastAPI serializes
       response models by alias.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from docgateway.services.metadata import now_millis
from docgateway.services.store_base import MutationResult


class Envelope(BaseModel):
    """Fields every successful response carries."""

    model_config = ConfigDict(populate_by_name=True)

    success: bool = Field(default=True)
    message: Optional[str] = Field(default=None, description="Human-readable outcome")
    timestamp: int = Field(
        default_factory=now_millis,
        description="Server time of the response (ms since epoch)",
    )


class MutationEnvelope(Envelope):
    """Returned by document create / upsert / delete."""

    key: str = Field(description="Document key")
    cas: int = Field(description="Version token after the write")
    mutation_token: Optional[Dict[str, Any]] = Field(
        default=None,
        alias="mutationToken",
        description="Ordering marker of the write (bucket, partition, sequence number)",
    )

    @classmethod
    def from_result(cls, key: str, result: MutationResult, message: str) -> "MutationEnvelope":
        return cls(
            message=message,
            key=key,
            cas=result.cas,
            mutation_token=result.mutation_token.to_dict(),
        )


class UserMutationEnvelope(Envelope):
    """Returned by user create / update / delete."""

    user_id: str = Field(alias="userId")
    cas: int
    mutation_token: Optional[Dict[str, Any]] = Field(default=None, alias="mutationToken")

    @classmethod
    def from_result(
        cls, user_id: str, result: MutationResult, message: str
    ) -> "UserMutationEnvelope":
        return cls(
            message=message,
            user_id=user_id,
            cas=result.cas,
            mutation_token=result.mutation_token.to_dict(),
        )


class UserEnvelope(Envelope):
    """A single user document with the CAS to update it against."""

    user_id: str = Field(alias="userId")
    user: Dict[str, Any]
    cas: int
    source: Optional[str] = Field(
        default=None,
        description="Which copy served a resilient read: primary or replica",
    )


class UserListEnvelope(Envelope):
    users: List[Dict[str, Any]]
    count: int


class ErrorEnvelope(BaseModel):
    """
    Failure shape shared by every endpoint.

    Example:
        {
            "success": false,
            "error": "user with key 'user-1' was not found",
            "errorCode": "NOT_FOUND",
            "key": "user-1",
            "requestId": "a1b2c3d4",
            "timestamp": 1699999999999
        }
    """

    model_config = ConfigDict(populate_by_name=True)

    success: bool = False
    error: str = Field(description="Human-readable error description")
    error_code: str = Field(alias="errorCode", description="Machine-readable error kind")
    key: Optional[str] = Field(default=None, description="Key the failure concerns")
    details: Optional[Dict[str, Any]] = None
    request_id: Optional[str] = Field(default=None, alias="requestId")
    timestamp: int = Field(default_factory=now_millis)


class QueryRequest(BaseModel):
    """Body of POST /query: a read statement with named parameters."""

    query: str = Field(min_length=1, description="Read statement, e.g. SELECT ... WHERE x = :x")
    parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Named bind parameters referenced as :name in the statement",
    )
