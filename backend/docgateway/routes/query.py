"""
Document Gateway: Query Route
==============================

What:  POST /query runs a read-only SQL statement with named parameters
       against the document table and returns the rows as a JSON array.

Example:
    POST /query
    {
        "query": "SELECT key, content->>'name' AS name FROM documents WHERE content->>'role' = :role",
        "parameters": {"role": "admin"}
    }

Values are always bound, never interpolated. Statements that are not a single
SELECT / WITH / VALUES are rejected with INVALID_INPUT.
"""

from typing import Any, Dict, List

from fastapi import APIRouter

from docgateway.schemas.envelope import ErrorEnvelope, QueryRequest
from docgateway.services.document_service import document_service

router = APIRouter(tags=["Query"])


@router.post(
    "/query",
    responses={
        400: {"description": "Not a single read statement", "model": ErrorEnvelope},
        500: {"description": "Statement failed in the store", "model": ErrorEnvelope},
        504: {"description": "Statement timed out", "model": ErrorEnvelope},
    },
    summary="Run a parameterized read query",
)
async def run_query(body: QueryRequest) -> List[Dict[str, Any]]:
    return await document_service.run_query(body.query, body.parameters)
