"""
Document Gateway: Document Routes
==================================

What:  CRUD over generic JSON documents addressed by key.
How:   Reads answer in plain text (`Document found - Key: ...`) for parity
       with simple shell clients; writes answer with a MutationEnvelope
       carrying the new CAS and mutation token.

Request bodies must be JSON objects. Arrays, scalars and malformed JSON are
rejected by FastAPI validation and come back as INVALID_INPUT envelopes.
"""

import json
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Query, status
from fastapi.responses import PlainTextResponse

from docgateway.schemas.envelope import ErrorEnvelope, MutationEnvelope
from docgateway.services.document_service import document_service

router = APIRouter(prefix="/documents", tags=["Documents"])

_ERRORS = {
    400: {"description": "Invalid key or body", "model": ErrorEnvelope},
    500: {"description": "Store failure", "model": ErrorEnvelope},
    504: {"description": "Store call timed out", "model": ErrorEnvelope},
}


@router.get(
    "/{key}",
    response_class=PlainTextResponse,
    responses={404: {"description": "No document under key", "model": ErrorEnvelope}, **_ERRORS},
    summary="Read a document",
)
async def get_document(key: str) -> PlainTextResponse:
    result = await document_service.get_document(key)
    return PlainTextResponse(
        f"Document found - Key: {result.key}, CAS: {result.cas}, "
        f"Content: {json.dumps(result.content)}"
    )


@router.post(
    "",
    response_model=MutationEnvelope,
    response_model_by_alias=True,
    status_code=status.HTTP_201_CREATED,
    responses={409: {"description": "Key already taken", "model": ErrorEnvelope}, **_ERRORS},
    summary="Create a document",
    description=(
        "Create-only write. With `?key=` the document is stored under that key "
        "and an existing key is a CONFLICT. Without it a `doc-<millis>` key is "
        "generated."
    ),
)
async def create_document(
    payload: Dict[str, Any] = Body(..., description="Document body (JSON object)"),
    key: Optional[str] = Query(default=None, description="Key to create the document under"),
) -> MutationEnvelope:
    key, result = await document_service.create_document(payload, key=key)
    return MutationEnvelope.from_result(key, result, "Document created successfully")


@router.put(
    "/{key}",
    response_model=MutationEnvelope,
    response_model_by_alias=True,
    responses=_ERRORS,
    summary="Create or overwrite a document",
)
async def upsert_document(
    key: str,
    payload: Dict[str, Any] = Body(..., description="Document body (JSON object)"),
) -> MutationEnvelope:
    result = await document_service.upsert_document(key, payload)
    return MutationEnvelope.from_result(key, result, "Document upserted successfully")


@router.delete(
    "/{key}",
    response_model=MutationEnvelope,
    response_model_by_alias=True,
    responses={404: {"description": "No document under key", "model": ErrorEnvelope}, **_ERRORS},
    summary="Delete a document",
)
async def delete_document(key: str) -> MutationEnvelope:
    result = await document_service.delete_document(key)
    return MutationEnvelope.from_result(key, result, "Document deleted successfully")


@router.get(
    "/{key}/exists",
    response_class=PlainTextResponse,
    responses=_ERRORS,
    summary="Check whether a key exists",
)
async def document_exists(key: str) -> PlainTextResponse:
    exists = await document_service.document_exists(key)
    return PlainTextResponse(
        f"Document exists check - Key: {key}, Exists: {str(exists).lower()}"
    )
