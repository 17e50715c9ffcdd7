"""
Document Gateway: Health and Diagnostics Routes
================================================

What:  Liveness text for probes and a JSON view of the store connection.
Why:   /health always answers 200 so a probe can read the status line even
       while the store is down; the body says whether it is healthy.
"""

from typing import Any, Dict

from fastapi import APIRouter
from fastapi.responses import PlainTextResponse

from docgateway.services.document_service import document_service

router = APIRouter(tags=["Health"])


@router.get(
    "/health",
    response_class=PlainTextResponse,
    summary="Document store health check",
    description=(
        "Pings every store endpoint. Returns 'Document store is healthy! ' "
        "followed by the ping report, or a failure line naming the endpoints "
        "that did not answer."
    ),
)
async def health_check() -> PlainTextResponse:
    _, text = await document_service.health()
    return PlainTextResponse(text)


@router.get(
    "/diagnostics",
    summary="Store connection diagnostics",
    description="Reports online/degraded/offline state plus pool status per endpoint.",
)
async def diagnostics() -> Dict[str, Any]:
    result = await document_service.diagnostics()
    return result.to_dict()
